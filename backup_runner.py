# backup_runner.py
# -*- coding: utf-8 -*-
"""
Unattended backup run: load the configuration, set up logging, run the
remote synchronizer and report the outcome.

Meant to be launched by an external scheduler (Task Scheduler, cron,
systemd timer); it runs once and exits with 0 on success, 1 on failure.
"""

import os
import sys
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import config
import core_logic
import settings_manager
from backup_errors import BackupError, ConfigurationError
from cloud_utils.remote_sync import RemoteSynchronizer

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


@dataclass
class RunResult:
    success: bool
    files_copied: int = 0
    files_skipped: int = 0
    committed: bool = False
    pushed: bool = False
    error_kind: Optional[str] = None
    message: str = ""
    skip_report: Optional[str] = None
    log_path: Optional[str] = None
    staging_path: Optional[str] = None


# --- Logging ---

def configure_logging(log_dir=None, now=None, level=logging.INFO):
    """
    Route the root logger to the console and, when log_dir is given, to a
    dated log file (one file per day, runs append).

    Returns:
        The log file path, or None when only the console is used.
    """
    log_formatter = logging.Formatter(LOG_FORMAT, LOG_DATEFMT)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove old handlers if present
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    root_logger.addHandler(console_handler)

    if not log_dir:
        return None

    log_path = os.path.join(log_dir, f"backup_{(now or datetime.now()).strftime('%Y-%m-%d')}.log")
    try:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as e:
        logging.error(f"Unable to open the log file '{log_path}', logging to console only: {e}")
        return None
    file_handler.setFormatter(log_formatter)
    root_logger.addHandler(file_handler)
    return log_path


# --- Failure notification ---

def notify_failure(message, log_path=None):
    """Default failure sink: a blocking PySide6 dialog naming the log file."""
    try:
        from gui_utils import show_failure_dialog
    except ImportError as e_qt:
        logging.error(f"PySide6 not available, unable to show the failure dialog: {e_qt}")
        return
    try:
        show_failure_dialog(message, log_path)
    except Exception as e_dialog:
        logging.error(f"Unable to show the failure dialog: {e_dialog}", exc_info=True)


# --- Run ---

def run_backup(configuration, notifier: Optional[Callable] = notify_failure, now=None,
               log_path=None, git=None, staging=None) -> RunResult:
    """
    Execute one backup run for a loaded configuration.

    The skip report is written whether the run succeeds or not. The staging
    directory is removed after success and left in place after a failure.
    """
    now = now or datetime.now()
    logging.info(f"--- {config.APP_NAME} backup started ({now.strftime(LOG_DATEFMT)}) ---")
    logging.info(f"Install path: {configuration.install_path}")
    synchronizer = RemoteSynchronizer(configuration, git=git, staging=staging, now=now)
    result = RunResult(success=False, log_path=log_path, staging_path=synchronizer.staging.path)

    try:
        outcome = synchronizer.sync()
        result.success = True
        result.committed = outcome.committed
        result.pushed = outcome.pushed
    except BackupError as e:
        result.error_kind = e.kind
        result.message = str(e)
        output = getattr(e, "output", "")
        logging.critical(f"Backup failed ({e.kind}): {e}" + (f"\n{output}" if output else ""))
    except Exception as e:
        result.error_kind = "unexpected"
        result.message = f"Unexpected backup error: {e}"
        logging.critical(result.message, exc_info=True)
    finally:
        outcome = synchronizer.outcome
        result.files_copied = outcome.files_copied
        result.files_skipped = len(outcome.skipped)
        if outcome.skipped:
            try:
                result.skip_report = core_logic.write_skip_report(
                    outcome.skipped, configuration.resolved_log_dir, now)
            except OSError as e:
                logging.error(f"Unable to write the skipped files report: {e}")

    if result.success:
        try:
            synchronizer.staging.destroy()
        except BackupError as e:
            logging.warning(f"Backup published but the staging directory was not removed: {e}")
        logging.info(f"Backup completed: {result.files_copied} file(s) copied, "
                     f"{result.files_skipped} skipped, "
                     f"{'changes published' if result.pushed else 'no changes'}.")
        next_run = settings_manager.next_run_display(configuration.schedule_times, configuration.timezone)
        logging.info(f"Next scheduled run: {next_run}")
        result.message = "Backup completed."
    else:
        logging.info(f"Staging directory kept for diagnosis: {result.staging_path}")
        if notifier is not None:
            notifier(result.message, log_path)
    return result


def run_silent_backup(config_path=None, show_dialog=True, level=logging.INFO):
    """
    Load the configuration, log to the configured folder and run one backup.

    Returns:
        Process exit code: 0 on success, 1 on failure.
    """
    configure_logging(None, level=level)
    logging.info(f"Received arguments: {' '.join(sys.argv)}")
    try:
        configuration = settings_manager.load_configuration(config_path)
    except ConfigurationError as e:
        # fatal before any work; no dialog since there is no log file to point at
        logging.error(f"Configuration error: {e}")
        return 1

    log_path = configure_logging(configuration.resolved_log_dir, level=level)
    if log_path:
        logging.info(f"Logging to '{log_path}'")
    if configuration.source_file:
        logging.info(f"Configuration: {configuration.source_file}")

    result = run_backup(configuration, notifier=notify_failure if show_dialog else None, log_path=log_path)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(run_silent_backup(sys.argv[1] if len(sys.argv) > 1 else None))
