# -*- coding: utf-8 -*-
import os
import sys
import logging

from PySide6.QtWidgets import QApplication, QMessageBox

import config


def display_available():
    """False on Linux/BSD sessions without an X11 or Wayland display (cron, ssh)."""
    if sys.platform.startswith("win") or sys.platform == "darwin":
        return True
    return bool(os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY"))


def show_failure_dialog(message, log_path=None):
    """
    Shows a blocking error dialog for a failed unattended backup.

    Args:
        message: short description of what failed
        log_path: run log file the user should open for details
    """
    logging.debug(">>> Entered show_failure_dialog <<<")
    if not display_available():
        logging.info("No display available, failure dialog skipped.")
        return

    text = message.strip()
    if log_path:
        text += f"\n\nDetails are in the log file:\n{log_path}"

    app = QApplication.instance()
    created_app = False
    if app is None:
        app_args = sys.argv if hasattr(sys, 'argv') and sys.argv else [config.APP_NAME]
        app = QApplication(app_args)
        created_app = True

    try:
        QMessageBox.critical(None, f"{config.APP_NAME} - Backup failed", text)
    finally:
        if created_app:
            app.quit()
    logging.debug("<<< Exited show_failure_dialog >>>")
