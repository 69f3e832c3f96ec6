# settings_manager.py
import json
import os
import sys
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import config
from backup_errors import ConfigurationError


@dataclass(frozen=True)
class TaskMapping:
    """One source role copied into one subfolder of the target path."""
    name: str
    source: str
    target: str


@dataclass(frozen=True)
class BackupConfiguration:
    install_path: str
    remote_url: str
    access_token: Optional[str] = None
    include_dirs: Tuple[str, ...] = tuple(config.DEFAULT_INCLUDE_DIRS)
    exclude_dirs: Tuple[str, ...] = tuple(config.DEFAULT_EXCLUDE_DIRS)
    save_path: Optional[str] = None
    user_save_path: Optional[str] = None
    additional_songs_path: Optional[str] = None
    target_subpath: str = config.DEFAULT_TARGET_SUBPATH
    include_songs: bool = False
    tasks: Tuple[TaskMapping, ...] = field(default_factory=lambda: tuple(
        TaskMapping(**t) for t in config.DEFAULT_TASKS))
    schedule_times: Tuple[str, ...] = ()
    timezone: Optional[str] = None
    ignore_file: Optional[str] = None
    staging_dir: Optional[str] = None
    log_dir: Optional[str] = None
    git_user_name: str = config.DEFAULT_GIT_USER_NAME
    git_user_email: str = config.DEFAULT_GIT_USER_EMAIL
    branch: str = config.DEFAULT_BRANCH
    source_file: Optional[str] = None

    # --- Resolved paths ---

    @property
    def resolved_save_path(self) -> str:
        return self.save_path or os.path.join(self.install_path, "Save")

    @property
    def resolved_user_save_path(self) -> str:
        return self.user_save_path or config.default_user_save_path()

    @property
    def song_roots(self) -> List[Tuple[str, str]]:
        """(label, path) for the primary and the additional song library."""
        additional = self.additional_songs_path or os.path.join(
            self.install_path, config.ADDITIONAL_SONGS_DIR_NAME)
        return [
            (config.SONGS_DIR_NAME, os.path.join(self.install_path, config.SONGS_DIR_NAME)),
            (config.ADDITIONAL_SONGS_DIR_NAME, additional),
        ]

    @property
    def resolved_staging_dir(self) -> str:
        return self.staging_dir or os.path.join(config.get_app_data_folder(), config.STAGING_DIRNAME)

    @property
    def resolved_log_dir(self) -> str:
        return self.log_dir or os.path.join(config.get_app_data_folder(), config.LOGS_DIRNAME)

    def task_target(self, source: str) -> Optional[str]:
        """Repository-relative folder (posix separators) for a source role, or None if no task maps it."""
        for task in self.tasks:
            if task.source == source:
                return f"{self.target_subpath}/{task.target}".strip("/")
        return None


# --- Configuration file resolution ---

def _get_executable_dir() -> str:
    """Directory of the running executable (PyInstaller) or of the launched script."""
    if getattr(sys, "frozen", False) and hasattr(sys, "executable"):
        return os.path.dirname(os.path.abspath(sys.executable))
    if sys.argv and sys.argv[0]:
        return os.path.dirname(os.path.abspath(sys.argv[0]))
    return os.path.dirname(os.path.abspath(__file__))


def _from_environment() -> Optional[str]:
    return os.environ.get(config.CONFIG_ENV_VAR) or None


def _from_script_dir() -> Optional[str]:
    return os.path.join(_get_executable_dir(), config.CONFIG_FILENAME)


def _from_app_data() -> Optional[str]:
    return os.path.join(config.get_app_data_folder(), config.CONFIG_FILENAME)


def _from_install_roots() -> List[str]:
    return [os.path.join(root, config.CONFIG_FILENAME) for root in config.WELL_KNOWN_INSTALL_ROOTS]


DEFAULT_RESOLVERS: List[Callable[[], object]] = [
    _from_environment,
    _from_script_dir,
    _from_app_data,
    _from_install_roots,
]


def resolve_config_path(explicit_path: Optional[str] = None,
                        resolvers: Optional[List[Callable[[], object]]] = None) -> str:
    """
    Return the first existing configuration file.

    An explicit path always wins and must exist. Otherwise the resolvers are
    evaluated in order; each returns a path, a list of paths, or None.

    Raises:
        ConfigurationError: if no candidate exists.
    """
    if explicit_path:
        if os.path.isfile(explicit_path):
            return os.path.abspath(explicit_path)
        raise ConfigurationError(f"Configuration file not found: {explicit_path}")

    tried = []
    for resolver in (resolvers if resolvers is not None else DEFAULT_RESOLVERS):
        candidates = resolver()
        if candidates is None:
            continue
        if isinstance(candidates, str):
            candidates = [candidates]
        for candidate in candidates:
            tried.append(candidate)
            if os.path.isfile(candidate):
                logging.debug(f"Configuration resolved to: {candidate}")
                return os.path.abspath(candidate)

    raise ConfigurationError(
        "No configuration file found. Looked in:\n" + "\n".join(tried))


# --- Loading and validation ---

def _string_list(value, key, default):
    if isinstance(value, list) and all(isinstance(v, str) and v for v in value):
        return tuple(value)
    logging.warning(f"'{key}' in the configuration is not a list of names, using the default list.")
    return tuple(default)


def _optional_path(value, key, base_dir):
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        logging.warning(f"Invalid value for '{key}' ('{value}'), ignoring it.")
        return None
    value = os.path.expandvars(os.path.expanduser(value))
    if not os.path.isabs(value) and base_dir:
        value = os.path.join(base_dir, value)
    return os.path.normpath(value)


def _parse_tasks(value):
    if value is None:
        return tuple(TaskMapping(**t) for t in config.DEFAULT_TASKS)
    if not isinstance(value, list):
        logging.warning("'tasks' in the configuration is not a list, using the default tasks.")
        return tuple(TaskMapping(**t) for t in config.DEFAULT_TASKS)

    tasks = []
    for entry in value:
        if not isinstance(entry, dict):
            logging.warning(f"Ignoring invalid task entry: {entry!r}")
            continue
        source = entry.get("source")
        target = entry.get("target")
        if source not in config.TASK_SOURCES or not isinstance(target, str) or not target.strip("/\\"):
            logging.warning(f"Ignoring task with unknown source or empty target: {entry!r}")
            continue
        name = entry.get("name") or source
        tasks.append(TaskMapping(name=str(name), source=source, target=target.strip("/\\").replace("\\", "/")))
    return tuple(tasks)


def parse_configuration(data, source_file=None) -> BackupConfiguration:
    """Validate a decoded configuration document and build the run configuration."""
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration document must be a JSON object.")

    base_dir = os.path.dirname(os.path.abspath(source_file)) if source_file else None

    install_path = data.get("install_path")
    if not isinstance(install_path, str) or not install_path.strip():
        raise ConfigurationError("Missing required field 'install_path'.")
    remote_url = data.get("remote_url")
    if not isinstance(remote_url, str) or not remote_url.strip():
        raise ConfigurationError("Missing required field 'remote_url'.")

    token = data.get("access_token") or None
    if token is not None and not isinstance(token, str):
        raise ConfigurationError("'access_token' must be a string.")

    include_songs = data.get("include_songs", False)
    if include_songs is True:
        logging.warning("'include_songs' is set, but the song library is never backed up; "
                        "only its manifest is written.")
    elif not isinstance(include_songs, bool):
        logging.warning(f"Invalid value for include_songs ('{include_songs}'), using default False.")
    include_songs = False

    target_subpath = data.get("target_subpath", config.DEFAULT_TARGET_SUBPATH)
    if not isinstance(target_subpath, str) or not target_subpath.strip("/\\"):
        logging.warning(f"Invalid target_subpath ('{target_subpath}'), using default '{config.DEFAULT_TARGET_SUBPATH}'.")
        target_subpath = config.DEFAULT_TARGET_SUBPATH
    target_subpath = target_subpath.strip("/\\").replace("\\", "/")

    schedule_times = data.get("schedule_times", [])
    if isinstance(schedule_times, str):
        schedule_times = [schedule_times]
    if not isinstance(schedule_times, list) or not all(isinstance(t, str) for t in schedule_times):
        logging.warning("'schedule_times' is not a list of HH:MM strings, ignoring it.")
        schedule_times = []

    timezone_name = data.get("timezone")
    if timezone_name is not None and not isinstance(timezone_name, str):
        logging.warning(f"Invalid timezone ('{timezone_name}'), using local time.")
        timezone_name = None

    ignore_file = _optional_path(data.get("ignore_file"), "ignore_file", base_dir)
    if ignore_file is None and base_dir:
        candidate = os.path.join(base_dir, "stepstate.gitignore")
        if os.path.isfile(candidate):
            ignore_file = candidate

    def _text(key, default):
        value = data.get(key, default)
        if not isinstance(value, str) or not value.strip():
            logging.warning(f"Invalid value for {key} ('{value}'), using default '{default}'.")
            return default
        return value

    return BackupConfiguration(
        install_path=os.path.normpath(os.path.expandvars(os.path.expanduser(install_path))),
        remote_url=remote_url.strip(),
        access_token=token,
        include_dirs=_string_list(data.get("include_dirs", config.DEFAULT_INCLUDE_DIRS),
                                  "include_dirs", config.DEFAULT_INCLUDE_DIRS),
        exclude_dirs=_string_list(data.get("exclude_dirs", config.DEFAULT_EXCLUDE_DIRS),
                                  "exclude_dirs", config.DEFAULT_EXCLUDE_DIRS),
        save_path=_optional_path(data.get("save_path"), "save_path", base_dir),
        user_save_path=_optional_path(data.get("user_save_path"), "user_save_path", base_dir),
        additional_songs_path=_optional_path(data.get("additional_songs_path"), "additional_songs_path", base_dir),
        target_subpath=target_subpath,
        include_songs=include_songs,
        tasks=_parse_tasks(data.get("tasks")),
        schedule_times=tuple(schedule_times),
        timezone=timezone_name,
        ignore_file=ignore_file,
        staging_dir=_optional_path(data.get("staging_dir"), "staging_dir", base_dir),
        log_dir=_optional_path(data.get("log_dir"), "log_dir", base_dir),
        git_user_name=_text("git_user_name", config.DEFAULT_GIT_USER_NAME),
        git_user_email=_text("git_user_email", config.DEFAULT_GIT_USER_EMAIL),
        branch=_text("branch", config.DEFAULT_BRANCH),
        source_file=os.path.abspath(source_file) if source_file else None,
    )


def load_configuration(explicit_path=None, resolvers=None) -> BackupConfiguration:
    """Locate, read and validate the configuration file."""
    path = resolve_config_path(explicit_path, resolvers)
    logging.info(f"Loading configuration from '{path}'")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Configuration file '{path}' is not valid JSON: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Unable to read configuration file '{path}': {e}") from e
    return parse_configuration(data, source_file=path)


# --- Next run display ---

def _parse_hhmm(value):
    try:
        hours, minutes = value.strip().split(":")
        hours, minutes = int(hours), int(minutes)
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours, minutes


def next_run_display(schedule_times, timezone_name=None, now=None):
    """
    Format the next scheduled run for display.

    Only daily HH:MM entries are understood; deciding whether it is time to
    run belongs to the external scheduler.
    """
    tz = None
    if timezone_name:
        try:
            tz = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError):
            logging.warning(f"Unknown timezone '{timezone_name}', using local time for the next run display.")

    if now is None:
        now = datetime.now(tz) if tz else datetime.now().astimezone()
    elif tz is not None:
        now = now.astimezone(tz)

    candidates = []
    for entry in schedule_times or ():
        parsed = _parse_hhmm(entry)
        if parsed is None:
            logging.warning(f"Ignoring invalid schedule time '{entry}'")
            continue
        run_at = now.replace(hour=parsed[0], minute=parsed[1], second=0, microsecond=0)
        if run_at <= now:
            run_at += timedelta(days=1)
        candidates.append(run_at)

    if not candidates:
        return "not scheduled"
    next_run = min(candidates)
    return f"{next_run.strftime('%Y-%m-%d %H:%M')} {next_run.tzname() or ''}".strip()
