# config.py
import os
import logging
import platform


# --- Application name (used for the app data folder) ---
APP_NAME = "StepState"
APP_VERSION = "1.0.0"

# --- Find/create the app data folder ---
def get_app_data_folder():
    """Return the app data folder (%LOCALAPPDATA% on Windows, Application Support on macOS,
       XDG data home on Linux) and create it if missing. Falls back to the current folder."""
    system = platform.system()
    base_path = None

    if system == "Windows":
        base_path = os.getenv('LOCALAPPDATA')
    elif system == "Darwin":
        base_path = os.path.expanduser('~/Library/Application Support')
    else:
        base_path = os.getenv('XDG_DATA_HOME', os.path.expanduser('~/.local/share'))

    if not base_path:
        logging.error("Unable to determine the standard user data folder. Using the current folder as fallback.")
        app_folder = os.path.abspath(APP_NAME)
    else:
        app_folder = os.path.join(base_path, APP_NAME)

    if not os.path.exists(app_folder):
        try:
            os.makedirs(app_folder, exist_ok=True)
            logging.info(f"Created application data folder: {app_folder}")
        except OSError as e:
            # load/save functions report the real error later
            logging.error(f"Unable to create data folder {app_folder}: {e}.")

    return app_folder


# --- Configuration file ---
CONFIG_FILENAME = "stepstate_config.json"
CONFIG_ENV_VAR = "STEPSTATE_CONFIG"

# Well-known install roots searched (in order) for a config file next to the game
WELL_KNOWN_INSTALL_ROOTS = [
    r"C:\Games\ITGmania",
    r"C:\Program Files\ITGmania",
    r"C:\Games\StepMania 5",
    os.path.expanduser("~/ITGmania"),
    os.path.expanduser("~/.itgmania"),
    "/opt/itgmania",
]

# --- Size ceiling ---
# Files strictly larger than this are never pushed (remote host limit).
MAX_FILE_BYTES = 100 * 1024 * 1024

# --- Song library (never backed up, only listed in the manifest) ---
SONGS_DIR_NAME = "Songs"
ADDITIONAL_SONGS_DIR_NAME = "AdditionalSongs"
ALWAYS_EXCLUDED_DIRS = frozenset({SONGS_DIR_NAME, ADDITIONAL_SONGS_DIR_NAME})

# Install subdirectories backed up by default
DEFAULT_INCLUDE_DIRS = [
    "Announcers",
    "BGAnimations",
    "BackgroundEffects",
    "BackgroundTransitions",
    "Characters",
    "Courses",
    "Data",
    "NoteSkins",
    "Scripts",
    "Themes",
]

# Directory names dropped everywhere (in addition to the song library)
DEFAULT_EXCLUDE_DIRS = [
    "Cache",
    "Logs",
    "Packages",
]

# --- Layout inside the remote repository ---
DEFAULT_TARGET_SUBPATH = "ITGmania"
MANIFEST_FILENAME = "SongsManifest.md"
DIGESTS_DIRNAME = "digests"
README_FILENAME = "README.md"
GITIGNORE_FILENAME = ".gitignore"

# Source roles a task can map to a target subfolder
TASK_SOURCES = ("install", "save", "user_save")
DEFAULT_TASKS = [
    {"name": "Install files", "source": "install", "target": "Install"},
    {"name": "Portable save data", "source": "save", "target": "Save"},
    {"name": "User save data", "source": "user_save", "target": "UserSave"},
]

# --- Digest history ---
DIGEST_WINDOW = 30

# --- Git ---
DEFAULT_BRANCH = "main"
DEFAULT_GIT_USER_NAME = "StepState Backup"
DEFAULT_GIT_USER_EMAIL = "stepstate@localhost"
STAGING_DIRNAME = "staging"
LOGS_DIRNAME = "logs"


def default_user_save_path():
    """Per-user save folder used by ITGmania when not running portable."""
    system = platform.system()
    if system == "Windows":
        return os.path.join(os.getenv('APPDATA', os.path.expanduser('~')), "ITGmania", "Save")
    if system == "Darwin":
        return os.path.expanduser("~/Library/Preferences/ITGmania")
    return os.path.expanduser("~/.itgmania/Save")
