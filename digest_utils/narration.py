# digest_utils/narration.py
"""One-line explanations for the files changed by a backup."""

from fnmatch import fnmatchcase
from typing import Dict, List, Optional, Tuple

import config
from digest_utils.pack_changes import is_timestamp_only_diff

GENERIC_EXPLANATION = "File changed."

# First match wins; '*' also matches '/'.
NARRATION_RULES: List[Tuple[str, str]] = [
    ("*/LocalProfiles/*/Stats.xml", "Player statistics and high scores updated."),
    ("*/Stats.xml", "Machine statistics and high scores updated."),
    ("*/Editable.ini", "Profile name or settings edited."),
    ("*/Preferences.ini", "Game preferences changed."),
    ("*/Static.ini", "Static preference overrides changed."),
    ("*/Keymaps.ini", "Controller or keyboard mappings changed."),
    ("*/Screenshots/*", "Screenshot added or removed."),
    ("*/Upload/*", "Score upload data changed."),
    ("*/Themes/*", "Theme files changed."),
    ("*/NoteSkins/*", "Noteskin files changed."),
    ("*/Courses/*", "Course definitions changed."),
    ("*/Announcers/*", "Announcer files changed."),
    (f"*/{config.MANIFEST_FILENAME}", "Song library listing changed (songs added or removed)."),
    (f"{config.DIGESTS_DIRNAME}/*", "Backup digest recorded."),
    (config.README_FILENAME, "Rolling backup summary refreshed."),
    (config.GITIGNORE_FILENAME, "Ignore rules updated."),
]


def explain(path: str, rules: Optional[List[Tuple[str, str]]] = None) -> str:
    normalized = path.replace("\\", "/")
    for pattern, explanation in (rules if rules is not None else NARRATION_RULES):
        if fnmatchcase(normalized, pattern):
            return explanation
    return GENERIC_EXPLANATION


def narrate_changes(changed_paths: List[str], diffs: Optional[Dict[str, str]] = None,
                    rules=None) -> List[Tuple[str, str]]:
    """
    Pair each changed path with its explanation.

    A manifest whose diff only touches the generated-on line is left out.
    """
    diffs = diffs or {}
    narrated = []
    for path in changed_paths:
        normalized = path.replace("\\", "/")
        if normalized.endswith("/" + config.MANIFEST_FILENAME) or normalized == config.MANIFEST_FILENAME:
            diff_text = diffs.get(path)
            if diff_text is not None and is_timestamp_only_diff(diff_text):
                continue
        narrated.append((normalized, explain(normalized, rules)))
    return narrated
