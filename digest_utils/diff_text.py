# digest_utils/diff_text.py
"""Line-level access to unified diff text produced by `git diff`."""

from typing import Iterator, Tuple

ADDED = "+"
REMOVED = "-"
CONTEXT = " "

_HEADER_PREFIXES = ("diff --git ", "index ", "--- ", "+++ ", "@@", "new file mode", "deleted file mode",
                    "old mode", "new mode", "similarity index", "rename from", "rename to",
                    "Binary files ", "\\ No newline")


def iter_diff_lines(diff_text: str) -> Iterator[Tuple[str, str]]:
    """
    Yield (polarity, content) for every body line of a unified diff.

    Polarity is "+", "-" or " "; headers and hunk markers are skipped.
    """
    for line in (diff_text or "").splitlines():
        if not line or line.startswith(_HEADER_PREFIXES):
            continue
        polarity = line[0]
        if polarity in (ADDED, REMOVED, CONTEXT):
            yield polarity, line[1:]


def changed_lines(diff_text: str) -> Iterator[Tuple[str, str]]:
    """Only the added and removed lines."""
    for polarity, content in iter_diff_lines(diff_text):
        if polarity != CONTEXT:
            yield polarity, content
