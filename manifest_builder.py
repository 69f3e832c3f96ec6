# manifest_builder.py
# -*- coding: utf-8 -*-
"""
Filenames-only listing of the song library.

The songs themselves are far too large for the remote, so only their names
are published, as a markdown tree: folders first (bold), then files, each
group sorted, two spaces of indentation per level.
"""

import logging
import os
import re
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

MANIFEST_TITLE = "# Song library manifest"
TIMESTAMP_PREFIX = "_Generated on "
TIMESTAMP_RE = re.compile(r"^_Generated on [^_]*_$")
NOT_PRESENT = "_not present_"
INDENT = "  "


def _list_dir(path: str) -> Tuple[List[Tuple[str, bool]], List[str]]:
    """Return (folders, files) of a directory; folders as (name, is_link)."""
    folders, files = [], []
    try:
        with os.scandir(path) as it:
            for entry in it:
                try:
                    if entry.is_dir(follow_symlinks=True):
                        folders.append((entry.name, entry.is_symlink()))
                    else:
                        files.append(entry.name)
                except OSError:
                    files.append(entry.name)
    except OSError as e:
        logging.warning(f"Unable to list '{path}' for the manifest: {e}")
    folders.sort()
    files.sort()
    return folders, files


def _tree_lines(path: str, depth: int, out: List[str]) -> None:
    folders, files = _list_dir(path)
    pad = INDENT * depth
    for name, is_link in folders:
        out.append(f"{pad}- **{name}**")
        if not is_link:
            _tree_lines(os.path.join(path, name), depth + 1, out)
    for name in files:
        out.append(f"{pad}- {name}")


def build_manifest(root_path: Optional[str]) -> List[str]:
    """
    List one song root as markdown lines.

    A missing root gives a single "not present" placeholder line. Linked
    folders are listed but not descended into.
    """
    if not root_path or not os.path.isdir(root_path):
        return [NOT_PRESENT]
    lines: List[str] = []
    _tree_lines(root_path, 0, lines)
    return lines


def render_manifest(roots: Iterable[Tuple[str, Optional[str]]], generated_at: Optional[datetime] = None) -> str:
    """Render the whole manifest document for the (label, path) song roots."""
    generated_at = generated_at or datetime.now()
    lines = [
        MANIFEST_TITLE,
        "",
        f"{TIMESTAMP_PREFIX}{generated_at.strftime('%Y-%m-%d %H:%M:%S')}_",
    ]
    for label, path in roots:
        lines.extend(["", f"## {label}", ""])
        lines.extend(build_manifest(path))
    return "\n".join(lines) + "\n"


def manifest_body(text: str) -> str:
    """Manifest text without its generated-on line, for change detection."""
    return "\n".join(line for line in text.splitlines() if not TIMESTAMP_RE.match(line.strip()))


def write_manifest(manifest_path: str, roots, generated_at: Optional[datetime] = None) -> bool:
    """
    Write the manifest unless the existing file only differs by its timestamp.

    Returns:
        True if the file was (re)written, False if the listing is unchanged.
    """
    text = render_manifest(roots, generated_at)
    if os.path.isfile(manifest_path):
        try:
            with open(manifest_path, "r", encoding="utf-8") as f:
                existing = f.read()
        except (OSError, UnicodeDecodeError) as e:
            logging.warning(f"Unable to read existing manifest '{manifest_path}': {e}")
            existing = None
        if existing is not None and manifest_body(existing) == manifest_body(text):
            logging.info("Song library unchanged, keeping the existing manifest.")
            return False

    os.makedirs(os.path.dirname(manifest_path), exist_ok=True)
    with open(manifest_path, "w", encoding="utf-8", newline="\n") as f:
        f.write(text)
    logging.info(f"Manifest written: {manifest_path}")
    return True
