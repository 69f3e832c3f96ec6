# digest_utils/digest_writer.py
"""
Per-run digests and the rolling README.

Each run with changes writes one markdown digest into `digests/`. The
digests are also the history store: the README is recomputed from the
window of the most recent files by parsing them back, so a digest must
round-trip through render_digest/parse_digest unchanged.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import config
from digest_utils.pack_changes import PackChangeSet, net_changes
from utils import format_duration

log = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
FILENAME_FORMAT = "%Y-%m-%d_%H%M%S"
DIGEST_TITLE = "# Backup digest "

SECTION_SCORES = "New scores"
SECTION_PLAYTIME = "Play time"
SECTION_ADDED = "Songs added"
SECTION_REMOVED = "Songs removed"
SECTION_FILES = "Changed files"

_FILENAME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2}_\d{6})(?:_(\d+))?\.md$")
_PLAYTIME_RE = re.compile(r"^\*\*(?P<player>.+)\*\* played .* \((?P<seconds>\d+)s\)$")


@dataclass
class DigestEntry:
    timestamp: datetime
    scores: List[str] = field(default_factory=list)
    playtime: Dict[str, int] = field(default_factory=dict)
    added: PackChangeSet = field(default_factory=PackChangeSet)
    removed: PackChangeSet = field(default_factory=PackChangeSet)
    changed_files: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.scores or self.playtime or self.changed_files
                    or not self.added.is_empty() or not self.removed.is_empty())


# --- Rendering ---

def _render_pack_section(lines: List[str], change_set: PackChangeSet, level: str) -> None:
    for pack in change_set.packs():
        lines.extend([f"{level} {pack}", ""])
        lines.extend(f"- {item}" for item in sorted(change_set.items(pack)))
        lines.append("")


def render_body(entry: DigestEntry, level: str = "##") -> List[str]:
    """Digest sections without the title; `level` is the section heading marker."""
    sub = level + "#"
    lines: List[str] = []
    if entry.scores:
        lines.extend([f"{level} {SECTION_SCORES}", ""])
        lines.extend(f"- {s}" for s in entry.scores)
        lines.append("")
    if entry.playtime:
        lines.extend([f"{level} {SECTION_PLAYTIME}", ""])
        for player in sorted(entry.playtime):
            seconds = entry.playtime[player]
            lines.append(f"- **{player}** played {format_duration(seconds)} ({seconds}s)")
        lines.append("")
    if not entry.added.is_empty():
        lines.extend([f"{level} {SECTION_ADDED}", ""])
        _render_pack_section(lines, entry.added, sub)
    if not entry.removed.is_empty():
        lines.extend([f"{level} {SECTION_REMOVED}", ""])
        _render_pack_section(lines, entry.removed, sub)
    if entry.changed_files:
        lines.extend([f"{level} {SECTION_FILES}", ""])
        lines.extend(f"- {f}" for f in entry.changed_files)
        lines.append("")
    return lines


def render_digest(entry: DigestEntry) -> str:
    lines = [f"{DIGEST_TITLE}{entry.timestamp.strftime(TIMESTAMP_FORMAT)}", ""]
    body = render_body(entry)
    lines.extend(body if body else ["_No changes._", ""])
    return "\n".join(lines).rstrip("\n") + "\n"


def narration_line(path: str, explanation: str) -> str:
    return f"`{path}`: {explanation}"


# --- Parsing ---

def _timestamp_from_filename(filename: Optional[str]) -> Optional[datetime]:
    if not filename:
        return None
    match = _FILENAME_RE.match(os.path.basename(filename))
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), FILENAME_FORMAT)
    except ValueError:
        return None


def parse_digest(text: str, filename: Optional[str] = None) -> Optional[DigestEntry]:
    """
    Rebuild a DigestEntry from rendered digest markdown.

    Unknown or malformed lines are ignored. Returns None when no timestamp
    can be found in the title or the file name.
    """
    timestamp = None
    section = None
    pack = None
    scores, changed_files = [], []
    playtime: Dict[str, int] = {}
    added, removed = PackChangeSet(), PackChangeSet()

    for raw in text.splitlines():
        line = raw.rstrip()
        if line.startswith(DIGEST_TITLE):
            try:
                timestamp = datetime.strptime(line[len(DIGEST_TITLE):].strip(), TIMESTAMP_FORMAT)
            except ValueError:
                log.debug(f"Unreadable digest title: {line!r}")
            continue
        if line.startswith("### "):
            pack = line[4:].strip() or None
            continue
        if line.startswith("## "):
            section = line[3:].strip()
            pack = None
            continue
        if not line.startswith("- "):
            continue
        value = line[2:].strip()
        if not value:
            continue

        if section == SECTION_SCORES:
            scores.append(value)
        elif section == SECTION_PLAYTIME:
            match = _PLAYTIME_RE.match(value)
            if match:
                player = match.group("player")
                playtime[player] = playtime.get(player, 0) + int(match.group("seconds"))
        elif section in (SECTION_ADDED, SECTION_REMOVED) and pack:
            (added if section == SECTION_ADDED else removed).add(pack, value)
        elif section == SECTION_FILES:
            changed_files.append(value)

    timestamp = timestamp or _timestamp_from_filename(filename)
    if timestamp is None:
        return None
    return DigestEntry(timestamp, scores, playtime, added, removed, changed_files)


# --- Files and window ---

def digest_filename(timestamp: datetime, sequence: int = 1) -> str:
    """`YYYY-MM-DD_HHMMSS.md`; later digests from the same second get `_2`, `_3`, ..."""
    suffix = f"_{sequence}" if sequence > 1 else ""
    return f"{timestamp.strftime(FILENAME_FORMAT)}{suffix}.md"


def _filename_order(name: str) -> Tuple[str, int]:
    match = _FILENAME_RE.match(name)
    return match.group(1), int(match.group(2) or 1)


def list_digest_files(digest_dir: str) -> List[str]:
    """Digest file names in the folder, oldest first."""
    if not os.path.isdir(digest_dir):
        return []
    return sorted((name for name in os.listdir(digest_dir) if _FILENAME_RE.match(name)), key=_filename_order)


def write_digest(digest_dir: str, entry: DigestEntry) -> str:
    """Write a new digest file; an existing digest from the same second is never overwritten."""
    os.makedirs(digest_dir, exist_ok=True)
    sequence = 1
    path = os.path.join(digest_dir, digest_filename(entry.timestamp))
    while os.path.exists(path):
        sequence += 1
        path = os.path.join(digest_dir, digest_filename(entry.timestamp, sequence))
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(render_digest(entry))
    log.info(f"Digest written: {path}")
    return path


def prune_window(digest_dir: str, keep: int = config.DIGEST_WINDOW) -> List[str]:
    """Delete all but the `keep` most recent digests. Returns the removed file names."""
    names = list_digest_files(digest_dir)
    excess = names[:-keep] if keep > 0 else names
    removed = []
    for name in excess:
        try:
            os.remove(os.path.join(digest_dir, name))
            removed.append(name)
        except OSError as e:
            log.warning(f"Unable to delete old digest '{name}': {e}")
    if removed:
        log.info(f"Removed {len(removed)} digest(s) outside the {keep}-entry window.")
    return removed


def load_window(digest_dir: str, keep: int = config.DIGEST_WINDOW) -> List[DigestEntry]:
    """Parse the most recent digests, oldest first, skipping unreadable files."""
    entries = []
    for name in list_digest_files(digest_dir)[-keep:]:
        path = os.path.join(digest_dir, name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            log.warning(f"Skipping unreadable digest '{name}': {e}")
            continue
        entry = parse_digest(text, name)
        if entry is None:
            log.warning(f"Skipping digest without a timestamp: {name}")
            continue
        entries.append(entry)
    entries.sort(key=lambda e: e.timestamp)
    return entries


# --- README ---

def aggregate_playtime(entries: List[DigestEntry]) -> Dict[str, int]:
    totals: Dict[str, int] = {}
    for entry in entries:
        for player, seconds in entry.playtime.items():
            totals[player] = totals.get(player, 0) + seconds
    return totals


def aggregate_pack_changes(entries: List[DigestEntry]) -> Tuple[PackChangeSet, PackChangeSet]:
    return net_changes((e.added for e in entries), (e.removed for e in entries))


def render_readme(entries: List[DigestEntry], target_subpath: str = config.DEFAULT_TARGET_SUBPATH) -> str:
    """Rolling summary of the digest window; a pure function of the entries."""
    lines = [
        f"# {target_subpath} backup",
        "",
        "Automated one-way backup of the game configuration and save data.",
        f"The song library is not stored here; `{target_subpath}/{config.MANIFEST_FILENAME}` lists it.",
        "",
    ]
    if not entries:
        lines.extend(["_No changes recorded yet._", ""])
        return "\n".join(lines).rstrip("\n") + "\n"

    lines.extend([
        f"Summary of the last {len(entries)} backup(s) with changes "
        f"(up to {config.DIGEST_WINDOW} are kept in `{config.DIGESTS_DIRNAME}/`).",
        "",
    ])

    totals = aggregate_playtime(entries)
    if totals:
        lines.extend(["## Play time", "", "| Player | Play time |", "|---|---|"])
        for player in sorted(totals):
            lines.append(f"| {player} | {format_duration(totals[player])} |")
        lines.append("")

    net_added, net_removed = aggregate_pack_changes(entries)
    if not net_added.is_empty() or not net_removed.is_empty():
        lines.extend(["## Song library changes", ""])
        if not net_added.is_empty():
            lines.extend(["### Added", ""])
            _render_pack_section(lines, net_added, "####")
        if not net_removed.is_empty():
            lines.extend(["### Removed", ""])
            _render_pack_section(lines, net_removed, "####")

    lines.extend(["## History", ""])
    for entry in entries:
        lines.extend([f"### {entry.timestamp.strftime(TIMESTAMP_FORMAT)}", ""])
        body = render_body(entry, level="####")
        lines.extend(body if body else ["_No changes._", ""])
    return "\n".join(lines).rstrip("\n") + "\n"


def write_readme(path: str, entries: List[DigestEntry], target_subpath: str) -> None:
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(render_readme(entries, target_subpath))
