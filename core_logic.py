# core_logic.py
# -*- coding: utf-8 -*-
import logging
import os
import shutil
import stat
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

import config
from backup_errors import FileIOWarningKind, FileReplicationError


# --- Path & Size Filter ---

class FilterDecision(Enum):
    INCLUDE = "include"
    EXCLUDE_BY_DIRECTORY = "exclude_by_directory"
    EXCLUDE_BY_SIZE = "exclude_by_size"


def effective_excludes(configured_names: Iterable[str]) -> frozenset:
    """
    Union of the configured exclusion names and the song library folders.

    The song library is always part of the result: configuration can add
    names but never take these away.
    """
    names = {n.replace("\\", "/").strip("/") for n in configured_names if n and n.strip("/\\")}
    return frozenset(names) | config.ALWAYS_EXCLUDED_DIRS


def _split_parts(relative_path: str) -> List[str]:
    return [p for p in relative_path.replace("\\", "/").split("/") if p and p != "."]


def _dir_parts_excluded(dir_parts: List[str], exclude_dir_names: Iterable[str]) -> bool:
    """True if any excluded name (single or multi segment) appears as consecutive directory segments."""
    for name in exclude_dir_names:
        name_parts = _split_parts(name)
        if not name_parts:
            continue
        width = len(name_parts)
        for start in range(len(dir_parts) - width + 1):
            if dir_parts[start:start + width] == name_parts:
                return True
    return False


def is_excluded_directory(relative_path: str, exclude_dir_names: Iterable[str]) -> bool:
    """
    Check the directory components of a file's relative path against the exclusion names.

    The file name itself is not a folder and never matches: a file called
    `Songs` is backed up, everything under a folder called `Songs` is not.
    """
    return _dir_parts_excluded(_split_parts(relative_path)[:-1], exclude_dir_names)


def decide(relative_path: str, absolute_path: str, exclude_dir_names: Iterable[str],
           max_bytes: int = config.MAX_FILE_BYTES) -> FilterDecision:
    """
    Decide whether a single file is backed up.

    Args:
        relative_path: Path of the file relative to the source root
        absolute_path: Path used to read the file size
        exclude_dir_names: Directory names (or multi-segment prefixes) to drop
        max_bytes: Size ceiling; files strictly larger are excluded

    Returns:
        FilterDecision. A file that vanished before its size could be read is
        reported as EXCLUDE_BY_SIZE so callers skip it without failing.
    """
    if is_excluded_directory(relative_path, exclude_dir_names):
        return FilterDecision.EXCLUDE_BY_DIRECTORY
    try:
        size = os.stat(absolute_path).st_size
    except OSError:
        return FilterDecision.EXCLUDE_BY_SIZE
    if size > max_bytes:
        return FilterDecision.EXCLUDE_BY_SIZE
    return FilterDecision.INCLUDE


# --- Tree Replicator ---

@dataclass
class SkipRecord:
    path: str
    reason: str = FileIOWarningKind.SIZE
    size: Optional[int] = None
    detail: str = ""


@dataclass
class ReplicationResult:
    copied: int = 0
    skipped: List[SkipRecord] = field(default_factory=list)


def _is_link_or_junction(path: str) -> bool:
    if os.path.islink(path):
        return True
    isjunction = getattr(os.path, "isjunction", None)
    return bool(isjunction and isjunction(path))


def _copy_file(src: str, dst: str) -> None:
    os.makedirs(os.path.dirname(dst), exist_ok=True)
    if os.path.exists(dst) and not os.access(dst, os.W_OK):
        # read-only leftovers from a previous copy would block the overwrite
        os.chmod(dst, stat.S_IWRITE | stat.S_IREAD)
    shutil.copy2(src, dst)


def replicate(source_root: str, dest_root: str, exclude_dir_names: Iterable[str],
              max_bytes: int = config.MAX_FILE_BYTES) -> ReplicationResult:
    """
    Mirror the files of source_root into dest_root, applying the filter.

    Directory-rule exclusions are dropped silently; oversized files and files
    that fail to copy are returned as SkipRecords. Links and junctions are
    never followed.

    Raises:
        FileReplicationError: if dest_root cannot be created.
    """
    excludes = list(exclude_dir_names)
    result = ReplicationResult()

    try:
        os.makedirs(dest_root, exist_ok=True)
    except OSError as e:
        raise FileReplicationError(f"Destination '{dest_root}' is not accessible: {e}") from e

    if not os.path.isdir(source_root):
        logging.warning(f"Source folder not found, skipping: {source_root}")
        return result

    logging.info(f"Replicating '{source_root}' -> '{dest_root}'")

    def _walk_error(err):
        logging.warning(f"  Unable to read folder during walk: {err}")

    for current, dirnames, filenames in os.walk(source_root, topdown=True, followlinks=False, onerror=_walk_error):
        rel_dir = os.path.relpath(current, source_root)
        rel_parts = [] if rel_dir == "." else _split_parts(rel_dir)

        kept = []
        for d in sorted(dirnames):
            if _is_link_or_junction(os.path.join(current, d)):
                logging.debug(f"  Not following link: {os.path.join(current, d)}")
                continue
            if _dir_parts_excluded(rel_parts + [d], excludes):
                logging.debug(f"  Excluded folder: {'/'.join(rel_parts + [d])}")
                continue
            kept.append(d)
        dirnames[:] = kept

        for filename in sorted(filenames):
            src_file = os.path.join(current, filename)
            if _is_link_or_junction(src_file):
                logging.debug(f"  Not following link: {src_file}")
                continue
            rel_path = "/".join(rel_parts + [filename])
            decision = decide(rel_path, src_file, excludes, max_bytes)

            if decision is FilterDecision.EXCLUDE_BY_DIRECTORY:
                continue
            if decision is FilterDecision.EXCLUDE_BY_SIZE:
                if not os.path.lexists(src_file):
                    logging.debug(f"  File vanished before copy: {src_file}")
                    continue
                size = None
                try:
                    size = os.path.getsize(src_file)
                except OSError:
                    pass
                logging.warning(f"  Skipped (over {max_bytes} bytes): {src_file}")
                result.skipped.append(SkipRecord(src_file, FileIOWarningKind.SIZE, size))
                continue

            dest_file = os.path.join(dest_root, *rel_parts, filename)
            try:
                _copy_file(src_file, dest_file)
                result.copied += 1
            except FileNotFoundError:
                logging.debug(f"  File vanished during copy: {src_file}")
            except OSError as e:
                logging.error(f"  Unable to copy '{src_file}': {e}")
                result.skipped.append(SkipRecord(src_file, FileIOWarningKind.COPY_ERROR, detail=str(e)))

    logging.info(f"Replicated {result.copied} file(s) from '{source_root}', {len(result.skipped)} skipped.")
    return result


def write_skip_report(records: List[SkipRecord], report_dir: str, now: Optional[datetime] = None) -> Optional[str]:
    """Write the skipped paths as a flat list. Returns the report path, or None if nothing was skipped."""
    if not records:
        return None
    now = now or datetime.now()
    os.makedirs(report_dir, exist_ok=True)
    report_path = os.path.join(report_dir, f"skipped_files_{now.strftime('%Y-%m-%d_%H%M%S')}.txt")
    with open(report_path, "w", encoding="utf-8") as f:
        for record in records:
            f.write(record.path + "\n")
    logging.warning(f"{len(records)} file(s) were skipped. Report: {report_path}")
    return report_path
