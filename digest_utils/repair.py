# digest_utils/repair.py
"""
Repair of previously written digests.

Older digests may list songs under the wrong pack (for example when the
pack context was missing from a diff). Repair re-reads the rendered
markdown, regroups every song under the pack an authoritative lookup
assigns it, and rewrites the file only when the result differs, so
running it again on repaired files changes nothing.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from thefuzz import fuzz, process

from digest_utils.digest_writer import list_digest_files, parse_digest, render_digest
from digest_utils.pack_changes import PackChangeSet

log = logging.getLogger(__name__)

FUZZY_MATCH_THRESHOLD = 90


def build_item_lookup(song_roots: Iterable[Tuple[str, Optional[str]]]) -> Dict[str, str]:
    """
    Map song folder name -> pack name from the song library on disk.

    The first root wins when a song name appears in several packs.
    """
    lookup: Dict[str, str] = {}
    for _label, root in song_roots:
        if not root or not os.path.isdir(root):
            continue
        try:
            packs = sorted(e.name for e in os.scandir(root) if e.is_dir())
        except OSError as e:
            log.warning(f"Unable to list song root '{root}': {e}")
            continue
        for pack in packs:
            try:
                songs = sorted(e.name for e in os.scandir(os.path.join(root, pack)) if e.is_dir())
            except OSError as e:
                log.warning(f"Unable to list pack '{pack}': {e}")
                continue
            for song in songs:
                lookup.setdefault(song, pack)
    log.info(f"Song lookup built: {len(lookup)} song(s)")
    return lookup


def lookup_pack(item: str, item_to_pack: Dict[str, str]) -> Optional[str]:
    """Exact lookup first, then the closest name above the fuzzy threshold."""
    if item in item_to_pack:
        return item_to_pack[item]
    if not item_to_pack:
        return None
    match = process.extractOne(item, list(item_to_pack.keys()), scorer=fuzz.ratio,
                               score_cutoff=FUZZY_MATCH_THRESHOLD)
    if match is None:
        return None
    log.debug(f"Fuzzy match for '{item}': '{match[0]}' ({match[1]})")
    return item_to_pack[match[0]]


def regroup(change_set: PackChangeSet, item_to_pack: Dict[str, str]) -> PackChangeSet:
    """Move every item under the pack the lookup assigns it (unknown items stay put)."""
    regrouped = PackChangeSet()
    for pack, item in change_set.pairs():
        regrouped.add(lookup_pack(item, item_to_pack) or pack, item)
    return regrouped


def repair_digest_text(text: str, item_to_pack: Dict[str, str], filename: Optional[str] = None) -> Optional[str]:
    """Return the repaired digest text, or None if the text is not a readable digest."""
    entry = parse_digest(text, filename)
    if entry is None:
        return None
    entry.added = regroup(entry.added, item_to_pack)
    entry.removed = regroup(entry.removed, item_to_pack)
    return render_digest(entry)


def repair_digests(digest_dir: str, item_to_pack: Dict[str, str]) -> List[str]:
    """
    Repair every digest in the folder.

    Returns:
        Names of the files that were rewritten.
    """
    changed = []
    for name in list_digest_files(digest_dir):
        path = os.path.join(digest_dir, name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            log.warning(f"Skipping unreadable digest '{name}': {e}")
            continue
        repaired = repair_digest_text(text, item_to_pack, name)
        if repaired is None:
            log.warning(f"Skipping digest without a timestamp: {name}")
            continue
        if repaired != text:
            with open(path, "w", encoding="utf-8", newline="\n") as f:
                f.write(repaired)
            changed.append(name)
            log.info(f"Repaired digest: {name}")
    log.info(f"Digest repair finished: {len(changed)} file(s) rewritten.")
    return changed
