# digest_utils/pack_changes.py
"""
Song pack changes derived from diffs of the song library manifest.

A pack is a top-level folder of a song root, an item is a song folder
inside it. The manifest lists them as `- **Pack**` and `  - **Song**`.
"""

import logging
import re
from typing import Dict, Iterable, Iterator, Optional, Set, Tuple

from digest_utils.diff_text import ADDED, CONTEXT, REMOVED, changed_lines, iter_diff_lines
from manifest_builder import NOT_PRESENT, TIMESTAMP_RE

log = logging.getLogger(__name__)

_ENTRY_RE = re.compile(r"^(?P<indent> *)- (?:\*\*(?P<folder>.+)\*\*|(?P<file>.+))$")


class PackChangeSet:
    """Mapping of pack name -> set of item names."""

    def __init__(self, packs: Optional[Dict[str, Iterable[str]]] = None):
        self._packs: Dict[str, Set[str]] = {}
        for pack, items in (packs or {}).items():
            for item in items:
                self.add(pack, item)

    def add(self, pack: str, item: str) -> None:
        self._packs.setdefault(pack, set()).add(item)

    def items(self, pack: str) -> Set[str]:
        return set(self._packs.get(pack, ()))

    def packs(self):
        return sorted(p for p, items in self._packs.items() if items)

    def pairs(self) -> Iterator[Tuple[str, str]]:
        """(pack, item) pairs, sorted."""
        for pack in self.packs():
            for item in sorted(self._packs[pack]):
                yield pack, item

    def is_empty(self) -> bool:
        return not any(self._packs.values())

    def merge(self, other: "PackChangeSet") -> "PackChangeSet":
        merged = PackChangeSet(self.to_dict())
        for pack, item in other.pairs():
            merged.add(pack, item)
        return merged

    def subtract(self, other: "PackChangeSet") -> "PackChangeSet":
        result = PackChangeSet()
        for pack, item in self.pairs():
            if item not in other._packs.get(pack, ()):
                result.add(pack, item)
        return result

    def to_dict(self) -> Dict[str, list]:
        return {pack: sorted(self._packs[pack]) for pack in self.packs()}

    def __len__(self):
        return sum(len(items) for items in self._packs.values())

    def __eq__(self, other):
        if not isinstance(other, PackChangeSet):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"PackChangeSet({self.to_dict()!r})"


def net_changes(added_sets: Iterable[PackChangeSet],
                removed_sets: Iterable[PackChangeSet]) -> Tuple[PackChangeSet, PackChangeSet]:
    """
    Net added/removed items over several runs.

    An item present in both the combined added and the combined removed set
    cancels out of both, whatever the order of the runs.
    """
    all_added = PackChangeSet()
    for change_set in added_sets:
        all_added = all_added.merge(change_set)
    all_removed = PackChangeSet()
    for change_set in removed_sets:
        all_removed = all_removed.merge(change_set)
    return all_added.subtract(all_removed), all_removed.subtract(all_added)


def is_timestamp_only_diff(diff_text: str) -> bool:
    """True when the only changed lines of a manifest diff are generated-on timestamps."""
    saw_change = False
    for _polarity, content in changed_lines(diff_text):
        if not content.strip():
            continue
        if not TIMESTAMP_RE.match(content.strip()):
            return False
        saw_change = True
    return saw_change


def extract_pack_changes(diff_text: str) -> Tuple[PackChangeSet, PackChangeSet]:
    """
    Added and removed songs per pack from a manifest diff.

    The current pack is tracked separately for the new side (context and
    added lines) and the old side (context and removed lines). Headers, the
    timestamp line, placeholders and file lines are ignored.
    """
    added, removed = PackChangeSet(), PackChangeSet()
    if is_timestamp_only_diff(diff_text):
        return added, removed

    current = {ADDED: None, REMOVED: None}
    for polarity, content in iter_diff_lines(diff_text):
        stripped = content.strip()
        if not stripped or stripped == NOT_PRESENT or TIMESTAMP_RE.match(stripped):
            continue
        if stripped.startswith("#"):
            # new song root section: packs do not carry over
            if polarity == CONTEXT:
                current[ADDED] = current[REMOVED] = None
            else:
                current[polarity] = None
            continue

        match = _ENTRY_RE.match(content)
        if not match or not match.group("folder"):
            continue
        depth = len(match.group("indent")) // 2
        name = match.group("folder")

        if depth == 0:
            if polarity == CONTEXT:
                current[ADDED] = current[REMOVED] = name
            else:
                current[polarity] = name
        elif depth == 1 and polarity != CONTEXT:
            pack = current[polarity]
            if pack is None:
                log.debug(f"Song '{name}' has no pack in the diff context, ignored")
                continue
            (added if polarity == ADDED else removed).add(pack, name)

    return added, removed
