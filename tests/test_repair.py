"""Tests for digest repair (regrouping songs under their actual pack)."""
import os
from datetime import datetime

from digest_utils import digest_writer, repair
from digest_utils.digest_writer import DigestEntry
from digest_utils.pack_changes import PackChangeSet
from conftest import write_file


def test_lookup_from_song_roots(tmp_path):
    write_file(str(tmp_path / "Songs" / "PackA" / "Song1" / "a.sm"), "")
    write_file(str(tmp_path / "Extra" / "PackZ" / "Song1" / "a.sm"), "")
    write_file(str(tmp_path / "Extra" / "PackZ" / "Song9" / "a.sm"), "")
    lookup = repair.build_item_lookup([
        ("Songs", str(tmp_path / "Songs")),
        ("AdditionalSongs", str(tmp_path / "Extra")),
        ("Missing", str(tmp_path / "nope")),
    ])
    assert lookup == {"Song1": "PackA", "Song9": "PackZ"}


def test_fuzzy_lookup_threshold():
    lookup = {"Song One": "PackA"}
    assert repair.lookup_pack("Song One", lookup) == "PackA"
    assert repair.lookup_pack("Song One!", lookup) == "PackA"
    assert repair.lookup_pack("Completely different", lookup) is None
    assert repair.lookup_pack("Song One", {}) is None


def test_repair_regroups_and_is_idempotent(tmp_path):
    entry = DigestEntry(
        timestamp=datetime(2024, 1, 1, 10, 0, 0),
        added=PackChangeSet({"WrongPack": ["Song1", "Unknown Song"]}),
        changed_files=["`ITGmania/SongsManifest.md`: Song library listing changed (songs added or removed)."],
    )
    path = digest_writer.write_digest(str(tmp_path), entry)
    lookup = {"Song1": "PackA"}

    assert repair.repair_digests(str(tmp_path), lookup) == [os.path.basename(path)]
    with open(path, encoding="utf-8") as f:
        repaired = digest_writer.parse_digest(f.read())
    assert repaired.added.to_dict() == {"PackA": ["Song1"], "WrongPack": ["Unknown Song"]}
    assert repaired.changed_files == entry.changed_files

    assert repair.repair_digests(str(tmp_path), lookup) == []


def test_repair_skips_unreadable_digest(tmp_path):
    write_file(str(tmp_path / "2024-01-01_100000.md"), b"\xff\xfe\x00bad", binary=True)
    assert repair.repair_digests(str(tmp_path), {"Song1": "PackA"}) == []
