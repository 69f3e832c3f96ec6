"""Tests for song pack change extraction and net aggregation."""
from digest_utils.pack_changes import PackChangeSet, extract_pack_changes, is_timestamp_only_diff, net_changes

HEADER = [
    "diff --git a/ITGmania/SongsManifest.md b/ITGmania/SongsManifest.md",
    "index 1111111..2222222 100644",
    "--- a/ITGmania/SongsManifest.md",
    "+++ b/ITGmania/SongsManifest.md",
    "@@ -1,14 +1,15 @@",
]


def _diff(*lines):
    return "\n".join(HEADER + list(lines)) + "\n"


MANIFEST_DIFF = _diff(
    " # Song library manifest",
    " ",
    "-_Generated on 2024-01-01 10:00:00_",
    "+_Generated on 2024-01-02 10:00:00_",
    " ",
    " ## Songs",
    " ",
    " - **PackA**",
    "   - **Song1**",
    "     - song.sm",
    "+  - **Song3**",
    "+    - song.sm",
    " - **PackB**",
    "-  - **Song2**",
    "-    - a.sm",
    "+- **PackC**",
    "+  - **Song4**",
    " ",
    " ## AdditionalSongs",
    " ",
    "-_not present_",
    "+- **Extra**",
    "+  - **Song5**",
)


def test_added_and_removed_songs_per_pack():
    added, removed = extract_pack_changes(MANIFEST_DIFF)
    assert added.to_dict() == {"Extra": ["Song5"], "PackA": ["Song3"], "PackC": ["Song4"]}
    assert removed.to_dict() == {"PackB": ["Song2"]}


def test_timestamp_only_diff_has_no_changes():
    diff = _diff(
        " # Song library manifest",
        " ",
        "-_Generated on 2024-01-01 10:00:00_",
        "+_Generated on 2024-01-02 10:00:00_",
    )
    assert is_timestamp_only_diff(diff)
    added, removed = extract_pack_changes(diff)
    assert added.is_empty() and removed.is_empty()
    assert not is_timestamp_only_diff(MANIFEST_DIFF)
    assert not is_timestamp_only_diff("")


def test_song_without_pack_context_is_ignored():
    added, removed = extract_pack_changes(_diff("+  - **Orphan**"))
    assert added.is_empty() and removed.is_empty()


def test_net_changes_cancel_and_commute():
    first = PackChangeSet({"PackA": ["Song1", "Song2"]})
    second = PackChangeSet({"PackA": ["Song1"]})

    added, removed = net_changes([first], [second])
    assert added.to_dict() == {"PackA": ["Song2"]}
    assert removed.is_empty()

    # same runs seen in the opposite order
    added_rev, removed_rev = net_changes([PackChangeSet(), first], [second, PackChangeSet()])
    assert (added_rev, removed_rev) == (added, removed)

    # idempotent under repetition
    assert net_changes([first, first], [second, second]) == (added, removed)


def test_change_set_basics():
    change_set = PackChangeSet()
    change_set.add("B", "y")
    change_set.add("A", "x")
    change_set.add("A", "x")
    assert len(change_set) == 2
    assert list(change_set.pairs()) == [("A", "x"), ("B", "y")]
    assert change_set.subtract(PackChangeSet({"A": ["x"]})).to_dict() == {"B": ["y"]}
