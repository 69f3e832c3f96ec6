"""Tests for digests, the rolling window and the README summary."""
import os
from datetime import datetime, timedelta

from digest_utils import digest_writer
from digest_utils.digest_writer import DigestEntry
from digest_utils.pack_changes import PackChangeSet


def _entry(when, **kwargs):
    return DigestEntry(timestamp=when, **kwargs)


FULL_ENTRY = _entry(
    datetime(2024, 1, 1, 10, 0, 0),
    scores=["Ann scored 95.30% on Pack/Song (dance-single Challenge) at 2024-01-01 12:00:00"],
    playtime={"Ann": 90, "Bob": 3725},
    added=PackChangeSet({"PackA": ["Song3"], "PackC": ["Song4"]}),
    removed=PackChangeSet({"PackB": ["Song2"]}),
    changed_files=["`ITGmania/Save/Preferences.ini`: Game preferences changed."],
)


def test_render_digest_sections():
    text = digest_writer.render_digest(FULL_ENTRY)
    lines = text.splitlines()
    assert lines[0] == "# Backup digest 2024-01-01 10:00:00"
    assert "- **Ann** played 1 minute 30 seconds (90s)" in lines
    assert "- **Bob** played 1 hour 2 minutes 5 seconds (3725s)" in lines
    assert lines.index("## Songs added") < lines.index("### PackA") < lines.index("- Song3")
    assert text.endswith("\n") and not text.endswith("\n\n")


def test_digest_parses_back():
    parsed = digest_writer.parse_digest(digest_writer.render_digest(FULL_ENTRY))
    assert parsed.timestamp == FULL_ENTRY.timestamp
    assert parsed.scores == FULL_ENTRY.scores
    assert parsed.playtime == FULL_ENTRY.playtime
    assert parsed.added == FULL_ENTRY.added
    assert parsed.removed == FULL_ENTRY.removed
    assert parsed.changed_files == FULL_ENTRY.changed_files


def test_parse_falls_back_to_filename_timestamp():
    parsed = digest_writer.parse_digest("## Changed files\n\n- `a`: File changed.\n", "2024-02-03_040506.md")
    assert parsed.timestamp == datetime(2024, 2, 3, 4, 5, 6)
    assert digest_writer.parse_digest("no title here") is None


def test_window_keeps_most_recent(tmp_path):
    start = datetime(2024, 1, 1)
    for i in range(32):
        digest_writer.write_digest(str(tmp_path), _entry(start + timedelta(hours=i), changed_files=[f"`f{i}`: x"]))

    removed = digest_writer.prune_window(str(tmp_path), keep=30)
    assert removed == ["2024-01-01_000000.md", "2024-01-01_010000.md"]
    assert len(digest_writer.list_digest_files(str(tmp_path))) == 30

    entries = digest_writer.load_window(str(tmp_path))
    assert entries[0].timestamp == start + timedelta(hours=2)
    assert entries[-1].timestamp == start + timedelta(hours=31)


def test_load_window_ignores_other_files(tmp_path):
    digest_writer.write_digest(str(tmp_path), _entry(datetime(2024, 1, 1), changed_files=["`a`: x"]))
    with open(os.path.join(str(tmp_path), "notes.md"), "w", encoding="utf-8") as f:
        f.write("not a digest")
    assert len(digest_writer.load_window(str(tmp_path))) == 1


def test_same_second_digests_are_kept_in_order(tmp_path):
    when = datetime(2024, 1, 1, 10, 0, 0)
    paths = [digest_writer.write_digest(str(tmp_path), _entry(when, changed_files=[f"`f{i}`: x"]))
             for i in range(11)]

    assert [os.path.basename(p) for p in paths[:3]] == [
        "2024-01-01_100000.md", "2024-01-01_100000_2.md", "2024-01-01_100000_3.md"]
    names = digest_writer.list_digest_files(str(tmp_path))
    assert names[-3:] == ["2024-01-01_100000_9.md", "2024-01-01_100000_10.md", "2024-01-01_100000_11.md"]
    entries = digest_writer.load_window(str(tmp_path))
    assert [e.changed_files for e in entries] == [[f"`f{i}`: x"] for i in range(11)]


def test_readme_aggregates_window():
    first = _entry(datetime(2024, 1, 1), playtime={"Ann": 60},
                   added=PackChangeSet({"PackA": ["Song1", "Song2"]}))
    second = _entry(datetime(2024, 1, 2), playtime={"Ann": 30},
                    removed=PackChangeSet({"PackA": ["Song1"]}))
    text = digest_writer.render_readme([first, second], "ITGmania")

    assert "| Ann | 1 minute 30 seconds |" in text
    assert "### Added" in text and "- Song2" in text.split("## History")[0]
    assert "### Removed" not in text
    history = text.split("## History")[1]
    assert history.index("### 2024-01-01 00:00:00") < history.index("### 2024-01-02 00:00:00")


def test_readme_is_deterministic_and_handles_no_entries():
    entries = [FULL_ENTRY]
    assert digest_writer.render_readme(entries, "ITGmania") == digest_writer.render_readme(entries, "ITGmania")
    assert "_No changes recorded yet._" in digest_writer.render_readme([], "ITGmania")


def test_entry_emptiness():
    assert _entry(datetime(2024, 1, 1)).is_empty()
    assert not _entry(datetime(2024, 1, 1), added=PackChangeSet({"P": ["s"]})).is_empty()
    assert "_No changes._" in digest_writer.render_digest(_entry(datetime(2024, 1, 1)))
