# digest_utils/stats_parser.py
"""
Event extraction from diffs of profile statistics files (Stats.xml).

Both extractors are tolerant: input that does not match the expected
structure simply produces no event.
"""

import logging
import posixpath
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from digest_utils.diff_text import ADDED, CONTEXT, REMOVED, iter_diff_lines
from utils import format_duration, sanitize_player_name

log = logging.getLogger(__name__)

STATS_FILENAME = "Stats.xml"
UNKNOWN_PLAYER = "Unknown player"

_SONG_OPEN_RE = re.compile(r"<(Song|Course)\s+(?:Dir|Path)\s*=\s*['\"]([^'\"]*)['\"]")
_SONG_CLOSE_RE = re.compile(r"</(Song|Course)>")
_STEPS_OPEN_RE = re.compile(r"<(Steps|Trail)\b([^>]*?)/?>")
_STEPS_CLOSE_RE = re.compile(r"</(Steps|Trail)>")
_ATTR_RE = re.compile(r"(\w+)\s*=\s*['\"]([^'\"]*)['\"]")
_SCORE_OPEN_RE = re.compile(r"<HighScore>")
_SCORE_CLOSE_RE = re.compile(r"</HighScore>")
_FIELD_RE = re.compile(r"<(Name|PercentDP|DateTime)>([^<]*)</\1>")

_TOTAL_SECONDS_RE = re.compile(r"<TotalGameplaySeconds>\s*(\d+)\s*</TotalGameplaySeconds>")
_DISPLAY_NAME_RE = re.compile(r"<DisplayName>([^<]*)</DisplayName>")
_NAME_RE = re.compile(r"<Name>([^<]*)</Name>")


def is_stats_file(path: str) -> bool:
    return posixpath.basename(path.replace("\\", "/")) == STATS_FILENAME


@dataclass(frozen=True)
class ScoreEvent:
    player: str
    song: str
    steps_type: str
    difficulty: str
    percent: float
    when: str

    def sentence(self) -> str:
        chart = " ".join(p for p in (self.steps_type, self.difficulty) if p)
        text = f"{self.player} scored {self.percent * 100:.2f}% on {self.song}"
        if chart:
            text += f" ({chart})"
        if self.when:
            text += f" at {self.when}"
        return text


@dataclass(frozen=True)
class PlaytimeDelta:
    player: str
    seconds: int

    def sentence(self) -> str:
        return f"{self.player} played {format_duration(self.seconds)}"


def _song_label(song_dir: str) -> str:
    """'Songs/Pack/Song/' -> 'Pack/Song'."""
    parts = [p for p in song_dir.replace("\\", "/").split("/") if p]
    if len(parts) > 1 and parts[0] in ("Songs", "AdditionalSongs", "Courses"):
        parts = parts[1:]
    return "/".join(parts) or song_dir


class _State(Enum):
    SEEKING = 0
    IN_RECORD = 1
    IN_SUB_RECORD = 2
    IN_SCORE = 3


class ScoreEventExtractor:
    """
    State machine over the new side of a diff (context and added lines).

    SEEKING -> IN_RECORD on <Song Dir=...>, -> IN_SUB_RECORD on <Steps ...>,
    -> IN_SCORE on <HighScore>. A score is emitted when the closing tag is
    reached and the record's <DateTime> line was added, since every attempt
    carries its own timestamp. Git may pair a new record with an older one's
    opening tag, name or identical percentage, so records are read from the
    new side of the diff with added lines taking precedence. Records without
    a <DateTime> fall back to an added <PercentDP>.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self.state = _State.SEEKING
        self.song = ""
        self.steps_type = ""
        self.difficulty = ""
        self.when_added = False
        self.percent_added = False
        self.fields = {}
        self.events: List[ScoreEvent] = []

    def feed(self, polarity: str, content: str) -> None:
        if polarity == REMOVED:
            return
        if self.state is _State.SEEKING:
            self._seek_record(content)
        elif self.state is _State.IN_RECORD:
            self._in_record(content)
        elif self.state is _State.IN_SUB_RECORD:
            self._in_sub_record(polarity, content)
        elif self.state is _State.IN_SCORE:
            self._in_score(polarity, content)

    def _seek_record(self, content):
        match = _SONG_OPEN_RE.search(content)
        if match:
            self.song = _song_label(match.group(2))
            self.state = _State.IN_RECORD

    def _in_record(self, content):
        if _SONG_CLOSE_RE.search(content):
            self.state = _State.SEEKING
            return
        match = _STEPS_OPEN_RE.search(content)
        if match:
            attrs = dict(_ATTR_RE.findall(match.group(2)))
            self.steps_type = attrs.get("StepsType", "")
            self.difficulty = attrs.get("Difficulty") or attrs.get("CourseDifficulty", "")
            if not match.group(0).endswith("/>"):
                self.state = _State.IN_SUB_RECORD

    def _in_sub_record(self, polarity, content):
        if _STEPS_CLOSE_RE.search(content):
            self.state = _State.IN_RECORD
            return
        if _SONG_CLOSE_RE.search(content):
            self.state = _State.SEEKING
            return
        if _SCORE_OPEN_RE.search(content):
            self.when_added = False
            self.percent_added = False
            self.fields = {}
            self.state = _State.IN_SCORE
            # single-line records
            self._in_score(polarity, content)

    def _in_score(self, polarity, content):
        for key, value in _FIELD_RE.findall(content):
            if polarity == ADDED:
                self.fields[key] = value.strip()
                if key == "DateTime":
                    self.when_added = True
                elif key == "PercentDP":
                    self.percent_added = True
            else:
                self.fields.setdefault(key, value.strip())
        if _SCORE_CLOSE_RE.search(content):
            if self.when_added or (self.percent_added and "DateTime" not in self.fields):
                self._emit()
            self.state = _State.IN_SUB_RECORD

    def _emit(self):
        try:
            percent = float(self.fields.get("PercentDP", ""))
        except ValueError:
            log.debug(f"HighScore without a usable PercentDP on {self.song}, ignored")
            return
        player = sanitize_player_name(self.fields.get("Name", "")) or UNKNOWN_PLAYER
        self.events.append(ScoreEvent(
            player=player,
            song=self.song,
            steps_type=self.steps_type,
            difficulty=self.difficulty,
            percent=percent,
            when=self.fields.get("DateTime", ""),
        ))


def extract_score_events(diff_text: str) -> List[ScoreEvent]:
    """Scores whose <HighScore> record was added in this diff."""
    extractor = ScoreEventExtractor()
    for polarity, content in iter_diff_lines(diff_text):
        extractor.feed(polarity, content)
    return extractor.events


def _player_from_path(path: Optional[str]) -> str:
    if not path:
        return UNKNOWN_PLAYER
    parts = [p for p in path.replace("\\", "/").split("/") if p]
    if len(parts) >= 2:
        return parts[-2]
    return UNKNOWN_PLAYER


def extract_playtime_delta(diff_text: str, path: Optional[str] = None) -> Optional[PlaytimeDelta]:
    """
    Play time gained according to the TotalGameplaySeconds counter.

    Returns None unless both the old and the new value are present and the
    counter increased.
    """
    old_value = new_value = None
    display_name = added_name = None

    for polarity, content in iter_diff_lines(diff_text):
        if polarity == CONTEXT:
            continue
        match = _TOTAL_SECONDS_RE.search(content)
        if match:
            if polarity == REMOVED and old_value is None:
                old_value = int(match.group(1))
            elif polarity == ADDED and new_value is None:
                new_value = int(match.group(1))
        if polarity == ADDED:
            if display_name is None:
                m = _DISPLAY_NAME_RE.search(content)
                if m and sanitize_player_name(m.group(1)):
                    display_name = sanitize_player_name(m.group(1))
            if added_name is None:
                m = _NAME_RE.search(content)
                if m and sanitize_player_name(m.group(1)):
                    added_name = sanitize_player_name(m.group(1))

    if old_value is None or new_value is None or new_value <= old_value:
        return None
    player = display_name or added_name or _player_from_path(path)
    return PlaytimeDelta(player=player, seconds=new_value - old_value)


def extract_stats_events(path: str, diff_text: str) -> Tuple[List[ScoreEvent], Optional[PlaytimeDelta]]:
    """Run both extractors over one statistics file diff."""
    return extract_score_events(diff_text), extract_playtime_delta(diff_text, path)


def merge_playtime(deltas: Iterable[PlaytimeDelta]) -> dict:
    """Sum deltas per player."""
    totals = {}
    for delta in deltas:
        totals[delta.player] = totals.get(delta.player, 0) + delta.seconds
    return totals
