# digest_utils/__init__.py
"""
Change digest utilities.

Turns the git diff of a backup run into human-readable events (new scores,
play time, songs added/removed, changed files) and keeps the rolling
summary of recent runs.
"""

from digest_utils.digest_writer import DigestEntry, render_digest, parse_digest, render_readme
from digest_utils.pack_changes import PackChangeSet, extract_pack_changes, is_timestamp_only_diff, net_changes
from digest_utils.stats_parser import ScoreEvent, PlaytimeDelta, extract_score_events, extract_playtime_delta

__all__ = [
    'DigestEntry',
    'render_digest',
    'parse_digest',
    'render_readme',
    'PackChangeSet',
    'extract_pack_changes',
    'is_timestamp_only_diff',
    'net_changes',
    'ScoreEvent',
    'PlaytimeDelta',
    'extract_score_events',
    'extract_playtime_delta',
]
