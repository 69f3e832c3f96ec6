"""Shared fixtures: a throwaway install tree, configurations and a scripted git runner."""
import os
import shutil
import subprocess

import pytest

from cloud_utils.git_provider import GitResult
from settings_manager import BackupConfiguration

STATS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8" ?>
<Stats>
<GeneralData>
<DisplayName></DisplayName>
<Name>{name}</Name>
<TotalGameplaySeconds>{seconds}</TotalGameplaySeconds>
</GeneralData>
<SongScores>
<Song Dir='Songs/Pack1/Song1/'>
<Steps Difficulty='Challenge' StepsType='dance-single'>
<HighScoreList>
{scores}</HighScoreList>
</Steps>
</Song>
</SongScores>
</Stats>
"""

SCORE_TEMPLATE = """<HighScore>
<Name>{name}</Name>
<PercentDP>{percent}</PercentDP>
<DateTime>{when}</DateTime>
</HighScore>
"""


def write_file(path, content="", binary=False):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    mode = "wb" if binary else "w"
    kwargs = {} if binary else {"encoding": "utf-8", "newline": "\n"}
    with open(path, mode, **kwargs) as f:
        f.write(content)
    return path


def write_stats(install, name="", seconds=1000, scores=()):
    body = "".join(SCORE_TEMPLATE.format(name=n, percent=p, when=w) for n, p, w in scores)
    return write_file(
        os.path.join(install, "Save", "LocalProfiles", "00000000", "Stats.xml"),
        STATS_TEMPLATE.format(name=name, seconds=seconds, scores=body),
    )


@pytest.fixture
def install_tree(tmp_path):
    """Minimal portable install: one theme file, a song library and a profile."""
    install = tmp_path / "ITGmania"
    write_file(str(install / "Themes" / "x.ini"), "x" * 10240)
    write_file(str(install / "Songs" / "Pack1" / "Song1" / "song.sm"), "#TITLE:Song1;\n")
    write_stats(str(install))
    return install


@pytest.fixture
def make_config(tmp_path, install_tree):
    def _make(remote_url="https://example.invalid/backup.git", **overrides):
        values = dict(
            install_path=str(install_tree),
            remote_url=remote_url,
            user_save_path=str(tmp_path / "no-user-save"),
            staging_dir=str(tmp_path / "work" / "staging"),
            log_dir=str(tmp_path / "logs"),
        )
        values.update(overrides)
        return BackupConfiguration(**values)
    return _make


class FakeGit:
    """Records git calls; responses are keyed by subcommand (callable or GitResult)."""

    def __init__(self, responses=None, head=None):
        self.cwd = None
        self.token = None
        self.calls = []
        self.responses = responses or {}
        self.head = head

    def run(self, *args, cwd=None, quiet=False):
        self.calls.append(args)
        response = self.responses.get(args[0])
        if callable(response):
            return response(args, cwd or self.cwd)
        if response is not None:
            return response
        return GitResult(True, 0, "", "")

    def is_available(self):
        return True

    def head_commit(self, cwd=None):
        return self.head

    def subcommands(self):
        return [c[0] for c in self.calls]


def ok(stdout=""):
    return GitResult(True, 0, stdout, "")


def failed(stderr="fatal: failed", code=128):
    return GitResult(False, code, "", stderr)


def create_git_dir(args, cwd):
    os.makedirs(os.path.join(cwd, ".git"), exist_ok=True)
    return ok()


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


@pytest.fixture
def bare_remote(tmp_path):
    """Empty bare repository standing in for the hosted remote."""
    path = tmp_path / "remote.git"
    subprocess.run(["git", "init", "--bare", "--initial-branch=main", str(path)],
                   check=True, capture_output=True)
    return path


def remote_git(bare, *args):
    completed = subprocess.run(["git", f"--git-dir={bare}", *args], capture_output=True, text=True)
    return completed.stdout if completed.returncode == 0 else None
