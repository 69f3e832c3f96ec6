"""Tests for the run orchestrator: outcome, notification, skip report and logging."""
import logging
import os
from datetime import datetime

import pytest

import backup_runner
import config
from conftest import FakeGit, create_git_dir, failed, ok, write_file

NOW = datetime(2024, 1, 1, 10, 0, 0)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in saved_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(saved_level)


def _oversized(install_tree):
    path = str(install_tree / "Themes" / "huge.bin")
    with open(path, "wb") as f:
        f.truncate(config.MAX_FILE_BYTES + 1)
    return path


def _clone_ok(args, cwd):
    os.makedirs(os.path.join(args[-1], ".git"))
    return ok()


def test_failed_run_notifies_and_keeps_staging(make_config, install_tree):
    big = _oversized(install_tree)
    git = FakeGit({"clone": failed(), "init": create_git_dir, "commit": failed("fatal: index locked")})
    notes = []

    result = backup_runner.run_backup(make_config(), notifier=lambda message, log: notes.append((message, log)),
                                      now=NOW, log_path="backup.log", git=git)

    assert not result.success
    assert result.error_kind == "remote_sync"
    assert notes == [(result.message, "backup.log")]
    assert os.path.isdir(result.staging_path)
    assert result.files_skipped == 1
    with open(result.skip_report, encoding="utf-8") as f:
        assert f.read().splitlines() == [big]


def test_successful_run_removes_staging(make_config):
    git = FakeGit({"clone": _clone_ok})
    notes = []
    result = backup_runner.run_backup(make_config(), notifier=lambda *a: notes.append(a), now=NOW, git=git)

    assert result.success and result.committed and result.pushed
    assert not os.path.exists(result.staging_path)
    assert result.skip_report is None
    assert notes == []
    assert ("push", "--force", "origin", "HEAD") in git.calls


def test_nothing_to_commit_skips_publish(make_config):
    from cloud_utils.git_provider import GitResult
    git = FakeGit({"clone": _clone_ok, "commit": GitResult(False, 1, "nothing to commit, working tree clean", "")})
    result = backup_runner.run_backup(make_config(), notifier=None, now=NOW, git=git)
    assert result.success and not result.committed and not result.pushed
    assert "push" not in git.subcommands()


def test_unexpected_error_is_reported(make_config):
    class ExplodingGit(FakeGit):
        def run(self, *args, cwd=None, quiet=False):
            raise RuntimeError("boom")

    notes = []
    result = backup_runner.run_backup(make_config(), notifier=lambda *a: notes.append(a), now=NOW,
                                      git=ExplodingGit())
    assert not result.success
    assert result.error_kind == "unexpected"
    assert "boom" in result.message
    assert len(notes) == 1


def test_configuration_error_exits_without_dialog(tmp_path, monkeypatch, restore_logging):
    shown = []
    monkeypatch.setattr(backup_runner, "notify_failure", lambda *a: shown.append(a))
    assert backup_runner.run_silent_backup(str(tmp_path / "missing.json")) == 1
    assert shown == []


def test_log_file_is_dated(tmp_path, restore_logging):
    log_path = backup_runner.configure_logging(str(tmp_path / "logs"), now=NOW)
    logging.info("hello from the run")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert os.path.basename(log_path) == "backup_2024-01-01.log"
    with open(log_path, encoding="utf-8") as f:
        assert "[INFO] hello from the run" in f.read()


def test_silent_backup_uses_configured_log_dir(tmp_path, install_tree, monkeypatch, restore_logging):
    import json
    cfg_path = write_file(str(tmp_path / "cfg.json"), json.dumps({
        "install_path": str(install_tree),
        "remote_url": "https://example.invalid/r.git",
        "log_dir": str(tmp_path / "logs"),
        "staging_dir": str(tmp_path / "staging"),
    }))
    seen = {}

    def fake_run(configuration, notifier=None, log_path=None, **kwargs):
        seen["log_path"] = log_path
        seen["notifier"] = notifier
        return backup_runner.RunResult(success=True)

    monkeypatch.setattr(backup_runner, "run_backup", fake_run)
    assert backup_runner.run_silent_backup(cfg_path, show_dialog=False) == 0
    assert os.path.dirname(seen["log_path"]) == str(tmp_path / "logs")
    assert seen["notifier"] is None
