"""Tests for configuration resolution, validation and the next-run display."""
import json
import os
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

import config
import settings_manager
from backup_errors import ConfigurationError
from conftest import write_file


def _write_config(path, data):
    return write_file(str(path), json.dumps(data))


def test_explicit_path_wins_and_must_exist(tmp_path):
    explicit = _write_config(tmp_path / "a.json", {})
    assert settings_manager.resolve_config_path(explicit, resolvers=[lambda: "/elsewhere.json"]) == explicit
    with pytest.raises(ConfigurationError):
        settings_manager.resolve_config_path(str(tmp_path / "missing.json"))


def test_resolvers_are_tried_in_order(tmp_path):
    second = _write_config(tmp_path / "second.json", {})
    third = _write_config(tmp_path / "third.json", {})
    calls = []

    def first():
        calls.append("first")
        return None

    def later():
        calls.append("later")
        return [str(tmp_path / "absent.json"), second]

    def never():
        calls.append("never")
        return third

    assert settings_manager.resolve_config_path(resolvers=[first, later, never]) == second
    assert calls == ["first", "later"]


def test_environment_variable_resolver(tmp_path, monkeypatch):
    path = _write_config(tmp_path / "env.json", {})
    monkeypatch.setenv(config.CONFIG_ENV_VAR, path)
    assert settings_manager.resolve_config_path(resolvers=[settings_manager._from_environment]) == path


def test_nothing_found_raises(tmp_path):
    with pytest.raises(ConfigurationError):
        settings_manager.resolve_config_path(resolvers=[lambda: str(tmp_path / "none.json")])


def test_required_fields():
    with pytest.raises(ConfigurationError):
        settings_manager.parse_configuration({"remote_url": "https://example.invalid/r.git"})
    with pytest.raises(ConfigurationError):
        settings_manager.parse_configuration({"install_path": "/games/itgmania"})
    with pytest.raises(ConfigurationError):
        settings_manager.parse_configuration({"install_path": "/g", "remote_url": "u", "access_token": 5})
    with pytest.raises(ConfigurationError):
        settings_manager.parse_configuration(["not", "an", "object"])


def test_defaults_and_invalid_values(caplog):
    cfg = settings_manager.parse_configuration({
        "install_path": "/games/itgmania",
        "remote_url": "https://example.invalid/r.git",
        "include_songs": True,
        "exclude_dirs": "Cache",
        "target_subpath": "",
    })
    assert cfg.include_songs is False
    assert cfg.exclude_dirs == tuple(config.DEFAULT_EXCLUDE_DIRS)
    assert cfg.include_dirs == tuple(config.DEFAULT_INCLUDE_DIRS)
    assert cfg.target_subpath == config.DEFAULT_TARGET_SUBPATH
    assert cfg.task_target("install") == "ITGmania/Install"
    assert cfg.task_target("save") == "ITGmania/Save"
    assert cfg.resolved_save_path == os.path.join(os.path.normpath("/games/itgmania"), "Save")
    assert "include_songs" in caplog.text


def test_tasks_are_validated():
    cfg = settings_manager.parse_configuration({
        "install_path": "/g",
        "remote_url": "u",
        "tasks": [
            {"name": "Saves", "source": "save", "target": "Profiles\\Main"},
            {"source": "bogus", "target": "X"},
            {"source": "install", "target": ""},
        ],
    })
    assert [(t.source, t.target) for t in cfg.tasks] == [("save", "Profiles/Main")]
    assert cfg.task_target("install") is None
    assert cfg.task_target("save") == "ITGmania/Profiles/Main"


def test_load_resolves_relative_paths(tmp_path):
    write_file(str(tmp_path / "stepstate.gitignore"), "*.tmp\n")
    path = _write_config(tmp_path / config.CONFIG_FILENAME, {
        "install_path": str(tmp_path / "game"),
        "remote_url": "https://example.invalid/r.git",
        "staging_dir": "work/staging",
        "schedule_times": "03:00",
    })
    cfg = settings_manager.load_configuration(path)
    assert cfg.source_file == os.path.abspath(path)
    assert cfg.resolved_staging_dir == os.path.join(str(tmp_path), "work", "staging")
    assert cfg.ignore_file == os.path.join(str(tmp_path), "stepstate.gitignore")
    assert cfg.schedule_times == ("03:00",)


def test_invalid_json_is_a_configuration_error(tmp_path):
    path = write_file(str(tmp_path / "bad.json"), "{ not json")
    with pytest.raises(ConfigurationError):
        settings_manager.load_configuration(path)


def test_next_run_display():
    now = datetime(2024, 1, 1, 10, 0, tzinfo=ZoneInfo("UTC"))
    assert settings_manager.next_run_display(["09:00", "18:30"], "UTC", now) == "2024-01-01 18:30 UTC"
    assert settings_manager.next_run_display(["09:00", "bad"], "UTC", now) == "2024-01-02 09:00 UTC"
    assert settings_manager.next_run_display([], "UTC", now) == "not scheduled"
