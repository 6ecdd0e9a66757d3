"""Tests for pid file path derivation."""

from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

from singleton_process.config import Settings
from singleton_process.paths import PidPaths, validate_name


class TestFromSettings:
    def test_uses_configured_root_and_pid_dir(self, tmp_path):
        s = Settings(paths={"root_path": str(tmp_path), "pid_dir": "run/locks"})
        p = PidPaths.from_settings(s)
        assert p.root_path == tmp_path
        assert p.pid_dir_path == tmp_path / "run" / "locks"

    def test_explicit_root_wins(self, tmp_path):
        s = Settings(paths={"root_path": "/elsewhere"})
        assert PidPaths.from_settings(s, tmp_path).root_path == tmp_path

    def test_explicit_root_string_becomes_path(self, tmp_path):
        p = PidPaths.from_settings(Settings(), str(tmp_path))
        assert isinstance(p.root_path, Path)

    def test_is_frozen(self, tmp_path):
        p = PidPaths(root_path=tmp_path)
        with pytest.raises(FrozenInstanceError):
            p.root_path = tmp_path / "other"  # type: ignore[misc]


class TestPidfilePath:
    def test_default_layout(self, tmp_path):
        assert PidPaths(tmp_path).pidfile_path("testing") == tmp_path / "tmp" / "pids" / "testing.pid"

    def test_dots_inside_name_are_kept(self, tmp_path):
        assert PidPaths(tmp_path).pidfile_path("mailer.v2").name == "mailer.v2.pid"

    def test_does_not_create_anything(self, tmp_path):
        PidPaths(tmp_path).pidfile_path("testing")
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.parametrize("bad", ["", ".", "..", "a/b", "a\\b", "nul\0byte"])
    def test_rejects_bad_names(self, tmp_path, bad):
        with pytest.raises(ValueError):
            PidPaths(tmp_path).pidfile_path(bad)


class TestEnsurePidDir:
    def test_creates_nested_directory(self, tmp_path):
        created = PidPaths(tmp_path).ensure_pid_dir()
        assert created == tmp_path / "tmp" / "pids"
        assert created.is_dir()

    def test_idempotent(self, tmp_path):
        p = PidPaths(tmp_path)
        p.ensure_pid_dir()
        p.ensure_pid_dir()  # second call must not raise


class TestValidateName:
    def test_returns_name_unchanged(self):
        assert validate_name("worker") == "worker"

    def test_rejects_non_string(self):
        with pytest.raises(ValueError):
            validate_name(None)  # type: ignore[arg-type]
