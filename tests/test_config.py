"""Tests for rmdbctl.config module."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from rmdbctl.config import load_config_file, parse_settings
from rmdbctl.constants import DEFAULT_STORAGE_ROOTS, TEMPLATE_DIRS
from rmdbctl.exceptions import ManagerError
from rmdbctl.models import TrustLevel


@pytest.fixture
def config_file(tmp_path):
    """Create a temporary console.yaml file."""
    config = {
        "mode": "admin",
        "storage_roots": ["/srv/lxc", "/data/lxc"],
        "template_dirs": ["/opt/templates"],
        "keepalive_interval": 30,
        "verify_attempts": 8,
        "command_timeout": 120,
        "template": "debian",
        "release": "bookworm",
    }
    path = tmp_path / "console.yaml"
    path.write_text(yaml.dump(config))
    return path


class TestLoadConfigFile:
    def test_missing_default_is_empty(self, clean_env):
        assert load_config_file() == {}

    def test_missing_explicit_file_raises(self, clean_env, tmp_path):
        with pytest.raises(ManagerError, match="Console config missing"):
            load_config_file(tmp_path / "nope.yaml")

    def test_missing_env_file_raises(self, clean_env, monkeypatch, tmp_path):
        monkeypatch.setenv("RMDB_CONFIG", str(tmp_path / "nope.yaml"))
        with pytest.raises(ManagerError):
            load_config_file()

    def test_empty_file(self, clean_env, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config_file(path) == {}

    def test_non_mapping_rejected(self, clean_env, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ManagerError, match="must contain a YAML mapping"):
            load_config_file(path)

    def test_invalid_yaml(self, clean_env, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("mode: [unterminated\n")
        with pytest.raises(ManagerError, match="invalid YAML"):
            load_config_file(path)


class TestParseSettingsDefaults:
    def test_defaults(self, clean_env):
        settings = parse_settings()
        assert settings.trust is TrustLevel.READ_ONLY
        assert settings.storage_roots == DEFAULT_STORAGE_ROOTS
        assert settings.template_dirs == TEMPLATE_DIRS
        assert settings.keepalive_interval == 60.0
        assert settings.verify_attempts == 5
        assert settings.command_timeout is None
        assert (settings.template, settings.release, settings.dist, settings.arch) == (
            "alpine",
            "3.19",
            "alpine",
            "amd64",
        )


class TestParseSettingsFile:
    def test_values_from_file(self, clean_env, config_file):
        settings = parse_settings(config_file)
        assert settings.trust is TrustLevel.ADMIN
        assert settings.storage_roots == (Path("/srv/lxc"), Path("/data/lxc"))
        assert settings.template_dirs == (Path("/opt/templates"),)
        assert settings.keepalive_interval == 30.0
        assert settings.verify_attempts == 8
        assert settings.command_timeout == 120.0
        assert settings.template == "debian"
        assert settings.release == "bookworm"

    def test_env_beats_file(self, clean_env, config_file, monkeypatch):
        monkeypatch.setenv("RMDB_MODE", "safe")
        monkeypatch.setenv("RMDB_STORAGE_ROOTS", "/a:/b")
        monkeypatch.setenv("RMDB_VERIFY_ATTEMPTS", "2")
        monkeypatch.setenv("RMDB_RELEASE", "trixie")
        settings = parse_settings(config_file)
        assert settings.trust is TrustLevel.SAFE
        assert settings.storage_roots == (Path("/a"), Path("/b"))
        assert settings.verify_attempts == 2
        assert settings.release == "trixie"

    def test_storage_roots_must_be_paths(self, clean_env, tmp_path):
        path = tmp_path / "console.yaml"
        path.write_text("storage_roots: 42\n")
        with pytest.raises(ManagerError, match="storage_roots must be a list"):
            parse_settings(path)


class TestParseSettingsEnv:
    @pytest.mark.parametrize("raw, expected", [("admin", TrustLevel.ADMIN), ("READ-ONLY", TrustLevel.READ_ONLY), ("read_only", TrustLevel.READ_ONLY)])
    def test_mode_spellings(self, clean_env, monkeypatch, raw, expected):
        monkeypatch.setenv("RMDB_MODE", raw)
        assert parse_settings().trust is expected

    def test_unknown_mode(self, clean_env, monkeypatch):
        monkeypatch.setenv("RMDB_MODE", "root")
        with pytest.raises(ManagerError, match="Unknown mode 'root'"):
            parse_settings()

    def test_empty_storage_roots(self, clean_env, monkeypatch):
        monkeypatch.setenv("RMDB_STORAGE_ROOTS", ":")
        with pytest.raises(ManagerError, match="must not be empty"):
            parse_settings()

    @pytest.mark.parametrize(
        "name, value",
        [
            ("RMDB_KEEPALIVE_INTERVAL", "0"),
            ("RMDB_KEEPALIVE_INTERVAL", "7200"),
            ("RMDB_VERIFY_ATTEMPTS", "0"),
            ("RMDB_VERIFY_ATTEMPTS", "many"),
            ("RMDB_COMMAND_TIMEOUT", "-1"),
        ],
    )
    def test_integer_bounds(self, clean_env, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ManagerError, match=name):
            parse_settings()

    def test_timeout_enabled(self, clean_env, monkeypatch):
        monkeypatch.setenv("RMDB_COMMAND_TIMEOUT", "45")
        assert parse_settings().command_timeout == 45.0
