# Tests for environment / .env configuration

import os
from pathlib import Path

import pytest

from lockbox.config import DEFAULT_BACKEND, get_env, get_env_bool, load_settings


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings({})
        home = Path("~/.local/share/lockbox").expanduser()
        assert settings.home == home
        assert settings.backend == DEFAULT_BACKEND == "sealed"
        assert settings.identity_file == home / "identity.txt"
        assert settings.log_dir == home / "logs"
        assert settings.strict_list is False
        assert settings.strict_header is False

    def test_strict_header(self):
        assert load_settings({"LOCKBOX_STRICT_HEADER": "true"}).strict_header is True

    def test_home_drives_derived_paths(self, tmp_path):
        settings = load_settings({"LOCKBOX_HOME": str(tmp_path / "v")})
        assert settings.home == tmp_path / "v"
        assert settings.identity_file == tmp_path / "v" / "identity.txt"
        assert settings.log_dir == tmp_path / "v" / "logs"

    def test_explicit_values(self, tmp_path):
        settings = load_settings({
            "LOCKBOX_HOME": str(tmp_path / "v"),
            "LOCKBOX_BACKEND": " Transparent ",
            "LOCKBOX_IDENTITY_FILE": str(tmp_path / "keys.txt"),
            "LOCKBOX_STRICT_LIST": "yes",
            "LOCKBOX_LOG_DIR": str(tmp_path / "logs"),
        })
        assert settings.backend == "transparent"
        assert settings.identity_file == tmp_path / "keys.txt"
        assert settings.strict_list is True
        assert settings.log_dir == tmp_path / "logs"

    def test_empty_backend_means_default(self):
        assert load_settings({"LOCKBOX_BACKEND": ""}).backend == "sealed"

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="LOCKBOX_BACKEND"):
            load_settings({"LOCKBOX_BACKEND": "rot13"})

    def test_invalid_bool(self):
        with pytest.raises(ValueError, match="LOCKBOX_STRICT_LIST"):
            load_settings({"LOCKBOX_STRICT_LIST": "maybe"})

    def test_settings_are_frozen(self):
        settings = load_settings({})
        with pytest.raises(AttributeError):
            settings.backend = "transparent"


class TestDotenv:
    @pytest.fixture(autouse=True)
    def _private_environ(self, monkeypatch):
        # load_dotenv writes into os.environ; keep it per-test
        monkeypatch.setattr(os, "environ", dict(os.environ))

    def test_dotenv_fills_missing_values(self, tmp_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text("LOCKBOX_BACKEND=transparent\nLOCKBOX_STRICT_LIST=1\n")
        settings = load_settings(dotenv_path=env_file)
        assert settings.backend == "transparent"
        assert settings.strict_list is True

    def test_real_environment_wins(self, tmp_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text(f"LOCKBOX_HOME={tmp_path / 'from-dotenv'}\n")
        settings = load_settings(dotenv_path=env_file)
        assert settings.home == tmp_path / "home"


class TestEnvHelpers:
    def test_get_env_strips(self):
        assert get_env({"X": "  v  "}, "X") == "v"
        assert get_env({}, "X", "fallback") == "fallback"

    @pytest.mark.parametrize("raw,expected", [
        ("1", True), ("TRUE", True), ("on", True),
        ("0", False), ("no", False), ("", False),
    ])
    def test_get_env_bool(self, raw, expected):
        assert get_env_bool({"FLAG": raw}, "FLAG") is expected

    def test_get_env_bool_default(self):
        assert get_env_bool({}, "FLAG", default=True) is True
