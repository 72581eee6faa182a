"""
tests/unit/test_settings.py — Unit tests for config/settings.py.

These tests validate the Pydantic Settings schema with no network
dependencies. They run in under 1 second.

Run: pytest tests/unit/test_settings.py -v
"""

import logging

import pytest

# conftest.py adds project root to sys.path
from config.settings import Settings, load_settings

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_builtin_check_defaults(self):
        s = Settings()
        assert s.HEALTHCHECK_DEFAULT_TIMEOUT_SECONDS == 10.0
        assert s.HEALTHCHECK_DEFAULT_MAX_RETRIES == 3
        assert s.HEALTHCHECK_DEFAULT_INITIAL_BACKOFF_SECONDS == 1.0
        assert s.HEALTHCHECK_DEFAULT_BACKOFF_MULTIPLIER == 1.1
        assert s.HEALTHCHECK_DEFAULT_SSH_USERNAME == "root"

    def test_probe_defaults(self):
        s = Settings()
        assert s.SSH_BINARY == "ssh"
        assert s.SSH_BATCH_MODE is True
        assert s.HTTP_VERIFY_TLS is True
        assert s.HTTP_FOLLOW_REDIRECTS is True

    def test_output_defaults(self):
        s = Settings()
        assert s.LOG_LEVEL == "WARNING"
        assert s.REPORT_PATH is None

    def test_default_retry_policy_uses_document_keys(self):
        s = Settings(HEALTHCHECK_DEFAULT_MAX_RETRIES=0)
        assert s.default_retry_policy == {"maxRetries": 0, "initial": 1.0, "multiplier": 1.1}

    def test_settings_ignore_os_environ(self, monkeypatch):
        monkeypatch.setenv("SSH_BINARY", "/usr/bin/should-not-leak")
        assert Settings().SSH_BINARY == "ssh"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_log_level_is_normalised(self):
        s = Settings(LOG_LEVEL=" debug ")
        assert s.LOG_LEVEL == "DEBUG"
        assert s.log_level_number == logging.DEBUG

    def test_unknown_log_level_raises(self):
        with pytest.raises(Exception):  # pydantic ValidationError
            Settings(LOG_LEVEL="CHATTY")

    def test_blank_ssh_binary_raises(self):
        with pytest.raises(ValueError, match="SSH_BINARY"):
            Settings(SSH_BINARY="   ")

    def test_blank_username_means_ssh_config_decides(self):
        assert Settings(HEALTHCHECK_DEFAULT_SSH_USERNAME="").HEALTHCHECK_DEFAULT_SSH_USERNAME is None

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError, match="HEALTHCHECK_DEFAULT_TIMEOUT_SECONDS"):
            Settings(HEALTHCHECK_DEFAULT_TIMEOUT_SECONDS=0)

    def test_max_retries_must_be_non_negative(self):
        with pytest.raises(ValueError, match="HEALTHCHECK_DEFAULT_MAX_RETRIES"):
            Settings(HEALTHCHECK_DEFAULT_MAX_RETRIES=-1)

    def test_initial_backoff_must_be_positive(self):
        with pytest.raises(ValueError, match="HEALTHCHECK_DEFAULT_INITIAL_BACKOFF_SECONDS"):
            Settings(HEALTHCHECK_DEFAULT_INITIAL_BACKOFF_SECONDS=-0.5)

    def test_multiplier_below_one_raises(self):
        with pytest.raises(ValueError, match="HEALTHCHECK_DEFAULT_BACKOFF_MULTIPLIER"):
            Settings(HEALTHCHECK_DEFAULT_BACKOFF_MULTIPLIER=0.9)

    def test_bool_parses_true_string(self):
        assert Settings(HTTP_VERIFY_TLS="false").HTTP_VERIFY_TLS is False


# ---------------------------------------------------------------------------
# load_settings
# ---------------------------------------------------------------------------


class TestLoadSettings:
    def test_reads_env_file_and_strips_inline_comments(self, tmp_path, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("SSH_BINARY", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# comment line\n"
            "LOG_LEVEL=INFO   # DEBUG | INFO\n"
            "SSH_BINARY=/opt/ssh/bin/ssh\n"
            "UNRELATED=ignored\n",
            encoding="utf-8",
        )
        s = load_settings(str(env_file))
        assert s.LOG_LEVEL == "INFO"
        assert s.SSH_BINARY == "/opt/ssh/bin/ssh"

    def test_os_environ_wins_over_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("HEALTHCHECK_DEFAULT_MAX_RETRIES=5\n", encoding="utf-8")
        monkeypatch.setenv("HEALTHCHECK_DEFAULT_MAX_RETRIES", "1")
        assert load_settings(str(env_file)).HEALTHCHECK_DEFAULT_MAX_RETRIES == 1

    def test_missing_env_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("HEALTHCHECK_DEFAULT_TIMEOUT_SECONDS", raising=False)
        s = load_settings(str(tmp_path / ".env.nonexistent"))
        assert s.HEALTHCHECK_DEFAULT_TIMEOUT_SECONDS == 10.0
