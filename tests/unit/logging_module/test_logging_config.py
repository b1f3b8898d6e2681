"""
Tests for logging configuration.
"""

import pytest

from logging_module.config import LoggingConfig


class TestLoggingConfig:
    """Test LoggingConfig."""

    def test_defaults(self):
        """Test default values."""
        config = LoggingConfig()

        assert config.log_level == "INFO"
        assert config.log_path is None
        assert config.log_file_max_bytes == 10 * 1024 * 1024
        assert config.log_file_backup_count == 5

    def test_from_env(self, monkeypatch):
        """Test loading from environment variables."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_PATH", "/tmp/relay-logs")
        monkeypatch.setenv("LOG_FILE_MAX_BYTES", "2048")
        monkeypatch.setenv("LOG_FILE_BACKUP_COUNT", "2")

        config = LoggingConfig.from_env()

        assert config.log_level == "DEBUG"
        assert config.log_path == "/tmp/relay-logs"
        assert config.log_file_max_bytes == 2048
        assert config.log_file_backup_count == 2

    def test_from_env_empty_path(self, monkeypatch):
        """Test that an empty LOG_PATH means console only."""
        monkeypatch.setenv("LOG_PATH", "")

        assert LoggingConfig.from_env().log_path is None

    def test_validate_valid(self):
        """Test validation of a valid config."""
        LoggingConfig(log_level="WARNING").validate()

    def test_validate_invalid_level(self):
        """Test validation rejects unknown levels."""
        with pytest.raises(ValueError, match="Invalid log_level"):
            LoggingConfig(log_level="LOUD").validate()

    def test_validate_small_file(self):
        """Test validation rejects tiny rotation sizes."""
        with pytest.raises(ValueError, match="log_file_max_bytes"):
            LoggingConfig(log_file_max_bytes=100).validate()

    def test_validate_backup_count(self):
        """Test validation rejects zero backups."""
        with pytest.raises(ValueError, match="log_file_backup_count"):
            LoggingConfig(log_file_backup_count=0).validate()
