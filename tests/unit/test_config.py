"""Unit tests for configuration, exceptions and logging setup."""

import pydantic
import pytest
import structlog

from attune_core.config import (
    CrisisLevel,
    CrisisLevelThresholds,
    FlowConfig,
    LogFormat,
    get_settings,
)
from attune_core.exceptions import SessionNotFoundError, TranscriptionError, ValidationError
from attune_core.logging import configure_logging


class TestCrisisLevelThresholds:
    """Tests for threshold validation."""

    def test_defaults_ascending(self):
        """Test default thresholds."""
        thresholds = CrisisLevelThresholds()

        assert thresholds.for_level(CrisisLevel.NONE) == 0.0
        assert thresholds.for_level(CrisisLevel.HIGH) == 0.6

    def test_descending_rejected(self):
        """Test thresholds must be ascending."""
        with pytest.raises(pydantic.ValidationError):
            CrisisLevelThresholds(low=0.5, medium=0.4)

    def test_out_of_range_rejected(self):
        """Test thresholds must lie in [0, 1]."""
        with pytest.raises(pydantic.ValidationError):
            CrisisLevelThresholds(critical=1.5)


class TestSettings:
    """Tests for environment-driven settings."""

    def test_env_override(self, monkeypatch):
        """Test sub-configurations read their env prefix."""
        monkeypatch.setenv("FLOW_TURN_TIMEOUT_MS", "5000")

        assert FlowConfig().turn_timeout_ms == 5000

    def test_settings_cached(self):
        """Test get_settings returns one instance."""
        assert get_settings() is get_settings()


class TestExceptions:
    """Tests for error payloads."""

    def test_validation_error(self):
        """Test validation errors carry the field."""
        error = ValidationError("Text must not be empty", field="text")

        assert error.to_dict() == {
            "error": "ValidationError",
            "message": "Text must not be empty",
            "code": "VALIDATION_ERROR",
            "details": {},
            "field": "text",
        }

    def test_session_not_found(self):
        """Test the session id is kept."""
        error = SessionNotFoundError("abc")

        assert error.code == "SESSION_NOT_FOUND"
        assert "abc" in str(error)

    def test_transcription_error(self):
        """Test provider is recorded."""
        error = TranscriptionError("timeout", provider="whisper")

        assert error.provider == "whisper"
        assert error.code == "TRANSCRIPTION_ERROR"


class TestLogging:
    """Tests for logging setup."""

    @pytest.mark.parametrize("log_format", [LogFormat.JSON, LogFormat.PRETTY, "json"])
    def test_configure(self, log_format):
        """Test structlog can be configured in either format."""
        configure_logging(level="debug", log_format=log_format)

        structlog.get_logger().info("configured", log_format=str(log_format))

        structlog.reset_defaults()
