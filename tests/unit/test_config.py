"""Unit tests for printengine/config.py and printengine/errors.py."""

import pytest
from pydantic import ValidationError

from printengine.config import EngineSettings
from printengine.errors import DecodeFailed, EncryptedSource, JobFailed, PageExtractionFailed, PrintEngineError


class TestEngineSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PRINTENGINE_MAX_ATTEMPTS", raising=False)
        settings = EngineSettings(_env_file=None)
        assert settings.max_attempts == 3
        assert settings.source_bucket == "processed"
        assert settings.output_bucket == "pdfs"
        assert settings.print_ready_timeout_ms == 10_000

    def test_reads_prefixed_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PRINTENGINE_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("PRINTENGINE_ENABLE_FACE_DETECTION", "false")
        settings = EngineSettings(_env_file=None)
        assert settings.max_attempts == 5
        assert settings.enable_face_detection is False

    def test_zero_attempts_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 1"):
            EngineSettings(_env_file=None, max_attempts=0)

    def test_negative_backoff_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must not be negative"):
            EngineSettings(_env_file=None, retry_backoff_seconds=-1)


class TestErrors:
    """Tests for the typed error hierarchy."""

    def test_default_message(self) -> None:
        error = DecodeFailed()
        assert error.message == DecodeFailed.default_message
        assert str(error) == error.message

    def test_details_in_str_and_dict(self) -> None:
        error = PageExtractionFailed("No hay paginas validas para extraer", {"page_count": 10})
        assert "page_count" in str(error)
        assert error.to_dict() == {
            "error_type": "PageExtractionFailed",
            "message": "No hay paginas validas para extraer",
            "details": {"page_count": 10},
        }

    def test_job_failed_wraps_cause(self) -> None:
        error = JobFailed("o1", "upload", 3, RuntimeError("disk full"))
        assert isinstance(error, PrintEngineError)
        assert error.details["cause"] == {"error_type": "RuntimeError", "message": "disk full", "details": {}}
        assert error.attempts == 3
        assert "o1" in error.message

    def test_job_failed_keeps_typed_cause_message(self) -> None:
        cause = EncryptedSource()
        error = JobFailed("o1", "render", 1, cause)
        assert error.message == EncryptedSource.default_message
        assert error.to_dict()["details"]["cause"]["error_type"] == "EncryptedSource"
