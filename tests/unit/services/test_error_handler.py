"""
Tests for ErrorHandler service.
"""

from unittest.mock import patch

import pytest

from ingestor.services.error_handler import ErrorHandler
from ingestor.utils.exceptions import (
    ChainUnavailable,
    JSONRPCError,
    NotYetMined,
    StorageError,
    ValidationError,
)


class TestErrorHandler:
    """Test ErrorHandler functionality"""

    @pytest.fixture
    def error_handler(self):
        """Create ErrorHandler instance"""
        return ErrorHandler(max_attempts=3, retry_delay=2.0)

    @pytest.mark.parametrize(
        "error",
        [
            ChainUnavailable("node down"),
            JSONRPCError(-32000, "header not found", method="eth_getBlockByNumber"),
            StorageError("database is locked"),
            RuntimeError("unexpected"),
        ],
    )
    def test_retryable_errors_are_logged_as_errors(self, error_handler, error):
        """Test chain, storage and unexpected errors keep the job retryable"""
        with patch.object(error_handler.logger, "error") as mock_log:
            result = error_handler.handle_job_error(error, {"job_id": "j1"})
            mock_log.assert_called_once()
            assert result is True

    def test_not_yet_mined_is_informational(self, error_handler):
        """Test a block that is not mined yet is retried quietly"""
        with patch.object(error_handler.logger, "info") as mock_info, patch.object(
            error_handler.logger, "error"
        ) as mock_error:
            result = error_handler.handle_job_error(NotYetMined(100), {"job_id": "j1"})
            mock_info.assert_called_once()
            mock_error.assert_not_called()
            assert result is True

    def test_validation_error_is_fatal(self, error_handler):
        """Test malformed jobs are never retried"""
        with patch.object(error_handler.logger, "error") as mock_log:
            result = error_handler.handle_job_error(ValidationError("bad range"), {"job_id": "j1"})
            mock_log.assert_called_once()
            assert result is False

    def test_should_retry(self, error_handler):
        """Test the should_retry logic"""
        assert error_handler.should_retry(1) is True
        assert error_handler.should_retry(2) is True
        assert error_handler.should_retry(3) is False

    def test_get_retry_delay(self, error_handler):
        """Test the retry delay calculation"""
        with patch.object(error_handler.logger, "info") as mock_log:
            delay1 = error_handler.get_retry_delay(1)
            assert delay1 == 2.0
            mock_log.assert_called_with("Retrying job", attempt=1, delay=delay1)

            delay2 = error_handler.get_retry_delay(2)
            assert delay2 == 4.0
            mock_log.assert_called_with("Retrying job", attempt=2, delay=delay2)

            delay3 = error_handler.get_retry_delay(3)
            assert delay3 == 8.0
            mock_log.assert_called_with("Retrying job", attempt=3, delay=delay3)
