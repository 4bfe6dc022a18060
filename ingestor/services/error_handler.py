"""
Error handling and recovery service for the chain-mirror ingestor.

This service classifies errors raised while processing block jobs and
decides whether a failed job goes back on the queue.
"""

from typing import Any, Dict

import structlog

from ingestor.config import settings
from ingestor.utils.exceptions import (
    ChainUnavailable,
    JSONRPCError,
    NotYetMined,
    StorageError,
    ValidationError,
)


class ErrorHandler:
    """Handle ingestion errors and recovery"""

    def __init__(self, max_attempts: int = None, retry_delay: float = None):
        """
        Initialize the error handler

        Args:
            max_attempts: Attempts a job gets before it is marked failed
            retry_delay: Base delay in seconds before a job is re-enqueued
        """
        self.max_attempts = max_attempts if max_attempts is not None else settings.JOB_MAX_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else settings.JOB_RETRY_DELAY
        self.logger = structlog.get_logger()

    def handle_job_error(self, error: Exception, context: Dict[str, Any]) -> bool:
        """
        Log a job error with its category.

        Args:
            error: The exception that occurred
            context: Additional context about the job

        Returns:
            True if the job may be retried, False if it is fatal to the job
        """
        if isinstance(error, ValidationError):
            self.logger.error("Invalid job payload", error=str(error), context=context)
            return False

        if isinstance(error, NotYetMined):
            self.logger.info("Block not yet available", error=str(error), context=context)
        elif isinstance(error, JSONRPCError):
            self.logger.error(
                "RPC error occurred",
                error=f"RPC Error: code={error.code}, message={error.message}",
                context=context,
            )
        elif isinstance(error, ChainUnavailable):
            self.logger.error("Chain node unavailable", error=str(error), context=context)
        elif isinstance(error, StorageError):
            self.logger.error("Storage error occurred", error=str(error), context=context)
        else:
            self.logger.error("Unexpected job error", error=str(error), context=context)
        return True

    def should_retry(self, attempt: int) -> bool:
        """
        Determine if a job should be retried.

        Args:
            attempt: Number of attempts already made

        Returns:
            True if the job should be retried, False otherwise
        """
        return attempt < self.max_attempts

    def get_retry_delay(self, attempt: int) -> float:
        """
        Calculate the retry delay with exponential backoff.

        Args:
            attempt: The current retry attempt number

        Returns:
            The delay in seconds
        """
        delay = self.retry_delay * (2 ** (attempt - 1))
        self.logger.info("Retrying job", attempt=attempt, delay=delay)
        return delay
