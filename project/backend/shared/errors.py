"""
Error handling.

Custom exception classes for consistent error handling across the workflow controller.
"""

from typing import Any, Optional


class WorkflowError(Exception):
    """Base exception for all workflow controller errors."""

    def __init__(
        self,
        message: str,
        project_id: Optional[str] = None,
        code: Optional[str] = None
    ):
        """
        Initialize workflow error.

        Args:
            message: Error message
            project_id: Optional project ID associated with the error
            code: Optional error code for categorization
        """
        self.message = message
        self.project_id = project_id
        self.code = code
        super().__init__(self.message)


class ConfigError(WorkflowError):
    """Configuration errors (missing env vars, invalid settings)."""
    pass


class ValidationError(WorkflowError):
    """Input validation errors."""
    pass


class PreconditionError(WorkflowError):
    """Local precondition failures, detected before any network call."""
    pass


class RetryableError(WorkflowError):
    """Transport failure (timeout, connection reset) that the user may re-trigger."""
    pass


class TransitionInProgressError(WorkflowError):
    """A phase transition was requested while another one is still running."""
    pass


class RemoteRejectionError(WorkflowError):
    """Remote service answered with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
        project_id: Optional[str] = None,
        code: Optional[str] = None
    ):
        """
        Initialize remote rejection error.

        Args:
            message: Error message (parsed from the response when available)
            status_code: HTTP status code
            body: Decoded response body, if any
            project_id: Optional project ID associated with the error
            code: Optional error code for categorization
        """
        self.status_code = status_code
        self.body = body
        super().__init__(message, project_id, code)


class PartialPipelineError(WorkflowError):
    """Prompt pipeline failed after the generation stage already succeeded."""

    def __init__(
        self,
        message: str,
        stage: str,
        project_id: Optional[str] = None,
        code: Optional[str] = None
    ):
        """
        Initialize partial pipeline error.

        Args:
            message: Error message
            stage: Stage that failed ("activate" or "refetch")
            project_id: Optional project ID associated with the error
            code: Optional error code for categorization
        """
        self.stage = stage
        super().__init__(message, project_id, code)


__all__ = [
    "WorkflowError",
    "ConfigError",
    "ValidationError",
    "PreconditionError",
    "RetryableError",
    "TransitionInProgressError",
    "RemoteRejectionError",
    "PartialPipelineError",
]
