"""
Tests for error handling.
"""

from shared.errors import (
    WorkflowError,
    ConfigError,
    ValidationError,
    PreconditionError,
    RetryableError,
    TransitionInProgressError,
    RemoteRejectionError,
    PartialPipelineError,
)


def test_workflow_error_inheritance():
    """Test that all exceptions inherit from WorkflowError."""
    assert issubclass(ConfigError, WorkflowError)
    assert issubclass(ValidationError, WorkflowError)
    assert issubclass(PreconditionError, WorkflowError)
    assert issubclass(RetryableError, WorkflowError)
    assert issubclass(TransitionInProgressError, WorkflowError)
    assert issubclass(RemoteRejectionError, WorkflowError)
    assert issubclass(PartialPipelineError, WorkflowError)


def test_workflow_error_with_project_id():
    """Test that exceptions can include project_id."""
    error = PreconditionError("Test error", project_id="proj-1", code="TEST_ERROR")

    assert error.message == "Test error"
    assert error.project_id == "proj-1"
    assert error.code == "TEST_ERROR"
    assert str(error) == "Test error"


def test_remote_rejection_carries_response():
    """Test that remote rejections keep status and body."""
    error = RemoteRejectionError("Mood is required", status_code=400, body={"error": "Mood is required"})

    assert error.status_code == 400
    assert error.body == {"error": "Mood is required"}
    assert error.project_id is None
    assert str(error) == "Mood is required"


def test_partial_pipeline_stage():
    """Test that partial pipeline errors name the failed stage."""
    error = PartialPipelineError("Failed to activate Phase 4", stage="activate", project_id="proj-1")

    assert error.stage == "activate"
    assert error.project_id == "proj-1"
    assert "activate" in str(error)
