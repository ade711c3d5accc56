"""
Ambient Workflow Module.

Phase transition controller for the ambient visual wizard: restoration of
saved phases, per-phase validation, phase saves and the prompt pipeline.
"""

from modules.ambient_workflow.controller import WorkflowController
from modules.ambient_workflow.main import create_workflow
from modules.ambient_workflow.prompt_generation import PromptGenerationResult
from modules.ambient_workflow.store import StepDataStore
from modules.ambient_workflow.validation_gate import can_advance
from shared.errors import PartialPipelineError, TransitionInProgressError
from shared.logging import get_logger

logger = get_logger("ambient_workflow")

__all__ = [
    "WorkflowController",
    "create_workflow",
    "PromptGenerationResult",
    "StepDataStore",
    "can_advance",
    "PartialPipelineError",
    "TransitionInProgressError",
]
