"""
Main entry point for the ambient workflow.

Wires settings, logging, the API client and the event publisher into a
ready-to-use WorkflowController.
"""

from typing import Optional

import httpx

from shared.api_client import WorkflowApiClient
from shared.config import Settings, get_settings
from shared.event_publisher import EventPublisher
from shared.logging import configure_logging, get_logger, set_project_id
from shared.redis_client import create_redis_client

from modules.ambient_workflow.controller import WorkflowController
from modules.ambient_workflow.store import StepDataStore

logger = get_logger("ambient_workflow")


def create_workflow(
    project_id: Optional[str] = None,
    initial_animation_mode: str = "image-transitions",
    initial_video_generation_mode: Optional[str] = None,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> WorkflowController:
    """
    Build a controller for one project.

    Args:
        project_id: Project ID, or None / "new" before the record exists
        initial_animation_mode: Animation mode chosen during onboarding
        initial_video_generation_mode: Video generation mode chosen during onboarding
        settings: Settings (loaded from the environment when omitted)
        transport: Optional HTTP transport (used by tests)

    Returns:
        WorkflowController; call ``await controller.close()`` when done

    Raises:
        ConfigError: If configuration is invalid
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    set_project_id(project_id)

    redis_client = create_redis_client(settings.redis_url)
    publisher = EventPublisher(redis_client)
    api_client = WorkflowApiClient.from_settings(settings, transport=transport)
    store = StepDataStore(
        project_id=project_id,
        initial_animation_mode=initial_animation_mode,
        initial_video_generation_mode=initial_video_generation_mode,
    )

    logger.info(
        "Workflow created",
        extra={"environment": settings.environment, "redis_enabled": redis_client is not None}
    )
    return WorkflowController(
        store,
        api_client,
        publisher,
        max_reference_images=settings.max_reference_images,
        max_reference_size_mb=settings.max_reference_size_mb,
        settings_debounce_seconds=settings.step4_settings_debounce_seconds,
        redis_client=redis_client,
    )
