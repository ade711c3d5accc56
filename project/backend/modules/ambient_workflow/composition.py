"""
Composition service.

Phase-4 media generation: per-shot image and video generation, batch
generation for every shot, and the debounced auto-save of per-scene and
per-shot model settings.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from shared.api_client import WorkflowApiClient
from shared.errors import PreconditionError, WorkflowError
from shared.event_publisher import (
    EventPublisher,
    GENERATING_CHANGED,
    SCOPE_IMAGES,
    SCOPE_SHOT_IMAGE,
    SCOPE_SHOT_VIDEO,
    SCOPE_VIDEOS,
)
from shared.logging import get_logger
from shared.models.phases import parse_keyed
from shared.models.storyboard import ShotVersion
from shared.validation import validate_project_id

from modules.ambient_workflow.store import MODEL_SETTINGS, StepDataStore

logger = get_logger("ambient_workflow")

GENERATION_FAILED_TITLE = "Generation Failed"

FRAME_START = "start"
FRAME_END = "end"


class CompositionService:
    """Media generation and settings auto-save for the composition phase."""

    def __init__(
        self,
        store: StepDataStore,
        api_client: WorkflowApiClient,
        publisher: EventPublisher,
        debounce_seconds: float = 2.0
    ):
        """
        Initialize composition service.

        Args:
            store: Step data store
            api_client: Workflow API client
            publisher: Event publisher for notifications
            debounce_seconds: Quiet period before model settings are auto-saved
        """
        self.store = store
        self.api_client = api_client
        self.publisher = publisher
        self.debounce_seconds = debounce_seconds
        self.generating_shot_ids: Set[str] = set()
        self.generating_video_shot_ids: Set[str] = set()
        self.is_generating_images = False
        self.is_generating_videos = False
        self._save_task: Optional[asyncio.Task] = None
        self._unsubscribe = store.subscribe(self._on_store_changed)

    def close(self) -> None:
        """Stop listening to the store and cancel a pending auto-save."""
        self._unsubscribe()
        self.cancel_pending_save()

    # ------------------------------------------------------------------
    # Settings auto-save
    # ------------------------------------------------------------------

    def _on_store_changed(self, topic: str) -> None:
        if topic == MODEL_SETTINGS:
            self.schedule_settings_save()

    def settings_payload(self) -> Dict[str, Any]:
        flow = self.store.flow_design.to_payload()
        return {"scenes": flow["scenes"], "shots": flow["shots"]}

    def schedule_settings_save(self) -> bool:
        """
        (Re)start the debounce timer for the model settings auto-save.

        Returns:
            True if a save was scheduled
        """
        project_id = self.store.project_id
        try:
            validate_project_id(project_id)
        except PreconditionError:
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, settings auto-save skipped")
            return False

        self.cancel_pending_save()
        payload = self.settings_payload()
        self._save_task = loop.create_task(self._save_after_delay(project_id, payload))
        return True

    def cancel_pending_save(self) -> None:
        if self._save_task is not None and not self._save_task.done():
            self._save_task.cancel()
        self._save_task = None

    async def flush_pending_save(self) -> None:
        """Wait for a scheduled auto-save to complete."""
        task = self._save_task
        if task is not None:
            await asyncio.wait({task})

    async def _save_after_delay(self, project_id: str, payload: Dict[str, Any]) -> None:
        await asyncio.sleep(self.debounce_seconds)
        try:
            await self.api_client.save_step4_settings(project_id, payload)
            logger.info("Composition settings auto-saved")
        except WorkflowError as e:
            logger.warning(f"Composition settings auto-save failed: {e.message}")

    # ------------------------------------------------------------------
    # Per-shot generation
    # ------------------------------------------------------------------

    def _emit_generating(self, project_id: Optional[str], scope: str, generating: bool, **extra: Any) -> None:
        data = {"scope": scope, "generating": generating, **extra}
        self.publisher.emit(project_id, GENERATING_CHANGED, data)

    def _merge_versions(self, result: Dict[str, Any]) -> None:
        for key in ("shotVersion", "nextShotVersion"):
            data = result.get(key)
            if not data:
                continue
            try:
                self.store.merge_shot_version(ShotVersion.model_validate(data))
            except PydanticValidationError:
                logger.warning("Ignoring malformed shot version in response", extra={"field": key})

    async def _run_shot_job(
        self,
        shot_id: str,
        in_flight: Set[str],
        scope: str,
        label: str,
        call: Callable[[str], Awaitable[Dict[str, Any]]]
    ) -> bool:
        project_id = self.store.project_id
        try:
            validate_project_id(project_id)
        except PreconditionError as e:
            await self.publisher.notify(project_id, "Error", e.message, variant="destructive")
            return False

        if shot_id in in_flight:
            logger.info(f"{label} already running for shot", extra={"shot_id": shot_id})
            return False

        in_flight.add(shot_id)
        self._emit_generating(project_id, scope, True, shot_id=shot_id)
        try:
            result = await call(project_id)
            self._merge_versions(result)
            return True
        except WorkflowError as e:
            logger.error(f"{label} failed: {e.message}", extra={"shot_id": shot_id})
            await self.publisher.notify(project_id, GENERATION_FAILED_TITLE, e.message, variant="destructive")
            return False
        finally:
            in_flight.discard(shot_id)
            self._emit_generating(project_id, scope, False, shot_id=shot_id)

    async def generate_shot_image(self, shot_id: str, frame: str = FRAME_START) -> bool:
        """
        Generate the start or end frame image of one shot.

        A start frame that the next shot inherits comes back as
        ``nextShotVersion`` and is merged too.
        """
        return await self._run_shot_job(
            shot_id,
            self.generating_shot_ids,
            SCOPE_SHOT_IMAGE,
            "Image generation",
            lambda project_id: self.api_client.generate_shot_image(project_id, shot_id, frame),
        )

    async def regenerate_shot_image(self, shot_id: str, frame: Optional[str] = None) -> bool:
        """Regenerate one shot's frame image; None regenerates both frames."""
        return await self._run_shot_job(
            shot_id,
            self.generating_shot_ids,
            SCOPE_SHOT_IMAGE,
            "Image regeneration",
            lambda project_id: self.api_client.regenerate_shot_image(project_id, shot_id, frame),
        )

    async def generate_shot_video(self, shot_id: str) -> bool:
        """Generate the video clip of one shot."""
        return await self._run_shot_job(
            shot_id,
            self.generating_video_shot_ids,
            SCOPE_SHOT_VIDEO,
            "Video generation",
            lambda project_id: self.api_client.generate_shot_video(project_id, shot_id),
        )

    # ------------------------------------------------------------------
    # Batch generation
    # ------------------------------------------------------------------

    async def _refresh_versions(self, project_id: str) -> None:
        try:
            project = await self.api_client.get_project(project_id)
        except WorkflowError as e:
            logger.warning(f"Failed to refresh shot versions: {e.message}")
            return
        step4 = project.get("step4Data") or {}
        versions = parse_keyed(ShotVersion, step4.get("shotVersions"), "shotVersions")
        if versions is not None:
            self.store.replace_shot_versions(versions)

    async def generate_all_images(self) -> bool:
        """Generate keyframe images for every shot, then reload the versions."""
        project_id = self.store.project_id
        try:
            validate_project_id(project_id)
        except PreconditionError as e:
            await self.publisher.notify(project_id, "Error", e.message, variant="destructive")
            return False
        if self.is_generating_images:
            return False

        self.is_generating_images = True
        self._emit_generating(project_id, SCOPE_IMAGES, True)
        try:
            result = await self.api_client.generate_all_images(project_id)
            await self._refresh_versions(project_id)
            generated = result.get("imagesGenerated") or 0
            failed = result.get("failedShots") or 0
            description = f"Successfully generated {generated} images."
            if failed:
                description += f" {failed} failed."
            await self.publisher.notify(project_id, "Images Generated", description)
            return True
        except WorkflowError as e:
            logger.error(f"Batch image generation failed: {e.message}")
            await self.publisher.notify(project_id, GENERATION_FAILED_TITLE, e.message, variant="destructive")
            return False
        finally:
            self.is_generating_images = False
            self._emit_generating(project_id, SCOPE_IMAGES, False)

    async def generate_all_videos(self) -> bool:
        """Generate clips for every shot without a video, then reload the versions."""
        project_id = self.store.project_id
        try:
            validate_project_id(project_id)
        except PreconditionError as e:
            await self.publisher.notify(project_id, "Error", e.message, variant="destructive")
            return False
        if self.is_generating_videos:
            return False

        self.is_generating_videos = True
        self._emit_generating(project_id, SCOPE_VIDEOS, True)
        try:
            result = await self.api_client.generate_all_videos(project_id)
            await self._refresh_versions(project_id)
            parts = [f"Successfully generated {result.get('videosGenerated') or 0} videos."]
            if result.get("skippedCount"):
                parts.append(f"{result['skippedCount']} already had videos.")
            if result.get("failedCount"):
                parts.append(f"{result['failedCount']} failed.")
            await self.publisher.notify(project_id, "Videos Generated", " ".join(parts))
            return True
        except WorkflowError as e:
            logger.error(f"Batch video generation failed: {e.message}")
            await self.publisher.notify(project_id, GENERATION_FAILED_TITLE, e.message, variant="destructive")
            return False
        finally:
            self.is_generating_videos = False
            self._emit_generating(project_id, SCOPE_VIDEOS, False)
