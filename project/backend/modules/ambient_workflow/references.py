"""
Reference image manager.

Uploads style reference images to temporary server storage and tracks them
on the visual world phase until the phase-2 save promotes them.
"""

from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from shared.api_client import WorkflowApiClient
from shared.errors import WorkflowError
from shared.event_publisher import EventPublisher
from shared.logging import get_logger
from shared.models.storyboard import TempReferenceImage
from shared.validation import validate_reference_count, validate_reference_image

from modules.ambient_workflow.store import VISUAL_WORLD, StepDataStore

logger = get_logger("ambient_workflow")


class ReferenceImageManager:
    """Attach and detach reference images on the visual world phase."""

    def __init__(
        self,
        store: StepDataStore,
        api_client: WorkflowApiClient,
        publisher: EventPublisher,
        max_images: int = 4,
        max_size_mb: int = 10
    ):
        self.store = store
        self.api_client = api_client
        self.publisher = publisher
        self.max_images = max_images
        self.max_size_mb = max_size_mb

    async def upload(
        self,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream"
    ) -> Optional[TempReferenceImage]:
        """
        Validate and upload one reference image.

        Args:
            content: Raw image bytes
            filename: Original file name
            content_type: MIME type sent with the upload

        Returns:
            The attached image, or None if the upload was refused
        """
        images = self.store.visual_world.reference_images
        try:
            validate_reference_count(len(images), self.max_images)
            validate_reference_image(content, filename, max_size_mb=self.max_size_mb)
            data = await self.api_client.upload_reference(content, filename, content_type)
            image = TempReferenceImage(
                temp_id=data["tempId"],
                preview_url=data.get("previewUrl") or "",
                original_name=data.get("originalName") or filename,
            )
        except (KeyError, PydanticValidationError):
            logger.error("Malformed upload response", extra={"upload_filename": filename})
            await self.publisher.notify(
                self.store.project_id, "Upload Failed", "Failed to upload reference image",
                variant="destructive"
            )
            return None
        except WorkflowError as e:
            logger.warning(f"Reference upload refused: {e.message}", extra={"upload_filename": filename})
            await self.publisher.notify(
                self.store.project_id, "Upload Failed", e.message, variant="destructive"
            )
            return None

        # Re-read: another upload may have completed while this one was in flight
        images = self.store.visual_world.reference_images
        self.store.visual_world.reference_images = images + [image]
        self.store.notify_changed(VISUAL_WORLD)
        logger.info("Reference image attached", extra={"temp_id": image.temp_id})
        return image

    async def remove(self, temp_id: str) -> bool:
        """
        Detach a reference image.

        Transient uploads are also deleted server-side, best effort; durable
        images are only dropped from the phase and disappear on the next save.

        Returns:
            True if the image was attached
        """
        images = self.store.visual_world.reference_images
        target = next((img for img in images if img.temp_id == temp_id), None)
        if target is None:
            return False

        self.store.visual_world.reference_images = [img for img in images if img.temp_id != temp_id]
        self.store.notify_changed(VISUAL_WORLD)

        if not target.is_durable:
            try:
                await self.api_client.delete_reference(temp_id)
            except WorkflowError as e:
                logger.warning(f"Failed to delete temp reference: {e.message}", extra={"temp_id": temp_id})
        return True
