"""
Persistence gateway.

Serializes phases 1-3 into their save bodies and sends them to the remote
workflow service, exposing a saving flag for the duration of the call.
"""

from typing import Dict

from shared.api_client import WorkflowApiClient
from shared.errors import PreconditionError, WorkflowError
from shared.event_publisher import EventPublisher, SAVING_CHANGED
from shared.logging import get_logger, set_project_id
from shared.validation import validate_project_id

from modules.ambient_workflow.store import StepDataStore

logger = get_logger("ambient_workflow")

SAVE_FAILED_TITLE = "Save Failed"

# Fallback messages when the server gives no usable error body
SAVE_FALLBACK_ERRORS: Dict[int, str] = {
    1: "Failed to save atmosphere settings",
    2: "Failed to save visual world settings",
    3: "Failed to save flow design",
}


class PersistenceGateway:
    """Saves phase snapshots to the remote workflow API."""

    def __init__(
        self,
        store: StepDataStore,
        api_client: WorkflowApiClient,
        publisher: EventPublisher
    ):
        self.store = store
        self.api_client = api_client
        self.publisher = publisher
        self._saving = False

    @property
    def is_saving(self) -> bool:
        return self._saving

    def _set_saving(self, value: bool) -> None:
        if self._saving == value:
            return
        self._saving = value
        self.publisher.emit(self.store.project_id, SAVING_CHANGED, {"saving": value})

    async def save_phase(self, phase: int) -> bool:
        """
        Save one phase.

        Precondition failures and remote rejections are reported through a
        destructive notification; nothing is retried.

        Args:
            phase: Phase number (1-3)

        Returns:
            True if the server accepted the save
        """
        project_id = self.store.project_id
        try:
            validate_project_id(project_id)
            if phase not in SAVE_FALLBACK_ERRORS:
                raise PreconditionError(f"Phase {phase} cannot be saved", project_id=project_id)
        except PreconditionError as e:
            logger.warning(f"Save precondition failed: {e.message}", extra={"phase": phase})
            await self.publisher.notify(project_id, "Error", e.message, variant="destructive")
            return False

        set_project_id(project_id)
        payload = self.store.state.payload_for_phase(phase)

        self._set_saving(True)
        try:
            await self.api_client.save_phase(
                project_id, phase, payload, fallback_error=SAVE_FALLBACK_ERRORS[phase]
            )
            logger.info(f"Phase {phase} saved", extra={"phase": phase})
            return True
        except WorkflowError as e:
            logger.error(f"Failed to save phase {phase}: {e.message}", extra={"phase": phase})
            await self.publisher.notify(project_id, SAVE_FAILED_TITLE, e.message, variant="destructive")
            return False
        finally:
            self._set_saving(False)
