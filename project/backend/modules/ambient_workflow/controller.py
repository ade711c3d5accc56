"""
Workflow controller.

Drives the six-phase ambient visual wizard: owns the active phase, decides
whether it may be left, and runs the side effects of leaving it (phase
saves, the prompt pipeline) in order. A phase change happens only after
every side effect of the transition succeeded.
"""

from typing import Any, Mapping, Optional

from shared.api_client import WorkflowApiClient
from shared.errors import PreconditionError, TransitionInProgressError, WorkflowError
from shared.event_publisher import EventPublisher, PHASE_CHANGED, VALIDATION_CHANGED
from shared.logging import get_logger, set_project_id
from shared.models.phases import VIDEO_ANIMATION
from shared.redis_client import RedisClient
from shared.validation import validate_project_id

from modules.ambient_workflow.composition import CompositionService
from modules.ambient_workflow.continuity import ContinuityManager
from modules.ambient_workflow.persistence import PersistenceGateway
from modules.ambient_workflow.prompt_generation import PromptGenerationOrchestrator
from modules.ambient_workflow.references import ReferenceImageManager
from modules.ambient_workflow.restoration import RestorationLoader
from modules.ambient_workflow.store import RESET, StepDataStore
from modules.ambient_workflow.validation_gate import can_advance

logger = get_logger("ambient_workflow")

FIRST_PHASE = 1
LAST_PHASE = 6

PHASE_NAMES = {
    1: "atmosphere",
    2: "visual_world",
    3: "flow_design",
    4: "composition",
    5: "preview",
    6: "export",
}


class WorkflowController:
    """
    Phase transition controller for one open project.

    Usage::

        controller = create_workflow(project_id="p-1")
        controller.restoration.deliver("p-1", step1=..., step2=...)
        await controller.advance()
    """

    def __init__(
        self,
        store: StepDataStore,
        api_client: WorkflowApiClient,
        publisher: Optional[EventPublisher] = None,
        max_reference_images: int = 4,
        max_reference_size_mb: int = 10,
        settings_debounce_seconds: float = 2.0,
        redis_client: Optional[RedisClient] = None
    ):
        """
        Initialize workflow controller.

        Args:
            store: Step data store for the project
            api_client: Workflow API client
            publisher: Event publisher (a local one is created when omitted)
            max_reference_images: Reference image limit for the visual world phase
            max_reference_size_mb: Reference image size limit
            settings_debounce_seconds: Composition settings auto-save delay
            redis_client: Redis client owned by this controller, closed with it
        """
        self.store = store
        self.api_client = api_client
        self.publisher = publisher or EventPublisher()
        self.redis_client = redis_client

        self.continuity = ContinuityManager(store)
        self.restoration = RestorationLoader(store, self.publisher)
        self.persistence = PersistenceGateway(store, api_client, self.publisher)
        self.prompts = PromptGenerationOrchestrator(store, api_client, self.publisher)
        self.references = ReferenceImageManager(
            store,
            api_client,
            self.publisher,
            max_images=max_reference_images,
            max_size_mb=max_reference_size_mb,
        )
        self.composition = CompositionService(
            store, api_client, self.publisher, debounce_seconds=settings_debounce_seconds
        )

        self.active_phase = FIRST_PHASE
        self.should_auto_generate_flow = False
        self._transition_in_flight = False
        self._can_continue = self.can_continue
        self._unsubscribe = store.subscribe(self._on_store_changed)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def can_continue(self) -> bool:
        """Whether the active phase may be left."""
        return can_advance(self.active_phase, self.store, self.continuity)

    @property
    def is_saving(self) -> bool:
        """True while a save or the prompt pipeline runs (full-screen busy state)."""
        return self.persistence.is_saving or self.prompts.is_generating

    @property
    def is_generating_prompts(self) -> bool:
        return self.prompts.is_generating

    @property
    def transition_in_flight(self) -> bool:
        return self._transition_in_flight

    def _on_store_changed(self, topic: str) -> None:
        if topic == RESET:
            self.should_auto_generate_flow = False
            if self.active_phase != FIRST_PHASE:
                self._set_phase(FIRST_PHASE)
                return
        self._refresh_validation()

    def _refresh_validation(self) -> None:
        """Push validation_changed only when the result actually changes."""
        current = self.can_continue
        if current == self._can_continue:
            return
        self._can_continue = current
        self.publisher.emit(
            self.store.project_id,
            VALIDATION_CHANGED,
            {"phase": self.active_phase, "can_continue": current}
        )

    def _set_phase(self, phase: int) -> None:
        previous = self.active_phase
        self.active_phase = phase
        logger.info(
            f"Phase changed to {PHASE_NAMES[phase]}",
            extra={"from_phase": previous, "to_phase": phase}
        )
        self.publisher.emit(
            self.store.project_id,
            PHASE_CHANGED,
            {"from_phase": previous, "to_phase": phase}
        )
        self._refresh_validation()

    # ------------------------------------------------------------------
    # Restoration
    # ------------------------------------------------------------------

    def restore(
        self,
        project_id: Optional[str],
        step1: Optional[Mapping[str, Any]] = None,
        step2: Optional[Mapping[str, Any]] = None,
        step3: Optional[Mapping[str, Any]] = None,
        step4: Optional[Mapping[str, Any]] = None
    ) -> None:
        """Deliver persisted snapshots (safe to call on every refresh)."""
        self.restoration.deliver(project_id, step1, step2, step3, step4)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _commit_phase(self, phase: int) -> bool:
        """Run the side effects of leaving a phase; True if all succeeded."""
        if phase in (1, 2, 3):
            if not await self.persistence.save_phase(phase):
                return False

        if phase == 2 and not self.store.flow_design.scenes:
            self.should_auto_generate_flow = True

        if phase == 3 and self.store.atmosphere.animation_mode == VIDEO_ANIMATION:
            project_id = self.store.project_id
            try:
                result = await self.prompts.generate_all_prompts(project_id)
            except WorkflowError as e:
                await self.publisher.notify(
                    project_id, "Generation Failed", e.message, variant="destructive"
                )
                return False
            await self.publisher.notify(project_id, "Prompts Generated", result.summary())

        return True

    async def advance(self, phase: Optional[int] = None) -> bool:
        """
        Leave the active phase for the next one.

        Validation failures are not errors: the call returns False without a
        notification or any network traffic. Save and pipeline failures are
        notified and leave the phase unchanged.

        Args:
            phase: Phase the caller believes is active (defaults to the active one)

        Returns:
            True if the phase advanced

        Raises:
            TransitionInProgressError: If another transition is still running
        """
        if self._transition_in_flight:
            logger.warning("Transition requested while another is in flight")
            raise TransitionInProgressError(
                "A phase transition is already in progress",
                project_id=self.store.project_id,
            )

        current = self.active_phase if phase is None else phase
        if current != self.active_phase:
            logger.warning(
                "Ignoring transition from inactive phase",
                extra={"requested_phase": current, "active_phase": self.active_phase}
            )
            return False
        if current >= LAST_PHASE:
            return False
        if not self.can_continue:
            logger.debug(f"Phase {current} is not ready to advance")
            return False

        if self.store.project_id:
            set_project_id(self.store.project_id)

        self._transition_in_flight = True
        try:
            if not await self._commit_phase(current):
                return False
            self._set_phase(current + 1)
            return True
        finally:
            self._transition_in_flight = False

    async def save_current_phase(self) -> bool:
        """
        Persist the active phase without navigating.

        Runs the same side effects as leaving the phase, including the prompt
        pipeline for the flow design phase in video animation mode.

        Returns:
            True if everything succeeded (phases 4-6 have nothing to save)
        """
        if self._transition_in_flight:
            raise TransitionInProgressError(
                "A phase transition is already in progress",
                project_id=self.store.project_id,
            )
        self._transition_in_flight = True
        try:
            return await self._commit_phase(self.active_phase)
        finally:
            self._transition_in_flight = False

    def go_to_phase(self, phase: int) -> None:
        """
        Navigate directly to a phase (back navigation, stepper clicks).

        No save is performed.

        Raises:
            PreconditionError: If the phase number is out of range
        """
        if phase < FIRST_PHASE or phase > LAST_PHASE:
            raise PreconditionError(f"Unknown phase {phase}", project_id=self.store.project_id)
        if phase != self.active_phase:
            self._set_phase(phase)

    def consume_auto_generate_flow(self) -> bool:
        """Return and clear the one-shot flag asking phase 3 to generate scenes."""
        flag = self.should_auto_generate_flow
        self.should_auto_generate_flow = False
        return flag

    # ------------------------------------------------------------------
    # Phase 1 helpers
    # ------------------------------------------------------------------

    async def generate_description(self) -> bool:
        """
        Generate the concept description from the current atmosphere settings.

        Returns:
            True if a description was stored
        """
        project_id = self.store.project_id
        try:
            validate_project_id(project_id)
        except PreconditionError as e:
            await self.publisher.notify(project_id, "Error", e.message, variant="destructive")
            return False

        try:
            result = await self.api_client.generate_description(
                project_id, self.store.atmosphere.to_payload()
            )
        except WorkflowError as e:
            logger.error(f"Description generation failed: {e.message}")
            await self.publisher.notify(project_id, "Generation Failed", e.message, variant="destructive")
            return False

        description = result.get("moodDescription")
        if not isinstance(description, str) or not description.strip():
            await self.publisher.notify(
                project_id,
                "Generation Failed",
                "Failed to generate atmosphere description",
                variant="destructive"
            )
            return False

        self.store.set_mood_description(description)
        logger.info("Atmosphere description generated", extra={"cost": result.get("cost")})
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Release the API client, pending auto-save and owned Redis client."""
        self._unsubscribe()
        self.composition.close()
        await self.publisher.drain()
        await self.api_client.close()
        if self.redis_client is not None:
            await self.redis_client.close()
