"""
Restoration loader.

Merges persisted per-phase snapshots into the step data store exactly once
per project. Snapshots may arrive in any order and more than once (they are
re-delivered whenever the host refreshes the project record); phases 2-4
wait for phase 1, and phase 4 waits for phase 3.
"""

from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from shared.event_publisher import EventPublisher, RESTORATION_COMPLETED
from shared.logging import get_logger

from modules.ambient_workflow.store import (
    ATMOSPHERE,
    COMPOSITION,
    FLOW_DESIGN,
    VISUAL_WORLD,
    StepDataStore,
)

logger = get_logger("ambient_workflow")


class RestorationStatus(str, Enum):
    NOT_STARTED = "not_started"
    RESTORING = "restoring"
    RESTORED = "restored"


PHASES = (1, 2, 3, 4)


class RestorationLoader:
    """Per-project, per-phase restoration state machine."""

    def __init__(self, store: StepDataStore, publisher: Optional[EventPublisher] = None):
        """
        Initialize restoration loader.

        Args:
            store: Store to restore into
            publisher: Optional publisher for restoration_completed events
        """
        self.store = store
        self.publisher = publisher
        self.project_id: Optional[str] = None
        self.status: Dict[int, RestorationStatus] = {}
        self._pending: Dict[int, Mapping[str, Any]] = {}
        self._reset_status()

    def _reset_status(self) -> None:
        self.status = {phase: RestorationStatus.NOT_STARTED for phase in PHASES}
        self._pending = {}

    def is_restored(self, phase: int) -> bool:
        return self.status.get(phase) == RestorationStatus.RESTORED

    def deliver(
        self,
        project_id: Optional[str],
        step1: Optional[Mapping[str, Any]] = None,
        step2: Optional[Mapping[str, Any]] = None,
        step3: Optional[Mapping[str, Any]] = None,
        step4: Optional[Mapping[str, Any]] = None
    ) -> None:
        """
        Deliver the latest persisted snapshots.

        Phases already restored ignore re-delivery. A phase-4 snapshot that is
        absent or empty still marks phase 4 restored once phase 3 is.

        Args:
            project_id: Project the snapshots belong to
            step1-step4: Persisted step data, None if the phase was never reached
        """
        if not project_id:
            return

        if project_id != self.project_id:
            if self.project_id is not None:
                logger.info(
                    "Project changed, resetting restoration",
                    extra={"previous_project_id": self.project_id, "project_id": project_id}
                )
            self.project_id = project_id
            self._reset_status()
            if self.store.project_id != project_id:
                self.store.reset(project_id)

        for phase, snapshot in zip(PHASES, (step1, step2, step3, step4)):
            if snapshot is not None:
                self._pending[phase] = snapshot

        self._advance()

    def _advance(self) -> None:
        if not self.is_restored(1):
            if 1 not in self._pending:
                return
            self._restore(1, self._restore_atmosphere)

        if not self.is_restored(2) and 2 in self._pending:
            self._restore(2, self._restore_visual_world)

        if not self.is_restored(3) and 3 in self._pending:
            self._restore(3, self._restore_flow_design)

        if self.is_restored(3) and not self.is_restored(4):
            self._restore(4, self._restore_composition)

    def _restore(self, phase: int, apply: Callable[[], None]) -> None:
        if self.status[phase] == RestorationStatus.RESTORING:
            return
        self.status[phase] = RestorationStatus.RESTORING
        try:
            apply()
        except Exception:
            self.status[phase] = RestorationStatus.NOT_STARTED
            raise
        self.status[phase] = RestorationStatus.RESTORED
        logger.info(f"Restored phase {phase}", extra={"phase": phase})
        if self.publisher is not None:
            self.publisher.emit(self.project_id, RESTORATION_COMPLETED, {"phase": phase})

    def _restore_atmosphere(self) -> None:
        self.store.atmosphere.restore_from(self._pending[1])
        self.store.notify_changed(ATMOSPHERE)

    def _restore_visual_world(self) -> None:
        self.store.visual_world.restore_from(self._pending[2])
        self.store.notify_changed(VISUAL_WORLD)

    def _restore_flow_design(self) -> None:
        self.store.flow_design.restore_from(self._pending[3], self._pending.get(4))
        self.store.notify_changed(FLOW_DESIGN)

    def _restore_composition(self) -> None:
        snapshot = self._pending.get(4)
        if not snapshot:
            logger.debug("No phase 4 data to restore")
            return
        self.store.composition.restore_from(snapshot)
        self.store.notify_changed(COMPOSITION)
