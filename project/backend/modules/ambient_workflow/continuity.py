"""
Continuity manager.

Holds the continuity groups of the flow design phase and the lock flag
that gates the start/end-frame generation path.
"""

from typing import Any, Dict, List, Mapping

from pydantic import ValidationError as PydanticValidationError

from shared.errors import ValidationError
from shared.logging import get_logger
from shared.models.storyboard import GROUP_APPROVED, GROUP_PROPOSED, ContinuityGroup, utcnow

from modules.ambient_workflow.store import CONTINUITY, StepDataStore

logger = get_logger("ambient_workflow")


class ContinuityManager:
    """Continuity groups and lock state for one project."""

    def __init__(self, store: StepDataStore):
        self.store = store

    @property
    def groups(self) -> Dict[str, List[ContinuityGroup]]:
        return self.store.flow_design.continuity_groups

    @property
    def is_locked(self) -> bool:
        return self.store.flow_design.continuity_locked

    def _count(self, status: str) -> int:
        return sum(
            1
            for groups in self.groups.values()
            for group in groups
            if group.status == status
        )

    @property
    def proposed_count(self) -> int:
        return self._count(GROUP_PROPOSED)

    @property
    def approved_count(self) -> int:
        return self._count(GROUP_APPROVED)

    @property
    def has_continuity_data(self) -> bool:
        """True once continuity was generated or any scene has a group."""
        return self.store.flow_design.continuity_generated or any(
            len(groups) > 0 for groups in self.groups.values()
        )

    def is_complete(self) -> bool:
        """Locked, nothing left in review, and at least one approved group."""
        return (
            self.has_continuity_data
            and self.is_locked
            and self.proposed_count == 0
            and self.approved_count > 0
        )

    def lock(self) -> None:
        """Lock continuity. Locking twice is a no-op."""
        if self.is_locked:
            return
        self.store.flow_design.continuity_locked = True
        logger.info("Continuity locked")
        self.store.notify_changed(CONTINUITY)

    def mark_generated(self) -> None:
        """Record that continuity proposals were produced for this project."""
        self.store.flow_design.continuity_generated = True
        self.store.notify_changed(CONTINUITY)

    def merge_groups(self, groups: Mapping[str, List[Any]]) -> None:
        """
        Merge groups from the continuity editor, per scene.

        Groups are taken verbatim; statuses are not recomputed. Scenes not
        listed keep their existing groups.

        Args:
            groups: Scene ID to list of ContinuityGroup or wire dicts

        Raises:
            ValidationError: If a group dict is malformed
        """
        parsed: Dict[str, List[ContinuityGroup]] = {}
        for scene_id, scene_groups in groups.items():
            try:
                parsed[scene_id] = [
                    g if isinstance(g, ContinuityGroup) else ContinuityGroup.model_validate(g)
                    for g in scene_groups
                ]
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid continuity group for scene {scene_id}: {e}") from e

        self.groups.update(parsed)
        self.store.notify_changed(CONTINUITY)

    def approve_group(self, scene_id: str, group_id: str) -> bool:
        """
        Approve one proposed group.

        Returns:
            True if the group was found
        """
        for group in self.groups.get(scene_id, []):
            if group.id == group_id:
                group.status = GROUP_APPROVED
                group.approved_at = utcnow()
                self.store.notify_changed(CONTINUITY)
                return True
        return False
