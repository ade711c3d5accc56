"""
Per-phase validation gate.

Pure predicates deciding whether the active phase may be left.
"""

from typing import Optional

from shared.models.phases import IMAGE_REFERENCE

from modules.ambient_workflow.continuity import ContinuityManager
from modules.ambient_workflow.store import StepDataStore


def atmosphere_ready(store: StepDataStore) -> bool:
    """Phase 1: a concept description exists and matches the current settings."""
    atmosphere = store.atmosphere
    if not atmosphere.mood_description.strip():
        return False
    return not atmosphere.settings_changed_since_description()


def flow_design_ready(store: StepDataStore, continuity: ContinuityManager) -> bool:
    """Phase 3: only continuity-dependent modes need approved, locked groups."""
    if store.atmosphere.video_generation_mode == IMAGE_REFERENCE:
        return True
    return continuity.is_complete()


def can_advance(phase: int, store: StepDataStore, continuity: Optional[ContinuityManager] = None) -> bool:
    """
    Whether the given phase may be left.

    Args:
        phase: Active phase number (1-6)
        store: Step data store
        continuity: Continuity manager (built over the store when omitted)

    Returns:
        True if "continue" is allowed
    """
    if phase == 1:
        return atmosphere_ready(store)
    if phase == 3:
        return flow_design_ready(store, continuity or ContinuityManager(store))
    return True
