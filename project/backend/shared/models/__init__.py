"""
Data models for the ambient visual workflow.

This module exports all Pydantic models used across workflow modules.
"""

from shared.models.storyboard import (
    Scene,
    Shot,
    ShotVersion,
    ContinuityGroup,
    TempReferenceImage,
)
from shared.models.phases import (
    DescriptionSnapshot,
    AtmosphereConfig,
    VisualWorldConfig,
    FlowDesignData,
    CompositionData,
    ProjectState,
)

__all__ = [
    # Storyboard entities
    "Scene",
    "Shot",
    "ShotVersion",
    "ContinuityGroup",
    "TempReferenceImage",
    # Phase records
    "DescriptionSnapshot",
    "AtmosphereConfig",
    "VisualWorldConfig",
    "FlowDesignData",
    "CompositionData",
    "ProjectState",
]
