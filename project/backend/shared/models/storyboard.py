"""
Storyboard entity models.

Scenes, shots, shot versions, continuity groups and reference images as
exchanged with the remote workflow API (camelCase on the wire).
"""

from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Prefix marking a reference image restored from a durable URL
RESTORED_REFERENCE_PREFIX = "restored-"

# Continuity group statuses
GROUP_PROPOSED = "proposed"
GROUP_APPROVED = "approved"

# Shot version statuses
VERSION_PENDING = "pending"
VERSION_COMPLETED = "completed"
VERSION_FAILED = "failed"


def utcnow() -> datetime:
    """Current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        validate_assignment=True,
    )

    def to_wire(self) -> dict:
        """Serialize to the JSON shape the remote API expects."""
        return self.model_dump(mode="json", by_alias=True)


class Scene(WireModel):
    """Ordered narrative unit of a project."""

    id: str
    video_id: str
    scene_number: int
    title: str
    description: Optional[str] = None
    duration: Optional[float] = None
    video_model: Optional[str] = None
    image_model: Optional[str] = None
    lighting: Optional[str] = None
    weather: Optional[str] = None
    loop_count: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class Shot(WireModel):
    """Smallest addressable unit of generated content within a scene."""

    id: str
    scene_id: str
    shot_number: int
    shot_type: str = "Medium Shot"
    camera_movement: str = "Static"
    duration: float = 5
    description: Optional[str] = None
    video_model: Optional[str] = None
    image_model: Optional[str] = None
    sound_effects: Optional[str] = None
    transition: Optional[str] = None
    current_version_id: Optional[str] = None
    speed_profile: Optional[str] = None
    render_duration: Optional[float] = None
    frame_mode: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ShotVersion(WireModel):
    """One generated artifact (prompts plus resulting media) for a shot."""

    id: str
    shot_id: str
    version_number: int
    image_prompt: Optional[str] = None
    image_url: Optional[str] = None
    start_frame_prompt: Optional[str] = None
    start_frame_url: Optional[str] = None
    end_frame_prompt: Optional[str] = None
    end_frame_url: Optional[str] = None
    video_prompt: Optional[str] = None
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    video_duration: Optional[float] = None
    actual_duration: Optional[float] = None
    negative_prompt: Optional[str] = None
    start_frame_inherited: bool = False
    status: str = VERSION_PENDING
    needs_rerender: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class ContinuityGroup(WireModel):
    """Set of shots within one scene that must share visual continuity."""

    id: str
    scene_id: str
    group_number: int = 1
    shot_ids: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    transition_type: Optional[str] = None
    status: str = GROUP_PROPOSED
    edited_by: Optional[str] = None
    edited_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class TempReferenceImage(WireModel):
    """
    Style reference image attached in the visual world phase.

    Transient uploads carry the server's temp ID; images restored from a
    saved project carry a synthetic ``restored-N`` ID and their durable URL
    as preview.
    """

    temp_id: str
    preview_url: str
    original_name: str = ""

    @property
    def is_durable(self) -> bool:
        return self.temp_id.startswith(RESTORED_REFERENCE_PREFIX)

