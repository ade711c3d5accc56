"""
Phase sub-records.

Each wizard phase owns a named slice of the project state. A slice knows
the exact body its save endpoint expects (``to_payload``) and how to merge
a persisted snapshot back in (``restore_from``). Restoration is a sparse,
best-effort merge: absent or malformed fields keep their current value.
"""

from typing import Any, Callable, ClassVar, Dict, List, Literal, Mapping, Optional, Tuple, Type, TypeVar, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.models.storyboard import (
    ContinuityGroup,
    RESTORED_REFERENCE_PREFIX,
    Scene,
    Shot,
    ShotVersion,
    TempReferenceImage,
)

logger = get_logger(__name__)

AnimationMode = Literal["image-transitions", "video-animation"]
VideoGenerationMode = Literal["image-reference", "start-end-frame"]
LoopType = Literal["seamless", "fade", "hard-cut"]
AutoOrCount = Union[Literal["auto"], int]

VIDEO_ANIMATION = "video-animation"
IMAGE_REFERENCE = "image-reference"
START_END_FRAME = "start-end-frame"

DEFAULT_VIDEO_MODEL = "seedance-1.0-pro"
DEFAULT_VIDEO_RESOLUTION = "480p"

M = TypeVar("M", bound=BaseModel)


class PhaseRecord(BaseModel):
    """Base for phase slices; assignments are validated."""

    model_config = ConfigDict(validate_assignment=True)

    def _merge_field(self, name: str, value: Any) -> bool:
        """Assign one restored value, skipping it when it does not validate."""
        try:
            setattr(self, name, value)
            return True
        except PydanticValidationError:
            logger.debug("Skipping malformed snapshot field", extra={"field": name})
            return False


def parse_items(model: Type[M], items: Any, field: str) -> List[M]:
    """Parse a list of wire dicts, dropping entries that fail validation."""
    parsed: List[M] = []
    if not isinstance(items, list):
        return parsed
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except PydanticValidationError:
            logger.debug("Skipping malformed snapshot entry", extra={"field": field})
    return parsed


def parse_keyed(model: Type[M], mapping: Any, field: str) -> Optional[Dict[str, List[M]]]:
    """Parse a ``{key: [wire dict, ...]}`` mapping, or None if not a mapping."""
    if not isinstance(mapping, Mapping):
        return None
    return {str(key): parse_items(model, items, field) for key, items in mapping.items()}


class DescriptionSnapshot(BaseModel):
    """Atmosphere settings captured when the concept description was (re)generated."""

    model_config = ConfigDict(frozen=True)

    mood: str
    theme: str
    time_context: str
    season: str
    duration: str


class AtmosphereConfig(PhaseRecord):
    """Phase 1: atmosphere, model and pacing configuration."""

    # Core atmosphere
    mood: str = "calm"
    theme: str = "nature"
    time_context: str = "sunset"
    season: str = "neutral"
    intensity: int = 50
    duration: str = "1min"
    aspect_ratio: str = "16:9"
    user_story: str = ""
    mood_description: str = ""
    description_snapshot: Optional[DescriptionSnapshot] = None

    # Animation
    animation_mode: AnimationMode = "image-transitions"
    video_generation_mode: Optional[VideoGenerationMode] = None

    # Image / video models
    image_model: str = "nano-banana"
    image_resolution: str = "auto"
    video_model: str = DEFAULT_VIDEO_MODEL
    video_resolution: str = DEFAULT_VIDEO_RESOLUTION
    motion_prompt: str = ""

    # Animation style
    default_easing_style: str = "smooth"
    transition_style: str = "auto"
    camera_motion: str = "auto"

    # Pacing & segments
    pacing: int = 30
    segment_enabled: bool = True
    segment_count: AutoOrCount = "auto"
    shots_per_segment: AutoOrCount = "auto"

    # Loops
    loop_mode: bool = True
    loop_type: LoopType = "seamless"
    segment_loop_enabled: bool = False
    segment_loop_count: AutoOrCount = "auto"
    shot_loop_enabled: bool = False
    shot_loop_count: AutoOrCount = "auto"

    # Voiceover / text overlay
    voiceover_enabled: bool = False
    language: Literal["ar", "en"] = "en"
    text_overlay_enabled: bool = False
    text_overlay_style: Literal["modern", "cinematic", "bold"] = "modern"

    # (wire key, attribute) pairs for the phase-1 save body, in wire order
    PAYLOAD_FIELDS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("mood", "mood"),
        ("theme", "theme"),
        ("timeContext", "time_context"),
        ("season", "season"),
        ("duration", "duration"),
        ("aspectRatio", "aspect_ratio"),
        ("userStory", "user_story"),
        ("moodDescription", "mood_description"),
        ("animationMode", "animation_mode"),
        ("videoGenerationMode", "video_generation_mode"),
        ("imageModel", "image_model"),
        ("imageResolution", "image_resolution"),
        ("videoModel", "video_model"),
        ("videoResolution", "video_resolution"),
        ("motionPrompt", "motion_prompt"),
        ("defaultEasingStyle", "default_easing_style"),
        ("transitionStyle", "transition_style"),
        ("cameraMotion", "camera_motion"),
        ("pacing", "pacing"),
        ("segmentEnabled", "segment_enabled"),
        ("segmentCount", "segment_count"),
        ("shotsPerSegment", "shots_per_segment"),
        ("loopMode", "loop_mode"),
        ("loopType", "loop_type"),
        ("segmentLoopEnabled", "segment_loop_enabled"),
        ("segmentLoopCount", "segment_loop_count"),
        ("shotLoopEnabled", "shot_loop_enabled"),
        ("shotLoopCount", "shot_loop_count"),
        ("voiceoverEnabled", "voiceover_enabled"),
        ("language", "language"),
        ("textOverlayEnabled", "text_overlay_enabled"),
        ("textOverlayStyle", "text_overlay_style"),
    )

    # Settings whose change invalidates a generated description
    SNAPSHOT_FIELDS: ClassVar[Tuple[str, ...]] = ("mood", "theme", "time_context", "season", "duration")

    def capture_snapshot(self) -> DescriptionSnapshot:
        """Snapshot the settings the current description was written for."""
        return DescriptionSnapshot(**{name: getattr(self, name) for name in self.SNAPSHOT_FIELDS})

    def settings_changed_since_description(self) -> bool:
        """True when a snapshot exists and any snapshotted setting differs from it."""
        if self.description_snapshot is None:
            return False
        return self.description_snapshot != self.capture_snapshot()

    def to_payload(self) -> Dict[str, Any]:
        """Body of ``PATCH /projects/{id}/step/1/continue``."""
        return {wire: getattr(self, attr) for wire, attr in self.PAYLOAD_FIELDS}

    def restore_from(self, data: Mapping[str, Any]) -> None:
        """
        Merge a persisted phase-1 snapshot.

        String settings are only taken when non-empty; numeric and boolean
        settings whenever present.

        Args:
            data: Persisted step-1 fields (camelCase)
        """
        for wire, attr in self.PAYLOAD_FIELDS:
            if wire == "moodDescription":
                continue
            value = data.get(wire)
            if value is None:
                continue
            if isinstance(value, str) and not value:
                continue
            self._merge_field(attr, value)

        description = data.get("moodDescription")
        if isinstance(description, str) and description:
            self.mood_description = description
            # Saved description is assumed to match the saved settings
            try:
                self.description_snapshot = DescriptionSnapshot(
                    mood=data.get("mood") or "calm",
                    theme=data.get("theme") or "nature",
                    time_context=data.get("timeContext") or "sunset",
                    season=data.get("season") or "neutral",
                    duration=data.get("duration") or "1min",
                )
            except PydanticValidationError:
                logger.debug("Skipping malformed description snapshot")


class VisualWorldConfig(PhaseRecord):
    """Phase 2: visual style and reference images."""

    art_style: str = "cinematic"
    visual_elements: List[str] = Field(default_factory=list)
    visual_rhythm: str = "breathing"
    reference_images: List[TempReferenceImage] = Field(default_factory=list)
    image_custom_instructions: str = ""

    def to_payload(self) -> Dict[str, Any]:
        """
        Body of ``PATCH /projects/{id}/step/2/continue``.

        Durable images travel as URLs, transient uploads as temp IDs so the
        backend promotes only the latter.
        """
        durable = [img for img in self.reference_images if img.is_durable]
        pending = [img for img in self.reference_images if not img.is_durable]
        return {
            "artStyle": self.art_style,
            "visualElements": list(self.visual_elements),
            "visualRhythm": self.visual_rhythm,
            "existingReferenceUrls": [img.preview_url for img in durable],
            "referenceTempIds": [img.temp_id for img in pending],
            "imageCustomInstructions": self.image_custom_instructions,
        }

    def restore_from(self, data: Mapping[str, Any]) -> None:
        """
        Merge a persisted phase-2 snapshot.

        Args:
            data: Persisted step-2 fields (camelCase)
        """
        for wire, attr in (
            ("artStyle", "art_style"),
            ("visualRhythm", "visual_rhythm"),
            ("imageCustomInstructions", "image_custom_instructions"),
        ):
            value = data.get(wire)
            if isinstance(value, str) and value:
                self._merge_field(attr, value)

        if isinstance(data.get("visualElements"), list):
            self._merge_field("visual_elements", data["visualElements"])

        urls = data.get("referenceImages")
        if isinstance(urls, list):
            self.reference_images = [
                TempReferenceImage(
                    temp_id=f"{RESTORED_REFERENCE_PREFIX}{index}",
                    preview_url=url,
                    original_name=f"Reference {index + 1}",
                )
                for index, url in enumerate(urls)
                if isinstance(url, str) and url
            ]


class FlowDesignData(PhaseRecord):
    """Phase 3: scene/shot decomposition and continuity."""

    scenes: List[Scene] = Field(default_factory=list)
    shots: Dict[str, List[Shot]] = Field(default_factory=dict)
    continuity_locked: bool = False
    continuity_groups: Dict[str, List[ContinuityGroup]] = Field(default_factory=dict)
    continuity_generated: bool = False

    def all_shots(self) -> List[Shot]:
        """Shots of every scene, in scene order then shot order."""
        ordered: List[Shot] = []
        seen = set()
        for scene in self.scenes:
            ordered.extend(self.shots.get(scene.id, []))
            seen.add(scene.id)
        for scene_id, scene_shots in self.shots.items():
            if scene_id not in seen:
                ordered.extend(scene_shots)
        return ordered

    def to_payload(self) -> Dict[str, Any]:
        """Phase-3 fields owned by this slice (shot versions are added by the project)."""
        return {
            "scenes": [scene.to_wire() for scene in self.scenes],
            "shots": {
                scene_id: [shot.to_wire() for shot in scene_shots]
                for scene_id, scene_shots in self.shots.items()
            },
            "continuityLocked": self.continuity_locked,
            "continuityGroups": {
                scene_id: [group.to_wire() for group in groups]
                for scene_id, groups in self.continuity_groups.items()
            },
        }

    def restore_from(
        self,
        data: Mapping[str, Any],
        composition_data: Optional[Mapping[str, Any]] = None
    ) -> None:
        """
        Merge a persisted phase-3 snapshot.

        Scenes and shots saved with phase 4 carry per-shot model settings and
        win over the phase-3 copies when present and non-empty.

        Args:
            data: Persisted step-3 fields (camelCase)
            composition_data: Persisted step-4 fields, if any
        """
        composition_data = composition_data or {}

        step4_scenes = composition_data.get("scenes")
        if isinstance(step4_scenes, list) and step4_scenes:
            self.scenes = parse_items(Scene, step4_scenes, "scenes")
        elif isinstance(data.get("scenes"), list):
            self.scenes = parse_items(Scene, data["scenes"], "scenes")

        step4_shots = composition_data.get("shots")
        if isinstance(step4_shots, Mapping) and step4_shots:
            self.shots = parse_keyed(Shot, step4_shots, "shots")
        else:
            shots = parse_keyed(Shot, data.get("shots"), "shots")
            if shots is not None:
                self.shots = shots

        groups = parse_keyed(ContinuityGroup, data.get("continuityGroups"), "continuityGroups")
        if groups is not None:
            self.continuity_groups = groups

        if isinstance(data.get("continuityLocked"), bool):
            self.continuity_locked = data["continuityLocked"]

        if isinstance(data.get("continuityGenerated"), bool):
            self.continuity_generated = data["continuityGenerated"]


class CompositionData(PhaseRecord):
    """Phase 4: shot versions (generated prompts and media)."""

    shot_versions: Dict[str, List[ShotVersion]] = Field(default_factory=dict)
    # Highest version number ever issued per shot; numbers are never reused
    issued_versions: Dict[str, int] = Field(default_factory=dict)

    def versions_payload(self) -> Dict[str, Any]:
        return {
            shot_id: [version.to_wire() for version in versions]
            for shot_id, versions in self.shot_versions.items()
        }

    def replace_versions(self, versions: Dict[str, List[ShotVersion]]) -> None:
        """Replace the version map, keeping issued counters monotonic."""
        self.shot_versions = versions
        for shot_id, shot_versions in versions.items():
            highest = max((v.version_number for v in shot_versions), default=0)
            self.issued_versions[shot_id] = max(self.issued_versions.get(shot_id, 0), highest)

    def restore_from(self, data: Mapping[str, Any]) -> None:
        """
        Merge a persisted phase-4 snapshot.

        Args:
            data: Persisted step-4 fields (camelCase)
        """
        versions = parse_keyed(ShotVersion, data.get("shotVersions"), "shotVersions")
        if versions is not None:
            self.replace_versions(versions)


class ProjectState(BaseModel):
    """Aggregate root: every phase slice of one project."""

    project_id: Optional[str] = None
    atmosphere: AtmosphereConfig = Field(default_factory=AtmosphereConfig)
    visual_world: VisualWorldConfig = Field(default_factory=VisualWorldConfig)
    flow_design: FlowDesignData = Field(default_factory=FlowDesignData)
    composition: CompositionData = Field(default_factory=CompositionData)

    def payload_for_phase(self, phase: int) -> Dict[str, Any]:
        """
        Save body for a phase.

        Args:
            phase: Phase number (1-3)

        Returns:
            JSON-serializable request body

        Raises:
            KeyError: If the phase has no save contract
        """
        builders: Dict[int, Callable[[], Dict[str, Any]]] = {
            1: self.atmosphere.to_payload,
            2: self.visual_world.to_payload,
            3: self._flow_design_payload,
        }
        return builders[phase]()

    def _flow_design_payload(self) -> Dict[str, Any]:
        flow = self.flow_design.to_payload()
        return {
            "scenes": flow["scenes"],
            "shots": flow["shots"],
            "shotVersions": self.composition.versions_payload(),
            "continuityLocked": flow["continuityLocked"],
            "continuityGroups": flow["continuityGroups"],
        }
