"""
Step data store.

Single mutable source of truth for every phase field of the open project.
Consumers read and write the phase records directly and call
``notify_changed``; the helpers below cover the storyboard edits the
presentational layer performs and keep sequence numbers contiguous and
version numbers monotonic.
"""

import uuid
from typing import Any, Callable, Dict, List, Optional

from shared.logging import get_logger
from shared.models.phases import (
    AtmosphereConfig,
    CompositionData,
    FlowDesignData,
    ProjectState,
    VisualWorldConfig,
)
from shared.models.storyboard import (
    Scene,
    Shot,
    ShotVersion,
    utcnow,
)

logger = get_logger("ambient_workflow")

ChangeListener = Callable[[str], None]

# Change topics
ATMOSPHERE = "atmosphere"
VISUAL_WORLD = "visual_world"
FLOW_DESIGN = "flow_design"
CONTINUITY = "continuity"
COMPOSITION = "composition"
MODEL_SETTINGS = "model_settings"
RESET = "reset"

# Shot/scene fields whose change triggers the composition settings autosave
_MODEL_FIELDS = ("image_model", "video_model")


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class StepDataStore:
    """In-memory state container for one project."""

    def __init__(
        self,
        project_id: Optional[str] = None,
        initial_animation_mode: str = "image-transitions",
        initial_video_generation_mode: Optional[str] = None,
        id_factory: Callable[[str], str] = _new_id
    ):
        """
        Initialize the store.

        Args:
            project_id: Project ID, if already known
            initial_animation_mode: Animation mode chosen during onboarding
            initial_video_generation_mode: Video generation mode chosen during onboarding
            id_factory: Builds local IDs from a prefix ("scene", "shot", "version")
        """
        self.initial_animation_mode = initial_animation_mode
        self.initial_video_generation_mode = initial_video_generation_mode
        self.id_factory = id_factory
        self._listeners: List[ChangeListener] = []
        self.state = self._fresh_state(project_id)

    def _fresh_state(self, project_id: Optional[str]) -> ProjectState:
        return ProjectState(
            project_id=project_id,
            atmosphere=AtmosphereConfig(
                animation_mode=self.initial_animation_mode,
                video_generation_mode=self.initial_video_generation_mode,
            ),
        )

    # ------------------------------------------------------------------
    # Access and change notification
    # ------------------------------------------------------------------

    @property
    def project_id(self) -> Optional[str]:
        return self.state.project_id

    @property
    def atmosphere(self) -> AtmosphereConfig:
        return self.state.atmosphere

    @property
    def visual_world(self) -> VisualWorldConfig:
        return self.state.visual_world

    @property
    def flow_design(self) -> FlowDesignData:
        return self.state.flow_design

    @property
    def composition(self) -> CompositionData:
        return self.state.composition

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Register a change listener.

        Args:
            listener: Called with the change topic after each mutation

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify_changed(self, topic: str) -> None:
        """Tell dependents that a slice of the state changed."""
        for listener in list(self._listeners):
            listener(topic)

    def reset(self, project_id: Optional[str]) -> None:
        """Discard all state and start over for another project."""
        logger.info("Resetting step data", extra={"project_id": project_id})
        self.state = self._fresh_state(project_id)
        self.notify_changed(RESET)

    def update_atmosphere(self, **changes: Any) -> None:
        """Set phase-1 fields by attribute name."""
        for name, value in changes.items():
            setattr(self.state.atmosphere, name, value)
        self.notify_changed(ATMOSPHERE)

    def update_visual_world(self, **changes: Any) -> None:
        """Set phase-2 fields by attribute name."""
        for name, value in changes.items():
            setattr(self.state.visual_world, name, value)
        self.notify_changed(VISUAL_WORLD)

    def set_mood_description(self, description: str) -> None:
        """
        Set the concept description.

        A non-empty description captures the current atmosphere settings as
        its snapshot; clearing the description clears the snapshot.

        Args:
            description: New description text
        """
        atmosphere = self.state.atmosphere
        atmosphere.mood_description = description
        if description.strip():
            atmosphere.description_snapshot = atmosphere.capture_snapshot()
        else:
            atmosphere.description_snapshot = None
        self.notify_changed(ATMOSPHERE)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def all_shots(self) -> List[Shot]:
        return self.state.flow_design.all_shots()

    def find_scene(self, scene_id: str) -> Optional[Scene]:
        for scene in self.state.flow_design.scenes:
            if scene.id == scene_id:
                return scene
        return None

    def find_shot(self, shot_id: str) -> Optional[Shot]:
        for scene_shots in self.state.flow_design.shots.values():
            for shot in scene_shots:
                if shot.id == shot_id:
                    return shot
        return None

    def versions_for(self, shot_id: str) -> List[ShotVersion]:
        return self.state.composition.shot_versions.get(shot_id, [])

    # ------------------------------------------------------------------
    # Scenes
    # ------------------------------------------------------------------

    def apply_generated_scenes(
        self,
        scenes: List[Scene],
        shots: Dict[str, List[Shot]],
        shot_versions: Optional[Dict[str, List[ShotVersion]]] = None
    ) -> None:
        """Replace the storyboard with scenes produced by the flow design generator."""
        flow = self.state.flow_design
        flow.scenes = list(scenes)
        flow.shots = {scene_id: list(scene_shots) for scene_id, scene_shots in shots.items()}
        if shot_versions is not None:
            self.state.composition.replace_versions(
                {shot_id: list(versions) for shot_id, versions in shot_versions.items()}
            )
        self.notify_changed(FLOW_DESIGN)

    def _renumber_scenes(self) -> None:
        for index, scene in enumerate(self.state.flow_design.scenes):
            scene.scene_number = index + 1

    def _renumber_shots(self, scene_id: str) -> None:
        for index, shot in enumerate(self.state.flow_design.shots.get(scene_id, [])):
            shot.shot_number = index + 1

    def add_scene(self, after_index: int) -> Scene:
        """
        Insert a new scene after the scene at ``after_index`` (-1 for first).

        Args:
            after_index: 0-based index of the preceding scene

        Returns:
            The new scene
        """
        flow = self.state.flow_design
        position = max(0, min(after_index + 1, len(flow.scenes)))
        scene = Scene(
            id=self.id_factory("scene"),
            video_id=self.project_id or "",
            scene_number=position + 1,
            title="New Scene",
            description="New scene description",
            duration=10,
        )
        flow.scenes.insert(position, scene)
        flow.shots[scene.id] = []
        self._renumber_scenes()
        self.notify_changed(FLOW_DESIGN)
        return scene

    def delete_scene(self, scene_id: str) -> bool:
        """
        Delete a scene with its shots, their versions and its continuity groups.

        Returns:
            True if the scene existed
        """
        flow = self.state.flow_design
        remaining = [scene for scene in flow.scenes if scene.id != scene_id]
        if len(remaining) == len(flow.scenes) and scene_id not in flow.shots:
            return False
        flow.scenes = remaining
        for shot in flow.shots.pop(scene_id, []):
            self.state.composition.shot_versions.pop(shot.id, None)
        flow.continuity_groups.pop(scene_id, None)
        self._renumber_scenes()
        self.notify_changed(FLOW_DESIGN)
        return True

    def update_scene(self, scene_id: str, **updates: Any) -> bool:
        """
        Update scene fields by attribute name.

        Returns:
            True if the scene was found
        """
        scene = self.find_scene(scene_id)
        if scene is None:
            return False
        for name, value in updates.items():
            setattr(scene, name, value)
        self.notify_changed(FLOW_DESIGN)
        if any(name in updates for name in _MODEL_FIELDS):
            self.notify_changed(MODEL_SETTINGS)
        return True

    # ------------------------------------------------------------------
    # Shots
    # ------------------------------------------------------------------

    def add_shot(self, scene_id: str, after_index: int) -> Shot:
        """
        Insert a new shot into a scene after the shot at ``after_index``.

        Args:
            scene_id: Owning scene
            after_index: 0-based index of the preceding shot (-1 for first)

        Returns:
            The new shot
        """
        scene_shots = self.state.flow_design.shots.setdefault(scene_id, [])
        position = max(0, min(after_index + 1, len(scene_shots)))
        shot = Shot(
            id=self.id_factory("shot"),
            scene_id=scene_id,
            shot_number=position + 1,
            description="New shot",
            duration=5,
        )
        scene_shots.insert(position, shot)
        self._renumber_shots(scene_id)
        self.notify_changed(FLOW_DESIGN)
        return shot

    def delete_shot(self, shot_id: str) -> bool:
        """
        Delete a shot and all of its versions.

        The shot is also removed from continuity groups; groups left empty
        are dropped.

        Returns:
            True if the shot existed
        """
        flow = self.state.flow_design
        found = False
        for scene_id, scene_shots in flow.shots.items():
            remaining = [shot for shot in scene_shots if shot.id != shot_id]
            if len(remaining) != len(scene_shots):
                flow.shots[scene_id] = remaining
                self._renumber_shots(scene_id)
                found = True
        if not found:
            return False

        self.state.composition.shot_versions.pop(shot_id, None)

        groups_changed = False
        for scene_id, groups in flow.continuity_groups.items():
            kept = []
            for group in groups:
                if shot_id in group.shot_ids:
                    group.shot_ids = [sid for sid in group.shot_ids if sid != shot_id]
                    groups_changed = True
                if group.shot_ids:
                    kept.append(group)
            flow.continuity_groups[scene_id] = kept

        self.notify_changed(FLOW_DESIGN)
        if groups_changed:
            self.notify_changed(CONTINUITY)
        return True

    def update_shot(self, shot_id: str, **updates: Any) -> bool:
        """
        Update shot fields by attribute name.

        Returns:
            True if the shot was found
        """
        shot = self.find_shot(shot_id)
        if shot is None:
            return False
        for name, value in updates.items():
            setattr(shot, name, value)
        shot.updated_at = utcnow()
        self.notify_changed(FLOW_DESIGN)
        if any(name in updates for name in _MODEL_FIELDS):
            self.notify_changed(MODEL_SETTINGS)
        return True

    def reorder_shots(self, scene_id: str, shot_ids: List[str]) -> None:
        """
        Reorder the shots of a scene.

        Unknown IDs are ignored; shots not listed keep their relative order
        after the listed ones. Use delete_shot to remove a shot.

        Args:
            scene_id: Scene to reorder
            shot_ids: Shot IDs in their new order
        """
        current = self.state.flow_design.shots.get(scene_id, [])
        by_id = {shot.id: shot for shot in current}
        listed = [by_id.pop(sid) for sid in dict.fromkeys(shot_ids) if sid in by_id]
        self.state.flow_design.shots[scene_id] = listed + [
            shot for shot in current if shot.id in by_id
        ]
        self._renumber_shots(scene_id)
        self.notify_changed(FLOW_DESIGN)

    def replace_shots(self, shots: Dict[str, List[Shot]]) -> None:
        """Overwrite the shot map with the server's copy."""
        self.state.flow_design.shots = shots
        self.notify_changed(FLOW_DESIGN)

    # ------------------------------------------------------------------
    # Shot versions
    # ------------------------------------------------------------------

    def _next_version_number(self, shot_id: str) -> int:
        composition = self.state.composition
        existing = max((v.version_number for v in self.versions_for(shot_id)), default=0)
        return max(existing, composition.issued_versions.get(shot_id, 0)) + 1

    def add_shot_version(self, shot_id: str, **fields: Any) -> ShotVersion:
        """
        Append a new version to a shot and make it current.

        Args:
            shot_id: Owning shot
            **fields: ShotVersion attributes (prompts, URLs, status)

        Returns:
            The new version
        """
        number = self._next_version_number(shot_id)
        version = ShotVersion(
            id=fields.pop("id", None) or self.id_factory("version"),
            shot_id=shot_id,
            version_number=number,
            **fields
        )
        composition = self.state.composition
        composition.shot_versions.setdefault(shot_id, []).append(version)
        composition.issued_versions[shot_id] = number

        shot = self.find_shot(shot_id)
        if shot is not None:
            shot.current_version_id = version.id
        self.notify_changed(COMPOSITION)
        return version

    def update_shot_version(self, shot_id: str, version_id: str, **updates: Any) -> bool:
        """
        Update version fields by attribute name.

        Returns:
            True if the version was found
        """
        for version in self.versions_for(shot_id):
            if version.id == version_id:
                for name, value in updates.items():
                    setattr(version, name, value)
                self.notify_changed(COMPOSITION)
                return True
        return False

    def merge_shot_version(self, version: ShotVersion) -> None:
        """Replace a version with the server's copy, or append it if unknown."""
        composition = self.state.composition
        versions = composition.shot_versions.setdefault(version.shot_id, [])
        for index, existing in enumerate(versions):
            if existing.id == version.id:
                versions[index] = version
                break
        else:
            versions.append(version)
        composition.issued_versions[version.shot_id] = max(
            composition.issued_versions.get(version.shot_id, 0),
            version.version_number,
        )
        self.notify_changed(COMPOSITION)

    def replace_shot_versions(self, versions: Dict[str, List[ShotVersion]]) -> None:
        """Overwrite the version map with the server's copy."""
        self.state.composition.replace_versions(versions)
        self.notify_changed(COMPOSITION)

    def select_version(self, shot_id: str, version_id: str) -> bool:
        """
        Make a version the shot's current one.

        Returns:
            True if both shot and version exist
        """
        shot = self.find_shot(shot_id)
        if shot is None or not any(v.id == version_id for v in self.versions_for(shot_id)):
            return False
        shot.current_version_id = version_id
        self.notify_changed(FLOW_DESIGN)
        return True

    def delete_version(self, shot_id: str, version_id: str) -> bool:
        """
        Delete a version.

        When the deleted version was current, the highest-numbered remaining
        version becomes current, or the pointer is cleared if none remain.

        Returns:
            True if the version existed
        """
        versions = self.versions_for(shot_id)
        remaining = [v for v in versions if v.id != version_id]
        if len(remaining) == len(versions):
            return False
        self.state.composition.shot_versions[shot_id] = remaining

        shot = self.find_shot(shot_id)
        if shot is not None and shot.current_version_id == version_id:
            latest = max(remaining, key=lambda v: v.version_number, default=None)
            shot.current_version_id = latest.id if latest is not None else None
        self.notify_changed(COMPOSITION)
        return True
