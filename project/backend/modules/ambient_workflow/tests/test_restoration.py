"""
Tests for restoring persisted phase snapshots.
"""

import pytest

from shared.event_publisher import RESTORATION_COMPLETED

from modules.ambient_workflow.restoration import RestorationLoader, RestorationStatus


@pytest.fixture
def step1():
    return {
        "mood": "mysterious",
        "theme": "urban",
        "timeContext": "night",
        "season": "winter",
        "duration": "5min",
        "moodDescription": "Rain-slick streets under neon.",
        "pacing": 60,
        "loopMode": False,
        "userStory": "",
    }


@pytest.fixture
def step2():
    return {
        "artStyle": "anime",
        "visualElements": ["rain", "neon"],
        "referenceImages": ["https://cdn/a.png", "https://cdn/b.png"],
    }


@pytest.fixture
def step3():
    return {
        "scenes": [{"id": "sc1", "videoId": "proj-1", "sceneNumber": 1, "title": "Alley"}],
        "shots": {"sc1": [{"id": "sh1", "sceneId": "sc1", "shotNumber": 1}]},
        "continuityLocked": True,
        "continuityGroups": {
            "sc1": [{"id": "g1", "sceneId": "sc1", "shotIds": ["sh1"], "status": "approved"}]
        },
    }


@pytest.fixture
def step4():
    return {
        "shotVersions": {
            "sh1": [{"id": "v1", "shotId": "sh1", "versionNumber": 3, "imagePrompt": "neon alley"}]
        }
    }


@pytest.fixture
def loader(store, publisher):
    return RestorationLoader(store, publisher)


class TestRestorationOrder:
    """Test ordering and deferral."""

    def test_full_delivery_restores_all_phases(self, loader, store, step1, step2, step3, step4):
        """Test restoring every phase in one delivery."""
        loader.deliver("proj-1", step1, step2, step3, step4)

        assert all(loader.is_restored(phase) for phase in (1, 2, 3, 4))
        assert store.atmosphere.mood == "mysterious"
        assert store.atmosphere.mood_description == "Rain-slick streets under neon."
        assert store.atmosphere.pacing == 60
        assert store.atmosphere.loop_mode is False
        assert store.visual_world.art_style == "anime"
        assert [img.temp_id for img in store.visual_world.reference_images] == ["restored-0", "restored-1"]
        assert store.flow_design.continuity_locked is True
        assert store.find_shot("sh1") is not None
        assert store.versions_for("sh1")[0].version_number == 3

    def test_restored_description_is_not_stale(self, loader, store, step1):
        """Test that a restored description counts as matching its settings."""
        loader.deliver("proj-1", step1)
        assert not store.atmosphere.settings_changed_since_description()

    def test_empty_strings_keep_defaults(self, loader, store, step1):
        """Test that empty persisted strings do not overwrite defaults."""
        step1["theme"] = ""
        loader.deliver("proj-1", step1)
        assert store.atmosphere.theme == "nature"
        assert store.atmosphere.user_story == ""

    def test_later_phases_wait_for_phase_one(self, loader, store, step1, step2, step3):
        """Test that phase 2/3 snapshots delivered first are deferred."""
        loader.deliver("proj-1", step2=step2, step3=step3)

        assert loader.status[2] == RestorationStatus.NOT_STARTED
        assert loader.status[3] == RestorationStatus.NOT_STARTED
        assert store.visual_world.art_style == "cinematic"

        loader.deliver("proj-1", step1=step1)

        assert loader.is_restored(1)
        assert loader.is_restored(2)
        assert loader.is_restored(3)
        assert store.visual_world.art_style == "anime"

    def test_phase_four_waits_for_phase_three(self, loader, store, step1, step4):
        """Test that version snapshots wait until scenes are restored."""
        loader.deliver("proj-1", step1, step4=step4)
        assert not loader.is_restored(4)
        assert store.composition.shot_versions == {}

    def test_empty_phase_four_marks_restored(self, loader, step1, step3):
        """Test that an absent phase-4 snapshot completes phase 4 restoration."""
        loader.deliver("proj-1", step1, step3=step3)
        assert loader.is_restored(4)

    def test_phase_four_scenes_win(self, loader, store, step1, step3):
        """Test that scenes saved with phase 4 take precedence."""
        step4 = {
            "scenes": [{"id": "sc1", "videoId": "proj-1", "sceneNumber": 1, "title": "Alley", "videoModel": "kling"}],
            "shots": {"sc1": [{"id": "sh1", "sceneId": "sc1", "shotNumber": 1, "imageModel": "flux"}]},
        }
        loader.deliver("proj-1", step1, step3=step3, step4=step4)

        assert store.flow_design.scenes[0].video_model == "kling"
        assert store.find_shot("sh1").image_model == "flux"

    def test_events_emitted_in_phase_order(self, loader, events, step1, step2, step3, step4):
        """Test that restoration_completed is published once per phase."""
        loader.deliver("proj-1", step1, step2, step3, step4)
        loader.deliver("proj-1", step1, step2, step3, step4)

        phases = [data["phase"] for event_type, data in events if event_type == RESTORATION_COMPLETED]
        assert phases == [1, 2, 3, 4]


class TestIdempotence:
    """Test re-delivery and project changes."""

    def test_redelivery_does_not_overwrite_edits(self, loader, store, step1):
        """Test that a restored phase ignores later snapshots."""
        loader.deliver("proj-1", step1)
        store.update_atmosphere(mood="calm")

        loader.deliver("proj-1", dict(step1, mood="dark"))

        assert store.atmosphere.mood == "calm"

    def test_missing_project_id_ignored(self, loader, step1):
        """Test that deliveries without a project ID are dropped."""
        loader.deliver(None, step1)
        assert not loader.is_restored(1)

    def test_project_change_resets(self, loader, store, step1, step2):
        """Test that a new project ID restarts restoration on a fresh store."""
        loader.deliver("proj-1", step1, step2)
        loader.deliver("proj-2", {"mood": "energetic"})

        assert store.project_id == "proj-2"
        assert loader.is_restored(1)
        assert not loader.is_restored(2)
        assert store.atmosphere.mood == "energetic"
        assert store.visual_world.art_style == "cinematic"

    def test_malformed_fields_skipped(self, loader, store, step1):
        """Test that invalid values keep defaults instead of failing."""
        step1["loopType"] = "spiral"
        step1["pacing"] = "fast"
        loader.deliver("proj-1", step1)

        assert loader.is_restored(1)
        assert store.atmosphere.loop_type == "seamless"
        assert store.atmosphere.pacing == 30
