"""
Tests for the per-phase validation gate and continuity manager.
"""

import pytest

from shared.errors import ValidationError
from shared.models.storyboard import ContinuityGroup

from modules.ambient_workflow.continuity import ContinuityManager
from modules.ambient_workflow.validation_gate import can_advance


@pytest.fixture
def continuity(storyboard):
    return ContinuityManager(storyboard)


class TestAtmosphereGate:
    """Test the phase 1 gate."""

    def test_blocked_without_description(self, store):
        assert can_advance(1, store) is False

    def test_blocked_with_whitespace_description(self, store):
        store.update_atmosphere(mood_description="   ")
        assert can_advance(1, store) is False

    def test_open_with_fresh_description(self, ready_atmosphere):
        assert can_advance(1, ready_atmosphere) is True

    def test_blocked_after_snapshot_setting_change(self, ready_atmosphere):
        """Test that changing theme after generation requires regeneration."""
        ready_atmosphere.update_atmosphere(theme="cosmic")
        assert can_advance(1, ready_atmosphere) is False

    def test_reopens_when_setting_reverted(self, ready_atmosphere):
        ready_atmosphere.update_atmosphere(theme="cosmic")
        ready_atmosphere.update_atmosphere(theme="nature")
        assert can_advance(1, ready_atmosphere) is True


class TestFlowDesignGate:
    """Test the phase 3 gate."""

    def test_image_reference_mode_always_passes(self, storyboard):
        storyboard.update_atmosphere(video_generation_mode="image-reference")
        assert can_advance(3, storyboard) is True

    def test_start_end_frame_requires_continuity(self, storyboard):
        storyboard.update_atmosphere(video_generation_mode="start-end-frame")
        assert can_advance(3, storyboard) is False

    def test_approved_and_locked_passes(self, approved_continuity):
        approved_continuity.update_atmosphere(video_generation_mode="start-end-frame")
        assert can_advance(3, approved_continuity) is True

    def test_unlocked_blocks(self, approved_continuity):
        approved_continuity.flow_design.continuity_locked = False
        assert can_advance(3, approved_continuity) is False

    def test_pending_proposal_blocks(self, approved_continuity):
        """Test that any group still in review blocks the phase."""
        approved_continuity.flow_design.continuity_groups["sc1"].append(
            ContinuityGroup(id="g2", scene_id="sc1", group_number=2, shot_ids=["sc1-sh2"])
        )
        assert can_advance(3, approved_continuity) is False

    def test_locked_without_groups_blocks(self, storyboard):
        storyboard.flow_design.continuity_locked = True
        assert can_advance(3, storyboard) is False

    @pytest.mark.parametrize("phase", [2, 4, 5, 6])
    def test_other_phases_always_pass(self, store, phase):
        assert can_advance(phase, store) is True


class TestContinuityManager:
    """Test continuity group handling."""

    def test_lock_is_idempotent(self, continuity, storyboard):
        """Test that locking twice notifies only once."""
        topics = []
        storyboard.subscribe(topics.append)

        continuity.lock()
        continuity.lock()

        assert continuity.is_locked is True
        assert topics == ["continuity"]

    def test_merge_groups_verbatim(self, continuity):
        """Test that merged groups keep the status they arrive with."""
        continuity.merge_groups({
            "sc1": [
                {"id": "g1", "sceneId": "sc1", "shotIds": ["sc1-sh1", "sc1-sh2"], "status": "approved"},
                {"id": "g2", "sceneId": "sc1", "shotIds": ["sc1-sh2"]},
            ]
        })

        assert continuity.approved_count == 1
        assert continuity.proposed_count == 1
        assert continuity.has_continuity_data is True

    def test_merge_keeps_other_scenes(self, continuity):
        continuity.merge_groups({"sc1": [ContinuityGroup(id="g1", scene_id="sc1")]})
        continuity.merge_groups({"sc2": [ContinuityGroup(id="g2", scene_id="sc2")]})
        assert set(continuity.groups) == {"sc1", "sc2"}

    def test_merge_rejects_malformed(self, continuity):
        with pytest.raises(ValidationError):
            continuity.merge_groups({"sc1": [{"shotIds": "oops"}]})

    def test_approve_group(self, continuity):
        continuity.merge_groups({"sc1": [{"id": "g1", "sceneId": "sc1"}]})
        assert continuity.approve_group("sc1", "g1") is True
        assert continuity.groups["sc1"][0].approved_at is not None
        assert continuity.approve_group("sc1", "missing") is False

    def test_complete_requires_all(self, continuity):
        continuity.merge_groups({"sc1": [{"id": "g1", "sceneId": "sc1", "status": "approved"}]})
        assert continuity.is_complete() is False
        continuity.lock()
        assert continuity.is_complete() is True

    def test_mark_generated(self, continuity, storyboard):
        assert continuity.has_continuity_data is False
        continuity.mark_generated()
        assert storyboard.flow_design.continuity_generated is True
        assert continuity.has_continuity_data is True
        assert continuity.is_complete() is False
