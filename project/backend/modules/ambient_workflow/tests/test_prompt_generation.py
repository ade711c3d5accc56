"""
Tests for the prompt generation pipeline.
"""

import httpx
import pytest

from shared.errors import PartialPipelineError, PreconditionError, RemoteRejectionError
from shared.event_publisher import GENERATING_CHANGED, SCOPE_PROMPTS

from modules.ambient_workflow.store import StepDataStore
from modules.ambient_workflow.prompt_generation import (
    PromptGenerationOrchestrator,
    PromptGenerationResult,
)

GENERATE = "/projects/proj-1/generate-all-prompts"
ACTIVATE = "/projects/proj-1/step/4/continue"
PROJECT = "/projects/proj-1"


@pytest.fixture
def orchestrator(storyboard, api_client, publisher):
    return PromptGenerationOrchestrator(storyboard, api_client, publisher)


@pytest.fixture
def refetched_project():
    return {
        "id": "proj-1",
        "step3Data": {
            "shots": {
                "sc1": [
                    {"id": "sc1-sh1", "sceneId": "sc1", "shotNumber": 1, "currentVersionId": "v-a"},
                    {"id": "sc1-sh2", "sceneId": "sc1", "shotNumber": 2, "currentVersionId": "v-b"},
                ]
            }
        },
        "step4Data": {
            "shotVersions": {
                "sc1-sh1": [{"id": "v-a", "shotId": "sc1-sh1", "versionNumber": 1, "imagePrompt": "a"}],
                "sc1-sh2": [{"id": "v-b", "shotId": "sc1-sh2", "versionNumber": 1, "imagePrompt": "b"}],
            }
        },
    }


class TestPipeline:
    """Test the happy path."""

    @pytest.mark.asyncio
    async def test_stages_run_in_order(self, orchestrator, server, refetched_project):
        """Test generate, activate, refetch ordering and the merged result."""
        server.reply("POST", GENERATE, 200, {"promptsGenerated": 2, "totalCost": 0.0123})
        server.reply("GET", PROJECT, 200, refetched_project)

        result = await orchestrator.generate_all_prompts("proj-1")

        assert server.calls == [f"POST {GENERATE}", f"PATCH {ACTIVATE}", f"GET {PROJECT}"]
        assert server.requests[1].content == b""
        assert isinstance(result, PromptGenerationResult)
        assert result.prompts_generated == 2
        assert result.summary() == "Generated prompts for 2 shots. Cost: $0.0123"
        assert orchestrator.store.find_shot("sc1-sh1").current_version_id == "v-a"
        assert orchestrator.store.versions_for("sc1-sh2")[0].image_prompt == "b"
        assert orchestrator.orphaned_generations == set()

    @pytest.mark.asyncio
    async def test_missing_cost(self, orchestrator, server):
        """Test that a response without cost still summarizes."""
        server.reply("POST", GENERATE, 200, {"promptsGenerated": 3})
        server.reply("GET", PROJECT, 200, {"id": "proj-1"})

        result = await orchestrator.generate_all_prompts()

        assert result.total_cost is None
        assert result.summary().endswith("Cost: $0.0000")

    @pytest.mark.asyncio
    async def test_generating_flag(self, orchestrator, server, events):
        server.reply("GET", PROJECT, 200, {})
        await orchestrator.generate_all_prompts()
        changes = [data for event_type, data in events if event_type == GENERATING_CHANGED]
        assert changes == [
            {"scope": SCOPE_PROMPTS, "generating": True},
            {"scope": SCOPE_PROMPTS, "generating": False},
        ]


class TestPipelineFailures:
    """Test partial failures."""

    @pytest.mark.asyncio
    async def test_generation_rejected(self, orchestrator, server):
        """Test that a rejected generation stops before activation."""
        server.reply("POST", GENERATE, 500, {"error": "Agent unavailable"})

        with pytest.raises(RemoteRejectionError) as exc_info:
            await orchestrator.generate_all_prompts()

        assert exc_info.value.message == "Agent unavailable"
        assert exc_info.value.status_code == 500
        assert server.calls == [f"POST {GENERATE}"]
        assert orchestrator.orphaned_generations == set()
        assert orchestrator.is_generating is False

    @pytest.mark.asyncio
    async def test_activation_failure_marks_orphan(self, orchestrator, server):
        """Test that generated-but-not-activated prompts are flagged."""
        server.on("PATCH", ACTIVATE, httpx.Response(500))

        with pytest.raises(PartialPipelineError) as exc_info:
            await orchestrator.generate_all_prompts()

        assert exc_info.value.stage == "activate"
        assert exc_info.value.message == "Failed to activate Phase 4"
        assert orchestrator.orphaned_generations == {"proj-1"}
        assert f"GET {PROJECT}" not in server.calls

    @pytest.mark.asyncio
    async def test_refetch_failure_marks_orphan(self, orchestrator, server):
        """Test that a failed refetch counts as a pipeline failure."""
        server.reply("GET", PROJECT, 404, {"error": "Video not found"})

        with pytest.raises(PartialPipelineError) as exc_info:
            await orchestrator.generate_all_prompts()

        assert exc_info.value.stage == "refetch"
        assert orchestrator.orphaned_generations == {"proj-1"}

    @pytest.mark.asyncio
    async def test_successful_retry_clears_orphan(self, orchestrator, server):
        """Test that the next complete run clears the orphan mark."""
        server.on("PATCH", ACTIVATE, httpx.Response(500))
        with pytest.raises(PartialPipelineError):
            await orchestrator.generate_all_prompts()

        server.routes.pop(("PATCH", ACTIVATE))
        server.reply("GET", PROJECT, 200, {})
        await orchestrator.generate_all_prompts()

        assert orchestrator.orphaned_generations == set()

    @pytest.mark.asyncio
    async def test_placeholder_project_refused(self, api_client, publisher, server):
        orchestrator = PromptGenerationOrchestrator(StepDataStore(project_id="new"), api_client, publisher)
        with pytest.raises(PreconditionError):
            await orchestrator.generate_all_prompts()
        assert server.requests == []
