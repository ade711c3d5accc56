"""
Prompt generation orchestrator.

Runs the three-stage pipeline that leaves the flow design phase in video
animation mode: generate all shot prompts, activate phase 4, then refetch
the project and merge the generated shots and versions into the store.

The stages are not atomic on the server. If generation succeeded but a
later stage fails, the project is recorded in ``orphaned_generations`` so
the host can offer a refetch; the next successful run clears the mark.
"""

from typing import Optional, Set

from pydantic import BaseModel

from shared.api_client import WorkflowApiClient
from shared.errors import PartialPipelineError, WorkflowError
from shared.event_publisher import EventPublisher, GENERATING_CHANGED, SCOPE_PROMPTS
from shared.logging import get_logger, set_project_id
from shared.models.phases import parse_keyed
from shared.models.storyboard import Shot, ShotVersion
from shared.validation import validate_project_id

from modules.ambient_workflow.store import StepDataStore

logger = get_logger("ambient_workflow")

STAGE_GENERATE = "generate"
STAGE_ACTIVATE = "activate"
STAGE_REFETCH = "refetch"
STAGE_COMPLETE = "complete"


class PromptGenerationResult(BaseModel):
    """Outcome of a completed prompt pipeline."""

    prompts_generated: int = 0
    total_cost: Optional[float] = None
    stage: str = STAGE_COMPLETE

    def summary(self) -> str:
        """User-facing summary line."""
        cost = self.total_cost if self.total_cost is not None else 0.0
        return f"Generated prompts for {self.prompts_generated} shots. Cost: ${cost:.4f}"


class PromptGenerationOrchestrator:
    """Generate, activate, then refetch: the shot prompt pipeline."""

    def __init__(
        self,
        store: StepDataStore,
        api_client: WorkflowApiClient,
        publisher: EventPublisher
    ):
        self.store = store
        self.api_client = api_client
        self.publisher = publisher
        self.orphaned_generations: Set[str] = set()
        self._generating = False

    @property
    def is_generating(self) -> bool:
        return self._generating

    def _set_generating(self, value: bool) -> None:
        if self._generating == value:
            return
        self._generating = value
        self.publisher.emit(
            self.store.project_id, GENERATING_CHANGED, {"scope": SCOPE_PROMPTS, "generating": value}
        )

    async def generate_all_prompts(self, project_id: Optional[str] = None) -> PromptGenerationResult:
        """
        Run the prompt pipeline for a project.

        Args:
            project_id: Project ID (defaults to the store's)

        Returns:
            PromptGenerationResult for a fully completed run

        Raises:
            PreconditionError: If the project ID is missing
            RemoteRejectionError: If the generation stage is rejected
            RetryableError: If the generation stage hits a transport failure
            PartialPipelineError: If activation or refetch fails after generation
        """
        project_id = validate_project_id(project_id or self.store.project_id)
        set_project_id(project_id)

        self._set_generating(True)
        try:
            logger.info("Generating prompts for all shots")
            generated = await self.api_client.generate_all_prompts(project_id)
            self.orphaned_generations.add(project_id)

            try:
                await self.api_client.activate_phase(project_id, 4)
            except WorkflowError as e:
                logger.error(f"Prompt pipeline stopped at activation: {e.message}")
                raise PartialPipelineError(
                    e.message, stage=STAGE_ACTIVATE, project_id=project_id
                ) from e

            try:
                project = await self.api_client.get_project(project_id)
            except WorkflowError as e:
                logger.error(f"Prompt pipeline stopped at refetch: {e.message}")
                raise PartialPipelineError(
                    e.message, stage=STAGE_REFETCH, project_id=project_id
                ) from e

            self._merge_project(project)
            self.orphaned_generations.discard(project_id)

            result = PromptGenerationResult(
                prompts_generated=int(generated.get("promptsGenerated") or 0),
                total_cost=generated.get("totalCost"),
            )
            logger.info(
                "Prompt pipeline completed",
                extra={"prompts_generated": result.prompts_generated, "total_cost": result.total_cost}
            )
            return result
        finally:
            self._set_generating(False)

    def _merge_project(self, project: dict) -> None:
        """Merge refetched phase-3 shots and phase-4 versions into the store."""
        step3 = project.get("step3Data") or {}
        step4 = project.get("step4Data") or {}

        shots = parse_keyed(Shot, step3.get("shots"), "shots")
        if shots is not None:
            self.store.replace_shots(shots)

        versions = parse_keyed(ShotVersion, step4.get("shotVersions"), "shotVersions")
        if versions is not None:
            self.store.replace_shot_versions(versions)
