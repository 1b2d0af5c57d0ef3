"""Fixed-stage project pipeline: one meeting per SDLC stage, each stage's summary feeding the next."""

import logging
import re
import time
from collections.abc import Sequence

from cram.errors import PipelineStageFailed
from cram.events import (
    FILE_GENERATED,
    PIPELINE_COMPLETED,
    PIPELINE_STAGE_COMPLETED,
    PIPELINE_STAGE_STARTED,
    PIPELINE_STARTED,
    Emit,
    null_emit,
)
from cram.meeting import MeetingRoom
from cram.models import (
    GeneratedFile,
    MeetingAgenda,
    MeetingResult,
    PipelineResult,
    SDLCStage,
    StageResult,
    TokenUsage,
    new_id,
)
from cram.roles import STAGE_CONFIGS, StageConfig

logger = logging.getLogger(__name__)

# ```lang\n// file: path\n...``` or with a "#" comment for scripting languages
_FILE_BLOCK_RE = re.compile(r"```(\w+)?[ \t]*\n(?://|#)\s*file:\s*(.+?)\n([\s\S]*?)```")


def extract_generated_files(meeting: MeetingResult) -> list[GeneratedFile]:
    """Code blocks whose first line names a file path become GeneratedFile records."""
    return [
        GeneratedFile(
            path=match.group(2).strip(),
            content=match.group(3).strip(),
            language=match.group(1) or "text",
            generated_by=turn.role,
        )
        for turn in meeting.turns
        for match in _FILE_BLOCK_RE.finditer(turn.message)
    ]


def stage_agenda(
    stage: StageConfig,
    project_name: str,
    project_description: str,
    context: str,
    max_turns: int,
) -> MeetingAgenda:
    return MeetingAgenda(
        title=f"{stage.name}: {project_name}",
        description=f"{stage.description}\n\nProject: {project_name}\n{project_description}",
        type=stage.meeting_type,
        participants=stage.participants,
        leader=stage.lead_roles[0],
        max_turns=max_turns,
        context=context,
    )


class ProjectPipeline:
    """Runs every configured stage in order through the meeting room."""

    def __init__(
        self,
        meeting_room: MeetingRoom,
        max_turns: int,
        emit: Emit = null_emit,
        stages: Sequence[StageConfig] = STAGE_CONFIGS,
    ) -> None:
        self._meeting_room = meeting_room
        self._max_turns = max_turns
        self._emit = emit
        self._stages = tuple(stages)

    async def run(self, project_name: str, project_description: str) -> PipelineResult:
        """Run the full pipeline.

        Raises:
            PipelineStageFailed: A stage's meeting failed; later stages never run.
        """
        pipeline_id = new_id()
        started = time.monotonic()
        stage_results: list[StageResult] = []
        all_files: list[GeneratedFile] = []
        context = project_description

        logger.info('Starting project pipeline: "%s" (%d stages)', project_name, len(self._stages))
        self._emit(PIPELINE_STARTED, {"pipelineId": pipeline_id, "projectName": project_name})

        for stage in self._stages:
            logger.info("Pipeline stage: %s", stage.name)
            self._emit(PIPELINE_STAGE_STARTED, {
                "pipelineId": pipeline_id,
                "stage": stage.stage.value,
                "name": stage.name,
            })
            agenda = stage_agenda(stage, project_name, project_description, context, self._max_turns)
            try:
                meeting = await self._meeting_room.run_meeting(agenda)
            except Exception as exc:
                logger.error("Stage %s failed: %s", stage.name, exc)
                raise PipelineStageFailed(stage.stage.value, exc) from exc

            files: list[GeneratedFile] = []
            if stage.stage == SDLCStage.IMPLEMENTATION:
                files = extract_generated_files(meeting)
                for generated in files:
                    self._emit(FILE_GENERATED, {"pipelineId": pipeline_id, "file": generated})
            all_files.extend(files)

            stage_results.append(
                StageResult(
                    stage=stage.stage,
                    meeting=meeting,
                    generated_files=tuple(files),
                    duration_sec=meeting.duration_sec,
                )
            )
            context += f"\n\n## {stage.name} Results\n{meeting.summary}"

            self._emit(PIPELINE_STAGE_COMPLETED, {
                "pipelineId": pipeline_id,
                "stage": stage.stage.value,
                "decisions": len(meeting.decisions),
            })

        decisions = tuple(d for sr in stage_results for d in sr.meeting.decisions)
        result = PipelineResult(
            id=pipeline_id,
            project_name=project_name,
            project_description=project_description,
            stages=tuple(stage_results),
            decisions=decisions,
            generated_files=tuple(all_files),
            total_duration_sec=time.monotonic() - started,
            total_token_usage=TokenUsage.sum(sr.meeting.total_token_usage for sr in stage_results),
        )
        self._emit(PIPELINE_COMPLETED, {"pipelineId": pipeline_id, "projectName": project_name})
        logger.info(
            'Project pipeline completed: "%s" (%d stages, %d decisions, %d files)',
            project_name, len(stage_results), len(decisions), len(all_files),
        )
        return result
