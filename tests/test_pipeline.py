"""Tests for cram/pipeline.py with a single mock agent playing every role."""

import pytest

from cram.errors import PipelineStageFailed
from cram.events import FILE_GENERATED, PIPELINE_COMPLETED, PIPELINE_STAGE_COMPLETED, PIPELINE_STARTED
from cram.meeting import MeetingRoom
from cram.models import CompanyRole, MeetingAgenda, MeetingResult, MeetingType, SDLCStage, TokenUsage
from cram.pipeline import ProjectPipeline, extract_generated_files, stage_agenda
from cram.providers.base import ProviderError
from cram.registry import AgentRegistry
from cram.roles import RoleManager, get_stage_config

from tests.conftest import MockAgent, make_response, make_turn

CODE_TURN = (
    "DECISION: Use FastAPI\n"
    "Here is the entrypoint:\n"
    "```python\n# file: app/main.py\nprint('hi')\n```\n"
)


class Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event_type: str, data: dict) -> None:
        self.events.append((event_type, data))

    def types(self) -> list[str]:
        return [t for t, _ in self.events]


def _pipeline(agent: MockAgent, emit=None, max_turns: int = 2) -> ProjectPipeline:
    registry = AgentRegistry([agent])
    room = MeetingRoom(RoleManager(registry), registry)
    if emit is None:
        return ProjectPipeline(room, max_turns)
    return ProjectPipeline(room, max_turns, emit)


def test_stage_agenda_uses_leads_and_context():
    stage = get_stage_config(SDLCStage.IMPLEMENTATION)
    agenda = stage_agenda(stage, "Todo", "A todo app", "ctx so far", 6)

    assert agenda.title == "Implementation: Todo"
    assert agenda.leader == CompanyRole.SENIOR_DEVELOPER
    assert agenda.participants == stage.lead_roles + stage.supporting_roles
    assert "Project: Todo\nA todo app" in agenda.description
    assert agenda.context == "ctx so far"
    assert agenda.max_turns == 6


async def test_run_covers_every_stage_in_order():
    agent = MockAgent("solo", CODE_TURN)
    recorder = Recorder()

    result = await _pipeline(agent, recorder).run("Todo", "A todo app")

    assert [s.stage for s in result.stages] == list(SDLCStage)
    # two turns per stage, one decision each
    assert len(result.decisions) == 12
    assert result.total_token_usage.total_tokens == 6 * 3 * 10
    assert recorder.types()[0] == PIPELINE_STARTED
    assert recorder.types()[-1] == PIPELINE_COMPLETED
    assert recorder.types().count(PIPELINE_STAGE_COMPLETED) == 6


async def test_files_extracted_only_in_implementation_stage():
    agent = MockAgent("solo", CODE_TURN)
    recorder = Recorder()

    result = await _pipeline(agent, recorder).run("Todo", "A todo app")

    assert [f.path for f in result.generated_files] == ["app/main.py", "app/main.py"]
    generated = result.generated_files[0]
    assert generated.language == "python"
    assert generated.content == "print('hi')"
    assert generated.generated_by == CompanyRole.SENIOR_DEVELOPER
    for stage in result.stages:
        expected = 2 if stage.stage == SDLCStage.IMPLEMENTATION else 0
        assert len(stage.generated_files) == expected
    assert recorder.types().count(FILE_GENERATED) == 2


async def test_context_accumulates_stage_summaries():
    agent = MockAgent("solo", "Summary text")

    await _pipeline(agent, max_turns=1).run("Todo", "A todo app")

    # last call is the deployment summary; its opening carries every earlier result
    opening = agent.last_messages()[0].content
    assert "## Discovery & Planning Results\nSummary text" in opening
    assert "## SEO & Marketing Results" in opening


def test_extract_generated_files_accepts_slash_comments():
    turn = make_turn(1, "```ts\n// file: src/index.ts\nexport {}\n```", role=CompanyRole.FRONTEND_DEVELOPER)
    meeting = MeetingResult(
        id="m",
        agenda=MeetingAgenda("t", "d", MeetingType.SPRINT_PLANNING, (CompanyRole.FRONTEND_DEVELOPER,),
                             CompanyRole.FRONTEND_DEVELOPER, 1),
        turns=(turn,),
        decisions=(),
        summary="",
        artifacts=(),
        duration_sec=0.0,
        total_token_usage=TokenUsage(),
    )
    [generated] = extract_generated_files(meeting)
    assert generated.path == "src/index.ts"
    assert generated.language == "ts"
    assert generated.generated_by == CompanyRole.FRONTEND_DEVELOPER


async def test_stage_failure_stops_pipeline():
    agent = MockAgent("solo")
    # discovery needs two turns and a summary, then architecture fails on its first turn
    agent.send_message.side_effect = [
        make_response("solo", "ok"),
        make_response("solo", "ok"),
        make_response("solo", "summary"),
        ProviderError("solo", "down"),
    ]

    with pytest.raises(PipelineStageFailed) as exc_info:
        await _pipeline(agent).run("Todo", "A todo app")

    assert exc_info.value.stage == SDLCStage.ARCHITECTURE.value
    assert agent.send_message.await_count == 4
