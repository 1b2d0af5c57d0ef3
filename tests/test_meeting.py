"""Tests for cram/meeting.py with mock agents."""

import pytest

from cram.errors import InvalidAgenda, MeetingFailed, OrchestrationError
from cram.events import MEETING_COMPLETED, MEETING_DECISION, MEETING_STARTED, MEETING_TURN
from cram.meeting import MeetingRoom, extract_artifacts, parse_mentions, turn_schedule, validate_agenda
from cram.models import CompanyRole, MeetingAgenda, MeetingType
from cram.providers.base import ProviderRateLimitError
from cram.registry import AgentRegistry
from cram.roles import RoleManager

from tests.conftest import MockAgent, POSTGRES_TURN, make_turn

CEO, CTO, QA = CompanyRole.CEO, CompanyRole.CTO, CompanyRole.QA_ENGINEER


def _agenda(max_turns: int = 5, participants=(CEO, CTO, QA), leader=CEO) -> MeetingAgenda:
    return MeetingAgenda(
        title="Kickoff",
        description="Plan the todo app",
        type=MeetingType.ARCHITECTURE_REVIEW,
        participants=participants,
        leader=leader,
        max_turns=max_turns,
        context="Budget is small",
    )


class Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event_type: str, data: dict) -> None:
        self.events.append((event_type, data))


@pytest.fixture
def ceo_agent() -> MockAgent:
    return MockAgent("ceo_agent", "Let's keep it simple. @QA Engineer, thoughts?")


@pytest.fixture
def cto_agent() -> MockAgent:
    return MockAgent("cto_agent", POSTGRES_TURN)


@pytest.fixture
def room_parts(ceo_agent, cto_agent):
    registry = AgentRegistry([ceo_agent, cto_agent])
    roles = RoleManager(registry)
    roles.assign(CEO, "ceo_agent")
    roles.assign(CTO, "cto_agent")
    roles.assign(QA, "cto_agent")
    return roles, registry


def test_turn_schedule_round_robin_with_leader_replies():
    assert turn_schedule(_agenda(max_turns=5)) == [CEO, CTO, QA, CEO, CTO]


def test_turn_schedule_never_exceeds_max_turns():
    for max_turns in range(1, 12):
        assert len(turn_schedule(_agenda(max_turns=max_turns))) <= max_turns


def test_turn_schedule_single_participant():
    assert turn_schedule(_agenda(max_turns=3, participants=(CEO,))) == [CEO, CEO, CEO]


def test_turn_schedule_leader_outside_participants():
    agenda = _agenda(max_turns=4, participants=(CTO, QA), leader=CEO)
    validate_agenda(agenda)
    assert turn_schedule(agenda) == [CEO, CTO, QA, CEO]


def test_validate_agenda_rejects_zero_turns():
    with pytest.raises(InvalidAgenda, match="max_turns"):
        validate_agenda(_agenda(max_turns=0))


def test_parse_mentions():
    mentions = parse_mentions("@cto can you check? Also @QA Engineer and @security auditor")
    assert mentions == (CTO, QA, CompanyRole.SECURITY_AUDITOR)


def test_parse_mentions_none():
    assert parse_mentions("No one in particular") == ()


def test_extract_artifacts():
    turns = [make_turn(1, "Here:\n```python\nprint(1)\n```\nand ```sql\nSELECT 1\n```")]
    assert extract_artifacts(turns) == ("```python\nprint(1)\n```", "```sql\nSELECT 1\n```")


async def test_run_meeting_transcript(room_parts, ceo_agent, cto_agent):
    roles, registry = room_parts
    recorder = Recorder()

    result = await MeetingRoom(roles, registry, recorder).run_meeting(_agenda(max_turns=5))

    assert [t.turn_number for t in result.turns] == [1, 2, 3, 4, 5]
    assert [t.role for t in result.turns] == [CEO, CTO, QA, CEO, CTO]
    assert result.turns[0].agent == "ceo_agent"
    assert result.turns[0].mentioned_roles == (QA,)
    # CTO speaks twice and QA (on the CTO's agent) once, each proposing one decision
    assert len(result.decisions) == 3
    assert result.summary == "Let's keep it simple. @QA Engineer, thoughts?"
    # five turns plus the summary
    assert result.total_token_usage.total_tokens == 60

    types = [t for t, _ in recorder.events]
    assert types[0] == MEETING_STARTED
    assert types.count(MEETING_TURN) == 5
    assert types.count(MEETING_DECISION) == 3
    assert types[-1] == MEETING_COMPLETED


async def test_run_meeting_history_grows_each_turn(room_parts, cto_agent):
    roles, registry = room_parts

    await MeetingRoom(roles, registry).run_meeting(_agenda(max_turns=2))

    seen = cto_agent.last_messages()
    assert "ARCHITECTURE REVIEW MEETING: Kickoff" in seen[0].content
    assert "Budget is small" in seen[0].content
    assert seen[1].content.startswith("[CEO / Project Manager - ceo_agent]: ")


async def test_run_meeting_failure_raises_meeting_failed(room_parts, cto_agent):
    roles, registry = room_parts
    cto_agent.send_message.side_effect = ProviderRateLimitError("cto_agent", "slow down")
    recorder = Recorder()

    with pytest.raises(MeetingFailed) as exc_info:
        await MeetingRoom(roles, registry, recorder).run_meeting(_agenda())

    assert exc_info.value.title == "Kickoff"
    assert exc_info.value.cause.kind == "rate_limit"
    assert MEETING_COMPLETED not in [t for t, _ in recorder.events]


async def test_run_meeting_invalid_agenda(room_parts):
    roles, registry = room_parts
    with pytest.raises(InvalidAgenda) as exc_info:
        await MeetingRoom(roles, registry).run_meeting(_agenda(participants=()))

    assert isinstance(exc_info.value, OrchestrationError)
    assert isinstance(exc_info.value, ValueError)


async def test_run_meeting_leader_outside_participants(room_parts, ceo_agent):
    roles, registry = room_parts

    result = await MeetingRoom(roles, registry).run_meeting(_agenda(max_turns=3, participants=(CTO, QA)))

    assert [t.role for t in result.turns] == [CEO, CTO, QA]
    assert result.summary == ceo_agent._response_content
