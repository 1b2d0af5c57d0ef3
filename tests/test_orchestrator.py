"""Tests for cram/orchestrator.py, the session facade."""

import asyncio
import dataclasses

import pytest

from cram.errors import AgentCallFailed, SessionBusy, UnknownStrategy
from cram.events import PROVIDER_REQUEST, SESSION_ERROR, SESSION_STARTED, SESSION_STOPPED, EventBus
from cram.models import (
    CompanyRole,
    MeetingAgenda,
    MeetingType,
    OrchestrationRequest,
    SessionStatus,
    Strategy,
)
from cram.orchestrator import Orchestrator
from cram.providers.base import ProviderError

from tests.conftest import POSTGRES_TURN, make_response


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def events(bus) -> list:
    seen: list = []
    bus.on(seen.append)
    return seen


@pytest.fixture
def orchestrator(registry, sample_app_config, bus) -> Orchestrator:
    config = dataclasses.replace(
        sample_app_config,
        defaults=dataclasses.replace(sample_app_config.defaults, meeting_max_turns=1),
    )
    return Orchestrator(registry, config, bus)


def _request(strategy: Strategy = Strategy.SEQUENTIAL) -> OrchestrationRequest:
    return OrchestrationRequest(prompt="Build a cache", strategy=strategy)


def _agenda() -> MeetingAgenda:
    return MeetingAgenda(
        title="Schema review",
        description="Pick a database",
        type=MeetingType.ARCHITECTURE_REVIEW,
        participants=(CompanyRole.CTO, CompanyRole.LEAD_ARCHITECT),
        leader=CompanyRole.CTO,
        max_turns=2,
    )


def _gate(agent, gate: asyncio.Event, content: str = "late answer") -> None:
    async def wait_then_answer(messages, system_prompt):
        await gate.wait()
        return make_response(agent.name(), content)

    agent.send_message.side_effect = wait_then_answer


def test_stop_session_without_session_does_not_raise(orchestrator, events):
    orchestrator.stop_session()
    orchestrator.stop_session()
    assert events == []


def test_start_and_stop_session(orchestrator, events):
    session = orchestrator.start_session("demo", "parallel")

    assert session.status == SessionStatus.RUNNING
    assert session.strategy == Strategy.PARALLEL
    assert orchestrator.get_session() is session

    orchestrator.stop_session()

    assert session.status == SessionStatus.COMPLETED
    assert orchestrator.get_session() is None
    assert [e.type for e in events] == [SESSION_STARTED, SESSION_STOPPED]


def test_start_session_defaults_to_config_strategy(orchestrator):
    assert orchestrator.start_session("demo").strategy == Strategy.COLLABORATIVE


def test_start_session_replaces_previous(orchestrator):
    first = orchestrator.start_session("one")
    second = orchestrator.start_session("two")
    assert orchestrator.get_session() is second
    assert first is not second


async def test_execute_records_conversation(orchestrator, events):
    session = orchestrator.start_session("demo")

    result = await orchestrator.execute(_request())

    assert session.conversations == [result.conversation]
    requests = [e for e in events if e.type == PROVIDER_REQUEST]
    assert requests and all(e.data["sessionId"] == session.id for e in requests)


async def test_execute_without_session(orchestrator):
    result = await orchestrator.execute(_request())
    assert result.final_output == "Response from C"


async def test_execute_unknown_strategy_raises_unknown_strategy(orchestrator, registry):
    session = orchestrator.start_session("demo")
    request = OrchestrationRequest(prompt="Build a cache", strategy="bogus")  # type: ignore[arg-type]

    with pytest.raises(UnknownStrategy, match="bogus"):
        await orchestrator.execute(request)

    registry.get("agent_a").send_message.assert_not_awaited()
    assert session.status == SessionStatus.RUNNING


async def test_execute_accepts_strategy_as_string(orchestrator):
    session = orchestrator.start_session("demo")
    request = OrchestrationRequest(prompt="Build a cache", strategy="parallel")  # type: ignore[arg-type]

    result = await orchestrator.execute(request)

    assert result.strategy is Strategy.PARALLEL
    assert session.conversations == [result.conversation]


def test_start_session_unknown_strategy(orchestrator):
    with pytest.raises(UnknownStrategy):
        orchestrator.start_session("demo", "bogus")
    assert orchestrator.get_session() is None


async def test_execute_failure_marks_session_error(orchestrator, registry, events):
    session = orchestrator.start_session("demo")
    registry.get("agent_a").send_message.side_effect = ProviderError("agent_a", "down")

    with pytest.raises(AgentCallFailed):
        await orchestrator.execute(_request())

    assert session.status == SessionStatus.ERROR
    assert SESSION_ERROR in [e.type for e in events]


async def test_concurrent_run_in_same_session_is_refused(orchestrator, registry):
    orchestrator.start_session("demo")
    gate = asyncio.Event()
    _gate(registry.get("agent_a"), gate)

    first = asyncio.create_task(orchestrator.execute(_request()))
    await asyncio.sleep(0)

    with pytest.raises(SessionBusy):
        await orchestrator.execute(_request())

    gate.set()
    await first


async def test_session_is_free_again_after_run(orchestrator):
    orchestrator.start_session("demo")
    await orchestrator.execute(_request())
    await orchestrator.execute(_request())
    assert len(orchestrator.get_session().conversations) == 2


async def test_late_result_not_recorded_after_stop(orchestrator, registry):
    old = orchestrator.start_session("old")
    gate = asyncio.Event()
    _gate(registry.get("agent_c"), gate)

    task = asyncio.create_task(orchestrator.execute(_request()))
    await asyncio.sleep(0)
    orchestrator.stop_session()
    new = orchestrator.start_session("new")
    gate.set()
    result = await task

    assert result.final_output == "late answer"
    assert old.conversations == []
    assert new.conversations == []
    assert old.status == SessionStatus.COMPLETED


async def test_late_meeting_decisions_not_recorded_after_stop(orchestrator, registry):
    orchestrator.start_session("old")
    gate = asyncio.Event()
    _gate(registry.get("agent_a"), gate, POSTGRES_TURN)

    task = asyncio.create_task(orchestrator.run_meeting(_agenda()))
    await asyncio.sleep(0)
    orchestrator.stop_session()
    gate.set()
    result = await task

    assert len(result.decisions) == 2
    assert orchestrator.get_decisions() == []


async def test_meeting_without_session_records_decisions(orchestrator, registry):
    registry.get("agent_a")._response_content = POSTGRES_TURN

    result = await orchestrator.run_meeting(_agenda())

    assert orchestrator.get_session() is None
    assert orchestrator.get_decisions() == list(result.decisions)


async def test_run_meeting_records_decisions(orchestrator, registry):
    registry.get("agent_a")._response_content = POSTGRES_TURN
    orchestrator.start_session("demo")

    result = await orchestrator.run_meeting(_agenda())

    assert len(result.decisions) == 2
    assert orchestrator.get_decisions() == list(result.decisions)


async def test_run_project_sets_session_pipeline(orchestrator):
    session = orchestrator.start_session("demo")

    result = await orchestrator.run_project("Todo", "A todo app")

    assert session.pipeline is result
    assert len(result.stages) == 6
    # one turn per stage with max_turns=1
    assert all(len(s.meeting.turns) == 1 for s in result.stages)


def test_assign_role_updates_team(orchestrator):
    session = orchestrator.start_session("demo")
    orchestrator.assign_role("qa_engineer", "agent_b")

    team = orchestrator.get_team()
    assert team.active_roles == (CompanyRole.QA_ENGINEER,)
    assert session.team == team


def test_set_strategy(orchestrator):
    session = orchestrator.start_session("demo")
    orchestrator.set_strategy("competitive")
    assert session.strategy == Strategy.COMPETITIVE
    with pytest.raises(UnknownStrategy):
        orchestrator.set_strategy("round_robin")


async def test_provider_statuses_include_unregistered_models(orchestrator, registry):
    registry.get("agent_b").send_message.side_effect = RuntimeError("down")

    statuses = await orchestrator.provider_statuses()

    assert statuses == {"claude": False, "agent_a": True, "agent_b": False, "agent_c": True}
