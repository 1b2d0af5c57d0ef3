"""Tests for cram/roles.py."""

import pytest

from cram.errors import NoAgentsAvailable, UnknownAgent, UnknownRole
from cram.models import CompanyRole, SDLCStage
from cram.registry import AgentRegistry
from cram.roles import ROLE_DEFINITIONS, STAGE_CONFIGS, RoleManager, get_stage_config, parse_role

from tests.conftest import MockAgent


@pytest.fixture
def sdk_registry() -> AgentRegistry:
    return AgentRegistry([
        MockAgent("claude", sdk="anthropic"),
        MockAgent("gpt", sdk="openai"),
        MockAgent("gemini", sdk="gemini"),
    ])


def test_catalogues_cover_every_enum_member():
    assert {d.role for d in ROLE_DEFINITIONS} == set(CompanyRole)
    assert [s.stage for s in STAGE_CONFIGS] == list(SDLCStage)


def test_stage_participants_are_leads_then_supporting():
    stage = get_stage_config(SDLCStage.DEPLOYMENT)
    assert stage.participants[0] == CompanyRole.DEVOPS_ENGINEER
    assert CompanyRole.CEO in stage.participants


@pytest.mark.parametrize("value", ["qa_engineer", "QA Engineer", "qa engineer", CompanyRole.QA_ENGINEER])
def test_parse_role_accepts_id_title_and_enum(value):
    assert parse_role(value) == CompanyRole.QA_ENGINEER


def test_parse_role_unknown():
    with pytest.raises(UnknownRole):
        parse_role("janitor")


def test_initialize_defaults_uses_role_sdk(sdk_registry):
    manager = RoleManager(sdk_registry)
    manager.initialize_defaults()

    assert manager.agent_for_role(CompanyRole.CEO) == "claude"
    assert manager.agent_for_role(CompanyRole.SENIOR_DEVELOPER) == "gpt"
    assert manager.agent_for_role(CompanyRole.QA_ENGINEER) == "gemini"
    assert len(manager.team().assignments) == len(CompanyRole)


def test_explicit_assignment_wins(sdk_registry):
    manager = RoleManager(sdk_registry)
    manager.assign(CompanyRole.CEO, "gemini")
    assert manager.agent_for_role(CompanyRole.CEO) == "gemini"


def test_assign_unknown_agent_raises(sdk_registry):
    with pytest.raises(UnknownAgent):
        RoleManager(sdk_registry).assign(CompanyRole.CEO, "ghost")


def test_falls_back_to_first_agent_without_matching_sdk():
    manager = RoleManager(AgentRegistry([MockAgent("only")]))
    assert manager.agent_for_role(CompanyRole.QA_ENGINEER) == "only"


def test_no_agents_raises():
    with pytest.raises(NoAgentsAvailable):
        RoleManager(AgentRegistry()).agent_for_role(CompanyRole.CEO)


def test_persona_prefers_configured_text():
    manager = RoleManager(AgentRegistry(), personas={"ceo": "You are the boss."})
    assert manager.persona(CompanyRole.CEO) == "You are the boss."
    assert "QA Engineer" in manager.persona(CompanyRole.QA_ENGINEER)
