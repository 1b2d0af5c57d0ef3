"""Shared pytest fixtures."""

from collections.abc import Iterable, Sequence
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PromptsConfig
from cram.models import AgentResponse, CompanyRole, MeetingTurn, Message, MessageRole, Strategy, TokenUsage
from cram.providers.base import Agent
from cram.registry import AgentRegistry


def make_response(agent: str, content: str, tokens: int = 10) -> AgentResponse:
    return AgentResponse(
        content=content,
        agent=agent,
        model="mock-model",
        tokens_used=TokenUsage(prompt_tokens=tokens // 2, completion_tokens=tokens - tokens // 2, total_tokens=tokens),
        latency_sec=0.1,
    )


class MockAgent(Agent):
    """Test double Agent.

    ``send_message`` is an AsyncMock: it answers with the queued ``responses``
    in order, then ``response_content`` forever. Tests can swap its
    side_effect to make the agent fail.
    """

    def __init__(
        self,
        agent_name: str = "mock",
        response_content: str = "Mock response",
        responses: Iterable[str] = (),
        sdk: str = "custom",
    ) -> None:
        self._name = agent_name
        self._response_content = response_content
        self._queued = list(responses)
        self.sdk = sdk
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because send_message is defined in the class body below.
        self.send_message = AsyncMock(side_effect=self._respond)  # type: ignore[method-assign]

    def _respond(self, messages: Sequence[Message], system_prompt: str) -> AgentResponse:
        content = self._queued.pop(0) if self._queued else self._response_content
        return make_response(self._name, content)

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def send_message(self, messages: Sequence[Message], system_prompt: str) -> AgentResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return self._respond(messages, system_prompt)

    def last_messages(self) -> list[Message]:
        """Messages passed on the most recent call."""
        return list(self.send_message.call_args.args[0])


def user_message(content: str) -> Message:
    return Message(role=MessageRole.USER, content=content)


def make_turn(number: int, message: str, role: CompanyRole = CompanyRole.CTO) -> MeetingTurn:
    return MeetingTurn(
        turn_number=number,
        role=role,
        agent="mock",
        message=message,
        mentioned_roles=(),
        timestamp=1000.0 + number,
        tokens_used=TokenUsage(),
    )


POSTGRES_TURN = (
    "After weighing the options:\n"
    "DECISION: Use PostgreSQL for the database\n"
    "Rationale: Best support for JSONB\n"
    "Alternatives: MySQL, MongoDB\n"
)


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="openai",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        personas={"ceo": "You are the CEO.", "cto": "You are the CTO."},
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        strategy=Strategy.COLLABORATIVE,
        max_rounds=2,
        meeting_max_turns=4,
        output_dir=tmp_path / "output",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=4096,
    )
    return AppConfig(
        defaults=sample_defaults_config,
        models={"claude": model_cfg},
        prompts=sample_prompts_config,
        available_providers={"claude"},
    )


@pytest.fixture
def mock_agent() -> MockAgent:
    return MockAgent()


@pytest.fixture
def three_mock_agents() -> list[MockAgent]:
    return [
        MockAgent("agent_a", "Response from A"),
        MockAgent("agent_b", "Response from B"),
        MockAgent("agent_c", "Response from C"),
    ]


@pytest.fixture
def registry(three_mock_agents: list[MockAgent]) -> AgentRegistry:
    return AgentRegistry(three_mock_agents)
