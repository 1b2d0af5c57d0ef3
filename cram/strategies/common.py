"""Helpers shared by the four strategy variants: agent calls, fan-out, result assembly."""

import asyncio
import logging
import time
from collections.abc import Sequence

from cram.errors import AgentCallFailed, AllAgentsFailed, NoAgentsAvailable
from cram.events import (
    PROVIDER_ERROR,
    PROVIDER_REQUEST,
    PROVIDER_RESPONSE,
    STRATEGY_PHASE_COMPLETED,
    STRATEGY_PHASE_STARTED,
    Emit,
)
from cram.models import (
    AgentResponse,
    CompanyRole,
    Conversation,
    Message,
    MessageRole,
    OrchestrationRequest,
    OrchestrationResult,
    Strategy,
    TokenUsage,
    new_id,
)
from cram.providers.base import Agent, ProviderError, error_kind

logger = logging.getLogger(__name__)


def initial_message(request: OrchestrationRequest) -> Message:
    """The user message every strategy starts from."""
    content = request.prompt
    if request.context:
        content = f"{content}\n\nContext:\n{request.context}"
    if request.files:
        listing = "\n".join(f"- {path}" for path in request.files)
        content = f"{content}\n\nReferenced files:\n{listing}"
    return Message(role=MessageRole.USER, content=content)


def labelled(response: AgentResponse, label: str, company_role: CompanyRole | None = None) -> Message:
    """Wrap a response as an assistant message tagged ``[label - agent]``."""
    return Message(
        role=MessageRole.ASSISTANT,
        content=f"[{label} - {response.agent}]: {response.content}",
        agent=response.agent,
        company_role=company_role,
    )


def order_agents(agents: Sequence[Agent], preferred: Sequence[str]) -> list[Agent]:
    """Move preferred agents to the front, in the order given; keep the rest in registration order."""
    if not agents:
        raise NoAgentsAvailable("orchestration")
    by_name = {a.name(): a for a in agents}
    front: list[Agent] = []
    for name in preferred:
        agent = by_name.get(name)
        if agent is None:
            logger.warning("Preferred agent %s is not available, ignoring", name)
        elif agent not in front:
            front.append(agent)
    return front + [a for a in agents if a not in front]


async def call_agent(
    agent: Agent,
    messages: Sequence[Message],
    system_prompt: str,
    emit: Emit,
    context: str,
    **event_data: object,
) -> AgentResponse:
    """Call one agent on a strictly ordered path. Any failure is fatal to the run."""
    name = agent.name()
    emit(PROVIDER_REQUEST, {"provider": name, **event_data})
    try:
        response = await agent.send_message(list(messages), system_prompt)
    except Exception as exc:
        kind = error_kind(exc)
        logger.error("Agent %s failed during %s: %s", name, context, exc)
        emit(PROVIDER_ERROR, {"provider": name, "error": str(exc), "kind": kind, **event_data})
        raise AgentCallFailed(name, kind, exc, context) from exc
    emit(PROVIDER_RESPONSE, {
        "provider": name,
        "status": "success",
        "tokens": response.tokens_used.total_tokens,
        **event_data,
    })
    return response


async def _call_independently(
    agent: Agent,
    messages: Sequence[Message],
    system_prompt: str,
) -> AgentResponse | ProviderError:
    """Call a single agent during a fan-out.

    Never raises: returns ProviderError on failure so siblings are unaffected.
    """
    try:
        return await agent.send_message(list(messages), system_prompt)
    except ProviderError as exc:
        logger.warning("Agent %s failed in fan-out: %s", agent.name(), exc)
        return exc
    except Exception as exc:
        logger.warning("Agent %s unexpected failure in fan-out: %s", agent.name(), exc)
        return ProviderError(agent.name(), f"Unexpected error: {exc}")


async def fan_out(
    agents: Sequence[Agent],
    messages: Sequence[Message],
    system_prompt: str,
    emit: Emit,
    strategy: str,
) -> list[AgentResponse]:
    """Send the same messages to every agent concurrently.

    Successful responses come back in input order regardless of completion
    order. Raises AllAgentsFailed when nothing succeeded.
    """
    for agent in agents:
        emit(PROVIDER_REQUEST, {"provider": agent.name(), "strategy": strategy})

    results = await asyncio.gather(
        *(_call_independently(a, messages, system_prompt) for a in agents)
    )

    responses: list[AgentResponse] = []
    errors: dict[str, str] = {}
    for agent, result in zip(agents, results):
        if isinstance(result, AgentResponse):
            responses.append(result)
            emit(PROVIDER_RESPONSE, {"provider": agent.name(), "status": "success", "strategy": strategy})
        else:
            errors[agent.name()] = str(result)
            emit(PROVIDER_ERROR, {
                "provider": agent.name(),
                "error": str(result),
                "kind": error_kind(result),
                "strategy": strategy,
            })

    if not responses:
        raise AllAgentsFailed(strategy, errors)

    logger.info("Fan-out complete: %d/%d agents succeeded", len(responses), len(agents))
    return responses


def phase_started(emit: Emit, strategy: str, phase: str, **data: object) -> None:
    emit(STRATEGY_PHASE_STARTED, {"strategy": strategy, "phase": phase, **data})


def phase_completed(emit: Emit, strategy: str, phase: str, **data: object) -> None:
    emit(STRATEGY_PHASE_COMPLETED, {"strategy": strategy, "phase": phase, **data})


def build_result(
    request: OrchestrationRequest,
    result_id: str,
    responses: Sequence[AgentResponse],
    final_output: str,
    conversation: Conversation,
    started: float,
) -> OrchestrationResult:
    return OrchestrationResult(
        id=result_id,
        strategy=Strategy(request.strategy),
        responses=tuple(responses),
        final_output=final_output,
        conversation=conversation,
        duration_sec=time.monotonic() - started,
        token_usage=TokenUsage.sum(r.tokens_used for r in responses),
    )


def start_run(request: OrchestrationRequest) -> tuple[str, float, Conversation]:
    """Allocate the run id, start clock and the conversation seeded with the prompt."""
    result_id = new_id()
    conversation = Conversation(owner_id=result_id)
    conversation.append(initial_message(request))
    return result_id, time.monotonic(), conversation
