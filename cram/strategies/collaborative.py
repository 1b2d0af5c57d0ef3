"""Collaborative strategy: architect designs, developer implements, reviewer critiques.

Rounds repeat until the reviewer signals approval or ``max_rounds`` is hit;
the architect then synthesizes the whole discussion into the final output.
Every exchange lands in one shared conversation, so later calls see earlier
rounds verbatim.
"""

import logging
from collections.abc import Sequence

from cram.errors import NoAgentsAvailable
from cram.events import Emit
from cram.models import (
    AgentResponse,
    Message,
    MessageRole,
    OrchestrationRequest,
    OrchestrationResult,
    StrategyConfig,
)
from cram.providers.base import Agent
from cram.strategies.common import (
    build_result,
    call_agent,
    labelled,
    phase_completed,
    phase_started,
    start_run,
)

logger = logging.getLogger(__name__)

NAME = "collaborative"

# Heuristic consensus signal: plain case-insensitive substring match
APPROVAL_PHRASES = ("looks good", "approved", "no issues", "well implemented", "ship it", "lgtm")

_ARCHITECT_PROMPT = (
    "You are the architect. Design the solution architecture, data structures, and approach. "
    "Be thorough and specific."
)
_DEVELOPER_PROMPT = (
    "You are the developer. Implement the solution based on the architecture above. "
    "Write complete, production-ready code."
)
_DEVELOPER_REFINE_PROMPT = (
    "You are the developer. Refine your implementation based on the review feedback above. "
    "Fix all issues mentioned."
)
_REVIEWER_PROMPT = (
    "You are the code reviewer. Review the implementation for: bugs, security issues, "
    "performance problems, and best practices. Be specific about what needs to change."
)
_SYNTHESIS_REQUEST = (
    "Synthesize all the discussion into a final, complete deliverable. "
    "Include the final architecture and code."
)
_SYNTHESIS_PROMPT = (
    "Produce the final unified output combining the architecture, implementation, "
    "and review feedback. Include all final code."
)


def assign_roles(agents: Sequence[Agent]) -> tuple[Agent, Agent, Agent]:
    """Return (architect, developer, reviewer) for however many agents exist."""
    if not agents:
        raise NoAgentsAvailable(f"{NAME} strategy")
    if len(agents) >= 3:
        return agents[0], agents[1], agents[2]
    if len(agents) == 2:
        return agents[0], agents[1], agents[0]
    return agents[0], agents[0], agents[0]


def is_consensus_reached(review: str) -> bool:
    lowered = review.lower()
    return any(phrase in lowered for phrase in APPROVAL_PHRASES)


async def run_collaborative(
    request: OrchestrationRequest,
    agents: Sequence[Agent],
    config: StrategyConfig,
    emit: Emit,
) -> OrchestrationResult:
    architect, developer, reviewer = assign_roles(agents)
    result_id, started, conversation = start_run(request)
    responses: list[AgentResponse] = []

    logger.info(
        "Collaborative run: architect=%s developer=%s reviewer=%s, up to %d rounds",
        architect.name(), developer.name(), reviewer.name(), config.max_rounds,
    )

    for round_num in range(config.max_rounds):
        phase_started(emit, NAME, "design" if round_num == 0 else "refine", round=round_num)

        if round_num == 0:
            design = await call_agent(
                architect, conversation.messages, _ARCHITECT_PROMPT, emit, f"{NAME} design",
                role="architect", round=round_num,
            )
            responses.append(design)
            conversation.append(labelled(design, "Architect"))

        implementation = await call_agent(
            developer,
            conversation.messages,
            _DEVELOPER_PROMPT if round_num == 0 else _DEVELOPER_REFINE_PROMPT,
            emit,
            f"{NAME} round {round_num}",
            role="developer", round=round_num,
        )
        responses.append(implementation)
        conversation.append(labelled(implementation, "Developer"))

        review = await call_agent(
            reviewer, conversation.messages, _REVIEWER_PROMPT, emit, f"{NAME} review {round_num}",
            role="reviewer", round=round_num,
        )
        responses.append(review)
        conversation.append(labelled(review, "Reviewer"))

        consensus = is_consensus_reached(review.content)
        phase_completed(emit, NAME, "design" if round_num == 0 else "refine", round=round_num, consensus=consensus)

        if consensus and config.require_consensus:
            logger.info("Reviewer approved in round %d, stopping early", round_num)
            break

    phase_started(emit, NAME, "synthesis")
    conversation.append(Message(role=MessageRole.USER, content=_SYNTHESIS_REQUEST))
    final = await call_agent(
        architect, conversation.messages, _SYNTHESIS_PROMPT, emit, f"{NAME} synthesis",
        role="architect", phase="synthesis",
    )
    responses.append(final)
    conversation.append(labelled(final, "Architect"))
    phase_completed(emit, NAME, "synthesis")

    return build_result(request, result_id, responses, final.content, conversation, started)
