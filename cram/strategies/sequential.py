"""Sequential strategy: a strict pipeline across every agent in registration order."""

import logging
from collections.abc import Sequence

from cram.errors import NoAgentsAvailable
from cram.events import Emit
from cram.models import AgentResponse, OrchestrationRequest, OrchestrationResult, StrategyConfig
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

NAME = "sequential"

_POSITION_PROMPTS = {
    "first": (
        "You are the first in a sequential pipeline. Analyze the request and provide your best "
        "response. Others will build on your work."
    ),
    "middle": (
        "You are in the middle of a sequential pipeline. Build on what came before and "
        "improve/expand the response."
    ),
    "final": (
        "You are the final step in a sequential pipeline. Review everything above and produce "
        "the definitive final output."
    ),
}


def position_of(index: int, count: int) -> str:
    if index == 0:
        return "first"
    if index == count - 1:
        return "final"
    return "middle"


async def run_sequential(
    request: OrchestrationRequest,
    agents: Sequence[Agent],
    config: StrategyConfig,
    emit: Emit,
) -> OrchestrationResult:
    if not agents:
        raise NoAgentsAvailable(f"{NAME} strategy")

    result_id, started, conversation = start_run(request)
    responses: list[AgentResponse] = []

    phase_started(emit, NAME, "pipeline", agentCount=len(agents))
    for index, agent in enumerate(agents):
        position = position_of(index, len(agents))
        response = await call_agent(
            agent,
            conversation.messages,
            _POSITION_PROMPTS[position],
            emit,
            f"{NAME} step {index + 1}",
            position=position,
            index=index,
        )
        responses.append(response)
        conversation.append(labelled(response, f"Step {index + 1}"))
        logger.debug("Sequential step %d (%s) done by %s", index + 1, position, agent.name())
    phase_completed(emit, NAME, "pipeline", agentCount=len(agents))

    return build_result(request, result_id, responses, responses[-1].content, conversation, started)
