"""Parallel strategy: independent fan-out, then the first agent merges the answers."""

import logging
from collections.abc import Sequence

from cram.errors import NoAgentsAvailable
from cram.events import Emit
from cram.models import (
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
    fan_out,
    labelled,
    phase_completed,
    phase_started,
    start_run,
)

logger = logging.getLogger(__name__)

NAME = "parallel"

_MERGE_PROMPT = (
    "You are synthesizing multiple independent AI responses into one unified answer. "
    "Take the best from each."
)


def _merge_instruction(count: int) -> str:
    return (
        f"{count} AIs independently responded above. "
        "Synthesize the best elements from all responses into a single, unified, comprehensive answer. "
        "Combine unique insights from each. Resolve any conflicts by choosing the strongest approach."
    )


async def run_parallel(
    request: OrchestrationRequest,
    agents: Sequence[Agent],
    config: StrategyConfig,
    emit: Emit,
) -> OrchestrationResult:
    if not agents:
        raise NoAgentsAvailable(f"{NAME} strategy")

    result_id, started, conversation = start_run(request)

    phase_started(emit, NAME, "parallel-execution", agentCount=len(agents))
    answers = await fan_out(
        agents,
        conversation.messages,
        f"Provide your best independent response. You are one of {len(agents)} AIs working in parallel.",
        emit,
        NAME,
    )
    phase_completed(emit, NAME, "parallel-execution", successCount=len(answers))

    phase_started(emit, NAME, "merge")
    for index, answer in enumerate(answers, start=1):
        conversation.append(
            Message(
                role=MessageRole.ASSISTANT,
                content=f"[Response {index} from {answer.agent}]:\n{answer.content}",
                agent=answer.agent,
            )
        )
    conversation.append(Message(role=MessageRole.USER, content=_merge_instruction(len(answers))))

    synthesizer = agents[0]
    merged = await call_agent(
        synthesizer, conversation.messages, _MERGE_PROMPT, emit, f"{NAME} merge", phase="merge",
    )
    conversation.append(labelled(merged, "Synthesis"))
    phase_completed(emit, NAME, "merge", synthesizer=synthesizer.name())

    return build_result(request, result_id, [*answers, merged], merged.content, conversation, started)
