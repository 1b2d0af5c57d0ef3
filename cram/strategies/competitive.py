"""Competitive strategy: independent fan-out, then the last agent judges the candidates."""

import logging
import re
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

NAME = "competitive"

_WINNER_RE = re.compile(r"WINNER:\s*Candidate\s*(\d+)", re.IGNORECASE)

_COMPETE_PROMPT = (
    "Provide your absolute best response. Your answer will be judged against other AIs. "
    "Be thorough, accurate, and creative."
)
_JUDGE_PROMPT = (
    "You are an impartial judge evaluating AI responses. "
    "Pick the best one based on quality, correctness, and completeness."
)


def _judging_instruction(count: int) -> str:
    return "\n".join([
        f"Judge the {count} candidate responses above.",
        "Score each on: correctness (1-10), completeness (1-10), code quality (1-10), creativity (1-10).",
        'Format: "WINNER: Candidate X" followed by your scoring breakdown.',
        "Then output the winning response in full.",
    ])


def parse_winner(verdict: str, candidate_count: int) -> int | None:
    """Return the 0-based index named by ``WINNER: Candidate N``, or None if absent/out of range."""
    match = _WINNER_RE.search(verdict)
    if not match:
        return None
    index = int(match.group(1)) - 1
    if 0 <= index < candidate_count:
        return index
    return None


async def run_competitive(
    request: OrchestrationRequest,
    agents: Sequence[Agent],
    config: StrategyConfig,
    emit: Emit,
) -> OrchestrationResult:
    if not agents:
        raise NoAgentsAvailable(f"{NAME} strategy")

    result_id, started, conversation = start_run(request)

    phase_started(emit, NAME, "competition", agentCount=len(agents))
    candidates = await fan_out(agents, conversation.messages, _COMPETE_PROMPT, emit, NAME)
    phase_completed(emit, NAME, "competition", responseCount=len(candidates))

    if len(candidates) == 1:
        only = candidates[0]
        logger.info("Only %s answered, it wins without judging", only.agent)
        conversation.append(labelled(only, "Candidate 1"))
        return build_result(request, result_id, candidates, only.content, conversation, started)

    phase_started(emit, NAME, "judging")
    for index, candidate in enumerate(candidates, start=1):
        conversation.append(
            Message(
                role=MessageRole.ASSISTANT,
                content=f"[Candidate {index} from {candidate.agent}]:\n{candidate.content}",
                agent=candidate.agent,
            )
        )
    conversation.append(Message(role=MessageRole.USER, content=_judging_instruction(len(candidates))))

    judge = agents[-1]
    verdict = await call_agent(judge, conversation.messages, _JUDGE_PROMPT, emit, f"{NAME} judging", phase="judging")
    conversation.append(labelled(verdict, "Judge"))

    winner = parse_winner(verdict.content, len(candidates))
    if winner is None:
        logger.warning("Judge %s gave no usable verdict, returning its full text", judge.name())
        final_output = verdict.content
    else:
        final_output = candidates[winner].content
        logger.info("Judge %s picked candidate %d (%s)", judge.name(), winner + 1, candidates[winner].agent)

    phase_completed(
        emit, NAME, "judging",
        winner=winner + 1 if winner is not None else None,
        judge=judge.name(),
    )

    return build_result(request, result_id, [*candidates, verdict], final_output, conversation, started)
