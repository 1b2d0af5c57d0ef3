"""Strategy dispatch: a pure lookup from Strategy to its execution function."""

import dataclasses
import logging
from collections.abc import Awaitable, Callable, Sequence

from cram.errors import NoAgentsAvailable, UnknownStrategy
from cram.events import Emit, null_emit
from cram.models import OrchestrationRequest, OrchestrationResult, Strategy, StrategyConfig
from cram.providers.base import Agent
from cram.strategies.collaborative import run_collaborative
from cram.strategies.common import order_agents
from cram.strategies.competitive import run_competitive
from cram.strategies.parallel import run_parallel
from cram.strategies.sequential import run_sequential

logger = logging.getLogger(__name__)

StrategyFn = Callable[
    [OrchestrationRequest, Sequence[Agent], StrategyConfig, Emit],
    Awaitable[OrchestrationResult],
]

STRATEGIES: dict[Strategy, StrategyFn] = {
    Strategy.COLLABORATIVE: run_collaborative,
    Strategy.SEQUENTIAL: run_sequential,
    Strategy.PARALLEL: run_parallel,
    Strategy.COMPETITIVE: run_competitive,
}


def get_strategy(strategy: "Strategy | str") -> StrategyFn:
    try:
        return STRATEGIES[Strategy(strategy)]
    except (KeyError, ValueError):
        raise UnknownStrategy(str(getattr(strategy, "value", strategy))) from None


async def execute(
    request: OrchestrationRequest,
    agents: Sequence[Agent],
    config: StrategyConfig | None = None,
    emit: Emit = null_emit,
) -> OrchestrationResult:
    """Run ``request`` with its strategy over ``agents``.

    Raises:
        UnknownStrategy: request.strategy is not one of the four variants.
        NoAgentsAvailable: agents is empty.
        AllAgentsFailed: every call of a parallel/competitive fan-out failed.
        AgentCallFailed: an agent failed on a strictly ordered path.
    """
    run = get_strategy(request.strategy)
    request = dataclasses.replace(request, strategy=Strategy(request.strategy))
    if not agents:
        raise NoAgentsAvailable(f"{request.strategy.value} strategy")
    ordered = order_agents(agents, request.preferred_agents)
    config = config or StrategyConfig()

    logger.info(
        "Executing %s strategy with %d agents: %s",
        request.strategy.value, len(ordered), ", ".join(a.name() for a in ordered),
    )
    result = await run(request, ordered, config, emit)
    logger.info(
        "%s strategy finished in %.1fs, %d responses, %d tokens",
        result.strategy.value, result.duration_sec, len(result.responses), result.token_usage.total_tokens,
    )
    return result
