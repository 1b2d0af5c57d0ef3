"""Explicit agent registry. Owned by whoever builds the orchestrator; no global instance."""

import asyncio
import logging

from cram.errors import UnknownAgent
from cram.providers.base import Agent

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Name-keyed collection of agents, kept in registration order."""

    def __init__(self, agents: list[Agent] | None = None) -> None:
        self._agents: dict[str, Agent] = {}
        for agent in agents or []:
            self.register(agent)

    def register(self, agent: Agent) -> None:
        name = agent.name()
        if name in self._agents:
            logger.warning('Agent "%s" is being replaced in registry', name)
        self._agents[name] = agent
        logger.info("Agent registered: %s (%s)", name, agent.model_string())

    def unregister(self, name: str) -> bool:
        removed = self._agents.pop(name, None) is not None
        if removed:
            logger.info("Agent unregistered: %s", name)
        return removed

    def get(self, name: str) -> Agent | None:
        return self._agents.get(name)

    def get_or_raise(self, name: str) -> Agent:
        agent = self._agents.get(name)
        if agent is None:
            raise UnknownAgent(name, self.names())
        return agent

    def has(self, name: str) -> bool:
        return name in self._agents

    def names(self) -> list[str]:
        return list(self._agents)

    def agents(self) -> list[Agent]:
        return list(self._agents.values())

    def as_dict(self) -> dict[str, Agent]:
        return dict(self._agents)

    def clear(self) -> None:
        self._agents.clear()
        logger.info("All agents cleared from registry")

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    async def health_check_all(self) -> dict[str, bool]:
        """Check every agent concurrently; one failing check never affects another."""
        names = self.names()
        results = await asyncio.gather(
            *(self._agents[n].health_check() for n in names),
            return_exceptions=True,
        )
        return {name: result is True for name, result in zip(names, results)}
