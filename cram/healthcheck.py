"""Agent health checks: ping each API before starting a run."""

import asyncio
import logging

from cram.models import Message, MessageRole
from cram.providers.base import Agent

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, agent: Agent) -> tuple[str, bool, str]:
    """Ping a single agent. Returns (name, ok, error_message)."""
    try:
        await asyncio.wait_for(
            agent.send_message([Message(role=MessageRole.USER, content=_PING_PROMPT)], "Health check."),
            timeout=_TIMEOUT_SEC,
        )
        return name, True, ""
    except asyncio.TimeoutError:
        logger.warning("Health check timed out for %s", name)
        return name, False, f"timed out after {_TIMEOUT_SEC:.0f}s"
    except Exception as exc:
        logger.warning("Health check failed for %s: %s", name, exc)
        return name, False, str(exc)


async def run_health_checks(
    agents: dict[str, Agent],
) -> dict[str, tuple[bool, str]]:
    """Ping all agents in parallel.

    Returns:
        Dict mapping agent name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, a) for n, a in agents.items()))
    return {name: (ok, err) for name, ok, err in results}
