"""Session facade tying the strategy engine, meetings, roles and the pipeline together."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from config.config_loader import AppConfig
from cram import engine
from cram.decisions import DecisionLog
from cram.errors import SessionBusy
from cram.events import SESSION_ERROR, SESSION_STARTED, SESSION_STOPPED, Emit, EventBus
from cram.meeting import MeetingRoom
from cram.models import (
    CompanyRole,
    CompanyTeam,
    Decision,
    MeetingAgenda,
    MeetingResult,
    OrchestrationRequest,
    OrchestrationResult,
    PipelineResult,
    Session,
    SessionStatus,
    Strategy,
    StrategyConfig,
)
from cram.pipeline import ProjectPipeline
from cram.registry import AgentRegistry
from cram.roles import RoleManager, parse_role

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Orchestrator:
    """Holds at most one session and runs one operation at a time inside it.

    Stopping a session never cancels calls already in flight; their results
    still reach the caller but are no longer recorded into any session.
    """

    def __init__(self, registry: AgentRegistry, config: AppConfig, bus: EventBus | None = None) -> None:
        self.registry = registry
        self.config = config
        self.bus = bus or EventBus()
        self.roles = RoleManager(registry, config.prompts.personas)
        self.roles.initialize_defaults()
        self.decisions = DecisionLog()
        self._session: Session | None = None
        self._active_session_id: str | None = None

    # -- session lifecycle -------------------------------------------------

    def start_session(self, name: str, strategy: "Strategy | str | None" = None) -> Session:
        """Start a fresh session, replacing any previous one."""
        if strategy:
            engine.get_strategy(strategy)
        if self._session is not None:
            logger.info("Replacing session %s", self._session.id)
        session = Session(
            name=name,
            strategy=Strategy(strategy) if strategy else self.config.defaults.strategy,
            team=self.roles.team(),
            status=SessionStatus.RUNNING,
        )
        self._session = session
        self._active_session_id = None
        self.bus.publish(SESSION_STARTED, {"sessionId": session.id, "name": name})
        logger.info('Session started: "%s" (%s)', name, session.id)
        return session

    def stop_session(self) -> None:
        session = self._session
        if session is None:
            return
        session.status = SessionStatus.COMPLETED
        session.touch()
        self._session = None
        self._active_session_id = None
        self.bus.publish(SESSION_STOPPED, {"sessionId": session.id})
        logger.info("Session stopped: %s", session.id)

    def get_session(self) -> Session | None:
        return self._session

    def set_strategy(self, strategy: "Strategy | str") -> None:
        engine.get_strategy(strategy)
        if self._session is not None:
            self._session.strategy = Strategy(strategy)
            self._session.touch()

    # -- runs --------------------------------------------------------------

    def _is_current(self, session: Session | None) -> bool:
        return session is not None and session is self._session

    async def _run(self, label: str, operation: Callable[[Emit], Awaitable[T]]) -> tuple[T, Session | None, bool]:
        """Run ``operation`` under the busy guard.

        Returns the result, the session it ran in and whether that result may
        be recorded. The session is None when the run started without one, or
        when the session was stopped or replaced while the run was in flight;
        only the latter makes the result unrecordable.
        """
        session = self._session
        if session is not None:
            if self._active_session_id == session.id:
                raise SessionBusy(session.id)
            self._active_session_id = session.id
        emit = self.bus.emitter(sessionId=session.id if session else None)

        try:
            result = await operation(emit)
        except Exception as exc:
            if self._is_current(session):
                session.status = SessionStatus.ERROR
                session.touch()
                self.bus.publish(SESSION_ERROR, {"sessionId": session.id, "error": str(exc)})
            logger.error("%s failed: %s", label, exc)
            raise
        finally:
            if self._is_current(session) and self._active_session_id == session.id:
                self._active_session_id = None

        if session is not None and not self._is_current(session):
            logger.warning("%s finished after session %s ended; result not recorded", label, session.id)
            return result, None, False
        return result, session, True

    def _strategy_config(self) -> StrategyConfig:
        return StrategyConfig(
            max_rounds=self.config.defaults.max_rounds,
            require_consensus=self.config.defaults.require_consensus,
        )

    async def execute(self, request: OrchestrationRequest) -> OrchestrationResult:
        """Run one request through the strategy engine against every registered agent."""
        engine.get_strategy(request.strategy)
        result, session, _ = await self._run(
            f"{Strategy(request.strategy).value} request",
            lambda emit: engine.execute(request, self.registry.agents(), self._strategy_config(), emit),
        )
        if session is not None:
            session.conversations.append(result.conversation)
            session.touch()
        return result

    async def run_meeting(self, agenda: MeetingAgenda) -> MeetingResult:
        result, _, recordable = await self._run(
            f'Meeting "{agenda.title}"',
            lambda emit: MeetingRoom(self.roles, self.registry, emit).run_meeting(agenda),
        )
        if recordable:
            self.decisions.record(result.decisions)
        return result

    async def run_project(self, name: str, description: str) -> PipelineResult:
        def pipeline(emit: Emit) -> Awaitable[PipelineResult]:
            room = MeetingRoom(self.roles, self.registry, emit)
            return ProjectPipeline(room, self.config.defaults.meeting_max_turns, emit).run(name, description)

        result, session, recordable = await self._run(f'Project "{name}"', pipeline)
        if session is not None:
            session.pipeline = result
            session.touch()
        if recordable:
            self.decisions.record(result.decisions)
        return result

    # -- roles and decisions -----------------------------------------------

    def assign_role(self, role: "CompanyRole | str", agent_name: str) -> None:
        self.roles.assign(parse_role(role), agent_name)
        if self._session is not None:
            self._session.team = self.roles.team()
            self._session.touch()

    def get_team(self) -> CompanyTeam:
        return self.roles.team()

    def get_decisions(self) -> list[Decision]:
        return self.decisions.all()

    async def provider_statuses(self) -> dict[str, bool]:
        """Health of every configured model; those without a registered agent report False."""
        statuses = dict.fromkeys(self.config.models, False)
        statuses.update(await self.registry.health_check_all())
        return statuses
