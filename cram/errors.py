"""Orchestration error taxonomy. Agent-boundary errors live in cram.providers.base."""


class OrchestrationError(Exception):
    """Base class for every failure raised by the orchestration core."""


class NoAgentsAvailable(OrchestrationError):
    def __init__(self, context: str = "run") -> None:
        self.context = context
        super().__init__(f"No agents available for {context}. Check API keys in .env.")


class AllAgentsFailed(OrchestrationError):
    def __init__(self, strategy: str, errors: dict[str, str] | None = None) -> None:
        self.strategy = strategy
        self.errors = errors or {}
        detail = "; ".join(f"{name}: {err}" for name, err in self.errors.items())
        message = f"All agents failed in {strategy} execution"
        super().__init__(f"{message} ({detail})" if detail else message)


class UnknownStrategy(OrchestrationError):
    def __init__(self, strategy: str) -> None:
        self.strategy = strategy
        super().__init__(f"Unknown strategy: {strategy}")


class UnknownRole(OrchestrationError):
    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"Unknown role: {role}")


class UnknownStage(OrchestrationError):
    def __init__(self, stage: str) -> None:
        self.stage = stage
        super().__init__(f"Unknown stage: {stage}")


class UnknownAgent(OrchestrationError):
    def __init__(self, name: str, available: list[str] | None = None) -> None:
        self.name = name
        self.available = available or []
        super().__init__(
            f'Agent "{name}" not found. Available: {", ".join(self.available) or "none"}'
        )


class AgentCallFailed(OrchestrationError):
    """A single agent call failed inside a strictly ordered path.

    ``kind`` is one of ``auth``, ``rate_limit``, ``timeout`` or ``generic``.
    """

    def __init__(self, agent: str, kind: str, cause: Exception, context: str = "") -> None:
        self.agent = agent
        self.kind = kind
        self.cause = cause
        where = f" during {context}" if context else ""
        super().__init__(f"Agent {agent} failed{where} ({kind}): {cause}")


class InvalidAgenda(OrchestrationError, ValueError):
    """A meeting agenda that cannot be scheduled."""

    def __init__(self, title: str, reason: str) -> None:
        self.title = title
        super().__init__(f'Meeting "{title}" {reason}')


class MeetingFailed(OrchestrationError):
    def __init__(self, meeting_id: str, title: str, cause: Exception) -> None:
        self.meeting_id = meeting_id
        self.title = title
        self.cause = cause
        super().__init__(f'[Meeting:{meeting_id}] "{title}" failed: {cause}')


class PipelineStageFailed(OrchestrationError):
    def __init__(self, stage: str, cause: Exception) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"[Pipeline:{stage}] {cause}")


class SessionBusy(OrchestrationError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} already has an active run")
