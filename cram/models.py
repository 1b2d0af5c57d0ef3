"""Pure dataclasses and enums for the orchestration core. No logic beyond token arithmetic."""

import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def new_id() -> str:
    return str(uuid.uuid4())


class Strategy(str, Enum):
    COLLABORATIVE = "collaborative"
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    COMPETITIVE = "competitive"


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class CompanyRole(str, Enum):
    CEO = "ceo"
    CTO = "cto"
    LEAD_ARCHITECT = "lead_architect"
    SENIOR_DEVELOPER = "senior_developer"
    FRONTEND_DEVELOPER = "frontend_developer"
    BACKEND_DEVELOPER = "backend_developer"
    QA_ENGINEER = "qa_engineer"
    SECURITY_AUDITOR = "security_auditor"
    DEVOPS_ENGINEER = "devops_engineer"
    SEO_SPECIALIST = "seo_specialist"
    MARKETING_STRATEGIST = "marketing_strategist"
    PERFORMANCE_ENGINEER = "performance_engineer"


class SDLCStage(str, Enum):
    DISCOVERY = "discovery"
    ARCHITECTURE = "architecture"
    IMPLEMENTATION = "implementation"
    QUALITY_ASSURANCE = "quality_assurance"
    SEO_MARKETING = "seo_marketing"
    DEPLOYMENT = "deployment"


class MeetingType(str, Enum):
    KICKOFF = "kickoff"
    ARCHITECTURE_REVIEW = "architecture_review"
    SPRINT_PLANNING = "sprint_planning"
    CODE_REVIEW = "code_review"
    BUG_TRIAGE = "bug_triage"
    SEO_MARKETING_REVIEW = "seo_marketing_review"
    DEPLOYMENT_REVIEW = "deployment_review"
    RETROSPECTIVE = "retrospective"


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def sum(cls, usages: Iterable["TokenUsage"]) -> "TokenUsage":
        total = cls()
        for usage in usages:
            total = total + usage
        return total


@dataclass(frozen=True)
class AgentCapabilities:
    supports_streaming: bool
    supports_system_messages: bool
    max_context_tokens: int
    supported_roles: tuple[CompanyRole, ...] = ()


@dataclass(frozen=True)
class Message:
    role: MessageRole
    content: str
    id: str = field(default_factory=new_id)
    timestamp: float = field(default_factory=time.time)
    agent: str | None = None          # name of the agent that produced it
    company_role: CompanyRole | None = None


@dataclass
class Conversation:
    owner_id: str                     # session, strategy run or meeting id
    messages: list[Message] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def append(self, message: Message) -> None:
        self.messages.append(message)
        self.updated_at = time.time()


@dataclass(frozen=True)
class AgentResponse:
    content: str
    agent: str
    model: str
    tokens_used: TokenUsage
    latency_sec: float
    raw: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class OrchestrationRequest:
    prompt: str
    strategy: Strategy
    context: str | None = None
    files: tuple[str, ...] = ()
    preferred_agents: tuple[str, ...] = ()


@dataclass(frozen=True)
class StrategyConfig:
    """Knobs shared by the strategy variants.

    ``require_consensus`` defaults to True: the collaborative loop stops the
    moment the reviewer approves. False is opt-in and changes that rule:
    approval is ignored and all ``max_rounds`` rounds always run.
    """

    max_rounds: int = 3
    require_consensus: bool = True
    timeout_per_agent_sec: float | None = None   # informational; agents enforce it


@dataclass(frozen=True)
class OrchestrationResult:
    id: str
    strategy: Strategy
    responses: tuple[AgentResponse, ...]
    final_output: str
    conversation: Conversation
    duration_sec: float
    token_usage: TokenUsage


@dataclass(frozen=True)
class MeetingAgenda:
    title: str
    description: str
    type: MeetingType
    participants: tuple[CompanyRole, ...]
    leader: CompanyRole
    max_turns: int
    context: str | None = None


@dataclass(frozen=True)
class MeetingTurn:
    turn_number: int
    role: CompanyRole
    agent: str
    message: str
    mentioned_roles: tuple[CompanyRole, ...]
    timestamp: float
    tokens_used: TokenUsage


@dataclass(frozen=True)
class Decision:
    meeting_id: str
    stage: SDLCStage
    title: str
    description: str
    rationale: str
    alternatives: tuple[str, ...]
    made_by: CompanyRole
    timestamp: float
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class MeetingResult:
    id: str
    agenda: MeetingAgenda
    turns: tuple[MeetingTurn, ...]
    decisions: tuple[Decision, ...]
    summary: str
    artifacts: tuple[str, ...]
    duration_sec: float
    total_token_usage: TokenUsage


@dataclass(frozen=True)
class GeneratedFile:
    path: str
    content: str
    language: str
    generated_by: CompanyRole


@dataclass(frozen=True)
class StageResult:
    stage: SDLCStage
    meeting: MeetingResult
    generated_files: tuple[GeneratedFile, ...]
    duration_sec: float


@dataclass(frozen=True)
class PipelineResult:
    id: str
    project_name: str
    project_description: str
    stages: tuple[StageResult, ...]
    decisions: tuple[Decision, ...]
    generated_files: tuple[GeneratedFile, ...]
    total_duration_sec: float
    total_token_usage: TokenUsage


@dataclass(frozen=True)
class RoleAssignment:
    role: CompanyRole
    agent: str


@dataclass(frozen=True)
class CompanyTeam:
    assignments: tuple[RoleAssignment, ...] = ()

    @property
    def active_roles(self) -> tuple[CompanyRole, ...]:
        return tuple(a.role for a in self.assignments)


@dataclass
class Session:
    name: str
    strategy: Strategy
    team: CompanyTeam = field(default_factory=CompanyTeam)
    status: SessionStatus = SessionStatus.IDLE
    conversations: list[Conversation] = field(default_factory=list)
    pipeline: PipelineResult | None = None
    id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def touch(self) -> None:
        self.updated_at = time.time()
