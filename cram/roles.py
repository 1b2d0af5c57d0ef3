"""Company role catalogue, SDLC stage catalogue and the role→agent assignment table."""

import logging
import threading
from dataclasses import dataclass

from cram.errors import NoAgentsAvailable, UnknownAgent, UnknownRole, UnknownStage
from cram.models import CompanyRole, CompanyTeam, MeetingType, RoleAssignment, SDLCStage
from cram.registry import AgentRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleDefinition:
    role: CompanyRole
    title: str
    department: str
    responsibilities: tuple[str, ...]
    default_sdk: str       # sdk of the agent preferred when no explicit assignment exists


@dataclass(frozen=True)
class StageConfig:
    stage: SDLCStage
    name: str
    description: str
    lead_roles: tuple[CompanyRole, ...]
    supporting_roles: tuple[CompanyRole, ...]
    meeting_type: MeetingType
    output_artifacts: tuple[str, ...]

    @property
    def participants(self) -> tuple[CompanyRole, ...]:
        return self.lead_roles + self.supporting_roles


ROLE_DEFINITIONS: tuple[RoleDefinition, ...] = (
    RoleDefinition(CompanyRole.CEO, "CEO / Project Manager", "Executive",
                   ("Vision & strategy", "Resource allocation", "Final decisions", "Team coordination"),
                   "anthropic"),
    RoleDefinition(CompanyRole.CTO, "Chief Technology Officer", "Executive",
                   ("Technology choices", "Architecture decisions", "Feasibility assessment", "Risk evaluation"),
                   "anthropic"),
    RoleDefinition(CompanyRole.LEAD_ARCHITECT, "Lead Architect", "Engineering",
                   ("System design", "Data models", "API design", "Component architecture"),
                   "anthropic"),
    RoleDefinition(CompanyRole.SENIOR_DEVELOPER, "Senior Developer", "Engineering",
                   ("Core implementation", "Algorithm selection", "Code optimization", "Technical mentoring"),
                   "openai"),
    RoleDefinition(CompanyRole.FRONTEND_DEVELOPER, "Frontend Developer", "Engineering",
                   ("UI implementation", "Responsive design", "UX patterns", "State management"),
                   "openai"),
    RoleDefinition(CompanyRole.BACKEND_DEVELOPER, "Backend Developer", "Engineering",
                   ("Server implementation", "Database logic", "API endpoints", "Business logic"),
                   "openai"),
    RoleDefinition(CompanyRole.QA_ENGINEER, "QA Engineer", "Quality",
                   ("Test planning", "Bug detection", "Edge case analysis", "Test automation"),
                   "gemini"),
    RoleDefinition(CompanyRole.SECURITY_AUDITOR, "Security Auditor", "Quality",
                   ("Vulnerability scanning", "OWASP compliance", "Security review", "Threat modeling"),
                   "gemini"),
    RoleDefinition(CompanyRole.DEVOPS_ENGINEER, "DevOps Engineer", "Operations",
                   ("CI/CD pipeline", "Infrastructure", "Deployment", "Monitoring"),
                   "gemini"),
    RoleDefinition(CompanyRole.SEO_SPECIALIST, "SEO Specialist", "Marketing",
                   ("Search optimization", "Meta tags", "Structured data", "Core Web Vitals"),
                   "openai"),
    RoleDefinition(CompanyRole.MARKETING_STRATEGIST, "Marketing Strategist", "Marketing",
                   ("Go-to-market strategy", "Content planning", "Analytics", "Growth strategy"),
                   "anthropic"),
    RoleDefinition(CompanyRole.PERFORMANCE_ENGINEER, "Performance Engineer", "Quality",
                   ("Performance profiling", "Load testing", "Optimization", "Benchmarking"),
                   "gemini"),
)

STAGE_CONFIGS: tuple[StageConfig, ...] = (
    StageConfig(
        stage=SDLCStage.DISCOVERY,
        name="Discovery & Planning",
        description="Analyze project requirements, set vision, evaluate feasibility",
        lead_roles=(CompanyRole.CEO, CompanyRole.CTO),
        supporting_roles=(CompanyRole.LEAD_ARCHITECT, CompanyRole.SENIOR_DEVELOPER, CompanyRole.QA_ENGINEER),
        meeting_type=MeetingType.KICKOFF,
        output_artifacts=("project-charter.md", "requirements.md", "tech-stack-decision.md"),
    ),
    StageConfig(
        stage=SDLCStage.ARCHITECTURE,
        name="Architecture & Design",
        description="Design system components, data models, APIs, choose algorithms",
        lead_roles=(CompanyRole.CTO, CompanyRole.LEAD_ARCHITECT),
        supporting_roles=(CompanyRole.SENIOR_DEVELOPER, CompanyRole.BACKEND_DEVELOPER, CompanyRole.SECURITY_AUDITOR),
        meeting_type=MeetingType.ARCHITECTURE_REVIEW,
        output_artifacts=("architecture.md", "database-schema.md", "api-contracts.md"),
    ),
    StageConfig(
        stage=SDLCStage.IMPLEMENTATION,
        name="Implementation",
        description="Write production code based on the architecture",
        lead_roles=(CompanyRole.SENIOR_DEVELOPER, CompanyRole.FRONTEND_DEVELOPER, CompanyRole.BACKEND_DEVELOPER),
        supporting_roles=(CompanyRole.LEAD_ARCHITECT, CompanyRole.CTO),
        meeting_type=MeetingType.SPRINT_PLANNING,
        output_artifacts=("source-code",),
    ),
    StageConfig(
        stage=SDLCStage.QUALITY_ASSURANCE,
        name="Quality Assurance",
        description="Test, review security, check performance, fix bugs",
        lead_roles=(CompanyRole.QA_ENGINEER, CompanyRole.SECURITY_AUDITOR),
        supporting_roles=(CompanyRole.PERFORMANCE_ENGINEER, CompanyRole.SENIOR_DEVELOPER),
        meeting_type=MeetingType.CODE_REVIEW,
        output_artifacts=("test-results.md", "security-report.md", "performance-report.md"),
    ),
    StageConfig(
        stage=SDLCStage.SEO_MARKETING,
        name="SEO & Marketing",
        description="Optimize for search engines, plan marketing strategy",
        lead_roles=(CompanyRole.SEO_SPECIALIST, CompanyRole.MARKETING_STRATEGIST),
        supporting_roles=(CompanyRole.FRONTEND_DEVELOPER, CompanyRole.CEO),
        meeting_type=MeetingType.SEO_MARKETING_REVIEW,
        output_artifacts=("seo-report.md", "marketing-plan.md"),
    ),
    StageConfig(
        stage=SDLCStage.DEPLOYMENT,
        name="Deployment & Launch",
        description="Plan infrastructure, CI/CD, monitoring, and launch",
        lead_roles=(CompanyRole.DEVOPS_ENGINEER,),
        supporting_roles=(CompanyRole.CTO, CompanyRole.CEO, CompanyRole.SECURITY_AUDITOR),
        meeting_type=MeetingType.DEPLOYMENT_REVIEW,
        output_artifacts=("deployment-config.md", "monitoring-setup.md", "launch-checklist.md"),
    ),
)

_ROLES_BY_ID = {d.role: d for d in ROLE_DEFINITIONS}
_STAGES_BY_ID = {s.stage: s for s in STAGE_CONFIGS}


def parse_role(value: "str | CompanyRole") -> CompanyRole:
    """Accept a role id (``qa_engineer``), a spaced id or a title; raise UnknownRole otherwise."""
    if isinstance(value, CompanyRole):
        return value
    key = str(value).strip().lower()
    for definition in ROLE_DEFINITIONS:
        if key in (definition.role.value, definition.role.value.replace("_", " "), definition.title.lower()):
            return definition.role
    raise UnknownRole(str(value))


def get_role_definition(role: CompanyRole) -> RoleDefinition:
    try:
        return _ROLES_BY_ID[role]
    except KeyError:
        raise UnknownRole(str(role)) from None


def get_stage_config(stage: SDLCStage) -> StageConfig:
    try:
        return _STAGES_BY_ID[stage]
    except KeyError:
        raise UnknownStage(str(stage)) from None


class RoleManager:
    """Maps each company role to an agent name.

    The assignment table is the only state changed outside a run, so every
    read and write goes through one lock.
    """

    def __init__(self, registry: AgentRegistry, personas: dict[str, str] | None = None) -> None:
        self._registry = registry
        self._personas = dict(personas or {})
        self._assignments: dict[CompanyRole, str] = {}
        self._lock = threading.Lock()

    def definition(self, role: CompanyRole) -> RoleDefinition:
        return get_role_definition(role)

    def stage_config(self, stage: SDLCStage) -> StageConfig:
        return get_stage_config(stage)

    def stage_configs(self) -> tuple[StageConfig, ...]:
        return STAGE_CONFIGS

    def roles_for_stage(self, stage: SDLCStage) -> tuple[CompanyRole, ...]:
        return get_stage_config(stage).participants

    def persona(self, role: CompanyRole) -> str:
        definition = get_role_definition(role)
        persona = self._personas.get(role.value)
        if persona:
            return persona
        return (
            f"You are the {definition.title} in the {definition.department} department. "
            f"Your responsibilities: {', '.join(definition.responsibilities)}."
        )

    def assign(self, role: CompanyRole, agent_name: str) -> None:
        get_role_definition(role)
        if not self._registry.has(agent_name):
            raise UnknownAgent(agent_name, self._registry.names())
        with self._lock:
            self._assignments[role] = agent_name
        logger.info("Role %s assigned to agent %s", role.value, agent_name)

    def agent_for_role(self, role: CompanyRole) -> str:
        """Explicit assignment, else the first agent on the role's default SDK, else any agent."""
        definition = get_role_definition(role)
        with self._lock:
            assigned = self._assignments.get(role)
        if assigned and self._registry.has(assigned):
            return assigned

        agents = self._registry.agents()
        for agent in agents:
            if agent.sdk == definition.default_sdk:
                return agent.name()
        if not agents:
            raise NoAgentsAvailable(f"role {role.value}")
        return agents[0].name()

    def initialize_defaults(self) -> None:
        with self._lock:
            for definition in ROLE_DEFINITIONS:
                for agent in self._registry.agents():
                    if agent.sdk == definition.default_sdk:
                        self._assignments.setdefault(definition.role, agent.name())
                        break
            count = len(self._assignments)
        logger.info("Initialized default role assignments for %d roles", count)

    def team(self) -> CompanyTeam:
        with self._lock:
            snapshot = list(self._assignments.items())
        return CompanyTeam(assignments=tuple(RoleAssignment(role=r, agent=a) for r, a in snapshot))
