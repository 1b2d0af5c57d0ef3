"""Turn-based meeting scheduler.

The leader opens (turn 1). Then, round after round, every other participant
speaks once in agenda order and the leader replies, until ``max_turns`` is
reached. The leader's agent finally writes a summary. Any agent failure
aborts the whole meeting with MeetingFailed; there are no partial results.
"""

import logging
import math
import re
import time
from collections.abc import Sequence

from cram.decisions import extract_decisions
from cram.events import MEETING_COMPLETED, MEETING_DECISION, MEETING_STARTED, MEETING_TURN, Emit, null_emit
from cram.errors import AgentCallFailed, InvalidAgenda, MeetingFailed
from cram.models import (
    AgentResponse,
    CompanyRole,
    Message,
    MeetingAgenda,
    MeetingResult,
    MeetingTurn,
    MessageRole,
    TokenUsage,
    new_id,
)
from cram.providers.base import error_kind
from cram.registry import AgentRegistry
from cram.roles import ROLE_DEFINITIONS, RoleManager, get_role_definition

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")

_SUMMARY_REQUEST = "\n".join([
    "Please summarize this meeting concisely:",
    "1. Key decisions made (with rationale)",
    "2. Action items and who is responsible",
    "3. Open questions or concerns",
    "4. Next steps",
    "Format as a clear, structured markdown document.",
])


def _mention_patterns() -> dict[CompanyRole, tuple[re.Pattern[str], ...]]:
    patterns: dict[CompanyRole, tuple[re.Pattern[str], ...]] = {}
    for definition in ROLE_DEFINITIONS:
        role_id = definition.role.value
        patterns[definition.role] = (
            re.compile(rf"@{re.escape(role_id)}\b", re.IGNORECASE),
            re.compile(rf"@{re.escape(role_id.replace('_', ' '))}", re.IGNORECASE),
            re.compile(rf"@{re.escape(definition.title)}", re.IGNORECASE),
        )
    return patterns


_MENTION_PATTERNS = _mention_patterns()


def parse_mentions(content: str) -> tuple[CompanyRole, ...]:
    """Roles addressed with @role_id, @role id or @Title (case-insensitive), in catalogue order."""
    return tuple(
        role
        for role, patterns in _MENTION_PATTERNS.items()
        if any(p.search(content) for p in patterns)
    )


def extract_artifacts(turns: Sequence[MeetingTurn]) -> tuple[str, ...]:
    """Every fenced code block from every turn, in turn order."""
    return tuple(block for turn in turns for block in _CODE_BLOCK_RE.findall(turn.message))


def validate_agenda(agenda: MeetingAgenda) -> None:
    """The leader may sit outside ``participants``; it still opens and replies."""
    if not agenda.participants:
        raise InvalidAgenda(agenda.title, "has no participants")
    if agenda.max_turns < 1:
        raise InvalidAgenda(agenda.title, f"needs max_turns >= 1, got {agenda.max_turns}")


def turn_schedule(agenda: MeetingAgenda) -> list[CompanyRole]:
    """Speaking order for the whole meeting; its length never exceeds max_turns."""
    schedule = [agenda.leader]
    others = [r for r in agenda.participants if r != agenda.leader]
    rounds = math.ceil(agenda.max_turns / len(agenda.participants))
    for _ in range(rounds):
        for role in others:
            if len(schedule) >= agenda.max_turns:
                break
            schedule.append(role)
        if len(schedule) < agenda.max_turns:
            schedule.append(agenda.leader)
    return schedule


def meeting_opening(agenda: MeetingAgenda) -> str:
    lines = [
        f"# {agenda.type.value.replace('_', ' ').upper()} MEETING: {agenda.title}",
        "",
        "## Description",
        agenda.description,
        "",
    ]
    if agenda.context:
        lines += ["## Additional Context", agenda.context, ""]
    lines += [
        "## Objectives",
        "- Discuss the topic thoroughly from all perspectives",
        "- Make concrete decisions with clear rationale",
        "- Identify action items and next steps",
        "- Address concerns raised by any team member",
        "",
        "Please begin the meeting discussion.",
    ]
    return "\n".join(lines)


class MeetingRoom:
    """Runs one structured multi-turn conversation at a time per call."""

    def __init__(self, roles: RoleManager, registry: AgentRegistry, emit: Emit = null_emit) -> None:
        self._roles = roles
        self._registry = registry
        self._emit = emit

    def role_prompt(self, role: CompanyRole, agenda: MeetingAgenda, turn_number: int) -> str:
        definition = get_role_definition(role)
        roster = ", ".join(
            f"@{get_role_definition(r).title} ({r.value})" for r in agenda.participants
        )
        return "\n".join([
            self._roles.persona(role),
            "",
            "MEETING CONTEXT:",
            f'You are in a {agenda.type.value} meeting titled "{agenda.title}".',
            f"Your role: {definition.title}",
            f"Participants: {roster}",
            f"Turn: {turn_number} of {agenda.max_turns}",
            "",
            "INSTRUCTIONS:",
            "- Speak in character as your role with expertise and authority.",
            '- You can @mention other roles to ask questions or request input (e.g., "@QA Engineer, what about...").',
            "- Build on what others have said. Agree, disagree, or add new perspectives.",
            '- If you have a decision to propose, clearly state it as: "DECISION: [description]",',
            '  optionally followed by "Rationale: ..." and "Alternatives: a, b" lines.',
            "- Be concise but thorough. Focus on your area of expertise.",
            "- If discussing algorithms or technology choices, explain trade-offs.",
            "- You are opening the meeting. Set the context and ask for input from the team."
            if turn_number == 1
            else "- Respond to what has been discussed so far. Add your perspective.",
        ])

    async def _speak(
        self,
        role: CompanyRole,
        history: list[Message],
        system_prompt: str,
        context: str,
    ) -> tuple[str, AgentResponse]:
        agent_name = self._roles.agent_for_role(role)
        agent = self._registry.get_or_raise(agent_name)
        try:
            response = await agent.send_message(list(history), system_prompt)
        except Exception as exc:
            raise AgentCallFailed(agent_name, error_kind(exc), exc, context) from exc
        return agent_name, response

    async def _take_turn(
        self,
        role: CompanyRole,
        history: list[Message],
        agenda: MeetingAgenda,
        turn_number: int,
    ) -> MeetingTurn:
        title = get_role_definition(role).title
        logger.debug("Turn %d: %s speaking...", turn_number, title)
        agent_name, response = await self._speak(
            role, history, self.role_prompt(role, agenda, turn_number), f"turn {turn_number}",
        )
        turn = MeetingTurn(
            turn_number=turn_number,
            role=role,
            agent=agent_name,
            message=response.content,
            mentioned_roles=parse_mentions(response.content),
            timestamp=time.time(),
            tokens_used=response.tokens_used,
        )
        history.append(
            Message(
                role=MessageRole.ASSISTANT,
                content=f"[{title} - {agent_name}]: {turn.message}",
                timestamp=turn.timestamp,
                agent=agent_name,
                company_role=role,
            )
        )
        return turn

    async def _summarize(self, history: list[Message], agenda: MeetingAgenda) -> tuple[str, TokenUsage]:
        request = [*history, Message(role=MessageRole.USER, content=_SUMMARY_REQUEST)]
        system_prompt = (
            f'You are a meeting facilitator summarizing the {agenda.type.value} meeting titled '
            f'"{agenda.title}". Be concise and focus on actionable outcomes.'
        )
        _, response = await self._speak(agenda.leader, request, system_prompt, "summary")
        return response.content, response.tokens_used

    async def run_meeting(self, agenda: MeetingAgenda) -> MeetingResult:
        """Run a complete meeting and return its transcript, decisions and summary.

        Raises:
            InvalidAgenda: No participants, or max_turns below 1.
            MeetingFailed: Any agent call (or agent lookup) failed.
        """
        validate_agenda(agenda)
        meeting_id = new_id()
        started = time.monotonic()
        turns: list[MeetingTurn] = []
        history = [Message(role=MessageRole.USER, content=meeting_opening(agenda))]

        logger.info(
            'Meeting started: "%s" (%s), participants: %s, leader: %s',
            agenda.title, agenda.type.value, ", ".join(r.value for r in agenda.participants), agenda.leader.value,
        )
        self._emit(MEETING_STARTED, {"meetingId": meeting_id, "agenda": agenda})

        try:
            for turn_number, role in enumerate(turn_schedule(agenda), start=1):
                turn = await self._take_turn(role, history, agenda, turn_number)
                turns.append(turn)
                self._emit(MEETING_TURN, {"meetingId": meeting_id, "turn": turn})

            decisions = extract_decisions(meeting_id, turns, agenda.type)
            for decision in decisions:
                self._emit(MEETING_DECISION, {"meetingId": meeting_id, "decision": decision})

            summary, summary_tokens = await self._summarize(history, agenda)
        except Exception as exc:
            logger.error('Meeting failed: "%s": %s', agenda.title, exc)
            raise MeetingFailed(meeting_id, agenda.title, exc) from exc

        result = MeetingResult(
            id=meeting_id,
            agenda=agenda,
            turns=tuple(turns),
            decisions=tuple(decisions),
            summary=summary,
            artifacts=extract_artifacts(turns),
            duration_sec=time.monotonic() - started,
            total_token_usage=TokenUsage.sum([*(t.tokens_used for t in turns), summary_tokens]),
        )
        self._emit(MEETING_COMPLETED, {"meetingId": meeting_id, "result": result})
        logger.info(
            'Meeting completed: "%s" (%d turns, %d decisions)', agenda.title, len(turns), len(decisions),
        )
        return result
