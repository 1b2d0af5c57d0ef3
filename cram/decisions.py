"""Mine structured decisions out of free-text meeting turns.

Recognizes blocks like::

    DECISION: Use PostgreSQL for the database
    Rationale: Best support for JSONB
    Alternatives: MySQL, MongoDB

Extraction is best-effort: text that does not follow the marker grammar
yields nothing.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from cram.models import Decision, MeetingTurn, MeetingType, SDLCStage

logger = logging.getLogger(__name__)

MEETING_TO_STAGE: dict[MeetingType, SDLCStage] = {
    MeetingType.KICKOFF: SDLCStage.DISCOVERY,
    MeetingType.ARCHITECTURE_REVIEW: SDLCStage.ARCHITECTURE,
    MeetingType.SPRINT_PLANNING: SDLCStage.IMPLEMENTATION,
    MeetingType.CODE_REVIEW: SDLCStage.QUALITY_ASSURANCE,
    MeetingType.BUG_TRIAGE: SDLCStage.QUALITY_ASSURANCE,
    MeetingType.SEO_MARKETING_REVIEW: SDLCStage.SEO_MARKETING,
    MeetingType.DEPLOYMENT_REVIEW: SDLCStage.DEPLOYMENT,
    MeetingType.RETROSPECTIVE: SDLCStage.DEPLOYMENT,
}

# Characters after a DECISION line searched for its rationale and alternatives
LOOKAHEAD_CHARS = 500

_DECISION_RE = re.compile(r"DECISION:\s*(.+?)(?:\n|$)", re.IGNORECASE)
_RATIONALE_RE = re.compile(r"(?:rationale|reason|because|why):\s*(.+?)(?:\n|$)", re.IGNORECASE)
_ALTERNATIVES_RE = re.compile(
    r"(?:alternatives?|other options?|instead of):\s*(.+?)(?:\n|$)", re.IGNORECASE
)
_ALT_SPLIT_RE = re.compile(r"[,;]")


@dataclass(frozen=True)
class RawDecision:
    title: str
    rationale: str
    alternatives: tuple[str, ...]


def parse_decisions(text: str) -> list[RawDecision]:
    """Parse every ``DECISION:`` marker in ``text``."""
    found: list[RawDecision] = []
    for match in _DECISION_RE.finditer(text):
        title = match.group(1).strip()
        if not title:
            continue
        nearby = text[match.end():match.end() + LOOKAHEAD_CHARS]

        rationale_match = _RATIONALE_RE.search(nearby)
        alternatives_match = _ALTERNATIVES_RE.search(nearby)
        alternatives: tuple[str, ...] = ()
        if alternatives_match:
            alternatives = tuple(
                part.strip() for part in _ALT_SPLIT_RE.split(alternatives_match.group(1)) if part.strip()
            )

        found.append(
            RawDecision(
                title=title,
                rationale=rationale_match.group(1).strip() if rationale_match else "",
                alternatives=alternatives,
            )
        )
    return found


def stage_for(meeting_type: MeetingType) -> SDLCStage:
    return MEETING_TO_STAGE.get(meeting_type, SDLCStage.DISCOVERY)


def extract_decisions(
    meeting_id: str,
    turns: Sequence[MeetingTurn],
    meeting_type: MeetingType,
) -> list[Decision]:
    """Build Decision records from every turn of one meeting."""
    stage = stage_for(meeting_type)
    decisions = [
        Decision(
            meeting_id=meeting_id,
            stage=stage,
            title=raw.title,
            description=raw.title,
            rationale=raw.rationale,
            alternatives=raw.alternatives,
            made_by=turn.role,
            timestamp=turn.timestamp,
        )
        for turn in turns
        for raw in parse_decisions(turn.message)
    ]
    if decisions:
        logger.info("Extracted %d decisions from meeting %s", len(decisions), meeting_id)
    return decisions


class DecisionLog:
    """Accumulates decisions across meetings for later querying."""

    def __init__(self) -> None:
        self._decisions: list[Decision] = []

    def record(self, decisions: Iterable[Decision]) -> None:
        self._decisions.extend(decisions)

    def all(self) -> list[Decision]:
        return list(self._decisions)

    def by_stage(self, stage: SDLCStage) -> list[Decision]:
        return [d for d in self._decisions if d.stage == stage]

    def by_meeting(self, meeting_id: str) -> list[Decision]:
        return [d for d in self._decisions if d.meeting_id == meeting_id]

    def clear(self) -> None:
        self._decisions.clear()

    def __len__(self) -> int:
        return len(self._decisions)
