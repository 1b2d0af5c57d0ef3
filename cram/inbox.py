"""Inbox folder scanning, agenda frontmatter parsing, and archive logic."""

import shutil
from datetime import datetime
from pathlib import Path

import frontmatter

from cram.models import CompanyRole, MeetingAgenda, MeetingType
from cram.roles import parse_role


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    """Create inbox and archive directories if they don't exist."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md files in inbox_dir, sorted by mtime ascending (oldest first)."""
    files = list(inbox_dir.glob("*.md"))
    return sorted(files, key=lambda p: p.stat().st_mtime)


def _parse_participants(raw: object) -> tuple[CompanyRole, ...]:
    if raw is None:
        return ()
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    roles: list[CompanyRole] = []
    for item in items:
        if str(item).strip():
            role = parse_role(str(item))
            if role not in roles:
                roles.append(role)
    return tuple(roles)


def parse_agenda_file(file_path: Path, default_max_turns: int = 8) -> MeetingAgenda:
    """Parse a meeting agenda: YAML frontmatter for the settings, body for the description.

    Frontmatter keys: title, type, participants (list or comma string),
    leader, max_turns, context. Title defaults to the file stem, type to
    kickoff, leader to the first participant.

    Raises:
        ValueError: No participants, or an unknown meeting type.
        UnknownRole: A participant or the leader is not a company role.
    """
    post = frontmatter.load(str(file_path))
    metadata = dict(post.metadata)

    participants = _parse_participants(metadata.get("participants"))
    if not participants:
        raise ValueError(f"{file_path.name}: agenda lists no participants")

    raw_type = str(metadata.get("type", MeetingType.KICKOFF.value)).strip().lower()
    try:
        meeting_type = MeetingType(raw_type)
    except ValueError:
        raise ValueError(f"{file_path.name}: unknown meeting type {raw_type!r}") from None

    leader = parse_role(str(metadata["leader"])) if metadata.get("leader") else participants[0]
    if leader not in participants:
        participants = (leader, *participants)

    context = metadata.get("context")
    return MeetingAgenda(
        title=str(metadata.get("title") or file_path.stem),
        description=post.content.strip(),
        type=meeting_type,
        participants=participants,
        leader=leader,
        max_turns=int(metadata.get("max_turns", default_max_turns)),
        context=str(context).strip() if context else None,
    )


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move file to archive_dir with a timestamp prefix.

    Args:
        file_path: Source file to archive.
        archive_dir: Destination directory.
        failed: If True, prefix filename with "FAILED_".

    Returns:
        Path to the archived file.
    """
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    return dest
