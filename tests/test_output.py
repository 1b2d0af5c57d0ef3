"""Tests for cram/output.py."""

from pathlib import Path

import pytest

from cram.models import (
    CompanyRole,
    Conversation,
    Decision,
    GeneratedFile,
    MeetingAgenda,
    MeetingResult,
    MeetingType,
    Message,
    MessageRole,
    OrchestrationResult,
    PipelineResult,
    SDLCStage,
    StageResult,
    Strategy,
    TokenUsage,
)
from cram.output import _slug, save_meeting, save_pipeline, save_result

from tests.conftest import make_response, make_turn


def test_slug_basic():
    assert _slug("Should we use YAML or JSON?") == "should-we-use-yaml-or-json"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_slug_special_chars():
    result = _slug("API vs. SDK (2024)")
    assert "." not in result
    assert "(" not in result
    assert ")" not in result


@pytest.fixture
def sample_meeting() -> MeetingResult:
    agenda = MeetingAgenda(
        title="Schema Review",
        description="Pick a database",
        type=MeetingType.ARCHITECTURE_REVIEW,
        participants=(CompanyRole.CTO, CompanyRole.LEAD_ARCHITECT),
        leader=CompanyRole.CTO,
        max_turns=2,
    )
    decision = Decision(
        meeting_id="m1",
        stage=SDLCStage.ARCHITECTURE,
        title="Use PostgreSQL",
        description="Use PostgreSQL",
        rationale="JSONB",
        alternatives=("MySQL",),
        made_by=CompanyRole.CTO,
        timestamp=1.0,
    )
    return MeetingResult(
        id="m1",
        agenda=agenda,
        turns=(make_turn(1, "Opening words"), make_turn(2, "Reply", role=CompanyRole.LEAD_ARCHITECT)),
        decisions=(decision,),
        summary="## Outcome\nPostgres it is.",
        artifacts=(),
        duration_sec=3.0,
        total_token_usage=TokenUsage(10, 20, 30),
    )


def test_save_meeting_content(tmp_path: Path, sample_meeting: MeetingResult):
    saved = save_meeting(sample_meeting, tmp_path / "output")
    content = saved.read_text(encoding="utf-8")

    assert saved.suffix == ".md"
    assert "schema-review" in saved.name
    assert "# Meeting: Schema Review" in content
    assert "1. Chief Technology Officer (mock)" in content
    assert "**Use PostgreSQL**" in content
    assert "Alternatives: MySQL" in content
    assert "Postgres it is." in content


def test_save_meeting_slug_override(tmp_path: Path, sample_meeting: MeetingResult):
    saved = save_meeting(sample_meeting, tmp_path, slug_override="from-inbox")
    assert saved.name.endswith("_from-inbox.md")


def test_save_pipeline_content(tmp_path: Path, sample_meeting: MeetingResult):
    generated = GeneratedFile(path="app/main.py", content="print(1)", language="python",
                              generated_by=CompanyRole.SENIOR_DEVELOPER)
    result = PipelineResult(
        id="p1",
        project_name="Todo App",
        project_description="A todo app",
        stages=(StageResult(SDLCStage.ARCHITECTURE, sample_meeting, (generated,), 3.0),),
        decisions=sample_meeting.decisions,
        generated_files=(generated,),
        total_duration_sec=3.0,
        total_token_usage=TokenUsage(10, 20, 30),
    )

    saved = save_pipeline(result, tmp_path)
    content = saved.read_text(encoding="utf-8")

    assert "todo-app" in saved.name
    assert "# Project: Todo App" in content
    assert "## Meeting: Schema Review" in content
    assert "### app/main.py" in content
    assert "```python\nprint(1)\n```" in content


def test_save_result_content(tmp_path: Path):
    conversation = Conversation(owner_id="r1")
    conversation.append(Message(MessageRole.USER, "Build a cache"))
    conversation.append(Message(MessageRole.ASSISTANT, "[Step 1 - gpt]: done", agent="gpt"))
    result = OrchestrationResult(
        id="r1",
        strategy=Strategy.SEQUENTIAL,
        responses=(make_response("gpt", "done"),),
        final_output="done",
        conversation=conversation,
        duration_sec=1.0,
        token_usage=TokenUsage(5, 5, 10),
    )

    saved = save_result(result, "Build a cache", tmp_path / "nested")
    content = saved.read_text(encoding="utf-8")

    assert saved.parent.exists()
    assert "# Sequential Run: Build a cache" in content
    assert "**Agents:** gpt" in content
    assert "## Final Output" in content
