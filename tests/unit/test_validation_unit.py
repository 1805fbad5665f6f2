from unittest.mock import AsyncMock

import pytest

from teamtutor.chat import ValidationPipeline, ValidationRequest, parse_validation
from teamtutor.errors import IndexQueryFailure
from teamtutor.ingest import IngestionPipeline
from teamtutor.team import StepContext
from tests.helpers.fakes import RecordingGenerator

STEP = StepContext(
    task_id="t2",
    task_name="Stakeholder Identification & Analysis",
    step="Comprehensive stakeholder list",
    validation_criteria=("Lists primary users", "Lists operators"),
)

REPLY = """SCORE: 82
FEEDBACK: Good coverage of students and staff.
Missing suppliers.
RECOMMENDATIONS: Add external suppliers and campus security."""


def test_parse_full_reply():
    result = parse_validation(REPLY)
    assert result.score == 82
    assert result.feedback == "Good coverage of students and staff.\nMissing suppliers."
    assert result.recommendations == "Add external suppliers and campus security."
    assert result.passed is True


@pytest.mark.parametrize(
    "text, score, passed",
    [
        ("SCORE: 70\nFEEDBACK: ok", 70, True),
        ("SCORE: 69\nFEEDBACK: close", 69, False),
        ("no structure at all", 0, False),
        ("SCORE: 250", 100, True),
    ],
)
def test_parse_scores(text, score, passed):
    result = parse_validation(text)
    assert result.score == score
    assert result.passed is passed


def test_parse_defaults_when_sections_missing():
    result = parse_validation("SCORE: 10")
    assert result.feedback == "No feedback provided"
    assert result.recommendations == "No recommendations provided"


@pytest.mark.asyncio
async def test_validate_uses_retrieved_context(memory_index):
    await IngestionPipeline(memory_index).ingest_texts(
        ["Stakeholders: students, dining staff, suppliers."], [{"source": "brief.md"}]
    )
    gen = RecordingGenerator(REPLY)
    result = await ValidationPipeline(memory_index, gen).validate(
        ValidationRequest(user_id="u1", submission="students and dining staff", step=STEP)
    )
    assert result.passed
    prompt, system = gen.calls[0]
    assert "students and dining staff" in prompt
    assert "Source: brief.md" in system
    assert "Lists primary users, Lists operators" in system


@pytest.mark.asyncio
async def test_validate_degrades_without_index(memory_index):
    memory_index.query = AsyncMock(side_effect=IndexQueryFailure("down"))
    gen = RecordingGenerator("SCORE: 40\nFEEDBACK: thin\nRECOMMENDATIONS: more")
    result = await ValidationPipeline(memory_index, gen).validate(
        ValidationRequest(user_id="u1", submission="students", step=STEP)
    )
    assert result.score == 40
    assert not result.passed


@pytest.mark.asyncio
async def test_validate_rejects_empty_submission(memory_index):
    with pytest.raises(ValueError):
        await ValidationPipeline(memory_index, RecordingGenerator("x")).validate(
            ValidationRequest(user_id="u1", submission="  ", step=STEP)
        )
