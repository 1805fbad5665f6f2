from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..config_runtime import get_config
from ..context_assembler import combine_documents
from ..errors import IndexQueryFailure
from ..llm import TextGenerator
from ..metrics import PIPELINE_DEGRADED
from ..team import StepContext, validation_prompt
from ..vector_store.base import VectorIndex

logger = logging.getLogger(__name__)

PASS_SCORE = 70

_SCORE_RE = re.compile(r"SCORE:\s*(\d+)")
_FEEDBACK_RE = re.compile(r"FEEDBACK:\s*(.*?)(?=RECOMMENDATIONS:|$)", re.S)
_RECOMMENDATIONS_RE = re.compile(r"RECOMMENDATIONS:\s*(.*?)$", re.S)


@dataclass
class ValidationRequest:
    user_id: str
    submission: str
    step: StepContext


@dataclass(frozen=True)
class ValidationResult:
    score: int
    feedback: str
    recommendations: str
    passed: bool


def parse_validation(text: str) -> ValidationResult:
    """Parse the ``SCORE / FEEDBACK / RECOMMENDATIONS`` reply format.

    A missing score counts as 0; scores are clamped to 0..100.
    """
    score_m = _SCORE_RE.search(text or "")
    feedback_m = _FEEDBACK_RE.search(text or "")
    recs_m = _RECOMMENDATIONS_RE.search(text or "")
    score = min(100, int(score_m.group(1))) if score_m else 0
    return ValidationResult(
        score=score,
        feedback=feedback_m.group(1).strip() if feedback_m else "No feedback provided",
        recommendations=recs_m.group(1).strip() if recs_m else "No recommendations provided",
        passed=score >= PASS_SCORE,
    )


class ValidationPipeline:
    """Scores a learner submission against the step's criteria and project context."""

    def __init__(self, index: VectorIndex, generator: TextGenerator, *, k: int | None = None):
        self.index = index
        self.generator = generator
        self.k = k or get_config().retrieval.k

    async def validate(self, req: ValidationRequest) -> ValidationResult:
        if not req.submission or not req.submission.strip():
            raise ValueError("submission is empty")
        try:
            retrieved = await self.index.query(req.submission, k=self.k)
        except IndexQueryFailure as e:
            PIPELINE_DEGRADED.labels("validation_retrieval").inc()
            logger.warning("validation.retrieval_degraded", extra={"meta": {"error": str(e)}})
            retrieved = []
        system = validation_prompt(req.step, combine_documents(retrieved))
        raw = await self.generator.generate(
            f"Please evaluate this student submission:\n\n{req.submission}", system=system
        )
        result = parse_validation(raw)
        logger.info(
            "validation.done",
            extra={
                "meta": {
                    "user_id": req.user_id,
                    "task_id": req.step.task_id,
                    "score": result.score,
                    "passed": result.passed,
                }
            },
        )
        return result


__all__ = [
    "ValidationPipeline",
    "ValidationRequest",
    "ValidationResult",
    "parse_validation",
    "PASS_SCORE",
]
