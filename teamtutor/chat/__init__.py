from .pipeline import ChatPipeline, ChatRequest, PreparedTurn, TurnResult, session_id_for
from .validation import (
    ValidationPipeline,
    ValidationRequest,
    ValidationResult,
    parse_validation,
)

__all__ = [
    "ChatPipeline",
    "ChatRequest",
    "PreparedTurn",
    "TurnResult",
    "session_id_for",
    "ValidationPipeline",
    "ValidationRequest",
    "ValidationResult",
    "parse_validation",
]
