from .conversation import ConversationMemoryManager, SessionMemory, SessionState, Turn
from .summarizer import Summarizer

__all__ = [
    "ConversationMemoryManager",
    "SessionMemory",
    "SessionState",
    "Summarizer",
    "Turn",
]
