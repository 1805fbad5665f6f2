"""teamtutor: session memory and retrieval core for the simulated project team tutor.

Heavy submodules (vector backends, embedding models, chat pipelines) are
imported lazily on attribute access so ``import teamtutor`` stays cheap.
"""

import importlib
from types import ModuleType
from typing import Any

__version__ = "0.1.0"

_LAZY = {
    "cache",
    "chat",
    "embeddings",
    "ingest",
    "llm",
    "memory",
    "team",
    "vector_store",
    "context_assembler",
}

__all__ = sorted(_LAZY) + ["__version__"]


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial
    if name in _LAZY:
        module: ModuleType = importlib.import_module(f".{name}", __name__)
        globals()[name] = module
        return module
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
