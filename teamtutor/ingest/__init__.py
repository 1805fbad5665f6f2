from .loaders import SUPPORTED_EXTENSIONS, LoadedDocument, load_file
from .pipeline import IngestionPipeline, IngestItemResult, IngestReport
from .splitter import RecursiveTextSplitter

__all__ = [
    "IngestionPipeline",
    "IngestReport",
    "IngestItemResult",
    "RecursiveTextSplitter",
    "LoadedDocument",
    "load_file",
    "SUPPORTED_EXTENSIONS",
]
