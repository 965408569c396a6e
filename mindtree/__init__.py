"""
Ipê Mind Tree: note import and link inference.

Imports Markdown, Obsidian Canvas and Canvas2Document notes into a node/link
graph and serves it for visualization, search and an LLM assistant.
"""

__version__ = "0.1.0"
__author__ = "Ipê Mind Tree Project"

# Import main components
from .database import DatabaseManager
from .models import NodeRecord, ObsidianNode, ObsidianLink, ImportLog, ImportResult
from .importers import ObsidianImporter, LocalDirectoryImporter, UploadImporter
from .parsers import CanvasParser, canvas_parser
from .services import ObsidianService, RagService, SubpromptService, LLMClient

__all__ = [
    "DatabaseManager",
    "NodeRecord",
    "ObsidianNode",
    "ObsidianLink",
    "ImportLog",
    "ImportResult",
    "ObsidianImporter",
    "LocalDirectoryImporter",
    "UploadImporter",
    "CanvasParser",
    "canvas_parser",
    "ObsidianService",
    "RagService",
    "SubpromptService",
    "LLMClient"
]
