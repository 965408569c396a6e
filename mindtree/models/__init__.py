"""Data models for Ipê Mind Tree."""

from .graph import (
    NodeRecord,
    ObsidianNode,
    LinkRecord,
    ObsidianLink,
    ImportLog,
    ImportResult,
    ParsedBatch,
)
from .canvas import CanvasNode, CanvasEdge, ParsedCanvas
from .sources import SourceFile
from .subprompt import Subprompt

__all__ = [
    "NodeRecord",
    "ObsidianNode",
    "LinkRecord",
    "ObsidianLink",
    "ImportLog",
    "ImportResult",
    "ParsedBatch",
    "CanvasNode",
    "CanvasEdge",
    "ParsedCanvas",
    "SourceFile",
    "Subprompt"
]
