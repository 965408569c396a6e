"""Parsers turning note files into node and link records."""

from .canvas import CanvasParser, canvas_parser
from .inference import infer_categories_from_text, infer_domains_from_content
from .markdown import (
    PathResolver,
    classify_file,
    extract_tags,
    extract_title,
    extract_wiki_links,
    normalize_link_target,
)

__all__ = [
    "CanvasParser",
    "canvas_parser",
    "infer_categories_from_text",
    "infer_domains_from_content",
    "PathResolver",
    "classify_file",
    "extract_tags",
    "extract_title",
    "extract_wiki_links",
    "normalize_link_target"
]
