"""
Graph data models for Ipê Mind Tree.

Nodes are imported documents or canvas elements, links are typed, weighted
edges between them. Records (NodeRecord, LinkRecord) are the shapes produced
by the parsers before anything is persisted; ObsidianNode and ObsidianLink are
rows read back from the database.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field


# Source types
SOURCE_OBSIDIAN = "obsidian"
SOURCE_CANVAS = "canvas"
SOURCE_CANVAS2DOCUMENT = "canvas2document"

# Link types
WIKI_LINK = "wiki"
CANVAS_EDGE_LINK = "canvas-edge"
CANVAS_LINK = "canvas"
CANVAS_ADJACENT_LINK = "canvas-adjacent"
TAG_LINK = "tag"
TITLE_SIMILARITY_LINK = "title-similarity"

LINK_TYPES = (
    WIKI_LINK,
    CANVAS_EDGE_LINK,
    CANVAS_LINK,
    CANVAS_ADJACENT_LINK,
    TAG_LINK,
    TITLE_SIMILARITY_LINK,
)


class NodeRecord(BaseModel):
    """
    A node as produced by the importer, before it has a database id.
    """

    title: str = Field(
        ...,
        description="Display title of the document or canvas element"
    )

    content: str = Field(
        default="",
        description="Raw text, markdown or a synthetic description"
    )

    path: str = Field(
        ...,
        description="Unique natural key; canvas elements use '<file>#<elementId>'"
    )

    tags: List[str] = Field(
        default_factory=list,
        description="Ordered list of tags"
    )

    source_type: str = Field(
        default=SOURCE_OBSIDIAN,
        description="One of 'obsidian', 'canvas' or 'canvas2document'"
    )

    is_imported: bool = Field(
        default=True,
        description="Whether the node came from an import"
    )

    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Open bag: inferred category, domains, canvas geometry, parent canvas"
    )


class ObsidianNode(NodeRecord):
    """
    A persisted node.
    """

    id: int = Field(
        ...,
        description="Primary key assigned on insert"
    )

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LinkRecord(BaseModel):
    """
    A link addressed by node paths, resolved to ids when it is saved.
    """

    source_path: str
    target_path: str
    type: str = WIKI_LINK
    strength: float = 1.0
    label: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ObsidianLink(BaseModel):
    """
    A directed, typed, weighted edge between two persisted nodes.
    """

    id: Optional[int] = Field(
        None,
        description="Primary key (auto-increment in database)"
    )

    source_id: int
    target_id: int
    type: str = WIKI_LINK
    strength: float = 1.0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class ImportLog(BaseModel):
    """
    Audit record of one import attempt. Never mutated once written.
    """

    id: Optional[int] = None
    import_source: str
    nodes_count: int = 0
    links_count: int = 0
    success: bool = True
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    imported_by: Optional[str] = None
    imported_at: Optional[datetime] = None


class ParsedBatch(BaseModel):
    """
    Output of ObsidianImporter.parse_obsidian_data for one batch of files.
    """

    nodes: List[NodeRecord] = Field(default_factory=list)
    links: List[LinkRecord] = Field(default_factory=list)

    errors: List[Dict[str, str]] = Field(
        default_factory=list,
        description="Files that failed to parse, as {'path', 'error'}"
    )

    unresolved_links: int = Field(
        default=0,
        description="Wiki-link tokens whose target was not in the batch"
    )


class ImportResult(BaseModel):
    """
    Summary of one completed (or failed) import call.
    """

    success: bool
    import_source: str
    nodes_count: int = 0
    links_count: int = 0
    skipped_links: int = 0
    errors: List[Dict[str, str]] = Field(default_factory=list)
    error: Optional[str] = None
    log_id: Optional[int] = None
