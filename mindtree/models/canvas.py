"""
Obsidian Canvas models.

A .canvas file is JSON with a list of freeform nodes and the edges between
them. Field names follow the file format through aliases.
"""

from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .graph import LinkRecord, NodeRecord


class CanvasPosition(BaseModel):
    x: float = 0
    y: float = 0


class CanvasNode(BaseModel):
    """
    One element on a canvas board ('text', 'file', 'link', 'group', ...).
    """

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[Union[str, int]] = None
    type: str = "unknown"
    text: Optional[str] = None
    file: Optional[str] = None
    url: Optional[str] = None
    subpath: Optional[str] = None
    # Obsidian writes x/y on the node itself; older exports nest them in position
    x: Optional[float] = None
    y: Optional[float] = None
    position: CanvasPosition = Field(default_factory=CanvasPosition)
    width: Optional[float] = None
    height: Optional[float] = None
    color: Optional[str] = None
    background_color: Optional[str] = Field(None, alias="backgroundColor")
    font_size: Optional[float] = Field(None, alias="fontSize")
    collapsed: Optional[bool] = None
    children: List[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _id_as_text(cls, value):
        return None if value is None else str(value)

    def coordinates(self) -> dict:
        if self.x is not None or self.y is not None:
            return {"x": self.x or 0, "y": self.y or 0}
        return self.position.model_dump()


class CanvasEdge(BaseModel):
    """
    A connection between two canvas elements, by element id.

    from_path/to_path are filled in by the parser once the element paths
    are known; they are not part of the file format.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    from_node: str = Field(..., alias="fromNode")
    from_side: Optional[str] = Field(None, alias="fromSide")
    to_node: str = Field(..., alias="toNode")
    to_side: Optional[str] = Field(None, alias="toSide")
    label: Optional[str] = None
    color: Optional[str] = None
    width: Optional[float] = None
    style: Optional[str] = None

    from_path: Optional[str] = None
    to_path: Optional[str] = None

    @field_validator("id", "from_node", "to_node", mode="before")
    @classmethod
    def _ids_as_text(cls, value):
        return str(value) if isinstance(value, int) else value


class ParsedCanvas(BaseModel):
    """
    Result of parsing one canvas file.

    edges holds the raw canvas edges (Canvas JSON only); links holds edges
    already resolved to node paths (Canvas2Document only).
    """

    nodes: List[NodeRecord] = Field(default_factory=list)
    edges: List[CanvasEdge] = Field(default_factory=list)
    links: List[LinkRecord] = Field(default_factory=list)

    @property
    def root(self) -> Optional[NodeRecord]:
        """The node standing for the whole canvas file."""
        return self.nodes[0] if self.nodes else None
