"""
Source file model shared by every importer.
"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


FILE_MARKDOWN = "markdown"
FILE_CANVAS = "canvas"
FILE_CANVAS2DOCUMENT = "canvas2document"
FILE_TEXT = "text"


class SourceFile(BaseModel):
    """
    One candidate file handed to the importer, whatever its origin.
    """

    name: str = Field(
        ...,
        description="File name including extension"
    )

    content: str = Field(
        ...,
        description="Full text of the file"
    )

    path: str = Field(
        ...,
        description="Batch-relative path with a leading '/'; becomes the node path"
    )

    file_type: str = Field(
        default=FILE_MARKDOWN,
        description="'markdown', 'canvas', 'canvas2document' or 'text'"
    )

    last_modified: datetime = Field(default_factory=datetime.now)

    file_id: Optional[str] = Field(
        None,
        description="Identifier in the remote store (Google Drive), if any"
    )
