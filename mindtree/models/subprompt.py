"""
Subprompt model: domain-specific instructions selected per user question.
"""

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field


class Subprompt(BaseModel):
    """
    A named instruction block for one IMT sphere.
    """

    id: Optional[int] = None
    name: str
    description: str = ""
    keywords: List[str] = Field(default_factory=list)
    content: str = ""
    sphere: Optional[str] = None
    active: bool = True
    usage_count: int = 0

    embedding: List[float] = Field(
        default_factory=list,
        description="Normalized hashed word-frequency vector of name, description and keywords"
    )

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
