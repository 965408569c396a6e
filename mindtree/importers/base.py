"""
Base importer interface for Ipê Mind Tree.

This module defines the abstract interface that all note sources must implement.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..models import SourceFile
from ..parsers.markdown import classify_file


class BaseImporter(ABC):
    """
    Abstract base class for all note sources.

    Each source reads files from one place (a local directory, an upload,
    a download URL, a Google Drive folder) and hands them to the importer
    as SourceFile objects. Unsupported files are skipped.
    """

    import_source = "unknown"

    @abstractmethod
    def get_all_files(self) -> List[SourceFile]:
        """
        Retrieve all supported files from the source.

        Returns:
            List of SourceFile objects with batch paths starting with '/'

        Raises:
            ImportSourceError: If the source cannot be read
        """
        pass

    def make_source_file(
        self,
        name: str,
        content: str,
        path: str,
        last_modified: Optional[datetime] = None,
        file_id: Optional[str] = None
    ) -> Optional[SourceFile]:
        """
        Classify a file and wrap it, or return None when it is not supported.
        """
        file_type = classify_file(name, content)
        if file_type is None:
            logging.info(f"Skipping unsupported file: {path}")
            return None

        if not path.startswith("/"):
            path = "/" + path

        return SourceFile(
            name=name,
            content=content,
            path=path,
            file_type=file_type,
            last_modified=last_modified or datetime.now(),
            file_id=file_id
        )
