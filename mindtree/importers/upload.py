"""
Upload source: files already held in memory as name/content pairs.
"""

import logging
from typing import Dict, List

from ..models import SourceFile
from .base import BaseImporter


class UploadImporter(BaseImporter):
    """
    Wraps uploaded files; each one gets the path '/<name>'.
    """

    import_source = "upload"

    def __init__(self, files: List[Dict[str, str]]):
        self.files = files

    def get_all_files(self) -> List[SourceFile]:
        result = []
        for upload in self.files:
            name = upload.get("name", "")
            if not name:
                logging.warning("Skipping uploaded file without a name")
                continue
            source_file = self.make_source_file(name, upload.get("content", "") or "", f"/{name}")
            if source_file:
                result.append(source_file)

        logging.info(f"Accepted {len(result)} of {len(self.files)} uploaded files")
        return result
