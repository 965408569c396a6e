"""
Local directory source: walks an Obsidian vault on disk.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..config import config
from ..exceptions import ImportSourceError
from ..models import SourceFile
from .base import BaseImporter


class LocalDirectoryImporter(BaseImporter):
    """
    Reads every supported file under a directory, recursively.

    Hidden directories and the configured skip list (.obsidian, .trash, ...)
    are never entered. Paths are relative to the directory, with a leading '/'.
    """

    import_source = "directory"

    def __init__(self, directory: str, skip_dirs: Optional[List[str]] = None):
        self.directory = Path(directory)
        self.skip_dirs = set(skip_dirs if skip_dirs is not None else config.skip_dirs)

        logging.info(f"Initialized directory source for: {self.directory}")

    def get_all_files(self) -> List[SourceFile]:
        if not self.directory.is_dir():
            raise ImportSourceError(f"Directory not found: {self.directory}", source=str(self.directory))

        files = []
        for root, dirs, names in os.walk(self.directory):
            dirs[:] = sorted(
                d for d in dirs
                if not d.startswith(".") and d not in self.skip_dirs
            )
            for name in sorted(names):
                full_path = Path(root) / name
                relative = "/" + full_path.relative_to(self.directory).as_posix()

                source_file = self._read_file(full_path, name, relative)
                if source_file:
                    files.append(source_file)

        logging.info(f"Found {len(files)} supported files in {self.directory}")
        return files

    def _read_file(self, full_path: Path, name: str, relative: str) -> Optional[SourceFile]:
        if name.startswith("."):
            return None
        try:
            with open(full_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except UnicodeDecodeError as e:
            logging.warning(f"Skipping {relative}: not valid UTF-8 ({e})")
            return None
        except OSError as e:
            logging.warning(f"Skipping {relative}: {e}")
            return None

        modified = datetime.fromtimestamp(full_path.stat().st_mtime)
        return self.make_source_file(name, content, relative, last_modified=modified)
