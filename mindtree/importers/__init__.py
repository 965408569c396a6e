"""Note sources and the Obsidian importer."""

from .base import BaseImporter
from .google_drive import GoogleDriveImporter
from .local import LocalDirectoryImporter
from .obsidian import ObsidianImporter, dedupe_links
from .upload import UploadImporter
from .url import UrlImporter

__all__ = [
    "BaseImporter",
    "GoogleDriveImporter",
    "LocalDirectoryImporter",
    "ObsidianImporter",
    "UploadImporter",
    "UrlImporter",
    "dedupe_links"
]
