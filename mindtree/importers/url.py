"""
Download source: a single note file or a zipped vault behind a URL.
"""

import io
import logging
import posixpath
import zipfile
from datetime import datetime
from typing import List, Optional
from urllib.parse import unquote, urlparse

import httpx

from ..config import config
from ..exceptions import ImportSourceError
from ..models import SourceFile
from ..parsers.markdown import is_supported_file
from .base import BaseImporter


class UrlImporter(BaseImporter):
    """
    Downloads a URL and turns it into source files.

    A zip archive is unpacked in memory and its supported members imported
    with their archive paths; a single vault folder wrapping everything is
    dropped from the paths. Any other download must itself be a supported
    note file.
    """

    import_source = "url_download"

    def __init__(self, url: str, client: Optional[httpx.Client] = None, skip_dirs: Optional[List[str]] = None):
        self.url = url
        self.client = client
        self.skip_dirs = set(skip_dirs if skip_dirs is not None else config.skip_dirs)

    def get_all_files(self) -> List[SourceFile]:
        logging.info(f"Downloading notes from {self.url}")
        data = self._download()

        name = posixpath.basename(unquote(urlparse(self.url).path)) or "download"
        if name.lower().endswith(".zip") or zipfile.is_zipfile(io.BytesIO(data)):
            return self._unpack_zip(data)

        if not is_supported_file(name):
            raise ImportSourceError(f"Unsupported download (expected .md, .canvas, .txt or .zip): {name}", source=self.url)

        content = self._decode(data, name)
        if content is None:
            raise ImportSourceError(f"Downloaded file is not UTF-8 text: {name}", source=self.url)
        source_file = self.make_source_file(name, content, f"/{name}")
        return [source_file] if source_file else []

    def _download(self) -> bytes:
        client = self.client or httpx.Client(timeout=config.download_timeout, follow_redirects=True)
        try:
            response = client.get(self.url)
            response.raise_for_status()
            return response.content
        except httpx.HTTPStatusError as e:
            raise ImportSourceError(f"Download failed with status {e.response.status_code}: {self.url}", source=self.url) from e
        except httpx.RequestError as e:
            raise ImportSourceError(f"Failed to download {self.url}: {e}", source=self.url) from e
        finally:
            if self.client is None:
                client.close()

    def _unpack_zip(self, data: bytes) -> List[SourceFile]:
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise ImportSourceError(f"Invalid zip archive at {self.url}: {e}", source=self.url) from e

        with archive:
            members = [m for m in archive.infolist() if not m.is_dir() and self._wanted(m.filename)]
            prefix = self._common_folder([m.filename for m in members])

            files = []
            for member in members:
                relative = member.filename[len(prefix):]
                name = posixpath.basename(relative)
                content = self._decode(archive.read(member), member.filename)
                if content is None:
                    continue
                modified = datetime(*member.date_time)
                source_file = self.make_source_file(name, content, "/" + relative, last_modified=modified)
                if source_file:
                    files.append(source_file)

        logging.info(f"Unpacked {len(files)} supported files from {self.url}")
        return files

    def _wanted(self, member_name: str) -> bool:
        parts = member_name.split("/")
        if any(part.startswith(".") or part in self.skip_dirs for part in parts[:-1]):
            return False
        if parts[-1].startswith(".") or "__MACOSX" in parts:
            return False
        return is_supported_file(parts[-1])

    def _common_folder(self, names: List[str]) -> str:
        """The single top-level folder shared by every member, with its slash, or ''."""
        if not names:
            return ""
        first = names[0].split("/", 1)
        if len(first) < 2:
            return ""
        prefix = first[0] + "/"
        return prefix if all(name.startswith(prefix) for name in names) else ""

    def _decode(self, data: bytes, name: str) -> Optional[str]:
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            logging.warning(f"Skipping {name}: not valid UTF-8 ({e})")
            return None
