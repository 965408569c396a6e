"""
Google Drive source: reads an Obsidian vault synced to a Drive folder.

Authenticates with a service account and walks the folder tree through the
Drive v3 API, downloading every supported note file.
"""

import io
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..config import config
from ..exceptions import ImportSourceError
from ..models import SourceFile
from ..parsers.markdown import is_supported_file
from .base import BaseImporter


FOLDER_MIME = "application/vnd.google-apps.folder"
DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.readonly"]


def get_drive_service(credentials_file: Optional[str] = None):
    """Build an authenticated Google Drive API service."""
    from google.oauth2 import service_account
    from googleapiclient.discovery import build

    creds = service_account.Credentials.from_service_account_file(
        credentials_file or config.google_credentials_file,
        scopes=DRIVE_SCOPES,
    )
    return build("drive", "v3", credentials=creds)


class GoogleDriveImporter(BaseImporter):
    """
    Recursively imports markdown, canvas and text files from a Drive folder.

    Paths mirror the folder structure below the starting folder.
    """

    def __init__(self, folder_id: str, service: Any = None, credentials_file: Optional[str] = None):
        """
        Args:
            folder_id: Id of the Drive folder holding the vault
            service: Prebuilt Drive service (built from the credentials file when omitted)
            credentials_file: Service account JSON key file
        """
        self.folder_id = folder_id
        self.service = service
        self.credentials_file = credentials_file
        self.import_source = f"google-drive:{folder_id}"

    def get_all_files(self) -> List[SourceFile]:
        try:
            if self.service is None:
                self.service = get_drive_service(self.credentials_file)

            files = []
            for meta, path in self._walk(self.folder_id, ""):
                source_file = self._download(meta, path)
                if source_file:
                    files.append(source_file)
        except ImportSourceError:
            raise
        except Exception as e:
            # Errors from the Drive client surface as several unrelated types
            raise ImportSourceError(f"Google Drive import failed for folder {self.folder_id}: {e}", source=self.import_source) from e

        logging.info(f"Found {len(files)} supported files in Drive folder {self.folder_id}")
        return files

    def _list_folder(self, folder_id: str) -> List[Dict[str, Any]]:
        entries = []
        page_token = None
        while True:
            results = (
                self.service.files()
                .list(
                    q=f"'{folder_id}' in parents and trashed = false",
                    fields="nextPageToken, files(id, name, mimeType, modifiedTime)",
                    pageSize=100,
                    pageToken=page_token,
                )
                .execute()
            )
            entries.extend(results.get("files", []))
            page_token = results.get("nextPageToken")
            if not page_token:
                return entries

    def _walk(self, folder_id: str, prefix: str):
        for meta in self._list_folder(folder_id):
            name = meta.get("name", "")
            if meta.get("mimeType") == FOLDER_MIME:
                if name.startswith(".") or name in config.skip_dirs:
                    continue
                yield from self._walk(meta["id"], f"{prefix}/{name}")
            elif is_supported_file(name):
                yield meta, f"{prefix}/{name}"
            else:
                logging.info(f"Skipping unsupported Drive file: {prefix}/{name}")

    def _download(self, meta: Dict[str, Any], path: str) -> Optional[SourceFile]:
        from googleapiclient.http import MediaIoBaseDownload

        request = self.service.files().get_media(fileId=meta["id"])
        buf = io.BytesIO()
        downloader = MediaIoBaseDownload(buf, request)
        done = False
        while not done:
            _, done = downloader.next_chunk()

        try:
            content = buf.getvalue().decode("utf-8-sig")
        except UnicodeDecodeError as e:
            logging.warning(f"Skipping Drive file {path}: not valid UTF-8 ({e})")
            return None

        logging.info(f"Downloaded {path} from Google Drive")
        return self.make_source_file(
            meta["name"],
            content,
            path,
            last_modified=self._parse_time(meta.get("modifiedTime")),
            file_id=meta["id"]
        )

    def _parse_time(self, value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
