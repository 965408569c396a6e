"""
Tests for the download and Google Drive sources, with the network mocked.
"""

import io
import unittest
import zipfile
from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest

from mindtree.exceptions import ImportSourceError
from mindtree.importers import GoogleDriveImporter, ObsidianImporter, UrlImporter
from mindtree.importers.google_drive import FOLDER_MIME


def make_zip(members):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        for name, data in members.items():
            archive.writestr(name, data)
    return buf.getvalue()


def mock_client(status=200, content=b""):
    def handler(request):
        return httpx.Response(status, content=content)
    return httpx.Client(transport=httpx.MockTransport(handler))


VAULT_ZIP = make_zip({
    "Vault/A.md": "# Alpha\nSee [[B]]",
    "Vault/sub/B.md": "# Beta",
    "Vault/board.canvas": '{"nodes": [], "edges": []}',
    "Vault/.obsidian/workspace.md": "ignored",
    "Vault/img.png": b"\x89PNG",
})


def test_zip_download_strips_vault_folder():
    importer = UrlImporter("https://example.com/vault.zip", client=mock_client(content=VAULT_ZIP))

    files = importer.get_all_files()

    assert sorted(f.path for f in files) == ["/A.md", "/board.canvas", "/sub/B.md"]
    assert {f.path: f.file_type for f in files}["/board.canvas"] == "canvas"


def test_zip_detected_without_extension():
    importer = UrlImporter("https://example.com/download?id=1", client=mock_client(content=VAULT_ZIP))
    assert len(importer.get_all_files()) == 3


def test_single_markdown_download():
    client = mock_client(content="# Alpha\nbody".encode("utf-8"))
    files = UrlImporter("https://example.com/notes/Alpha.md", client=client).get_all_files()

    assert [(f.path, f.name) for f in files] == [("/Alpha.md", "Alpha.md")]
    assert files[0].content.startswith("# Alpha")


def test_download_errors_raise_import_source_error():
    with pytest.raises(ImportSourceError) as excinfo:
        UrlImporter("https://example.com/a.md", client=mock_client(status=404)).get_all_files()
    assert "404" in str(excinfo.value)

    with pytest.raises(ImportSourceError):
        UrlImporter("https://example.com/report.pdf", client=mock_client(content=b"%PDF-1.4")).get_all_files()


def test_url_import_end_to_end(db):
    importer = UrlImporter("https://example.com/vault.zip", client=mock_client(content=VAULT_ZIP))

    result = ObsidianImporter(db).import_from_source(importer, "ana")

    assert result.success
    assert result.import_source == "url_download"
    assert result.nodes_count == 3
    assert result.links_count == 1


class FakeDownloader:
    """Stands in for MediaIoBaseDownload; the request is the file id."""

    contents = {
        "f-a": "# Alpha\nSee [[B]]".encode("utf-8"),
        "f-b": "# Beta".encode("utf-8"),
    }

    def __init__(self, buf, request):
        self.buf = buf
        self.request = request

    def next_chunk(self):
        self.buf.write(self.contents[self.request])
        return None, True


class TestGoogleDriveImporter(unittest.TestCase):
    """Test walking a Drive folder with a mocked service."""

    def setUp(self):
        self.service = MagicMock()
        files = self.service.files.return_value
        files.list.return_value.execute.side_effect = [
            {
                "files": [
                    {"id": "f-sub", "name": "sub", "mimeType": FOLDER_MIME},
                    {"id": "f-a", "name": "A.md", "mimeType": "text/markdown",
                     "modifiedTime": "2024-05-01T10:00:00.000Z"},
                ],
                "nextPageToken": "page-2",
            },
            {
                "files": [
                    {"id": "f-img", "name": "photo.png", "mimeType": "image/png"},
                    {"id": "f-obs", "name": ".obsidian", "mimeType": FOLDER_MIME},
                ],
            },
            {
                "files": [{"id": "f-b", "name": "B.md", "mimeType": "text/markdown"}],
            },
        ]
        files.get_media.side_effect = lambda fileId: fileId

    @patch("googleapiclient.http.MediaIoBaseDownload", FakeDownloader)
    def test_walks_folders_and_pages(self):
        importer = GoogleDriveImporter("root-id", service=self.service)

        files = importer.get_all_files()

        self.assertEqual(importer.import_source, "google-drive:root-id")
        self.assertEqual([f.path for f in files], ["/sub/B.md", "/A.md"])
        alpha = files[1]
        self.assertEqual(alpha.file_id, "f-a")
        self.assertEqual(alpha.last_modified.year, 2024)
        self.assertEqual(self.service.files.return_value.list.return_value.execute.call_count, 3)

    @patch("googleapiclient.http.MediaIoBaseDownload", FakeDownloader)
    def test_drive_import_end_to_end(self):
        from mindtree.database import DatabaseManager

        with DatabaseManager(":memory:") as db:
            db.initialize_database()
            result = ObsidianImporter(db).import_from_source(GoogleDriveImporter("root-id", service=self.service))

            self.assertTrue(result.success)
            self.assertEqual(result.nodes_count, 2)
            self.assertEqual(result.links_count, 1)
            self.assertEqual(db.get_node_by_path("/A.md").metadata["fileId"], "f-a")

    def test_client_errors_become_import_source_errors(self):
        self.service.files.return_value.list.return_value.execute.side_effect = RuntimeError("quota exceeded")

        with self.assertRaises(ImportSourceError) as ctx:
            GoogleDriveImporter("root-id", service=self.service).get_all_files()
        self.assertEqual(ctx.exception.source, "google-drive:root-id")


@patch("mindtree.importers.url.httpx.Client")
def test_default_client_is_closed(mock_client):
    mock_response = Mock()
    mock_response.content = "# Alpha".encode("utf-8")
    mock_client.return_value.get.return_value = mock_response

    files = UrlImporter("https://example.com/Alpha.md").get_all_files()

    assert [f.path for f in files] == ["/Alpha.md"]
    mock_client.return_value.close.assert_called_once()
