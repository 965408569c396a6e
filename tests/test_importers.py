"""
Tests for the Obsidian importer and the local sources (upload and directory).
"""

import json

import pytest

from mindtree.exceptions import ImportSourceError
from mindtree.importers import LocalDirectoryImporter, ObsidianImporter, UploadImporter, dedupe_links
from mindtree.models import LinkRecord, NodeRecord, ParsedBatch
from mindtree.services import ObsidianService


ALPHA = {"name": "A.md", "content": "# Alpha\n#project\nSee [[B]]."}
BETA = {"name": "B.md", "content": "# Beta\n#project"}


def links_by_type(db, link_type):
    return db.get_all_links(link_type)


@pytest.fixture
def service(db):
    return ObsidianService(db)


@pytest.fixture
def vault(tmp_path):
    root = tmp_path / "vault"
    (root / "sub").mkdir(parents=True)
    (root / ".obsidian").mkdir()
    (root / "A.md").write_text("# A\nSee [[B]] and [[Nowhere]]", encoding="utf-8")
    (root / "sub" / "B.md").write_text("# B\n#idea", encoding="utf-8")
    (root / "notes.txt").write_text("plain text", encoding="utf-8")
    (root / "image.png").write_bytes(b"\x89PNG")
    (root / ".obsidian" / "workspace.md").write_text("ignored", encoding="utf-8")
    return root


def test_upload_import_creates_nodes_and_wiki_link(db, service):
    result = service.import_from_files([ALPHA, BETA], imported_by="ana")

    assert result.success
    assert result.import_source == "upload"
    assert result.nodes_count == 2
    assert result.links_count == 1

    alpha = db.get_node_by_path("/A.md")
    beta = db.get_node_by_path("/B.md")
    assert alpha.title == "Alpha"
    assert alpha.tags == ["project"]
    assert "lastModified" in alpha.metadata
    assert beta.title == "Beta"

    (link,) = db.get_all_links()
    assert (link.source_id, link.target_id, link.type) == (alpha.id, beta.id, "wiki")

    (log,) = db.get_import_logs()
    assert log.success
    assert log.imported_by == "ana"
    assert log.nodes_count == 2
    assert log.links_count == 1


def test_reimport_is_idempotent(db, service):
    service.import_from_files([ALPHA, BETA])
    second = service.import_from_files([ALPHA, BETA])

    assert second.success
    assert second.nodes_count == 2
    assert second.links_count == 0
    assert len(db.get_all_nodes()) == 2
    assert len(db.get_all_links()) == 1
    assert len(db.get_import_logs()) == 2


def test_reimport_updates_node_in_place(db, service):
    service.import_from_files([ALPHA])
    original = db.get_node_by_path("/A.md")

    service.import_from_files([{"name": "A.md", "content": "# Alpha Revised\nNo links now"}])
    updated = db.get_node_by_path("/A.md")

    assert updated.id == original.id
    assert updated.title == "Alpha Revised"
    assert updated.tags == []


def test_link_target_with_spaces_and_label(db, service):
    files = [
        {"name": "Other Note.md", "content": "target"},
        {"name": "c.md", "content": "see [[Other Note|the other one]] and [[Other Note#Intro]]"},
    ]
    result = service.import_from_files(files)

    assert result.links_count == 1
    (link,) = db.get_all_links()
    assert link.source_id == db.get_node_by_path("/c.md").id
    assert link.target_id == db.get_node_by_path("/Other Note.md").id


def test_unresolved_links_are_counted(db, service):
    result = service.import_from_files([{"name": "lonely.md", "content": "[[Missing]] and [[lonely]]"}])

    assert result.success
    assert result.links_count == 0
    (log,) = db.get_import_logs()
    assert log.metadata["unresolved_links"] == 1


def test_bad_canvas_does_not_abort_batch(db, service):
    files = [
        {"name": "bad.canvas", "content": json.dumps({"edges": []})},
        ALPHA,
    ]
    result = service.import_from_files(files)

    assert result.success
    assert result.nodes_count == 1
    assert [error["path"] for error in result.errors] == ["/bad.canvas"]
    assert db.get_node_by_path("/bad.canvas") is None
    (log,) = db.get_import_logs()
    assert len(log.metadata["errors"]) == 1


def test_canvas_import_links_edges_and_root(db, service):
    board = json.dumps({
        "nodes": [
            {"id": "n1", "type": "text", "text": "Start here"},
            {"id": "n2", "type": "text", "text": "Then this"},
        ],
        "edges": [{"id": "e1", "fromNode": "n1", "toNode": "n2", "label": "next"}],
    })
    result = service.import_from_files([{"name": "board.canvas", "content": board}])

    assert result.nodes_count == 3
    root = db.get_node_by_path("/board.canvas")
    n1 = db.get_node_by_path("/board.canvas#n1")
    n2 = db.get_node_by_path("/board.canvas#n2")

    (edge,) = links_by_type(db, "canvas-edge")
    assert (edge.source_id, edge.target_id) == (n1.id, n2.id)
    assert edge.metadata == {"label": "next"}

    (structural,) = links_by_type(db, "canvas")
    assert (structural.source_id, structural.target_id) == (root.id, n1.id)


def test_canvas_without_edges_links_wiki_references(db, service):
    board = json.dumps({"nodes": [{"id": "t1", "type": "text", "text": "See [[A]]"}]})
    service.import_from_files([{"name": "board.canvas", "content": board}, ALPHA])

    (link,) = links_by_type(db, "wiki")
    assert link.source_id == db.get_node_by_path("/board.canvas#t1").id
    assert link.target_id == db.get_node_by_path("/A.md").id


def test_canvas_with_dangling_edges_links_wiki_references(db, service):
    board = json.dumps({
        "nodes": [{"id": "t1", "type": "text", "text": "See [[A]]"}],
        "edges": [{"id": "e1", "fromNode": "t1", "toNode": "gone"}],
    })
    service.import_from_files([{"name": "board.canvas", "content": board}, ALPHA])

    (link,) = db.get_all_links()
    assert link.type == "wiki"
    assert link.source_id == db.get_node_by_path("/board.canvas#t1").id
    assert link.target_id == db.get_node_by_path("/A.md").id


def test_batch_with_no_parsable_file_fails(db, service):
    result = service.import_from_files([{"name": "bad.canvas", "content": json.dumps({"edges": []})}])

    assert not result.success
    assert result.error == "No files could be parsed"
    assert [error["path"] for error in result.errors] == ["/bad.canvas"]
    (log,) = db.get_import_logs()
    assert not log.success
    assert db.get_all_nodes() == []


def test_empty_canvas_is_reported(db, service):
    result = service.import_from_files([{"name": "e.canvas", "content": ""}, ALPHA])

    assert result.success
    assert result.nodes_count == 1
    assert [error["path"] for error in result.errors] == ["/e.canvas"]


def test_canvas2document_import(db, service):
    content = (
        "# Canvas Board\n\n"
        "# _card Start\nnode ^a1\nFirst step\n> linking to: [[#^b2|then]]\n\n"
        "# _card Finish\nnode ^b2\nLast step\n"
    )
    result = service.import_from_files([{"name": "Board_fromCanvas.md", "content": content}])

    assert result.nodes_count == 3
    root = db.get_node_by_path("/Board_fromCanvas.md")
    assert root.source_type == "canvas2document"
    assert len(links_by_type(db, "canvas")) == 2
    (edge,) = links_by_type(db, "canvas-edge")
    assert edge.target_id == db.get_node_by_path("/Board_fromCanvas.md#^b2").id
    assert edge.metadata == {"label": "then"}


def test_upload_skips_unsupported_files():
    importer = UploadImporter([
        {"name": "photo.png", "content": "binary"},
        {"name": "", "content": "no name"},
        {"name": "keep.md", "content": "text"},
    ])

    files = importer.get_all_files()

    assert [f.path for f in files] == ["/keep.md"]
    assert files[0].file_type == "markdown"


def test_empty_source_logs_failure(db, service):
    result = service.import_from_files([{"name": "photo.png", "content": "binary"}])

    assert not result.success
    assert result.error == "No supported files found"
    (log,) = db.get_import_logs()
    assert not log.success


def test_links_with_unknown_endpoints_are_skipped(db):
    batch = ParsedBatch(
        nodes=[NodeRecord(title="A", path="/A.md")],
        links=[LinkRecord(source_path="/A.md", target_path="/ghost.md")],
    )

    result = ObsidianImporter(db).save_to_database(batch, "upload")

    assert result.success
    assert result.skipped_links == 1
    assert db.get_all_links() == []


def test_dedupe_links():
    links = [
        LinkRecord(source_path="/a", target_path="/b", type="wiki"),
        LinkRecord(source_path="/b", target_path="/a", type="wiki"),
        LinkRecord(source_path="/a", target_path="/b", type="canvas-edge"),
        LinkRecord(source_path="/a", target_path="/a", type="wiki"),
    ]

    result = dedupe_links(links)

    assert [(l.source_path, l.type) for l in result] == [("/a", "wiki"), ("/a", "canvas-edge")]


def test_local_directory_walk(vault):
    files = LocalDirectoryImporter(str(vault)).get_all_files()

    assert [f.path for f in files] == ["/A.md", "/notes.txt", "/sub/B.md"]
    assert [f.file_type for f in files] == ["markdown", "text", "markdown"]


def test_local_directory_import_resolves_by_file_name(db, service, vault):
    result = service.import_from_directory(str(vault))

    assert result.success
    assert result.import_source == "directory"
    assert result.nodes_count == 3
    (link,) = db.get_all_links()
    assert link.target_id == db.get_node_by_path("/sub/B.md").id
    assert db.get_import_logs()[0].metadata["unresolved_links"] == 1


def test_missing_directory(db, service, tmp_path):
    with pytest.raises(ImportSourceError):
        LocalDirectoryImporter(str(tmp_path / "missing")).get_all_files()

    result = service.import_from_directory(str(tmp_path / "missing"))
    assert not result.success
    assert "Directory not found" in result.error
