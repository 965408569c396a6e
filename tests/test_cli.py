"""
Tests for the command line front end.
"""

import json

import pytest

from main import parse_arguments, read_upload_files, run_query


def test_import_requires_one_source():
    args = parse_arguments(["import", "--dir", "vault", "--user", "ana"])
    assert (args.command, args.dir, args.user) == ("import", "vault", "ana")

    with pytest.raises(SystemExit):
        parse_arguments(["import", "--dir", "vault", "--url", "https://example.com/a.md"])
    with pytest.raises(SystemExit):
        parse_arguments(["import"])


def test_read_upload_files_skips_unreadable(tmp_path):
    note = tmp_path / "a.md"
    note.write_text("# A", encoding="utf-8")

    files = read_upload_files([str(note), str(tmp_path / "missing.md")])

    assert files == [{"name": "a.md", "content": "# A"}]


def test_import_then_search_and_network(db, tmp_path, capsys):
    (tmp_path / "A.md").write_text("# Alpha\nSee [[B]]", encoding="utf-8")
    (tmp_path / "B.md").write_text("# Beta", encoding="utf-8")

    assert run_query(db, parse_arguments(["import", "--dir", str(tmp_path)])) == 0
    assert "- Nodes: 2" in capsys.readouterr().out

    assert run_query(db, parse_arguments(["search", "alpha"])) == 0
    assert "Alpha  (/A.md)" in capsys.readouterr().out

    output = tmp_path / "network.json"
    assert run_query(db, parse_arguments(["network", "--output", str(output)])) == 0
    data = json.loads(output.read_text(encoding="utf-8"))
    assert len(data["nodes"]) == 2
    assert data["links"][0]["type"] == "wiki"


def test_failed_import_exit_code(db, tmp_path, capsys):
    assert run_query(db, parse_arguments(["import", "--dir", str(tmp_path / "missing")])) == 1
    assert "FAILED" in capsys.readouterr().out


def test_subprompts_listing(db, capsys):
    assert run_query(db, parse_arguments(["subprompts"])) == 0
    assert "Governance Sphere (active, used 0 times)" in capsys.readouterr().out
