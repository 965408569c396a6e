#!/usr/bin/env python3
"""
Ipê Mind Tree - Note Import & Link Inference

Main entry point. Imports notes into the graph database, rebuilds links,
and queries the graph from the command line.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import duckdb

from mindtree.config import config
from mindtree.database import DatabaseManager
from mindtree.exceptions import MindTreeError
from mindtree.linking import explicit, generic
from mindtree.log import setup_logging
from mindtree.models import ImportResult
from mindtree.services import LLMClient, ObsidianService, RagService, SubpromptService


def read_upload_files(paths: List[str]) -> List[dict]:
    """Load files given on the command line as name/content pairs."""
    files = []
    for path in paths:
        file_path = Path(path)
        try:
            files.append({"name": file_path.name, "content": file_path.read_text(encoding="utf-8")})
        except (OSError, UnicodeDecodeError) as e:
            logging.warning(f"Skipping {path}: {e}")
    return files


def print_import_result(result: ImportResult):
    status = "succeeded" if result.success else "FAILED"
    print(f"\nImport from {result.import_source} {status}")
    print(f"- Nodes: {result.nodes_count}")
    print(f"- Links: {result.links_count}")
    if result.skipped_links:
        print(f"- Skipped links: {result.skipped_links}")
    for error in result.errors:
        print(f"- Skipped file {error['path']}: {error['error']}")
    if result.error:
        print(f"- Error: {result.error}")


def run_import(service: ObsidianService, args) -> int:
    if args.dir:
        result = service.import_from_directory(args.dir, args.user)
    elif args.files:
        result = service.import_from_files(read_upload_files(args.files), args.user)
    elif args.url:
        result = service.import_from_url(args.url, args.user)
    else:
        result = service.import_from_google_drive(args.drive, args.user)

    print_import_result(result)
    return 0 if result.success else 1


def run_query(db: DatabaseManager, args) -> int:
    service = ObsidianService(db)

    if args.command == "import":
        return run_import(service, args)

    if args.command == "network":
        data = json.dumps(service.get_network_data(), indent=2, ensure_ascii=False, default=str)
        if args.output:
            Path(args.output).write_text(data, encoding="utf-8")
            print(f"Network data written to {args.output}")
        else:
            print(data)
        return 0

    if args.command == "search":
        nodes = service.search_obsidian_nodes(args.query, args.limit)
        if not nodes:
            print("No matching notes.")
        for node in nodes:
            print(f"[{node.id}] {node.title}  ({node.path})")
        return 0

    if args.command == "context":
        print(service.get_obsidian_context())
        return 0

    if args.command == "import-logs":
        for log in service.get_import_logs(args.limit):
            status = "ok" if log.success else f"failed: {log.error}"
            print(f"{log.imported_at} {log.import_source} by {log.imported_by}: "
                  f"{log.nodes_count} nodes, {log.links_count} links ({status})")
        return 0

    subprompts = SubpromptService(db)
    subprompts.initialize()

    if args.command == "subprompts":
        for subprompt in subprompts.list_subprompts():
            state = "active" if subprompt.active else "inactive"
            print(f"[{subprompt.id}] {subprompt.name} ({state}, used {subprompt.usage_count} times)")
        return 0

    if args.command == "ask":
        with LLMClient(db=db) as llm:
            rag = RagService(service, subprompts, llm)
            print(rag.query(args.question, args.history or ""))
        return 0

    return 1


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Ipê Mind Tree - Note Import & Link Inference",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py import --dir ~/vault              # Import an Obsidian vault
  python main.py import --files a.md board.canvas  # Import individual files
  python main.py import --url https://host/vault.zip
  python main.py generate-links                    # Rebuild links with every heuristic
  python main.py extract-links                     # Rebuild explicit links only
  python main.py search "community governance"
  python main.py ask "How can we fund the school project?"
        """
    )

    parser.add_argument("--db", help=f"Database file (default: {config.database_filename})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version="Ipê Mind Tree 0.1.0")

    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Import notes into the graph")
    source = import_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--dir", help="Local vault directory")
    source.add_argument("--files", nargs="+", help="Individual .md, .canvas or .txt files")
    source.add_argument("--url", help="Download URL of a note file or zipped vault")
    source.add_argument("--drive", help="Google Drive folder id")
    import_parser.add_argument("--user", default=config.default_imported_by, help="Name recorded in the import log")

    subparsers.add_parser("extract-links", help="Rebuild links from wiki-links and canvas edges only")
    subparsers.add_parser("generate-links", help="Rebuild links with every heuristic")

    network_parser = subparsers.add_parser("network", help="Dump graph data as JSON")
    network_parser.add_argument("--output", "-o", help="Write to a file instead of stdout")

    search_parser = subparsers.add_parser("search", help="Search notes")
    search_parser.add_argument("query")
    search_parser.add_argument("--limit", type=int, default=10)

    subparsers.add_parser("context", help="Print the assistant context digest")

    logs_parser = subparsers.add_parser("import-logs", help="Show recent imports")
    logs_parser.add_argument("--limit", type=int, default=20)

    subparsers.add_parser("subprompts", help="List subprompts (seeding them on first use)")

    ask_parser = subparsers.add_parser("ask", help="Ask the assistant a question")
    ask_parser.add_argument("question")
    ask_parser.add_argument("--history", help="Previous conversation, as plain text")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    logging.info(f"Ipê Mind Tree - {args.command}")
    db_path = args.db or config.database_filename

    try:
        if args.command == "extract-links":
            count = explicit.run(db_path)
            print(f"\n{count} explicit links created")
            return 0

        if args.command == "generate-links":
            count = generic.run(db_path)
            print(f"\n{count} links created")
            return 0

        with DatabaseManager(db_path) as db:
            db.initialize_database()
            return run_query(db, args)

    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        print("\nInterrupted.")
        return 1

    except (MindTreeError, duckdb.Error) as e:
        logging.error(f"{args.command} failed: {e}")
        print(f"\n{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
