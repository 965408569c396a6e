"""
Explicit link extractor.

Rebuilds the link table from connections authored in the notes themselves:
wiki-links in node content and edges drawn on canvases. Nothing is
inferred, so the result only holds 'wiki' and 'canvas-edge' links.

Usage:
    python -m mindtree.linking.explicit [--db mindtree.db]
"""

import argparse
import logging
import sys
from typing import List, Optional

import duckdb

from ..config import config
from ..database import DatabaseManager
from ..exceptions import StorageError
from ..log import setup_logging
from ..models import ObsidianLink, ObsidianNode
from .heuristics import NodeLookup, canvas_edge_links, dedupe_node_links, insert_links, wiki_links


def extract_explicit_links(nodes: List[ObsidianNode]) -> List[ObsidianLink]:
    lookup = NodeLookup(nodes)
    links = wiki_links(nodes, lookup) + canvas_edge_links(nodes)
    return dedupe_node_links(links)


def run(db_path: Optional[str] = None) -> int:
    """
    Truncate the link table and refill it with explicit links.

    Returns:
        Number of links inserted
    """
    with DatabaseManager(db_path or config.database_filename) as db:
        db.initialize_database()

        removed = db.delete_all_links()
        logging.info(f"Removed {removed} existing links")

        nodes = db.get_all_nodes()
        logging.info(f"Extracting explicit links from {len(nodes)} nodes")

        links = extract_explicit_links(nodes)
        return insert_links(db, links, {node.id: node.title for node in nodes})


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Rebuild links from wiki-links and canvas edges only")
    parser.add_argument("--db", help="Database file (defaults to the configured one)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    logging.info("Starting explicit link extraction")

    try:
        count = run(args.db)
    except (StorageError, duckdb.Error) as e:
        logging.error(f"Explicit link extraction failed: {e}")
        return 1

    logging.info(f"Explicit link extraction finished: {count} links")
    return 0


if __name__ == "__main__":
    sys.exit(main())
