"""
Generic link generator.

Rebuilds the link table liberally: the explicit links plus canvas structure,
shared-tag and title-similarity links. Tag and title links are weak,
exploratory connections and are hidden from the graph view.

Usage:
    python -m mindtree.linking.generic [--db mindtree.db]
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
from .heuristics import (
    NodeLookup,
    canvas_edge_links,
    canvas_structure_links,
    dedupe_node_links,
    insert_links,
    tag_links,
    title_similarity_links,
    wiki_links,
)


def generate_links(nodes: List[ObsidianNode]) -> List[ObsidianLink]:
    lookup = NodeLookup(nodes)
    links = (
        wiki_links(nodes, lookup)
        + canvas_edge_links(nodes)
        + canvas_structure_links(nodes)
        + tag_links(nodes)
        + title_similarity_links(nodes)
    )
    return dedupe_node_links(links)


def run(db_path: Optional[str] = None) -> int:
    """
    Truncate the link table and refill it with every heuristic.

    Returns:
        Number of links inserted
    """
    with DatabaseManager(db_path or config.database_filename) as db:
        db.initialize_database()

        removed = db.delete_all_links()
        logging.info(f"Removed {removed} existing links")

        nodes = db.get_all_nodes()
        logging.info(f"Generating links for {len(nodes)} nodes")

        links = generate_links(nodes)
        return insert_links(db, links, {node.id: node.title for node in nodes})


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Rebuild links with every heuristic (wiki, canvas, tags, titles)")
    parser.add_argument("--db", help="Database file (defaults to the configured one)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    logging.info("Starting generic link generation")

    try:
        count = run(args.db)
    except (StorageError, duckdb.Error) as e:
        logging.error(f"Link generation failed: {e}")
        return 1

    logging.info(f"Link generation finished: {count} links")
    return 0


if __name__ == "__main__":
    sys.exit(main())
