"""
Obsidian service for Ipê Mind Tree.

Front door to the note graph: runs imports, answers node and link queries,
shapes the graph for visualization, searches nodes and writes the text
digest handed to the assistant.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from ..config import config
from ..database import DatabaseManager
from ..importers import (
    GoogleDriveImporter,
    LocalDirectoryImporter,
    ObsidianImporter,
    UploadImporter,
    UrlImporter,
)
from ..models import ImportLog, ImportResult, ObsidianLink, ObsidianNode
from ..parsers.inference import infer_domains_from_content, primary_category
from .scoring import KEYWORD_WEIGHTS, SEARCH_WEIGHTS, score_nodes, tokenize_query


NO_DATA_MESSAGE = "No Obsidian data available."


class ObsidianService:
    """
    Read and import operations over the note graph.
    """

    def __init__(self, db: DatabaseManager):
        """
        Args:
            db: Connected and initialized database manager
        """
        self.db = db
        self.importer = ObsidianImporter(db)

    # Imports

    def import_from_files(self, files: List[Dict[str, str]], imported_by: Optional[str] = None) -> ImportResult:
        """Import uploaded files given as [{'name': ..., 'content': ...}]."""
        return self.importer.import_from_source(UploadImporter(files), imported_by)

    def import_from_directory(self, directory: str, imported_by: Optional[str] = None) -> ImportResult:
        return self.importer.import_from_source(LocalDirectoryImporter(directory), imported_by)

    def import_from_url(self, url: str, imported_by: Optional[str] = None) -> ImportResult:
        return self.importer.import_from_source(UrlImporter(url), imported_by)

    def import_from_google_drive(self, folder_id: str, imported_by: Optional[str] = None, service: Any = None) -> ImportResult:
        return self.importer.import_from_source(GoogleDriveImporter(folder_id, service=service), imported_by)

    # Queries

    def get_all_nodes(self) -> List[ObsidianNode]:
        return self.db.get_all_nodes()

    def get_node_by_id(self, node_id: int) -> Optional[ObsidianNode]:
        return self.db.get_node(node_id)

    def get_node_by_path(self, path: str) -> Optional[ObsidianNode]:
        return self.db.get_node_by_path(path)

    def get_node_links(self, node_id: int) -> List[ObsidianLink]:
        return self.db.get_links_for_node(node_id)

    def get_import_logs(self, limit: Optional[int] = None) -> List[ImportLog]:
        return self.db.get_import_logs(limit)

    def get_network_data(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Nodes and edges shaped for the graph view.

        Each node gets a display group and its domains. Only the link types
        configured as visible are returned (explicit links by default), and
        at most one edge per unordered node pair.

        Returns:
            {'nodes': [...], 'links': [...]}
        """
        nodes = self.db.get_all_nodes()
        visible_types = set(config.visible_link_types)

        network_nodes = []
        for node in nodes:
            domains = node.metadata.get("domains")
            if not isinstance(domains, list):
                domains = infer_domains_from_content(node.content, node.title)
            network_nodes.append({
                "id": node.id,
                "title": node.title,
                "path": node.path,
                "tags": node.tags,
                "group": primary_category(node.tags, node.metadata),
                "domains": domains,
            })

        node_ids = {node.id for node in nodes}
        seen = set()
        network_links = []
        for link in self.db.get_all_links():
            if link.type not in visible_types:
                continue
            if link.source_id not in node_ids or link.target_id not in node_ids:
                continue
            pair = frozenset((link.source_id, link.target_id))
            if len(pair) < 2 or pair in seen:
                continue
            seen.add(pair)
            network_links.append({
                "source": link.source_id,
                "target": link.target_id,
                "type": link.type,
                "value": link.strength,
            })

        logging.info(f"Network data: {len(network_nodes)} nodes, {len(network_links)} links")
        return {"nodes": network_nodes, "links": network_links}

    # Search

    def find_relevant_nodes(self, keywords: List[str]) -> List[ObsidianNode]:
        """
        Rank nodes against a list of keywords (title, content count, tags).
        """
        terms = [k.strip().lower() for k in keywords if k and k.strip()]
        if not terms:
            return []
        return [node for node, _ in score_nodes(self.db.get_all_nodes(), terms, KEYWORD_WEIGHTS)]

    def search_obsidian_nodes(self, query: str, limit: int = 10) -> List[ObsidianNode]:
        """
        Free-text search over titles, tags, content and paths.

        The query is split into words; a node containing the whole query
        phrase gets a bonus.
        """
        terms = tokenize_query(query)
        if not terms:
            return []
        scored = score_nodes(self.db.get_all_nodes(), terms, SEARCH_WEIGHTS, phrase=query)
        return [node for node, _ in scored[:limit]]

    # Context

    def get_obsidian_context(self) -> str:
        """
        Text digest of the graph grouped by category, for the assistant prompt.
        """
        nodes = self.db.get_all_nodes()
        if not nodes:
            return NO_DATA_MESSAGE

        max_nodes = config.get("context.max_nodes_per_category", 5)
        max_chars = config.get("context.max_content_chars", 600)

        groups: "OrderedDict[str, List[ObsidianNode]]" = OrderedDict()
        for node in nodes:
            groups.setdefault(primary_category(node.tags, node.metadata), []).append(node)

        ordered = sorted(groups.items(), key=lambda item: (-len(item[1]), item[0]))

        lines = [f"=== OBSIDIAN CONTEXT ({len(nodes)} documents) ===", ""]
        for category, members in ordered:
            lines.append(f"## {category} ({len(members)} documents)")
            for node in members[:max_nodes]:
                content = (node.content or "").strip()
                if len(content) > max_chars:
                    content = content[:max_chars] + "..."
                lines.append(f"- {node.title}")
                lines.append(f"  Tags: {', '.join(node.tags) if node.tags else 'none'}")
                lines.append(f"  Content: {content}")
            if len(members) > max_nodes:
                lines.append(f"  ... and {len(members) - max_nodes} more documents in this category")
            lines.append("")

        return "\n".join(lines)
