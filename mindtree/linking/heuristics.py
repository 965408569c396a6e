"""
Link heuristics over stored nodes.

Each function takes the full list of nodes and returns candidate links;
dedupe_node_links collapses them to one link per type and unordered pair.
"""

import logging
import posixpath
import re
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from ..config import config
from ..database import DatabaseManager
from ..models import ObsidianLink, ObsidianNode
from ..models.graph import (
    CANVAS_ADJACENT_LINK,
    CANVAS_EDGE_LINK,
    CANVAS_LINK,
    TAG_LINK,
    TITLE_SIMILARITY_LINK,
    WIKI_LINK,
)


WIKI_LINK_PATTERN = re.compile(r"\[\[(.*?)(?:\|(.*?))?\]\]")
EXTENSION_PATTERN = re.compile(r"\.[^/.]+$")


class NodeLookup:
    """
    Resolves wiki-link targets against every stored node.

    Keys are node paths, file names without extension and titles. When two
    nodes share a key the earlier one (lower id) wins.
    """

    def __init__(self, nodes: Iterable[ObsidianNode]):
        self._by_path: Dict[str, ObsidianNode] = {}
        self._by_title: Dict[str, ObsidianNode] = {}

        for node in nodes:
            self._by_path.setdefault(node.path, node)
            # Canvas elements are addressed through their file, not by name
            if "#" not in node.path:
                stem = EXTENSION_PATTERN.sub("", posixpath.basename(node.path))
                if stem:
                    self._by_path.setdefault(stem, node)
            if node.title:
                self._by_title.setdefault(node.title, node)

    def resolve(self, raw_target: str) -> Optional[ObsidianNode]:
        target = raw_target.split("#", 1)[0].strip()
        if not target:
            return None
        if target.endswith(".canvas"):
            target = target[: -len(".canvas")]

        node = self._by_path.get(target)
        if not node and not target.startswith("/"):
            node = self._by_path.get("/" + target)
        if not node:
            node = self._by_title.get(target)
        if not node:
            file_name = posixpath.basename(target)
            node = self._by_path.get(file_name) or self._by_path.get(EXTENSION_PATTERN.sub("", file_name))
        return node


def tag_strength(shared: int, base: Optional[float] = None, step: Optional[float] = None) -> float:
    """
    Strength of a tag-overlap link: base + step per shared tag, capped at 1.0.
    """
    base = config.get("links.tag_base_strength", 0.2) if base is None else base
    step = config.get("links.tag_step_strength", 0.1) if step is None else step
    return round(min(1.0, base + step * shared), 2)


def titles_similar(first: str, second: str) -> bool:
    """True when one non-empty title contains the other, ignoring case."""
    a = (first or "").strip().lower()
    b = (second or "").strip().lower()
    if not a or not b:
        return False
    return a in b or b in a


def wiki_links(nodes: List[ObsidianNode], lookup: Optional[NodeLookup] = None) -> List[ObsidianLink]:
    lookup = lookup or NodeLookup(nodes)
    links = []
    for node in nodes:
        if not node.content:
            continue
        for match in WIKI_LINK_PATTERN.finditer(node.content):
            target = lookup.resolve(match.group(1))
            if target is None or target.id == node.id:
                continue
            links.append(ObsidianLink(
                source_id=node.id,
                target_id=target.id,
                type=WIKI_LINK,
                strength=1.0
            ))
    return links


def canvas_edge_links(nodes: List[ObsidianNode]) -> List[ObsidianLink]:
    """
    Edges recorded on canvas root nodes, resolved through element paths.
    """
    ids_by_path = {node.path: node.id for node in nodes}
    links = []
    for node in nodes:
        if not node.metadata.get("isCanvasRoot"):
            continue
        edges = node.metadata.get("edges") or []
        if not isinstance(edges, list):
            logging.warning(f"Ignoring malformed edge list on canvas {node.path}")
            continue
        for edge in edges:
            if not isinstance(edge, dict):
                continue
            source_id = ids_by_path.get(edge.get("fromPath"))
            target_id = ids_by_path.get(edge.get("toPath"))
            if source_id is None or target_id is None:
                continue
            links.append(ObsidianLink(
                source_id=source_id,
                target_id=target_id,
                type=CANVAS_EDGE_LINK,
                strength=1.0,
                metadata={"label": edge["label"]} if edge.get("label") else {}
            ))
    return links


def canvas_structure_links(nodes: List[ObsidianNode], adjacent_strength: Optional[float] = None) -> List[ObsidianLink]:
    """
    Connect each canvas root to its elements and each element to the next one.

    Elements are the nodes whose path starts with '<root path>#', in id order.
    """
    if adjacent_strength is None:
        adjacent_strength = config.get("links.canvas_adjacent_strength", 0.5)

    links = []
    for root in nodes:
        if not root.metadata.get("isCanvasRoot"):
            continue
        prefix = root.path + "#"
        children = sorted((n for n in nodes if n.path.startswith(prefix)), key=lambda n: n.id)

        previous = None
        for child in children:
            links.append(ObsidianLink(source_id=root.id, target_id=child.id, type=CANVAS_LINK, strength=1.0))
            if previous is not None:
                links.append(ObsidianLink(
                    source_id=previous.id,
                    target_id=child.id,
                    type=CANVAS_ADJACENT_LINK,
                    strength=adjacent_strength
                ))
            previous = child
    return links


def tag_links(nodes: List[ObsidianNode]) -> List[ObsidianLink]:
    """
    One link per pair of nodes sharing at least one tag.
    """
    by_tag: Dict[str, List[int]] = defaultdict(list)
    for index, node in enumerate(nodes):
        for tag in dict.fromkeys(node.tags):
            by_tag[tag].append(index)

    pairs = set()
    for indexes in by_tag.values():
        for i, first in enumerate(indexes):
            for second in indexes[i + 1:]:
                pairs.add((first, second))

    links = []
    for first, second in sorted(pairs):
        node, other = nodes[first], nodes[second]
        if node.id == other.id:
            continue
        other_tags = set(other.tags)
        common = [tag for tag in dict.fromkeys(node.tags) if tag in other_tags]
        links.append(ObsidianLink(
            source_id=node.id,
            target_id=other.id,
            type=TAG_LINK,
            strength=tag_strength(len(common)),
            metadata={"common_tags": common}
        ))
    return links


def title_similarity_links(nodes: List[ObsidianNode], strength: Optional[float] = None) -> List[ObsidianLink]:
    if strength is None:
        strength = config.get("links.title_similarity_strength", 0.3)

    links = []
    for i, node in enumerate(nodes):
        for other in nodes[i + 1:]:
            if node.id != other.id and titles_similar(node.title, other.title):
                links.append(ObsidianLink(
                    source_id=node.id,
                    target_id=other.id,
                    type=TITLE_SIMILARITY_LINK,
                    strength=strength
                ))
    return links


def dedupe_node_links(links: List[ObsidianLink]) -> List[ObsidianLink]:
    """
    Keep the first link per (type, unordered pair); drop self links.
    """
    seen = set()
    result = []
    for link in links:
        if link.source_id == link.target_id:
            continue
        key = (link.type, frozenset((link.source_id, link.target_id)))
        if key in seen:
            continue
        seen.add(key)
        result.append(link)
    return result


def insert_links(
    db: DatabaseManager,
    links: List[ObsidianLink],
    titles: Dict[int, str],
    batch_size: Optional[int] = None
) -> int:
    """
    Insert links in batches into a freshly truncated link table, logging each one.

    Returns:
        Number of links inserted
    """
    batch_size = batch_size or config.link_batch_size
    if not links:
        logging.info("No links to insert")
        return 0

    logging.info(f"Inserting {len(links)} links in batches of {batch_size}...")
    inserted = 0
    for start in range(0, len(links), batch_size):
        batch = links[start:start + batch_size]
        created = db.bulk_create_links(batch, skip_existing=False)
        for link in created:
            logging.info(
                f"Link created: {titles.get(link.source_id, link.source_id)} -> "
                f"{titles.get(link.target_id, link.target_id)} ({link.type}, {link.strength})"
            )
        inserted += len(created)

    logging.info(f"{inserted} links inserted")
    return inserted
