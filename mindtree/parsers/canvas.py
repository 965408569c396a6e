"""
Obsidian Canvas parser.

Handles the two canvas representations Ipê Mind Tree imports:

- .canvas files: JSON with "nodes" and "edges" arrays
- Canvas2Document exports: markdown where each element is a
  "# _card <title>" header followed by a "node ^<id>" line, and
  "> linking to: [[#^id|label]]" / "> linked from: [[#^id|label]]"
  annotations describe the edges

Both produce one root record for the canvas file itself followed by one
record per element. Element paths are "<file>#<id>" for JSON canvases and
"<file>#^<id>" for Canvas2Document exports.
"""

import json
import logging
import posixpath
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..exceptions import CanvasParseError
from ..models import CanvasEdge, CanvasNode, LinkRecord, NodeRecord, ParsedCanvas
from ..models.graph import CANVAS_EDGE_LINK, SOURCE_CANVAS, SOURCE_CANVAS2DOCUMENT
from .inference import fallback_category, infer_categories_from_text, infer_domains_from_content


MEDIA_FILE_PATTERN = re.compile(r"\.(jpe?g|png|gif|svg|mp[34]|wav)$", re.IGNORECASE)
DOCUMENT_FILE_PATTERN = re.compile(r"\.(pdf|docx?|xlsx?|pptx?|csv|json)$", re.IGNORECASE)

C2D_HEADER_PATTERN = re.compile(r"^# _(card|Media|File|Group|Link|iframe) (.+)$")
C2D_NODE_PATTERN = re.compile(r"^node \^([A-Za-z0-9_-]+)\s*$")
C2D_ANNOTATION_PATTERN = re.compile(
    r"> (linking to|linked from): \[\[#\^([A-Za-z0-9_-]+)\|?([^\]]*)\]\]"
)
WIKI_TARGET_PATTERN = re.compile(r"\[\[(.*?)(?:\|(.*?))?\]\]")


def extract_title_from_text(text: str) -> str:
    """
    Title for a text element: its first line without heading marks, the first
    line itself when short, else a truncated prefix of the text.
    """
    first_line = text.split("\n", 1)[0].strip()
    if first_line.startswith("#"):
        return re.sub(r"^#+\s*", "", first_line)
    if 0 < len(first_line) <= 50:
        return first_line
    return text[:40].strip() + ("..." if len(text) > 40 else "")


def _file_categories(file_name: str) -> List[str]:
    lower = file_name.lower()
    if lower.endswith(".md"):
        return ["note"]
    if lower.endswith(".canvas"):
        return ["project"]
    if MEDIA_FILE_PATTERN.search(file_name) or DOCUMENT_FILE_PATTERN.search(file_name):
        return ["resource"]
    return []


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


class CanvasParser:
    """
    Turns canvas files into node and link records.
    """

    def parse_canvas_file(self, content: str, file_path: str) -> ParsedCanvas:
        """
        Parse a .canvas JSON document.

        Args:
            content: Raw file text
            file_path: Batch path of the file, used as the root node path

        Returns:
            ParsedCanvas with the root node first, then one node per element,
            and the canvas edges annotated with element paths

        Raises:
            CanvasParseError: If the JSON is invalid or has no 'nodes' array
        """
        logging.info(f"Parsing canvas file: {file_path}")

        if not content or not content.strip():
            logging.warning(f"Empty canvas file: {file_path}")
            return ParsedCanvas()

        data = self._load_json(content, file_path)

        raw_nodes = data.get("nodes")
        if not isinstance(raw_nodes, list):
            raise CanvasParseError(
                f"Invalid canvas file {file_path}: 'nodes' is missing or not an array",
                file_path=file_path
            )

        raw_edges = data.get("edges")
        if not isinstance(raw_edges, list):
            logging.info(f"Canvas {file_path} has no edges")
            raw_edges = []

        nodes: List[NodeRecord] = []
        node_paths: Dict[str, str] = {}

        for raw in raw_nodes:
            if not isinstance(raw, dict) or raw.get("id") in (None, ""):
                logging.warning(f"Skipping canvas node without id in {file_path}")
                continue
            try:
                canvas_node = CanvasNode.model_validate(raw)
            except ValidationError as e:
                logging.warning(f"Skipping malformed canvas node {raw.get('id')} in {file_path}: {e}")
                continue

            record = self._canvas_node_to_record(canvas_node, file_path)
            node_paths[canvas_node.id] = record.path
            nodes.append(record)

        edges: List[CanvasEdge] = []
        for raw in raw_edges:
            try:
                edge = CanvasEdge.model_validate(raw)
            except ValidationError as e:
                logging.warning(f"Skipping malformed canvas edge in {file_path}: {e}")
                continue
            edge.from_path = node_paths.get(edge.from_node)
            edge.to_path = node_paths.get(edge.to_node)
            if not edge.from_path or not edge.to_path:
                logging.warning(
                    f"Canvas edge {edge.id} references unknown nodes ({edge.from_node} -> {edge.to_node})"
                )
            edges.append(edge)

        file_name = posixpath.basename(file_path)
        if file_name.endswith(".canvas"):
            file_name = file_name[: -len(".canvas")]
        file_name = file_name or "Untitled Canvas"

        root = NodeRecord(
            title=file_name,
            content=f"Canvas file with {len(nodes)} nodes and {len(edges)} connections.",
            path=file_path,
            tags=["canvas", "canvas-file", "project"],
            source_type=SOURCE_CANVAS,
            metadata={
                "isCanvasRoot": True,
                "nodesCount": len(nodes),
                "edgesCount": len(edges),
                "inferred_category": "project",
                "domains": infer_domains_from_content(file_name, file_name),
                "edges": [
                    {
                        "id": edge.id,
                        "fromNode": edge.from_node,
                        "toNode": edge.to_node,
                        "fromPath": edge.from_path,
                        "toPath": edge.to_path,
                        "label": edge.label,
                    }
                    for edge in edges
                ],
            }
        )

        logging.info(f"Canvas {file_path}: {len(nodes)} elements, {len(edges)} edges")
        return ParsedCanvas(nodes=[root] + nodes, edges=edges)

    def _load_json(self, content: str, file_path: str) -> Dict[str, Any]:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as first_error:
            logging.warning(f"Invalid JSON in canvas {file_path}, retrying without BOM: {first_error}")
            try:
                data = json.loads(content.lstrip("\ufeff"))
            except json.JSONDecodeError as e:
                raise CanvasParseError(f"Invalid canvas file {file_path}: {e}", file_path=file_path) from e

        if not isinstance(data, dict):
            raise CanvasParseError(
                f"Invalid canvas file {file_path}: expected a JSON object",
                file_path=file_path
            )
        return data

    def _canvas_node_to_record(self, node: CanvasNode, file_path: str) -> NodeRecord:
        node_type = node.type or "unknown"
        short_id = node.id[:6]
        source_path = ""
        categories: List[str] = []

        if node_type == "text":
            content = node.text or ""
            title = extract_title_from_text(content) or f"Text Node {short_id}"
            categories = infer_categories_from_text(content)
        elif node_type == "file":
            source_path = node.file or ""
            content = f"Reference to file: {source_path}"
            file_name = posixpath.basename(source_path)
            title = file_name or f"File Node {short_id}"
            categories = _file_categories(file_name)
        elif node_type == "link":
            url = node.url or ""
            content = f"URL: {url}"
            title = node.text or url or f"Link Node {short_id}"
            categories = ["reference"]
        elif node_type == "group":
            content = node.text or "Group containing multiple items"
            title = node.text or f"Group {short_id}"
            categories = ["project"]
        elif node_type == "iframe":
            url = node.url or ""
            content = f"Embedded content from: {url}"
            title = node.text or url or f"Embed {short_id}"
            categories = ["reference"]
        else:
            content = f"Canvas node of type: {node_type}"
            title = f"{node_type} Node {short_id}"
            logging.warning(f"Unknown canvas node type {node_type} in {file_path}")

        tags = ["canvas", f"canvas-{node_type}"]
        tags.extend(categories or [fallback_category(node_type)])

        return NodeRecord(
            title=title,
            content=content,
            path=f"{file_path}#{node.id}",
            tags=_unique(tags),
            source_type=SOURCE_CANVAS,
            metadata={
                "canvasId": node.id,
                "canvasType": node_type,
                "position": node.coordinates(),
                "dimensions": {"width": node.width, "height": node.height},
                "color": node.color,
                "backgroundColor": node.background_color,
                "fontSize": node.font_size,
                "parentCanvas": file_path,
                "inferred_category": categories[0] if categories else None,
                "domains": infer_domains_from_content(content, title),
                "sourcePath": source_path,
            }
        )

    def parse_canvas2document_file(self, content: str, file_path: str) -> ParsedCanvas:
        """
        Parse a Canvas2Document markdown export in a single pass over its lines.

        Returns:
            ParsedCanvas with the root node first, then one node per element,
            and 'canvas-edge' links between element paths
        """
        logging.info(f"Parsing Canvas2Document file: {file_path}")

        if not content or not content.strip():
            logging.warning(f"Empty Canvas2Document file: {file_path}")
            return ParsedCanvas()

        elements, annotations = self._tokenize_canvas2document(content)

        nodes: List[NodeRecord] = []
        node_paths: Dict[str, str] = {}
        for kind, title, element_id, body in elements:
            record = self._c2d_element_to_record(kind, title, element_id, body, file_path)
            if element_id in node_paths:
                logging.warning(f"Duplicate Canvas2Document element ^{element_id} in {file_path}")
                continue
            node_paths[element_id] = record.path
            nodes.append(record)

        links: List[LinkRecord] = []
        seen = set()
        for direction, current_id, other_id, label in annotations:
            if direction == "linking to":
                source_id, target_id = current_id, other_id
            else:
                source_id, target_id = other_id, current_id

            source_path = node_paths.get(source_id)
            target_path = node_paths.get(target_id)
            if not source_path or not target_path:
                logging.warning(f"Canvas2Document link with unknown nodes: {source_id} -> {target_id}")
                continue
            if (source_path, target_path) in seen:
                continue
            seen.add((source_path, target_path))
            links.append(LinkRecord(
                source_path=source_path,
                target_path=target_path,
                type=CANVAS_EDGE_LINK,
                label=label or None
            ))

        file_name = re.sub(r"(_fromCanvas\.md|\.md)$", "", posixpath.basename(file_path)) or "Untitled Canvas"
        root = NodeRecord(
            title=file_name,
            content=f"Canvas converted to Markdown ({file_name})",
            path=file_path,
            tags=["canvas", "canvas2document", "project"],
            source_type=SOURCE_CANVAS2DOCUMENT,
            metadata={
                "isCanvasRoot": True,
                "nodesCount": len(nodes),
                "edgesCount": len(links),
                "inferred_category": "project",
                "domains": infer_domains_from_content(file_name, file_name),
                "edges": [
                    {"fromPath": link.source_path, "toPath": link.target_path, "label": link.label}
                    for link in links
                ],
            }
        )

        logging.info(f"Canvas2Document {file_path}: {len(nodes)} elements, {len(links)} links")
        return ParsedCanvas(nodes=[root] + nodes, links=links)

    def _tokenize_canvas2document(
        self, content: str
    ) -> Tuple[List[Tuple[str, str, str, str]], List[Tuple[str, str, str, str]]]:
        """
        Split an export into elements and link annotations.

        Returns:
            (elements, annotations) where elements are (kind, title, id, body)
            and annotations are (direction, enclosing id, other id, label)
        """
        lines = content.splitlines()
        elements = []
        annotations = []

        current: Optional[Dict[str, Any]] = None
        i = 0
        while i < len(lines):
            line = lines[i]

            if line.startswith("# _"):
                if current:
                    elements.append(self._close_element(current))
                    current = None

                header = C2D_HEADER_PATTERN.match(line)
                if header:
                    # The id line follows the header, at most one line later.
                    for offset in (1, 2):
                        if i + offset < len(lines):
                            node_line = C2D_NODE_PATTERN.match(lines[i + offset])
                            if node_line:
                                current = {
                                    "kind": header.group(1).lower(),
                                    "title": header.group(2).strip(),
                                    "id": node_line.group(1),
                                    "body": [],
                                }
                                i += offset
                                break
                i += 1
                continue

            if current is not None:
                for match in C2D_ANNOTATION_PATTERN.finditer(line):
                    annotations.append((match.group(1), current["id"], match.group(2), match.group(3).strip()))
                stripped = C2D_ANNOTATION_PATTERN.sub("", line)
                if not C2D_NODE_PATTERN.match(stripped):
                    current["body"].append(stripped)
            i += 1

        if current:
            elements.append(self._close_element(current))
        return elements, annotations

    def _close_element(self, current: Dict[str, Any]) -> Tuple[str, str, str, str]:
        body = "\n".join(current["body"]).strip()
        return current["kind"], current["title"], current["id"], body

    def _c2d_element_to_record(
        self, kind: str, title: str, element_id: str, body: str, file_path: str
    ) -> NodeRecord:
        categories: List[str] = []
        if kind == "card":
            node_type = "text"
            categories = infer_categories_from_text(body)
        elif kind in ("media", "file"):
            node_type = "file"
            if re.search(r"\.(md|txt|rtf)$", title, re.IGNORECASE):
                categories = ["note"]
            elif re.search(r"\.canvas$", title, re.IGNORECASE):
                categories = ["project"]
            elif re.search(r"\.(jpe?g|png|gif|svg|mp[34]|wav|pdf)$", title, re.IGNORECASE):
                categories = ["resource"]
        elif kind == "group":
            node_type = "group"
            categories = ["project"]
        else:
            node_type = kind
            categories = ["reference"]

        if not categories:
            categories = [fallback_category(node_type)]

        wiki_links = [m.group(1).strip() for m in WIKI_TARGET_PATTERN.finditer(body)]
        metadata = {
            "canvasId": element_id,
            "canvasType": node_type,
            "parentCanvas": file_path,
            "inferred_category": categories[0],
            "domains": infer_domains_from_content(body, title),
        }
        if wiki_links:
            metadata["foundWikiLinks"] = wiki_links

        return NodeRecord(
            title=title,
            content=body,
            path=f"{file_path}#^{element_id}",
            tags=_unique(["canvas", "canvas2document", f"canvas-{node_type}"] + categories),
            source_type=SOURCE_CANVAS2DOCUMENT,
            metadata=metadata
        )


canvas_parser = CanvasParser()
