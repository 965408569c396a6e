"""
Obsidian importer for Ipê Mind Tree.

Turns a batch of source files into node and link records, then persists
them and records an import log. Markdown and text files become one node
each; canvas files become a root node plus one node per element.
"""

import logging
from typing import Dict, List, Optional, Tuple

import duckdb

from ..config import config
from ..database import DatabaseManager
from ..exceptions import CanvasParseError, ImportSourceError, StorageError
from ..models import (
    ImportLog,
    ImportResult,
    LinkRecord,
    NodeRecord,
    ObsidianLink,
    ParsedBatch,
    ParsedCanvas,
    SourceFile,
)
from ..models.graph import CANVAS_EDGE_LINK, CANVAS_LINK, SOURCE_OBSIDIAN, WIKI_LINK
from ..models.sources import FILE_CANVAS, FILE_CANVAS2DOCUMENT
from ..parsers.canvas import canvas_parser
from ..parsers.markdown import PathResolver, extract_tags, extract_title, extract_wiki_links
from .base import BaseImporter


def dedupe_links(links: List[LinkRecord]) -> List[LinkRecord]:
    """
    Keep the first link per (type, unordered endpoint pair) and drop self links.
    """
    seen = set()
    result = []
    for link in links:
        if link.source_path == link.target_path:
            continue
        key = (link.type, frozenset((link.source_path, link.target_path)))
        if key in seen:
            continue
        seen.add(key)
        result.append(link)
    return result


class ObsidianImporter:
    """
    Parses note batches and saves them to the database.
    """

    def __init__(self, db: Optional[DatabaseManager] = None):
        """
        Args:
            db: Connected database manager, needed only for saving
        """
        self.db = db

    def parse_obsidian_data(self, files: List[SourceFile]) -> ParsedBatch:
        """
        Extract nodes and links from a batch of files.

        Canvas files that fail to parse or hold nothing are recorded in the
        batch errors and skipped. Wiki-links are resolved against the paths of
        this batch only; tokens that resolve nowhere are counted in
        unresolved_links.

        Args:
            files: Source files, already classified

        Returns:
            ParsedBatch with deduplicated nodes and links
        """
        batch = ParsedBatch()
        nodes_by_path: Dict[str, NodeRecord] = {}
        parsed_files: List[Tuple[SourceFile, Optional[ParsedCanvas]]] = []

        for source_file in files:
            try:
                if source_file.file_type == FILE_CANVAS:
                    parsed = canvas_parser.parse_canvas_file(source_file.content, source_file.path)
                    file_nodes = parsed.nodes
                elif source_file.file_type == FILE_CANVAS2DOCUMENT:
                    parsed = canvas_parser.parse_canvas2document_file(source_file.content, source_file.path)
                    file_nodes = parsed.nodes
                else:
                    parsed = None
                    file_nodes = [self._plain_file_node(source_file)]
            except CanvasParseError as e:
                logging.error(f"Failed to parse {source_file.path}: {e}")
                batch.errors.append({"path": source_file.path, "error": str(e)})
                continue

            if not file_nodes:
                logging.error(f"No content in {source_file.path}")
                batch.errors.append({"path": source_file.path, "error": f"Empty file: {source_file.path}"})
                continue

            for node in file_nodes:
                if node.path in nodes_by_path:
                    logging.warning(f"Duplicate node path in batch, keeping the last one: {node.path}")
                nodes_by_path[node.path] = node
            parsed_files.append((source_file, parsed))

        resolver = PathResolver(source_file.path for source_file, _ in parsed_files)

        links: List[LinkRecord] = []
        for source_file, parsed in parsed_files:
            if parsed is None:
                links.extend(self._wiki_links(source_file.path, source_file.content, resolver, batch))
            elif source_file.file_type == FILE_CANVAS:
                links.extend(self._canvas_links(parsed, resolver, batch))
            else:
                links.extend(self._canvas2document_links(parsed))

        batch.nodes = list(nodes_by_path.values())
        batch.links = dedupe_links(links)

        if batch.unresolved_links:
            logging.info(f"{batch.unresolved_links} wiki-links could not be resolved in this batch")
        logging.info(f"Parsed {len(files)} files into {len(batch.nodes)} nodes and {len(batch.links)} links")
        return batch

    def _plain_file_node(self, source_file: SourceFile) -> NodeRecord:
        metadata = {"lastModified": source_file.last_modified.isoformat()}
        if source_file.file_id:
            metadata["fileId"] = source_file.file_id

        return NodeRecord(
            title=extract_title(source_file.content, source_file.name),
            content=source_file.content,
            path=source_file.path,
            tags=extract_tags(source_file.content),
            source_type=SOURCE_OBSIDIAN,
            metadata=metadata
        )

    def _wiki_links(self, source_path: str, content: str, resolver: PathResolver, batch: ParsedBatch) -> List[LinkRecord]:
        links = []
        for target in extract_wiki_links(content):
            resolved = resolver.resolve(target)
            if resolved is None:
                logging.debug(f"Unresolved wiki-link in {source_path}: {target}")
                batch.unresolved_links += 1
                continue
            if resolved != source_path:
                links.append(LinkRecord(source_path=source_path, target_path=resolved, type=WIKI_LINK))
        return links

    def _canvas_links(self, parsed: ParsedCanvas, resolver: PathResolver, batch: ParsedBatch) -> List[LinkRecord]:
        root = parsed.root
        links = []
        for edge in parsed.edges:
            if not edge.from_path or not edge.to_path:
                continue
            links.append(LinkRecord(
                source_path=edge.from_path,
                target_path=edge.to_path,
                type=CANVAS_EDGE_LINK,
                label=edge.label,
                metadata={"label": edge.label} if edge.label else {}
            ))
            links.append(LinkRecord(source_path=root.path, target_path=edge.from_path, type=CANVAS_LINK))

        # No usable edges: the wiki-links in text elements stand in
        if not links:
            for element in parsed.nodes[1:]:
                if element.metadata.get("canvasType") == "text":
                    links.extend(self._wiki_links(element.path, element.content, resolver, batch))
        return links

    def _canvas2document_links(self, parsed: ParsedCanvas) -> List[LinkRecord]:
        root = parsed.root
        links = [
            LinkRecord(
                source_path=link.source_path,
                target_path=link.target_path,
                type=link.type,
                label=link.label,
                metadata={"label": link.label} if link.label else {}
            )
            for link in parsed.links
        ]
        for element in parsed.nodes[1:]:
            links.append(LinkRecord(source_path=root.path, target_path=element.path, type=CANVAS_LINK))
        return links

    def save_to_database(self, batch: ParsedBatch, import_source: str, imported_by: Optional[str] = None) -> ImportResult:
        """
        Persist a parsed batch and write an import log.

        Nodes are upserted by path. Links are resolved to ids against every
        stored node, so they may point at nodes from earlier imports; links
        with an unknown endpoint are skipped and counted, and a link of the
        same type between the same two nodes is never stored twice.

        Returns:
            ImportResult describing the outcome; storage failures are logged
            and reported rather than raised
        """
        if not self.db:
            raise RuntimeError("Database connection not established")

        imported_by = imported_by or config.default_imported_by

        if not batch.nodes and batch.errors:
            logging.error(f"No file from {import_source} could be parsed")
            return self._log_failure(
                import_source, imported_by, "No files could be parsed", {"errors": batch.errors}, batch.errors
            )

        logging.info(f"Importing {len(batch.nodes)} nodes and {len(batch.links)} links from {import_source}")

        try:
            stored_nodes = self.db.bulk_upsert_nodes(batch.nodes)
            path_index = self.db.get_path_index()

            candidates = []
            skipped = 0
            for link in batch.links:
                source_id = path_index.get(link.source_path)
                target_id = path_index.get(link.target_path)
                if source_id is None or target_id is None:
                    logging.warning(f"Skipping link with unknown endpoint: {link.source_path} -> {link.target_path}")
                    skipped += 1
                    continue
                candidates.append(ObsidianLink(
                    source_id=source_id,
                    target_id=target_id,
                    type=link.type,
                    strength=link.strength,
                    metadata=link.metadata
                ))

            created_links = self.db.bulk_create_links(candidates)
            logging.info(f"Created {len(created_links)} links ({len(candidates) - len(created_links)} already present)")

            log = self.db.create_import_log(ImportLog(
                import_source=import_source,
                nodes_count=len(stored_nodes),
                links_count=len(created_links),
                success=True,
                metadata={
                    "skipped_links": skipped,
                    "existing_links": len(candidates) - len(created_links),
                    "unresolved_links": batch.unresolved_links,
                    "errors": batch.errors,
                },
                imported_by=imported_by
            ))

            return ImportResult(
                success=True,
                import_source=import_source,
                nodes_count=len(stored_nodes),
                links_count=len(created_links),
                skipped_links=skipped,
                errors=batch.errors,
                log_id=log.id
            )

        except (StorageError, duckdb.Error) as e:
            logging.error(f"Import from {import_source} failed: {e}")
            return self._log_failure(import_source, imported_by, str(e), {"errors": batch.errors}, batch.errors)

    def import_from_source(self, source: BaseImporter, imported_by: Optional[str] = None) -> ImportResult:
        """
        Read a source, parse its files and save them.

        Unreadable or empty sources produce a failed import log instead of
        an exception.
        """
        if not self.db:
            raise RuntimeError("Database connection not established")

        imported_by = imported_by or config.default_imported_by
        try:
            files = source.get_all_files()
        except ImportSourceError as e:
            logging.error(f"Could not read {source.import_source}: {e}")
            return self._log_failure(source.import_source, imported_by, str(e), {"source": e.source})

        if not files:
            logging.warning(f"No supported files found in {source.import_source}")
            return self._log_failure(source.import_source, imported_by, "No supported files found", {})

        batch = self.parse_obsidian_data(files)
        return self.save_to_database(batch, source.import_source, imported_by)

    def _log_failure(
        self,
        import_source: str,
        imported_by: str,
        error: str,
        metadata: dict,
        errors: Optional[List[Dict[str, str]]] = None
    ) -> ImportResult:
        log_id = None
        try:
            log = self.db.create_import_log(ImportLog(
                import_source=import_source,
                success=False,
                error=error,
                metadata=metadata,
                imported_by=imported_by
            ))
            log_id = log.id
        except duckdb.Error as log_error:
            logging.warning(f"Failed to write import log: {log_error}")

        return ImportResult(
            success=False,
            import_source=import_source,
            error=error,
            errors=errors or [],
            log_id=log_id
        )
