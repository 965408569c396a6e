"""
Database manager for Ipê Mind Tree.

This module handles all database operations using DuckDB: the note graph
(nodes and links), import logs, subprompts and the log of LLM calls.
Tags and metadata are stored as JSON text.
"""

import duckdb
import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime

from ..exceptions import StorageError
from ..models import (
    ImportLog,
    NodeRecord,
    ObsidianLink,
    ObsidianNode,
    Subprompt,
)

NODE_COLUMNS = "id, title, content, path, tags, source_type, is_imported, metadata, created_at, updated_at"
LINK_COLUMNS = "id, source_id, target_id, type, strength, metadata, created_at"
IMPORT_LOG_COLUMNS = "id, import_source, nodes_count, links_count, success, error, metadata, imported_at, imported_by"
SUBPROMPT_COLUMNS = "id, name, description, keywords, content, sphere, active, usage_count, embedding, created_at, updated_at"


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def _loads(value: Optional[str], default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logging.warning(f"Discarding unreadable JSON column value: {value[:80]!r}")
        return default


class DatabaseManager:
    """
    Manages the DuckDB database holding the note graph.
    """

    def __init__(self, db_path: str = "mindtree.db"):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the DuckDB database file (":memory:" for a throwaway database)
        """
        self.db_path = db_path
        self.connection = None

    def connect(self):
        """Establish connection to the database."""
        self.connection = duckdb.connect(self.db_path)

    def disconnect(self):
        """Close the database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()

    def initialize_database(self):
        """
        Create all necessary tables if they don't exist.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        self.connection.execute("CREATE SEQUENCE IF NOT EXISTS obsidian_node_id_seq;")
        self.connection.execute("""
            CREATE TABLE IF NOT EXISTS obsidian_nodes (
                id BIGINT PRIMARY KEY DEFAULT nextval('obsidian_node_id_seq'),
                title VARCHAR NOT NULL,
                content TEXT,
                path VARCHAR NOT NULL UNIQUE,
                tags TEXT,
                source_type VARCHAR NOT NULL DEFAULT 'obsidian',
                is_imported BOOLEAN DEFAULT TRUE,
                metadata TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Referential integrity for links is checked before insert, the batch
        # tools truncate this table wholesale.
        self.connection.execute("CREATE SEQUENCE IF NOT EXISTS obsidian_link_id_seq;")
        self.connection.execute("""
            CREATE TABLE IF NOT EXISTS obsidian_links (
                id BIGINT PRIMARY KEY DEFAULT nextval('obsidian_link_id_seq'),
                source_id BIGINT NOT NULL,
                target_id BIGINT NOT NULL,
                type VARCHAR NOT NULL,
                strength DOUBLE DEFAULT 1.0,
                metadata TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        self.connection.execute("CREATE SEQUENCE IF NOT EXISTS import_log_id_seq;")
        self.connection.execute("""
            CREATE TABLE IF NOT EXISTS import_logs (
                id BIGINT PRIMARY KEY DEFAULT nextval('import_log_id_seq'),
                import_source VARCHAR NOT NULL,
                nodes_count INTEGER DEFAULT 0,
                links_count INTEGER DEFAULT 0,
                success BOOLEAN NOT NULL,
                error TEXT,
                metadata TEXT,
                imported_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                imported_by VARCHAR
            )
        """)

        self.connection.execute("CREATE SEQUENCE IF NOT EXISTS subprompt_id_seq;")
        self.connection.execute("""
            CREATE TABLE IF NOT EXISTS subprompts (
                id BIGINT PRIMARY KEY DEFAULT nextval('subprompt_id_seq'),
                name VARCHAR NOT NULL UNIQUE,
                description TEXT,
                keywords TEXT,
                content TEXT NOT NULL,
                sphere VARCHAR,
                active BOOLEAN DEFAULT TRUE,
                usage_count INTEGER DEFAULT 0,
                embedding TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        self.connection.execute("CREATE SEQUENCE IF NOT EXISTS llm_call_id_seq;")
        self.connection.execute("""
            CREATE TABLE IF NOT EXISTS llm_calls (
                call_id BIGINT PRIMARY KEY DEFAULT nextval('llm_call_id_seq'),
                purpose VARCHAR NOT NULL,
                system_prompt TEXT,
                user_prompt TEXT NOT NULL,
                model_name VARCHAR NOT NULL,
                raw_response TEXT NOT NULL,
                success BOOLEAN NOT NULL,
                error_message TEXT,
                execution_time_ms INTEGER,
                called_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    # Nodes

    def _row_to_node(self, row) -> ObsidianNode:
        return ObsidianNode(
            id=row[0],
            title=row[1],
            content=row[2] or "",
            path=row[3],
            tags=_loads(row[4], []),
            source_type=row[5],
            is_imported=bool(row[6]),
            metadata=_loads(row[7], {}),
            created_at=row[8],
            updated_at=row[9]
        )

    def create_node(self, record: NodeRecord) -> ObsidianNode:
        """
        Insert a new node.

        Args:
            record: The node to insert

        Returns:
            The stored node with its assigned id

        Raises:
            duckdb.ConstraintException: If a node with the same path exists
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        now = datetime.now()
        row = self.connection.execute(f"""
            INSERT INTO obsidian_nodes (title, content, path, tags, source_type, is_imported, metadata, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING {NODE_COLUMNS}
        """, [
            record.title,
            record.content,
            record.path,
            _dumps(record.tags),
            record.source_type,
            record.is_imported,
            _dumps(record.metadata),
            now,
            now
        ]).fetchone()
        return self._row_to_node(row)

    def update_node(self, node_id: int, record: NodeRecord) -> Optional[ObsidianNode]:
        """
        Overwrite title, content, tags, source type and metadata of a node.

        Args:
            node_id: Id of the node to update
            record: New values (the path is left untouched)

        Returns:
            The updated node, or None if no node has that id
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        self.connection.execute("""
            UPDATE obsidian_nodes
            SET title = ?, content = ?, tags = ?, source_type = ?, is_imported = ?, metadata = ?, updated_at = ?
            WHERE id = ?
        """, [
            record.title,
            record.content,
            _dumps(record.tags),
            record.source_type,
            record.is_imported,
            _dumps(record.metadata),
            datetime.now(),
            node_id
        ])
        return self.get_node(node_id)

    def upsert_node(self, record: NodeRecord) -> Tuple[ObsidianNode, bool]:
        """
        Insert a node, or update it in place when its path already exists.

        Returns:
            (node, created) where created is False for an update
        """
        existing = self.get_node_by_path(record.path)
        if existing:
            return self.update_node(existing.id, record), False
        return self.create_node(record), True

    def bulk_upsert_nodes(self, records: List[NodeRecord]) -> List[ObsidianNode]:
        """
        Upsert a batch of nodes one by one, deduplicating by path.

        Records sharing a path within the batch collapse into the last one.
        There is no wrapping transaction: rows written before a failure stay.

        Raises:
            StorageError: If the database rejects a write
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        stored: Dict[str, ObsidianNode] = {}
        created = 0
        try:
            for record in records:
                node, was_created = self.upsert_node(record)
                stored[node.path] = node
                if was_created:
                    created += 1
        except duckdb.Error as e:
            logging.error(f"Bulk node upsert failed after {len(stored)} nodes: {e}")
            raise StorageError(f"Failed to create nodes: {e}") from e

        logging.info(f"Upserted {len(stored)} nodes ({created} new, {len(stored) - created} updated)")
        return list(stored.values())

    def get_node(self, node_id: int) -> Optional[ObsidianNode]:
        """
        Retrieve a node by id.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        row = self.connection.execute(
            f"SELECT {NODE_COLUMNS} FROM obsidian_nodes WHERE id = ?", [node_id]
        ).fetchone()
        return self._row_to_node(row) if row else None

    def get_node_by_path(self, path: str) -> Optional[ObsidianNode]:
        """
        Retrieve a node by its unique path.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        row = self.connection.execute(
            f"SELECT {NODE_COLUMNS} FROM obsidian_nodes WHERE path = ?", [path]
        ).fetchone()
        return self._row_to_node(row) if row else None

    def get_all_nodes(self) -> List[ObsidianNode]:
        """
        List every node in insertion order.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        rows = self.connection.execute(
            f"SELECT {NODE_COLUMNS} FROM obsidian_nodes ORDER BY id"
        ).fetchall()
        return [self._row_to_node(row) for row in rows]

    def get_path_index(self) -> Dict[str, int]:
        """Map every stored path to its node id."""
        if not self.connection:
            raise RuntimeError("Database connection not established")

        rows = self.connection.execute("SELECT path, id FROM obsidian_nodes").fetchall()
        return {row[0]: row[1] for row in rows}

    # Links

    def _row_to_link(self, row) -> ObsidianLink:
        return ObsidianLink(
            id=row[0],
            source_id=row[1],
            target_id=row[2],
            type=row[3],
            strength=row[4] if row[4] is not None else 1.0,
            metadata=_loads(row[5], {}),
            created_at=row[6]
        )

    def link_exists(self, source_id: int, target_id: int, link_type: str) -> bool:
        """
        Check whether a link of this type already joins the two nodes, in either direction.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        result = self.connection.execute("""
            SELECT 1 FROM obsidian_links
            WHERE type = ?
              AND ((source_id = ? AND target_id = ?) OR (source_id = ? AND target_id = ?))
            LIMIT 1
        """, [link_type, source_id, target_id, target_id, source_id]).fetchone()
        return result is not None

    def create_link(self, link: ObsidianLink) -> ObsidianLink:
        """
        Insert a single link.

        Args:
            link: The link to insert (its id is ignored)

        Returns:
            The stored link with its assigned id
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        row = self.connection.execute(f"""
            INSERT INTO obsidian_links (source_id, target_id, type, strength, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING {LINK_COLUMNS}
        """, [
            link.source_id,
            link.target_id,
            link.type,
            link.strength,
            _dumps(link.metadata),
            datetime.now()
        ]).fetchone()
        return self._row_to_link(row)

    def bulk_create_links(self, links: List[ObsidianLink], skip_existing: bool = True) -> List[ObsidianLink]:
        """
        Insert a batch of links.

        Args:
            links: Links to insert
            skip_existing: Check for an existing link of the same type between
                the same two nodes before each insert

        Returns:
            The links actually created

        Raises:
            StorageError: If the database rejects a write
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        created = []
        try:
            for link in links:
                if link.source_id == link.target_id:
                    continue
                if skip_existing and self.link_exists(link.source_id, link.target_id, link.type):
                    continue
                created.append(self.create_link(link))
        except duckdb.Error as e:
            logging.error(f"Bulk link insert failed after {len(created)} links: {e}")
            raise StorageError(f"Failed to create links: {e}") from e

        return created

    def get_links_for_node(self, node_id: int) -> List[ObsidianLink]:
        """
        List links where the node is either the source or the target.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        rows = self.connection.execute(f"""
            SELECT {LINK_COLUMNS} FROM obsidian_links
            WHERE source_id = ? OR target_id = ?
            ORDER BY id
        """, [node_id, node_id]).fetchall()
        return [self._row_to_link(row) for row in rows]

    def get_all_links(self, link_type: Optional[str] = None) -> List[ObsidianLink]:
        """
        List all links, optionally filtered by type.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        if link_type:
            rows = self.connection.execute(
                f"SELECT {LINK_COLUMNS} FROM obsidian_links WHERE type = ? ORDER BY id", [link_type]
            ).fetchall()
        else:
            rows = self.connection.execute(
                f"SELECT {LINK_COLUMNS} FROM obsidian_links ORDER BY id"
            ).fetchall()
        return [self._row_to_link(row) for row in rows]

    def delete_all_links(self) -> int:
        """
        Truncate the link table.

        Returns:
            Number of links removed
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        count = self.connection.execute("SELECT COUNT(*) FROM obsidian_links").fetchone()[0]
        self.connection.execute("DELETE FROM obsidian_links")
        return count

    # Import logs

    def create_import_log(self, log: ImportLog) -> ImportLog:
        """
        Record one import attempt.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        row = self.connection.execute(f"""
            INSERT INTO import_logs (import_source, nodes_count, links_count, success, error, metadata, imported_at, imported_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING {IMPORT_LOG_COLUMNS}
        """, [
            log.import_source,
            log.nodes_count,
            log.links_count,
            log.success,
            log.error,
            _dumps(log.metadata),
            datetime.now(),
            log.imported_by
        ]).fetchone()
        return self._row_to_import_log(row)

    def _row_to_import_log(self, row) -> ImportLog:
        return ImportLog(
            id=row[0],
            import_source=row[1],
            nodes_count=row[2] or 0,
            links_count=row[3] or 0,
            success=bool(row[4]),
            error=row[5],
            metadata=_loads(row[6], {}),
            imported_at=row[7],
            imported_by=row[8]
        )

    def get_import_logs(self, limit: Optional[int] = None) -> List[ImportLog]:
        """
        List import logs, most recent first.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        query = f"SELECT {IMPORT_LOG_COLUMNS} FROM import_logs ORDER BY imported_at DESC, id DESC"
        if limit:
            query += f" LIMIT {int(limit)}"
        rows = self.connection.execute(query).fetchall()
        return [self._row_to_import_log(row) for row in rows]

    # Subprompts

    def _row_to_subprompt(self, row) -> Subprompt:
        return Subprompt(
            id=row[0],
            name=row[1],
            description=row[2] or "",
            keywords=_loads(row[3], []),
            content=row[4],
            sphere=row[5],
            active=bool(row[6]),
            usage_count=row[7] or 0,
            embedding=_loads(row[8], []),
            created_at=row[9],
            updated_at=row[10]
        )

    def add_subprompt(self, subprompt: Subprompt) -> Subprompt:
        """
        Insert a subprompt.

        Raises:
            duckdb.ConstraintException: If a subprompt with the same name exists
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        now = datetime.now()
        row = self.connection.execute(f"""
            INSERT INTO subprompts (name, description, keywords, content, sphere, active, usage_count, embedding, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING {SUBPROMPT_COLUMNS}
        """, [
            subprompt.name,
            subprompt.description,
            _dumps(subprompt.keywords),
            subprompt.content,
            subprompt.sphere,
            subprompt.active,
            subprompt.usage_count,
            _dumps(subprompt.embedding),
            now,
            now
        ]).fetchone()
        return self._row_to_subprompt(row)

    def update_subprompt(self, subprompt: Subprompt) -> Optional[Subprompt]:
        """
        Overwrite every column of an existing subprompt (matched by id).
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        self.connection.execute("""
            UPDATE subprompts
            SET description = ?, keywords = ?, content = ?, sphere = ?, active = ?, usage_count = ?, embedding = ?, updated_at = ?
            WHERE id = ?
        """, [
            subprompt.description,
            _dumps(subprompt.keywords),
            subprompt.content,
            subprompt.sphere,
            subprompt.active,
            subprompt.usage_count,
            _dumps(subprompt.embedding),
            datetime.now(),
            subprompt.id
        ])
        return self.get_subprompt(subprompt.id)

    def delete_subprompt(self, subprompt_id: int) -> bool:
        if not self.connection:
            raise RuntimeError("Database connection not established")

        existed = self.get_subprompt(subprompt_id) is not None
        self.connection.execute("DELETE FROM subprompts WHERE id = ?", [subprompt_id])
        return existed

    def get_subprompt(self, subprompt_id: int) -> Optional[Subprompt]:
        if not self.connection:
            raise RuntimeError("Database connection not established")

        row = self.connection.execute(
            f"SELECT {SUBPROMPT_COLUMNS} FROM subprompts WHERE id = ?", [subprompt_id]
        ).fetchone()
        return self._row_to_subprompt(row) if row else None

    def get_subprompt_by_name(self, name: str) -> Optional[Subprompt]:
        if not self.connection:
            raise RuntimeError("Database connection not established")

        row = self.connection.execute(
            f"SELECT {SUBPROMPT_COLUMNS} FROM subprompts WHERE name = ?", [name]
        ).fetchone()
        return self._row_to_subprompt(row) if row else None

    def list_subprompts(self, active_only: bool = False) -> List[Subprompt]:
        if not self.connection:
            raise RuntimeError("Database connection not established")

        query = f"SELECT {SUBPROMPT_COLUMNS} FROM subprompts"
        if active_only:
            query += " WHERE active = true"
        query += " ORDER BY id"
        rows = self.connection.execute(query).fetchall()
        return [self._row_to_subprompt(row) for row in rows]

    # LLM call log

    def log_llm_call(
        self,
        purpose: str,
        system_prompt: Optional[str],
        user_prompt: str,
        model_name: str,
        raw_response: str,
        success: bool = True,
        error_message: Optional[str] = None,
        execution_time_ms: Optional[int] = None
    ) -> Optional[int]:
        """
        Log an LLM call to the database for reproducibility.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        result = self.connection.execute("""
            INSERT INTO llm_calls (
                purpose, system_prompt, user_prompt, model_name,
                raw_response, success, error_message, execution_time_ms
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING call_id
        """, [
            purpose, system_prompt, user_prompt, model_name,
            raw_response, success, error_message, execution_time_ms
        ]).fetchone()
        return result[0] if result else None

    def get_llm_calls(
        self,
        purpose: Optional[str] = None,
        success_only: bool = False,
        limit: Optional[int] = None
    ) -> List[Dict]:
        """
        Retrieve logged LLM calls, most recent first.

        Args:
            purpose: Filter by purpose (optional)
            success_only: Only return successful calls
            limit: Limit number of results

        Returns:
            List of LLM call records
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        query = """
            SELECT call_id, purpose, system_prompt, user_prompt, model_name,
                   raw_response, success, error_message, execution_time_ms, called_at
            FROM llm_calls
            WHERE 1=1
        """
        params = []

        if purpose:
            query += " AND purpose = ?"
            params.append(purpose)

        if success_only:
            query += " AND success = true"

        query += " ORDER BY called_at DESC, call_id DESC"

        if limit:
            query += f" LIMIT {int(limit)}"

        results = self.connection.execute(query, params).fetchall()

        return [
            {
                "call_id": row[0],
                "purpose": row[1],
                "system_prompt": row[2],
                "user_prompt": row[3],
                "model_name": row[4],
                "raw_response": row[5],
                "success": row[6],
                "error_message": row[7],
                "execution_time_ms": row[8],
                "called_at": row[9]
            }
            for row in results
        ]
