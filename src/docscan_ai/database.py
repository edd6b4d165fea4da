"""
DuckDB database operations for docscan-ai.

Handles the document catalog with processing status, the translation cache,
credential health and the processing log.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import duckdb

from docscan_ai.cache.base import CacheEntry, CacheStats, CacheStore
from docscan_ai.credentials.base import CredentialEntry
from docscan_ai.exceptions import DocumentNotFoundError
from docscan_ai.processing.base import StatusStore
from docscan_ai.processing.status import ProcessingStatus, status_from_int, status_to_int
from docscan_ai.timeutil import from_epoch_ms, to_epoch_ms


@dataclass
class Document:
    """Document record."""

    id: int | None = None
    file_name: str = ""
    image_path: str = ""
    source_language: str = "en"
    target_language: str = "ar"
    translate: bool = True
    status: ProcessingStatus = ProcessingStatus.PENDING
    status_detail: str | None = None
    recognized_text: str | None = None
    translated_text: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Database(StatusStore, CacheStore):
    """DuckDB database wrapper for docscan-ai."""

    # SQL for creating tables
    _SCHEMA = """
    -- Document catalog with processing status
    CREATE TABLE IF NOT EXISTS documents (
        id INTEGER PRIMARY KEY,
        file_name VARCHAR NOT NULL,
        image_path VARCHAR NOT NULL UNIQUE,
        source_language VARCHAR NOT NULL,
        target_language VARCHAR NOT NULL,
        translate BOOLEAN DEFAULT TRUE,
        processing_status INTEGER NOT NULL DEFAULT 0,
        status_detail VARCHAR,
        recognized_text TEXT,
        translated_text TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE SEQUENCE IF NOT EXISTS documents_id_seq START 1;

    -- Content-addressable translation cache (timestamps in epoch ms)
    CREATE TABLE IF NOT EXISTS translation_cache (
        cache_key VARCHAR PRIMARY KEY,
        original_text TEXT NOT NULL,
        translated_text TEXT NOT NULL,
        source_language VARCHAR NOT NULL,
        target_language VARCHAR NOT NULL,
        model VARCHAR NOT NULL,
        created_at_ms BIGINT NOT NULL
    );

    -- Credential health, keyed by a hash of the secret (secrets are never stored)
    CREATE TABLE IF NOT EXISTS credential_health (
        id VARCHAR PRIMARY KEY,
        label VARCHAR,
        created_at_ms BIGINT NOT NULL,
        last_used_at_ms BIGINT,
        last_error_at_ms BIGINT,
        error_count INTEGER DEFAULT 0,
        active BOOLEAN DEFAULT TRUE
    );

    -- Processing log for audit trail
    CREATE TABLE IF NOT EXISTS processing_log (
        id INTEGER PRIMARY KEY,
        run_id VARCHAR NOT NULL,
        document_id INTEGER,
        stage VARCHAR NOT NULL,
        level VARCHAR NOT NULL,
        message TEXT NOT NULL,
        context JSON,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE SEQUENCE IF NOT EXISTS processing_log_id_seq START 1;

    CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(processing_status);
    CREATE INDEX IF NOT EXISTS idx_cache_created ON translation_cache(created_at_ms);
    CREATE INDEX IF NOT EXISTS idx_log_lookup ON processing_log(run_id, stage, level);
    """

    _DOCUMENT_COLUMNS = """
        id, file_name, image_path, source_language, target_language, translate,
        processing_status, status_detail, recognized_text, translated_text,
        created_at, updated_at
    """

    _CACHE_COLUMNS = """
        cache_key, original_text, translated_text, source_language, target_language,
        model, created_at_ms
    """

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._run_id = str(uuid.uuid4())

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = duckdb.connect(str(self.db_path))
            self._conn.execute(self._SCHEMA)
        return self._conn

    @property
    def run_id(self) -> str:
        """Get current run ID."""
        return self._run_id

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ==================== Documents ====================

    def add_document(self, doc: Document) -> int:
        """Add a document to the catalog."""
        result = self.conn.execute(
            """
            INSERT INTO documents
            (id, file_name, image_path, source_language, target_language, translate,
             processing_status)
            VALUES (nextval('documents_id_seq'), ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            [
                doc.file_name,
                doc.image_path,
                doc.source_language,
                doc.target_language,
                doc.translate,
                status_to_int(doc.status),
            ],
        ).fetchone()
        return result[0] if result else 0

    def get_document(self, doc_id: int) -> Document | None:
        """Get a document by ID."""
        row = self.conn.execute(
            f"SELECT {self._DOCUMENT_COLUMNS} FROM documents WHERE id = ?", [doc_id]
        ).fetchone()
        if row:
            return self._row_to_document(row)
        return None

    def get_document_by_path(self, image_path: str) -> Document | None:
        """Get a document by its image path."""
        row = self.conn.execute(
            f"SELECT {self._DOCUMENT_COLUMNS} FROM documents WHERE image_path = ?",
            [image_path],
        ).fetchone()
        if row:
            return self._row_to_document(row)
        return None

    def get_all_documents(self, status: ProcessingStatus | None = None) -> list[Document]:
        """Get all documents, optionally filtered by status."""
        if status is not None:
            rows = self.conn.execute(
                f"SELECT {self._DOCUMENT_COLUMNS} FROM documents "
                "WHERE processing_status = ? ORDER BY id",
                [status_to_int(status)],
            ).fetchall()
        else:
            rows = self.conn.execute(
                f"SELECT {self._DOCUMENT_COLUMNS} FROM documents ORDER BY id"
            ).fetchall()
        return [self._row_to_document(row) for row in rows]

    def _row_to_document(self, row: tuple) -> Document:
        """Convert database row to Document."""
        return Document(
            id=row[0],
            file_name=row[1],
            image_path=row[2],
            source_language=row[3],
            target_language=row[4],
            translate=bool(row[5]),
            status=status_from_int(row[6]),
            status_detail=row[7],
            recognized_text=row[8],
            translated_text=row[9],
            created_at=row[10],
            updated_at=row[11],
        )

    # ==================== Status store ====================

    def load_status(self, document_id: Any) -> ProcessingStatus:
        row = self.conn.execute(
            "SELECT processing_status FROM documents WHERE id = ?", [document_id]
        ).fetchone()
        if row is None:
            raise DocumentNotFoundError(document_id)
        return status_from_int(row[0])

    def save_status(
        self, document_id: Any, status: ProcessingStatus, detail: str | None = None
    ) -> None:
        self._update_document(
            document_id,
            "processing_status = ?, status_detail = ?",
            [status_to_int(status), detail],
        )

    def load_text(self, document_id: Any) -> tuple[str | None, str | None]:
        row = self.conn.execute(
            "SELECT recognized_text, translated_text FROM documents WHERE id = ?",
            [document_id],
        ).fetchone()
        if row is None:
            raise DocumentNotFoundError(document_id)
        return row[0], row[1]

    def save_recognized_text(self, document_id: Any, text: str) -> None:
        self._update_document(document_id, "recognized_text = ?", [text])

    def save_translated_text(self, document_id: Any, text: str) -> None:
        self._update_document(document_id, "translated_text = ?", [text])

    def _update_document(self, document_id: Any, assignments: str, params: list[Any]) -> None:
        row = self.conn.execute(
            f"""
            UPDATE documents SET {assignments}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            RETURNING id
            """,
            [*params, document_id],
        ).fetchone()
        if row is None:
            raise DocumentNotFoundError(document_id)

    # ==================== Translation cache ====================

    def load_cache_entry(self, key: str) -> CacheEntry | None:
        row = self.conn.execute(
            f"SELECT {self._CACHE_COLUMNS} FROM translation_cache WHERE cache_key = ?", [key]
        ).fetchone()
        if row:
            return self._row_to_cache_entry(row)
        return None

    def save_cache_entry(self, entry: CacheEntry) -> None:
        self.conn.execute(
            """
            INSERT INTO translation_cache
            (cache_key, original_text, translated_text, source_language, target_language,
             model, created_at_ms)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (cache_key) DO UPDATE
            SET original_text = EXCLUDED.original_text,
                translated_text = EXCLUDED.translated_text,
                source_language = EXCLUDED.source_language,
                target_language = EXCLUDED.target_language,
                model = EXCLUDED.model,
                created_at_ms = EXCLUDED.created_at_ms
            """,
            [
                entry.key,
                entry.original_text,
                entry.translated_text,
                entry.source_language,
                entry.target_language,
                entry.model,
                to_epoch_ms(entry.created_at),
            ],
        )

    def sweep_expired_cache_entries(self, ttl: timedelta, now: datetime) -> int:
        cutoff = to_epoch_ms(now - ttl)
        rows = self.conn.execute(
            "DELETE FROM translation_cache WHERE created_at_ms < ? RETURNING cache_key",
            [cutoff],
        ).fetchall()
        return len(rows)

    def count_cache_entries(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) FROM translation_cache").fetchone()
        return row[0] if row else 0

    def delete_oldest_cache_entries(self, count: int) -> int:
        if count <= 0:
            return 0
        rows = self.conn.execute(
            """
            DELETE FROM translation_cache
            WHERE cache_key IN (
                SELECT cache_key FROM translation_cache
                ORDER BY created_at_ms ASC
                LIMIT ?
            )
            RETURNING cache_key
            """,
            [count],
        ).fetchall()
        return len(rows)

    def cache_stats(self) -> CacheStats:
        row = self.conn.execute(
            """
            SELECT
                COUNT(*),
                COALESCE(SUM(LENGTH(original_text)), 0),
                COALESCE(SUM(LENGTH(translated_text)), 0),
                MIN(created_at_ms),
                MAX(created_at_ms)
            FROM translation_cache
            """
        ).fetchone()
        return CacheStats(
            total_entries=row[0],
            total_original_chars=int(row[1]),
            total_translated_chars=int(row[2]),
            oldest_entry=from_epoch_ms(row[3]),
            newest_entry=from_epoch_ms(row[4]),
        )

    def clear_cache(self) -> int:
        rows = self.conn.execute(
            "DELETE FROM translation_cache RETURNING cache_key"
        ).fetchall()
        return len(rows)

    def _row_to_cache_entry(self, row: tuple) -> CacheEntry:
        """Convert database row to CacheEntry."""
        return CacheEntry(
            key=row[0],
            original_text=row[1],
            translated_text=row[2],
            source_language=row[3],
            target_language=row[4],
            model=row[5],
            created_at=from_epoch_ms(row[6]),
        )

    # ==================== Credential health ====================

    def get_credential_health(self, credential_id: str) -> CredentialEntry | None:
        """
        Get stored health for a credential.

        The returned entry has an empty secret; the caller fills it in from
        configuration.
        """
        row = self.conn.execute(
            """
            SELECT id, label, created_at_ms, last_used_at_ms, last_error_at_ms,
                   error_count, active
            FROM credential_health WHERE id = ?
            """,
            [credential_id],
        ).fetchone()
        if row is None:
            return None
        return CredentialEntry(
            id=row[0],
            secret="",
            label=row[1] or "",
            created_at=from_epoch_ms(row[2]),
            last_used_at=from_epoch_ms(row[3]),
            last_error_at=from_epoch_ms(row[4]),
            error_count=row[5] or 0,
            active=bool(row[6]),
        )

    def save_credential_health(self, entry: CredentialEntry) -> None:
        """Insert or update health metadata for a credential (never the secret)."""
        self.conn.execute(
            """
            INSERT INTO credential_health
            (id, label, created_at_ms, last_used_at_ms, last_error_at_ms, error_count, active)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (id) DO UPDATE
            SET label = EXCLUDED.label,
                last_used_at_ms = EXCLUDED.last_used_at_ms,
                last_error_at_ms = EXCLUDED.last_error_at_ms,
                error_count = EXCLUDED.error_count,
                active = EXCLUDED.active
            """,
            [
                entry.id,
                entry.label,
                to_epoch_ms(entry.created_at),
                to_epoch_ms(entry.last_used_at),
                to_epoch_ms(entry.last_error_at),
                entry.error_count,
                entry.active,
            ],
        )

    # ==================== Logging ====================

    def log(
        self,
        level: str,
        stage: str,
        message: str,
        document_id: int | None = None,
        context: dict | None = None,
    ) -> None:
        """Insert a log entry."""
        context_json = json.dumps(context, default=str) if context else None
        self.conn.execute(
            """
            INSERT INTO processing_log
            (id, run_id, document_id, stage, level, message, context)
            VALUES (nextval('processing_log_id_seq'), ?, ?, ?, ?, ?, ?)
            """,
            [self._run_id, document_id, stage, level, message, context_json],
        )

    def get_logs(
        self,
        document_id: int | None = None,
        level: str | None = None,
        stage: str | None = None,
        run_id: str | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Get log entries, newest first."""
        conditions = []
        params: list[Any] = []

        if document_id is not None:
            conditions.append("document_id = ?")
            params.append(document_id)
        if level:
            conditions.append("level = ?")
            params.append(level.upper())
        if stage:
            conditions.append("stage = ?")
            params.append(stage)
        if run_id:
            conditions.append("run_id = ?")
            params.append(run_id)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self.conn.execute(
            f"""
            SELECT run_id, document_id, stage, level, message, context, created_at
            FROM processing_log
            {where_clause}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            [*params, limit],
        ).fetchall()

        return [
            {
                "run_id": row[0],
                "document_id": row[1],
                "stage": row[2],
                "level": row[3],
                "message": row[4],
                "context": json.loads(row[5]) if row[5] else None,
                "created_at": row[6],
            }
            for row in rows
        ]

    # ==================== Statistics ====================

    def get_statistics(self) -> dict[str, Any]:
        """Get document counts by status for the CLI."""
        rows = self.conn.execute(
            "SELECT processing_status, COUNT(*) FROM documents GROUP BY processing_status"
        ).fetchall()
        by_status: dict[str, int] = {}
        for code, count in rows:
            status = status_from_int(code)
            by_status[status.value] = by_status.get(status.value, 0) + count

        return {
            "total_documents": sum(by_status.values()),
            "by_status": by_status,
            "cache_entries": self.count_cache_entries(),
        }
