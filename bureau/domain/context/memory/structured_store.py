from typing import Dict, List, Any, Optional, AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
import asyncio
import json

import aiosqlite
import structlog

from bureau.domain.errors import BackendUnavailableError, DuplicateMemoryError, MemoryNotFoundError
from bureau.domain.models.memory import MemoryEntry, MemoryQuery, MemoryType, utcnow

logger = structlog.get_logger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS memory_entries (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    type TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    expires_at TEXT,
    tags TEXT NOT NULL DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_agent_id ON memory_entries(agent_id);
CREATE INDEX IF NOT EXISTS idx_type ON memory_entries(type);
CREATE INDEX IF NOT EXISTS idx_created_at ON memory_entries(created_at);
CREATE INDEX IF NOT EXISTS idx_expires_at ON memory_entries(expires_at);
"""


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    """UTC ISO-8601 with fixed precision so text order matches time order"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class SQLiteMemoryStore:
    """Durable memory store on SQLite, the source of truth for every entry.

    A ``:memory:`` database keeps one shared connection for the lifetime of
    the store; file databases open a connection per operation.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._in_memory = db_path == ":memory:"
        self._shared_conn: Optional[aiosqlite.Connection] = None
        self._initialized = False
        self._closed = False
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create the schema if needed"""

        async with self._lock:
            if self._initialized:
                return

            if not self._in_memory:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            async with self._get_connection() as conn:
                if not self._in_memory:
                    await conn.execute("PRAGMA journal_mode=WAL")
                    await conn.execute("PRAGMA busy_timeout=5000")
                await conn.executescript(SCHEMA)
                await conn.commit()

            self._initialized = True
            logger.info("Memory store initialized", db_path=self.db_path)

    async def close(self) -> None:
        """Close the store; later calls fail with BackendUnavailableError"""

        self._closed = True
        if self._shared_conn is not None:
            try:
                await self._shared_conn.close()
            except aiosqlite.Error as e:
                raise BackendUnavailableError(f"closing memory store failed: {e}") from e
            finally:
                self._shared_conn = None

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        if self._closed:
            raise BackendUnavailableError("memory store is closed")

        if self._in_memory:
            if self._shared_conn is None:
                self._shared_conn = await aiosqlite.connect(":memory:")
                self._shared_conn.row_factory = aiosqlite.Row
            yield self._shared_conn
        else:
            async with aiosqlite.connect(self.db_path) as conn:
                conn.row_factory = aiosqlite.Row
                yield conn

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def store(self, entry: MemoryEntry) -> None:
        """Insert a new entry; the id must not exist yet"""

        await self._ensure_initialized()
        try:
            async with self._get_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO memory_entries
                        (id, agent_id, type, content, metadata, created_at, updated_at, expires_at, tags)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    self._entry_params(entry),
                )
                await conn.commit()
        except aiosqlite.IntegrityError as e:
            raise DuplicateMemoryError(entry.id) from e
        except aiosqlite.Error as e:
            raise BackendUnavailableError(f"storing memory {entry.id} failed: {e}") from e

    async def retrieve(self, memory_id: str) -> MemoryEntry:
        """Point lookup by id"""

        await self._ensure_initialized()
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(
                    "SELECT * FROM memory_entries WHERE id = ?", (memory_id,)
                )
                row = await cursor.fetchone()
                await cursor.close()
        except aiosqlite.Error as e:
            raise BackendUnavailableError(f"retrieving memory {memory_id} failed: {e}") from e

        if row is None:
            raise MemoryNotFoundError(memory_id)
        return self._row_to_entry(row)

    async def query(self, query: MemoryQuery) -> List[MemoryEntry]:
        """Filter entries, newest created first"""

        await self._ensure_initialized()

        clauses: List[str] = []
        params: List[Any] = []

        if query.agent_id:
            clauses.append("agent_id = ?")
            params.append(query.agent_id)
        if query.type:
            clauses.append("type = ?")
            params.append(query.type.value)
        if query.content:
            clauses.append("content LIKE ?")
            params.append(f"%{query.content}%")
        for tag in query.tags:
            clauses.append("EXISTS (SELECT 1 FROM json_each(memory_entries.tags) WHERE json_each.value = ?)")
            params.append(tag)
        if query.time_range:
            clauses.append("created_at >= ? AND created_at <= ?")
            params.extend([to_db_time(query.time_range.start), to_db_time(query.time_range.end)])

        sql = "SELECT * FROM memory_entries"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
        params.extend([query.limit if query.limit > 0 else -1, max(query.offset, 0)])

        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(sql, params)
                rows = await cursor.fetchall()
                await cursor.close()
        except aiosqlite.Error as e:
            raise BackendUnavailableError(f"querying memories failed: {e}") from e

        return [self._row_to_entry(row) for row in rows]

    async def update(self, entry: MemoryEntry) -> None:
        """Replace every column of an existing entry"""

        await self._ensure_initialized()
        params = self._entry_params(entry)
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(
                    """
                    UPDATE memory_entries
                    SET agent_id = ?, type = ?, content = ?, metadata = ?,
                        created_at = ?, updated_at = ?, expires_at = ?, tags = ?
                    WHERE id = ?
                    """,
                    params[1:] + (entry.id,),
                )
                updated = cursor.rowcount
                await conn.commit()
        except aiosqlite.Error as e:
            raise BackendUnavailableError(f"updating memory {entry.id} failed: {e}") from e

        if updated == 0:
            raise MemoryNotFoundError(entry.id)

    async def delete(self, memory_id: str) -> None:
        await self._ensure_initialized()
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute("DELETE FROM memory_entries WHERE id = ?", (memory_id,))
                deleted = cursor.rowcount
                await conn.commit()
        except aiosqlite.Error as e:
            raise BackendUnavailableError(f"deleting memory {memory_id} failed: {e}") from e

        if deleted == 0:
            raise MemoryNotFoundError(memory_id)

    async def list_expired_ids(self, now: Optional[datetime] = None) -> List[str]:
        """Ids of entries whose expiration has passed"""

        await self._ensure_initialized()
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(
                    "SELECT id FROM memory_entries WHERE expires_at IS NOT NULL AND expires_at < ?",
                    (to_db_time(now or utcnow()),),
                )
                rows = await cursor.fetchall()
                await cursor.close()
        except aiosqlite.Error as e:
            raise BackendUnavailableError(f"listing expired memories failed: {e}") from e

        return [row["id"] for row in rows]

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        """Bulk delete expired entries and return how many were removed"""

        await self._ensure_initialized()
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(
                    "DELETE FROM memory_entries WHERE expires_at IS NOT NULL AND expires_at < ?",
                    (to_db_time(now or utcnow()),),
                )
                deleted = cursor.rowcount
                await conn.commit()
        except aiosqlite.Error as e:
            raise BackendUnavailableError(f"deleting expired memories failed: {e}") from e

        logger.info("Expired memories deleted", count=deleted)
        return deleted

    def _entry_params(self, entry: MemoryEntry) -> tuple:
        return (
            entry.id,
            entry.agent_id,
            entry.type.value,
            entry.content,
            json.dumps(entry.metadata),
            to_db_time(entry.created_at),
            to_db_time(entry.updated_at),
            to_db_time(entry.expires_at),
            json.dumps(entry.tags),
        )

    def _row_to_entry(self, row: aiosqlite.Row) -> MemoryEntry:
        metadata: Dict[str, str] = json.loads(row["metadata"]) if row["metadata"] else {}
        tags: List[str] = json.loads(row["tags"]) if row["tags"] else []

        return MemoryEntry(
            id=row["id"],
            agent_id=row["agent_id"],
            type=MemoryType(row["type"]),
            content=row["content"],
            metadata=metadata,
            tags=tags,
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
            expires_at=from_db_time(row["expires_at"]),
        )
