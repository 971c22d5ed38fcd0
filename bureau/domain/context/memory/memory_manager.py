from typing import List, Optional
from datetime import datetime, timedelta
import uuid

import structlog

from bureau.domain.errors import BackendUnavailableError, MemoryNotFoundError
from bureau.domain.models.memory import MemoryEntry, MemoryQuery, MemoryType, utcnow
from bureau.infrastructure.config.settings import RetentionConfig
from bureau.infrastructure.observability.logging import agent_logger
from .embedding import EmbeddingFunction, HashEmbeddingFunction
from .structured_store import SQLiteMemoryStore
from .vector_memory_store import VectorIndex

logger = structlog.get_logger(__name__)

# Retention of 0 days means "keep"; stored as a far-future expiry, never NULL
FOREVER = timedelta(days=365 * 100)
DEFAULT_RETENTION_DAYS = 30

# Hits pulled from the index per requested result, to survive agent filtering
SEARCH_OVERSAMPLE = 5


class MemoryManager:
    """Coordinates the structured store and the optional vector index.

    The structured store is authoritative: writes to it must succeed, while
    every vector index failure is logged and the operation carries on.
    Without a structured store nothing is persisted: writes only reach the
    index, lookups find nothing and queries come back empty.
    """

    def __init__(
        self,
        store: Optional[SQLiteMemoryStore],
        vector_index: Optional[VectorIndex] = None,
        embedding: Optional[EmbeddingFunction] = None,
        retention: Optional[RetentionConfig] = None,
    ):
        self.store = store
        self.vector_index = vector_index
        self.retention = retention or RetentionConfig()
        if vector_index is not None and embedding is None:
            embedding = HashEmbeddingFunction(getattr(vector_index, "dimension", 128))
        self.embedding = embedding

    @property
    def has_store(self) -> bool:
        return self.store is not None

    @property
    def has_vector_index(self) -> bool:
        return self.vector_index is not None

    def calculate_expiration(self, memory_type: MemoryType, now: Optional[datetime] = None) -> datetime:
        """Expiration for a new entry of the given type"""

        now = now or utcnow()
        days_by_type = {
            MemoryType.CONVERSATION: self.retention.conversation_days,
            MemoryType.TASK: self.retention.task_days,
            MemoryType.CONTEXT: self.retention.task_days,
            MemoryType.KNOWLEDGE: self.retention.knowledge_days,
            MemoryType.DECISION: self.retention.knowledge_days,
        }
        days = days_by_type.get(memory_type, DEFAULT_RETENTION_DAYS)

        if days == 0:
            return now + FOREVER
        return now + timedelta(days=days)

    async def store_memory(self, entry: MemoryEntry) -> MemoryEntry:
        """Persist an entry and index its content; returns the stored entry"""

        now = utcnow()
        created_at = entry.created_at or now
        entry = entry.model_copy(update={
            "id": entry.id or str(uuid.uuid4()),
            "created_at": created_at,
            "updated_at": entry.updated_at or now,
            "expires_at": entry.expires_at or self.calculate_expiration(entry.type, created_at),
        })

        if self.store is not None:
            await self.store.store(entry)
            agent_logger.log_memory_operation("store", entry.id, entry.agent_id, {"type": entry.type.value})

        if entry.content and self.vector_index is not None:
            await self._index(entry)

        return entry

    async def retrieve_memory(self, memory_id: str) -> MemoryEntry:
        if self.store is None:
            raise MemoryNotFoundError(memory_id)
        return await self.store.retrieve(memory_id)

    async def query_memories(self, query: MemoryQuery) -> List[MemoryEntry]:
        """Structured query, newest first"""
        if self.store is None:
            return []
        return await self.store.query(query)

    async def semantic_search(self, text: str, agent_id: Optional[str] = None, limit: int = 10) -> List[MemoryEntry]:
        """Similarity search over an agent's memories.

        Without a vector index, or when the index fails, this is a lexical
        content query with the same arguments.
        """

        if self.vector_index is not None:
            try:
                return await self._vector_search(text, agent_id, limit)
            except BackendUnavailableError:
                raise
            except Exception as e:
                logger.warning("Vector search failed, falling back to lexical query", error=str(e))

        return await self.query_memories(MemoryQuery(agent_id=agent_id, content=text, limit=limit))

    async def _vector_search(self, text: str, agent_id: Optional[str], limit: int) -> List[MemoryEntry]:
        vector = self.embedding.embed(text)
        hits = await self.vector_index.search(vector, k=max(limit, 1) * SEARCH_OVERSAMPLE)

        entries: List[MemoryEntry] = []
        for hit in hits:
            try:
                entry = await self.retrieve_memory(hit.id)
            except MemoryNotFoundError:
                # Index outlived the entry; the store wins
                logger.debug("Dropping orphaned vector hit", memory_id=hit.id)
                continue
            if agent_id and entry.agent_id != agent_id:
                continue
            entries.append(entry.model_copy(update={"score": hit.score}))
            if len(entries) >= limit:
                break

        agent_logger.log_memory_operation("semantic_search", agent_id=agent_id, details={"hits": len(entries)})
        return entries

    async def update_memory(self, entry: MemoryEntry) -> MemoryEntry:
        """Replace an existing entry's content and metadata"""

        if self.store is None:
            raise MemoryNotFoundError(entry.id)
        entry = entry.model_copy(update={"updated_at": utcnow()})
        await self.store.update(entry)
        agent_logger.log_memory_operation("update", entry.id, entry.agent_id)

        if self.vector_index is not None:
            if entry.content:
                await self._index(entry)
            else:
                await self._unindex(entry.id)

        return entry

    async def delete_memory(self, memory_id: str) -> None:
        if self.store is None:
            raise MemoryNotFoundError(memory_id)
        await self.store.delete(memory_id)
        agent_logger.log_memory_operation("delete", memory_id)

        if self.vector_index is not None:
            await self._unindex(memory_id)

    async def get_conversation_history(self, agent_id: str, limit: int = 10) -> List[MemoryEntry]:
        return await self.query_memories(
            MemoryQuery(agent_id=agent_id, type=MemoryType.CONVERSATION, limit=limit)
        )

    async def prune_expired_memories(self, now: Optional[datetime] = None) -> int:
        """Remove expired entries from the index, then from the store"""

        if self.store is None:
            return 0
        now = now or utcnow()

        if self.vector_index is not None:
            for memory_id in await self.store.list_expired_ids(now):
                await self._unindex(memory_id)

        removed = await self.store.delete_expired(now)
        agent_logger.log_memory_operation("prune", details={"removed": removed})
        return removed

    async def close(self) -> None:
        """Close both backends, reporting every failure at once"""

        errors: List[str] = []

        if self.vector_index is not None:
            try:
                await self.vector_index.close()
            except Exception as e:
                errors.append(f"vector index: {e}")

        if self.store is not None:
            try:
                await self.store.close()
            except Exception as e:
                errors.append(f"structured store: {e}")

        if errors:
            raise BackendUnavailableError("closing memory backends failed: " + "; ".join(errors))

    # The index may sit behind any transport; none of its failures are fatal

    async def _index(self, entry: MemoryEntry) -> None:
        try:
            vector = entry.embedding or self.embedding.embed(entry.content)
            await self.vector_index.insert(
                entry.id,
                vector,
                {"agent_id": entry.agent_id, "type": entry.type.value},
            )
        except Exception as e:
            logger.warning("Indexing memory failed", memory_id=entry.id, error=str(e))

    async def _unindex(self, memory_id: str) -> None:
        try:
            await self.vector_index.delete(memory_id)
        except Exception as e:
            logger.warning("Removing memory from index failed", memory_id=memory_id, error=str(e))
