from typing import List, Optional

import structlog

from bureau.domain.errors import BureauError
from bureau.domain.models.memory import MemoryEntry, MemoryQuery, MemoryType, utcnow
from bureau.domain.models.task import Task
from .memory_manager import MemoryManager

logger = structlog.get_logger(__name__)


class AgentMemory:
    """Memory view bound to a single agent.

    Every call is a silent no-op when no manager is configured, so agents
    run unchanged with memory disabled.
    """

    def __init__(self, agent_id: str, manager: Optional[MemoryManager] = None):
        self.agent_id = agent_id
        self.manager = manager

    @property
    def enabled(self) -> bool:
        return self.manager is not None

    def _timestamp(self) -> str:
        return str(int(utcnow().timestamp()))

    async def _store(self, memory_type: MemoryType, content: str, tags: Optional[List[str]], **metadata: str) -> Optional[MemoryEntry]:
        if not self.enabled:
            return None

        metadata["timestamp"] = self._timestamp()
        entry = MemoryEntry(
            agent_id=self.agent_id,
            type=memory_type,
            content=content,
            tags=list(tags or []),
            metadata=metadata,
        )
        return await self.manager.store_memory(entry)

    async def store_conversation(self, content: str, tags: Optional[List[str]] = None) -> Optional[MemoryEntry]:
        return await self._store(MemoryType.CONVERSATION, content, tags)

    async def store_task(self, task: Task, result: str, tags: Optional[List[str]] = None) -> Optional[MemoryEntry]:
        """Record a task and its outcome, keyed by who handled it"""

        content = f"Task: {task.title}\nDescription: {task.description}\nResult: {result}"
        return await self._store(
            MemoryType.TASK,
            content,
            tags,
            task_id=task.id,
            from_agent=task.from_agent,
            to_agent=task.to_agent,
            priority=str(task.priority),
        )

    async def store_knowledge(self, content: str, tags: Optional[List[str]] = None) -> Optional[MemoryEntry]:
        return await self._store(MemoryType.KNOWLEDGE, content, tags)

    async def store_decision(self, decision: str, reasoning: str, tags: Optional[List[str]] = None) -> Optional[MemoryEntry]:
        content = f"Decision: {decision}\nReasoning: {reasoning}"
        return await self._store(MemoryType.DECISION, content, tags, decision=decision, reasoning=reasoning)

    async def get_conversation_history(self, limit: int = 10) -> List[MemoryEntry]:
        if not self.enabled:
            return []
        return await self.manager.get_conversation_history(self.agent_id, limit)

    async def get_related_tasks(self, query: str, limit: int = 5) -> List[MemoryEntry]:
        """Similar past work, degrading to a lexical task query on error"""

        if not self.enabled:
            return []

        try:
            return await self.manager.semantic_search(query, self.agent_id, limit)
        except BureauError as e:
            logger.warning("Semantic search failed, querying tasks", agent_id=self.agent_id, error=str(e))
            return await self.manager.query_memories(
                MemoryQuery(agent_id=self.agent_id, type=MemoryType.TASK, content=query, limit=limit)
            )

    async def get_knowledge(self, query: str, limit: int = 5) -> List[MemoryEntry]:
        if not self.enabled:
            return []
        return await self.manager.query_memories(
            MemoryQuery(agent_id=self.agent_id, type=MemoryType.KNOWLEDGE, content=query, limit=limit)
        )

    async def get_decision_history(self, limit: int = 10) -> List[MemoryEntry]:
        if not self.enabled:
            return []
        return await self.manager.query_memories(
            MemoryQuery(agent_id=self.agent_id, type=MemoryType.DECISION, limit=limit)
        )

    async def search_memory(self, query: str, limit: int = 10) -> List[MemoryEntry]:
        """Similarity search across every memory type"""
        if not self.enabled:
            return []
        return await self.manager.semantic_search(query, self.agent_id, limit)
