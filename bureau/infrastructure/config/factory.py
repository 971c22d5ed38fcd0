from typing import Optional

import structlog

from bureau.domain.context.memory.embedding import HashEmbeddingFunction
from bureau.domain.context.memory.memory_manager import MemoryManager
from bureau.domain.context.memory.structured_store import SQLiteMemoryStore
from bureau.domain.context.memory.vector_memory_store import InMemoryVectorIndex
from bureau.domain.generation.provider import TextGenerator
from bureau.domain.notification.notifier import LogNotifier, Notifier, WebhookNotifier
from bureau.domain.orchestration.core.organization import Organization
from .settings import BureauConfig

logger = structlog.get_logger(__name__)


def build_memory_manager(config: BureauConfig) -> Optional[MemoryManager]:
    """Construct the shared memory manager, or None when memory is disabled"""

    memory_config = config.memory
    if not memory_config.enabled:
        logger.info("Memory disabled")
        return None

    store = SQLiteMemoryStore(memory_config.sqlite.dsn) if memory_config.sqlite.enabled else None

    vector_index = None
    embedding = None
    if memory_config.vector.enabled:
        vector_index = InMemoryVectorIndex(memory_config.vector.dimension)
        embedding = HashEmbeddingFunction(memory_config.vector.dimension)

    logger.info(
        "Memory manager built",
        sqlite=memory_config.sqlite.dsn if store else None,
        vector_index=vector_index is not None,
    )
    return MemoryManager(store, vector_index, embedding, memory_config.retention)


def build_notifier(config: BureauConfig) -> Notifier:
    notifier_config = config.notifier
    if notifier_config.webhook_url:
        return WebhookNotifier(
            notifier_config.webhook_url,
            notify_on=notifier_config.notify_on,
            timeout=notifier_config.timeout,
            retry_count=notifier_config.retry_count,
        )
    return LogNotifier()


def build_organization(config: BureauConfig, generator: Optional[TextGenerator] = None) -> Organization:
    """Wire memory, notifier and hierarchy from one configuration"""

    return Organization(
        config,
        memory_manager=build_memory_manager(config),
        generator=generator,
        notifier=build_notifier(config),
    )
