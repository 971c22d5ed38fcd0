from .agent_memory import AgentMemory
from .embedding import EmbeddingFunction, HashEmbeddingFunction
from .memory_manager import MemoryManager
from .structured_store import SQLiteMemoryStore
from .vector_memory_store import InMemoryVectorIndex, VectorIndex

__all__ = [
    "AgentMemory",
    "EmbeddingFunction",
    "HashEmbeddingFunction",
    "InMemoryVectorIndex",
    "MemoryManager",
    "SQLiteMemoryStore",
    "VectorIndex",
]
