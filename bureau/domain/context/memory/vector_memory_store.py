from typing import Dict, List, Optional, Protocol
import asyncio

import numpy as np
import structlog

from bureau.domain.errors import VectorIndexError
from bureau.domain.models.memory import SearchResult

logger = structlog.get_logger(__name__)


class VectorIndex(Protocol):
    """Similarity index over memory embeddings.

    The structured store stays authoritative; an index only returns ids and
    scores that the caller hydrates.
    """

    async def insert(self, memory_id: str, vector: List[float], metadata: Optional[Dict[str, str]] = None) -> None:
        ...

    async def search(self, vector: List[float], k: int, min_score: float = 0.0) -> List[SearchResult]:
        ...

    async def update(self, memory_id: str, vector: List[float]) -> None:
        ...

    async def delete(self, memory_id: str) -> None:
        ...

    async def close(self) -> None:
        ...


class InMemoryVectorIndex:
    """Cosine-similarity index held in process memory"""

    def __init__(self, dimension: int):
        self.dimension = dimension
        self.vectors: Dict[str, np.ndarray] = {}
        self.metadata: Dict[str, Dict[str, str]] = {}
        self._closed = False
        self._lock = asyncio.Lock()

    async def insert(self, memory_id: str, vector: List[float], metadata: Optional[Dict[str, str]] = None) -> None:
        """Add or overwrite the vector stored under an id"""

        array = self._as_array(vector)
        async with self._lock:
            self._check_open()
            self.vectors[memory_id] = array
            self.metadata[memory_id] = dict(metadata or {})

    async def search(self, vector: List[float], k: int, min_score: float = 0.0) -> List[SearchResult]:
        """Top-k ids ranked by cosine similarity"""

        query = self._as_array(vector)
        async with self._lock:
            self._check_open()
            if k <= 0 or not self.vectors:
                return []

            scored = [
                (memory_id, self._cosine_similarity(query, stored))
                for memory_id, stored in self.vectors.items()
            ]
            scored = [item for item in scored if item[1] >= min_score]
            scored.sort(key=lambda item: item[1], reverse=True)

            return [
                SearchResult(id=memory_id, score=score, metadata=dict(self.metadata[memory_id]))
                for memory_id, score in scored[:k]
            ]

    async def update(self, memory_id: str, vector: List[float]) -> None:
        array = self._as_array(vector)
        async with self._lock:
            self._check_open()
            if memory_id not in self.vectors:
                raise VectorIndexError(f"vector not found: {memory_id}")
            self.vectors[memory_id] = array

    async def delete(self, memory_id: str) -> None:
        """Remove an id; removing an unknown id is a no-op"""

        async with self._lock:
            self._check_open()
            self.vectors.pop(memory_id, None)
            self.metadata.pop(memory_id, None)

    async def close(self) -> None:
        async with self._lock:
            self._closed = True
            self.vectors.clear()
            self.metadata.clear()

    def __len__(self) -> int:
        return len(self.vectors)

    def _check_open(self) -> None:
        if self._closed:
            raise VectorIndexError("vector index is closed")

    def _as_array(self, vector: List[float]) -> np.ndarray:
        array = np.asarray(vector, dtype=np.float64)
        if array.shape != (self.dimension,):
            raise VectorIndexError(
                f"vector dimension mismatch: expected {self.dimension}, got {array.shape[0] if array.ndim else 0}"
            )
        return array

    @staticmethod
    def _cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
        norm = np.linalg.norm(a) * np.linalg.norm(b)
        if norm == 0:
            return 0.0
        return float(np.dot(a, b) / norm)
