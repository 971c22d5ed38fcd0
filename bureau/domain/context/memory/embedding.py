from typing import List, Protocol
import hashlib
import re

import numpy as np


class EmbeddingFunction(Protocol):
    dimension: int

    def embed(self, text: str) -> List[float]:
        ...


class HashEmbeddingFunction:
    """Deterministic feature-hashing embedding.

    Each lowercased word token is hashed to a dimension and a sign; the
    summed vector is scaled to unit length. Identical text always yields
    the identical vector, texts sharing words land close together.
    """

    _token_pattern = re.compile(r"\w+")

    def __init__(self, dimension: int = 128):
        if dimension <= 0:
            raise ValueError("embedding dimension must be positive")
        self.dimension = dimension

    def embed(self, text: str) -> List[float]:
        vector = np.zeros(self.dimension, dtype=np.float64)

        for token in self._token_pattern.findall(text.lower()):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            value = int.from_bytes(digest, "big")
            index = value % self.dimension
            sign = 1.0 if (value >> 63) & 1 else -1.0
            vector[index] += sign

        norm = np.linalg.norm(vector)
        if norm == 0:
            # No word characters; fall back to hashing the raw text
            digest = hashlib.blake2b(text.encode("utf-8"), digest_size=8).digest()
            vector[int.from_bytes(digest, "big") % self.dimension] = 1.0
            return vector.tolist()

        return (vector / norm).tolist()
