"""
Vector index interface and the in-memory cosine implementation.
Non-canonical overlay: the SQLite profile table is the source of truth.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
import numpy as np

from .types import VectorRecord, QueryResult


class IVectorStore(ABC):
    """Abstract interface for vector storage operations."""

    @abstractmethod
    def add(self, record: VectorRecord) -> None:
        """Add or replace a single vector record."""
        pass

    @abstractmethod
    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        pass

    @abstractmethod
    def search(self, query_vector: np.ndarray, top_k: int = 5,
               threshold: Optional[float] = None) -> List[QueryResult]:
        """Return up to top_k records by descending cosine similarity, at or above threshold."""
        pass

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class SimpleInMemoryVectorStore(IVectorStore):
    """Simple in-memory implementation of IVectorStore using cosine similarity."""

    def __init__(self):
        self._vectors = {}  # record_id -> VectorRecord
        self._index = {}    # record_id -> normalized_vector (for fast lookup)

    def add(self, record: VectorRecord) -> None:
        """Add or replace a single vector record."""
        self.delete(record.id)

        if record.vector is None or len(record.vector) == 0:
            return

        # Zero vectors have no direction and can never match
        vector = np.asarray(record.vector, dtype=np.float64)
        norm = np.linalg.norm(vector)
        if norm == 0:
            return

        self._vectors[record.id] = record
        self._index[record.id] = vector / norm

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        for record in records:
            self.add(record)

    def search(self, query_vector: np.ndarray, top_k: int = 5,
               threshold: Optional[float] = None) -> List[QueryResult]:
        """Search for similar vectors and return ranked results."""
        if not self._index:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        norm = np.linalg.norm(query)
        if norm == 0:
            return []
        normalized_query = query / norm

        similarities = {}
        for record_id, stored_vector in self._index.items():
            if stored_vector.shape != normalized_query.shape:
                continue
            similarity = float(np.dot(normalized_query, stored_vector))
            if threshold is not None and similarity < threshold:
                continue
            similarities[record_id] = similarity

        # Descending similarity, id as tie-break
        sorted_results = sorted(similarities.items(), key=lambda x: (-x[1], x[0]))

        return [
            QueryResult(id=record_id, score=score, metadata=self._vectors[record_id].metadata)
            for record_id, score in sorted_results[:top_k]
        ]

    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID."""
        self._vectors.pop(record_id, None)
        self._index.pop(record_id, None)

    def clear(self) -> None:
        """Clear all records from the store."""
        self._vectors.clear()
        self._index.clear()

    def __len__(self) -> int:
        return len(self._index)
