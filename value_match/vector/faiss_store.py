"""
FAISS-backed profile index.
"""

from typing import List, Optional
import numpy as np

from .types import VectorRecord, QueryResult
from .index import IVectorStore


class FaissVectorStore(IVectorStore):
    """FAISS-backed implementation of IVectorStore.

    IndexFlatIP over unit vectors gives cosine similarity. FAISS flat indexes
    cannot remove rows cheaply, so replacing or deleting a record orphans its
    old slot. Orphaned slots are skipped at search time, and the index is
    rebuilt from the live vectors once orphans outnumber live records.
    """

    def __init__(self, dimension: int = 384):
        """
        Initialize FAISS vector store.

        Args:
            dimension: Dimension of the profile vectors
        """
        try:
            import faiss
        except ImportError:
            raise ImportError("FAISS not installed. Please install faiss-cpu package.")

        self.faiss = faiss
        self.dimension = dimension

        # Create a flat index (inner product metric for cosine similarity)
        self.index = faiss.IndexFlatIP(dimension)

        # Record IDs and their live vector slots
        self.id_to_vector_index = {}
        self.vector_id_map = {}  # Vector slot -> record ID (live slots only)
        self.live_vectors = {}  # Record ID -> normalized vector, used for compaction
        self.metadata = {}
        self.next_vector_index = 0

    def _prepare(self, record: VectorRecord) -> Optional[np.ndarray]:
        if record.vector is None or len(record.vector) == 0:
            return None

        if len(record.vector) != self.dimension:
            raise ValueError(f"Vector dimension {len(record.vector)} does not match expected dimension {self.dimension}")

        norm = np.linalg.norm(record.vector)
        if norm == 0:  # Handle zero vectors to prevent division by zero
            return None

        return np.array(np.asarray(record.vector) / norm, dtype=np.float32)

    def add(self, record: VectorRecord) -> None:
        """Add or replace a single vector record."""
        self.batch_add([record])

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the FAISS store."""
        vectors_to_add = []
        valid_records = []

        for record in records:
            self._orphan(record.id)
            vector = self._prepare(record)
            if vector is None:
                continue
            vectors_to_add.append(vector)
            valid_records.append(record)

        if not vectors_to_add:
            self._compact_if_needed()
            return

        batch_vectors = np.vstack(vectors_to_add).astype(np.float32)
        self.index.add(batch_vectors)

        for i, record in enumerate(valid_records):
            slot = self.next_vector_index + i
            # A later duplicate in the same batch supersedes the earlier slot
            previous = self.id_to_vector_index.get(record.id)
            if previous is not None:
                self.vector_id_map.pop(previous, None)
            self.id_to_vector_index[record.id] = slot
            self.vector_id_map[slot] = record.id
            self.live_vectors[record.id] = vectors_to_add[i]
            self.metadata[record.id] = record.metadata

        self.next_vector_index += len(vectors_to_add)
        self._compact_if_needed()

    def search(self, query_vector: np.ndarray, top_k: int = 5,
               threshold: Optional[float] = None) -> List[QueryResult]:
        """Search for similar vectors and return ranked results."""
        if not self.vector_id_map:
            return []

        norm = np.linalg.norm(query_vector)
        if norm == 0 or len(query_vector) != self.dimension:
            return []

        query_array = np.array(np.asarray(query_vector) / norm, dtype=np.float32).reshape(1, -1)

        # Over-fetch by the number of orphaned slots so live hits are not crowded out
        orphaned = self.index.ntotal - len(self.vector_id_map)
        k = min(top_k + orphaned, self.index.ntotal)
        scores, indices = self.index.search(query_array, k)

        query_results = []
        for score, vector_index in zip(scores[0], indices[0]):
            record_id = self.vector_id_map.get(int(vector_index))
            if record_id is None:
                continue
            if threshold is not None and float(score) < threshold:
                continue
            query_results.append(QueryResult(
                id=record_id,
                score=float(score),
                metadata=self.metadata.get(record_id, {})
            ))
            if len(query_results) >= top_k:
                break

        return query_results

    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID."""
        self._orphan(record_id)
        self._compact_if_needed()

    def _orphan(self, record_id: str) -> None:
        slot = self.id_to_vector_index.pop(record_id, None)
        if slot is not None:
            self.vector_id_map.pop(slot, None)
        self.live_vectors.pop(record_id, None)
        self.metadata.pop(record_id, None)

    def _compact_if_needed(self) -> None:
        """Rebuild the flat index from live vectors when orphans outnumber them."""
        orphaned = self.index.ntotal - len(self.vector_id_map)
        if orphaned <= len(self.vector_id_map):
            return

        record_ids = list(self.live_vectors)
        self.index = self.faiss.IndexFlatIP(self.dimension)
        if record_ids:
            self.index.add(np.vstack([self.live_vectors[r] for r in record_ids]).astype(np.float32))

        self.id_to_vector_index = {record_id: slot for slot, record_id in enumerate(record_ids)}
        self.vector_id_map = {slot: record_id for slot, record_id in enumerate(record_ids)}
        self.next_vector_index = len(record_ids)

    def clear(self) -> None:
        """Clear all records from the FAISS store."""
        self.index = self.faiss.IndexFlatIP(self.dimension)
        self.id_to_vector_index.clear()
        self.vector_id_map.clear()
        self.live_vectors.clear()
        self.metadata.clear()
        self.next_vector_index = 0

    def __len__(self) -> int:
        return len(self.vector_id_map)
