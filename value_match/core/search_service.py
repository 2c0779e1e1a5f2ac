"""
Similarity search over value profiles.
Queries the vector index, then joins hits back to the canonical profile rows.
"""

from typing import Iterable, List, Optional

import numpy as np

from .config import DEFAULT_SYSTEM_IDENTITY_ID
from .dao import IProfileStore
from .errors import UpstreamUnavailable
from .identity import Identity, identity_key, parse_identity
from .schema import MatchCandidate, ValueProfile
from ..util.logging import logger
from ..vector.index import IVectorStore
from ..vector.types import VectorRecord


class ProfileSearch:
    """search(vector, threshold, max_candidates, exclude_identity) -> [MatchCandidate]"""

    def __init__(self, vector_store: IVectorStore, store: IProfileStore,
                 system_identity_id: str = DEFAULT_SYSTEM_IDENTITY_ID):
        self.vector_store = vector_store
        self.store = store
        self.system_identity_id = system_identity_id

    def index_profile(self, profile: ValueProfile) -> None:
        """Upsert one profile's vector; profiles without a vector are removed from the index."""
        if profile.embedding is None:
            self.vector_store.delete(profile.user_id)
            return

        self.vector_store.add(VectorRecord(
            id=profile.user_id,
            vector=np.asarray(profile.embedding),
            metadata={"updated_at": profile.updated_at.isoformat()}
        ))
        logger.log_operation("index.upsert", "success", {"user_id": profile.user_id})

    def rebuild(self, profiles: Iterable[ValueProfile]) -> int:
        """Clear the index and load every profile that has a vector."""
        self.vector_store.clear()
        indexed = 0
        for profile in profiles:
            if profile.embedding is None:
                continue
            self.index_profile(profile)
            indexed += 1
        return indexed

    def search(self, vector: np.ndarray, threshold: float, max_candidates: int,
               exclude_identity: Optional[Identity] = None) -> List[MatchCandidate]:
        """
        Find profiles whose vector is at least `threshold` cosine-similar.

        Raises:
            UpstreamUnavailable: the vector index failed
        """
        exclude_key = identity_key(exclude_identity) if exclude_identity is not None else None

        try:
            # One extra so excluding the caller still leaves max_candidates
            hits = self.vector_store.search(np.asarray(vector), top_k=max_candidates + 1, threshold=threshold)
        except Exception as e:
            raise UpstreamUnavailable("similarity_search", e) from e

        candidates = []
        for hit in hits:
            if hit.id == exclude_key:
                continue

            profile = self.store.read_profile(hit.id)
            if profile is None:
                # Index is an overlay; a row missing from SQLite is stale
                logger.warning(f"Index entry {hit.id} has no stored profile, skipping")
                continue

            candidates.append(MatchCandidate(
                identity=parse_identity(hit.id, self.system_identity_id),
                raw_score=float(hit.score),
                name=profile.nickname,
                content=profile.content,
            ))

        return candidates[:max_candidates]
