"""
Strict value types for the engine.
Rows coming back from storage are normalized into these before reaching engine code.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

import numpy as np

from .identity import Identity


@dataclass
class Post:
    content: str
    created_at: datetime
    user_id: Optional[str] = None
    temporary_token: Optional[str] = None
    nickname: str = ""
    embedding: Optional[np.ndarray] = None
    id: Optional[int] = None

    def __post_init__(self):
        # Attribution is a permanent user id XOR an anonymous token
        if bool(self.user_id) == bool(self.temporary_token):
            raise ValueError("post must be attributed to exactly one of user_id or temporary_token")

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None and len(self.embedding) > 0

    def reattributed(self, user_id: str) -> "Post":
        return replace(self, user_id=user_id, temporary_token=None)


@dataclass
class ValueProfile:
    user_id: str
    nickname: str
    content: str
    embedding: Optional[np.ndarray]
    updated_at: datetime


@dataclass
class HistoryEntry:
    """One prior post as seen by the decay aggregator."""
    embedding: object
    timestamp: datetime


@dataclass
class MatchCandidate:
    """Raw similarity hit, consumed immediately by the match resolver."""
    identity: Identity
    raw_score: float
    name: Optional[str] = None
    content: Optional[str] = None


@dataclass
class ResolvedMatch:
    identity: Identity
    score: float
    raw_score: float
    name: Optional[str]
    content: str


@dataclass
class Conversation:
    id: int
    user_a_id: str
    user_b_id: str
    created_at: datetime
