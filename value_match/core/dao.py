"""
Storage boundary for posts, value profiles and conversations.

Rows come back from SQLite loosely typed (embeddings are JSON text); they are
normalized here into strict Post / ValueProfile values. Unparseable embeddings
become None and are logged, never passed through.
"""

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

import numpy as np

from .db import get_db, health_check, init_db
from .errors import DimensionMismatch, MalformedVector, ReconciliationPartialFailure
from .schema import Conversation, Post, ValueProfile
from ..util.logging import logger
from ..vector.ops import parse_vector, serialize_vector


class IProfileStore(ABC):
    """Abstract interface for the record store the engine reads and writes."""

    @abstractmethod
    def read_posts_by_identity(self, user_id: str) -> List[Post]:
        """All posts attributed to a permanent identity."""
        pass

    @abstractmethod
    def read_posts_by_temporary_token(self, token: str) -> List[Post]:
        """All posts still attributed to an anonymous token."""
        pass

    @abstractmethod
    def write_post(self, post: Post) -> Post:
        """Insert a post and return it with its storage id."""
        pass

    @abstractmethod
    def reattach_posts(self, token: str, user_id: str) -> int:
        """Atomically move every post from token to user_id; returns the count."""
        pass

    @abstractmethod
    def upsert_profile(self, profile: ValueProfile) -> None:
        pass

    @abstractmethod
    def read_profile(self, user_id: str) -> Optional[ValueProfile]:
        pass

    @abstractmethod
    def list_profiles(self) -> List[ValueProfile]:
        pass

    @abstractmethod
    def list_posts(self) -> List[Post]:
        pass

    @abstractmethod
    def list_post_identities(self) -> List[str]:
        """Distinct permanent identities that own at least one post."""
        pass

    @abstractmethod
    def update_post_embedding(self, post_id: int, embedding: Optional[np.ndarray]) -> None:
        pass

    @abstractmethod
    def find_or_create_conversation(self, user_id: str, partner_id: str) -> Conversation:
        pass

    @abstractmethod
    def is_healthy(self) -> bool:
        """True when the backing store is reachable and initialized."""
        pass

    @abstractmethod
    def get_post_count(self) -> int:
        pass

    @abstractmethod
    def get_profile_count(self) -> int:
        pass


def _to_text(value: datetime) -> str:
    # Stored as UTC with fixed precision so text order matches time order
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_text(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_stored_embedding(raw, expected_dimension: Optional[int], context: dict) -> Optional[np.ndarray]:
    if raw is None:
        return None
    try:
        return parse_vector(raw, expected_dimension)
    except (MalformedVector, DimensionMismatch) as e:
        logger.log_vector_skipped(type(e).__name__, dict(context, error=str(e)))
        return None


class SQLiteProfileStore(IProfileStore):
    """SQLite-backed implementation of IProfileStore."""

    POST_COLUMNS = "id, user_id, temporary_token, content, nickname, embedding, created_at"
    PROFILE_COLUMNS = "user_id, nickname, content, embedding, updated_at"

    def __init__(self, db_path: Optional[str] = None, expected_dimension: Optional[int] = None):
        self.db_path = db_path
        self.expected_dimension = expected_dimension
        init_db(db_path)

    def _row_to_post(self, row) -> Post:
        post_id, user_id, token, content, nickname, embedding, created_at = row
        return Post(
            id=post_id,
            user_id=user_id,
            temporary_token=token,
            content=content,
            nickname=nickname or "",
            embedding=_parse_stored_embedding(embedding, self.expected_dimension, {"post_id": post_id}),
            created_at=_from_text(created_at),
        )

    def _row_to_profile(self, row) -> ValueProfile:
        user_id, nickname, content, embedding, updated_at = row
        return ValueProfile(
            user_id=user_id,
            nickname=nickname or "",
            content=content or "",
            embedding=_parse_stored_embedding(embedding, self.expected_dimension, {"profile": user_id}),
            updated_at=_from_text(updated_at),
        )

    def _select_posts(self, where: str, params: tuple) -> List[Post]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {self.POST_COLUMNS} FROM posts {where} ORDER BY created_at, id",
                params
            )
            return [self._row_to_post(row) for row in cursor.fetchall()]

    def read_posts_by_identity(self, user_id: str) -> List[Post]:
        return self._select_posts("WHERE user_id = ?", (user_id,))

    def read_posts_by_temporary_token(self, token: str) -> List[Post]:
        return self._select_posts("WHERE temporary_token = ?", (token,))

    def list_posts(self) -> List[Post]:
        return self._select_posts("", ())

    def list_post_identities(self) -> List[str]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT DISTINCT user_id FROM posts WHERE user_id IS NOT NULL ORDER BY user_id")
            return [row[0] for row in cursor.fetchall()]

    def write_post(self, post: Post) -> Post:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO posts (user_id, temporary_token, content, nickname, embedding, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (post.user_id, post.temporary_token, post.content, post.nickname,
                 serialize_vector(post.embedding), _to_text(post.created_at))
            )
            conn.commit()
            post.id = cursor.lastrowid
        return post

    def reattach_posts(self, token: str, user_id: str) -> int:
        with get_db(self.db_path) as conn:
            try:
                cursor = conn.cursor()
                # Single statement inside one transaction: all rows move or none do
                cursor.execute("BEGIN IMMEDIATE")
                cursor.execute(
                    "UPDATE posts SET user_id = ?, temporary_token = NULL WHERE temporary_token = ?",
                    (user_id, token)
                )
                count = cursor.rowcount
                conn.commit()
                return count
            except sqlite3.Error as e:
                conn.rollback()
                raise ReconciliationPartialFailure(token, user_id, e) from e

    def upsert_profile(self, profile: ValueProfile) -> None:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO value_profiles (user_id, nickname, content, embedding, updated_at) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(user_id) DO UPDATE SET nickname = excluded.nickname, "
                "content = excluded.content, embedding = excluded.embedding, updated_at = excluded.updated_at",
                (profile.user_id, profile.nickname, profile.content,
                 serialize_vector(profile.embedding), _to_text(profile.updated_at))
            )
            conn.commit()

    def read_profile(self, user_id: str) -> Optional[ValueProfile]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {self.PROFILE_COLUMNS} FROM value_profiles WHERE user_id = ?",
                (user_id,)
            )
            row = cursor.fetchone()
            return self._row_to_profile(row) if row else None

    def list_profiles(self) -> List[ValueProfile]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {self.PROFILE_COLUMNS} FROM value_profiles ORDER BY user_id")
            return [self._row_to_profile(row) for row in cursor.fetchall()]

    def update_post_embedding(self, post_id: int, embedding: Optional[np.ndarray]) -> None:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE posts SET embedding = ? WHERE id = ?",
                (serialize_vector(embedding), post_id)
            )
            conn.commit()

    def find_or_create_conversation(self, user_id: str, partner_id: str) -> Conversation:
        user_a, user_b = sorted([user_id, partner_id])
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            # UNIQUE(user_a_id, user_b_id) makes concurrent creates collapse onto one row
            cursor.execute(
                "INSERT OR IGNORE INTO conversations (user_a_id, user_b_id, created_at) VALUES (?, ?, ?)",
                (user_a, user_b, _to_text(datetime.now(timezone.utc)))
            )
            conn.commit()
            cursor.execute(
                "SELECT id, user_a_id, user_b_id, created_at FROM conversations WHERE user_a_id = ? AND user_b_id = ?",
                (user_a, user_b)
            )
            conv_id, a, b, created_at = cursor.fetchone()
            return Conversation(id=conv_id, user_a_id=a, user_b_id=b, created_at=_from_text(created_at))

    def is_healthy(self) -> bool:
        return health_check(self.db_path)

    def get_post_count(self) -> int:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM posts")
            return cursor.fetchone()[0]

    def get_profile_count(self) -> int:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM value_profiles")
            return cursor.fetchone()[0]
