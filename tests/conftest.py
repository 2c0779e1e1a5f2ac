"""
Shared fixtures: temporary SQLite store, a table-driven embedder and a wired profile service.
"""

import pytest
import numpy as np
from datetime import datetime, timedelta, timezone

from value_match.core.config import EngineConfig
from value_match.core.dao import SQLiteProfileStore
from value_match.core.profile_service import ProfileService
from value_match.core.schema import Post
from value_match.core.search_service import ProfileSearch
from value_match.vector.embeddings import IEmbeddingProvider
from value_match.vector.index import SimpleInMemoryVectorStore

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def days(n: float) -> timedelta:
    return timedelta(days=n)


class TableEmbedding(IEmbeddingProvider):
    """Returns fixed vectors per text so tests control geometry exactly."""

    def __init__(self, table, dimension=2, fail_on=()):
        self.table = dict(table)
        self.dimension = dimension
        self.fail_on = set(fail_on)
        self.calls = []

    def embed_text(self, text):
        self.calls.append(text)
        if text in self.fail_on:
            raise ConnectionError("embedding service timed out")
        return list(self.table[text])

    def get_dimension(self):
        return self.dimension


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "value_match_test.db")


@pytest.fixture
def store(db_path):
    return SQLiteProfileStore(db_path)


@pytest.fixture
def engine_config():
    return EngineConfig(
        half_life_days=30.0,
        score_floor=0.5,
        max_match_results=5,
        match_threshold=-1.0,
        max_search_candidates=20,
    )


@pytest.fixture
def search(store):
    return ProfileSearch(SimpleInMemoryVectorStore(), store)


@pytest.fixture
def embedder():
    return TableEmbedding({
        "east": [1.0, 0.0],
        "north": [0.0, 1.0],
        "northeast": [1.0, 1.0],
        "mostly east": [0.9, 0.1],
        "mostly north": [0.1, 0.9],
        "west": [-1.0, 0.0],
    })


@pytest.fixture
def service(store, embedder, search, engine_config):
    return ProfileService(store, embedder, search, engine_config)


@pytest.fixture
def make_post():
    def _make_post(vector=None, when=T0, user_id=None, token=None, content="reflection", nickname=""):
        if user_id is None and token is None:
            user_id = "user-1"
        return Post(
            user_id=user_id,
            temporary_token=token,
            content=content,
            nickname=nickname,
            embedding=None if vector is None else np.asarray(vector, dtype=np.float64),
            created_at=when,
        )
    return _make_post
