"""
Tests for the SQLite store: attribution, row normalization and conversations.
"""

import sqlite3

import pytest
import numpy as np

from conftest import T0, days
from value_match.core.dao import SQLiteProfileStore
from value_match.core.db import get_db, health_check
from value_match.core.schema import Post, ValueProfile


def test_database_initialization(db_path):
    SQLiteProfileStore(db_path)
    assert health_check(db_path)


def test_write_and_read_post(store, make_post):
    written = store.write_post(make_post([0.6, 0.8], user_id="user-1", content="kindness", nickname="Kim"))

    assert written.id is not None
    posts = store.read_posts_by_identity("user-1")
    assert len(posts) == 1
    assert posts[0].id == written.id
    assert posts[0].content == "kindness"
    assert posts[0].nickname == "Kim"
    assert posts[0].created_at == T0
    np.testing.assert_allclose(posts[0].embedding, [0.6, 0.8])


def test_posts_come_back_in_time_order(store, make_post):
    store.write_post(make_post([1.0, 0.0], when=T0, content="third"))
    store.write_post(make_post([1.0, 0.0], when=T0 - days(2), content="first"))
    store.write_post(make_post([1.0, 0.0], when=T0 - days(1), content="second"))

    assert [p.content for p in store.read_posts_by_identity("user-1")] == ["first", "second", "third"]


def test_token_and_identity_posts_are_separate(store, make_post):
    store.write_post(make_post([1.0, 0.0], user_id="user-1"))
    store.write_post(make_post([1.0, 0.0], token="tok-1"))

    assert len(store.read_posts_by_identity("user-1")) == 1
    assert len(store.read_posts_by_temporary_token("tok-1")) == 1
    assert store.read_posts_by_temporary_token("tok-2") == []


def test_post_requires_exactly_one_attribution():
    with pytest.raises(ValueError):
        Post(content="x", created_at=T0)
    with pytest.raises(ValueError):
        Post(content="x", created_at=T0, user_id="user-1", temporary_token="tok-1")


def test_table_rejects_double_attribution(db_path, store):
    with get_db(db_path) as conn:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO posts (user_id, temporary_token, content, created_at) VALUES (?, ?, ?, ?)",
                ("user-1", "tok-1", "x", T0.isoformat())
            )


def test_post_without_embedding_round_trips(store, make_post):
    store.write_post(make_post(None))

    post = store.read_posts_by_identity("user-1")[0]

    assert post.embedding is None
    assert not post.has_embedding


def test_corrupt_embedding_reads_back_as_none(db_path, store, make_post):
    written = store.write_post(make_post([1.0, 0.0]))
    with get_db(db_path) as conn:
        conn.execute("UPDATE posts SET embedding = ? WHERE id = ?", ("{broken", written.id))
        conn.commit()

    assert store.read_posts_by_identity("user-1")[0].embedding is None


def test_wrong_dimension_reads_back_as_none(db_path, make_post):
    store = SQLiteProfileStore(db_path, expected_dimension=3)
    store.write_post(make_post([1.0, 0.0]))

    assert store.read_posts_by_identity("user-1")[0].embedding is None


def test_reattach_moves_every_token_post(store, make_post):
    for i in range(3):
        store.write_post(make_post([1.0, 0.0], token="tok-1", when=T0 - days(i)))
    store.write_post(make_post([1.0, 0.0], token="tok-other"))

    assert store.reattach_posts("tok-1", "user-5") == 3
    assert store.reattach_posts("tok-1", "user-5") == 0
    assert len(store.read_posts_by_identity("user-5")) == 3
    assert len(store.read_posts_by_temporary_token("tok-other")) == 1


def test_upsert_profile_replaces_row(store):
    store.upsert_profile(ValueProfile("user-1", "Kim", "first", np.array([1.0, 0.0]), T0))
    store.upsert_profile(ValueProfile("user-1", "Kim", "second", None, T0 + days(1)))

    profile = store.read_profile("user-1")

    assert profile.content == "second"
    assert profile.embedding is None
    assert profile.updated_at == T0 + days(1)
    assert store.get_profile_count() == 1


def test_read_missing_profile(store):
    assert store.read_profile("nobody") is None


def test_list_profiles_ordered_by_user(store):
    store.upsert_profile(ValueProfile("user-b", "", "x", np.array([1.0, 0.0]), T0))
    store.upsert_profile(ValueProfile("user-a", "", "y", np.array([0.0, 1.0]), T0))

    assert [p.user_id for p in store.list_profiles()] == ["user-a", "user-b"]


def test_update_post_embedding(store, make_post):
    written = store.write_post(make_post(None))

    store.update_post_embedding(written.id, np.array([0.0, 1.0]))

    np.testing.assert_allclose(store.list_posts()[0].embedding, [0.0, 1.0])


def test_conversation_is_shared_by_both_orderings(store):
    first = store.find_or_create_conversation("zoe", "adam")
    second = store.find_or_create_conversation("adam", "zoe")

    assert first.id == second.id
    assert (first.user_a_id, first.user_b_id) == ("adam", "zoe")


def test_distinct_pairs_get_distinct_conversations(store):
    assert store.find_or_create_conversation("a", "b").id != store.find_or_create_conversation("a", "c").id


def test_counts(store, make_post):
    store.write_post(make_post([1.0, 0.0]))
    store.write_post(make_post([1.0, 0.0], token="tok-1"))

    assert store.get_post_count() == 2
    assert store.get_profile_count() == 0


def test_list_post_identities_skips_token_posts(store, make_post):
    store.write_post(make_post([1.0, 0.0], user_id="user-2"))
    store.write_post(make_post([1.0, 0.0], user_id="user-1"))
    store.write_post(make_post(None, user_id="user-2"))
    store.write_post(make_post([1.0, 0.0], token="tok-1"))

    assert store.list_post_identities() == ["user-1", "user-2"]


def test_is_healthy(db_path, store):
    assert store.is_healthy()

    with get_db(db_path) as conn:
        conn.execute("DROP TABLE value_profiles")
        conn.commit()

    assert not store.is_healthy()
