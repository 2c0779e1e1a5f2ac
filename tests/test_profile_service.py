"""
End-to-end flows through ProfileService: submit, login, match and conversations.
"""

import logging

import pytest
import numpy as np

from conftest import T0, TableEmbedding, days
from value_match.core.config import DEFAULT_SYSTEM_IDENTITY_ID
from value_match.core.errors import UpstreamUnavailable
from value_match.core.profile_service import ProfileService, create_profile_service
from value_match.core.schema import ValueProfile


def test_first_submission_creates_profile(service, store):
    """A first reflection stores the post and a unit-length profile."""
    result = service.submit_reflection("east", nickname="Eve", user_id="user-1", now=T0)

    assert result.post.id is not None
    assert result.matches == []
    np.testing.assert_allclose(result.vector, [1.0, 0.0])

    profile = store.read_profile("user-1")
    assert profile.nickname == "Eve"
    assert profile.content == "east"
    np.testing.assert_allclose(profile.embedding, [1.0, 0.0])
    assert len(service.search.vector_store) == 1


def test_profile_blends_history_with_decay(service, store):
    service.submit_reflection("east", user_id="user-1", now=T0 - days(60))
    result = service.submit_reflection("north", user_id="user-1", now=T0)

    np.testing.assert_allclose(result.vector, [0.2425, 0.9701], atol=1e-3)
    np.testing.assert_allclose(store.read_profile("user-1").embedding, result.vector)
    assert len(store.read_posts_by_identity("user-1")) == 2


def test_later_submission_keeps_nickname_when_blank(service, store):
    service.submit_reflection("east", nickname="Eve", user_id="user-1", now=T0)
    service.submit_reflection("north", user_id="user-1", now=T0 + days(1))

    assert store.read_profile("user-1").nickname == "Eve"


def test_submission_matches_other_users_but_not_self(service):
    """Test that matches exclude the submitter and carry rescaled scores."""
    service.submit_reflection("east", nickname="Eve", user_id="user-1", now=T0)
    service.submit_reflection("north", nickname="Nat", user_id="user-2", now=T0)

    result = service.submit_reflection("mostly east", nickname="Max", user_id="user-3", now=T0)

    ids = [m.identity.id for m in result.matches]
    assert ids[0] == "user-1"
    assert "user-3" not in ids
    top = result.matches[0]
    assert top.name == "Eve"
    raw = 0.9 / np.hypot(0.9, 0.1)
    assert top.raw_score == pytest.approx(raw)
    assert top.score == pytest.approx((raw - 0.5) / 0.5)


def test_system_profile_never_matched(service, store):
    counselor = ValueProfile(DEFAULT_SYSTEM_IDENTITY_ID, "Counselor", "How are you?", np.array([1.0, 0.0]), T0)
    store.upsert_profile(counselor)
    service.search.index_profile(counselor)

    result = service.submit_reflection("east", user_id="user-1", now=T0)

    assert result.matches == []


def test_anonymous_submission_matches_without_profile(service, store):
    """Anonymous reflections are matched but never stored as a profile."""
    service.submit_reflection("east", nickname="Eve", user_id="user-1", now=T0)

    result = service.submit_reflection("mostly east", nickname="Guest", temporary_token="tok-1", now=T0)

    assert result.profile is None
    assert [m.identity.id for m in result.matches] == ["user-1"]
    assert store.read_profile("tok-1") is None
    assert len(store.read_posts_by_temporary_token("tok-1")) == 1


def test_embedding_outage_keeps_post_and_raises(store, search, engine_config):
    """An embedding failure stores the reflection without a vector and reports upstream."""
    embedder = TableEmbedding({"east": [1.0, 0.0]}, fail_on={"east"})
    service = ProfileService(store, embedder, search, engine_config)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        service.submit_reflection("east", user_id="user-1", now=T0)

    assert exc_info.value.service == "embedding"
    posts = store.read_posts_by_identity("user-1")
    assert len(posts) == 1
    assert posts[0].embedding is None
    assert store.read_profile("user-1") is None


def test_embedding_outage_logged_as_warning(store, search, engine_config, caplog):
    service = ProfileService(store, TableEmbedding({}, fail_on={"east"}), search, engine_config)

    with caplog.at_level(logging.INFO, logger="value_match"):
        with pytest.raises(UpstreamUnavailable):
            service.submit_reflection("east", user_id="user-1", now=T0)

    outages = [r for r in caplog.records if "Operation: embedding, Status: failed" in r.getMessage()]
    assert len(outages) == 1
    assert outages[0].levelno == logging.WARNING


@pytest.mark.parametrize("kwargs", [
    {"text": "east"},
    {"text": "east", "user_id": "user-1", "temporary_token": "tok-1"},
    {"text": "   ", "user_id": "user-1"},
    {"text": "east", "user_id": DEFAULT_SYSTEM_IDENTITY_ID},
])
def test_invalid_submissions_rejected(service, kwargs):
    with pytest.raises(ValueError):
        service.submit_reflection(**kwargs)


def test_login_reattaches_and_refreshes_from_full_history(service, store):
    """Logging in folds token posts into the user and recomputes the profile."""
    service.submit_reflection("east", nickname="Early", temporary_token="tok-1", now=T0 - days(60))
    service.submit_reflection("north", nickname="Later", temporary_token="tok-1", now=T0)

    result = service.login("tok-1", "user-7", now=T0 + days(1))

    assert result.posts_reattached == 2
    assert not result.name_preserved
    assert result.profile.nickname == "Later"
    np.testing.assert_allclose(result.profile.embedding, [0.2425, 0.9701], atol=1e-3)
    assert store.read_posts_by_temporary_token("tok-1") == []

    stored = store.read_profile("user-7")
    np.testing.assert_allclose(stored.embedding, result.profile.embedding)
    assert [r.id for r in service.search.vector_store.search(np.array([0.0, 1.0]))] == ["user-7"]


def test_login_merges_with_existing_history_and_keeps_name(service, store):
    service.submit_reflection("east", nickname="Veteran", user_id="user-7", now=T0 - days(30))
    service.submit_reflection("north", nickname="Guest", temporary_token="tok-1", now=T0)

    result = service.login("tok-1", "user-7", now=T0)

    assert result.name_preserved
    assert store.read_profile("user-7").nickname == "Veteran"
    assert len(store.read_posts_by_identity("user-7")) == 2
    expected = np.array([0.5, 1.0]) / np.linalg.norm([0.5, 1.0])
    np.testing.assert_allclose(store.read_profile("user-7").embedding, expected)


def test_repeated_login_is_noop(service, store):
    service.submit_reflection("east", temporary_token="tok-1", now=T0)
    service.login("tok-1", "user-7", now=T0)
    before = store.read_profile("user-7")

    again = service.login("tok-1", "user-7", now=T0 + days(5))

    assert again.was_noop
    assert store.read_profile("user-7").updated_at == before.updated_at


def test_login_as_system_identity_rejected(service):
    with pytest.raises(ValueError):
        service.login("tok-1", DEFAULT_SYSTEM_IDENTITY_ID)


def test_refresh_profile_without_posts_returns_existing(service):
    assert service.refresh_profile("user-9") is None


def test_find_matches_for_stored_profile(service):
    service.submit_reflection("east", user_id="user-1", now=T0)
    service.submit_reflection("mostly east", user_id="user-2", now=T0)

    matches = service.find_matches("user-1")

    assert [m.identity.id for m in matches] == ["user-2"]
    assert service.find_matches("unknown") == []


def test_start_conversation(service):
    """Both orderings of a pair share one conversation; the counselor is a valid partner."""
    first = service.start_conversation("user-2", "user-1")
    second = service.start_conversation("user-1", "user-2")
    counselor = service.start_conversation("user-1", DEFAULT_SYSTEM_IDENTITY_ID)

    assert first.id == second.id
    assert counselor.id != first.id

    with pytest.raises(ValueError):
        service.start_conversation("user-1", "user-1")
    with pytest.raises(ValueError):
        service.start_conversation("user-1", "")


def test_create_profile_service_loads_index(db_path, store, engine_config):
    store.upsert_profile(ValueProfile("user-1", "Eve", "east", np.ones(384) / np.sqrt(384), T0))

    service = create_profile_service(db_path=db_path, config=engine_config)

    assert len(service.search.vector_store) == 1
    assert service.store.db_path == db_path
