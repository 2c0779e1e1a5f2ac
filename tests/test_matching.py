"""
Tests for match resolution: exclusions, rescaling and ordering.
"""

import random
from dataclasses import replace

import pytest

from value_match.core.identity import SYSTEM_IDENTITY, HumanIdentity, SystemIdentity
from value_match.core.matching import resolve_matches
from value_match.core.schema import MatchCandidate


def candidate(user_id, score, content="a reflection", name=None):
    return MatchCandidate(identity=HumanIdentity(user_id), raw_score=score, name=name or user_id, content=content)


def test_self_is_excluded_and_scores_rescaled(engine_config):
    raw = [candidate("A", 0.92), candidate("B", 0.55), candidate("self", 0.99)]

    matches = resolve_matches(raw, HumanIdentity("self"), engine_config)

    assert [m.identity.id for m in matches] == ["A", "B"]
    assert matches[0].score == pytest.approx(0.84)
    assert matches[1].score == pytest.approx(0.10)
    assert matches[0].raw_score == pytest.approx(0.92)


def test_system_identity_never_returned(engine_config):
    raw = [
        MatchCandidate(identity=SYSTEM_IDENTITY, raw_score=1.0, name="Counselor", content="hello"),
        candidate("A", 0.7),
    ]

    matches = resolve_matches(raw, HumanIdentity("self"), engine_config)

    assert [m.identity.id for m in matches] == ["A"]


def test_custom_system_identity_never_returned(engine_config):
    raw = [MatchCandidate(identity=SystemIdentity("counselor-7"), raw_score=0.9, content="hi")]
    assert resolve_matches(raw, None, engine_config) == []


@pytest.mark.parametrize("content", [None, "", "   "])
def test_candidates_without_content_are_dropped(engine_config, content):
    raw = [candidate("A", 0.9, content=content), candidate("B", 0.6)]

    matches = resolve_matches(raw, HumanIdentity("self"), engine_config)

    assert [m.identity.id for m in matches] == ["B"]


def test_result_is_truncated_to_max_results(engine_config):
    config = replace(engine_config, max_match_results=3)
    raw = [candidate(f"user-{i}", 0.5 + i * 0.05) for i in range(8)]

    matches = resolve_matches(raw, None, config)

    assert len(matches) == 3
    assert [m.identity.id for m in matches] == ["user-7", "user-6", "user-5"]


def test_ties_are_broken_by_identity(engine_config):
    raw = [candidate("carol", 0.8), candidate("alice", 0.8), candidate("bob", 0.8)]

    matches = resolve_matches(raw, None, engine_config)

    assert [m.identity.id for m in matches] == ["alice", "bob", "carol"]


def test_scores_below_floor_clamp_to_zero(engine_config):
    raw = [candidate("A", 0.2), candidate("B", -0.4)]

    matches = resolve_matches(raw, None, engine_config)

    assert all(m.score == 0.0 for m in matches)
    assert [m.identity.id for m in matches] == ["A", "B"]


def test_output_is_sorted_and_bounded_for_random_input(engine_config):
    rng = random.Random(1234)
    acting = HumanIdentity("user-3")

    for _ in range(50):
        raw = [candidate(f"user-{rng.randint(0, 9)}", rng.uniform(-1.0, 1.0)) for _ in range(rng.randint(0, 15))]
        if rng.random() < 0.5:
            raw.append(MatchCandidate(identity=SYSTEM_IDENTITY, raw_score=rng.uniform(-1, 1), content="x"))

        matches = resolve_matches(raw, acting, engine_config)

        assert len(matches) <= engine_config.max_match_results
        assert all(0.0 <= m.score <= 1.0 for m in matches)
        assert all(m.identity != acting for m in matches)
        assert not any(isinstance(m.identity, SystemIdentity) for m in matches)
        scores = [m.score for m in matches]
        assert scores == sorted(scores, reverse=True)


def test_anonymous_caller_keeps_every_human(engine_config):
    raw = [candidate("A", 0.9), candidate("B", 0.8)]
    assert len(resolve_matches(raw, None, engine_config)) == 2


def test_empty_input(engine_config):
    assert resolve_matches([], HumanIdentity("self"), engine_config) == []


def test_name_and_content_carried_through(engine_config):
    raw = [candidate("A", 0.75, content="I value honesty", name="Ann")]

    match = resolve_matches(raw, None, engine_config)[0]

    assert match.name == "Ann"
    assert match.content == "I value honesty"
    assert match.score == pytest.approx(0.5)
