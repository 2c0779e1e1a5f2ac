"""
Time-decayed aggregation of a user's posts into one representative vector.

Each prior post contributes with weight exp(-lambda * age_days), where
lambda = ln(2) / half_life_days, so a post's influence halves every half-life.
The freshly submitted post always participates with weight 1.0.
"""

import math
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import numpy as np

from .config import EngineConfig
from .errors import DimensionMismatch, MalformedVector
from .schema import HistoryEntry, Post
from ..util.logging import logger
from ..vector.ops import normalize, parse_vector, weighted_sum

SECONDS_PER_DAY = 86400.0


def decay_lambda(half_life_days: float) -> float:
    return math.log(2) / half_life_days


def decay_weight(age_days: float, half_life_days: float) -> float:
    """Weight of a contribution that is age_days old. Future timestamps count as age 0."""
    return math.exp(-decay_lambda(half_life_days) * max(age_days, 0.0))


def age_in_days(timestamp: datetime, now: datetime) -> float:
    return (_as_utc(now) - _as_utc(timestamp)).total_seconds() / SECONDS_PER_DAY


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are treated as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def aggregate_profile_vector(
    new_embedding,
    history: Sequence[HistoryEntry],
    now: datetime,
    config: EngineConfig,
) -> np.ndarray:
    """
    Produce the normalized representative vector for a user.

    Args:
        new_embedding: Vector of the post just submitted
        history: Prior posts of the same user, any order, may be empty
        now: Reference time for ages
        config: Engine configuration (half-life, expected dimension)

    Returns:
        Unit-length vector, or the zero vector unchanged if everything cancels out

    Raises:
        MalformedVector: new_embedding cannot be parsed
        DimensionMismatch: new_embedding disagrees with config.expected_dimension
    """
    fresh = parse_vector(new_embedding, config.expected_dimension)

    if not history:
        return normalize(fresh)

    dimension = fresh.size
    vectors: List[np.ndarray] = [fresh]
    weights: List[float] = [1.0]

    for position, entry in enumerate(history):
        try:
            vector = parse_vector(entry.embedding, dimension)
        except (MalformedVector, DimensionMismatch) as e:
            logger.log_vector_skipped(type(e).__name__, {"position": position, "error": str(e)})
            continue

        vectors.append(vector)
        weights.append(decay_weight(age_in_days(entry.timestamp, now), config.half_life_days))

    total_weight = sum(weights)
    if total_weight <= 0:
        return normalize(fresh)

    mean = weighted_sum(vectors, weights) / total_weight
    return normalize(mean)


def history_from_posts(posts: Sequence[Post]) -> List[HistoryEntry]:
    """History entries for posts that carry an embedding."""
    return [
        HistoryEntry(embedding=post.embedding, timestamp=post.created_at)
        for post in posts
        if post.has_embedding
    ]


def latest_post(posts: Sequence[Post], require_embedding: bool = False) -> Optional[Post]:
    """Most recent post by created_at; ties go to the higher post id."""
    candidates = [p for p in posts if p.has_embedding] if require_embedding else list(posts)
    if not candidates:
        return None
    return max(candidates, key=lambda p: (_as_utc(p.created_at), p.id if p.id is not None else -1))


def refresh_vector(posts: Sequence[Post], config: EngineConfig) -> Optional[np.ndarray]:
    """
    Re-derive a profile vector from a full post list.

    The latest post with a usable embedding plays the role of the new post and
    its timestamp is the reference time, so the result equals what the
    aggregator produced when that post was submitted. Returns None when no
    post has a usable embedding.
    """
    usable = []
    for post in posts:
        if not post.has_embedding:
            continue
        try:
            parse_vector(post.embedding, config.expected_dimension)
        except (MalformedVector, DimensionMismatch) as e:
            logger.log_vector_skipped(type(e).__name__, {"post_id": post.id, "error": str(e)})
            continue
        usable.append(post)

    anchor = latest_post(usable)
    if anchor is None:
        return None

    history = [
        HistoryEntry(embedding=post.embedding, timestamp=post.created_at)
        for post in usable
        if post is not anchor
    ]
    return aggregate_profile_vector(anchor.embedding, history, anchor.created_at, config)
