"""
Pure numeric helpers for embedding vectors.
"""

import json
from typing import Optional, Sequence

import numpy as np

from ..core.errors import DimensionMismatch, MalformedVector


def weighted_sum(vectors: Sequence[np.ndarray], weights: Sequence[float]) -> np.ndarray:
    """Elementwise sum of vectors scaled by weights.

    Equal weights summing to 1 recover the unweighted mean.
    """
    if len(vectors) != len(weights):
        raise ValueError(f"Got {len(vectors)} vectors but {len(weights)} weights")
    if not vectors:
        raise ValueError("weighted_sum requires at least one vector")

    dimension = len(vectors[0])
    total = np.zeros(dimension, dtype=np.float64)
    for vector, weight in zip(vectors, weights):
        if len(vector) != dimension:
            raise DimensionMismatch(dimension, len(vector), "weighted_sum")
        total += np.asarray(vector, dtype=np.float64) * float(weight)
    return total


def normalize(vector: np.ndarray) -> np.ndarray:
    """Scale to unit L2 norm. A zero-norm vector is returned unchanged."""
    array = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(array)
    if norm == 0:
        return array
    return array / norm


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def rescale(score: float, floor: float, ceiling: float = 1.0) -> float:
    """Map score linearly from [floor, ceiling] onto [0, 1], clamped at both ends."""
    if floor >= ceiling:
        raise ValueError(f"floor ({floor}) must be below ceiling ({ceiling})")
    return clamp((float(score) - floor) / (ceiling - floor))


def parse_vector(raw, expected_dimension: Optional[int] = None) -> np.ndarray:
    """Parse a stored embedding into a float vector.

    Accepts sequences, numpy arrays and text forms such as '[0.1, 0.2]'
    (JSON and pgvector both serialize that way).
    """
    if raw is None:
        raise MalformedVector("embedding is missing")

    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedVector(f"embedding text is not a vector literal: {e}")

    if isinstance(raw, (str, dict)) or np.isscalar(raw):
        raise MalformedVector(f"embedding has unsupported type {type(raw).__name__}")

    try:
        vector = np.asarray(raw, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise MalformedVector(f"embedding contains non-numeric values: {e}")

    if vector.ndim != 1 or vector.size == 0:
        raise MalformedVector(f"embedding must be a non-empty flat vector, got shape {vector.shape}")
    if not np.all(np.isfinite(vector)):
        raise MalformedVector("embedding contains NaN or infinite values")

    if expected_dimension is not None and vector.size != expected_dimension:
        raise DimensionMismatch(expected_dimension, vector.size)

    return vector


def serialize_vector(vector: Optional[np.ndarray]) -> Optional[str]:
    """Text form used by the SQLite store."""
    if vector is None:
        return None
    return json.dumps([float(v) for v in vector])
