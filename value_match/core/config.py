"""
Engine configuration.
Environment-driven settings plus the explicit EngineConfig passed into every engine call.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .errors import ConfigurationError

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/value_match.db")

# Debug flag
DEBUG = os.getenv("DEBUG", "true").lower() == "true"

# Collaborator selection
VECTOR_PROVIDER = os.getenv("VECTOR_PROVIDER", "memory")  # memory|faiss
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-mpnet-base-v2")

# Well-known id of the scripted counselor persona
DEFAULT_SYSTEM_IDENTITY_ID = "00000000-0000-0000-0000-000000000000"

# Engine defaults
DEFAULT_HALF_LIFE_DAYS = 30.0
DEFAULT_SCORE_FLOOR = 0.5
DEFAULT_MAX_MATCH_RESULTS = 5
DEFAULT_MATCH_THRESHOLD = 0.1
DEFAULT_MAX_SEARCH_CANDIDATES = 20

# Version string
VERSION = "1.0.0"


@dataclass(frozen=True)
class EngineConfig:
    """Tunables for the aggregator, resolver and search call.

    score_floor is deployment specific: embedding services differ in their
    baseline similarity distribution, so it is always read from configuration.
    """
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS
    score_floor: float = DEFAULT_SCORE_FLOOR
    max_match_results: int = DEFAULT_MAX_MATCH_RESULTS
    match_threshold: float = DEFAULT_MATCH_THRESHOLD
    max_search_candidates: int = DEFAULT_MAX_SEARCH_CANDIDATES
    expected_dimension: Optional[int] = None
    system_identity_id: str = DEFAULT_SYSTEM_IDENTITY_ID

    def __post_init__(self):
        issues = _collect_issues(self)
        if issues:
            raise ConfigurationError("; ".join(issues))


def _collect_issues(config: EngineConfig) -> List[str]:
    issues = []

    if config.half_life_days <= 0:
        issues.append("HALF_LIFE_DAYS must be > 0")

    if not -1.0 <= config.score_floor < 1.0:
        issues.append("SCORE_FLOOR must be in [-1.0, 1.0)")

    if config.max_match_results < 1:
        issues.append("MAX_MATCH_RESULTS must be >= 1")

    if config.max_search_candidates < 1:
        issues.append("MAX_SEARCH_CANDIDATES must be >= 1")

    if not -1.0 <= config.match_threshold <= 1.0:
        issues.append("MATCH_THRESHOLD must be in [-1.0, 1.0]")

    if config.expected_dimension is not None and config.expected_dimension < 1:
        issues.append("EMBED_DIMENSION must be >= 1")

    if not config.system_identity_id or not config.system_identity_id.strip():
        issues.append("SYSTEM_IDENTITY_ID cannot be empty")

    return issues


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def get_engine_config() -> EngineConfig:
    """Build an EngineConfig from the current environment."""
    return EngineConfig(
        half_life_days=_env_float("HALF_LIFE_DAYS", DEFAULT_HALF_LIFE_DAYS),
        score_floor=_env_float("SCORE_FLOOR", DEFAULT_SCORE_FLOOR),
        max_match_results=_env_int("MAX_MATCH_RESULTS", DEFAULT_MAX_MATCH_RESULTS),
        match_threshold=_env_float("MATCH_THRESHOLD", DEFAULT_MATCH_THRESHOLD),
        max_search_candidates=_env_int("MAX_SEARCH_CANDIDATES", DEFAULT_MAX_SEARCH_CANDIDATES),
        expected_dimension=_env_int("EMBED_DIMENSION", None),
        system_identity_id=os.getenv("SYSTEM_IDENTITY_ID", DEFAULT_SYSTEM_IDENTITY_ID),
    )


def validate_engine_config() -> List[str]:
    """Validate engine configuration from the environment and return any issues."""
    try:
        get_engine_config()
    except ConfigurationError as e:
        return [str(e)]
    return []


def get_vector_store(dimension: Optional[int] = None):
    """Get configured vector store implementation."""
    if VECTOR_PROVIDER == "faiss":
        from ..vector.faiss_store import FaissVectorStore
        return FaissVectorStore(dimension=dimension or get_embedding_provider().get_dimension())

    from ..vector.index import SimpleInMemoryVectorStore
    return SimpleInMemoryVectorStore()


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    if EMBED_PROVIDER == "sentence":
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(EMBED_MODEL_NAME)

    from ..vector.embeddings import DeterministicHashEmbedding
    dimension = _env_int("EMBED_DIMENSION", None)
    return DeterministicHashEmbedding(dimension=dimension or 384)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def ensure_db_directory(db_path: Optional[str] = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)
