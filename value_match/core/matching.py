"""
Match resolution: turns raw similarity hits into a bounded, ordered match list.
Pure transform over whatever the similarity search returned; no I/O.
"""

from typing import Dict, List, Optional, Sequence

from .config import EngineConfig
from .identity import Identity, SystemIdentity, identity_key
from .schema import MatchCandidate, ResolvedMatch
from ..util.logging import logger
from ..vector.ops import rescale


def _drop_reason(candidate: MatchCandidate, acting_identity: Optional[Identity]) -> Optional[str]:
    if isinstance(candidate.identity, SystemIdentity):
        return "system"
    if acting_identity is not None and identity_key(candidate.identity) == identity_key(acting_identity):
        return "self"
    if candidate.content is None or not str(candidate.content).strip():
        return "empty_content"
    return None


def resolve_matches(
    raw_candidates: Sequence[MatchCandidate],
    acting_identity: Optional[Identity],
    config: EngineConfig,
) -> List[ResolvedMatch]:
    """
    Filter, rescale and order raw candidates.

    Args:
        raw_candidates: Hits from the similarity search
        acting_identity: The user asking for matches, None for anonymous callers
        config: Supplies score_floor and max_match_results

    Returns:
        At most config.max_match_results matches sorted by descending score,
        ties broken by identity for deterministic output
    """
    dropped: Dict[str, int] = {}
    resolved = []

    for candidate in raw_candidates:
        reason = _drop_reason(candidate, acting_identity)
        if reason:
            dropped[reason] = dropped.get(reason, 0) + 1
            continue

        resolved.append(ResolvedMatch(
            identity=candidate.identity,
            score=rescale(candidate.raw_score, config.score_floor, 1.0),
            raw_score=float(candidate.raw_score),
            name=candidate.name,
            content=candidate.content,
        ))

    resolved.sort(key=lambda m: (-m.score, identity_key(m.identity)))
    resolved = resolved[:config.max_match_results]

    logger.log_match_resolution(
        acting_id=identity_key(acting_identity) if acting_identity is not None else "anonymous",
        candidates=len(raw_candidates),
        returned=len(resolved),
        dropped=dropped,
    )
    return resolved
