"""
HTTP surface over the profile service.
Request handling only; authentication and chat delivery live elsewhere.
"""

from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Optional

from .schemas import (
    ReflectionRequest,
    ReflectionResponse,
    MatchResponse,
    ReconcileRequest,
    ReconcileResponse,
    ProfileResponse,
    MatchListResponse,
    ConversationRequest,
    ConversationResponse,
    HealthResponse,
)
from ..core.config import VERSION, debug_enabled
from ..core.errors import ReconciliationPartialFailure, UpstreamUnavailable, ValueProfileError
from ..core.maintenance import rebuild_profile_index
from ..core.profile_service import ProfileService, create_profile_service
from ..core.schema import ResolvedMatch
from ..util.logging import logger

# Initialize the FastAPI application
app = FastAPI(
    title="Value Match API",
    version=VERSION,
    description="Value profile matching over time-decayed reflection embeddings",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)

# Add CORS middleware to allow frontend connections
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_service: Optional[ProfileService] = None


def get_service() -> ProfileService:
    """Process-wide service, built from environment configuration on first use."""
    global _service
    if _service is None:
        _service = create_profile_service()
    return _service


def _to_match_responses(matches: List[ResolvedMatch]) -> List[MatchResponse]:
    return [
        MatchResponse(
            user_id=m.identity.id,
            nickname=m.name,
            content=m.content,
            score=m.score,
            raw_score=m.raw_score,
        )
        for m in matches
    ]


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(service: ProfileService = Depends(get_service)):
    """Check system health."""
    db_health = service.store.is_healthy()

    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        post_count=service.store.get_post_count() if db_health else 0,
        profile_count=service.store.get_profile_count() if db_health else 0,
    )


@app.post("/reflections", response_model=ReflectionResponse)
def submit_reflection_endpoint(request: ReflectionRequest, service: ProfileService = Depends(get_service)):
    """Store a reflection and return matches. Upstream outages degrade to an empty match list."""
    try:
        result = service.submit_reflection(
            text=request.text,
            nickname=request.nickname,
            user_id=request.user_id,
            temporary_token=request.temporary_token,
        )
    except UpstreamUnavailable as e:
        logger.warning(f"Reflection accepted without matches: {e}")
        return ReflectionResponse(success=False, matches=[], degraded=True, error=e.service)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueProfileError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return ReflectionResponse(
        success=True,
        post_id=result.post.id,
        matches=_to_match_responses(result.matches),
    )


@app.post("/reconcile", response_model=ReconcileResponse)
def reconcile_endpoint(request: ReconcileRequest, service: ProfileService = Depends(get_service)):
    """Fold a temporary token's posts into a freshly authenticated identity. Safe to repeat."""
    try:
        result = service.login(request.temporary_token, request.user_id)
    except ReconciliationPartialFailure as e:
        raise HTTPException(status_code=503, detail=f"Reconciliation failed, retry: {e}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ReconcileResponse(
        success=True,
        user_id=result.user_id,
        posts_reattached=result.posts_reattached,
        name_preserved=result.name_preserved,
    )


@app.get("/profiles/{user_id}/matches", response_model=MatchListResponse)
def profile_matches_endpoint(user_id: str, service: ProfileService = Depends(get_service)):
    """Matches for a stored profile."""
    try:
        matches = service.find_matches(user_id)
    except UpstreamUnavailable as e:
        logger.warning(f"Match lookup degraded for {user_id}: {e}")
        matches = []
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return MatchListResponse(user_id=user_id, matches=_to_match_responses(matches))


@app.get("/profiles/{user_id}", response_model=ProfileResponse)
def get_profile_endpoint(user_id: str, service: ProfileService = Depends(get_service)):
    """Get a stored value profile."""
    profile = service.store.read_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")

    return ProfileResponse(
        user_id=profile.user_id,
        nickname=profile.nickname,
        content=profile.content,
        has_embedding=profile.embedding is not None,
        updated_at=profile.updated_at,
    )


@app.post("/conversations", response_model=ConversationResponse)
def start_conversation_endpoint(request: ConversationRequest, service: ProfileService = Depends(get_service)):
    """Find or create the conversation between two users."""
    try:
        conversation = service.start_conversation(request.user_id, request.partner_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ConversationResponse(
        conversation_id=conversation.id,
        user_a_id=conversation.user_a_id,
        user_b_id=conversation.user_b_id,
    )


@app.post("/admin/reindex_profiles")
def reindex_profiles_endpoint(service: ProfileService = Depends(get_service)):
    """Rebuild the profile vector index from stored profiles."""
    if not debug_enabled():
        raise HTTPException(status_code=403, detail="Admin endpoints require debug mode")

    report = rebuild_profile_index(service.store, service.search)
    return {
        "success": True,
        "message": f"Reindexed {report.processed} profiles",
    }
