"""
Profile service - the submit, login, match and conversation flows.

submit:  embed -> write post -> decay aggregate -> upsert profile -> search -> resolve
login:   reconcile token into identity -> re-derive profile from full history
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import numpy as np

from .config import EngineConfig, get_engine_config, get_embedding_provider, get_vector_store, DB_PATH
from .dao import IProfileStore, SQLiteProfileStore
from .decay import aggregate_profile_vector, history_from_posts, latest_post, refresh_vector
from .errors import UpstreamUnavailable
from .maintenance import rebuild_profile_index
from .identity import HumanIdentity, SystemIdentity, parse_identity
from .matching import resolve_matches
from .reconcile import IdentityReconciler, ReconciliationResult
from .schema import Conversation, Post, ResolvedMatch, ValueProfile
from .search_service import ProfileSearch
from ..util.logging import logger
from ..vector.embeddings import IEmbeddingProvider
from ..vector.ops import parse_vector


@dataclass
class SubmissionResult:
    post: Post
    vector: np.ndarray
    profile: Optional[ValueProfile] = None
    matches: List[ResolvedMatch] = field(default_factory=list)


class ProfileService:
    """Wires the engine components to storage, embedding and search collaborators."""

    def __init__(self, store: IProfileStore, embedder: IEmbeddingProvider,
                 search: ProfileSearch, config: Optional[EngineConfig] = None):
        self.store = store
        self.embedder = embedder
        self.search = search
        self.config = config or get_engine_config()
        self.reconciler = IdentityReconciler(store)

    def _human(self, user_id: str) -> HumanIdentity:
        identity = parse_identity(user_id, self.config.system_identity_id)
        if isinstance(identity, SystemIdentity):
            raise ValueError("the system identity has no value profile")
        return identity

    def _embed(self, text: str) -> np.ndarray:
        try:
            raw = self.embedder.embed_text(text)
        except Exception as e:
            logger.log_operation("embedding", "failed", {"error": str(e)}, level=logging.WARNING)
            raise UpstreamUnavailable("embedding", e) from e
        return parse_vector(raw, self.config.expected_dimension)

    def _match(self, vector: np.ndarray, acting: Optional[HumanIdentity]) -> List[ResolvedMatch]:
        candidates = self.search.search(
            vector,
            threshold=self.config.match_threshold,
            max_candidates=self.config.max_search_candidates,
            exclude_identity=acting,
        )
        return resolve_matches(candidates, acting, self.config)

    def submit_reflection(self, text: str, nickname: str = "", user_id: Optional[str] = None,
                          temporary_token: Optional[str] = None,
                          now: Optional[datetime] = None) -> SubmissionResult:
        """
        Record a reflection and return the submitter's matches.

        Exactly one of user_id / temporary_token must be given. Anonymous
        submissions are matched from their token's aggregate but never get a
        stored profile.

        Raises:
            UpstreamUnavailable: embedding service or similarity search failed
            DimensionMismatch / MalformedVector: the new embedding is unusable
        """
        if not text or not text.strip():
            raise ValueError("reflection text cannot be empty")
        if bool(user_id) == bool(temporary_token):
            raise ValueError("exactly one of user_id or temporary_token is required")

        now = now or datetime.now(timezone.utc)
        acting = self._human(user_id) if user_id else None
        post = Post(
            user_id=acting.id if acting else None,
            temporary_token=None if acting else temporary_token,
            content=text,
            nickname=nickname or "",
            created_at=now,
        )

        try:
            vector = self._embed(text)
        except UpstreamUnavailable:
            # Keep the reflection; reembed_posts can fill the vector in later
            self.store.write_post(post)
            raise

        # History is read before the write so the new post is counted once, at weight 1
        if acting is not None:
            prior = self.store.read_posts_by_identity(acting.id)
        else:
            prior = self.store.read_posts_by_temporary_token(temporary_token)

        post.embedding = vector
        post = self.store.write_post(post)

        history = history_from_posts(prior)
        aggregated = aggregate_profile_vector(vector, history, now, self.config)

        profile = None
        if acting is not None:
            existing = self.store.read_profile(acting.id)
            profile = ValueProfile(
                user_id=acting.id,
                nickname=nickname or (existing.nickname if existing else ""),
                content=text,
                embedding=aggregated,
                updated_at=now,
            )
            self.store.upsert_profile(profile)
            self.search.index_profile(profile)
            logger.log_profile_update(acting.id, len(prior), len(history) + 1)

        matches = self._match(aggregated, acting)
        return SubmissionResult(post=post, vector=aggregated, profile=profile, matches=matches)

    def refresh_profile(self, user_id: str, now: Optional[datetime] = None) -> Optional[ValueProfile]:
        """Re-derive a profile from the identity's full post history."""
        identity = self._human(user_id)
        posts = self.store.read_posts_by_identity(identity.id)
        existing = self.store.read_profile(identity.id)

        vector = refresh_vector(posts, self.config)
        if vector is None:
            return existing

        newest = latest_post(posts)
        profile = ValueProfile(
            user_id=identity.id,
            nickname=existing.nickname if existing else newest.nickname,
            content=newest.content,
            embedding=vector,
            updated_at=now or datetime.now(timezone.utc),
        )
        self.store.upsert_profile(profile)
        self.search.index_profile(profile)
        logger.log_profile_update(identity.id, len(posts), sum(1 for p in posts if p.has_embedding))
        return profile

    def login(self, temporary_token: str, user_id: str,
              now: Optional[datetime] = None) -> ReconciliationResult:
        """Reconcile anonymous posts into user_id, then refresh the permanent profile."""
        identity = self._human(user_id)
        result = self.reconciler.reconcile(temporary_token, identity, now=now)

        if not result.was_noop:
            refreshed = self.refresh_profile(identity.id, now=now)
            if refreshed is not None:
                result.profile = refreshed
            if result.profile is not None:
                self.search.index_profile(result.profile)
        return result

    def find_matches(self, user_id: str) -> List[ResolvedMatch]:
        """Matches for a stored profile; empty when the identity has no usable vector."""
        identity = self._human(user_id)
        profile = self.store.read_profile(identity.id)
        if profile is None or profile.embedding is None:
            return []
        return self._match(profile.embedding, identity)

    def start_conversation(self, user_id: str, partner_id: str) -> Conversation:
        """Find or create the private conversation between two identities.

        The counselor persona is a valid partner; a user cannot talk to themselves.
        """
        if not user_id or not partner_id:
            raise ValueError("both participants are required")
        if user_id == partner_id:
            raise ValueError("cannot start a conversation with yourself")
        return self.store.find_or_create_conversation(user_id, partner_id)


def create_profile_service(db_path: Optional[str] = None,
                           config: Optional[EngineConfig] = None) -> ProfileService:
    """Build a service from environment configuration and load the index from storage."""
    config = config or get_engine_config()
    store = SQLiteProfileStore(db_path or DB_PATH, expected_dimension=config.expected_dimension)
    embedder = get_embedding_provider()
    search = ProfileSearch(
        get_vector_store(config.expected_dimension or embedder.get_dimension()),
        store,
        config.system_identity_id,
    )
    rebuild_profile_index(store, search)
    return ProfileService(store, embedder, search, config)
