"""
Identity reconciliation - folds anonymous (pre-login) posts into a permanent identity.

The reconciler implements an "existing-name-wins" policy for the profile it
upserts, so a login racing a profile recomputation converges on the same
display name regardless of write order. Reconciliation is idempotent: once the
token's posts have moved, a repeat call finds nothing and does nothing.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .dao import IProfileStore
from .decay import latest_post
from .errors import ReconciliationPartialFailure
from .identity import Identity, SystemIdentity, identity_key
from .schema import ValueProfile
from ..util.logging import logger
from ..vector.ops import normalize


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation call."""
    temporary_token: str
    user_id: str
    posts_reattached: int
    profile: Optional[ValueProfile]
    name_preserved: bool = False

    @property
    def was_noop(self) -> bool:
        return self.posts_reattached == 0


class IdentityReconciler:
    """
    Migrates posts from a temporary token to a permanent identity.

    Steps:
    - read the token's posts; none means a successful no-op
    - re-attach them all in one atomic store call
    - upsert the permanent profile from the most recent re-attached post,
      keeping an existing profile's display name
    """

    def __init__(self, store: IProfileStore):
        self.store = store

    def reconcile(self, temporary_token: str, permanent_identity: Identity,
                  now: Optional[datetime] = None) -> ReconciliationResult:
        """
        Run a one-time migration of temporary contributions.

        Args:
            temporary_token: Opaque token of the pre-authentication contributor
            permanent_identity: The just-authenticated user
            now: Timestamp recorded on the upserted profile

        Returns:
            ReconciliationResult; posts_reattached == 0 on a repeat call

        Raises:
            ReconciliationPartialFailure: re-attachment failed, nothing moved
        """
        if isinstance(permanent_identity, SystemIdentity):
            raise ValueError("the system identity cannot take over temporary contributions")
        if not temporary_token or not temporary_token.strip():
            raise ValueError("temporary token cannot be empty")

        user_id = identity_key(permanent_identity)
        now = now or datetime.now(timezone.utc)

        posts = self.store.read_posts_by_temporary_token(temporary_token)
        if not posts:
            logger.log_reconciliation(user_id, 0, status="noop")
            return ReconciliationResult(temporary_token, user_id, 0, None)

        try:
            moved = self.store.reattach_posts(temporary_token, user_id)
        except ReconciliationPartialFailure:
            logger.log_reconciliation(user_id, 0, status="failed", details={"pending_posts": len(posts)})
            raise
        except Exception as e:
            logger.log_reconciliation(user_id, 0, status="failed", details={"error": str(e)})
            raise ReconciliationPartialFailure(temporary_token, user_id, e) from e

        if moved == 0:
            # Another login moved them between our read and our write
            logger.log_reconciliation(user_id, 0, status="noop")
            return ReconciliationResult(temporary_token, user_id, 0, None)

        reattached = [post.reattributed(user_id) for post in posts]
        newest = latest_post(reattached)
        newest_with_vector = latest_post(reattached, require_embedding=True)

        existing = self.store.read_profile(user_id)
        name_preserved = existing is not None
        nickname = existing.nickname if existing is not None else newest.nickname

        if newest_with_vector is not None:
            embedding = normalize(newest_with_vector.embedding)
        elif existing is not None:
            embedding = existing.embedding
        else:
            embedding = None

        # Provisional: superseded by the next aggregator run over the full history
        profile = ValueProfile(
            user_id=user_id,
            nickname=nickname,
            content=newest.content,
            embedding=embedding,
            updated_at=now,
        )
        self.store.upsert_profile(profile)

        logger.log_reconciliation(user_id, moved, details={"name_preserved": name_preserved})
        return ReconciliationResult(temporary_token, user_id, moved, profile, name_preserved)
