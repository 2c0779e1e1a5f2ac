"""
Maintenance routines: re-embedding stored posts, re-deriving profiles and
rebuilding the profile vector index from the canonical SQLite rows.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from .dao import IProfileStore
from .errors import DimensionMismatch, MalformedVector, ValueProfileError
from .identity import is_system, parse_identity
from .search_service import ProfileSearch
from ..util.logging import logger
from ..vector.embeddings import IEmbeddingProvider
from ..vector.ops import parse_vector


@dataclass
class MaintenanceReport:
    """Maintenance operation report."""
    operation: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    processed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        data = {
            "operation": self.operation,
            "started_at": self.started_at.isoformat(),
            "processed": self.processed,
            "failed": self.failed,
            "errors": self.errors,
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data

    def finish(self) -> "MaintenanceReport":
        self.completed_at = datetime.now(timezone.utc)
        logger.log_maintenance(
            self.operation, self.processed, self.failed,
            status="success" if not self.failed else "partial"
        )
        return self


def reembed_posts(store: IProfileStore, embedder: IEmbeddingProvider,
                  expected_dimension: Optional[int] = None) -> MaintenanceReport:
    """
    Re-embed every stored post, e.g. after switching embedding model.

    A post that fails to embed keeps its old vector and is recorded in the
    report; processing continues with the next post.
    """
    report = MaintenanceReport(operation="reembed_posts", started_at=datetime.now(timezone.utc))

    for post in store.list_posts():
        try:
            vector = parse_vector(embedder.embed_text(post.content), expected_dimension)
            store.update_post_embedding(post.id, vector)
            report.processed += 1
        except (MalformedVector, DimensionMismatch) as e:
            report.failed += 1
            report.errors.append(f"post {post.id}: {e}")
        except Exception as e:
            # Upstream failure on one post must not stop the pass
            report.failed += 1
            report.errors.append(f"post {post.id}: embedding failed: {e}")

    return report.finish()


def refresh_all_profiles(service) -> MaintenanceReport:
    """
    Re-derive the profile of every identity that has a profile or owns posts.

    Identities whose posts only gained vectors through reembed_posts get
    their first profile here. The system identity is skipped.
    """
    report = MaintenanceReport(operation="refresh_profiles", started_at=datetime.now(timezone.utc))

    user_ids = {profile.user_id for profile in service.store.list_profiles()}
    user_ids.update(service.store.list_post_identities())

    for user_id in sorted(user_ids):
        if is_system(parse_identity(user_id, service.config.system_identity_id)):
            continue
        try:
            service.refresh_profile(user_id)
            report.processed += 1
        except (ValueProfileError, ValueError) as e:
            report.failed += 1
            report.errors.append(f"profile {user_id}: {e}")

    return report.finish()


def rebuild_profile_index(store: IProfileStore, search: ProfileSearch) -> MaintenanceReport:
    """Reload the vector index from the canonical profile table."""
    report = MaintenanceReport(operation="rebuild_index", started_at=datetime.now(timezone.utc))
    report.processed = search.rebuild(store.list_profiles())
    return report.finish()
