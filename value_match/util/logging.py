"""
Structured logging for profile, matching, reconciliation and maintenance operations.
"""

import logging
from typing import Any, Dict, List

SENSITIVE_FIELDS = ['content', 'text', 'nickname', 'embedding', 'token', 'temporary_token']


class StructuredLogger:
    """Structured logger for value profile engine operations."""

    def __init__(self, name: str = "value_match"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {sanitize_payload(details)}"

        self.logger.log(level, message)

    def log_vector_skipped(self, reason: str, details: Dict[str, Any] = None):
        """Log a stored vector excluded from aggregation."""
        log_details = {"reason": reason}
        if details:
            log_details.update(details)

        self.log_operation("vector.skipped", "excluded", log_details, level=logging.WARNING)

    def log_profile_update(self, user_id: str, history_size: int, used_entries: int, status: str = "success"):
        """Log a value profile recomputation."""
        self.log_operation("profile.update", status, {
            "user_id": user_id,
            "history_size": history_size,
            "used_entries": used_entries,
        })

    def log_match_resolution(self, acting_id: str, candidates: int, returned: int, dropped: Dict[str, int] = None):
        """Log a match resolver run."""
        log_details = {"acting_id": acting_id, "candidates": candidates, "returned": returned}
        if dropped:
            log_details["dropped"] = dropped

        self.log_operation("match.resolve", "success", log_details)

    def log_reconciliation(self, user_id: str, posts_reattached: int, status: str = "success", details: Dict[str, Any] = None):
        """Log an identity reconciliation."""
        log_details = {"user_id": user_id, "posts_reattached": posts_reattached}
        if details:
            log_details.update(details)

        level = logging.ERROR if status == "failed" else logging.INFO
        self.log_operation("identity.reconcile", status, log_details, level=level)

    def log_maintenance(self, operation: str, processed: int, failed: int, status: str = "success"):
        """Log a maintenance pass."""
        self.log_operation(f"maintenance.{operation}", status, {"processed": processed, "failed": failed})

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Redact user text and truncate long values before they reach the log."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload


# Global logger instance
logger = StructuredLogger()
