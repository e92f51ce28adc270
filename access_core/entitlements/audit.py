"""
Access denial audit logging.

Provides:
- AccessDenialEvent: Structured event for a denied check
- AccessAuditLogger: Writes denials to the dedicated audit logger, with
  per-(tenant, user, error) aggregation for high-frequency repeats

Every denial carries: tenant_id, user_id, error_type and the developer
facing reason. Denials are written through the "access_core.audit" logger
so log shipping can route them separately.
"""

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Optional

from access_core.entitlements.models import AccessVerdict, Actor

logger = logging.getLogger(__name__)

# Dedicated audit logger for structured logging
audit_logger = logging.getLogger("access_core.audit")

DEFAULT_AGGREGATION_WINDOW_SECONDS = 60


@dataclass
class AccessDenialEvent:
    """Structured event for an access denial."""

    tenant_id: str
    error_type: str
    user_id: Optional[str] = None
    role: Optional[str] = None
    feature_name: Optional[str] = None
    required_role: Optional[str] = None
    required_permission: Optional[str] = None
    reason: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    extra_metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_verdict(
        cls,
        verdict: AccessVerdict,
        actor: Actor,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
    ) -> "AccessDenialEvent":
        error = verdict.error
        return cls(
            tenant_id=actor.tenant_id,
            user_id=actor.user_id,
            role=actor.role,
            error_type=error.type.value,
            feature_name=error.feature_name,
            required_role=error.required_role,
            required_permission=error.required_permission,
            reason=verdict.reason,
            endpoint=endpoint,
            method=method,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class AccessAuditLogger:
    """
    Audit logger for access denials.

    Usage:
        auditor = AccessAuditLogger()
        auditor.log_denial(AccessDenialEvent.from_verdict(verdict, actor))
    """

    def __init__(self, aggregation_window_seconds: int = DEFAULT_AGGREGATION_WINDOW_SECONDS):
        self._aggregation_window_seconds = aggregation_window_seconds
        self._recent_denials: Dict[str, float] = {}
        self._aggregation_lock = Lock()

    def log_denial(self, event: AccessDenialEvent) -> bool:
        """
        Write a denial event.

        Returns:
            False if the event was suppressed by aggregation
        """
        agg_key = f"{event.tenant_id}:{event.user_id}:{event.error_type}:{event.feature_name}"
        if not self._check_aggregation(agg_key):
            return False

        audit_logger.warning(
            "access_denied",
            extra={
                "event_type": "access_denied",
                "audit_data": event.to_dict(),
            },
        )

        logger.info(
            f"Access denied: {event.error_type} for tenant {event.tenant_id}",
            extra={
                "tenant_id": event.tenant_id,
                "user_id": event.user_id,
                "error_type": event.error_type,
                "reason": event.reason,
            },
        )
        return True

    def _check_aggregation(self, key: str) -> bool:
        """Return False if the same denial was logged within the window."""
        now = datetime.now(timezone.utc).timestamp()

        with self._aggregation_lock:
            cutoff = now - self._aggregation_window_seconds
            self._recent_denials = {
                k: v for k, v in self._recent_denials.items()
                if v > cutoff
            }

            if key in self._recent_denials:
                return False

            self._recent_denials[key] = now
            return True
