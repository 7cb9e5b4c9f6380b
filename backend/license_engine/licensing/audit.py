"""
License audit logging.

Every access gate denial is written to the dedicated "licensing.audit"
logger as a structured AccessDenialEvent. Repeated denials for the same
tenant and reason inside the aggregation window are counted, not re-logged.
"""

import logging
import time
import uuid
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

audit_logger = logging.getLogger("licensing.audit")

DEFAULT_AGGREGATION_WINDOW_SECONDS = 60


@dataclass
class AccessDenialEvent:
    """One denied access check."""

    tenant_id: str
    reason: str
    status: str
    limit_reached: bool
    requires_capacity: bool
    user_id: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    suppressed_since_last: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class LicenseAuditLogger:
    """
    Writes access denials to the audit log.

    Usage:
        audit = LicenseAuditLogger()
        audit.log_denial(AccessDenialEvent(
            tenant_id="college_1",
            reason="expired",
            status="expired",
            limit_reached=False,
            requires_capacity=False,
        ))
    """

    def __init__(self, aggregation_window_seconds: int = DEFAULT_AGGREGATION_WINDOW_SECONDS):
        self._window = aggregation_window_seconds
        self._recent: Dict[Tuple[str, str], Tuple[float, int]] = {}
        self._lock = Lock()

    def log_denial(self, event: AccessDenialEvent) -> bool:
        """
        Log a denial. Returns False when it was folded into an earlier entry.
        """
        suppressed = self._check_aggregation((event.tenant_id, event.reason))
        if suppressed is None:
            return False

        event.suppressed_since_last = suppressed
        audit_logger.warning(
            "license_access_denied",
            extra={
                "event_type": "license_access_denied",
                "tenant_id": event.tenant_id,
                "reason": event.reason,
                "audit_data": event.to_dict(),
            },
        )
        return True

    def _check_aggregation(self, key: Tuple[str, str]) -> Optional[int]:
        """
        Returns the number of suppressed denials to report with this event,
        or None when this event falls inside the current window.
        """
        now = time.monotonic()
        with self._lock:
            entry = self._recent.get(key)
            if entry is None or self._window <= 0 or now - entry[0] >= self._window:
                suppressed = entry[1] if entry else 0
                self._recent[key] = (now, 0)
                return suppressed
            self._recent[key] = (entry[0], entry[1] + 1)
            return None

    def reset(self) -> None:
        with self._lock:
            self._recent.clear()
