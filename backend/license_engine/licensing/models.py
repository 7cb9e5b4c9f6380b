"""
License engine value types.

Provides:
- StatusReason: machine-readable reason codes shared by evaluator, gate and push events
- EffectiveState: output of the state evaluator (derived, never persisted)
- LicenseSnapshot: detached, immutable copy of a License row
- AccessDecision: access gate verdict
- LicenseStatusView: read model for the admin status endpoint
- Notification: one addressed push message

All value objects are frozen: safe to share between the watcher thread and
request threads.
"""

import math
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from license_engine.models.base import ensure_utc
from license_engine.models.license import License, LicenseStatus, ManualStatus


class StatusReason(str, Enum):
    """Why a license has its effective status."""
    NONE = "none"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"
    MANUAL_SUSPEND = "manual_suspend"
    MANUAL_REACTIVATE = "manual_reactivate"


@dataclass(frozen=True)
class EffectiveState:
    """
    Status/reason computed fresh from inputs.

    limit_reached is orthogonal to status: a license can be ACTIVE and
    limit_reached at the same time.
    """
    status: LicenseStatus
    reason: StatusReason
    limit_reached: bool = False

    def key(self) -> tuple:
        """Fields compared for edge detection."""
        return (self.status, self.limit_reached, self.reason)

    def with_reason(self, reason: StatusReason) -> "EffectiveState":
        return replace(self, reason=reason)

    @property
    def is_active(self) -> bool:
        return self.status == LicenseStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": self.reason.value,
            "limit_reached": self.limit_reached,
        }


@dataclass(frozen=True)
class LicenseSnapshot:
    """
    Immutable copy of a License row, safe to use after its session closes.
    """
    tenant_id: str
    capacity: int
    usage_count: int
    expiry: datetime
    manual_status: ManualStatus
    stored_status: LicenseStatus
    college_name: Optional[str] = None

    @classmethod
    def from_model(cls, license: License) -> "LicenseSnapshot":
        return cls(
            tenant_id=license.tenant_id,
            capacity=license.capacity,
            usage_count=license.usage_count or 0,
            expiry=ensure_utc(license.expiry),
            manual_status=ManualStatus(license.manual_status),
            stored_status=LicenseStatus(license.stored_status),
            college_name=license.college_name,
        )

    def with_usage(self, usage_count: int) -> "LicenseSnapshot":
        return replace(self, usage_count=usage_count)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "college_name": self.college_name,
            "capacity": self.capacity,
            "usage_count": self.usage_count,
            "expiry": self.expiry.isoformat(),
            "manual_status": self.manual_status.value,
            "stored_status": self.stored_status.value,
        }


@dataclass(frozen=True)
class AccessDecision:
    """
    Result of an access gate check.

    reason is a StatusReason value so callers can render a specific message
    without string matching.
    """
    tenant_id: str
    allowed: bool
    reason: StatusReason
    status: LicenseStatus
    limit_reached: bool
    requires_capacity: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "allowed": self.allowed,
            "reason": self.reason.value,
            "status": self.status.value,
            "limit_reached": self.limit_reached,
            "requires_capacity": self.requires_capacity,
        }


@dataclass(frozen=True)
class LicenseStatusView:
    """Dashboard-ready license status, derived fresh on every request."""
    tenant_id: str
    college_name: Optional[str]
    status: LicenseStatus
    reason: StatusReason
    limit_reached: bool
    manual_status: ManualStatus
    stored_status: LicenseStatus
    usage_count: int
    capacity: int
    expiry: datetime
    days_until_expiry: int
    expiring_soon: bool
    limit_warning: bool
    can_access: bool

    @classmethod
    def build(
        cls,
        snapshot: LicenseSnapshot,
        state: EffectiveState,
        now: datetime,
        expiry_warning_days: int,
        limit_warning_ratio: float,
    ) -> "LicenseStatusView":
        days = math.ceil((snapshot.expiry - ensure_utc(now)).total_seconds() / 86400)
        return cls(
            tenant_id=snapshot.tenant_id,
            college_name=snapshot.college_name,
            status=state.status,
            reason=state.reason,
            limit_reached=state.limit_reached,
            manual_status=snapshot.manual_status,
            stored_status=snapshot.stored_status,
            usage_count=snapshot.usage_count,
            capacity=snapshot.capacity,
            expiry=snapshot.expiry,
            days_until_expiry=days,
            expiring_soon=0 < days <= expiry_warning_days,
            limit_warning=snapshot.usage_count >= snapshot.capacity * limit_warning_ratio,
            can_access=state.is_active,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("status", "reason", "manual_status", "stored_status"):
            data[key] = data[key].value
        data["expiry"] = self.expiry.isoformat()
        return data


@dataclass(frozen=True)
class Notification:
    """One push message addressed to one topic."""
    tenant_id: str
    event_type: str
    topic: str
    status: str
    reason: str
    payload: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_message(self) -> Dict[str, Any]:
        """Wire format published on the push channel."""
        return {"event": self.event_type, "data": self.payload}
