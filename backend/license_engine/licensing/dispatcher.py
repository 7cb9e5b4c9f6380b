"""
Notification dispatcher: maps a license transition to push messages.

Every transition sends license.statusChanged to the admins room. The reason
then selects one event for its audience:

    expired            license.expired        admins + tenant:<id>
    limit_reached      license.limitReached   admins + user:<admin> per tenant admin
    manual_suspend     license.manualDisable  admins + tenant:<id>
    manual_reactivate  license.reactivated    admins + tenant:<id>

Publishing is best effort and at most once: a failed topic is logged and
the remaining topics are still attempted. Nothing is retried.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from license_engine.licensing.channel import (
    PushChannel,
    admins_topic,
    tenant_topic,
    user_topic,
)
from license_engine.licensing.models import (
    EffectiveState,
    LicenseSnapshot,
    Notification,
    StatusReason,
)

logger = logging.getLogger(__name__)

STATUS_CHANGED_EVENT = "license.statusChanged"
EXPIRING_SOON_EVENT = "license.expiringSoon"

# reason -> (event type, message for member-facing topics)
_REASON_EVENTS: Dict[StatusReason, tuple] = {
    StatusReason.EXPIRED: (
        "license.expired",
        "Your college license has expired. Simulations and quizzes are "
        "temporarily unavailable.",
    ),
    StatusReason.LIMIT_REACHED: (
        "license.limitReached",
        "Student limit reached. No new students can be added.",
    ),
    StatusReason.MANUAL_SUSPEND: (
        "license.manualDisable",
        "Your college license has been disabled. Please contact administration.",
    ),
    StatusReason.MANUAL_REACTIVATE: (
        "license.reactivated",
        "Your college license is now active. You can access simulations and quizzes.",
    ),
}


def event_for_reason(reason: StatusReason) -> Optional[str]:
    """Reason-specific event name, or None for reason 'none'."""
    entry = _REASON_EVENTS.get(reason)
    return entry[0] if entry else None


class NotificationDispatcher:
    """
    Turns (previous, current) state pairs into addressed notifications.

    Args:
        channel: push channel to publish on
        admin_lookup: tenant_id -> user ids of the tenant's college admins
    """

    def __init__(
        self,
        channel: PushChannel,
        admin_lookup: Callable[[str], List[str]],
    ):
        self.channel = channel
        self.admin_lookup = admin_lookup

    def build_payload(
        self,
        snapshot: LicenseSnapshot,
        previous: Optional[EffectiveState],
        current: EffectiveState,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "tenant_id": snapshot.tenant_id,
            "status": current.status.value,
            "previous_status": previous.status.value if previous else None,
            "reason": current.reason.value,
            "limit_reached": current.limit_reached,
            "capacity": snapshot.capacity,
            "usage_count": snapshot.usage_count,
            "expiry": snapshot.expiry.isoformat(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if actor_id is not None:
            payload["actor_id"] = actor_id
        return payload

    def dispatch(
        self,
        snapshot: LicenseSnapshot,
        previous: Optional[EffectiveState],
        current: EffectiveState,
        actor_id: Optional[str] = None,
    ) -> List[Notification]:
        """
        Publish the notifications for one transition.

        Returns:
            The notifications that were published successfully
        """
        payload = self.build_payload(snapshot, previous, current, actor_id)
        sent: List[Notification] = []

        self._publish(
            snapshot.tenant_id, STATUS_CHANGED_EVENT, admins_topic(),
            current, payload, sent,
        )

        reason_event = _REASON_EVENTS.get(current.reason)
        if reason_event is None:
            return sent

        event_type, message = reason_event
        self._publish(
            snapshot.tenant_id, event_type, admins_topic(),
            current, payload, sent,
        )

        member_payload = dict(payload, message=message)
        for topic in self._member_topics(snapshot.tenant_id, current.reason):
            self._publish(
                snapshot.tenant_id, event_type, topic,
                current, member_payload, sent,
            )

        logger.info(
            "License transition dispatched",
            extra={
                "tenant_id": snapshot.tenant_id,
                "event_type": event_type,
                "status": current.status.value,
                "reason": current.reason.value,
                "notifications": len(sent),
            },
        )
        return sent

    def publish_expiring_soon(
        self,
        snapshot: LicenseSnapshot,
        days_remaining: int,
    ) -> List[Notification]:
        """Advance warning for a license close to its expiry."""
        payload = {
            "tenant_id": snapshot.tenant_id,
            "college_name": snapshot.college_name,
            "expiry": snapshot.expiry.isoformat(),
            "days_remaining": days_remaining,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        member_payload = dict(
            payload,
            message=f"Your college license expires in {days_remaining} day(s).",
        )
        sent: List[Notification] = []
        self._publish_raw(
            snapshot.tenant_id, EXPIRING_SOON_EVENT, admins_topic(),
            "active", "expiring_soon", payload, sent,
        )
        self._publish_raw(
            snapshot.tenant_id, EXPIRING_SOON_EVENT, tenant_topic(snapshot.tenant_id),
            "active", "expiring_soon", member_payload, sent,
        )
        return sent

    def _member_topics(self, tenant_id: str, reason: StatusReason) -> List[str]:
        if reason != StatusReason.LIMIT_REACHED:
            return [tenant_topic(tenant_id)]

        try:
            admin_ids = self.admin_lookup(tenant_id)
        except Exception:
            logger.error(
                "Failed to look up tenant admins for limit notification",
                extra={"tenant_id": tenant_id},
                exc_info=True,
            )
            return []
        return [user_topic(admin_id) for admin_id in admin_ids]

    def _publish(
        self,
        tenant_id: str,
        event_type: str,
        topic: str,
        state: EffectiveState,
        payload: Dict[str, Any],
        sent: List[Notification],
    ) -> None:
        self._publish_raw(
            tenant_id, event_type, topic,
            state.status.value, state.reason.value, payload, sent,
        )

    def _publish_raw(
        self,
        tenant_id: str,
        event_type: str,
        topic: str,
        status: str,
        reason: str,
        payload: Dict[str, Any],
        sent: List[Notification],
    ) -> None:
        notification = Notification(
            tenant_id=tenant_id,
            event_type=event_type,
            topic=topic,
            status=status,
            reason=reason,
            payload=payload,
            timestamp=payload["timestamp"],
        )
        try:
            self.channel.publish(topic, notification.to_message())
        except Exception:
            logger.error(
                "Failed to publish license notification",
                extra={"tenant_id": tenant_id, "event_type": event_type, "topic": topic},
                exc_info=True,
            )
            return
        sent.append(notification)
