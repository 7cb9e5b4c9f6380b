"""
License Expiry Warning Worker.

Finds licenses that expire within the warning window and pushes a
license.expiringSoon notice to the admins room and to the college's room.
Manually suspended licenses are skipped.

This is advance warning only. The expiry transition itself is detected and
announced by the in-process license watcher.

Run as: python -m license_engine.workers.license_expiry_job

Configuration (config/license_policy.yml, env overrides):
- LICENSE_EXPIRY_WARNING_DAYS: Warning window in days (default: 7)
- LICENSE_EXPIRY_JOB_INTERVAL: Seconds between cycles (default: 86400)
- REDIS_URL: Push channel (unset: messages stay in-process)
"""

import math
import signal
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from license_engine.config.license_policy import LicensePolicy, get_license_policy
from license_engine.database.session import get_session_factory
from license_engine.licensing.channel import PushChannel, create_push_channel
from license_engine.licensing.dispatcher import NotificationDispatcher
from license_engine.licensing.models import LicenseSnapshot
from license_engine.licensing.store import LicenseStore, MemberDirectory

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

_shutdown = False


def _handle_signal(signum, frame):
    global _shutdown
    logger.info("Shutdown signal received", extra={"signal": signum})
    _shutdown = True


@dataclass
class ExpiryWarningStats:
    """Track one warning cycle."""

    licenses_found: int = 0
    warnings_sent: int = 0
    errors: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        return {
            "licenses_found": self.licenses_found,
            "warnings_sent": self.warnings_sent,
            "errors": self.errors,
            "duration_seconds": round(duration, 2),
        }


def days_remaining(expiry: datetime, now: datetime) -> int:
    """Whole days left, rounded up."""
    return max(0, math.ceil((expiry - now).total_seconds() / 86400))


def run_cycle(
    session_factory: Callable[[], Session],
    channel: PushChannel,
    policy: LicensePolicy,
    now: Optional[datetime] = None,
) -> ExpiryWarningStats:
    """Run one warning pass."""
    stats = ExpiryWarningStats()
    now = now or datetime.now(timezone.utc)
    window_end = now + timedelta(days=policy.expiry_warning_days)

    def admin_lookup(tenant_id):
        lookup_session = session_factory()
        try:
            return MemberDirectory(lookup_session).admin_user_ids(tenant_id)
        finally:
            lookup_session.close()

    dispatcher = NotificationDispatcher(channel, admin_lookup)

    session = session_factory()
    try:
        licenses = LicenseStore(session).list_expiring(now, window_end)
        snapshots = [LicenseSnapshot.from_model(lic) for lic in licenses]
    except Exception:
        logger.error("Failed to list expiring licenses", exc_info=True)
        stats.errors += 1
        return stats
    finally:
        session.close()

    stats.licenses_found = len(snapshots)

    for snapshot in snapshots:
        remaining = days_remaining(snapshot.expiry, now)
        logger.warning("License expiring soon", extra={
            "tenant_id": snapshot.tenant_id,
            "college_name": snapshot.college_name,
            "expiry": snapshot.expiry.isoformat(),
            "days_remaining": remaining,
        })
        sent = dispatcher.publish_expiring_soon(snapshot, remaining)
        if sent:
            stats.warnings_sent += 1
        else:
            stats.errors += 1

    if stats.licenses_found or stats.errors:
        logger.info("License expiry warning cycle complete", extra=stats.to_dict())
    return stats


def main():
    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    policy = get_license_policy()
    session_factory = get_session_factory()
    channel = create_push_channel(topic_prefix=policy.topic_prefix)

    logger.info(
        "License expiry warning worker started",
        extra={
            "poll_interval": policy.expiry_job_interval_seconds,
            "warning_days": policy.expiry_warning_days,
        },
    )

    while not _shutdown:
        run_cycle(session_factory, channel, policy)
        # Sleep in 1-second increments for responsive shutdown
        for _ in range(policy.expiry_job_interval_seconds):
            if _shutdown:
                break
            time.sleep(1)

    channel.close()
    logger.info("License expiry warning worker stopped")


if __name__ == "__main__":
    main()
