"""
Manual license overrides issued by super-admins.

disable() and reactivate() run under the tenant lock with their own
session, so an override is never interleaved with a watcher reconcile of
the same tenant and its write is the final observable state.

Both operations are idempotent: repeating one is a no-op that sends
nothing.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from license_engine.licensing.cache import TenantLockRegistry, TransitionCache
from license_engine.licensing.dispatcher import NotificationDispatcher
from license_engine.licensing.errors import InvalidTransitionError, LicenseNotFoundError
from license_engine.licensing.evaluator import evaluate
from license_engine.licensing.models import (
    LicenseSnapshot,
    LicenseStatus,
    ManualStatus,
    StatusReason,
)
from license_engine.licensing.store import LicenseStore, MemberDirectory, UsageCounter

logger = logging.getLogger(__name__)

# stored_status values the reactivate path may write without a manual change
_EXPIRY_DRIVEN = (LicenseStatus.ACTIVE, LicenseStatus.EXPIRED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LicenseOverrideHandler:
    """
    Applies administrator disable/reactivate requests.

    Args:
        session_factory: callable returning a new SQLAlchemy session
        cache: transition cache shared with the watcher loop
        locks: tenant lock registry shared with the watcher loop
        dispatcher: notification dispatcher
        clock: returns the current time
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        cache: TransitionCache,
        locks: TenantLockRegistry,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self._cache = cache
        self._locks = locks
        self._dispatcher = dispatcher
        self._clock = clock

    def disable(self, tenant_id: str, actor_id: Optional[str] = None) -> LicenseSnapshot:
        """
        Suspend a license regardless of expiry and capacity.

        Raises:
            LicenseNotFoundError: unknown tenant
            InvalidTransitionError: tenant has members but no license
            TransientStoreError: store unreachable
        """
        with self._locks.hold(tenant_id):
            session = self._session_factory()
            try:
                store = LicenseStore(session)
                license = self._load(session, store, tenant_id, "disable")
                usage = UsageCounter(session).count(tenant_id)
                store.save_usage(license, usage)

                if license.is_manually_suspended:
                    snapshot = LicenseSnapshot.from_model(license)
                    store.commit(tenant_id)
                    logger.info(
                        "License already disabled",
                        extra={"tenant_id": tenant_id, "actor_id": actor_id},
                    )
                    return snapshot

                store.save_manual_status(license, ManualStatus.SUSPENDED)
                store.save_stored_status(license, LicenseStatus.SUSPENDED)
                snapshot = LicenseSnapshot.from_model(license)
                store.commit(tenant_id)
            finally:
                session.close()

            state = evaluate(snapshot, usage, self._clock())
            previous = self._cache.get(tenant_id)
            self._dispatcher.dispatch(
                snapshot,
                previous.state if previous else None,
                state,
                actor_id=actor_id,
            )
            self._cache.set(tenant_id, state)

        logger.info(
            "License disabled",
            extra={"tenant_id": tenant_id, "actor_id": actor_id},
        )
        return snapshot

    def reactivate(self, tenant_id: str, actor_id: Optional[str] = None) -> LicenseSnapshot:
        """
        Clear a manual suspension.

        The license goes back to whatever expiry and capacity dictate. Only a
        fully usable result (active, below capacity) is announced as
        license.reactivated; otherwise the real state is announced as an
        ordinary transition.

        Raises:
            LicenseNotFoundError: unknown tenant
            InvalidTransitionError: tenant has members but no license
            TransientStoreError: store unreachable
        """
        with self._locks.hold(tenant_id):
            session = self._session_factory()
            try:
                store = LicenseStore(session)
                license = self._load(session, store, tenant_id, "reactivate")
                usage = UsageCounter(session).count(tenant_id)
                store.save_usage(license, usage)

                if not license.is_manually_suspended:
                    state = evaluate(license, usage, self._clock())
                    if state.status in _EXPIRY_DRIVEN:
                        store.save_stored_status(license, state.status)
                    snapshot = LicenseSnapshot.from_model(license)
                    store.commit(tenant_id)
                    logger.info(
                        "License already active",
                        extra={"tenant_id": tenant_id, "actor_id": actor_id},
                    )
                    return snapshot

                store.save_manual_status(license, ManualStatus.ACTIVE)
                state = evaluate(license, usage, self._clock())
                store.save_stored_status(license, state.status)
                snapshot = LicenseSnapshot.from_model(license)
                store.commit(tenant_id)
            finally:
                session.close()

            previous = self._cache.get(tenant_id)
            previous_state = previous.state if previous else None

            if state.is_active and not state.limit_reached:
                self._dispatcher.dispatch(
                    snapshot,
                    previous_state,
                    state.with_reason(StatusReason.MANUAL_REACTIVATE),
                    actor_id=actor_id,
                )
            elif self._cache.is_edge(tenant_id, state):
                self._dispatcher.dispatch(
                    snapshot, previous_state, state, actor_id=actor_id,
                )
            self._cache.set(tenant_id, state)

        logger.info(
            "License reactivated",
            extra={
                "tenant_id": tenant_id,
                "actor_id": actor_id,
                "status": state.status.value,
                "reason": state.reason.value,
            },
        )
        return snapshot

    def _load(self, session: Session, store: LicenseStore, tenant_id: str, action: str):
        license = store.get_or_none(tenant_id)
        if license is not None:
            return license

        if MemberDirectory(session).has_members(tenant_id):
            raise InvalidTransitionError(
                tenant_id,
                action,
                f"Tenant {tenant_id} has members but no license to {action}",
            )
        raise LicenseNotFoundError(tenant_id)
