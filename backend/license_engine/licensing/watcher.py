"""
License watcher: periodic reconciliation loop and engine handle.

Every tick, for each tenant holding a license:
1. Reconcile usage_count from the member registry (always written)
2. Evaluate the effective state
3. Persist stored_status for expiry-driven changes only
4. Compare with the transition cache and dispatch on an edge

A failure for one tenant is logged and counted; the rest of the scan goes
on and the tenant is retried on the next tick. The loop never exits on
error.

LicenseWatcher is also the single handle the application holds: overrides,
status view and access checks all go through it so they share one
transition cache and one tenant lock registry.

Usage:
    watcher = initialize_watcher(create_push_channel())
    app.state.license_watcher = watcher
    ...
    watcher.stop()
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from license_engine.config.license_policy import LicensePolicy, get_license_policy
from license_engine.database.session import get_session_factory
from license_engine.licensing.audit import LicenseAuditLogger
from license_engine.licensing.cache import TenantLockRegistry, TransitionCache
from license_engine.licensing.channel import PushChannel
from license_engine.licensing.dispatcher import NotificationDispatcher
from license_engine.licensing.errors import LicenseNotFoundError
from license_engine.licensing.evaluator import evaluate
from license_engine.licensing.gate import AccessGate
from license_engine.licensing.models import (
    AccessDecision,
    EffectiveState,
    LicenseSnapshot,
    LicenseStatus,
    LicenseStatusView,
)
from license_engine.licensing.overrides import LicenseOverrideHandler
from license_engine.licensing.store import LicenseStore, MemberDirectory, UsageCounter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WatcherStats:
    """Counters for one reconciliation cycle."""

    tenants_scanned: int = 0
    usage_reconciled: int = 0
    status_persisted: int = 0
    notifications_sent: int = 0
    errors: int = 0
    started_at: float = field(default_factory=time.monotonic)
    duration: float = 0.0

    def finish(self) -> "WatcherStats":
        self.duration = time.monotonic() - self.started_at
        return self

    @property
    def had_activity(self) -> bool:
        return any((
            self.usage_reconciled,
            self.status_persisted,
            self.notifications_sent,
            self.errors,
        ))

    def to_dict(self) -> dict:
        return {
            "tenants_scanned": self.tenants_scanned,
            "usage_reconciled": self.usage_reconciled,
            "status_persisted": self.status_persisted,
            "notifications_sent": self.notifications_sent,
            "errors": self.errors,
            "duration_seconds": round(self.duration, 3),
        }


def _should_persist(stored: LicenseStatus, effective: LicenseStatus) -> bool:
    """
    Expiry-driven stored_status writes only.

    The loop writes 'expired', or corrects a stale 'expired' back to
    'active'. Suspension is persisted by the override handler alone.
    """
    if stored == effective or stored == LicenseStatus.SUSPENDED:
        return False
    if effective == LicenseStatus.EXPIRED:
        return True
    return effective == LicenseStatus.ACTIVE and stored == LicenseStatus.EXPIRED


class LicenseWatcher:
    """
    Reconciliation loop plus the administrative and gate surface.

    Args:
        session_factory: callable returning a new SQLAlchemy session
        push_channel: where notifications are published
        policy: resolved license policy (interval, warning windows)
        clock: returns the current time
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        push_channel: PushChannel,
        policy: Optional[LicensePolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self.channel = push_channel
        self.policy = policy or get_license_policy()
        self._clock = clock

        self.cache = TransitionCache()
        self.locks = TenantLockRegistry()
        self.dispatcher = NotificationDispatcher(push_channel, self._admin_user_ids)
        self.overrides = LicenseOverrideHandler(
            session_factory, self.cache, self.locks, self.dispatcher, clock=clock,
        )
        self.gate = AccessGate(session_factory, audit=LicenseAuditLogger(), clock=clock)

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._thread_lock = threading.Lock()

    @property
    def interval_seconds(self) -> int:
        return self.policy.watch_interval_seconds

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background loop. The first cycle runs immediately."""
        with self._thread_lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name="license-watcher",
                daemon=True,
            )
            self._thread.start()
        logger.info(
            "License watcher started",
            extra={"interval_seconds": self.interval_seconds},
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the loop to exit and wait for the current cycle."""
        with self._thread_lock:
            self._stop_event.set()
            if self._thread is not None:
                self._thread.join(timeout=timeout)
                self._thread = None
        logger.info("License watcher stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.error("License watcher cycle failed", exc_info=True)
            self._stop_event.wait(self.interval_seconds)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def run_cycle(self) -> WatcherStats:
        """Run one reconciliation pass over every tenant."""
        stats = WatcherStats()

        session = self._session_factory()
        try:
            tenant_ids = LicenseStore(session).list_tenant_ids()
        except Exception:
            logger.error("Failed to list licensed tenants", exc_info=True)
            stats.errors += 1
            return stats.finish()
        finally:
            session.close()

        self.cache.prune(tenant_ids)

        for tenant_id in tenant_ids:
            stats.tenants_scanned += 1
            try:
                self._reconcile(tenant_id, stats)
            except LicenseNotFoundError:
                self.cache.drop(tenant_id)
            except Exception:
                logger.error(
                    "License reconcile failed",
                    extra={"tenant_id": tenant_id},
                    exc_info=True,
                )
                stats.errors += 1

        stats.finish()
        if stats.had_activity:
            logger.info("License watcher cycle complete", extra=stats.to_dict())
        return stats

    def force_check(self, tenant_id: str) -> EffectiveState:
        """
        Evaluate one tenant now, outside the cadence, dispatching on an edge.

        Member add/remove paths call this so limit edges are not delayed.

        Raises:
            LicenseNotFoundError: tenant has no license
            TransientStoreError: store unreachable
        """
        try:
            return self._reconcile(tenant_id, WatcherStats())
        except LicenseNotFoundError:
            self.cache.drop(tenant_id)
            raise

    def _reconcile(self, tenant_id: str, stats: WatcherStats) -> EffectiveState:
        with self.locks.hold(tenant_id):
            session = self._session_factory()
            try:
                store = LicenseStore(session)
                license = store.get(tenant_id)
                usage = UsageCounter(session).count(tenant_id)

                if store.save_usage(license, usage):
                    stats.usage_reconciled += 1

                state = evaluate(license, usage, self._clock())

                stored = LicenseStatus(license.stored_status)
                if _should_persist(stored, state.status):
                    store.save_stored_status(license, state.status)
                    stats.status_persisted += 1
                    logger.info(
                        "License stored status updated",
                        extra={
                            "tenant_id": tenant_id,
                            "from_status": stored.value,
                            "to_status": state.status.value,
                        },
                    )

                snapshot = LicenseSnapshot.from_model(license)
                store.commit(tenant_id)
            finally:
                session.close()

            if self.cache.is_edge(tenant_id, state):
                previous = self.cache.get(tenant_id)
                sent = self.dispatcher.dispatch(
                    snapshot,
                    previous.state if previous else None,
                    state,
                )
                stats.notifications_sent += len(sent)
                self.cache.set(tenant_id, state)

        return state

    # ------------------------------------------------------------------
    # Administrative surface
    # ------------------------------------------------------------------

    def disable_license(self, tenant_id: str, actor_id: Optional[str] = None) -> LicenseSnapshot:
        return self.overrides.disable(tenant_id, actor_id)

    def reactivate_license(self, tenant_id: str, actor_id: Optional[str] = None) -> LicenseSnapshot:
        return self.overrides.reactivate(tenant_id, actor_id)

    def get_license_status(self, tenant_id: str) -> LicenseStatusView:
        """
        Fresh status view for dashboards. Read only: no writes, no dispatch.

        Raises:
            LicenseNotFoundError: tenant has no license
        """
        session = self._session_factory()
        try:
            license = LicenseStore(session).get(tenant_id)
            usage = UsageCounter(session).count(tenant_id)
            snapshot = LicenseSnapshot.from_model(license).with_usage(usage)
        finally:
            session.close()

        now = self._clock()
        return LicenseStatusView.build(
            snapshot,
            evaluate(snapshot, usage, now),
            now,
            expiry_warning_days=self.policy.expiry_warning_days,
            limit_warning_ratio=self.policy.limit_warning_ratio,
        )

    def check_access(self, tenant_id: str, requires_capacity: bool = False, **context) -> AccessDecision:
        return self.gate.check(tenant_id, requires_capacity=requires_capacity, **context)

    def _admin_user_ids(self, tenant_id: str) -> List[str]:
        session = self._session_factory()
        try:
            return MemberDirectory(session).admin_user_ids(tenant_id)
        finally:
            session.close()


# ---------------------------------------------------------------------------
# Process bootstrap
# ---------------------------------------------------------------------------

_watcher: Optional[LicenseWatcher] = None
_watcher_lock = threading.Lock()


def initialize_watcher(
    push_channel: PushChannel,
    session_factory: Optional[Callable[[], Session]] = None,
    config: Optional[LicensePolicy] = None,
    start: bool = True,
) -> LicenseWatcher:
    """
    Create and start the process-wide watcher.

    Idempotent: later calls return the existing handle and start nothing.
    The caller keeps the handle (e.g. on app.state); there is no global
    getter.
    """
    global _watcher
    with _watcher_lock:
        if _watcher is not None:
            logger.warning("License watcher already initialized")
            return _watcher

        _watcher = LicenseWatcher(
            session_factory or get_session_factory(),
            push_channel,
            policy=config,
        )
        if start:
            _watcher.start()
        return _watcher


def reset_watcher() -> None:
    """Stop and forget the process watcher (for tests and shutdown)."""
    global _watcher
    with _watcher_lock:
        if _watcher is not None:
            _watcher.stop()
        _watcher = None
