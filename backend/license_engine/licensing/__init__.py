"""
License lifecycle and real-time enforcement.

This package provides:
- evaluate: pure effective-state computation (manual -> expiry -> limit)
- LicenseWatcher: periodic reconciliation loop and the engine handle
- LicenseOverrideHandler: super-admin disable / reactivate
- NotificationDispatcher: transition -> push messages
- AccessGate: synchronous access check for request handlers
- TransitionCache: edge-detection memory shared by watcher and overrides
- Push channels: Redis pub/sub with an in-memory fallback

Resolution order: manual suspend -> expired -> limit reached -> active
"""

from license_engine.licensing.models import (
    StatusReason,
    EffectiveState,
    LicenseSnapshot,
    AccessDecision,
    LicenseStatusView,
    Notification,
    LicenseStatus,
    ManualStatus,
)
from license_engine.licensing.errors import (
    LicenseError,
    LicenseNotFoundError,
    TransientStoreError,
    InvalidTransitionError,
)
from license_engine.licensing.evaluator import evaluate
from license_engine.licensing.cache import (
    TransitionCache,
    TransitionCacheEntry,
    TenantLockRegistry,
)
from license_engine.licensing.channel import (
    PushChannel,
    RedisPushChannel,
    InMemoryPushChannel,
    create_push_channel,
)
from license_engine.licensing.dispatcher import NotificationDispatcher
from license_engine.licensing.gate import AccessGate
from license_engine.licensing.overrides import LicenseOverrideHandler
from license_engine.licensing.watcher import (
    LicenseWatcher,
    WatcherStats,
    initialize_watcher,
    reset_watcher,
)

__all__ = [
    "StatusReason",
    "EffectiveState",
    "LicenseSnapshot",
    "AccessDecision",
    "LicenseStatusView",
    "Notification",
    "LicenseStatus",
    "ManualStatus",
    "LicenseError",
    "LicenseNotFoundError",
    "TransientStoreError",
    "InvalidTransitionError",
    "evaluate",
    "TransitionCache",
    "TransitionCacheEntry",
    "TenantLockRegistry",
    "PushChannel",
    "RedisPushChannel",
    "InMemoryPushChannel",
    "create_push_channel",
    "NotificationDispatcher",
    "AccessGate",
    "LicenseOverrideHandler",
    "LicenseWatcher",
    "WatcherStats",
    "initialize_watcher",
    "reset_watcher",
]
