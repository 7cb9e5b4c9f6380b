"""
Tests for the transition cache and tenant lock registry.
"""

import pytest
import threading

from license_engine.licensing.cache import TenantLockRegistry, TransitionCache
from license_engine.licensing.models import EffectiveState, LicenseStatus, StatusReason


ACTIVE = EffectiveState(LicenseStatus.ACTIVE, StatusReason.NONE, False)
AT_LIMIT = EffectiveState(LicenseStatus.ACTIVE, StatusReason.LIMIT_REACHED, True)
EXPIRED = EffectiveState(LicenseStatus.EXPIRED, StatusReason.EXPIRED, False)


class TestTransitionCache:

    def test_missing_entry_is_an_edge(self):
        cache = TransitionCache()
        assert cache.get("college_1") is None
        assert cache.is_edge("college_1", ACTIVE) is True

    def test_same_state_is_not_an_edge(self):
        cache = TransitionCache()
        cache.set("college_1", ACTIVE)

        assert cache.is_edge("college_1", ACTIVE) is False

    def test_limit_flip_is_an_edge(self):
        cache = TransitionCache()
        cache.set("college_1", ACTIVE)

        assert cache.is_edge("college_1", AT_LIMIT) is True

    def test_reason_change_alone_is_an_edge(self):
        cache = TransitionCache()
        cache.set("college_1", ACTIVE)

        reactivated = ACTIVE.with_reason(StatusReason.MANUAL_REACTIVATE)

        assert cache.is_edge("college_1", reactivated) is True

    def test_set_overwrites_and_stamps(self):
        cache = TransitionCache()
        cache.set("college_1", ACTIVE)
        entry = cache.set("college_1", EXPIRED)

        assert cache.get("college_1").state == EXPIRED
        assert entry.updated_at.tzinfo is not None
        assert len(cache) == 1

    def test_drop(self):
        cache = TransitionCache()
        cache.set("college_1", ACTIVE)

        assert cache.drop("college_1") is True
        assert cache.drop("college_1") is False
        assert cache.get("college_1") is None

    def test_prune_keeps_live_tenants_only(self):
        cache = TransitionCache()
        cache.set("college_1", ACTIVE)
        cache.set("college_2", ACTIVE)

        stale = cache.prune(["college_2"])

        assert stale == ["college_1"]
        assert cache.get("college_1") is None
        assert len(cache) == 1


class TestTenantLockRegistry:

    def test_lock_is_reentrant(self):
        locks = TenantLockRegistry()
        with locks.hold("college_1"):
            with locks.hold("college_1"):
                assert len(locks) == 1

    def test_entry_released_after_last_holder(self):
        locks = TenantLockRegistry()

        with locks.hold("college_1"):
            assert len(locks) == 1

        assert len(locks) == 0

    def test_entry_released_on_error(self):
        locks = TenantLockRegistry()

        with pytest.raises(RuntimeError):
            with locks.hold("college_1"):
                raise RuntimeError("boom")

        assert len(locks) == 0

    def test_many_tenant_ids_do_not_accumulate(self):
        locks = TenantLockRegistry()

        for i in range(50):
            with locks.hold(f"ghost-{i}"):
                pass

        assert len(locks) == 0

    def test_same_tenant_is_serialized(self):
        locks = TenantLockRegistry()
        entered = threading.Event()

        def _take_same():
            with locks.hold("college_1"):
                entered.set()

        with locks.hold("college_1"):
            t = threading.Thread(target=_take_same)
            t.start()
            assert not entered.wait(timeout=0.2)
            assert len(locks) == 1

        assert entered.wait(timeout=2.0)
        t.join(timeout=2.0)
        assert len(locks) == 0

    def test_other_tenant_not_blocked(self):
        locks = TenantLockRegistry()
        acquired = threading.Event()

        def _take_other():
            with locks.hold("college_2"):
                acquired.set()

        with locks.hold("college_1"):
            t = threading.Thread(target=_take_other)
            t.start()
            assert acquired.wait(timeout=2.0)
            t.join(timeout=2.0)
