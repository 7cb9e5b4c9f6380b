"""
Tests for super-admin license overrides.

Test classes:
- TestDisable: suspend, persist, notify, cache
- TestReactivate: only a usable license is announced as reactivated
- TestIdempotence: repeated overrides are silent no-ops
- TestErrors: not found vs invalid transition vs store failure
- TestInterplayWithWatcher: overrides and ticks share cache and locks
"""

import pytest
import threading
from datetime import timedelta
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from license_engine.licensing.errors import (
    InvalidTransitionError,
    LicenseNotFoundError,
    TransientStoreError,
)
from license_engine.licensing.models import LicenseStatus, ManualStatus, StatusReason
from license_engine.licensing.store import UsageCounter, _store_operation


class TestDisable:

    def test_disable_persists_and_notifies(self, watcher, push_channel, make_license, load_license):
        tenant_id = make_license()

        snapshot = watcher.disable_license(tenant_id, actor_id="super_1")

        row = load_license(tenant_id)
        assert row.manual_status == "suspended"
        assert row.stored_status == "suspended"
        assert snapshot.manual_status == ManualStatus.SUSPENDED
        assert snapshot.stored_status == LicenseStatus.SUSPENDED

        assert push_channel.events(f"tenant:{tenant_id}") == ["license.manualDisable"]
        assert push_channel.messages_for("admins")[0]["data"]["actor_id"] == "super_1"

    def test_disable_updates_cache(self, watcher, make_license):
        tenant_id = make_license()

        watcher.disable_license(tenant_id, actor_id="super_1")

        entry = watcher.cache.get(tenant_id)
        assert entry.state.status == LicenseStatus.SUSPENDED
        assert entry.state.reason == StatusReason.MANUAL_SUSPEND

    def test_disable_wins_over_expiry(self, watcher, push_channel, make_license, load_license):
        tenant_id = make_license(expires_in=timedelta(days=-3))

        watcher.disable_license(tenant_id)

        assert load_license(tenant_id).stored_status == "suspended"
        assert push_channel.events(f"tenant:{tenant_id}") == ["license.manualDisable"]

    def test_disable_reconciles_usage(self, watcher, make_license, add_members, load_license):
        tenant_id = make_license(usage_count=0)
        add_members(tenant_id, 3)

        snapshot = watcher.disable_license(tenant_id)

        assert snapshot.usage_count == 3
        assert load_license(tenant_id).usage_count == 3


class TestReactivate:

    def test_reactivate_usable_license(self, watcher, push_channel, make_license, load_license):
        tenant_id = make_license()
        watcher.disable_license(tenant_id, actor_id="super_1")
        push_channel.clear()

        watcher.reactivate_license(tenant_id, actor_id="super_1")

        row = load_license(tenant_id)
        assert row.manual_status == "active"
        assert row.stored_status == "active"
        assert push_channel.events(f"tenant:{tenant_id}") == ["license.reactivated"]

    def test_cache_keeps_evaluated_reason(self, watcher, push_channel, make_license):
        tenant_id = make_license()
        watcher.disable_license(tenant_id)
        watcher.reactivate_license(tenant_id)
        push_channel.clear()

        watcher.run_cycle()

        assert watcher.cache.get(tenant_id).state.reason == StatusReason.NONE
        assert push_channel.messages == []

    def test_scenario_reactivate_cannot_overturn_expiry(self, watcher, push_channel, make_license, load_license):
        tenant_id = make_license(expires_in=timedelta(days=-1))
        watcher.disable_license(tenant_id, actor_id="super_1")
        push_channel.clear()

        watcher.reactivate_license(tenant_id, actor_id="super_1")

        assert load_license(tenant_id).stored_status == "expired"
        assert "license.reactivated" not in push_channel.events()
        assert push_channel.events(f"tenant:{tenant_id}") == ["license.expired"]
        assert watcher.cache.get(tenant_id).state.status == LicenseStatus.EXPIRED

    def test_reactivate_at_limit_not_announced(self, watcher, push_channel, make_license, add_members):
        tenant_id = make_license(capacity=2)
        add_members(tenant_id, 2)
        watcher.disable_license(tenant_id)
        push_channel.clear()

        watcher.reactivate_license(tenant_id)

        assert "license.reactivated" not in push_channel.events()
        assert "license.limitReached" in push_channel.events("admins")

    def test_reactivate_into_state_already_cached_is_silent(self, watcher, push_channel, make_license, update_license):
        tenant_id = make_license(expires_in=timedelta(days=-1))
        watcher.run_cycle()
        update_license(tenant_id, manual_status="suspended")
        push_channel.clear()

        watcher.reactivate_license(tenant_id)

        assert push_channel.messages == []


class TestIdempotence:

    def test_second_disable_is_noop(self, watcher, push_channel, make_license):
        tenant_id = make_license()
        watcher.disable_license(tenant_id)
        push_channel.clear()

        snapshot = watcher.disable_license(tenant_id)

        assert push_channel.messages == []
        assert snapshot.manual_status == ManualStatus.SUSPENDED

    def test_reactivate_active_is_noop(self, watcher, push_channel, make_license, load_license):
        tenant_id = make_license()

        watcher.reactivate_license(tenant_id)

        assert push_channel.messages == []
        assert watcher.cache.get(tenant_id) is None
        assert load_license(tenant_id).manual_status == "active"

    def test_reactivate_active_corrects_stale_stored_status(self, watcher, push_channel, make_license, load_license):
        tenant_id = make_license(stored_status="expired")

        watcher.reactivate_license(tenant_id)

        assert load_license(tenant_id).stored_status == "active"
        assert push_channel.messages == []


class TestErrors:

    def test_unknown_tenant(self, watcher):
        with pytest.raises(LicenseNotFoundError) as exc:
            watcher.disable_license("nope")
        assert exc.value.to_dict()["error"] == "license_not_found"

    def test_members_without_license(self, watcher, add_members):
        add_members("college_orphan", 2)

        with pytest.raises(InvalidTransitionError) as exc:
            watcher.reactivate_license("college_orphan")
        assert exc.value.action == "reactivate"
        assert exc.value.to_dict()["error"] == "invalid_license_transition"

    def test_store_failure_propagates(self, watcher, make_license, push_channel):
        tenant_id = make_license()

        with patch(
            "license_engine.licensing.store.LicenseStore.get_or_none",
        ) as get_or_none:

            def _fail(tid):
                with _store_operation(tid, "get_license"):
                    raise OperationalError("SELECT", {}, Exception("db down"))

            get_or_none.side_effect = _fail
            with pytest.raises(TransientStoreError) as exc:
                watcher.disable_license(tenant_id)

        assert exc.value.operation == "get_license"
        assert isinstance(exc.value.cause, OperationalError)
        assert push_channel.messages == []


class TestInterplayWithWatcher:

    def test_watcher_does_not_refire_after_disable(self, watcher, push_channel, make_license):
        tenant_id = make_license()
        watcher.run_cycle()
        watcher.disable_license(tenant_id)
        push_channel.clear()

        watcher.run_cycle()

        assert push_channel.messages == []

    def test_watcher_keeps_suspension(self, watcher, make_license, load_license):
        tenant_id = make_license()
        watcher.disable_license(tenant_id)

        watcher.run_cycle()

        row = load_license(tenant_id)
        assert row.manual_status == "suspended"
        assert row.stored_status == "suspended"

    def test_disable_during_tick_is_final_state(self, watcher, make_license, load_license):
        tenant_id = make_license(expires_in=timedelta(days=-1))
        counting = threading.Event()
        resume = threading.Event()
        disabled = threading.Event()
        errors = []
        count = UsageCounter.count

        def _slow_count(self, tid):
            if not counting.is_set():
                counting.set()
                resume.wait(timeout=5.0)
            return count(self, tid)

        def _run(target, *args):
            try:
                target(*args)
            except Exception as e:
                errors.append(e)

        def _disable():
            _run(watcher.disable_license, tenant_id, "super_1")
            disabled.set()

        with patch.object(UsageCounter, "count", _slow_count):
            tick = threading.Thread(target=_run, args=(watcher.run_cycle,))
            tick.start()
            assert counting.wait(timeout=5.0)

            override = threading.Thread(target=_disable)
            override.start()
            assert not disabled.wait(timeout=0.2)

            resume.set()
            tick.join(timeout=5.0)
            override.join(timeout=5.0)

        assert errors == []
        assert disabled.is_set()
        row = load_license(tenant_id)
        assert row.manual_status == "suspended"
        assert row.stored_status == "suspended"
        decision = watcher.check_access(tenant_id)
        assert decision.allowed is False
        assert decision.reason == StatusReason.MANUAL_SUSPEND
        assert len(watcher.locks) == 0

    def test_override_on_unknown_tenant_leaves_no_lock(self, watcher):
        for i in range(50):
            with pytest.raises(LicenseNotFoundError):
                watcher.disable_license(f"ghost-{i}")

        assert len(watcher.locks) == 0
