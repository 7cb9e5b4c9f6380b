"""
Root test configuration and fixtures.

Every test gets a fresh in-memory SQLite database shared through a
StaticPool, so sessions opened by the engine (watcher, gate, overrides) see
the rows the test created.

Shared fixtures:
- session_factory / db_session: SQLAlchemy access to the test database
- clock: pinned, adjustable "now" passed to engine components
- push_channel: recording InMemoryPushChannel
- watcher: LicenseWatcher wired to all of the above (not started)
- make_license / add_members / update_license: data factories
"""

import os
import tempfile
import uuid
import pytest
import yaml
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from license_engine.db_base import Base
from license_engine.models import License, TenantMember, MemberRole
from license_engine.config.license_policy import LicensePolicy, reset_license_policy_loader
from license_engine.licensing.channel import InMemoryPushChannel
from license_engine.licensing.watcher import LicenseWatcher, reset_watcher

# Set test environment
os.environ.setdefault("ENV", "test")

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock pinned to a fixed instant until advanced."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=db_engine,
    )


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def push_channel() -> InMemoryPushChannel:
    return InMemoryPushChannel()


@pytest.fixture
def policy() -> LicensePolicy:
    return LicensePolicy(
        watch_interval_seconds=60,
        expiry_warning_days=7,
        expiry_job_interval_seconds=86400,
        limit_warning_ratio=0.9,
    )


@pytest.fixture
def watcher(session_factory, push_channel, policy, clock) -> Generator[LicenseWatcher, None, None]:
    w = LicenseWatcher(session_factory, push_channel, policy=policy, clock=clock)
    yield w
    w.stop()


@pytest.fixture(autouse=True)
def _reset_singletons():
    yield
    reset_watcher()
    reset_license_policy_loader()


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def make_license(session_factory, clock):
    """
    Factory fixture that inserts a license and returns its tenant_id.

    Usage:
        tenant_id = make_license(capacity=10, expires_in=timedelta(days=30))
    """
    def _make(
        tenant_id: str = None,
        capacity: int = 10,
        expires_in: timedelta = timedelta(days=30),
        manual_status: str = "active",
        stored_status: str = "active",
        usage_count: int = 0,
        college_name: str = "Test College",
    ) -> str:
        tenant_id = tenant_id or f"college_{uuid.uuid4().hex[:8]}"
        with session_factory() as session:
            session.add(License(
                tenant_id=tenant_id,
                college_name=college_name,
                capacity=capacity,
                usage_count=usage_count,
                expiry=clock() + expires_in,
                manual_status=manual_status,
                stored_status=stored_status,
            ))
            session.commit()
        return tenant_id
    return _make


@pytest.fixture
def add_members(session_factory):
    """
    Factory fixture that adds active members and returns their user ids.

    Usage:
        add_members(tenant_id, 5)
        add_members(tenant_id, 1, role=MemberRole.COLLEGE_ADMIN)
    """
    def _add(tenant_id: str, count: int, role: MemberRole = MemberRole.STUDENT) -> list:
        user_ids = [f"user_{uuid.uuid4().hex[:8]}" for _ in range(count)]
        with session_factory() as session:
            for user_id in user_ids:
                session.add(TenantMember(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    role=role.value,
                    is_active=True,
                ))
            session.commit()
        return user_ids
    return _add


@pytest.fixture
def update_license(session_factory):
    """Factory fixture that changes columns on an existing license."""
    def _update(tenant_id: str, **fields) -> None:
        with session_factory() as session:
            license = session.query(License).filter(License.tenant_id == tenant_id).one()
            for key, value in fields.items():
                setattr(license, key, value)
            session.commit()
    return _update


@pytest.fixture
def load_license(session_factory):
    """Factory fixture that reads a license row back from the database."""
    def _load(tenant_id: str) -> License:
        with session_factory() as session:
            return session.query(License).filter(License.tenant_id == tenant_id).one()
    return _load


# =============================================================================
# Config fixtures
# =============================================================================


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for YAML config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_yaml_config(temp_config_dir):
    """
    Factory fixture that writes a YAML config file and returns its path.

    Usage:
        config_path = make_yaml_config("license_policy.yml", {"watcher": {...}})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = temp_config_dir / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make
