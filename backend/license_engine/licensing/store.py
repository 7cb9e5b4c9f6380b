"""
Persistence adapters for the license engine.

- LicenseStore: reads and writes License rows
- UsageCounter: live student count per tenant from the member registry
- MemberDirectory: tenant admin lookup for limit-reached notifications

Each adapter wraps a caller-owned SQLAlchemy session. Callers decide when to
commit; adapters never open or close sessions themselves. Every
SQLAlchemyError is re-raised as TransientStoreError so the watcher can skip
the tenant and request paths can answer 503.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from license_engine.models.license import License, LicenseStatus, ManualStatus
from license_engine.models.tenant_member import TenantMember, MemberRole
from license_engine.licensing.errors import LicenseNotFoundError, TransientStoreError

logger = logging.getLogger(__name__)


@contextmanager
def _store_operation(tenant_id: str, operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        logger.warning(
            "License store operation failed",
            extra={"tenant_id": tenant_id, "operation": operation, "error": str(e)},
        )
        raise TransientStoreError(tenant_id, operation, cause=e) from e


class LicenseStore:
    """License table access for one session."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def list_tenant_ids(self) -> List[str]:
        """All tenant ids that currently hold a license."""
        with _store_operation("*", "list_tenants"):
            rows = self.db.query(License.tenant_id).order_by(License.tenant_id).all()
        return [row[0] for row in rows]

    def get_or_none(self, tenant_id: str) -> Optional[License]:
        with _store_operation(tenant_id, "get_license"):
            return (
                self.db.query(License)
                .filter(License.tenant_id == tenant_id)
                .first()
            )

    def get(self, tenant_id: str) -> License:
        """Fetch a license or raise LicenseNotFoundError."""
        license = self.get_or_none(tenant_id)
        if license is None:
            raise LicenseNotFoundError(tenant_id)
        return license

    def list_expiring(self, start: datetime, end: datetime) -> List[License]:
        """Licenses with start <= expiry <= end that are not manually suspended."""
        with _store_operation("*", "list_expiring"):
            return (
                self.db.query(License)
                .filter(
                    License.expiry >= start,
                    License.expiry <= end,
                    License.manual_status != ManualStatus.SUSPENDED.value,
                )
                .order_by(License.expiry)
                .all()
            )

    def save_usage(self, license: License, usage_count: int) -> bool:
        """Stage usage_count. Returns True when the value changed."""
        if license.usage_count == usage_count:
            return False
        license.usage_count = usage_count
        return True

    def save_stored_status(self, license: License, status: LicenseStatus) -> bool:
        """Stage stored_status. Returns True when the value changed."""
        if license.stored_status == status.value:
            return False
        license.stored_status = status.value
        return True

    def save_manual_status(self, license: License, status: ManualStatus) -> bool:
        """Stage manual_status. Only the override handler calls this."""
        if license.manual_status == status.value:
            return False
        license.manual_status = status.value
        return True

    def upsert(
        self,
        tenant_id: str,
        capacity: int,
        expiry: datetime,
        **details,
    ) -> License:
        """Create or update a tenant's license. Used by operational scripts."""
        if capacity <= 0:
            raise ValueError("capacity must be positive")

        license = self.get_or_none(tenant_id)
        with _store_operation(tenant_id, "upsert_license"):
            if license is None:
                license = License(
                    tenant_id=tenant_id,
                    capacity=capacity,
                    expiry=expiry,
                    usage_count=0,
                    manual_status=ManualStatus.ACTIVE.value,
                    stored_status=LicenseStatus.ACTIVE.value,
                )
                self.db.add(license)
            else:
                license.capacity = capacity
                license.expiry = expiry

            for key, value in details.items():
                if value is not None:
                    setattr(license, key, value)

            self.db.flush()
        return license

    def commit(self, tenant_id: str) -> None:
        with _store_operation(tenant_id, "commit"):
            try:
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                raise


class UsageCounter:
    """Counts active student members. This count is the source of truth."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def count(self, tenant_id: str) -> int:
        with _store_operation(tenant_id, "count_members"):
            return (
                self.db.query(func.count(TenantMember.id))
                .filter(
                    TenantMember.tenant_id == tenant_id,
                    TenantMember.role == MemberRole.STUDENT.value,
                    TenantMember.is_active.is_(True),
                )
                .scalar()
            ) or 0


class MemberDirectory:
    """Audience lookups against the member registry."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def admin_user_ids(self, tenant_id: str) -> List[str]:
        """User ids of the tenant's active college admins."""
        with _store_operation(tenant_id, "list_admins"):
            rows = (
                self.db.query(TenantMember.user_id)
                .filter(
                    TenantMember.tenant_id == tenant_id,
                    TenantMember.role == MemberRole.COLLEGE_ADMIN.value,
                    TenantMember.is_active.is_(True),
                )
                .order_by(TenantMember.user_id)
                .all()
            )
        return [row[0] for row in rows]

    def has_members(self, tenant_id: str) -> bool:
        """True when the tenant is known to the member registry at all."""
        with _store_operation(tenant_id, "has_members"):
            return (
                self.db.query(TenantMember.id)
                .filter(TenantMember.tenant_id == tenant_id)
                .first()
            ) is not None
