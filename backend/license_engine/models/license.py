"""
License model: one record per tenant (college).

A license caps how many students a college may enrol (capacity) and until
when its members may use simulations and quizzes (expiry). Administrators
can suspend a license at any time via manual_status, independent of expiry.

Lifecycle:
1. Created active with usage_count = 0
2. Watcher reconciles usage_count from the member registry every tick
3. stored_status follows expiry (active <-> expired) on each evaluation
4. Override handler moves manual_status between active and suspended

stored_status is the last persisted effective status. It exists to avoid
redundant writes; the authoritative status is always re-derived.
"""

import enum

from sqlalchemy import Column, String, Integer, DateTime, Text, Index, CheckConstraint

from license_engine.db_base import Base
from license_engine.models.base import TimestampMixin, generate_uuid


class LicenseStatus(str, enum.Enum):
    """Effective (and stored) license status."""
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class ManualStatus(str, enum.Enum):
    """Administrator-controlled flag, independent of expiry."""
    ACTIVE = "active"
    SUSPENDED = "suspended"


class License(Base, TimestampMixin):
    """
    Per-tenant license record.

    tenant_id doubles as the push-channel room address (tenant:<id>).
    """

    __tablename__ = "licenses"

    id = Column(
        String(255),
        primary_key=True,
        default=generate_uuid,
    )

    tenant_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="College identifier; one license per tenant",
    )

    college_name = Column(String(255), nullable=True)

    capacity = Column(
        Integer,
        nullable=False,
        comment="Maximum number of student members permitted",
    )

    usage_count = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Denormalized live student count; reconciled, never authoritative",
    )

    expiry = Column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    manual_status = Column(
        String(50),
        nullable=False,
        default=ManualStatus.ACTIVE.value,
        comment="Only the override handler writes this column",
    )

    stored_status = Column(
        String(50),
        nullable=False,
        default=LicenseStatus.ACTIVE.value,
        index=True,
    )

    contact_email = Column(String(255), nullable=True)
    contact_person = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_licenses_capacity_positive"),
        CheckConstraint("usage_count >= 0", name="ck_licenses_usage_non_negative"),
        Index("ix_licenses_status_expiry", "stored_status", "expiry"),
    )

    @property
    def is_manually_suspended(self) -> bool:
        return self.manual_status == ManualStatus.SUSPENDED.value

    def __repr__(self) -> str:
        return (
            f"<License(tenant_id={self.tenant_id}, capacity={self.capacity}, "
            f"usage_count={self.usage_count}, manual_status={self.manual_status}, "
            f"stored_status={self.stored_status})>"
        )
