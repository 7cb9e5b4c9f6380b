"""
TenantMember model: the member registry behind the usage counter.

Links a user to a college with a role. The license engine only reads this
table: active students count against license capacity, and active college
admins receive limit-reached notifications on their private topic.

Membership is soft-deleted via is_active so history is kept.
"""

import enum
from typing import Optional
from datetime import datetime, timezone

from sqlalchemy import Column, String, Boolean, DateTime, Index, UniqueConstraint

from license_engine.db_base import Base
from license_engine.models.base import TimestampMixin, generate_uuid


class MemberRole(str, enum.Enum):
    STUDENT = "student"
    COLLEGE_ADMIN = "college_admin"


class TenantMember(Base, TimestampMixin):
    """Membership of one user in one college."""

    __tablename__ = "tenant_members"

    id = Column(
        String(255),
        primary_key=True,
        default=generate_uuid,
    )

    tenant_id = Column(String(255), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)

    role = Column(
        String(50),
        nullable=False,
        default=MemberRole.STUDENT.value,
    )

    is_active = Column(Boolean, nullable=False, default=True)

    deactivated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", "role", name="uq_tenant_member_role"),
        Index("ix_tenant_members_tenant_role_active", "tenant_id", "role", "is_active"),
    )

    def deactivate(self, at: Optional[datetime] = None) -> None:
        self.is_active = False
        self.deactivated_at = at or datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return (
            f"<TenantMember(tenant_id={self.tenant_id}, user_id={self.user_id}, "
            f"role={self.role}, is_active={self.is_active})>"
        )
