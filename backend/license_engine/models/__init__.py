"""
Database models touched by the license engine.

Importing this package registers every table with Base.metadata.
"""

from license_engine.models.base import TimestampMixin
from license_engine.models.license import License, LicenseStatus, ManualStatus
from license_engine.models.tenant_member import TenantMember, MemberRole

__all__ = [
    "TimestampMixin",
    "License",
    "LicenseStatus",
    "ManualStatus",
    "TenantMember",
    "MemberRole",
]
