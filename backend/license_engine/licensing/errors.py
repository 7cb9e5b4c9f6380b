"""
Structured error classes for license lifecycle operations.

Request paths (override handler, access gate) propagate these to the caller.
The watcher catches them per tenant and retries on the next tick.
"""

from typing import Optional


class LicenseError(Exception):
    """Base exception for license engine errors."""

    error_code = "license_error"

    def __init__(self, tenant_id: str, detail: str):
        self.tenant_id = tenant_id
        self.detail = detail
        super().__init__(detail)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "error": self.error_code,
            "message": self.detail,
            "tenant_id": self.tenant_id,
        }


class LicenseNotFoundError(LicenseError):
    """Operation on a tenant id with no license and no members. Not retried."""

    error_code = "license_not_found"

    def __init__(self, tenant_id: str):
        super().__init__(tenant_id, f"No license found for tenant {tenant_id}")


class TransientStoreError(LicenseError):
    """
    I/O failure talking to the license store or member registry.

    Carries the failed operation and the underlying exception so the watcher
    can log it and retry on the next tick.
    """

    error_code = "license_store_unavailable"

    def __init__(
        self,
        tenant_id: str,
        operation: str,
        cause: Optional[Exception] = None,
    ):
        self.operation = operation
        self.cause = cause
        super().__init__(
            tenant_id,
            f"License store operation '{operation}' failed for tenant {tenant_id}",
        )


class InvalidTransitionError(LicenseError):
    """Override requested that the tenant's current record cannot satisfy."""

    error_code = "invalid_license_transition"

    def __init__(self, tenant_id: str, action: str, detail: str):
        self.action = action
        super().__init__(tenant_id, detail)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["action"] = self.action
        return data
