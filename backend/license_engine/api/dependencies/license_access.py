"""
License access dependencies.

Provides reusable FastAPI dependencies that gate routes on the tenant's
license. The tenant comes from request.state.tenant_id, set by the external
auth layer.

Usage:
    @router.post("/quizzes/{quiz_id}/attempts")
    async def start_attempt(decision=Depends(require_license_access())):
        ...

    @router.post("/students")
    async def enrol_student(decision=Depends(require_license_access(requires_capacity=True))):
        ...
"""

import logging
from typing import Callable

from fastapi import Depends, HTTPException, Request, status

from license_engine.licensing.errors import LicenseNotFoundError, TransientStoreError
from license_engine.licensing.models import AccessDecision
from license_engine.licensing.watcher import LicenseWatcher

logger = logging.getLogger(__name__)

_DENIAL_MESSAGES = {
    "expired": "License expired",
    "manual_suspend": "License suspended",
    "limit_reached": "Student limit reached",
    "no_license": "No license found",
}


def get_license_watcher(request: Request) -> LicenseWatcher:
    """Return the engine handle stored on app.state at startup."""
    watcher = getattr(request.app.state, "license_watcher", None)
    if watcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="License engine not initialized",
        )
    return watcher


def get_request_tenant_id(request: Request) -> str:
    tenant_id = getattr(request.state, "tenant_id", None)
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Tenant context missing",
        )
    return tenant_id


def _forbidden(reason: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={
            "error": _DENIAL_MESSAGES.get(reason, "License access denied"),
            "error_code": "license_access_denied",
            "reason": reason,
        },
    )


def require_license_access(requires_capacity: bool = False) -> Callable:
    """
    Factory for a dependency that enforces the tenant's license.

    Args:
        requires_capacity: also refuse when the license is at its member limit

    Returns:
        A FastAPI dependency returning the AccessDecision when allowed
    """

    def check_license_access(
        request: Request,
        watcher: LicenseWatcher = Depends(get_license_watcher),
    ) -> AccessDecision:
        tenant_id = get_request_tenant_id(request)

        try:
            decision = watcher.check_access(
                tenant_id,
                requires_capacity=requires_capacity,
                user_id=getattr(request.state, "user_id", None),
                endpoint=request.url.path,
                method=request.method,
            )
        except LicenseNotFoundError:
            logger.warning(
                "License access denied - no license",
                extra={"tenant_id": tenant_id},
            )
            raise _forbidden("no_license")
        except TransientStoreError as e:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=e.to_dict(),
            )

        if not decision.allowed:
            raise _forbidden(decision.reason.value)

        return decision

    return check_license_access
