"""
License administration and access API routes.

SECURITY: /api/admin/licenses routes require the super_admin role.
The actor recorded on overrides is request.state.user_id.

Handlers are plain def: they can wait on a tenant lock held by a watcher
tick, so they must run in the threadpool, not on the event loop.

Endpoints:
- POST /api/admin/licenses/{tenant_id}/disable      manual suspend
- POST /api/admin/licenses/{tenant_id}/reactivate   clear manual suspend
- GET  /api/admin/licenses/{tenant_id}/status       fresh status view
- POST /api/admin/licenses/{tenant_id}/check        immediate evaluation
- GET  /api/licenses/access                         gate check for the caller's tenant
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from license_engine.api.dependencies.license_access import (
    get_license_watcher,
    get_request_tenant_id,
)
from license_engine.licensing.errors import (
    InvalidTransitionError,
    LicenseError,
    LicenseNotFoundError,
    TransientStoreError,
)
from license_engine.licensing.models import LicenseSnapshot
from license_engine.licensing.watcher import LicenseWatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/licenses", tags=["admin-licenses"])
access_router = APIRouter(prefix="/api/licenses", tags=["licenses"])

SUPER_ADMIN_ROLE = "super_admin"


# Response models

class LicenseResponse(BaseModel):
    """Persisted license record after an override."""
    tenant_id: str
    college_name: Optional[str] = None
    capacity: int
    usage_count: int
    expiry: datetime
    manual_status: str
    stored_status: str


class LicenseStatusResponse(BaseModel):
    """Fresh effective status of a license."""
    tenant_id: str
    college_name: Optional[str] = None
    status: str
    reason: str
    limit_reached: bool
    manual_status: str
    stored_status: str
    usage_count: int
    capacity: int
    expiry: datetime
    days_until_expiry: int
    expiring_soon: bool
    limit_warning: bool
    can_access: bool


class EffectiveStateResponse(BaseModel):
    tenant_id: str
    status: str
    reason: str
    limit_reached: bool


class AccessDecisionResponse(BaseModel):
    tenant_id: str
    allowed: bool
    reason: str
    status: str
    limit_reached: bool
    requires_capacity: bool


def verify_super_admin(request: Request) -> str:
    """
    Verify the caller is a super-admin and return their user id.

    SECURITY: license overrides affect every member of a college.
    """
    roles = getattr(request.state, "roles", None) or []
    user_id = getattr(request.state, "user_id", None)

    if SUPER_ADMIN_ROLE not in roles:
        logger.warning("Unauthorized license admin access attempt", extra={
            "user_id": user_id,
            "roles": list(roles),
        })
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin role required",
        )

    return user_id


def _http_error(error: LicenseError) -> HTTPException:
    if isinstance(error, LicenseNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, InvalidTransitionError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, TransientStoreError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=error.to_dict())


def _license_response(snapshot: LicenseSnapshot) -> LicenseResponse:
    return LicenseResponse(
        tenant_id=snapshot.tenant_id,
        college_name=snapshot.college_name,
        capacity=snapshot.capacity,
        usage_count=snapshot.usage_count,
        expiry=snapshot.expiry,
        manual_status=snapshot.manual_status.value,
        stored_status=snapshot.stored_status.value,
    )


# Routes

@router.post("/{tenant_id}/disable", response_model=LicenseResponse)
def disable_license(
    tenant_id: str,
    actor_id: str = Depends(verify_super_admin),
    watcher: LicenseWatcher = Depends(get_license_watcher),
):
    """
    Suspend a college's license.

    Requires super_admin role.
    """
    logger.info("Admin disabling license", extra={
        "tenant_id": tenant_id,
        "actor_id": actor_id,
    })
    try:
        snapshot = watcher.disable_license(tenant_id, actor_id=actor_id)
    except LicenseError as e:
        raise _http_error(e)
    return _license_response(snapshot)


@router.post("/{tenant_id}/reactivate", response_model=LicenseResponse)
def reactivate_license(
    tenant_id: str,
    actor_id: str = Depends(verify_super_admin),
    watcher: LicenseWatcher = Depends(get_license_watcher),
):
    """
    Clear a manual suspension.

    The license returns to whatever expiry and capacity dictate.
    Requires super_admin role.
    """
    logger.info("Admin reactivating license", extra={
        "tenant_id": tenant_id,
        "actor_id": actor_id,
    })
    try:
        snapshot = watcher.reactivate_license(tenant_id, actor_id=actor_id)
    except LicenseError as e:
        raise _http_error(e)
    return _license_response(snapshot)


@router.get("/{tenant_id}/status", response_model=LicenseStatusResponse)
def get_license_status(
    tenant_id: str,
    actor_id: str = Depends(verify_super_admin),
    watcher: LicenseWatcher = Depends(get_license_watcher),
):
    """Get the live status of a college's license."""
    try:
        view = watcher.get_license_status(tenant_id)
    except LicenseError as e:
        raise _http_error(e)
    return LicenseStatusResponse(**view.to_dict())


@router.post("/{tenant_id}/check", response_model=EffectiveStateResponse)
def force_license_check(
    tenant_id: str,
    actor_id: str = Depends(verify_super_admin),
    watcher: LicenseWatcher = Depends(get_license_watcher),
):
    """
    Evaluate a license immediately, outside the watcher cadence.

    Sends notifications if the state changed since the last evaluation.
    """
    try:
        state = watcher.force_check(tenant_id)
    except LicenseError as e:
        raise _http_error(e)
    return EffectiveStateResponse(tenant_id=tenant_id, **state.to_dict())


@access_router.get("/access", response_model=AccessDecisionResponse)
def check_license_access(
    request: Request,
    requires_capacity: bool = Query(False, description="Also require free member capacity"),
    watcher: LicenseWatcher = Depends(get_license_watcher),
):
    """
    Report whether the caller's college may use simulations and quizzes.

    Always answers 200 with the decision; use require_license_access to
    enforce it on other routes.
    """
    tenant_id = get_request_tenant_id(request)
    try:
        decision = watcher.check_access(
            tenant_id,
            requires_capacity=requires_capacity,
            user_id=getattr(request.state, "user_id", None),
            endpoint=request.url.path,
            method=request.method,
        )
    except LicenseError as e:
        raise _http_error(e)
    return AccessDecisionResponse(**decision.to_dict())
