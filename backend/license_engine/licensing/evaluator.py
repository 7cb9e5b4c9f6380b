"""
License state evaluator.

evaluate() is the single source of truth for a license's effective status.
It is pure: same inputs, same output, no I/O. The watcher, the override
handler and the access gate all call it with freshly read inputs.

Resolution order (first match wins):
    manual suspend -> expired -> limit reached -> active
"""

from datetime import datetime
from typing import Union

from license_engine.models.base import ensure_utc
from license_engine.models.license import License, LicenseStatus, ManualStatus
from license_engine.licensing.models import (
    EffectiveState,
    LicenseSnapshot,
    StatusReason,
)


def evaluate(
    license: Union[License, LicenseSnapshot],
    usage_count: int,
    now: datetime,
) -> EffectiveState:
    """
    Compute the effective state of a license.

    Args:
        license: License row or snapshot (capacity, expiry, manual_status)
        usage_count: live member count from the usage counter
        now: evaluation time; naive values are taken as UTC

    Returns:
        EffectiveState with limit_reached set in every branch
    """
    limit_reached = usage_count >= license.capacity

    if ManualStatus(license.manual_status) == ManualStatus.SUSPENDED:
        return EffectiveState(
            status=LicenseStatus.SUSPENDED,
            reason=StatusReason.MANUAL_SUSPEND,
            limit_reached=limit_reached,
        )

    if ensure_utc(license.expiry) < ensure_utc(now):
        return EffectiveState(
            status=LicenseStatus.EXPIRED,
            reason=StatusReason.EXPIRED,
            limit_reached=limit_reached,
        )

    if limit_reached:
        return EffectiveState(
            status=LicenseStatus.ACTIVE,
            reason=StatusReason.LIMIT_REACHED,
            limit_reached=True,
        )

    return EffectiveState(
        status=LicenseStatus.ACTIVE,
        reason=StatusReason.NONE,
        limit_reached=False,
    )
