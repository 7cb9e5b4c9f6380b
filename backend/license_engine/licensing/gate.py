"""
Access gate: synchronous license check for request handlers.

Always re-reads the license and the live member count and re-evaluates.
Never consults the transition cache, so a decision is never staler than the
store itself.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from license_engine.licensing.audit import AccessDenialEvent, LicenseAuditLogger
from license_engine.licensing.evaluator import evaluate
from license_engine.licensing.models import AccessDecision, LicenseStatus
from license_engine.licensing.store import LicenseStore, UsageCounter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccessGate:
    """
    Answers "may this tenant's members use simulations and quizzes now?".

    Args:
        session_factory: callable returning a new SQLAlchemy session
        audit: denial audit logger
        clock: returns the current time (tests pin it)
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        audit: Optional[LicenseAuditLogger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self._audit = audit or LicenseAuditLogger()
        self._clock = clock

    def check(
        self,
        tenant_id: str,
        requires_capacity: bool = False,
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
    ) -> AccessDecision:
        """
        Evaluate access for tenant_id.

        requires_capacity=True is for operations that add a member, which are
        also refused once the license is at its limit.

        Raises:
            LicenseNotFoundError: tenant has no license
            TransientStoreError: store unreachable
        """
        session = self._session_factory()
        try:
            license = LicenseStore(session).get(tenant_id)
            usage = UsageCounter(session).count(tenant_id)
            state = evaluate(license, usage, self._clock())
        finally:
            session.close()

        allowed = state.status == LicenseStatus.ACTIVE
        if requires_capacity:
            allowed = allowed and not state.limit_reached

        decision = AccessDecision(
            tenant_id=tenant_id,
            allowed=allowed,
            reason=state.reason,
            status=state.status,
            limit_reached=state.limit_reached,
            requires_capacity=requires_capacity,
        )

        if not allowed:
            self._audit.log_denial(AccessDenialEvent(
                tenant_id=tenant_id,
                reason=state.reason.value,
                status=state.status.value,
                limit_reached=state.limit_reached,
                requires_capacity=requires_capacity,
                user_id=user_id,
                endpoint=endpoint,
                method=method,
            ))
        else:
            logger.debug(
                "License access granted",
                extra={"tenant_id": tenant_id, "requires_capacity": requires_capacity},
            )

        return decision
