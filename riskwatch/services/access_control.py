from typing import Callable, Dict, FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from riskwatch.db.session import get_session
from riskwatch.logger import get_logger
from riskwatch.models import Operator
from riskwatch.risk.constants import OperatorRole
from riskwatch.risk.errors import AuthorizationError

logger = get_logger(__name__)

PERMISSION_MANUAL_SCAN = "scan:manual"
PERMISSION_SCHEDULED_SCAN = "scan:scheduled"
PERMISSION_ESCALATE = "alert:escalate"
PERMISSION_REVIEW_ALERT = "alert:review"
PERMISSION_UNFREEZE = "account:unfreeze"

ROLE_PERMISSIONS: Dict[OperatorRole, FrozenSet[str]] = {
    OperatorRole.ADMIN: frozenset(
        {
            PERMISSION_MANUAL_SCAN,
            PERMISSION_SCHEDULED_SCAN,
            PERMISSION_ESCALATE,
            PERMISSION_REVIEW_ALERT,
            PERMISSION_UNFREEZE,
        }
    ),
    OperatorRole.COMPLIANCE: frozenset(
        {PERMISSION_MANUAL_SCAN, PERMISSION_ESCALATE, PERMISSION_REVIEW_ALERT, PERMISSION_UNFREEZE}
    ),
    OperatorRole.ANALYST: frozenset({PERMISSION_MANUAL_SCAN, PERMISSION_ESCALATE, PERMISSION_REVIEW_ALERT}),
    OperatorRole.VIEWER: frozenset(),
}


class OperatorAccessControl:
    """Checks an actor's permission against the ``operators`` table."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or get_session

    def authorize(self, actor: Optional[str], permission: str) -> None:
        if not actor:
            raise AuthorizationError("requested_by is required", permission=permission)
        session = self._session_factory()
        try:
            operator = session.execute(select(Operator).where(Operator.username == actor)).scalar_one_or_none()
        finally:
            session.close()
        if operator is None or not operator.active:
            logger.warning("authorization_denied", actor=actor, permission=permission, reason="unknown_or_inactive")
            raise AuthorizationError(f"{actor} is not an active operator", actor=actor, permission=permission)
        allowed = ROLE_PERMISSIONS.get(OperatorRole(operator.role), frozenset())
        if permission not in allowed:
            logger.warning("authorization_denied", actor=actor, permission=permission, role=operator.role)
            raise AuthorizationError(f"{actor} may not perform {permission}", actor=actor, permission=permission)
