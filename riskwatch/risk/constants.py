from enum import Enum
from typing import Dict, FrozenSet, Iterable, Tuple, Type


class ScanTrigger(str, Enum):
    MANUAL = "MANUAL"
    AUTOMATIC = "AUTOMATIC"
    SCHEDULED = "SCHEDULED"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 1, RiskLevel.MEDIUM: 2, RiskLevel.HIGH: 3, RiskLevel.CRITICAL: 4}


class AlertStatus(str, Enum):
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"
    ESCALATED = "ESCALATED"


class RequestStatus(str, Enum):
    PENDING_SCAN = "PENDING_SCAN"
    APPROVED = "APPROVED"
    PENDING_REVIEW = "PENDING_REVIEW"
    PROCESSING = "PROCESSING"
    FROZEN = "FROZEN"
    PAID = "PAID"
    REJECTED = "REJECTED"


class SupportFlagStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class OperatorRole(str, Enum):
    ADMIN = "ADMIN"
    COMPLIANCE = "COMPLIANCE"
    ANALYST = "ANALYST"
    VIEWER = "VIEWER"


class CheckName(str, Enum):
    TRANSFER_VELOCITY = "transfer_velocity"
    REQUEST_FREQUENCY = "request_frequency"
    GEO_CONSISTENCY = "geo_consistency"
    SUPPORT_FLAGS = "support_flags"
    NETWORK_RISK = "network_risk"
    ACCOUNT_AGE = "account_age"
    PATTERN_ANOMALY = "pattern_anomaly"
    TRANSACTION_SIZE = "transaction_size"


class AuditEvent(str, Enum):
    SCAN_CREATED = "SCAN_CREATED"
    ALERT_CREATED = "ALERT_CREATED"
    ALERT_STATUS_CHANGED = "ALERT_STATUS_CHANGED"
    ACCOUNT_FROZEN = "ACCOUNT_FROZEN"
    ACCOUNT_FREEZE_UPDATED = "ACCOUNT_FREEZE_UPDATED"
    ACCOUNT_UNFROZEN = "ACCOUNT_UNFROZEN"
    FINANCIAL_REQUEST_STATUS_CHANGED = "FINANCIAL_REQUEST_STATUS_CHANGED"
    ENFORCEMENT_FAILED = "ENFORCEMENT_FAILED"


ALERT_TRANSITIONS: Dict[AlertStatus, FrozenSet[AlertStatus]] = {
    AlertStatus.PENDING: frozenset({AlertStatus.UNDER_REVIEW, AlertStatus.ESCALATED}),
    AlertStatus.UNDER_REVIEW: frozenset({AlertStatus.RESOLVED, AlertStatus.ESCALATED}),
    AlertStatus.ESCALATED: frozenset({AlertStatus.UNDER_REVIEW, AlertStatus.RESOLVED}),
    AlertStatus.RESOLVED: frozenset(),
}

REQUEST_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING_SCAN: frozenset({RequestStatus.APPROVED, RequestStatus.PENDING_REVIEW, RequestStatus.FROZEN}),
    RequestStatus.APPROVED: frozenset({RequestStatus.PROCESSING, RequestStatus.FROZEN, RequestStatus.REJECTED}),
    RequestStatus.PENDING_REVIEW: frozenset({RequestStatus.APPROVED, RequestStatus.FROZEN, RequestStatus.REJECTED}),
    RequestStatus.PROCESSING: frozenset({RequestStatus.PAID, RequestStatus.FROZEN}),
    RequestStatus.FROZEN: frozenset({RequestStatus.PENDING_REVIEW, RequestStatus.REJECTED}),
    RequestStatus.PAID: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}

# Requests that can still move money; a freeze cascades to all of them.
ACTIVE_REQUEST_STATUSES: Tuple[RequestStatus, ...] = (
    RequestStatus.PENDING_SCAN,
    RequestStatus.APPROVED,
    RequestStatus.PENDING_REVIEW,
    RequestStatus.PROCESSING,
)

GATE_FOR_LEVEL: Dict[RiskLevel, RequestStatus] = {
    RiskLevel.LOW: RequestStatus.APPROVED,
    RiskLevel.MEDIUM: RequestStatus.PENDING_REVIEW,
    RiskLevel.HIGH: RequestStatus.FROZEN,
    RiskLevel.CRITICAL: RequestStatus.FROZEN,
}


def enum_values(enum_cls: Type[Enum]) -> Tuple[str, ...]:
    return tuple(member.value for member in enum_cls)


def coerce(enum_cls, value):
    """Return ``value`` as a member of ``enum_cls`` or raise ValueError."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().upper())
        except ValueError:
            pass
        try:
            return enum_cls(value.strip())
        except ValueError:
            pass
    raise ValueError(f"Invalid {enum_cls.__name__}: {value!r} (expected one of {describe(enum_cls)})")


def can_transition(table: Dict, current: Enum, target: Enum) -> bool:
    return target in table.get(current, frozenset())


def describe(values: Iterable[Enum]) -> str:
    return ", ".join(v.value for v in values)
