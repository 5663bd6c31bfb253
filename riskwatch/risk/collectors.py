"""
Signal collectors.

Each collector reads one behavioral or transactional signal about an account
and turns it into a ``CheckResult``. Collectors hold no mutable state and only
read through the collaborator stores, so the orchestrator can run them on a
thread pool.

Severity is proportional inside each collector's weight ceiling: zero at or
below the threshold, the full weight at or beyond the saturation point, linear
in between.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from riskwatch.config import RiskConfig
from riskwatch.risk.constants import CheckName, ScanTrigger, coerce
from riskwatch.risk.errors import CollectorError


@dataclass
class CheckResult:
    passed: bool
    score: float
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"passed": self.passed, "score": self.score, "details": self.details}


@dataclass
class ScanContext:
    trigger: ScanTrigger
    now: datetime = field(default_factory=datetime.utcnow)
    amount: Optional[Decimal] = None
    financial_request_id: Optional[int] = None
    country: Optional[str] = None
    requested_by: Optional[str] = None


def proportional(value: float, threshold: float, saturation: float, weight: float) -> float:
    if value <= threshold:
        return 0.0
    if saturation <= threshold or value >= saturation:
        return float(weight)
    return round(weight * (value - threshold) / (saturation - threshold), 2)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SignalCollector:
    name: CheckName

    def evaluate(self, subject, context: ScanContext) -> CheckResult:
        raise NotImplementedError


class TransferVelocityCollector(SignalCollector):
    name = CheckName.TRANSFER_VELOCITY

    def __init__(self, config: RiskConfig, requests):
        self.config = config
        self.requests = requests

    def evaluate(self, subject, context):
        since = context.now - timedelta(hours=self.config.velocity_window_hours)
        total = float(self.requests.sum_amount_since(subject.id, since))
        score = proportional(
            total, self.config.velocity_threshold, self.config.velocity_saturation, self.config.velocity_weight
        )
        return CheckResult(
            passed=score == 0,
            score=score,
            details={
                "window_hours": self.config.velocity_window_hours,
                "total_amount": total,
                "threshold": self.config.velocity_threshold,
            },
        )


class RequestFrequencyCollector(SignalCollector):
    name = CheckName.REQUEST_FREQUENCY

    def __init__(self, config: RiskConfig, requests):
        self.config = config
        self.requests = requests

    def evaluate(self, subject, context):
        since = context.now - timedelta(hours=self.config.frequency_window_hours)
        count = self.requests.count_since(subject.id, since)
        score = proportional(
            count, self.config.frequency_threshold, self.config.frequency_saturation, self.config.frequency_weight
        )
        return CheckResult(
            passed=score == 0,
            score=score,
            details={
                "window_hours": self.config.frequency_window_hours,
                "request_count": count,
                "threshold": self.config.frequency_threshold,
            },
        )


class SupportFlagsCollector(SignalCollector):
    name = CheckName.SUPPORT_FLAGS

    def __init__(self, config: RiskConfig, support_flags):
        self.config = config
        self.support_flags = support_flags

    def evaluate(self, subject, context):
        open_flags = self.support_flags.count_open(subject.id)
        score = float(open_flags * self.config.support_flag_weight)
        return CheckResult(passed=open_flags == 0, score=score, details={"open_flags": open_flags})


class NetworkRiskCollector(SignalCollector):
    name = CheckName.NETWORK_RISK

    def __init__(self, config: RiskConfig, network_risk):
        self.config = config
        self.network_risk = network_risk

    def evaluate(self, subject, context):
        risk = self.network_risk.get_risk(subject.account_number)
        if risk is None:
            return CheckResult(passed=True, score=0.0, details={"network_risk": None, "reason": "no network data"})
        score = proportional(
            float(risk),
            self.config.network_risk_threshold,
            self.config.network_risk_saturation,
            self.config.network_risk_weight,
        )
        return CheckResult(
            passed=score == 0,
            score=score,
            details={"network_risk": float(risk), "threshold": self.config.network_risk_threshold},
        )


class AccountAgeCollector(SignalCollector):
    """Young accounts carry the full weight, fading out linearly to zero."""

    name = CheckName.ACCOUNT_AGE

    def __init__(self, config: RiskConfig):
        self.config = config

    def evaluate(self, subject, context):
        if subject.created_at is None:
            raise CollectorError(self.name.value, "account has no creation date")
        age = context.now - _naive_utc(subject.created_at)
        age_days = max(age.total_seconds(), 0) / 86400
        full = self.config.account_age_full_risk_days
        minimum = self.config.account_age_min_days
        weight = self.config.account_age_weight
        if age_days <= full:
            score = float(weight)
        elif age_days >= minimum:
            score = 0.0
        else:
            score = round(weight * (minimum - age_days) / (minimum - full), 2)
        return CheckResult(passed=score == 0, score=score, details={"age_days": round(age_days, 2)})


class TransactionSizeCollector(SignalCollector):
    name = CheckName.TRANSACTION_SIZE

    def __init__(self, config: RiskConfig):
        self.config = config

    def evaluate(self, subject, context):
        if context.amount is None:
            return CheckResult(passed=True, score=0.0, details={"amount": None, "reason": "no triggering request"})
        amount = float(context.amount)
        score = proportional(
            amount,
            self.config.transaction_size_threshold,
            self.config.transaction_size_saturation,
            self.config.transaction_size_weight,
        )
        return CheckResult(
            passed=score == 0,
            score=score,
            details={"amount": amount, "threshold": self.config.transaction_size_threshold},
        )


class GeoConsistencyCollector(SignalCollector):
    """Flags a request made from a country other than the account's home country."""

    name = CheckName.GEO_CONSISTENCY

    def __init__(self, config: RiskConfig):
        self.config = config

    def evaluate(self, subject, context):
        home = (subject.country or "").strip().upper()
        origin = (context.country or "").strip().upper()
        if not home or not origin:
            return CheckResult(
                passed=True,
                score=0.0,
                details={"home_country": home or None, "request_country": origin or None, "reason": "country unknown"},
            )
        mismatch = home != origin
        return CheckResult(
            passed=not mismatch,
            score=float(self.config.geo_weight) if mismatch else 0.0,
            details={"home_country": home, "request_country": origin},
        )


class StructuringPatternCollector(SignalCollector):
    """
    Flags structuring: several recent requests sized just under the
    large-transaction threshold.
    """

    name = CheckName.PATTERN_ANOMALY

    def __init__(self, config: RiskConfig, requests):
        self.config = config
        self.requests = requests

    def evaluate(self, subject, context):
        since = context.now - timedelta(hours=self.config.structuring_window_hours)
        floor = self.config.structuring_floor
        ceiling = self.config.transaction_size_threshold
        near_threshold = [
            amount for amount in self.requests.amounts_since(subject.id, since) if floor <= float(amount) < ceiling
        ]
        structured = len(near_threshold) >= self.config.structuring_min_count
        return CheckResult(
            passed=not structured,
            score=float(self.config.pattern_weight) if structured else 0.0,
            details={
                "window_hours": self.config.structuring_window_hours,
                "near_threshold_count": len(near_threshold),
                "band": [floor, ceiling],
                "min_count": self.config.structuring_min_count,
            },
        )


class NotImplementedCollector(SignalCollector):
    """Placeholder strategy for a signal with no data source yet. Always passes."""

    def __init__(self, name: CheckName, weight: float):
        self.name = name
        self.weight = weight

    def evaluate(self, subject, context):
        return CheckResult(passed=True, score=0.0, details={"implemented": False, "max_weight": self.weight})


def optional_collectors(config: RiskConfig, stores, enabled: Iterable[str]) -> Dict[str, SignalCollector]:
    """
    Build the opt-in geo and pattern strategies named in ``enabled``
    (``geo_consistency``, ``pattern_anomaly``), keyed for ``default_collectors``.
    """
    names = {coerce(CheckName, name.lower()) for name in enabled if name and name.strip()}
    strategies: Dict[str, SignalCollector] = {}
    for name in names:
        if name is CheckName.GEO_CONSISTENCY:
            strategies["geo"] = GeoConsistencyCollector(config)
        elif name is CheckName.PATTERN_ANOMALY:
            strategies["pattern"] = StructuringPatternCollector(config, stores.requests)
        else:
            raise ValueError(f"{name.value} is always enabled and is not an optional check")
    return strategies


def default_collectors(config: RiskConfig, stores, geo=None, pattern=None) -> List[SignalCollector]:
    """
    Build the standard collector set.

    ``geo`` and ``pattern`` swap in real strategies for the geographic
    consistency and pattern anomaly signals.
    """
    return [
        TransferVelocityCollector(config, stores.requests),
        RequestFrequencyCollector(config, stores.requests),
        geo or NotImplementedCollector(CheckName.GEO_CONSISTENCY, config.geo_weight),
        SupportFlagsCollector(config, stores.support_flags),
        NetworkRiskCollector(config, stores.network_risk),
        AccountAgeCollector(config),
        pattern or NotImplementedCollector(CheckName.PATTERN_ANOMALY, config.pattern_weight),
        TransactionSizeCollector(config),
    ]
