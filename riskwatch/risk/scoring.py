from typing import Iterable, Mapping, Union

from riskwatch.config import RiskConfig
from riskwatch.risk.collectors import CheckResult
from riskwatch.risk.constants import RiskLevel


def aggregate(results: Union[Mapping[str, CheckResult], Iterable[CheckResult]], config: RiskConfig = None) -> int:
    """Sum check scores, clamp to ``[0, score_cap]`` and round to an int."""
    config = config or RiskConfig()
    if isinstance(results, Mapping):
        results = results.values()
    total = sum(float(r.score) for r in results)
    clamped = min(max(total, 0.0), float(config.score_cap))
    return int(round(clamped))


def classify(score: int, config: RiskConfig = None) -> RiskLevel:
    config = config or RiskConfig()
    if score >= config.critical_threshold:
        return RiskLevel.CRITICAL
    if score >= config.high_threshold:
        return RiskLevel.HIGH
    if score >= config.medium_threshold:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def failed_checks(results: Mapping[str, CheckResult]):
    return sorted(name for name, result in results.items() if not result.passed)
