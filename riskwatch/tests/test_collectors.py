from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from riskwatch.config import RiskConfig
from riskwatch.risk.collectors import (
    AccountAgeCollector,
    GeoConsistencyCollector,
    NetworkRiskCollector,
    NotImplementedCollector,
    RequestFrequencyCollector,
    ScanContext,
    StructuringPatternCollector,
    SupportFlagsCollector,
    TransactionSizeCollector,
    TransferVelocityCollector,
    default_collectors,
    optional_collectors,
    proportional,
)
from riskwatch.risk.constants import CheckName, ScanTrigger
from riskwatch.risk.errors import CollectorError

CONFIG = RiskConfig()
NOW = datetime(2024, 6, 1, 12, 0, 0)


class StubRequests:
    def __init__(self, total=0, count=0, amounts=()):
        self.total = Decimal(str(total))
        self.count = count
        self.amounts = [Decimal(str(a)) for a in amounts]
        self.calls = []

    def sum_amount_since(self, account_id, since):
        self.calls.append(("sum", account_id, since))
        return self.total

    def count_since(self, account_id, since):
        self.calls.append(("count", account_id, since))
        return self.count

    def amounts_since(self, account_id, since):
        self.calls.append(("amounts", account_id, since))
        return self.amounts


class StubFlags:
    def __init__(self, open_count):
        self.open_count = open_count

    def count_open(self, account_id):
        return self.open_count


class StubNetwork:
    def __init__(self, risk):
        self.risk = risk

    def get_risk(self, subject_id):
        return self.risk


def _subject(age_days=60, created_at=None, country=None):
    return SimpleNamespace(
        id=7,
        account_number="ACC-7",
        country=country,
        created_at=created_at if created_at is not None else NOW - timedelta(days=age_days),
    )


def _context(amount=None, trigger=ScanTrigger.MANUAL, country=None):
    return ScanContext(trigger=trigger, now=NOW, amount=amount, country=country)


def test_proportional_between_threshold_and_saturation():
    assert proportional(10000, 10000, 15000, 25) == 0
    assert proportional(12500, 10000, 15000, 25) == 12.5
    assert proportional(15000, 10000, 15000, 25) == 25
    assert proportional(90000, 10000, 15000, 25) == 25


def test_velocity_at_saturation_takes_full_weight():
    requests = StubRequests(total=15000)
    result = TransferVelocityCollector(CONFIG, requests).evaluate(_subject(), _context())
    assert result.score == 25
    assert result.passed is False
    assert result.details["total_amount"] == 15000
    assert requests.calls[0][2] == NOW - timedelta(hours=24)


def test_velocity_under_threshold_passes():
    result = TransferVelocityCollector(CONFIG, StubRequests(total=9000)).evaluate(_subject(), _context())
    assert result.passed is True
    assert result.score == 0


def test_request_frequency_is_proportional():
    collector = RequestFrequencyCollector(CONFIG, StubRequests(count=5))
    assert collector.evaluate(_subject(), _context()).score == 0
    collector = RequestFrequencyCollector(CONFIG, StubRequests(count=7))
    assert collector.evaluate(_subject(), _context()).score == 8.0
    collector = RequestFrequencyCollector(CONFIG, StubRequests(count=12))
    assert collector.evaluate(_subject(), _context()).score == 20


def test_support_flags_count_times_weight():
    result = SupportFlagsCollector(CONFIG, StubFlags(2)).evaluate(_subject(), _context())
    assert result.score == 30
    assert result.details == {"open_flags": 2}
    assert SupportFlagsCollector(CONFIG, StubFlags(0)).evaluate(_subject(), _context()).passed is True


@pytest.mark.parametrize("risk,score", [(None, 0), (40, 0), (50, 0), (62.5, 20), (75, 40), (99, 40)])
def test_network_risk(risk, score):
    result = NetworkRiskCollector(CONFIG, StubNetwork(risk)).evaluate(_subject(), _context())
    assert result.score == score


@pytest.mark.parametrize("age_days,score", [(0, 25), (2, 25), (7, 25), (18.5, 12.5), (30, 0), (400, 0)])
def test_account_age(age_days, score):
    result = AccountAgeCollector(CONFIG).evaluate(_subject(age_days=age_days), _context())
    assert result.score == score


def test_account_age_accepts_aware_datetimes():
    created = (NOW - timedelta(days=2)).replace(tzinfo=timezone.utc)
    result = AccountAgeCollector(CONFIG).evaluate(_subject(created_at=created), _context())
    assert result.score == 25


def test_account_age_without_creation_date_raises():
    subject = SimpleNamespace(id=1, account_number="ACC-1", created_at=None)
    with pytest.raises(CollectorError):
        AccountAgeCollector(CONFIG).evaluate(subject, _context())


def test_transaction_size_uses_triggering_amount():
    collector = TransactionSizeCollector(CONFIG)
    assert collector.evaluate(_subject(), _context()).score == 0
    assert collector.evaluate(_subject(), _context(amount=Decimal("5000"))).score == 0
    assert collector.evaluate(_subject(), _context(amount=Decimal("12500"))).score == 17.5
    assert collector.evaluate(_subject(), _context(amount=Decimal("25000"))).score == 35


def test_not_implemented_collector_passes():
    result = NotImplementedCollector(CheckName.GEO_CONSISTENCY, 30).evaluate(_subject(), _context())
    assert result.passed is True
    assert result.score == 0
    assert result.details["implemented"] is False


def test_default_collectors_cover_every_check():
    stores = SimpleNamespace(
        requests=StubRequests(), support_flags=StubFlags(0), network_risk=StubNetwork(None)
    )
    names = [c.name for c in default_collectors(CONFIG, stores)]
    assert sorted(n.value for n in names) == sorted(n.value for n in CheckName)


def test_default_collectors_accept_custom_strategies():
    stores = SimpleNamespace(
        requests=StubRequests(), support_flags=StubFlags(0), network_risk=StubNetwork(None)
    )
    geo = NotImplementedCollector(CheckName.GEO_CONSISTENCY, 99)
    collectors = default_collectors(CONFIG, stores, geo=geo)
    assert geo in collectors


def test_geo_consistency_flags_foreign_request():
    collector = GeoConsistencyCollector(CONFIG)
    result = collector.evaluate(_subject(country="PH"), _context(country="sg"))
    assert result.passed is False
    assert result.score == CONFIG.geo_weight
    assert result.details == {"home_country": "PH", "request_country": "SG"}

    same = collector.evaluate(_subject(country="PH"), _context(country="ph"))
    assert same.passed is True
    assert same.score == 0


@pytest.mark.parametrize("home,origin", [(None, "SG"), ("PH", None), ("", "")])
def test_geo_consistency_passes_when_country_unknown(home, origin):
    result = GeoConsistencyCollector(CONFIG).evaluate(_subject(country=home), _context(country=origin))
    assert result.passed is True
    assert result.score == 0
    assert result.details["reason"] == "country unknown"


def test_structuring_counts_amounts_just_under_large_threshold():
    requests = StubRequests(amounts=[4500, 4999.99, 4800, 5000, 300])
    result = StructuringPatternCollector(CONFIG, requests).evaluate(_subject(), _context())
    assert result.passed is False
    assert result.score == CONFIG.pattern_weight
    assert result.details["near_threshold_count"] == 3
    assert requests.calls == [("amounts", 7, NOW - timedelta(hours=CONFIG.structuring_window_hours))]


def test_structuring_below_min_count_passes():
    requests = StubRequests(amounts=[4600, 4700, 5200, 100])
    result = StructuringPatternCollector(CONFIG, requests).evaluate(_subject(), _context())
    assert result.passed is True
    assert result.score == 0
    assert result.details["near_threshold_count"] == 2


def test_optional_collectors_by_name():
    stores = SimpleNamespace(requests=StubRequests())
    strategies = optional_collectors(CONFIG, stores, ["geo_consistency", " PATTERN_ANOMALY ", ""])
    assert isinstance(strategies["geo"], GeoConsistencyCollector)
    assert isinstance(strategies["pattern"], StructuringPatternCollector)
    assert optional_collectors(CONFIG, stores, []) == {}
    with pytest.raises(ValueError):
        optional_collectors(CONFIG, stores, ["network_risk"])
    with pytest.raises(ValueError):
        optional_collectors(CONFIG, stores, ["astrology"])
