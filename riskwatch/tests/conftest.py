import os
import tempfile
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="riskwatch-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'riskwatch-test.db')}"
os.environ["NETWORK_RISK_SOURCE"] = "database"
os.environ.setdefault("LOG_FORMAT", "console")

from riskwatch.app import create_app, init_db  # noqa: E402
from riskwatch.config import RiskConfig  # noqa: E402
from riskwatch.db.session import engine, get_session  # noqa: E402
from riskwatch.models import Account, Base, FinancialRequest, Operator, SupportFlag  # noqa: E402
from riskwatch.risk.orchestrator import build_orchestrator  # noqa: E402
from riskwatch.services.network_risk import AccountNetworkRiskStore  # noqa: E402


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, alert):
        self.sent.append(alert)


def create_account(subject_id, age_days=60, network_risk=None, open_flags=0, closed_flags=0, frozen=False, country=None):
    session = get_session()
    try:
        account = Account(
            account_number=subject_id,
            customer_name=f"Customer {subject_id}",
            country=country,
            network_risk_score=network_risk,
            frozen=frozen,
            created_at=datetime.utcnow() - timedelta(days=age_days),
        )
        session.add(account)
        session.flush()
        for idx in range(open_flags):
            session.add(SupportFlag(account_id=account.id, reason=f"open flag {idx}", status="OPEN"))
        for idx in range(closed_flags):
            session.add(SupportFlag(account_id=account.id, reason=f"closed flag {idx}", status="CLOSED"))
        session.commit()
        return account
    finally:
        session.close()


def create_request(account_id, amount, status="PAID", hours_ago=1, reference=None, country=None):
    session = get_session()
    try:
        created = datetime.utcnow() - timedelta(hours=hours_ago)
        fin_request = FinancialRequest(
            request_reference=reference or f"REF-{uuid.uuid4().hex[:12]}",
            account_id=account_id,
            amount=Decimal(str(amount)),
            currency="PHP",
            country=country,
            status=status,
            created_at=created,
            updated_at=created,
        )
        session.add(fin_request)
        session.commit()
        return fin_request
    finally:
        session.close()


def create_operator(username, role="ANALYST", active=True):
    session = get_session()
    try:
        operator = Operator(username=username, role=role, active=active)
        session.add(operator)
        session.commit()
        return operator
    finally:
        session.close()


@pytest.fixture()
def db():
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def risk_config():
    return RiskConfig(enforcement_backoff_seconds=0, collector_timeout_seconds=2.0)


@pytest.fixture()
def orchestrator(db, risk_config, notifier):
    return build_orchestrator(risk_config, notifier=notifier, network_risk=AccountNetworkRiskStore())


@pytest.fixture()
def operators(db):
    create_operator("admin", "ADMIN")
    create_operator("compliance", "COMPLIANCE")
    create_operator("analyst", "ANALYST")
    create_operator("viewer", "VIEWER")
    create_operator("retired", "ADMIN", active=False)


@pytest.fixture()
def client(orchestrator, operators):
    app = create_app(orchestrator=orchestrator)
    with app.test_client() as client:
        yield client
