import threading
from contextlib import contextmanager
from typing import Callable, Optional

from neo4j import GraphDatabase, READ_ACCESS
from sqlalchemy import select
from sqlalchemy.orm import Session

from riskwatch.config import Config
from riskwatch.db.session import get_session
from riskwatch.logger import get_logger
from riskwatch.models import Account

logger = get_logger(__name__)

NETWORK_RISK_QUERY = """
MATCH (a:Account {account_number: $account_number})
RETURN a.risk_score AS risk_score
"""


class AccountNetworkRiskStore:
    """Reads the precomputed ``accounts.network_risk_score`` column."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or get_session

    def get_risk(self, subject_id: str) -> Optional[float]:
        session = self._session_factory()
        try:
            return session.execute(
                select(Account.network_risk_score).where(Account.account_number == subject_id)
            ).scalar_one_or_none()
        finally:
            session.close()


class Neo4jNetworkRiskStore:
    """
    Reads the ``risk_score`` property of the account node in the graph.

    The driver is opened on first use and shared by the collector threads.
    Sessions are read-only.
    """

    def __init__(self, session_provider=None, uri=None, user=None, password=None):
        self._uri = uri or Config.NEO4J_URI
        self._user = user or Config.NEO4J_USER
        self._password = password or Config.NEO4J_PASSWORD
        self._session_provider = session_provider or self._read_session
        self._driver = None
        self._lock = threading.Lock()

    def _get_driver(self):
        with self._lock:
            if self._driver is None:
                if not all([self._uri, self._user, self._password]):
                    raise RuntimeError("NEO4J_URI, NEO4J_USER, and NEO4J_PASSWORD must be set.")
                self._driver = GraphDatabase.driver(self._uri, auth=(self._user, self._password))
            return self._driver

    @contextmanager
    def _read_session(self):
        with self._get_driver().session(default_access_mode=READ_ACCESS) as session:
            yield session

    def get_risk(self, subject_id: str) -> Optional[float]:
        with self._session_provider() as session:
            record = session.run(NETWORK_RISK_QUERY, account_number=subject_id).single()
        if record is None or record["risk_score"] is None:
            return None
        return float(record["risk_score"])

    def close(self) -> None:
        with self._lock:
            if self._driver is not None:
                self._driver.close()
                self._driver = None


def build_network_risk_store(source: Optional[str] = None, session_factory=None):
    source = (source or Config.NETWORK_RISK_SOURCE or "database").lower()
    if source == "neo4j":
        logger.info("network_risk_source", source="neo4j")
        return Neo4jNetworkRiskStore()
    if source != "database":
        logger.warning("network_risk_source_unknown", source=source, fallback="database")
    return AccountNetworkRiskStore(session_factory)
