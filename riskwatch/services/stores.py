"""
Read-only collaborator stores used by the signal collectors.

Each call opens and closes its own session so collectors can run on worker
threads without sharing a Session.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterator, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from riskwatch.db.session import get_session
from riskwatch.models import Account, FinancialRequest, SupportFlag
from riskwatch.risk.constants import RequestStatus, SupportFlagStatus

# Rejected requests never moved money and do not count toward velocity.
_COUNTED_STATUSES = tuple(s.value for s in RequestStatus if s is not RequestStatus.REJECTED)


class _SessionStore:
    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or get_session

    def _session(self) -> Session:
        return self._session_factory()


class AccountStore(_SessionStore):
    def get_by_subject(self, subject_id: str) -> Optional[Account]:
        session = self._session()
        try:
            return session.execute(select(Account).where(Account.account_number == subject_id)).scalar_one_or_none()
        finally:
            session.close()

    def iter_pages(self, page_size: int, after_id: int = 0) -> Iterator[List[Account]]:
        """Yield accounts ordered by id in pages of at most ``page_size``."""
        last_id = after_id
        while True:
            session = self._session()
            try:
                page = list(
                    session.execute(
                        select(Account).where(Account.id > last_id).order_by(Account.id).limit(page_size)
                    ).scalars()
                )
            finally:
                session.close()
            if not page:
                return
            yield page
            last_id = page[-1].id


class FinancialRequestStore(_SessionStore):
    def sum_amount_since(self, account_id: int, since: datetime) -> Decimal:
        session = self._session()
        try:
            total = session.execute(
                select(func.coalesce(func.sum(FinancialRequest.amount), 0)).where(
                    FinancialRequest.account_id == account_id,
                    FinancialRequest.created_at >= since,
                    FinancialRequest.status.in_(_COUNTED_STATUSES),
                )
            ).scalar_one()
        finally:
            session.close()
        return Decimal(str(total or 0))

    def amounts_since(self, account_id: int, since: datetime) -> List[Decimal]:
        session = self._session()
        try:
            rows = session.execute(
                select(FinancialRequest.amount)
                .where(
                    FinancialRequest.account_id == account_id,
                    FinancialRequest.created_at >= since,
                    FinancialRequest.status.in_(_COUNTED_STATUSES),
                )
                .order_by(FinancialRequest.created_at)
            ).scalars()
            return [Decimal(str(amount)) for amount in rows]
        finally:
            session.close()

    def count_since(self, account_id: int, since: datetime) -> int:
        session = self._session()
        try:
            return session.execute(
                select(func.count(FinancialRequest.id)).where(
                    FinancialRequest.account_id == account_id,
                    FinancialRequest.created_at >= since,
                    FinancialRequest.status.in_(_COUNTED_STATUSES),
                )
            ).scalar_one()
        finally:
            session.close()


class SupportFlagStore(_SessionStore):
    def count_open(self, account_id: int) -> int:
        session = self._session()
        try:
            return session.execute(
                select(func.count(SupportFlag.id)).where(
                    SupportFlag.account_id == account_id,
                    SupportFlag.status == SupportFlagStatus.OPEN.value,
                )
            ).scalar_one()
        finally:
            session.close()


class CollaboratorStores:
    """Bundle of the stores the default collectors read from."""

    def __init__(self, accounts, requests, support_flags, network_risk):
        self.accounts = accounts
        self.requests = requests
        self.support_flags = support_flags
        self.network_risk = network_risk
