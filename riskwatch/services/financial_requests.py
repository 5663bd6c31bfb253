import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from riskwatch.db.session import get_session
from riskwatch.logger import get_logger
from riskwatch.models import Account, FinancialRequest
from riskwatch.risk.constants import RequestStatus
from riskwatch.risk.errors import NotFoundError, ValidationError

logger = get_logger(__name__)


def _parse_amount(raw) -> Decimal:
    try:
        amount = Decimal(str(raw))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {raw!r}")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("amount must be a positive number")
    return amount.quantize(Decimal("0.01"))


def create_financial_request(
    subject_id: str,
    amount,
    currency: Optional[str] = None,
    country: Optional[str] = None,
    request_reference: Optional[str] = None,
) -> FinancialRequest:
    """Persist a new request in ``PENDING_SCAN``; it stays unspendable until the scan gates it."""
    if not subject_id:
        raise ValidationError("subject_id is required")
    value = _parse_amount(amount)
    session = get_session()
    try:
        account = session.execute(select(Account).where(Account.account_number == subject_id)).scalar_one_or_none()
        if account is None:
            raise ValidationError(f"Unknown subject {subject_id}")
        fin_request = FinancialRequest(
            request_reference=request_reference or f"FR-{uuid.uuid4().hex[:12].upper()}",
            account_id=account.id,
            amount=value,
            currency=(currency or "PHP").upper(),
            country=country.upper() if country else None,
            status=RequestStatus.PENDING_SCAN.value,
        )
        session.add(fin_request)
        session.commit()
        logger.info("financial_request_created", subject_id=subject_id, financial_request_id=fin_request.id, amount=float(value))
        return fin_request
    except IntegrityError:
        session.rollback()
        raise ValidationError(f"Duplicate request_reference {request_reference}")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_financial_request(request_id: int):
    session = get_session()
    try:
        row = session.execute(
            select(FinancialRequest, Account.account_number)
            .join(Account, FinancialRequest.account_id == Account.id)
            .where(FinancialRequest.id == request_id)
        ).first()
        if row is None:
            raise NotFoundError(f"Financial request {request_id} not found")
        return row[0], row[1]
    finally:
        session.close()
