from .base import Base
from .account import Account
from .operator import Operator, ROLE_VALUES
from .financial_request import FinancialRequest, REQUEST_STATUS_VALUES
from .support_flag import SupportFlag, FLAG_STATUS_VALUES
from .scan import RiskScan, TRIGGER_VALUES, RISK_LEVEL_VALUES
from .alert import RiskAlert, STATUS_VALUES
from .audit_entry import AuditEntry, EVENT_TYPE_VALUES

__all__ = [
    "Base",
    "Account",
    "Operator",
    "ROLE_VALUES",
    "FinancialRequest",
    "REQUEST_STATUS_VALUES",
    "SupportFlag",
    "FLAG_STATUS_VALUES",
    "RiskScan",
    "TRIGGER_VALUES",
    "RISK_LEVEL_VALUES",
    "RiskAlert",
    "STATUS_VALUES",
    "AuditEntry",
    "EVENT_TYPE_VALUES",
]
