from .scans import scans_bp
from .financial_requests import financial_requests_bp
from .alerts import alerts_bp
from .accounts import accounts_bp
from .audit import audit_bp

__all__ = ["scans_bp", "financial_requests_bp", "alerts_bp", "accounts_bp", "audit_bp"]
