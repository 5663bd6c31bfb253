"""
Enforcement dispatcher.

Turns a classified scan into side effects: review alerts, the account freeze,
the cascade of that freeze onto the account's open financial requests, and the
status gate on a triggering request. The in-transaction helpers take the
caller's session and never commit; the public operations (``escalate``,
``update_alert_status``, ``lift_freeze``) run their own transaction through
``run_in_transaction``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from riskwatch.config import RiskConfig
from riskwatch.db.session import TransactionFailed, run_in_transaction
from riskwatch.logger import get_logger
from riskwatch.models import Account, FinancialRequest, RiskAlert, RiskScan
from riskwatch.risk.audit import SYSTEM_ACTOR, AuditLogger
from riskwatch.risk.constants import (
    ACTIVE_REQUEST_STATUSES,
    ALERT_TRANSITIONS,
    REQUEST_TRANSITIONS,
    AlertStatus,
    AuditEvent,
    RequestStatus,
    RiskLevel,
    can_transition,
    coerce,
)
from riskwatch.risk.errors import EnforcementError, InvalidTransition, NotFoundError, ValidationError
from riskwatch.risk.schemas import alert_to_dict
from riskwatch.services.access_control import (
    PERMISSION_ESCALATE,
    PERMISSION_REVIEW_ALERT,
    PERMISSION_UNFREEZE,
)
from riskwatch.services.notifications import notify_safely

logger = get_logger(__name__)

ALERT_LEVELS = (RiskLevel.HIGH, RiskLevel.CRITICAL)


@dataclass
class EnforcementOutcome:
    alert: Optional[RiskAlert] = None
    frozen: bool = False
    freeze_changed: bool = False
    cascaded_request_ids: List[int] = field(default_factory=list)


@dataclass
class UnfreezeResult:
    account: Account
    changed: bool
    released_request_ids: List[int] = field(default_factory=list)


def load_account_for_update(session, subject_id: str) -> Optional[Account]:
    return session.execute(
        select(Account).where(Account.account_number == subject_id).with_for_update()
    ).scalar_one_or_none()


class EnforcementDispatcher:
    def __init__(self, config: RiskConfig, audit: AuditLogger, access_control, notifier, session_factory=None):
        self.config = config
        self.audit = audit
        self.access_control = access_control
        self.notifier = notifier
        self._session_factory = session_factory

    # -- in-transaction helpers -------------------------------------------------

    def enforce(self, session, account: Account, scan: RiskScan, level: RiskLevel, failed: List[str]) -> EnforcementOutcome:
        outcome = EnforcementOutcome()
        outcome.alert = self.raise_alert(session, account, scan, level, failed)
        if level is RiskLevel.CRITICAL:
            reason = f"Risk scan {scan.id} classified CRITICAL (score {scan.risk_score})"
            outcome.freeze_changed = self.freeze_account(session, account, scan.id, reason)
            outcome.cascaded_request_ids = self.cascade_freeze(session, account, scan.id)
            outcome.frozen = True
        return outcome

    def raise_alert(
        self,
        session,
        account: Account,
        scan: RiskScan,
        level: RiskLevel,
        failed: List[str],
        status: AlertStatus = AlertStatus.PENDING,
        always: bool = False,
        reason: Optional[str] = None,
    ) -> Optional[RiskAlert]:
        """Create the review alert for ``scan`` when its level or a degraded run calls for one."""
        mandatory = bool(scan.degraded) or always
        if level not in ALERT_LEVELS and not mandatory:
            return None
        severity = level
        if mandatory and severity.rank < RiskLevel.MEDIUM.rank:
            severity = RiskLevel.MEDIUM
        if not reason:
            if scan.degraded and level not in ALERT_LEVELS:
                reason = f"Scan {scan.id} ran degraded; manual review required"
            else:
                reason = f"Scan {scan.id} classified {level.value} (score {scan.risk_score})"
        alert = RiskAlert(
            account_id=account.id,
            scan_id=scan.id,
            severity=severity.value,
            status=status.value,
            failed_checks=list(failed),
            mandatory_review=mandatory,
            reason=reason,
            evidence={"risk_score": scan.risk_score, "risk_level": level.value},
            created_by=SYSTEM_ACTOR,
        )
        session.add(alert)
        session.flush()
        self.audit.record(
            session,
            AuditEvent.ALERT_CREATED,
            account.account_number,
            ref_ids={"alert_id": alert.id, "scan_id": scan.id},
            payload={
                "severity": alert.severity,
                "status": alert.status,
                "failed_checks": alert.failed_checks,
                "mandatory_review": alert.mandatory_review,
            },
        )
        logger.info(
            "alert_created",
            subject_id=account.account_number,
            scan_id=scan.id,
            alert_id=alert.id,
            severity=alert.severity,
            mandatory_review=alert.mandatory_review,
        )
        return alert

    def freeze_account(self, session, account: Account, scan_id: Optional[int], reason: str, actor: str = SYSTEM_ACTOR) -> bool:
        """Freeze ``account``. Returns False when nothing changed."""
        if account.frozen and account.frozen_reason == reason and account.frozen_by_scan_id == scan_id:
            return False
        was_frozen = bool(account.frozen)
        previous = {"reason": account.frozen_reason, "scan_id": account.frozen_by_scan_id}
        if not was_frozen:
            account.frozen = True
            account.frozen_at = datetime.utcnow()
        account.frozen_reason = reason
        account.frozen_by_scan_id = scan_id
        session.add(account)
        session.flush()
        event_type = AuditEvent.ACCOUNT_FREEZE_UPDATED if was_frozen else AuditEvent.ACCOUNT_FROZEN
        payload = {"reason": reason}
        if was_frozen:
            payload["previous"] = previous
        self.audit.record(
            session,
            event_type,
            account.account_number,
            ref_ids={"account_id": account.id, "scan_id": scan_id},
            payload=payload,
            actor=actor,
        )
        logger.info(
            "account_frozen" if not was_frozen else "account_freeze_updated",
            subject_id=account.account_number,
            scan_id=scan_id,
        )
        return True

    def cascade_freeze(self, session, account: Account, scan_id: Optional[int], actor: str = SYSTEM_ACTOR) -> List[int]:
        requests = session.execute(
            select(FinancialRequest)
            .where(
                FinancialRequest.account_id == account.id,
                FinancialRequest.status.in_([s.value for s in ACTIVE_REQUEST_STATUSES]),
            )
            .order_by(FinancialRequest.id)
            .with_for_update()
        ).scalars().all()
        frozen_ids = []
        for fin_request in requests:
            self.set_request_status(
                session, fin_request, RequestStatus.FROZEN, account.account_number, scan_id=scan_id, actor=actor
            )
            frozen_ids.append(fin_request.id)
        if frozen_ids:
            logger.info("freeze_cascaded", subject_id=account.account_number, scan_id=scan_id, requests=len(frozen_ids))
        return frozen_ids

    def set_request_status(
        self,
        session,
        fin_request: FinancialRequest,
        target: RequestStatus,
        subject_id: str,
        scan_id: Optional[int] = None,
        actor: str = SYSTEM_ACTOR,
    ) -> bool:
        current = RequestStatus(fin_request.status)
        if current is target:
            return False
        if not can_transition(REQUEST_TRANSITIONS, current, target):
            raise InvalidTransition("financial request", current.value, target.value)
        fin_request.status = target.value
        session.add(fin_request)
        session.flush()
        self.audit.record(
            session,
            AuditEvent.FINANCIAL_REQUEST_STATUS_CHANGED,
            subject_id,
            ref_ids={"financial_request_id": fin_request.id, "scan_id": scan_id},
            payload={"from": current.value, "to": target.value},
            actor=actor,
        )
        return True

    def gate_request(self, session, fin_request: FinancialRequest, target: RequestStatus, subject_id: str, scan_id: int) -> RequestStatus:
        """Release or hold a freshly scanned request. A cascade may already have frozen it."""
        current = RequestStatus(fin_request.status)
        if current is not RequestStatus.PENDING_SCAN:
            return current
        self.set_request_status(session, fin_request, target, subject_id, scan_id=scan_id)
        logger.info("request_gated", subject_id=subject_id, scan_id=scan_id, financial_request_id=fin_request.id, status=target.value)
        return target

    # -- operations ------------------------------------------------------------

    def _run(self, work):
        try:
            return run_in_transaction(
                work,
                attempts=self.config.enforcement_max_attempts,
                backoff_seconds=self.config.enforcement_backoff_seconds,
                session_factory=self._session_factory,
            )
        except TransactionFailed as exc:
            raise EnforcementError(str(exc)) from exc

    def escalate(
        self,
        subject_id: str,
        reason: str,
        severity=None,
        evidence: Optional[Dict[str, Any]] = None,
        requested_by: Optional[str] = None,
    ) -> RiskAlert:
        """Open an ``ESCALATED`` alert on an account without scoring it."""
        self.access_control.authorize(requested_by, PERMISSION_ESCALATE)
        if not subject_id:
            raise ValidationError("subject_id is required")
        if not reason or not str(reason).strip():
            raise ValidationError("reason is required")
        try:
            level = coerce(RiskLevel, severity) if severity else RiskLevel.HIGH
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if evidence is not None and not isinstance(evidence, dict):
            raise ValidationError("evidence must be an object")

        def work(session):
            account = session.execute(select(Account).where(Account.account_number == subject_id)).scalar_one_or_none()
            if account is None:
                raise ValidationError(f"Unknown subject {subject_id}")
            alert = RiskAlert(
                account_id=account.id,
                scan_id=None,
                severity=level.value,
                status=AlertStatus.ESCALATED.value,
                failed_checks=[],
                mandatory_review=True,
                reason=str(reason).strip(),
                evidence=evidence or {},
                created_by=requested_by,
            )
            session.add(alert)
            session.flush()
            self.audit.record(
                session,
                AuditEvent.ALERT_CREATED,
                subject_id,
                ref_ids={"alert_id": alert.id},
                payload={"severity": alert.severity, "status": alert.status, "manual": True},
                actor=requested_by,
            )
            return alert

        alert = self._run(work)
        logger.info("alert_escalated", subject_id=subject_id, alert_id=alert.id, severity=alert.severity, actor=requested_by)
        notify_safely(self.notifier, alert_to_dict(alert, subject_id=subject_id))
        return alert

    def update_alert_status(self, alert_id: int, status, actor: Optional[str], note: Optional[str] = None) -> RiskAlert:
        self.access_control.authorize(actor, PERMISSION_REVIEW_ALERT)
        try:
            target = coerce(AlertStatus, status)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        def work(session):
            alert = session.execute(select(RiskAlert).where(RiskAlert.id == alert_id).with_for_update()).scalar_one_or_none()
            if alert is None:
                raise NotFoundError(f"Alert {alert_id} not found")
            current = AlertStatus(alert.status)
            if not can_transition(ALERT_TRANSITIONS, current, target):
                raise InvalidTransition("alert", current.value, target.value)
            alert.status = target.value
            if note:
                alert.resolution_note = note
            session.add(alert)
            session.flush()
            subject_id = session.execute(
                select(Account.account_number).where(Account.id == alert.account_id)
            ).scalar_one()
            self.audit.record(
                session,
                AuditEvent.ALERT_STATUS_CHANGED,
                subject_id,
                ref_ids={"alert_id": alert.id, "scan_id": alert.scan_id},
                payload={"from": current.value, "to": target.value, "note": note},
                actor=actor,
            )
            return alert, subject_id

        alert, subject_id = self._run(work)
        logger.info("alert_status_changed", subject_id=subject_id, alert_id=alert.id, status=alert.status, actor=actor)
        if target is AlertStatus.ESCALATED:
            notify_safely(self.notifier, alert_to_dict(alert, subject_id=subject_id))
        return alert

    def lift_freeze(self, subject_id: str, actor: Optional[str], reason: Optional[str] = None) -> UnfreezeResult:
        """
        Clear the freeze and release the account's frozen requests.

        Requests gated to FROZEN by a HIGH scan are released even though the
        account itself was never frozen. Released requests go back to review,
        never straight to approved.
        """
        self.access_control.authorize(actor, PERMISSION_UNFREEZE)

        def work(session):
            account = load_account_for_update(session, subject_id)
            if account is None:
                raise NotFoundError(f"Account {subject_id} not found")
            was_frozen = bool(account.frozen)
            if was_frozen:
                previous = {"reason": account.frozen_reason, "scan_id": account.frozen_by_scan_id}
                account.frozen = False
                account.frozen_at = None
                account.frozen_reason = None
                account.frozen_by_scan_id = None
                session.add(account)
                session.flush()
                self.audit.record(
                    session,
                    AuditEvent.ACCOUNT_UNFROZEN,
                    subject_id,
                    ref_ids={"account_id": account.id},
                    payload={"reason": reason, "previous": previous},
                    actor=actor,
                )
            frozen_requests = session.execute(
                select(FinancialRequest)
                .where(
                    FinancialRequest.account_id == account.id,
                    FinancialRequest.status == RequestStatus.FROZEN.value,
                )
                .order_by(FinancialRequest.id)
            ).scalars().all()
            released = []
            for fin_request in frozen_requests:
                self.set_request_status(session, fin_request, RequestStatus.PENDING_REVIEW, subject_id, actor=actor)
                released.append(fin_request.id)
            return UnfreezeResult(account=account, changed=was_frozen or bool(released), released_request_ids=released)

        result = self._run(work)
        if result.changed:
            logger.info("freeze_lifted", subject_id=subject_id, actor=actor, released=len(result.released_request_ids))
        return result
