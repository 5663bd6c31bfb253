"""
Scan orchestrator.

Every scan runs COLLECT -> AGGREGATE -> CLASSIFY -> ENFORCE -> PERSIST. The
collectors fan out on a thread pool; the scan row, its alert, the freeze and
cascade, the request gate and all audit entries are then written in a single
transaction.
"""

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from riskwatch.config import Config, RiskConfig
from riskwatch.db.session import TransactionFailed, get_session, run_in_transaction
from riskwatch.logger import get_logger
from riskwatch.models import Account, FinancialRequest, RiskAlert, RiskScan
from riskwatch.risk.audit import SYSTEM_ACTOR, AuditLogger
from riskwatch.risk.collectors import CheckResult, ScanContext, default_collectors, optional_collectors
from riskwatch.risk.constants import (
    GATE_FOR_LEVEL,
    AlertStatus,
    AuditEvent,
    RequestStatus,
    RiskLevel,
    ScanTrigger,
)
from riskwatch.risk.enforcement import EnforcementDispatcher, load_account_for_update
from riskwatch.risk.errors import CollectorError, EnforcementError, NotFoundError, ValidationError
from riskwatch.risk.schemas import alert_to_dict, scan_to_dict
from riskwatch.risk.scoring import aggregate, classify, failed_checks
from riskwatch.services.access_control import (
    PERMISSION_MANUAL_SCAN,
    PERMISSION_SCHEDULED_SCAN,
    OperatorAccessControl,
)
from riskwatch.services.network_risk import build_network_risk_store
from riskwatch.services.notifications import build_notifier, notify_safely
from riskwatch.services.stores import AccountStore, CollaboratorStores, FinancialRequestStore, SupportFlagStore

logger = get_logger(__name__)


def financial_request_key(request_id: int) -> str:
    return f"financial_request:{request_id}"


def scheduled_key(run_id: str, account_id: int) -> str:
    return f"scheduled:{run_id}:{account_id}"


def gate_status(level: RiskLevel, degraded: bool, account_frozen: bool) -> RequestStatus:
    """Initial status for a request scanned at creation time."""
    if account_frozen:
        return RequestStatus.FROZEN
    target = GATE_FOR_LEVEL[level]
    if degraded and target is RequestStatus.APPROVED:
        return RequestStatus.PENDING_REVIEW
    return target


@dataclass
class ScanOutcome:
    scan: RiskScan
    subject_id: str
    alert: Optional[RiskAlert] = None
    frozen: bool = False
    cascaded_request_ids: List[int] = field(default_factory=list)
    financial_request_status: Optional[str] = None
    duplicate: bool = False
    enforcement_failed: bool = False

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel(self.scan.risk_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scan": scan_to_dict(self.scan, subject_id=self.subject_id),
            "alert": alert_to_dict(self.alert, subject_id=self.subject_id) if self.alert else None,
            "frozen": self.frozen,
            "cascaded_request_ids": self.cascaded_request_ids,
            "financial_request_status": self.financial_request_status,
            "duplicate": self.duplicate,
            "enforcement_failed": self.enforcement_failed,
        }


class ScanOrchestrator:
    def __init__(
        self,
        config: RiskConfig,
        stores: CollaboratorStores,
        collectors,
        dispatcher: EnforcementDispatcher,
        audit: AuditLogger,
        access_control,
        notifier,
        session_factory=None,
    ):
        self.config = config
        self.stores = stores
        self.collectors = list(collectors)
        self.dispatcher = dispatcher
        self.audit = audit
        self.access_control = access_control
        self.notifier = notifier
        self._session_factory = session_factory

    # -- entry points ----------------------------------------------------------

    def submit_manual_scan(self, subject_id: str, requested_by: Optional[str]) -> ScanOutcome:
        self.access_control.authorize(requested_by, PERMISSION_MANUAL_SCAN)
        account = self._require_account(subject_id)
        context = ScanContext(trigger=ScanTrigger.MANUAL, requested_by=requested_by)
        return self._scan(account, context)

    def on_financial_request_created(self, request_id: int) -> ScanOutcome:
        session = self._new_session()
        try:
            fin_request = session.get(FinancialRequest, request_id)
            if fin_request is None:
                raise NotFoundError(f"Financial request {request_id} not found")
            account = session.get(Account, fin_request.account_id)
        finally:
            session.close()
        key = financial_request_key(request_id)
        existing = self._existing_outcome(key, account.account_number)
        if existing is not None:
            logger.info("scan_duplicate_trigger", subject_id=account.account_number, request_key=key)
            return existing
        context = ScanContext(
            trigger=ScanTrigger.AUTOMATIC,
            amount=fin_request.amount,
            financial_request_id=fin_request.id,
            country=fin_request.country,
        )
        return self._scan(account, context, request_key=key)

    def run_scheduled_scan(self, subject_id: str, run_id: str, requested_by: Optional[str]) -> ScanOutcome:
        self.access_control.authorize(requested_by, PERMISSION_SCHEDULED_SCAN)
        account = self._require_account(subject_id)
        return self.scan_for_run(account, run_id, requested_by)

    def scan_for_run(self, account: Account, run_id: str, requested_by: Optional[str]) -> ScanOutcome:
        """Scheduled scan of an already authorized run. Skips accounts this run already scanned."""
        if not run_id:
            raise ValidationError("run_id is required")
        key = scheduled_key(run_id, account.id)
        existing = self._existing_outcome(key, account.account_number)
        if existing is not None:
            return existing
        context = ScanContext(trigger=ScanTrigger.SCHEDULED, requested_by=requested_by)
        return self._scan(account, context, request_key=key)

    def get_scan(self, scan_id: int) -> ScanOutcome:
        session = self._new_session()
        try:
            row = session.execute(
                select(RiskScan, Account.account_number)
                .join(Account, RiskScan.account_id == Account.id)
                .where(RiskScan.id == scan_id)
            ).first()
            if row is None:
                raise NotFoundError(f"Scan {scan_id} not found")
            scan, subject_id = row
            alert = session.execute(select(RiskAlert).where(RiskAlert.scan_id == scan.id)).scalar_one_or_none()
        finally:
            session.close()
        return ScanOutcome(scan=scan, subject_id=subject_id, alert=alert)

    def list_scans(self, subject_id: str, limit: int = 50) -> List[RiskScan]:
        account = self.stores.accounts.get_by_subject(subject_id)
        if account is None:
            raise NotFoundError(f"Account {subject_id} not found")
        session = self._new_session()
        try:
            return list(
                session.execute(
                    select(RiskScan)
                    .where(RiskScan.account_id == account.id)
                    .order_by(RiskScan.created_at.desc(), RiskScan.id.desc())
                    .limit(max(1, min(int(limit), 500)))
                ).scalars()
            )
        finally:
            session.close()

    # -- pipeline --------------------------------------------------------------

    def collect(self, account: Account, context: ScanContext) -> Dict[str, CheckResult]:
        """Run every collector concurrently. Failures and timeouts become degraded results."""
        results: Dict[str, CheckResult] = {}
        executor = ThreadPoolExecutor(max_workers=max(1, len(self.collectors)), thread_name_prefix="collector")
        try:
            futures = {executor.submit(c.evaluate, account, context): c for c in self.collectors}
            _, pending = wait(futures, timeout=self.config.collector_timeout_seconds)
            for future, collector in futures.items():
                name = collector.name.value
                if future in pending:
                    error = CollectorError(name, f"timed out after {self.config.collector_timeout_seconds}s")
                    results[name] = self._degraded_result(account, error)
                    continue
                try:
                    results[name] = future.result()
                except CollectorError as exc:
                    results[name] = self._degraded_result(account, exc)
                except Exception as exc:
                    results[name] = self._degraded_result(account, CollectorError(name, str(exc) or type(exc).__name__))
        finally:
            executor.shutdown(wait=False)
        return results

    @staticmethod
    def _degraded_result(account: Account, error: CollectorError) -> CheckResult:
        logger.warning("collector_failed", subject_id=account.account_number, check=error.check, error=error.message)
        return CheckResult(passed=False, score=0.0, details={"error": error.message, "degraded": True})

    def _scan(self, account: Account, context: ScanContext, request_key: Optional[str] = None) -> ScanOutcome:
        subject_id = account.account_number
        log = logger.bind(subject_id=subject_id, trigger=context.trigger.value)
        results = self.collect(account, context)
        degraded = any(r.details.get("degraded") for r in results.values())
        score = aggregate(results, self.config)
        level = classify(score, self.config)
        failed = failed_checks(results)
        log.info("scan_scored", risk_score=score, risk_level=level.value, degraded=degraded, failed_checks=failed)

        def build_scan(session, account_row):
            scan = RiskScan(
                account_id=account_row.id,
                trigger=context.trigger.value,
                checks={name: result.to_dict() for name, result in results.items()},
                risk_score=score,
                risk_level=level.value,
                degraded=degraded,
                request_key=request_key,
                financial_request_id=context.financial_request_id,
                requested_by=context.requested_by,
            )
            session.add(scan)
            session.flush()
            self.audit.record(
                session,
                AuditEvent.SCAN_CREATED,
                subject_id,
                ref_ids={"scan_id": scan.id, "financial_request_id": context.financial_request_id},
                payload={"trigger": scan.trigger, "risk_score": score, "risk_level": level.value, "degraded": degraded},
                actor=context.requested_by or SYSTEM_ACTOR,
            )
            return scan

        def enforce_and_persist(session):
            account_row = load_account_for_update(session, subject_id)
            if account_row is None:
                raise ValidationError(f"Unknown subject {subject_id}")
            scan = build_scan(session, account_row)
            enforcement = self.dispatcher.enforce(session, account_row, scan, level, failed)
            outcome = ScanOutcome(
                scan=scan,
                subject_id=subject_id,
                alert=enforcement.alert,
                frozen=bool(account_row.frozen),
                cascaded_request_ids=enforcement.cascaded_request_ids,
            )
            if context.financial_request_id is not None:
                fin_request = session.execute(
                    select(FinancialRequest).where(FinancialRequest.id == context.financial_request_id).with_for_update()
                ).scalar_one()
                target = gate_status(level, degraded, bool(account_row.frozen))
                outcome.financial_request_status = self.dispatcher.gate_request(
                    session, fin_request, target, subject_id, scan.id
                ).value
            return outcome

        def fallback(session, error):
            account_row = load_account_for_update(session, subject_id)
            scan = build_scan(session, account_row)
            alert = self.dispatcher.raise_alert(
                session,
                account_row,
                scan,
                level,
                failed,
                status=AlertStatus.ESCALATED,
                always=True,
                reason=f"Enforcement failed for scan {scan.id} ({level.value}, score {score}); escalated to compliance",
            )
            outcome = ScanOutcome(
                scan=scan,
                subject_id=subject_id,
                alert=alert,
                frozen=bool(account_row.frozen),
                enforcement_failed=True,
            )
            if context.financial_request_id is not None:
                fin_request = session.get(FinancialRequest, context.financial_request_id)
                self.dispatcher.set_request_status(
                    session, fin_request, RequestStatus.FROZEN, subject_id, scan_id=scan.id
                )
                outcome.financial_request_status = fin_request.status
            self.audit.record(
                session,
                AuditEvent.ENFORCEMENT_FAILED,
                subject_id,
                ref_ids={"scan_id": scan.id, "alert_id": alert.id, "financial_request_id": context.financial_request_id},
                payload={"error": str(error), "risk_level": level.value},
            )
            return outcome

        try:
            outcome = self._run(enforce_and_persist)
        except IntegrityError:
            existing = self._existing_outcome(request_key, subject_id) if request_key else None
            if existing is None:
                raise
            log.info("scan_duplicate_trigger", request_key=request_key)
            return existing
        except TransactionFailed as exc:
            log.error("enforcement_failed", attempts=exc.attempts, error=str(exc.last_error))
            try:
                outcome = self._run(lambda session: fallback(session, exc.last_error), attempts=1)
            except Exception as fallback_exc:
                log.error("enforcement_fallback_failed", error=str(fallback_exc))
                raise EnforcementError(f"Enforcement failed for {subject_id}: {exc.last_error}") from fallback_exc
            notify_safely(self.notifier, alert_to_dict(outcome.alert, subject_id=subject_id))
            return outcome

        log.info(
            "scan_persisted",
            scan_id=outcome.scan.id,
            risk_score=score,
            risk_level=level.value,
            alert_id=outcome.alert.id if outcome.alert else None,
            frozen=outcome.frozen,
            cascaded=len(outcome.cascaded_request_ids),
            financial_request_status=outcome.financial_request_status,
        )
        if outcome.alert is not None and level is RiskLevel.CRITICAL:
            notify_safely(self.notifier, alert_to_dict(outcome.alert, subject_id=subject_id))
        return outcome

    # -- helpers ---------------------------------------------------------------

    def _run(self, work, attempts: Optional[int] = None):
        return run_in_transaction(
            work,
            attempts=attempts or self.config.enforcement_max_attempts,
            backoff_seconds=self.config.enforcement_backoff_seconds,
            session_factory=self._session_factory,
        )

    def _new_session(self):
        return (self._session_factory or get_session)()

    def _require_account(self, subject_id: Optional[str]) -> Account:
        if not subject_id or not str(subject_id).strip():
            raise ValidationError("subject_id is required")
        account = self.stores.accounts.get_by_subject(str(subject_id).strip())
        if account is None:
            raise ValidationError(f"Unknown subject {subject_id}")
        return account

    def _existing_outcome(self, request_key: str, subject_id: str) -> Optional[ScanOutcome]:
        session = self._new_session()
        try:
            scan = session.execute(select(RiskScan).where(RiskScan.request_key == request_key)).scalar_one_or_none()
            if scan is None:
                return None
            alert = session.execute(select(RiskAlert).where(RiskAlert.scan_id == scan.id)).scalar_one_or_none()
            fin_status = None
            if scan.financial_request_id is not None:
                fin_status = session.execute(
                    select(FinancialRequest.status).where(FinancialRequest.id == scan.financial_request_id)
                ).scalar_one_or_none()
            frozen = session.execute(select(Account.frozen).where(Account.id == scan.account_id)).scalar_one()
        finally:
            session.close()
        return ScanOutcome(
            scan=scan,
            subject_id=subject_id,
            alert=alert,
            frozen=bool(frozen),
            financial_request_status=fin_status,
            duplicate=True,
        )


def build_orchestrator(
    config: Optional[RiskConfig] = None,
    session_factory=None,
    notifier=None,
    access_control=None,
    network_risk=None,
    geo=None,
    pattern=None,
    optional_checks=None,
) -> ScanOrchestrator:
    """
    Wire the orchestrator and its collaborators from configuration.

    ``optional_checks`` names the opt-in geo and pattern strategies to enable;
    it defaults to ``RISKWATCH_OPTIONAL_CHECKS``. Explicit ``geo`` and
    ``pattern`` collectors take precedence.
    """
    config = config or RiskConfig.from_env()
    stores = CollaboratorStores(
        accounts=AccountStore(session_factory),
        requests=FinancialRequestStore(session_factory),
        support_flags=SupportFlagStore(session_factory),
        network_risk=network_risk or build_network_risk_store(session_factory=session_factory),
    )
    audit = AuditLogger(session_factory)
    access_control = access_control or OperatorAccessControl(session_factory)
    notifier = notifier or build_notifier()
    dispatcher = EnforcementDispatcher(config, audit, access_control, notifier, session_factory=session_factory)
    if optional_checks is None:
        optional_checks = Config.RISKWATCH_OPTIONAL_CHECKS.split(",")
    strategies = optional_collectors(config, stores, optional_checks)
    return ScanOrchestrator(
        config=config,
        stores=stores,
        collectors=default_collectors(
            config, stores, geo=geo or strategies.get("geo"), pattern=pattern or strategies.get("pattern")
        ),
        dispatcher=dispatcher,
        audit=audit,
        access_control=access_control,
        notifier=notifier,
        session_factory=session_factory,
    )
