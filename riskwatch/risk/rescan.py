from dataclasses import dataclass, field
from typing import Dict, List, Optional

from riskwatch.logger import get_logger
from riskwatch.risk.errors import RiskWatchError
from riskwatch.services.access_control import PERMISSION_SCHEDULED_SCAN

logger = get_logger(__name__)


@dataclass
class RescanReport:
    run_id: str
    scanned: int = 0
    skipped: int = 0
    failed: int = 0
    levels: Dict[str, int] = field(default_factory=dict)
    failures: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self):
        return {
            "run_id": self.run_id,
            "scanned": self.scanned,
            "skipped": self.skipped,
            "failed": self.failed,
            "levels": dict(self.levels),
            "failures": list(self.failures),
        }


class ScheduledRescanner:
    """
    Re-scan every account in pages ordered by id.

    Runs are restartable: scans are keyed by ``(run_id, account)`` so running
    the same ``run_id`` again skips the accounts it already covered.
    """

    def __init__(self, orchestrator, page_size: Optional[int] = None):
        self.orchestrator = orchestrator
        self.page_size = page_size or orchestrator.config.rescan_page_size

    def run(self, run_id: str, requested_by: Optional[str]) -> RescanReport:
        self.orchestrator.access_control.authorize(requested_by, PERMISSION_SCHEDULED_SCAN)
        report = RescanReport(run_id=run_id)
        log = logger.bind(run_id=run_id)
        log.info("rescan_started", page_size=self.page_size)
        for page in self.orchestrator.stores.accounts.iter_pages(self.page_size):
            for account in page:
                try:
                    outcome = self.orchestrator.scan_for_run(account, run_id, requested_by)
                except RiskWatchError as exc:
                    report.failed += 1
                    report.failures.append({"subject_id": account.account_number, "error": exc.message or str(exc)})
                    log.error("rescan_account_failed", subject_id=account.account_number, error=str(exc))
                    continue
                if outcome.duplicate:
                    report.skipped += 1
                    continue
                report.scanned += 1
                level = outcome.scan.risk_level
                report.levels[level] = report.levels.get(level, 0) + 1
            log.info("rescan_page_done", accounts=len(page), scanned=report.scanned, skipped=report.skipped)
        log.info("rescan_finished", **report.to_dict())
        return report
