"""
Scheduled bulk re-scan of every account.

Usage:
  python -m riskwatch.scripts.rescan_accounts --run-id 2024-06-01 --actor scheduler

Re-running with the same --run-id resumes the run: accounts it already scanned
are skipped.
"""

import argparse
import json
import sys
from datetime import datetime

from riskwatch.config import RiskConfig
from riskwatch.logger import get_logger
from riskwatch.risk.errors import RiskWatchError
from riskwatch.risk.orchestrator import build_orchestrator
from riskwatch.risk.rescan import ScheduledRescanner

logger = get_logger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Re-scan all accounts and enforce the results.")
    parser.add_argument("--run-id", default=None, help="Idempotency key for this run (default: today's UTC date)")
    parser.add_argument("--actor", required=True, help="Operator username the run is performed as")
    parser.add_argument("--page-size", type=int, default=None, help="Accounts per page")
    return parser.parse_args(argv)


def main(argv=None, orchestrator=None) -> int:
    args = parse_args(argv)
    run_id = args.run_id or datetime.utcnow().strftime("%Y-%m-%d")
    orchestrator = orchestrator or build_orchestrator(RiskConfig.from_env())
    rescanner = ScheduledRescanner(orchestrator, page_size=args.page_size)
    try:
        report = rescanner.run(run_id, args.actor)
    except RiskWatchError as exc:
        logger.error("rescan_aborted", run_id=run_id, error=exc.message or str(exc))
        return 1
    print(json.dumps(report.to_dict()))
    return 0 if report.failed == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
