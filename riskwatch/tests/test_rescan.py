import json

from riskwatch.risk.rescan import ScheduledRescanner
from riskwatch.scripts import rescan_accounts

from conftest import create_account


def test_rescan_covers_all_accounts_in_pages(orchestrator, operators):
    create_account("ACC-R1", age_days=120)
    create_account("ACC-R2", age_days=1, network_risk=80, open_flags=2)
    create_account("ACC-R3", age_days=120)

    report = ScheduledRescanner(orchestrator, page_size=2).run("nightly-1", "admin")

    assert report.scanned == 3
    assert report.skipped == 0
    assert report.levels == {"LOW": 2, "CRITICAL": 1}


def test_rescan_is_restartable(orchestrator, operators):
    create_account("ACC-R4", age_days=120)
    ScheduledRescanner(orchestrator).run("nightly-2", "admin")
    create_account("ACC-R5", age_days=120)

    report = ScheduledRescanner(orchestrator).run("nightly-2", "admin")

    assert report.scanned == 1
    assert report.skipped == 1


def test_rescan_cli(orchestrator, operators, capsys):
    create_account("ACC-R6", age_days=120)

    code = rescan_accounts.main(["--run-id", "cli-1", "--actor", "admin", "--page-size", "5"], orchestrator=orchestrator)

    assert code == 0
    lines = [line for line in capsys.readouterr().out.splitlines() if line.startswith('{"run_id"')]
    assert json.loads(lines[-1])["scanned"] == 1


def test_rescan_cli_denies_non_admin(orchestrator, operators):
    assert rescan_accounts.main(["--run-id", "cli-2", "--actor", "analyst"], orchestrator=orchestrator) == 1
