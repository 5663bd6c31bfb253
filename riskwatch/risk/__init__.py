"""
Risk domain package: signal collection, scoring, enforcement and the scan
orchestrator that ties them together for manual, automatic and scheduled
scans.
"""
