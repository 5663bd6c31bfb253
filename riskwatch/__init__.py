"""
RiskWatch: account risk scanning, review alerts and freeze enforcement for
financial requests.
"""
