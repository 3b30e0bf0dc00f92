"""
CovenantWatch Alerting.

Components:
- generator: Status-transition watcher that synthesizes covenant alerts
- escalation: Severity escalation and alert summaries
"""
