"""Prometheus metrics helpers."""

from __future__ import annotations

from prometheus_client import Counter

MEMBERSHIP_OPERATIONS_TOTAL = Counter(
    "orgroster_membership_operations_total",
    "Total number of membership operations by outcome.",
    ["operation", "outcome"],
)

CRITICAL_ERRORS_TOTAL = Counter(
    "orgroster_critical_errors_total",
    "Operations that left partial state requiring manual remediation.",
    ["operation"],
)

NOTIFICATIONS_TOTAL = Counter(
    "orgroster_notifications_total",
    "Invitation notifications by delivery outcome.",
    ["outcome"],
)


def observe_operation(*, operation: str, outcome: str) -> None:
    MEMBERSHIP_OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()
    if outcome == "critical":
        CRITICAL_ERRORS_TOTAL.labels(operation=operation).inc()


def observe_notification(*, delivered: bool) -> None:
    NOTIFICATIONS_TOTAL.labels(outcome="sent" if delivered else "failed").inc()
