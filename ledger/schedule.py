"""
Recurrence scheduling for funding rules.

Nothing runs in the background: a caller (a cron job, an admin mutation)
asks which rules are due at ``now`` and applies them. A rule's n-th due
instant depends only on its creation time and how many distributions it
has produced, so running the schedule twice never pays a period twice.
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from errors import LedgerError
from graph.state import GraphState
from nodes.base import Capability
from nodes.rules import Chore, FundingRuleNode, Recurrence
from nodes.transactions import FundDistribution

logger = logging.getLogger(__name__)


def add_months(value: datetime, months: int) -> datetime:
    """Same day-of-month ``months`` later, clamped to the end of shorter months."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_due(rule: FundingRuleNode, state: GraphState) -> datetime | None:
    """Instant the rule's next distribution falls due, or None when it never will again."""
    if not state.is_live(rule.id):
        return None
    paid = sum(1 for _ in state.edges_from(rule.id, "distributions"))
    if rule.recurrence == Recurrence.ONE_TIME:
        return rule.created_at if paid == 0 else None
    if rule.recurrence == Recurrence.WEEKLY:
        return rule.created_at + timedelta(weeks=paid + 1)
    return add_months(rule.created_at, paid + 1)


def due_rules(state: GraphState, now: datetime) -> list[FundingRuleNode]:
    """
    Live rules due at ``now``, in creation order.

    One-time chores are left out: completing a chore is an explicit admin
    action through ``apply_rule``.
    """
    due = []
    for rule in state.nodes_of(Capability.FUNDING_RULE):
        if isinstance(rule, Chore) and rule.recurrence == Recurrence.ONE_TIME:
            continue
        instant = next_due(rule, state)
        if instant is not None and instant <= now:
            due.append(rule)
    return due


@dataclass
class ScheduleRun:
    """Outcome of one pass over the due rules."""
    now: datetime
    applied: list[FundDistribution] = field(default_factory=list)
    failures: list[tuple[str, LedgerError]] = field(default_factory=list)


def run_due_rules(service, now: datetime | None = None) -> ScheduleRun:
    """
    Apply every due rule, catching up missed periods, at ``now``.

    A rule that cannot be applied (empty wallet, retired account) is
    recorded as a failure and skipped; the other rules still run.
    """
    now = now or service.clock()
    run = ScheduleRun(now=now)
    for rule in due_rules(service.snapshot(), now):
        while True:
            try:
                run.applied.append(service.apply_rule(rule.id, at=now))
            except LedgerError as e:
                logger.warning("Could not apply rule %s: %s [%s]", rule.id, e.message, e.code)
                run.failures.append((rule.id, e))
                break
            instant = next_due(rule, service.snapshot())
            if instant is None or instant > now:
                break
    logger.info("Schedule run at %s: %d applied, %d failed", now.isoformat(), len(run.applied), len(run.failures))
    return run
