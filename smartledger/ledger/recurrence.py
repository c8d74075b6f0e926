"""
Recurrence Scheduler

Advances recurring templates into concrete transactions, catching up on
every due date up to "today" in one pass.

Dates step on the calendar, not by elapsed time. Month and year steps
aim for the day-of-month the template started on and clamp to the last
day of shorter months: a template started on the 31st fires on Jan 31,
Feb 29 (2024), Mar 31, Apr 30, ...

A single pass emits at most `max_catch_up_iterations` instances per
template, so a template dormant for years needs several passes (one per
session) to catch up rather than flooding the log at once.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from smartledger.config import get_settings
from smartledger.logging_config import get_logger
from smartledger.models.ledger import (
    Frequency,
    LedgerSnapshot,
    RecurringTransaction,
    Transaction,
)


logger = get_logger(__name__)


class RecurrenceResult(BaseModel):
    """What one template produced in one pass."""

    instances: list[Transaction] = Field(default_factory=list)
    template: RecurringTransaction


class CatchUpResult(BaseModel):
    """What a catch-up pass over a whole snapshot produced."""

    snapshot: LedgerSnapshot
    generated_count: int = Field(default=0, ge=0)


def local_today() -> date:
    settings = get_settings().ledger
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int, *, desired_day: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(desired_day, days_in_month(year, month))
    return date(year, month, day)


def _months_to_parity(base: date, frequency: Frequency) -> int:
    want_odd = frequency == Frequency.BI_MONTHLY_ODD
    months = 1
    while ((base.month - 1 + months) % 12 + 1) % 2 != (1 if want_odd else 0):
        months += 1
    return months


def step_date(
    current: date,
    frequency: Frequency,
    anchor_day: Optional[int] = None,
) -> date:
    """
    The due date following `current`.

    `anchor_day` is the day-of-month month/year steps aim for (normally
    the template's start day); it defaults to `current.day`.

    Raises OverflowError past year 9999.
    """
    desired_day = anchor_day or current.day

    if frequency == Frequency.DAILY:
        return current + timedelta(days=1)
    if frequency == Frequency.WEEKLY:
        return current + timedelta(weeks=1)
    if frequency == Frequency.MONTHLY:
        months = 1
    elif frequency == Frequency.YEARLY:
        months = 12
    else:
        # BI_MONTHLY_ODD / BI_MONTHLY_EVEN: one or two months ahead,
        # whichever lands on a month of the required parity.
        months = _months_to_parity(current, frequency)

    try:
        return _add_months(current, months, desired_day=desired_day)
    except ValueError as exc:
        raise OverflowError(str(exc)) from exc


def _new_instance_id() -> str:
    return f"auto_{uuid4().hex}"


def advance(
    template: RecurringTransaction,
    today: date,
    *,
    max_iterations: Optional[int] = None,
    description_suffix: Optional[str] = None,
    id_factory: Callable[[], str] = _new_instance_id,
) -> RecurrenceResult:
    """
    Emit every instance of `template` due on or before `today`.

    Stops when the next due date is in the future, past the template's
    end date, or after `max_iterations` instances. The returned template
    carries the advanced `next_due_date`; the input is not modified.

    Never raises: a template that cannot be stepped further is logged and
    left where it is.
    """
    settings = get_settings().ledger
    if max_iterations is None:
        max_iterations = settings.max_catch_up_iterations
    if description_suffix is None:
        description_suffix = settings.recurring_description_suffix

    anchor_day = template.start_date.day
    next_due = template.next_due_date
    last_generated = template.last_generated
    instances: list[Transaction] = []

    while next_due <= today and len(instances) < max_iterations:
        if template.end_date and next_due > template.end_date:
            break

        try:
            following = step_date(next_due, template.frequency, anchor_day)
        except OverflowError:
            logger.warning(
                "recurring_template_stuck",
                template_id=template.id,
                next_due_date=next_due.isoformat(),
            )
            break

        instances.append(Transaction(
            id=id_factory(),
            date=next_due.isoformat(),
            amount=template.amount,
            type=template.type,
            category=template.category,
            description=f"{template.description}{description_suffix}",
            location=template.location,
            account_id=template.account_id,
            to_account_id=template.to_account_id,
            is_recurring_instance=True,
        ))
        last_generated = next_due
        next_due = following

    if not instances:
        return RecurrenceResult(template=template)

    updated = template.model_copy(update={
        "next_due_date": next_due,
        "last_generated": last_generated,
    })
    if next_due <= today and not updated.is_dormant:
        logger.info(
            "recurring_catch_up_capped",
            template_id=template.id,
            generated=len(instances),
            next_due_date=next_due.isoformat(),
        )
    return RecurrenceResult(instances=instances, template=updated)


def run_catch_up(
    snapshot: LedgerSnapshot,
    today: Optional[date] = None,
    **advance_options,
) -> CatchUpResult:
    """
    Advance every template in the snapshot.

    New instances are prepended to the transaction log. Run this before
    computing balances so they reflect today's recurring entries. Calling
    it again on the same day produces nothing new.
    """
    today = today or local_today()
    new_transactions: list[Transaction] = []
    templates: list[RecurringTransaction] = []

    for template in snapshot.recurring_transactions:
        result = advance(template, today, **advance_options)
        new_transactions.extend(result.instances)
        templates.append(result.template)

    if not new_transactions:
        return CatchUpResult(snapshot=snapshot)

    logger.info(
        "recurring_instances_generated",
        count=len(new_transactions),
        today=today.isoformat(),
    )
    updated = snapshot.model_copy(update={
        "transactions": new_transactions + list(snapshot.transactions),
        "recurring_transactions": templates,
    })
    return CatchUpResult(snapshot=updated, generated_count=len(new_transactions))


def template_from_transaction(
    transaction: Transaction,
    frequency: Frequency,
    *,
    end_date: Optional[date] = None,
    start_next_cycle: bool = False,
    template_id: Optional[str] = None,
) -> RecurringTransaction:
    """
    Build a recurring template from a transaction saved with the recurring flag.

    A new entry is first due on its own date, so the catch-up pass creates
    it. When an existing transaction is turned into a template
    (`start_next_cycle=True`), the first due date is one step later so the
    transaction is not duplicated.

    Raises ValueError if the transaction date is not an ISO date.
    """
    start = date.fromisoformat(transaction.date)
    next_due = step_date(start, frequency) if start_next_cycle else start
    return RecurringTransaction(
        id=template_id or f"rec_{uuid4().hex}",
        frequency=frequency,
        start_date=start,
        next_due_date=next_due,
        end_date=end_date,
        amount=transaction.numeric_amount or 0,
        type=transaction.type,
        category=transaction.category,
        description=transaction.description,
        location=transaction.location,
        account_id=transaction.account_id,
        to_account_id=transaction.to_account_id,
    )
