"""
callgate/features/usage/service.py

Token metering.

Handles:
- Consumption lookup for the period containing `now`
- UsagePeriod assembly (consumption + subscription allotment)
- tokens_remaining / is_overage (pure)
- Write paths: call-completion token recording, administrative reset
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, Tuple
from sqlalchemy import select, update

from callgate.core.database import get_db_session, usage_periods, insert_if_absent, as_utc
from callgate.core.errors import ValidationError
from callgate.core.logging import log_event
from callgate.models.subscription import ResolvedSubscription
from callgate.models.usage_period import UsageConsumption, UsagePeriod


logger = logging.getLogger(__name__)


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Calendar month (UTC) containing `now`; the default metering window."""
    now = _normalize_now(now)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    # Day 28 + 4 days always lands in the next month
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month


def metering_window(account_id: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    The metering window containing `now`.

    The current subscription period when it contains `now`, else the calendar
    month. Reads and writes both key on this window, so usage recorded before
    a mid-month subscription never counts against the new allotment.
    """
    from callgate.features.subscriptions.service import get_subscription

    now = _normalize_now(now)
    record = get_subscription(account_id)
    if record and record.period_start and record.period_end:
        if record.period_start <= now < record.period_end:
            return record.period_start, record.period_end
    return month_bounds(now)


def _select_period_row(session, account_id: str, period_start: datetime):
    return session.execute(
        select(usage_periods)
        .where(usage_periods.c.account_id == account_id)
        .where(usage_periods.c.period_start == period_start)
    ).first()


def get_consumption(account_id: str, now: Optional[datetime] = None) -> UsageConsumption:
    """
    Tokens consumed in the metering window containing `now`.

    Read-only: with nothing recorded in the window, reports zero consumption
    over that window.
    """
    start, end = metering_window(account_id, now)
    with get_db_session() as session:
        row = _select_period_row(session, account_id, start)
    if row is None:
        return UsageConsumption(account_id=account_id, tokens_consumed=0, period_start=start, period_end=end)
    return UsageConsumption(
        account_id=account_id,
        tokens_consumed=int(row.tokens_consumed),
        period_start=as_utc(row.period_start),
        period_end=as_utc(row.period_end),
    )


def current_period(consumption: UsageConsumption, subscription: ResolvedSubscription) -> UsagePeriod:
    """Join consumption with the subscription allotment. Pure."""
    return UsagePeriod(
        account_id=consumption.account_id,
        tokens_consumed=consumption.tokens_consumed,
        token_allotment=subscription.token_allotment,
        period_start=consumption.period_start,
        period_end=consumption.period_end,
    )


def get_current_period(account_id: str, now: Optional[datetime] = None) -> UsagePeriod:
    from callgate.features.subscriptions.service import resolve_for_account

    return current_period(get_consumption(account_id, now), resolve_for_account(account_id))


def tokens_remaining(period: UsagePeriod) -> int:
    """Never negative, even in overage."""
    return max(0, period.token_allotment - period.tokens_consumed)


def is_overage(period: UsagePeriod) -> bool:
    """
    True iff consumption exceeds a non-zero allotment.

    A zero-allotment (free) account is never in overage; it is simply out of
    tokens, which tokens_remaining == 0 already reports.
    """
    return period.token_allotment > 0 and period.tokens_consumed > period.token_allotment


def record_token_usage(
    account_id: str,
    tokens: int,
    *,
    now: Optional[datetime] = None,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
) -> UsageConsumption:
    """
    Add consumed tokens to the period containing `now` (call-completion path).

    The window defaults to the current subscription period, or the calendar
    month without one. The increment is a single atomic UPDATE.

    Raises:
        ValidationError: negative tokens or an inverted window
    """
    if tokens < 0:
        raise ValidationError("tokens must be >= 0")
    now = _normalize_now(now)
    if period_start is None or period_end is None:
        period_start, period_end = metering_window(account_id, now)
    else:
        period_start, period_end = _normalize_now(period_start), _normalize_now(period_end)
    if period_end <= period_start:
        raise ValidationError("period_end must be after period_start")

    with get_db_session() as session:
        insert_if_absent(
            session,
            usage_periods,
            {
                "account_id": account_id,
                "period_start": period_start,
                "period_end": period_end,
                "tokens_consumed": 0,
                "updated_at": now,
            },
            index_elements=["account_id", "period_start"],
        )
        session.execute(
            update(usage_periods)
            .where(usage_periods.c.account_id == account_id)
            .where(usage_periods.c.period_start == period_start)
            .values(
                tokens_consumed=usage_periods.c.tokens_consumed + tokens,
                updated_at=now,
            )
        )
        row = session.execute(
            select(usage_periods)
            .where(usage_periods.c.account_id == account_id)
            .where(usage_periods.c.period_start == period_start)
        ).one()

    return UsageConsumption(
        account_id=account_id,
        tokens_consumed=int(row.tokens_consumed),
        period_start=as_utc(row.period_start),
        period_end=as_utc(row.period_end),
    )


def reset_usage(account_id: str, *, reset_by: str, now: Optional[datetime] = None) -> bool:
    """
    Administrative reset of the current period's consumption.

    The only operation that reduces tokens_consumed. Returns False when
    there is no stored period to reset.
    """
    if not reset_by:
        raise ValidationError("reset_by is required for an administrative reset")
    now = _normalize_now(now)
    start, _ = metering_window(account_id, now)
    with get_db_session() as session:
        row = _select_period_row(session, account_id, start)
        if row is None:
            return False
        session.execute(
            update(usage_periods)
            .where(usage_periods.c.id == row.id)
            .values(tokens_consumed=0, reset_at=now, reset_by=reset_by, updated_at=now)
        )
        previous = int(row.tokens_consumed)

    log_event(
        "warning",
        "[usage] administrative reset",
        request_id=None,
        account_id=account_id,
        event_type="usage.reset",
        extra={"reset_by": reset_by, "tokens_consumed_before": previous},
    )
    return True
