"""
callgate/features/subscriptions/service.py

Subscription status resolution.

Handles:
- Current subscription lookup (newest record per account)
- Normalization to (plan, status, token_allotment); no record means (free, none, 0)
- Lifecycle state machine for the write paths used by payment-event handling

Calling policy (e.g. whether past_due may still call) is not decided here.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional
from sqlalchemy import select, insert, update

from callgate.core.database import get_db_session, subscriptions, as_utc
from callgate.core.errors import ConflictError, InvalidStatusTransitionError, ValidationError
from callgate.features.plans.service import FREE_PLAN_ID, get_plan_config
from callgate.models.subscription import (
    ResolvedSubscription,
    SubscriptionRecord,
    SubscriptionStatus,
)


logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[SubscriptionStatus, FrozenSet[SubscriptionStatus]] = {
    SubscriptionStatus.NONE: frozenset({SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE}),
    SubscriptionStatus.TRIALING: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
    }),
    SubscriptionStatus.ACTIVE: frozenset({SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED}),
    SubscriptionStatus.PAST_DUE: frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELED}),
    SubscriptionStatus.CANCELED: frozenset(),
}

# Statuses a fresh record may enter at
ENTRY_STATUSES = frozenset({SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE})


def can_transition(current: SubscriptionStatus, new: SubscriptionStatus) -> bool:
    """Same-state updates are accepted (replayed provider events)."""
    return current == new or new in ALLOWED_TRANSITIONS[current]


def _row_to_record(row) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=row.id,
        account_id=row.account_id,
        plan_id=row.plan_id,
        status=SubscriptionStatus(row.status),
        token_allotment=int(row.token_allotment),
        period_start=as_utc(row.period_start),
        period_end=as_utc(row.period_end),
        created_at=as_utc(row.created_at),
    )


def get_subscription(account_id: str) -> Optional[SubscriptionRecord]:
    """Most recently created subscription record, or None."""
    with get_db_session() as session:
        row = session.execute(
            select(subscriptions)
            .where(subscriptions.c.account_id == account_id)
            .order_by(subscriptions.c.created_at.desc(), subscriptions.c.id.desc())
            .limit(1)
        ).first()
        return _row_to_record(row) if row else None


def resolve(record: Optional[SubscriptionRecord]) -> ResolvedSubscription:
    """Normalize a (possibly absent) record. Pure."""
    if record is None:
        return ResolvedSubscription(
            plan=FREE_PLAN_ID,
            status=SubscriptionStatus.NONE,
            token_allotment=0,
        )
    return ResolvedSubscription(
        plan=record.plan_id,
        status=record.status,
        token_allotment=record.token_allotment,
        period_start=record.period_start,
        period_end=record.period_end,
    )


def resolve_for_account(account_id: str) -> ResolvedSubscription:
    return resolve(get_subscription(account_id))


def start_subscription(
    account_id: str,
    plan_id: str,
    *,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    token_allotment: Optional[int] = None,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> SubscriptionRecord:
    """
    Create a fresh subscription record.

    Fresh records enter at trialing or active. A canceled record is never
    resumed; resubscribing always goes through here.

    Raises:
        ValidationError: bad entry status, the free plan, or a negative allotment
        ConflictError: the account still has a non-canceled subscription
        ConfigurationError: unknown plan
    """
    status = SubscriptionStatus(status)
    if status not in ENTRY_STATUSES:
        raise ValidationError(f"New subscriptions must start as trialing or active, not {status.value}")
    if plan_id == FREE_PLAN_ID:
        raise ValidationError("The free plan needs no subscription record")
    plan = get_plan_config(plan_id)
    allotment = plan.token_allotment if token_allotment is None else token_allotment
    if allotment < 0:
        raise ValidationError("token_allotment must be >= 0")
    if now is None:
        now = datetime.now(timezone.utc)
    period_start, period_end = as_utc(period_start), as_utc(period_end)
    if period_start and period_end and period_end <= period_start:
        raise ValidationError("period_end must be after period_start")

    current = get_subscription(account_id)
    if current is not None and current.status != SubscriptionStatus.CANCELED:
        raise ConflictError(
            f"Account {account_id} already has a {current.status.value} subscription"
        )

    with get_db_session() as session:
        result = session.execute(
            insert(subscriptions).values(
                account_id=account_id,
                plan_id=plan_id,
                status=status.value,
                token_allotment=allotment,
                period_start=period_start,
                period_end=period_end,
                created_at=now,
                updated_at=now,
            )
        )
        record_id = result.inserted_primary_key[0]

    logger.info(
        "[subscriptions] started",
        extra={"account_id": account_id, "plan": plan_id, "status": status.value},
    )
    return SubscriptionRecord(
        id=record_id,
        account_id=account_id,
        plan_id=plan_id,
        status=status,
        token_allotment=allotment,
        period_start=period_start,
        period_end=period_end,
        created_at=now,
    )


def transition_status(account_id: str, new_status: SubscriptionStatus) -> SubscriptionRecord:
    """
    Move the current subscription to `new_status` following the state machine.

    Raises:
        InvalidStatusTransitionError: transition not allowed (including any
            move out of canceled, or updating an account with no subscription)
    """
    new_status = SubscriptionStatus(new_status)
    current = get_subscription(account_id)
    current_status = current.status if current else SubscriptionStatus.NONE

    if current is None or not can_transition(current_status, new_status) or new_status == SubscriptionStatus.NONE:
        logger.warning(
            "[subscriptions] rejected transition",
            extra={
                "account_id": account_id,
                "status": current_status.value,
                "requested_status": new_status.value,
            },
        )
        raise InvalidStatusTransitionError(
            f"Cannot move subscription from {current_status.value} to {new_status.value}"
        )

    if current.status == new_status:
        return current

    with get_db_session() as session:
        session.execute(
            update(subscriptions)
            .where(subscriptions.c.id == current.id)
            .values(status=new_status.value, updated_at=datetime.now(timezone.utc))
        )

    logger.info(
        "[subscriptions] status changed",
        extra={
            "account_id": account_id,
            "plan": current.plan_id,
            "previous_status": current.status.value,
            "status": new_status.value,
        },
    )
    return current.model_copy(update={"status": new_status})


def list_subscribed_plan_ids() -> List[str]:
    """Distinct plan ids referenced by stored subscriptions (startup validation)."""
    with get_db_session() as session:
        rows = session.execute(select(subscriptions.c.plan_id).distinct()).all()
    return sorted(row.plan_id for row in rows)
