"""
callgate/features/trial_credits/service.py

Trial credit ledger.

Handles:
- Balance reads (default row created on first access, idempotent)
- Repurchase eligibility
- Write paths used by the call-lifecycle and purchase flows:
  conditional decrement on call consumption, pack purchase
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, update

from callgate.core.config import settings
from callgate.core.database import get_db_session, trial_credit_balances, insert_if_absent
from callgate.core.errors import TrialPurchaseLimitError, ValidationError
from callgate.models.trial_credit import TrialCreditBalance


logger = logging.getLogger(__name__)


def _default_values(account_id: str, now: datetime) -> dict:
    return {
        "account_id": account_id,
        "remaining_credits": settings.TRIAL_INITIAL_CREDITS,
        "purchase_count": 0,
        "created_at": now,
        "updated_at": now,
    }


def _select_balance(session, account_id: str):
    return session.execute(
        select(trial_credit_balances).where(trial_credit_balances.c.account_id == account_id)
    ).first()


def get_balance(account_id: str) -> TrialCreditBalance:
    """
    Get the trial balance, creating the default row on first access.

    The default is inserted with ON CONFLICT DO NOTHING; racing first readers
    converge on one row with the same constant values.
    """
    with get_db_session() as session:
        row = _select_balance(session, account_id)
        if row is None:
            insert_if_absent(
                session,
                trial_credit_balances,
                _default_values(account_id, datetime.now(timezone.utc)),
                index_elements=["account_id"],
            )
            row = _select_balance(session, account_id)

        return TrialCreditBalance(
            account_id=row.account_id,
            remaining_credits=int(row.remaining_credits),
            purchase_count=int(row.purchase_count),
        )


def can_purchase_another_pack(balance: TrialCreditBalance) -> bool:
    """True while purchase_count is below TRIAL_MAX_PURCHASES."""
    return balance.purchase_count < settings.TRIAL_MAX_PURCHASES


def consume_trial_call(account_id: str) -> Optional[int]:
    """
    Consume one trial credit for a placed call.

    The decrement is conditional (remaining_credits > 0) so the balance can
    never go negative, even with concurrent calls.

    Returns:
        Remaining credits after consumption, or None if no credit was available
    """
    with get_db_session() as session:
        result = session.execute(
            update(trial_credit_balances)
            .where(trial_credit_balances.c.account_id == account_id)
            .where(trial_credit_balances.c.remaining_credits > 0)
            .values(
                remaining_credits=trial_credit_balances.c.remaining_credits - 1,
                updated_at=datetime.now(timezone.utc),
            )
        )
        if not result.rowcount:
            logger.warning("[trial_credits] no credit to consume", extra={"account_id": account_id})
            return None
        row = _select_balance(session, account_id)
        remaining = int(row.remaining_credits)

    logger.info(
        "[trial_credits] consumed",
        extra={"account_id": account_id, "remaining_credits": remaining},
    )
    return remaining


def record_trial_purchase(account_id: str, credits: Optional[int] = None) -> TrialCreditBalance:
    """
    Record a purchased trial pack: add credits and bump purchase_count.

    Raises:
        TrialPurchaseLimitError: purchase_count already at TRIAL_MAX_PURCHASES
        ValidationError: non-positive credits
    """
    pack_credits = settings.TRIAL_PACK_CREDITS if credits is None else credits
    if pack_credits <= 0:
        raise ValidationError("trial pack credits must be positive")

    # Make sure the row exists before the guarded update
    get_balance(account_id)

    with get_db_session() as session:
        result = session.execute(
            update(trial_credit_balances)
            .where(trial_credit_balances.c.account_id == account_id)
            .where(trial_credit_balances.c.purchase_count < settings.TRIAL_MAX_PURCHASES)
            .values(
                remaining_credits=trial_credit_balances.c.remaining_credits + pack_credits,
                purchase_count=trial_credit_balances.c.purchase_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
        )
        if not result.rowcount:
            raise TrialPurchaseLimitError(
                f"Trial pack limit of {settings.TRIAL_MAX_PURCHASES} reached for account {account_id}"
            )
        row = _select_balance(session, account_id)
        balance = TrialCreditBalance(
            account_id=row.account_id,
            remaining_credits=int(row.remaining_credits),
            purchase_count=int(row.purchase_count),
        )

    logger.info(
        "[trial_credits] pack purchased",
        extra={
            "account_id": account_id,
            "remaining_credits": balance.remaining_credits,
            "purchase_count": balance.purchase_count,
        },
    )
    return balance
