"""
Account identity service.

- get_or_create_account(external_id): the one write on the entitlements read
  path, an atomic insert-if-absent keyed on the external identity
- get_account(account_id)
- normalize_external_id()
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4
from sqlalchemy import select

from callgate.core.config import settings
from callgate.core.database import (
    get_db_session,
    accounts,
    trial_credit_balances,
    insert_if_absent,
    as_utc,
)
from callgate.core.errors import InvalidIdentityError
from callgate.models.account import Account


logger = logging.getLogger(__name__)

MAX_EXTERNAL_ID_LENGTH = 255


def normalize_external_id(external_id: Optional[str]) -> str:
    """Validate and normalize an external user id.

    Raises:
        InvalidIdentityError: empty, too long, or containing control characters
    """
    if not isinstance(external_id, str):
        raise InvalidIdentityError("external user id must be a string")
    normalized = external_id.strip()
    if not normalized:
        raise InvalidIdentityError("external user id is empty")
    if len(normalized) > MAX_EXTERNAL_ID_LENGTH:
        raise InvalidIdentityError(
            f"external user id exceeds {MAX_EXTERNAL_ID_LENGTH} characters"
        )
    if any(not ch.isprintable() for ch in normalized):
        raise InvalidIdentityError("external user id contains control characters")
    return normalized


def _row_to_account(row) -> Account:
    return Account(
        account_id=row.account_id,
        external_id=row.external_id,
        created_at=as_utc(row.created_at),
    )


def get_account(account_id: str) -> Optional[Account]:
    with get_db_session() as session:
        row = session.execute(
            select(accounts).where(accounts.c.account_id == account_id)
        ).first()
        return _row_to_account(row) if row else None


def get_account_by_external_id(external_id: str) -> Optional[Account]:
    with get_db_session() as session:
        row = session.execute(
            select(accounts).where(accounts.c.external_id == external_id)
        ).first()
        return _row_to_account(row) if row else None


def get_or_create_account(external_id: str, now: Optional[datetime] = None) -> Account:
    """
    Resolve the account for an external identity, creating it on first access.

    Safe under concurrent first access: the insert is ON CONFLICT DO NOTHING on
    the unique external_id, so racing callers all read back the same row. The
    default trial-credit row is seeded in the same transaction with the same
    primitive; its values are constant, so replays are harmless.
    """
    external_id = normalize_external_id(external_id)
    if now is None:
        now = datetime.now(timezone.utc)

    with get_db_session() as session:
        created = insert_if_absent(
            session,
            accounts,
            {
                "account_id": str(uuid4()),
                "external_id": external_id,
                "created_at": now,
            },
            index_elements=["external_id"],
        )
        row = session.execute(
            select(accounts).where(accounts.c.external_id == external_id)
        ).one()
        if created:
            insert_if_absent(
                session,
                trial_credit_balances,
                {
                    "account_id": row.account_id,
                    "remaining_credits": settings.TRIAL_INITIAL_CREDITS,
                    "purchase_count": 0,
                    "created_at": now,
                    "updated_at": now,
                },
                index_elements=["account_id"],
            )

    account = _row_to_account(row)
    if created:
        logger.info(
            "[accounts] created",
            extra={"account_id": account.account_id, "external_id": external_id},
        )
    return account
