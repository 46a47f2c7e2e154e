"""
callgate/models/account.py

Account model: one row per external identity (e.g. the auth provider's user id).
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict


class Account(BaseModel):
    """
    Account links an opaque external identity to a stable internal id.

    Constraint: created once per external_id (idempotent upsert), never duplicated.
    """
    model_config = ConfigDict(frozen=True)

    account_id: str
    external_id: str
    created_at: datetime
