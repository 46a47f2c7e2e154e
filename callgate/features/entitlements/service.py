"""
callgate/features/entitlements/service.py

Entitlements engine: the single entry point other parts of the system call.

Handles:
- Identity validation (before any storage access)
- Idempotent account creation on first lookup
- Snapshot fetch (subscription, trial balance, usage, catalog), optionally fanned out
- Pure decision (policy.decide_entitlements)
- Storage failures surfaced as AccountLookupError, never as "not entitled"
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from callgate.core.config import settings
from callgate.core.database import supports_concurrent_sessions
from callgate.core.errors import AccountLookupError
from callgate.features.accounts.service import get_or_create_account, normalize_external_id
from callgate.features.entitlements.policy import EntitlementsPolicy, decide_entitlements
from callgate.features.personalities.service import list_all
from callgate.features.subscriptions.service import get_subscription, resolve
from callgate.features.trial_credits.service import get_balance
from callgate.features.usage.service import get_consumption
from callgate.models.account import Account
from callgate.models.entitlements import Entitlements, EntitlementsSnapshot


logger = logging.getLogger(__name__)


def _fetchers(account_id: str, now: datetime) -> Dict[str, Callable[[], Any]]:
    return {
        "subscription": lambda: resolve(get_subscription(account_id)),
        "trial_balance": lambda: get_balance(account_id),
        "consumption": lambda: get_consumption(account_id, now),
        "catalog": lambda: tuple(list_all()),
    }


def load_snapshot(
    account: Account,
    *,
    now: Optional[datetime] = None,
    parallel: Optional[bool] = None,
) -> EntitlementsSnapshot:
    """
    Fetch the four independent snapshots for an account.

    With `parallel`, each read runs on its own worker (and session) and the
    results are joined; the snapshot is identical to a sequential fetch.
    Engines with one shared connection (in-memory SQLite) always fetch
    sequentially.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if parallel is None:
        parallel = settings.ENTITLEMENTS_PARALLEL_FANOUT

    if parallel and not supports_concurrent_sessions():
        logger.debug("[entitlements] single-connection engine, fetching sequentially")
        parallel = False

    fetchers = _fetchers(account.account_id, now)
    if parallel:
        with ThreadPoolExecutor(
            max_workers=min(len(fetchers), settings.ENTITLEMENTS_FANOUT_WORKERS),
            thread_name_prefix="entitlements",
        ) as pool:
            futures = {name: pool.submit(fn) for name, fn in fetchers.items()}
            results = {name: future.result() for name, future in futures.items()}
    else:
        results = {name: fn() for name, fn in fetchers.items()}

    return EntitlementsSnapshot(account=account, **results)


def compute_entitlements(
    external_user_id: str,
    *,
    now: Optional[datetime] = None,
    parallel: Optional[bool] = None,
    policy: Optional[EntitlementsPolicy] = None,
) -> Entitlements:
    """
    Compute the current entitlements for an external user id.

    The only side effect is the idempotent account creation on first lookup.

    Raises:
        InvalidIdentityError: empty or malformed id (no storage touched)
        AccountLookupError: any storage failure; no partial result is returned
        ConfigurationError: the account's plan has no configuration entry
    """
    external_id = normalize_external_id(external_user_id)

    try:
        account = get_or_create_account(external_id, now=now)
        snapshot = load_snapshot(account, now=now, parallel=parallel)
    except SQLAlchemyError as exc:
        logger.error(
            "[entitlements] lookup failed",
            exc_info=True,
            extra={"external_id": external_id, "error_code": AccountLookupError.code},
        )
        raise AccountLookupError(f"Entitlements lookup failed for {external_id}") from exc

    entitlements = decide_entitlements(snapshot, policy)

    logger.info(
        "[entitlements] computed",
        extra={
            "account_id": account.account_id,
            "plan": entitlements.plan,
            "status": entitlements.subscription_status.value,
            "can_call": entitlements.can_call,
            "is_overage": entitlements.is_overage,
        },
    )
    return entitlements
