"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (SQLite in-memory via StaticPool)
- Atomic insert-if-absent for idempotent upserts
- Table definitions for accounts, trial credits, subscriptions, usage, personalities
"""
import logging
from typing import Optional, Dict, Any, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from sqlalchemy import (
    create_engine,
    MetaData,
    Table,
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    Text,
    Index,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    false,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func

from callgate.core.config import settings


logger = logging.getLogger(__name__)


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    TEST_DATABASE_URL wins when set (test runs against a real database).
    """
    if settings.TEST_DATABASE_URL:
        return settings.TEST_DATABASE_URL

    return settings.DATABASE_URL


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith(":"))


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if _is_memory_sqlite(url):
        # One shared connection so every session sees the same in-memory database
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    elif url.startswith("sqlite"):
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": POOL_TIMEOUT},
            echo=False,
        )
    else:
        # Create engine with connection pooling
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Dispose the current engine (tests switch databases between cases)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def supports_concurrent_sessions() -> bool:
    """False for the single shared connection used by in-memory SQLite."""
    return not isinstance(get_engine().pool, StaticPool)


def check_connection() -> bool:
    """True if the database answers SELECT 1."""
    try:
        with get_engine().connect() as conn:
            conn.execute(select(1))
        return True
    except SQLAlchemyError:
        logger.warning("[database] connection check failed", exc_info=True)
        return False


def insert_if_absent(
    session: Session,
    table: Table,
    values: Dict[str, Any],
    index_elements: Sequence[str],
) -> int:
    """Atomic INSERT ... ON CONFLICT DO NOTHING.

    Returns the number of inserted rows (0 when the row already existed).
    Supported on PostgreSQL and SQLite; anything else is a deployment error.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table)
    elif dialect == "sqlite":
        stmt = sqlite.insert(table)
    else:
        raise RuntimeError(f"insert_if_absent is not supported on dialect {dialect!r}")
    result = session.execute(
        stmt.values(**values).on_conflict_do_nothing(index_elements=list(index_elements))
    )
    return result.rowcount or 0


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from drivers that drop tzinfo."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Accounts: one row per external identity
accounts = Table(
    'accounts',
    metadata,
    Column('account_id', String(36), primary_key=True),
    Column('external_id', String(255), nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint('external_id', name='uq_accounts_external_id'),
    Index('idx_accounts_created_at', 'created_at'),
)

# Trial credit balances (1:1 with accounts)
trial_credit_balances = Table(
    'trial_credit_balances',
    metadata,
    Column('account_id', String(36), ForeignKey('accounts.account_id'), primary_key=True),
    Column('remaining_credits', Integer, nullable=False, server_default='0'),
    Column('purchase_count', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    CheckConstraint('remaining_credits >= 0', name='ck_trial_credit_balances_remaining_non_negative'),
    CheckConstraint('purchase_count >= 0', name='ck_trial_credit_balances_purchase_count_non_negative'),
)

# Subscriptions (written by payment-webhook handling; newest row is current)
subscriptions = Table(
    'subscriptions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('account_id', String(36), ForeignKey('accounts.account_id'), nullable=False),
    Column('plan_id', String(50), nullable=False),
    Column('status', String(20), nullable=False),  # trialing, active, past_due, canceled
    Column('token_allotment', Integer, nullable=False, server_default='0'),
    Column('period_start', DateTime(timezone=True), nullable=True),
    Column('period_end', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    CheckConstraint('token_allotment >= 0', name='ck_subscriptions_token_allotment_non_negative'),
    Index('idx_subscriptions_account_created', 'account_id', 'created_at', 'id'),
    Index('idx_subscriptions_status', 'status'),
)

# Token consumption per metering period
usage_periods = Table(
    'usage_periods',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('account_id', String(36), ForeignKey('accounts.account_id'), nullable=False),
    Column('period_start', DateTime(timezone=True), nullable=False),
    Column('period_end', DateTime(timezone=True), nullable=False),
    Column('tokens_consumed', Integer, nullable=False, server_default='0'),
    Column('reset_at', DateTime(timezone=True), nullable=True),
    Column('reset_by', String(100), nullable=True),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    UniqueConstraint('account_id', 'period_start', name='uq_usage_periods_account_start'),
    CheckConstraint('tokens_consumed >= 0', name='ck_usage_periods_tokens_consumed_non_negative'),
    Index('idx_usage_periods_account_window', 'account_id', 'period_start', 'period_end'),
)

# Personality catalog (seeded at deployment time, read-only at request time)
personalities = Table(
    'personalities',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('name', String(100), nullable=False),
    Column('description', Text, nullable=False),
    Column('agent_id', String(100), nullable=True),
    Column('tier_required', String(10), nullable=False),  # trial, paid
    Column('is_boss', Boolean, nullable=False, server_default=false()),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint('name', name='uq_personalities_name'),
    Index('idx_personalities_tier', 'tier_required'),
)
