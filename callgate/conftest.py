# callgate/conftest.py
import pytest

from callgate.core.config import settings
from callgate.core.database import init_engine, dispose_engine, create_all_tables


@pytest.fixture(scope="function", autouse=True)
def db():
    """
    Fresh in-memory SQLite database for every test.

    The engine is module-global (as in production), so each test rebinds it.
    """
    dispose_engine()
    engine = init_engine("sqlite+pysqlite:///:memory:")
    create_all_tables()
    yield engine
    dispose_engine()


@pytest.fixture
def file_db(tmp_path):
    """File-backed SQLite database for tests that use several connections/threads."""
    dispose_engine()
    engine = init_engine(f"sqlite+pysqlite:///{tmp_path / 'callgate.db'}")
    create_all_tables()
    yield engine
    dispose_engine()


@pytest.fixture(autouse=True)
def default_quota_settings(monkeypatch):
    """Pin quota settings so a developer .env cannot change test outcomes."""
    monkeypatch.setattr(settings, "TRIAL_INITIAL_CREDITS", 5)
    monkeypatch.setattr(settings, "TRIAL_MAX_PURCHASES", 2)
    monkeypatch.setattr(settings, "TRIAL_PACK_CREDITS", 5)
    monkeypatch.setattr(settings, "PAST_DUE_ALLOWS_CALLS", True)
    monkeypatch.setattr(settings, "ENTITLEMENTS_PARALLEL_FANOUT", False)
    monkeypatch.setattr(settings, "ENTITLEMENTS_FANOUT_WORKERS", 4)
    yield


@pytest.fixture
def seeded_catalog():
    from callgate.features.personalities.service import seed_personalities, list_all

    seed_personalities()
    return list_all()
