from __future__ import annotations

from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


@pytest.fixture()
def isolated_db(monkeypatch, tmp_path):
    """
    Create an isolated sqlite database for relay store / API integration tests.
    """
    from lifeguardbridge.core import relay as relay_module
    from lifeguardbridge.db import database as db_module
    from lifeguardbridge.db.database import Base

    db_file = tmp_path / "test_relay.db"
    test_engine = create_engine(
        f"sqlite:///{db_file}",
        connect_args={"check_same_thread": False},
    )
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine,
        expire_on_commit=False,
    )

    @contextmanager
    def testing_get_session():
        s = TestingSessionLocal()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    # patch db module symbols
    monkeypatch.setattr(db_module, "DATABASE_URL", f"sqlite:///{db_file}", raising=True)
    monkeypatch.setattr(db_module, "engine", test_engine, raising=True)
    monkeypatch.setattr(db_module, "SessionLocal", TestingSessionLocal, raising=True)
    monkeypatch.setattr(db_module, "get_session", testing_get_session, raising=True)

    # patch modules that imported these symbols directly
    monkeypatch.setattr(relay_module, "get_session", testing_get_session, raising=True)

    # create tables after patching engine/session factory
    from lifeguardbridge.models.relay_value import RelayValue  # noqa: F401

    Base.metadata.create_all(bind=test_engine)
    return TestingSessionLocal
