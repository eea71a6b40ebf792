from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from ..config import get_relay_database_url


DATABASE_URL = get_relay_database_url()


class Base(DeclarativeBase):
    """SQLAlchemy Base."""


def _connect_args(url: str) -> dict:
    # sqlite 连接会被 API 线程与 runner 线程共用
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


engine = create_engine(DATABASE_URL, connect_args=_connect_args(DATABASE_URL))

# 禁用 expire_on_commit，避免离开 Session 后对象属性失效导致 DetachedInstanceError
SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
)


def init_db() -> None:
    """初始化数据库表结构。"""
    from ..models.relay_value import RelayValue  # noqa: F401

    if DATABASE_URL.startswith("sqlite:///"):
        from pathlib import Path

        db_file = Path(DATABASE_URL[len("sqlite:///"):])
        if str(db_file) not in ("", ":memory:"):
            db_file.parent.mkdir(parents=True, exist_ok=True)

    Base.metadata.create_all(bind=engine)


@contextmanager
def get_session():
    """提供一个上下文管理的 Session，便于在业务代码中使用 with get_session()."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
