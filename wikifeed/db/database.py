from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from pathlib import Path

from wikifeed.config.settings import get_settings
from wikifeed.db.models import Base

_engine: Engine | None = None


def make_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # crawl writes come from a thread pool
        connect_args["check_same_thread"] = False
        _, _, db_path = database_url.partition(":///")
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, future=True, connect_args=connect_args)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        s = get_settings()
        _engine = make_engine(s.database_url)
    return _engine


def init_db(engine: Engine | None = None) -> None:
    """
    Create tables (idempotent) and verify connectivity.
    """
    engine = engine or get_engine()

    Base.metadata.create_all(engine)

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
