from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from ai_newsletter.db.models import Base

_engines: dict[str, Engine] = {}


def get_engine(database_url: str) -> Engine:
    engine = _engines.get(database_url)
    if engine is None:
        engine = create_engine(database_url, future=True)
        _engines[database_url] = engine
    return engine


def init_db(engine: Engine) -> None:
    """
    Create tables (idempotent) and verify connectivity.
    """
    # sqlite won't create the parent directory of its file
    db_path = engine.url.database
    if engine.url.get_backend_name() == "sqlite" and db_path and db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    # Create all tables
    Base.metadata.create_all(engine)

    # Connectivity check
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
