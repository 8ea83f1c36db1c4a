from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings


def enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    # Category deletes rely on ON DELETE SET NULL.
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def create_ledger_engine(database_url: str, **kwargs) -> Engine:
    """Engine for the ledger store; SQLite gets thread sharing and FK enforcement."""
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args = dict(kwargs.pop("connect_args", {}))
        connect_args.setdefault("check_same_thread", False)
        kwargs["connect_args"] = connect_args
    ledger_engine = create_engine(database_url, **kwargs)
    if is_sqlite:
        event.listen(ledger_engine, "connect", enable_sqlite_pragmas)
    return ledger_engine


engine = create_ledger_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def ping(session: Session) -> None:
    session.execute(text("SELECT 1"))
