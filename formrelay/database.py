from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from formrelay.config import Settings
from formrelay.models.record import Base

SQLITE_BUSY_TIMEOUT = 30


def is_memory_sqlite(url: str) -> bool:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return False
    database = parsed.database or ""
    return database in ("", ":memory:") or parsed.query.get("mode") == "memory"


def create_db_engine(settings: Settings) -> Engine:
    url = settings.DATABASE_URL
    engine_kwargs = {"echo": settings.DATABASE_ECHO}

    if is_memory_sqlite(url):
        # One shared connection so the in-memory database survives across sessions
        engine_kwargs["poolclass"] = StaticPool
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    elif url.startswith("sqlite"):
        # Pooled connection per thread; writers wait on the file lock
        engine_kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT,
        }
    else:
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_recycle"] = 3600

    return create_engine(url, **engine_kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create the delivery log table and its indexes if missing."""
    Base.metadata.create_all(engine)
