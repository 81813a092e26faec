from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from staffhive_leave.core.config import settings

Base = declarative_base()

def make_engine(url: str = None) -> Engine:
    """
    Engine for the local durable cache.
    In-memory SQLite needs a single shared connection to survive across sessions.
    """
    url = url or settings.cache_url
    if url.startswith("sqlite"):
        if ":memory:" in url or url == "sqlite://":
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url)

def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

def init_db(engine: Engine):
    """
    Registers the cache models and creates their tables.
    Safe to call more than once.
    """
    from staffhive_leave.models import cache_entry, leave_balance  # noqa: F401
    Base.metadata.create_all(bind=engine)
