# cardsync/db.py
"""Database engine and session utilities.

Engines are built explicitly from settings by the composition root; nothing
here connects at import time.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()

def create_db_engine(database_url, pool_size=5, max_overflow=10):
    if database_url.startswith("sqlite"):
        # the scheduler thread and the API share SQLite connections
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # in-memory databases live and die with their single connection
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    # tuned pool settings for cloud DB
    return create_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True
    )

def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

def init_db(engine):
    import cardsync.models  # noqa: F401 ensure models are imported so tables are known
    Base.metadata.create_all(bind=engine)
