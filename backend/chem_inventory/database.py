from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from . import config


def make_engine(url: str):
    # SQLite needs cross-thread access and a generous busy timeout so that
    # concurrent writers queue up instead of failing with "database is locked"
    if url.startswith("sqlite"):
        return create_engine(
            url, connect_args={"check_same_thread": False, "timeout": 30}
        )
    return create_engine(url, pool_pre_ping=True)


engine = make_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create missing tables and seed the global bottle-id counter."""
    from . import models  # noqa: F401  (registers the tables)
    from .allocator import ensure_id_counter

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    db = sessionmaker(autocommit=False, autoflush=False, bind=bind)()
    try:
        ensure_id_counter(db)
        db.commit()
    finally:
        db.close()
