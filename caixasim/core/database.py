"""
ORM engine and session factory for saved simulations.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from caixasim.core.config import settings
from caixasim.core.logger import logger

engine = create_engine(
    settings.DATABASE_URL,
    # SQLite connections are shared with FastAPI's threadpool
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Creates the simulation tables when missing."""
    from caixasim.simulacao import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database ready: {', '.join(Base.metadata.tables)}")
