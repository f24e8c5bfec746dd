from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from resmihaber.core.config import settings


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite needs check_same_thread=False for the async app"""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Create session factories
SessionLocal = build_session_factory(engine)

# Create base class for models
Base = declarative_base()


def create_db_and_tables_sync(bind: Engine = None):
    """Create database tables synchronously"""
    # Import all models so they're registered with Base
    from resmihaber.models import Source, Article, FinancialObservation  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


# For the lifespan context manager in main.py
async def create_db_and_tables():
    """Create database tables for application startup"""
    # Sync creation is fine for SQLite and runs once at startup
    create_db_and_tables_sync()
