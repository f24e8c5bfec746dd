from .connection import (
    create_db_and_tables,
    create_db_and_tables_sync,
    build_engine,
    build_session_factory,
    SessionLocal,
    Base,
    engine,
)

__all__ = [
    "create_db_and_tables",
    "create_db_and_tables_sync",
    "build_engine",
    "build_session_factory",
    "SessionLocal",
    "Base",
    "engine",
]
