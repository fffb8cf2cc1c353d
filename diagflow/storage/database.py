"""Database connection and session management."""

from typing import Optional
from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.logging import get_logger

logger = get_logger(__name__)

# Global engine instance
_engine: Optional[Engine] = None

# Base class for all database models
Base = declarative_base()

DEFAULT_DATABASE_URL = "sqlite:///./diagflow.db"


def create_database_engine(database_url: str = DEFAULT_DATABASE_URL,
                           echo: bool = False,
                           connect_args: Optional[dict] = None) -> Engine:
    """Create a new database engine with settings suited to the backend."""
    if connect_args is None:
        if database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False}
        else:
            connect_args = {}

    if database_url.startswith("sqlite"):
        # A single shared connection keeps in-memory databases alive across sessions
        return create_engine(
            database_url,
            connect_args=connect_args,
            poolclass=StaticPool,
            echo=echo
        )
    return create_engine(
        database_url,
        echo=echo,
        connect_args=connect_args
    )


def get_database_engine(database_url: Optional[str] = None,
                        echo: bool = False,
                        connect_args: Optional[dict] = None) -> Engine:
    """Get or create the process-wide database engine."""
    global _engine

    if _engine is None:
        if database_url is None:
            from ..config import get_config
            database_url = get_config().database_url
        _engine = create_database_engine(database_url, echo=echo, connect_args=connect_args)
        logger.info(f"Database engine created for {_engine.url.render_as_string(hide_password=True)}")

    return _engine


def reset_database_engine():
    """Reset the global database engine (mainly for testing)."""
    global _engine
    if _engine:
        _engine.dispose()
    _engine = None


def create_session_factory(engine: Engine) -> sessionmaker:
    """Build a session factory bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine: Optional[Engine] = None):
    """Create all database tables."""
    # Register table definitions on Base.metadata
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine or get_database_engine())


def drop_tables(engine: Optional[Engine] = None):
    """Drop all database tables."""
    from . import models  # noqa: F401
    Base.metadata.drop_all(bind=engine or get_database_engine())
