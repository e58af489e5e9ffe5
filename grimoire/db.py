"""
Database connection and setup
SQLAlchemy engine and session factory built from the configured database URL
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from grimoire.models import Base
from config.settings import settings

logger = logging.getLogger("db")


def make_engine(database_url: str = settings.database_url):
    """
    Create an engine for database_url
    SQLite connections are used from worker threads, so the same-thread check is off
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # Needed for SQLite
    return create_engine(
        database_url,
        connect_args=connect_args,
        echo=False  # Set to True to see SQL queries
    )


def make_session_factory(engine):
    """Session factory bound to engine"""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine):
    """
    Initialize database - create all tables
    Safe to call multiple times (won't recreate existing tables)
    """
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at: {engine.url}")
