"""
Database schema and connection management.

Uses SQLAlchemy; SQLite by default, PostgreSQL via a postgresql+psycopg2 URL.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import (
    create_engine,
    event,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class Region(Base):
    """Region (city) row, unique by trimmed name."""

    __tablename__ = "regions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    institutions = relationship("Institution", back_populates="region")


class Institution(Base):
    """Institution (university) row, unique per (region, trimmed name)."""

    __tablename__ = "institutions"
    __table_args__ = (UniqueConstraint("region_id", "name", name="uq_institution_region_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    region = relationship("Region", back_populates="institutions")


def create_db_engine(database_url: str) -> Engine:
    """
    Build an engine shared by all worker threads.

    For file-backed SQLite the parent directory is created and the busy
    timeout raised so concurrent writers wait instead of failing. In-memory
    SQLite keeps a single connection so every thread sees the same tables.
    SQLite connections get foreign key enforcement switched on.
    """
    if database_url == "sqlite:///:memory:" or database_url == "sqlite://":
        engine = create_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    elif database_url.startswith("sqlite:///"):
        Path(database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(database_url, connect_args={"timeout": 30})
    else:
        return create_engine(database_url, pool_pre_ping=True)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_database(engine: Engine) -> None:
    """
    Create tables if missing. Existing tables are left as they are.

    Args:
        engine: Target engine
    """
    Base.metadata.create_all(engine)


def get_session_factory(engine: Engine) -> sessionmaker:
    """
    Get a session factory bound to the engine.

    Returns:
        SQLAlchemy sessionmaker
    """
    return sessionmaker(bind=engine)
