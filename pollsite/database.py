"""
Site-assignment table schema and engine construction.

Uses SQLAlchemy over PostgreSQL in production; any SQLAlchemy URL
(SQLite in tests) can be supplied through StoreConfig.url.
"""

from pathlib import Path
from typing import Any, Mapping, Optional

from sqlalchemy import Column, MetaData, String, Table, create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DEFAULT_SITE_TABLE, StoreConfig
from .models import SiteAssignment

Base = declarative_base()


class SiteAssignmentRow(Base):
    """Polling-site assignment row, one per identifying number."""

    __tablename__ = DEFAULT_SITE_TABLE

    cedula = Column(String, primary_key=True)  # identifying number
    departamento = Column(String)
    municipio = Column(String)
    zona = Column(String)
    puesto_votacion = Column(String)
    direccion_puesto_votacion = Column(String)
    mesa = Column(String)


def site_table(name: str = DEFAULT_SITE_TABLE) -> Table:
    """Return the site table definition under the configured table name."""
    if name == DEFAULT_SITE_TABLE:
        return SiteAssignmentRow.__table__
    return SiteAssignmentRow.__table__.to_metadata(MetaData(), name=name)


def row_to_assignment(row: Mapping[str, Any]) -> SiteAssignment:
    def text(key: str) -> str:
        value = row.get(key)
        return "" if value is None else str(value)

    return SiteAssignment(
        department=text("departamento"),
        municipality=text("municipio"),
        zone=text("zona"),
        site_name=text("puesto_votacion"),
        site_address=text("direccion_puesto_votacion"),
        table_number=text("mesa"),
    )


def store_url(config: StoreConfig):
    if config.url:
        return config.url
    return URL.create(
        "postgresql+psycopg2",
        username=config.user or None,
        password=config.password or None,
        host=config.host or None,
        port=config.port,
        database=config.database or None,
    )


def build_engine(config: StoreConfig) -> Engine:
    """
    Create a pooled engine for the external store.

    The pool never grows beyond pool_max connections; callers past the
    bound wait up to the connect timeout for a free connection.
    """
    url = store_url(config)
    if str(url).startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    connect_args = {}
    if not config.url:
        connect_args = {
            "connect_timeout": max(1, int(config.connect_timeout)),
            "sslmode": "require" if config.ssl else "disable",
        }
    return create_engine(
        url,
        pool_size=config.pool_max,
        max_overflow=0,
        pool_timeout=config.connect_timeout,
        # Maximum connection age, not idle time: a connection older than
        # idle_timeout is replaced on its next checkout even if it was busy.
        pool_recycle=int(config.idle_timeout) or -1,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def init_database(db_path: Path, table: str = DEFAULT_SITE_TABLE) -> str:
    """
    Create a local SQLite site table (development and tests).

    Args:
        db_path: Path to SQLite database file
        table: Site table name

    Returns:
        SQLAlchemy URL of the created database
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    url = f"sqlite:///{db_path}"
    engine = create_engine(url)
    site_table(table).create(engine, checkfirst=True)
    engine.dispose()
    return url


def get_session(url: str, engine: Optional[Engine] = None):
    """
    Get database session.

    Args:
        url: SQLAlchemy URL
        engine: Reuse an existing engine instead of creating one

    Returns:
        SQLAlchemy session
    """
    engine = engine or create_engine(url)
    Session = sessionmaker(bind=engine)
    return Session()
