"""
Pytest configuration and shared fixtures.
"""

import json
import os
import tempfile

# Keep log files out of the working tree; must run before pollsite is imported
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="pollsite-logs-"))

import pytest
from pathlib import Path
from typing import Any, Dict, List

from pollsite.config import StoreConfig
from pollsite.database import SiteAssignmentRow, get_session, init_database


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def people() -> List[Dict[str, Any]]:
    """Sample local person records."""
    return [
        {
            "identifying_number": "123",
            "full_name": "ANA RUIZ",
            "group": "norte",
            "neighborhood": "el prado",
            "gender": "F",
            "coordinator": "carlos",
            "leader": "maria",
        },
        {
            "identifying_number": "456",
            "full_name": "JOHN SMITH",
            "group": "sur",
            "neighborhood": "rebolo",
            "gender": "M",
        },
        {
            "identifying_number": "789",
            "full_name": "Luisa Smithers",
            "group": "sur",
            "neighborhood": "el prado",
            "gender": "F",
        },
    ]


@pytest.fixture
def people_file(tmp_path, people) -> Path:
    path = tmp_path / "people.json"
    path.write_text(json.dumps(people, indent=2))
    return path


@pytest.fixture
def site_rows() -> List[Dict[str, str]]:
    """Rows of the external site table."""
    return [
        {
            "cedula": "456",
            "departamento": "ATLANTICO",
            "municipio": "BARRANQUILLA",
            "zona": "01",
            "puesto_votacion": "COLEGIO SAN JOSE",
            "direccion_puesto_votacion": "CL 45 # 20-10",
            "mesa": "7",
        },
        {
            "cedula": "555",
            "departamento": "ATLANTICO",
            "municipio": "SOLEDAD",
            "zona": "02",
            "puesto_votacion": "IE LAS MORAS",
            "direccion_puesto_votacion": None,
            "mesa": "12",
        },
    ]


@pytest.fixture
def site_db_url(tmp_path, site_rows) -> str:
    """SQLite database holding the site table with sample rows."""
    url = init_database(tmp_path / "sites.db")
    session = get_session(url)
    for row in site_rows:
        session.add(SiteAssignmentRow(**row))
    session.commit()
    session.close()
    return url


@pytest.fixture
def store_config(site_db_url) -> StoreConfig:
    return StoreConfig(url=site_db_url, retry_attempts=0, retry_delay_ms=0)


@pytest.fixture
def unreachable_config(tmp_path) -> StoreConfig:
    """Points at a database file inside a directory that does not exist."""
    return StoreConfig(
        url=f"sqlite:///{tmp_path / 'missing' / 'nowhere.db'}",
        retry_attempts=2,
        retry_delay_ms=0,
    )
