from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Dict, Iterator

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from policyvault.api import create_app
from policyvault.config import Settings
from policyvault.database import Database


PASSWORD = "pw12345678"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(database_path=tmp_path / "policyvault.sqlite3", jwt_secret="tests-secret-key")


@pytest.fixture()
def database(settings: Settings) -> Database:
    db = Database(settings.database_path)
    db.initialize()
    return db


@pytest.fixture()
def client(database: Database, settings: Settings) -> Iterator[TestClient]:
    app = create_app(database=database, settings=settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def login(client: TestClient) -> Callable[..., Dict[str, str]]:
    """Register (if needed) and log in, returning bearer headers."""

    def _login(email: str, password: str = PASSWORD, name: str | None = None) -> Dict[str, str]:
        payload = {"email": email, "password": password}
        if name is not None:
            payload["name"] = name
        client.post("/register", json=payload)
        response = client.post("/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login


@pytest.fixture()
def policy_payload() -> Dict[str, object]:
    return {
        "name": "Term",
        "company": "Prudential",
        "value": 1000,
        "premium": 10,
        "startDate": "2024-01-01",
        "endDate": "2034-01-01",
    }
