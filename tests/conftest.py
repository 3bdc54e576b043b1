import os
from typing import Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("METRICS_ENABLED", "false")
os.environ.setdefault("STORE_BACKEND", "sql")

from roomhub.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from roomhub.database import Base, SessionLocal, engine  # noqa: E402
from services.api.app import app  # noqa: E402


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


ADMIN_PAYLOAD = {
    "name": "Admin",
    "username": "admin",
    "email": "admin@example.com",
    "password": "Passw0rd!",
    "role": "admin",
}

USER_PAYLOAD = {
    "name": "User",
    "username": "user1",
    "email": "user1@example.com",
    "password": "Passw0rd!",
}


def auth_header(client: TestClient, username: str, password: str) -> dict[str, str]:
    response = client.post(
        "/users/login",
        data={"username": username, "password": password},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(client: TestClient) -> dict[str, str]:
    client.post("/users/register", json=ADMIN_PAYLOAD)
    return auth_header(client, ADMIN_PAYLOAD["username"], ADMIN_PAYLOAD["password"])


@pytest.fixture()
def user_headers(client: TestClient, admin_headers: dict[str, str]) -> dict[str, str]:
    client.post("/users/register", json=USER_PAYLOAD)
    return auth_header(client, USER_PAYLOAD["username"], USER_PAYLOAD["password"])


@pytest.fixture()
def login(client: TestClient):
    def _login(username: str, password: str = "Passw0rd!") -> dict[str, str]:
        return auth_header(client, username, password)

    return _login
