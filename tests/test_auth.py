import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from studio_backend.api.routes import auth
from studio_backend.core import security
from studio_backend.db.session import Base, get_db, make_engine
from studio_backend.db import models
from studio_backend.services.admin import ensure_manager_exists


@pytest.fixture()
def auth_client():
    engine = make_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    with TestingSessionLocal() as db:
        ensure_manager_exists(db, "chef@example.com", "geheim")

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    test_app = FastAPI()
    test_app.include_router(auth.router, prefix="/api/v1")
    test_app.dependency_overrides[get_db] = override_get_db

    with TestClient(test_app) as client:
        yield client, TestingSessionLocal


def test_login_and_me(auth_client):
    client, _ = auth_client
    response = client.post(
        "/api/v1/auth/login", data={"username": "chef@example.com", "password": "geheim"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "manager"

    me = client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"}
    )
    assert me.status_code == 200
    assert me.json()["email"] == "chef@example.com"


def test_login_rejects_wrong_password(auth_client):
    client, _ = auth_client
    response = client.post(
        "/api/v1/auth/login", data={"username": "chef@example.com", "password": "falsch"}
    )
    assert response.status_code == 400


def test_me_rejects_invalid_token(auth_client):
    client, _ = auth_client
    response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer kaputt"})
    assert response.status_code == 401


def test_ensure_manager_exists_updates_password(auth_client):
    _, SessionLocal = auth_client
    with SessionLocal() as db:
        ensure_manager_exists(db, "chef@example.com", "neu")
        manager = db.query(models.User).filter_by(email="chef@example.com").one()
        assert security.verify_password("neu", manager.password_hash)
        assert db.query(models.User).count() == 1
