import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from studio_backend.api import deps
from studio_backend.api.errors import register_error_handlers
from studio_backend.api.routes import appointments, misc, sessions, studios
from studio_backend.core.auth import Actor
from studio_backend.db.session import Base, get_db, make_engine
from studio_backend.db import models


def _sqlite_engine(**kwargs):
    return make_engine("sqlite+pysqlite:///:memory:", **kwargs)


def _seed(db):
    manager = models.User(email="manager@example.com", role=models.UserRole.manager)
    owner = models.User(
        email="owner@example.com",
        first_name="Olga",
        last_name="Owner",
        role=models.UserRole.studio_owner,
    )
    customer = models.User(
        email="customer@example.com",
        first_name="Carla",
        last_name="Kunde",
        role=models.UserRole.customer,
    )
    other_owner = models.User(email="other@example.com", role=models.UserRole.studio_owner)
    db.add_all([manager, owner, customer, other_owner])
    db.flush()
    studio = models.Studio(name="EMS Mitte", owner_id=owner.id, machine_count=2)
    db.add(studio)
    db.commit()
    return {
        "manager": manager,
        "owner": owner,
        "customer": customer,
        "other_owner": other_owner,
        "studio": studio,
    }


@pytest.fixture()
def db_session():
    engine = _sqlite_engine()
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def seeded(db_session):
    return _seed(db_session)


@pytest.fixture()
def studio(seeded):
    return seeded["studio"]


@pytest.fixture()
def customer(seeded):
    return seeded["customer"]


@pytest.fixture()
def owner_actor(seeded):
    return Actor(user_id=seeded["owner"].id, role=models.UserRole.studio_owner)


@pytest.fixture()
def manager_actor(seeded):
    return Actor(user_id=seeded["manager"].id, role=models.UserRole.manager)


@pytest.fixture()
def customer_actor(seeded):
    return Actor(user_id=seeded["customer"].id, role=models.UserRole.customer)


class ApiContext:
    """Test client plus a switchable authenticated actor."""

    def __init__(self, client, session_factory, ids):
        self.client = client
        self.SessionLocal = session_factory
        self.ids = ids
        self.actor = Actor(user_id=ids["manager"], role=models.UserRole.manager)

    def login_as(self, name: str) -> None:
        roles = {
            "manager": models.UserRole.manager,
            "owner": models.UserRole.studio_owner,
            "other_owner": models.UserRole.studio_owner,
            "customer": models.UserRole.customer,
        }
        self.actor = Actor(user_id=self.ids[name], role=roles[name])


@pytest.fixture()
def api():
    engine = _sqlite_engine(
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
    Base.metadata.create_all(bind=engine)

    with TestingSessionLocal() as db:
        seeded = _seed(db)
        ids = {name: obj.id for name, obj in seeded.items()}

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    test_app = FastAPI()
    for module in (appointments, sessions, studios, misc):
        test_app.include_router(module.router, prefix="/api/v1")
    register_error_handlers(test_app)

    with TestClient(test_app) as client:
        context = ApiContext(client, TestingSessionLocal, ids)
        test_app.dependency_overrides[get_db] = override_get_db
        test_app.dependency_overrides[deps.get_current_actor] = lambda: context.actor
        yield context

    test_app.dependency_overrides.clear()
    engine.dispose()
