import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from schoolfin.domain.roles import BaseRole, TenantRole
from schoolfin.infrastructure.db.session import Base, get_db
from schoolfin.main import app
from tests.helpers.factories import (
    add_membership,
    create_category,
    create_class,
    create_school,
    create_student,
    create_user,
)


class FakeRedisClient:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def setex(self, key: str, _ttl: int, value: str) -> bool:
        self.store[key] = value
        return True

    def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    def eval(self, _script: str, _numkeys: int, key: str, token: str) -> int:
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(autouse=True)
def clean_database(engine):
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def fake_redis(monkeypatch):
    redis_client = FakeRedisClient()
    monkeypatch.setattr("schoolfin.infrastructure.cache.cache_service.get_redis_client", lambda: redis_client)
    monkeypatch.setattr("schoolfin.interfaces.api.v1.routes.ping.get_redis_client", lambda: redis_client)
    return redis_client


@pytest.fixture
def db_session(engine, fake_redis):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def seeded_users(db_session):
    north_school = create_school(db_session, "North High", "north-high")
    south_school = create_school(db_session, "South High", "south-high")

    admin = create_user(db_session, "admin", BaseRole.admin, password="admin123")
    accountant = create_user(db_session, "accountant", BaseRole.accountant, password="accountant123")
    teacher = create_user(db_session, "teacher", BaseRole.teacher, password="teacher123")
    super_admin = create_user(db_session, "super", BaseRole.admin, password="super123")
    outsider = create_user(db_session, "outsider", BaseRole.accountant, password="outsider123")

    add_membership(db_session, admin.id, north_school.id, TenantRole.school_admin)
    add_membership(db_session, admin.id, south_school.id, TenantRole.school_admin)
    add_membership(db_session, accountant.id, north_school.id, TenantRole.accountant)
    add_membership(db_session, teacher.id, north_school.id, TenantRole.school_admin)
    add_membership(db_session, super_admin.id, north_school.id, TenantRole.super_admin)

    north_class = create_class(db_session, school_id=north_school.id, name="Grade 4 North")
    south_class = create_class(db_session, school_id=south_school.id, name="Grade 4 South")

    child_one = create_student(db_session, school_id=north_school.id, class_id=north_class.id, admission_number="ADM001")
    child_two = create_student(db_session, school_id=north_school.id, class_id=north_class.id, admission_number="ADM002")
    south_child = create_student(
        db_session, school_id=south_school.id, class_id=south_class.id, admission_number="ADM900"
    )

    tuition = create_category(db_session, school_id=north_school.id, name="Tuition", code="TUI")
    meals = create_category(db_session, school_id=north_school.id, name="Meals", code="MEA")
    south_tuition = create_category(db_session, school_id=south_school.id, name="Tuition", code="TUI")

    return {
        "admin": admin,
        "accountant": accountant,
        "teacher": teacher,
        "super_admin": super_admin,
        "outsider": outsider,
        "north_school": north_school,
        "south_school": south_school,
        "north_class": north_class,
        "south_class": south_class,
        "child_one": child_one,
        "child_two": child_two,
        "south_child": south_child,
        "tuition": tuition,
        "meals": meals,
        "south_tuition": south_tuition,
    }
