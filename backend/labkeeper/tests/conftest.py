import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
import pytest
from fastapi.testclient import TestClient

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from labkeeper.main import app
from labkeeper import models
from labkeeper.auth import create_access_token
from labkeeper.database import Base, create_storage, get_db
from labkeeper.permissions import seed_reference_roles
from labkeeper.rbac import Surface, evaluate

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
test_storage = create_storage(SQLALCHEMY_DATABASE_URL)
engine = test_storage.engine
TestingSessionLocal = test_storage.session_factory

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)
_seed = TestingSessionLocal()
seed_reference_roles(_seed)
_seed.close()


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def unique(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


def make_user(db, *, role: str = "User", display_name: str | None = None) -> models.User:
    """
    labkeeper: purpose: create a user holding the named global role without going through /register
    labkeeper: outputs: persisted models.User
    """

    global_role = db.query(models.Role).filter(models.Role.name == role).one()
    email = f"{unique('user')}@example.com"
    user = models.User(
        email=email,
        hashed_password="placeholder",
        display_name=display_name or email.split("@")[0],
        role_id=global_role.id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: models.User) -> dict[str, str]:
    token = create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


def lab_role(db, name: str) -> models.LabRole:
    return db.query(models.LabRole).filter(models.LabRole.name == name).one()


def make_lab(db, name: str | None = None) -> models.Lab:
    lab = models.Lab(name=name or unique("lab"))
    db.add(lab)
    db.commit()
    db.refresh(lab)
    return lab


def make_item(db, name: str | None = None) -> models.Item:
    item = models.Item(name=name or unique("reagent"), description="test reagent")
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def make_tag(db) -> models.ItemTag:
    tag = models.ItemTag(name=unique("tag"), color="#ff0000")
    db.add(tag)
    db.commit()
    db.refresh(tag)
    return tag


def add_member(db, user: models.User, lab: models.Lab, role_name: str = "Lab Manager") -> models.LabMember:
    member = models.LabMember(user_id=user.id, lab_id=lab.id, lab_role=lab_role(db, role_name))
    db.add(member)
    db.commit()
    db.refresh(member)
    return member


def lab_access(db, user: models.User, lab: models.Lab, surface: Surface = Surface.DIRECT, minimum_level: int = 70):
    """
    labkeeper: purpose: resolve an allowed LabAccess for direct service calls in tests
    labkeeper: depends_on: labkeeper.rbac.evaluate
    """

    return evaluate(db, user.id, lab.id, minimum_lab_level=minimum_level, surface=surface).require()


@pytest.fixture
def manager_setup(db):
    """A lab with one Lab Manager member and one catalog item."""

    lab = make_lab(db)
    user = make_user(db)
    member = add_member(db, user, lab, "Lab Manager")
    item = make_item(db)
    return {"lab": lab, "user": user, "member": member, "item": item, "headers": auth_headers(user)}
