import os
import tempfile

_tmp = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

from storefront.db.session import Base, SessionLocal, engine
from storefront.db.models import Role, User
from storefront.main import app
from storefront.security.utils import hash_password

PASSWORD = "Password123!"


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def make_user(username, role=Role.CUSTOMER, password=PASSWORD):
    session = SessionLocal()
    try:
        user = User(username=username, email=f"{username}@storefront.io",
                    password_hash=hash_password(password), role=role.value)
        session.add(user); session.commit(); session.refresh(user)
        return user
    finally:
        session.close()


def login(client, email, password=PASSWORD):
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['token']}"}


@pytest.fixture
def auth_for(client):
    """Create a user with the given role and return (user, headers)."""
    def _make(username, role=Role.CUSTOMER):
        user = make_user(username, role)
        return user, login(client, user.email)
    return _make


@pytest.fixture
def admin(auth_for):
    return auth_for("admin", Role.ADMIN)


@pytest.fixture
def vendor(auth_for):
    return auth_for("vendor_a", Role.VENDOR)


@pytest.fixture
def customer(auth_for):
    return auth_for("kevin", Role.CUSTOMER)


@pytest.fixture
def category(client, admin):
    _, headers = admin
    r = client.post("/categories", json={"name": "Gadgets", "description": "Small things"}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def make_product(client, category):
    def _make(headers, name="Widget", price=10.0, **extra):
        body = {"name": name, "price": price, "category": category["id"], **extra}
        r = client.post("/products", json=body, headers=headers)
        assert r.status_code == 201, r.text
        return r.json()
    return _make
