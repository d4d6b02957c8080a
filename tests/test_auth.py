import jwt

from storefront.api.v1 import routes_auth
from storefront.core.config import get_settings
from storefront.db.models import User
from tests.conftest import PASSWORD


def register(client, username="kevin", email="kevin@x.com", **extra):
    return client.post("/auth/register", json={"username": username, "email": email, "password": PASSWORD, **extra})


def test_register_defaults_to_customer(client):
    r = register(client)
    assert r.status_code == 201
    body = r.json()
    assert body["user"]["role"] == "Customer"
    assert body["user"]["username"] == "kevin"
    assert "password_hash" not in body["user"]


def test_stored_password_is_hashed(client, db):
    register(client)
    user = db.query(User).filter(User.email == "kevin@x.com").one()
    assert user.password_hash != PASSWORD
    assert user.password_hash.startswith("$2")


def test_register_as_vendor(client):
    r = register(client, role="Vendor")
    assert r.status_code == 201
    assert r.json()["user"]["role"] == "Vendor"


def test_register_as_admin_rejected(client):
    r = register(client, role="Admin")
    assert r.status_code == 400
    assert "error" in r.json()


def test_duplicate_email_conflict(client):
    register(client)
    r = register(client, username="other")
    assert r.status_code == 409
    assert r.json()["error"] == "Email already in use"


def test_duplicate_username_conflict(client):
    register(client)
    r = register(client, email="second@x.com")
    assert r.status_code == 409


def test_register_validation_error_is_400(client):
    r = client.post("/auth/register", json={"username": "kevin", "email": "not-an-email", "password": "short"})
    assert r.status_code == 400
    assert isinstance(r.json()["error"], str)


def test_login_returns_token_with_role(client):
    register(client, role="Vendor")
    r = client.post("/auth/login", json={"email": "kevin@x.com", "password": PASSWORD})
    assert r.status_code == 200
    body = r.json()
    claims = jwt.decode(body["token"], get_settings().JWT_SECRET, algorithms=["HS256"])
    assert claims["role"] == "Vendor"
    assert claims["id"] == body["user"]["id"]
    assert claims["exp"] - claims["iat"] == 24 * 3600


def test_login_wrong_password(client):
    register(client)
    r = client.post("/auth/login", json={"email": "kevin@x.com", "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid email or password"


def test_login_unknown_email_same_message(client):
    r = client.post("/auth/login", json={"email": "nobody@x.com", "password": PASSWORD})
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid email or password"


def test_profile_requires_token(client):
    assert client.get("/auth/profile").status_code == 401


def test_profile(client, customer):
    user, headers = customer
    r = client.get("/auth/profile", headers=headers)
    assert r.status_code == 200
    assert r.json()["id"] == user.id
    assert "password_hash" not in r.json()


def test_change_password(client, customer):
    user, headers = customer
    r = client.put("/auth/change-password", json={"old_password": PASSWORD, "new_password": "NewPassword456!"},
                   headers=headers)
    assert r.status_code == 200
    assert client.post("/auth/login", json={"email": user.email, "password": PASSWORD}).status_code == 401
    assert client.post("/auth/login", json={"email": user.email, "password": "NewPassword456!"}).status_code == 200


def test_change_password_wrong_old(client, customer):
    _, headers = customer
    r = client.put("/auth/change-password", json={"old_password": "nope-nope", "new_password": "NewPassword456!"},
                   headers=headers)
    assert r.status_code == 401
    assert r.json()["error"] == "Current password is incorrect"


def test_concurrent_duplicate_registration_is_conflict(client, monkeypatch):
    register(client)
    # both requests passed the lookup before either committed
    monkeypatch.setattr(routes_auth, "find_clash", lambda db, email, username: None)
    r = register(client)
    assert r.status_code == 409
    assert r.json()["code"] == "USER_EXISTS"
