import pytest
from sqlalchemy.exc import IntegrityError

from storefront.db.models import CartItem
from storefront.security.utils import new_id
from storefront.store import cart_store


def test_cart_requires_auth(client):
    assert client.get("/cart").status_code == 401
    assert client.post("/cart", json={}).status_code == 401


def test_add_defaults_quantity_to_one(client, customer, vendor, make_product):
    p = make_product(vendor[1])
    _, headers = customer
    r = client.post("/cart", json={"product_id": p["id"]}, headers=headers)
    assert r.status_code == 201
    assert r.json()["quantity"] == 1
    r = client.post("/cart", json={"product_id": make_product(vendor[1], name="B")["id"], "quantity": 0}, headers=headers)
    assert r.json()["quantity"] == 1


def test_add_merges_same_product(client, customer, vendor, make_product):
    p = make_product(vendor[1])
    _, headers = customer
    first = client.post("/cart", json={"product_id": p["id"], "quantity": 2}, headers=headers)
    second = client.post("/cart", json={"product_id": p["id"], "quantity": 3}, headers=headers)
    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    cart = client.get("/cart", headers=headers).json()
    assert len(cart) == 1
    assert cart[0]["quantity"] == 5
    assert cart[0]["product"]["name"] == "Widget"


def test_add_validates_product(client, customer):
    _, headers = customer
    assert client.post("/cart", json={"product_id": "xyz"}, headers=headers).status_code == 400
    assert client.post("/cart", json={}, headers=headers).status_code == 400
    assert client.post("/cart", json={"product_id": new_id()}, headers=headers).status_code == 404


def test_negative_quantity_rejected(client, customer, vendor, make_product):
    p = make_product(vendor[1])
    r = client.post("/cart", json={"product_id": p["id"], "quantity": -2}, headers=customer[1])
    assert r.status_code == 400


def test_cart_is_scoped_to_owner(client, customer, auth_for, vendor, make_product):
    p = make_product(vendor[1])
    _, mine = customer
    _, theirs = auth_for("someone")
    item = client.post("/cart", json={"product_id": p["id"]}, headers=mine).json()
    assert client.get("/cart", headers=theirs).json() == []
    r = client.delete(f"/cart/{item['id']}", headers=theirs)
    assert r.status_code == 404
    assert len(client.get("/cart", headers=mine).json()) == 1


def test_remove_item(client, customer, vendor, make_product):
    p = make_product(vendor[1])
    _, headers = customer
    item = client.post("/cart", json={"product_id": p["id"]}, headers=headers).json()
    assert client.delete(f"/cart/{item['id']}", headers=headers).status_code == 200
    assert client.get("/cart", headers=headers).json() == []
    assert client.delete(f"/cart/{item['id']}", headers=headers).status_code == 404


def test_clear_cart_is_idempotent(client, customer, vendor, make_product):
    _, headers = customer
    client.post("/cart", json={"product_id": make_product(vendor[1])["id"]}, headers=headers)
    first = client.delete("/cart/clear", headers=headers)
    second = client.delete("/cart/clear", headers=headers)
    assert first.status_code == second.status_code == 200
    assert first.json()["removed"] == 1
    assert second.json()["removed"] == 0
    assert client.get("/cart", headers=headers).json() == []


def test_clear_all_alias(client, customer):
    assert client.delete("/cart/clear/all", headers=customer[1]).status_code == 200


def test_deleting_product_drops_cart_rows(client, customer, vendor, make_product):
    p = make_product(vendor[1])
    _, headers = customer
    client.post("/cart", json={"product_id": p["id"]}, headers=headers)
    client.delete(f"/products/{p['id']}", headers=vendor[1])
    assert client.get("/cart", headers=headers).json() == []


def test_one_row_per_product(db, customer, vendor, make_product):
    user, _ = customer
    p = make_product(vendor[1])
    db.add(CartItem(user_id=user.id, product_id=p["id"], quantity=1))
    db.commit()
    db.add(CartItem(user_id=user.id, product_id=p["id"], quantity=1))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_add_merges_when_row_appears_concurrently(client, customer, vendor, make_product, monkeypatch):
    p = make_product(vendor[1])
    _, headers = customer
    client.post("/cart", json={"product_id": p["id"], "quantity": 2}, headers=headers)

    real_find = cart_store.find_row
    calls = []

    def stale_find(db, user_id, product_id):
        # first lookup misses the row the other request already committed
        calls.append(product_id)
        return None if len(calls) == 1 else real_find(db, user_id, product_id)

    monkeypatch.setattr(cart_store, "find_row", stale_find)
    r = client.post("/cart", json={"product_id": p["id"], "quantity": 3}, headers=headers)
    assert r.status_code == 200
    assert len(calls) == 2
    cart = client.get("/cart", headers=headers).json()
    assert len(cart) == 1
    assert cart[0]["quantity"] == 5
