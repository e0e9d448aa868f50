import uuid

from fastapi.testclient import TestClient
from jose import jwt

from storefront.db import SessionLocal, init_db
from storefront.main import app
from storefront.models.product import Product

IDS = {}


def setup_module(module):
    init_db()
    db = SessionLocal()
    try:
        db.add_all(
            [
                Product(sku="API-A", name="Soap", price_cents=250, stock=100),
                Product(sku="API-B", name="Lotion", price_cents=900, stock=100),
                Product(sku="API-LOW", name="Balm", price_cents=600, stock=1),
            ]
        )
        db.commit()
        IDS.update({p.sku: p.id for p in db.query(Product).all()})
    finally:
        db.close()


def token_for(user_id: str) -> str:
    return jwt.encode({"sub": user_id}, "test-secret", algorithm="HS256")


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {token_for(user_id)}"}


def quantities(body):
    return {it["productId"]: it["quantity"] for it in body["data"]["items"]}


def test_get_cart_for_new_visitor_is_empty():
    client = TestClient(app)
    res = client.get("/api/cart")
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["data"]["items"] == []
    assert body["data"]["totalCents"] == 0
    assert "sessionId" not in res.cookies


def test_first_add_issues_session_cookie_and_cart_follows_it():
    client = TestClient(app)
    res = client.post("/api/cart/add", json={"productId": IDS["API-A"], "quantity": 2})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success"] is True
    assert body["message"] == "Item added to cart successfully"
    assert quantities(body) == {IDS["API-A"]: 2}
    assert body["data"]["totalCents"] == 500
    session_id = res.cookies.get("sessionId")
    assert session_id
    assert body["data"]["sessionId"] == session_id

    res = client.get("/api/cart")
    assert quantities(res.json()) == {IDS["API-A"]: 2}


def test_update_and_remove_flow():
    client = TestClient(app)
    client.post("/api/cart/add", json={"productId": IDS["API-A"], "quantity": 1})
    client.post("/api/cart/add", json={"productId": IDS["API-B"], "quantity": 1})

    res = client.put("/api/cart/update", json={"productId": IDS["API-A"], "quantity": 4})
    assert quantities(res.json()) == {IDS["API-A"]: 4, IDS["API-B"]: 1}

    res = client.put("/api/cart/update", json={"productId": IDS["API-B"], "quantity": 0})
    assert quantities(res.json()) == {IDS["API-A"]: 4}

    res = client.delete(f"/api/cart/remove/{IDS['API-B']}")
    assert res.status_code == 200
    assert quantities(res.json()) == {IDS["API-A"]: 4}

    res = client.delete("/api/cart/clear")
    assert res.json()["data"]["items"] == []


def test_unknown_product_is_404_failure():
    client = TestClient(app)
    res = client.post("/api/cart/add", json={"productId": 999999, "quantity": 1})
    assert res.status_code == 404
    assert res.json() == {"success": False, "data": None, "message": "Product not found"}


def test_out_of_stock_is_400_failure():
    client = TestClient(app)
    res = client.post("/api/cart/add", json={"productId": IDS["API-LOW"], "quantity": 2})
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert "Insufficient stock" in body["message"]


def test_non_positive_quantity_is_rejected():
    client = TestClient(app)
    res = client.post("/api/cart/add", json={"productId": IDS["API-A"], "quantity": 0})
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_malformed_body_is_422_failure():
    client = TestClient(app)
    res = client.post("/api/cart/add", json={"productId": IDS["API-A"], "quantity": "2"})
    assert res.status_code == 422
    body = res.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["message"].startswith("Invalid request")


def test_update_without_cart_is_404():
    client = TestClient(app)
    res = client.put(
        "/api/cart/update",
        json={"productId": IDS["API-A"], "quantity": 1},
        headers=auth(f"nobody-{uuid.uuid4().hex[:6]}"),
    )
    assert res.status_code == 404
    assert res.json()["message"] == "Cart not found"


def test_update_to_zero_twice_is_idempotent():
    client = TestClient(app)
    client.post("/api/cart/add", json={"productId": IDS["API-A"], "quantity": 1})
    for _ in range(2):
        res = client.put("/api/cart/update", json={"productId": IDS["API-A"], "quantity": 0})
        assert res.status_code == 200, res.text
        assert res.json()["data"]["items"] == []


def test_unknown_route_uses_failure_envelope():
    res = TestClient(app).get("/api/cart/nope")
    assert res.status_code in (404, 405)
    assert res.json()["success"] is False


def test_authenticated_cart_is_keyed_by_user():
    user_id = f"u-{uuid.uuid4().hex[:8]}"
    client = TestClient(app)
    res = client.post(
        "/api/cart/add", json={"productId": IDS["API-B"], "quantity": 1}, headers=auth(user_id)
    )
    body = res.json()
    assert body["data"]["userId"] == user_id
    assert body["data"]["sessionId"] is None
    assert "sessionId" not in res.cookies

    other = TestClient(app).get("/api/cart", headers=auth(user_id))
    assert quantities(other.json()) == {IDS["API-B"]: 1}


def test_invalid_token_falls_back_to_guest():
    client = TestClient(app)
    res = client.post(
        "/api/cart/add",
        json={"productId": IDS["API-A"], "quantity": 1},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert res.status_code == 200
    assert res.json()["data"]["userId"] is None
    assert res.cookies.get("sessionId")


def test_merge_requires_token():
    res = TestClient(app).post("/api/cart/merge")
    assert res.status_code == 401
    assert res.json()["success"] is False


def test_login_merge_flow():
    user_id = f"u-{uuid.uuid4().hex[:8]}"
    client = TestClient(app)
    client.post("/api/cart/add", json={"productId": IDS["API-A"], "quantity": 2})
    assert client.cookies.get("sessionId")

    TestClient(app).post(
        "/api/cart/add", json={"productId": IDS["API-A"], "quantity": 1}, headers=auth(user_id)
    )
    TestClient(app).post(
        "/api/cart/add", json={"productId": IDS["API-B"], "quantity": 3}, headers=auth(user_id)
    )

    res = client.post("/api/cart/merge", headers=auth(user_id))
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["message"] == "Guest cart merged"
    assert quantities(body) == {IDS["API-A"]: 3, IDS["API-B"]: 3}
    assert "sessionId" in res.headers.get("set-cookie", "")


def test_merge_without_guest_session_returns_user_cart():
    user_id = f"u-{uuid.uuid4().hex[:8]}"
    TestClient(app).post(
        "/api/cart/add", json={"productId": IDS["API-B"], "quantity": 2}, headers=auth(user_id)
    )
    res = TestClient(app).post("/api/cart/merge", headers=auth(user_id))
    assert res.status_code == 200
    assert res.json()["message"] == "No guest cart to merge"
    assert quantities(res.json()) == {IDS["API-B"]: 2}
