import pytest
from fastapi.testclient import TestClient

from helpers import stock_of
from services.storefront.main import app, get_db

ADDRESS = {
    "street": "7 Park Street",
    "phone": "9830012345",
    "city": "Kolkata",
    "state": "West Bengal",
    "postal_code": "700016",
    "country": "India",
}


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def place(client, user_id, items):
    return client.post("/orders", json={"user_id": user_id, "delivery_address": ADDRESS, "items": items})


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_list_and_get_products(client, make_product):
    rice = make_product("Basmati Rice", 140.0, 10)

    listed = client.get("/products").json()
    assert [p["name"] for p in listed] == ["Basmati Rice"]
    assert listed[0]["category"] == "Staples"

    assert client.get(f"/products/{rice}").json()["stock"] == 10
    assert client.get("/products/missing").status_code == 404


def test_place_order(client, db, customer_id, make_product):
    rice = make_product("Basmati Rice", 140.0, 10)

    response = place(client, customer_id, [{"product_id": rice, "quantity": 1}])

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Order placed successfully."
    assert body["order"]["status"] == "PENDING"
    assert body["order"]["payment_status"] == "PENDING_VERIFICATION"
    assert (body["order"]["subtotal"], body["order"]["delivery_charge"], body["order"]["total"]) == (140.0, 25, 165.0)
    assert stock_of(db, rice) == 9


def test_place_order_missing_products(client, customer_id):
    response = place(client, customer_id, [{"product_id": "X", "quantity": 1}])

    assert response.status_code == 404
    assert response.json()["missing_product_ids"] == ["X"]


def test_place_order_insufficient_stock(client, db, customer_id, make_product):
    paneer = make_product("Paneer", 90.0, 3)

    response = place(client, customer_id, [{"product_id": paneer, "quantity": 5}])

    assert response.status_code == 409
    assert response.json() == {"error": "Insufficient stock.", "product_id": paneer, "requested": 5, "available": 3}
    assert stock_of(db, paneer) == 3


def test_place_order_invalid_quantity(client, customer_id, make_product):
    paneer = make_product("Paneer", 90.0, 3)

    response = place(client, customer_id, [{"product_id": paneer, "quantity": 0}])

    assert response.status_code == 400


@pytest.mark.parametrize("quantity", ["2", 2.0, 1.5])
def test_place_order_non_integer_quantity(client, db, customer_id, make_product, quantity):
    paneer = make_product("Paneer", 90.0, 3)

    response = place(client, customer_id, [{"product_id": paneer, "quantity": quantity}])

    assert response.status_code == 400
    assert response.json() == {"error": "Order contains invalid quantities."}
    assert stock_of(db, paneer) == 3


def test_place_order_requires_items(client, customer_id):
    assert place(client, customer_id, []).status_code == 422


def test_place_order_unknown_customer(client, make_product):
    paneer = make_product("Paneer", 90.0, 3)

    response = place(client, "nobody", [{"product_id": paneer, "quantity": 1}])

    assert response.status_code == 404
    assert response.json()["error"] == "Customer not found"


def test_pending_payment_blocks_second_order(client, customer_id, make_product):
    paneer = make_product("Paneer", 90.0, 3)
    assert place(client, customer_id, [{"product_id": paneer, "quantity": 1}]).status_code == 201

    response = place(client, customer_id, [{"product_id": paneer, "quantity": 1}])

    assert response.status_code == 409
    assert "pending verification" in response.json()["error"]


def test_admin_moves_order_through_lifecycle(client, customer_id, admin_id, make_product):
    paneer = make_product("Paneer", 90.0, 3)
    order_id = place(client, customer_id, [{"product_id": paneer, "quantity": 3}]).json()["order"]["id"]

    early = client.patch(f"/orders/{order_id}", json={"actor_id": admin_id, "status": "CONFIRMED"})
    assert early.status_code == 409

    confirmed = client.patch(
        f"/orders/{order_id}",
        json={"actor_id": admin_id, "status": "CONFIRMED", "payment_status": "VERIFIED"},
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["order"]["status"] == "CONFIRMED"

    skipped = client.patch(f"/orders/{order_id}", json={"actor_id": admin_id, "status": "DELIVERED"})
    assert skipped.status_code == 400

    detail = client.get(f"/orders/{order_id}").json()
    assert detail["status"] == "CONFIRMED"
    assert (detail["subtotal"], detail["delivery_charge"], detail["total"]) == (270.0, 0, 270.0)
    assert len(detail["history"]) == 2


def test_admin_update_rejects_unknown_status(client, customer_id, make_product):
    paneer = make_product("Paneer", 90.0, 3)
    order_id = place(client, customer_id, [{"product_id": paneer, "quantity": 1}]).json()["order"]["id"]

    assert client.patch(f"/orders/{order_id}", json={"status": "LOST"}).status_code == 422
    assert client.patch("/orders/missing", json={"status": "CONFIRMED"}).status_code == 404


def test_cancel_without_reason(client, customer_id, make_product):
    paneer = make_product("Paneer", 90.0, 3)
    order_id = place(client, customer_id, [{"product_id": paneer, "quantity": 1}]).json()["order"]["id"]

    response = client.patch(f"/orders/{order_id}", json={"status": "CANCELLED"})

    assert response.status_code == 400


def test_user_orders(client, customer_id, make_product):
    paneer = make_product("Paneer", 90.0, 3)
    place(client, customer_id, [{"product_id": paneer, "quantity": 1}])

    body = client.get(f"/orders/user/{customer_id}").json()

    assert body["total_orders"] == 1
    assert body["orders"][0]["items"][0]["name"] == "Paneer"
    assert client.get("/orders/user/nobody").status_code == 404


def test_admin_sets_stock(client, db, admin_id, make_product):
    paneer = make_product("Paneer", 90.0, 3)

    response = client.put(f"/products/{paneer}/stock", json={"stock": 12, "actor_id": admin_id})

    assert response.status_code == 200
    assert (response.json()["previous_stock"], response.json()["stock"]) == (3, 12)
    assert response.json()["reason"] == "[MANUAL] Admin updated product stock."
    assert stock_of(db, paneer) == 12
    assert client.put(f"/products/{paneer}/stock", json={"stock": -1}).status_code == 422
    assert client.put("/products/missing/stock", json={"stock": 1}).status_code == 404


def test_admin_order_search(client, make_customer, make_product):
    paneer = make_product("Paneer", 90.0, 10)
    asha = make_customer(email="asha@example.com", name="Asha")
    ravi = make_customer(email="ravi@example.com", name="Ravi")
    asha_order = place(client, asha, [{"product_id": paneer, "quantity": 1}]).json()["order"]["id"]
    place(client, ravi, [{"product_id": paneer, "quantity": 1}])
    client.patch(f"/orders/{asha_order}", json={"status": "CANCELLED", "cancel_reason": "Ordered twice"})

    everything = client.get("/orders").json()
    assert everything["total_orders"] == 2

    by_email = client.get("/orders", params={"q": "RAVI@"}).json()["orders"]
    assert [o["customer"]["name"] for o in by_email] == ["Ravi"]

    cancelled = client.get("/orders", params={"status": "CANCELLED"}).json()["orders"]
    assert [o["id"] for o in cancelled] == [asha_order]

    assert client.get("/orders", params={"status": "LOST"}).json()["total_orders"] == 2
    assert client.get("/orders", params={"from": "2001-01-01", "to": "2001-01-31"}).json()["total_orders"] == 0
    assert client.get("/orders", params={"from": "not-a-date"}).status_code == 422


def test_product_filters(client, make_product):
    make_product("Basmati Rice", 140.0, 10)
    make_product("Toor Dal", 160.0, 0)

    def names(**params):
        return [p["name"] for p in client.get("/products", params=params).json()]

    assert names(q="dal") == ["Toor Dal"]
    assert names(q="staples") == ["Basmati Rice", "Toor Dal"]
    assert names(stock="in") == ["Basmati Rice"]
    assert names(stock="out") == ["Toor Dal"]
    assert names(categoryId="missing") == []


def test_category_routes(client, make_product):
    created = client.post("/categories", json={"name": "  Snacks "})
    assert created.status_code == 201
    snacks = created.json()["category"]
    assert snacks["name"] == "Snacks"

    assert client.post("/categories", json={"name": "Snacks"}).status_code == 409
    assert client.post("/categories", json={"name": "S"}).status_code == 422
    assert "Snacks" in [c["name"] for c in client.get("/categories").json()["categories"]]

    renamed = client.patch(f"/categories/{snacks['id']}", json={"name": "Namkeen"})
    assert renamed.json()["category"]["name"] == "Namkeen"
    assert client.patch("/categories/missing", json={"name": "Namkeen"}).status_code == 404

    make_product("Basmati Rice", 140.0, 10)
    staples = next(c for c in client.get("/categories").json()["categories"] if c["name"] == "Staples")
    assert client.patch(f"/categories/{snacks['id']}", json={"name": "Staples"}).status_code == 409
    assert client.delete(f"/categories/{staples['id']}").status_code == 409
    assert client.delete(f"/categories/{snacks['id']}").status_code == 200
    assert client.delete(f"/categories/{snacks['id']}").status_code == 404


def test_product_admin_routes(client, db, admin_id):
    category = client.post("/categories", json={"name": "Dairy"}).json()["category"]

    created = client.post(
        "/products",
        json={"name": "Ghee", "price": 550.0, "stock": 6, "category_id": category["id"]},
    )
    assert created.status_code == 201
    ghee = created.json()["product"]
    assert ghee["category"] == "Dairy"

    free = {"name": "Ghee", "price": 0, "stock": 1, "category_id": category["id"]}
    assert client.post("/products", json=free).status_code == 422
    orphan = {"name": "Ghee", "price": 5, "stock": 1, "category_id": "missing"}
    assert client.post("/products", json=orphan).status_code == 400

    edited = client.patch(
        f"/products/{ghee['id']}",
        json={"price": 540.0, "stock": 4, "stock_reason_tag": "EXPIRED", "actor_id": admin_id},
    )
    assert edited.status_code == 200
    assert (edited.json()["product"]["price"], edited.json()["product"]["stock"]) == (540.0, 4)
    assert stock_of(db, ghee["id"]) == 4

    assert client.patch(f"/products/{ghee['id']}", json={}).status_code == 400
    assert client.patch(f"/products/{ghee['id']}", json={"category_id": "missing"}).status_code == 400
    assert client.patch("/products/missing", json={"price": 1.0}).status_code == 404

    # The stock edit left a ledger row behind
    assert client.delete(f"/products/{ghee['id']}").status_code == 409

    plain = client.post("/products", json={"name": "Curd", "price": 45.0, "stock": 5, "category_id": category["id"]})
    assert client.delete(f"/products/{plain.json()['product']['id']}").status_code == 200
    assert client.delete("/products/missing").status_code == 404


def test_store_settings_routes(client):
    assert client.get("/store/settings").json() == {
        "settings": {"is_open": True, "next_open_at": None, "message": None}
    }

    closed = client.patch(
        "/store/settings",
        json={"is_open": False, "next_open_at": "2026-10-19T08:00:00", "message": "Closed for Diwali"},
    )
    assert closed.status_code == 200
    assert client.get("/store/settings").json()["settings"] == {
        "is_open": False,
        "next_open_at": "2026-10-19T08:00:00",
        "message": "Closed for Diwali",
    }

    assert client.patch("/store/settings", json={"is_open": True}).json()["settings"] == {
        "is_open": True,
        "next_open_at": None,
        "message": None,
    }
    assert client.patch("/store/settings", json={"message": "x"}).status_code == 422
    assert client.patch("/store/settings", json={"is_open": False, "message": "x" * 201}).status_code == 422
