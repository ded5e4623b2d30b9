from conftest import add_product


def place_order(client, headers, product_id, quantity=1, price=100.0):
    resp = client.post("/orders", json={
        "items": [{"product_id": product_id, "quantity": quantity, "price": price}],
        "shipping_method": "PICKUP",
    }, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def set_status(client, admin, order_id, status):
    resp = client.patch(f"/orders/{order_id}/status", json={"order_status": status}, headers=admin["headers"])
    assert resp.status_code == 200, resp.text


def test_users_endpoints_require_admin(client, customer):
    assert client.get("/users").status_code == 401
    assert client.get("/users", headers=customer["headers"]).status_code == 403
    resp = client.patch(f"/users/{customer['user']['id']}", json={"is_admin": True}, headers=customer["headers"])
    assert resp.status_code == 403


def test_stats_exclude_cancelled_orders(client, db, admin, customer):
    pid = add_product(db, price=100.0, stock=20)
    place_order(client, customer["headers"], pid, quantity=2)
    delivered = place_order(client, customer["headers"], pid, quantity=1)
    cancelled = place_order(client, customer["headers"], pid, quantity=5)
    set_status(client, admin, delivered["id"], "DELIVERED")
    set_status(client, admin, cancelled["id"], "CANCELLED")

    stats = client.get(f"/users/{customer['user']['id']}/stats", headers=admin["headers"]).json()["data"]

    assert stats["total_orders"] == 2
    assert stats["total_spent"] == 300.0
    assert stats["completed_orders"] == 1
    assert stats["first_order_date"] <= stats["last_order_date"]


def test_stats_for_user_without_orders(client, admin, customer):
    stats = client.get(f"/users/{customer['user']['id']}/stats", headers=admin["headers"]).json()["data"]
    assert stats == {"total_spent": 0, "total_orders": 0, "completed_orders": 0}


def test_list_users_with_stats_and_filters(client, db, admin, customer):
    pid = add_product(db, price=40.0)
    place_order(client, customer["headers"], pid, price=40.0)

    page = client.get("/users", headers=admin["headers"]).json()["data"]
    assert page["total"] == 2
    by_email = {u["email"]: u for u in page["items"]}
    assert by_email["ana@example.com"]["total_spent"] == 40.0
    assert by_email["boss@example.com"]["total_orders"] == 0
    assert all("password_hash" not in u for u in page["items"])

    admins = client.get("/users", params={"is_admin": True}, headers=admin["headers"]).json()["data"]
    assert [u["email"] for u in admins["items"]] == ["boss@example.com"]

    found = client.get("/users", params={"search": "LOPEZ"}, headers=admin["headers"]).json()["data"]
    assert [u["email"] for u in found["items"]] == ["ana@example.com"]


def test_get_user_and_orders(client, db, admin, customer):
    pid = add_product(db)
    order = place_order(client, customer["headers"], pid)

    user = client.get(f"/users/{customer['user']['id']}", headers=admin["headers"]).json()["data"]
    assert user["email"] == "ana@example.com"
    assert user["total_orders"] == 1
    assert "password_hash" not in user

    orders = client.get(f"/users/{customer['user']['id']}/orders", headers=admin["headers"]).json()["data"]
    assert [o["id"] for o in orders["items"]] == [order["id"]]

    assert client.get("/users/bogus", headers=admin["headers"]).status_code == 400


def test_admin_updates_other_user(client, admin, customer):
    resp = client.patch(f"/users/{customer['user']['id']}", json={"is_active": False}, headers=admin["headers"])

    assert resp.status_code == 200
    assert resp.json()["data"]["is_active"] is False
    assert "password_hash" not in resp.json()["data"]

    resp = client.post("/auth/login", json={"email": "ana@example.com", "password": "secret123"})
    assert resp.status_code == 403


def test_admin_cannot_lock_themselves_out(client, admin):
    me = admin["user"]["id"]
    assert client.patch(f"/users/{me}", json={"is_active": False}, headers=admin["headers"]).status_code == 400
    assert client.patch(f"/users/{me}", json={"is_admin": False}, headers=admin["headers"]).status_code == 400
