"""
End-to-end tests through the HTTP API: check-in, cart, upsell, order,
summary, loyalty and session close.
"""

from sqlalchemy.exc import OperationalError

from cafe_api.services.domain import OrderService
from tests.conftest import CAFE_ID, CROISSANT, GUEST_ID, HOST_ID, LATTE

HOST = {"X-User-Id": str(HOST_ID)}
GUEST = {"X-User-Id": str(GUEST_ID)}


def _broken_write(*args, **kwargs):
    raise OperationalError("INSERT INTO discount", {}, Exception("database is locked"))


def _check_in(client, headers, table="T1"):
    response = client.post(
        "/api/sessions/check-in",
        json={"table_id": table, "cafe_id": CAFE_ID},
        headers=headers,
    )
    assert response.status_code == 200, response.json()
    return response.json()


def _add(client, session_id, items, total, cart_id=None, headers=HOST):
    return client.post(
        "/api/cart/add",
        json={
            "cart_id": cart_id,
            "session_id": session_id,
            "cafe_id": CAFE_ID,
            "items": items,
            "total_amount": total,
        },
        headers=headers,
    )


class TestOrderingFlow:
    """A table's full ordering round trip."""

    def test_full_flow(self, client, seed_cafe, push_dispatcher):
        host = _check_in(client, HOST)
        guest = _check_in(client, GUEST)
        assert host["role"] == "Host"
        assert guest["role"] == "Guest"
        assert guest["session_id"] == host["session_id"]
        session_id = host["session_id"]

        response = client.post(
            "/api/sessions/verify-code",
            json={"session_id": session_id, "table_code": host["table_code"]},
            headers=GUEST,
        )
        assert response.status_code == 200

        response = _add(
            client,
            session_id,
            [
                {"item_id": LATTE, "quantity": 2, "price": 150},
                {"item_id": CROISSANT, "quantity": 1, "price": 90, "added_via": "TopPicks"},
            ],
            390,
        )
        assert response.status_code == 200, response.json()
        cart_id = response.json()["cart_id"]

        response = client.post(
            "/api/cart/get", json={"cart_id": cart_id, "session_id": session_id}, headers=HOST
        )
        assert response.status_code == 200
        cart = response.json()
        assert cart["total_amount"] == 390
        assert {i["item_name"] for i in cart["items"]} == {"Latte", "Croissant"}

        response = client.post(
            "/api/cart/upsell", json={"cart_id": cart_id, "cafe_id": CAFE_ID}, headers=HOST
        )
        assert response.status_code == 200
        assert response.json()["target_amount"] == 10
        assert response.json()["mustaches_to_give"] == 20

        response = client.post(
            "/api/orders/place",
            json={
                "cart_id": cart_id,
                "session_id": session_id,
                "cafe_id": CAFE_ID,
                "total_amount": 390,
                "discount": 0,
            },
            headers=HOST,
        )
        assert response.status_code == 200, response.json()
        placed = response.json()
        assert placed["rewards_earned"] == 20
        assert len(push_dispatcher.calls) == 1

        response = client.post("/api/orders/details", json={"session_id": session_id}, headers=HOST)
        assert response.status_code == 200
        groups = response.json()["groups"]
        assert groups[0]["orders"][0]["order_id"] == placed["order_id"]

        response = client.get("/api/loyalty/profile", headers=HOST)
        assert response.status_code == 200
        assert response.json()["balance"] == 20

        response = client.get(f"/api/personalisation?cafe_id={CAFE_ID}", headers=HOST)
        assert response.status_code == 200
        assert {i["id"] for i in response.json()["recent_order"]} == {LATTE, CROISSANT}

        response = client.post("/api/sessions/invalidate", json={"session_id": session_id}, headers=HOST)
        assert response.status_code == 200
        assert response.json()["closed_user_sessions"] == 2

        response = client.get(f"/api/sessions/status?session_id={session_id}")
        assert response.json()["active"] is False

        response = _add(client, session_id, [{"item_id": LATTE, "quantity": 1, "price": 150}], 150)
        assert response.status_code == 409

    def test_quantity_update(self, client, seed_cafe):
        session_id = _check_in(client, HOST)["session_id"]
        cart_id = _add(
            client, session_id, [{"item_id": LATTE, "quantity": 1, "price": 150}], 150
        ).json()["cart_id"]
        cart = client.post(
            "/api/cart/get", json={"cart_id": cart_id, "session_id": session_id}, headers=HOST
        ).json()
        cart_item_id = cart["items"][0]["cart_item_id"]

        response = client.post(
            "/api/cart/quantity",
            json={"cart_item_id": cart_item_id, "quantity": 0, "cart_amount": 0},
            headers=HOST,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "Canceled"

    def test_favourite(self, client, seed_cafe):
        response = client.post(
            "/api/favourites", json={"cafe_id": CAFE_ID, "item_id": LATTE}, headers=HOST
        )

        assert response.status_code == 200
        assert response.json()["created"] is True


class TestApiErrors:
    """Error mapping at the HTTP boundary."""

    def test_missing_user_header(self, client, seed_cafe):
        response = client.post("/api/sessions/check-in", json={"table_id": "T1", "cafe_id": CAFE_ID})

        assert response.status_code == 401

    def test_unknown_insert_type_rejected(self, client, seed_cafe):
        session_id = _check_in(client, HOST)["session_id"]

        response = _add(
            client,
            session_id,
            [{"item_id": LATTE, "quantity": 1, "price": 150, "added_via": "Billboard"}],
            150,
        )

        assert response.status_code == 422

    def test_total_mismatch_is_conflict(self, client, seed_cafe):
        session_id = _check_in(client, HOST)["session_id"]

        response = _add(client, session_id, [{"item_id": LATTE, "quantity": 2, "price": 150}], 100)

        assert response.status_code == 409

    def test_unknown_session_status_is_inactive(self, client, seed_cafe):
        response = client.get("/api/sessions/status?session_id=missing")

        assert response.status_code == 200
        assert response.json()["active"] is False

    def test_partial_failure_exposes_order_id(self, client, seed_cafe, monkeypatch):
        """A 500 after the order row is stored carries the order id for reconciliation."""
        session_id = _check_in(client, HOST)["session_id"]
        cart_id = _add(
            client, session_id, [{"item_id": LATTE, "quantity": 1, "price": 150}], 150
        ).json()["cart_id"]
        monkeypatch.setattr(OrderService, "_write_discount", _broken_write)

        response = client.post(
            "/api/orders/place",
            json={"cart_id": cart_id, "session_id": session_id, "cafe_id": CAFE_ID, "total_amount": 150},
            headers=HOST,
        )

        assert response.status_code == 500
        assert response.headers.get("X-Order-Id")
        assert "operation" not in response.json()

    def test_request_id_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-123"})

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-123"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_security_headers_without_server_header(self, client, seed_cafe):
        """Success and error responses both pass through the header middleware."""
        ok = client.get("/api/health")
        missing = client.post("/api/sessions/invalidate", json={"session_id": "missing"}, headers=HOST)

        assert ok.status_code == 200
        assert missing.status_code == 404
        for response in (ok, missing):
            assert response.headers["X-Frame-Options"] == "DENY"
            assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
            assert "server" not in response.headers
