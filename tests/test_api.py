"""HTTP surface: auth guards, error bodies and the customer-to-kitchen flow."""

import pytest
from httpx import ASGITransport, AsyncClient

from tableside.database import get_db
from tableside.main import app
from tableside.models import UserRole
from tableside.services.identity import IdentityClaim, get_token_service

from tests.conftest import make_user


@pytest.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def bearer(user_id: int, role: UserRole = UserRole.CUSTOMER) -> dict[str, str]:
    token = get_token_service().issue(IdentityClaim(user_id, role))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin_headers(db):
    admin = await make_user(db, "admin@test.com", role=UserRole.ADMIN)
    return bearer(admin.id, UserRole.ADMIN)


# =============================================================================
# ROOT & AUTH
# =============================================================================

async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "operational"
    assert body["identity_service"] == "jwt"
    assert body["blob_store"] == "memory"


async def test_sign_up_and_me(client):
    response = await client.post(
        "/api/auth/signup",
        json={"name": "Jane", "email": "Jane@Example.com", "password": "password123"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["user"]["email"] == "jane@example.com"
    assert body["user"]["role"] == "CUSTOMER"

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == body["user"]["id"]

    duplicate = await client.post(
        "/api/auth/signup",
        json={"name": "Jane", "email": "jane@example.com", "password": "password123"},
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "Email already exists"


async def test_sign_in_wrong_password(client):
    await client.post("/api/auth/signup", json={"name": "Jane", "email": "jane@example.com", "password": "password123"})
    response = await client.post("/api/auth/signin", json={"email": "jane@example.com", "password": "nope-nope"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Invalid email or password", "detail": None}


async def test_missing_token_is_401(client):
    response = await client.get("/api/cart")
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Authentication required", "detail": None}


async def test_garbage_token_is_401(client):
    response = await client.get("/api/cart", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"


async def test_token_for_deleted_user_is_401(client):
    response = await client.get("/api/cart", headers=bearer(9999))
    assert response.status_code == 401
    assert response.json()["error"] == "User no longer exists"


async def test_customer_cannot_use_admin_routes(client, customer):
    # An ADMIN claim in the token is not enough; the stored role decides
    for headers in (bearer(customer.id), bearer(customer.id, UserRole.ADMIN)):
        response = await client.get("/api/admin/orders", headers=headers)
        assert response.status_code == 403
        assert response.json()["error"] == "Admin access required"


# =============================================================================
# ORDERING FLOW
# =============================================================================

async def test_cart_checkout_and_status_flow(client, customer, menu, admin_headers):
    headers = bearer(customer.id)
    restaurant_id = menu["restaurant"].id

    response = await client.post(
        "/api/cart/items",
        headers=headers,
        json={
            "product_id": menu["product"].id,
            "quantity": 2,
            "customizations": [{"type": "EXTRA", "reference_id": menu["sauce"].id}],
            "note": "Extra napkins",
        },
    )
    assert response.status_code == 201
    line = response.json()
    assert line["final_price_snapshot"] == "13.99"
    assert line["product"]["name"] == "Chicken Gyro"
    assert line["customizations"][0]["type"] == "EXTRA"

    totals = (await client.get("/api/cart/totals", headers=headers)).json()
    assert totals == {"total_amount": "27.98", "item_count": 2, "unique_items": 1}

    response = await client.post(
        "/api/orders/checkout",
        headers=headers,
        json={
            "restaurant_id": restaurant_id,
            "fulfillment_type": "PICKUP",
            "fulfillment_details": {"contact_name": "Jane", "pickup_time": "2026-11-01T12:30:00"},
        },
    )
    assert response.status_code == 201
    order = response.json()
    assert order["status"] == "PENDING"
    assert order["total_amount"] == "27.98"
    assert order["items"][0]["note"] == "Extra napkins"

    cart = (await client.get("/api/cart", headers=headers)).json()
    assert cart["items"] == []
    assert cart["totals"]["total_amount"] == "0.00"

    mine = (await client.get("/api/orders", headers=headers)).json()
    assert mine["total"] == 1
    assert mine["orders"][0]["id"] == order["id"]

    response = await client.patch(
        f"/api/admin/orders/{order['id']}/status", headers=admin_headers, json={"status": "CONFIRMED"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"

    response = await client.patch(
        f"/api/admin/orders/{order['id']}/status", headers=admin_headers, json={"status": "CONFIRMED"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Cannot transition from CONFIRMED to CONFIRMED"


async def test_empty_cart_checkout(client, customer, menu):
    response = await client.post(
        "/api/orders/checkout",
        headers=bearer(customer.id),
        json={"restaurant_id": menu["restaurant"].id, "fulfillment_type": "PICKUP"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Cart is empty"


async def test_other_users_order_is_404(client, customer, menu, admin_headers):
    headers = bearer(customer.id)
    await client.post("/api/cart/items", headers=headers, json={"product_id": menu["product"].id})
    order = (
        await client.post(
            "/api/orders/checkout",
            headers=headers,
            json={
                "restaurant_id": menu["restaurant"].id,
                "fulfillment_type": "DELIVERY",
                "fulfillment_details": {"street": "1 Main St", "phone_number": "555-0100"},
            },
        )
    ).json()

    stranger = await client.post(
        "/api/auth/signup", json={"name": "Sam", "email": "sam@example.com", "password": "password123"}
    )
    token = stranger.json()["token"]
    response = await client.get(f"/api/orders/{order['id']}", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 404

    response = await client.get(f"/api/admin/orders/{order['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["fulfillment"]["street"] == "1 Main St"


async def test_malformed_body_is_400(client, customer):
    response = await client.post(
        "/api/cart/items",
        headers=bearer(customer.id),
        json={"product_id": 1, "quantity": "lots"},
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Invalid request"
    assert body["detail"].startswith("quantity:")


# =============================================================================
# CATALOG & TABLES
# =============================================================================

async def test_admin_catalog_writes(client, restaurant, admin_headers):
    response = await client.post(
        "/api/categories", headers=admin_headers, json={"restaurant_id": restaurant.id, "name": "Drinks"}
    )
    assert response.status_code == 201
    category_id = response.json()["id"]

    response = await client.post(
        "/api/categories", headers=admin_headers, json={"restaurant_id": restaurant.id, "name": "drinks"}
    )
    assert response.status_code == 409

    response = await client.post(
        "/api/products",
        headers=admin_headers,
        json={"restaurant_id": restaurant.id, "category_id": category_id, "name": "Lemonade", "base_price": "3.5"},
    )
    assert response.status_code == 201
    product = response.json()
    assert product["base_price"] == "3.50"

    response = await client.delete(f"/api/products/{product['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["outcome"] == "DELETED"

    listing = await client.get(f"/api/restaurants/{restaurant.id}/products")
    assert listing.json() == []


async def test_catalog_writes_need_admin(client, customer, restaurant):
    response = await client.post(
        "/api/categories", headers=bearer(customer.id), json={"restaurant_id": restaurant.id, "name": "Drinks"}
    )
    assert response.status_code == 403


async def test_available_tables(client, tables):
    response = await client.get(
        "/api/tables/available",
        params={
            "restaurant_id": tables[0].restaurant_id,
            "reservation_time": "2026-11-01T19:00:00",
            "party_size": 4,
        },
    )
    assert response.status_code == 200
    assert [t["table_number"] for t in response.json()] == ["2", "3"]

    response = await client.get(
        f"/api/tables/{tables[0].id}/availability", params={"reservation_time": "2026-11-01T19:00:00"}
    )
    assert response.json()["available"] is True
