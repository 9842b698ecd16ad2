"""Tests for services, vehicles, categories and products."""

import pytest
from carwash.models import Feature
from sqlalchemy import select


class TestServices:
    """/services"""

    @pytest.mark.asyncio
    async def test_list_is_public(self, client, service):
        response = await client.get("/api/v1/services")

        assert response.status_code == 200
        data = response.json()
        assert data[0]["name"] == "Premium Wash"
        assert data[0]["price"] == "1500.00"
        assert sorted(data[0]["features"]) == ["Foam wash", "Vacuum"]

    @pytest.mark.asyncio
    async def test_create(self, client, auth, admin):
        auth.login(admin)

        response = await client.post(
            "/api/v1/services",
            json={
                "name": "  Interior Detail ",
                "description": "Seats and carpets",
                "price": "2500.50",
                "duration": 90,
                "features": ["Shampoo", " ", "Leather care"],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Interior Detail"
        assert data["price"] == "2500.50"
        assert sorted(data["features"]) == ["Leather care", "Shampoo"]

    @pytest.mark.asyncio
    async def test_create_requires_admin(self, client, auth, customer):
        auth.login(customer)
        response = await client.post(
            "/api/v1/services", json={"name": "Wash", "price": "100", "duration": 10}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"price": "100", "duration": 10},
            {"name": "Wash", "price": "0", "duration": 10},
            {"name": "Wash", "price": "100", "duration": 0},
        ],
    )
    async def test_create_validation(self, client, auth, admin, payload):
        auth.login(admin)
        response = await client.post("/api/v1/services", json=payload)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_replaces_features(self, client, auth, db_session, admin, service):
        auth.login(admin)

        response = await client.put(
            f"/api/v1/services/{service.id}", json={"price": "1750", "features": ["Wax"]}
        )

        assert response.status_code == 200
        assert response.json()["price"] == "1750.00"
        assert response.json()["features"] == ["Wax"]
        names = (
            await db_session.execute(select(Feature.name).where(Feature.service_id == service.id))
        ).scalars().all()
        assert names == ["Wax"]

    @pytest.mark.asyncio
    async def test_update_without_features_keeps_them(self, client, auth, admin, service):
        auth.login(admin)
        response = await client.put(f"/api/v1/services/{service.id}", json={"name": "Deluxe"})
        assert sorted(response.json()["features"]) == ["Foam wash", "Vacuum"]

    @pytest.mark.asyncio
    async def test_delete(self, client, auth, db_session, admin, service):
        auth.login(admin)

        response = await client.delete(f"/api/v1/services/{service.id}")

        assert response.json() == {"success": True}
        assert (await client.get("/api/v1/services")).json() == []
        remaining = (await db_session.execute(select(Feature))).scalars().all()
        assert remaining == []

    @pytest.mark.asyncio
    async def test_delete_booked(self, client, auth, admin, service, appointment):
        auth.login(admin)

        response = await client.delete(f"/api/v1/services/{service.id}")

        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot delete service with associated bookings"
        assert len((await client.get("/api/v1/services")).json()) == 1

    @pytest.mark.asyncio
    async def test_update_missing(self, client, auth, admin):
        auth.login(admin)
        response = await client.put("/api/v1/services/missing", json={"name": "X"})
        assert response.status_code == 404


class TestVehicles:
    """/vehicles"""

    @pytest.mark.asyncio
    async def test_add_and_list(self, client, auth, customer, other_customer):
        auth.login(customer)

        response = await client.post(
            "/api/v1/vehicles", json={"type": "suv", "model": "Kia Sportage", "plate": "ba 2 cha 99"}
        )

        assert response.status_code == 201
        assert response.json()["plate"] == "BA 2 CHA 99"
        assert len((await client.get("/api/v1/vehicles")).json()) == 1

        auth.login(other_customer)
        assert (await client.get("/api/v1/vehicles")).json() == []

    @pytest.mark.asyncio
    async def test_blank_fields(self, client, auth, customer):
        auth.login(customer)
        response = await client.post(
            "/api/v1/vehicles", json={"type": "suv", "model": " ", "plate": "X"}
        )
        assert response.status_code == 400


class TestCategories:
    """/categories"""

    @pytest.mark.asyncio
    async def test_create_and_list_sorted(self, client, auth, admin, category):
        auth.login(admin)

        response = await client.post("/api/v1/categories", json={"name": "Accessories"})

        assert response.status_code == 201
        names = [c["name"] for c in (await client.get("/api/v1/categories")).json()]
        assert names == ["Accessories", "Car Care"]

    @pytest.mark.asyncio
    async def test_duplicate(self, client, auth, admin, category):
        auth.login(admin)
        response = await client.post("/api/v1/categories", json={"name": "Car Care"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Category already exists"

    @pytest.mark.asyncio
    async def test_missing_name(self, client, auth, admin):
        auth.login(admin)
        response = await client.post("/api/v1/categories", json={})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_rename(self, client, auth, admin, category):
        auth.login(admin)
        response = await client.put(f"/api/v1/categories/{category.id}", json={"name": "Polish"})
        assert response.json()["name"] == "Polish"

    @pytest.mark.asyncio
    async def test_delete_in_use(self, client, auth, admin, category, product):
        auth.login(admin)
        response = await client.delete(f"/api/v1/categories/{category.id}")
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot delete category with associated products"

    @pytest.mark.asyncio
    async def test_delete_unused(self, client, auth, admin, category):
        auth.login(admin)
        response = await client.delete(f"/api/v1/categories/{category.id}")
        assert response.json() == {"success": True}


class TestProducts:
    """/products"""

    @pytest.mark.asyncio
    async def test_create(self, client, auth, admin, category):
        auth.login(admin)

        response = await client.post(
            "/api/v1/products",
            json={
                "name": "Microfiber Towel",
                "price": "12.50",
                "stock": 40,
                "categoryId": category.id,
                "images": ["https://cdn.example.com/towel.jpg"],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["price"] == "12.50"
        assert data["stock"] == 40
        assert data["category"]["name"] == "Car Care"

    @pytest.mark.asyncio
    async def test_create_unknown_category(self, client, auth, admin):
        auth.login(admin)
        response = await client.post(
            "/api/v1/products", json={"name": "Towel", "price": "1", "categoryId": "missing"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field,value", [("price", "-1"), ("stock", -5)])
    async def test_create_negative_values(self, client, auth, admin, category, field, value):
        auth.login(admin)
        payload = {"name": "Towel", "price": "1", "stock": 1, "categoryId": category.id}
        payload[field] = value
        response = await client.post("/api/v1/products", json=payload)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_filter_by_category(self, client, db_session, auth, admin, product):
        auth.login(admin)
        other = (await client.post("/api/v1/categories", json={"name": "Tools"})).json()

        response = await client.get("/api/v1/products", params={"category_id": other["id"]})
        assert response.json() == []

        response = await client.get("/api/v1/products", params={"category_id": product.category_id})
        assert [p["id"] for p in response.json()] == [product.id]

    @pytest.mark.asyncio
    async def test_get_and_missing(self, client, product):
        response = await client.get(f"/api/v1/products/{product.id}")
        assert response.json()["images"] == ["https://cdn.example.com/wax.jpg"]

        assert (await client.get("/api/v1/products/missing")).status_code == 404

    @pytest.mark.asyncio
    async def test_update(self, client, auth, admin, product):
        auth.login(admin)
        response = await client.put(
            f"/api/v1/products/{product.id}", json={"stock": 3, "price": "950"}
        )
        assert response.json()["stock"] == 3
        assert response.json()["price"] == "950.00"

    @pytest.mark.asyncio
    async def test_delete(self, client, auth, admin, product):
        auth.login(admin)
        assert (await client.delete(f"/api/v1/products/{product.id}")).json() == {"success": True}
        assert (await client.get(f"/api/v1/products/{product.id}")).status_code == 404

    @pytest.mark.asyncio
    async def test_delete_ordered(self, client, auth, admin, product, order):
        auth.login(admin)

        response = await client.delete(f"/api/v1/products/{product.id}")

        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot delete product with associated orders"
        assert (await client.get(f"/api/v1/products/{product.id}")).status_code == 200
