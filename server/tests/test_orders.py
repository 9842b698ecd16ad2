"""Tests for customer orders and admin order management."""

from decimal import Decimal

import pytest
from carwash.models import Notification, Payment
from carwash.models.appointment import PaymentStatus
from carwash.models.notification import NotificationType
from sqlalchemy import select


def order_payload(product, quantity=2, **overrides):
    payload = {
        "items": [{"productId": product.id, "quantity": quantity, "price": str(product.price)}],
        "address": "Lakeside, Pokhara",
        "phoneNumber": "9811111111",
        "paymentMethod": "ESEWA",
    }
    payload.update(overrides)
    return payload


class TestCreateOrder:
    """POST /orders"""

    @pytest.mark.asyncio
    async def test_create(self, client, auth, db_session, customer, product):
        auth.login(customer)

        response = await client.post("/api/v1/orders", json=order_payload(product))

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["payment_status"] == "PENDING"
        assert data["total_amount"] == "1799.98"
        assert data["items"][0]["quantity"] == 2
        assert data["items"][0]["product"]["name"] == "Carnauba Wax"
        assert data["payment"] is None

        # Stock is reserved only once the payment settles
        await db_session.refresh(product)
        assert product.stock == 10

    @pytest.mark.asyncio
    async def test_explicit_total_is_kept(self, client, auth, customer, product):
        auth.login(customer)
        response = await client.post(
            "/api/v1/orders", json=order_payload(product, totalAmount="1850.00")
        )
        assert response.json()["total_amount"] == "1850.00"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,detail",
        [
            ({"items": []}, "Order items are required"),
            ({"address": " "}, "Address is required"),
            ({"phoneNumber": None}, "Phone number is required"),
        ],
    )
    async def test_required_fields(self, client, auth, customer, product, overrides, detail):
        auth.login(customer)
        response = await client.post("/api/v1/orders", json=order_payload(product, **overrides))
        assert response.status_code == 400
        assert response.json()["detail"] == detail

    @pytest.mark.asyncio
    async def test_unknown_product(self, client, auth, customer, product):
        auth.login(customer)
        payload = order_payload(product)
        payload["items"].append({"productId": "missing", "quantity": 1, "price": "1"})

        response = await client.post("/api/v1/orders", json=payload)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_not_enough_stock(self, client, auth, customer, product):
        auth.login(customer)
        payload = order_payload(product, quantity=6)
        # Quantities for the same product are added up
        payload["items"].append(dict(payload["items"][0]))

        response = await client.post("/api/v1/orders", json=payload)

        assert response.status_code == 400
        assert response.json()["detail"] == "Not enough stock for Carnauba Wax"

    @pytest.mark.asyncio
    async def test_zero_quantity_rejected(self, client, auth, customer, product):
        auth.login(customer)
        response = await client.post("/api/v1/orders", json=order_payload(product, quantity=0))
        assert response.status_code == 422


class TestReadOrders:
    """GET /orders"""

    @pytest.mark.asyncio
    async def test_list_mine(self, client, auth, customer, other_customer, order):
        auth.login(customer)
        assert [o["id"] for o in (await client.get("/api/v1/orders")).json()] == [order.id]

        auth.login(other_customer)
        assert (await client.get("/api/v1/orders")).json() == []

    @pytest.mark.asyncio
    async def test_get_other_users_order(self, client, auth, other_customer, order):
        auth.login(other_customer)
        response = await client.get(f"/api/v1/orders/{order.id}")
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_get_missing(self, client, auth, customer):
        auth.login(customer)
        assert (await client.get("/api/v1/orders/missing")).status_code == 404


class TestAdminOrders:
    """/admin/orders"""

    @pytest.mark.asyncio
    async def test_customer_forbidden(self, client, auth, customer):
        auth.login(customer)
        assert (await client.get("/api/v1/admin/orders")).status_code == 403

    @pytest.mark.asyncio
    async def test_list_paginated(self, client, auth, db_session, admin, customer, order, product):
        auth.login(customer)
        for _ in range(2):
            await client.post("/api/v1/orders", json=order_payload(product, quantity=1))

        auth.login(admin)
        response = await client.get("/api/v1/admin/orders", params={"page": 2, "limit": 2})

        data = response.json()
        assert data["total_orders"] == 3
        assert data["total_pages"] == 2
        assert data["current_page"] == 2
        assert len(data["orders"]) == 1
        assert data["orders"][0]["user"]["email"] == "sita@example.com"

    @pytest.mark.asyncio
    async def test_filter_and_search(self, client, auth, admin, order, other_customer):
        auth.login(admin)

        by_status = await client.get("/api/v1/admin/orders", params={"status": "SHIPPED"})
        assert by_status.json()["total_orders"] == 0

        by_name = await client.get("/api/v1/admin/orders", params={"search": "sita"})
        assert [o["id"] for o in by_name.json()["orders"]] == [order.id]

        by_id = await client.get("/api/v1/admin/orders", params={"search": order.id[:8]})
        assert by_id.json()["total_orders"] == 1

        nobody = await client.get("/api/v1/admin/orders", params={"search": "ram@"})
        assert nobody.json()["total_orders"] == 0

    @pytest.mark.asyncio
    async def test_invalid_status_filter(self, client, auth, admin):
        auth.login(admin)
        response = await client.get("/api/v1/admin/orders", params={"status": "LOST"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_status_notifies(self, client, auth, db_session, admin, customer, order):
        auth.login(admin)

        response = await client.patch(f"/api/v1/admin/orders/{order.id}", json={"status": "shipped"})

        assert response.status_code == 200
        assert response.json()["status"] == "SHIPPED"
        notes = (
            await db_session.execute(select(Notification).where(Notification.user_id == customer.id))
        ).scalars().all()
        assert [(n.title, n.type) for n in notes] == [("Order Updated", NotificationType.ORDER)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["PROCESSING", "PAYMENT_FAILED", "LOST"])
    async def test_update_rejects_status(self, client, auth, admin, order, value):
        auth.login(admin)
        response = await client.patch(f"/api/v1/admin/orders/{order.id}", json={"status": value})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid order status"

    @pytest.mark.asyncio
    async def test_refund_marks_payment(self, client, auth, db_session, admin, customer, order):
        payment = Payment(
            user_id=customer.id,
            order_id=order.id,
            amount=Decimal("1799.98"),
            status=PaymentStatus.PAID,
            transaction_id="tx-refund",
        )
        db_session.add(payment)
        await db_session.commit()

        auth.login(admin)
        response = await client.patch(f"/api/v1/admin/orders/{order.id}", json={"status": "REFUNDED"})

        assert response.json()["payment"]["status"] == "REFUNDED"
        await db_session.refresh(payment)
        assert payment.status == PaymentStatus.REFUNDED

    @pytest.mark.asyncio
    async def test_get_missing(self, client, auth, admin):
        auth.login(admin)
        assert (await client.get("/api/v1/admin/orders/missing")).status_code == 404

    @pytest.mark.asyncio
    async def test_get_includes_products(self, client, auth, admin, order):
        auth.login(admin)
        data = (await client.get(f"/api/v1/admin/orders/{order.id}")).json()
        assert data["items"][0]["product"]["price"] == "899.99"

