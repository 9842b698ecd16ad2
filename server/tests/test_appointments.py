"""Tests for appointment booking."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from carwash.models import Appointment, Notification, Service
from carwash.models.notification import NotificationType
from carwash.services.realtime import ADMIN_CHANNEL, NEW_NOTIFICATION
from sqlalchemy import select


def today_at(hour):
    return datetime.now(timezone.utc).replace(hour=hour, minute=0, second=0, microsecond=0)


def booking_payload(service, vehicle, **overrides):
    payload = {
        "serviceId": service.id,
        "vehicleId": vehicle.id,
        "date": (today_at(9) + timedelta(days=3)).isoformat(),
        "timeSlot": "09:00 AM",
        "notes": "Please clean the mats",
        "paymentType": "HALF",
    }
    payload.update(overrides)
    return payload


async def notifications_for(db_session, user_id):
    result = await db_session.execute(
        select(Notification).where(Notification.user_id == user_id)
    )
    return result.scalars().all()


class TestCreateAppointment:
    """POST /appointments"""

    @pytest.mark.asyncio
    async def test_create_booking(
        self, client, auth, db_session, publisher, customer, admin, service, vehicle
    ):
        auth.login(customer)

        response = await client.post("/api/v1/appointments", json=booking_payload(service, vehicle))

        assert response.status_code == 201
        data = response.json()
        assert data["price"] == "1500.00"
        assert data["status"] == "PENDING"
        assert data["payment_status"] == "PENDING"
        assert data["payment_type"] == "HALF"
        assert data["payment_method"] == "ESEWA"
        assert data["needs_staff_assignment"] is True
        assert data["service"]["name"] == "Premium Wash"
        assert data["vehicle"]["plate"] == vehicle.plate

        customer_notes = await notifications_for(db_session, customer.id)
        assert [n.title for n in customer_notes] == ["Booking Received"]
        admin_notes = await notifications_for(db_session, admin.id)
        assert [n.type for n in admin_notes] == [NotificationType.BOOKING]

        pushed = publisher.channels(NEW_NOTIFICATION)
        assert f"user-{customer.id}" in pushed
        assert f"user-{customer.clerk_id}" in pushed
        assert f"user-{admin.id}" in pushed
        assert ADMIN_CHANNEL in publisher.channels()

    @pytest.mark.asyncio
    async def test_unknown_service(self, client, auth, customer, service, vehicle):
        auth.login(customer)
        payload = booking_payload(service, vehicle, serviceId="missing")

        response = await client.post("/api/v1/appointments", json=payload)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_someone_elses_vehicle(
        self, client, auth, other_customer, service, vehicle
    ):
        auth.login(other_customer)

        response = await client.post("/api/v1/appointments", json=booking_payload(service, vehicle))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_requires_login(self, client, service, vehicle):
        response = await client.post("/api/v1/appointments", json=booking_payload(service, vehicle))
        assert response.status_code == 401


class TestReadAppointments:
    """Listing and access control."""

    @pytest.mark.asyncio
    async def test_list_mine(self, client, auth, customer, other_customer, appointment):
        auth.login(customer)
        response = await client.get("/api/v1/appointments")
        assert [a["id"] for a in response.json()] == [appointment.id]

        auth.login(other_customer)
        response = await client.get("/api/v1/appointments")
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_owner_can_view(self, client, auth, customer, appointment):
        auth.login(customer)
        response = await client.get(f"/api/v1/appointments/{appointment.id}")

        assert response.status_code == 200
        assert sorted(response.json()["service"]["features"]) == ["Foam wash", "Vacuum"]

    @pytest.mark.asyncio
    async def test_other_customer_forbidden(self, client, auth, other_customer, appointment):
        auth.login(other_customer)
        response = await client.get(f"/api/v1/appointments/{appointment.id}")
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_assigned_staff_can_view(
        self, client, auth, db_session, staff_user, staff_member, appointment
    ):
        appointment.staff_id = staff_member.id
        await db_session.commit()

        auth.login(staff_user)
        response = await client.get(f"/api/v1/appointments/{appointment.id}")

        assert response.status_code == 200
        assert response.json()["staff"]["name"] == "Hari Gurung"

    @pytest.mark.asyncio
    async def test_missing(self, client, auth, customer):
        auth.login(customer)
        response = await client.get("/api/v1/appointments/missing")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_all_bookings_admin_only(self, client, auth, customer, admin, appointment):
        auth.login(customer)
        assert (await client.get("/api/v1/bookings")).status_code == 403

        auth.login(admin)
        response = await client.get("/api/v1/bookings")
        assert response.status_code == 200
        assert len(response.json()) == 1


class TestUpdateAppointment:
    """PATCH /appointments/{id}"""

    @pytest.mark.asyncio
    async def test_owner_reschedules(self, client, auth, customer, appointment):
        auth.login(customer)

        response = await client.patch(
            f"/api/v1/appointments/{appointment.id}",
            json={"timeSlot": "02:00 PM", "notes": "Running late"},
        )

        assert response.status_code == 200
        assert response.json()["time_slot"] == "02:00 PM"
        assert response.json()["notes"] == "Running late"

    @pytest.mark.asyncio
    async def test_owner_cannot_change_status(self, client, auth, customer, appointment):
        auth.login(customer)
        response = await client.patch(
            f"/api/v1/appointments/{appointment.id}", json={"status": "COMPLETED"}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_other_customer_cannot_update(self, client, auth, other_customer, appointment):
        auth.login(other_customer)
        response = await client.patch(
            f"/api/v1/appointments/{appointment.id}", json={"notes": "hi"}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_changing_service_reprices(self, client, auth, db_session, customer, appointment):
        basic = Service(name="Basic Wash", price=Decimal("500.00"), duration=30)
        db_session.add(basic)
        await db_session.commit()

        auth.login(customer)
        response = await client.patch(
            f"/api/v1/appointments/{appointment.id}", json={"serviceId": basic.id}
        )

        assert response.status_code == 200
        assert response.json()["price"] == "500.00"
        assert response.json()["service"]["name"] == "Basic Wash"

    @pytest.mark.asyncio
    async def test_admin_assigns_staff(
        self, client, auth, db_session, publisher, admin, staff_member, staff_user, appointment
    ):
        auth.login(admin)

        response = await client.patch(
            f"/api/v1/appointments/{appointment.id}", json={"staffId": staff_member.id}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["staff_id"] == staff_member.id
        assert data["needs_staff_assignment"] is False

        tasks = await notifications_for(db_session, staff_user.id)
        assert [(n.title, n.type) for n in tasks] == [("New Task Assigned", NotificationType.TASK)]
        assert f"user-{staff_user.clerk_id}" in publisher.channels(NEW_NOTIFICATION)

    @pytest.mark.asyncio
    async def test_admin_assigns_unknown_staff(self, client, auth, admin, appointment):
        auth.login(admin)
        response = await client.patch(
            f"/api/v1/appointments/{appointment.id}", json={"staffId": "missing"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_status_change_notifies_customer(
        self, client, auth, db_session, admin, customer, appointment
    ):
        auth.login(admin)

        response = await client.patch(
            f"/api/v1/appointments/{appointment.id}", json={"status": "confirmed"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "CONFIRMED"
        notes = await notifications_for(db_session, customer.id)
        assert [n.title for n in notes] == ["Booking Updated"]
        assert "confirmed" in notes[0].message

    @pytest.mark.asyncio
    async def test_invalid_status(self, client, auth, admin, appointment):
        auth.login(admin)
        response = await client.patch(
            f"/api/v1/appointments/{appointment.id}", json={"status": "DONE"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_admin_sets_payment_status(self, client, auth, db_session, admin, appointment):
        auth.login(admin)

        response = await client.patch(
            f"/api/v1/appointments/{appointment.id}", json={"paymentStatus": "HALF_PAID"}
        )

        assert response.status_code == 200
        stored = (
            await db_session.execute(
                select(Appointment)
                .where(Appointment.id == appointment.id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        assert stored.payment_status.value == "HALF_PAID"
