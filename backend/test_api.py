"""
HTTP tests through the FastAPI app against an in-memory SQLite database.
"""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from dashboard import nights_in_period
from timezone_utils import get_hotel_today


def _booking(seeded, room=None, check_in="2024-02-01", check_out="2024-02-04", **overrides):
    room = room or seeded.room_101
    body = {
        "guestId": seeded.guest.id,
        "roomId": room.id,
        "branchId": room.branch_id,
        "checkInDate": check_in,
        "checkOutDate": check_out,
        "adults": 1,
        "children": 0,
    }
    body.update(overrides)
    return body


class TestAuth:
    async def test_login_returns_token_and_user(self, client):
        response = await client.post(
            "/auth/login", json={"email": "downtown@hotelchain.com", "password": "secret123"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["tokenType"] == "bearer"
        assert body["user"]["role"] == "branch_admin"

        me = await client.get("/auth/me", headers={"Authorization": f"Bearer {body['accessToken']}"})
        assert me.status_code == 200
        assert me.json()["email"] == "downtown@hotelchain.com"

    async def test_wrong_password(self, client):
        response = await client.post(
            "/auth/login", json={"email": "downtown@hotelchain.com", "password": "nope"}
        )
        assert response.status_code == 401

    async def test_missing_token(self, client):
        response = await client.get("/rooms")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_garbage_token(self, client):
        response = await client.get("/rooms", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_deactivated_user_rejected_on_next_request(self, client, seeded):
        headers = seeded.headers("receptionist")
        admin = seeded.headers("branch_admin")
        response = await client.put(
            f"/users/{seeded.users['receptionist'].id}", json={"active": False}, headers=admin
        )
        assert response.status_code == 200

        response = await client.get("/rooms", headers=headers)
        assert response.status_code == 401


class TestAvailabilityEndpoint:
    async def test_overlap_and_turnover(self, client, seeded):
        headers = seeded.headers("receptionist")
        created = await client.post("/reservations", json=_booking(seeded), headers=headers)
        assert created.status_code == 201

        params = {"branchId": seeded.downtown.id, "checkIn": "2024-02-02", "checkOut": "2024-02-05"}
        response = await client.get("/rooms/available", params=params, headers=headers)
        assert response.status_code == 200
        numbers = sorted(room["number"] for room in response.json())
        assert numbers == ["102", "201"]
        assert all(room["roomType"]["name"] for room in response.json())

        params.update(checkIn="2024-02-04", checkOut="2024-02-06")
        response = await client.get("/rooms/available", params=params, headers=headers)
        assert sorted(room["number"] for room in response.json()) == ["101", "102", "201"]

    async def test_dates_required(self, client, seeded):
        response = await client.get(
            "/rooms/available", params={"checkIn": "2024-02-02"}, headers=seeded.headers("receptionist")
        )
        assert response.status_code == 400

    async def test_inverted_dates(self, client, seeded):
        response = await client.get(
            "/rooms/available",
            params={"checkIn": "2024-02-05", "checkOut": "2024-02-02"},
            headers=seeded.headers("receptionist"),
        )
        assert response.status_code == 400

    async def test_super_admin_without_branch_sees_nothing(self, client, seeded):
        response = await client.get(
            "/rooms/available",
            params={"checkIn": "2024-02-02", "checkOut": "2024-02-05"},
            headers=seeded.headers("super_admin"),
        )
        assert response.status_code == 200
        assert response.json() == []

    async def test_maintenance_room_hidden(self, client, seeded):
        admin = seeded.headers("branch_admin")
        await client.put(f"/rooms/{seeded.room_102.id}", json={"status": "maintenance"}, headers=admin)

        response = await client.get(
            "/rooms/available",
            params={"checkIn": "2024-03-01", "checkOut": "2024-03-02"},
            headers=admin,
        )
        assert "102" not in [room["number"] for room in response.json()]


class TestReservations:
    async def test_create_computes_total(self, client, seeded):
        response = await client.post("/reservations", json=_booking(seeded), headers=seeded.headers("receptionist"))
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "confirmed"
        assert Decimal(body["totalAmount"]) == Decimal("300.00")
        assert body["checkInDate"] == "2024-02-01"

    async def test_datetime_inputs_are_truncated(self, client, seeded):
        response = await client.post(
            "/reservations",
            json=_booking(seeded, check_in="2024-02-01T15:00:00Z", check_out="2024-02-03T11:00:00Z"),
            headers=seeded.headers("receptionist"),
        )
        assert response.status_code == 201
        assert response.json()["checkOutDate"] == "2024-02-03"

    async def test_bad_dates_400(self, client, seeded):
        response = await client.post(
            "/reservations", json=_booking(seeded, check_out="2024-02-01"), headers=seeded.headers("receptionist")
        )
        assert response.status_code == 400
        listing = await client.get("/reservations", headers=seeded.headers("receptionist"))
        assert listing.json() == []

    async def test_overlap_409(self, client, seeded):
        headers = seeded.headers("receptionist")
        assert (await client.post("/reservations", json=_booking(seeded), headers=headers)).status_code == 201

        response = await client.post(
            "/reservations", json=_booking(seeded, check_in="2024-02-03", check_out="2024-02-06"), headers=headers
        )
        assert response.status_code == 409

    async def test_unknown_room_404(self, client, seeded):
        response = await client.post(
            "/reservations", json=_booking(seeded, roomId=9999), headers=seeded.headers("receptionist")
        )
        assert response.status_code == 404

    async def test_other_branch_403(self, client, seeded):
        response = await client.post(
            "/reservations", json=_booking(seeded, room=seeded.airport_room), headers=seeded.headers("receptionist")
        )
        assert response.status_code == 403

    async def test_role_without_booking_rights_403(self, client, seeded):
        response = await client.post("/reservations", json=_booking(seeded), headers=seeded.headers("housekeeping"))
        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions"

    async def test_lifecycle_over_http(self, client, seeded):
        headers = seeded.headers("receptionist")
        reservation_id = (await client.post("/reservations", json=_booking(seeded), headers=headers)).json()["id"]

        skipped = await client.put(f"/reservations/{reservation_id}", json={"status": "checked_out"}, headers=headers)
        assert skipped.status_code == 409

        checked_in = await client.put(f"/reservations/{reservation_id}", json={"status": "checked_in"}, headers=headers)
        assert checked_in.status_code == 200
        assert checked_in.json()["actualCheckIn"] is not None

        room = await client.get(f"/rooms/{seeded.room_101.id}", headers=headers)
        assert room.json()["status"] == "occupied"

        checked_out = await client.put(f"/reservations/{reservation_id}", json={"status": "checked_out"}, headers=headers)
        assert checked_out.status_code == 200

        guest = await client.get(f"/guests/{seeded.guest.id}", headers=headers)
        assert guest.json()["totalStays"] == 1

        again = await client.put(f"/reservations/{reservation_id}", json={"status": "cancelled"}, headers=headers)
        assert again.status_code == 409

    async def test_update_missing_404(self, client, seeded):
        response = await client.put("/reservations/4040", json={"notes": "x"}, headers=seeded.headers("receptionist"))
        assert response.status_code == 404

    async def test_update_other_branch_403(self, client, seeded):
        reservation_id = (await client.post(
            "/reservations", json=_booking(seeded), headers=seeded.headers("receptionist")
        )).json()["id"]

        response = await client.put(
            f"/reservations/{reservation_id}", json={"status": "cancelled"}, headers=seeded.headers("airport_admin")
        )
        assert response.status_code == 403

    async def test_list_is_branch_scoped(self, client, seeded):
        await client.post("/reservations", json=_booking(seeded), headers=seeded.headers("receptionist"))

        own = await client.get("/reservations", headers=seeded.headers("branch_admin"))
        assert len(own.json()) == 1
        assert own.json()[0]["guest"]["lastName"] == "Lovelace"
        assert own.json()[0]["room"]["number"] == "101"

        other = await client.get(
            "/reservations", params={"branchId": seeded.downtown.id}, headers=seeded.headers("airport_admin")
        )
        assert other.json() == []

        unscoped = await client.get("/reservations", headers=seeded.headers("super_admin"))
        assert unscoped.json() == []


class TestRoomsAndBranches:
    async def test_branch_admin_pinned_to_own_rooms(self, client, seeded):
        response = await client.get(
            "/rooms", params={"branchId": seeded.downtown.id}, headers=seeded.headers("airport_admin")
        )
        assert [room["number"] for room in response.json()] == ["A1"]

    async def test_room_number_unique_per_branch(self, client, seeded):
        headers = seeded.headers("branch_admin")
        body = {"number": "101", "floor": 1, "roomTypeId": seeded.standard.id, "branchId": seeded.downtown.id}
        response = await client.post("/rooms", json=body, headers=headers)
        assert response.status_code == 400

        body["number"] = "105"
        assert (await client.post("/rooms", json=body, headers=headers)).status_code == 201

    async def test_receptionist_cannot_renumber_room(self, client, seeded):
        response = await client.put(
            f"/rooms/{seeded.room_101.id}", json={"number": "999"}, headers=seeded.headers("receptionist")
        )
        assert response.status_code == 403

    async def test_only_super_admin_creates_branches(self, client, seeded):
        body = {"name": "Harbour Hotel", "address": "9 Quay St"}
        assert (await client.post("/branches", json=body, headers=seeded.headers("branch_admin"))).status_code == 403
        assert (await client.post("/branches", json=body, headers=seeded.headers("super_admin"))).status_code == 201

    async def test_branch_admin_cannot_mint_super_admin(self, client, seeded):
        body = {"email": "new@hotelchain.com", "name": "New", "role": "super_admin", "password": "secret123"}
        response = await client.post("/users", json=body, headers=seeded.headers("branch_admin"))
        assert response.status_code == 403

    async def test_branch_admin_creates_staff_in_own_branch(self, client, seeded):
        body = {"email": "maid@hotelchain.com", "name": "Mo", "role": "housekeeping", "password": "secret123"}
        response = await client.post("/users", json=body, headers=seeded.headers("branch_admin"))
        assert response.status_code == 201
        assert response.json()["branchId"] == seeded.downtown.id

        body.update(email="spy@hotelchain.com", branchId=seeded.airport.id)
        response = await client.post("/users", json=body, headers=seeded.headers("branch_admin"))
        assert response.status_code == 403


class TestGuests:
    async def test_search(self, client, seeded):
        headers = seeded.headers("receptionist")
        await client.post("/guests", json={
            "firstName": "Grace", "lastName": "Hopper", "email": "grace@example.com", "phone": "+15550199",
        }, headers=headers)

        response = await client.get("/guests", params={"search": "hop"}, headers=headers)
        assert [g["firstName"] for g in response.json()] == ["Grace"]


class TestRestaurantAndInventory:
    async def test_order_snapshots_prices_and_adds_tax(self, client, seeded):
        headers = seeded.headers("restaurant_staff")
        branch = seeded.downtown.id
        category = (await client.post(
            "/restaurant/categories", json={"name": "Mains", "branchId": branch}, headers=headers
        )).json()
        item = (await client.post("/restaurant/menu-items", json={
            "name": "Club Sandwich", "price": "12.50", "categoryId": category["id"], "branchId": branch,
        }, headers=headers)).json()

        order = await client.post("/restaurant/orders", json={
            "branchId": branch, "orderType": "dine_in", "items": [{"itemId": item["id"], "quantity": 2}],
        }, headers=headers)
        assert order.status_code == 201
        body = order.json()
        assert Decimal(body["subtotal"]) == Decimal("25.00")
        assert Decimal(body["tax"]) == Decimal("2.50")
        assert Decimal(body["total"]) == Decimal("27.50")

        await client.put(f"/restaurant/menu-items/{item['id']}", json={"price": "15.00"}, headers=headers)
        orders = (await client.get("/restaurant/orders", headers=headers)).json()
        assert Decimal(orders[0]["items"][0]["price"]) == Decimal("12.50")

        served = await client.put(f"/restaurant/orders/{body['id']}/status", json={"status": "served"}, headers=headers)
        assert served.status_code == 409
        preparing = await client.put(
            f"/restaurant/orders/{body['id']}/status", json={"status": "preparing"}, headers=headers
        )
        assert preparing.json()["status"] == "preparing"

    async def test_low_stock_and_restock(self, client, seeded):
        headers = seeded.headers("branch_admin")
        branch = seeded.downtown.id
        category = (await client.post("/inventory/categories", json={
            "name": "Linen", "type": "hotel_supplies", "branchId": branch,
        }, headers=headers)).json()
        towels = (await client.post("/inventory/items", json={
            "name": "Towels", "categoryId": category["id"], "branchId": branch,
            "currentStock": 5, "minStock": 10, "maxStock": 100, "unit": "pieces",
        }, headers=headers)).json()
        assert towels["stockStatus"] == "low_stock"

        low = await client.get("/inventory/items", params={"lowStock": "true"}, headers=headers)
        assert [i["name"] for i in low.json()] == ["Towels"]

        restocked = await client.post(f"/inventory/items/{towels['id']}/restock", json={"quantity": 80}, headers=headers)
        assert restocked.json()["currentStock"] == 85
        assert restocked.json()["stockStatus"] == "well_stocked"
        assert restocked.json()["lastRestocked"] is not None

    async def test_receptionist_has_no_inventory_access(self, client, seeded):
        response = await client.get("/inventory/items", headers=seeded.headers("receptionist"))
        assert response.status_code == 403


class TestBillingAndDashboard:
    async def test_invoice_from_reservation_and_mark_paid(self, client, seeded):
        headers = seeded.headers("receptionist")
        reservation_id = (await client.post("/reservations", json=_booking(seeded), headers=headers)).json()["id"]

        invoice = await client.post(f"/reservations/{reservation_id}/invoice", headers=headers)
        assert invoice.status_code == 201
        body = invoice.json()
        assert body["invoiceNumber"].startswith("INV-")
        assert Decimal(body["subtotal"]) == Decimal("300.00")
        assert Decimal(body["total"]) == Decimal("330.00")
        assert body["items"][0]["quantity"] == 3

        paid = await client.put(
            f"/invoices/{body['id']}", json={"status": "paid", "paymentMethod": "card"}, headers=headers
        )
        assert paid.json()["paidDate"] is not None

        reopened = await client.put(f"/invoices/{body['id']}", json={"status": "pending"}, headers=headers)
        assert reopened.status_code == 409

    async def test_dashboard_counts_todays_checkins(self, client, seeded):
        headers = seeded.headers("receptionist")
        today = datetime.utcnow().date()
        await client.post(
            "/reservations",
            json=_booking(seeded, check_in=today.isoformat(), check_out=(today + timedelta(days=2)).isoformat()),
            headers=headers,
        )

        stats = (await client.get("/dashboard/stats", headers=headers)).json()
        assert stats["totalRooms"] == 3
        assert stats["occupied"] == 0
        assert stats["checkins"] == 1
        assert Decimal(stats["revenue"]) == Decimal("200.00")

    async def test_reports_need_view_reports(self, client, seeded):
        assert (await client.get("/reports/summary", headers=seeded.headers("receptionist"))).status_code == 403

        response = await client.get("/reports/summary", params={"days": 7}, headers=seeded.headers("branch_admin"))
        assert response.status_code == 200
        assert response.json()["periodDays"] == 7
        assert {rt["name"] for rt in response.json()["roomTypes"]} == {"Standard Room", "Deluxe Room"}

    async def test_occupancy_counts_only_nights_inside_period(self, client, seeded):
        today = get_hotel_today()
        response = await client.post(
            "/reservations",
            json=_booking(
                seeded,
                check_in=(today - timedelta(days=2)).isoformat(),
                check_out=(today + timedelta(days=60)).isoformat(),
            ),
            headers=seeded.headers("receptionist"),
        )
        assert response.status_code == 201

        report = await client.get("/reports/summary", params={"days": 7}, headers=seeded.headers("branch_admin"))
        # 3 of 21 room-nights: the two nights before today plus tonight
        assert report.json()["occupancyRate"] == 14.3


class TestNightsInPeriod:
    def test_stay_inside_period(self):
        assert nights_in_period(date(2024, 2, 2), date(2024, 2, 4), date(2024, 2, 1), date(2024, 2, 7)) == 2

    def test_stay_clipped_at_both_ends(self):
        assert nights_in_period(date(2024, 1, 20), date(2024, 3, 1), date(2024, 2, 1), date(2024, 2, 7)) == 7

    def test_checkout_on_first_day_counts_nothing(self):
        assert nights_in_period(date(2024, 1, 28), date(2024, 2, 1), date(2024, 2, 1), date(2024, 2, 7)) == 0

    def test_stay_after_period(self):
        assert nights_in_period(date(2024, 2, 10), date(2024, 2, 12), date(2024, 2, 1), date(2024, 2, 7)) == 0


@pytest.mark.parametrize("role,status", [
    ("housekeeping", 200),
    ("restaurant_staff", 200),
    ("receptionist", 200),
])
async def test_everyone_can_view_rooms(client, seeded, role, status):
    response = await client.get("/rooms", headers=seeded.headers(role))
    assert response.status_code == status
