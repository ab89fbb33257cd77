"""
房型 / 房间 / 可用性 API 测试
"""
from decimal import Decimal


class TestRoomTypesApi:

    def test_list(self, client, auth_headers, sample_hotel, sample_room_type):
        response = client.get(f"/hotels/{sample_hotel.id}/room-types", headers=auth_headers)
        assert response.status_code == 200
        assert [rt["name"] for rt in response.json()] == ["Deluxe"]
        assert Decimal(response.json()[0]["base_price"]) == Decimal("2000.00")

    def test_manager_creates_room_type(self, client, manager_auth_headers, sample_hotel):
        response = client.post(
            f"/hotels/{sample_hotel.id}/room-types", headers=manager_auth_headers,
            json={"name": "Standard", "base_price": "1200.00", "max_occupancy": 2}
        )
        assert response.status_code == 201
        assert response.json()["hotel_id"] == sample_hotel.id

    def test_receptionist_cannot_create_room_type(self, client, auth_headers, sample_hotel):
        response = client.post(
            f"/hotels/{sample_hotel.id}/room-types", headers=auth_headers,
            json={"name": "Standard", "base_price": "1200.00"}
        )
        assert response.status_code == 403

    def test_duplicate_name(self, client, manager_auth_headers, sample_hotel, sample_room_type):
        response = client.post(
            f"/hotels/{sample_hotel.id}/room-types", headers=manager_auth_headers,
            json={"name": "Deluxe", "base_price": "100"}
        )
        assert response.status_code == 400
        assert response.json()["errors"] == [
            {"field": "name", "message": "Room type 'Deluxe' already exists"}
        ]

    def test_negative_price(self, client, manager_auth_headers, sample_hotel):
        response = client.post(
            f"/hotels/{sample_hotel.id}/room-types", headers=manager_auth_headers,
            json={"name": "Cheap", "base_price": "-1"}
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "base_price"


class TestRoomsApi:

    def test_create_room(self, client, manager_auth_headers, sample_hotel, sample_room_type):
        response = client.post(
            f"/hotels/{sample_hotel.id}/rooms", headers=manager_auth_headers,
            json={"number": "301", "floor": 3, "room_type_id": sample_room_type.id}
        )
        assert response.status_code == 201
        assert response.json()["status"] == "CLEAN"

    def test_list_with_status_filter(self, client, auth_headers, sample_hotel, sample_room, dirty_room):
        response = client.get(
            f"/hotels/{sample_hotel.id}/rooms", headers=auth_headers, params={"status": "DIRTY"}
        )
        assert [r["number"] for r in response.json()] == ["103"]

    def test_get_room_not_found(self, client, auth_headers, sample_hotel):
        response = client.get(f"/hotels/{sample_hotel.id}/rooms/999", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Room 999 not found"

    def test_housekeeping_marks_room_clean(self, client, housekeeper_auth_headers, sample_hotel, dirty_room):
        response = client.patch(
            f"/hotels/{sample_hotel.id}/rooms/{dirty_room.id}/status",
            headers=housekeeper_auth_headers, json={"status": "CLEAN", "reason": "turned down"}
        )
        assert response.status_code == 200
        assert response.json()["status"] == "CLEAN"

    def test_setting_occupied_is_rejected(self, client, auth_headers, sample_hotel, sample_room):
        response = client.patch(
            f"/hotels/{sample_hotel.id}/rooms/{sample_room.id}/status",
            headers=auth_headers, json={"status": "OCCUPIED"}
        )
        assert response.status_code == 400

    def test_other_hotel_is_forbidden(self, client, auth_headers, other_hotel):
        response = client.get(f"/hotels/{other_hotel.id}/rooms", headers=auth_headers)
        assert response.status_code == 403

    def test_sysadmin_sees_every_hotel(self, client, sysadmin_auth_headers, sample_hotel, sample_room):
        response = client.get(f"/hotels/{sample_hotel.id}/rooms", headers=sysadmin_auth_headers)
        assert response.status_code == 200
        assert len(response.json()) == 1


class TestAvailabilityApi:

    def test_available_rooms(self, client, auth_headers, sample_hotel, sample_room, dirty_room):
        response = client.get(
            f"/hotels/{sample_hotel.id}/available-rooms", headers=auth_headers,
            params={"check_in_date": "2030-03-01", "check_out_date": "2030-03-04", "status": "CLEAN"}
        )
        assert response.status_code == 200
        assert [r["number"] for r in response.json()] == ["101"]

    def test_missing_dates(self, client, auth_headers, sample_hotel):
        response = client.get(f"/hotels/{sample_hotel.id}/available-rooms", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "check_in_date"

    def test_reversed_dates(self, client, auth_headers, sample_hotel):
        response = client.get(
            f"/hotels/{sample_hotel.id}/available-rooms", headers=auth_headers,
            params={"check_in_date": "2030-03-04", "check_out_date": "2030-03-01"}
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "check_out_date"

    def test_availability_by_room_type(self, client, auth_headers, sample_hotel, sample_booking):
        response = client.get(
            f"/hotels/{sample_hotel.id}/availability", headers=auth_headers,
            params={
                "check_in_date": sample_booking.check_in_date.isoformat(),
                "check_out_date": sample_booking.check_out_date.isoformat(),
            }
        )
        assert response.status_code == 200
        assert response.json() == [{
            "room_type_id": sample_booking.room_type_id, "name": "Deluxe",
            "total": 1, "booked": 1, "available": 0
        }]
