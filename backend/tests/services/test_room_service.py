"""
RoomService 测试
"""
import pytest
from decimal import Decimal
from sqlalchemy import text

from app.models.ontology import RoomStatus
from app.models.schemas import RoomCreate, RoomTypeCreate
from app.services.room_service import RoomService
from app.services.exceptions import (
    NotFoundError, ValidationError, InvalidStatusTransitionError, ConcurrentModificationError
)


@pytest.fixture
def service(db_session, recorder):
    return RoomService(db_session, event_publisher=recorder)


class TestRoomTypes:

    def test_create_room_type(self, service, sample_hotel):
        room_type = service.create_room_type(
            sample_hotel.id, RoomTypeCreate(name="Standard", base_price=Decimal("1200.00"))
        )
        assert room_type.hotel_id == sample_hotel.id
        assert room_type.base_price == Decimal("1200.00")
        assert room_type.max_occupancy == 2

    def test_duplicate_name_in_hotel(self, service, sample_hotel, sample_room_type):
        with pytest.raises(ValidationError) as exc_info:
            service.create_room_type(
                sample_hotel.id, RoomTypeCreate(name="Deluxe", base_price=Decimal("1.00"))
            )
        assert exc_info.value.field == "name"

    def test_same_name_in_other_hotel(self, service, other_hotel, sample_room_type):
        room_type = service.create_room_type(
            other_hotel.id, RoomTypeCreate(name="Deluxe", base_price=Decimal("1500.00"))
        )
        assert room_type.id != sample_room_type.id

    def test_unknown_hotel(self, service):
        with pytest.raises(NotFoundError, match="Hotel 99 not found"):
            service.create_room_type(99, RoomTypeCreate(name="X", base_price=Decimal("1")))

    def test_list_is_scoped_to_hotel(self, service, sample_hotel, other_hotel, sample_room_type):
        assert [rt.name for rt in service.get_room_types(sample_hotel.id)] == ["Deluxe"]
        assert service.get_room_types(other_hotel.id) == []


class TestRooms:

    def test_create_room(self, service, sample_hotel, sample_room_type):
        room = service.create_room(
            sample_hotel.id, RoomCreate(number="201", floor=2, room_type_id=sample_room_type.id)
        )
        assert room.status == RoomStatus.CLEAN
        assert room.is_active is True
        assert room.version == 1

    def test_duplicate_number(self, service, sample_hotel, sample_room):
        with pytest.raises(ValidationError) as exc_info:
            service.create_room(
                sample_hotel.id, RoomCreate(number="101", room_type_id=sample_room.room_type_id)
            )
        assert exc_info.value.field == "number"

    def test_room_type_must_belong_to_hotel(self, service, other_hotel, sample_room_type):
        with pytest.raises(ValidationError) as exc_info:
            service.create_room(
                other_hotel.id, RoomCreate(number="101", room_type_id=sample_room_type.id)
            )
        assert exc_info.value.field == "room_type_id"

    def test_filters(self, service, sample_hotel, sample_room, dirty_room, suite_room, suite_room_type):
        assert [r.number for r in service.get_rooms(sample_hotel.id, status=RoomStatus.DIRTY)] == ["103"]
        assert [r.number for r in service.get_rooms(
            sample_hotel.id, room_type_id=suite_room_type.id)] == ["501"]

    def test_get_room_other_hotel(self, service, other_hotel, sample_room):
        assert service.get_room(other_hotel.id, sample_room.id) is None


class TestUpdateRoomStatus:

    def test_dirty_to_clean(self, service, sample_hotel, dirty_room, recorder):
        room = service.update_room_status(
            sample_hotel.id, dirty_room.id, RoomStatus.CLEAN, changed_by=4, reason="cleaned"
        )

        assert room.status == RoomStatus.CLEAN
        assert room.version == 2
        assert recorder.types() == ["room.status_changed"]
        data = recorder.events[0].data
        assert (data["old_status"], data["new_status"]) == ("DIRTY", "CLEAN")
        assert data["changed_by"] == 4

    def test_same_status_is_a_noop(self, service, sample_hotel, sample_room, recorder):
        room = service.update_room_status(sample_hotel.id, sample_room.id, RoomStatus.CLEAN)
        assert room.version == 1
        assert recorder.events == []

    def test_occupied_cannot_be_set_manually(self, service, sample_hotel, sample_room):
        with pytest.raises(InvalidStatusTransitionError):
            service.update_room_status(sample_hotel.id, sample_room.id, RoomStatus.OCCUPIED)

    def test_occupied_cannot_be_cleared_manually(self, service, sample_hotel, sample_room,
                                                 checked_in_booking):
        with pytest.raises(InvalidStatusTransitionError):
            service.update_room_status(sample_hotel.id, sample_room.id, RoomStatus.DIRTY)

    def test_unknown_room(self, service, sample_hotel):
        with pytest.raises(NotFoundError):
            service.update_room_status(sample_hotel.id, 1234, RoomStatus.CLEAN)

    def test_stale_version(self, service, db_session, sample_hotel, sample_room):
        assert sample_room.version == 1
        db_session.execute(
            text("UPDATE rooms SET version = version + 1 WHERE id = :id"), {"id": sample_room.id}
        )
        with pytest.raises(ConcurrentModificationError):
            service.update_room_status(sample_hotel.id, sample_room.id, RoomStatus.MAINTENANCE)
