"""
房间服务 - 管理 RoomType 和 Room 对象
房间状态变更以 version 做比较交换，并发布 room.status_changed 事件
"""
from typing import List, Optional, Callable
from datetime import datetime
import logging
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from app.models.ontology import Hotel, Room, RoomType, RoomStatus
from app.models.schemas import RoomCreate, RoomTypeCreate
from app.services.event_bus import event_bus, Event
from app.services.exceptions import (
    NotFoundError, ValidationError, InvalidStatusTransitionError, ConcurrentModificationError
)
from app.models.events import EventType, RoomStatusChangedData

logger = logging.getLogger(__name__)

# 只能通过入住/退房流程进入或离开的状态
LIFECYCLE_OWNED_STATUSES = (RoomStatus.OCCUPIED,)


class RoomService:
    """房间服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish

    def get_hotel(self, hotel_id: int) -> Hotel:
        hotel = self.db.query(Hotel).filter(Hotel.id == hotel_id).first()
        if not hotel:
            raise NotFoundError("Hotel", hotel_id)
        return hotel

    # ============== 房型操作 ==============

    def get_room_types(self, hotel_id: int) -> List[RoomType]:
        return self.db.query(RoomType).filter(
            RoomType.hotel_id == hotel_id
        ).order_by(RoomType.id).all()

    def get_room_type(self, hotel_id: int, room_type_id: int) -> Optional[RoomType]:
        return self.db.query(RoomType).filter(
            RoomType.id == room_type_id,
            RoomType.hotel_id == hotel_id
        ).first()

    def create_room_type(self, hotel_id: int, data: RoomTypeCreate) -> RoomType:
        """创建房型，同一酒店内名称唯一"""
        self.get_hotel(hotel_id)
        existing = self.db.query(RoomType).filter(
            RoomType.hotel_id == hotel_id,
            RoomType.name == data.name
        ).first()
        if existing:
            raise ValidationError(f"Room type '{data.name}' already exists", field="name")

        room_type = RoomType(hotel_id=hotel_id, **data.model_dump())
        self.db.add(room_type)
        self.db.commit()
        self.db.refresh(room_type)
        logger.info(f"Room type {room_type.name} created for hotel {hotel_id}")
        return room_type

    # ============== 房间操作 ==============

    def get_rooms(self, hotel_id: int, room_type_id: Optional[int] = None,
                  status: Optional[RoomStatus] = None) -> List[Room]:
        query = self.db.query(Room).filter(Room.hotel_id == hotel_id)
        if room_type_id:
            query = query.filter(Room.room_type_id == room_type_id)
        if status:
            query = query.filter(Room.status == status)
        return query.order_by(Room.floor, Room.number).all()

    def get_room(self, hotel_id: int, room_id: int) -> Optional[Room]:
        return self.db.query(Room).filter(
            Room.id == room_id,
            Room.hotel_id == hotel_id
        ).first()

    def create_room(self, hotel_id: int, data: RoomCreate) -> Room:
        """创建房间"""
        if not self.get_room_type(hotel_id, data.room_type_id):
            raise ValidationError("Room type not found in this hotel", field="room_type_id")

        existing = self.db.query(Room).filter(
            Room.hotel_id == hotel_id,
            Room.number == data.number
        ).first()
        if existing:
            raise ValidationError(f"Room {data.number} already exists", field="number")

        room = Room(hotel_id=hotel_id, **data.model_dump())
        self.db.add(room)
        self.db.commit()
        self.db.refresh(room)
        return room

    def update_room_status(self, hotel_id: int, room_id: int, status: RoomStatus,
                           changed_by: int = None, reason: str = "") -> Room:
        """
        手动更新房间状态（清洁、维修等）

        OCCUPIED 只由入住/退房流程设置和解除
        """
        room = self.get_room(hotel_id, room_id)
        if not room:
            raise NotFoundError("Room", room_id)

        old_status = room.status
        if old_status == status:
            return room

        if status in LIFECYCLE_OWNED_STATUSES or old_status in LIFECYCLE_OWNED_STATUSES:
            raise InvalidStatusTransitionError("room", old_status, f"set {status.value} on")

        room.status = status
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent status change on room {room_id}")
            raise ConcurrentModificationError(f"Room {room_id} was modified concurrently")
        self.db.refresh(room)

        logger.info(f"Room {room.number} status {old_status.value} -> {status.value}")
        self._publish_event(Event(
            event_type=EventType.ROOM_STATUS_CHANGED.value,
            timestamp=datetime.utcnow(),
            data=RoomStatusChangedData(
                room_id=room.id,
                hotel_id=hotel_id,
                room_number=room.number,
                old_status=old_status.value,
                new_status=status.value,
                changed_by=changed_by,
                reason=reason or ""
            ).to_dict(),
            source="room_service"
        ))
        return room
