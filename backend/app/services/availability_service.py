"""
可用性服务 - 只读查询
房间在 [check_in, check_out) 内没有 CONFIRMED / CHECKED_IN 预订即为可用
"""
from typing import List, Optional
from datetime import datetime
import logging
from sqlalchemy import select
from sqlalchemy.orm import Session
from app.models.ontology import Room, RoomType, RoomStatus, Booking
from app.domain.availability import overlap_filter, validate_stay_window

logger = logging.getLogger(__name__)


class AvailabilityService:
    """可用性服务"""

    def __init__(self, db: Session):
        self.db = db

    def _conflicting_room_ids(self, hotel_id: int, start: datetime, end: datetime,
                              exclude_booking_id: Optional[int] = None):
        query = self.db.query(Booking.room_id).filter(
            Booking.hotel_id == hotel_id,
            Booking.room_id.isnot(None),
            overlap_filter(start, end)
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return query

    def get_available_rooms(self, hotel_id: int, check_in_date, check_out_date,
                            room_type_id: Optional[int] = None,
                            status: Optional[RoomStatus] = None) -> List[Room]:
        """
        获取时段内无冲突预订的房间

        不按房间状态过滤；需要立即入住时由调用方传入 status=CLEAN

        Raises:
            ValidationError: 日期缺失、格式错误或 check_out <= check_in
        """
        start, end = validate_stay_window(check_in_date, check_out_date)
        conflicting = select(Booking.room_id).where(
            Booking.hotel_id == hotel_id,
            Booking.room_id.isnot(None),
            overlap_filter(start, end)
        )

        query = self.db.query(Room).filter(
            Room.hotel_id == hotel_id,
            Room.is_active == True,
            ~Room.id.in_(conflicting)
        )
        if room_type_id:
            query = query.filter(Room.room_type_id == room_type_id)
        if status:
            query = query.filter(Room.status == status)

        return query.order_by(Room.floor, Room.number).all()

    def is_room_available(self, room: Room, start: datetime, end: datetime,
                          exclude_booking_id: Optional[int] = None) -> bool:
        """房间在时段内是否没有其他占用预订"""
        return self._conflicting_room_ids(
            room.hotel_id, start, end, exclude_booking_id
        ).filter(Booking.room_id == room.id).first() is None

    def count_sellable_rooms(self, hotel_id: int, room_type_id: int) -> int:
        """房型下可售房间数（启用且未停用维修）"""
        return self.db.query(Room).filter(
            Room.hotel_id == hotel_id,
            Room.room_type_id == room_type_id,
            Room.is_active == True,
            Room.status != RoomStatus.OUT_OF_ORDER
        ).count()

    def count_overlapping_bookings(self, hotel_id: int, room_type_id: int,
                                   start: datetime, end: datetime,
                                   exclude_booking_id: Optional[int] = None) -> int:
        """房型在时段内的占用预订数（含未分配房间的预订）"""
        query = self.db.query(Booking).filter(
            Booking.hotel_id == hotel_id,
            Booking.room_type_id == room_type_id,
            overlap_filter(start, end)
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.count()

    def get_availability_by_room_type(self, hotel_id: int, check_in_date, check_out_date) -> List[dict]:
        """按房型统计可售数量"""
        start, end = validate_stay_window(check_in_date, check_out_date)
        room_types = self.db.query(RoomType).filter(
            RoomType.hotel_id == hotel_id,
            RoomType.is_active == True
        ).order_by(RoomType.id).all()

        result = []
        for rt in room_types:
            total = self.count_sellable_rooms(hotel_id, rt.id)
            booked = self.count_overlapping_bookings(hotel_id, rt.id, start, end)
            result.append({
                'room_type_id': rt.id,
                'name': rt.name,
                'total': total,
                'booked': booked,
                'available': max(0, total - booked)
            })
        return result
