"""
预订服务 - 预订/在住阶段的聚合根
创建、入住、退房、取消、未到店；入住把"读房态、分配房间、置为入住"作为一个事务提交，
房间 UPDATE 以 version 做比较交换
"""
from typing import List, Optional, Callable
from datetime import datetime
import logging
import math
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from app.config import settings
from app.models.ontology import (
    Booking, BookingStatus, BookingActivity, Guest, Room, RoomStatus, RoomType
)
from app.models.schemas import BookingCreate, BookingUpdate
from app.domain.availability import find_conflicts, validate_stay_window
from app.domain.booking import (
    next_status, derive_payment_status, CHECK_IN, CHECK_OUT, CANCEL, MARK_NO_SHOW,
    EDITABLE_STATUSES
)
from app.services.availability_service import AvailabilityService
from app.services.event_bus import event_bus, Event
from app.services.exceptions import (
    NotFoundError, ValidationError, RoomUnavailableError, NoAvailabilityError,
    InvalidStatusTransitionError, ConcurrentModificationError
)
from app.models.events import (
    EventType, BookingCreatedData, BookingUpdatedData, BookingCancelledData,
    GuestCheckedInData, GuestCheckedOutData, RoomStatusChangedData
)

logger = logging.getLogger(__name__)


class BookingService:
    """预订服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.availability = AvailabilityService(db)
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish

    # ============== 查询 ==============

    def get_booking(self, hotel_id: int, booking_id: int) -> Optional[Booking]:
        return self.db.query(Booking).filter(
            Booking.id == booking_id,
            Booking.hotel_id == hotel_id
        ).first()

    def get_booking_or_404(self, hotel_id: int, booking_id: int) -> Booking:
        booking = self.get_booking(hotel_id, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    def list_bookings(self, hotel_id: int, status: Optional[BookingStatus] = None,
                      date_from: Optional[datetime] = None, date_to: Optional[datetime] = None,
                      page: int = 1, limit: Optional[int] = None) -> dict:
        """
        分页查询预订，按入住时间升序

        Returns:
            {"data": [...], "pagination": {"total", "page", "limit", "total_pages"}}
        """
        page = max(1, page)
        limit = min(max(1, limit or settings.DEFAULT_PAGE_SIZE), settings.MAX_PAGE_SIZE)

        query = self.db.query(Booking).filter(Booking.hotel_id == hotel_id)
        if status:
            query = query.filter(Booking.status == status)
        if date_from:
            query = query.filter(Booking.check_in_date >= date_from)
        if date_to:
            query = query.filter(Booking.check_in_date <= date_to)

        total = query.count()
        bookings = query.order_by(Booking.check_in_date, Booking.id).offset(
            (page - 1) * limit
        ).limit(limit).all()

        return {
            "data": bookings,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "total_pages": math.ceil(total / limit) if total else 0,
            }
        }

    def get_activities(self, hotel_id: int, booking_id: int) -> List[BookingActivity]:
        """操作记录（最新的在前）"""
        self.get_booking_or_404(hotel_id, booking_id)
        return self.db.query(BookingActivity).filter(
            BookingActivity.booking_id == booking_id
        ).order_by(BookingActivity.timestamp.desc(), BookingActivity.id.desc()).all()

    # ============== 内部校验 ==============

    def _lock_room_type(self, hotel_id: int, room_type_id: int) -> RoomType:
        """读取房型并加行锁，串行化同一房型的并发创建"""
        room_type = self.db.query(RoomType).filter(
            RoomType.id == room_type_id,
            RoomType.hotel_id == hotel_id
        ).with_for_update().first()
        if not room_type:
            raise ValidationError("Room type not found in this hotel", field="room_type_id")
        return room_type

    def _ensure_capacity(self, hotel_id: int, room_type: RoomType, start: datetime,
                         end: datetime, exclude_booking_id: Optional[int] = None) -> None:
        sellable = self.availability.count_sellable_rooms(hotel_id, room_type.id)
        booked = self.availability.count_overlapping_bookings(
            hotel_id, room_type.id, start, end, exclude_booking_id
        )
        if booked >= sellable:
            logger.warning(
                f"No availability for room type {room_type.name}: {booked}/{sellable} booked"
            )
            raise NoAvailabilityError(
                f"No {room_type.name} rooms available between {start.isoformat()} and {end.isoformat()}"
            )

    def _find_guest(self, hotel_id: int, phone: str) -> Optional[Guest]:
        return self.db.query(Guest).filter(
            Guest.hotel_id == hotel_id,
            Guest.phone == phone
        ).first()

    def _find_or_create_guest(self, hotel_id: int, data: BookingCreate) -> Guest:
        """按 (hotel_id, phone) 查找客人，已存在则复用；并发插入冲突时回读已有记录"""
        guest = self._find_guest(hotel_id, data.guest_phone)
        if guest:
            return guest

        guest = Guest(
            hotel_id=hotel_id,
            name=data.guest_name,
            phone=data.guest_phone,
            email=data.guest_email,
            address=data.guest_address
        )
        try:
            with self.db.begin_nested():
                self.db.add(guest)
                self.db.flush()
        except IntegrityError:
            logger.info(f"Guest {data.guest_phone} was created concurrently, reusing it")
            guest = self._find_guest(hotel_id, data.guest_phone)
            if not guest:
                raise
        return guest

    def _transition(self, booking: Booking, trigger: str) -> BookingStatus:
        try:
            return next_status(booking.status, trigger)
        except InvalidStatusTransitionError:
            logger.warning(
                f"Rejected {trigger} for booking {booking.id} in status {booking.status.value}"
            )
            raise

    def _commit(self, entity: str, entity_id: int) -> None:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent modification on {entity} {entity_id}")
            raise ConcurrentModificationError(f"{entity} {entity_id} was modified concurrently")

    # ============== 创建 / 修改 ==============

    def create_booking(self, hotel_id: int, data: BookingCreate,
                       operator_id: Optional[int] = None) -> Booking:
        """
        创建预订
        业务规则：
        - check_out 必须晚于 check_in
        - 房型属于该酒店，且时段内占用数小于可售房间数
        - 客人按手机号复用
        - 初始状态 CONFIRMED，不分配房间
        """
        start, end = validate_stay_window(data.check_in_date, data.check_out_date)
        if not data.guest_name or not data.guest_phone:
            raise ValidationError("Guest name and phone are required", field="guest_phone")

        try:
            room_type = self._lock_room_type(hotel_id, data.room_type_id)
            self._ensure_capacity(hotel_id, room_type, start, end)

            guest = self._find_or_create_guest(hotel_id, data)
            booking = Booking(
                hotel_id=hotel_id,
                guest_id=guest.id,
                room_type_id=room_type.id,
                check_in_date=start,
                check_out_date=end,
                total_amount=data.total_amount,
                paid_amount=data.paid_amount,
                status=BookingStatus.CONFIRMED,
                payment_status=derive_payment_status(data.total_amount, data.paid_amount),
                source=data.source,
                external_ref=data.external_ref,
                notes=data.notes,
                created_by=operator_id
            )
            self.db.add(booking)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(booking)

        logger.info(f"Booking {booking.id} created for guest {guest.name} ({room_type.name})")
        self._publish_event(Event(
            event_type=EventType.BOOKING_CREATED.value,
            timestamp=datetime.utcnow(),
            data=BookingCreatedData(
                booking_id=booking.id,
                hotel_id=hotel_id,
                guest_id=guest.id,
                guest_name=guest.name,
                room_type_id=room_type.id,
                check_in_date=booking.check_in_date.isoformat(),
                check_out_date=booking.check_out_date.isoformat(),
                total_amount=booking.total_amount,
                source=booking.source.value if booking.source else "",
                operator_id=operator_id
            ).to_dict(),
            source="booking_service"
        ))
        return booking

    def update_booking(self, hotel_id: int, booking_id: int, data: BookingUpdate,
                       operator_id: Optional[int] = None) -> Booking:
        """修改预订（仅 CONFIRMED），重新校验日期与房型余量"""
        booking = self.get_booking_or_404(hotel_id, booking_id)
        if booking.status not in EDITABLE_STATUSES:
            raise InvalidStatusTransitionError("booking", booking.status, "update")

        changes = data.model_dump(exclude_unset=True)
        start, end = validate_stay_window(
            changes.get("check_in_date") or booking.check_in_date,
            changes.get("check_out_date") or booking.check_out_date
        )

        try:
            room_type = self._lock_room_type(hotel_id, changes.get("room_type_id") or booking.room_type_id)
            self._ensure_capacity(hotel_id, room_type, start, end, exclude_booking_id=booking.id)

            booking.room_type_id = room_type.id
            booking.check_in_date = start
            booking.check_out_date = end
            for key in ("total_amount", "paid_amount", "notes"):
                if key in changes and changes[key] is not None:
                    setattr(booking, key, changes[key])
            booking.payment_status = derive_payment_status(booking.total_amount, booking.paid_amount)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(booking)

        self._publish_event(Event(
            event_type=EventType.BOOKING_UPDATED.value,
            timestamp=datetime.utcnow(),
            data=BookingUpdatedData(
                booking_id=booking.id,
                hotel_id=hotel_id,
                changed_fields={k: str(v) for k, v in changes.items()},
                operator_id=operator_id
            ).to_dict(),
            source="booking_service"
        ))
        return booking

    # ============== 入住 / 退房 ==============

    def check_in(self, hotel_id: int, booking_id: int, room_id: int,
                 operator_id: Optional[int] = None) -> Booking:
        """
        办理入住
        业务规则：
        - 预订存在且为 CONFIRMED
        - 房间属于该酒店，房型与预订一致
        - 房间为 CLEAN，且没有其他重叠的占用预订
        - 计划退房时间已过则拒绝；提前入住时按 [now, check_out_date) 重新校验房型余量
        - 预订 -> CHECKED_IN 并分配房间，房间 -> OCCUPIED，一次提交
        """
        booking = self.get_booking_or_404(hotel_id, booking_id)

        room = self.db.query(Room).filter(
            Room.id == room_id,
            Room.hotel_id == hotel_id
        ).first()
        if not room:
            raise NotFoundError("Room", room_id)

        new_status = self._transition(booking, CHECK_IN)

        if room.room_type_id != booking.room_type_id:
            raise ValidationError("Room type does not match the booking", field="room_id")

        if room.status != RoomStatus.CLEAN:
            logger.warning(f"Check-in rejected: room {room.number} is {room.status.value}")
            raise RoomUnavailableError(
                f"Room {room.number} is {room.status.value}, not CLEAN", room_id=room.id
            )

        # 入住后占用区间为 [now, check_out_date)
        now = datetime.utcnow()
        if now >= booking.check_out_date:
            logger.warning(f"Check-in rejected: booking {booking.id} stay already ended")
            raise ValidationError(
                "Cannot check in after the planned check_out_date", field="check_out_date"
            )

        if find_conflicts(room.bookings, now, booking.check_out_date,
                          exclude_booking_id=booking.id):
            logger.warning(f"Check-in rejected: room {room.number} has an overlapping booking")
            raise RoomUnavailableError(
                f"Room {room.number} is already booked for this stay", room_id=room.id
            )

        try:
            if now < booking.check_in_date:
                # 提前入住延长了占用区间，重新校验房型余量
                room_type = self._lock_room_type(hotel_id, booking.room_type_id)
                self._ensure_capacity(hotel_id, room_type, now, booking.check_out_date,
                                      exclude_booking_id=booking.id)

            old_room_status = room.status
            room.status = RoomStatus.OCCUPIED
            booking.status = new_status
            booking.room_id = room.id
            booking.check_in_date = now
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Check-in lost the race for room {room_id}")
            raise RoomUnavailableError(f"Room {room_id} was taken concurrently", room_id=room_id)
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(booking)

        logger.info(f"Booking {booking.id} checked in to room {room.number}")
        self._publish_event(Event(
            event_type=EventType.GUEST_CHECKED_IN.value,
            timestamp=datetime.utcnow(),
            data=GuestCheckedInData(
                booking_id=booking.id,
                hotel_id=hotel_id,
                guest_id=booking.guest_id,
                guest_name=booking.guest.name,
                room_id=room.id,
                room_number=room.number,
                check_in_time=booking.check_in_date,
                expected_check_out=booking.check_out_date.isoformat(),
                operator_id=operator_id
            ).to_dict(),
            source="booking_service"
        ))
        self._publish_room_status(room, old_room_status, booking.id, operator_id, "check_in")
        return booking

    def check_out(self, hotel_id: int, booking_id: int,
                  operator_id: Optional[int] = None) -> Booking:
        """
        办理退房
        预订 -> CHECKED_OUT，已分配的房间 -> DIRTY
        """
        booking = self.get_booking_or_404(hotel_id, booking_id)
        booking.status = self._transition(booking, CHECK_OUT)
        booking.check_out_date = datetime.utcnow()

        room = booking.room
        old_room_status = room.status if room else None
        if room:
            room.status = RoomStatus.DIRTY

        self._commit("Booking", booking.id)
        self.db.refresh(booking)

        logger.info(f"Booking {booking.id} checked out")
        self._publish_event(Event(
            event_type=EventType.GUEST_CHECKED_OUT.value,
            timestamp=datetime.utcnow(),
            data=GuestCheckedOutData(
                booking_id=booking.id,
                hotel_id=hotel_id,
                guest_id=booking.guest_id,
                room_id=room.id if room else None,
                room_number=room.number if room else "",
                check_out_time=booking.check_out_date,
                total_amount=booking.total_amount,
                paid_amount=booking.paid_amount,
                operator_id=operator_id
            ).to_dict(),
            source="booking_service"
        ))
        if room:
            self._publish_room_status(room, old_room_status, booking.id, operator_id, "check_out")
        return booking

    def _publish_room_status(self, room: Room, old_status: RoomStatus, booking_id: int,
                             operator_id: Optional[int], reason: str) -> None:
        self._publish_event(Event(
            event_type=EventType.ROOM_STATUS_CHANGED.value,
            timestamp=datetime.utcnow(),
            data=RoomStatusChangedData(
                room_id=room.id,
                hotel_id=room.hotel_id,
                room_number=room.number,
                old_status=old_status.value,
                new_status=room.status.value,
                booking_id=booking_id,
                changed_by=operator_id,
                reason=reason
            ).to_dict(),
            source="booking_service"
        ))

    # ============== 取消 / 未到店 / 删除 ==============

    def cancel_booking(self, hotel_id: int, booking_id: int, reason: Optional[str] = None,
                       operator_id: Optional[int] = None) -> Booking:
        """取消预订（仅 CONFIRMED，尚未分配房间，无房态副作用）"""
        booking = self.get_booking_or_404(hotel_id, booking_id)
        booking.status = self._transition(booking, CANCEL)
        booking.cancel_reason = reason
        self._commit("Booking", booking.id)
        self.db.refresh(booking)

        logger.info(f"Booking {booking.id} cancelled")
        self._publish_cancellation(EventType.BOOKING_CANCELLED, booking, reason, operator_id)
        return booking

    def mark_no_show(self, hotel_id: int, booking_id: int,
                     operator_id: Optional[int] = None) -> Booking:
        booking = self.get_booking_or_404(hotel_id, booking_id)
        booking.status = self._transition(booking, MARK_NO_SHOW)
        self._commit("Booking", booking.id)
        self.db.refresh(booking)

        logger.info(f"Booking {booking.id} marked as no-show")
        self._publish_cancellation(EventType.BOOKING_NO_SHOW, booking, "no show", operator_id)
        return booking

    def _publish_cancellation(self, event_type: EventType, booking: Booking,
                              reason: Optional[str], operator_id: Optional[int]) -> None:
        self._publish_event(Event(
            event_type=event_type.value,
            timestamp=datetime.utcnow(),
            data=BookingCancelledData(
                booking_id=booking.id,
                hotel_id=booking.hotel_id,
                guest_id=booking.guest_id,
                reason=reason or "",
                operator_id=operator_id
            ).to_dict(),
            source="booking_service"
        ))

    def delete_booking(self, hotel_id: int, booking_id: int) -> bool:
        """删除预订及其账单、发票、操作记录；在住预订不能删除"""
        booking = self.get_booking_or_404(hotel_id, booking_id)
        if booking.status == BookingStatus.CHECKED_IN:
            raise InvalidStatusTransitionError("booking", booking.status, "delete")

        try:
            self.db.delete(booking)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Booking {booking_id} deleted")
        return True
