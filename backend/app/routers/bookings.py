"""
预订管理路由
创建 / 查询 / 修改 / 删除 / 入住 / 退房 / 取消 / 未到店
"""
from typing import List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee, BookingStatus
from app.models.schemas import (
    BookingCreate, BookingUpdate, BookingCancel, CheckInRequest, BookingResponse,
    BookingListResponse, BookingActivityResponse
)
from app.services.booking_service import BookingService
from app.security.auth import (
    get_current_user, require_manager, require_receptionist_or_manager, ensure_hotel_access
)

router = APIRouter(prefix="/hotels/{hotel_id}/bookings", tags=["预订管理"])


@router.get("", response_model=BookingListResponse)
def list_bookings(
    hotel_id: int,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """分页查询预订"""
    ensure_hotel_access(current_user, hotel_id)
    return BookingService(db).list_bookings(
        hotel_id, status=booking_status, date_from=date_from, date_to=date_to,
        page=page, limit=limit
    )


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    hotel_id: int,
    data: BookingCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """创建预订"""
    ensure_hotel_access(current_user, hotel_id)
    return BookingService(db).create_booking(hotel_id, data, current_user.id)


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    hotel_id: int,
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    ensure_hotel_access(current_user, hotel_id)
    return BookingService(db).get_booking_or_404(hotel_id, booking_id)


@router.patch("/{booking_id}", response_model=BookingResponse)
def update_booking(
    hotel_id: int,
    booking_id: int,
    data: BookingUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """修改预订"""
    ensure_hotel_access(current_user, hotel_id)
    return BookingService(db).update_booking(hotel_id, booking_id, data, current_user.id)


@router.delete("/{booking_id}")
def delete_booking(
    hotel_id: int,
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """删除预订"""
    ensure_hotel_access(current_user, hotel_id)
    BookingService(db).delete_booking(hotel_id, booking_id)
    return {"message": "Booking deleted"}


@router.post("/{booking_id}/check-in", response_model=BookingResponse)
def check_in(
    hotel_id: int,
    booking_id: int,
    data: CheckInRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """办理入住"""
    ensure_hotel_access(current_user, hotel_id)
    return BookingService(db).check_in(hotel_id, booking_id, data.room_id, current_user.id)


@router.post("/{booking_id}/check-out", response_model=BookingResponse)
def check_out(
    hotel_id: int,
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """办理退房"""
    ensure_hotel_access(current_user, hotel_id)
    return BookingService(db).check_out(hotel_id, booking_id, current_user.id)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    hotel_id: int,
    booking_id: int,
    data: Optional[BookingCancel] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """取消预订"""
    ensure_hotel_access(current_user, hotel_id)
    reason = data.reason if data else None
    return BookingService(db).cancel_booking(hotel_id, booking_id, reason, current_user.id)


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
def mark_no_show(
    hotel_id: int,
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """标记未到店"""
    ensure_hotel_access(current_user, hotel_id)
    return BookingService(db).mark_no_show(hotel_id, booking_id, current_user.id)


@router.get("/{booking_id}/activities", response_model=List[BookingActivityResponse])
def list_activities(
    hotel_id: int,
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """预订操作记录"""
    ensure_hotel_access(current_user, hotel_id)
    return BookingService(db).get_activities(hotel_id, booking_id)
