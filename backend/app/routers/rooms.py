"""
房型 / 房间 / 可用性路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee, RoomStatus
from app.models.schemas import (
    RoomTypeCreate, RoomTypeResponse, RoomCreate, RoomResponse, RoomStatusUpdate,
    RoomTypeAvailability
)
from app.services.room_service import RoomService
from app.services.availability_service import AvailabilityService
from app.services.exceptions import NotFoundError
from app.security.auth import (
    get_current_user, require_manager, require_any_role, ensure_hotel_access
)

router = APIRouter(prefix="/hotels/{hotel_id}", tags=["房间管理"])


# ============== 房型 ==============

@router.get("/room-types", response_model=List[RoomTypeResponse])
def list_room_types(
    hotel_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取房型列表"""
    ensure_hotel_access(current_user, hotel_id)
    return RoomService(db).get_room_types(hotel_id)


@router.post("/room-types", response_model=RoomTypeResponse, status_code=status.HTTP_201_CREATED)
def create_room_type(
    hotel_id: int,
    data: RoomTypeCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """创建房型"""
    ensure_hotel_access(current_user, hotel_id)
    return RoomService(db).create_room_type(hotel_id, data)


# ============== 房间 ==============

@router.get("/rooms", response_model=List[RoomResponse])
def list_rooms(
    hotel_id: int,
    room_type_id: Optional[int] = None,
    room_status: Optional[RoomStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取房间列表"""
    ensure_hotel_access(current_user, hotel_id)
    return RoomService(db).get_rooms(hotel_id, room_type_id=room_type_id, status=room_status)


@router.post("/rooms", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
def create_room(
    hotel_id: int,
    data: RoomCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """创建房间"""
    ensure_hotel_access(current_user, hotel_id)
    return RoomService(db).create_room(hotel_id, data)


@router.get("/rooms/{room_id}", response_model=RoomResponse)
def get_room(
    hotel_id: int,
    room_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    ensure_hotel_access(current_user, hotel_id)
    room = RoomService(db).get_room(hotel_id, room_id)
    if not room:
        raise NotFoundError("Room", room_id)
    return room


@router.patch("/rooms/{room_id}/status", response_model=RoomResponse)
def update_room_status(
    hotel_id: int,
    room_id: int,
    data: RoomStatusUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_any_role)
):
    """更新房间状态（清洁完成、维修等）"""
    ensure_hotel_access(current_user, hotel_id)
    return RoomService(db).update_room_status(
        hotel_id, room_id, data.status, changed_by=current_user.id, reason=data.reason or ""
    )


# ============== 可用性 ==============

@router.get("/available-rooms", response_model=List[RoomResponse])
def get_available_rooms(
    hotel_id: int,
    check_in_date: Optional[str] = Query(None),
    check_out_date: Optional[str] = Query(None),
    room_type_id: Optional[int] = None,
    room_status: Optional[RoomStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """查询时段内无冲突预订的房间"""
    ensure_hotel_access(current_user, hotel_id)
    return AvailabilityService(db).get_available_rooms(
        hotel_id, check_in_date, check_out_date, room_type_id=room_type_id, status=room_status
    )


@router.get("/availability", response_model=List[RoomTypeAvailability])
def get_availability(
    hotel_id: int,
    check_in_date: Optional[str] = Query(None),
    check_out_date: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """按房型统计可售数量"""
    ensure_hotel_access(current_user, hotel_id)
    return AvailabilityService(db).get_availability_by_room_type(
        hotel_id, check_in_date, check_out_date
    )
