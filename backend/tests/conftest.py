"""
Pytest 配置和共享 fixtures
"""
import os

# 应用全局引擎指向内存库，测试数据库由下方 fixtures 单独创建
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db, SessionLocal
from app.models import ontology  # noqa: F401
from app.models.ontology import (
    Hotel, Employee, EmployeeRole, RoomType, Room, RoomStatus, PosOrder
)
from app.models.schemas import BookingCreate
from app.security.auth import get_password_hash, create_access_token
from app.services.booking_service import BookingService
from app.services.event_bus import event_bus
from app.services.event_handlers import event_handlers
from app.main import app


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """创建数据库会话"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session, session_factory):
    """创建测试客户端；事件处理器写入同一个内存库"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    event_handlers.set_session_factory(session_factory)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    event_handlers.set_session_factory(SessionLocal)
    event_bus.clear_history()


class EventRecorder:
    """记录发布的事件，替代全局事件总线"""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def types(self):
        return [e.event_type for e in self.events]

    def of_type(self, event_type):
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def recorder():
    return EventRecorder()


# ============== 酒店 / 员工 Fixtures ==============

@pytest.fixture
def sample_hotel(db_session):
    hotel = Hotel(name="Seaside Inn", currency="INR")
    db_session.add(hotel)
    db_session.commit()
    db_session.refresh(hotel)
    return hotel


@pytest.fixture
def other_hotel(db_session):
    hotel = Hotel(name="Hill View Lodge", currency="INR")
    db_session.add(hotel)
    db_session.commit()
    db_session.refresh(hotel)
    return hotel


def _make_employee(db_session, username, role, hotel_id):
    employee = Employee(
        username=username,
        password_hash=get_password_hash("123456"),
        name=username.title(),
        role=role,
        hotel_id=hotel_id,
        is_active=True
    )
    db_session.add(employee)
    db_session.commit()
    db_session.refresh(employee)
    return employee


@pytest.fixture
def manager(db_session, sample_hotel):
    return _make_employee(db_session, "manager", EmployeeRole.MANAGER, sample_hotel.id)


@pytest.fixture
def receptionist(db_session, sample_hotel):
    return _make_employee(db_session, "front1", EmployeeRole.RECEPTIONIST, sample_hotel.id)


@pytest.fixture
def housekeeper(db_session, sample_hotel):
    return _make_employee(db_session, "cleaner1", EmployeeRole.HOUSEKEEPING, sample_hotel.id)


@pytest.fixture
def sysadmin(db_session):
    return _make_employee(db_session, "admin", EmployeeRole.SYSADMIN, None)


@pytest.fixture
def manager_token(manager):
    return create_access_token(manager.id, manager.role, manager.hotel_id)


@pytest.fixture
def receptionist_token(receptionist):
    return create_access_token(receptionist.id, receptionist.role, receptionist.hotel_id)


@pytest.fixture
def housekeeper_token(housekeeper):
    return create_access_token(housekeeper.id, housekeeper.role, housekeeper.hotel_id)


@pytest.fixture
def sysadmin_token(sysadmin):
    return create_access_token(sysadmin.id, sysadmin.role)


@pytest.fixture
def manager_auth_headers(manager_token):
    return {"Authorization": f"Bearer {manager_token}"}


@pytest.fixture
def auth_headers(receptionist_token):
    """前台认证的请求头（大多数业务操作使用）"""
    return {"Authorization": f"Bearer {receptionist_token}"}


@pytest.fixture
def housekeeper_auth_headers(housekeeper_token):
    return {"Authorization": f"Bearer {housekeeper_token}"}


@pytest.fixture
def sysadmin_auth_headers(sysadmin_token):
    return {"Authorization": f"Bearer {sysadmin_token}"}


# ============== 房型 / 房间 Fixtures ==============

@pytest.fixture
def sample_room_type(db_session, sample_hotel):
    """创建测试房型"""
    room_type = RoomType(
        hotel_id=sample_hotel.id,
        name="Deluxe",
        description="Deluxe Room",
        base_price=Decimal("2000.00"),
        max_occupancy=2
    )
    db_session.add(room_type)
    db_session.commit()
    db_session.refresh(room_type)
    return room_type


@pytest.fixture
def suite_room_type(db_session, sample_hotel):
    room_type = RoomType(
        hotel_id=sample_hotel.id,
        name="Suite",
        base_price=Decimal("5000.00"),
        max_occupancy=4
    )
    db_session.add(room_type)
    db_session.commit()
    db_session.refresh(room_type)
    return room_type


def _make_room(db_session, hotel, room_type, number, status=RoomStatus.CLEAN):
    room = Room(
        hotel_id=hotel.id,
        room_type_id=room_type.id,
        number=number,
        floor=int(number[0]),
        status=status
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_room(db_session, sample_hotel, sample_room_type):
    """创建测试房间 101（CLEAN）"""
    return _make_room(db_session, sample_hotel, sample_room_type, "101")


@pytest.fixture
def sample_room_102(db_session, sample_hotel, sample_room_type):
    return _make_room(db_session, sample_hotel, sample_room_type, "102")


@pytest.fixture
def dirty_room(db_session, sample_hotel, sample_room_type):
    return _make_room(db_session, sample_hotel, sample_room_type, "103", RoomStatus.DIRTY)


@pytest.fixture
def suite_room(db_session, sample_hotel, suite_room_type):
    return _make_room(db_session, sample_hotel, suite_room_type, "501")


# ============== 预订 Fixtures ==============

def in_days(days: int, hour: int = 12) -> datetime:
    """相对今天的时间点"""
    base = datetime.utcnow().replace(hour=hour, minute=0, second=0, microsecond=0)
    return base + timedelta(days=days)


def booking_payload(room_type_id, **overrides) -> dict:
    """预订创建参数：今天入住，三晚"""
    data = {
        "guest_name": "Asha Rao",
        "guest_phone": "9000000001",
        "guest_email": "asha@example.com",
        "room_type_id": room_type_id,
        "check_in_date": in_days(0, hour=0),
        "check_out_date": in_days(3, hour=11),
        "total_amount": Decimal("8000.00"),
        "paid_amount": Decimal("0"),
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_booking(db_session, sample_hotel, sample_room_type):
    """工厂：通过 BookingService 创建 CONFIRMED 预订"""
    def _make(**overrides):
        overrides.setdefault("room_type_id", sample_room_type.id)
        data = BookingCreate(**booking_payload(**overrides))
        service = BookingService(db_session, event_publisher=lambda e: None)
        return service.create_booking(sample_hotel.id, data, operator_id=None)
    return _make


@pytest.fixture
def sample_booking(make_booking, sample_room):
    """房型下有一间房（101）的已确认预订"""
    return make_booking()


@pytest.fixture
def checked_in_booking(db_session, sample_hotel, sample_booking, sample_room):
    service = BookingService(db_session, event_publisher=lambda e: None)
    return service.check_in(sample_hotel.id, sample_booking.id, sample_room.id)


@pytest.fixture
def make_pos_order(db_session, sample_hotel):
    """工厂：创建 POS 订单"""
    def _make(room, amount, created_at, **kwargs):
        order = PosOrder(
            hotel_id=sample_hotel.id,
            room_id=room.id if room else None,
            total_amount=Decimal(str(amount)),
            created_at=created_at,
            **kwargs
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order
    return _make


@pytest.fixture
def booking_data(sample_room_type):
    """工厂：服务层 BookingCreate"""
    def _data(**overrides):
        overrides.setdefault("room_type_id", sample_room_type.id)
        return BookingCreate(**booking_payload(**overrides))
    return _data


@pytest.fixture
def booking_json(sample_room_type):
    """工厂：API 请求体（日期为 ISO 字符串，金额为字符串）"""
    def _json(**overrides):
        overrides.setdefault("room_type_id", sample_room_type.id)
        payload = booking_payload(**overrides)
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()
            elif isinstance(value, Decimal):
                payload[key] = str(value)
        return payload
    return _json
