"""
本体对象定义 (Ontology Objects)
多租户酒店管理：所有业务实体都挂在 Hotel 之下
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text,
    Enum as SQLEnum, Boolean, Numeric, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from app.database import Base


# ============== 枚举定义 ==============

class RoomStatus(str, Enum):
    """房间状态枚举"""
    CLEAN = "CLEAN"                # 空闲-已清洁，可入住
    DIRTY = "DIRTY"                # 待清洁
    OCCUPIED = "OCCUPIED"          # 入住中
    MAINTENANCE = "MAINTENANCE"    # 保养中
    OUT_OF_ORDER = "OUT_OF_ORDER"  # 停用维修


class BookingStatus(str, Enum):
    """预订状态枚举"""
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class PaymentStatus(str, Enum):
    """预订付款状态"""
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class BookingSource(str, Enum):
    """预订来源"""
    DIRECT = "DIRECT"
    OTA = "OTA"
    KIOSK = "KIOSK"
    WEBSITE = "WEBSITE"


class FolioStatus(str, Enum):
    OPEN = "OPEN"
    SETTLED = "SETTLED"


class ChargeType(str, Enum):
    """挂账类型"""
    ROOM = "ROOM"
    FOOD = "FOOD"
    BEVERAGE = "BEVERAGE"
    SERVICE = "SERVICE"
    TAX = "TAX"
    OTHER = "OTHER"


class PaymentMethod(str, Enum):
    """支付方式"""
    CARD = "CARD"
    CASH = "CASH"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    WALLET = "WALLET"


class FolioPaymentStatus(str, Enum):
    """支付记录状态，只有 SUCCESS 计入已付"""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class InvoiceItemType(str, Enum):
    ROOM_CHARGE = "ROOM_CHARGE"
    POS_ORDER = "POS_ORDER"
    SERVICE = "SERVICE"
    TAX = "TAX"
    OTHER = "OTHER"


class InvoicePaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    ONLINE = "ONLINE"
    OTHER = "OTHER"


class OrderStatus(str, Enum):
    """POS 订单状态"""
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OrderPaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class EmployeeRole(str, Enum):
    """员工角色"""
    SYSADMIN = "sysadmin"          # 平台管理员，可访问所有酒店
    MANAGER = "manager"            # 经理
    RECEPTIONIST = "receptionist"  # 前台
    HOUSEKEEPING = "housekeeping"  # 客房服务


# ============== 本体对象定义 ==============

class Hotel(Base):
    """酒店（租户）"""
    __tablename__ = "hotels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    currency = Column(String(3), default="INR")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    room_types = relationship("RoomType", back_populates="hotel")
    rooms = relationship("Room", back_populates="hotel")


class RoomType(Base):
    """
    房型对象
    核心只读取 base_price
    """
    __tablename__ = "room_types"
    __table_args__ = (UniqueConstraint("hotel_id", "name", name="uq_room_type_hotel_name"),)

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    name = Column(String(50), nullable=False)                # 房型名称
    description = Column(Text)
    base_price = Column(Numeric(10, 2), nullable=False)     # 基础价格（每晚）
    max_occupancy = Column(Integer, default=2)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    hotel = relationship("Hotel", back_populates="room_types")
    rooms = relationship("Room", back_populates="room_type")


class Room(Base):
    """
    房间对象
    status 是共享可变状态：每次 UPDATE 都以 version 做比较交换
    """
    __tablename__ = "rooms"
    __table_args__ = (UniqueConstraint("hotel_id", "number", name="uq_room_hotel_number"),)

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    number = Column(String(10), nullable=False)             # 房间号
    floor = Column(Integer, default=1)
    status = Column(SQLEnum(RoomStatus), default=RoomStatus.CLEAN, nullable=False)
    is_active = Column(Boolean, default=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    hotel = relationship("Hotel", back_populates="rooms")
    room_type = relationship("RoomType", back_populates="rooms")
    bookings = relationship("Booking", back_populates="room")

    __mapper_args__ = {"version_id_col": version}


class Guest(Base):
    """客人对象，按 (hotel_id, phone) 识别"""
    __tablename__ = "guests"
    __table_args__ = (UniqueConstraint("hotel_id", "phone", name="uq_guest_hotel_phone"),)

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False)
    email = Column(String(100))
    address = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bookings = relationship("Booking", back_populates="guest")


class Booking(Base):
    """
    预订对象 - 预订/在住阶段的聚合根
    占用区间为半开区间 [check_in_date, check_out_date)
    """
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_booking_hotel_dates", "hotel_id", "check_in_date", "check_out_date"),
        Index("ix_booking_hotel_status", "hotel_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)     # 入住时分配
    check_in_date = Column(DateTime, nullable=False)
    check_out_date = Column(DateTime, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    paid_amount = Column(Numeric(10, 2), default=0)
    status = Column(SQLEnum(BookingStatus), default=BookingStatus.CONFIRMED, nullable=False)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    source = Column(SQLEnum(BookingSource), default=BookingSource.DIRECT)
    external_ref = Column(String(100))                  # OTA 预订号等
    notes = Column(Text)
    cancel_reason = Column(Text)
    created_by = Column(Integer, ForeignKey("employees.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    guest = relationship("Guest", back_populates="bookings")
    room_type = relationship("RoomType")
    room = relationship("Room", back_populates="bookings")
    folio = relationship("Folio", back_populates="booking", uselist=False,
                         cascade="all, delete-orphan")
    invoices = relationship("Invoice", back_populates="booking",
                            cascade="all, delete-orphan")
    activities = relationship("BookingActivity", back_populates="booking",
                              cascade="all, delete-orphan")


class Folio(Base):
    """
    账单流水（与 Booking 一一对应）
    total_charges / total_payments / balance 是缓存投影，每次变更时重新计算
    """
    __tablename__ = "folios"
    __table_args__ = (Index("ix_folio_hotel_status", "hotel_id", "status"),)

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    guest_id = Column(Integer, ForeignKey("guests.id"))
    total_charges = Column(Numeric(10, 2), default=0)
    total_payments = Column(Numeric(10, 2), default=0)
    balance = Column(Numeric(10, 2), default=0)
    status = Column(SQLEnum(FolioStatus), default=FolioStatus.OPEN, nullable=False)
    settled_at = Column(DateTime)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("Booking", back_populates="folio")
    charges = relationship("FolioCharge", back_populates="folio",
                           cascade="all, delete-orphan", order_by="FolioCharge.id")
    payments = relationship("FolioPayment", back_populates="folio",
                            cascade="all, delete-orphan", order_by="FolioPayment.id")

    __mapper_args__ = {"version_id_col": version}


class FolioCharge(Base):
    """挂账明细"""
    __tablename__ = "folio_charges"

    id = Column(Integer, primary_key=True, index=True)
    folio_id = Column(Integer, ForeignKey("folios.id"), nullable=False)
    type = Column(SQLEnum(ChargeType), nullable=False)
    description = Column(String(200), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)      # 单价
    quantity = Column(Integer, default=1, nullable=False)
    date = Column(DateTime, default=datetime.utcnow)
    posted = Column(Boolean, default=False)
    posted_by = Column(Integer, ForeignKey("employees.id"))

    folio = relationship("Folio", back_populates="charges")


class FolioPayment(Base):
    """支付明细"""
    __tablename__ = "folio_payments"

    id = Column(Integer, primary_key=True, index=True)
    folio_id = Column(Integer, ForeignKey("folios.id"), nullable=False)
    method = Column(SQLEnum(PaymentMethod), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    transaction_id = Column(String(100))                 # 外部交易号
    status = Column(SQLEnum(FolioPaymentStatus), default=FolioPaymentStatus.PENDING, nullable=False)
    date = Column(DateTime, default=datetime.utcnow)
    refunded_amount = Column(Numeric(10, 2))
    refunded_at = Column(DateTime)

    folio = relationship("Folio", back_populates="payments")


class Invoice(Base):
    """发票快照：房费 + 在住期间未付的 POS 订单"""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(SQLEnum(InvoiceStatus), default=InvoiceStatus.DRAFT, nullable=False)
    payment_method = Column(SQLEnum(InvoicePaymentMethod))
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("Booking", back_populates="invoices")
    items = relationship("InvoiceItem", back_populates="invoice",
                         cascade="all, delete-orphan", order_by="InvoiceItem.id")

    __mapper_args__ = {"version_id_col": version}


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False)
    description = Column(String(200), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    type = Column(SQLEnum(InvoiceItemType), nullable=False)
    order_id = Column(Integer, ForeignKey("pos_orders.id"), nullable=True)

    invoice = relationship("Invoice", back_populates="items")
    order = relationship("PosOrder")


class PosOrder(Base):
    """POS 订单（参考数据，核心只读取并更新 payment_status）"""
    __tablename__ = "pos_orders"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False)
    payment_status = Column(SQLEnum(OrderPaymentStatus), default=OrderPaymentStatus.PENDING, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class BookingActivity(Base):
    """预订操作记录，由事件处理器写入"""
    __tablename__ = "booking_activities"
    __table_args__ = (Index("ix_activity_booking_time", "booking_id", "timestamp"),)

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    operator_id = Column(Integer, ForeignKey("employees.id"))
    action = Column(String(50), nullable=False)         # CREATED, CHECKED_IN, PAYMENT_RECEIVED ...
    details = Column(Text)                              # JSON
    timestamp = Column(DateTime, default=datetime.utcnow)

    booking = relationship("Booking", back_populates="activities")


class Employee(Base):
    """员工对象"""
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=True)   # sysadmin 为空
    username = Column(String(50), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(SQLEnum(EmployeeRole), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def can_access_hotel(self, hotel_id: int) -> bool:
        """租户隔离：平台管理员可访问所有酒店"""
        if self.role == EmployeeRole.SYSADMIN:
            return True
        return self.hotel_id == hotel_id
