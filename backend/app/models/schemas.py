"""
Pydantic 模式定义
用于 API 请求/响应验证
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict
from app.models.ontology import (
    RoomStatus, BookingStatus, PaymentStatus, BookingSource, FolioStatus,
    ChargeType, PaymentMethod, FolioPaymentStatus, InvoiceStatus,
    InvoiceItemType, InvoicePaymentMethod, EmployeeRole
)


# ============== 房型 Schemas ==============

class RoomTypeCreate(BaseModel):
    name: str = Field(..., max_length=50)
    description: Optional[str] = None
    base_price: Decimal = Field(..., ge=0)
    max_occupancy: int = Field(default=2, ge=1)


class RoomTypeResponse(BaseModel):
    id: int
    hotel_id: int
    name: str
    description: Optional[str] = None
    base_price: Decimal
    max_occupancy: int
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class RoomTypeAvailability(BaseModel):
    """按房型统计的可售数量"""
    room_type_id: int
    name: str
    total: int
    booked: int
    available: int


# ============== 房间 Schemas ==============

class RoomCreate(BaseModel):
    number: str = Field(..., max_length=10)
    floor: int = 1
    room_type_id: int


class RoomResponse(BaseModel):
    id: int
    hotel_id: int
    room_type_id: int
    number: str
    floor: int
    status: RoomStatus
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class RoomStatusUpdate(BaseModel):
    status: RoomStatus
    reason: Optional[str] = None


# ============== 客人 Schemas ==============

class GuestResponse(BaseModel):
    id: int
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# ============== 预订 Schemas ==============

class BookingCreate(BaseModel):
    guest_name: str = Field(..., min_length=1, max_length=100)
    guest_phone: str = Field(..., min_length=1, max_length=20)
    guest_email: Optional[str] = Field(None, max_length=100)
    guest_address: Optional[str] = None
    room_type_id: int
    check_in_date: datetime
    check_out_date: datetime
    total_amount: Decimal = Field(..., ge=0)
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0)
    source: BookingSource = BookingSource.DIRECT
    external_ref: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class BookingUpdate(BaseModel):
    room_type_id: Optional[int] = None
    check_in_date: Optional[datetime] = None
    check_out_date: Optional[datetime] = None
    total_amount: Optional[Decimal] = Field(None, ge=0)
    paid_amount: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class CheckInRequest(BaseModel):
    room_id: int


class BookingResponse(BaseModel):
    id: int
    hotel_id: int
    guest_id: int
    room_type_id: int
    room_id: Optional[int] = None
    check_in_date: datetime
    check_out_date: datetime
    total_amount: Decimal
    paid_amount: Decimal
    status: BookingStatus
    payment_status: PaymentStatus
    source: Optional[BookingSource] = None
    external_ref: Optional[str] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    guest: Optional[GuestResponse] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class BookingListResponse(BaseModel):
    data: List[BookingResponse]
    pagination: Pagination


class BookingActivityResponse(BaseModel):
    id: int
    booking_id: int
    action: str
    details: Optional[str] = None
    operator_id: Optional[int] = None
    timestamp: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 账单 Schemas ==============

class FolioChargeCreate(BaseModel):
    type: ChargeType
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)
    date: Optional[datetime] = None


class FolioChargeResponse(BaseModel):
    id: int
    type: ChargeType
    description: str
    amount: Decimal
    quantity: int
    date: datetime
    posted: bool
    posted_by: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class FolioPaymentCreate(BaseModel):
    method: PaymentMethod
    amount: Decimal = Field(..., gt=0)
    transaction_id: Optional[str] = Field(None, max_length=100)
    status: FolioPaymentStatus = FolioPaymentStatus.PENDING


class PaymentCapture(BaseModel):
    transaction_id: Optional[str] = Field(None, max_length=100)


class PaymentRefund(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)


class FolioPaymentResponse(BaseModel):
    id: int
    method: PaymentMethod
    amount: Decimal
    transaction_id: Optional[str] = None
    status: FolioPaymentStatus
    date: datetime
    refunded_amount: Optional[Decimal] = None
    refunded_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class FolioResponse(BaseModel):
    id: int
    hotel_id: int
    booking_id: int
    guest_id: Optional[int] = None
    total_charges: Decimal
    total_payments: Decimal
    balance: Decimal
    status: FolioStatus
    settled_at: Optional[datetime] = None
    charges: List[FolioChargeResponse] = []
    payments: List[FolioPaymentResponse] = []
    model_config = ConfigDict(from_attributes=True)


# ============== 发票 Schemas ==============

class InvoiceGenerate(BaseModel):
    booking_id: int


class InvoicePaymentCreate(BaseModel):
    amount: Decimal
    method: InvoicePaymentMethod


class InvoiceItemResponse(BaseModel):
    id: int
    description: str
    amount: Decimal
    type: InvoiceItemType
    order_id: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class InvoiceResponse(BaseModel):
    id: int
    hotel_id: int
    booking_id: int
    guest_id: int
    total_amount: Decimal
    paid_amount: Decimal
    status: InvoiceStatus
    payment_method: Optional[InvoicePaymentMethod] = None
    items: List[InvoiceItemResponse] = []
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 员工 / 登录 Schemas ==============

class EmployeeResponse(BaseModel):
    id: int
    hotel_id: Optional[int] = None
    username: str
    name: str
    role: EmployeeRole
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    employee: EmployeeResponse


class TokenPayload(BaseModel):
    sub: int
    role: EmployeeRole
    hotel_id: Optional[int] = None
    exp: datetime
