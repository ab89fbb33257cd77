"""
领域事件定义 (Domain Events)
遵循事件驱动架构，定义预订/账单流程中的核心业务事件
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any


class EventType(str, Enum):
    """事件类型枚举"""
    # 预订相关
    BOOKING_CREATED = "booking.created"
    BOOKING_UPDATED = "booking.updated"
    BOOKING_CANCELLED = "booking.cancelled"
    BOOKING_NO_SHOW = "booking.no_show"

    # 入住相关
    GUEST_CHECKED_IN = "guest.checked_in"
    GUEST_CHECKED_OUT = "guest.checked_out"

    # 房间相关
    ROOM_STATUS_CHANGED = "room.status_changed"

    # 账单相关
    FOLIO_CHARGE_POSTED = "folio.charge_posted"
    FOLIO_PAYMENT_RECORDED = "folio.payment_recorded"
    FOLIO_SETTLED = "folio.settled"

    # 发票相关
    INVOICE_GENERATED = "invoice.generated"
    INVOICE_PAID = "invoice.paid"


@dataclass
class BaseEventData:
    """事件数据基类"""
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """转换为可 JSON 序列化的字典"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
        return result


@dataclass
class BookingCreatedData(BaseEventData):
    """预订创建事件数据"""
    booking_id: int = 0
    hotel_id: int = 0
    guest_id: int = 0
    guest_name: str = ""
    room_type_id: int = 0
    check_in_date: str = ""
    check_out_date: str = ""
    total_amount: Decimal = Decimal("0")
    source: str = ""
    operator_id: Optional[int] = None


@dataclass
class BookingUpdatedData(BaseEventData):
    booking_id: int = 0
    hotel_id: int = 0
    changed_fields: Dict[str, Any] = field(default_factory=dict)
    operator_id: Optional[int] = None


@dataclass
class BookingCancelledData(BaseEventData):
    """预订取消 / 未到店事件数据"""
    booking_id: int = 0
    hotel_id: int = 0
    guest_id: int = 0
    reason: str = ""
    operator_id: Optional[int] = None


@dataclass
class GuestCheckedInData(BaseEventData):
    """客人入住事件数据"""
    booking_id: int = 0
    hotel_id: int = 0
    guest_id: int = 0
    guest_name: str = ""
    room_id: int = 0
    room_number: str = ""
    check_in_time: datetime = field(default_factory=datetime.utcnow)
    expected_check_out: str = ""
    operator_id: Optional[int] = None


@dataclass
class GuestCheckedOutData(BaseEventData):
    """客人退房事件数据"""
    booking_id: int = 0
    hotel_id: int = 0
    guest_id: int = 0
    room_id: Optional[int] = None
    room_number: str = ""
    check_out_time: datetime = field(default_factory=datetime.utcnow)
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    operator_id: Optional[int] = None


@dataclass
class RoomStatusChangedData(BaseEventData):
    """房间状态变更事件数据"""
    room_id: int = 0
    hotel_id: int = 0
    room_number: str = ""
    old_status: str = ""
    new_status: str = ""
    booking_id: Optional[int] = None
    changed_by: Optional[int] = None
    reason: str = ""


@dataclass
class FolioChargePostedData(BaseEventData):
    """挂账事件数据"""
    folio_id: int = 0
    booking_id: int = 0
    hotel_id: int = 0
    charge_id: int = 0
    charge_type: str = ""
    amount: Decimal = Decimal("0")
    quantity: int = 1
    balance: Decimal = Decimal("0")
    operator_id: Optional[int] = None


@dataclass
class FolioPaymentRecordedData(BaseEventData):
    """账单支付事件数据（新增 / 确认 / 失败 / 退款）"""
    folio_id: int = 0
    booking_id: int = 0
    hotel_id: int = 0
    payment_id: int = 0
    method: str = ""
    amount: Decimal = Decimal("0")
    status: str = ""
    balance: Decimal = Decimal("0")
    operator_id: Optional[int] = None


@dataclass
class FolioSettledData(BaseEventData):
    folio_id: int = 0
    booking_id: int = 0
    hotel_id: int = 0
    total_charges: Decimal = Decimal("0")
    total_payments: Decimal = Decimal("0")
    operator_id: Optional[int] = None


@dataclass
class InvoiceGeneratedData(BaseEventData):
    """发票生成事件数据"""
    invoice_id: int = 0
    booking_id: int = 0
    hotel_id: int = 0
    total_amount: Decimal = Decimal("0")
    item_count: int = 0
    regenerated: bool = False
    operator_id: Optional[int] = None


@dataclass
class InvoicePaidData(BaseEventData):
    """发票收款事件数据"""
    invoice_id: int = 0
    booking_id: int = 0
    hotel_id: int = 0
    amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    method: str = ""
    status: str = ""
    operator_id: Optional[int] = None


# 事件数据类型映射
EVENT_DATA_CLASSES = {
    EventType.BOOKING_CREATED: BookingCreatedData,
    EventType.BOOKING_UPDATED: BookingUpdatedData,
    EventType.BOOKING_CANCELLED: BookingCancelledData,
    EventType.BOOKING_NO_SHOW: BookingCancelledData,
    EventType.GUEST_CHECKED_IN: GuestCheckedInData,
    EventType.GUEST_CHECKED_OUT: GuestCheckedOutData,
    EventType.ROOM_STATUS_CHANGED: RoomStatusChangedData,
    EventType.FOLIO_CHARGE_POSTED: FolioChargePostedData,
    EventType.FOLIO_PAYMENT_RECORDED: FolioPaymentRecordedData,
    EventType.FOLIO_SETTLED: FolioSettledData,
    EventType.INVOICE_GENERATED: InvoiceGeneratedData,
    EventType.INVOICE_PAID: InvoicePaidData,
}
