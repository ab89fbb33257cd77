"""
账单流水路由
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee
from app.models.schemas import (
    FolioResponse, FolioChargeCreate, FolioPaymentCreate, PaymentCapture, PaymentRefund
)
from app.services.folio_service import FolioService
from app.security.auth import (
    get_current_user, require_manager, require_receptionist_or_manager, ensure_hotel_access
)

router = APIRouter(prefix="/hotels/{hotel_id}/bookings/{booking_id}/folio", tags=["账单管理"])


@router.get("", response_model=FolioResponse)
def get_folio(
    hotel_id: int,
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取账单（不存在时创建）"""
    ensure_hotel_access(current_user, hotel_id)
    return FolioService(db).get_or_create(hotel_id, booking_id)


@router.post("/charges", response_model=FolioResponse)
def add_charge(
    hotel_id: int,
    booking_id: int,
    data: FolioChargeCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """挂账"""
    ensure_hotel_access(current_user, hotel_id)
    return FolioService(db).add_charge(hotel_id, booking_id, data, current_user.id)


@router.post("/payments", response_model=FolioResponse)
def add_payment(
    hotel_id: int,
    booking_id: int,
    data: FolioPaymentCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """登记支付"""
    ensure_hotel_access(current_user, hotel_id)
    return FolioService(db).add_payment(hotel_id, booking_id, data, current_user.id)


@router.post("/payments/{payment_id}/capture", response_model=FolioResponse)
def capture_payment(
    hotel_id: int,
    booking_id: int,
    payment_id: int,
    data: PaymentCapture = PaymentCapture(),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """确认支付成功"""
    ensure_hotel_access(current_user, hotel_id)
    return FolioService(db).capture_payment(
        hotel_id, booking_id, payment_id, data.transaction_id, current_user.id
    )


@router.post("/payments/{payment_id}/fail", response_model=FolioResponse)
def fail_payment(
    hotel_id: int,
    booking_id: int,
    payment_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """标记支付失败"""
    ensure_hotel_access(current_user, hotel_id)
    return FolioService(db).fail_payment(hotel_id, booking_id, payment_id, current_user.id)


@router.post("/payments/{payment_id}/refund", response_model=FolioResponse)
def refund_payment(
    hotel_id: int,
    booking_id: int,
    payment_id: int,
    data: PaymentRefund = PaymentRefund(),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """退款（经理权限）"""
    ensure_hotel_access(current_user, hotel_id)
    return FolioService(db).refund_payment(
        hotel_id, booking_id, payment_id, data.amount, current_user.id
    )


@router.post("/settle", response_model=FolioResponse)
def settle_folio(
    hotel_id: int,
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """结清账单"""
    ensure_hotel_access(current_user, hotel_id)
    return FolioService(db).settle(hotel_id, booking_id, current_user.id)
