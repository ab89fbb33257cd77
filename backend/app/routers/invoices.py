"""
发票路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee, InvoiceStatus
from app.models.schemas import InvoiceGenerate, InvoicePaymentCreate, InvoiceResponse
from app.services.invoice_service import InvoiceService
from app.security.auth import (
    get_current_user, require_receptionist_or_manager, ensure_hotel_access
)

router = APIRouter(prefix="/invoices", tags=["发票管理"])


@router.post("/generate", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def generate_invoice(
    data: InvoiceGenerate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """生成发票：新建返回 201，覆盖草稿返回 200"""
    service = InvoiceService(db)
    booking = service.get_booking(data.booking_id)
    ensure_hotel_access(current_user, booking.hotel_id)

    invoice, created = service.generate(data.booking_id, current_user.id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return invoice


@router.get("", response_model=List[InvoiceResponse])
def list_invoices(
    hotel_id: Optional[int] = None,
    invoice_status: Optional[InvoiceStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """发票列表；非平台管理员只能看到所属酒店"""
    if hotel_id is not None:
        ensure_hotel_access(current_user, hotel_id)
    elif current_user.hotel_id is not None:
        hotel_id = current_user.hotel_id
    return InvoiceService(db).get_invoices(hotel_id=hotel_id, status=invoice_status)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    invoice = InvoiceService(db).get_invoice(invoice_id)
    ensure_hotel_access(current_user, invoice.hotel_id)
    return invoice


@router.post("/{invoice_id}/issue", response_model=InvoiceResponse)
def issue_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """开具发票"""
    service = InvoiceService(db)
    ensure_hotel_access(current_user, service.get_invoice(invoice_id).hotel_id)
    return service.issue(invoice_id)


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
def cancel_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """作废发票"""
    service = InvoiceService(db)
    ensure_hotel_access(current_user, service.get_invoice(invoice_id).hotel_id)
    return service.cancel(invoice_id)


@router.post("/{invoice_id}/payments", response_model=InvoiceResponse)
def record_invoice_payment(
    invoice_id: int,
    data: InvoicePaymentCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """登记发票收款"""
    service = InvoiceService(db)
    ensure_hotel_access(current_user, service.get_invoice(invoice_id).hotel_id)
    return service.record_payment(invoice_id, data.amount, data.method, current_user.id)
