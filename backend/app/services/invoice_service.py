"""
发票服务 - 从预订生成账单快照（房费 + 在住期间未付的 POS 订单）
草稿可重复生成并覆盖明细；已开具的发票不可覆盖
"""
from typing import List, Optional, Callable, Tuple
from datetime import datetime
from decimal import Decimal
import logging
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from app.models.ontology import (
    Booking, Invoice, InvoiceItem, InvoiceItemType, InvoiceStatus, InvoicePaymentMethod,
    PosOrder, OrderStatus, OrderPaymentStatus
)
from app.domain.folio import to_money
from app.domain.invoice import count_nights, room_charge, room_line_description, invoice_total
from app.services.event_bus import event_bus, Event
from app.services.exceptions import (
    NotFoundError, ValidationError, InvalidStatusTransitionError,
    InvoiceAlreadyIssuedError, ConcurrentModificationError
)
from app.models.events import EventType, InvoiceGeneratedData, InvoicePaidData

logger = logging.getLogger(__name__)


class InvoiceService:
    """发票服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish

    # ============== 查询 ==============

    def get_booking(self, booking_id: int) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    def get_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.db.query(Invoice).filter(Invoice.id == invoice_id).first()
        if not invoice:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    def get_invoices(self, hotel_id: Optional[int] = None,
                     status: Optional[InvoiceStatus] = None) -> List[Invoice]:
        query = self.db.query(Invoice)
        if hotel_id:
            query = query.filter(Invoice.hotel_id == hotel_id)
        if status:
            query = query.filter(Invoice.status == status)
        return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()

    def _open_invoice(self, booking_id: int) -> Optional[Invoice]:
        """预订当前的发票（忽略已作废的）"""
        return self.db.query(Invoice).filter(
            Invoice.booking_id == booking_id,
            Invoice.status != InvoiceStatus.CANCELLED
        ).order_by(Invoice.id.desc()).first()

    def _pending_orders(self, booking: Booking) -> List[PosOrder]:
        """同一房间、在住时段内、未付且未取消的 POS 订单"""
        if not booking.room_id:
            return []
        return self.db.query(PosOrder).filter(
            PosOrder.hotel_id == booking.hotel_id,
            PosOrder.room_id == booking.room_id,
            PosOrder.created_at >= booking.check_in_date,
            PosOrder.created_at <= booking.check_out_date,
            PosOrder.payment_status == OrderPaymentStatus.PENDING,
            PosOrder.status != OrderStatus.CANCELLED
        ).order_by(PosOrder.created_at, PosOrder.id).all()

    def _commit(self, invoice_id: Optional[int]) -> None:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent modification on invoice {invoice_id}")
            raise ConcurrentModificationError(f"Invoice {invoice_id} was modified concurrently")
        except Exception:
            self.db.rollback()
            raise

    # ============== 生成 ==============

    def generate(self, booking_id: int, operator_id: Optional[int] = None) -> Tuple[Invoice, bool]:
        """
        生成发票

        1. 房费行 = 间夜数 × 房型基础价
        2. 同房间在住期间未付的 POS 订单逐条成为明细
        3. 已有草稿则覆盖明细；已开具则拒绝；否则新建草稿

        Returns:
            (invoice, created) - created 为 False 表示覆盖了已有草稿

        Raises:
            NotFoundError: 预订不存在
            InvoiceAlreadyIssuedError: 预订已有非草稿发票
        """
        booking = self.get_booking(booking_id)

        nights = count_nights(booking.check_in_date, booking.check_out_date)
        room_type = booking.room_type
        items = [InvoiceItem(
            description=room_line_description(room_type.name, nights),
            amount=room_charge(nights, room_type.base_price),
            type=InvoiceItemType.ROOM_CHARGE
        )]
        for order in self._pending_orders(booking):
            items.append(InvoiceItem(
                description=f"POS order #{order.id}",
                amount=to_money(order.total_amount),
                type=InvoiceItemType.POS_ORDER,
                order_id=order.id
            ))
        total = invoice_total(items)

        invoice = self._open_invoice(booking.id)
        if invoice and invoice.status != InvoiceStatus.DRAFT:
            logger.warning(f"Regeneration rejected: invoice {invoice.id} is {invoice.status.value}")
            raise InvoiceAlreadyIssuedError(
                f"Invoice {invoice.id} for booking {booking.id} is already {invoice.status.value}"
            )

        created = invoice is None
        if created:
            invoice = Invoice(
                hotel_id=booking.hotel_id,
                booking_id=booking.id,
                guest_id=booking.guest_id,
                paid_amount=Decimal("0.00"),
                status=InvoiceStatus.DRAFT
            )
            self.db.add(invoice)
        else:
            invoice.items.clear()

        invoice.items.extend(items)
        invoice.total_amount = total
        invoice.updated_at = datetime.utcnow()
        self._commit(invoice.id)
        self.db.refresh(invoice)

        logger.info(
            f"Invoice {invoice.id} {'generated' if created else 'regenerated'} "
            f"for booking {booking.id}: {total}"
        )
        self._publish_event(Event(
            event_type=EventType.INVOICE_GENERATED.value,
            timestamp=datetime.utcnow(),
            data=InvoiceGeneratedData(
                invoice_id=invoice.id,
                booking_id=booking.id,
                hotel_id=booking.hotel_id,
                total_amount=invoice.total_amount,
                item_count=len(invoice.items),
                regenerated=not created,
                operator_id=operator_id
            ).to_dict(),
            source="invoice_service"
        ))
        return invoice, created

    # ============== 开具 / 作废 ==============

    def issue(self, invoice_id: int) -> Invoice:
        """DRAFT -> ISSUED"""
        invoice = self.get_invoice(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT:
            raise InvalidStatusTransitionError("invoice", invoice.status, "issue")

        invoice.status = InvoiceStatus.ISSUED
        self._commit(invoice.id)
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.id} issued")
        return invoice

    def cancel(self, invoice_id: int) -> Invoice:
        """作废未收款的发票"""
        invoice = self.get_invoice(invoice_id)
        if invoice.status not in (InvoiceStatus.DRAFT, InvoiceStatus.ISSUED) \
                or to_money(invoice.paid_amount) > 0:
            raise InvalidStatusTransitionError("invoice", invoice.status, "cancel")

        invoice.status = InvoiceStatus.CANCELLED
        self._commit(invoice.id)
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.id} cancelled")
        return invoice

    # ============== 收款 ==============

    def record_payment(self, invoice_id: int, amount, method: InvoicePaymentMethod,
                       operator_id: Optional[int] = None) -> Invoice:
        """
        登记发票收款

        paid_amount 累加；付清时状态为 PAID 并在同一事务内将关联 POS 订单标记为已付，
        否则为 ISSUED
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than 0", field="amount")

        invoice = self.get_invoice(invoice_id)
        if invoice.status in (InvoiceStatus.CANCELLED, InvoiceStatus.PAID):
            raise InvalidStatusTransitionError("invoice", invoice.status, "record a payment on")

        invoice.paid_amount = to_money(invoice.paid_amount) + amount
        invoice.payment_method = method

        fully_paid = invoice.paid_amount >= to_money(invoice.total_amount)
        if fully_paid:
            invoice.status = InvoiceStatus.PAID
            order_ids = [i.order_id for i in invoice.items
                         if i.type == InvoiceItemType.POS_ORDER and i.order_id]
            if order_ids:
                self.db.query(PosOrder).filter(PosOrder.id.in_(order_ids)).update(
                    {PosOrder.payment_status: OrderPaymentStatus.PAID},
                    synchronize_session="fetch"
                )
        else:
            invoice.status = InvoiceStatus.ISSUED

        self._commit(invoice.id)
        self.db.refresh(invoice)

        logger.info(
            f"Invoice {invoice.id} received {amount}, paid {invoice.paid_amount}/{invoice.total_amount}"
        )
        self._publish_event(Event(
            event_type=EventType.INVOICE_PAID.value,
            timestamp=datetime.utcnow(),
            data=InvoicePaidData(
                invoice_id=invoice.id,
                booking_id=invoice.booking_id,
                hotel_id=invoice.hotel_id,
                amount=amount,
                paid_amount=invoice.paid_amount,
                total_amount=invoice.total_amount,
                method=method.value,
                status=invoice.status.value,
                operator_id=operator_id
            ).to_dict(),
            source="invoice_service"
        ))
        return invoice
