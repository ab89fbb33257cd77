"""
账单流水服务 - 管理 Folio / FolioCharge / FolioPayment
每次变更都从明细重算汇总并在同一事务内写回；folio.version 检测并发修改
"""
from typing import Optional, Callable
from datetime import datetime
from decimal import Decimal
import logging
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from app.models.ontology import (
    Booking, Folio, FolioCharge, FolioPayment, FolioStatus, FolioPaymentStatus
)
from app.models.schemas import FolioChargeCreate, FolioPaymentCreate
from app.domain.folio import apply_totals, can_settle, to_money
from app.services.event_bus import event_bus, Event
from app.services.exceptions import (
    NotFoundError, ValidationError, InvalidStatusTransitionError,
    OutstandingBalanceError, ConcurrentModificationError
)
from app.models.events import (
    EventType, FolioChargePostedData, FolioPaymentRecordedData, FolioSettledData
)

logger = logging.getLogger(__name__)


class FolioService:
    """账单流水服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish

    def get_folio(self, hotel_id: int, booking_id: int) -> Optional[Folio]:
        return self.db.query(Folio).filter(
            Folio.booking_id == booking_id,
            Folio.hotel_id == hotel_id
        ).first()

    def _load(self, hotel_id: int, booking_id: int) -> Folio:
        """获取账单，不存在时在当前事务中创建"""
        folio = self.get_folio(hotel_id, booking_id)
        if folio:
            return folio

        booking = self.db.query(Booking).filter(
            Booking.id == booking_id,
            Booking.hotel_id == hotel_id
        ).first()
        if not booking:
            raise NotFoundError("Booking", booking_id)

        folio = Folio(
            hotel_id=hotel_id,
            booking_id=booking.id,
            guest_id=booking.guest_id,
            total_charges=Decimal("0.00"),
            total_payments=Decimal("0.00"),
            balance=Decimal("0.00"),
            status=FolioStatus.OPEN
        )
        self.db.add(folio)
        self.db.flush()
        return folio

    def get_or_create(self, hotel_id: int, booking_id: int) -> Folio:
        folio = self._load(hotel_id, booking_id)
        self._save(folio)
        return folio

    def _save(self, folio: Folio) -> None:
        """重算汇总并提交；每次变更都会更新 folio 行以触发版本校验"""
        apply_totals(folio)
        folio.updated_at = datetime.utcnow()
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent modification on folio {folio.id}")
            raise ConcurrentModificationError(f"Folio {folio.id} was modified concurrently")
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(folio)

    def _get_payment(self, folio: Folio, payment_id: int) -> FolioPayment:
        for payment in folio.payments:
            if payment.id == payment_id:
                return payment
        raise NotFoundError("Payment", payment_id)

    # ============== 挂账 ==============

    def add_charge(self, hotel_id: int, booking_id: int, data: FolioChargeCreate,
                   operator_id: Optional[int] = None) -> Folio:
        """追加挂账明细，已结清的账单不能再挂账"""
        folio = self._load(hotel_id, booking_id)
        if folio.status == FolioStatus.SETTLED:
            raise InvalidStatusTransitionError("folio", folio.status, "post a charge to")

        charge = FolioCharge(
            type=data.type,
            description=data.description,
            amount=to_money(data.amount),
            quantity=data.quantity,
            date=data.date or datetime.utcnow(),
            posted=True,
            posted_by=operator_id
        )
        folio.charges.append(charge)
        self._save(folio)

        logger.info(f"Charge {charge.id} posted to folio {folio.id}, balance {folio.balance}")
        self._publish_event(Event(
            event_type=EventType.FOLIO_CHARGE_POSTED.value,
            timestamp=datetime.utcnow(),
            data=FolioChargePostedData(
                folio_id=folio.id,
                booking_id=booking_id,
                hotel_id=hotel_id,
                charge_id=charge.id,
                charge_type=charge.type.value,
                amount=charge.amount,
                quantity=charge.quantity,
                balance=folio.balance,
                operator_id=operator_id
            ).to_dict(),
            source="folio_service"
        ))
        return folio

    # ============== 支付 ==============

    def add_payment(self, hotel_id: int, booking_id: int, data: FolioPaymentCreate,
                    operator_id: Optional[int] = None) -> Folio:
        """追加支付记录；只有 SUCCESS 状态计入已付"""
        folio = self._load(hotel_id, booking_id)
        if folio.status == FolioStatus.SETTLED:
            raise InvalidStatusTransitionError("folio", folio.status, "record a payment on")

        payment = FolioPayment(
            method=data.method,
            amount=to_money(data.amount),
            transaction_id=data.transaction_id,
            status=data.status,
            date=datetime.utcnow()
        )
        folio.payments.append(payment)
        self._save(folio)

        self._publish_payment(folio, payment, operator_id)
        return folio

    def capture_payment(self, hotel_id: int, booking_id: int, payment_id: int,
                        transaction_id: Optional[str] = None,
                        operator_id: Optional[int] = None) -> Folio:
        """PENDING -> SUCCESS"""
        folio = self._load(hotel_id, booking_id)
        payment = self._get_payment(folio, payment_id)
        if payment.status != FolioPaymentStatus.PENDING:
            raise InvalidStatusTransitionError("payment", payment.status, "capture")

        payment.status = FolioPaymentStatus.SUCCESS
        if transaction_id:
            payment.transaction_id = transaction_id
        self._save(folio)

        logger.info(f"Payment {payment.id} captured on folio {folio.id}")
        self._publish_payment(folio, payment, operator_id)
        return folio

    def fail_payment(self, hotel_id: int, booking_id: int, payment_id: int,
                     operator_id: Optional[int] = None) -> Folio:
        """PENDING -> FAILED"""
        folio = self._load(hotel_id, booking_id)
        payment = self._get_payment(folio, payment_id)
        if payment.status != FolioPaymentStatus.PENDING:
            raise InvalidStatusTransitionError("payment", payment.status, "fail")

        payment.status = FolioPaymentStatus.FAILED
        self._save(folio)

        self._publish_payment(folio, payment, operator_id)
        return folio

    def refund_payment(self, hotel_id: int, booking_id: int, payment_id: int,
                       amount: Optional[Decimal] = None,
                       operator_id: Optional[int] = None) -> Folio:
        """
        退款 SUCCESS -> REFUNDED

        部分退款时，保留部分作为一条新的 SUCCESS 支付记录；
        已结清的账单在余额转正后重新打开
        """
        folio = self._load(hotel_id, booking_id)
        payment = self._get_payment(folio, payment_id)
        if payment.status != FolioPaymentStatus.SUCCESS:
            raise InvalidStatusTransitionError("payment", payment.status, "refund")

        original = to_money(payment.amount)
        refund = original if amount is None else to_money(amount)
        if refund <= 0 or refund > original:
            raise ValidationError(
                f"Refund amount must be between 0 and {original}", field="amount"
            )

        now = datetime.utcnow()
        payment.status = FolioPaymentStatus.REFUNDED
        payment.refunded_amount = refund
        payment.refunded_at = now

        retained = original - refund
        if retained > 0:
            folio.payments.append(FolioPayment(
                method=payment.method,
                amount=retained,
                transaction_id=payment.transaction_id,
                status=FolioPaymentStatus.SUCCESS,
                date=now
            ))

        totals = apply_totals(folio)
        if folio.status == FolioStatus.SETTLED and totals.balance > 0:
            folio.status = FolioStatus.OPEN
            folio.settled_at = None
            logger.info(f"Folio {folio.id} reopened after refund")
        self._save(folio)

        logger.info(f"Payment {payment.id} refunded {refund} on folio {folio.id}")
        self._publish_payment(folio, payment, operator_id)
        return folio

    def _publish_payment(self, folio: Folio, payment: FolioPayment,
                         operator_id: Optional[int]) -> None:
        self._publish_event(Event(
            event_type=EventType.FOLIO_PAYMENT_RECORDED.value,
            timestamp=datetime.utcnow(),
            data=FolioPaymentRecordedData(
                folio_id=folio.id,
                booking_id=folio.booking_id,
                hotel_id=folio.hotel_id,
                payment_id=payment.id,
                method=payment.method.value,
                amount=payment.amount,
                status=payment.status.value,
                balance=folio.balance,
                operator_id=operator_id
            ).to_dict(),
            source="folio_service"
        ))

    # ============== 结账 ==============

    def settle(self, hotel_id: int, booking_id: int,
               operator_id: Optional[int] = None) -> Folio:
        """
        结清账单 OPEN -> SETTLED

        Raises:
            OutstandingBalanceError: 余额大于 0
        """
        folio = self._load(hotel_id, booking_id)
        if folio.status == FolioStatus.SETTLED:
            raise InvalidStatusTransitionError("folio", folio.status, "settle")

        totals = apply_totals(folio)
        if not can_settle(totals.balance):
            logger.warning(f"Settle rejected for folio {folio.id}: balance {totals.balance}")
            self.db.rollback()
            raise OutstandingBalanceError(totals.balance)

        folio.status = FolioStatus.SETTLED
        folio.settled_at = datetime.utcnow()
        self._save(folio)

        logger.info(f"Folio {folio.id} settled")
        self._publish_event(Event(
            event_type=EventType.FOLIO_SETTLED.value,
            timestamp=datetime.utcnow(),
            data=FolioSettledData(
                folio_id=folio.id,
                booking_id=folio.booking_id,
                hotel_id=folio.hotel_id,
                total_charges=folio.total_charges,
                total_payments=folio.total_payments,
                operator_id=operator_id
            ).to_dict(),
            source="folio_service"
        ))
        return folio
