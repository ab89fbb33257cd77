"""
FolioService 测试
挂账、支付状态流转、退款、结清；汇总始终从明细重算
"""
import pytest
from decimal import Decimal
from sqlalchemy import text

from app.models.ontology import (
    ChargeType, Folio, FolioStatus, FolioPaymentStatus, PaymentMethod
)
from app.models.schemas import FolioChargeCreate, FolioPaymentCreate
from app.services.folio_service import FolioService
from app.services.exceptions import (
    NotFoundError, ValidationError, InvalidStatusTransitionError,
    OutstandingBalanceError, ConcurrentModificationError
)


@pytest.fixture
def service(db_session, recorder):
    return FolioService(db_session, event_publisher=recorder)


@pytest.fixture
def post_charge(service, sample_hotel, sample_booking):
    def _post(amount, quantity=1, charge_type=ChargeType.ROOM, description="Room night"):
        return service.add_charge(
            sample_hotel.id, sample_booking.id,
            FolioChargeCreate(type=charge_type, description=description,
                              amount=Decimal(amount), quantity=quantity)
        )
    return _post


@pytest.fixture
def pay(service, sample_hotel, sample_booking):
    def _pay(amount, status=FolioPaymentStatus.SUCCESS, method=PaymentMethod.CARD):
        folio = service.add_payment(
            sample_hotel.id, sample_booking.id,
            FolioPaymentCreate(method=method, amount=Decimal(amount), status=status)
        )
        return folio, folio.payments[-1]
    return _pay


class TestGetOrCreate:

    def test_creates_empty_open_folio(self, service, db_session, sample_hotel, sample_booking):
        folio = service.get_or_create(sample_hotel.id, sample_booking.id)

        assert folio.status == FolioStatus.OPEN
        assert folio.booking_id == sample_booking.id
        assert folio.guest_id == sample_booking.guest_id
        assert folio.balance == Decimal("0.00")
        assert db_session.query(Folio).count() == 1

    def test_second_call_returns_same_folio(self, service, sample_hotel, sample_booking):
        first = service.get_or_create(sample_hotel.id, sample_booking.id)
        second = service.get_or_create(sample_hotel.id, sample_booking.id)
        assert first.id == second.id

    def test_unknown_booking(self, service, sample_hotel):
        with pytest.raises(NotFoundError):
            service.get_or_create(sample_hotel.id, 404)

    def test_booking_of_other_hotel(self, service, other_hotel, sample_booking):
        with pytest.raises(NotFoundError):
            service.get_or_create(other_hotel.id, sample_booking.id)


class TestCharges:

    def test_charge_updates_totals(self, post_charge, recorder):
        folio = post_charge("2000.00", quantity=3)

        assert folio.total_charges == Decimal("6000.00")
        assert folio.balance == Decimal("6000.00")
        assert len(folio.charges) == 1
        assert folio.charges[0].posted is True

        assert recorder.types() == ["folio.charge_posted"]
        assert recorder.events[0].data["balance"] == "6000.00"

    def test_charges_accumulate(self, post_charge):
        post_charge("2000.00")
        folio = post_charge("350.50", charge_type=ChargeType.FOOD, description="Dinner")
        assert folio.total_charges == Decimal("2350.50")

    def test_cached_totals_are_recomputed(self, post_charge, db_session):
        """直接篡改缓存字段后，下一次变更会从明细重算"""
        folio = post_charge("1000.00")
        db_session.execute(
            text("UPDATE folios SET total_charges = 1, balance = 1, version = version + 1 WHERE id = :id"),
            {"id": folio.id}
        )
        db_session.commit()
        db_session.expire_all()

        folio = post_charge("500.00")
        assert folio.total_charges == Decimal("1500.00")
        assert folio.balance == Decimal("1500.00")

    def test_settled_folio_rejects_charges(self, service, post_charge, pay, sample_hotel, sample_booking):
        post_charge("100.00")
        pay("100.00")
        service.settle(sample_hotel.id, sample_booking.id)

        with pytest.raises(InvalidStatusTransitionError):
            post_charge("10.00")


class TestPayments:

    def test_successful_payment_reduces_balance(self, post_charge, pay, recorder):
        post_charge("2000.00")
        folio, payment = pay("1500.00")

        assert folio.total_payments == Decimal("1500.00")
        assert folio.balance == Decimal("500.00")
        assert recorder.of_type("folio.payment_recorded")[0].data["status"] == "SUCCESS"

    def test_pending_payment_does_not_count(self, post_charge, pay):
        post_charge("2000.00")
        folio, payment = pay("2000.00", status=FolioPaymentStatus.PENDING)

        assert payment.status == FolioPaymentStatus.PENDING
        assert folio.total_payments == Decimal("0.00")
        assert folio.balance == Decimal("2000.00")

    def test_capture(self, service, post_charge, pay, sample_hotel, sample_booking):
        post_charge("2000.00")
        _, payment = pay("2000.00", status=FolioPaymentStatus.PENDING)

        folio = service.capture_payment(sample_hotel.id, sample_booking.id, payment.id,
                                        transaction_id="txn_123")

        assert folio.payments[0].status == FolioPaymentStatus.SUCCESS
        assert folio.payments[0].transaction_id == "txn_123"
        assert folio.balance == Decimal("0.00")

    def test_capture_requires_pending(self, service, pay, sample_hotel, sample_booking):
        _, payment = pay("100.00")
        with pytest.raises(InvalidStatusTransitionError):
            service.capture_payment(sample_hotel.id, sample_booking.id, payment.id)

    def test_fail(self, service, post_charge, pay, sample_hotel, sample_booking):
        post_charge("100.00")
        _, payment = pay("100.00", status=FolioPaymentStatus.PENDING)

        folio = service.fail_payment(sample_hotel.id, sample_booking.id, payment.id)
        assert folio.payments[0].status == FolioPaymentStatus.FAILED
        assert folio.balance == Decimal("100.00")

        with pytest.raises(InvalidStatusTransitionError):
            service.capture_payment(sample_hotel.id, sample_booking.id, payment.id)

    def test_unknown_payment(self, service, sample_hotel, sample_booking):
        with pytest.raises(NotFoundError, match="Payment 77 not found"):
            service.capture_payment(sample_hotel.id, sample_booking.id, 77)


class TestRefunds:

    def test_full_refund(self, service, post_charge, pay, sample_hotel, sample_booking):
        post_charge("1000.00")
        _, payment = pay("1000.00")

        folio = service.refund_payment(sample_hotel.id, sample_booking.id, payment.id)

        refunded = folio.payments[0]
        assert refunded.status == FolioPaymentStatus.REFUNDED
        assert refunded.refunded_amount == Decimal("1000.00")
        assert refunded.refunded_at is not None
        assert len(folio.payments) == 1
        assert folio.balance == Decimal("1000.00")

    def test_partial_refund_keeps_retained_amount(self, service, post_charge, pay,
                                                  sample_hotel, sample_booking):
        post_charge("1000.00")
        _, payment = pay("1000.00")

        folio = service.refund_payment(sample_hotel.id, sample_booking.id, payment.id,
                                       amount=Decimal("300.00"))

        assert [p.status for p in folio.payments] == [
            FolioPaymentStatus.REFUNDED, FolioPaymentStatus.SUCCESS
        ]
        assert folio.payments[1].amount == Decimal("700.00")
        assert folio.total_payments == Decimal("700.00")
        assert folio.balance == Decimal("300.00")

    @pytest.mark.parametrize("amount", ["0", "1000.01"])
    def test_refund_amount_bounds(self, service, pay, sample_hotel, sample_booking, amount):
        _, payment = pay("1000.00")
        with pytest.raises(ValidationError):
            service.refund_payment(sample_hotel.id, sample_booking.id, payment.id,
                                   amount=Decimal(amount))

    def test_pending_payment_cannot_be_refunded(self, service, pay, sample_hotel, sample_booking):
        _, payment = pay("100.00", status=FolioPaymentStatus.PENDING)
        with pytest.raises(InvalidStatusTransitionError):
            service.refund_payment(sample_hotel.id, sample_booking.id, payment.id)

    def test_refund_reopens_settled_folio(self, service, post_charge, pay, sample_hotel, sample_booking):
        post_charge("500.00")
        _, payment = pay("500.00")
        service.settle(sample_hotel.id, sample_booking.id)

        folio = service.refund_payment(sample_hotel.id, sample_booking.id, payment.id,
                                       amount=Decimal("200.00"))

        assert folio.status == FolioStatus.OPEN
        assert folio.settled_at is None
        assert folio.balance == Decimal("200.00")


class TestSettle:

    def test_settle_zero_balance(self, service, post_charge, pay, sample_hotel, sample_booking, recorder):
        post_charge("800.00")
        pay("800.00")

        folio = service.settle(sample_hotel.id, sample_booking.id)

        assert folio.status == FolioStatus.SETTLED
        assert folio.settled_at is not None
        assert recorder.types()[-1] == "folio.settled"

    def test_settle_with_credit_balance(self, service, post_charge, pay, sample_hotel, sample_booking):
        post_charge("800.00")
        pay("900.00")
        assert service.settle(sample_hotel.id, sample_booking.id).status == FolioStatus.SETTLED

    def test_outstanding_balance_blocks(self, service, db_session, post_charge, pay,
                                        sample_hotel, sample_booking, recorder):
        post_charge("800.00")
        pay("500.00")

        with pytest.raises(OutstandingBalanceError) as exc_info:
            service.settle(sample_hotel.id, sample_booking.id)

        assert exc_info.value.balance == Decimal("300.00")
        assert exc_info.value.to_dict()["balance"] == "300.00"
        db_session.expire_all()
        assert service.get_folio(sample_hotel.id, sample_booking.id).status == FolioStatus.OPEN
        assert "folio.settled" not in recorder.types()

    def test_settle_twice(self, service, sample_hotel, sample_booking):
        service.settle(sample_hotel.id, sample_booking.id)
        with pytest.raises(InvalidStatusTransitionError):
            service.settle(sample_hotel.id, sample_booking.id)


class TestConcurrency:

    def test_stale_folio_version(self, service, db_session, post_charge, sample_hotel, sample_booking):
        folio = post_charge("100.00")
        assert folio.version >= 1
        db_session.execute(
            text("UPDATE folios SET version = version + 1 WHERE id = :id"), {"id": folio.id}
        )

        with pytest.raises(ConcurrentModificationError):
            post_charge("50.00")

        db_session.expire_all()
        folio = service.get_folio(sample_hotel.id, sample_booking.id)
        assert folio.total_charges == Decimal("100.00")
        assert len(folio.charges) == 1
