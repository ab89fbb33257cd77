"""
预订生命周期

CONFIRMED --check_in--> CHECKED_IN --check_out--> CHECKED_OUT
CONFIRMED --cancel--> CANCELLED
CONFIRMED --mark_no_show--> NO_SHOW

在住预订不能取消，只能退房
"""
from decimal import Decimal

from core.engine import StateMachine, StateMachineConfig, StateTransition
from app.models.ontology import BookingStatus, PaymentStatus
from app.services.exceptions import InvalidStatusTransitionError

CHECK_IN = "check_in"
CHECK_OUT = "check_out"
CANCEL = "cancel"
MARK_NO_SHOW = "mark_no_show"

BOOKING_LIFECYCLE = StateMachineConfig(
    name="Booking",
    states=[s.value for s in BookingStatus],
    transitions=[
        StateTransition(BookingStatus.CONFIRMED.value, BookingStatus.CHECKED_IN.value, CHECK_IN),
        StateTransition(BookingStatus.CHECKED_IN.value, BookingStatus.CHECKED_OUT.value, CHECK_OUT),
        StateTransition(BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value, CANCEL),
        StateTransition(BookingStatus.CONFIRMED.value, BookingStatus.NO_SHOW.value, MARK_NO_SHOW),
    ],
    initial_state=BookingStatus.CONFIRMED.value,
)

# 可修改预订内容的状态
EDITABLE_STATUSES = (BookingStatus.CONFIRMED,)


def booking_machine(status) -> StateMachine:
    return StateMachine(BOOKING_LIFECYCLE, current_state=BookingStatus(status).value)


def next_status(status, trigger: str) -> BookingStatus:
    """
    计算触发动作后的目标状态

    Raises:
        InvalidStatusTransitionError: 当前状态下不允许该动作
    """
    machine = booking_machine(status)
    new_state = machine.fire(trigger)
    if new_state is None:
        raise InvalidStatusTransitionError("booking", status, trigger.replace("_", " "))
    return BookingStatus(new_state)


def derive_payment_status(total_amount, paid_amount) -> PaymentStatus:
    """未付为 PENDING，付清为 PAID，其余为 PARTIAL"""
    total = Decimal(total_amount or 0)
    paid = Decimal(paid_amount or 0)
    if paid <= 0:
        return PaymentStatus.PENDING
    if paid >= total:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL
