"""
账单汇总规则
total_charges / total_payments / balance 只从明细重算，不信任已存储的值
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from app.models.ontology import FolioPaymentStatus

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """转换为保留两位小数的 Decimal"""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FolioTotals:
    total_charges: Decimal
    total_payments: Decimal
    balance: Decimal


def compute_folio_totals(charges: Iterable, payments: Iterable) -> FolioTotals:
    """
    重算账单汇总

    total_charges = Σ(amount × quantity)
    total_payments = Σ(amount)，仅统计 SUCCESS 状态的支付
    balance = total_charges - total_payments
    """
    total_charges = sum(
        (to_money(c.amount) * (c.quantity if c.quantity is not None else 1) for c in charges),
        Decimal("0.00"),
    )
    total_payments = sum(
        (to_money(p.amount) for p in payments if p.status == FolioPaymentStatus.SUCCESS),
        Decimal("0.00"),
    )
    return FolioTotals(
        total_charges=to_money(total_charges),
        total_payments=to_money(total_payments),
        balance=to_money(total_charges - total_payments),
    )


def apply_totals(folio) -> FolioTotals:
    """重算并写回 folio 的缓存字段"""
    totals = compute_folio_totals(folio.charges, folio.payments)
    folio.total_charges = totals.total_charges
    folio.total_payments = totals.total_payments
    folio.balance = totals.balance
    return totals


def can_settle(balance) -> bool:
    return to_money(balance) <= 0
