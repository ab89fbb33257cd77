"""
发票计算规则
"""
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from app.domain.folio import to_money


def count_nights(check_in: datetime, check_out: datetime) -> int:
    """间夜数 = 日历天数差，至少为 1"""
    return max(1, (check_out.date() - check_in.date()).days)


def room_charge(nights: int, base_price) -> Decimal:
    return to_money(Decimal(nights) * to_money(base_price))


def room_line_description(room_type_name: str, nights: int) -> str:
    unit = "night" if nights == 1 else "nights"
    return f"Room charge - {room_type_name} ({nights} {unit})"


def invoice_total(items: Iterable) -> Decimal:
    return to_money(sum((to_money(i.amount) for i in items), Decimal("0")))
