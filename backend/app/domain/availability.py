"""
可用性规则
预订占用半开区间 [check_in, check_out)，同一天退房与入住不冲突
"""
from datetime import datetime, date, timezone
from typing import Iterable, List, Optional, Tuple, Union

from sqlalchemy import and_

from app.models.ontology import Booking, BookingStatus
from app.services.exceptions import ValidationError

# 占用房间的预订状态
BLOCKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """两个半开区间是否重叠"""
    return a_start < b_end and a_end > b_start


def is_blocking(status) -> bool:
    return status in BLOCKING_STATUSES


def find_conflicts(bookings: Iterable, start: datetime, end: datetime,
                   exclude_booking_id: Optional[int] = None) -> List:
    """在内存中筛选与 [start, end) 冲突的预订"""
    return [
        b for b in bookings
        if b.id != exclude_booking_id
        and is_blocking(b.status)
        and overlaps(b.check_in_date, b.check_out_date, start, end)
    ]


def overlap_filter(start: datetime, end: datetime):
    """与 find_conflicts 等价的 SQL 条件"""
    return and_(
        Booking.status.in_(BLOCKING_STATUSES),
        Booking.check_in_date < end,
        Booking.check_out_date > start,
    )


def _coerce(value: Union[str, date, datetime, None], field: str) -> datetime:
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value))
        except ValueError:
            raise ValidationError(f"{field} is not a valid date: {value}", field=field)
    # 统一为不带时区的 UTC 时间
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def validate_stay_window(check_in, check_out) -> Tuple[datetime, datetime]:
    """
    校验并解析入住/退房时间

    Returns:
        (check_in, check_out) datetime 元组

    Raises:
        ValidationError: 缺失、格式错误或 check_out <= check_in
    """
    start = _coerce(check_in, "check_in_date")
    end = _coerce(check_out, "check_out_date")
    if end <= start:
        raise ValidationError("check_out_date must be after check_in_date", field="check_out_date")
    return start, end
