"""
事件处理器
订阅预订/账单/发票事件，写入预订操作记录 (BookingActivity)
"""
import json
from datetime import datetime
from typing import Callable, Dict
import logging

from app.services.event_bus import event_bus, Event
from app.models.events import EventType
from app.database import SessionLocal

logger = logging.getLogger(__name__)

# 事件类型 -> 操作记录动作
ACTIVITY_ACTIONS: Dict[str, str] = {
    EventType.BOOKING_CREATED.value: "CREATED",
    EventType.BOOKING_UPDATED.value: "UPDATED",
    EventType.BOOKING_CANCELLED.value: "CANCELLED",
    EventType.BOOKING_NO_SHOW.value: "NO_SHOW",
    EventType.GUEST_CHECKED_IN.value: "CHECKED_IN",
    EventType.GUEST_CHECKED_OUT.value: "CHECKED_OUT",
    EventType.FOLIO_CHARGE_POSTED.value: "CHARGE_POSTED",
    EventType.FOLIO_PAYMENT_RECORDED.value: "PAYMENT_RECORDED",
    EventType.FOLIO_SETTLED.value: "FOLIO_SETTLED",
    EventType.INVOICE_GENERATED.value: "INVOICE_GENERATED",
    EventType.INVOICE_PAID.value: "PAYMENT_RECEIVED",
}


class EventHandlers:
    """
    事件处理器集合

    db_session_factory 可注入，测试时指向内存数据库
    """

    def __init__(self, db_session_factory: Callable = None):
        self._db_session_factory = db_session_factory or SessionLocal
        self._registered = False

    def set_session_factory(self, db_session_factory: Callable) -> None:
        self._db_session_factory = db_session_factory

    def _get_db(self):
        return self._db_session_factory()

    def handle_booking_activity(self, event: Event) -> None:
        """
        记录预订操作日志

        事件数据需要包含 booking_id 和 hotel_id，缺失时跳过
        """
        from app.models.ontology import BookingActivity

        action = ACTIVITY_ACTIONS.get(event.event_type)
        data = event.data
        booking_id = data.get("booking_id")
        hotel_id = data.get("hotel_id")
        if not action or not booking_id or not hotel_id:
            logger.warning(f"Skipping activity for {event.event_type}: missing booking reference")
            return

        db = self._get_db()
        try:
            activity = BookingActivity(
                booking_id=booking_id,
                hotel_id=hotel_id,
                operator_id=data.get("operator_id"),
                action=action,
                details=json.dumps(data, default=str),
                timestamp=datetime.utcnow(),
            )
            db.add(activity)
            db.commit()
            logger.debug(f"Recorded {action} activity for booking {booking_id}")
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to record booking activity: {e}", exc_info=True)
        finally:
            db.close()

    def register_handlers(self, event_bus_instance=None) -> None:
        """注册所有事件处理器"""
        if self._registered:
            return

        bus = event_bus_instance or event_bus
        for event_type in ACTIVITY_ACTIONS:
            bus.subscribe(event_type, self.handle_booking_activity)

        self._registered = True
        logger.info("Event handlers registered successfully")

    def unregister_handlers(self, event_bus_instance=None) -> None:
        """取消注册所有事件处理器（用于测试）"""
        bus = event_bus_instance or event_bus
        for event_type in ACTIVITY_ACTIONS:
            bus.unsubscribe(event_type, self.handle_booking_activity)

        self._registered = False
        logger.info("Event handlers unregistered")


# 全局事件处理器实例
event_handlers = EventHandlers()


def register_event_handlers():
    """注册所有事件处理器（应用启动时调用）"""
    event_handlers.register_handlers()
