"""
事件总线 - 进程内发布/订阅
预订、账单、发票服务在提交事务后发布事件，活动日志等旁路逻辑通过订阅接入
"""
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import logging
import threading
import uuid

from app.models.events import BaseEventData, EventType

logger = logging.getLogger(__name__)

Handler = Callable[["Event"], None]


def _name(handler) -> str:
    return getattr(handler, "__name__", type(handler).__name__)


@dataclass
class Event:
    """事件"""
    event_type: str
    timestamp: datetime
    data: Dict[str, Any]
    source: str  # 触发来源（服务名）
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def of(cls, event_type: EventType, data: BaseEventData, source: str) -> "Event":
        """由事件数据类构造事件"""
        return cls(
            event_type=event_type.value,
            timestamp=data.timestamp,
            data=data.to_dict(),
            source=source,
        )


class EventBus:
    """
    内存级事件总线（线程安全单例）

    处理器同步执行；单个处理器异常只记录日志，不影响其他处理器和发布方
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._subscribers: Dict[str, List[Handler]] = {}
        self._event_history: deque = deque(maxlen=200)
        self._subscriber_lock = threading.Lock()
        self._initialized = True
        logger.info("EventBus initialized")

    def subscribe(self, event_type: str, handler: Handler) -> None:
        """订阅事件，同一处理器重复订阅只保留一次"""
        with self._subscriber_lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.debug(f"Handler {_name(handler)} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        with self._subscriber_lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                logger.debug(f"Handler {_name(handler)} unsubscribed from {event_type}")

    def publish(self, event: Event) -> int:
        """
        发布事件

        Args:
            event: 要发布的事件

        Returns:
            成功执行的处理器数量
        """
        self._event_history.append(event)

        with self._subscriber_lock:
            handlers = list(self._subscribers.get(event.event_type, []))

        handled = 0
        for handler in handlers:
            try:
                handler(event)
                handled += 1
            except Exception as e:
                logger.error(
                    f"Event handler {_name(handler)} failed for {event.event_type}: {e}",
                    exc_info=True
                )
        return handled

    def get_history(self, event_type: Optional[str] = None, limit: int = 50) -> List[Event]:
        """获取事件历史（最新的在前）"""
        history = list(self._event_history)
        if event_type:
            history = [e for e in history if e.event_type == event_type]
        return list(reversed(history))[:limit]

    def get_subscribers(self, event_type: Optional[str] = None) -> Dict[str, List[str]]:
        with self._subscriber_lock:
            if event_type:
                return {event_type: [_name(h) for h in self._subscribers.get(event_type, [])]}
            return {
                et: [_name(h) for h in handlers]
                for et, handlers in self._subscribers.items()
            }

    def clear_subscribers(self) -> None:
        """清空所有订阅（用于测试）"""
        with self._subscriber_lock:
            self._subscribers.clear()

    def clear_history(self) -> None:
        self._event_history.clear()


# 全局事件总线实例
event_bus = EventBus()
