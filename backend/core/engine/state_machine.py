"""
core/engine/state_machine.py

状态机引擎 - 声明式状态转换，供领域生命周期（预订、房间）复用
"""
from typing import Dict, List, Any, Optional, Callable
from dataclasses import dataclass, field
import logging
import time

logger = logging.getLogger(__name__)


@dataclass
class StateTransition:
    """
    状态转换定义

    Attributes:
        from_state: 源状态
        to_state: 目标状态
        trigger: 触发动作
        condition: 可选的转换条件
    """

    from_state: str
    to_state: str
    trigger: str
    condition: Optional[Callable[[Dict[str, Any]], bool]] = None

    def is_allowed(self, context: Dict[str, Any]) -> bool:
        """检查转换是否被允许"""
        if self.condition is None:
            return True
        return bool(self.condition(context))


@dataclass
class StateMachineConfig:
    """
    状态机配置

    Attributes:
        name: 状态机名称
        states: 所有状态的列表
        transitions: 转换列表
        initial_state: 初始状态
    """

    name: str
    states: List[str]
    transitions: List[StateTransition]
    initial_state: str


@dataclass
class StateMachineSnapshot:
    """一次已执行转换的记录"""

    previous_state: str
    current_state: str
    trigger: str
    timestamp: float = field(default_factory=time.time)


class StateMachine:
    """
    状态机

    Example:
        >>> machine = StateMachine(
        ...     config=StateMachineConfig(
        ...         name="Booking",
        ...         states=["CONFIRMED", "CHECKED_IN"],
        ...         transitions=[StateTransition("CONFIRMED", "CHECKED_IN", "check_in")],
        ...         initial_state="CONFIRMED"
        ...     )
        ... )
        >>> machine.fire("check_in")
        'CHECKED_IN'
    """

    def __init__(self, config: StateMachineConfig, current_state: Optional[str] = None):
        self._config = config
        self._current_state = current_state if current_state is not None else config.initial_state
        self._history: List[StateMachineSnapshot] = []
        self._transition_map: Dict[str, Dict[str, StateTransition]] = {}

        # (from_state, trigger) -> transition
        for t in config.transitions:
            self._transition_map.setdefault(t.from_state, {})[t.trigger] = t

    @property
    def current_state(self) -> str:
        """获取当前状态"""
        return self._current_state

    @property
    def config(self) -> StateMachineConfig:
        return self._config

    def available_triggers(self) -> List[str]:
        """当前状态下可用的触发动作"""
        return sorted(self._transition_map.get(self._current_state, {}).keys())

    def target_for(self, trigger: str) -> Optional[str]:
        """触发动作对应的目标状态，不可用时返回 None"""
        transition = self._transition_map.get(self._current_state, {}).get(trigger)
        return transition.to_state if transition else None

    def can_fire(self, trigger: str, context: Optional[Dict[str, Any]] = None) -> bool:
        """检查触发动作在当前状态下是否被允许"""
        transition = self._transition_map.get(self._current_state, {}).get(trigger)
        if transition is None or transition.to_state not in self._config.states:
            return False
        return transition.is_allowed(context or {})

    def fire(self, trigger: str, context: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """
        执行状态转换

        Args:
            trigger: 触发动作
            context: 可选的上下文数据

        Returns:
            新状态；转换不被允许时返回 None
        """
        if not self.can_fire(trigger, context):
            logger.warning(
                f"{self._config.name}: invalid trigger '{trigger}' in state {self._current_state}"
            )
            return None

        previous_state = self._current_state
        self._current_state = self._transition_map[previous_state][trigger].to_state
        self._history.append(StateMachineSnapshot(
            previous_state=previous_state,
            current_state=self._current_state,
            trigger=trigger,
        ))

        logger.info(
            f"{self._config.name}: {previous_state} -> {self._current_state} (trigger: {trigger})"
        )
        return self._current_state

    def get_history(self) -> List[StateMachineSnapshot]:
        """获取转换历史"""
        return list(self._history)
