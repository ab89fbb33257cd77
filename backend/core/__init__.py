"""
core - 通用框架层

独立于具体领域的基础组件：
- engine: 状态机引擎

使用方式:
    >>> from core.engine import StateMachine
"""
