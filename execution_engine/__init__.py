"""
Execution Engine Module.

Executor interface and the paper executor.
"""

from .executor import PaperTradeExecutor, TradeExecutor
from .types import ExecutionResult, ExecutionResultCode


__all__ = [
    "PaperTradeExecutor",
    "TradeExecutor",
    "ExecutionResult",
    "ExecutionResultCode",
]
