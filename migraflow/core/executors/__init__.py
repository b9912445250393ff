"""
Node executors, one per executor category.
"""

from .action import ActionExecutor, apply_transform
from .approval import ApprovalExecutor
from .base import NodeExecutionResult, NodeExecutor, Suspend, ValidationResult
from .condition import ConditionExecutor
from .delay import DelayExecutor
from .notification import NotificationExecutor
from .registry import ExecutorRegistry, build_default_registry

__all__ = [
    "ActionExecutor",
    "ApprovalExecutor",
    "ConditionExecutor",
    "DelayExecutor",
    "NotificationExecutor",
    "NodeExecutor",
    "NodeExecutionResult",
    "Suspend",
    "ValidationResult",
    "ExecutorRegistry",
    "build_default_registry",
    "apply_transform",
]
