"""Running procedure variants.

This module defines the back half of the pipeline: resolving
placeholders, checking prerequisites, dispatching actions to executors
within an isolated per-variant context, and tearing down acquired
resources in reverse order.

The primary public entry point is `Orchestrator`, which turns parsed
documents or procedure variants into result trees.
"""

from .cleanup import CleanupRegistry, CleanupTask
from .context import ExecutionContext, ExecutionState
from .executors import CodeExecutor, Executor, ExecutorRegistry, FileExecutor, ShellExecutor
from .hooks import LifecycleHooks
from .orchestrator import Orchestrator
from .prerequisites import PrerequisiteChecker
from .resolver import PlaceholderResolver, ResolutionStrategy

__all__ = (
    'CleanupRegistry',
    'CleanupTask',
    'CodeExecutor',
    'ExecutionContext',
    'ExecutionState',
    'Executor',
    'ExecutorRegistry',
    'FileExecutor',
    'LifecycleHooks',
    'Orchestrator',
    'PlaceholderResolver',
    'PrerequisiteChecker',
    'ResolutionStrategy',
    'ShellExecutor',
)
