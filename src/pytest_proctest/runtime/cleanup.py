"""Cleanup registry.

Resources acquired while a variant runs (its working directory, created
databases, started services) register a teardown task in acquisition
order. Teardown runs in strict reverse order so dependent resources are
removed before the resources they depend on.

Teardown is best-effort: a failing task is recorded with its error and
reported as a warning, and never prevents the remaining tasks from
running.
"""

from collections.abc import Callable
from pathlib import Path
from shutil import rmtree
from time import perf_counter
from warnings import warn

from loguru import logger
from pydantic import Field

from pytest_proctest.errors import CleanupWarning
from pytest_proctest.models import SchemaModel
from pytest_proctest.schema import CleanupResult


class CleanupTask(SchemaModel):
    """A registered teardown operation.

    The teardown callable must be idempotent; the registry runs each task
    at most once.
    """

    task_type: str = Field(
        title='Task type',
        examples=['directory', 'database', 'collection'],
    )
    description: str
    teardown: Callable[[], object]

    keep_on_failure: bool = Field(
        default=False,
        title='Keep the resource when the owning variant failed',
    )


def remove_directory(path: Path) -> Callable[[], None]:
    """Return an idempotent teardown removing a directory tree."""
    def teardown() -> None:
        if path.exists():
            rmtree(path)

    return teardown


class CleanupRegistry:
    """LIFO ledger of teardown tasks owned by one variant."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._tasks: list[CleanupTask] = []

    def __len__(self) -> int:
        """Number of pending tasks."""
        return len(self._tasks)

    @property
    def tasks(self) -> tuple[CleanupTask, ...]:
        """Pending tasks in registration order."""
        return tuple(self._tasks)

    def register(self, task: CleanupTask) -> None:
        """Register a teardown task.

        Args:
            task: Task to run on cleanup.
        """
        logger.debug('Registered {} cleanup: {}', task.task_type, task.description)
        self._tasks.append(task)

    def register_directory(self, path: Path, *, keep_on_failure: bool = False) -> None:
        """Register removal of a directory tree.

        Args:
            path: Directory to remove.
            keep_on_failure: Keep the directory when the variant failed.
        """
        self.register(CleanupTask(
            task_type='directory',
            description=f'remove {path}',
            teardown=remove_directory(path),
            keep_on_failure=keep_on_failure,
        ))

    def execute_all(self, *, failed: bool = False) -> tuple[CleanupResult, ...]:
        """Run and unregister every task in reverse registration order.

        Args:
            failed: Whether the owning variant failed.

        Returns:
            One result per task, in execution order.
        """
        results: list[CleanupResult] = []

        while self._tasks:
            task = self._tasks.pop()

            if failed and task.keep_on_failure:
                logger.info('Keeping resource of failed variant: {}', task.description)
                results.append(CleanupResult(
                    task_type=task.task_type,
                    description=task.description,
                    success=True,
                    skipped=True,
                ))
                continue

            started = perf_counter()
            try:
                task.teardown()

            except Exception as base:  # noqa: BLE001
                message = f'{type(base).__name__}: {base}'
                logger.warning('Cleanup failed: {}: {}', task.description, message)
                warn(
                    f'Cleanup task "{task.description}" failed: {message}',
                    category=CleanupWarning,
                    stacklevel=2,
                )
                results.append(CleanupResult(
                    task_type=task.task_type,
                    description=task.description,
                    success=False,
                    error=message,
                    duration=perf_counter() - started,
                ))

            else:
                results.append(CleanupResult(
                    task_type=task.task_type,
                    description=task.description,
                    success=True,
                    duration=perf_counter() - started,
                ))

        return tuple(results)
