"""Tests for the cleanup registry."""

from typing import TYPE_CHECKING

import pytest

from pytest_proctest.errors import CleanupWarning
from pytest_proctest.runtime import CleanupRegistry, CleanupTask

if TYPE_CHECKING:
    from pathlib import Path


def test_reverse_order_best_effort() -> None:
    """Tasks run last-in first-out, and a failing task does not stop the rest."""
    calls: list[str] = []

    def failing() -> None:
        calls.append('B')
        raise RuntimeError('database is locked')

    registry = CleanupRegistry()
    registry.register(CleanupTask(task_type='directory', description='A', teardown=lambda: calls.append('A')))
    registry.register(CleanupTask(task_type='database', description='B', teardown=failing))
    registry.register(CleanupTask(task_type='collection', description='C', teardown=lambda: calls.append('C')))

    with pytest.warns(CleanupWarning, match='database is locked'):
        results = registry.execute_all()

    assert calls == ['C', 'B', 'A']
    assert [result.success for result in results] == [True, False, True]
    assert results[1].error == 'RuntimeError: database is locked'
    assert len(registry) == 0


def test_tasks_run_once() -> None:
    """Executed tasks are unregistered."""
    calls: list[str] = []

    registry = CleanupRegistry()
    registry.register(CleanupTask(task_type='directory', description='A', teardown=lambda: calls.append('A')))

    registry.execute_all()
    assert registry.execute_all() == ()
    assert calls == ['A']


def test_keep_on_failure() -> None:
    """Resources marked to be kept survive a failed variant."""
    calls: list[str] = []

    registry = CleanupRegistry()
    registry.register(CleanupTask(
        task_type='directory',
        description='keep',
        teardown=lambda: calls.append('keep'),
        keep_on_failure=True,
    ))
    registry.register(CleanupTask(task_type='database', description='drop', teardown=lambda: calls.append('drop')))

    results = registry.execute_all(failed=True)

    assert calls == ['drop']
    assert results[1].skipped
    assert results[1].success


def test_register_directory(tmp_path: 'Path') -> None:
    """Registered directories are removed with their content."""
    directory = tmp_path / 'work'
    (directory / 'nested').mkdir(parents=True)
    (directory / 'nested' / 'file.txt').write_text('content')

    registry = CleanupRegistry()
    registry.register_directory(directory)
    registry.register_directory(directory)

    results = registry.execute_all()

    assert not directory.exists()
    assert all(result.success for result in results)
    assert registry.tasks == ()
