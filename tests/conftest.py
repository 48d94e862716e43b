"""Tests configurations and fixtures."""

from shutil import which
from typing import TYPE_CHECKING

import pytest

from pytest_proctest.config import Settings
from pytest_proctest.core import DocumentParser
from pytest_proctest.runtime import ExecutionContext, Orchestrator

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path
    from typing import Any

pytest_plugins = ('pytester',)


@pytest.fixture
def parser() -> DocumentParser:
    """Provide a document parser with the default include resolver."""
    return DocumentParser()


@pytest.fixture
def bash() -> str:
    """Provide the path of bash, skipping tests on systems without it."""
    if (path := which('bash')) is None:
        pytest.skip('bash is not available')

    return path


@pytest.fixture
def context(tmp_path: 'Path') -> ExecutionContext:
    """Provide an execution context owning a temporary directory."""
    return ExecutionContext(working_directory=tmp_path, timeout=10.0)


@pytest.fixture
def make_orchestrator(tmp_path: 'Path') -> 'Callable[..., Orchestrator]':
    """Provide a factory of isolated orchestrators.

    Orchestrators built by the factory create working directories below
    a temporary root, and see an empty environment and no constants
    unless given.
    """
    def make(settings: dict[str, 'Any'] | None = None, **kwargs: 'Any') -> Orchestrator:
        """Build an orchestrator.

        Args:
            settings: Settings values over test defaults.
            **kwargs: Orchestrator keyword arguments.

        Returns:
            The orchestrator.
        """
        values = {'working_root': tmp_path / 'work', 'env_files': (), 'constants_file': None}
        values.update(settings or {})

        kwargs.setdefault('environment', {})
        kwargs.setdefault('constants', {})

        return Orchestrator(Settings(**values), **kwargs)

    return make
