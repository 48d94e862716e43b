"""Pytest plugin collecting documentation procedures as test items.

This module integrates `pytest-proctest` with pytest by:
- registering custom command-line and ini options;
- adding the per-variant lifecycle hooks of `plugin.hooks`;
- configuring a shared `Orchestrator` instance;
- collecting documentation files as procedure collections.

Collection is opt-in: files matching the `proctest_files` patterns are
collected only when pytest runs with `--proctest`.
"""

from fnmatch import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING

from .document import ProcedureFile

if TYPE_CHECKING:
    from _pytest.config import Config, PytestPluginManager
    from _pytest.config.argparsing import Parser
    from _pytest.nodes import Node

#: Default patterns of collected documentation files.
DEFAULT_FILES = ('*.rst', '*.txt')


def pytest_addoption(parser: 'Parser') -> None:
    """Register pytest options for pytest-proctest.

    Args:
        parser: Pytest argument parser.
    """
    parser.addoption(
        '--proctest',
        action='store_true',
        dest='proctest',
        default=False,
        help=(
            'Collect procedures from documentation files and run them. '
            'Procedures run commands on this machine; enable it only '
            'for trusted documentation.'
        ),
    )
    parser.addoption(
        '--proctest-config',
        action='store',
        dest='proctest_config',
        default=None,
        metavar='FILE',
        help='Configuration file, the closest .proctest.yaml by default.',
    )
    parser.addini(
        'proctest_files',
        type='linelist',
        default=list(DEFAULT_FILES),
        help='Glob patterns of documentation files holding procedures.',
    )


def pytest_addhooks(pluginmanager: 'PytestPluginManager') -> None:
    """Register the lifecycle hooks of pytest-proctest.

    Args:
        pluginmanager: Pytest plugin manager.
    """
    from . import hooks  # noqa: PLC0415

    pluginmanager.add_hookspecs(hooks)


def pytest_configure(config: 'Config') -> None:
    """Configure pytest-proctest integration.

    When collection is enabled, this hook loads settings, the
    environment snapshot and project constants, and attaches a shared
    `Orchestrator` to the pytest configuration object as
    `config.proctest_orchestrator`. The orchestrator relays variant
    events to the `pytest_proctest_*` hooks.

    Args:
        config: Pytest configuration object.
    """
    if not config.getoption('proctest', default=False):
        return

    from pytest_proctest.config import (  # noqa: PLC0415
        find_config,
        load_constants,
        load_environment,
        load_settings,
    )
    from pytest_proctest.runtime import Orchestrator  # noqa: PLC0415

    from .hooks import PytestHooks  # noqa: PLC0415

    root = Path(config.rootpath)
    path = config.getoption('proctest_config', default=None) or find_config(root)
    settings = load_settings(path)

    config.proctest_orchestrator = Orchestrator(  # type: ignore[attr-defined]
        settings,
        environment=load_environment(settings, root),
        constants=load_constants(settings, root),
        hooks=(PytestHooks(config.hook),),
    )


def pytest_collect_file(parent: 'Node', file_path: 'Path') -> ProcedureFile | None:
    """Collect documentation files.

    Args:
        parent: Parent pytest collection node.
        file_path: Path to the file being considered.

    Returns:
        A `ProcedureFile` collector if collection is enabled and the file
        matches a `proctest_files` pattern, otherwise ``None``.
    """
    if not hasattr(parent.config, 'proctest_orchestrator'):
        return None

    if any(fnmatch(file_path.name, pattern) for pattern in parent.config.getini('proctest_files')):
        return ProcedureFile.from_parent(
            parent,
            path=file_path,
        )

    return None
