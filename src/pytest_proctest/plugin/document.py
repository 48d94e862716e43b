"""Pytest collector for documentation files.

Each collected file is parsed with the shared orchestrator's parser, and
every procedure is expanded into its variants. Each variant becomes a
separate `ProcedureItem`, so tabs and composable-tutorial selections are
reported as individual tests.

Files without procedures produce no items.
"""

from typing import TYPE_CHECKING

import pytest

from pytest_proctest.core import expand_document
from pytest_proctest.errors import ProcTestError

from .procedure import ProcedureItem

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from _pytest._code.code import ExceptionInfo, TerminalRepr

    from pytest_proctest.runtime import Orchestrator


class ProcedureFile(pytest.File):
    """Pytest file collector for documentation files."""

    __test__ = False

    @property
    def orchestrator(self) -> 'Orchestrator':
        """Shared orchestrator configured by the plugin."""
        return self.config.proctest_orchestrator  # type: ignore[attr-defined]

    def collect(self) -> 'Iterable[ProcedureItem]':
        """Collect one test item per procedure variant.

        Returns:
            Iterable of `ProcedureItem` instances for pytest execution.

        Raises:
            ParseError: If the document is structurally invalid.
        """
        document = self.orchestrator.parser.parse_file(self.path)

        seen: dict[str, int] = {}
        for variant in expand_document(document):
            name = variant.name
            if count := seen.get(name, 0):
                name = f'{name} ({count + 1})'
            seen[variant.name] = count + 1

            yield ProcedureItem.from_parent(
                self,
                name=name,
                variant=variant,
                orchestrator=self.orchestrator,
            )

    def repr_failure(self, excinfo: 'ExceptionInfo[BaseException]') -> 'str | TerminalRepr':
        """Render parse errors without a Python traceback."""
        if isinstance(excinfo.value, ProcTestError):
            return str(excinfo.value)

        return super().repr_failure(excinfo)
