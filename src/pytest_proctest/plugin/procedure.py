"""Pytest item running one procedure variant.

The item delegates to the shared orchestrator, then maps the result onto
the pytest outcome: a skipped variant is skipped with its unmet
prerequisites as the reason, and a failed variant raises
`ProcedureFailure`, rendered with the failing position and suggestions
instead of a Python traceback.
"""

from typing import TYPE_CHECKING

import pytest

from pytest_proctest.reporters import format_error

if TYPE_CHECKING:
    from typing import Any

if TYPE_CHECKING:
    from _pytest._code.code import ExceptionInfo, TerminalRepr

    from pytest_proctest.runtime import Orchestrator
    from pytest_proctest.schema import ProcedureResult, ProcedureVariant


class ProcedureFailure(Exception):  # noqa: N818
    """Raised by an item whose procedure variant failed."""

    def __init__(self, result: 'ProcedureResult') -> None:
        """Initialize the failure.

        Args:
            result: Result of the failed variant.
        """
        self.result = result

        super().__init__(f'{result.name} failed')

    def __str__(self) -> str:
        """Failure position, message and steps of the variant."""
        lines = []
        if self.result.error is not None:
            lines.append(format_error(self.result.error))
        else:
            lines.append(f'{self.result.name} failed')

        for step in self.result.steps:
            status = 'passed' if step.success else 'FAILED'
            lines.append(f'{status}: step {step.number} {step.headline or ""}'.rstrip())

        return '\n'.join(lines)


class ProcedureItem(pytest.Item):
    """Pytest item running a single procedure variant."""

    __test__ = False

    def __init__(self, *,
                 variant: 'ProcedureVariant',
                 orchestrator: 'Orchestrator',
                 **kwargs: 'Any') -> None:
        """Initialize a pytest item backed by a procedure variant.

        Args:
            variant: Linearized procedure to run.
            orchestrator: Orchestrator running the variant.
            **kwargs: Keyword pytest.Item arguments.
        """
        super().__init__(**kwargs)

        self.variant = variant
        self.orchestrator = orchestrator
        self.result: ProcedureResult | None = None

    def runtest(self) -> None:
        """Run the procedure variant."""
        self.result = self.orchestrator.run_variant(self.variant, filename=str(self.path))

        if self.result.skipped:
            pytest.skip('; '.join(self.result.skip_reasons) or 'unmet prerequisites')

        if not self.result.success:
            raise ProcedureFailure(self.result)

    def repr_failure(self, excinfo: 'ExceptionInfo[BaseException]',
                     style: 'Any' = None) -> 'str | TerminalRepr':
        """Render procedure failures without a Python traceback."""
        if isinstance(excinfo.value, ProcedureFailure):
            return str(excinfo.value)

        return super().repr_failure(excinfo, style=style)

    def reportinfo(self) -> tuple['Any', int | None, str]:
        """Location of the procedure in its documentation file."""
        return self.path, self.variant.location.line - 1, self.name
