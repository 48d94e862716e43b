"""Reporters rendering run results.

A reporter is notified once per procedure variant and once with the
summary of the whole run. Rendering is entirely the reporter's concern;
the orchestrator only hands over result trees.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from click import echo, secho
from pydantic import TypeAdapter

from pytest_proctest.config import ReporterSettings
from pytest_proctest.errors import ErrorContext, ErrorFormatter
from pytest_proctest.schema import ProcedureResult, RunSummary

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pytest_proctest.schema import ErrorDetails

#: Default output file of the JSON reporter.
JSON_OUTPUT = 'proctest-results.json'

STATUS_COLORS: dict[str, str] = {
    'passed': 'green',
    'failed': 'red',
    'skipped': 'yellow',
}


class Reporter(Protocol):
    """Collaborator consuming result trees."""

    def report_procedure(self, result: ProcedureResult) -> None:
        """Report one procedure variant."""
        ...  # pragma: no cover

    def report_summary(self, summary: RunSummary) -> None:
        """Report the whole run."""
        ...  # pragma: no cover


def error_context(error: 'ErrorDetails') -> ErrorContext:
    """Rebuild an error context from structured error details."""
    return ErrorContext(
        filename=error.filename,
        line_num=error.line,
        procedure=error.procedure,
        variant=error.variant,
        step_num=error.step_number,
        step_headline=error.step_headline,
        substep=error.substep,
        action_type=error.action_type,
        suggestions=list(error.suggestions) or None,
    )


def format_error(error: 'ErrorDetails') -> str:
    """Render structured error details like a raised library error."""
    return ErrorFormatter.format(error.message, error_context(error))


class ConsoleReporter:
    """Human-readable report on standard output."""

    def __init__(self, *, verbose: bool = False) -> None:
        """Initialize the reporter.

        Args:
            verbose: Also list the steps of passed variants.
        """
        self.verbose = verbose

    def report_procedure(self, result: ProcedureResult) -> None:
        """Print the status line of a variant and its failure, if any."""
        secho(f'{result.status.upper():<8}', fg=STATUS_COLORS[result.status], bold=True, nl=False)
        echo(f' {result.name} ({result.duration:.2f}s)')

        if self.verbose or not result.success:
            for step in result.steps:
                mark = '✓' if step.success else '✗'
                secho(f'    {mark} step {step.number}', fg='green' if step.success else 'red', nl=False)
                echo(f' {step.headline or ""}'.rstrip())

        if result.skipped:
            for reason in result.skip_reasons:
                secho(f'    - {reason}', fg='yellow')

        elif result.error is not None:
            secho(format_error(result.error), fg='red')

        for warning in result.cleanup_warnings:
            secho(f'    cleanup: {warning}', fg='yellow')

    def report_summary(self, summary: RunSummary) -> None:
        """Print counts of passed, failed and skipped variants."""
        echo()
        secho(
            f'{summary.passed} passed, {summary.failed} failed, '
            f'{summary.skipped} skipped in {summary.duration:.2f}s',
            fg='green' if summary.success else 'red',
            bold=True,
        )

        if warnings := summary.warnings:
            secho(f'{len(warnings)} cleanup warning(s)', fg='yellow')


class JsonReporter:
    """Report written as a JSON document once the run completes."""

    def __init__(self, output: Path | str = JSON_OUTPUT) -> None:
        """Initialize the reporter.

        Args:
            output: Path of the JSON file.
        """
        self.output = Path(output)

    def report_procedure(self, result: ProcedureResult) -> None:
        """Results are written with the summary."""
        return None

    def report_summary(self, summary: RunSummary) -> None:
        """Write the summary with every result tree."""
        self.output.parent.mkdir(parents=True, exist_ok=True)
        self.output.write_bytes(self.dump(summary))

    @staticmethod
    def dump(summary: RunSummary) -> bytes:
        """Serialize a summary with its counts."""
        document: dict[str, Any] = {
            'total': summary.total,
            'passed': summary.passed,
            'failed': summary.failed,
            'skipped': summary.skipped,
            'success': summary.success,
            'warnings': summary.warnings,
            **summary.model_dump(mode='json'),
        }

        return TypeAdapter(dict[str, Any]).dump_json(document, indent=2)


def build_reporters(settings: 'Iterable[ReporterSettings]', *,
                    verbose: bool = False) -> list[Reporter]:
    """Build reporters from their settings.

    Args:
        settings: Configured reporters.
        verbose: Verbosity of console reporters.

    Returns:
        Reporters in configuration order.
    """
    reporters: list[Reporter] = []
    for item in settings:
        match item.type:
            case 'human':
                reporters.append(ConsoleReporter(verbose=verbose))
            case 'json':
                reporters.append(JsonReporter(item.options.get('outputFile', JSON_OUTPUT)))

    return reporters
