"""Tests for run reporters."""

import json
from typing import TYPE_CHECKING

import pytest

from pytest_proctest.config import ReporterSettings
from pytest_proctest.reporters import ConsoleReporter, JsonReporter, build_reporters, format_error
from pytest_proctest.schema import (
    CleanupResult,
    ErrorDetails,
    ProcedureResult,
    RunSummary,
    StepResult,
)

if TYPE_CHECKING:
    from pathlib import Path

PASSED = ProcedureResult(
    procedure='Install',
    label='macOS',
    status='passed',
    duration=1.25,
    steps=(StepResult(number=1, headline='Download', success=True),),
)

FAILED = ProcedureResult(
    procedure='Connect',
    status='failed',
    duration=0.5,
    steps=(
        StepResult(number=1, headline='Start', success=True),
        StepResult(number=2, headline='Connect', success=False),
    ),
    error=ErrorDetails(
        kind='execution',
        message='$ mongosh exited with status 1',
        filename='connect.rst',
        line=18,
        procedure='Connect',
        step_number=2,
        step_headline='Connect',
        action_type='shell',
    ),
    cleanup=(
        CleanupResult(task_type='directory', description='Remove /tmp/x', success=False, error='busy'),
    ),
)

SKIPPED = ProcedureResult(
    procedure='Deploy',
    status='skipped',
    skip_reasons=('Environment variable API_KEY is not set',),
)

SUMMARY = RunSummary(results=(PASSED, FAILED, SKIPPED), duration=2.0)


def test_format_error() -> None:
    """Error details render like a raised error."""
    lines = format_error(FAILED.error).splitlines()  # type: ignore[arg-type]

    assert lines == [
        '$ mongosh exited with status 1',
        '    in "connect.rst", line 18',
        '    in procedure "Connect"',
        '    on step 2 (Connect), shell action',
    ]


def test_console_reporter(capsys: pytest.CaptureFixture[str]) -> None:
    """Passed variants take one line, failures list steps and the error."""
    reporter = ConsoleReporter()

    for result in SUMMARY.results:
        reporter.report_procedure(result)
    reporter.report_summary(SUMMARY)

    output = capsys.readouterr().out

    assert 'PASSED   Install [macOS] (1.25s)' in output
    assert 'step 1 Download' not in output
    assert 'FAILED   Connect (0.50s)' in output
    assert '✗ step 2 Connect' in output
    assert 'in "connect.rst", line 18' in output
    assert 'cleanup: Remove /tmp/x: busy' in output
    assert 'SKIPPED  Deploy' in output
    assert '- Environment variable API_KEY is not set' in output
    assert '1 passed, 1 failed, 1 skipped in 2.00s' in output
    assert '1 cleanup warning(s)' in output


def test_console_reporter_verbose(capsys: pytest.CaptureFixture[str]) -> None:
    """Verbose reports list the steps of passed variants."""
    ConsoleReporter(verbose=True).report_procedure(PASSED)

    assert '✓ step 1 Download' in capsys.readouterr().out


def test_json_reporter(tmp_path: 'Path') -> None:
    """The JSON report holds counts and every result tree."""
    output = tmp_path / 'reports' / 'results.json'
    reporter = JsonReporter(output)

    reporter.report_procedure(PASSED)
    assert not output.exists()

    reporter.report_summary(SUMMARY)
    document = json.loads(output.read_text())

    assert document['total'] == 3
    assert (document['passed'], document['failed'], document['skipped']) == (1, 1, 1)
    assert not document['success']
    assert document['warnings'] == ['Remove /tmp/x: busy']
    assert [result['procedure'] for result in document['results']] == ['Install', 'Connect', 'Deploy']
    assert document['results'][1]['error']['line'] == 18


def test_build_reporters() -> None:
    """Reporters are built in configuration order."""
    human, report = build_reporters(
        (ReporterSettings(), ReporterSettings(type='json', options={'outputFile': 'out.json'})),
        verbose=True,
    )

    assert isinstance(human, ConsoleReporter)
    assert human.verbose
    assert isinstance(report, JsonReporter)
    assert report.output.name == 'out.json'
