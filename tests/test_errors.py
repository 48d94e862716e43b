"""Tests for errors and their formatting."""

import pytest
from pydantic import ValidationError

from pytest_proctest.config import Settings
from pytest_proctest.errors import (
    ConfigError,
    ErrorContext,
    ErrorFormatter,
    ExecutionError,
    ParseError,
    UnresolvedPlaceholderError,
)
from pytest_proctest.schema import ErrorDetails, SourceLocation


@pytest.mark.parametrize('context, expected', (
    pytest.param(None, 'Command failed', id='no-context'),
    pytest.param(
        ErrorContext(filename='install.rst', line_num=12, column_num=4),
        'Command failed\n    in "install.rst", line 12, column 4',
        id='location',
    ),
    pytest.param(
        ErrorContext(line_num=3),
        'Command failed\n    in "<unicode string>", line 3',
        id='unnamed',
    ),
    pytest.param(
        ErrorContext(
            filename='install.rst',
            line_num=12,
            procedure='Install',
            variant='macos',
            step_num=2,
            step_headline='Start the server',
            substep='b',
            action_type='shell',
        ),
        (
            'Command failed\n'
            '    in "install.rst", line 12\n'
            '    in procedure "Install" [macos]\n'
            '    on step 2 (Start the server), sub-step b, shell action'
        ),
        id='position',
    ),
    pytest.param(
        ErrorContext(filename='install.rst', suggestions=['DB_USER', 'USER_NAME']),
        (
            'Command failed\n'
            '    in "install.rst"\n'
            '    did you mean: DB_USER, USER_NAME'
        ),
        id='suggestions',
    ),
    pytest.param(
        ErrorContext(filename='install.rst', element={'command': 'ls'}),
        (
            'Command failed\n'
            '    in "install.rst"\n'
            '         ...\n'
            '        command: ls'
        ),
        id='snippet',
    ),
))
def test_format(context: ErrorContext | None, expected: str) -> None:
    """Messages are followed by the location, the position and suggestions."""
    assert ErrorFormatter.format('Command failed', context).replace('\r\n', '\n') == expected


def test_with_context() -> None:
    """Context added later never overrides the innermost values."""
    error = ExecutionError('boom', context=ErrorContext(step_num=2))

    same = error.with_context(step_num=5, procedure='Install', variant=None)

    assert same is error
    assert error.context == {'step_num': 2, 'procedure': 'Install'}


def test_parse_error_at() -> None:
    """Parse errors carry the location and an optional suggestion."""
    error = ParseError.at(
        'Unknown directive',
        SourceLocation(filename='guide.rst', line=7, column=3),
        suggestion='use .. step::',
    )

    assert error.context['line_num'] == 7
    assert error.suggestions == ['use .. step::']
    assert 'in "guide.rst", line 7, column 3' in str(error)


def test_unresolved_placeholder() -> None:
    """Unresolved placeholders name the token and the candidates."""
    error = UnresolvedPlaceholderError('<username>', suggestions=['DB_USER'])

    assert error.message == 'Unresolved placeholder <username>'
    assert error.token == '<username>'
    assert error.kind == 'placeholder'
    assert error.suggestions == ['DB_USER']


def test_from_pydantic_error() -> None:
    """Validation errors point at the first invalid value."""
    with pytest.raises(ValidationError) as base:
        Settings(timeout=0)

    error = ConfigError.from_pydantic_error(base.value, filename='.proctest.yaml')

    assert error.message.startswith('Invalid configuration: ')
    assert error.message.endswith(' at "timeout"')
    assert error.context == {'filename': '.proctest.yaml', 'element': 0}


def test_error_details() -> None:
    """Structured details keep the whole context of an error."""
    error = UnresolvedPlaceholderError('<password>', context=ErrorContext(
        filename='guide.rst',
        line_num=20,
        procedure='Connect',
        step_num=3,
        substep='1',
        action_type='shell',
    ))

    details = ErrorDetails.from_error(error)

    assert details.kind == 'placeholder'
    assert details.message == 'Unresolved placeholder <password>'
    assert details.line == 20
    assert details.step_number == 3
    assert details.substep == '1'
    assert details.suggestions == ()
