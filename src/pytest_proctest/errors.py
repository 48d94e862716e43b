"""Core exception hierarchy.

Errors and warnings raised while parsing documents, resolving
placeholders, checking prerequisites, running actions and tearing down
resources. Every error carries an `ErrorContext` telling where in the
document and where in the procedure it happened, and renders it under
its message:

    Unresolved placeholder <username>
        in "install.rst", line 42
        in procedure "Install the driver" [macos]
        on step 3 (Connect), sub-step b, shell action
        did you mean: DB_USERNAME, USER
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from yaml import dump

if TYPE_CHECKING:
    from typing import Self

if TYPE_CHECKING:
    from pydantic import ValidationError

    from pytest_proctest.schema.locations import SourceLocation

#: Filename shown for sources read from a string.
UNNAMED_SOURCE = '<unicode string>'

#: Indentation of context lines under the message.
CONTEXT_INDENT = ' ' * 4
#: Indentation of the YAML snippet of the offending element.
ELEMENT_INDENT = ' ' * 8


class ErrorContext(TypedDict, total=False):
    """Where an error happened.

    Components fill in what they know: the parser the source position,
    the orchestrator the procedure, step and action. Every key is
    optional.
    """

    #: Source file of the offending element.
    filename: str | None

    #: 1-based line in the source file.
    line_num: int | None
    #: 1-based column in the source file.
    column_num: int | None

    #: Title of the running procedure.
    procedure: str | None
    #: Identifier of the running variant.
    variant: str | None
    #: 1-based number of the step.
    step_num: int | None
    #: Headline of the step.
    step_headline: str | None
    #: Label of the sub-step.
    substep: str | None
    #: Type of the running action.
    action_type: str | None

    #: Candidate fixes, best first.
    suggestions: list[str] | None

    #: Offending element, dumped as YAML.
    element: Any


class ErrorFormatter:
    """Renders messages with the lines of their error context."""

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Render a message followed by its context.

        Args:
            message: Error message.
            context: Where the error happened.

        Returns:
            The message alone without a context, otherwise the message
            with indented source, procedure and suggestion lines and the
            offending element.
        """
        if not context:
            return message

        lines = [message]
        lines.extend(f'{CONTEXT_INDENT}{line}' for line in cls.context_lines(context))

        if (element := context.get('element')) is not None:
            lines.append(f'{ELEMENT_INDENT} ...')
            lines.extend(f'{ELEMENT_INDENT}{line}' for line in cls.element_lines(element))

        return linesep.join(lines)

    @staticmethod
    def context_lines(context: ErrorContext) -> list[str]:
        """Describe the source position, the procedure position and suggestions."""
        source = f'in "{context.get('filename') or UNNAMED_SOURCE}"'
        if (line_num := context.get('line_num')) is not None:
            source += f', line {line_num}'
            if (column_num := context.get('column_num')) is not None:
                source += f', column {column_num}'

        lines = [source]

        if procedure := context.get('procedure'):
            variant = context.get('variant')
            lines.append(f'in procedure "{procedure}"' + (f' [{variant}]' if variant else ''))

        if (step_num := context.get('step_num')) is not None:
            position = f'on step {step_num}'
            if headline := context.get('step_headline'):
                position += f' ({headline})'
            if substep := context.get('substep'):
                position += f', sub-step {substep}'
            if action_type := context.get('action_type'):
                position += f', {action_type} action'
            lines.append(position)

        if suggestions := context.get('suggestions'):
            lines.append(f'did you mean: {", ".join(suggestions)}')

        return lines

    @staticmethod
    def element_lines(element: Any) -> list[str]:  # noqa: ANN401
        """Dump an element as non-blank YAML lines."""
        snippet = dump(element, indent=2, sort_keys=False, allow_unicode=True)

        return [line for line in snippet.splitlines() if line.strip()]


class PlaceholderWarning(UserWarning):
    """Warning emitted for a placeholder left unresolved.

    Used when the unresolved-placeholder policy is `warn`: the action
    runs with the literal token in place.
    """


class CleanupWarning(UserWarning):
    """Warning emitted when a cleanup task fails.

    Cleanup is best-effort, so a failing teardown never aborts the run.
    """


class ProcTestError(Exception, ErrorFormatter):
    """Base of every error raised by pytest-proctest.

    Rendered with its context by `str()`; the bare message stays
    available as `message`.
    """

    #: Short machine-readable error category used in results.
    kind: str = 'error'

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Error message.
            context: Where the error happened.
        """
        self.message = message
        self.context = context or ErrorContext()

        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return self.format(self.message, self.context)

    @property
    def suggestions(self) -> list[str]:
        """Return suggestions attached to the error."""
        return list(self.context.get('suggestions') or [])

    def with_context(self, **values: Any) -> 'Self':  # noqa: ANN401
        """Return the same error enriched with more context.

        Values already present in the context are kept, so the innermost
        component that raised the error wins.

        Args:
            **values: Additional `ErrorContext` fields.

        Returns:
            This error instance.
        """
        for key, value in values.items():
            if value is not None and self.context.get(key) is None:
                self.context[key] = value  # type: ignore[literal-required]

        return self


class ConfigError(ProcTestError):
    """Error raised for an invalid configuration file."""

    kind = 'config'

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,
                            filename: str | None = None) -> 'Self':
        """Create a configuration error from a validation error.

        Args:
            error: Validation error raised for the settings.
            filename: Name of the configuration file.

        Returns:
            An initialized ConfigError instance.
        """
        details = error.errors()
        first = details[0] if details else {}
        path = '.'.join(str(item) for item in first.get('loc', ()))

        message = f'Invalid configuration: {first.get("msg", "validation failed")}'
        if path:
            message += f' at "{path}"'

        return cls(message, context=ErrorContext(
            filename=filename,
            element=first.get('input'),
        ))


class ParseError(ProcTestError):
    """Error raised for a structurally invalid document.

    Aborts processing of the offending file only.
    """

    kind = 'parse'

    @classmethod
    def at(cls, message: str, location: 'SourceLocation', *,
           suggestion: str | None = None) -> 'Self':
        """Create a parse error at a source location.

        Args:
            message: Human-readable error message.
            location: Location of the offending line.
            suggestion: Optional hint on how to fix the document.

        Returns:
            An initialized ParseError instance.
        """
        context = ErrorContext(
            filename=location.filename,
            line_num=location.line,
            column_num=location.column,
        )
        if suggestion:
            context['suggestions'] = [suggestion]

        return cls(message, context=context)


class UnresolvedPlaceholderError(ProcTestError):
    """Error raised when a placeholder cannot be resolved.

    Only raised under the `fail` policy; the action is aborted and the
    enclosing step fails.
    """

    kind = 'placeholder'

    def __init__(self, token: str, *,
                 suggestions: list[str] | None = None,
                 context: ErrorContext | None = None) -> None:
        """Initialize an unresolved placeholder error.

        Args:
            token: Placeholder token as written in the document.
            suggestions: Candidate variable names ranked by similarity.
            context: Error context with location and procedure position.
        """
        self.token = token

        context = context or ErrorContext()
        if suggestions:
            context['suggestions'] = suggestions

        super().__init__(f'Unresolved placeholder {token}', context=context)


class PrerequisiteUnmetError(ProcTestError):
    """Signal that required prerequisites are unmet.

    Not a failure: the owning variant is reported as skipped.
    """

    kind = 'prerequisite'


class ExecutionError(ProcTestError):
    """Error raised for an action-level failure.

    Fails the enclosing step and variant but never prevents cleanup.
    """

    kind = 'execution'
