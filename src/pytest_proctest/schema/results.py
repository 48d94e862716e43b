"""Result trees produced by executing procedure variants.

Results mirror the shape of the document tree: a procedure result holds
step results, which hold action and sub-step results. Each level carries
a success flag, its duration in seconds and, on failure, a structured
error with the full hierarchical context so a reporter can pinpoint the
failure without re-deriving it.
"""

from typing import TYPE_CHECKING, Literal

from pydantic import Field

from pytest_proctest.models import SchemaModel

from .actions import TestableAction  # noqa: TC001
from .prerequisites import Requirement  # noqa: TC001

if TYPE_CHECKING:
    from typing import Self

if TYPE_CHECKING:
    from pytest_proctest.errors import ProcTestError

type Status = Literal['passed', 'failed', 'skipped']


class ErrorDetails(SchemaModel):
    """Structured error attached to the smallest enclosing result."""

    kind: str = Field(
        default='error',
        title='Error category',
        examples=['parse', 'placeholder', 'prerequisite', 'execution'],
    )
    message: str

    filename: str | None = None
    line: int | None = None

    procedure: str | None = None
    variant: str | None = None
    step_number: int | None = None
    step_headline: str | None = None
    substep: str | None = None
    action_type: str | None = None

    suggestions: tuple[str, ...] = ()

    @classmethod
    def from_error(cls, error: 'ProcTestError') -> 'Self':
        """Build error details from a library exception.

        Args:
            error: Exception with its error context.

        Returns:
            Error details carrying the message and context.
        """
        context = error.context

        return cls(
            kind=error.kind,
            message=error.message,
            filename=context.get('filename'),
            line=context.get('line_num'),
            procedure=context.get('procedure'),
            variant=context.get('variant'),
            step_number=context.get('step_num'),
            step_headline=context.get('step_headline'),
            substep=context.get('substep'),
            action_type=context.get('action_type'),
            suggestions=tuple(context.get('suggestions') or ()),
        )


class ExecutionResult(SchemaModel):
    """Outcome reported by an executor for one action."""

    success: bool
    stdout: str = ''
    stderr: str = ''
    exit_code: int | None = None
    duration: float = Field(default=0.0, ge=0, title='Duration in seconds')
    timed_out: bool = False


class ValidationResult(SchemaModel):
    """Outcome of an executor self-check."""

    executor: str
    valid: bool
    message: str | None = None


class ActionResult(SchemaModel):
    """Outcome of one testable action."""

    action: TestableAction
    status: Status
    execution: ExecutionResult | None = None
    error: ErrorDetails | None = None
    message: str | None = None
    warnings: tuple[str, ...] = ()
    duration: float = Field(default=0.0, ge=0)

    @property
    def success(self) -> bool:
        """Skipped actions do not fail their step."""
        return self.status != 'failed'


class SubStepResult(SchemaModel):
    """Outcome of one sub-step."""

    number: int
    label: str
    success: bool
    duration: float = Field(default=0.0, ge=0)
    actions: tuple[ActionResult, ...] = ()
    error: ErrorDetails | None = None


class StepResult(SchemaModel):
    """Outcome of one step."""

    number: int
    headline: str | None = None
    success: bool
    duration: float = Field(default=0.0, ge=0)
    actions: tuple[ActionResult, ...] = ()
    substeps: tuple[SubStepResult, ...] = ()
    error: ErrorDetails | None = None


class PrerequisiteCheckResult(SchemaModel):
    """Outcome of checking one requirement."""

    requirement: Requirement
    met: bool
    message: str | None = None
    found_version: str | None = None
    suggestions: tuple[str, ...] = ()

    @property
    def blocking(self) -> bool:
        """Whether the result prevents the procedure from running."""
        return not self.met and not self.requirement.optional


class CleanupResult(SchemaModel):
    """Outcome of one cleanup task."""

    task_type: str
    description: str
    success: bool
    skipped: bool = False
    error: str | None = None
    duration: float = Field(default=0.0, ge=0)


class ProcedureResult(SchemaModel):
    """Outcome of one procedure variant."""

    procedure: str
    variant: str | None = None
    label: str | None = None
    filename: str | None = None

    status: Status
    duration: float = Field(default=0.0, ge=0)

    prerequisites: tuple[PrerequisiteCheckResult, ...] = ()
    steps: tuple[StepResult, ...] = ()
    cleanup: tuple[CleanupResult, ...] = ()

    error: ErrorDetails | None = None
    skip_reasons: tuple[str, ...] = ()
    working_directory: str | None = None

    @property
    def success(self) -> bool:
        """Whether the variant passed."""
        return self.status == 'passed'

    @property
    def skipped(self) -> bool:
        """Whether the variant was skipped on unmet prerequisites."""
        return self.status == 'skipped'

    @property
    def name(self) -> str:
        """Procedure title with the variant label."""
        if self.label:
            return f'{self.procedure} [{self.label}]'
        return self.procedure

    @property
    def cleanup_warnings(self) -> tuple[str, ...]:
        """Messages of failed cleanup tasks."""
        return tuple(
            f'{item.description}: {item.error}'
            for item in self.cleanup
            if not item.success and not item.skipped
        )


class RunSummary(SchemaModel):
    """Aggregated outcome of a run."""

    results: tuple[ProcedureResult, ...] = ()
    duration: float = Field(default=0.0, ge=0)

    @property
    def total(self) -> int:
        """Number of executed variants."""
        return len(self.results)

    @property
    def passed(self) -> int:
        """Number of passed variants."""
        return sum(1 for result in self.results if result.status == 'passed')

    @property
    def failed(self) -> int:
        """Number of failed variants."""
        return sum(1 for result in self.results if result.status == 'failed')

    @property
    def skipped(self) -> int:
        """Number of skipped variants."""
        return sum(1 for result in self.results if result.status == 'skipped')

    @property
    def success(self) -> bool:
        """Whether no variant failed."""
        return self.failed == 0

    @property
    def warnings(self) -> tuple[str, ...]:
        """Cleanup warnings of all variants."""
        return tuple(
            warning
            for result in self.results
            for warning in result.cleanup_warnings
        )
