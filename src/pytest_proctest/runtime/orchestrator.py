"""Execution orchestrator.

Runs procedure variants one at a time. For each variant:

1. prerequisites are checked; an unmet required requirement skips the
   variant before anything is created;
2. a working directory is created and registered as the first cleanup
   task;
3. steps run in order. Within a step, placeholders are resolved, file
   actions run before every other action, the remaining actions run in
   document order and sub-steps run last, stopping at the first failing
   one;
4. the first failing step fails the variant and no further step runs;
5. cleanup runs whatever the outcome.

Lifecycle hooks are notified before the first file and after the
summary of a run, and around every variant.

Errors are attached to the smallest enclosing result with the full
position of the failing action, so reporters never have to re-derive it.
"""

from fnmatch import fnmatch
from pathlib import Path
from tempfile import mkdtemp
from time import perf_counter
from typing import TYPE_CHECKING
from warnings import warn

from loguru import logger

from pytest_proctest.config import Settings, load_constants, load_environment
from pytest_proctest.core import DocumentParser, expand_document
from pytest_proctest.errors import (
    ErrorContext,
    ExecutionError,
    ParseError,
    PlaceholderWarning,
    PrerequisiteUnmetError,
    UnresolvedPlaceholderError,
)
from pytest_proctest.schema import (
    ActionResult,
    ErrorDetails,
    ProcedureResult,
    RunSummary,
    StepResult,
    SubStepResult,
)

from .context import ExecutionContext
from .executors import ExecutorRegistry
from .prerequisites import PrerequisiteChecker
from .resolver import PlaceholderResolver

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from pytest_proctest.reporters import Reporter
    from pytest_proctest.schema import (
        DocumentAST,
        ExecutionResult,
        PrerequisiteCheckResult,
        ProcedureVariant,
        StepNode,
        SubStepNode,
        TestableAction,
    )

    from .hooks import LifecycleHooks

#: Prefix of per-variant working directories.
WORKING_DIRECTORY_PREFIX = 'proctest-'

#: Number of output lines quoted in execution errors.
OUTPUT_TAIL = 5


def order_actions(actions: 'Sequence[TestableAction]') -> list['TestableAction']:
    """Put file actions first, keeping document order otherwise."""
    return [
        *(action for action in actions if action.action_type == 'file'),
        *(action for action in actions if action.action_type != 'file'),
    ]


def collect_files(paths: 'Iterable[Path | str]', settings: Settings) -> list[Path]:
    """Expand files and directories into documentation files.

    Directories are searched with the `test_files` patterns; matches of
    the `exclude` patterns are dropped. Files given explicitly are kept.

    Returns:
        Unique files, sorted within each directory.
    """
    found: dict[Path, None] = {}

    for path in map(Path, paths):
        if not path.is_dir():
            found.setdefault(path)
            continue

        matches = {
            match
            for pattern in settings.test_files
            for match in path.glob(pattern)
            if match.is_file()
        }
        for match in sorted(matches):
            relative = match.relative_to(path).as_posix()
            if not any(
                fnmatch(relative, pattern) or fnmatch(relative, pattern.removeprefix('**/'))
                for pattern in settings.exclude
            ):
                found.setdefault(match)

    return list(found)


def failure_message(action: 'TestableAction', execution: 'ExecutionResult') -> str:
    """Describe a failed execution."""
    if execution.timed_out:
        message = f'{action.summary} timed out'
    elif execution.exit_code is not None:
        message = f'{action.summary} exited with status {execution.exit_code}'
    else:
        message = f'{action.summary} failed'

    if output := (execution.stderr or execution.stdout).strip():
        message += ': ' + ' / '.join(output.splitlines()[-OUTPUT_TAIL:])

    return message


class Orchestrator:
    """Runs procedure variants with injected collaborators.

    Attributes:
        settings: Run settings.
        parser: Document parser.
        resolver: Placeholder resolver.
        checker: Prerequisite checker.
        executors: Executors actions are dispatched to.
        reporters: Reporters notified of results.
        hooks: Lifecycle hooks notified around the run and each variant.
        environment: Immutable environment snapshot of the run.
        constants: Immutable project constants of the run.
    """

    def __init__(self, settings: Settings | None = None, *,
                 parser: DocumentParser | None = None,
                 resolver: PlaceholderResolver | None = None,
                 checker: PrerequisiteChecker | None = None,
                 executors: ExecutorRegistry | None = None,
                 reporters: 'Iterable[Reporter]' = (),
                 hooks: 'Iterable[LifecycleHooks]' = (),
                 environment: 'Mapping[str, str] | None' = None,
                 constants: 'Mapping[str, str] | None' = None) -> None:
        """Initialize the orchestrator.

        Environment and constants are loaded as configured when omitted.
        """
        self.settings = settings or Settings()

        self.parser = parser or DocumentParser()
        self.resolver = resolver or PlaceholderResolver()
        self.checker = checker or PrerequisiteChecker()
        self.executors = executors or ExecutorRegistry.default(self.settings)
        self.reporters = list(reporters)
        self.hooks = list(hooks)

        if environment is None:
            environment = load_environment(self.settings)
        if constants is None:
            constants = load_constants(self.settings)

        self.environment = environment
        self.constants = constants

    def run_paths(self, paths: 'Iterable[Path | str]') -> RunSummary:
        """Run every procedure variant of documentation files.

        Args:
            paths: Files and directories to run.

        Returns:
            Summary of the run, also passed to the reporters.
        """
        started = perf_counter()
        results: list[ProcedureResult] = []

        files = collect_files(paths, self.settings)
        for hook in self.hooks:
            hook.before_all(files)

        for path in files:
            results.extend(self.run_file(path))

        summary = RunSummary(results=tuple(results), duration=perf_counter() - started)
        for reporter in self.reporters:
            reporter.report_summary(summary)
        for hook in self.hooks:
            hook.after_all(summary)

        return summary

    def run_file(self, path: Path | str) -> list[ProcedureResult]:
        """Parse a file and run its procedure variants.

        A parse error aborts the file only and is reported as a failed
        result named after it.
        """
        try:
            document = self.parser.parse_file(path)

        except ParseError as error:
            logger.error('Can not parse {}: {}', path, error.message)
            result = ProcedureResult(
                procedure=str(path),
                filename=str(path),
                status='failed',
                error=ErrorDetails.from_error(error.with_context(filename=str(path))),
            )
            self._report(result)
            return [result]

        return self.run_document(document)

    def run_document(self, document: 'DocumentAST') -> list[ProcedureResult]:
        """Run every procedure variant of a parsed document."""
        return [
            self.run_variant(variant, filename=document.filename)
            for variant in expand_document(document)
        ]

    def run_variant(self, variant: 'ProcedureVariant', *,
                    filename: str | None = None) -> ProcedureResult:
        """Run one procedure variant.

        Args:
            variant: Linearized procedure to run.
            filename: Source file of the procedure.

        Returns:
            The procedure result, also passed to the hooks and the
            reporters.
        """
        for hook in self.hooks:
            hook.before_each(variant)

        result = self._run_variant(variant, filename or variant.location.filename)

        for hook in self.hooks:
            hook.after_each(variant, result)
        self._report(result)

        return result

    def _run_variant(self, variant: 'ProcedureVariant', filename: str) -> ProcedureResult:
        """Check prerequisites, then run the steps and the cleanup of a variant."""
        started = perf_counter()
        logger.info('Running {}', variant.name)

        scope = ErrorContext(
            filename=filename,
            procedure=variant.title,
            variant=variant.label or variant.identifier,
        )

        base_dir = Path(filename).parent if Path(filename).is_file() else None
        prerequisites = self.checker.check_all(variant.prerequisites, self.environment, base_dir=base_dir)

        if blocking := [result for result in prerequisites if result.blocking]:
            return self._skip(variant, filename, prerequisites, blocking, scope, started)

        context = self.create_context()
        steps: list[StepResult] = []
        failed = False

        try:
            for step in variant.steps:
                if not self.settings.state_management.persist_across_steps:
                    context.state.reset()

                step_result = self.run_step(step, context, scope)
                steps.append(step_result)

                if not step_result.success:
                    failed = True
                    break

        finally:
            cleanup = context.cleanup.execute_all(failed=failed)

        result = ProcedureResult(
            procedure=variant.title,
            variant=variant.identifier,
            label=variant.label,
            filename=filename,
            status='failed' if failed else 'passed',
            duration=perf_counter() - started,
            prerequisites=prerequisites,
            steps=tuple(steps),
            cleanup=cleanup,
            error=steps[-1].error if failed else None,
            working_directory=str(context.working_directory),
        )

        logger.info('{} {} in {:.2f}s', variant.name, result.status, result.duration)

        return result

    def create_context(self) -> ExecutionContext:
        """Create the working directory and context of a variant."""
        root = self.settings.working_root
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)

        working_directory = Path(mkdtemp(prefix=WORKING_DIRECTORY_PREFIX, dir=root))
        logger.debug('Working directory {}', working_directory)

        context = ExecutionContext(
            working_directory=working_directory,
            environment=self.environment,
            constants=self.constants,
            placeholders=self.settings.placeholders.mapping,
            timeout=self.settings.timeout_for(),
        )

        directories = self.settings.cleanup.working_directories
        if directories.enabled:
            context.cleanup.register_directory(
                working_directory,
                keep_on_failure=directories.keep_on_failure,
            )

        return context

    def run_step(self, step: 'StepNode', context: ExecutionContext,
                 scope: ErrorContext) -> StepResult:
        """Run the actions and sub-steps of a step."""
        started = perf_counter()
        logger.debug('Step {}', step.title)

        scope = ErrorContext(**scope, step_num=step.number, step_headline=step.headline)
        actions, error = self._run_actions(step.actions, context, scope)

        substeps: list[SubStepResult] = []
        if error is None:
            for substep in step.substeps:
                substep_result = self.run_substep(substep, context, scope)
                substeps.append(substep_result)

                if not substep_result.success:
                    error = substep_result.error
                    break

        return StepResult(
            number=step.number,
            headline=step.headline,
            success=error is None,
            duration=perf_counter() - started,
            actions=tuple(actions),
            substeps=tuple(substeps),
            error=error,
        )

    def run_substep(self, substep: 'SubStepNode', context: ExecutionContext,
                    scope: ErrorContext) -> SubStepResult:
        """Run the actions of a sub-step."""
        started = perf_counter()

        scope = ErrorContext(**scope, substep=substep.label)
        actions, error = self._run_actions(substep.actions, context, scope)

        return SubStepResult(
            number=substep.number,
            label=substep.label,
            success=error is None,
            duration=perf_counter() - started,
            actions=tuple(actions),
            error=error,
        )

    def run_action(self, action: 'TestableAction', context: ExecutionContext,
                   scope: ErrorContext) -> ActionResult:
        """Resolve placeholders of an action and run it.

        Actions no executor accepts are skipped for manual verification.
        """
        started = perf_counter()
        scope = ErrorContext(
            **scope,
            line_num=action.location.line,
            action_type=action.action_type,
        )
        logger.debug('{} at {}', action.summary, action.location)

        try:
            resolved, warnings = self.resolve_placeholders(action, context, scope)

        except UnresolvedPlaceholderError as error:
            logger.warning('{} at {}', error.message, action.location)
            return ActionResult(
                action=action,
                status='failed',
                error=ErrorDetails.from_error(error),
                duration=perf_counter() - started,
            )

        if resolved is None:
            return ActionResult(
                action=action,
                status='skipped',
                message='Skipped on unresolved placeholders',
                warnings=warnings,
                duration=perf_counter() - started,
            )

        if (executor := self.executors.find(resolved)) is None:
            return ActionResult(
                action=resolved,
                status='skipped',
                message='Manual verification required',
                warnings=warnings,
                duration=perf_counter() - started,
            )

        try:
            execution = executor.execute(resolved, context)

        except ExecutionError as error:
            return ActionResult(
                action=resolved,
                status='failed',
                error=ErrorDetails.from_error(error.with_context(**scope)),
                warnings=warnings,
                duration=perf_counter() - started,
            )

        except Exception as base:  # noqa: BLE001
            error = ExecutionError(
                f'{executor.name} executor raised {type(base).__name__}: {base}',
                context=ErrorContext(**scope),
            )
            logger.opt(exception=base).warning('{} at {}', error.message, action.location)

            return ActionResult(
                action=resolved,
                status='failed',
                error=ErrorDetails.from_error(error),
                warnings=warnings,
                duration=perf_counter() - started,
            )

        if execution.success:
            return ActionResult(
                action=resolved,
                status='passed',
                execution=execution,
                warnings=warnings,
                duration=perf_counter() - started,
            )

        error = ExecutionError(failure_message(resolved, execution), context=ErrorContext(**scope))
        logger.debug('Action failed: {}', error.message)

        return ActionResult(
            action=resolved,
            status='failed',
            execution=execution,
            error=ErrorDetails.from_error(error),
            warnings=warnings,
            duration=perf_counter() - started,
        )

    def resolve_placeholders(self, action: 'TestableAction', context: ExecutionContext,
                             scope: ErrorContext) -> tuple['TestableAction | None', tuple[str, ...]]:
        """Substitute placeholders of an action.

        Returns:
            The action with resolved tokens substituted, or None when the
            action is to be skipped, and the warnings issued.

        Raises:
            UnresolvedPlaceholderError: Under the `fail` policy.
        """
        if not action.placeholders:
            return action, ()

        values, unresolved = self.resolver.resolve_all(action.placeholders, context)
        action = action.substitute(values)
        if not unresolved:
            return action, ()

        match self.settings.placeholders.on_unresolved:
            case 'fail':
                token = unresolved[0]
                raise UnresolvedPlaceholderError(
                    token,
                    suggestions=self.resolver.suggest(token, context),
                    context=ErrorContext(**scope),
                )

            case 'skip':
                return None, tuple(
                    f'Unresolved placeholder {token}'
                    for token in unresolved
                )

        warnings: list[str] = []
        for token in unresolved:
            message = f'Unresolved placeholder {token} kept as written'
            if suggestions := self.resolver.suggest(token, context):
                message += f' (did you mean: {", ".join(suggestions)})'

            logger.warning('{} at {}', message, action.location)
            warn(message, category=PlaceholderWarning, stacklevel=2)
            warnings.append(message)

        return action, tuple(warnings)

    def _run_actions(self, actions: 'Sequence[TestableAction]', context: ExecutionContext,
                     scope: ErrorContext) -> tuple[list[ActionResult], ErrorDetails | None]:
        """Run actions, file actions first, until one fails."""
        results: list[ActionResult] = []

        for action in order_actions(actions):
            result = self.run_action(action, context, scope)
            results.append(result)

            if not result.success:
                return results, result.error

        return results, None

    def _skip(self, variant: 'ProcedureVariant', filename: str,
              prerequisites: 'tuple[PrerequisiteCheckResult, ...]',
              blocking: 'list[PrerequisiteCheckResult]',
              scope: ErrorContext, started: float) -> ProcedureResult:
        """Build the result of a variant skipped on unmet prerequisites."""
        reasons = tuple(
            result.message or result.requirement.description
            for result in blocking
        )
        logger.info('Skipping {}: {}', variant.name, '; '.join(reasons))

        error = PrerequisiteUnmetError(
            f'Unmet prerequisites: {"; ".join(reasons)}',
            context=ErrorContext(
                **scope,
                line_num=blocking[0].requirement.location.line,
                suggestions=[
                    suggestion
                    for result in blocking
                    for suggestion in result.suggestions
                ],
            ),
        )

        return ProcedureResult(
            procedure=variant.title,
            variant=variant.identifier,
            label=variant.label,
            filename=filename,
            status='skipped',
            duration=perf_counter() - started,
            prerequisites=prerequisites,
            error=ErrorDetails.from_error(error),
            skip_reasons=reasons,
        )

    def _report(self, result: ProcedureResult) -> None:
        """Pass a procedure result to the reporters."""
        for reporter in self.reporters:
            reporter.report_procedure(result)
