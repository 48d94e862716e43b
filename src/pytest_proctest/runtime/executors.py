"""Executors running testable actions.

An executor is a narrow collaborator: it tells whether it can run an
action, runs it within an `ExecutionContext` and reports an
`ExecutionResult`. Executors never change process-wide state; child
processes receive variables built from the context snapshot and start in
the directory tracked by the context.

Built-in executors:
    - `FileExecutor` writes files into the working directory;
    - `ShellExecutor` runs shell and CLI actions with `bash`, keeping the
      directory a command ends in for the next shell action;
    - `CodeExecutor` runs code snippets with a language runtime, or a
      created file with an IDE command template.

Actions no registered executor accepts are not failures: the
orchestrator reports them as requiring manual verification.
"""

from os import close as close_fd
from pathlib import Path, PurePosixPath
from re import compile as regexp
from shlex import quote
from shlex import split as split_command
from shutil import which
from subprocess import PIPE, TimeoutExpired, run
from tempfile import mkstemp
from time import perf_counter
from typing import TYPE_CHECKING, Protocol

from loguru import logger
from packaging.specifiers import InvalidSpecifier
from packaging.version import InvalidVersion

from pytest_proctest.config import Settings
from pytest_proctest.errors import ErrorContext, ExecutionError
from pytest_proctest.names import language_extension, normalize_language
from pytest_proctest.schema import (
    CliAction,
    CodeAction,
    ExecutionResult,
    FileAction,
    ShellAction,
    ValidationResult,
)

from .prerequisites import extract_version, run_command, version_satisfies

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from pytest_proctest.schema import TestableAction

    from .context import ExecutionContext

#: Runtime commands of languages runnable as snippets.
DEFAULT_RUNTIMES: dict[str, str] = {
    'javascript': 'node',
    'php': 'php',
    'python': 'python3',
    'ruby': 'ruby',
    'typescript': 'npx tsx',
}

#: Base name of the file accumulated snippets are written to.
SNIPPET_NAME = '.proctest-snippet'

#: Field of an IDE command template, e.g. `{filename}`.
TEMPLATE_FIELD = regexp(r'\{(?P<name>filename|basename|className)\}')

#: Timeout of a runtime version query in seconds.
VERSION_TIMEOUT = 10.0


class Executor(Protocol):
    """Collaborator running one kind of action."""

    name: str

    def can_execute(self, action: 'TestableAction') -> bool:
        """Tell whether the executor runs an action."""
        ...  # pragma: no cover

    def execute(self, action: 'TestableAction', context: 'ExecutionContext') -> ExecutionResult:
        """Run an action."""
        ...  # pragma: no cover

    def validate(self) -> ValidationResult:
        """Check the executor can work in the current environment."""
        ...  # pragma: no cover


def render_template(template: str, values: 'Mapping[str, str]') -> str:
    """Substitute the known fields of a command template.

    Other braces, such as shell `${HOME}` expansions, are kept as written.
    """
    return TEMPLATE_FIELD.sub(lambda match: values[match.group('name')], template)


def run_process(command: 'Sequence[str] | str', *, cwd: Path,
                environment: 'Mapping[str, str]', timeout: float,
                shell: bool = False) -> ExecutionResult:
    """Run a child process and capture its outcome.

    Args:
        command: Arguments, or a command line when `shell` is set.
        cwd: Directory the process starts in.
        environment: Variables of the process; inherited when empty.
        timeout: Timeout in seconds.
        shell: Run the command line with the system shell.

    Returns:
        The execution result; a timeout is reported with `timed_out`.
    """
    started = perf_counter()
    try:
        completed = run(  # noqa: S603
            command,
            cwd=cwd,
            env=dict(environment) or None,
            stdout=PIPE,
            stderr=PIPE,
            text=True,
            timeout=timeout,
            shell=shell,
            check=False,
        )

    except TimeoutExpired as base:
        return ExecutionResult(
            success=False,
            stdout=_decode(base.stdout),
            stderr=f'Timed out after {timeout:g}s',
            duration=perf_counter() - started,
            timed_out=True,
        )

    except OSError as base:
        return ExecutionResult(
            success=False,
            stderr=str(base),
            duration=perf_counter() - started,
        )

    return ExecutionResult(
        success=completed.returncode == 0,
        stdout=completed.stdout or '',
        stderr=completed.stderr or '',
        exit_code=completed.returncode,
        duration=perf_counter() - started,
    )


def _decode(output: bytes | str | None) -> str:
    """Decode partial output of a timed out process."""
    if isinstance(output, bytes):
        return output.decode(errors='replace')
    return output or ''


class FileExecutor:
    """Creates, replaces and appends to files in the working directory."""

    name = 'file'

    def can_execute(self, action: 'TestableAction') -> bool:
        """Accept file actions."""
        return isinstance(action, FileAction)

    def execute(self, action: 'TestableAction', context: 'ExecutionContext') -> ExecutionResult:
        """Write the file.

        Raises:
            ExecutionError: If the action is not a file action.
        """
        if not isinstance(action, FileAction):
            raise ExecutionError(
                f'{self.name} executor can not run {action.action_type} actions',
                context=ErrorContext(action_type=action.action_type),
            )

        started = perf_counter()
        try:
            path = context.resolve_path(action.path)
            path.parent.mkdir(parents=True, exist_ok=True)

            content = action.content if action.content.endswith('\n') else f'{action.content}\n'
            if action.operation == 'append' and path.exists():
                existing = path.read_text(encoding='utf-8')
                if existing and not existing.endswith('\n'):
                    content = f'\n{content}'
                with path.open('at', encoding='utf-8') as stream:
                    stream.write(content)
            else:
                path.write_text(content, encoding='utf-8')

        except (OSError, ValueError) as base:
            return ExecutionResult(
                success=False,
                stderr=str(base),
                duration=perf_counter() - started,
            )

        logger.debug('{} {}', action.operation.capitalize(), path)

        return ExecutionResult(
            success=True,
            stdout=str(path),
            exit_code=0,
            duration=perf_counter() - started,
        )

    def validate(self) -> ValidationResult:
        """Files can always be written."""
        return ValidationResult(executor=self.name, valid=True)


class ShellExecutor:
    """Runs shell and CLI actions with bash.

    The directory each command ends in becomes the starting directory of
    the next shell action of the same variant, so `cd` behaves as it
    does in a terminal session.
    """

    name = 'shell'

    def __init__(self, shell: str = 'bash', *,
                 environment: 'Mapping[str, str] | None' = None) -> None:
        """Initialize the executor.

        Args:
            shell: Shell program.
            environment: Extra variables for every command.
        """
        self.shell = shell
        self.environment = dict(environment or {})

    def can_execute(self, action: 'TestableAction') -> bool:
        """Accept shell and CLI actions."""
        return isinstance(action, ShellAction | CliAction)

    def execute(self, action: 'TestableAction', context: 'ExecutionContext') -> ExecutionResult:
        """Run the commands of the action.

        Raises:
            ExecutionError: If the action is not a shell or CLI action.
        """
        if not isinstance(action, ShellAction | CliAction):
            raise ExecutionError(
                f'{self.name} executor can not run {action.action_type} actions',
                context=ErrorContext(action_type=action.action_type),
            )

        handle, marker = mkstemp(prefix='proctest-pwd-')
        close_fd(handle)
        marker_path = Path(marker)

        script = f'trap \'pwd > {quote(marker)}\' EXIT\nset -e\n{action.command}\n'
        try:
            result = run_process(
                [self.shell, '-c', script],
                cwd=context.cwd,
                environment=context.child_environment(self.environment),
                timeout=context.timeout,
            )
            directory = marker_path.read_text(encoding='utf-8').strip()

        finally:
            marker_path.unlink(missing_ok=True)

        if directory and Path(directory) != context.cwd:
            logger.debug('Shell directory is now {}', directory)
            context.shell_directory = Path(directory)

        return result

    def validate(self) -> ValidationResult:
        """Check the shell is installed."""
        if which(self.shell):
            return ValidationResult(executor=self.name, valid=True)

        return ValidationResult(
            executor=self.name,
            valid=False,
            message=f'{self.shell} is not installed',
        )


class CodeExecutor:
    """Runs code snippets and files created by the procedure.

    Snippets in the `direct` mode are written next to the current shell
    directory and run with the language runtime. Under the `accumulate`
    state strategy, each snippet runs after the code of preceding
    snippets of the same language in the step. Files in the `ide` mode
    are run with the configured IDE command template.
    """

    name = 'code'

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the executor.

        Args:
            settings: Run settings with runtime overrides and IDE commands.
        """
        self.settings = settings or Settings()

    def runtime(self, language: str) -> str | None:
        """Return the runtime command of a language."""
        return self.settings.executor(language).runtime or DEFAULT_RUNTIMES.get(language)

    def timeout(self, language: str, context: 'ExecutionContext') -> float:
        """Return the timeout of a language, the context timeout by default."""
        if override := self.settings.executor(language).timeout:
            return override / 1000
        return context.timeout

    def can_execute(self, action: 'TestableAction') -> bool:
        """Accept code actions with a runtime or an IDE command."""
        if not isinstance(action, CodeAction):
            return False

        if action.execution_mode == 'ide':
            return (
                not self.settings.ide_execution.skip
                and action.path is not None
                and self.settings.ide_execution.command_for(action.language) is not None
            )

        return self.runtime(action.language) is not None

    def execute(self, action: 'TestableAction', context: 'ExecutionContext') -> ExecutionResult:
        """Run the snippet or the file.

        Raises:
            ExecutionError: If the action can not be run by this executor.
        """
        if not isinstance(action, CodeAction) or not self.can_execute(action):
            raise ExecutionError(
                f'{self.name} executor can not run this action',
                context=ErrorContext(action_type=action.action_type),
            )

        environment = context.child_environment(self.settings.executor(action.language).env)

        if action.execution_mode == 'ide':
            return self._execute_file(action, context, environment)

        source = action.code
        if self.settings.state_management.strategy == 'accumulate':
            source = context.state.accumulate(action.language, action.code)

        try:
            path = context.resolve_path(f'{SNIPPET_NAME}{language_extension(action.language)}')
            path.write_text(f'{source}\n', encoding='utf-8')

        except (OSError, ValueError) as base:
            return ExecutionResult(success=False, stderr=str(base))

        runtime = self.runtime(action.language) or ''
        logger.debug('Running {} snippet with {}', action.language, runtime)

        return run_process(
            [*split_command(runtime), path.name],
            cwd=path.parent,
            environment=environment,
            timeout=self.timeout(action.language, context),
        )

    def _execute_file(self, action: CodeAction, context: 'ExecutionContext',
                      environment: 'Mapping[str, str]') -> ExecutionResult:
        """Run a created file with its IDE command."""
        template = self.settings.ide_execution.command_for(action.language) or ''
        path = PurePosixPath(action.path or '')

        command = render_template(template, {
            'filename': quote(str(path)),
            'basename': quote(str(path.with_suffix(''))),
            'className': path.stem,
        })
        logger.debug('Running {} from the IDE: {}', path, command)

        return run_process(
            command,
            cwd=context.cwd,
            environment=environment,
            timeout=self.timeout(action.language, context),
            shell=True,
        )

    def check_version(self, language: str, runtime: str) -> str | None:
        """Compare the version a runtime reports with the required one.

        Args:
            language: Canonical language name.
            runtime: Installed runtime command of the language.

        Returns:
            A problem description, or None when no version is required or
            the installed one satisfies the constraint.
        """
        if not (constraint := self.settings.executor(language).version):
            return None

        result = run_command(f'{runtime} --version', environment={}, timeout=VERSION_TIMEOUT)
        found = extract_version(result.stdout) if result.success else None
        if not found:
            return f'{runtime} reports no version'

        try:
            if version_satisfies(found, constraint):
                return None

        except (InvalidSpecifier, InvalidVersion) as base:
            return f'Can not compare {runtime} version {found}: {base}'

        return f'{runtime} {found} does not satisfy {constraint}'

    def validate(self) -> ValidationResult:
        """Report runtimes missing from the system or older than required."""
        missing: list[str] = []
        problems: list[str] = []
        for language in sorted({*DEFAULT_RUNTIMES, *map(normalize_language, self.settings.executors)}):
            if not (runtime := self.runtime(language)):
                continue
            if not which(split_command(runtime)[0]):
                missing.append(language)
            elif problem := self.check_version(language, runtime):
                problems.append(problem)

        if missing:
            problems.insert(0, f'Runtimes not installed for: {", ".join(missing)}')

        if problems:
            return ValidationResult(
                executor=self.name,
                valid=False,
                message='; '.join(problems),
            )

        return ValidationResult(executor=self.name, valid=True)


class ExecutorRegistry:
    """Executors the orchestrator dispatches actions to.

    Executors are tried in registration order; the first accepting an
    action runs it.
    """

    def __init__(self, executors: 'Iterable[Executor]' = ()) -> None:
        """Initialize the registry.

        Args:
            executors: Executors to register.
        """
        self.executors: list[Executor] = list(executors)

    @classmethod
    def default(cls, settings: Settings | None = None) -> 'ExecutorRegistry':
        """Build a registry of the built-in executors."""
        settings = settings or Settings()

        return cls((
            FileExecutor(),
            ShellExecutor(environment=settings.executor('shell').env),
            CodeExecutor(settings),
        ))

    def register(self, executor: 'Executor') -> None:
        """Add an executor after the registered ones."""
        self.executors.append(executor)

    def find(self, action: 'TestableAction') -> 'Executor | None':
        """Return the executor running an action, if any."""
        for executor in self.executors:
            if executor.can_execute(action):
                return executor

        return None

    def validate(self) -> tuple[ValidationResult, ...]:
        """Validate every registered executor."""
        return tuple(executor.validate() for executor in self.executors)
