"""Prerequisite checking.

Every requirement of a procedure is checked before any of its steps
run. Software is checked by running its check command and comparing the
reported version with the declared constraint; environment variables by
their presence in the environment snapshot; services and configuration
by a check command or marker file, or reported as informational when
nothing can be verified.

An unmet required requirement makes the whole variant skipped; unmet
optional requirements are recorded without blocking.
"""

from pathlib import Path
from re import compile as regexp
from subprocess import PIPE, STDOUT, TimeoutExpired, run
from time import perf_counter
from typing import TYPE_CHECKING, Protocol

from loguru import logger
from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from pytest_proctest.schema import (
    ConfigurationRequirement,
    EnvironmentRequirement,
    ExecutionResult,
    PrerequisiteCheckResult,
    ServiceRequirement,
    SoftwareRequirement,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pytest_proctest.schema import PrerequisiteNode, Requirement

#: First version-looking number in a command output, possibly glued to a
#: program name as in `go1.22.0`.
VERSION_PATTERN = regexp(r'(?<![\d._])v?(?P<version>\d+(?:\.\d+){0,3})')

#: A bare version constraint, meaning a minimum version.
BARE_VERSION_PATTERN = regexp(r'^v?\d+(?:\.\d+)*$')


class CommandRunner(Protocol):
    """Collaborator running check commands."""

    def __call__(self, command: str, *, environment: 'Mapping[str, str]',
                 timeout: float) -> ExecutionResult:
        """Run a command and report its outcome."""
        ...  # pragma: no cover


def run_command(command: str, *, environment: 'Mapping[str, str]',
                timeout: float) -> ExecutionResult:
    """Run a check command with a shell.

    Args:
        command: Command line.
        environment: Variables of the child process; inherited when empty.
        timeout: Timeout in seconds.

    Returns:
        Outcome with the combined output in `stdout`.
    """
    started = perf_counter()
    try:
        completed = run(  # noqa: S602
            command,
            shell=True,
            stdout=PIPE,
            stderr=STDOUT,
            text=True,
            timeout=timeout,
            env=dict(environment) or None,
            check=False,
        )

    except TimeoutExpired:
        return ExecutionResult(
            success=False,
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
        exit_code=completed.returncode,
        duration=perf_counter() - started,
    )


def extract_version(output: str) -> str | None:
    """Extract the first version number from a command output."""
    if match := VERSION_PATTERN.search(output):
        return match.group('version')

    return None


def parse_constraint(constraint: str) -> SpecifierSet:
    """Parse a version constraint.

    A bare version (`18`, `v3.12.1`) means a minimum version.

    Raises:
        InvalidSpecifier: If the constraint is not valid.
    """
    constraint = constraint.replace(' ', '')
    if BARE_VERSION_PATTERN.match(constraint):
        constraint = f'>={constraint.removeprefix("v")}'

    return SpecifierSet(constraint)


def version_satisfies(found: str, constraint: str) -> bool:
    """Compare a version with a constraint.

    Raises:
        InvalidVersion: If the found version is not valid.
        InvalidSpecifier: If the constraint is not valid.
    """
    return parse_constraint(constraint).contains(Version(found), prereleases=True)


class PrerequisiteChecker:
    """Checks requirements before a variant runs.

    Attributes:
        runner: Collaborator running check commands.
        timeout: Timeout of a check command in seconds.
    """

    def __init__(self, runner: CommandRunner = run_command, *,
                 timeout: float = 10.0) -> None:
        """Initialize the checker.

        Args:
            runner: Collaborator running check commands.
            timeout: Timeout of a check command in seconds.
        """
        self.runner = runner
        self.timeout = timeout

    def check_all(self, prerequisites: 'PrerequisiteNode | None',
                  environment: 'Mapping[str, str]', *,
                  base_dir: Path | None = None) -> tuple[PrerequisiteCheckResult, ...]:
        """Check every requirement.

        Args:
            prerequisites: Declared prerequisites, if any.
            environment: Environment snapshot of the run.
            base_dir: Directory relative file checks are resolved against.

        Returns:
            One result per requirement, in declaration order.
        """
        if prerequisites is None:
            return ()

        results = tuple(
            self.check(requirement, environment, base_dir=base_dir)
            for requirement in prerequisites.requirements
        )

        for result in results:
            if not result.met:
                logger.info('Prerequisite not met{}: {}',
                            '' if result.blocking else ' (optional)',
                            result.message)

        return results

    def check(self, requirement: 'Requirement', environment: 'Mapping[str, str]', *,
              base_dir: Path | None = None) -> PrerequisiteCheckResult:
        """Check one requirement.

        Args:
            requirement: Requirement to check.
            environment: Environment snapshot of the run.
            base_dir: Directory relative file checks are resolved against.

        Returns:
            The check result.
        """
        match requirement:
            case SoftwareRequirement():
                return self.check_software(requirement, environment)
            case EnvironmentRequirement():
                return self.check_environment(requirement, environment)
            case ServiceRequirement():
                return self.check_service(requirement, environment, base_dir)
            case ConfigurationRequirement():
                return self.check_configuration(requirement, base_dir)

        raise TypeError(f'Unsupported requirement {requirement!r}')

    def check_software(self, requirement: SoftwareRequirement,
                       environment: 'Mapping[str, str]') -> PrerequisiteCheckResult:
        """Check installed software and its version."""
        command = requirement.check or f'{requirement.name} --version'
        outcome = self.runner(command, environment=environment, timeout=self.timeout)

        if not outcome.success:
            return PrerequisiteCheckResult(
                requirement=requirement,
                met=False,
                message=f'{requirement.name} is not available (`{command}` failed)',
                suggestions=(f'install {requirement.name}',),
            )

        if not requirement.version:
            return PrerequisiteCheckResult(
                requirement=requirement,
                met=True,
                found_version=extract_version(outcome.stdout),
            )

        found = extract_version(outcome.stdout)
        if found is None:
            return PrerequisiteCheckResult(
                requirement=requirement,
                met=False,
                message=f'Can not determine the version of {requirement.name} from `{command}`',
                suggestions=(f'set a :check: command printing the {requirement.name} version',),
            )

        try:
            met = version_satisfies(found, requirement.version)

        except (InvalidSpecifier, InvalidVersion) as base:
            return PrerequisiteCheckResult(
                requirement=requirement,
                met=False,
                message=f'Can not compare {requirement.name} version {found}: {base}',
                found_version=found,
            )

        return PrerequisiteCheckResult(
            requirement=requirement,
            met=met,
            message=None if met else (
                f'{requirement.name} {found} does not satisfy {requirement.version}'
            ),
            found_version=found,
            suggestions=() if met else (f'install {requirement.name} {requirement.version}',),
        )

    @staticmethod
    def check_environment(requirement: EnvironmentRequirement,
                          environment: 'Mapping[str, str]') -> PrerequisiteCheckResult:
        """Check an environment variable is defined."""
        if requirement.variable in environment:
            return PrerequisiteCheckResult(requirement=requirement, met=True)

        return PrerequisiteCheckResult(
            requirement=requirement,
            met=False,
            message=f'Environment variable {requirement.variable} is not set',
            suggestions=(f'set {requirement.variable} in the environment or an env file',),
        )

    def check_service(self, requirement: ServiceRequirement,
                      environment: 'Mapping[str, str]',
                      base_dir: Path | None) -> PrerequisiteCheckResult:
        """Check a service with its check command or marker file."""
        if requirement.check:
            outcome = self.runner(requirement.check, environment=environment, timeout=self.timeout)
            if outcome.success:
                return PrerequisiteCheckResult(requirement=requirement, met=True)

            return PrerequisiteCheckResult(
                requirement=requirement,
                met=False,
                message=f'Service {requirement.name} is not available (`{requirement.check}` failed)',
                suggestions=(f'start {requirement.name}',),
            )

        if requirement.path:
            return self._check_file(requirement, requirement.path, base_dir)

        return PrerequisiteCheckResult(
            requirement=requirement,
            met=True,
            message=f'Service {requirement.name} is not verified',
        )

    def check_configuration(self, requirement: ConfigurationRequirement,
                            base_dir: Path | None) -> PrerequisiteCheckResult:
        """Check a configuration file exists."""
        if requirement.path:
            return self._check_file(requirement, requirement.path, base_dir)

        return PrerequisiteCheckResult(
            requirement=requirement,
            met=True,
            message=f'Not verified: {requirement.description}',
        )

    @staticmethod
    def _check_file(requirement: 'Requirement', path: str,
                    base_dir: Path | None) -> PrerequisiteCheckResult:
        """Check a marker file exists."""
        target = Path(path).expanduser()
        if not target.is_absolute() and base_dir is not None:
            target = base_dir / target

        if target.exists():
            return PrerequisiteCheckResult(requirement=requirement, met=True)

        return PrerequisiteCheckResult(
            requirement=requirement,
            met=False,
            message=f'{target} does not exist',
            suggestions=(f'create {path}',),
        )
