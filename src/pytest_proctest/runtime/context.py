"""Per-variant execution context and step-scoped state.

An `ExecutionContext` is created when a variant starts running and
discarded once its cleanup completed. It owns the variant's working
directory, the immutable environment and constants snapshots, the
cleanup registry, and the current `ExecutionState`.

Executors never mutate process-wide state: variables for child
processes are built from the context snapshot, and the shell working
directory is tracked on the context rather than with `os.chdir`.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from .cleanup import CleanupRegistry

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass
class ExecutionState:
    """Step-scoped interpreter state.

    Attributes:
        language: Language of the accumulated source.
        source: Source accumulated from previous code actions.
    """

    language: str | None = None
    source: str = ''

    def accumulate(self, language: str, code: str) -> str:
        """Append code to the accumulated source.

        Code in another language than the accumulated source starts a new
        accumulation.

        Args:
            language: Language of the code.
            code: Code of the action.

        Returns:
            Source to run: the previous source of the same language
            followed by the code.
        """
        if self.language != language:
            self.language, self.source = language, ''

        self.source = f'{self.source}\n{code}' if self.source else code

        return self.source

    def reset(self) -> None:
        """Forget accumulated source."""
        self.language = None
        self.source = ''


@dataclass
class ExecutionContext:
    """Context owned by one running procedure variant.

    Attributes:
        working_directory: Root directory owned by the variant.
        environment: Immutable environment snapshot.
        constants: Immutable project constants.
        placeholders: Explicit placeholder values.
        timeout: Default action timeout in seconds.
        cleanup: Teardown ledger of the variant.
        state: Current step-scoped state.
        shell_directory: Current directory of shell actions.
    """

    working_directory: Path | None = None
    environment: 'Mapping[str, str]' = field(default_factory=lambda: MappingProxyType({}))
    constants: 'Mapping[str, str]' = field(default_factory=lambda: MappingProxyType({}))
    placeholders: 'Mapping[str, str]' = field(default_factory=lambda: MappingProxyType({}))
    timeout: float = 30.0

    cleanup: CleanupRegistry = field(default_factory=CleanupRegistry)
    state: ExecutionState = field(default_factory=ExecutionState)
    shell_directory: Path | None = None

    def __post_init__(self) -> None:
        """Freeze snapshots and start shell actions in the working directory."""
        self.environment = MappingProxyType(dict(self.environment))
        self.constants = MappingProxyType(dict(self.constants))
        self.placeholders = MappingProxyType(dict(self.placeholders))

        if self.shell_directory is None:
            self.shell_directory = self.working_directory

    @property
    def cwd(self) -> Path:
        """Directory processes of the variant start in."""
        return self.shell_directory or self.working_directory or Path.cwd()

    def child_environment(self, extra: 'Mapping[str, str] | None' = None) -> dict[str, str]:
        """Build variables for a child process.

        Args:
            extra: Variables added over the snapshot.

        Returns:
            A fresh dictionary; the snapshot itself is never modified.
        """
        variables = dict(self.environment)
        if extra:
            variables.update(extra)

        return variables

    def resolve_path(self, path: str) -> Path:
        """Resolve a path relative to the current shell directory.

        Raises:
            ValueError: If the path escapes the working directory.
        """
        root = (self.working_directory or Path.cwd()).resolve()
        target = (self.cwd / path).resolve()
        if target != root and root not in target.parents:
            raise ValueError(f'Path {path} escapes the working directory')

        return target
