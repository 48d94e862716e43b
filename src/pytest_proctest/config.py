"""Runtime settings and per-run providers.

Settings are resolved from, in decreasing precedence, values loaded from
a YAML configuration file (`.proctest.yaml`), `PROCTEST_`-prefixed
environment variables, and defaults. Configuration files use camelCase
keys; nested sections can be overridden from the environment with a
double underscore (`PROCTEST_PLACEHOLDERS__ON_UNRESOLVED=fail`).

This module also builds the two immutable maps supplied to every run:
the environment snapshot (process environment overlaid by env files) and
the project constants (the `[constants]` table of `snooty.toml`).
"""

from os import environ
from pathlib import Path
from tomllib import TOMLDecodeError
from tomllib import loads as toml_loads
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal

from dotenv import dotenv_values
from loguru import logger
from pydantic import Field, ValidationError
from pydantic.alias_generators import to_snake
from yaml import YAMLError, safe_load

from pytest_proctest.errors import ConfigError, ErrorContext
from pytest_proctest.models import ConfigModel, SettingsModel
from pytest_proctest.names import SUBSTITUTION_PATTERN, normalize_language

if TYPE_CHECKING:
    from collections.abc import Mapping
    from re import Match

type UnresolvedPolicy = Literal['fail', 'warn', 'skip']
type StateStrategy = Literal['accumulate', 'isolated']

#: Configuration file names searched for in a project.
CONFIG_FILENAMES: tuple[str, ...] = ('.proctest.yaml', '.proctest.yml')

#: Commands used to run a file "from the IDE".
DEFAULT_IDE_COMMANDS: dict[str, str] = {
    'java': 'mvn compile exec:java -Dexec.mainClass="{className}"',
    'csharp': 'dotnet run',
    'cpp': 'g++ {filename} -o {basename} && ./{basename}',
    'c': 'gcc {filename} -o {basename} && ./{basename}',
    'python': 'python {filename}',
    'javascript': 'node {filename}',
    'typescript': 'npx tsx {filename}',
    'go': 'go run {filename}',
}


class PlaceholderSettings(ConfigModel):
    """Placeholder resolution settings."""

    on_unresolved: UnresolvedPolicy = Field(
        default='warn',
        title='Unresolved placeholder policy',
        description=(
            '`fail` aborts the action, `warn` runs it with the literal '
            'token, `skip` omits the action.'
        ),
    )
    mapping: dict[str, str] = Field(
        default_factory=dict,
        title='Explicit placeholder values',
        description='Placeholder tokens (`<username>`, `{+version+}`) mapped to values.',
    )


class StateManagementSettings(ConfigModel):
    """Interpreter state accumulation settings."""

    strategy: StateStrategy = Field(
        default='accumulate',
        title='Code state strategy',
        description=(
            '`accumulate` runs each code action with the preceding code of '
            'the same language in the step, `isolated` runs it standalone.'
        ),
    )
    persist_across_steps: bool = Field(
        default=False,
        title='Keep accumulated state across steps',
    )


class WorkingDirectorySettings(ConfigModel):
    """Per-variant working directory settings."""

    enabled: bool = Field(
        default=True,
        title='Remove working directories',
    )
    keep_on_failure: bool = Field(
        default=False,
        title='Keep the working directory of failed variants',
    )


class CleanupSettings(ConfigModel):
    """Cleanup settings."""

    working_directories: WorkingDirectorySettings = Field(
        default_factory=WorkingDirectorySettings,
    )


class IdeExecutionSettings(ConfigModel):
    """Settings for running files "from the IDE"."""

    commands: dict[str, str] = Field(
        default_factory=dict,
        title='Command templates',
        description=(
            'Language to command template, with `{filename}`, `{basename}` '
            'and `{className}` interpolation. Merged over built-in defaults.'
        ),
    )
    skip: bool = Field(
        default=False,
        title='Skip IDE execution',
        description='Report IDE runs as manual verification instead of running them.',
    )

    def command_for(self, language: str) -> str | None:
        """Return the command template for a language."""
        commands = {
            **DEFAULT_IDE_COMMANDS,
            **{normalize_language(name): value for name, value in self.commands.items()},
        }

        return commands.get(language)


class ExecutorSettings(ConfigModel):
    """Per-language executor overrides."""

    runtime: str | None = Field(
        default=None,
        title='Runtime command',
        examples=['node', 'python3'],
    )
    version: str | None = Field(
        default=None,
        title='Required runtime version',
        examples=['>=18.0.0'],
    )
    timeout: int | None = Field(
        default=None,
        gt=0,
        title='Timeout in milliseconds',
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        title='Extra environment variables',
    )


class ReporterSettings(ConfigModel):
    """A reporter to attach to command-line runs."""

    type: Literal['human', 'json'] = 'human'
    options: dict[str, Any] = Field(default_factory=dict)


class Settings(SettingsModel):
    """Resolved settings of a run."""

    placeholders: PlaceholderSettings = Field(default_factory=PlaceholderSettings)
    state_management: StateManagementSettings = Field(default_factory=StateManagementSettings)
    cleanup: CleanupSettings = Field(default_factory=CleanupSettings)
    ide_execution: IdeExecutionSettings = Field(default_factory=IdeExecutionSettings)
    executors: dict[str, ExecutorSettings] = Field(default_factory=dict)
    reporters: tuple[ReporterSettings, ...] = Field(default=(ReporterSettings(),))

    timeout: int = Field(
        default=30000,
        gt=0,
        title='Action timeout in milliseconds',
    )

    test_files: tuple[str, ...] = Field(
        default=('**/*.rst', '**/*.txt'),
        title='Documentation file patterns',
    )
    exclude: tuple[str, ...] = Field(
        default=('**/node_modules/**', '**/.git/**'),
        title='Excluded file patterns',
    )
    env_files: tuple[str, ...] = Field(
        default=('.env', '.env.local'),
        title='Environment files, later files win',
    )
    constants_file: str | None = Field(
        default='snooty.toml',
        title='Project constants file',
    )
    working_root: Path | None = Field(
        default=None,
        title='Parent of per-variant working directories',
        description='Defaults to the system temporary directory.',
    )
    verbose: bool = False

    def executor(self, language: str) -> ExecutorSettings:
        """Return executor overrides for a language."""
        for name, settings in self.executors.items():
            if normalize_language(name) == language:
                return settings

        return ExecutorSettings()

    def timeout_for(self, language: str | None = None) -> float:
        """Return the action timeout in seconds."""
        timeout = self.timeout
        if language and (override := self.executor(language).timeout):
            timeout = override

        return timeout / 1000


def find_config(start: Path) -> Path | None:
    """Find the closest configuration file at or above a directory."""
    for directory in (start, *start.parents):
        for name in CONFIG_FILENAMES:
            if (candidate := directory / name).is_file():
                return candidate

    return None


def load_settings(path: Path | str | None = None, **overrides: Any) -> Settings:  # noqa: ANN401
    """Load settings from a YAML configuration file.

    Args:
        path: Configuration file; environment and defaults only when omitted.
        **overrides: Top-level settings taking precedence over the file.

    Returns:
        Resolved settings.

    Raises:
        ConfigError: If the file can not be read or holds invalid settings.
    """
    data: dict[str, Any] = {}
    filename = str(path) if path else None

    if path is not None:
        try:
            with Path(path).open('rt', encoding='utf-8') as stream:
                content = safe_load(stream)

        except (OSError, YAMLError) as base:
            raise ConfigError(
                f'Can not load configuration: {base}',
                context=ErrorContext(filename=filename),
            ) from base

        if content is None:
            content = {}
        if not isinstance(content, dict):
            raise ConfigError(
                'Configuration must be a mapping',
                context=ErrorContext(filename=filename, element=content),
            )

        data = {to_snake(key): value for key, value in content.items()}
        if 'snooty_config' in data:
            data.setdefault('constants_file', data.pop('snooty_config'))
        logger.debug('Loaded configuration from {}', path)

    data.update(overrides)

    try:
        return Settings(**data)

    except ValidationError as base:
        raise ConfigError.from_pydantic_error(base, filename=filename) from base


def load_environment(settings: Settings, base_dir: Path | None = None,
                     source: 'Mapping[str, str] | None' = None) -> 'Mapping[str, str]':
    """Build the immutable environment snapshot of a run.

    Args:
        settings: Run settings naming the env files.
        base_dir: Directory env files are relative to.
        source: Base environment; the process environment when omitted.

    Returns:
        A read-only mapping of variable names to values.
    """
    base_dir = base_dir or Path.cwd()
    variables = dict(environ if source is None else source)

    for name in settings.env_files:
        path = base_dir / name
        if not path.is_file():
            continue

        values = {key: value for key, value in dotenv_values(path).items() if value is not None}
        variables.update(values)
        logger.debug('Loaded {} variable(s) from {}', len(values), path)

    return MappingProxyType(variables)


def load_constants(settings: Settings, base_dir: Path | None = None) -> 'Mapping[str, str]':
    """Load project constants.

    The constants file is searched for at and above `base_dir`. Constants
    may reference each other with `{+name+}`.

    Args:
        settings: Run settings naming the constants file.
        base_dir: Directory to start searching from.

    Returns:
        A read-only mapping of constant names to values.

    Raises:
        ConfigError: If the constants file is not valid TOML.
    """
    if not settings.constants_file:
        return MappingProxyType({})

    start = base_dir or Path.cwd()
    for directory in (start, *start.parents):
        if (path := directory / settings.constants_file).is_file():
            break
    else:
        return MappingProxyType({})

    try:
        table = toml_loads(path.read_text(encoding='utf-8')).get('constants', {})

    except (OSError, TOMLDecodeError) as base:
        raise ConfigError(
            f'Can not load constants: {base}',
            context=ErrorContext(filename=str(path)),
        ) from base

    constants = {str(name): str(value) for name, value in table.items()}

    def expand(match: 'Match[str]') -> str:
        return constants.get(match.group('name'), match.group(0))

    for name, value in constants.items():
        constants[name] = SUBSTITUTION_PATTERN.sub(expand, value)

    logger.debug('Loaded {} constant(s) from {}', len(constants), path)

    return MappingProxyType(constants)
