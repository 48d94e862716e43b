"""CLI utilities for running documentation procedures.

Procedures are parsed from documentation files, expanded into their
variants and run with the configured executors. The parse command prints
the expanded variants without running anything.
"""

from pathlib import Path
from sys import exit as sys_exit

from click import ClickException, argument, echo, group, option, pass_context, secho
from click import Context as ClickContext
from click import Path as PathParam
from yaml import safe_dump

from pytest_proctest.config import Settings, find_config, load_settings
from pytest_proctest.core import DocumentParser, expand_document
from pytest_proctest.errors import ProcTestError
from pytest_proctest.log import configure
from pytest_proctest.reporters import JsonReporter, build_reporters
from pytest_proctest.runtime import ExecutorRegistry, Orchestrator

InputPath = PathParam(
    exists=True,
    readable=True,
    path_type=Path,
)

ConfigFilepath = PathParam(
    exists=True,
    dir_okay=False,
    readable=True,
    path_type=Path,
)

OutputFilepath = PathParam(
    dir_okay=False,
    writable=True,
    path_type=Path,
)


def _load(config: Path | None) -> Settings:
    """Load settings from a file or the closest project configuration."""
    try:
        return load_settings(config or find_config(Path.cwd()))

    except ProcTestError as error:
        raise ClickException(str(error)) from error


@group(help='Command-line utilities for testing documentation procedures.')
@option(
    '-v', '--verbose',
    count=True,
    help='Increase logging verbosity (-v progress, -vv actions, -vvv trace).',
)
@pass_context
def cli(context: ClickContext, verbose: int) -> None:
    """Root CLI group for pytest-proctest tools."""
    context.obj = {'verbose': verbose}
    configure(verbose)


@cli.command(
    name='run',
    help='Run every procedure variant found in documentation files.',
)
@option(
    '-c', '--config',
    type=ConfigFilepath,
    help='Configuration file, the closest .proctest.yaml by default.',
)
@option(
    '--json', 'json_output',
    type=OutputFilepath,
    help='Also write results as JSON to this file.',
)
@argument(
    'paths',
    nargs=-1,
    required=True,
    type=InputPath,
)
@pass_context
def run_procedures(context: ClickContext, config: Path | None,
                   json_output: Path | None, paths: tuple[Path, ...]) -> None:
    """Run procedures and exit with status 1 when any variant failed.

    Args:
        context: Click context.
        config: Configuration file.
        json_output: JSON report file.
        paths: Files and directories to run.
    """
    settings = _load(config)
    verbose = settings.verbose or context.obj['verbose'] > 0

    reporters = build_reporters(settings.reporters, verbose=verbose)
    if json_output:
        reporters.append(JsonReporter(json_output))

    try:
        summary = Orchestrator(settings, reporters=reporters).run_paths(paths)

    except ProcTestError as error:
        raise ClickException(str(error)) from error

    if not summary.total:
        secho('No procedures found', fg='yellow')

    sys_exit(0 if summary.success else 1)


@cli.command(
    name='parse',
    help='Print the procedure variants of a documentation file as YAML.',
)
@argument(
    'path',
    type=PathParam(exists=True, dir_okay=False, readable=True, path_type=Path),
)
def print_variants(path: Path) -> None:
    """Parse a file and print its expanded variants.

    Args:
        path: Documentation file.
    """
    try:
        document = DocumentParser().parse_file(path)

    except ProcTestError as error:
        raise ClickException(str(error)) from error

    variants = [
        variant.model_dump(mode='json', exclude_none=True, exclude_defaults=True)
        for variant in expand_document(document)
    ]

    echo(safe_dump(variants, sort_keys=False, allow_unicode=True), nl=False)


@cli.command(
    name='executors',
    help='Check that executors can run in the current environment.',
)
@option(
    '-c', '--config',
    type=ConfigFilepath,
    help='Configuration file, the closest .proctest.yaml by default.',
)
def validate_executors(config: Path | None) -> None:
    """Print executor validation and exit with status 1 on problems.

    Args:
        config: Configuration file.
    """
    results = ExecutorRegistry.default(_load(config)).validate()

    for result in results:
        secho(f'{result.executor:<8}', fg='green' if result.valid else 'red', bold=True, nl=False)
        echo(f' {"ok" if result.valid else result.message}')

    sys_exit(0 if all(result.valid for result in results) else 1)


if __name__ == '__main__':
    cli()
