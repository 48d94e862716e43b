"""Tests for settings, environment snapshots and project constants."""

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from pytest_proctest.config import (
    IdeExecutionSettings,
    Settings,
    find_config,
    load_constants,
    load_environment,
    load_settings,
)
from pytest_proctest.errors import ConfigError

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem

TEST_CONFIG = (
    'placeholders:\n'
    '  onUnresolved: fail\n'
    '  mapping:\n'
    '    <username>: alice\n'
    'stateManagement:\n'
    '  strategy: isolated\n'
    '  persistAcrossSteps: true\n'
    'cleanup:\n'
    '  workingDirectories:\n'
    '    keepOnFailure: true\n'
    'executors:\n'
    '  js:\n'
    '    runtime: node\n'
    '    timeout: 2000\n'
    'testFiles:\n'
    '  - docs/**/*.rst\n'
    'snootyConfig: docs/snooty.toml\n'
    'reporters:\n'
    '  - type: json\n'
    '    options:\n'
    '      outputFile: out.json\n'
    'otherTool: ignored\n'
)

TEST_CONSTANTS = (
    'name = "guides"\n'
    '\n'
    '[constants]\n'
    'version = "7.0"\n'
    'package = "server-{+version+}"\n'
    'port = 27017\n'
)


def test_load_settings(fs: 'FakeFilesystem') -> None:
    """Configuration files use camelCase keys and ignore unknown keys."""
    fs.create_file('/project/.proctest.yaml', contents=TEST_CONFIG)

    settings = load_settings('/project/.proctest.yaml')

    assert settings.placeholders.on_unresolved == 'fail'
    assert settings.placeholders.mapping == {'<username>': 'alice'}
    assert settings.state_management.strategy == 'isolated'
    assert settings.state_management.persist_across_steps
    assert settings.cleanup.working_directories.keep_on_failure
    assert settings.cleanup.working_directories.enabled
    assert settings.executor('javascript').runtime == 'node'
    assert settings.timeout_for('javascript') == 2.0
    assert settings.timeout_for('python') == 30.0
    assert settings.test_files == ('docs/**/*.rst',)
    assert settings.constants_file == 'docs/snooty.toml'
    assert settings.reporters[0].type == 'json'


def test_load_settings_defaults() -> None:
    """Without a file, settings are the defaults."""
    settings = load_settings(None, verbose=True)

    assert settings.placeholders.on_unresolved == 'warn'
    assert settings.state_management.strategy == 'accumulate'
    assert settings.reporters[0].type == 'human'
    assert settings.verbose


def test_load_settings_environment(fs: 'FakeFilesystem', monkeypatch: pytest.MonkeyPatch) -> None:
    """Prefixed environment variables apply below file values."""
    fs.create_file('/project/.proctest.yaml', contents='verbose: false\n')
    monkeypatch.setenv('PROCTEST_TIMEOUT', '5000')
    monkeypatch.setenv('PROCTEST_VERBOSE', 'true')

    settings = load_settings('/project/.proctest.yaml')

    assert settings.timeout == 5000
    assert not settings.verbose


@pytest.mark.parametrize('content, message', (
    pytest.param('placeholders: [\n', 'Can not load configuration', id='syntax'),
    pytest.param('- one\n- two\n', 'Configuration must be a mapping', id='not-mapping'),
    pytest.param('placeholders:\n  onUnresolved: maybe\n', 'Invalid configuration: ', id='invalid-value'),
    pytest.param('timeout: -1\n', 'Invalid configuration: .* at "timeout"', id='invalid-timeout'),
))
def test_load_settings_errors(fs: 'FakeFilesystem', content: str, message: str) -> None:
    """Invalid files raise configuration errors naming the file."""
    fs.create_file('/project/.proctest.yaml', contents=content)

    with pytest.raises(ConfigError, match=message) as error:
        load_settings('/project/.proctest.yaml')

    assert error.value.context['filename'] == '/project/.proctest.yaml'


def test_load_settings_missing_file(fs: 'FakeFilesystem') -> None:
    """A missing file is a configuration error."""
    with pytest.raises(ConfigError, match='Can not load configuration'):
        load_settings('/project/.proctest.yaml')


def test_find_config(fs: 'FakeFilesystem') -> None:
    """The closest configuration file at or above a directory is found."""
    fs.create_file('/project/.proctest.yml')
    fs.create_dir('/project/docs/source')

    assert find_config(Path('/project/docs/source')) == Path('/project/.proctest.yml')
    assert find_config(Path('/')) is None


def test_load_environment(fs: 'FakeFilesystem') -> None:
    """Env files overlay the base environment, later files win."""
    fs.create_file('/project/.env', contents='API_KEY=from-env\nREGION=eu\n')
    fs.create_file('/project/.env.local', contents='API_KEY=from-local\n')

    environment = load_environment(Settings(), Path('/project'), source={'HOME': '/home/alice', 'REGION': 'us'})

    assert dict(environment) == {'HOME': '/home/alice', 'REGION': 'eu', 'API_KEY': 'from-local'}
    with pytest.raises(TypeError):
        environment['API_KEY'] = 'changed'  # type: ignore[index]


def test_load_environment_without_files(fs: 'FakeFilesystem') -> None:
    """Missing env files are ignored."""
    fs.create_dir('/project')

    environment = load_environment(Settings(env_files=('.env',)), Path('/project'), source={'A': 'b'})

    assert dict(environment) == {'A': 'b'}


def test_load_constants(fs: 'FakeFilesystem') -> None:
    """Constants are read from above the document and reference each other."""
    fs.create_file('/project/snooty.toml', contents=TEST_CONSTANTS)
    fs.create_dir('/project/source/tutorial')

    constants = load_constants(Settings(), Path('/project/source/tutorial'))

    assert dict(constants) == {'version': '7.0', 'package': 'server-7.0', 'port': '27017'}


def test_load_constants_disabled(fs: 'FakeFilesystem') -> None:
    """No constants are loaded without a constants file."""
    fs.create_file('/project/snooty.toml', contents=TEST_CONSTANTS)

    assert dict(load_constants(Settings(constants_file=None), Path('/project'))) == {}
    assert dict(load_constants(Settings(constants_file='missing.toml'), Path('/project'))) == {}


def test_load_constants_invalid(fs: 'FakeFilesystem') -> None:
    """An invalid constants file is a configuration error."""
    fs.create_file('/project/snooty.toml', contents='[constants\n')

    with pytest.raises(ConfigError, match='Can not load constants'):
        load_constants(Settings(), Path('/project'))


@pytest.mark.parametrize('commands, language, expected', (
    pytest.param({}, 'go', 'go run {filename}', id='default'),
    pytest.param({'py': 'python3 -u {filename}'}, 'python', 'python3 -u {filename}', id='alias'),
    pytest.param({}, 'swift', None, id='unknown'),
))
def test_ide_command(commands: dict[str, str], language: str, expected: str | None) -> None:
    """Configured IDE commands are merged over defaults."""
    assert IdeExecutionSettings(commands=commands).command_for(language) == expected
