"""Tests for placeholder resolution."""

from typing import TYPE_CHECKING

import pytest

from pytest_proctest.runtime import ExecutionContext, PlaceholderResolver
from pytest_proctest.runtime.resolver import similarity

if TYPE_CHECKING:
    from pytest_proctest.runtime.resolver import ResolutionContext


class FixedStrategy:
    """Strategy resolving every token to a fixed value."""

    name = 'fixed'
    priority = 500

    def resolve(self, token: str, context: 'ResolutionContext') -> str | None:  # noqa: ARG002
        """Return the fixed value."""
        return 'fixed'


@pytest.mark.parametrize('token, environment, expected', (
    pytest.param('<api-key>', {'API_KEY': 'k'}, 'k', id='normalized'),
    pytest.param('<your password>', {'YOUR_PASSWORD': 'p'}, 'p', id='spaces'),
    pytest.param('{+cluster-name+}', {'CLUSTER_NAME': 'c'}, 'c', id='substitution'),
    pytest.param('<username>', {'DB_USERNAME': 'x'}, 'x', id='fuzzy'),
    pytest.param('<username>', {'USER_NAME': 'a', 'DB_USER': 'b'}, None, id='ambiguous'),
    pytest.param('<password>', {'HOME': '/root'}, None, id='unrelated'),
))
def test_resolve_environment(token: str, environment: dict[str, str],
                             expected: str | None) -> None:
    """Tokens resolve from the environment exactly or by a single fuzzy match."""
    context = ExecutionContext(environment=environment)

    assert PlaceholderResolver().resolve(token, context) == expected


def test_mapping_first() -> None:
    """Explicit values take precedence over the environment."""
    context = ExecutionContext(
        environment={'USERNAME': 'env'},
        placeholders={'USERNAME': 'mapped'},
    )

    assert PlaceholderResolver().resolve('<username>', context) == 'mapped'


def test_constants_last() -> None:
    """Constants resolve only what the environment does not."""
    resolver = PlaceholderResolver()

    assert resolver.resolve('{+version+}', ExecutionContext(constants={'version': '7.0'})) == '7.0'
    assert resolver.resolve('{+version+}', ExecutionContext(
        environment={'VERSION': '8.0'},
        constants={'version': '7.0'},
    )) == '8.0'


def test_suggest() -> None:
    """Suggestions list candidates by descending similarity."""
    context = ExecutionContext(environment={'DB_USER': 'b', 'PATH': '/bin', 'USER_NAME': 'a'})

    assert PlaceholderResolver().suggest('<username>', context) == ['USER_NAME', 'DB_USER']


@pytest.mark.parametrize('token, name, expected', (
    pytest.param('<username>', 'USERNAME', 1.0, id='same'),
    pytest.param('<user name>', 'USER_NAME', 1.0, id='separators'),
    pytest.param('<username>', 'DB_USERNAME', 1.0, id='prefixed'),
    pytest.param('<username>', 'DB_USER', 0.8, id='segment'),
))
def test_similarity(token: str, name: str, expected: float) -> None:
    """Similarity compares names without case or separators."""
    assert similarity(token, name) == expected


def test_threshold() -> None:
    """Candidates below the threshold are not used."""
    context = ExecutionContext(environment={'DB_USER': 'x'})

    assert PlaceholderResolver().resolve('<username>', context) == 'x'
    assert PlaceholderResolver(threshold=0.9).resolve('<username>', context) is None


def test_custom_strategy_priority() -> None:
    """Added strategies take their place in the chain by priority."""
    resolver = PlaceholderResolver()
    resolver.add_strategy(FixedStrategy())

    context = ExecutionContext(placeholders={'<username>': 'mapped'})

    assert resolver.strategies[0].name == 'fixed'
    assert resolver.resolve('<username>', context) == 'fixed'


def test_resolve_all() -> None:
    """Tokens are split into resolved values and unresolved tokens."""
    context = ExecutionContext(environment={'API_KEY': 'k'})

    resolved, unresolved = PlaceholderResolver().resolve_all(('<api-key>', '<secret>'), context)

    assert resolved == {'<api-key>': 'k'}
    assert unresolved == ['<secret>']
