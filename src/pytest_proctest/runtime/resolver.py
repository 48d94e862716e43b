"""Placeholder resolution.

Placeholders are tokens in documentation standing in for values a reader
substitutes (`<username>`, `{+api-version+}`). They are resolved by an
ordered chain of strategies; each has a fixed priority, and the chain
returns the first non-null result, highest priority first:

1. an explicit mapping from configuration;
2. an exact match in the environment after normalizing names;
3. a fuzzy match in the environment, accepted only when exactly one
   variable clears the similarity threshold;
4. the project constants.

What happens to tokens left unresolved is decided by the caller's
policy, not by the resolver.
"""

from typing import TYPE_CHECKING, Protocol

from pytest_proctest.names import SUBSTITUTION_PATTERN, normalize_name

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

#: Minimal similarity for a fuzzy candidate.
SIMILARITY_THRESHOLD = 0.6

#: Minimal length of a variable name segment matched inside a token.
SEGMENT_MIN_LENGTH = 4


class ResolutionContext(Protocol):
    """Values visible to resolution strategies."""

    @property
    def environment(self) -> 'Mapping[str, str]':
        """Environment snapshot."""
        ...  # pragma: no cover

    @property
    def constants(self) -> 'Mapping[str, str]':
        """Project constants."""
        ...  # pragma: no cover

    @property
    def placeholders(self) -> 'Mapping[str, str]':
        """Explicit placeholder values."""
        ...  # pragma: no cover


class ResolutionStrategy(Protocol):
    """A step of the resolution chain."""

    name: str
    priority: int

    def resolve(self, token: str, context: ResolutionContext) -> str | None:
        """Return the value of a token, or None."""
        ...  # pragma: no cover


def levenshtein(left: str, right: str) -> int:
    """Compute the edit distance between two strings."""
    if len(left) < len(right):
        left, right = right, left

    previous = list(range(len(right) + 1))
    for row, char in enumerate(left, start=1):
        current = [row]
        for column, other in enumerate(right, start=1):
            current.append(min(
                previous[column] + 1,
                current[column - 1] + 1,
                previous[column - 1] + (char != other),
            ))
        previous = current

    return previous[-1]


def similarity(token: str, name: str) -> float:
    """Score how likely a variable name denotes a placeholder token.

    Both are normalized and compared without separators by normalized
    edit distance. A significant segment of the variable name found
    inside the token (`USER` in `<username>`) also counts, weighted by
    how much of the token it covers.

    Args:
        token: Placeholder token or name.
        name: Environment variable name.

    Returns:
        A score between 0 and 1.
    """
    token_name = normalize_name(token)
    variable = normalize_name(name)

    compact_token = token_name.replace('_', '')
    compact_variable = variable.replace('_', '')
    if not compact_token or not compact_variable:
        return 0.0

    score = 1 - levenshtein(compact_token, compact_variable) / max(len(compact_token), len(compact_variable))

    for segment in variable.split('_'):
        if len(segment) >= SEGMENT_MIN_LENGTH and segment in compact_token:
            score = max(score, 0.6 + 0.4 * len(segment) / len(compact_token))

    return round(score, 4)


class MappingStrategy:
    """Exact match against explicit placeholder values."""

    name = 'mapping'
    priority = 400

    def resolve(self, token: str, context: ResolutionContext) -> str | None:
        """Look the token up as written, then by normalized name."""
        mapping = context.placeholders
        if token in mapping:
            return mapping[token]

        wanted = normalize_name(token)
        for key, value in mapping.items():
            if normalize_name(key) == wanted:
                return value

        return None


class EnvironmentStrategy:
    """Exact match against the environment after normalizing names."""

    name = 'environment'
    priority = 300

    def resolve(self, token: str, context: ResolutionContext) -> str | None:
        """Find a variable whose normalized name equals the token's."""
        wanted = normalize_name(token)
        if not wanted:
            return None

        for key, value in context.environment.items():
            if normalize_name(key) == wanted:
                return value

        return None


class FuzzyEnvironmentStrategy:
    """Similarity match against the environment."""

    name = 'fuzzy'
    priority = 200

    def __init__(self, threshold: float = SIMILARITY_THRESHOLD) -> None:
        """Initialize the strategy.

        Args:
            threshold: Minimal similarity of a candidate.
        """
        self.threshold = threshold

    def candidates(self, token: str, environment: 'Iterable[str]') -> list[tuple[str, float]]:
        """Rank variable names clearing the threshold.

        Returns:
            Names with scores, best first; equal scores keep input order.
        """
        scored = (
            (name, similarity(token, name))
            for name in environment
        )

        return sorted(
            ((name, score) for name, score in scored if score >= self.threshold),
            key=lambda item: item[1],
            reverse=True,
        )

    def resolve(self, token: str, context: ResolutionContext) -> str | None:
        """Return the value of the only candidate, or None."""
        candidates = self.candidates(token, context.environment)
        if len(candidates) != 1:
            return None

        name, _ = candidates[0]

        return context.environment[name]


class ConstantsStrategy:
    """Lookup against project constants."""

    name = 'constants'
    priority = 100

    def resolve(self, token: str, context: ResolutionContext) -> str | None:
        """Look the substitution name up, then by normalized name."""
        constants = context.constants
        if (match := SUBSTITUTION_PATTERN.fullmatch(token)) and match.group('name') in constants:
            return constants[match.group('name')]

        wanted = normalize_name(token)
        for key, value in constants.items():
            if normalize_name(key) == wanted:
                return value

        return None


class PlaceholderResolver:
    """Ordered chain of resolution strategies.

    Attributes:
        strategies: Strategies sorted by descending priority.
    """

    def __init__(self, strategies: 'Iterable[ResolutionStrategy] | None' = None, *,
                 threshold: float = SIMILARITY_THRESHOLD) -> None:
        """Initialize the resolver.

        Args:
            strategies: Strategies of the chain; the built-in chain when omitted.
            threshold: Similarity threshold of the built-in fuzzy strategy
                and of suggestions.
        """
        self.fuzzy = FuzzyEnvironmentStrategy(threshold)
        if strategies is None:
            strategies = (
                MappingStrategy(),
                EnvironmentStrategy(),
                self.fuzzy,
                ConstantsStrategy(),
            )

        self.strategies: list[ResolutionStrategy] = []
        for strategy in strategies:
            self.add_strategy(strategy)

    def add_strategy(self, strategy: 'ResolutionStrategy') -> None:
        """Insert a strategy keeping the chain ordered by priority."""
        self.strategies.append(strategy)
        self.strategies.sort(key=lambda item: item.priority, reverse=True)

    def resolve(self, token: str, context: ResolutionContext) -> str | None:
        """Resolve a placeholder token.

        Args:
            token: Token as written, delimiters included.
            context: Values visible to strategies.

        Returns:
            The first non-null strategy result, or None.
        """
        for strategy in self.strategies:
            if (value := strategy.resolve(token, context)) is not None:
                return value

        return None

    def resolve_all(self, tokens: 'Iterable[str]',
                    context: ResolutionContext) -> tuple[dict[str, str], list[str]]:
        """Resolve several tokens.

        Returns:
            Resolved tokens with their values, and unresolved tokens.
        """
        resolved: dict[str, str] = {}
        unresolved: list[str] = []
        for token in tokens:
            if (value := self.resolve(token, context)) is None:
                unresolved.append(token)
            else:
                resolved[token] = value

        return resolved, unresolved

    def suggest(self, token: str, context: ResolutionContext) -> list[str]:
        """List environment variables the token may denote.

        Returns:
            Fuzzy candidates sorted by descending similarity.
        """
        return [name for name, _ in self.fuzzy.candidates(token, context.environment)]
