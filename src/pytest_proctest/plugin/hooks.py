"""Hooks pytest-proctest adds to pytest.

Implement them in a `conftest.py` or a plugin to act around every
procedure variant collected with `--proctest`. Session-wide setup and
teardown use pytest's own `pytest_sessionstart` and
`pytest_sessionfinish`.
"""

from typing import TYPE_CHECKING

import pytest

from pytest_proctest.runtime import LifecycleHooks

if TYPE_CHECKING:
    from pluggy import HookRelay

    from pytest_proctest.schema import ProcedureResult, ProcedureVariant


@pytest.hookspec
def pytest_proctest_before_variant(variant: 'ProcedureVariant') -> None:
    """Called before a procedure variant runs.

    Args:
        variant: Linearized procedure about to run.
    """


@pytest.hookspec
def pytest_proctest_after_variant(variant: 'ProcedureVariant', result: 'ProcedureResult') -> None:
    """Called after a procedure variant ran, skipped ones included.

    Args:
        variant: Linearized procedure that ran.
        result: Result of the variant.
    """


class PytestHooks(LifecycleHooks):
    """Relays per-variant lifecycle events to the pytest hooks."""

    def __init__(self, relay: 'HookRelay') -> None:
        """Initialize the relay.

        Args:
            relay: Hook caller of the pytest configuration.
        """
        self.relay = relay

    def before_each(self, variant: 'ProcedureVariant') -> None:
        """Call `pytest_proctest_before_variant`."""
        self.relay.pytest_proctest_before_variant(variant=variant)

    def after_each(self, variant: 'ProcedureVariant', result: 'ProcedureResult') -> None:
        """Call `pytest_proctest_after_variant`."""
        self.relay.pytest_proctest_after_variant(variant=variant, result=result)
