"""Lifecycle hooks of a run.

Hooks are notified when a run starts, around every procedure variant,
and when the run ends. They let a project prepare shared fixtures such
as a local database before the procedures run, reset state between
variants, and tear everything down afterwards.

Exceptions raised by a hook propagate and abort the run.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from pytest_proctest.schema import ProcedureResult, ProcedureVariant, RunSummary


class LifecycleHooks:
    """Base of lifecycle hooks.

    Every method does nothing; subclasses override the ones they need.
    """

    def before_all(self, files: 'Sequence[Path]') -> None:
        """Called once before the first file of a run.

        Args:
            files: Documentation files about to run.
        """

    def before_each(self, variant: 'ProcedureVariant') -> None:
        """Called before a procedure variant runs."""

    def after_each(self, variant: 'ProcedureVariant', result: 'ProcedureResult') -> None:
        """Called after a procedure variant ran, skipped ones included."""

    def after_all(self, summary: 'RunSummary') -> None:
        """Called once with the summary of a run."""
