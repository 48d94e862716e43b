"""Pytest plugin and runner testing documentation procedures.

The `pytest_proctest` package parses step-by-step procedures written in
a structured documentation markup, extracts the actions a reader would
perform and runs them to verify the documentation is correct.

Key features:
- a targeted directive parser building an immutable document tree;
- expansion of tabs and composable tutorials into linear variants;
- layered, fuzzy placeholder resolution from configuration, environment
  and project constants;
- prerequisite gating, per-variant working directories and best-effort
  reverse-order cleanup;
- documentation files collected as pytest test items.

Package logging is disabled until `pytest_proctest.log.configure` is
called.
"""

from loguru import logger

logger.disable(__name__)
