"""Logging configuration.

Library modules log through the shared loguru `logger`. The package
disables its own records on import, so embedding applications and the
pytest plugin stay quiet until `configure` is called, typically by the
command-line interface.

Verbosity levels:
    0 = warnings only
    1 = progress of procedures and variants (`-v`)
    2 = actions and parsing details (`-vv`)
    3 = trace (`-vvv`)
"""

from sys import stderr
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from typing import TextIO

PACKAGE = 'pytest_proctest'

LOG_FORMAT = (
    '<green>{time:HH:mm:ss}</green> │ '
    '<level>{level: <7}</level> │ '
    '<cyan>{name: <32}</cyan> ║ '
    '<level>{message}</level>'
)

LEVELS: dict[int, str] = {
    0: 'WARNING',
    1: 'INFO',
    2: 'DEBUG',
    3: 'TRACE',
}


def level_for(verbosity: int) -> str:
    """Map a verbosity count to a loguru level name."""
    return LEVELS[max(0, min(verbosity, max(LEVELS)))]


def configure(verbosity: int = 0, sink: 'TextIO | None' = None) -> int:
    """Enable package logging to a stream.

    Previously added handlers are removed.

    Args:
        verbosity: Verbosity count.
        sink: Output stream, standard error by default.

    Returns:
        Identifier of the added handler.
    """
    logger.remove()
    logger.enable(PACKAGE)

    return logger.add(
        sink or stderr,
        format=LOG_FORMAT,
        level=level_for(verbosity),
        colorize=sink is None,
    )
