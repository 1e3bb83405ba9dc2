import logging

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LEVEL = logging.INFO


def verbosity_level(verbose: bool = False, quiet: bool = False) -> int:
    """Maps the -v/-q flags to a logging level."""
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return DEFAULT_LEVEL


def setup_logger(
    name: str = "poolkeeper",
    level: int = DEFAULT_LEVEL,
    console: Console | None = None,
) -> logging.Logger:
    """
    Returns the named logger writing through a single RichHandler on stderr.
    Later calls only adjust the level.
    """
    log = logging.getLogger(name)
    log.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in log.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            rich_tracebacks=True,
            markup=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        log.addHandler(handler)
        # Records are rendered here only, not again by root handlers
        log.propagate = False

    return log


# Shared fallback for components constructed without their own logger
logger = setup_logger()
