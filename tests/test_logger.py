import logging

import pytest
from rich.logging import RichHandler

from poolkeeper.logger import setup_logger, verbosity_level


@pytest.mark.parametrize(
    "verbose,quiet,level",
    [
        (False, False, logging.INFO),
        (True, False, logging.DEBUG),
        (False, True, logging.WARNING),
    ],
)
def test_verbosity_level(verbose, quiet, level):
    assert verbosity_level(verbose, quiet) == level


def test_setup_logger_attaches_one_handler():
    log = setup_logger("poolkeeper.test-handlers")
    setup_logger("poolkeeper.test-handlers", level=logging.DEBUG)

    handlers = [h for h in log.handlers if isinstance(h, RichHandler)]
    assert len(handlers) == 1
    assert log.level == logging.DEBUG
    assert log.propagate is False
