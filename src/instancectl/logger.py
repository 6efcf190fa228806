import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logger(
    name: str = "instancectl", level: int = logging.ERROR
) -> logging.Logger:
    """Returns the package logger, writing through rich to stderr."""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # setup may run again from the CLI; keep a single handler
    if not logger.handlers:
        # API payloads contain brackets, so markup stays off
        handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            markup=False,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    return logger


def set_verbose(verbose: bool) -> None:
    """Switches step-level logging on or off."""
    setup_logger(level=logging.DEBUG if verbose else logging.ERROR)


# Quiet by default; hosts opt in to step logs
logger = setup_logger()
