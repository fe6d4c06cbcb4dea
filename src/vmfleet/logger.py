import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logger(verbose: bool = False, name: str = "vmfleet") -> logging.Logger:
    """
    Returns the package logger, writing to stderr through RichHandler.
    Only errors are shown unless verbose is set, which enables debug output.
    Safe to call again later to change the level.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG if verbose else logging.ERROR)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            markup=False,
            show_path=verbose,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    return logger


logger = setup_logger()
