"""Log records go to stderr through rich; results go to the sinks, never through logging."""

import logging

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "git_suspect"


def setup_logging(verbose: bool = False, quiet: bool = False, log_file: str | None = None) -> logging.Logger:
    """Configure the ``git_suspect`` logger; safe to call again with new settings."""
    level = logging.ERROR if quiet else logging.DEBUG if verbose else logging.INFO

    handlers: list[logging.Handler] = [
        RichHandler(console=Console(stderr=True), markup=False, show_path=verbose, rich_tracebacks=True)
    ]
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(threadName)s %(levelname)s %(name)s: %(message)s"))
        handlers.append(file_handler)

    logging.basicConfig(level=level, format="%(message)s", handlers=handlers, force=True)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    # GitPython logs every git invocation at DEBUG
    logging.getLogger("git").setLevel(logging.WARNING)
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    if name is None:
        return logging.getLogger(ROOT_LOGGER)
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
