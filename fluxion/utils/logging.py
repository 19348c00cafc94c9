import logging

LOGGER_NAME = "fluxion"

# verbosity levels used by the CLI and the `global.verbosity` config key
VERBOSITY_TO_LEVEL = {
    0: logging.CRITICAL,
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}

_FORMAT = "(%(asctime)s) [%(name)s] %(levelname)s: %(message)s"
_CLI_FORMAT = "[%(levelname)s] %(message)s"


def _level_for(verbosity: int) -> int:
    try:
        verbosity = int(verbosity)
    except (TypeError, ValueError):
        verbosity = 3
    verbosity = max(0, min(4, verbosity))
    return VERBOSITY_TO_LEVEL[verbosity]


def _configure(verbosity: int, fmt: str) -> logging.Logger:
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(_level_for(verbosity))
    # replace handlers so repeated setup (tests, reloader) does not duplicate lines
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt))
    root.addHandler(handler)
    root.propagate = False
    return root


def setup_logging(verbosity: int = 3) -> logging.Logger:
    """Configure the package logger for long-running services."""
    return _configure(verbosity, _FORMAT)


def setup_cli_logging(verbosity: int = 3) -> logging.Logger:
    """Configure terse logging for the command line."""
    return _configure(verbosity, _CLI_FORMAT)


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger living under the package namespace.

    Modules call this with ``__name__``; names outside the package are
    nested under it so one setup call controls everything.
    """
    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
