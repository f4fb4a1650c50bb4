from __future__ import annotations

import logging
import sys

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",  # cyan
    "INFO": "\033[37m",  # light gray
    "WARNING": "\033[33m",  # yellow
    "ERROR": "\033[31m",  # red
    "CRITICAL": "\033[41m",  # red background
}
_RESET = "\033[0m"
_DIM = "\033[2m"


class AnsiColorFormatter(logging.Formatter):
    """Formatter that adds ANSI colors and a compact timestamp."""

    def __init__(self, colored: bool = True) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S"
        )
        self.colored = colored and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not self.colored:
            return base
        level = record.levelname.upper()
        color = _LEVEL_COLORS.get(level, "")
        # Expect format "HH:MM:SS LEVEL logger: msg"
        ts, _, rest = base.partition(" ")
        if color:
            rest = rest.replace(level, f"{color}{level}{_RESET}", 1)
        return f"{_DIM}{ts}{_RESET} {rest}"


def _have_console_handler(logger: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler)
        and isinstance(h.formatter, AnsiColorFormatter)
        for h in logger.handlers
    )


def configure_logging(level=logging.INFO, use_color: bool = True) -> logging.Logger:
    """
    Configure the root logger with an ANSI-colored console handler (stderr).
    Accepts a numeric level or a level name such as "DEBUG".
    Idempotent across multiple calls.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger()
    logger.setLevel(level)

    if not _have_console_handler(logger):
        console = logging.StreamHandler(stream=sys.stderr)
        console.setFormatter(AnsiColorFormatter(colored=use_color))
        logger.addHandler(console)

    # bleak is chatty at DEBUG
    logging.getLogger("bleak").setLevel(max(level, logging.INFO))
    return logger
