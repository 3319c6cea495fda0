"""Colored logging formatter for the PyRaQC command-line tools.

- set_rootlogger(): attach a stderr handler with ColorfulFormatter
- ColorfulFormatter: level name and message colored by log level
"""
import logging
from typing import Dict, Optional

LOGGING_FORMAT: str = "[%(asctime)s | %(levelname)s] %(name)10s : %(message)s"


def set_rootlogger(colorize: bool, log_level: int) -> logging.Logger:
    """Configure the root logger for a command-line run.

    Args:
        colorize: Whether to emit ANSI colors
        log_level: Logging level such as logging.INFO

    Returns:
        The root logger
    """
    rl = logging.getLogger('')

    h = logging.StreamHandler()
    h.setFormatter(ColorfulFormatter(fmt=LOGGING_FORMAT, colorize=colorize))

    rl.addHandler(h)
    rl.setLevel(log_level)

    return rl


class ColorfulFormatter(logging.Formatter):
    """Formatter that colors the level name and, for errors, the message.

    Colors: INFO cyan, WARNING yellow, ERROR red, CRITICAL magenta.
    Messages of ERROR and above are printed bold.
    """
    DEFAULT_COLOR: int = 39
    LOGLEVEL2COLOR: Dict[int, int] = {
        logging.INFO: 36, logging.WARNING: 33, logging.ERROR: 31, logging.CRITICAL: 35
    }

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None,
                 colorize: bool = True) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colorize = colorize
        self._template = self._style._fmt
        if colorize:
            self._template = self._template.replace(
                "%(levelname)s", "\033[{col}m%(levelname)8s\033[0m"
            ).replace(
                "%(message)s", "\033[{msg}m%(message)s\033[0m"
            )
        else:
            self._template = self._template.replace("%(levelname)s", "%(levelname)8s")

    def fill_format(self, record: logging.LogRecord) -> str:
        fmt = self._template
        if self.colorize:
            fmt = fmt.format(col=self.LOGLEVEL2COLOR.get(record.levelno, self.DEFAULT_COLOR),
                             msg=0 if record.levelno < logging.ERROR else 1)
        return fmt % record.__dict__

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        if self.usesTime():
            record.asctime = self.formatTime(record, self.datefmt)

        s = self.fill_format(record)

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            if s[-1:] != "\n":
                s = s + "\n"
            s = s + record.exc_text

        return s
