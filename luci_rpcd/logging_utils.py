from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

TRACE_LEVEL = 5
SYSLOG_SOCKET = "/dev/log"


def _trace(self: logging.Logger, message: str, *args: object, **kwargs: object) -> None:
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, message, args, **kwargs)


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    try:
        from colorlog import ColoredFormatter  # type: ignore

        handler.setFormatter(
            ColoredFormatter(
                "%(log_color)s%(asctime)s %(levelname)s %(name)s %(message)s",
                log_colors={
                    "TRACE": "cyan",
                    "DEBUG": "blue",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            )
        )
    except ImportError:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    return handler


def configure_logging(level: int, use_syslog: bool = False) -> None:
    """Set up console logging, plus the local syslog socket when requested."""
    logging.addLevelName(TRACE_LEVEL, "TRACE")
    setattr(logging.Logger, "trace", _trace)
    handlers: list[logging.Handler] = [_console_handler()]
    if use_syslog and Path(SYSLOG_SOCKET).exists():
        syslog = logging.handlers.SysLogHandler(address=SYSLOG_SOCKET)
        syslog.setFormatter(logging.Formatter("luci-rpcd[%(process)d]: %(name)s %(message)s"))
        handlers.append(syslog)
    logging.basicConfig(level=level, handlers=handlers, force=True)


def resolve_log_level(verbosity: int, fallback: str) -> int:
    if verbosity >= 2:
        return TRACE_LEVEL
    if verbosity == 1:
        return logging.DEBUG
    if fallback.upper() == "TRACE":
        return TRACE_LEVEL
    return logging._nameToLevel.get(fallback.upper(), logging.INFO)
