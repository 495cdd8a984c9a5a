from datetime import datetime
from pytz import timezone
import logging.config
import logging.handlers
import logging
import os
from logging import Logger


debug_mode = os.getenv("LOG_LEVEL", "info").lower() == "debug"
loglevel = logging.INFO if not debug_mode else logging.DEBUG

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Supported ANSI color names for the color= parameter
_ANSI_RESET = "\033[0m"
_COLOR_MAP: dict[str, str] = {
    "cyan":    "\033[36m",
    "green":   "\033[32m",
    "yellow":  "\033[33m",
    "red":     "\033[31m",
    "magenta": "\033[35m",
    "blue":    "\033[34m",
    "white":   "\033[37m",
}

# pdfminer (used by pdfplumber) warns once per page for common PDF quirks
_PDFMINER_NOISE = (
    "CropBox missing from /Page",
    "Cannot set gray non-stroke color",
    "Cannot set gray stroke color",
    "Could not get FontBBox",
)


class PdfMinerFilter(logging.Filter):
    """Drop per-page pdfminer warnings about harmless PDF quirks."""

    def filter(self, record):
        if record.name.startswith("pdfminer"):
            msg = str(record.msg)
            if any(noise in msg for noise in _PDFMINER_NOISE):
                return False
        return True


class CustomFormatter(logging.Formatter):
    def __init__(self, tz_name, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record):
        try:
            original_msg = record.getMessage()
        except (TypeError, ValueError):
            # third party loggers occasionally pass args that do not match the format string
            original_msg = str(record.msg)

        if record.levelno >= logging.ERROR:
            record.msg = "⛔ " + original_msg
        elif record.levelno == logging.WARNING:
            record.msg = "⚠️ " + original_msg
        else:
            record.msg = original_msg

        # args are already merged into msg
        record.args = ()
        return super().format(record)


class ColoredFormatter(CustomFormatter):
    """Console formatter with optional per-message ANSI color support.

    Colors are applied only when the log record carries a ``color`` attribute,
    which is set by passing ``color=<name>`` to :class:`ColorLogger` methods.
    """

    def format(self, record) -> str:
        line = super().format(record)
        color_name = getattr(record, "color", None)
        ansi = _COLOR_MAP.get(color_name, "") if color_name else ""
        return f"{ansi}{line}{_ANSI_RESET}" if ansi else line


class ColorLogger:
    """Thin wrapper around :class:`logging.Logger` that adds an optional
    ``color=`` keyword argument to all log methods.

    Usage::

        logger.info("Packed %d documents", 3, color="green")

    Colors are only applied in the console handler; the file handler always
    writes plain text.
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    def _log(self, level: int, msg, args: tuple, color: str | None, kwargs: dict) -> None:
        if color is not None:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "color": color}
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.DEBUG, msg, args, color, kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.INFO, msg, args, color, kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.WARNING, msg, args, color, kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.ERROR, msg, args, color, kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, args, color, kwargs)

    def __getattr__(self, name):
        """Delegate all other Logger attributes (e.g. setLevel, handlers) transparently."""
        return getattr(self._logger, name)


def _formatter(formatter_class: type, tz_name: str) -> dict:
    return {"()": formatter_class, "format": LOG_FORMAT, "datefmt": DATE_FORMAT, "tz_name": tz_name}


def setup_logging(name: str = "canvas_coach") -> ColorLogger:
    """Configure console and file logging and return the application logger.

    The log file is ``$ROOT_DIR/logs/app.log`` (ROOT_DIR defaults to the working
    directory), rotated at LOG_MAX_BYTES. Timestamps use ``$TIMEZONE``.
    """
    log_dir = os.path.join(os.getenv("ROOT_DIR") or os.getcwd(), "logs")
    tz_name = os.getenv("TIMEZONE", "Europe/Amsterdam")
    os.makedirs(log_dir, exist_ok=True)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"pdfminer_noise": {"()": PdfMinerFilter}},
        "formatters": {
            "plain": _formatter(CustomFormatter, tz_name),
            "colored": _formatter(ColoredFormatter, tz_name),
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "colored",
                "filters": ["pdfminer_noise"],
                "level": loglevel,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": os.path.join(log_dir, "app.log"),
                "maxBytes": int(os.getenv("LOG_MAX_BYTES", 5 * 1024 * 1024)),
                "backupCount": 3,
                "encoding": "utf-8",
                "formatter": "plain",
                "filters": ["pdfminer_noise"],
                "level": loglevel,
            },
        },
        "root": {"handlers": ["console", "file"], "level": loglevel},
    })

    # third party loggers only report problems unless debugging
    for noisy_logger, quiet_level in (("httpx", logging.WARNING), ("pdfminer", logging.ERROR)):
        logging.getLogger(noisy_logger).setLevel(logging.DEBUG if debug_mode else quiet_level)

    return ColorLogger(logging.getLogger(name))
