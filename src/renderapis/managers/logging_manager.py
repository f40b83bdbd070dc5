"""
# Logging Manager

Single entry point for application loggers.

Every component asks for a logger through `get_logger()`, optionally with a
bracketed component prefix that is prepended to each message:

```python
from renderapis.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
db_logger.info("Connected to %s", host)
# 2024-01-01 12:00:00,000 | INFO     | RenderAPIs | [DATABASE] Connected to localhost
```

The root `RenderAPIs` logger is configured once (stream handler, format and
level from `LOG_LEVEL`); subsequent calls only hand out adapters.
"""

import logging
import sys
from typing import Any, MutableMapping, Tuple

from renderapis.config import settings

DEFAULT_LOGGER_NAME = "RenderAPIs"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

_configured = False


class PrefixedLogger(logging.LoggerAdapter):
    """Logger adapter that prefixes every message with a component tag."""

    def __init__(self, logger: logging.Logger, prefix: str = ""):
        super().__init__(logger, {"prefix": prefix})
        self.prefix = prefix

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        if self.prefix:
            return f"{self.prefix} {msg}", kwargs
        return msg, kwargs


def _configure_root(logger: logging.Logger) -> None:
    global _configured
    if _configured:
        return

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    logger.setLevel(level)
    logger.propagate = False
    _configured = True


def get_logger(name: str = DEFAULT_LOGGER_NAME, prefix: str = "") -> PrefixedLogger:
    """
    Return a logger for `name`, tagging each message with `prefix`.

    Args:
        name: Logger name; children of `RenderAPIs` share its handler.
        prefix: Component tag such as `"[DATABASE]"`.

    Returns:
        PrefixedLogger: A stdlib `LoggerAdapter` exposing the usual logging methods.
    """
    root = logging.getLogger(DEFAULT_LOGGER_NAME)
    _configure_root(root)
    logger = root if name == DEFAULT_LOGGER_NAME else logging.getLogger(f"{DEFAULT_LOGGER_NAME}.{name}")
    return PrefixedLogger(logger, prefix)
