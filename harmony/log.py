"""Logging setup for the ``harmony`` package and request-scoped loggers."""

import logging
from collections.abc import MutableMapping
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach one stream handler to the package logger; safe to call repeatedly."""

    package_logger = logging.getLogger("harmony")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    package_logger.propagate = False

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    return package_logger


class RequestLogger(logging.LoggerAdapter):
    """Prefixes every message with the request id (and component, if any)."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = self.extra or {}
        component = extra.get("component")
        prefix = f"[{extra.get('request_id')}]"
        if component:
            prefix = f"{prefix} [{component}]"
        return f"{prefix} {msg}", kwargs

    def child(self, component: str) -> "RequestLogger":
        return RequestLogger(self.logger, {**(self.extra or {}), "component": component})


def request_logger(request_id: str, name: str = "harmony.request") -> RequestLogger:
    return RequestLogger(logging.getLogger(name), {"request_id": request_id})
