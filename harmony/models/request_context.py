from dataclasses import dataclass, field
from typing import Any

from harmony.log import RequestLogger, request_logger


@dataclass
class RequestContext:
    """Per-request metadata threaded from the frontend through dispatch."""

    id: str
    logger: RequestLogger | None = None
    frontend: str | None = None
    requested_mime_types: list[str] = field(default_factory=list)
    shapefile: dict[str, Any] | None = None
    # Only set by an authenticated admin-surface entry point.
    is_admin_access: bool = False

    def __post_init__(self) -> None:
        if self.logger is None:
            self.logger = request_logger(self.id)
