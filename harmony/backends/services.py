"""Backend service contracts, capability configuration and the service catalog."""

from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from harmony.models.data_operation import DataOperation
from harmony.models.request_context import RequestContext


class CallbackContract(StrEnum):
    """How many callbacks a backend sends per operation.

    ``single_shot`` backends call back once and that call is terminal.
    ``multi_part`` backends may send partial callbacks (``partial=true``)
    before one terminal callback.
    """

    SINGLE_SHOT = "single_shot"
    MULTI_PART = "multi_part"


class ServiceConfig(BaseModel):
    """Capabilities and connection details of one backend service."""

    name: str = Field(min_length=1)
    type: str = "http"
    url: str | None = None
    collections: list[str] = Field(default_factory=list)
    formats: list[str] = Field(default_factory=list)
    # Can complete within the client's request/response cycle
    synchronous: bool = True
    # Completes by calling back a bound URL rather than in its invoke response
    async_callback: bool = True
    callback_contract: CallbackContract = CallbackContract.SINGLE_SHOT
    timeout_seconds: float | None = Field(default=None, gt=0)
    headers: dict[str, str] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("collections", "formats")
    @classmethod
    def _dedupe(cls, values: list[str]) -> list[str]:
        return list(dict.fromkeys(value.strip() for value in values if value.strip()))

    @model_validator(mode="after")
    def _check_completion_path(self) -> "ServiceConfig":
        if not self.async_callback and not self.synchronous:
            raise ValueError(f"Service '{self.name}' must be synchronous or support callbacks")
        return self

    def supports_collection(self, collection_id: str) -> bool:
        return collection_id in self.collections

    def supports_format(self, output_format: str | None) -> bool:
        return output_format is None or not self.formats or output_format in self.formats


class ServiceResponse(BaseModel):
    """The response a backend produced for the waiting client."""

    status_code: int = 200
    body: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)
    content_type: str | None = None

    @property
    def location(self) -> str | None:
        return self.headers.get("location")

    @property
    def is_success(self) -> bool:
        return self.status_code < 400

    @classmethod
    def error(cls, message: str, status_code: int = 400) -> "ServiceResponse":
        return cls(status_code=status_code, body=message.encode("utf-8"), content_type="text/plain")

    @classmethod
    def redirect(cls, location: str, status_code: int = 302) -> "ServiceResponse":
        return cls(status_code=status_code, headers={"location": location})


class ServiceCallback(BaseModel):
    """What a backend sent to its bound callback URL."""

    params: dict[str, str] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    content_type: str | None = None


class BackendService(Protocol):
    """Protocol implemented by every backend invoker."""

    config: ServiceConfig

    def invoke(
        self,
        operation: DataOperation,
        context: RequestContext,
        callback_url: str | None = None,
    ) -> ServiceResponse | None:
        """Start the backend.

        Returns the client response for direct backends and None for callback
        backends, whose result arrives later at ``callback_url``.
        """
        ...


class ServiceRegistryDocument(BaseModel):
    version: str = "1.0"
    services: list[ServiceConfig] = Field(default_factory=list)


class ServiceCatalog:
    """Backends available to the dispatcher, in configuration (priority) order."""

    def __init__(self, services: list[BackendService]):
        self.services = list(services)

    def is_collection_supported(self, collection_id: str) -> bool:
        return any(service.config.supports_collection(collection_id) for service in self.services)

    def supporting(self, operation: DataOperation) -> list[BackendService]:
        """Backends configured for every source collection and the output format."""

        collection_ids = operation.collection_ids
        if not collection_ids:
            return []
        return [
            service
            for service in self.services
            if all(service.config.supports_collection(cid) for cid in collection_ids)
            and service.config.supports_format(operation.output_format)
        ]


def build_service(config: ServiceConfig) -> BackendService:
    """Instantiate the invoker implementation for a configured service."""

    service_type = config.type.strip().lower()

    if service_type == "http":
        from harmony.backends.http_service import HttpService

        return HttpService(config)

    raise RuntimeError(f"Unsupported service type configured for '{config.name}': {config.type}")


def load_service_configs(path: str | Path) -> list[ServiceConfig]:
    resolved_path = Path(path)
    if not resolved_path.exists():
        raise RuntimeError(f"Service configuration not found: {resolved_path}")

    with resolved_path.open("r", encoding="utf-8") as file_handle:
        payload = yaml.safe_load(file_handle) or {}
    if not isinstance(payload, dict):
        raise RuntimeError(f"Service configuration '{resolved_path}' must be a YAML mapping")

    document = ServiceRegistryDocument.model_validate(payload)
    names = [service.name for service in document.services]
    if len(names) != len(set(names)):
        raise RuntimeError(f"Duplicate service names in {resolved_path}")
    return document.services


@lru_cache(maxsize=4)
def load_service_catalog(path: str | Path) -> ServiceCatalog:
    return ServiceCatalog([build_service(config) for config in load_service_configs(path)])
