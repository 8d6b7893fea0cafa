"""Backend invoker that POSTs serialized operations to an HTTP service."""

import logging

import httpx

from harmony.backends.services import ServiceConfig, ServiceResponse
from harmony.errors import BackendError
from harmony.models.data_operation import DataOperation
from harmony.models.request_context import RequestContext

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


def response_from_http(response: httpx.Response) -> ServiceResponse:
    """Translate a direct backend reply into the client response."""

    if response.is_redirect and "location" in response.headers:
        return ServiceResponse.redirect(response.headers["location"], status_code=response.status_code)
    if response.is_error:
        message = response.text.strip() or f"Service request failed with an unknown error ({response.status_code})"
        return ServiceResponse.error(message, status_code=response.status_code)
    return ServiceResponse(
        status_code=response.status_code,
        body=response.content,
        content_type=response.headers.get("content-type"),
    )


class HttpService:
    """Sends ``{"operation": ...}`` to ``config.url``.

    Callback services are expected to acknowledge with a 2xx and deliver the
    result to the callback URL embedded in the operation. Direct services
    answer the POST with the result itself, which may be a redirect.
    """

    def __init__(self, config: ServiceConfig, transport: httpx.BaseTransport | None = None):
        if not config.url:
            raise RuntimeError(f"HTTP service '{config.name}' requires a url")
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.config.timeout_seconds or DEFAULT_TIMEOUT_SECONDS,
            headers=self.config.headers,
            follow_redirects=False,
            transport=self._transport,
        )

    def invoke(
        self,
        operation: DataOperation,
        context: RequestContext,
        callback_url: str | None = None,
    ) -> ServiceResponse | None:
        payload = {"operation": operation.serialize(callback=callback_url)}
        context.logger.info("Invoking %s at %s", self.config.name, self.config.url)
        try:
            with self._client() as client:
                response = client.post(self.config.url, json=payload)
        except httpx.HTTPError as exc:
            raise BackendError(f"Service {self.config.name} could not be reached: {exc}") from exc

        if not self.config.async_callback:
            return response_from_http(response)

        if response.is_error:
            raise BackendError(
                f"Service {self.config.name} rejected the operation ({response.status_code}): {response.text.strip()}"
            )
        return None
