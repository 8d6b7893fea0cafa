"""Selects a backend for an operation, persists its job and invokes it.

Direct backends answer within :meth:`ServiceDispatcher.dispatch`. Callback
backends get a bound callback URL and complete the returned
:class:`Dispatch` later, when the bound handler runs on the callback
endpoint's thread. ``dispatch`` itself never waits for a callback.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from functools import partial
from typing import Any

from sqlalchemy import Engine

from harmony.backends.service_response import CallbackRegistry
from harmony.backends.services import (
    BackendService,
    CallbackContract,
    ServiceCallback,
    ServiceCatalog,
    ServiceConfig,
    ServiceResponse,
)
from harmony.db import transaction
from harmony.errors import DispatchError
from harmony.models.data_operation import DataOperation
from harmony.models.job import MAX_MESSAGE_LENGTH, Job, JobLink, JobStatus
from harmony.models.request_context import RequestContext

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_TIMEOUT_SECONDS = 60.0

# Query parameters of a partial callback that are not forwarded as headers
_PARTIAL_CONTROL_PARAMS = {"partial", "progress"}


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def _status_param(params: dict[str, str], default: int) -> int:
    try:
        status = int(params.get("status", default))
    except ValueError:
        return default
    return status if 100 <= status <= 599 else default


def response_from_callback(callback: ServiceCallback, headers: dict[str, str] | None = None) -> ServiceResponse:
    """Turn a terminal backend callback into the client response.

    ``error`` wins over ``redirect``, which wins over a posted body. A
    ``status`` parameter overrides the default code of each outcome.
    """

    params = callback.params
    forwarded = dict(headers or {})
    if params.get("error"):
        return ServiceResponse.error(params["error"], status_code=_status_param(params, 400))
    if params.get("redirect"):
        return ServiceResponse(
            status_code=_status_param(params, 302),
            headers={**forwarded, "location": params["redirect"]},
        )
    if callback.body:
        content_type = callback.content_type or forwarded.pop("content-type", None)
        return ServiceResponse(
            status_code=_status_param(params, 200),
            body=callback.body,
            headers=forwarded,
            content_type=content_type,
        )
    return ServiceResponse.error("The backend service provided an empty response", status_code=500)


class Dispatch:
    """Handle on one dispatched operation and its eventual client response."""

    def __init__(self, job: Job, service: ServiceConfig, context: RequestContext):
        self.job = job
        self.service = service
        self.context = context
        self.callback_url: str | None = None
        self.lock = threading.Lock()
        self.partial_headers: dict[str, str] = {}
        self.timer: threading.Timer | None = None
        self._future: Future[ServiceResponse] = Future()

    @property
    def status(self) -> JobStatus:
        return JobStatus(self.job.status)

    @property
    def done(self) -> bool:
        return self._future.done()

    def wait(self, timeout: float | None = None) -> ServiceResponse | None:
        """Block until the client response is known; None if ``timeout`` passes first."""

        try:
            return self._future.result(timeout=timeout)
        except FutureTimeoutError:
            return None

    async def wait_async(self, timeout: float | None = None) -> ServiceResponse | None:
        """Await the client response without holding a worker thread; None on timeout."""

        waiter = asyncio.wrap_future(self._future)
        done, _ = await asyncio.wait({waiter}, timeout=timeout)
        return waiter.result() if done else None


class ServiceDispatcher:
    def __init__(
        self,
        catalog: ServiceCatalog,
        registry: CallbackRegistry,
        engine: Engine,
        *,
        callback_timeout_seconds: float = DEFAULT_CALLBACK_TIMEOUT_SECONDS,
    ):
        self.catalog = catalog
        self.registry = registry
        self.engine = engine
        self.callback_timeout_seconds = callback_timeout_seconds

    def select_service(self, operation: DataOperation) -> BackendService:
        """Pick the first configured backend that can serve ``operation``.

        Raises:
            DispatchError: if no backend supports the collections and format,
                or the operation requires a synchronous response and only
                asynchronous backends support it.
        """

        candidates = self.catalog.supporting(operation)
        if not candidates:
            raise DispatchError(
                "There is no service configured to support transformations on the provided "
                f"collections: {', '.join(operation.collection_ids) or 'none'}",
                DispatchError.NO_SUPPORTING_BACKEND,
            )
        if operation.require_synchronous:
            candidates = [service for service in candidates if service.config.synchronous]
            if not candidates:
                raise DispatchError(
                    "The request requires a synchronous response, but only asynchronous services "
                    "support the requested collections",
                    DispatchError.SYNCHRONOUS_REQUIRED,
                )
        return candidates[0]

    def dispatch(self, operation: DataOperation, context: RequestContext, request_url: str) -> Dispatch:
        service = self.select_service(operation)
        config = service.config
        log = context.logger.child("dispatcher")

        job = Job(
            request_id=context.id,
            request=request_url,
            username=operation.user,
            frontend=context.frontend,
            service_name=config.name,
            operation=operation.serialize(),
        )
        dispatch = Dispatch(job, config, context)
        with transaction(self.engine) as tx:
            job.save(tx)
        log.info("Created job %s for service %s", job.request_id, config.name)

        if config.async_callback:
            self._invoke_with_callback(service, operation, dispatch)
        else:
            self._invoke_direct(service, operation, dispatch)
        return dispatch

    def _invoke_direct(self, service: BackendService, operation: DataOperation, dispatch: Dispatch) -> None:
        with dispatch.lock:
            self._advance(dispatch, JobStatus.DISPATCHED)
        try:
            response = service.invoke(operation, dispatch.context)
        except Exception as exc:
            self._abort(dispatch, exc)
            raise
        if response is None:
            response = ServiceResponse.error(f"Service {dispatch.service.name} returned no response", 500)
        with dispatch.lock:
            self._finish(dispatch, response)

    def _invoke_with_callback(self, service: BackendService, operation: DataOperation, dispatch: Dispatch) -> None:
        timeout = dispatch.service.timeout_seconds or self.callback_timeout_seconds
        try:
            with dispatch.lock:
                self._advance(dispatch, JobStatus.DISPATCHED)
                dispatch.callback_url = self.registry.bind(partial(self._on_callback, dispatch))
                dispatch.timer = threading.Timer(timeout, self._expire, args=(dispatch, timeout))
                dispatch.timer.daemon = True
                dispatch.timer.start()
            service.invoke(operation, dispatch.context, dispatch.callback_url)
        except Exception as exc:
            self._abort(dispatch, exc)
            raise

    def _on_callback(self, dispatch: Dispatch, callback: ServiceCallback, ack: Any) -> None:
        log = dispatch.context.logger.child("callback")
        with dispatch.lock:
            if dispatch.done:
                log.warning("Ignoring callback for job %s; it already completed", dispatch.job.request_id)
                return

            if dispatch.service.callback_contract is CallbackContract.MULTI_PART and _truthy(
                callback.params.get("partial")
            ):
                headers = {
                    key.lower(): value
                    for key, value in callback.params.items()
                    if key.lower() not in _PARTIAL_CONTROL_PARAMS
                }
                dispatch.partial_headers.update(headers)
                progress = callback.params.get("progress")
                if progress is not None and progress.isdigit():
                    dispatch.job.progress = min(int(progress), 99)
                self._advance(dispatch, JobStatus.DISPATCHED)
                log.info("Partial callback for job %s (%s)", dispatch.job.request_id, sorted(headers))
                return

            self._finish(dispatch, response_from_callback(callback, dispatch.partial_headers))

    def _expire(self, dispatch: Dispatch, timeout: float) -> None:
        with dispatch.lock:
            if dispatch.done:
                return
            dispatch.context.logger.warning(
                "Service %s did not call back within %s seconds", dispatch.service.name, timeout
            )
            self._finish(
                dispatch,
                ServiceResponse.error(
                    f"Service {dispatch.service.name} did not respond within {timeout:g} seconds",
                    status_code=500,
                ),
            )

    def _abort(self, dispatch: Dispatch, exc: Exception) -> None:
        dispatch.context.logger.error("Invoking service %s failed: %s", dispatch.service.name, exc)
        with dispatch.lock:
            if not dispatch.done:
                self._finish(dispatch, ServiceResponse.error(str(exc), status_code=500))

    def _advance(self, dispatch: Dispatch, status: JobStatus) -> None:
        dispatch.job.transition(status)
        with transaction(self.engine) as tx:
            dispatch.job.save(tx)

    def _finish(self, dispatch: Dispatch, response: ServiceResponse) -> None:
        """Record the terminal outcome, release the binding and complete the client response.

        Must be called with ``dispatch.lock`` held.
        """

        if dispatch.timer is not None:
            dispatch.timer.cancel()
        job = dispatch.job
        try:
            if response.is_success:
                job.transition(JobStatus.SUCCESSFUL, "The job has completed successfully")
            else:
                message = response.body.decode("utf-8", errors="replace")[:MAX_MESSAGE_LENGTH]
                job.transition(JobStatus.FAILED, message or None)
            with transaction(self.engine) as tx:
                job.save(tx)
                if response.location:
                    JobLink(job_id=job.id, href=response.location, rel="data", title="Service result").save(tx)
            dispatch.context.logger.info("Job %s finished with status %s", job.request_id, job.status)
        finally:
            self.registry.unbind(dispatch.callback_url)
            if not dispatch.done:
                dispatch._future.set_result(response)
