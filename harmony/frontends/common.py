"""Helpers shared by the protocol frontends."""

from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import QueryParams

from harmony.backends.services import ServiceResponse
from harmony.cmr import CmrCollection
from harmony.crypto import create_decrypter, create_encrypter
from harmony.errors import HarmonyError, NotFoundError, ValidationError
from harmony.models.data_operation import DataOperation, TemporalSubset
from harmony.models.request_context import RequestContext
from harmony.state import HarmonyState


def get_state(request: Request) -> HarmonyState:
    return request.app.state.harmony


def get_request_context(request: Request) -> RequestContext:
    context = RequestContext(id=str(uuid4()))
    request.state.context = context
    return context


def keys_to_lower_case(query: QueryParams | Mapping[str, Any]) -> dict[str, str | list[str]]:
    """Lower-case parameter names; repeated parameters become lists."""

    items = query.multi_items() if isinstance(query, QueryParams) else list(query.items())
    lowered: dict[str, str | list[str]] = {}
    for key, value in items:
        name = key.lower()
        if name not in lowered:
            lowered[name] = value
        elif isinstance(lowered[name], list):
            lowered[name].append(value)
        else:
            lowered[name] = [lowered[name], value]
    return lowered


def single_value(query: dict[str, str | list[str]], name: str) -> str | None:
    value = query.get(name)
    if isinstance(value, list):
        return value[-1]
    return value


def multi_value(query: dict[str, str | list[str]], name: str) -> list[str]:
    value = query.get(name)
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def comma_separated(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_positive_int(name: str, value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValidationError(f"{name} must be a positive integer, got '{value}'") from exc
    if parsed <= 0:
        raise ValidationError(f"{name} must be a positive integer, got '{value}'")
    return parsed


def parse_bool(name: str, value: str | None) -> bool | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"true", "1"}:
        return True
    if normalized in {"false", "0"}:
        return False
    raise ValidationError(f"{name} must be TRUE or FALSE, got '{value}'")


def parse_bbox(value: str) -> list[float]:
    parts = comma_separated(value)
    try:
        coordinates = [float(part) for part in parts]
    except ValueError as exc:
        raise ValidationError("bbox must contain 4 comma-separated numbers") from exc
    if len(coordinates) != 4:
        raise ValidationError("bbox must contain 4 comma-separated numbers")
    return coordinates


def parse_temporal(value: str | None) -> TemporalSubset | None:
    """ISO-8601 instant or ``start/end`` interval; ``..`` or empty is open-ended."""

    if not value:
        return None
    if "/" not in value:
        return TemporalSubset(start=value, end=value)
    start, _, end = value.partition("/")
    return TemporalSubset(
        start=None if start in {"", ".."} else start,
        end=None if end in {"", ".."} else end,
    )


def resolve_collections(state: HarmonyState, collection_ids: str, frontend: str) -> list[CmrCollection]:
    """Look up the path collections and check a service can transform them."""

    requested = [cid for cid in collection_ids.replace("+", ",").split(",") if cid]
    collections = state.collections.get_collections(requested)
    found = {collection.id for collection in collections}
    missing = [cid for cid in requested if cid not in found]
    if not requested or missing:
        raise NotFoundError(f"Collection(s) not found: {', '.join(missing) or collection_ids}")
    if not all(state.services.is_collection_supported(collection.id) for collection in collections):
        raise NotFoundError(
            f"There is no service configured to support transformations on the provided collection via {frontend}."
        )
    return collections


def new_operation(state: HarmonyState, context: RequestContext) -> DataOperation:
    secret = state.settings.shared_secret_key
    return DataOperation(create_encrypter(secret), create_decrypter(secret), request_id=context.id)


def to_http_response(result: ServiceResponse) -> Response:
    return Response(
        content=result.body,
        status_code=result.status_code,
        headers=result.headers,
        media_type=result.content_type,
    )


def _job_accepted(request: Request, job_payload: dict) -> JSONResponse:
    base = str(request.base_url).rstrip("/")
    job_payload["links"] = [
        *job_payload.get("links", []),
        {"href": f"{base}/jobs/{job_payload['jobID']}", "rel": "self", "type": "application/json"},
    ]
    return JSONResponse(status_code=202, content=job_payload)


async def dispatch_operation(
    request: Request,
    state: HarmonyState,
    operation: DataOperation,
    context: RequestContext,
) -> Response:
    """Dispatch and turn the outcome into the client response.

    Synchronous backends are awaited up to the configured timeout; otherwise,
    and when an asynchronous request outlasts the wait, the client receives
    the job status to poll. The wait holds no worker thread, so the callback
    endpoint can always run the handler that completes it.
    """

    dispatch = await run_in_threadpool(state.dispatcher.dispatch, operation, context, str(request.url))
    if operation.require_synchronous or dispatch.service.synchronous:
        result = await dispatch.wait_async(timeout=state.settings.sync_request_timeout_seconds)
        if result is not None:
            return to_http_response(result)
        if operation.require_synchronous:
            raise HarmonyError("Timed out waiting for the service to respond")
    return _job_accepted(request, dispatch.job.serialize())
