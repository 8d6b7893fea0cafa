"""Endpoint backends call with their results, addressed by the bound callback token."""

from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from harmony.backends.services import ServiceCallback
from harmony.frontends.common import get_state
from harmony.state import HarmonyState

router = APIRouter(tags=["Service callbacks"])


@router.api_route("/service/{token}", methods=["GET", "POST"], status_code=200)
async def service_callback(
    token: str,
    request: Request,
    state: HarmonyState = Depends(get_state),
) -> Response:
    callback = ServiceCallback(
        params=dict(request.query_params),
        headers=dict(request.headers),
        body=await request.body(),
        content_type=request.headers.get("content-type"),
    )
    response = Response(status_code=200)
    # Handlers write the job to the database
    await run_in_threadpool(state.registry.invoke, token, callback, response)
    return response
