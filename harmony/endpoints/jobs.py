from typing import Any

from fastapi import APIRouter, Depends, Request

from harmony.db import transaction
from harmony.endpoints.errors import not_found
from harmony.frontends.common import get_state
from harmony.models.job import Job
from harmony.state import HarmonyState

router = APIRouter(tags=["Jobs"])


@router.get("/jobs/{job_id}")
def get_job_status(job_id: str, request: Request, state: HarmonyState = Depends(get_state)) -> dict[str, Any]:
    with transaction(state.engine) as tx:
        job = Job.by_request_id(tx, job_id)
        if job is None:
            raise not_found("Job", job_id)
        payload = job.serialize(job.links(tx))

    base = str(request.base_url).rstrip("/")
    payload["links"].append({"href": f"{base}/jobs/{job_id}", "rel": "self", "type": "application/json"})
    return payload
