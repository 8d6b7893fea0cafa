"""EOSS 0.1.0 frontend: single-granule transformation requests."""

import re

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import HTMLResponse

from harmony.cmr import CmrVariable
from harmony.crs import parse_crs
from harmony.errors import ValidationError
from harmony.frontends.common import (
    comma_separated,
    dispatch_operation,
    get_request_context,
    get_state,
    keys_to_lower_case,
    new_operation,
    parse_bbox,
    resolve_collections,
    single_value,
)
from harmony.models.request_context import RequestContext
from harmony.state import HarmonyState

router = APIRouter(tags=["EOSS"])

VERSION = "0.1.0"
GRANULE_ID_PATTERN = re.compile(r"^G\d+-\w+$")


@router.get(f"/{{collection_ids}}/eoss/{VERSION}/", response_class=HTMLResponse)
def get_landing_page(collection_ids: str) -> str:
    return "<p>A fine landing page for now.<p>"


@router.get(f"/{{collection_ids}}/eoss/{VERSION}/items/{{granule_id}}")
async def get_granule(
    collection_ids: str,
    granule_id: str,
    request: Request,
    state: HarmonyState = Depends(get_state),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    context.frontend = "eoss"
    collections = resolve_collections(state, collection_ids, "EOSS")
    context.logger = context.logger.child("eoss.getGranule")
    query = keys_to_lower_case(request.query_params)

    if not GRANULE_ID_PATTERN.match(granule_id):
        raise ValidationError(f"Invalid granule id: {granule_id}")

    operation = new_operation(state, context)
    query_crs = single_value(query, "crs")
    crs, srs = parse_crs(query_crs, validate=False)
    operation.crs = crs or query_crs
    operation.srs = srs

    if single_value(query, "format"):
        operation.output_format = single_value(query, "format")
    if single_value(query, "bbox"):
        operation.bounding_rectangle = parse_bbox(single_value(query, "bbox"))
    operation.granule_ids = [granule_id]

    # Only the first collection is transformed
    collection = collections[0]
    variables: list[CmrVariable] = []
    for requested in comma_separated(single_value(query, "rangesubset")):
        variable = next((v for v in collection.variables if v.name == requested), None)
        if variable is None:
            raise ValidationError(f"Invalid rangeSubset parameter: {requested}")
        variables.append(variable)
    operation.add_source(collection.id, variables)

    # EOSS is deprecated before it supports asynchronous requests
    operation.require_synchronous = True
    return await dispatch_operation(request, state, operation, context)
