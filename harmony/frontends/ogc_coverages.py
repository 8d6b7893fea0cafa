"""OGC API - Coverages 1.0.0 frontend."""

import re

from fastapi import APIRouter, Depends, Request, Response

from harmony.crs import parse_crs
from harmony.errors import ValidationError
from harmony.frontends.common import (
    comma_separated,
    dispatch_operation,
    get_request_context,
    get_state,
    keys_to_lower_case,
    multi_value,
    new_operation,
    parse_bool,
    parse_positive_int,
    resolve_collections,
    single_value,
)
from harmony.frontends.variable_parsing import parse_variables
from harmony.models.data_operation import TemporalSubset
from harmony.models.request_context import RequestContext
from harmony.state import HarmonyState

router = APIRouter(tags=["OGC API - Coverages"])

VERSION = "1.0.0"
BASE_PATH = f"/{{collection_ids}}/ogc-api-coverages/{VERSION}"

SUBSET_PATTERN = re.compile(r"^(?P<dim>\w+)\((?P<low>[^:]*?)(?::(?P<high>[^:]*))?\)$")
SUBSET_PATTERN_TIME = re.compile(r'^(?P<dim>time)\((?P<low>"[^"]*"|\*)(?::(?P<high>"[^"]*"|\*))?\)$')
SPATIAL_LIMITS = {"lat": (-90.0, 90.0), "lon": (-180.0, 180.0)}
UNBOUNDED = "*"


def _unquote(value: str | None) -> str | None:
    if value is None or value == UNBOUNDED:
        return None
    return value.strip('"')


def _parse_number(dim: str, value: str | None, default: float) -> float:
    if value is None or value == UNBOUNDED:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValidationError(f'subset dimension "{dim}" has an invalid numeric value "{value}"') from exc


def parse_subset(values: list[str]) -> tuple[list[float] | None, TemporalSubset | None]:
    """Parse ``subset=dim(low:high)`` parameters into a bounding rectangle and temporal range.

    Supported dimensions are ``lat``, ``lon`` and ``time``; ``*`` leaves a
    side unbounded and a single value is a point subset. Time values must be
    quoted.
    """

    ranges: dict[str, tuple[str | None, str | None]] = {}
    for value in values:
        for part in [value] if value.startswith("time(") else comma_separated(value):
            match = SUBSET_PATTERN_TIME.match(part) if part.startswith("time(") else SUBSET_PATTERN.match(part)
            if match is None:
                raise ValidationError(f'subset dimension "{part}" could not be parsed')
            dim = match.group("dim")
            if dim not in SPATIAL_LIMITS and dim != "time":
                raise ValidationError(f'unrecognized subset dimension "{dim}"')
            if dim in ranges:
                raise ValidationError(f'subset dimension "{dim}" was specified multiple times')
            low = match.group("low")
            high = match.group("high") if match.group("high") is not None else low
            ranges[dim] = (low, high)

    bbox = None
    if "lat" in ranges or "lon" in ranges:
        coordinates: dict[str, tuple[float, float]] = {}
        for dim, (minimum, maximum) in SPATIAL_LIMITS.items():
            low, high = ranges.get(dim, (None, None))
            coordinates[dim] = (_parse_number(dim, low, minimum), _parse_number(dim, high, maximum))
        bbox = [coordinates["lon"][0], coordinates["lat"][0], coordinates["lon"][1], coordinates["lat"][1]]

    temporal = None
    if "time" in ranges:
        low, high = ranges["time"]
        temporal = TemporalSubset(start=_unquote(low), end=_unquote(high))
    return bbox, temporal


@router.get(f"{BASE_PATH}/collections")
def describe_collections(
    collection_ids: str,
    request: Request,
    state: HarmonyState = Depends(get_state),
) -> dict:
    collections = resolve_collections(state, collection_ids, "OGC API - Coverages")
    base = str(request.url).split("?")[0].rstrip("/")
    entries = []
    for collection in collections:
        for variable in collection.variables:
            entries.append(
                {
                    "id": variable.name,
                    "title": variable.name,
                    "description": f"{variable.name} {collection.title or collection.id}",
                    "links": [
                        {
                            "title": f"Perform rangeset request for {variable.name}",
                            "href": f"{base}/{variable.name}/coverage/rangeset",
                            "rel": "items",
                            "type": "application/json",
                        }
                    ],
                    "extent": {"spatial": {"bbox": [-180.0, -90.0, 180.0, 90.0]}},
                    "itemType": "Variable",
                    "crs": ["CRS:84"],
                }
            )
    return {"links": [{"href": base, "rel": "self", "type": "application/json"}], "collections": entries}


@router.get(f"{BASE_PATH}/collections/{{coverage_id}}/coverage/rangeset")
async def get_coverage_rangeset(
    collection_ids: str,
    coverage_id: str,
    request: Request,
    state: HarmonyState = Depends(get_state),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    context.frontend = "ogcCoverages"
    collections = resolve_collections(state, collection_ids, "OGC API - Coverages")
    context.logger = context.logger.child("ogc-coverages.getCoverageRangeset")
    query = keys_to_lower_case(request.query_params)

    operation = new_operation(state, context)
    if single_value(query, "outputcrs"):
        crs, srs = parse_crs(single_value(query, "outputcrs"))
        operation.crs = crs
        operation.srs = srs
    if single_value(query, "format"):
        operation.output_format = single_value(query, "format")
    operation.output_width = parse_positive_int("width", single_value(query, "width"))
    operation.output_height = parse_positive_int("height", single_value(query, "height"))
    operation.is_transparent = parse_bool("transparent", single_value(query, "transparent"))

    granule_ids = [gid for value in multi_value(query, "granuleid") for gid in comma_separated(value)]
    operation.granule_ids = granule_ids or None

    bbox, temporal = parse_subset(multi_value(query, "subset"))
    operation.bounding_rectangle = bbox
    operation.temporal = temporal

    for collection_id, variables in parse_variables(collections, coverage_id):
        operation.add_source(collection_id, variables)

    context.logger.info("Rangeset request for %s", ", ".join(operation.collection_ids))
    return await dispatch_operation(request, state, operation, context)
