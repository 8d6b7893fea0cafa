"""WMS 1.1.1 / 1.3.0 frontend: GetCapabilities and GetMap."""

import xml.etree.ElementTree as ET

from fastapi import APIRouter, Depends, Request, Response

from harmony.cmr import CmrCollection, CmrVariable
from harmony.crs import CRS84, parse_crs
from harmony.errors import ValidationError
from harmony.frontends.common import (
    comma_separated,
    dispatch_operation,
    get_request_context,
    get_state,
    keys_to_lower_case,
    new_operation,
    parse_bbox,
    parse_bool,
    parse_positive_int,
    parse_temporal,
    resolve_collections,
    single_value,
)
from harmony.models.request_context import RequestContext
from harmony.state import HarmonyState

router = APIRouter(tags=["WMS"])

DEFAULT_VERSION = "1.3.0"
SUPPORTED_VERSIONS = {"1.1.1", "1.3.0"}
GET_MAP_REQUIRED = ("layers", "bbox", "format", "width", "height")


def _bounding_rectangle(bbox: list[float], crs: str | None, version: str) -> list[float]:
    # WMS 1.3.0 with EPSG:4326 uses lat/lon axis order
    if version == "1.3.0" and crs == "EPSG:4326":
        min_lat, min_lon, max_lat, max_lon = bbox
        return [min_lon, min_lat, max_lon, max_lat]
    return bbox


def _layer_sources(
    layers: list[str],
    collections: list[CmrCollection],
) -> list[tuple[str, list[CmrVariable]]]:
    """Group ``collection`` / ``collection/variable`` layers by collection, in request order."""

    by_id = {collection.id: collection for collection in collections}
    grouped: dict[str, list[CmrVariable]] = {}
    errors: list[str] = []
    for layer in layers:
        collection_id, _, variable_id = layer.partition("/")
        collection = by_id.get(collection_id)
        if collection is None:
            errors.append(f"Layer '{layer}' does not belong to the requested collections")
            continue
        variables = grouped.setdefault(collection_id, [])
        if not variable_id:
            continue
        variable = collection.find_variable(variable_id)
        if variable is None:
            errors.append(f"Layer '{layer}' names an unknown variable")
        elif variable not in variables:
            variables.append(variable)
    if errors:
        raise ValidationError("Invalid layers parameter", errors)
    return list(grouped.items())


async def get_map(
    request: Request,
    state: HarmonyState,
    context: RequestContext,
    collections: list[CmrCollection],
    query: dict,
) -> Response:
    context.logger = context.logger.child("wms.getMap")
    missing = [name for name in GET_MAP_REQUIRED if not single_value(query, name)]
    version = single_value(query, "version") or DEFAULT_VERSION
    crs_param = "crs" if version == "1.3.0" else "srs"
    if not single_value(query, crs_param):
        missing.append(crs_param)
    if missing:
        raise ValidationError(
            "Missing required GetMap parameters",
            [f"Missing required parameter: {name}" for name in missing],
        )

    operation = new_operation(state, context)
    crs, srs = parse_crs(single_value(query, crs_param))
    operation.crs = crs
    operation.srs = srs
    operation.output_format = single_value(query, "format")
    operation.output_width = parse_positive_int("width", single_value(query, "width"))
    operation.output_height = parse_positive_int("height", single_value(query, "height"))
    operation.is_transparent = parse_bool("transparent", single_value(query, "transparent"))
    operation.bounding_rectangle = _bounding_rectangle(parse_bbox(single_value(query, "bbox")), crs, version)
    operation.temporal = parse_temporal(single_value(query, "time"))

    for collection_id, variables in _layer_sources(comma_separated(single_value(query, "layers")), collections):
        operation.add_source(collection_id, variables)

    operation.require_synchronous = True
    context.logger.info("GetMap for %s", ", ".join(operation.collection_ids))
    return await dispatch_operation(request, state, operation, context)


def get_capabilities(request: Request, collections: list[CmrCollection], version: str) -> Response:
    root = ET.Element("WMS_Capabilities", {"version": version, "xmlns": "http://www.opengis.net/wms"})
    service = ET.SubElement(root, "Service")
    ET.SubElement(service, "Name").text = "WMS"
    ET.SubElement(service, "Title").text = "Harmony WMS"

    capability = ET.SubElement(root, "Capability")
    get_map_request = ET.SubElement(ET.SubElement(capability, "Request"), "GetMap")
    for mime in ("image/tiff", "image/png", "image/gif"):
        ET.SubElement(get_map_request, "Format").text = mime
    href = str(request.url.replace(query=""))
    ET.SubElement(
        ET.SubElement(ET.SubElement(ET.SubElement(get_map_request, "DCPType"), "HTTP"), "Get"),
        "OnlineResource",
        {"xlink:type": "simple", "xlink:href": href, "xmlns:xlink": "http://www.w3.org/1999/xlink"},
    )

    root_layer = ET.SubElement(capability, "Layer")
    ET.SubElement(root_layer, "Title").text = "Harmony collections"
    ET.SubElement(root_layer, "CRS" if version == "1.3.0" else "SRS").text = CRS84
    for collection in collections:
        collection_layer = ET.SubElement(root_layer, "Layer")
        ET.SubElement(collection_layer, "Name").text = collection.id
        ET.SubElement(collection_layer, "Title").text = collection.title or collection.id
        for variable in collection.variables:
            variable_layer = ET.SubElement(collection_layer, "Layer", {"queryable": "0"})
            ET.SubElement(variable_layer, "Name").text = f"{collection.id}/{variable.id}"
            ET.SubElement(variable_layer, "Title").text = variable.name

    body = ET.tostring(root, encoding="utf-8", xml_declaration=True)
    return Response(content=body, media_type="text/xml")


@router.get("/{collection_ids}/wms")
async def wms(
    collection_ids: str,
    request: Request,
    state: HarmonyState = Depends(get_state),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    context.frontend = "wms"
    query = keys_to_lower_case(request.query_params)

    if (single_value(query, "service") or "").upper() != "WMS":
        raise ValidationError("The service parameter must be WMS")
    version = single_value(query, "version") or DEFAULT_VERSION
    if version not in SUPPORTED_VERSIONS:
        raise ValidationError(f"Unsupported WMS version: {version}")

    collections = resolve_collections(state, collection_ids, "WMS")
    request_type = (single_value(query, "request") or "").lower()
    if request_type == "getcapabilities":
        return get_capabilities(request, collections, version)
    if request_type == "getmap":
        return await get_map(request, state, context, collections, query)
    raise ValidationError(f"Unsupported WMS request: {single_value(query, 'request')}")
