"""Coordinate reference system identifiers accepted by the frontends."""

import re

from harmony.errors import ValidationError

CRS84 = "CRS:84"
CRS84_URI = "http://www.opengis.net/def/crs/OGC/1.3/CRS84"

_EPSG_URI = re.compile(r"^https?://www\.opengis\.net/def/crs/EPSG/\d+(?:\.\d+)*/(\d+)$", re.IGNORECASE)
_EPSG_CODE = re.compile(r"^EPSG:(\d+)$", re.IGNORECASE)

# code -> (proj4, geographic)
KNOWN_EPSG: dict[str, tuple[str, bool]] = {
    "4326": ("+proj=longlat +datum=WGS84 +no_defs", True),
    "4269": ("+proj=longlat +datum=NAD83 +no_defs", True),
    "3857": ("+proj=merc +a=6378137 +b=6378137 +lat_ts=0 +lon_0=0 +x_0=0 +y_0=0 +k=1 +units=m +no_defs", False),
    "3413": ("+proj=stere +lat_0=90 +lat_ts=70 +lon_0=-45 +x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs", False),
    "3031": ("+proj=stere +lat_0=-90 +lat_ts=-71 +lon_0=0 +x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs", False),
}


def _epsg_code(value: str) -> str | None:
    if value.upper() == CRS84 or value == CRS84_URI:
        return "4326"
    for pattern in (_EPSG_CODE, _EPSG_URI):
        match = pattern.match(value)
        if match:
            return match.group(1)
    return None


def parse_crs(query_crs: str | None, *, validate: bool = True) -> tuple[str | None, dict[str, str] | None]:
    """Resolve a CRS query value into ``(crs, srs)``.

    ``crs`` is the normalized identifier that drives reprojection and ``srs``
    describes it (EPSG code and proj4 string) for backends that want more than
    an identifier. Unrecognized values raise when ``validate`` is set and
    resolve to ``(None, None)`` otherwise.
    """

    if not query_crs or not query_crs.strip():
        return (None, None)

    value = query_crs.strip()
    code = _epsg_code(value)
    if code is None or code not in KNOWN_EPSG:
        if validate:
            raise ValidationError(f"Unrecognized CRS: {value}")
        return (None, None)

    proj4, _ = KNOWN_EPSG[code]
    crs = CRS84 if value.upper() == CRS84 or value == CRS84_URI else f"EPSG:{code}"
    return (crs, {"epsg": f"EPSG:{code}", "proj4": proj4})


def is_geographic(crs: str | None) -> bool:
    """True for lon/lat systems; an unset CRS is treated as CRS:84."""

    if crs is None:
        return True
    code = _epsg_code(crs.strip())
    if code is None or code not in KNOWN_EPSG:
        return False
    return KNOWN_EPSG[code][1]
