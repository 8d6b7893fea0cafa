import pytest

from harmony.crs import CRS84, CRS84_URI, is_geographic, parse_crs
from harmony.errors import ValidationError


@pytest.mark.parametrize("value", ["CRS:84", "crs:84", CRS84_URI])
def test_crs84_aliases(value) -> None:
    crs, srs = parse_crs(value)

    assert crs == CRS84
    assert srs["epsg"] == "EPSG:4326"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("EPSG:4326", "EPSG:4326"),
        ("epsg:3857", "EPSG:3857"),
        ("http://www.opengis.net/def/crs/EPSG/0/3413", "EPSG:3413"),
    ],
)
def test_epsg_identifiers(value, expected) -> None:
    crs, srs = parse_crs(value)

    assert crs == expected
    assert srs["proj4"].startswith("+proj=")


def test_missing_crs() -> None:
    assert parse_crs(None) == (None, None)
    assert parse_crs("  ") == (None, None)


def test_unrecognized_crs() -> None:
    with pytest.raises(ValidationError, match="Unrecognized CRS: EPSG:1"):
        parse_crs("EPSG:1")
    assert parse_crs("EPSG:1", validate=False) == (None, None)


def test_is_geographic() -> None:
    assert is_geographic(None)
    assert is_geographic("CRS:84")
    assert is_geographic("EPSG:4269")
    assert not is_geographic("EPSG:3031")
    assert not is_geographic("+proj=stere")
