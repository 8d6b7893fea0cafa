"""Canonical, protocol-independent description of a transformation request."""

from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from harmony.crs import is_geographic
from harmony.crypto import Decrypter, Encrypter
from harmony.errors import ValidationError

SCHEMA_VERSION = "0.1.0"

BoundingRectangle = list[float]


class VariableRef(BaseModel):
    """A variable within a source collection."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    fullPath: str | None = None


class Source(BaseModel):
    """One source collection and the variables requested from it."""

    collection: str = Field(min_length=1)
    variables: list[VariableRef] = Field(default_factory=list)


class TemporalSubset(BaseModel):
    start: str | None = None
    end: str | None = None


class _SerializedFormat(BaseModel):
    crs: str | None = None
    srs: dict[str, str] | None = None
    mime: str | None = None
    width: int | None = None
    height: int | None = None
    isTransparent: bool | None = None


class _SerializedSubset(BaseModel):
    bbox: BoundingRectangle | None = None
    temporal: TemporalSubset | None = None
    shape: str | None = None


class SerializedOperation(BaseModel):
    """Transport-safe form handed to backends; sensitive fields are encrypted."""

    version: str = SCHEMA_VERSION
    callback: str | None = None
    requestId: str | None = None
    client: str | None = None
    user: str | None = None
    accessToken: str | None = None
    isSynchronous: bool = False
    sources: list[Source] = Field(default_factory=list)
    format: _SerializedFormat = Field(default_factory=_SerializedFormat)
    subset: _SerializedSubset = Field(default_factory=_SerializedSubset)
    granuleIds: list[str] | None = None


def _variable_ref(variable: Any) -> VariableRef:
    if isinstance(variable, VariableRef):
        return variable
    if isinstance(variable, dict):
        return VariableRef.model_validate(variable)
    # CMR variable objects carry the same attributes
    return VariableRef(id=variable.id, name=variable.name, fullPath=getattr(variable, "full_path", None))


def validate_bounding_rectangle(value: Any, crs: str | None) -> BoundingRectangle:
    """Return ``value`` as ``[west, south, east, north]`` or raise ValidationError.

    ``west > east`` is only accepted for geographic systems, where it denotes a
    rectangle that crosses the antimeridian.
    """

    if not isinstance(value, (list, tuple)) or len(value) != 4:
        raise ValidationError("Bounding rectangle must contain exactly 4 coordinates: west, south, east, north")
    try:
        west, south, east, north = (float(coordinate) for coordinate in value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Bounding rectangle coordinates must be numbers") from exc

    errors: list[str] = []
    geographic = is_geographic(crs)
    if south > north:
        errors.append(f"Bounding rectangle south ({south}) must not be greater than north ({north})")
    if west > east and not geographic:
        errors.append(f"Bounding rectangle west ({west}) must not be greater than east ({east})")
    if geographic:
        for name, coordinate in (("west", west), ("east", east)):
            if not -180.0 <= coordinate <= 180.0:
                errors.append(f"Bounding rectangle {name} ({coordinate}) must be between -180 and 180")
        for name, coordinate in (("south", south), ("north", north)):
            if not -90.0 <= coordinate <= 90.0:
                errors.append(f"Bounding rectangle {name} ({coordinate}) must be between -90 and 90")
    if errors:
        raise ValidationError("Invalid bounding rectangle", errors)

    return [west, south, east, north]


class DataOperation:
    """Mutable operation descriptor built by a frontend and consumed by backends.

    The descriptor owns the encrypter/decrypter pair used for its sensitive
    fields (``shapefile`` and ``access_token``) for its whole lifetime.
    """

    def __init__(
        self,
        encrypter: Encrypter,
        decrypter: Decrypter,
        *,
        request_id: str | None = None,
    ):
        self.encrypter = encrypter
        self.decrypter = decrypter
        self.request_id = request_id
        self.client: str | None = None
        self.user: str | None = None
        self.access_token: str | None = None
        self.shapefile: str | None = None
        self.sources: list[Source] = []
        self.crs: str | None = None
        self.srs: dict[str, str] | None = None
        self.output_format: str | None = None
        self.output_width: int | None = None
        self.output_height: int | None = None
        self.is_transparent: bool | None = None
        self.temporal: TemporalSubset | None = None
        self.granule_ids: list[str] | None = None
        self.require_synchronous = False
        self._bounding_rectangle: BoundingRectangle | None = None

    @property
    def bounding_rectangle(self) -> BoundingRectangle | None:
        return self._bounding_rectangle

    @bounding_rectangle.setter
    def bounding_rectangle(self, value: Any) -> None:
        self._bounding_rectangle = None if value is None else validate_bounding_rectangle(value, self.crs)

    def add_source(self, collection_id: str, variables: list[Any] | None = None) -> Source:
        """Append a source; no variables means every variable in the collection."""

        if not collection_id:
            raise ValidationError("A source requires a collection id")
        source = Source(collection=collection_id, variables=[_variable_ref(v) for v in variables or []])
        self.sources.append(source)
        return source

    @property
    def collection_ids(self) -> list[str]:
        return [source.collection for source in self.sources]

    def serialize(self, callback: str | None = None) -> dict[str, Any]:
        serialized = SerializedOperation(
            callback=callback,
            requestId=self.request_id,
            client=self.client,
            user=self.user,
            accessToken=self.encrypter(self.access_token) if self.access_token else None,
            isSynchronous=self.require_synchronous,
            sources=self.sources,
            format=_SerializedFormat(
                crs=self.crs,
                srs=self.srs,
                mime=self.output_format,
                width=self.output_width,
                height=self.output_height,
                isTransparent=self.is_transparent,
            ),
            subset=_SerializedSubset(
                bbox=self._bounding_rectangle,
                temporal=self.temporal,
                shape=self.encrypter(self.shapefile) if self.shapefile else None,
            ),
            granuleIds=self.granule_ids,
        )
        return serialized.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_serialized(
        cls,
        payload: dict[str, Any],
        encrypter: Encrypter,
        decrypter: Decrypter,
    ) -> "DataOperation":
        try:
            serialized = SerializedOperation.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Serialized operation is invalid",
                [f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()],
            ) from exc

        operation = cls(encrypter, decrypter, request_id=serialized.requestId)
        operation.client = serialized.client
        operation.user = serialized.user
        operation.access_token = decrypter(serialized.accessToken) if serialized.accessToken else None
        operation.require_synchronous = serialized.isSynchronous
        operation.sources = list(serialized.sources)
        operation.crs = serialized.format.crs
        operation.srs = serialized.format.srs
        operation.output_format = serialized.format.mime
        operation.output_width = serialized.format.width
        operation.output_height = serialized.format.height
        operation.is_transparent = serialized.format.isTransparent
        operation.bounding_rectangle = serialized.subset.bbox
        operation.temporal = serialized.subset.temporal
        operation.shapefile = decrypter(serialized.subset.shape) if serialized.subset.shape else None
        operation.granule_ids = serialized.granuleIds
        return operation
