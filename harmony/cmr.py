"""Collection/variable metadata lookup.

Production deployments resolve collections against the CMR; this module
defines the shapes the frontends rely on plus a YAML-backed catalog that
stands in for the CMR client.
"""

from functools import lru_cache
from pathlib import Path
from typing import Protocol

import yaml
from pydantic import BaseModel, Field, field_validator


class CmrVariable(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    full_path: str | None = None


class CmrCollection(BaseModel):
    id: str = Field(min_length=1)
    short_name: str | None = None
    title: str | None = None
    variables: list[CmrVariable] = Field(default_factory=list)

    @field_validator("variables")
    @classmethod
    def _unique_variables(cls, values: list[CmrVariable]) -> list[CmrVariable]:
        ids = [variable.id for variable in values]
        if len(ids) != len(set(ids)):
            raise ValueError("Variable ids must be unique within a collection")
        return values

    def find_variable(self, name_or_id: str) -> CmrVariable | None:
        return next((v for v in self.variables if name_or_id in {v.name, v.id}), None)


class CollectionLookup(Protocol):
    def get_collections(self, collection_ids: list[str]) -> list[CmrCollection]: ...


class CollectionCatalogDocument(BaseModel):
    version: str = "1.0"
    collections: list[CmrCollection] = Field(default_factory=list)


class StaticCollectionCatalog:
    """In-process collection catalog; unknown ids are simply not returned."""

    def __init__(self, collections: list[CmrCollection]):
        self._collections = {collection.id: collection for collection in collections}

    def get_collections(self, collection_ids: list[str]) -> list[CmrCollection]:
        return [self._collections[cid] for cid in collection_ids if cid in self._collections]


@lru_cache(maxsize=4)
def load_collection_catalog(path: str | Path) -> StaticCollectionCatalog:
    resolved_path = Path(path)
    if not resolved_path.exists():
        raise RuntimeError(f"Collection catalog not found: {resolved_path}")

    with resolved_path.open("r", encoding="utf-8") as file_handle:
        payload = yaml.safe_load(file_handle) or {}
    if not isinstance(payload, dict):
        raise RuntimeError(f"Collection catalog '{resolved_path}' must be a YAML mapping")

    document = CollectionCatalogDocument.model_validate(payload)
    return StaticCollectionCatalog(document.collections)
