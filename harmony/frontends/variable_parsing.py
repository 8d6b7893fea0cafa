from harmony.cmr import CmrCollection, CmrVariable
from harmony.errors import ValidationError

ALL_VARIABLES = "all"


def parse_variables(
    collections: list[CmrCollection],
    collection_id_param: str,
) -> list[tuple[str, list[CmrVariable]]]:
    """Map an OGC ``collectionId`` path parameter onto CMR collections and variables.

    An OGC API "collection" is what the CMR calls a variable, so the
    parameter is a comma-separated list of variable names. ``all`` requests
    every variable of every collection and returns empty variable lists. A
    variable name may match in more than one collection; collections that
    match none of the names are left out.
    """

    names = list(dict.fromkeys(name for name in collection_id_param.split(",") if name))
    if ALL_VARIABLES in names:
        if len(names) != 1:
            raise ValidationError('"all" cannot be specified alongside other variables')
        return [(collection.id, []) for collection in collections]

    matched: list[tuple[str, list[CmrVariable]]] = []
    missing = list(names)
    for collection in collections:
        variables = [v for name in names for v in collection.variables if v.name == name]
        missing = [name for name in missing if not any(v.name == name for v in variables)]
        if variables:
            matched.append((collection.id, variables))

    if missing or not names:
        raise ValidationError(
            f"Coverages were not found for the provided CMR collection: {', '.join(missing or [collection_id_param])}"
        )
    return matched
