from typing import Any, Dict, Mapping, Optional

# Public identifier exposed to callers and the key MongoDB stores it under.
ID_FIELD = "id"
KEY_FIELD = "_id"


def normalize_query(query: Any) -> Optional[Dict[str, Any]]:
    """
    Rewrites the public identifier of a query into the store's primary key.

    Only the top-level `id` key is renamed; nested documents are left alone.

    Args:
        query (Any): The caller's query or filter.

    Returns:
        Optional[Dict[str, Any]]: A shallow copy with `id` renamed to `_id`, or
        None when the input is not a mapping and must be dispatched as-is.
    """
    if not isinstance(query, Mapping):
        return None

    result = dict(query)
    if ID_FIELD in result:
        result[KEY_FIELD] = result.pop(ID_FIELD)
    return result


def _expose_identifier(entity: Any) -> None:
    if isinstance(entity, dict) and entity.get(KEY_FIELD) is not None:
        entity[ID_FIELD] = str(entity[KEY_FIELD])


def denormalize_result(result: Any) -> Any:
    """
    Adds the public identifier to entities read back from the store.

    Works in place on a single document or on every document of a list. The
    `_id` key is kept so joins on the store key keep working. Anything else
    (counts, write results, booleans, None) passes through untouched.
    """
    if isinstance(result, list):
        for item in result:
            _expose_identifier(item)
    else:
        _expose_identifier(result)
    return result


def strip_identifier(document: Mapping[str, Any], *fields: str) -> Dict[str, Any]:
    """Returns a shallow copy of `document` without the given identifier keys."""
    fields = fields or (ID_FIELD,)
    return {key: value for key, value in document.items() if key not in fields}
