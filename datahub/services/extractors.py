"""Per-category extraction of searchable text from cached payloads.

Each extractor yields ``(role, text)`` pairs. ``role`` is ``"title"`` or
``"name"`` for fields that earn a score boost, otherwise None.
"""

from collections.abc import Callable, Iterator
from typing import Any

from datahub.models.index import FIELD_NAME, FIELD_TITLE
from datahub.models.source import SourceCategory

Field = tuple[str | None, str]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _records(payload: Any) -> Iterator[dict[str, Any]]:
    """Dict items of a list payload; other items carry no searchable fields."""
    if not isinstance(payload, list):
        return
    for item in payload:
        if isinstance(item, dict):
            yield item


def _crime_fields(payload: Any) -> Iterator[Field]:
    for crime in _records(payload):
        street = _as_dict(_as_dict(crime.get("location")).get("street"))
        yield FIELD_TITLE, crime.get("category")
        yield FIELD_NAME, street.get("name")
        yield None, crime.get("location_type")
        yield None, crime.get("context")


def _planning_fields(payload: Any) -> Iterator[Field]:
    for entity in _records(payload):
        yield FIELD_TITLE, entity.get("name")
        yield None, entity.get("description")
        yield None, entity.get("development_type")
        yield None, entity.get("status")


def _spending_fields(payload: Any) -> Iterator[Field]:
    for record in _records(_as_dict(payload).get("records")):
        fields = _as_dict(record.get("fields"))
        yield FIELD_NAME, fields.get("supplier_name")
        yield None, fields.get("description")
        yield None, fields.get("service_area")
        yield None, fields.get("expense_type")


def _generic_fields(payload: Any, role: str | None = None) -> Iterator[Field]:
    """Walk the whole payload tree and yield every string leaf.

    Strings directly under a ``title`` or ``name`` key keep that role.
    """
    if isinstance(payload, str):
        yield role, payload
    elif isinstance(payload, list):
        for item in payload:
            yield from _generic_fields(item, role)
    elif isinstance(payload, dict):
        for key, value in payload.items():
            child_role = key.lower() if key.lower() in (FIELD_TITLE, FIELD_NAME) else None
            yield from _generic_fields(value, child_role)


_EXTRACTORS: dict[SourceCategory, Callable[[Any], Iterator[Field]]] = {
    SourceCategory.CRIME: _crime_fields,
    SourceCategory.PLANNING: _planning_fields,
    SourceCategory.SPENDING: _spending_fields,
    SourceCategory.GENERIC: _generic_fields,
}


def extract_searchable_fields(payload: Any, category: SourceCategory) -> list[Field]:
    """Return non-blank ``(role, text)`` pairs for a payload.

    List items that are not objects are ignored. Anything else unexpected
    raises and is left to the caller (the indexer skips that document).
    """
    extractor = _EXTRACTORS.get(category, _generic_fields)
    return [
        (role, text)
        for role, text in extractor(payload)
        if isinstance(text, str) and text.strip()
    ]
