# payloads.py
"""
Outgoing argument shaping for Todoist calls.

Each create/update operation declares which optional fields it may forward.
A field is forwarded only when the caller supplied it; unset fields are left
out rather than sent as null. Fields marked ``explicit_null`` are forwarded
whenever their key is present, and a falsy value goes out as ``None`` so the
API clears the attribute (used for unassigning a task).
"""
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class OptionalField:
    name: str
    explicit_null: bool = False


def _fields(*names: str) -> Tuple[OptionalField, ...]:
    return tuple(OptionalField(name) for name in names)


# Due date representations, highest priority first
DUE_DATE_FIELDS = ("due_string", "due_date", "due_datetime")

TASK_FILTER_FIELDS = _fields("project_id", "section_id", "label", "filter", "lang", "ids")

TASK_CREATE_FIELDS = _fields(
    "description", "project_id", "section_id", "parent_id", "order",
    "labels", "priority", "due_lang", "assignee_id", "duration", "duration_unit",
)

TASK_UPDATE_FIELDS = _fields(
    "content", "description", "labels", "priority", "due_lang",
    "duration", "duration_unit",
) + (OptionalField("assignee_id", explicit_null=True),)

PROJECT_CREATE_FIELDS = _fields("parent_id", "color", "is_favorite", "view_style")

PROJECT_UPDATE_FIELDS = _fields("name", "color", "is_favorite", "view_style")

SECTION_CREATE_FIELDS = _fields("order")

LABEL_CREATE_FIELDS = _fields("color", "order", "is_favorite")

LABEL_UPDATE_FIELDS = _fields("name", "color", "order", "is_favorite")

ATTACHMENT_FIELDS = _fields("file_name", "file_type", "resource_type")


def pick_due_date(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Returns the single due-date field to send: first non-empty one wins."""
    for name in DUE_DATE_FIELDS:
        value = values.get(name)
        if value:
            return {name: value}
    return {}


def build_payload(fields: Tuple[OptionalField, ...], values: Mapping[str, Any],
                  base: Optional[Mapping[str, Any]] = None,
                  with_due_date: bool = False) -> Dict[str, Any]:
    """
    Copies the declared optional fields present in `values` on top of `base`.

    `base` carries the required arguments and is copied as-is.
    """
    payload: Dict[str, Any] = dict(base or {})
    for field in fields:
        if field.name not in values:
            continue
        value = values[field.name]
        if field.explicit_null:
            payload[field.name] = value if value else None
        elif value is not None:
            payload[field.name] = value
    if with_due_date:
        payload.update(pick_due_date(values))
    return payload
