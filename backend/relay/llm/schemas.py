"""Tool schema normalization.

The backend's schema type only understands a handful of fields, and rejects
requests that carry anything else. ``normalize_tool_schema`` reduces an arbitrary
tool parameter schema to that subset in four ordered passes:

1. Strip every ``$``-prefixed key ($schema, $id, $ref, $comment, ...) at any depth.
2. Flatten ``anyOf``/``oneOf`` unions to a single candidate.
3. Keep only the allowed fields, recursing into ``properties`` and ``items``.
4. Give every node a ``type``.

This is a lossy approximation for tool calling, not JSON Schema support. In
particular, union flattening keeps exactly one candidate:

- a single candidate replaces the node;
- otherwise the first candidate declaring ``enum`` or ``properties`` wins;
- otherwise the first candidate wins.

The parent's ``description`` (when present) overrides the chosen candidate's.
"""

from typing import Any

ALLOWED_SCHEMA_FIELDS = frozenset(
    {"type", "description", "properties", "required", "items", "enum", "nullable"}
)

META_PREFIX = "$"


def strip_meta_fields(schema: Any) -> Any:
    """Remove ``$``-prefixed keys from every object, including inside arrays."""
    if isinstance(schema, list):
        return [strip_meta_fields(item) for item in schema]
    if not isinstance(schema, dict):
        return schema
    return {
        key: strip_meta_fields(value)
        for key, value in schema.items()
        if not key.startswith(META_PREFIX)
    }


def _pick_union_candidate(candidates: list[dict[str, Any]]) -> dict[str, Any]:
    if len(candidates) == 1:
        return candidates[0]
    for candidate in candidates:
        if candidate.get("enum") is not None or candidate.get("properties") is not None:
            return candidate
    return candidates[0]


def flatten_unions(schema: Any) -> Any:
    """Replace each ``anyOf``/``oneOf`` node with one of its candidates."""
    if not isinstance(schema, dict):
        return schema

    working = schema
    union = schema.get("anyOf") or schema.get("oneOf")
    if isinstance(union, list):
        candidates = [c for c in union if isinstance(c, dict)]
        if candidates:
            working = dict(_pick_union_candidate(candidates))
            if schema.get("description"):
                working["description"] = schema["description"]

    flattened = dict(working)
    properties = working.get("properties")
    if isinstance(properties, dict):
        flattened["properties"] = {
            name: flatten_unions(value) for name, value in properties.items()
        }
    if "items" in working:
        flattened["items"] = flatten_unions(working["items"])
    return flattened


def filter_allowed_fields(schema: Any) -> dict[str, Any]:
    """Drop every key outside ``ALLOWED_SCHEMA_FIELDS``.

    Non-object property schemas (``true``, ``false``) become empty objects and a
    tuple-style ``items`` list collapses to its first schema.
    """
    if not isinstance(schema, dict):
        return {}

    clean: dict[str, Any] = {}
    for key, value in schema.items():
        if key not in ALLOWED_SCHEMA_FIELDS:
            continue
        if key == "properties":
            if isinstance(value, dict):
                clean["properties"] = {
                    name: filter_allowed_fields(sub) for name, sub in value.items()
                }
        elif key == "items":
            if isinstance(value, list):
                value = next((item for item in value if isinstance(item, dict)), {})
            clean["items"] = filter_allowed_fields(value)
        else:
            clean[key] = value
    return clean


def _infer_type(schema: dict[str, Any]) -> str:
    if "properties" in schema:
        return "object"
    if "items" in schema:
        return "array"
    if "enum" in schema:
        return "string"
    return "object"


def ensure_types(schema: dict[str, Any]) -> dict[str, Any]:
    """Make sure every node declares a single, non-empty ``type``.

    A list-valued type such as ``["string", "null"]`` keeps its first non-null
    entry and marks the node nullable.
    """
    typed = dict(schema)

    declared = typed.get("type")
    if isinstance(declared, list):
        concrete = [t for t in declared if isinstance(t, str) and t != "null"]
        if len(concrete) < len(declared):
            typed["nullable"] = True
        declared = concrete[0] if concrete else None
        typed["type"] = declared
    if not declared or not isinstance(declared, str):
        typed["type"] = _infer_type(typed)

    if isinstance(typed.get("properties"), dict):
        typed["properties"] = {
            name: ensure_types(sub) for name, sub in typed["properties"].items()
        }
    if isinstance(typed.get("items"), dict):
        typed["items"] = ensure_types(typed["items"])
    return typed


def normalize_tool_schema(schema: Any) -> dict[str, Any]:
    """Run all four passes over a tool's input schema."""
    stripped = strip_meta_fields(schema or {})
    flattened = flatten_unions(stripped)
    filtered = filter_allowed_fields(flattened)
    return ensure_types(filtered)
