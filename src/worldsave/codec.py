from __future__ import annotations

import json
import logging
from typing import Any, Dict

from jsonschema import Draft202012Validator

from .errors import CorruptSaveError
from .records import SCHEMA_VERSION, SaveRecord

logger = logging.getLogger(__name__)

_VEC3 = {
    "type": "object",
    "properties": {"x": {"type": "number"}, "y": {"type": "number"}, "z": {"type": "number"}},
}

_SLOT = {
    "type": "object",
    "required": ["item_name"],
    "properties": {
        "item_name": {"type": "string"},
        "quantity": {"type": "integer"},
        "slot_index": {"type": "integer"},
    },
}

_PLAYER = {
    "type": "object",
    "properties": {"position": _VEC3, "rotation": _VEC3, "scene": {"type": "string"}},
}

SAVE_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "schema_version": {"type": "integer"},
        "save_timestamp": {"type": "string"},
        "scene_identifier": {"type": "string"},
        "player_state": {"anyOf": [_PLAYER, {"type": "null"}]},
        "player_scene_states": {"type": "array", "items": _PLAYER},
        "world_items": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["item_name"],
                "properties": {
                    "item_name": {"type": "string"},
                    "position": _VEC3,
                    "rotation": _VEC3,
                    "scale": _VEC3,
                    "quantity": {"type": "integer"},
                    "scene": {"type": "string"},
                },
            },
        },
        "plants": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["item_name", "plant_id"],
                "properties": {
                    "item_name": {"type": "string"},
                    "plant_id": {"type": "string"},
                    "position": _VEC3,
                    "is_collected": {"type": "boolean"},
                },
            },
        },
        "inventory": {"type": "object", "properties": {"entries": {"type": "array", "items": _SLOT}}},
        "container": {"type": "object", "properties": {"entries": {"type": "array", "items": _SLOT}}},
        "market": {
            "type": "object",
            "properties": {
                "player_money": {"type": "integer"},
                "offers": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "item_name": {"type": "string"},
                            "price": {"type": "integer"},
                            "stock": {"type": "integer"},
                        },
                    },
                },
            },
        },
        "scene_objects": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["object_id"],
                "properties": {
                    "object_id": {"type": "string"},
                    "is_active": {"type": "boolean"},
                    "component_data": {
                        "type": "array",
                        "items": {
                            "type": "array",
                            "prefixItems": [{"type": "string"}, {"type": "string"}],
                            "minItems": 2,
                            "maxItems": 2,
                        },
                    },
                },
            },
        },
        "visited_scenes": {"type": "array", "items": {"type": "string"}},
    },
}

_validator = Draft202012Validator(SAVE_SCHEMA)


def encode_record(record: SaveRecord) -> str:
    """Encode a SaveRecord to a pretty-printed JSON string."""
    return json.dumps(record.to_dict(), ensure_ascii=False, sort_keys=True, indent=2)


def decode_record(text: str) -> SaveRecord:
    """Decode JSON text into a SaveRecord, migrating older schema versions."""
    try:
        data: Dict[str, Any] = json.loads(text)
    except json.JSONDecodeError as e:
        raise CorruptSaveError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise CorruptSaveError("Save payload is not a JSON object")

    try:
        version = int(data.get("schema_version", SCHEMA_VERSION))
    except (TypeError, ValueError) as e:
        raise CorruptSaveError(f"Invalid schema_version: {data.get('schema_version')!r}") from e
    if version != SCHEMA_VERSION:
        data = migrate_data(data, from_version=version, to_version=SCHEMA_VERSION)

    errors = sorted(_validator.iter_errors(data), key=lambda err: [str(p) for p in err.path])
    if errors:
        for err in errors:
            logger.debug("Save schema violation at %s: %s", "/".join(str(p) for p in err.path), err.message)
        first = errors[0]
        location = "/".join(str(p) for p in first.path) or "<root>"
        raise CorruptSaveError(f"Save does not match schema at {location}: {first.message}")

    try:
        return SaveRecord.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise CorruptSaveError(f"Malformed save record: {e!r}") from e


def migrate_data(data: Dict[str, Any], from_version: int, to_version: int) -> Dict[str, Any]:
    """Migrate data between schema versions.

    There is a single schema version so far; only the version field is updated.
    """
    if from_version == to_version:
        return data
    if from_version > to_version:
        raise CorruptSaveError(
            f"Save schema version {from_version} is newer than supported {to_version}."
        )
    data["schema_version"] = to_version
    return data
