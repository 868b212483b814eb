"""The Saveable capability and helpers for reading stored values leniently.

Stored scene object values come back as strings. A field that fails to parse
falls back to the supplied default so a single bad value never prevents the
rest of an entity from loading.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from .world import Component, Vec3

logger = logging.getLogger(__name__)

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


class Saveable(Component, ABC):
    """Opt-in capability for components that persist their own fields.

    ``save_id`` is an optional explicit identity. When empty, the entity's
    hierarchy path is used instead (see :class:`worldsave.identity.IdentityResolver`).
    """

    save_id: Optional[str] = None

    @abstractmethod
    def collect_state(self) -> Dict[str, Any]:
        """Return the fields to persist. Must not mutate the component."""

    @abstractmethod
    def apply_state(self, state: Mapping[str, Any]) -> None:
        """Apply stored fields. Unknown or missing keys keep their current value."""


def serialize_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, Vec3):
        return f"{value.x!r},{value.y!r},{value.z!r}"
    return str(value)


def state_str(state: Mapping[str, Any], key: str, default: str = "") -> str:
    value = state.get(key)
    return default if value is None else str(value)


def state_float(state: Mapping[str, Any], key: str, default: float) -> float:
    value = state.get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Could not parse float field %r from %r; using %r", key, value, default)
        return default


def state_int(state: Mapping[str, Any], key: str, default: int) -> int:
    value = state.get(key)
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        logger.warning("Could not parse int field %r from %r; using %r", key, value, default)
        return default


def state_bool(state: Mapping[str, Any], key: str, default: bool) -> bool:
    value = state.get(key)
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    logger.warning("Could not parse bool field %r from %r; using %r", key, value, default)
    return default


def state_vec3(state: Mapping[str, Any], key: str, default: Vec3) -> Vec3:
    value = state.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, Vec3):
        return value
    parts = str(value).split(",")
    if len(parts) != 3:
        logger.warning("Could not parse vector field %r from %r; using default", key, value)
        return default
    try:
        return Vec3(float(parts[0]), float(parts[1]), float(parts[2]))
    except ValueError:
        logger.warning("Could not parse vector field %r from %r; using default", key, value)
        return default
