"""Binding saved records to freshly created entities.

Resolution order for scene objects:

1. an explicit ``save_id`` declared by any Saveable on the entity;
2. the entity's hierarchy path (``Root/Child/Leaf``), which only holds while
   the scene layout is unchanged;
3. at restore time only, :class:`FallbackMatcher` picks the nearest unclaimed
   record within a bounded radius.

Plants use a separate, position-derived identity (:func:`plant_identity`).
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence, TypeVar

from .contract import Saveable
from .world import Entity, Vec3

logger = logging.getLogger(__name__)


class IdentityResolver:
    def resolve(self, entity: Entity, capabilities: Sequence[Saveable]) -> str:
        ids = sorted({c.save_id for c in capabilities if c.save_id})
        if ids:
            if len(ids) > 1:
                logger.warning(
                    "Multiple differing save ids on '%s': %s; using '%s'",
                    entity.name,
                    ",".join(ids),
                    ids[0],
                )
            return ids[0]
        return entity.hierarchy_path()


def _fixed(value: float, precision: int) -> str:
    # + 0.0 turns -0.0 into 0.0 so jitter around zero maps to one id
    return f"{round(value, precision) + 0.0:.{precision}f}"


def plant_identity(item_name: str, position: Vec3, precision: int = 2) -> str:
    """Item name plus position rounded to ``precision`` decimals.

    >>> plant_identity("Tomato", Vec3(10, 0.001, 5))
    'Tomato_10.00_0.00_5.00'
    """
    return "_".join(
        [item_name, _fixed(position.x, precision), _fixed(position.y, precision), _fixed(position.z, precision)]
    )


class Positioned(Protocol):
    position: Vec3


R = TypeVar("R", bound=Positioned)


class FallbackMatcher:
    """Nearest-neighbour lookup used when no exact identity match exists.

    Stateless: callers mark the returned record as claimed themselves.
    """

    def __init__(self, max_radius: float = 5.0) -> None:
        self.max_radius = max_radius

    def match(self, records: Sequence[R], target: Vec3, max_radius: Optional[float] = None) -> Optional[R]:
        radius = self.max_radius if max_radius is None else max_radius
        best: Optional[R] = None
        best_d = float("inf")
        for record in records:
            d = record.position.sqr_distance(target)
            if d < best_d:
                best, best_d = record, d
        if best is None or best_d > radius * radius:
            return None
        return best
