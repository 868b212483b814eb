"""Domain components the save system knows how to capture and rebuild."""
from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .catalog import ItemDefinition
from .contract import Saveable, state_bool, state_float, state_str
from .inventory import SlotInventory
from .world import ONE, Component, Entity, EntityRegistry, Transform, Vec3

logger = logging.getLogger(__name__)

PLAYER_TAG = "Player"


class WorldItemOrigin(str, Enum):
    SCENE_PLACED = "scene_placed"
    MANUAL_DROP = "manual_drop"
    SPAWNED = "spawned"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "WorldItemOrigin":
        try:
            return cls(raw)
        except ValueError:
            return cls.SCENE_PLACED


class WorldItem(Component):
    """A pickable item lying in the scene."""

    def __init__(
        self,
        item: ItemDefinition,
        quantity: int = 1,
        *,
        persistent_id: Optional[str] = None,
        origin: WorldItemOrigin = WorldItemOrigin.SCENE_PLACED,
    ) -> None:
        self.item = item
        self.quantity = quantity
        self.persistent_id = persistent_id or uuid.uuid4().hex
        self.origin = origin

    def is_plant_related(self) -> bool:
        """True when this item is part of a plant's representation."""
        entity = self.entity
        if entity is None:
            return False
        return (
            entity.get_component_in_parent(Plant) is not None
            or entity.get_component_in_children(Plant) is not None
        )


class Plant(Component):
    """A harvestable plant. Its identity is derived from item name and position."""

    def __init__(self, item: ItemDefinition) -> None:
        self.item = item


class Container(Component):
    """Stateful storage placed in a scene, such as the brewing flask."""

    def __init__(self, size: int = 4) -> None:
        self.storage = SlotInventory(size)


@dataclass
class Offer:
    item: ItemDefinition
    price: int
    stock: int


@dataclass
class ProductEntry:
    item: ItemDefinition
    min_price: int = 1
    max_price: int = 10
    max_stock: int = 5


class Market(Component):
    """Shop showing a handful of offers rolled from a product pool."""

    def __init__(
        self,
        product_pool: Iterable[ProductEntry] = (),
        slot_count: int = 6,
        player_money: int = 0,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.product_pool: List[ProductEntry] = list(product_pool)
        self.slot_count = slot_count
        self.player_money = player_money
        self._active_offers: List[Offer] = []
        if self.product_pool:
            self.roll_offers(rng or random.Random())

    def roll_offers(self, rng: random.Random) -> None:
        picks = rng.sample(self.product_pool, min(self.slot_count, len(self.product_pool)))
        self._active_offers = [
            Offer(
                item=p.item,
                price=rng.randint(p.min_price, p.max_price),
                stock=rng.randint(1, max(1, p.max_stock)),
            )
            for p in picks
        ]
        logger.debug("Rolled %d market offers", len(self._active_offers))

    def active_offers(self) -> List[Offer]:
        return list(self._active_offers)

    def apply_saved_offers(self, offers: Iterable[Offer]) -> None:
        self._active_offers = list(offers)


class SaveableTransform(Saveable):
    """Persists position, rotation, optionally scale and the active flag of its entity."""

    def __init__(self, save_id: Optional[str] = None, *, ignore_scale: bool = False, save_active_state: bool = True) -> None:
        self.save_id = save_id
        self.ignore_scale = ignore_scale
        self.save_active_state = save_active_state

    def collect_state(self) -> Dict[str, Any]:
        t = self.transform
        data: Dict[str, Any] = {
            "px": t.position.x, "py": t.position.y, "pz": t.position.z,
            "rx": t.rotation.x, "ry": t.rotation.y, "rz": t.rotation.z,
        }
        if not self.ignore_scale:
            data.update({"sx": t.scale.x, "sy": t.scale.y, "sz": t.scale.z})
        if self.save_active_state:
            data["active"] = self.entity.active
        data["saveId"] = self.save_id or self.entity.hierarchy_path()
        return data

    def apply_state(self, state: Mapping[str, Any]) -> None:
        t = self.transform
        t.position = Vec3(
            state_float(state, "px", t.position.x),
            state_float(state, "py", t.position.y),
            state_float(state, "pz", t.position.z),
        )
        t.rotation = Vec3(
            state_float(state, "rx", t.rotation.x),
            state_float(state, "ry", t.rotation.y),
            state_float(state, "rz", t.rotation.z),
        )
        if not self.ignore_scale:
            t.scale = Vec3(
                state_float(state, "sx", t.scale.x),
                state_float(state, "sy", t.scale.y),
                state_float(state, "sz", t.scale.z),
            )
        if self.save_active_state:
            self.entity.active = state_bool(state, "active", self.entity.active)


@dataclass
class Plot:
    point: Vec3
    prepared: bool = False
    occupied: bool = False
    crop: str = ""


class FarmingArea(Saveable):
    """Soil plots; an occupied plot regrows its crop on load."""

    def __init__(self, points: Iterable[Vec3], save_id: Optional[str] = None) -> None:
        self.save_id = save_id
        self.plots: List[Plot] = [Plot(point=p) for p in points]

    def collect_state(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for i, plot in enumerate(self.plots):
            data[f"Plot{i}.prepared"] = plot.prepared
            data[f"Plot{i}.occupied"] = plot.occupied
            data[f"Plot{i}.crop"] = plot.crop
        return data

    def apply_state(self, state: Mapping[str, Any]) -> None:
        for i, plot in enumerate(self.plots):
            plot.prepared = state_bool(state, f"Plot{i}.prepared", plot.prepared)
            plot.occupied = state_bool(state, f"Plot{i}.occupied", plot.occupied)
            plot.crop = state_str(state, f"Plot{i}.crop", plot.crop)

    def occupied_plots(self) -> List[Plot]:
        return [plot for plot in self.plots if plot.occupied and plot.crop]

    def claims(self, position: Vec3, item_name: str, radius: float) -> bool:
        """True when an occupied plot growing ``item_name`` stands within ``radius``."""
        limit = radius * radius
        return any(
            plot.crop == item_name and plot.point.sqr_distance(position) < limit
            for plot in self.occupied_plots()
        )

    def release(self, position: Vec3, item_name: str, radius: float) -> int:
        """Free the plots whose crop was harvested at ``position``."""
        limit = radius * radius
        freed = 0
        for plot in self.occupied_plots():
            if plot.crop == item_name and plot.point.sqr_distance(position) < limit:
                plot.occupied = False
                plot.crop = ""
                freed += 1
        return freed


class Bucket(Saveable):
    def __init__(self, save_id: Optional[str] = None, filled: bool = False) -> None:
        self.save_id = save_id
        self.filled = filled

    def collect_state(self) -> Dict[str, Any]:
        # never restored as carried
        return {"filled": self.filled, "carried": False}

    def apply_state(self, state: Mapping[str, Any]) -> None:
        self.filled = state_bool(state, "filled", self.filled)


def spawn_world_item(
    scene: EntityRegistry,
    item: ItemDefinition,
    position: Vec3,
    quantity: int = 1,
    *,
    rotation: Vec3 = Vec3(),
    scale: Vec3 = ONE,
    persistent_id: Optional[str] = None,
    origin: WorldItemOrigin = WorldItemOrigin.SPAWNED,
) -> Entity:
    prefab = item.drop_prefab or item.world_prefab or item.name
    entity = Entity(prefab, transform=Transform(position, rotation, scale))
    entity.add_component(WorldItem(item, max(1, quantity), persistent_id=persistent_id, origin=origin))
    scene.add(entity)
    logger.debug("Spawned world item %s x%d at %s", item.name, quantity, position)
    return entity


def spawn_plant(
    scene: EntityRegistry,
    item: ItemDefinition,
    position: Vec3,
    *,
    rotation: Vec3 = Vec3(),
    scale: Vec3 = ONE,
) -> Optional[Entity]:
    """Instantiate a harvestable plant from the item's representation.

    Prefers the standing ``world_prefab``; falls back to the ``drop_prefab``
    without a WorldItem so the plant is never captured as a loose item.
    """
    prefab = item.world_prefab or item.drop_prefab
    if prefab is None:
        logger.error("No representation configured for plant %s", item.name)
        return None
    entity = Entity(prefab, transform=Transform(position, rotation, scale))
    entity.add_component(Plant(item))
    scene.add(entity)
    return entity
