from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .world import ONE, Vec3

# Increment when making breaking schema changes
SCHEMA_VERSION = 1


@dataclass
class PlayerState:
    position: Vec3 = field(default_factory=Vec3)
    rotation: Vec3 = field(default_factory=Vec3)
    scene: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"position": self.position.to_dict(), "rotation": self.rotation.to_dict(), "scene": self.scene}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PlayerState":
        return PlayerState(
            position=Vec3.from_dict(data.get("position")),
            rotation=Vec3.from_dict(data.get("rotation")),
            scene=str(data.get("scene", "")),
        )


@dataclass
class WorldItemRecord:
    """A pickable, fungible item lying in a scene. Respawned wholesale on restore."""

    item_name: str
    position: Vec3 = field(default_factory=Vec3)
    rotation: Vec3 = field(default_factory=Vec3)
    scale: Vec3 = ONE
    quantity: int = 1
    scene: str = ""
    persistent_id: str = ""
    origin: str = "scene_placed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_name": self.item_name,
            "position": self.position.to_dict(),
            "rotation": self.rotation.to_dict(),
            "scale": self.scale.to_dict(),
            "quantity": self.quantity,
            "scene": self.scene,
            "persistent_id": self.persistent_id,
            "origin": self.origin,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "WorldItemRecord":
        return WorldItemRecord(
            item_name=str(data["item_name"]),
            position=Vec3.from_dict(data.get("position")),
            rotation=Vec3.from_dict(data.get("rotation")),
            scale=Vec3.from_dict(data.get("scale"), default=ONE),
            quantity=int(data.get("quantity", 1)),
            scene=str(data.get("scene", "")),
            persistent_id=str(data.get("persistent_id") or ""),
            origin=str(data.get("origin") or "scene_placed"),
        )


@dataclass
class PlantRecord:
    """A plant in a scene. ``is_collected`` plants must never come back."""

    item_name: str
    plant_id: str
    position: Vec3 = field(default_factory=Vec3)
    rotation: Vec3 = field(default_factory=Vec3)
    scale: Vec3 = ONE
    scene: str = ""
    is_collected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_name": self.item_name,
            "plant_id": self.plant_id,
            "position": self.position.to_dict(),
            "rotation": self.rotation.to_dict(),
            "scale": self.scale.to_dict(),
            "scene": self.scene,
            "is_collected": self.is_collected,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PlantRecord":
        return PlantRecord(
            item_name=str(data["item_name"]),
            plant_id=str(data["plant_id"]),
            position=Vec3.from_dict(data.get("position")),
            rotation=Vec3.from_dict(data.get("rotation")),
            scale=Vec3.from_dict(data.get("scale"), default=ONE),
            scene=str(data.get("scene", "")),
            is_collected=bool(data.get("is_collected", False)),
        )


@dataclass(frozen=True)
class SlotEntry:
    item_name: str
    quantity: int
    slot_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {"item_name": self.item_name, "quantity": self.quantity, "slot_index": self.slot_index}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SlotEntry":
        return SlotEntry(
            item_name=str(data["item_name"]),
            quantity=int(data.get("quantity", 0)),
            slot_index=int(data.get("slot_index", -1)),
        )


@dataclass
class InventoryRecord:
    entries: List[SlotEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"entries": [e.to_dict() for e in self.entries]}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "InventoryRecord":
        return InventoryRecord(entries=[SlotEntry.from_dict(e) for e in data.get("entries", [])])


@dataclass
class ContainerRecord:
    """Contents of the brewing container; same shape as the inventory, separate namespace."""

    entries: List[SlotEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"entries": [e.to_dict() for e in self.entries]}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ContainerRecord":
        return ContainerRecord(entries=[SlotEntry.from_dict(e) for e in data.get("entries", [])])


@dataclass(frozen=True)
class OfferRecord:
    item_name: str
    price: int
    stock: int

    def to_dict(self) -> Dict[str, Any]:
        return {"item_name": self.item_name, "price": self.price, "stock": self.stock}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "OfferRecord":
        return OfferRecord(
            item_name=str(data.get("item_name", "")),
            price=int(data.get("price", 0)),
            stock=int(data.get("stock", 0)),
        )


@dataclass
class MarketRecord:
    player_money: int = 0
    offers: List[OfferRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"player_money": self.player_money, "offers": [o.to_dict() for o in self.offers]}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "MarketRecord":
        return MarketRecord(
            player_money=int(data.get("player_money", 0)),
            offers=[OfferRecord.from_dict(o) for o in data.get("offers", [])],
        )


@dataclass
class SceneObjectRecord:
    """Generic envelope for any entity carrying Saveable components.

    ``component_data`` holds ``("<TypeName>.<field>", value)`` pairs so that
    several capabilities on one entity never collide.
    """

    object_id: str
    position: Vec3 = field(default_factory=Vec3)
    rotation: Vec3 = field(default_factory=Vec3)
    scale: Vec3 = ONE
    is_active: bool = True
    scene: str = ""
    component_data: List[Tuple[str, str]] = field(default_factory=list)

    def add(self, key: str, value: str) -> None:
        self.component_data.append((key, value))

    def get(self, key: str, default: str = "") -> str:
        for k, v in self.component_data:
            if k == key:
                return v
        return default

    def state_for(self, type_name: str) -> Dict[str, str]:
        """Return the un-prefixed fields stored for one component type."""
        prefix = type_name + "."
        return {k[len(prefix):]: v for k, v in self.component_data if k.startswith(prefix)}

    def has_type(self, type_name: str) -> bool:
        prefix = type_name + "."
        return any(k.startswith(prefix) for k, _ in self.component_data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "object_id": self.object_id,
            "position": self.position.to_dict(),
            "rotation": self.rotation.to_dict(),
            "scale": self.scale.to_dict(),
            "is_active": self.is_active,
            "scene": self.scene,
            "component_data": [[k, v] for k, v in self.component_data],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SceneObjectRecord":
        return SceneObjectRecord(
            object_id=str(data["object_id"]),
            position=Vec3.from_dict(data.get("position")),
            rotation=Vec3.from_dict(data.get("rotation")),
            scale=Vec3.from_dict(data.get("scale"), default=ONE),
            is_active=bool(data.get("is_active", True)),
            scene=str(data.get("scene", "")),
            component_data=[(str(k), str(v)) for k, v in data.get("component_data", [])],
        )


@dataclass
class SaveRecord:
    """Everything captured by one save operation."""

    save_timestamp: str = ""
    scene_identifier: str = ""
    player_state: Optional[PlayerState] = None
    player_scene_states: List[PlayerState] = field(default_factory=list)
    world_items: List[WorldItemRecord] = field(default_factory=list)
    plants: List[PlantRecord] = field(default_factory=list)
    inventory: InventoryRecord = field(default_factory=InventoryRecord)
    container: ContainerRecord = field(default_factory=ContainerRecord)
    market: MarketRecord = field(default_factory=MarketRecord)
    scene_objects: List[SceneObjectRecord] = field(default_factory=list)
    visited_scenes: List[str] = field(default_factory=list)
    schema_version: int = SCHEMA_VERSION

    def player_state_for(self, scene: str) -> Optional[PlayerState]:
        for state in self.player_scene_states:
            if state.scene == scene:
                return state
        return None

    def covers_scene(self, scene: str) -> bool:
        """True once any save has captured ``scene``.

        Records written before ``visited_scenes`` existed fall back to looking
        for anything stored under the scene.
        """
        if scene in self.visited_scenes:
            return True
        if self.scene_identifier == scene or self.player_state_for(scene) is not None:
            return True
        return any(w.scene == scene for w in self.world_items) or any(p.scene == scene for p in self.plants)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "save_timestamp": self.save_timestamp,
            "scene_identifier": self.scene_identifier,
            "player_state": self.player_state.to_dict() if self.player_state is not None else None,
            "player_scene_states": [p.to_dict() for p in self.player_scene_states],
            "world_items": [w.to_dict() for w in self.world_items],
            "plants": [p.to_dict() for p in self.plants],
            "inventory": self.inventory.to_dict(),
            "container": self.container.to_dict(),
            "market": self.market.to_dict(),
            "scene_objects": [s.to_dict() for s in self.scene_objects],
            "visited_scenes": list(self.visited_scenes),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SaveRecord":
        player = data.get("player_state")
        return SaveRecord(
            save_timestamp=str(data.get("save_timestamp", "")),
            scene_identifier=str(data.get("scene_identifier", "")),
            player_state=PlayerState.from_dict(player) if isinstance(player, dict) else None,
            player_scene_states=[PlayerState.from_dict(p) for p in data.get("player_scene_states", [])],
            world_items=[WorldItemRecord.from_dict(w) for w in data.get("world_items", [])],
            plants=[PlantRecord.from_dict(p) for p in data.get("plants", [])],
            inventory=InventoryRecord.from_dict(data.get("inventory") or {}),
            container=ContainerRecord.from_dict(data.get("container") or {}),
            market=MarketRecord.from_dict(data.get("market") or {}),
            scene_objects=[SceneObjectRecord.from_dict(s) for s in data.get("scene_objects", [])],
            visited_scenes=[str(s) for s in data.get("visited_scenes", [])],
            schema_version=int(data.get("schema_version", SCHEMA_VERSION)),
        )
