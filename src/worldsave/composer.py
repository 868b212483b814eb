from __future__ import annotations

import copy
import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Set

from .components import PLAYER_TAG, Container, Market, Plant, WorldItem
from .config import SaveSettings
from .contract import Saveable, serialize_value
from .identity import IdentityResolver, plant_identity
from .inventory import SlotInventory
from .records import (
    ContainerRecord,
    InventoryRecord,
    MarketRecord,
    OfferRecord,
    PlantRecord,
    PlayerState,
    SaveRecord,
    SceneObjectRecord,
    SlotEntry,
    WorldItemRecord,
)
from .wallet import Wallet
from .world import Entity, EntityRegistry

logger = logging.getLogger(__name__)


def collapse_plants(plants: List[PlantRecord]) -> List[PlantRecord]:
    """Keep one record per (scene, plant id); a collected record always wins."""
    kept: "OrderedDict[tuple, PlantRecord]" = OrderedDict()
    for plant in plants:
        key = (plant.scene, plant.plant_id)
        existing = kept.get(key)
        if existing is None or (plant.is_collected and not existing.is_collected):
            kept[key] = plant
    return list(kept.values())


class SnapshotComposer:
    """Builds a SaveRecord from the live scene on top of the previous record.

    Every domain replaces only the current scene's contribution; whatever
    other scenes contributed earlier is carried over untouched.
    """

    def __init__(
        self,
        inventory: SlotInventory,
        settings: Optional[SaveSettings] = None,
        *,
        wallet: Optional[Wallet] = None,
        resolver: Optional[IdentityResolver] = None,
    ) -> None:
        self.inventory = inventory
        self.settings = settings or SaveSettings()
        self.wallet = wallet
        self.resolver = resolver or IdentityResolver()

    def compose(self, previous: Optional[SaveRecord], scene: EntityRegistry, timestamp: str) -> SaveRecord:
        record = copy.deepcopy(previous) if previous is not None else SaveRecord()
        record.save_timestamp = timestamp
        record.scene_identifier = scene.scene_id
        if scene.scene_id not in record.visited_scenes:
            record.visited_scenes.append(scene.scene_id)

        self._harvest_player(record, scene)
        self._harvest_world_items(record, scene)
        self._harvest_plants(record, scene)
        record.inventory = self._harvest_inventory()
        self._harvest_container(record, scene)
        self._harvest_market(record, scene)
        self._harvest_scene_objects(record, scene)
        logger.info(
            "Composed snapshot %s for scene %s: %d world items, %d plants, %d scene objects",
            timestamp,
            scene.scene_id,
            len(record.world_items),
            len(record.plants),
            len(record.scene_objects),
        )
        return record

    def _harvest_player(self, record: SaveRecord, scene: EntityRegistry) -> None:
        player = scene.find_with_tag(PLAYER_TAG)
        if player is None:
            logger.warning("No player in scene %s; keeping previous player state", scene.scene_id)
            return
        state = PlayerState(
            position=player.transform.position,
            rotation=player.transform.rotation,
            scene=scene.scene_id,
        )
        record.player_state = state
        record.player_scene_states = [s for s in record.player_scene_states if s.scene != scene.scene_id]
        record.player_scene_states.append(copy.copy(state))

    def _harvest_world_items(self, record: SaveRecord, scene: EntityRegistry) -> None:
        entries: List[WorldItemRecord] = []
        seen: Set[str] = set()
        for wi in scene.components(WorldItem):
            if wi.is_plant_related():
                continue
            if wi.persistent_id in seen:
                continue
            seen.add(wi.persistent_id)
            t = wi.transform
            entries.append(
                WorldItemRecord(
                    item_name=wi.item.name,
                    position=t.position,
                    rotation=t.rotation,
                    scale=t.scale,
                    quantity=wi.quantity,
                    scene=scene.scene_id,
                    persistent_id=wi.persistent_id,
                    origin=wi.origin.value,
                )
            )
        record.world_items = [w for w in record.world_items if w.scene != scene.scene_id] + entries

    def _harvest_plants(self, record: SaveRecord, scene: EntityRegistry) -> None:
        current = scene.scene_id
        precision = self.settings.plant_id_precision
        collected = [p for p in record.plants if p.scene == current and p.is_collected]
        others = [p for p in record.plants if p.scene != current]
        taken: Set[str] = {p.plant_id for p in collected}
        fresh: List[PlantRecord] = []
        for plant in scene.components(Plant):
            t = plant.transform
            pid = plant_identity(plant.item.name, t.position, precision)
            if pid in taken:
                continue
            taken.add(pid)
            fresh.append(
                PlantRecord(
                    item_name=plant.item.name,
                    plant_id=pid,
                    position=t.position,
                    rotation=t.rotation,
                    scale=t.scale,
                    scene=current,
                )
            )
        record.plants = others + collapse_plants(collected) + fresh

    def _harvest_inventory(self) -> InventoryRecord:
        return InventoryRecord(
            entries=[SlotEntry(slot.item.name, slot.count, index) for index, slot in self.inventory.filled()]
        )

    def _harvest_container(self, record: SaveRecord, scene: EntityRegistry) -> None:
        container = scene.find_component(Container)
        if container is None:
            logger.debug("No container in scene %s; keeping previous container record", scene.scene_id)
            return
        record.container = ContainerRecord(
            entries=[SlotEntry(slot.item.name, slot.count, index) for index, slot in container.storage.filled()]
        )

    def _harvest_market(self, record: SaveRecord, scene: EntityRegistry) -> None:
        market = scene.find_component(Market)
        if self.wallet is not None:
            record.market.player_money = self.wallet.balance
        elif market is not None:
            record.market.player_money = market.player_money
        if market is None:
            return
        record.market = MarketRecord(
            player_money=record.market.player_money,
            offers=[OfferRecord(o.item.name, o.price, o.stock) for o in market.active_offers()],
        )

    def _harvest_scene_objects(self, record: SaveRecord, scene: EntityRegistry) -> None:
        by_entity: Dict[int, List[Saveable]] = {}
        owners: Dict[int, Entity] = {}
        for comp in scene.components(Saveable):
            key = id(comp.entity)
            owners[key] = comp.entity
            by_entity.setdefault(key, []).append(comp)

        if not by_entity:
            logger.warning(
                "No saveable objects found in scene %s; keeping previous entries", scene.scene_id
            )
            return

        entries = [self.capture_object(owners[key], comps, scene.scene_id) for key, comps in by_entity.items()]
        kept = [s for s in record.scene_objects if s.scene and s.scene != scene.scene_id]
        removed = len(record.scene_objects) - len(kept)
        record.scene_objects = kept + entries
        logger.debug(
            "Replaced %d scene object entries for '%s' with %d", removed, scene.scene_id, len(entries)
        )

    def capture_object(self, entity: Entity, comps: List[Saveable], scene_id: str) -> SceneObjectRecord:
        t = entity.transform
        sod = SceneObjectRecord(
            object_id=self.resolver.resolve(entity, comps),
            position=t.position,
            rotation=t.rotation,
            scale=t.scale,
            is_active=entity.active,
            scene=scene_id,
        )
        for comp in comps:
            try:
                data = comp.collect_state()
            except Exception:
                logger.exception("Save error in %s on %s", comp.type_name, entity.name)
                continue
            for field_name, value in (data or {}).items():
                sod.add(f"{comp.type_name}.{field_name}", serialize_value(value))
        return sod
