"""Tick-driven staged restoration of a SaveRecord into a freshly loaded scene.

Each call to :meth:`RestorationOrchestrator.tick` runs exactly one stage, so
the host loop stays responsive and later stages observe the effects of earlier
ones (destroyed items are gone, spawned plants exist). A stage that fails is
logged and the next stage still runs.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Deque, Dict, List, Optional, Set

from .catalog import ItemCatalog
from .components import (
    PLAYER_TAG,
    Container,
    FarmingArea,
    Market,
    Offer,
    Plant,
    WorldItem,
    WorldItemOrigin,
    spawn_plant,
    spawn_world_item,
)
from .composer import collapse_plants
from .config import SaveSettings
from .contract import Saveable
from .errors import MissingEntity, MissingItemDefinition
from .events import CONTAINER_CHANGED, INVENTORY_CHANGED, MARKET_CHANGED, EventBus
from .identity import FallbackMatcher, IdentityResolver, plant_identity
from .inventory import SlotInventory
from .records import SaveRecord, SceneObjectRecord, SlotEntry
from .wallet import Wallet
from .world import ONE, Entity, EntityRegistry, Vec3

logger = logging.getLogger(__name__)


class RestoreStage(IntEnum):
    CLEAR_WORLD_ITEMS = 1
    PLAYER = 2
    WORLD_ITEMS = 3
    SCENE_OBJECTS = 4
    PLANTS = 5
    INVENTORY = 6
    CONTAINER = 7
    MARKET = 8
    EXTRA_PASSES = 9
    DONE = 10


@dataclass
class RestoreOperation:
    record: SaveRecord
    scene: EntityRegistry
    stage: RestoreStage = RestoreStage.CLEAR_WORLD_ITEMS
    passes_left: int = 0
    spawned_plants: Set[str] = field(default_factory=set)
    failed_stages: List[RestoreStage] = field(default_factory=list)

    @property
    def done(self) -> bool:
        return self.stage is RestoreStage.DONE


class RestorationOrchestrator:
    """Applies save records to live scenes, one stage per tick.

    Requests made while a restore is running are queued and started in order.
    """

    def __init__(
        self,
        catalog: ItemCatalog,
        inventory: SlotInventory,
        settings: Optional[SaveSettings] = None,
        *,
        wallet: Optional[Wallet] = None,
        bus: Optional[EventBus] = None,
        resolver: Optional[IdentityResolver] = None,
        matcher: Optional[FallbackMatcher] = None,
    ) -> None:
        self.catalog = catalog
        self.inventory = inventory
        self.settings = settings or SaveSettings()
        self.wallet = wallet
        self.bus = bus
        self.resolver = resolver or IdentityResolver()
        self.matcher = matcher or FallbackMatcher(self.settings.fallback_radius)
        self._current: Optional[RestoreOperation] = None
        self._queue: Deque[RestoreOperation] = deque()
        self.last_completed: Optional[RestoreOperation] = None

    @property
    def busy(self) -> bool:
        return self._current is not None or bool(self._queue)

    @property
    def current(self) -> Optional[RestoreOperation]:
        return self._current

    def request(self, record: SaveRecord, scene: EntityRegistry) -> RestoreOperation:
        op = RestoreOperation(record=record, scene=scene, passes_left=self.settings.extra_restore_passes)
        if self.busy:
            logger.info("Restore already running; queued restore of %s", scene.scene_id)
            self._queue.append(op)
        else:
            logger.info("Starting restore of scene %s from %s", scene.scene_id, record.save_timestamp)
            self._current = op
        return op

    def tick(self) -> bool:
        """Run the next stage. Returns False when there was nothing to do."""
        if self._current is None:
            if not self._queue:
                return False
            self._current = self._queue.popleft()
            logger.info("Starting queued restore of scene %s", self._current.scene.scene_id)

        op = self._current
        self._run_stage(op)
        op.stage = self._next_stage(op)

        if op.done:
            if op.failed_stages:
                logger.warning(
                    "Restore of %s finished with failed stages: %s",
                    op.scene.scene_id,
                    ", ".join(s.name for s in op.failed_stages),
                )
            else:
                logger.info("Restore of %s complete", op.scene.scene_id)
            self.last_completed = op
            self._current = None
        return True

    def run_until_idle(self, max_ticks: int = 10_000) -> int:
        ticks = 0
        while self.busy and ticks < max_ticks:
            self.tick()
            ticks += 1
        return ticks

    @staticmethod
    def _next_stage(op: RestoreOperation) -> RestoreStage:
        if op.stage is RestoreStage.EXTRA_PASSES:
            op.passes_left -= 1
            return RestoreStage.EXTRA_PASSES if op.passes_left > 0 else RestoreStage.DONE
        nxt = RestoreStage(op.stage + 1)
        if nxt is RestoreStage.EXTRA_PASSES and op.passes_left <= 0:
            return RestoreStage.DONE
        return nxt

    def _run_stage(self, op: RestoreOperation) -> None:
        handlers = {
            RestoreStage.CLEAR_WORLD_ITEMS: self._clear_world_items,
            RestoreStage.PLAYER: self._restore_player,
            RestoreStage.WORLD_ITEMS: self._restore_world_items,
            RestoreStage.SCENE_OBJECTS: self._restore_scene_objects,
            RestoreStage.PLANTS: self._restore_plants,
            RestoreStage.INVENTORY: self._restore_inventory,
            RestoreStage.CONTAINER: self._restore_container,
            RestoreStage.MARKET: self._restore_market,
            RestoreStage.EXTRA_PASSES: self._extra_pass,
        }
        handler = handlers[op.stage]
        try:
            handler(op)
        except MissingEntity as exc:
            logger.info("Skipping %s: %s", op.stage.name, exc)
        except MissingItemDefinition as exc:
            op.failed_stages.append(op.stage)
            logger.error("Stage %s failed: %s", op.stage.name, exc)
        except Exception:
            op.failed_stages.append(op.stage)
            logger.exception("Stage %s failed while restoring %s", op.stage.name, op.scene.scene_id)

    # stages

    def _clear_world_items(self, op: RestoreOperation) -> None:
        if not op.record.covers_scene(op.scene.scene_id):
            logger.debug("Scene %s never saved; keeping its placed items", op.scene.scene_id)
            return
        cleared = 0
        for wi in op.scene.components(WorldItem):
            if wi.is_plant_related() or wi.entity is None or wi.entity.destroyed:
                continue
            op.scene.destroy(wi.entity)
            cleared += 1
        logger.debug("Cleared %d world items in %s", cleared, op.scene.scene_id)

    def _restore_player(self, op: RestoreOperation) -> None:
        scene_id = op.scene.scene_id
        state = op.record.player_state_for(scene_id)
        if state is None and op.record.player_state is not None and op.record.player_state.scene == scene_id:
            state = op.record.player_state
        if state is None:
            logger.debug("No saved player state for %s", scene_id)
            return
        player = op.scene.find_with_tag(PLAYER_TAG)
        if player is None:
            raise MissingEntity(f"No player in scene {scene_id}")
        player.transform.position = state.position
        player.transform.rotation = state.rotation
        logger.info("Player restored to %s in %s", state.position, scene_id)

    def _uncollected_plant_ids(self, record: SaveRecord, scene_id: str) -> Set[str]:
        return {p.plant_id for p in record.plants if p.scene == scene_id and not p.is_collected}

    def _restore_world_items(self, op: RestoreOperation) -> None:
        scene_id = op.scene.scene_id
        precision = self.settings.plant_id_precision
        plant_ids = self._uncollected_plant_ids(op.record, scene_id)
        spawned = 0
        for rec in op.record.world_items:
            if rec.scene != scene_id:
                continue
            if plant_identity(rec.item_name, rec.position, precision) in plant_ids:
                continue
            try:
                item = self.catalog.get(rec.item_name)
            except MissingItemDefinition:
                logger.warning("Skipping world item with unknown item %r", rec.item_name)
                continue
            spawn_world_item(
                op.scene,
                item,
                rec.position,
                max(1, rec.quantity),
                rotation=rec.rotation,
                scale=ONE if rec.scale.is_zero() else rec.scale,
                persistent_id=rec.persistent_id or None,
                origin=WorldItemOrigin.parse(rec.origin),
            )
            spawned += 1
        logger.info("Restored %d world items in %s", spawned, scene_id)

    def _restore_scene_objects(self, op: RestoreOperation) -> None:
        scene_id = op.scene.scene_id
        records = [r for r in op.record.scene_objects if not r.scene or r.scene == scene_id]
        groups: Dict[int, List[Saveable]] = {}
        owners: Dict[int, Entity] = {}
        for comp in op.scene.components(Saveable):
            owners[id(comp.entity)] = comp.entity
            groups.setdefault(id(comp.entity), []).append(comp)

        ids = {key: self.resolver.resolve(owners[key], comps) for key, comps in groups.items()}
        live_ids = set(ids.values())
        claimed: Set[int] = set()
        restored = 0
        for key, comps in groups.items():
            entity = owners[key]
            rec = self._match_record(entity, ids[key], comps, records, claimed, live_ids)
            if rec is None:
                logger.debug("No saved state for %s; keeping defaults", entity.hierarchy_path())
                continue
            claimed.add(id(rec))
            self._apply_object(entity, comps, rec)
            restored += 1
        logger.info("Restored %d/%d scene objects in %s", restored, len(groups), scene_id)

    def _match_record(
        self,
        entity: Entity,
        object_id: str,
        comps: List[Saveable],
        records: List[SceneObjectRecord],
        claimed: Set[int],
        live_ids: Set[str],
    ) -> Optional[SceneObjectRecord]:
        free = [r for r in records if id(r) not in claimed]
        for rec in free:
            if rec.object_id == object_id:
                return rec

        # records that another live entity matches exactly are reserved for it
        free = [r for r in free if r.object_id not in live_ids]
        type_names = {c.type_name for c in comps}
        typed = [r for r in free if any(r.has_type(t) for t in type_names)]
        rec = self.matcher.match(typed, entity.transform.position)
        if rec is None:
            rec = self.matcher.match(free, entity.transform.position)
        if rec is not None:
            logger.info("Matched %s to saved %s by proximity", object_id, rec.object_id)
        return rec

    def _apply_object(self, entity: Entity, comps: List[Saveable], rec: SceneObjectRecord) -> None:
        t = entity.transform
        t.position = rec.position
        t.rotation = rec.rotation
        if not rec.scale.is_zero():
            t.scale = rec.scale
        entity.active = rec.is_active
        for comp in comps:
            try:
                comp.apply_state(rec.state_for(comp.type_name))
            except Exception:
                logger.exception("Load error in %s on %s", comp.type_name, entity.name)

    def _restore_plants(self, op: RestoreOperation) -> None:
        scene = op.scene
        precision = self.settings.plant_id_precision
        plants = collapse_plants([p for p in op.record.plants if p.scene == scene.scene_id])
        collected = {p.plant_id for p in plants if p.is_collected}

        live: Set[str] = set()
        removed = 0
        for plant in scene.components(Plant):
            pid = plant_identity(plant.item.name, plant.transform.position, precision)
            if pid in collected:
                scene.destroy(plant.entity)
                removed += 1
            else:
                live.add(pid)

        farms = scene.components(FarmingArea)
        radius = self.settings.plot_claim_radius
        regrown = 0
        for farm in farms:
            for plot in farm.occupied_plots():
                if any(plot.point.sqr_distance(p.transform.position) < radius * radius
                       for p in scene.components(Plant)):
                    continue
                pid = plant_identity(plot.crop, plot.point, precision)
                if pid in collected or pid in op.spawned_plants:
                    continue
                if any(p.is_collected and p.item_name == plot.crop
                       and plot.point.sqr_distance(p.position) < radius * radius for p in plants):
                    continue
                item = self.catalog.find(plot.crop)
                if item is None:
                    logger.warning("Plot crop %r has no item definition", plot.crop)
                    continue
                if spawn_plant(scene, item, plot.point) is not None:
                    live.add(pid)
                    op.spawned_plants.add(pid)
                    regrown += 1

        spawned = 0
        for rec in plants:
            if rec.is_collected or rec.plant_id in live or rec.plant_id in op.spawned_plants:
                continue
            if any(f.claims(rec.position, rec.item_name, radius) for f in farms) and self._crop_standing(
                scene, rec.item_name, rec.position, 2 * radius
            ):
                # grown by its plot
                continue
            try:
                item = self.catalog.get(rec.item_name)
            except MissingItemDefinition:
                logger.warning("Skipping plant with unknown item %r", rec.item_name)
                continue
            entity = spawn_plant(
                scene,
                item,
                rec.position,
                rotation=rec.rotation,
                scale=ONE if rec.scale.is_zero() else rec.scale,
            )
            if entity is not None:
                op.spawned_plants.add(rec.plant_id)
                spawned += 1
        logger.info(
            "Plants in %s: removed %d collected, regrew %d on plots, spawned %d",
            scene.scene_id, removed, regrown, spawned,
        )

    @staticmethod
    def _crop_standing(scene: EntityRegistry, item_name: str, position: Vec3, radius: float) -> bool:
        limit = radius * radius
        return any(
            p.item.name == item_name and p.transform.position.sqr_distance(position) < limit
            for p in scene.components(Plant)
        )

    def _refill(self, slots: SlotInventory, entries: List[SlotEntry]) -> None:
        slots.reset()
        displaced = []
        for entry in entries:
            if entry.quantity <= 0:
                continue
            try:
                item = self.catalog.get(entry.item_name)
            except MissingItemDefinition:
                logger.warning("Dropping slot %d: unknown item %r", entry.slot_index, entry.item_name)
                continue
            if not slots.set_slot(entry.slot_index, item, entry.quantity):
                displaced.append((entry, item))
        # displaced entries go in after every valid slot is filled
        for entry, item in displaced:
            logger.debug("Slot %d unavailable for %s, adding to first free slot", entry.slot_index, entry.item_name)
            slots.add_item(item, entry.quantity)

    def _publish(self, name: str, op: RestoreOperation) -> None:
        if self.bus is not None:
            self.bus.publish(name, {"scene": op.scene.scene_id})

    def _restore_inventory(self, op: RestoreOperation) -> None:
        self._refill(self.inventory, op.record.inventory.entries)
        self._publish(INVENTORY_CHANGED, op)

    def _restore_container(self, op: RestoreOperation) -> None:
        container = op.scene.find_component(Container)
        if container is None:
            raise MissingEntity(f"No container in scene {op.scene.scene_id}")
        self._refill(container.storage, op.record.container.entries)
        self._publish(CONTAINER_CHANGED, op)

    def _restore_market(self, op: RestoreOperation) -> None:
        saved = op.record.market
        if self.wallet is not None:
            self.wallet.set_balance(saved.player_money)
        market = op.scene.find_component(Market)
        if market is not None:
            market.player_money = saved.player_money
            if saved.offers:
                offers = []
                for o in saved.offers:
                    item = self.catalog.find(o.item_name)
                    if item is None:
                        logger.warning("Dropping market offer for unknown item %r", o.item_name)
                        continue
                    offers.append(Offer(item=item, price=o.price, stock=o.stock))
                market.apply_saved_offers(offers)
        self._publish(MARKET_CHANGED, op)

    def _extra_pass(self, op: RestoreOperation) -> None:
        logger.debug("Extra scene object pass, %d left after this", op.passes_left - 1)
        self._restore_scene_objects(op)
