from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from .catalog import ItemCatalog
from .components import FarmingArea, Plant
from .composer import SnapshotComposer, collapse_plants
from .config import SaveSettings
from .errors import CorruptSaveError, SaveError, SaveNotFound
from .events import Event, EventBus
from .identity import IdentityResolver, plant_identity
from .inventory import SlotInventory
from .orchestrator import RestorationOrchestrator
from .paths import default_save_root
from .records import PlantRecord, SaveRecord
from .store import FileBackend, KeyValueBackend, SaveStore
from .wallet import Wallet
from .world import SCENE_LOADED, SCENE_UNLOADING, World

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    success: bool
    message: str
    timestamp: Optional[str] = None
    code: str = "OK"  # OK | SUPPRESSED | MENU_SCENE | NO_SCENE | IO_ERROR


class SaveCoordinator:
    """Ties scene lifecycle, snapshot composition, storage and restoration together.

    Holds the working record: the latest composed state across every scene
    visited this session. Saves are suppressed while a restore is pending or
    running, and while :meth:`load_game` is switching scenes, so a
    half-restored scene is never written.
    """

    NOTICE_SAVED = "Game saved."
    NOTICE_SUPPRESSED = "Cannot save while the world is being restored."
    NOTICE_MENU = "Menus are not saved."
    NOTICE_NO_SCENE = "No scene is loaded."
    NOTICE_ERROR = "Failed to save game."

    def __init__(
        self,
        world: World,
        store: SaveStore,
        composer: SnapshotComposer,
        orchestrator: RestorationOrchestrator,
        settings: Optional[SaveSettings] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.world = world
        self.store = store
        self.composer = composer
        self.orchestrator = orchestrator
        self.settings = settings or SaveSettings()
        self._clock = clock or datetime.now
        self.working: Optional[SaveRecord] = None
        self._pending_scene: Optional[str] = None
        self._settle_left = 0
        self._switching = False
        self.bus.subscribe(SCENE_UNLOADING, self._on_scene_unloading)
        self.bus.subscribe(SCENE_LOADED, self._on_scene_loaded)

    @property
    def bus(self) -> EventBus:
        return self.world.bus

    @property
    def restoring(self) -> bool:
        return self._pending_scene is not None or self.orchestrator.busy

    @property
    def saving_suppressed(self) -> bool:
        return self._switching or self.restoring

    def close(self) -> None:
        self.bus.unsubscribe(SCENE_UNLOADING, self._on_scene_unloading)
        self.bus.unsubscribe(SCENE_LOADED, self._on_scene_loaded)

    def _timestamp(self) -> str:
        return self._clock().strftime(self.settings.timestamp_format)

    def save_game(self) -> SaveResult:
        scene = self.world.active_scene
        if scene is None:
            return SaveResult(False, self.NOTICE_NO_SCENE, code="NO_SCENE")
        if self.settings.is_menu_scene(scene.scene_id):
            logger.debug("Not saving menu scene %s", scene.scene_id)
            return SaveResult(False, self.NOTICE_MENU, code="MENU_SCENE")
        if self.saving_suppressed:
            logger.info("Save request ignored while restoring %s", scene.scene_id)
            return SaveResult(False, self.NOTICE_SUPPRESSED, code="SUPPRESSED")

        record = self.composer.compose(self.working, scene, self._timestamp())
        try:
            timestamp = self.store.save(record)
        except SaveError as exc:
            logger.error("Save failed: %s", exc)
            return SaveResult(False, self.NOTICE_ERROR, code="IO_ERROR")
        self.working = record
        return SaveResult(True, self.NOTICE_SAVED, timestamp=timestamp)

    def load_game(self, timestamp: str) -> SaveRecord:
        """Make the given save the working record and restore it.

        Switches to the saved scene when it differs from the active one.
        Raises SaveNotFound or CorruptSaveError from the store.
        """
        record = self.store.load(timestamp)
        self.working = record
        target = record.scene_identifier or self.world.active_scene_id
        if target is None:
            raise SaveNotFound(f"Save {timestamp!r} names no scene and none is loaded")
        if target != self.world.active_scene_id:
            logger.info("Switching to %s to load %s", target, timestamp)
            self._switching = True
            try:
                self.world.load_scene(target)
            finally:
                self._switching = False
        else:
            self._schedule_restore(target)
        return record

    def list_saves(self) -> List[str]:
        return self.store.list_timestamps()

    def delete_save(self, timestamp: str) -> bool:
        return self.store.delete(timestamp)

    def on_plant_collected(self, plant: Plant) -> str:
        """Record a harvest so the plant never comes back, and remove it from the scene.

        Live clones standing at the same identity are removed as well.
        """
        scene = self.world.active_scene
        if scene is None or plant.entity is None:
            raise SaveError("Plant is not part of a loaded scene")
        precision = self.settings.plant_id_precision
        t = plant.transform
        pid = plant_identity(plant.item.name, t.position, precision)

        if self.working is None:
            self.working = SaveRecord(scene_identifier=scene.scene_id)
        matches = [p for p in self.working.plants if p.scene == scene.scene_id and p.plant_id == pid]
        if matches:
            for p in matches:
                p.is_collected = True
            self.working.plants = collapse_plants(self.working.plants)
        else:
            self.working.plants.append(
                PlantRecord(
                    item_name=plant.item.name,
                    plant_id=pid,
                    position=t.position,
                    rotation=t.rotation,
                    scale=t.scale,
                    scene=scene.scene_id,
                    is_collected=True,
                )
            )

        for other in scene.components(Plant):
            if other is plant:
                continue
            if plant_identity(other.item.name, other.transform.position, precision) == pid:
                scene.destroy(other.entity)
                logger.debug("Removed duplicate plant %s", pid)
        for farm in scene.components(FarmingArea):
            farm.release(t.position, plant.item.name, self.settings.plot_claim_radius)
        scene.destroy(plant.entity)
        logger.info("Plant collected: %s", pid)
        return pid

    def tick(self) -> None:
        """Advance pending restores; call once per frame."""
        if self._pending_scene is not None:
            if self._settle_left > 0:
                self._settle_left -= 1
            if self._settle_left <= 0:
                self._start_restore()
        self.orchestrator.tick()

    def _schedule_restore(self, scene_id: str) -> None:
        self._pending_scene = scene_id
        self._settle_left = self.settings.settle_ticks
        logger.debug("Restore of %s scheduled in %d ticks", scene_id, self._settle_left)

    def _start_restore(self) -> None:
        scene_id, self._pending_scene = self._pending_scene, None
        scene = self.world.active_scene
        if scene is None or scene.scene_id != scene_id or self.working is None:
            logger.info("Scene %s is no longer active; restore dropped", scene_id)
            return
        self.orchestrator.request(self.working, scene)

    def _on_scene_unloading(self, event: Event) -> None:
        scene_id = event.payload.get("scene", "")
        if self.settings.auto_save_on_unload:
            # suppressed while this scene's restore is pending
            result = self.save_game()
            if not result.success:
                logger.debug("Auto-save on unloading %s skipped: %s", scene_id, result.code)
        if self._pending_scene == scene_id:
            self._pending_scene = None

    def _on_scene_loaded(self, event: Event) -> None:
        scene_id = event.payload.get("scene", "")
        if self.settings.is_menu_scene(scene_id):
            return
        if self.working is None:
            self.working = self._load_latest()
        if self.working is None:
            logger.info("No save to restore for %s; starting fresh", scene_id)
            return
        self._schedule_restore(scene_id)

    def _load_latest(self) -> Optional[SaveRecord]:
        latest = self.store.latest()
        if latest is None:
            return None
        try:
            return self.store.load(latest)
        except (CorruptSaveError, SaveNotFound) as exc:
            logger.error("Could not load latest save %s: %s", latest, exc)
            return None


def create_coordinator(
    world: World,
    catalog: ItemCatalog,
    inventory: SlotInventory,
    settings: Optional[SaveSettings] = None,
    *,
    wallet: Optional[Wallet] = None,
    backend: Optional[KeyValueBackend] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> SaveCoordinator:
    """Wire store, composer and orchestrator for a world.

    Without an explicit backend, saves go to files under the platform data directory.
    """
    settings = settings or SaveSettings()
    if backend is None:
        backend = FileBackend(default_save_root(settings.app_name))
    store = SaveStore(backend, settings.max_slots, prefix=settings.save_prefix, index_key=settings.index_key)
    resolver = IdentityResolver()
    composer = SnapshotComposer(inventory, settings, wallet=wallet, resolver=resolver)
    orchestrator = RestorationOrchestrator(
        catalog, inventory, settings, wallet=wallet, bus=world.bus, resolver=resolver
    )
    return SaveCoordinator(world, store, composer, orchestrator, settings, clock=clock)
