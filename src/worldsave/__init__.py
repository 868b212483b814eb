"""Snapshot and restoration of a scene-based simulation world.

Public API:
- SaveRecord and the per-domain records
- SnapshotComposer: live scene -> SaveRecord
- SaveStore: bounded slot storage on a key/value backend
- RestorationOrchestrator: SaveRecord -> live scene, one stage per tick
- SaveCoordinator: scene lifecycle wiring, auto-save and auto-restore
"""

from .catalog import ItemCatalog, ItemDefinition
from .composer import SnapshotComposer
from .config import SaveSettings, load_settings
from .contract import Saveable
from .errors import CorruptSaveError, MissingEntity, MissingItemDefinition, SaveError, SaveNotFound
from .events import Event, EventBus
from .identity import FallbackMatcher, IdentityResolver, plant_identity
from .manager import SaveCoordinator, SaveResult, create_coordinator
from .orchestrator import RestorationOrchestrator, RestoreStage
from .records import SCHEMA_VERSION, SaveRecord
from .store import FileBackend, InMemoryBackend, KeyValueBackend, SaveStore
from .world import Entity, EntityRegistry, Transform, Vec3, World

__all__ = [
    "CorruptSaveError",
    "Entity",
    "EntityRegistry",
    "Event",
    "EventBus",
    "FallbackMatcher",
    "FileBackend",
    "IdentityResolver",
    "InMemoryBackend",
    "ItemCatalog",
    "ItemDefinition",
    "KeyValueBackend",
    "MissingEntity",
    "MissingItemDefinition",
    "RestorationOrchestrator",
    "RestoreStage",
    "SCHEMA_VERSION",
    "SaveCoordinator",
    "SaveError",
    "SaveNotFound",
    "SaveRecord",
    "SaveResult",
    "SaveSettings",
    "SaveStore",
    "Saveable",
    "SnapshotComposer",
    "Transform",
    "Vec3",
    "World",
    "create_coordinator",
    "load_settings",
    "plant_identity",
]
