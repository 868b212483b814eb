import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Ensure 'src' is on sys.path for test imports without installing the package
ROOT = Path(__file__).resolve().parents[1]
src = ROOT / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))

from worldsave.catalog import ItemCatalog, ItemDefinition  # noqa: E402
from worldsave.components import (  # noqa: E402
    PLAYER_TAG,
    Bucket,
    Container,
    FarmingArea,
    Market,
    ProductEntry,
    SaveableTransform,
    WorldItemOrigin,
    spawn_plant,
    spawn_world_item,
)
from worldsave.composer import SnapshotComposer  # noqa: E402
from worldsave.config import SaveSettings  # noqa: E402
from worldsave.events import EventBus  # noqa: E402
from worldsave.inventory import SlotInventory  # noqa: E402
from worldsave.orchestrator import RestorationOrchestrator  # noqa: E402
from worldsave.store import InMemoryBackend, SaveStore  # noqa: E402
from worldsave.wallet import Wallet  # noqa: E402
from worldsave.world import Entity, EntityRegistry, Transform, Vec3, World  # noqa: E402

ITEMS = [
    ItemDefinition("Seed_Tomato", display_name="Tomato Seeds", plantable=True, drop_prefab="SeedBag"),
    ItemDefinition("Tomato", world_prefab="TomatoPlant", drop_prefab="TomatoDrop"),
    ItemDefinition("Herb", dryable=True, drop_prefab="HerbDrop"),
    ItemDefinition("Bottle", stackable=False, drop_prefab="BottleDrop"),
]

TOMATO_SPOT = Vec3(10.0, 0.0, 5.0)


def farm_factory(catalog):
    """Farm: player, a door inside a house, a bucket, a field, the flask, one tomato and a herb."""

    def build(scene_id):
        scene = EntityRegistry(scene_id)
        scene.add(Entity("Player", tag=PLAYER_TAG))
        house = scene.add(Entity("House"))
        door = Entity("Door", parent=house, transform=Transform(Vec3(3.0, 0.0, 3.0)))
        door.add_component(SaveableTransform())
        bucket = scene.add(Entity("Bucket", transform=Transform(Vec3(-2.0, 0.0, 1.0))))
        bucket.add_component(Bucket(save_id="bucket-1"))
        field = scene.add(Entity("Field"))
        field.add_component(FarmingArea([Vec3(20.0, 0.0, 20.0), Vec3(22.0, 0.0, 20.0)], save_id="field"))
        flask = scene.add(Entity("Flask"))
        flask.add_component(Container(size=4))
        spawn_plant(scene, catalog.get("Tomato"), TOMATO_SPOT)
        spawn_world_item(scene, catalog.get("Herb"), Vec3(1.0, 0.0, 1.0), 2, origin=WorldItemOrigin.SCENE_PLACED)
        return scene

    return build


def town_factory(catalog, seed=7):
    """Town: player, a sign and the market."""
    rng = random.Random(seed)

    def build(scene_id):
        scene = EntityRegistry(scene_id)
        scene.add(Entity("Player", tag=PLAYER_TAG, transform=Transform(Vec3(0.0, 0.0, -4.0))))
        sign = scene.add(Entity("Sign", transform=Transform(Vec3(5.0, 0.0, 5.0))))
        sign.add_component(SaveableTransform(save_id="town-sign"))
        shop = scene.add(Entity("Shop"))
        pool = [
            ProductEntry(catalog.get("Herb"), 2, 6, 5),
            ProductEntry(catalog.get("Bottle"), 10, 20, 2),
            ProductEntry(catalog.get("Seed_Tomato"), 1, 3, 9),
        ]
        shop.add_component(Market(pool, slot_count=2, rng=rng))
        return scene

    return build


class StepClock:
    """Returns a new time on every call, one minute apart."""

    def __init__(self, start=datetime(2024, 5, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        current = self.now
        self.now = current + timedelta(minutes=1)
        return current


@pytest.fixture
def catalog():
    return ItemCatalog(ITEMS)


@pytest.fixture
def settings():
    return SaveSettings()


@pytest.fixture
def inventory():
    return SlotInventory(12)


@pytest.fixture
def wallet():
    return Wallet(100)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def world(bus, catalog):
    return World(
        bus,
        {
            "Farm": farm_factory(catalog),
            "Town": town_factory(catalog),
            "MainMenu": EntityRegistry,
        },
    )


@pytest.fixture
def composer(inventory, settings, wallet):
    return SnapshotComposer(inventory, settings, wallet=wallet)


@pytest.fixture
def orchestrator(catalog, inventory, settings, wallet, bus):
    return RestorationOrchestrator(catalog, inventory, settings, wallet=wallet, bus=bus)


@pytest.fixture
def store():
    return SaveStore(InMemoryBackend(), max_slots=3)


@pytest.fixture
def clock():
    return StepClock()
