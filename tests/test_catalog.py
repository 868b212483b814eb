from pathlib import Path

import pytest

from worldsave.catalog import ItemCatalog, ItemDefinition
from worldsave.errors import MissingItemDefinition
from worldsave.inventory import SlotInventory
from worldsave.wallet import Wallet


def test_catalog_from_yaml(tmp_path: Path):
    path = tmp_path / "items.yaml"
    path.write_text(
        """
items:
  - name: Tomato
    world_prefab: TomatoPlant
    drop_prefab: TomatoDrop
  - name: Bottle
    stackable: false
""",
        encoding="utf-8",
    )
    catalog = ItemCatalog.from_yaml(path)
    assert catalog.names() == ["Bottle", "Tomato"]
    assert catalog.get("Tomato").world_prefab == "TomatoPlant"
    assert catalog.get("Bottle").stack_limit == 1
    assert catalog.get("Tomato").label == "Tomato"


def test_catalog_rejects_bad_entries(tmp_path: Path):
    path = tmp_path / "items.yaml"
    path.write_text("items:\n  - display_name: nameless\n", encoding="utf-8")
    with pytest.raises(ValueError):
        ItemCatalog.from_yaml(path)


def test_unknown_item_raises(catalog):
    with pytest.raises(MissingItemDefinition):
        catalog.get("Ghost")
    assert catalog.find("Ghost") is None


def test_add_item_stacks_before_filling_empty_slots(catalog):
    inv = SlotInventory(3)
    herb = catalog.get("Herb")
    assert inv.set_slot(1, herb, 98)
    assert inv.add_item(herb, 3)
    assert inv.slots[1].count == 99
    assert inv.slots[0].item is herb and inv.slots[0].count == 2
    assert inv.count_of("Herb") == 101


def test_add_item_reports_overflow(catalog):
    inv = SlotInventory(2)
    bottle = catalog.get("Bottle")
    assert not inv.add_item(bottle, 3)
    assert inv.count_of("Bottle") == 2


def test_set_slot_rejects_occupied_or_out_of_range(catalog):
    inv = SlotInventory(2)
    herb = catalog.get("Herb")
    assert inv.set_slot(0, herb, 1)
    assert not inv.set_slot(0, herb, 1)
    assert not inv.set_slot(5, herb, 1)


def test_wallet():
    w = Wallet(10)
    assert w.balance == 10
    w.set_balance(25)
    assert w.balance == 25
    w.set_balance(-3)
    assert w.balance == 0
    with pytest.raises(ValueError):
        Wallet(-1)


def test_item_definition_validation():
    with pytest.raises(ValueError):
        ItemDefinition("")
