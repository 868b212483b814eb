import json

import pytest

from worldsave.codec import decode_record, encode_record, migrate_data
from worldsave.errors import CorruptSaveError
from worldsave.records import (
    SCHEMA_VERSION,
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
from worldsave.world import Vec3


def _full_record():
    player = PlayerState(Vec3(10.0, 0.0, 5.0), Vec3(0.0, 90.0, 0.0), "Farm")
    return SaveRecord(
        save_timestamp="2024-05-01 12:00:00",
        scene_identifier="Farm",
        player_state=player,
        player_scene_states=[player],
        world_items=[WorldItemRecord("Herb", Vec3(1.0, 0.0, 1.0), quantity=2, scene="Farm", persistent_id="abc")],
        plants=[PlantRecord("Tomato", "Tomato_10.00_0.00_5.00", Vec3(10.0, 0.0, 5.0), scene="Farm", is_collected=True)],
        inventory=InventoryRecord([SlotEntry("Seed_Tomato", 3, 0)]),
        container=ContainerRecord([SlotEntry("Herb", 1, 2)]),
        market=MarketRecord(250, [OfferRecord("Bottle", 12, 1)]),
        scene_objects=[
            SceneObjectRecord("House/Door", Vec3(3.0, 0.0, 3.0), is_active=False, scene="Farm",
                              component_data=[("SaveableTransform.px", "3.0")])
        ],
        visited_scenes=["Farm"],
    )


def test_encode_decode_preserves_record():
    record = _full_record()
    text = encode_record(record)
    assert json.loads(text)["schema_version"] == SCHEMA_VERSION
    assert decode_record(text) == record


def test_encoded_record_is_readable_json():
    data = json.loads(encode_record(_full_record()))
    assert data["player_state"]["position"] == {"x": 10.0, "y": 0.0, "z": 5.0}
    assert data["scene_objects"][0]["component_data"] == [["SaveableTransform.px", "3.0"]]


def test_missing_optional_sections_get_defaults():
    record = decode_record(json.dumps({"save_timestamp": "t1", "scene_identifier": "Farm"}))
    assert record.player_state is None
    assert record.inventory.entries == []
    assert record.market.player_money == 0


@pytest.mark.parametrize(
    "payload",
    [
        "{oops",
        "[1, 2]",
        '{"plants": [{"scene": "Farm"}]}',
        '{"market": {"player_money": "lots"}}',
        '{"scene_objects": [{"object_id": "a", "component_data": [["k"]]}]}',
    ],
)
def test_bad_payloads_are_corrupt(payload):
    with pytest.raises(CorruptSaveError):
        decode_record(payload)


def test_newer_schema_rejected():
    with pytest.raises(CorruptSaveError):
        decode_record(json.dumps({"schema_version": SCHEMA_VERSION + 1}))


def test_migrate_older_version_bumps_field():
    data = migrate_data({"schema_version": 0}, from_version=0, to_version=SCHEMA_VERSION)
    assert data["schema_version"] == SCHEMA_VERSION
