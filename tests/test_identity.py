from worldsave.components import Bucket, SaveableTransform
from worldsave.identity import FallbackMatcher, IdentityResolver, plant_identity
from worldsave.records import SceneObjectRecord
from worldsave.world import Entity, Vec3


def test_explicit_save_id_wins_over_path():
    root = Entity("Yard")
    entity = Entity("Bucket", parent=root)
    comp = entity.add_component(Bucket(save_id="bucket-1"))
    assert IdentityResolver().resolve(entity, [comp]) == "bucket-1"


def test_differing_save_ids_pick_ordinal_first(caplog):
    entity = Entity("Thing")
    a = entity.add_component(Bucket(save_id="zeta"))
    b = entity.add_component(SaveableTransform(save_id="alpha"))
    with caplog.at_level("WARNING"):
        assert IdentityResolver().resolve(entity, [a, b]) == "alpha"
    assert "Multiple differing save ids" in caplog.text


def test_path_used_without_save_id():
    house = Entity("House")
    door = Entity("Door", parent=Entity("Floor1", parent=house))
    comp = door.add_component(SaveableTransform())
    assert IdentityResolver().resolve(door, [comp]) == "House/Floor1/Door"


def test_plant_identity_format_and_rounding():
    assert plant_identity("Tomato", Vec3(10.0, 0.0, 5.0)) == "Tomato_10.00_0.00_5.00"
    # small jitter maps to the same identity
    assert plant_identity("Tomato", Vec3(10.001, -0.001, 4.999)) == "Tomato_10.00_0.00_5.00"
    assert plant_identity("Tomato", Vec3(1.0, 2.0, 3.0), precision=1) == "Tomato_1.0_2.0_3.0"


def _rec(oid, x, z=0.0):
    return SceneObjectRecord(object_id=oid, position=Vec3(x, 0.0, z))


def test_matcher_returns_nearest_within_radius():
    records = [_rec("far", 4.0), _rec("near", 1.0), _rec("mid", 2.0)]
    assert FallbackMatcher().match(records, Vec3()).object_id == "near"


def test_matcher_never_exceeds_radius():
    records = [_rec("a", 6.0), _rec("b", 0.0, 6.5)]
    assert FallbackMatcher(max_radius=5.0).match(records, Vec3()) is None
    # the edge of the radius still matches
    assert FallbackMatcher().match(records, Vec3(), max_radius=6.0).object_id == "a"
    assert FallbackMatcher().match(records[1:], Vec3(), max_radius=6.0) is None


def test_matcher_ties_keep_first_and_empty_is_none():
    records = [_rec("first", 1.0), _rec("second", -1.0)]
    assert FallbackMatcher().match(records, Vec3()).object_id == "first"
    assert FallbackMatcher().match([], Vec3()) is None
