import pytest

from worldsave.events import EventBus
from worldsave.world import SCENE_LOADED, SCENE_UNLOADING, Entity, EntityRegistry, Vec3, World


def test_hierarchy_path_and_reparenting():
    root = Entity("Root")
    child = Entity("Child", parent=root)
    leaf = Entity("Leaf", parent=child)
    assert leaf.hierarchy_path() == "Root/Child/Leaf"

    other = Entity("Other")
    other.add_child(leaf)
    assert leaf.hierarchy_path() == "Other/Leaf"
    assert child.children == []


def test_registry_destroy_removes_subtree():
    scene = EntityRegistry("Farm")
    root = scene.add(Entity("Root"))
    child = Entity("Child", parent=root)
    grandchild = Entity("Grandchild", parent=child)
    assert len(scene.entities()) == 3

    scene.destroy(child)
    assert [e.name for e in scene.entities()] == ["Root"]
    assert child.destroyed and grandchild.destroyed

    scene.destroy(root)
    assert scene.entities() == []


def test_vec3_helpers():
    a = Vec3(1.0, 2.0, 2.0)
    assert a.sqr_magnitude() == 9.0
    assert Vec3().distance(a) == 3.0
    assert Vec3.from_dict(None, default=a) == a
    assert Vec3.from_dict({"x": 1}) == Vec3(1.0, 0.0, 0.0)


def test_load_scene_publishes_unloading_then_loaded():
    bus = EventBus()
    events = []
    bus.subscribe(SCENE_UNLOADING, lambda e: events.append((e.name, e.payload["scene"])))
    bus.subscribe(SCENE_LOADED, lambda e: events.append((e.name, e.payload["scene"])))
    world = World(bus, {"A": EntityRegistry, "B": EntityRegistry})

    world.load_scene("A")
    world.load_scene("B")

    assert events == [
        ("scene.loaded", "A"),
        ("scene.unloading", "A"),
        ("scene.loaded", "B"),
    ]
    assert world.active_scene_id == "B"


def test_unknown_scene_raises():
    with pytest.raises(KeyError):
        World(EventBus()).load_scene("Nowhere")


def test_failing_subscriber_does_not_block_others(caplog):
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("subscriber failed")

    bus.subscribe("inventory.changed", broken)
    bus.subscribe("inventory.changed", lambda e: seen.append(e.payload))
    bus.publish("inventory.changed", {"scene": "Farm"})

    assert seen == [{"scene": "Farm"}]
    assert "Unhandled exception in event subscriber" in caplog.text

    bus.unsubscribe("inventory.changed", broken)
    bus.publish("inventory.changed", {"scene": "Town"})
    assert len(seen) == 2


def test_subscribe_requires_callable():
    with pytest.raises(TypeError):
        EventBus().subscribe("x", "not callable")
