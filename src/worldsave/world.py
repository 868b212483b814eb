"""Live scene model: transforms, entities and the per-scene entity registry.

Entities are recreated from scratch every time a scene is loaded, so nothing
here carries identity across sessions. The save system binds records to live
entities through :mod:`worldsave.identity`.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Type, TypeVar

from .events import EventBus

logger = logging.getLogger(__name__)

SCENE_UNLOADING = "scene.unloading"
SCENE_LOADED = "scene.loaded"

C = TypeVar("C", bound="Component")


@dataclass(frozen=True)
class Vec3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __sub__(self, other: "Vec3") -> "Vec3":
        return Vec3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __add__(self, other: "Vec3") -> "Vec3":
        return Vec3(self.x + other.x, self.y + other.y, self.z + other.z)

    def sqr_magnitude(self) -> float:
        return self.x * self.x + self.y * self.y + self.z * self.z

    def sqr_distance(self, other: "Vec3") -> float:
        return (self - other).sqr_magnitude()

    def distance(self, other: "Vec3") -> float:
        return math.sqrt(self.sqr_distance(other))

    def is_zero(self) -> bool:
        return self.x == 0 and self.y == 0 and self.z == 0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}

    @staticmethod
    def from_dict(data: Optional[Dict[str, float]], default: Optional["Vec3"] = None) -> "Vec3":
        if not data:
            return default if default is not None else Vec3()
        return Vec3(float(data.get("x", 0.0)), float(data.get("y", 0.0)), float(data.get("z", 0.0)))


ONE = Vec3(1.0, 1.0, 1.0)


@dataclass
class Transform:
    """Position, euler rotation in degrees, and local scale."""

    position: Vec3 = field(default_factory=Vec3)
    rotation: Vec3 = field(default_factory=Vec3)
    scale: Vec3 = ONE


class Component:
    """Base class for behaviour attached to an :class:`Entity`."""

    entity: Optional["Entity"] = None

    @property
    def type_name(self) -> str:
        return type(self).__name__

    @property
    def transform(self) -> Transform:
        if self.entity is None:
            raise RuntimeError(f"{self.type_name} is not attached to an entity")
        return self.entity.transform


class Entity:
    """A node in the scene hierarchy carrying a transform and components."""

    def __init__(
        self,
        name: str,
        *,
        parent: Optional["Entity"] = None,
        transform: Optional[Transform] = None,
        tag: Optional[str] = None,
        active: bool = True,
    ) -> None:
        self.name = name
        self.tag = tag
        self.active = active
        self.transform = transform or Transform()
        self.components: List[Component] = []
        self.children: List[Entity] = []
        self.parent: Optional[Entity] = None
        self.destroyed = False
        if parent is not None:
            parent.add_child(self)

    def __repr__(self) -> str:
        return f"Entity({self.hierarchy_path()!r})"

    def add_child(self, child: "Entity") -> None:
        if child.parent is not None:
            child.parent.children.remove(child)
        child.parent = self
        self.children.append(child)

    def add_component(self, component: C) -> C:
        component.entity = self
        self.components.append(component)
        return component

    def get_component(self, kind: Type[C]) -> Optional[C]:
        for comp in self.components:
            if isinstance(comp, kind):
                return comp
        return None

    def get_components(self, kind: Type[C]) -> List[C]:
        return [c for c in self.components if isinstance(c, kind)]

    def get_component_in_parent(self, kind: Type[C]) -> Optional[C]:
        node: Optional[Entity] = self
        while node is not None:
            found = node.get_component(kind)
            if found is not None:
                return found
            node = node.parent
        return None

    def get_component_in_children(self, kind: Type[C]) -> Optional[C]:
        for node in self.walk():
            found = node.get_component(kind)
            if found is not None:
                return found
        return None

    def walk(self) -> Iterator["Entity"]:
        """Depth-first iteration over this entity and its descendants."""
        yield self
        for child in list(self.children):
            yield from child.walk()

    def hierarchy_path(self) -> str:
        names: List[str] = []
        node: Optional[Entity] = self
        while node is not None:
            names.append(node.name)
            node = node.parent
        return "/".join(reversed(names))


class EntityRegistry:
    """All live entities of one loaded scene."""

    def __init__(self, scene_id: str) -> None:
        self.scene_id = scene_id
        self._roots: List[Entity] = []

    def __repr__(self) -> str:
        return f"EntityRegistry({self.scene_id!r}, roots={len(self._roots)})"

    def add(self, entity: Entity) -> Entity:
        """Register a root entity (children come along with it)."""
        if entity.parent is None and entity not in self._roots:
            self._roots.append(entity)
        return entity

    def destroy(self, entity: Entity) -> None:
        for node in entity.walk():
            node.destroyed = True
        if entity.parent is not None:
            entity.parent.children.remove(entity)
            entity.parent = None
        elif entity in self._roots:
            self._roots.remove(entity)
        logger.debug("Destroyed %s in scene %s", entity.name, self.scene_id)

    def entities(self) -> List[Entity]:
        result: List[Entity] = []
        for root in list(self._roots):
            result.extend(root.walk())
        return result

    def components(self, kind: Type[C]) -> List[C]:
        return [c for e in self.entities() for c in e.get_components(kind)]

    def find_component(self, kind: Type[C]) -> Optional[C]:
        for entity in self.entities():
            found = entity.get_component(kind)
            if found is not None:
                return found
        return None

    def find_with_tag(self, tag: str) -> Optional[Entity]:
        for entity in self.entities():
            if entity.tag == tag:
                return entity
        return None


SceneFactory = Callable[[str], EntityRegistry]


class World:
    """Scene host: builds a fresh registry per scene load and emits lifecycle events.

    Stands in for the engine's scene manager. ``scene.unloading`` is published
    while the outgoing scene is still fully alive so that it can be captured.
    """

    def __init__(self, bus: EventBus, factories: Optional[Dict[str, SceneFactory]] = None) -> None:
        self.bus = bus
        self._factories: Dict[str, SceneFactory] = dict(factories or {})
        self.active_scene: Optional[EntityRegistry] = None

    def register_scene(self, scene_id: str, factory: SceneFactory) -> None:
        self._factories[scene_id] = factory

    @property
    def active_scene_id(self) -> Optional[str]:
        return self.active_scene.scene_id if self.active_scene is not None else None

    def load_scene(self, scene_id: str) -> EntityRegistry:
        try:
            factory = self._factories[scene_id]
        except KeyError as exc:
            raise KeyError(f"Unknown scene: {scene_id}") from exc
        if self.active_scene is not None:
            self.bus.publish(SCENE_UNLOADING, {"scene": self.active_scene.scene_id})
        registry = factory(scene_id)
        self.active_scene = registry
        logger.info("Scene loaded: %s", scene_id)
        self.bus.publish(SCENE_LOADED, {"scene": scene_id})
        return registry
