from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import yaml

from .errors import MissingItemDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemDefinition:
    """Static description of an item type.

    ``world_prefab`` is the representation placed in the scene (e.g. a growing
    plant); ``drop_prefab`` is what appears when the item lies on the ground.
    """

    name: str
    display_name: str = ""
    stackable: bool = True
    max_stack: int = 99
    plantable: bool = False
    dryable: bool = False
    world_prefab: Optional[str] = None
    drop_prefab: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("ItemDefinition.name must be a non-empty string")
        if self.max_stack < 1:
            raise ValueError(f"Item '{self.name}' has max_stack < 1")

    @property
    def label(self) -> str:
        return self.display_name or self.name

    @property
    def stack_limit(self) -> int:
        return self.max_stack if self.stackable else 1


class ItemCatalog:
    """Lookup of item definitions by name.

    The save system only consumes :meth:`get`; ownership of the data stays
    with whoever builds the catalog.
    """

    def __init__(self, definitions: Iterable[ItemDefinition] = ()) -> None:
        self._defs: Dict[str, ItemDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def __contains__(self, name: object) -> bool:
        return name in self._defs

    def __len__(self) -> int:
        return len(self._defs)

    def register(self, definition: ItemDefinition) -> None:
        if definition.name in self._defs:
            logger.warning("Replacing item definition '%s'", definition.name)
        self._defs[definition.name] = definition

    def get(self, name: str) -> ItemDefinition:
        try:
            return self._defs[name]
        except KeyError as exc:
            raise MissingItemDefinition(f"Unknown item: {name!r}") from exc

    def find(self, name: str) -> Optional[ItemDefinition]:
        return self._defs.get(name)

    def names(self) -> List[str]:
        return sorted(self._defs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ItemCatalog":
        """Build a catalog from a YAML file with a top-level ``items`` list."""
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        items = raw.get("items", [])
        if not isinstance(items, list):
            raise ValueError(f"Invalid catalog file {path}: 'items' must be a list")
        catalog = cls()
        for idx, entry in enumerate(items):
            try:
                catalog.register(
                    ItemDefinition(
                        name=str(entry["name"]).strip(),
                        display_name=str(entry.get("display_name", "")),
                        stackable=bool(entry.get("stackable", True)),
                        max_stack=int(entry.get("max_stack", 99)),
                        plantable=bool(entry.get("plantable", False)),
                        dryable=bool(entry.get("dryable", False)),
                        world_prefab=entry.get("world_prefab"),
                        drop_prefab=entry.get("drop_prefab"),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError(f"Invalid item at index {idx} in {path}") from exc
        logger.info("Loaded %d item definitions from %s", len(catalog), path)
        return catalog
