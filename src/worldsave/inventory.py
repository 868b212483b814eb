from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from .catalog import ItemDefinition

logger = logging.getLogger(__name__)


@dataclass
class Slot:
    item: Optional[ItemDefinition] = None
    count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.item is None or self.count <= 0

    def clear(self) -> None:
        self.item = None
        self.count = 0


class SlotInventory:
    """Fixed-size list of slots, used for the player bag and for containers."""

    def __init__(self, size: int = 12) -> None:
        if size < 1:
            raise ValueError("Inventory size must be positive")
        self.slots: List[Slot] = [Slot() for _ in range(size)]

    def __len__(self) -> int:
        return len(self.slots)

    def reset(self) -> None:
        for slot in self.slots:
            slot.clear()

    def filled(self) -> Iterator[Tuple[int, Slot]]:
        """Yield ``(index, slot)`` for every non-empty slot in order."""
        for index, slot in enumerate(self.slots):
            if not slot.is_empty:
                yield index, slot

    def set_slot(self, index: int, item: ItemDefinition, count: int) -> bool:
        """Place ``count`` of ``item`` in slot ``index`` if it is valid and empty."""
        if not 0 <= index < len(self.slots):
            return False
        slot = self.slots[index]
        if not slot.is_empty:
            return False
        slot.item = item
        slot.count = count
        return True

    def add_item(self, item: ItemDefinition, quantity: int = 1) -> bool:
        """Add items, topping up existing stacks first and then empty slots.

        Returns False if not everything fitted; what did fit stays added.
        """
        remaining = quantity
        limit = item.stack_limit
        for slot in self.slots:
            if remaining <= 0:
                break
            if slot.item is not None and slot.item.name == item.name and slot.count < limit:
                moved = min(limit - slot.count, remaining)
                slot.count += moved
                remaining -= moved
        for slot in self.slots:
            if remaining <= 0:
                break
            if slot.is_empty:
                moved = min(limit, remaining)
                slot.item = item
                slot.count = moved
                remaining -= moved
        if remaining > 0:
            logger.warning("Inventory full: %d x %s did not fit", remaining, item.name)
            return False
        return True

    def count_of(self, item_name: str) -> int:
        return sum(slot.count for _, slot in self.filled() if slot.item.name == item_name)
