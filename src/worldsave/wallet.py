import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class Wallet:
    """Shared money balance of the player, independent of any scene."""

    initial_balance: int = 0

    def __post_init__(self) -> None:
        if self.initial_balance < 0:
            raise ValueError("Initial balance cannot be negative")
        self._balance = int(self.initial_balance)

    @property
    def balance(self) -> int:
        return self._balance

    def set_balance(self, amount: int) -> None:
        self._balance = max(0, int(amount))
        logger.debug("Balance set to %d", self._balance)

