"""
Balance ledger for players and THE HOUSE.

Every movement is a transfer between a player and the house, so the sum of
all balances never changes.
"""

from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Mapping

from crashline.core.exceptions import InsufficientFunds, InvalidAmount
from crashline.core.logger import get_logger
from crashline.core.models import LedgerSnapshot, to_money

logger = get_logger("ledger")


class Ledger:
    """In-memory balances. Not thread-safe on its own; the engine serializes access."""

    def __init__(self, player_seeds: Mapping[str, object], house_seed):
        self._balances: Dict[str, Decimal] = {
            player: to_money(amount) for player, amount in player_seeds.items()
        }
        negative = sorted(p for p, balance in self._balances.items() if balance < 0)
        if negative:
            raise InvalidAmount(f"Negative starting balance for {', '.join(negative)}")
        self._house_balance = to_money(house_seed)
        self.house_seed = self._house_balance

    @property
    def house_balance(self) -> Decimal:
        return self._house_balance

    def has_player(self, player_id: str) -> bool:
        return player_id in self._balances

    def balance_of(self, player_id: str) -> Decimal:
        return self._balances.get(player_id, Decimal("0.00"))

    def total(self) -> Decimal:
        return sum(self._balances.values(), Decimal("0")) + self._house_balance

    def debit(self, player_id: str, amount: Decimal) -> Decimal:
        """
        Move ``amount`` from the player to the house.

        Returns the player's new balance. Nothing changes if the player is
        unknown or cannot cover the amount.
        """
        amount = self._positive(amount)
        balance = self._balances.get(player_id)
        if balance is None or amount > balance:
            raise InsufficientFunds(player_id=player_id, amount=amount, balance=balance)

        self._balances[player_id] = balance - amount
        self._house_balance += amount
        logger.debug(f"Debit {amount} from {player_id}, house now {self._house_balance}")
        return self._balances[player_id]

    def credit(self, player_id: str, amount: Decimal) -> Decimal:
        """
        Move ``amount`` from the house to the player.

        The house may go negative after a run of large cashouts.
        """
        amount = self._positive(amount)
        self._balances[player_id] = self._balances.get(player_id, Decimal("0.00")) + amount
        self._house_balance -= amount
        if self._house_balance < 0:
            logger.warning(f"House balance is negative: {self._house_balance}")
        logger.debug(f"Credit {amount} to {player_id}, house now {self._house_balance}")
        return self._balances[player_id]

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            balances=MappingProxyType(dict(self._balances)),
            house_balance=self._house_balance,
        )

    @staticmethod
    def _positive(amount) -> Decimal:
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmount(amount=amount)
        return amount
