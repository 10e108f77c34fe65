"""
Bets for the current round, keyed by player.
"""

from decimal import Decimal
from types import MappingProxyType
from typing import Dict, List, Mapping

from crashline.core.exceptions import (
    BettingClosed,
    DuplicateBet,
    InvariantViolation,
    NoActiveBet,
    RoundNotRunning,
)
from crashline.core.models import Bet, BetStatus, Phase


class BetBook:
    def __init__(self):
        self._bets: Dict[str, Bet] = {}

    def reset(self):
        """Discard every bet. Called once per round when betting opens."""
        self._bets = {}

    def check_placement(self, player_id: str, phase: Phase):
        """Raise if ``player_id`` may not bet right now; changes nothing."""
        if phase != Phase.BETTING:
            raise BettingClosed(player_id=player_id, phase=phase.value)
        if player_id in self._bets:
            raise DuplicateBet(player_id=player_id)

    def place(self, player_id: str, stake: Decimal, phase: Phase) -> Bet:
        self.check_placement(player_id, phase)
        bet = Bet(player_id=player_id, stake=stake)
        self._bets[player_id] = bet
        return bet

    def mark_cashed_out(self, player_id: str, multiplier: Decimal, phase: Phase) -> Bet:
        """
        Settle the player's bet as won at ``multiplier``.

        The phase is checked before the bet so a cashout that arrives after
        settlement is always reported as RoundNotRunning.
        """
        if phase != Phase.RUNNING:
            raise RoundNotRunning(player_id=player_id, phase=phase.value)
        bet = self._bets.get(player_id)
        if bet is None or bet.is_terminal:
            raise NoActiveBet(player_id=player_id)
        bet.win(multiplier)
        return bet

    def forfeit(self, player_id: str) -> Bet:
        bet = self._bets.get(player_id)
        if bet is None:
            raise InvariantViolation(f"No bet to forfeit for {player_id}")
        bet.lose()
        return bet

    def unresolved(self) -> List[Bet]:
        return [bet for bet in self._bets.values() if bet.status == BetStatus.ACTIVE]

    def get(self, player_id: str):
        return self._bets.get(player_id)

    def bets(self) -> Mapping[str, Bet]:
        return MappingProxyType(self._bets)

    def count(self) -> int:
        return len(self._bets)

    def cashed_out_count(self) -> int:
        return sum(1 for bet in self._bets.values() if bet.cashed_out)

    def total_staked(self) -> Decimal:
        return sum((bet.stake for bet in self._bets.values()), Decimal("0.00"))

    def __len__(self):
        return len(self._bets)

    def __contains__(self, player_id):
        return player_id in self._bets
