"""
Round engine: the perpetual betting -> running -> crashed loop.

    IDLE --start()--> BETTING --countdown hits 0--> RUNNING
      RUNNING --multiplier reaches crash point--> CRASHED
      CRASHED --intermission--> BETTING --> ...

The engine owns the ledger, the bet book and the round state. Every
mutation (bets, cashouts, timer ticks, transitions) happens under one lock,
so a cashout and the crash settlement can never interleave. Events are
queued while the lock is held and handed to listeners, in order, after it
is released.
"""

import itertools
import threading
from collections import deque
from contextlib import contextmanager
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from crashline.config import GameConfig
from crashline.core.bet_book import BetBook
from crashline.core.clock import COUNTDOWN, INTERMISSION, RAMP, RoundClock, TimerHandle
from crashline.core.crash_point import CrashPointSelector
from crashline.core.exceptions import CrashGameError, InvalidAmount
from crashline.core.ledger import Ledger
from crashline.core.logger import get_logger
from crashline.core.models import (
    BASE_MULTIPLIER,
    LedgerSnapshot,
    Phase,
    RoundEvent,
    RoundSnapshot,
    to_money,
    to_multiplier,
)
from crashline.core.rng import TrueRNG

logger = get_logger("engine")

EventListener = Callable[[RoundEvent], None]


class RoundEngine:
    def __init__(
        self,
        config: GameConfig = None,
        clock: RoundClock = None,
        selector: CrashPointSelector = None,
        rng: TrueRNG = None,
    ):
        self.config = config or GameConfig()
        self.clock = clock or RoundClock()
        self.ledger = Ledger(self.config.player_seeds, self.config.house_seed)
        self.book = BetBook()
        self.selector = selector or CrashPointSelector(
            to_money(self.config.resolved_house_floor()), rng=rng
        )

        self._increment = to_multiplier(self.config.multiplier_increment)
        self._tick_seconds = self.config.tick_interval_ms / 1000

        self._lock = threading.Lock()
        self._dispatch_lock = threading.RLock()
        self._outbox = deque()
        self._listeners: List[EventListener] = []
        self._seq = itertools.count(1)

        self._phase = Phase.IDLE
        self._round_id = 0
        self._countdown = 0
        self._multiplier = BASE_MULTIPLIER
        self._crash_point: Optional[Decimal] = None
        self._timer: Optional[TimerHandle] = None
        self._recent_crashes = deque(maxlen=self.config.history_size)

    # ==================== Read access ====================

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def committed_crash_point(self) -> Optional[Decimal]:
        """Server-side view of this round's target. Never broadcast before the crash."""
        return self._crash_point

    def snapshot(self) -> RoundSnapshot:
        with self._lock:
            return RoundSnapshot(
                phase=self._phase,
                round_id=self._round_id,
                countdown=self._countdown,
                multiplier=self._multiplier,
                crash_point=self._crash_point if self._phase == Phase.CRASHED else None,
                bet_count=self.book.count(),
                recent_crashes=tuple(self._recent_crashes),
            )

    def balances(self) -> LedgerSnapshot:
        with self._lock:
            return self.ledger.snapshot()

    def balance_of(self, player_id: str) -> Decimal:
        with self._lock:
            return self.ledger.balance_of(player_id)

    def current_bets(self) -> List[Dict]:
        with self._lock:
            return [bet.to_dict() for bet in self.book.bets().values()]

    # ==================== Listeners ====================

    def subscribe(self, listener: EventListener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ==================== Lifecycle ====================

    def start(self):
        """Start the clock and open the first betting phase after the initial delay."""
        self.clock.start()
        with self._transaction():
            if self._phase != Phase.IDLE:
                return
            logger.info(
                f"Engine starting, first round in {self.config.initial_delay_seconds}s"
            )
            self._arm(INTERMISSION, self.config.initial_delay_seconds, self._on_intermission_end)

    def stop(self):
        with self._transaction():
            self._cancel_timer()
        self.clock.shutdown()
        logger.info(f"Engine stopped in phase {self._phase.value}")

    def start_betting_phase(self):
        with self._transaction():
            self._begin_betting()

    def start_game(self):
        """Close betting and launch the multiplier. No-op if a round is already running."""
        with self._transaction():
            self._start_game()

    # ==================== Player operations ====================

    def place_bet(self, player_id: str, amount) -> Dict:
        """
        Stake ``amount`` on the current round.

        Raises InvalidAmount, BettingClosed, DuplicateBet or InsufficientFunds.
        Either both the debit and the bet are recorded, or neither is.
        """
        try:
            stake = to_money(amount)
            if stake <= 0:
                raise InvalidAmount(amount=amount)
            with self._transaction():
                self.book.check_placement(player_id, self._phase)
                new_balance = self.ledger.debit(player_id, stake)
                self.book.place(player_id, stake, self._phase)
                self._emit(
                    "bet_placed",
                    player_id=player_id,
                    amount=float(stake),
                    new_balance=float(new_balance),
                )
        except CrashGameError as e:
            logger.info(f"Bet rejected for {player_id}: {e.code}")
            raise

        logger.info(f"{player_id} bet {stake} on round {self._round_id}")
        return {"player_id": player_id, "amount": stake, "new_balance": new_balance}

    def cash_out(self, player_id: str) -> Dict:
        """
        Settle the player's bet at the current multiplier.

        Raises RoundNotRunning or NoActiveBet. Succeeds at most once per
        player per round.
        """
        try:
            with self._transaction():
                bet = self.book.mark_cashed_out(player_id, self._multiplier, self._phase)
                new_balance = self.ledger.credit(player_id, bet.winnings)
                self._emit(
                    "player_cashout",
                    player_id=player_id,
                    multiplier=float(bet.payout_multiplier),
                    winnings=float(bet.winnings),
                    new_balance=float(new_balance),
                    house_balance=float(self.ledger.house_balance),
                )
        except CrashGameError as e:
            logger.info(f"Cashout rejected for {player_id}: {e.code}")
            raise

        logger.info(f"{player_id} cashed out {bet.winnings} at {bet.payout_multiplier}x")
        return {
            "player_id": player_id,
            "multiplier": bet.payout_multiplier,
            "winnings": bet.winnings,
            "new_balance": new_balance,
        }

    # ==================== Transitions (lock held) ====================

    def _begin_betting(self):
        self._cancel_timer()
        self._round_id += 1
        self.book.reset()
        self._countdown = self.config.countdown_seconds
        self._multiplier = BASE_MULTIPLIER
        self._crash_point = None
        self._phase = Phase.BETTING

        logger.info(f"Round {self._round_id}: betting open for {self._countdown}s")
        self._emit("betting_start", message="Betting phase started!", countdown=self._countdown)
        self._arm(COUNTDOWN, 1, self._on_countdown_tick)

    def _start_game(self):
        if self._phase == Phase.RUNNING:
            logger.debug(f"Round {self._round_id} already running, ignoring start")
            return
        if self._phase != Phase.BETTING:
            logger.warning(f"Cannot start a round from phase {self._phase.value}")
            return

        self._cancel_timer()
        self._phase = Phase.RUNNING
        self._multiplier = BASE_MULTIPLIER
        self._crash_point = self.selector.select(
            self.ledger.house_balance,
            self.book.count(),
            self.book.cashed_out_count(),
        )

        logger.info(f"Round {self._round_id} started with {self.book.count()} bets")
        logger.debug(f"Round {self._round_id} crash point committed at {self._crash_point}x")
        self._emit(
            "round_start",
            bet_count=self.book.count(),
            total_staked=float(self.book.total_staked()),
            multiplier=float(self._multiplier),
        )
        self._arm(RAMP, self._tick_seconds, self._on_ramp_tick)

    def _crash(self):
        self._cancel_timer()
        self._phase = Phase.CRASHED

        # Stakes moved to the house when the bets were placed.
        forfeited = Decimal("0.00")
        unresolved = self.book.unresolved()
        for bet in unresolved:
            self.book.forfeit(bet.player_id)
            forfeited += bet.stake

        self._recent_crashes.appendleft(self._crash_point)
        house_balance = float(self.ledger.house_balance)

        logger.info(
            f"Round {self._round_id} crashed at {self._crash_point}x, "
            f"{len(unresolved)} bets forfeited ({forfeited})"
        )
        self._emit(
            "game_crash",
            crash_point=float(self._crash_point),
            house_balance=house_balance,
            forfeited=float(forfeited),
        )
        self._emit("house_balance_update", house_balance=house_balance)
        self._arm(INTERMISSION, self.config.intermission_seconds, self._on_intermission_end)

    # ==================== Timer callbacks ====================

    def _on_intermission_end(self, handle: TimerHandle):
        with self._transaction():
            if not self._is_current(handle):
                return
            self._timer = None
            self._begin_betting()

    def _on_countdown_tick(self, handle: TimerHandle):
        with self._transaction():
            if not self._is_current(handle) or self._phase != Phase.BETTING:
                return
            self._countdown -= 1
            self._emit("betting_countdown", countdown=self._countdown)
            if self._countdown <= 0:
                self._start_game()

    def _on_ramp_tick(self, handle: TimerHandle):
        with self._transaction():
            if not self._is_current(handle) or self._phase != Phase.RUNNING:
                return
            self._multiplier = min(self._multiplier + self._increment, self._crash_point)
            self._emit("multiplier_update", multiplier=float(self._multiplier))
            if self._multiplier >= self._crash_point:
                self._crash()

    # ==================== Plumbing ====================

    def _is_current(self, handle: TimerHandle) -> bool:
        if handle is not self._timer:
            logger.debug(f"Ignoring stale timer {handle.job_id}")
            return False
        return True

    def _arm(self, kind: str, seconds: float, callback):
        self._cancel_timer()
        if kind == INTERMISSION:
            self._timer = self.clock.arm_once(kind, seconds, callback)
        else:
            self._timer = self.clock.arm_interval(kind, seconds, callback)

    def _cancel_timer(self):
        if self._timer is not None:
            self.clock.cancel(self._timer)
            self._timer = None

    def _emit(self, event_type: str, **data):
        event = RoundEvent(
            seq=next(self._seq), type=event_type, round_id=self._round_id, data=data
        )
        logger.debug(f"Event {event.seq} {event_type}", extra={"round_id": self._round_id})
        self._outbox.append(event)

    @contextmanager
    def _transaction(self):
        try:
            with self._lock:
                yield
        finally:
            self._flush()

    def _flush(self):
        with self._dispatch_lock:
            while self._outbox:
                event = self._outbox.popleft()
                for listener in list(self._listeners):
                    try:
                        listener(event)
                    except Exception:
                        logger.exception(f"Event listener failed on {event.type}")
