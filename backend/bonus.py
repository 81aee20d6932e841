"""
Bonus Engine

Randomized, self-expiring bonus events (angels, VCs, windfalls) and the
time-limited income multiplier window.

Live events are kept in an id-keyed map; an event leaves the map exactly
once, either through a claim (reward granted) or through expiry (no reward).
"""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from config import CONFIG, BonusConfig
from economy import EconomyState

logger = logging.getLogger(__name__)


class BonusKind(str, Enum):
    ANGEL = "ANGEL"
    VC = "VC"
    WINDFALL = "WINDFALL"


BONUS_KINDS = [BonusKind.ANGEL, BonusKind.VC, BonusKind.WINDFALL]


@dataclass(frozen=True, slots=True)
class BonusEvent:
    """A clickable reward opportunity with a fixed on-screen lifetime."""

    id: int
    kind: BonusKind
    spawn_time: float
    lifetime_seconds: float
    position_hint: float  # Presentation only

    @property
    def expires_at(self) -> float:
        return self.spawn_time + self.lifetime_seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "spawnTime": self.spawn_time,
            "lifetimeSeconds": self.lifetime_seconds,
            "positionHint": self.position_hint,
        }


@dataclass(slots=True)
class IncomeMultiplierWindow:
    """Doubles all income while remaining_seconds > 0."""

    remaining_seconds: int = 0
    multiplier: float = CONFIG.bonus.multiplier

    @property
    def active(self) -> bool:
        return self.remaining_seconds > 0

    def activate(self, duration_seconds: int = CONFIG.bonus.multiplier_duration_seconds) -> None:
        # Re-triggering resets the window, it never extends it
        self.remaining_seconds = duration_seconds

    def countdown(self) -> bool:
        """One-second decrement. Returns True if the window changed."""
        if self.remaining_seconds <= 0:
            return False
        self.remaining_seconds -= 1
        return True

    def to_dict(self) -> Dict[str, object]:
        return {
            "active": self.active,
            "remainingSeconds": self.remaining_seconds,
            "multiplier": self.multiplier,
        }


def compute_reward(kind: BonusKind, economy: EconomyState,
                   config: BonusConfig = CONFIG.bonus) -> float:
    """Reward for claiming a bonus of the given kind against the current economy."""
    if kind == BonusKind.ANGEL:
        reward = economy.auto_income_rate * config.angel_income_seconds + config.angel_base_reward
    elif kind == BonusKind.VC:
        reward = economy.auto_income_rate * config.vc_income_seconds + config.vc_base_reward
    elif kind == BonusKind.WINDFALL:
        reward = economy.balance * config.windfall_balance_share + config.windfall_base_reward
    else:
        reward = 0.0

    if reward == 0:
        reward = config.fallback_reward
    return reward


class BonusEngine:
    """
    Spawns, expires and settles bonus events; owns the multiplier window.
    """

    def __init__(self, config: BonusConfig = CONFIG.bonus,
                 rng: Optional[np.random.Generator] = None):
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng()
        self.multiplier_window = IncomeMultiplierWindow(multiplier=config.multiplier)
        self._events: Dict[int, BonusEvent] = {}
        self._ids = itertools.count(1)

    @property
    def active_events(self) -> List[BonusEvent]:
        return list(self._events.values())

    @property
    def multiplier_active(self) -> bool:
        return self.multiplier_window.active

    def _lifetime_for(self, kind: BonusKind) -> float:
        if kind == BonusKind.ANGEL:
            return float(self.rng.uniform(self.config.angel_lifetime_min, self.config.angel_lifetime_max))
        if kind == BonusKind.VC:
            return float(self.rng.uniform(self.config.vc_lifetime_min, self.config.vc_lifetime_max))
        return self.config.windfall_lifetime

    def spawn(self, now: float, kind: Optional[BonusKind] = None) -> BonusEvent:
        """Unconditionally create one event (kind chosen uniformly when not given)."""
        if kind is None:
            kind = BONUS_KINDS[int(self.rng.integers(len(BONUS_KINDS)))]
        event = BonusEvent(
            id=next(self._ids),
            kind=kind,
            spawn_time=now,
            lifetime_seconds=self._lifetime_for(kind),
            position_hint=float(self.rng.uniform(self.config.position_min, self.config.position_max)),
        )
        self._events[event.id] = event
        logger.debug(f"Spawned {event.kind.value} bonus {event.id} for {event.lifetime_seconds:.1f}s")
        return event

    def maybe_spawn(self, now: float) -> Optional[BonusEvent]:
        """One spawn check: spawns with probability spawn_probability."""
        if self.rng.random() < self.config.spawn_probability:
            return self.spawn(now)
        return None

    def expire(self, now: float) -> List[BonusEvent]:
        """Remove every event whose lifetime has elapsed. No reward is granted."""
        expired = [event for event in self._events.values() if event.is_expired(now)]
        for event in expired:
            del self._events[event.id]
        return expired

    def claim(self, event_id: int, economy: EconomyState,
              now: Optional[float] = None) -> Optional[float]:
        """
        Claim a live event and credit its reward.

        Args:
            event_id: Id of the event being claimed
            economy: Economy the reward is computed from and credited to
            now: Current clock time; an event past its lifetime is expired instead of paid

        Returns the reward, or None when the event was already claimed,
        already expired or never existed.
        """
        event = self._events.pop(event_id, None)
        if event is None:
            return None
        if now is not None and event.is_expired(now):
            return None
        reward = compute_reward(event.kind, economy, self.config)
        economy.grant_reward(reward)
        return reward

    def activate_multiplier(self) -> None:
        self.multiplier_window.activate(self.config.multiplier_duration_seconds)

    def countdown_multiplier(self) -> bool:
        return self.multiplier_window.countdown()

    def clear(self) -> None:
        self._events.clear()
        self.multiplier_window.remaining_seconds = 0
