"""
Game Session

The single, explicitly owned game context: catalog, economy, bonus engine
and save store. The clock, the server and the headless runner all act on
the simulation through this object.

Every mutation is a plain synchronous method, so when driven from one event
loop no transition can observe a partially applied one. Each state change is
published to presentation subscribers as a read-only snapshot; manual actions
and bonus claims additionally emit a reward notification.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

import numpy as np

from bonus import BonusEngine, BonusEvent
from catalog import AssetCatalog, default_catalog
from config import CONFIG, SimulationConfig
from economy import EconomyState
from persistence import MemorySaveStore, load_economy, save_economy, serialize

logger = logging.getLogger(__name__)

MANUAL_ORIGIN = "MANUAL"

StateListener = Callable[[Dict[str, object]], None]
RewardListener = Callable[[Dict[str, object]], None]


class GameSession:
    """Owns the live simulation state for one player and one save slot."""

    def __init__(
        self,
        economy: EconomyState,
        bonus_engine: BonusEngine,
        store=None,
        config: SimulationConfig = CONFIG,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.economy = economy
        self.bonus = bonus_engine
        self.store = store if store is not None else MemorySaveStore()
        self.config = config
        self.clock = clock
        # Bumped by reset; writes captured under an older generation are dropped
        self.save_generation = 0
        self._store_lock = threading.Lock()
        self._state_listeners: List[StateListener] = []
        self._reward_listeners: List[RewardListener] = []

    @classmethod
    def load(
        cls,
        store=None,
        catalog: Optional[AssetCatalog] = None,
        config: SimulationConfig = CONFIG,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "GameSession":
        """Startup: read the save slot, reconcile it and build the session."""
        catalog = catalog or default_catalog()
        store = store if store is not None else MemorySaveStore()
        economy = load_economy(
            store,
            catalog,
            key=config.persistence.save_key,
            trust_saved_cost=not config.persistence.recompute_costs_on_load,
            click_value=config.economy.click_value,
            max_tick_delta=config.clock.max_tick_delta,
        )
        logger.info(
            f"Session loaded: balance={economy.balance:.2f}, "
            f"rate={economy.auto_income_rate:.2f}/s, assets owned={economy.total_owned}"
        )
        return cls(economy, BonusEngine(config.bonus, rng=rng), store=store, config=config, clock=clock)

    # ---------- Presentation feed ----------

    def subscribe(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def unsubscribe(self, listener: StateListener) -> None:
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    def subscribe_rewards(self, listener: RewardListener) -> None:
        self._reward_listeners.append(listener)

    def unsubscribe_rewards(self, listener: RewardListener) -> None:
        if listener in self._reward_listeners:
            self._reward_listeners.remove(listener)

    def snapshot(self) -> Dict[str, object]:
        """Read-only view of everything the presentation layer renders."""
        return {
            "balance": self.economy.balance,
            "lifetimeEarnings": self.economy.lifetime_earnings,
            "autoIncomeRate": self.economy.auto_income_rate,
            "totalOwned": self.economy.total_owned,
            "ownedAssets": self.economy.owned_assets_list(),
            "activeBonusEvents": [event.to_dict() for event in self.bonus.active_events],
            "multiplierWindow": self.bonus.multiplier_window.to_dict(),
        }

    def _publish(self) -> None:
        if not self._state_listeners:
            return
        state = self.snapshot()
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    def _notify_reward(self, amount: float, origin_kind: str) -> None:
        notification = {"amount": amount, "originKind": origin_kind}
        for listener in list(self._reward_listeners):
            try:
                listener(notification)
            except Exception as e:
                logger.error(f"Reward listener failed: {e}", exc_info=True)

    # ---------- Player commands ----------

    def click(self) -> float:
        amount = self.economy.apply_manual_action(
            self.bonus.multiplier_active, self.bonus.multiplier_window.multiplier
        )
        self._notify_reward(amount, MANUAL_ORIGIN)
        self._publish()
        return amount

    def buy(self, asset_id: int) -> bool:
        bought = self.economy.purchase(asset_id)
        if bought:
            logger.debug(f"Bought asset {asset_id}, rate now {self.economy.auto_income_rate:.2f}/s")
            self._publish()
        return bought

    def claim_bonus(self, event_id: int) -> Optional[float]:
        kinds = {event.id: event.kind for event in self.bonus.active_events}
        reward = self.bonus.claim(event_id, self.economy, now=self.clock())
        if reward is None:
            # Already claimed or expired; still publish if an expired event was dropped
            if event_id in kinds:
                self._publish()
            return None
        self._notify_reward(reward, kinds[event_id].value)
        self._publish()
        return reward

    def grant_temporary_multiplier(self) -> None:
        """Bonus-grant trigger (e.g. a watched ad): start or restart the multiplier window."""
        self.bonus.activate_multiplier()
        logger.info(f"Income multiplier active for {self.bonus.multiplier_window.remaining_seconds}s")
        self._publish()

    def reset(self, clear_slot: bool = True) -> None:
        """
        Back to catalog defaults and an empty save slot.

        Saves captured before the reset are invalidated, so a write still in
        flight on a worker thread cannot bring the old game back. Pass
        clear_slot=False to run clear_save() separately (e.g. off the loop).
        """
        self.economy = EconomyState.from_catalog(
            self.economy.catalog,
            click_value=self.economy.click_value,
            max_tick_delta=self.economy.max_tick_delta,
        )
        self.bonus.clear()
        self.save_generation += 1
        if clear_slot:
            self.clear_save()
        logger.info("Game reset to catalog defaults")
        self._publish()

    # ---------- Clock-driven transitions ----------

    def tick_income(self, delta_seconds: float) -> float:
        income = self.economy.apply_income_tick(
            delta_seconds,
            self.bonus.multiplier_active,
            self.bonus.multiplier_window.multiplier,
        )
        expired = self.bonus.expire(self.clock())
        if income > 0 or expired:
            self._publish()
        return income

    def spawn_check(self) -> Optional[BonusEvent]:
        event = self.bonus.maybe_spawn(self.clock())
        if event is not None:
            self._publish()
        return event

    def countdown_multiplier(self) -> None:
        if self.bonus.countdown_multiplier():
            if not self.bonus.multiplier_active:
                logger.info("Income multiplier expired")
            self._publish()

    # ---------- Persistence ----------

    def save_payload(self) -> str:
        """Serialized save captured synchronously, safe to hand to a writer thread."""
        return serialize(self.economy).to_json()

    def write_save(self, payload: str, generation: int) -> bool:
        """Write a captured payload unless a reset happened after it was captured.

        Safe to call from a worker thread.
        """
        with self._store_lock:
            if generation != self.save_generation:
                logger.debug(f"Dropping save from generation {generation}, current is {self.save_generation}")
                return False
            self.store.write(self.config.persistence.save_key, payload)
            return True

    def clear_save(self) -> None:
        """Delete the save slot. Safe to call from a worker thread."""
        with self._store_lock:
            self.store.delete(self.config.persistence.save_key)

    def save(self) -> str:
        with self._store_lock:
            return save_economy(self.store, self.economy, key=self.config.persistence.save_key)
