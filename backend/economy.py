"""
Economy State

This module implements the player's economy: balance, lifetime earnings,
owned generators and their current prices.

All transitions are deterministic - no randomness, I/O, or side effects.
Derived values (current_cost per asset, auto_income_rate) are recomputed
after every mutating call and never stored independently of their source.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional

from catalog import AssetCatalog
from config import CONFIG

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OwnedAsset:
    """Per-asset mutable record: how many units are owned and the next price."""

    id: int
    count: int = 0
    current_cost: float = 0.0

    def __post_init__(self):
        if self.count < 0:
            raise ValueError(f"count must be non-negative, got {self.count}")
        if self.current_cost < 0:
            raise ValueError(f"current_cost must be non-negative, got {self.current_cost}")

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "count": self.count, "currentCost": self.current_cost}


class EconomyState:
    """
    Owns the balance, lifetime earnings and owned-asset table.

    The owned-asset table always holds exactly one entry per catalog id,
    in catalog order.
    """

    def __init__(
        self,
        catalog: AssetCatalog,
        balance: float = 0.0,
        lifetime_earnings: float = 0.0,
        owned_assets: Optional[Dict[int, OwnedAsset]] = None,
        click_value: float = CONFIG.economy.click_value,
        max_tick_delta: float = CONFIG.clock.max_tick_delta,
    ):
        """
        Initialize the economy.

        Args:
            catalog: Current asset catalog
            balance: Spendable cash
            lifetime_earnings: Total ever earned (never decreases)
            owned_assets: Owned records keyed by asset id; missing ids start at catalog defaults
            click_value: Base reward for one manual action
            max_tick_delta: Upper clamp for a single income tick
        """
        if balance < 0:
            raise ValueError(f"balance must be non-negative, got {balance}")
        if lifetime_earnings < 0:
            raise ValueError(f"lifetime_earnings must be non-negative, got {lifetime_earnings}")

        self.catalog = catalog
        self.balance = float(balance)
        self.lifetime_earnings = float(lifetime_earnings)
        self.click_value = click_value
        self.max_tick_delta = max_tick_delta

        owned_assets = owned_assets or {}
        self.owned_assets: Dict[int, OwnedAsset] = {}
        for definition in catalog:
            record = owned_assets.get(definition.id)
            if record is None:
                record = OwnedAsset(id=definition.id, count=0, current_cost=definition.base_cost)
            self.owned_assets[definition.id] = record

        self._auto_income_rate = 0.0
        self._recompute_income_rate()

    @classmethod
    def from_catalog(cls, catalog: AssetCatalog, **kwargs) -> "EconomyState":
        """Fresh game: nothing owned, every price at its base cost."""
        return cls(catalog, **kwargs)

    @property
    def auto_income_rate(self) -> float:
        """Passive income per second, derived from owned counts."""
        return self._auto_income_rate

    @property
    def total_owned(self) -> int:
        return sum(record.count for record in self.owned_assets.values())

    def _recompute_income_rate(self) -> None:
        rate = 0.0
        for asset_id, record in self.owned_assets.items():
            definition = self.catalog.get(asset_id)
            rate += record.count * definition.income_rate
        self._auto_income_rate = rate

    def _earn(self, amount: float) -> None:
        self.balance += amount
        self.lifetime_earnings += amount

    def apply_manual_action(self, multiplier_active: bool = False,
                            multiplier: float = CONFIG.bonus.multiplier) -> float:
        """Grant one click worth of cash and return the exact amount granted."""
        amount = self.click_value * (multiplier if multiplier_active else 1)
        self._earn(amount)
        return amount

    def apply_income_tick(self, delta_seconds: float, multiplier_active: bool = False,
                          multiplier: float = CONFIG.bonus.multiplier) -> float:
        """
        Accrue passive income for one tick.

        The delta is clamped into [0, max_tick_delta] so a long pause between
        ticks cannot produce an unbounded income spike.

        Returns:
            Income added to balance and lifetime earnings
        """
        delta = min(max(delta_seconds, 0.0), self.max_tick_delta)
        income = self._auto_income_rate * (multiplier if multiplier_active else 1) * delta
        if income > 0:
            self._earn(income)
        return income

    def grant_reward(self, amount: float) -> float:
        """Credit a bonus reward. Negative amounts are ignored."""
        if amount <= 0:
            return 0.0
        self._earn(amount)
        return amount

    def can_afford(self, asset_id: int) -> bool:
        record = self.owned_assets.get(asset_id)
        return record is not None and self.balance >= record.current_cost

    def purchase(self, asset_id: int) -> bool:
        """
        Buy one unit of an asset.

        No-op (returns False) when the asset is unknown or unaffordable.
        On success the cost is deducted, the count and price advance and
        the income rate is recomputed before control returns.
        """
        definition = self.catalog.get(asset_id)
        if definition is None:
            logger.warning(f"Purchase of unknown asset id {asset_id} ignored")
            return False

        record = self.owned_assets[asset_id]
        if self.balance < record.current_cost:
            return False

        self.balance -= record.current_cost
        record.count += 1
        record.current_cost = definition.cost_at(record.count)
        self._recompute_income_rate()
        return True

    def owned_assets_list(self) -> List[Dict[str, object]]:
        """Owned assets with their catalog data, in catalog order."""
        rows = []
        for definition in self.catalog:
            record = self.owned_assets[definition.id]
            rows.append({
                "id": definition.id,
                "name": definition.name,
                "incomeRate": definition.income_rate,
                "count": record.count,
                "currentCost": record.current_cost,
                "affordable": self.balance >= record.current_cost,
            })
        return rows


def format_money(amount: float) -> str:
    """Compact money label: $999, $1.50k, $2.50M."""
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.2f}M"
    if amount >= 1_000:
        return f"${amount / 1_000:.2f}k"
    return f"${math.floor(amount)}"
