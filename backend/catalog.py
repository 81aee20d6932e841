"""
Asset Catalog

Static definitions of the purchasable passive-income generators ("assets").
The catalog order is the order the player sees and the order saved games
are reconciled in.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from config import CONFIG


@dataclass(frozen=True, slots=True)
class AssetDefinition:
    """Immutable definition of one generator type."""

    id: int
    name: str
    base_cost: float
    income_rate: float  # currency/sec per owned unit
    growth_factor: float = CONFIG.economy.growth_factor

    def __post_init__(self):
        """Validate invariants after initialization."""
        if self.base_cost < 0:
            raise ValueError(f"base_cost must be non-negative, got {self.base_cost}")
        if self.income_rate < 0:
            raise ValueError(f"income_rate must be non-negative, got {self.income_rate}")
        if self.growth_factor <= 1.0:
            raise ValueError(f"growth_factor must be greater than 1, got {self.growth_factor}")

    def cost_at(self, count: int) -> float:
        """Price of the next unit once `count` units are owned."""
        return round_half_up(self.base_cost * self.growth_factor ** count)


def round_half_up(value: float) -> float:
    """Round to the nearest integer with halves going up (not banker's rounding)."""
    return float(math.floor(value + 0.5))


class AssetCatalog:
    """Ordered, id-indexed collection of asset definitions."""

    def __init__(self, definitions: List[AssetDefinition]):
        self._definitions = list(definitions)
        self._lookup: Dict[int, AssetDefinition] = {}
        for definition in self._definitions:
            if definition.id in self._lookup:
                raise ValueError(f"duplicate asset id {definition.id} in catalog")
            self._lookup[definition.id] = definition

    def __iter__(self) -> Iterator[AssetDefinition]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, asset_id: int) -> bool:
        return asset_id in self._lookup

    def get(self, asset_id: int) -> Optional[AssetDefinition]:
        return self._lookup.get(asset_id)

    @property
    def ids(self) -> List[int]:
        return [d.id for d in self._definitions]


DEFAULT_ASSETS = [
    AssetDefinition(id=1, name="Espresso Machine", base_cost=15.0, income_rate=0.5),
    AssetDefinition(id=2, name="Unpaid Intern", base_cost=100.0, income_rate=2.0),
    AssetDefinition(id=3, name="Cloud Server", base_cost=500.0, income_rate=10.0),
    AssetDefinition(id=4, name="Acquire Rival", base_cost=2000.0, income_rate=50.0),
    AssetDefinition(id=5, name="Go Public (IPO)", base_cost=10000.0, income_rate=250.0),
]


def default_catalog() -> AssetCatalog:
    return AssetCatalog(DEFAULT_ASSETS)
