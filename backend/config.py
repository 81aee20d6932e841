"""
Simulation Configuration

Centralizes all tunable parameters for the tycoon simulation core.
Deployment values (database path, save slot key, server address) can be
overridden through environment variables or a .env file.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


@dataclass
class ClockConfig:
    """Cadences of the periodic simulation tasks (seconds)."""
    income_tick_interval: float = 0.1  # 10 income ticks per second
    bonus_spawn_interval: float = 2.0
    multiplier_countdown_interval: float = 1.0
    autosave_interval: float = 5.0
    max_tick_delta: float = 1.0  # Clamp for wall-clock gaps (tab suspension, sleep)


@dataclass
class EconomyConfig:
    """Manual action and pricing parameters."""
    click_value: float = 1.0
    growth_factor: float = 1.15  # Price multiplier per purchase


@dataclass
class BonusConfig:
    """Bonus event spawning, rewards and the income multiplier window."""

    # Spawn policy
    spawn_probability: float = 0.30

    # On-screen lifetimes per kind
    angel_lifetime_min: float = 10.0
    angel_lifetime_max: float = 15.0
    vc_lifetime_min: float = 5.0
    vc_lifetime_max: float = 8.0
    windfall_lifetime: float = 8.0

    # Reward formulas
    angel_income_seconds: float = 60.0  # One minute of income
    angel_base_reward: float = 100.0
    vc_income_seconds: float = 30.0
    vc_base_reward: float = 50.0
    windfall_balance_share: float = 0.10  # 10% of current cash
    windfall_base_reward: float = 20.0
    fallback_reward: float = 50.0  # Early game, nothing owned and no cash

    # Position hint (percent of screen height)
    position_min: float = 10.0
    position_max: float = 70.0

    # Income multiplier window
    multiplier: float = 2.0
    multiplier_duration_seconds: int = 30


@dataclass
class PersistenceConfig:
    """Single-slot save settings."""
    db_path: str = field(default_factory=lambda: os.getenv("TYCOON_DB_PATH", "tycoon.db"))
    save_key: str = field(default_factory=lambda: os.getenv("TYCOON_SAVE_KEY", "tycoon_save_v2"))
    recompute_costs_on_load: bool = False  # Trust the saved cost by default


@dataclass
class ServerConfig:
    """Presentation feed server."""
    host: str = field(default_factory=lambda: os.getenv("TYCOON_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("TYCOON_PORT", "8000")))
    log_level: str = field(default_factory=lambda: os.getenv("TYCOON_LOG_LEVEL", "INFO"))


@dataclass
class SimulationConfig:
    """Master configuration for the entire simulation."""

    clock: ClockConfig = field(default_factory=ClockConfig)
    economy: EconomyConfig = field(default_factory=EconomyConfig)
    bonus: BonusConfig = field(default_factory=BonusConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    def __post_init__(self):
        """Validation of cross-field constraints."""
        # Validate cadences
        for name in ("income_tick_interval", "bonus_spawn_interval",
                     "multiplier_countdown_interval", "autosave_interval", "max_tick_delta"):
            if getattr(self.clock, name) <= 0:
                raise ValueError(f"{name} must be positive")

        if self.economy.click_value < 0:
            raise ValueError("click_value cannot be negative")
        if self.economy.growth_factor <= 1.0:
            raise ValueError("growth_factor must be greater than 1")

        if not (0.0 <= self.bonus.spawn_probability <= 1.0):
            raise ValueError("spawn_probability must be in [0, 1]")
        if self.bonus.angel_lifetime_min > self.bonus.angel_lifetime_max:
            raise ValueError("angel lifetime bounds are inverted")
        if self.bonus.vc_lifetime_min > self.bonus.vc_lifetime_max:
            raise ValueError("vc lifetime bounds are inverted")
        if self.bonus.multiplier_duration_seconds <= 0:
            raise ValueError("multiplier_duration_seconds must be positive")

        if not self.persistence.save_key:
            raise ValueError("save_key cannot be empty")


# Global configuration instance
CONFIG = SimulationConfig()
