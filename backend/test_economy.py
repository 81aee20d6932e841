"""
Unit tests for the asset catalog and EconomyState

Tests cover:
- Geometric pricing with half-up rounding
- Income rate derivation after purchases
- Manual actions and income ticks (with and without the multiplier)
- Purchase refusal when unaffordable or unknown
- Money formatting
- Configuration validation
"""

import pytest

from catalog import AssetCatalog, AssetDefinition, default_catalog, round_half_up
from config import ClockConfig, EconomyConfig, SimulationConfig
from economy import EconomyState, OwnedAsset, format_money


def single_asset_economy(income_rate=20.0, count=1, balance=0.0):
    catalog = AssetCatalog([AssetDefinition(id=1, name="Generator", base_cost=10.0, income_rate=income_rate)])
    owned = {1: OwnedAsset(id=1, count=count, current_cost=catalog.get(1).cost_at(count))}
    return EconomyState(catalog, balance=balance, owned_assets=owned)


class TestAssetCatalog:
    """Catalog construction and pricing helpers"""

    def test_default_catalog_order_and_ids(self):
        catalog = default_catalog()
        assert catalog.ids == [1, 2, 3, 4, 5]
        assert catalog.get(1).name == "Espresso Machine"
        assert catalog.get(5).base_cost == 10000.0
        assert all(d.growth_factor == 1.15 for d in catalog)

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            AssetCatalog([
                AssetDefinition(id=1, name="A", base_cost=1.0, income_rate=1.0),
                AssetDefinition(id=1, name="B", base_cost=2.0, income_rate=1.0),
            ])

    @pytest.mark.parametrize("kwargs", [
        {"base_cost": -1.0, "income_rate": 1.0},
        {"base_cost": 1.0, "income_rate": -0.5},
        {"base_cost": 1.0, "income_rate": 1.0, "growth_factor": 1.0},
    ])
    def test_invalid_definition_rejected(self, kwargs):
        with pytest.raises(ValueError):
            AssetDefinition(id=1, name="Bad", **kwargs)

    def test_rounding_goes_half_up(self):
        assert round_half_up(2.5) == 3.0
        assert round_half_up(3.5) == 4.0
        assert round_half_up(17.25) == 17.0
        assert round_half_up(19.8375) == 20.0

    def test_cost_at_matches_known_prices(self):
        espresso = default_catalog().get(1)
        # 15 * 1.15^n rounded: 15, 17.25, 19.84, 22.81
        assert [espresso.cost_at(n) for n in range(4)] == [15.0, 17.0, 20.0, 23.0]


class TestPurchase:
    """Purchase state machine"""

    def test_cost_after_n_purchases_follows_formula(self):
        catalog = default_catalog()
        economy = EconomyState(catalog, balance=1_000_000.0)

        # Interleave purchases of two assets; each price depends only on its own count
        for n in range(1, 11):
            assert economy.purchase(1)
            if n % 3 == 0:
                assert economy.purchase(2)
            expected = round_half_up(15.0 * 1.15 ** n)
            assert economy.owned_assets[1].current_cost == expected

        assert economy.owned_assets[2].count == 3
        assert economy.owned_assets[2].current_cost == round_half_up(100.0 * 1.15 ** 3)

    def test_purchase_deducts_cost_and_recomputes_rate(self):
        economy = EconomyState(default_catalog(), balance=200.0)

        assert economy.purchase(1)  # 15
        assert economy.purchase(1)  # 17
        assert economy.purchase(2)  # 100

        assert economy.balance == pytest.approx(200.0 - 15.0 - 17.0 - 100.0)
        # 2 * 0.5 + 1 * 2
        assert economy.auto_income_rate == pytest.approx(3.0)
        assert economy.total_owned == 3

    def test_income_rate_always_matches_counts(self):
        catalog = default_catalog()
        economy = EconomyState(catalog, balance=50_000.0)
        for asset_id in [1, 2, 1, 3, 4, 1, 2, 5, 3]:
            economy.purchase(asset_id)
            expected = sum(
                economy.owned_assets[d.id].count * d.income_rate for d in catalog
            )
            assert economy.auto_income_rate == pytest.approx(expected)

    def test_unaffordable_purchase_is_noop(self):
        economy = EconomyState(default_catalog(), balance=10.0, lifetime_earnings=10.0)

        assert not economy.can_afford(1)
        assert economy.purchase(1) is False

        assert economy.balance == 10.0
        assert economy.owned_assets[1].count == 0
        assert economy.owned_assets[1].current_cost == 15.0
        assert economy.auto_income_rate == 0.0

    def test_exact_balance_is_affordable(self):
        economy = EconomyState(default_catalog(), balance=15.0)
        assert economy.can_afford(1)
        assert economy.purchase(1)
        assert economy.balance == 0.0

    def test_unknown_asset_is_noop(self):
        economy = EconomyState(default_catalog(), balance=1000.0)
        assert economy.purchase(42) is False
        assert economy.can_afford(42) is False
        assert economy.balance == 1000.0

    def test_purchase_never_reduces_lifetime_earnings(self):
        economy = EconomyState(default_catalog(), balance=500.0, lifetime_earnings=500.0)
        for _ in range(5):
            economy.purchase(1)
        assert economy.lifetime_earnings == 500.0
        assert economy.balance >= 0


class TestIncome:
    """Manual actions and income ticks"""

    def test_manual_action_grants_click_value(self):
        economy = EconomyState(default_catalog())
        assert economy.apply_manual_action(False) == 1.0
        assert economy.apply_manual_action(True) == 2.0
        assert economy.balance == 3.0
        assert economy.lifetime_earnings == 3.0

    def test_tick_with_multiplier_doubles_income(self):
        economy = single_asset_economy(income_rate=20.0)
        income = economy.apply_income_tick(1.0, multiplier_active=True)
        assert income == pytest.approx(40.0)
        assert economy.balance == pytest.approx(40.0)
        assert economy.lifetime_earnings == pytest.approx(40.0)

    def test_tick_is_proportional_to_delta(self):
        economy = single_asset_economy(income_rate=20.0)
        for _ in range(10):
            economy.apply_income_tick(0.1)
        assert economy.balance == pytest.approx(20.0)

    def test_large_gap_is_clamped(self):
        economy = single_asset_economy(income_rate=20.0)
        # A 10 minute suspension only pays out max_tick_delta (1s)
        assert economy.apply_income_tick(600.0) == pytest.approx(20.0)

    def test_negative_delta_pays_nothing(self):
        economy = single_asset_economy(income_rate=20.0)
        assert economy.apply_income_tick(-3.0) == 0.0
        assert economy.balance == 0.0

    def test_no_assets_no_income(self):
        economy = EconomyState(default_catalog())
        assert economy.apply_income_tick(1.0, True) == 0.0

    def test_lifetime_earnings_monotonic_across_mixed_sequence(self):
        economy = single_asset_economy(income_rate=5.0, balance=100.0)
        history = [economy.lifetime_earnings]
        for step in range(30):
            if step % 4 == 0:
                economy.purchase(1)
            elif step % 4 == 1:
                economy.apply_manual_action(step % 8 == 1)
            elif step % 4 == 2:
                economy.grant_reward(50.0)
            else:
                economy.apply_income_tick(0.5)
            history.append(economy.lifetime_earnings)
            assert economy.balance >= 0
        assert all(b >= a for a, b in zip(history, history[1:]))

    def test_negative_reward_ignored(self):
        economy = EconomyState(default_catalog())
        assert economy.grant_reward(-10.0) == 0.0
        assert economy.balance == 0.0


class TestEconomyConstruction:

    def test_missing_owned_entries_get_catalog_defaults(self):
        catalog = default_catalog()
        economy = EconomyState(catalog, owned_assets={2: OwnedAsset(id=2, count=3, current_cost=152.0)})
        assert list(economy.owned_assets) == catalog.ids
        assert economy.owned_assets[1].count == 0
        assert economy.owned_assets[1].current_cost == 15.0
        assert economy.auto_income_rate == pytest.approx(6.0)

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError):
            EconomyState(default_catalog(), balance=-1.0)

    def test_owned_assets_list_flags_affordability(self):
        economy = EconomyState(default_catalog(), balance=120.0)
        rows = economy.owned_assets_list()
        assert [row["affordable"] for row in rows] == [True, True, False, False, False]
        assert rows[0]["name"] == "Espresso Machine"


class TestFormatMoney:

    @pytest.mark.parametrize("amount,expected", [
        (0, "$0"),
        (999, "$999"),
        (999.99, "$999"),
        (1000, "$1.00k"),
        (1500, "$1.50k"),
        (999_999, "$1000.00k"),
        (1_000_000, "$1.00M"),
        (2_500_000, "$2.50M"),
    ])
    def test_format_money(self, amount, expected):
        assert format_money(amount) == expected


class TestConfigValidation:

    def test_defaults_are_valid(self):
        config = SimulationConfig()
        assert config.clock.income_tick_interval == 0.1
        assert config.bonus.multiplier_duration_seconds == 30

    def test_growth_factor_must_exceed_one(self):
        with pytest.raises(ValueError):
            SimulationConfig(economy=EconomyConfig(growth_factor=1.0))

    def test_cadence_must_be_positive(self):
        with pytest.raises(ValueError):
            SimulationConfig(clock=ClockConfig(income_tick_interval=0.0))
