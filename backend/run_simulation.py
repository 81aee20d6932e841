"""
Run the tycoon simulation headless.

Steps the session in fixed income ticks of simulated time (no sleeping),
running bonus spawn checks, the multiplier countdown and autosaves on their
own cadences. Progress is printed every 10 simulated seconds.

Usage:
    python run_simulation.py --seconds 600 --autobuy --db tycoon.db
"""

import argparse
import json
import logging
import time
from typing import Dict, Optional

import numpy as np

from config import CONFIG, SimulationConfig
from economy import format_money
from persistence import MemorySaveStore, SqliteSaveStore
from session import GameSession


class SimulatedTime:
    """Monotonic clock advanced manually by the runner."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def buy_cheapest_affordable(session: GameSession) -> Optional[int]:
    """Autopilot: buy the cheapest asset the balance covers."""
    rows = [row for row in session.economy.owned_assets_list() if row["affordable"]]
    if not rows:
        return None
    cheapest = min(rows, key=lambda row: row["currentCost"])
    if session.buy(cheapest["id"]):
        return cheapest["id"]
    return None


def run(
    seconds: float,
    session: GameSession,
    sim_time: SimulatedTime,
    config: SimulationConfig = CONFIG,
    autobuy: bool = False,
    claim_bonuses: bool = True,
    report_every: float = 10.0,
    verbose: bool = True,
) -> Dict[str, float]:
    """
    Simulate `seconds` of play and return summary metrics.

    Args:
        seconds: Simulated duration
        session: Session to drive (its clock must be `sim_time`)
        sim_time: Manual clock shared with the session
        config: Cadence configuration
        autobuy: Buy the cheapest affordable asset after every tick
        claim_bonuses: Claim every bonus event as soon as it spawns
        report_every: Simulated seconds between progress lines
        verbose: Print progress table
    """
    step = config.clock.income_tick_interval
    num_ticks = int(round(seconds / step))
    next_spawn = config.clock.bonus_spawn_interval
    next_countdown = config.clock.multiplier_countdown_interval
    next_save = config.clock.autosave_interval
    next_report = report_every

    purchases = 0
    bonuses_claimed = 0
    bonus_income = 0.0

    if verbose:
        print(" Time(s) |     Balance |    Lifetime |   Rate/s | Owned | Bonuses")
        print("-" * 70)

    for _ in range(num_ticks):
        sim_time.advance(step)
        session.tick_income(step)

        if sim_time.now >= next_spawn:
            next_spawn += config.clock.bonus_spawn_interval
            event = session.spawn_check()
            if event is not None and claim_bonuses:
                reward = session.claim_bonus(event.id)
                if reward is not None:
                    bonuses_claimed += 1
                    bonus_income += reward

        if sim_time.now >= next_countdown:
            next_countdown += config.clock.multiplier_countdown_interval
            session.countdown_multiplier()

        if autobuy:
            while buy_cheapest_affordable(session) is not None:
                purchases += 1

        if sim_time.now >= next_save:
            next_save += config.clock.autosave_interval
            session.save()

        if verbose and sim_time.now >= next_report:
            next_report += report_every
            economy = session.economy
            print(f"{sim_time.now:8.1f} | {format_money(economy.balance):>11} | "
                  f"{format_money(economy.lifetime_earnings):>11} | "
                  f"{economy.auto_income_rate:8.1f} | {economy.total_owned:5d} | {bonuses_claimed:7d}")

    session.save()
    economy = session.economy
    return {
        "seconds": sim_time.now,
        "balance": economy.balance,
        "lifetimeEarnings": economy.lifetime_earnings,
        "autoIncomeRate": economy.auto_income_rate,
        "totalOwned": economy.total_owned,
        "purchases": purchases,
        "bonusesClaimed": bonuses_claimed,
        "bonusIncome": bonus_income,
    }


def main():
    parser = argparse.ArgumentParser(description="Run the tycoon simulation headless")
    parser.add_argument("--seconds", type=float, default=300.0, help="Simulated seconds to run")
    parser.add_argument("--db", type=str, default=None, help="SQLite save file (in-memory when omitted)")
    parser.add_argument("--autobuy", action="store_true", help="Buy the cheapest affordable asset every tick")
    parser.add_argument("--no-bonuses", action="store_true", help="Ignore bonus events")
    parser.add_argument("--seed", type=int, default=None, help="Seed for bonus spawning")
    parser.add_argument("--summary", type=str, default=None, help="Write summary JSON to this path")
    args = parser.parse_args()

    logging.basicConfig(level=CONFIG.server.log_level)

    store = SqliteSaveStore(args.db) if args.db else MemorySaveStore()
    sim_time = SimulatedTime()
    session = GameSession.load(store, rng=np.random.default_rng(args.seed), clock=sim_time)

    print("=" * 70)
    print(f"TYCOON SIMULATION ({args.seconds:.0f} simulated seconds)")
    print("=" * 70)

    start_time = time.time()
    summary = run(args.seconds, session, sim_time, autobuy=args.autobuy,
                  claim_bonuses=not args.no_bonuses)
    elapsed = time.time() - start_time

    print()
    print(f"Simulation complete in {elapsed:.2f} seconds")
    print(f"  Balance:           {format_money(summary['balance'])}")
    print(f"  Lifetime earnings: {format_money(summary['lifetimeEarnings'])}")
    print(f"  Income rate:       {format_money(summary['autoIncomeRate'])}/sec")
    print(f"  Assets owned:      {summary['totalOwned']}")
    print(f"  Bonuses claimed:   {summary['bonusesClaimed']}")

    if args.summary:
        with open(args.summary, "w") as f:
            json.dump(summary, f, indent=2)
        print(f"Summary saved to: {args.summary}")


if __name__ == "__main__":
    main()
