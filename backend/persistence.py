"""
Save Game Persistence

Serializes the economy into a single versioned save slot and reconciles a
loaded snapshot against the current asset catalog.

Persisted payload (JSON):
    {"balance": 12.5, "lifetimeEarnings": 340.0,
     "upgrades": [{"id": 1, "count": 3, "cost": 23}, ...]}

A missing slot, unparseable JSON or a payload failing validation are all
treated as "no snapshot" and fall back to catalog defaults.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, confloat, conint

from catalog import AssetCatalog
from config import CONFIG
from economy import EconomyState, OwnedAsset

logger = logging.getLogger(__name__)


# ---------- Payload validation ----------

class UpgradeEntry(BaseModel):
    id: int
    count: conint(ge=0) = 0
    cost: Optional[confloat(ge=0, allow_inf_nan=False)] = None


class SavePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    balance: confloat(ge=0, allow_inf_nan=False) = 0.0
    lifetime_earnings: confloat(ge=0, allow_inf_nan=False) = Field(0.0, alias="lifetimeEarnings")
    upgrades: Optional[List[UpgradeEntry]] = None


# ---------- Snapshot ----------

@dataclass(slots=True)
class SnapshotEntry:
    id: int
    count: int
    current_cost: Optional[float]


@dataclass(slots=True)
class SaveSnapshot:
    """Point-in-time copy of the persisted part of the economy."""

    balance: float
    lifetime_earnings: float
    entries: Optional[List[SnapshotEntry]] = field(default_factory=list)  # None: no asset data saved

    def to_payload(self) -> Dict[str, object]:
        return {
            "balance": self.balance,
            "lifetimeEarnings": self.lifetime_earnings,
            "upgrades": [
                {"id": e.id, "count": e.count, "cost": e.current_cost}
                for e in (self.entries or [])
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload())


def serialize(state: EconomyState) -> SaveSnapshot:
    """Capture the persisted fields of the economy, assets in catalog order."""
    return SaveSnapshot(
        balance=state.balance,
        lifetime_earnings=state.lifetime_earnings,
        entries=[
            SnapshotEntry(id=record.id, count=record.count, current_cost=record.current_cost)
            for record in state.owned_assets.values()
        ],
    )


def parse_snapshot(raw: Optional[str]) -> Optional[SaveSnapshot]:
    """Parse a stored payload; anything unusable yields None."""
    if not raw:
        return None
    try:
        payload = SavePayload.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"Discarding malformed save: {e.error_count()} validation error(s)")
        return None

    entries = None
    if payload.upgrades is not None:
        entries = [
            SnapshotEntry(id=u.id, count=u.count, current_cost=u.cost)
            for u in payload.upgrades
        ]
    return SaveSnapshot(
        balance=payload.balance,
        lifetime_earnings=payload.lifetime_earnings,
        entries=entries,
    )


def reconcile(
    snapshot: Optional[SaveSnapshot],
    catalog: AssetCatalog,
    trust_saved_cost: bool = True,
    **economy_kwargs,
) -> EconomyState:
    """
    Merge a loaded snapshot with the current catalog into a live economy.

    Args:
        snapshot: Parsed save, or None on first run / corrupt save
        catalog: Current asset catalog (drives order and membership)
        trust_saved_cost: Keep the saved price verbatim; when False the price
            is recomputed from the saved count and the current catalog
        economy_kwargs: Passed through to EconomyState (click_value, max_tick_delta)

    Returns:
        EconomyState with the income rate recomputed from the merged assets
    """
    if snapshot is None:
        return EconomyState.from_catalog(catalog, **economy_kwargs)

    saved: Dict[int, SnapshotEntry] = {}
    for entry in snapshot.entries or []:
        # First occurrence wins if a save somehow holds an id twice
        saved.setdefault(entry.id, entry)

    dropped = [asset_id for asset_id in saved if asset_id not in catalog]
    if dropped:
        logger.info(f"Dropping saved assets no longer in catalog: {dropped}")

    owned: Dict[int, OwnedAsset] = {}
    for definition in catalog:
        entry = saved.get(definition.id)
        if entry is None:
            owned[definition.id] = OwnedAsset(
                id=definition.id, count=0, current_cost=definition.base_cost
            )
            continue

        if trust_saved_cost and entry.current_cost is not None:
            cost = entry.current_cost
        else:
            cost = definition.cost_at(entry.count)
        owned[definition.id] = OwnedAsset(id=definition.id, count=entry.count, current_cost=cost)

    return EconomyState(
        catalog,
        balance=snapshot.balance,
        lifetime_earnings=snapshot.lifetime_earnings,
        owned_assets=owned,
        **economy_kwargs,
    )


# ---------- Save stores ----------

class MemorySaveStore:
    """In-process save slot, used by tests and headless runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._slots: Dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self._slots.get(key)

    def write(self, key: str, payload: str) -> None:
        self._slots[key] = payload

    def delete(self, key: str) -> None:
        self._slots.pop(key, None)


class SqliteSaveStore:
    """
    Single-slot save table in a local SQLite file.

    A new connection is opened per call so writes can run on a worker thread.
    """

    def __init__(self, db_path: str = CONFIG.persistence.db_path):
        self.db_path = db_path
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS saves (
                    slot_key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def read(self, key: str) -> Optional[str]:
        conn = None
        try:
            conn = self._connect()
            row = conn.execute("SELECT payload FROM saves WHERE slot_key = ?", (key,)).fetchone()
            return row[0] if row else None
        except sqlite3.Error as e:
            logger.warning(f"Save slot {key!r} unreadable, starting fresh: {e}")
            return None
        finally:
            if conn:
                conn.close()

    def write(self, key: str, payload: str) -> None:
        conn = self._connect()
        try:
            conn.execute("""
                INSERT INTO saves (slot_key, payload, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(slot_key) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
            """, (key, payload))
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM saves WHERE slot_key = ?", (key,))
            conn.commit()
        finally:
            conn.close()


def load_economy(store, catalog: AssetCatalog, key: str = CONFIG.persistence.save_key,
                 trust_saved_cost: bool = not CONFIG.persistence.recompute_costs_on_load,
                 **economy_kwargs) -> EconomyState:
    """Read the save slot and reconcile it into a live economy."""
    snapshot = parse_snapshot(store.read(key))
    if snapshot is None:
        logger.info("No usable save found, starting from catalog defaults")
    return reconcile(snapshot, catalog, trust_saved_cost=trust_saved_cost, **economy_kwargs)


def save_economy(store, state: EconomyState, key: str = CONFIG.persistence.save_key) -> str:
    """Serialize and write the economy to the save slot; returns the written payload."""
    payload = serialize(state).to_json()
    store.write(key, payload)
    return payload
