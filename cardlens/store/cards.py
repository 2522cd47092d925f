"""SQLite card store: owner-partitioned records with conditional writes."""

import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional, Union

from ..core.constants import RUN_CLAIM_TTL_S
from ..core.types import AuthenticitySignals, Card, CardUpdate, ValuationSummary
from ..utils.error_handler import ConcurrencyConflict, NotFoundError, PersistenceError
from ..utils.log import get_logger


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


_UPDATE_COLUMNS = (
    "name", "set_name", "number", "rarity", "id_confidence",
    "value_low", "value_median", "value_high", "comps_count", "sources_json",
    "pricing_message", "pricing_confidence", "valuation_json",
    "authenticity_score", "authenticity_signals_json", "fake_detected",
)


def _update_values(update: CardUpdate) -> tuple:
    return (
        update.name,
        update.set_name,
        update.number,
        update.rarity,
        update.id_confidence,
        update.value_low,
        update.value_median,
        update.value_high,
        update.comps_count,
        json.dumps(update.sources),
        update.pricing_message,
        update.pricing_confidence,
        json.dumps(update.valuation.to_dict()) if update.valuation else None,
        update.authenticity_score,
        json.dumps(update.authenticity_signals.to_dict()),
        int(update.fake_detected),
    )


class CardStore:
    """Persists cards keyed by (owner_id, card_id)."""

    def __init__(
        self,
        db_path: Union[str, Path],
        claim_ttl_s: float = RUN_CLAIM_TTL_S,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.logger = get_logger(__name__)
        self.db_path = Path(db_path)
        self.claim_ttl_s = claim_ttl_s
        self.now = now
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_database(self):
        """Initialize SQLite database with required tables."""
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS cards (
                        owner_id TEXT NOT NULL,
                        card_id TEXT NOT NULL,
                        front_image_ref TEXT,
                        back_image_ref TEXT,
                        name TEXT,
                        set_name TEXT,
                        number TEXT,
                        rarity TEXT,
                        id_confidence REAL,
                        value_low REAL,
                        value_median REAL,
                        value_high REAL,
                        comps_count INTEGER,
                        sources_json TEXT,
                        pricing_message TEXT,
                        pricing_confidence REAL,
                        valuation_json TEXT,
                        authenticity_score REAL,
                        authenticity_signals_json TEXT,
                        fake_detected INTEGER,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        deleted_at TEXT,
                        PRIMARY KEY(owner_id, card_id)
                    )
                """
                )

                # One active run per card across processes
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS run_claims (
                        card_id TEXT PRIMARY KEY,
                        run_id TEXT NOT NULL,
                        owner_id TEXT NOT NULL,
                        claimed_at TEXT NOT NULL
                    )
                """
                )
                conn.commit()
                self.logger.info("Card store initialized", db_path=str(self.db_path))

        except sqlite3.Error as e:
            self.logger.error("Error initializing card store", error=str(e))
            raise PersistenceError("Could not initialize card store", details={"db_path": str(self.db_path)}) from e

    @staticmethod
    def _row_to_card(row: sqlite3.Row) -> Card:
        signals = row["authenticity_signals_json"]
        fake = row["fake_detected"]
        valuation = row["valuation_json"]
        return Card(
            owner_id=row["owner_id"],
            card_id=row["card_id"],
            front_image_ref=row["front_image_ref"],
            back_image_ref=row["back_image_ref"],
            name=row["name"],
            set_name=row["set_name"],
            number=row["number"],
            rarity=row["rarity"],
            id_confidence=row["id_confidence"],
            value_low=row["value_low"],
            value_median=row["value_median"],
            value_high=row["value_high"],
            comps_count=row["comps_count"],
            sources=json.loads(row["sources_json"]) if row["sources_json"] else [],
            pricing_message=row["pricing_message"],
            pricing_confidence=row["pricing_confidence"],
            valuation=ValuationSummary.from_dict(json.loads(valuation)) if valuation else None,
            authenticity_score=row["authenticity_score"],
            authenticity_signals=AuthenticitySignals(**json.loads(signals)) if signals else None,
            fake_detected=bool(fake) if fake is not None else None,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )

    def create_card(self, owner_id: str, card_id: str, front_image_ref: str,
                    back_image_ref: Optional[str] = None) -> Card:
        """Insert a new card; an existing (owner_id, card_id) is a conflict."""
        now = _now_iso()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO cards (owner_id, card_id, front_image_ref, back_image_ref,
                                       sources_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?, '[]', ?, ?)
                """,
                    (owner_id, card_id, front_image_ref, back_image_ref, now, now),
                )
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise ConcurrencyConflict(
                "Card already exists", details={"owner_id": owner_id, "card_id": card_id}
            ) from e
        except sqlite3.Error as e:
            raise PersistenceError("Error creating card", details={"card_id": card_id, "error": str(e)}) from e

        self.logger.debug("Card created", owner_id=owner_id, card_id=card_id)
        return self.get_card(owner_id, card_id)

    def get_card(self, owner_id: str, card_id: str, include_deleted: bool = False) -> Card:
        """Point read scoped to the owner; missing or soft-deleted cards raise NotFoundError."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM cards WHERE owner_id = ? AND card_id = ?",
                    (owner_id, card_id),
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError("Error reading card", details={"card_id": card_id, "error": str(e)}) from e

        if row is None or (row["deleted_at"] is not None and not include_deleted):
            raise NotFoundError("Card not found", details={"owner_id": owner_id, "card_id": card_id})
        return self._row_to_card(row)

    def list_cards(self, owner_id: str, limit: int = 50) -> List[Card]:
        """Owner's live cards, newest first."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM cards
                    WHERE owner_id = ? AND deleted_at IS NULL
                    ORDER BY created_at DESC
                    LIMIT ?
                """,
                    (owner_id, limit),
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError("Error listing cards", details={"owner_id": owner_id, "error": str(e)}) from e

        return [self._row_to_card(row) for row in rows]

    def upsert_results(self, owner_id: str, card_id: str, update: CardUpdate) -> Card:
        """
        Write analysis results in one statement without reading first.

        Creates the record when absent and always re-asserts the key columns.
        """
        now = _now_iso()
        columns = ("owner_id", "card_id", "front_image_ref", "back_image_ref") + _UPDATE_COLUMNS
        placeholders = ", ".join("?" for _ in columns)
        assignments = ", ".join(f"{col} = excluded.{col}" for col in _UPDATE_COLUMNS)
        sql = f"""
            INSERT INTO cards ({", ".join(columns)}, created_at, updated_at)
            VALUES ({placeholders}, ?, ?)
            ON CONFLICT(owner_id, card_id) DO UPDATE SET
                {assignments},
                front_image_ref = COALESCE(excluded.front_image_ref, cards.front_image_ref),
                back_image_ref = COALESCE(excluded.back_image_ref, cards.back_image_ref),
                updated_at = excluded.updated_at
        """
        values = (owner_id, card_id, update.front_image_ref, update.back_image_ref) \
            + _update_values(update) + (now, now)

        try:
            with self._connect() as conn:
                conn.execute(sql, values)
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError("Error upserting card results", details={"card_id": card_id, "error": str(e)}) from e

        self.logger.debug("Card results upserted", owner_id=owner_id, card_id=card_id)
        return self.get_card(owner_id, card_id, include_deleted=True)

    def update_results(self, owner_id: str, card_id: str, update: CardUpdate) -> Card:
        """
        Write analysis results to an existing live card.

        Raises:
            NotFoundError: If the card is missing, deleted or not owned by owner_id
            ConcurrencyConflict: If the card was deleted between read and write
        """
        self.get_card(owner_id, card_id)

        assignments = ", ".join(f"{col} = ?" for col in _UPDATE_COLUMNS)
        try:
            with self._connect() as conn:
                result = conn.execute(
                    f"""
                    UPDATE cards SET {assignments}, updated_at = ?
                    WHERE owner_id = ? AND card_id = ? AND deleted_at IS NULL
                """,
                    _update_values(update) + (_now_iso(), owner_id, card_id),
                )
                if result.rowcount == 0:
                    raise ConcurrencyConflict(
                        "Card was deleted while results were being written",
                        details={"owner_id": owner_id, "card_id": card_id},
                    )
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError("Error updating card results", details={"card_id": card_id, "error": str(e)}) from e

        self.logger.debug("Card results updated", owner_id=owner_id, card_id=card_id)
        return self.get_card(owner_id, card_id)

    def soft_delete(self, owner_id: str, card_id: str) -> None:
        now = _now_iso()
        try:
            with self._connect() as conn:
                result = conn.execute(
                    """
                    UPDATE cards SET deleted_at = ?, updated_at = ?
                    WHERE owner_id = ? AND card_id = ? AND deleted_at IS NULL
                """,
                    (now, now, owner_id, card_id),
                )
                if result.rowcount == 0:
                    raise NotFoundError("Card not found", details={"owner_id": owner_id, "card_id": card_id})
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError("Error deleting card", details={"card_id": card_id, "error": str(e)}) from e

        self.logger.info("Card soft-deleted", owner_id=owner_id, card_id=card_id)

    def hard_delete(self, owner_id: str, card_id: str) -> Optional[Card]:
        """Remove the record entirely; returns what was removed, if anything."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM cards WHERE owner_id = ? AND card_id = ?",
                    (owner_id, card_id),
                ).fetchone()
                conn.execute(
                    "DELETE FROM cards WHERE owner_id = ? AND card_id = ?",
                    (owner_id, card_id),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError("Error hard-deleting card", details={"card_id": card_id, "error": str(e)}) from e

        self.logger.info("Card hard-deleted", owner_id=owner_id, card_id=card_id, existed=row is not None)
        return self._row_to_card(row) if row is not None else None

    def claim_run(self, card_id: str, run_id: str, owner_id: str) -> bool:
        """
        Record an active run for a card; False when another live run holds the claim.

        Claims older than ``claim_ttl_s`` belong to runs that never released
        them and are taken over.
        """
        now = self.now()
        stale_before = (now - timedelta(seconds=self.claim_ttl_s)).isoformat(timespec="microseconds")
        try:
            with self._connect() as conn:
                result = conn.execute(
                    """
                    INSERT INTO run_claims (card_id, run_id, owner_id, claimed_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(card_id) DO UPDATE SET
                        run_id = excluded.run_id,
                        owner_id = excluded.owner_id,
                        claimed_at = excluded.claimed_at
                    WHERE run_claims.claimed_at < ?
                """,
                    (card_id, run_id, owner_id, now.isoformat(timespec="microseconds"), stale_before),
                )
                conn.commit()
                claimed = result.rowcount == 1
        except sqlite3.Error as e:
            raise PersistenceError("Error claiming run", details={"card_id": card_id, "error": str(e)}) from e

        self.logger.debug("Run claim", card_id=card_id, run_id=run_id, claimed=claimed)
        return claimed

    def release_run(self, card_id: str, run_id: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "DELETE FROM run_claims WHERE card_id = ? AND run_id = ?",
                    (card_id, run_id),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError("Error releasing run", details={"card_id": card_id, "error": str(e)}) from e
