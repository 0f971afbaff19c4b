"""
Event Archive — append-only, hash-chained record of events trimmed from the live log.

The live event log is bounded; the archive keeps what the scheduler trims.

Behavioral Contract:
- Append-only. No row is ever modified or deleted.
- Each row is hashed and chained to the previous row (tamper-evident ledger).
- Queryable by kind, device, simulated time range and recency.
"""

import hashlib
import json
import sqlite3
from typing import Iterable, List, Optional

from loguru import logger

from habitat_kernel.models.archive import ArchivedEvent
from habitat_kernel.models.world import WorldEvent


def _sign(event: WorldEvent, tick: Optional[int], prior_hash: Optional[str]) -> str:
    payload = {
        "event": event.model_dump(mode="json"),
        "tick": tick,
        "prior_record_hash": prior_hash,
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()


class EventArchive:
    """
    SQLite-backed event archive. ":memory:" by default; pass a path to persist.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the events table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS events (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                tick INTEGER,
                at REAL NOT NULL,
                kind TEXT NOT NULL,
                room TEXT NOT NULL,
                device_id TEXT,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                event_json TEXT NOT NULL,
                archived_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_events_kind ON events(kind)")
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_events_device ON events(device_id)")
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_events_at ON events(at)")
        self._conn.commit()

    def _insert(self, event: WorldEvent, tick: Optional[int]) -> ArchivedEvent:
        prior_hash = self._get_latest_hash()
        signature = _sign(event, tick, prior_hash)
        cur = self._conn.execute(
            """
            INSERT INTO events (
                tick, at, kind, room, device_id, signature, prior_record_hash, event_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                tick,
                event.at,
                event.kind,
                event.room,
                event.device_id,
                signature,
                prior_hash,
                event.model_dump_json(),
            ),
        )
        return ArchivedEvent(
            seq=cur.lastrowid,
            tick=tick,
            event=event,
            signature=signature,
            prior_record_hash=prior_hash,
        )

    def append(self, event: WorldEvent, tick: Optional[int] = None) -> ArchivedEvent:
        """Append one event, chained to the previous row."""
        record = self._insert(event, tick)
        self._conn.commit()
        return record

    def append_many(self, events: Iterable[WorldEvent], tick: Optional[int] = None) -> int:
        """Append events in order within one transaction. Returns how many were stored."""
        stored = 0
        for event in events:
            self._insert(event, tick)
            stored += 1
        self._conn.commit()
        if stored:
            logger.debug(f"Archived {stored} events")
        return stored

    def _get_latest_hash(self) -> Optional[str]:
        """Get the signature of the most recent row."""
        row = self._conn.execute(
            "SELECT signature FROM events ORDER BY seq DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> ArchivedEvent:
        return ArchivedEvent(
            seq=row["seq"],
            tick=row["tick"],
            event=WorldEvent.model_validate_json(row["event_json"]),
            signature=row["signature"],
            prior_record_hash=row["prior_record_hash"],
        )

    def _select(self, where: str = "", params: tuple = ()) -> List[ArchivedEvent]:
        rows = self._conn.execute(
            "SELECT seq, tick, signature, prior_record_hash, event_json FROM events "
            f"{where} ORDER BY seq",
            params,
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_by_kind(self, kind: str) -> List[ArchivedEvent]:
        return self._select("WHERE kind = ?", (kind,))

    def query_by_device(self, device_id: str) -> List[ArchivedEvent]:
        return self._select("WHERE device_id = ?", (device_id,))

    def query_time_range(self, start: float, end: float) -> List[ArchivedEvent]:
        """Events with simulated time in [start, end]."""
        return self._select("WHERE at >= ? AND at <= ?", (start, end))

    def query_recent(self, limit: int = 50) -> List[ArchivedEvent]:
        """Get the most recent rows, oldest first."""
        rows = self._conn.execute(
            "SELECT seq, tick, signature, prior_record_hash, event_json FROM events "
            "ORDER BY seq DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._deserialize(r) for r in reversed(rows)]

    def verify_chain_integrity(self) -> bool:
        """Verify no row has been tampered with or removed from the middle."""
        rows = self._conn.execute(
            "SELECT tick, signature, prior_record_hash, event_json FROM events ORDER BY seq"
        ).fetchall()

        previous: Optional[str] = None
        for row in rows:
            if row["prior_record_hash"] != previous:
                return False
            event = WorldEvent.model_validate_json(row["event_json"])
            if _sign(event, row["tick"], previous) != row["signature"]:
                return False
            previous = row["signature"]
        return True

    def count(self) -> int:
        """Total number of archived events."""
        row = self._conn.execute("SELECT COUNT(*) AS cnt FROM events").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
