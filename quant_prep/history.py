from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class HistoryStoreError(RuntimeError):
    """Raised when a history backend cannot read or write entries."""


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """One finished session: when it ended and how many answers scored."""

    timestamp: str
    score: int

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "score": int(self.score)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryEntry":
        return cls(timestamp=str(data["timestamp"]), score=int(data["score"]))


class HistoryStore(Protocol):
    def append(self, username: str, entry: HistoryEntry) -> None: ...
    def read_all(self, username: str) -> list[HistoryEntry]: ...


def utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing ``Z`` and missing offset mean UTC."""

    parsed = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class InMemoryHistoryStore:
    """Process-local store; entries vanish with the instance."""

    def __init__(self) -> None:
        self._entries: dict[str, list[HistoryEntry]] = {}

    def append(self, username: str, entry: HistoryEntry) -> None:
        self._entries.setdefault(username, []).append(entry)

    def read_all(self, username: str) -> list[HistoryEntry]:
        return list(self._entries.get(username, []))


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS history_entry (
                id INTEGER PRIMARY KEY,
                username TEXT NOT NULL,
                timestamp_utc TEXT NOT NULL,
                score INTEGER NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_history_entry_username ON history_entry(username, id);")
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


class SqliteHistoryStore:
    """Local SQLite file holding every user's score history.

    A connection is opened per call so the store can be shared freely and
    never holds the file open between sessions.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, username: str, entry: HistoryEntry) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = open_db(self._path)
            try:
                with conn:
                    conn.execute(
                        "INSERT INTO history_entry(username, timestamp_utc, score) VALUES (?, ?, ?)",
                        (str(username), str(entry.timestamp), int(entry.score)),
                    )
            finally:
                conn.close()
        except (OSError, sqlite3.Error) as exc:
            raise HistoryStoreError(f"could not append history for {username!r}: {exc}") from exc
        logger.debug("Appended history entry for %s: %s", username, entry)

    def read_all(self, username: str) -> list[HistoryEntry]:
        if not self._path.exists():
            return []
        try:
            conn = open_db(self._path)
            try:
                rows = conn.execute(
                    "SELECT timestamp_utc, score FROM history_entry WHERE username = ? ORDER BY id",
                    (str(username),),
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise HistoryStoreError(f"could not read history for {username!r}: {exc}") from exc
        return [HistoryEntry(timestamp=str(ts), score=int(score)) for ts, score in rows]


def sorted_by_timestamp(entries: Iterable[HistoryEntry]) -> list[HistoryEntry]:
    # Stable sort: entries sharing a timestamp keep insertion order.
    return sorted(entries, key=lambda e: parse_timestamp(e.timestamp))


def score_series(entries: Iterable[HistoryEntry]) -> list[tuple[str, int]]:
    """(label, score) points for the history chart, oldest attempt first."""

    ordered = sorted_by_timestamp(entries)
    return [(f"Attempt #{i + 1}", e.score) for i, e in enumerate(ordered)]
