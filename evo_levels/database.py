"""SQLite ledger store for evo-levels.

Each public method is async and wraps a synchronous inner function via
``asyncio.run_in_executor(None, _sync)``. A new connection is created per call
(WAL mode, 30s busy timeout, Row factory).
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import DuplicateActivityError, UnknownActivityTypeError

if TYPE_CHECKING:
    from .config import ActivityTypeConfig
    from .level_resolver import LevelResolver


@dataclass
class ActivityRecord:
    """Outcome of a committed activity write."""

    activity_id: int
    points_earned: int
    new_total: int
    level: str


class LedgerDatabase:
    """SQLite-backed persistence for users, activities and the scan cursor."""

    def __init__(self, db_path: str, resolver: LevelResolver, logger: logging.Logger) -> None:
        self._db_path = db_path
        self._resolver = resolver
        self._logger = logger

    def _get_connection(self) -> sqlite3.Connection:
        """Create a new SQLite connection with standard settings."""
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row
        return conn

    # ══════════════════════════════════════════════════════════
    #  Initialization
    # ══════════════════════════════════════════════════════════

    async def initialize(self, activity_types: list[ActivityTypeConfig]) -> None:
        """Create all tables and seed the activity catalog. Idempotent."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._create_tables, activity_types)

    def _create_tables(self, activity_types: list[ActivityTypeConfig]) -> None:
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    wallet_address TEXT PRIMARY KEY,
                    total_points INTEGER NOT NULL DEFAULT 0 CHECK (total_points >= 0),
                    current_level TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS activity_types (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    points INTEGER NOT NULL,
                    label TEXT,
                    icon TEXT
                )
            """)

            # UNIQUE permits any number of NULL signatures (manual awards)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    wallet_address TEXT NOT NULL REFERENCES users(wallet_address),
                    activity_type_id INTEGER NOT NULL REFERENCES activity_types(id),
                    points_earned INTEGER NOT NULL,
                    transaction_signature TEXT UNIQUE,
                    metadata TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS scanner_state (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    last_scanned_signature TEXT,
                    last_scan_time TIMESTAMP,
                    scan_count INTEGER NOT NULL DEFAULT 0
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_activities_wallet "
                "ON activities(wallet_address, created_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_users_points "
                "ON users(total_points)"
            )

            conn.execute("INSERT OR IGNORE INTO scanner_state (id, scan_count) VALUES (1, 0)")

            # Existing catalog rows are never rewritten
            for activity_type in activity_types:
                conn.execute(
                    "INSERT OR IGNORE INTO activity_types (name, points, label, icon) VALUES (?, ?, ?, ?)",
                    (activity_type.name, activity_type.points, activity_type.label, activity_type.icon),
                )

            conn.commit()
            self._logger.info("Database tables created/verified")
        finally:
            conn.close()

    # ══════════════════════════════════════════════════════════
    #  Users
    # ══════════════════════════════════════════════════════════

    def _ensure_user(self, conn: sqlite3.Connection, wallet_address: str) -> None:
        conn.execute(
            "INSERT OR IGNORE INTO users (wallet_address, total_points, current_level) VALUES (?, 0, ?)",
            (wallet_address, self._resolver.lowest_tier.label),
        )

    async def get_or_create_user(self, wallet_address: str) -> dict:
        """Return user row as dict. Creates with zero points if not exists."""
        loop = asyncio.get_running_loop()

        def _sync() -> dict:
            conn = self._get_connection()
            try:
                self._ensure_user(conn, wallet_address)
                conn.commit()
                row = conn.execute(
                    "SELECT * FROM users WHERE wallet_address = ?",
                    (wallet_address,),
                ).fetchone()
                return dict(row) if row else {}
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def get_user(self, wallet_address: str) -> dict | None:
        """Return user row as dict, or None if not exists."""
        loop = asyncio.get_running_loop()

        def _sync() -> dict | None:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT * FROM users WHERE wallet_address = ?",
                    (wallet_address,),
                ).fetchone()
                return dict(row) if row else None
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Activities
    # ══════════════════════════════════════════════════════════

    async def record_activity(
        self,
        wallet_address: str,
        activity_type: str,
        signature: str | None = None,
        metadata: Any = None,
    ) -> ActivityRecord:
        """Atomically log an activity and credit its points.

        Raises UnknownActivityTypeError if the type is not in the catalog and
        DuplicateActivityError if a non-empty signature was already recorded.
        Either every write commits or none does.
        """
        loop = asyncio.get_running_loop()
        # Blank means no signature; anything else is stored exactly as given
        if signature is not None and not signature.strip():
            signature = None
        metadata_json = json.dumps(metadata) if metadata is not None else None

        def _sync() -> ActivityRecord:
            conn = self._get_connection()
            try:
                # Take the write lock up front so check-then-insert is serialized
                conn.execute("BEGIN IMMEDIATE")
                try:
                    type_row = conn.execute(
                        "SELECT id, points FROM activity_types WHERE name = ?",
                        (activity_type,),
                    ).fetchone()
                    if type_row is None:
                        raise UnknownActivityTypeError(activity_type)

                    if signature is not None:
                        existing = conn.execute(
                            "SELECT id FROM activities WHERE transaction_signature = ?",
                            (signature,),
                        ).fetchone()
                        if existing is not None:
                            raise DuplicateActivityError(signature)

                    self._ensure_user(conn, wallet_address)

                    points = type_row["points"]
                    try:
                        cursor = conn.execute(
                            "INSERT INTO activities (wallet_address, activity_type_id, points_earned, "
                            "transaction_signature, metadata) VALUES (?, ?, ?, ?, ?)",
                            (wallet_address, type_row["id"], points, signature, metadata_json),
                        )
                    except sqlite3.IntegrityError as exc:
                        if signature is not None and "transaction_signature" in str(exc):
                            raise DuplicateActivityError(signature) from exc
                        raise

                    conn.execute(
                        "UPDATE users SET total_points = total_points + ?, updated_at = CURRENT_TIMESTAMP "
                        "WHERE wallet_address = ?",
                        (points, wallet_address),
                    )
                    new_total = conn.execute(
                        "SELECT total_points FROM users WHERE wallet_address = ?",
                        (wallet_address,),
                    ).fetchone()["total_points"]

                    level = self._resolver.level_label(new_total)
                    conn.execute(
                        "UPDATE users SET current_level = ? WHERE wallet_address = ?",
                        (level, wallet_address),
                    )
                    conn.commit()
                except BaseException:
                    conn.rollback()
                    raise
                return ActivityRecord(
                    activity_id=cursor.lastrowid,
                    points_earned=points,
                    new_total=new_total,
                    level=level,
                )
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def get_user_activities(self, wallet_address: str, limit: int = 50) -> list[dict]:
        """Return a wallet's activities, newest first."""
        loop = asyncio.get_running_loop()

        def _sync() -> list[dict]:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT a.id, a.wallet_address, t.name AS activity_type, a.points_earned, "
                    "a.transaction_signature, a.metadata, a.created_at "
                    "FROM activities a JOIN activity_types t ON a.activity_type_id = t.id "
                    "WHERE a.wallet_address = ? "
                    "ORDER BY a.created_at DESC, a.id DESC LIMIT ?",
                    (wallet_address, limit),
                ).fetchall()
                activities = []
                for row in rows:
                    item = dict(row)
                    item["metadata"] = json.loads(item["metadata"]) if item["metadata"] else None
                    activities.append(item)
                return activities
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def get_leaderboard(self, limit: int = 100) -> list[dict]:
        """Return users ordered by total points, highest first."""
        loop = asyncio.get_running_loop()

        def _sync() -> list[dict]:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT * FROM users ORDER BY total_points DESC, wallet_address ASC LIMIT ?",
                    (limit,),
                ).fetchall()
                return [dict(r) for r in rows]
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def get_activity_types(self) -> list[dict]:
        """Return the activity catalog."""
        loop = asyncio.get_running_loop()

        def _sync() -> list[dict]:
            conn = self._get_connection()
            try:
                rows = conn.execute("SELECT * FROM activity_types ORDER BY id").fetchall()
                return [dict(r) for r in rows]
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Scan Cursor
    # ══════════════════════════════════════════════════════════

    async def get_last_scan_cursor(self) -> str | None:
        """Return the last fully scanned signature, or None."""
        loop = asyncio.get_running_loop()

        def _sync() -> str | None:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT last_scanned_signature FROM scanner_state WHERE id = 1"
                ).fetchone()
                return row["last_scanned_signature"] if row else None
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def advance_scan_cursor(self, signature: str) -> None:
        """Move the cursor to ``signature`` and bump scan bookkeeping."""
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    "UPDATE scanner_state SET last_scanned_signature = ?, "
                    "last_scan_time = CURRENT_TIMESTAMP, scan_count = scan_count + 1 "
                    "WHERE id = 1",
                    (signature,),
                )
                conn.commit()
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def get_scanner_state(self) -> dict:
        """Return the scanner_state singleton row."""
        loop = asyncio.get_running_loop()

        def _sync() -> dict:
            conn = self._get_connection()
            try:
                row = conn.execute("SELECT * FROM scanner_state WHERE id = 1").fetchone()
                return dict(row) if row else {}
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Aggregates
    # ══════════════════════════════════════════════════════════

    async def get_user_count(self) -> int:
        """COUNT of users."""
        loop = asyncio.get_running_loop()

        def _sync() -> int:
            conn = self._get_connection()
            try:
                row = conn.execute("SELECT COUNT(*) AS cnt FROM users").fetchone()
                return row["cnt"]
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def get_total_points(self) -> int:
        """SUM(total_points) across all users."""
        loop = asyncio.get_running_loop()

        def _sync() -> int:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT COALESCE(SUM(total_points), 0) AS total FROM users"
                ).fetchone()
                return row["total"]
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)
