"""Activity recorder: the trusted entry point for awarding points.

Used by the chain scanner and by any embedding HTTP layer. Business outcomes
(duplicate signature, unknown activity type) come back as a RecordResult
rather than an exception; only the strict variant raises them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import DuplicateActivityError, UnknownActivityTypeError
from .utils import short_wallet

if TYPE_CHECKING:
    from .config import LevelTierConfig
    from .database import ActivityRecord, LedgerDatabase
    from .level_resolver import LevelResolver, UserLevel


@dataclass
class RecordResult:
    success: bool
    points_earned: int = 0
    new_total: int = 0
    duplicate: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "success": self.success,
            "points_earned": self.points_earned,
            "new_total": self.new_total,
        }
        if self.error:
            data["error"] = self.error
        return data


class ActivityRecorder:
    """Applies classified events to the ledger and serves level queries."""

    def __init__(
        self,
        database: LedgerDatabase,
        resolver: LevelResolver,
        logger: logging.Logger,
    ) -> None:
        self._db = database
        self._resolver = resolver
        self._logger = logger

    # ══════════════════════════════════════════════════════════
    #  Writes
    # ══════════════════════════════════════════════════════════

    async def record_activity_strict(
        self,
        wallet_address: str,
        activity_type: str,
        signature: str | None = None,
        metadata: Any = None,
    ) -> ActivityRecord:
        """Record an activity, raising on duplicate or unknown type."""
        return await self._db.record_activity(wallet_address, activity_type, signature, metadata)

    async def record_activity(
        self,
        wallet_address: str,
        activity_type: str,
        signature: str | None = None,
        metadata: Any = None,
    ) -> RecordResult:
        """Record an activity and return a structured outcome."""
        try:
            record = await self.record_activity_strict(wallet_address, activity_type, signature, metadata)
        except DuplicateActivityError:
            self._logger.debug("Transaction %s already processed", signature)
            return RecordResult(
                success=False,
                new_total=await self._current_total(wallet_address),
                duplicate=True,
                error="duplicate transaction",
            )
        except UnknownActivityTypeError:
            self._logger.warning(
                "Rejected activity for %s: unknown type %s", short_wallet(wallet_address), activity_type,
            )
            return RecordResult(success=False, error=f"unknown activity type {activity_type}")
        except Exception:
            self._logger.exception("Failed to record %s for %s", activity_type, wallet_address)
            return RecordResult(success=False, error="storage failure")
        self._logger.info(
            "%s by %s (+%d pts, total %d)",
            activity_type, short_wallet(wallet_address), record.points_earned, record.new_total,
        )
        return RecordResult(
            success=True,
            points_earned=record.points_earned,
            new_total=record.new_total,
        )

    async def _current_total(self, wallet_address: str) -> int:
        try:
            user = await self._db.get_user(wallet_address)
        except Exception:
            self._logger.exception("Could not read total for %s", wallet_address)
            return 0
        return user["total_points"] if user else 0

    # ══════════════════════════════════════════════════════════
    #  Reads
    # ══════════════════════════════════════════════════════════

    async def get_user_level(self, wallet_address: str) -> UserLevel:
        """Return the wallet's level view, creating the user if unknown."""
        user = await self._db.get_or_create_user(wallet_address)
        return self._resolver.describe(
            user["wallet_address"], user["total_points"], user["current_level"],
        )

    async def get_user_activities(self, wallet_address: str, limit: int = 50) -> list[dict]:
        return await self._db.get_user_activities(wallet_address, limit)

    async def get_leaderboard(self, limit: int = 100) -> list[UserLevel]:
        rows = await self._db.get_leaderboard(limit)
        return [
            self._resolver.describe(r["wallet_address"], r["total_points"], r["current_level"])
            for r in rows
        ]

    def get_all_level_tiers(self) -> list[LevelTierConfig]:
        return self._resolver.tiers
