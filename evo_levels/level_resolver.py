"""Maps point totals to named level tiers.

Pure lookups over the configured tier list; no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import LevelTierConfig


@dataclass
class UserLevel:
    """Read view of a wallet's points and level."""

    wallet_address: str
    total_points: int
    current_level: str
    tier: LevelTierConfig
    next_tier: LevelTierConfig | None
    progress_to_next: float

    def to_dict(self) -> dict:
        return {
            "wallet_address": self.wallet_address,
            "total_points": self.total_points,
            "current_level": self.current_level,
            "current_level_data": self.tier.model_dump(),
            "next_level_data": self.next_tier.model_dump() if self.next_tier else None,
            "progress_to_next": self.progress_to_next,
        }


class LevelResolver:
    """Resolves point totals against an ordered list of level tiers."""

    def __init__(self, tiers: list[LevelTierConfig]) -> None:
        # Ascending by min_points
        self._tiers: list[LevelTierConfig] = sorted(tiers, key=lambda t: t.min_points)

    @property
    def tiers(self) -> list[LevelTierConfig]:
        return list(self._tiers)

    @property
    def lowest_tier(self) -> LevelTierConfig:
        return self._tiers[0]

    def resolve_tier(self, points: int) -> LevelTierConfig:
        """Return the highest tier whose ``min_points`` is reached.

        Negative totals fall back to the lowest tier.
        """
        for tier in reversed(self._tiers):
            if points >= tier.min_points:
                return tier
        return self._tiers[0]

    def next_tier(self, tier: LevelTierConfig) -> LevelTierConfig | None:
        """Get the tier immediately above ``tier``, or ``None`` at the top."""
        for i, candidate in enumerate(self._tiers):
            if candidate.name == tier.name:
                if i + 1 < len(self._tiers):
                    return self._tiers[i + 1]
                return None
        return None

    @staticmethod
    def progress(
        points: int,
        tier: LevelTierConfig,
        next_tier: LevelTierConfig | None,
    ) -> float:
        """Percent progress from ``tier`` toward ``next_tier`` (0-100)."""
        if next_tier is None:
            return 100.0
        span = next_tier.min_points - tier.min_points
        return min(100.0, (points - tier.min_points) / span * 100)

    def level_label(self, points: int) -> str:
        return self.resolve_tier(points).label

    def describe(self, wallet_address: str, total_points: int, current_level: str | None = None) -> UserLevel:
        """Build the read view for a wallet from its stored totals."""
        tier = self.resolve_tier(total_points)
        upcoming = self.next_tier(tier)
        return UserLevel(
            wallet_address=wallet_address,
            total_points=total_points,
            current_level=current_level or tier.label,
            tier=tier,
            next_tier=upcoming,
            progress_to_next=self.progress(total_points, tier, upcoming),
        )
