"""Configuration system for evo-levels.

All settings live in one YAML file validated into Pydantic models. Every
section has defaults so a config file only needs to name the program address
being monitored.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator


# ═══════════════════════════════════════════════════════════════
#  Storage & RPC
# ═══════════════════════════════════════════════════════════════

class DatabaseConfig(BaseModel):
    path: str = "level-system.db"


class RpcConfig(BaseModel):
    url: str = "https://api.devnet.solana.com"
    commitment: str = "confirmed"
    timeout_seconds: float = 30.0


# ═══════════════════════════════════════════════════════════════
#  Scanner
# ═══════════════════════════════════════════════════════════════

class ScannerConfig(BaseModel):
    enabled: bool = True
    program_id: str = ""
    cluster: str = "devnet"
    interval_minutes: float = Field(default=10, gt=0)
    signature_limit: int = Field(default=20, ge=1, le=1000)
    max_retries: int = Field(default=3, ge=1)
    backoff_base_ms: int = Field(default=1000, ge=0)
    transaction_delay_ms: int = Field(default=500, ge=0)
    program_definition_paths: list[str] = Field(
        default_factory=lambda: [
            "./idl/nft_evo_tickets.json",
            "../idl/nft_evo_tickets.json",
            "./target/idl/nft_evo_tickets.json",
            "../target/idl/nft_evo_tickets.json",
        ],
        description="Candidate IDL paths, first existing file wins",
    )


# ═══════════════════════════════════════════════════════════════
#  Points & Levels
# ═══════════════════════════════════════════════════════════════

class ActivityTypeConfig(BaseModel):
    name: str
    points: int = Field(ge=0)
    label: str = ""
    icon: str = "📌"


class LevelTierConfig(BaseModel):
    name: str
    glyph: str = ""
    min_points: int = Field(ge=0)
    max_points: int | None = None

    @property
    def label(self) -> str:
        """Display label stored as the user's cached level."""
        return f"{self.glyph} {self.name}".strip()


def _default_activity_types() -> list[ActivityTypeConfig]:
    return [
        ActivityTypeConfig(name="TICKET_MINTED", points=50, label="Ticket Minted", icon="🎫"),
        ActivityTypeConfig(name="TICKET_PURCHASED", points=30, label="Ticket Purchased", icon="🛒"),
        ActivityTypeConfig(name="TICKET_SCANNED", points=50, label="Event Attended", icon="✅"),
        ActivityTypeConfig(name="TICKET_COLLECTIBLE", points=75, label="Collectible Upgraded", icon="🏆"),
        ActivityTypeConfig(name="EVENT_CREATED", points=100, label="Event Created", icon="🎉"),
    ]


def _default_levels() -> list[LevelTierConfig]:
    return [
        LevelTierConfig(name="Seed Planter", glyph="🌱", min_points=0, max_points=499),
        LevelTierConfig(name="Root Grower", glyph="🌿", min_points=500, max_points=999),
        LevelTierConfig(name="Bloom Tender", glyph="🌸", min_points=1000, max_points=1999),
        LevelTierConfig(name="Forest Guardian", glyph="🌳", min_points=2000, max_points=4999),
        LevelTierConfig(name="Nature Sage", glyph="🍃", min_points=5000, max_points=None),
    ]


# ═══════════════════════════════════════════════════════════════
#  Metrics
# ═══════════════════════════════════════════════════════════════

class MetricsConfig(BaseModel):
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 28290
    health_path: str = "/health"
    metrics_path: str = "/metrics"


# ═══════════════════════════════════════════════════════════════
#  Top-Level Config
# ═══════════════════════════════════════════════════════════════

class LevelSystemConfig(BaseModel):
    """Full service config."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    rpc: RpcConfig = Field(default_factory=RpcConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    activity_types: list[ActivityTypeConfig] = Field(default_factory=_default_activity_types)
    levels: list[LevelTierConfig] = Field(default_factory=_default_levels)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="after")
    def _check_levels(self) -> LevelSystemConfig:
        levels = self.levels
        if not levels:
            raise ValueError("At least one level tier is required")
        if levels[0].min_points != 0:
            raise ValueError("The first level tier must start at 0 points")
        for lower, upper in zip(levels, levels[1:]):
            if upper.min_points <= lower.min_points:
                raise ValueError(
                    f"Level tiers must increase: {upper.name} starts at or below {lower.name}"
                )
            if lower.max_points is not None and lower.max_points != upper.min_points - 1:
                raise ValueError(f"Level tier {lower.name} is not contiguous with {upper.name}")
        if levels[-1].max_points is not None:
            raise ValueError("The last level tier must be unbounded (max_points: null)")

        names = [a.name for a in self.activity_types]
        if len(names) != len(set(names)):
            raise ValueError("Activity type names must be unique")
        return self


# ═══════════════════════════════════════════════════════════════
#  Config Loading
# ═══════════════════════════════════════════════════════════════

def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(obj, str):
        return re.sub(
            r"\$\{([^}:]+)(?::-(.*?))?\}",
            lambda m: os.environ.get(m.group(1), m.group(2) or ""),
            obj,
        )
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


def load_config(config_path: str) -> LevelSystemConfig:
    """Load and validate YAML config file into LevelSystemConfig."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("Config file must contain a YAML mapping at the top level.")

    raw = _expand_env_vars(raw)
    return LevelSystemConfig(**raw)
