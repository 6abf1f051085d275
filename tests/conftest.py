"""Shared test fixtures for evo-levels."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from evo_levels.activity_recorder import ActivityRecorder
from evo_levels.classifier import LogMarkerClassifier
from evo_levels.config import LevelSystemConfig
from evo_levels.database import LedgerDatabase
from evo_levels.level_resolver import LevelResolver
from evo_levels.rpc_client import AccountKey, SignatureInfo, TransactionInfo
from evo_levels.scanner import ChainScanner

PROGRAM_ID = "EvoProgram11111111111111111111111111111111"
WALLET_A = "WaLLetA1111111111111111111111111111111111"
WALLET_B = "WaLLetB2222222222222222222222222222222222"


# ── Minimal config dict matching LevelSystemConfig schema ────

def make_config_dict(**overrides) -> dict:
    """Build a valid config dict with sensible test defaults."""
    base = {
        "database": {"path": ":memory:"},
        "rpc": {"url": "http://rpc.test", "commitment": "confirmed", "timeout_seconds": 5},
        "scanner": {
            "enabled": True,
            "program_id": PROGRAM_ID,
            "interval_minutes": 10,
            "signature_limit": 20,
            "max_retries": 3,
            "backoff_base_ms": 1000,
            "transaction_delay_ms": 500,
            "program_definition_paths": [],
        },
        "activity_types": [
            {"name": "TICKET_MINTED", "points": 50, "label": "Ticket Minted", "icon": "🎫"},
            {"name": "TICKET_PURCHASED", "points": 30, "label": "Ticket Purchased", "icon": "🛒"},
            {"name": "TICKET_SCANNED", "points": 50, "label": "Event Attended", "icon": "✅"},
            {"name": "TICKET_COLLECTIBLE", "points": 75, "label": "Collectible Upgraded", "icon": "🏆"},
            {"name": "EVENT_CREATED", "points": 100, "label": "Event Created", "icon": "🎉"},
        ],
        "levels": [
            {"name": "Seed Planter", "glyph": "🌱", "min_points": 0, "max_points": 499},
            {"name": "Root Grower", "glyph": "🌿", "min_points": 500, "max_points": 999},
            {"name": "Bloom Tender", "glyph": "🌸", "min_points": 1000, "max_points": 1999},
            {"name": "Forest Guardian", "glyph": "🌳", "min_points": 2000, "max_points": 4999},
            {"name": "Nature Sage", "glyph": "🍃", "min_points": 5000, "max_points": None},
        ],
        "metrics": {"enabled": False, "port": 28290},
    }
    base.update(overrides)
    return base


def make_signatures(count: int, prefix: str = "sig") -> list[SignatureInfo]:
    """Newest-first signature list: sig0 is the most recent."""
    return [SignatureInfo(signature=f"{prefix}{i}") for i in range(count)]


def make_tx(
    signature: str,
    instruction: str | None = "MintTicket",
    signer: str | None = WALLET_A,
    err: Any = None,
    extra_logs: list[str] | None = None,
) -> TransactionInfo:
    """Build a TransactionInfo the way the RPC client would parse it."""
    logs = [f"Program {PROGRAM_ID} invoke [1]"]
    if instruction:
        logs.append(f"Program log: Instruction: {instruction}")
    logs.extend(extra_logs or [])
    logs.append(f"Program {PROGRAM_ID} success")
    keys = []
    if signer:
        keys.append(AccountKey(pubkey=signer, signer=True))
    keys.append(AccountKey(pubkey="SysvarRent111111111111111111111111111111111", signer=False))
    return TransactionInfo(signature=signature, err=err, log_messages=logs, account_keys=keys)


class FakeRpc:
    """In-memory stand-in for SolanaRpcClient.

    ``signatures`` is newest first; ``transactions`` maps signature → tx.
    """

    def __init__(self) -> None:
        self.signatures: list[SignatureInfo] = []
        self.transactions: dict[str, TransactionInfo] = {}
        self.fetched: list[str] = []
        self.list_calls: int = 0
        self.list_errors: list[Exception] = []
        self.tx_errors: dict[str, Exception] = {}

    async def list_recent_signatures(self, address: str, limit: int) -> list[SignatureInfo]:
        self.list_calls += 1
        if self.list_errors:
            raise self.list_errors.pop(0)
        return self.signatures[:limit]

    async def get_transaction(self, signature: str) -> TransactionInfo | None:
        self.fetched.append(signature)
        if signature in self.tx_errors:
            raise self.tx_errors[signature]
        return self.transactions.get(signature)

    def push(self, tx: TransactionInfo) -> None:
        """Append a new transaction as the most recent on chain."""
        self.signatures.insert(0, SignatureInfo(signature=tx.signature, err=tx.err))
        self.transactions[tx.signature] = tx


@pytest.fixture
def sample_config_dict() -> dict:
    """Return a config dict suitable for tests."""
    return make_config_dict()


@pytest.fixture
def sample_config(sample_config_dict: dict) -> LevelSystemConfig:
    """Return a parsed LevelSystemConfig."""
    return LevelSystemConfig(**sample_config_dict)


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> str:
    """Return a temporary SQLite database path."""
    return str(tmp_path / "test_levels.db")


@pytest.fixture
def resolver(sample_config: LevelSystemConfig) -> LevelResolver:
    return LevelResolver(sample_config.levels)


@pytest_asyncio.fixture
async def database(
    tmp_db_path: str,
    resolver: LevelResolver,
    sample_config: LevelSystemConfig,
) -> AsyncGenerator[LedgerDatabase, None]:
    """Provide an initialized database with temp file."""
    db = LedgerDatabase(tmp_db_path, resolver, logging.getLogger("test"))
    await db.initialize(sample_config.activity_types)
    yield db


@pytest.fixture
def recorder(database: LedgerDatabase, resolver: LevelResolver) -> ActivityRecorder:
    return ActivityRecorder(database, resolver, logging.getLogger("test"))


@pytest.fixture
def fake_rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Replacement for asyncio.sleep that records requested delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def scanner(
    sample_config: LevelSystemConfig,
    fake_rpc: FakeRpc,
    recorder: ActivityRecorder,
    database: LedgerDatabase,
    no_sleep: AsyncMock,
) -> ChainScanner:
    """ChainScanner wired to the fake RPC and a real ledger."""
    return ChainScanner(
        config=sample_config.scanner,
        rpc=fake_rpc,
        classifier=LogMarkerClassifier(),
        recorder=recorder,
        database=database,
        logger=logging.getLogger("test"),
        sleep=no_sleep,
    )
