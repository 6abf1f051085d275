"""Async Solana JSON-RPC client over aiohttp.

Only the two calls the scanner needs are implemented. Rate limiting is
surfaced as RateLimitError so callers can back off; every other failure is
an RpcError.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp

from .errors import RateLimitError, RpcError

if TYPE_CHECKING:
    from .config import RpcConfig

RATE_LIMIT_STATUS = 429


@dataclass
class SignatureInfo:
    signature: str
    err: Any = None
    slot: int | None = None
    block_time: int | None = None


@dataclass
class AccountKey:
    pubkey: str
    signer: bool = False


@dataclass
class TransactionInfo:
    signature: str
    err: Any = None
    log_messages: list[str] = field(default_factory=list)
    account_keys: list[AccountKey] = field(default_factory=list)


class SolanaRpcClient:
    """Async client for a Solana JSON-RPC endpoint."""

    def __init__(self, config: RpcConfig, logger: logging.Logger) -> None:
        self._config = config
        self._logger = logger
        self._session: aiohttp.ClientSession | None = None
        self._ids = itertools.count(1)

    async def start(self) -> None:
        """Create the HTTP session."""
        self._session = aiohttp.ClientSession(
            headers={"Content-Type": "application/json"},
            timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
        )

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def list_recent_signatures(self, address: str, limit: int) -> list[SignatureInfo]:
        """Return up to ``limit`` signatures for ``address``, newest first."""
        result = await self._request(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": self._config.commitment}],
        )
        return [self._parse_signature(item) for item in result or []]

    async def get_transaction(self, signature: str) -> TransactionInfo | None:
        """Fetch a parsed transaction, or None if the node does not have it."""
        result = await self._request(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self._config.commitment,
                },
            ],
        )
        if not result:
            return None
        return self._parse_transaction(signature, result)

    # ══════════════════════════════════════════════════════════
    #  Internal Helpers
    # ══════════════════════════════════════════════════════════

    async def _request(self, method: str, params: list[Any]) -> Any:
        if not self._session:
            raise RpcError("RPC client not started")

        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            async with self._session.post(self._config.url, json=payload) as resp:
                if resp.status == RATE_LIMIT_STATUS:
                    raise RateLimitError(f"{method}: rate limited (HTTP 429)", code=RATE_LIMIT_STATUS)
                if resp.status >= 400:
                    raise RpcError(f"{method}: HTTP {resp.status}", code=resp.status)
                data = await resp.json(content_type=None)
        except RpcError:
            raise
        except asyncio.TimeoutError as e:
            raise RpcError(f"{method}: request timed out") from e
        except (aiohttp.ClientError, ValueError) as e:
            raise RpcError(f"{method}: {e}") from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            code = error.get("code")
            message = error.get("message", "unknown error")
            if code == RATE_LIMIT_STATUS or "429" in str(message):
                raise RateLimitError(f"{method}: {message}", code=code)
            raise RpcError(f"{method}: {message}", code=code)
        if not isinstance(data, dict):
            raise RpcError(f"{method}: malformed response")
        return data.get("result")

    @staticmethod
    def _parse_signature(item: dict) -> SignatureInfo:
        return SignatureInfo(
            signature=item["signature"],
            err=item.get("err"),
            slot=item.get("slot"),
            block_time=item.get("blockTime"),
        )

    @staticmethod
    def _parse_transaction(signature: str, result: dict) -> TransactionInfo:
        meta = result.get("meta") or {}
        message = (result.get("transaction") or {}).get("message") or {}
        keys = []
        for key in message.get("accountKeys") or []:
            # jsonParsed yields dicts; legacy encodings yield bare strings
            if isinstance(key, dict):
                keys.append(AccountKey(pubkey=str(key.get("pubkey", "")), signer=bool(key.get("signer"))))
            else:
                keys.append(AccountKey(pubkey=str(key)))
        return TransactionInfo(
            signature=signature,
            err=meta.get("err"),
            log_messages=list(meta.get("logMessages") or []),
            account_keys=keys,
        )
