"""Chain scanner: incremental resync of program transactions into the ledger.

One scan cycle lists the newest signatures for the monitored program, works
out which are unseen relative to the stored cursor, classifies them oldest
first and records points. Re-processing a signature is harmless because the
ledger rejects duplicate signatures.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

from .errors import DuplicateActivityError, RateLimitError
from .utils import short_wallet

if TYPE_CHECKING:
    from .activity_recorder import ActivityRecorder
    from .classifier import TransactionClassifier
    from .config import ScannerConfig
    from .database import LedgerDatabase
    from .rpc_client import SignatureInfo, SolanaRpcClient


@dataclass
class ScanResult:
    status: str
    fetched: int = 0
    processed: int = 0
    recorded: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0
    cursor: str | None = None


class ChainScanner:
    """Polls the program address and feeds classified events to the recorder."""

    def __init__(
        self,
        config: ScannerConfig,
        rpc: SolanaRpcClient,
        classifier: TransactionClassifier | None,
        recorder: ActivityRecorder,
        database: LedgerDatabase,
        logger: logging.Logger,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._rpc = rpc
        self._classifier = classifier
        self._recorder = recorder
        self._db = database
        self._logger = logger
        self._sleep = sleep

        # Counters (for metrics)
        self.cycles_total: int = 0
        self.cycles_failed_total: int = 0
        self.activities_recorded_total: int = 0
        self.duplicates_total: int = 0
        self.transactions_failed_total: int = 0
        self.last_result: ScanResult | None = None

        if classifier is None:
            self._logger.warning(
                "Program definition not loaded; chain scanner will run as a no-op"
            )

    @property
    def enabled(self) -> bool:
        return self._classifier is not None

    async def run_scan_cycle(self) -> ScanResult:
        """Run one scan cycle. Never raises; the outcome is in ScanResult.status."""
        if self._classifier is None:
            result = ScanResult(status="disabled")
            self.last_result = result
            return result

        self.cycles_total += 1
        self._logger.info("[Scanner] Starting scan...")
        try:
            result = await self._scan()
        except Exception:
            self.cycles_failed_total += 1
            self._logger.exception("[Scanner] Scan aborted; cursor left unchanged")
            result = ScanResult(status="failed")
        self.last_result = result
        return result

    # ══════════════════════════════════════════════════════════
    #  Cycle Steps
    # ══════════════════════════════════════════════════════════

    async def _scan(self) -> ScanResult:
        signatures = await self._list_signatures_with_retry()
        if not signatures:
            self._logger.info("[Scanner] No transactions found")
            return ScanResult(status="empty")

        newest = signatures[0].signature
        last_scanned = await self._db.get_last_scan_cursor()
        unseen = self._select_unseen(signatures, last_scanned)
        if unseen is None:
            self._logger.info("[Scanner] No new transactions since last scan")
            return ScanResult(status="up_to_date", fetched=len(signatures), cursor=last_scanned)

        result = ScanResult(status="completed", fetched=len(signatures))
        self._logger.info("[Scanner] Found %d new transactions to process", len(unseen))

        # Oldest first so points accrue in chain order
        ordered = list(reversed(unseen))
        for i, sig_info in enumerate(ordered):
            await self._process_signature(sig_info, result)
            if i < len(ordered) - 1 and self._config.transaction_delay_ms > 0:
                await self._sleep(self._config.transaction_delay_ms / 1000)

        await self._db.advance_scan_cursor(newest)
        result.cursor = newest
        self._logger.info(
            "[Scanner] Scan completed: %d recorded, %d duplicate, %d skipped, %d failed",
            result.recorded, result.duplicates, result.skipped, result.failed,
        )
        return result

    async def _list_signatures_with_retry(self) -> list[SignatureInfo]:
        """List recent signatures, backing off exponentially on rate limits."""
        max_retries = self._config.max_retries
        attempt = 0
        while True:
            try:
                return await self._rpc.list_recent_signatures(
                    self._config.program_id, self._config.signature_limit,
                )
            except RateLimitError:
                attempt += 1
                if attempt >= max_retries:
                    raise
                delay_ms = self._config.backoff_base_ms * (2 ** attempt)
                self._logger.warning(
                    "[Scanner] Rate limited, retrying in %dms... (attempt %d/%d)",
                    delay_ms, attempt, max_retries,
                )
                await self._sleep(delay_ms / 1000)

    def _select_unseen(
        self, signatures: list[SignatureInfo], last_scanned: str | None,
    ) -> list[SignatureInfo] | None:
        """Return the unseen prefix of ``signatures``, or None if up to date."""
        if last_scanned is None:
            self._logger.info("[Scanner] First scan - processing all recent transactions")
            return signatures

        index = next(
            (i for i, s in enumerate(signatures) if s.signature == last_scanned), -1,
        )
        if index == 0:
            return None
        if index > 0:
            self._logger.info(
                "[Scanner] Found last scanned at index %d, processing %d new transactions",
                index, index,
            )
            return signatures[:index]

        # Gap wider than the fetch window: anything between is not visible
        self._logger.warning(
            "[Scanner] Last scanned signature %s not in the latest %d; processing all of them",
            last_scanned, len(signatures),
        )
        return signatures

    async def _process_signature(self, sig_info: SignatureInfo, result: ScanResult) -> None:
        signature = sig_info.signature
        result.processed += 1
        if sig_info.err is not None:
            result.skipped += 1
            return

        try:
            tx = await self._rpc.get_transaction(signature)
            if tx is None:
                self._logger.debug("[Scanner] Transaction %s not available, skipping", signature)
                result.skipped += 1
                return

            classification = self._classifier.classify(tx)
            if classification is None:
                result.skipped += 1
                return

            record = await self._recorder.record_activity_strict(
                classification.actor,
                classification.event_kind,
                signature,
                {"event": classification.event_kind.lower()},
            )
            result.recorded += 1
            self.activities_recorded_total += 1
            self._logger.info(
                "[Scanner] %s by %s (+%d pts)",
                classification.event_kind, short_wallet(classification.actor), record.points_earned,
            )
        except DuplicateActivityError:
            result.duplicates += 1
            self.duplicates_total += 1
        except Exception:
            result.failed += 1
            self.transactions_failed_total += 1
            self._logger.exception("[Scanner] Error processing transaction %s", signature)
