"""Service orchestrator for evo-levels.

config → DB init → domain components → RPC → classifier → scanner →
scheduler → metrics → run until stopped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from . import __version__
from .activity_recorder import ActivityRecorder
from .classifier import LogMarkerClassifier, TransactionClassifier, load_program_definition
from .config import LevelSystemConfig, load_config
from .database import LedgerDatabase
from .level_resolver import LevelResolver
from .metrics_server import LevelMetricsServer
from .rpc_client import SolanaRpcClient
from .scanner import ChainScanner
from .scheduler import ScanScheduler


class LevelSystemApp:
    """Top-level application orchestrator.

    Builds one ledger store and passes it explicitly to every component that
    needs it.
    """

    def __init__(self, config_path: str) -> None:
        self.config_path = Path(config_path)
        self.logger = logging.getLogger("levels")

        # Components (initialized in start())
        self.config: LevelSystemConfig | None = None
        self.resolver: LevelResolver | None = None
        self.db: LedgerDatabase | None = None
        self.recorder: ActivityRecorder | None = None
        self.rpc: SolanaRpcClient | None = None
        self.scanner: ChainScanner | None = None
        self.scheduler: ScanScheduler | None = None
        self.metrics_server: LevelMetricsServer | None = None

        # State
        self._running = False
        self._start_time: float | None = None
        self._stop_event = asyncio.Event()

    @property
    def uptime_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time

    async def start(self) -> None:
        """Start the level service and block until stop() is called.

        If a startup step fails, the components already started are shut
        down before the error propagates.
        """
        self.logger.info("Starting evo-levels...")
        self._start_time = time.time()

        try:
            await self._start_components()
        except BaseException:
            await self.stop()
            raise

        self._running = True
        self.logger.info("evo-levels started successfully (v%s)", __version__)

        await self._stop_event.wait()

    def request_stop(self) -> None:
        """Wake start() so the caller can run stop(). Safe from signal handlers."""
        self._stop_event.set()

    async def _start_components(self) -> None:
        # 1. Load and validate config
        self.config = load_config(str(self.config_path))
        self.logger.info(
            "Config loaded: %d activity type(s), %d level tier(s)",
            len(self.config.activity_types), len(self.config.levels),
        )

        # 2. Initialize database
        self.resolver = LevelResolver(self.config.levels)
        self.db = LedgerDatabase(self.config.database.path, self.resolver, self.logger)
        await self.db.initialize(self.config.activity_types)
        self.logger.info("Database initialized: %s", self.config.database.path)

        # 3. Domain components
        self.recorder = ActivityRecorder(self.db, self.resolver, self.logger)

        # 4. Chain scanner (optional; the ledger stays usable without it)
        scanner_cfg = self.config.scanner
        if scanner_cfg.enabled and scanner_cfg.program_id:
            self.rpc = SolanaRpcClient(self.config.rpc, self.logger)
            await self.rpc.start()
            self.scanner = ChainScanner(
                config=scanner_cfg,
                rpc=self.rpc,
                classifier=self._build_classifier(),
                recorder=self.recorder,
                database=self.db,
                logger=self.logger,
            )
            self.scheduler = ScanScheduler(self.scanner, self.logger)
            await self.scheduler.start(scanner_cfg.interval_minutes)
            self.logger.info("Cluster: %s, program ID: %s", scanner_cfg.cluster, scanner_cfg.program_id)
        else:
            self.logger.warning("Blockchain scanner disabled (no program_id or scanner.enabled is false)")

        # 5. Start metrics server
        if self.config.metrics.enabled:
            self.metrics_server = LevelMetricsServer(
                self,
                host=self.config.metrics.host,
                port=self.config.metrics.port,
                health_path=self.config.metrics.health_path,
                metrics_path=self.config.metrics.metrics_path,
                logger=self.logger,
            )
            await self.metrics_server.start()
            self.logger.info("Metrics server started on port %d", self.config.metrics.port)

    async def stop(self) -> None:
        """Shut down every component that was created, in reverse order.

        Works after a partial start too. Each component stop is idempotent,
        so calling this twice is harmless.
        """
        self._stop_event.set()
        if self._running:
            self.logger.info("Shutting down evo-levels...")
        self._running = False

        if self.metrics_server:
            await self.metrics_server.stop()
        if self.scheduler:
            await self.scheduler.stop()
        if self.rpc:
            await self.rpc.stop()

        self.logger.info("evo-levels stopped.")

    def _build_classifier(self) -> TransactionClassifier | None:
        """Build the log classifier, or None if the program IDL is missing."""
        definition = load_program_definition(
            self.config.scanner.program_definition_paths, self.logger,
        )
        if definition is None:
            self.logger.warning(
                "Program definition not found in %s; scanner will run in no-op mode",
                self.config.scanner.program_definition_paths,
            )
            return None
        return LogMarkerClassifier.from_program_definition(definition, self.logger)
