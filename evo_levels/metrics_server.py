"""Health and Prometheus metrics endpoint for evo-levels.

Serves ``/health`` (JSON) and ``/metrics`` (Prometheus text exposition) with
aiohttp's web server.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from aiohttp import web

from . import __version__

if TYPE_CHECKING:
    from .main import LevelSystemApp


class LevelMetricsServer:
    """Level-service health and metrics endpoint."""

    def __init__(
        self,
        app: LevelSystemApp,
        host: str = "0.0.0.0",
        port: int = 28290,
        health_path: str = "/health",
        metrics_path: str = "/metrics",
        logger: logging.Logger | None = None,
    ) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._logger = logger or logging.getLogger("levels.metrics")
        self._web_app = web.Application()
        self._web_app.router.add_get(health_path, self._handle_health)
        self._web_app.router.add_get(metrics_path, self._handle_metrics)
        self._runner: web.AppRunner | None = None

    @property
    def web_app(self) -> web.Application:
        return self._web_app

    async def start(self) -> None:
        self._runner = web.AppRunner(self._web_app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    # ══════════════════════════════════════════════════════════
    #  Handlers
    # ══════════════════════════════════════════════════════════

    async def _handle_health(self, request: web.Request) -> web.Response:
        try:
            details = await self.get_health_details()
        except Exception:
            self._logger.exception("Health check failed")
            return web.json_response({"status": "error"}, status=503)
        return web.json_response(details)

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        try:
            lines = await self.collect_metrics()
        except Exception:
            self._logger.exception("Metrics collection failed")
            return web.Response(status=500, text="metrics unavailable\n")
        return web.Response(text="\n".join(lines) + "\n", content_type="text/plain")

    # ══════════════════════════════════════════════════════════
    #  Collectors
    # ══════════════════════════════════════════════════════════

    async def collect_metrics(self) -> list[str]:
        """Collect level-service Prometheus metrics."""
        lines: list[str] = []
        scanner = self._app.scanner
        scheduler = self._app.scheduler

        lines.append(f"levels_uptime_seconds {self._app.uptime_seconds:.0f}")

        # ── Scanner counters ─────────────────────────────────
        if scanner:
            lines.append(f"levels_scanner_enabled {int(scanner.enabled)}")
            lines.append(f"levels_scan_cycles_total {scanner.cycles_total}")
            lines.append(f"levels_scan_cycles_failed_total {scanner.cycles_failed_total}")
            lines.append(f"levels_activities_recorded_total {scanner.activities_recorded_total}")
            lines.append(f"levels_duplicate_signatures_total {scanner.duplicates_total}")
            lines.append(f"levels_transactions_failed_total {scanner.transactions_failed_total}")
        if scheduler:
            lines.append(f"levels_scheduler_ticks_skipped_total {scheduler.ticks_skipped}")

        # ── Ledger gauges ────────────────────────────────────
        if self._app.db:
            lines.append(f"levels_users {await self._app.db.get_user_count()}")
            lines.append(f"levels_points_total {await self._app.db.get_total_points()}")
            state = await self._app.db.get_scanner_state()
            lines.append(f"levels_scan_count {state.get('scan_count', 0)}")

        return lines

    async def get_health_details(self) -> dict:
        """Return health details for the /health endpoint."""
        state = await self._app.db.get_scanner_state() if self._app.db else {}
        scheduler = self._app.scheduler
        return {
            "status": "ok",
            "service": "level-system",
            "version": __version__,
            "cluster": self._app.config.scanner.cluster if self._app.config else None,
            "database": "connected" if self._app.db else "disconnected",
            "scanner": scheduler.state.value if scheduler else "disabled",
            "last_scanned_signature": state.get("last_scanned_signature"),
            "last_scan_time": _utc_iso(state.get("last_scan_time")),
            "scan_count": state.get("scan_count", 0),
        }


def _utc_iso(sqlite_ts: str | None) -> str | None:
    """Render a naive SQLite ``CURRENT_TIMESTAMP`` value as ISO 8601 UTC."""
    if not sqlite_ts:
        return None
    try:
        moment = datetime.fromisoformat(sqlite_ts)
    except ValueError:
        return sqlite_ts
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()
