#!/usr/bin/env python3
"""Long-running scheduler for the group membership sync.

Runs `sync-groups` every SYNC_INTERVAL_MINUTES and serves a small health
endpoint for the container orchestrator. Runs never overlap: the next
interval starts counting once the previous run has finished.

Environment Variables:
    SYNC_INTERVAL_MINUTES: Minutes between runs (default: 60)
    SYNC_ON_STARTUP: Run once immediately (default: true)
    HEALTH_CHECK_PORT: Health endpoint port, 0 disables it (default: 8080)
    SYNC_MAX_RETRIES: Attempts when a run aborts (default: 3)
    SYNC_RETRY_DELAY_MINUTES: Base delay between those attempts (default: 5)

    Plus the credentials and DEVSYNC_CONFIG_FILE used by main.py.

Example:
    SYNC_INTERVAL_MINUTES=30 python scheduler.py
"""
import asyncio
import logging
import os
import signal
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from aiohttp import web
from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.devsync import commands
from src.devsync.api import DevSyncError, TokenManager
from src.devsync.config import SyncConfig, load_config
from src.devsync.sync.adapters import LoggingEventLog
from src.devsync.sync.domain.entities import EventCode, Severity
from src.devsync.sync.domain.ports import IEventLog

logger = logging.getLogger("scheduler")


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


# ============================================
# Configuration
# ============================================

@dataclass(repr=False)
class SchedulerConfig:
    """Scheduler settings, read from the environment when created."""

    interval_minutes: int = field(default_factory=lambda: _env_int("SYNC_INTERVAL_MINUTES", 60))
    sync_on_startup: bool = field(
        default_factory=lambda: os.getenv("SYNC_ON_STARTUP", "true").lower() == "true"
    )
    health_check_port: int = field(default_factory=lambda: _env_int("HEALTH_CHECK_PORT", 8080))
    max_retries: int = field(default_factory=lambda: _env_int("SYNC_MAX_RETRIES", 3))
    retry_delay_minutes: int = field(default_factory=lambda: _env_int("SYNC_RETRY_DELAY_MINUTES", 5))

    def __repr__(self) -> str:
        return (
            f"SchedulerConfig(interval={self.interval_minutes}m, startup={self.sync_on_startup}, "
            f"health_port={self.health_check_port}, retries={self.max_retries})"
        )


# ============================================
# One run
# ============================================

async def run_sync(
    sync_config: SyncConfig,
    token_manager: TokenManager,
    event_log: IEventLog,
) -> dict[str, Any]:
    """Reconcile every configured group once.

    Returns:
        Summary with per-group results. "error" is set only when the run
        aborted; a run where some groups failed still has error=None.
    """
    started = datetime.now(timezone.utc)
    results: dict[str, Any] = {
        "started_at": started.isoformat(),
        "groups": [],
        "success": False,
        "error": None,
    }

    try:
        group_results = await commands.sync_groups(sync_config, token_manager, event_log)
    except DevSyncError as e:
        logger.error(f"Sync run aborted: {e}", exc_info=True)
        event_log.write(EventCode.FATAL, Severity.ERROR, f"Scheduled sync aborted: {e.message}")
        results["error"] = e.message
        results["error_type"] = type(e).__name__
    except Exception as e:
        error_type = type(e).__name__
        logger.error(f"Sync run crashed: {error_type}: {e}", exc_info=True)
        event_log.write(EventCode.FATAL, Severity.ERROR, f"Scheduled sync crashed: {error_type}: {e}")
        results["error"] = str(e) or error_type
        results["error_type"] = error_type
    else:
        results["groups"] = [r.to_dict() for r in group_results]
        results["success"] = all(r.success for r in group_results)
        failed = [r.group_name for r in group_results if not r.success]
        if failed:
            logger.warning(f"{len(failed)} group(s) had errors: {', '.join(failed)}")

    finished = datetime.now(timezone.utc)
    results["completed_at"] = finished.isoformat()
    results["duration_seconds"] = (finished - started).total_seconds()
    return results


async def _wait_for_shutdown(shutdown_event: Optional[asyncio.Event], seconds: float) -> bool:
    """Sleep for seconds; True if shutdown_event was set first."""
    if shutdown_event is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=seconds)
        return True
    except asyncio.TimeoutError:
        return False


async def run_sync_with_retry(
    config: SchedulerConfig,
    sync_config: SyncConfig,
    token_manager: TokenManager,
    event_log: IEventLog,
    shutdown_event: Optional[asyncio.Event] = None,
) -> dict[str, Any]:
    """Run once, retrying only if the whole run aborted.

    Per-device failures are left for the next scheduled run. The wait
    grows linearly: retry_delay_minutes, then twice that, and so on.
    Setting shutdown_event during a wait stops retrying at once.
    """
    results: dict[str, Any] = {}

    for attempt in range(1, config.max_retries + 1):
        results = await run_sync(sync_config, token_manager, event_log)
        if not results["error"]:
            if attempt > 1:
                logger.info(f"Sync succeeded on attempt {attempt}")
            return results

        if attempt < config.max_retries:
            wait_minutes = config.retry_delay_minutes * attempt
            logger.warning(
                f"Sync aborted ({results['error']}); retrying in {wait_minutes} minutes "
                f"(attempt {attempt}/{config.max_retries})"
            )
            if await _wait_for_shutdown(shutdown_event, wait_minutes * 60):
                logger.info("Shutdown requested; abandoning retries")
                return results

    logger.error(f"Sync failed after {config.max_retries} attempts: {results.get('error')}")
    return results


# ============================================
# Health endpoint
# ============================================

@dataclass
class HealthState:
    """What the health endpoint reports."""

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_sync_at: Optional[datetime] = None
    last_sync_success: bool = False
    last_groups: list[dict[str, Any]] = field(default_factory=list)
    total_syncs: int = 0
    failed_syncs: int = 0

    def record(self, results: dict[str, Any]) -> None:
        self.total_syncs += 1
        self.last_sync_at = datetime.now(timezone.utc)
        self.last_sync_success = results["success"]
        self.last_groups = results.get("groups", [])
        if not results["success"]:
            self.failed_syncs += 1

    @property
    def status(self) -> str:
        """Healthy until the first run finishes, then as the last run went."""
        return "healthy" if self.total_syncs == 0 or self.last_sync_success else "unhealthy"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "uptime_seconds": round((datetime.now(timezone.utc) - self.started_at).total_seconds()),
            "total_syncs": self.total_syncs,
            "failed_syncs": self.failed_syncs,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else "never",
            "groups": self.last_groups,
        }


HEALTH_STATE = web.AppKey("health_state", HealthState)


async def health_handler(request: web.Request) -> web.Response:
    state = request.app[HEALTH_STATE]
    return web.json_response(state.to_dict(), status=200 if state.status == "healthy" else 503)


async def start_health_server(port: int, state: HealthState) -> Optional[web.AppRunner]:
    """Serve GET /health (and /) on port; returns None when port is 0."""
    if port <= 0:
        return None

    app = web.Application()
    app[HEALTH_STATE] = state
    app.router.add_get("/", health_handler)
    app.router.add_get("/health", health_handler)

    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    await web.TCPSite(runner, "0.0.0.0", port).start()
    logger.info(f"Health endpoint listening on port {port}")
    return runner


# ============================================
# Loop
# ============================================

async def scheduler_loop(
    config: SchedulerConfig,
    sync_config: SyncConfig,
    token_manager: TokenManager,
    event_log: IEventLog,
    health_state: HealthState,
    shutdown_event: asyncio.Event,
):
    """Run on startup (optionally), then every interval until shutdown_event is set."""
    interval = timedelta(minutes=config.interval_minutes)

    async def run_and_record() -> None:
        results = await run_sync_with_retry(config, sync_config, token_manager, event_log, shutdown_event)
        health_state.record(results)
        print(
            f"[Scheduler] Sync complete: success={results['success']}, "
            f"duration={results.get('duration_seconds', 0):.1f}s"
        )

    if config.sync_on_startup:
        print("[Scheduler] Running initial sync...")
        await run_and_record()

    while not shutdown_event.is_set():
        print(f"[Scheduler] Next sync at {(datetime.now(timezone.utc) + interval).isoformat()}")
        if await _wait_for_shutdown(shutdown_event, interval.total_seconds()):
            break

        print(f"\n[Scheduler] ===== Scheduled sync {datetime.now(timezone.utc).isoformat()} =====")
        await run_and_record()

    print("[Scheduler] Shutdown requested, exiting loop")


async def main():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    config = SchedulerConfig()
    print(f"[Scheduler] Device group sync scheduler starting: {config}")

    try:
        sync_config = load_config()
        token_manager = TokenManager()
    except DevSyncError as e:
        print(f"[Scheduler] ERROR: {e}")
        sys.exit(1)

    event_log = LoggingEventLog(sync_config.audit_log_file)
    health_state = HealthState()
    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    runner = await start_health_server(config.health_check_port, health_state)
    try:
        await scheduler_loop(config, sync_config, token_manager, event_log, health_state, shutdown_event)
    finally:
        if runner:
            await runner.cleanup()
        print("[Scheduler] Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
