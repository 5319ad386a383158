#!/usr/bin/env python3
"""
Ban Watch Service - Main Entry Point

Checks the ranked leaderboard every hour, tracks player sanction status and
announces bans, suspensions, restorations and account deletions. When the
API is enabled it is served from the same event loop.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Tuple

# Load .env from backend directory before Config() is used
from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parents[2] / ".env")

import httpx
import uvicorn

from banwatch import __version__
from banwatch.api import main as api
from banwatch.audit.csv_sink import CSVAuditSink
from banwatch.config import Config
from banwatch.database.store import JSONFileStore
from banwatch.monitor.coordinator import CheckCoordinator
from banwatch.monitor.prober import ActivityProber
from banwatch.monitor.snapshot import LeaderboardFetcher
from banwatch.notify.discord import build_notifier
from banwatch.ranked_api.client import RankedAPIClient
from banwatch.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def build_coordinator(
    config: Config,
    treat_first_cycle_as_restart: bool = True,
) -> Tuple[RankedAPIClient, CheckCoordinator]:
    """
    Wire the API client, fetcher, prober, store, notifier and audit sink into a coordinator.

    Args:
        config: Service configuration
        treat_first_cycle_as_restart: Keep the first cycle silent about restorations;
            one-shot runs pass False and rely on the last_check_at gap only
    """
    client = RankedAPIClient(config)
    coordinator = CheckCoordinator(
        config=config,
        fetcher=LeaderboardFetcher(client, config),
        prober=ActivityProber(client),
        store=JSONFileStore(config.state_file),
        notifier=build_notifier(config),
        audit_sink=CSVAuditSink(config.audit_dir, config.profile_url_template),
        treat_first_cycle_as_restart=treat_first_cycle_as_restart,
    )
    return client, coordinator


async def trigger_service_check(
    config: Config,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[str]:
    """
    Ask a running service to queue a manual check through its API.

    Returns:
        The service's answer ("started" or "queued"), or None when no service is listening
    """
    url = f"http://127.0.0.1:{config.api_port}/api/v1/checks"
    async with httpx.AsyncClient(timeout=5.0, transport=transport) as client:
        try:
            response = await client.post(url)
        except httpx.TransportError as e:
            logger.debug("No running service to hand the check to", extra={"url": url, "error": str(e)})
            return None
    response.raise_for_status()
    return response.json().get("status")


class BanWatchService:
    """Main service class for ban checking."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.client: Optional[RankedAPIClient] = None
        self.coordinator: Optional[CheckCoordinator] = None
        self.server: Optional[uvicorn.Server] = None

    async def start(self):
        """Start the check loop (and the API, when enabled)."""
        logger.info("Starting Ban Watch Service", extra={
            "version": __version__,
            "environment": self.config.environment,
            "api_enabled": self.config.api_enabled,
        })

        self.client, self.coordinator = build_coordinator(self.config)
        try:
            if self.config.api_enabled:
                await self._run_with_api()
            else:
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGTERM, signal.SIGINT):
                    loop.add_signal_handler(sig, self._handle_shutdown, sig)
                await self.coordinator.run()
        except Exception as e:
            logger.error("Fatal error in ban watch service", extra={
                "error": str(e),
                "error_type": type(e).__name__,
            }, exc_info=True)
            raise
        finally:
            await self.close()

    async def _run_with_api(self):
        # uvicorn owns SIGINT/SIGTERM here; the check loop stops when the server does
        api.attach(self.coordinator, self.client)
        self.server = uvicorn.Server(uvicorn.Config(
            api.app,
            host=self.config.api_host,
            port=self.config.api_port,
            log_config=None,
        ))
        loop_task = asyncio.create_task(self.coordinator.run())
        try:
            await self.server.serve()
        finally:
            await self.stop_check_loop(loop_task)

    async def stop_check_loop(self, loop_task: asyncio.Task):
        """Let a running cycle finish (save and notify) before the loop is torn down."""
        await self.coordinator.shutdown()
        try:
            await asyncio.wait_for(loop_task, timeout=self.config.shutdown_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Check still running at shutdown, cancelled", extra={
                "timeout_seconds": self.config.shutdown_timeout_seconds,
            })

    def _handle_shutdown(self, signum):
        """Handle shutdown signals gracefully."""
        logger.info("Received shutdown signal", extra={"signal": signum})
        if self.coordinator:
            asyncio.create_task(self.coordinator.shutdown())

    async def close(self):
        if self.coordinator:
            await self.coordinator.notifier.close()
        if self.client:
            await self.client.close()


async def main():
    """Main entry point."""
    config = Config()
    setup_logging(config)

    service = BanWatchService(config)
    try:
        await service.start()
    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
    except Exception as e:
        logger.error("Service crashed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Service stopped")


if __name__ == "__main__":
    run()
