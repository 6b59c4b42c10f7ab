"""
Automatic VIP sweep job.

Periodically re-runs the VIP status updater over recently ingested emails
of every tenant that has active VIP addresses, so new mail picks up the
flag without an explicit trigger.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from mailsentry.config import Settings, settings
from mailsentry.db.pool import db_pool
from mailsentry.features.vip.repository import VipRepository
from mailsentry.features.vip.services import VipStatusUpdater
from mailsentry.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEDULER_ERROR_BACKOFF_SECONDS = 300


class AutoVipSweepJob:
    """Sweeps recent emails per tenant through the VIP updater."""

    def __init__(
        self, config: Settings, vip_store=VipRepository, updater: VipStatusUpdater | None = None
    ):
        self.config = config
        self.vip_store = vip_store
        self.updater = updater or VipStatusUpdater(vip_store)
        self.is_running = False
        self.last_run_time: datetime | None = None

    async def run_once(self) -> dict[str, Any]:
        """
        Run a single sweep.

        Returns:
            Dict: tenants seen/processed/failed and email counts
        """
        if self.is_running:
            logger.warning("Auto VIP sweep already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        started = datetime.now(UTC)
        metrics: dict[str, Any] = {
            "tenants_seen": 0,
            "tenants_processed": 0,
            "tenants_failed": 0,
            "emails_processed": 0,
            "emails_failed": 0,
            "errors": [],
        }

        try:
            tenant_ids = await self.vip_store.list_tenants_with_active_vips()
            metrics["tenants_seen"] = len(tenant_ids)

            if not tenant_ids:
                logger.info("No tenants with active VIP addresses")

            since = started - timedelta(hours=self.config.VIP_SWEEP_LOOKBACK_HOURS)

            for tenant_id in tenant_ids:
                try:
                    emails = await self.vip_store.list_recent_emails(
                        tenant_id, since, self.config.VIP_SWEEP_BATCH_LIMIT
                    )
                    result = await self.updater.update_vip_status(emails)
                except Exception as e:
                    logger.error(
                        "Auto VIP sweep failed for tenant",
                        tenant_id=tenant_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    metrics["tenants_failed"] += 1
                    metrics["errors"].append({"tenant_id": tenant_id, "error": str(e)})
                    continue

                metrics["tenants_processed"] += 1
                metrics["emails_processed"] += result.processed
                metrics["emails_failed"] += result.failed

            self.last_run_time = datetime.now(UTC)
            metrics["duration_seconds"] = round(
                (self.last_run_time - started).total_seconds(), 2
            )

            logger.info(
                "Auto VIP sweep completed",
                **{k: v for k, v in metrics.items() if k != "errors"},
            )
            return metrics

        finally:
            self.is_running = False


auto_vip_sweep_job = AutoVipSweepJob(settings)


async def run_auto_vip_sweep() -> dict[str, Any]:
    """Run a single iteration of the auto VIP sweep."""
    return await auto_vip_sweep_job.run_once()


async def start_auto_vip_scheduler() -> None:
    """
    Worker entry point: open the pool and sweep on a fixed interval.
    """
    interval_seconds = settings.VIP_SWEEP_INTERVAL_MINUTES * 60
    logger.info(
        "Starting auto VIP sweep scheduler",
        interval_minutes=settings.VIP_SWEEP_INTERVAL_MINUTES,
        lookback_hours=settings.VIP_SWEEP_LOOKBACK_HOURS,
    )

    await db_pool.initialize()
    try:
        while True:
            try:
                await run_auto_vip_sweep()
                await asyncio.sleep(interval_seconds)
            except Exception as e:
                logger.error(
                    "Error in auto VIP sweep scheduler", error=str(e), error_type=type(e).__name__
                )
                await asyncio.sleep(SCHEDULER_ERROR_BACKOFF_SECONDS)
    finally:
        await db_pool.close()


if __name__ == "__main__":
    asyncio.run(start_auto_vip_scheduler())
