"""
Mailsentry worker process.

Runs one background job per process, chosen by the first CLI argument
(`mailsentry-worker auto_vip`) or the WORKER_JOB environment variable.
Today the only job is the auto-VIP sweep, which keeps `emails.is_vip`
current for mail that arrived without an explicit VIP update.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from mailsentry.config import settings
from mailsentry.features.vip.jobs import start_auto_vip_scheduler
from mailsentry.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

DEFAULT_JOB = "auto_vip"

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "auto_vip": start_auto_vip_scheduler,
}


def selected_job(argv: list[str] | None = None) -> str:
    """Job named on the command line, else WORKER_JOB, else the VIP sweep."""
    args = sys.argv[1:] if argv is None else argv
    name = args[0] if args else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return name.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Look up `job_name` (or the selected job) and run it until it returns."""
    name = (job_name or selected_job()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        available = ", ".join(sorted(JOB_REGISTRY))
        raise ValueError(f"Unknown worker job '{name}'. Available jobs: {available}")

    logger.info("Starting mailsentry worker", job=name, environment=settings.environment)
    await job()


def main() -> None:
    setup_logging(log_level=settings.LOG_LEVEL)
    asyncio.run(run_worker(selected_job()))


if __name__ == "__main__":
    main()
