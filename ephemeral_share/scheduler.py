from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ephemeral_share.config import settings
from ephemeral_share.logging_config import setup_logging
from ephemeral_share.services.expiry import run_sweep

logger = setup_logging()

SWEEP_JOB_ID = "expiry_sweep"


async def _sweep_job():
    try:
        await run_sweep()
    except Exception as e:
        # run_sweep isolates its own steps; this only catches setup failures
        # (e.g. no database connection) so the scheduler keeps running
        logger.error(f"Expiry sweep failed: {str(e)}", exc_info=True)


def start_expiry_scheduler() -> AsyncIOScheduler:
    """Start the periodic expiry sweep on the running event loop."""
    scheduler = AsyncIOScheduler(timezone="UTC")

    # max_instances=1 + coalesce：上一次sweep尚未結束時不會重疊執行，錯過的次數只補跑一次
    scheduler.add_job(
        _sweep_job,
        "interval",
        seconds=settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
        id=SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()

    logger.info(
        f"Expiry sweep scheduled every {settings.EXPIRY_SWEEP_INTERVAL_SECONDS}s"
    )
    return scheduler
