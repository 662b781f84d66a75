# tasks/scheduler.py
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from redis.asyncio import Redis

from fitacademy.clients.backend import BackendClient, BackendError, BackendUnavailable
from fitacademy.config import settings
from fitacademy.messages import PERIOD_LABELS
from fitacademy.services import admin_service

logger = logging.getLogger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler()


def schedule_jobs(scheduler: AsyncIOScheduler, r: Redis, backend: BackendClient) -> None:
    # Admin analytics snapshot, one per period
    scheduler.add_job(
        refresh_analytics,
        trigger=IntervalTrigger(minutes=settings.ANALYTICS_REFRESH_MINUTES),
        args=[r, backend],
        id="refresh_analytics",
        replace_existing=True,
    )
    # Default orders page, so the first admin view is warm
    scheduler.add_job(
        refresh_orders,
        trigger=IntervalTrigger(seconds=settings.ORDERS_REFRESH_SECONDS),
        args=[r, backend],
        id="refresh_orders",
        replace_existing=True,
    )


def _service_token() -> str:
    token = settings.BACKEND_SERVICE_TOKEN
    if not token:
        logger.debug("BACKEND_SERVICE_TOKEN not set, skipping refresh job")
    return token


async def refresh_analytics(r: Redis, backend: BackendClient) -> int:
    token = _service_token()
    if not token:
        return 0
    refreshed = 0
    for period in PERIOD_LABELS:
        try:
            await admin_service.refresh_analytics(r, backend, token, period)
            refreshed += 1
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Analytics refresh for {period} failed: {str(e)}")
    logger.info(f"Analytics refreshed for {refreshed}/{len(PERIOD_LABELS)} periods")
    return refreshed


async def refresh_orders(r: Redis, backend: BackendClient) -> int:
    token = _service_token()
    if not token:
        return 0
    query = admin_service.order_query(admin_service.DEFAULT_ORDER_PARAMS)
    try:
        snapshot = await admin_service.fetch_orders_snapshot(r, backend, token=token, query=query, fresh=True)
    except (BackendError, BackendUnavailable) as e:
        logger.error(f"Orders refresh failed: {str(e)}")
        return 0
    if snapshot["new_orders"]:
        logger.info(f"{snapshot['new_orders']} orders received in the last 5 minutes")
    return len(snapshot["orders"])
