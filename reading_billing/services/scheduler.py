from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI

from reading_billing.core.config import settings
from reading_billing.db.models.enums import PayoutRunStatus
from reading_billing.db.session import SessionLocal
from reading_billing.services.payment_gateway import get_payment_gateway
from reading_billing.services.payouts import default_run_key, get_payout_run, run_payout_batch
from reading_billing.services.readings import cancel_stale_sessions

logger = logging.getLogger(__name__)


async def _session_sweep_loop(stop_event: asyncio.Event, *, interval_seconds: float) -> None:
    while not stop_event.is_set():
        try:
            with SessionLocal() as db:
                cancelled = cancel_stale_sessions(db, now=datetime.now(UTC))
                if cancelled > 0:
                    db.commit()
                else:
                    db.rollback()
        except Exception:  # noqa: BLE001
            logger.exception("session sweep loop failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except TimeoutError:
            continue


def _payout_due(now: datetime) -> bool:
    return now.hour > settings.daily_payout_cron_hour_utc or (
        now.hour == settings.daily_payout_cron_hour_utc and now.minute >= settings.daily_payout_cron_minute_utc
    )


async def _daily_payout_loop(stop_event: asyncio.Event, *, interval_seconds: float = 60.0) -> None:
    while not stop_event.is_set():
        try:
            current_utc = datetime.now(UTC)
            if _payout_due(current_utc):
                with SessionLocal() as db:
                    run = get_payout_run(db, run_key=default_run_key(current_utc))
                    if run is None or run.status != PayoutRunStatus.COMPLETED:
                        # Transfers are blocking HTTP calls.
                        await asyncio.to_thread(
                            run_payout_batch,
                            db,
                            gateway=get_payment_gateway(),
                            now=current_utc,
                        )
        except Exception:  # noqa: BLE001
            logger.exception("daily payout scheduler loop failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except TimeoutError:
            continue


@asynccontextmanager
async def scheduler_lifespan(app: FastAPI) -> AsyncIterator[None]:
    if os.getenv("PYTEST_CURRENT_TEST"):
        yield
        return

    stop_event = asyncio.Event()
    tasks = [
        asyncio.create_task(
            _session_sweep_loop(stop_event, interval_seconds=settings.session_sweep_interval_seconds)
        )
    ]
    if settings.payout_scheduler_enabled:
        tasks.append(asyncio.create_task(_daily_payout_loop(stop_event)))
    app.state.scheduler_stop_event = stop_event
    app.state.scheduler_tasks = tasks
    try:
        yield
    finally:
        stop_event.set()
        await asyncio.gather(*tasks, return_exceptions=True)
