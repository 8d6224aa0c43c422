"""tasks.py – APScheduler schedule.

• ``Settings.schedule_cron`` (default 08:00, 14:00 and 20:00) – ``search_and_notify``
• one eager run at start-up, before the scheduler blocks
"""

from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import Settings, get_settings
from .tracker import search_and_notify

logger = logging.getLogger(__name__)


def build_scheduler(settings: Settings) -> BlockingScheduler:
    sched = BlockingScheduler(timezone=settings.timezone)
    trigger = CronTrigger.from_crontab(settings.schedule_cron, timezone=settings.timezone)
    sched.add_job(
        search_and_notify,
        trigger,
        kwargs={"settings": settings},
        id="fare_search",
        name="fare_search",
        max_instances=1,
        coalesce=True,
    )
    return sched


def start(settings: Optional[Settings] = None) -> None:
    """Run one search right away, then block on the schedule."""
    settings = settings or get_settings()
    sched = build_scheduler(settings)
    logger.info(
        "Fare tracker started – searching %s ➔ %s ≤ %s %s on '%s'",
        settings.origin,
        settings.destination,
        settings.max_price,
        settings.currency,
        settings.schedule_cron,
    )
    search_and_notify(settings)
    sched.start()

