"""
Clock process — fires the scheduler tick and the weekly score decay.

Run as its own process (`python -m outreach.clock`). Ticks never overlap inside
one process (max_instances=1, coalesce=True); the Redis tick lock covers several
clock processes and the manual trigger.
"""
import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from outreach.config import DEFAULT_TIMEZONE, SCHEDULER_INTERVAL_MINUTES

logger = logging.getLogger('outreach.clock')


def scheduler_tick():
    from outreach.lifecycle.scheduler import run_scheduler
    try:
        result = run_scheduler()
        if result.reason:
            logger.info("Tick skipped: %s", result.reason)
    except Exception:
        logger.error("Scheduler tick crashed", exc_info=True)


def score_decay_job():
    from outreach.services.lifecycle import run_score_decay
    try:
        run_score_decay()
    except Exception:
        logger.error("Score decay job crashed", exc_info=True)


def build_scheduler(scheduler=None):
    scheduler = scheduler or BlockingScheduler(timezone=DEFAULT_TIMEZONE)
    scheduler.add_job(
        scheduler_tick, 'interval',
        minutes=SCHEDULER_INTERVAL_MINUTES,
        id='sequence_tick',
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    # Mondays 06:00 local
    scheduler.add_job(
        score_decay_job,
        CronTrigger(day_of_week='mon', hour=6, minute=0, timezone=DEFAULT_TIMEZONE),
        id='score_decay',
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler


def main():
    from outreach.logging_config import configure_logging
    configure_logging()

    import importlib
    for name in ('lead', 'sequence', 'activity', 'suppression', 'system_setting', 'call_log'):
        importlib.import_module(f'outreach.models.{name}')

    scheduler = build_scheduler()
    logger.info("Clock started: sequence tick every %d min, score decay Mondays 06:00", SCHEDULER_INTERVAL_MINUTES)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Clock stopped")


if __name__ == '__main__':
    main()
