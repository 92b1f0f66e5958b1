import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from database import SessionLocal
from services import BalanceDrift, find_balance_drift


logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        settings = get_settings()
        self.interval_minutes = settings.audit_interval_minutes
        self.session_factory = session_factory or SessionLocal
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def run_audit(self, source: str = "manual") -> list[BalanceDrift]:
        logger.info(f"balance_audit_run: source={source}")
        session: Session = self.session_factory()
        try:
            drifts = find_balance_drift(session)
        finally:
            session.close()
        for drift in drifts:
            logger.warning(
                f"balance_drift: user_id={drift.user_id} source_id={drift.source_id} "
                f"cached_cents={drift.cached_cents} expected_cents={drift.expected_cents}"
            )
        logger.info(f"balance_audit_run: source={source} drifted_sources={len(drifts)}")
        return drifts

    def start(self) -> None:
        self.run_audit("startup")

        trigger = IntervalTrigger(minutes=self.interval_minutes)
        self.scheduler.add_job(
            self.run_audit,
            trigger,
            args=["interval"],
            id="balance_audit",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started with balance audit every {self.interval_minutes} minutes"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
