import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker
from core.config import settings
from core.database import async_session_maker
from ingestion.loaders.product_loader import ProductLoader
from ingestion.loaders.sqlalchemy_repository import SQLAlchemyProductRepository

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.scheduler = AsyncIOScheduler()
        self.SessionLocal = session_factory or async_session_maker

    async def run_cleanup_job(self):
        """Job to purge old job logs and trend snapshots"""
        logger.info("Scheduler: Starting retention cleanup")
        async with self.SessionLocal() as session:
            try:
                loader = ProductLoader(SQLAlchemyProductRepository(session))
                result = await loader.cleanup_old_data(settings.ETL_RETENTION_DAYS)
                logger.info(f"Scheduler: Cleanup removed {result}")
            except Exception as e:
                logger.error(f"Scheduler: Cleanup job failed - {e}")

    async def run_integrity_job(self):
        """Job to sweep stored products for invalid values"""
        async with self.SessionLocal() as session:
            loader = ProductLoader(SQLAlchemyProductRepository(session))
            report = await loader.validate_data_integrity()
            if report.is_valid:
                logger.info(f"Scheduler: Integrity check passed {report.statistics}")
            else:
                logger.warning(f"Scheduler: Integrity issues - {'; '.join(report.issues)}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_cleanup_job,
            trigger=IntervalTrigger(hours=settings.CLEANUP_INTERVAL_HOURS),
            id="cleanup_job",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.run_integrity_job,
            trigger=IntervalTrigger(minutes=settings.INTEGRITY_CHECK_INTERVAL_MINUTES),
            id="integrity_job",
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Maintenance scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Maintenance scheduler stopped")
