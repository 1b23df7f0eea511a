"""
Batch loader for cleaned product records.

Writes go through an injected ProductRepository; the job log is kept
current through a JobTracker so a concurrent reader can poll progress
while batches are still running.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Dict

from core.config import settings
from core.exceptions import DuplicateKeyError, LoadError
from ingestion.job_tracker import JobTracker
from ingestion.loaders.repository import ProductRepository
from models.base import AnalysisType
from schemas.etl import (
    CategoryInsightRecord,
    DatabaseStats,
    IntegrityReport,
    JobRecord,
    LoadOptions,
    LoadResult,
    TrendAnalysisRecord,
)
from schemas.product import ProductRecord
import logging

logger = logging.getLogger(__name__)

TOP_CATEGORIES = 10


class ProductLoader:
    """
    Load ProductRecords into the store in sequential batches.

    Ensures:
    - Idempotent loads when ``upsert`` is on (keyed by product_id)
    - Per-record failures never abort a batch
    - A failed batch is rolled back and counted as errors; the run continues
    - Job counters always reflect the batches fully completed so far
    """

    def __init__(self, repository: ProductRepository, job_tracker: Optional[JobTracker] = None):
        self.repository = repository
        self.job_tracker = job_tracker or JobTracker(repository)

    async def load(
        self,
        records: List[ProductRecord],
        file_name: str,
        options: Optional[LoadOptions] = None
    ) -> LoadResult:
        """
        Load records and regenerate insights.

        Args:
            records: Validated, de-duplicated records
            file_name: Source file name stored on the job row
            options: Batch size, write mode and insight switch

        Returns:
            LoadResult with counts, bounded errors and warnings

        Raises:
            LoadError: If the job row cannot be created or updated
        """
        options = options or LoadOptions()
        started_at = datetime.utcnow()
        total = len(records)

        try:
            job = await self.job_tracker.start(file_name)
        except Exception as e:
            logger.error(f"Could not create ETL job for {file_name}: {str(e)}")
            raise LoadError(
                "Failed to create ETL job",
                context={"file_name": file_name},
                original_exception=e
            )

        records_loaded = 0
        records_skipped = 0
        records_error = 0
        batches_processed = 0
        errors: List[str] = []
        warnings: List[str] = []

        for start in range(0, total, options.batch_size):
            batch = records[start:start + options.batch_size]
            batch_number = batches_processed + 1

            try:
                loaded, skipped, failed = await self._load_batch(batch, options, errors)
                await self.repository.commit()
                records_loaded += loaded
                records_skipped += skipped
                records_error += failed
                logger.info(
                    f"Batch {batch_number}: {loaded} loaded, {skipped} skipped, {failed} failed"
                )
            except Exception as e:
                logger.error(
                    f"Batch {batch_number} failed: {str(e)}",
                    extra={"error_context": {"job_id": job.id, "batch": batch_number, "size": len(batch)}}
                )
                await self.repository.rollback()
                records_error += len(batch)
                errors.append(f"Batch {batch_number} failed: {str(e)}")

            batches_processed += 1

            try:
                await self.job_tracker.record_progress(
                    job.id,
                    processed=start + len(batch),
                    success=records_loaded,
                    error=records_error,
                )
            except Exception as e:
                await self._fail_job(job, f"Job progress update failed: {str(e)}")
                raise LoadError(
                    "Failed to update ETL job",
                    context={"job_id": job.id, "batch": batch_number},
                    original_exception=e
                )

        if options.generate_insights:
            try:
                await self.generate_insights()
            except Exception as e:
                logger.warning(f"Insight generation failed: {str(e)}")
                await self.repository.rollback()
                warnings.append(f"Insight generation failed: {str(e)}")

        bounded_errors = errors[:self.job_tracker.max_error_messages]

        try:
            await self.job_tracker.complete(
                job.id,
                success=records_loaded,
                error=records_error,
                error_messages=bounded_errors,
                processed=total,
            )
        except Exception as e:
            await self._fail_job(job, f"Job completion failed: {str(e)}")
            raise LoadError(
                "Failed to finalize ETL job",
                context={"job_id": job.id},
                original_exception=e
            )

        success = records_error < total * (1 - options.success_threshold)
        duration = (datetime.utcnow() - started_at).total_seconds()

        logger.info(
            f"Load finished for {file_name}: {records_loaded}/{total} loaded, "
            f"{records_skipped} skipped, {records_error} failed in {duration:.2f}s"
        )

        return LoadResult(
            success=success,
            job_id=job.id,
            total_records=total,
            records_loaded=records_loaded,
            records_skipped=records_skipped,
            records_error=records_error,
            batches_processed=batches_processed,
            errors=bounded_errors,
            warnings=warnings,
            duration_seconds=duration,
        )

    async def _load_batch(self, batch: List[ProductRecord], options: LoadOptions, errors: List[str]):
        loaded = skipped = failed = 0

        for record in batch:
            try:
                if options.upsert:
                    await self.repository.upsert_by_key(record.product_id, record)
                else:
                    await self.repository.insert(record)
                loaded += 1
            except DuplicateKeyError as e:
                if options.skip_duplicates:
                    skipped += 1
                else:
                    failed += 1
                    errors.append(f"Product {record.product_id}: {e.message}")
            except Exception as e:
                logger.debug(f"Product {record.product_id} rejected: {str(e)}")
                failed += 1
                errors.append(f"Product {record.product_id}: {str(e)}")

        return loaded, skipped, failed

    async def _fail_job(self, job: JobRecord, message: str) -> None:
        try:
            await self.repository.rollback()
            await self.job_tracker.fail(job.id, message)
        except Exception as e:
            logger.error(f"Could not mark job {job.id} as failed: {str(e)}")

    # ========================================================================
    # Insights
    # ========================================================================

    async def generate_insights(self) -> None:
        """Recompute category insights and append today's trend snapshots"""
        categories = [group for group in await self.repository.aggregate_group_by("category") if group.key]

        for group in categories:
            await self.repository.upsert_category_insight(CategoryInsightRecord(
                category=group.key,
                total_products=group.count,
                average_rating=group.average_rating,
                average_price=group.average_price,
                average_discount=group.average_discount,
                top_rated_product=await self.repository.top_rated_product(group.key),
            ))

        price_ranges = await self.repository.aggregate_group_by("price_range")
        total_products = await self.repository.count_products()
        period = datetime.utcnow().date().isoformat()

        await self.repository.add_trend_analysis(TrendAnalysisRecord(
            analysis_type=AnalysisType.PRICE_RANGE,
            period=period,
            metrics={
                "priceRanges": [
                    {
                        "range": group.key,
                        "count": group.count,
                        "averageRating": round(group.average_rating, 2),
                    }
                    for group in price_ranges
                ],
                "totalProducts": total_products,
            },
        ))

        category_metrics = [
            {
                "category": group.key,
                "productCount": group.count,
                "averageRating": round(group.average_rating, 2),
                "averagePrice": round(group.average_price, 2),
            }
            for group in categories
        ]
        await self.repository.add_trend_analysis(TrendAnalysisRecord(
            analysis_type=AnalysisType.CATEGORY,
            period=period,
            metrics={
                "categories": category_metrics,
                "topCategories": sorted(
                    category_metrics, key=lambda c: c["productCount"], reverse=True
                )[:TOP_CATEGORIES],
            },
        ))

        await self.repository.commit()
        logger.info(f"Insights regenerated for {len(categories)} categories")

    # ========================================================================
    # Reads and maintenance
    # ========================================================================

    async def get_job_status(self, job_id: str) -> Optional[JobRecord]:
        return await self.job_tracker.get(job_id)

    async def get_recent_jobs(self, limit: int = 10) -> List[JobRecord]:
        return await self.job_tracker.recent(limit)

    async def validate_data_integrity(self) -> IntegrityReport:
        """
        Sweep persisted products for invalid prices, invalid ratings and
        duplicated product ids.
        """
        try:
            total_products = await self.repository.count_products()
            invalid_prices = await self.repository.count_invalid_prices()
            invalid_ratings = await self.repository.count_invalid_ratings()
            duplicates = await self.repository.duplicate_product_ids()
        except Exception as e:
            logger.error(f"Integrity check failed: {str(e)}")
            return IntegrityReport(is_valid=False, issues=[f"Integrity check failed: {str(e)}"])

        issues = []
        if invalid_prices:
            issues.append(f"{invalid_prices} products have invalid prices")
        if invalid_ratings:
            issues.append(f"{invalid_ratings} products have invalid ratings")
        if duplicates:
            issues.append(f"{len(duplicates)} duplicate product IDs found")

        return IntegrityReport(
            is_valid=not issues,
            issues=issues,
            statistics={
                "total_products": total_products,
                "valid_prices": total_products - invalid_prices,
                "valid_ratings": total_products - invalid_ratings,
                "duplicate_products": len(duplicates),
            },
        )

    async def cleanup_old_data(self, retain_days: Optional[int] = None) -> Dict[str, int]:
        """Delete job logs and trend snapshots older than ``retain_days``"""
        retain_days = retain_days if retain_days is not None else settings.ETL_RETENTION_DAYS
        cutoff = datetime.utcnow() - timedelta(days=retain_days)

        jobs_deleted = await self.job_tracker.purge_before(cutoff)
        trends_deleted = await self.repository.delete_trends_before(cutoff)
        await self.repository.commit()

        logger.info(
            f"Cleanup before {cutoff.isoformat()}: {jobs_deleted} jobs, {trends_deleted} trend snapshots"
        )
        return {"jobs_deleted": jobs_deleted, "trends_deleted": trends_deleted}

    async def get_database_stats(self) -> DatabaseStats:
        categories = await self.repository.aggregate_group_by("category")
        averages = await self.repository.overall_averages()

        return DatabaseStats(
            total_products=await self.repository.count_products(),
            total_categories=sum(1 for group in categories if group.key),
            average_rating=averages["average_rating"],
            average_price=averages["average_price"],
            recent_uploads=await self.repository.count_jobs_since(
                datetime.utcnow() - timedelta(hours=24)
            ),
        )
