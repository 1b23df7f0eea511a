"""
PostgreSQL repository with upsert logic (idempotency)
"""

from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy import select, func, or_, update, delete, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import DatabaseError, DuplicateKeyError, JobNotFoundError, UpsertError
from ingestion.loaders.repository import GROUPABLE_FIELDS, ProductRepository
from models.etl_job import ETLJob
from models.insights import CategoryInsight, TrendAnalysis
from models.product import Product
from schemas.etl import CategoryInsightRecord, GroupStats, JobRecord, TrendAnalysisRecord
from schemas.product import ProductRecord
import logging

logger = logging.getLogger(__name__)

# Columns refreshed when an upsert hits an existing product_id
UPSERT_COLUMNS = (
    "product_name",
    "category",
    "discounted_price",
    "actual_price",
    "discount_percentage",
    "rating",
    "rating_count",
    "about",
    "user_id",
    "user_name",
    "user_review",
    "review_title",
    "img_link",
    "product_link",
    "price_range",
    "mean_rating",
    "product_count",
    "average_rating_count",
)


class SQLAlchemyProductRepository(ProductRepository):
    """
    Repository over an AsyncSession bound to PostgreSQL.

    Ensures:
    - No duplicate rows on repeated loads (INSERT ... ON CONFLICT DO UPDATE)
    - Each product write runs in its own savepoint, so one bad row does not
      poison the rest of the batch
    - Nothing is durable until ``commit``
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def upsert_by_key(self, key: str, record: ProductRecord) -> None:
        values = record.to_row()
        values["product_id"] = key

        stmt = insert(Product).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["product_id"],
            set_={
                **{column: getattr(stmt.excluded, column) for column in UPSERT_COLUMNS},
                "updated_at": datetime.utcnow(),
            }
        )

        try:
            async with self.db.begin_nested():
                await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise UpsertError(
                f"Upsert failed for product_id {key}",
                context={"product_id": key, "table_name": "products"},
                original_exception=e
            )

    async def insert(self, record: ProductRecord) -> None:
        try:
            async with self.db.begin_nested():
                self.db.add(Product(**record.to_row()))
                await self.db.flush()
        except IntegrityError as e:
            raise DuplicateKeyError(
                f"Unique constraint failed on product_id {record.product_id}",
                context={"product_id": record.product_id, "table_name": "products"},
                original_exception=e
            )

    async def get_product(self, product_id: str) -> Optional[ProductRecord]:
        result = await self.db.execute(
            select(Product).where(Product.product_id == product_id)
        )
        product = result.scalar_one_or_none()
        if product is None:
            return None
        return ProductRecord.model_validate(
            {column: getattr(product, column) for column in ("product_id", *UPSERT_COLUMNS)}
        )

    async def count_products(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(Product))
        return result.scalar() or 0

    async def aggregate_group_by(self, field: str) -> List[GroupStats]:
        if field not in GROUPABLE_FIELDS:
            raise ValueError(f"Cannot group products by {field}")

        column = getattr(Product, field)
        result = await self.db.execute(
            select(
                column,
                func.count(),
                func.avg(Product.rating),
                func.avg(Product.discounted_price),
                func.avg(Product.discount_percentage),
            ).group_by(column)
        )

        return [
            GroupStats(
                key=key,
                count=count,
                average_rating=float(avg_rating or 0),
                average_price=float(avg_price or 0),
                average_discount=float(avg_discount or 0),
            )
            for key, count, avg_rating, avg_price, avg_discount in result.all()
        ]

    async def overall_averages(self) -> Dict[str, float]:
        result = await self.db.execute(
            select(func.avg(Product.rating), func.avg(Product.discounted_price))
        )
        avg_rating, avg_price = result.one()
        return {
            "average_rating": float(avg_rating or 0),
            "average_price": float(avg_price or 0),
        }

    async def top_rated_product(self, category: str) -> Optional[str]:
        result = await self.db.execute(
            select(Product.product_name)
            .where(Product.category == category)
            .order_by(Product.rating.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_invalid_prices(self) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Product).where(
                or_(
                    Product.discounted_price <= 0,
                    Product.actual_price <= 0,
                    Product.discounted_price > Product.actual_price,
                )
            )
        )
        return result.scalar() or 0

    async def count_invalid_ratings(self) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Product).where(
                or_(Product.rating < 0, Product.rating > 5)
            )
        )
        return result.scalar() or 0

    async def duplicate_product_ids(self) -> List[str]:
        result = await self.db.execute(
            select(Product.product_id)
            .group_by(Product.product_id)
            .having(func.count() > 1)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    async def upsert_category_insight(self, insight: CategoryInsightRecord) -> None:
        values = insight.model_dump()
        stmt = insert(CategoryInsight).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["category"],
            set_={
                "total_products": stmt.excluded.total_products,
                "average_rating": stmt.excluded.average_rating,
                "average_price": stmt.excluded.average_price,
                "average_discount": stmt.excluded.average_discount,
                "top_rated_product": stmt.excluded.top_rated_product,
                "updated_at": datetime.utcnow(),
            }
        )
        await self.db.execute(stmt)

    async def list_category_insights(self) -> List[CategoryInsightRecord]:
        result = await self.db.execute(
            select(CategoryInsight).order_by(CategoryInsight.total_products.desc())
        )
        return [CategoryInsightRecord.model_validate(row) for row in result.scalars().all()]

    async def add_trend_analysis(self, analysis: TrendAnalysisRecord) -> None:
        self.db.add(TrendAnalysis(
            analysis_type=analysis.analysis_type,
            period=analysis.period,
            metrics=analysis.metrics,
            created_at=analysis.created_at or datetime.utcnow(),
        ))
        await self.db.flush()

    async def delete_trends_before(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(TrendAnalysis).where(TrendAnalysis.created_at < cutoff)
        )
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Job log
    # ------------------------------------------------------------------

    async def create_job(self, job: JobRecord) -> None:
        self.db.add(ETLJob(**job.model_dump()))
        await self.db.flush()

    async def update_job(self, job_id: str, changes: Dict[str, Any]) -> None:
        result = await self.db.execute(
            update(ETLJob).where(ETLJob.id == job_id).values(**changes)
        )
        if not result.rowcount:
            raise JobNotFoundError(
                f"ETL job {job_id} not found",
                context={"job_id": job_id, "operation": "update"}
            )

    async def get_job(self, job_id: str) -> Optional[JobRecord]:
        result = await self.db.execute(select(ETLJob).where(ETLJob.id == job_id))
        job = result.scalar_one_or_none()
        return JobRecord.model_validate(job) if job else None

    async def recent_jobs(self, limit: int) -> List[JobRecord]:
        result = await self.db.execute(
            select(ETLJob).order_by(ETLJob.start_time.desc()).limit(limit)
        )
        return [JobRecord.model_validate(job) for job in result.scalars().all()]

    async def count_jobs_since(self, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(ETLJob).where(ETLJob.start_time >= since)
        )
        return result.scalar() or 0

    async def delete_jobs_before(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(ETLJob).where(ETLJob.start_time < cutoff)
        )
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            raise DatabaseError(
                "Commit failed",
                context={"operation": "COMMIT"},
                original_exception=e
            )

    async def rollback(self) -> None:
        await self.db.rollback()

    async def ping(self) -> bool:
        try:
            await self.db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection failed: {str(e)}")
            return False
