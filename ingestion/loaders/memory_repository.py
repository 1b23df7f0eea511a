"""
Dict-backed repository used for dry runs and tests
"""

from datetime import datetime
from typing import List, Optional, Dict, Any

from core.exceptions import DuplicateKeyError, JobNotFoundError
from ingestion.loaders.repository import GROUPABLE_FIELDS, ProductRepository
from schemas.etl import CategoryInsightRecord, GroupStats, JobRecord, TrendAnalysisRecord
from schemas.product import ProductRecord


class InMemoryProductRepository(ProductRepository):
    """
    Keeps everything in process memory.

    Writes apply immediately. ``commit`` takes a snapshot of the stored state
    and ``rollback`` restores the last snapshot, so a failed batch leaves no
    rows behind, as it would in the database.
    """

    def __init__(self):
        self.products: Dict[str, ProductRecord] = {}
        self.category_insights: Dict[str, CategoryInsightRecord] = {}
        self.trend_analyses: List[TrendAnalysisRecord] = []
        self.jobs: Dict[str, JobRecord] = {}
        self.commits = 0
        self.rollbacks = 0
        self._snapshot = self._capture()

    async def upsert_by_key(self, key: str, record: ProductRecord) -> None:
        self.products[key] = record.model_copy(update={"product_id": key})

    async def insert(self, record: ProductRecord) -> None:
        if record.product_id in self.products:
            raise DuplicateKeyError(
                f"Unique constraint failed on product_id {record.product_id}",
                context={"product_id": record.product_id, "table_name": "products"}
            )
        self.products[record.product_id] = record

    async def get_product(self, product_id: str) -> Optional[ProductRecord]:
        return self.products.get(product_id)

    async def count_products(self) -> int:
        return len(self.products)

    async def aggregate_group_by(self, field: str) -> List[GroupStats]:
        if field not in GROUPABLE_FIELDS:
            raise ValueError(f"Cannot group products by {field}")

        groups: Dict[Optional[str], List[ProductRecord]] = {}
        for product in self.products.values():
            groups.setdefault(getattr(product, field), []).append(product)

        return [
            GroupStats(
                key=key,
                count=len(members),
                average_rating=_mean(p.rating for p in members),
                average_price=_mean(p.discounted_price for p in members),
                average_discount=_mean(p.discount_percentage for p in members),
            )
            for key, members in groups.items()
        ]

    async def overall_averages(self) -> Dict[str, float]:
        products = list(self.products.values())
        return {
            "average_rating": _mean(p.rating for p in products),
            "average_price": _mean(p.discounted_price for p in products),
        }

    async def top_rated_product(self, category: str) -> Optional[str]:
        candidates = [p for p in self.products.values() if p.category == category]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.rating).product_name

    async def count_invalid_prices(self) -> int:
        return sum(
            1 for p in self.products.values()
            if p.discounted_price <= 0 or p.actual_price <= 0 or p.discounted_price > p.actual_price
        )

    async def count_invalid_ratings(self) -> int:
        return sum(1 for p in self.products.values() if not 0 <= p.rating <= 5)

    async def duplicate_product_ids(self) -> List[str]:
        # keys are unique by construction
        return []

    async def upsert_category_insight(self, insight: CategoryInsightRecord) -> None:
        self.category_insights[insight.category] = insight

    async def list_category_insights(self) -> List[CategoryInsightRecord]:
        return sorted(self.category_insights.values(), key=lambda i: i.total_products, reverse=True)

    async def add_trend_analysis(self, analysis: TrendAnalysisRecord) -> None:
        if analysis.created_at is None:
            analysis = analysis.model_copy(update={"created_at": datetime.utcnow()})
        self.trend_analyses.append(analysis)

    async def delete_trends_before(self, cutoff: datetime) -> int:
        kept = [t for t in self.trend_analyses if t.created_at >= cutoff]
        deleted = len(self.trend_analyses) - len(kept)
        self.trend_analyses = kept
        return deleted

    async def create_job(self, job: JobRecord) -> None:
        self.jobs[job.id] = job

    async def update_job(self, job_id: str, changes: Dict[str, Any]) -> None:
        job = self.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(
                f"ETL job {job_id} not found",
                context={"job_id": job_id, "operation": "update"}
            )
        self.jobs[job_id] = job.model_copy(update=changes)

    async def get_job(self, job_id: str) -> Optional[JobRecord]:
        return self.jobs.get(job_id)

    async def recent_jobs(self, limit: int) -> List[JobRecord]:
        ordered = sorted(self.jobs.values(), key=lambda j: j.start_time, reverse=True)
        return ordered[:limit]

    async def count_jobs_since(self, since: datetime) -> int:
        return sum(1 for job in self.jobs.values() if job.start_time >= since)

    async def delete_jobs_before(self, cutoff: datetime) -> int:
        stale = [job_id for job_id, job in self.jobs.items() if job.start_time < cutoff]
        for job_id in stale:
            del self.jobs[job_id]
        return len(stale)

    async def commit(self) -> None:
        self.commits += 1
        self._snapshot = self._capture()

    async def rollback(self) -> None:
        self.rollbacks += 1
        products, insights, trends, jobs = self._snapshot
        self.products = dict(products)
        self.category_insights = dict(insights)
        self.trend_analyses = list(trends)
        self.jobs = dict(jobs)

    def _capture(self):
        # stored records are replaced, never mutated, so shallow copies suffice
        return (
            dict(self.products),
            dict(self.category_insights),
            list(self.trend_analyses),
            dict(self.jobs),
        )

    async def ping(self) -> bool:
        return True


def _mean(values) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0
