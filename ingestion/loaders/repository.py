"""
Storage interface the loader depends on.

The loader never talks to a database client directly; it receives a
ProductRepository built by the caller (API dependency, CLI, scheduler) and
owned by that caller. Implementations:

    SQLAlchemyProductRepository  - async SQLAlchemy over PostgreSQL
    InMemoryProductRepository    - dict-backed, for dry runs and tests

Product writes are atomic per record; ``commit`` makes a batch durable.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Dict, Any

from schemas.etl import CategoryInsightRecord, GroupStats, JobRecord, TrendAnalysisRecord
from schemas.product import ProductRecord

# Product fields that may be used as group-by keys
GROUPABLE_FIELDS = ("category", "price_range")


class ProductRepository(ABC):
    """Persistence primitives for products, insights and the job log"""

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    @abstractmethod
    async def upsert_by_key(self, key: str, record: ProductRecord) -> None:
        """Update the product stored under ``key`` or insert it"""

    @abstractmethod
    async def insert(self, record: ProductRecord) -> None:
        """
        Insert a new product.

        Raises:
            DuplicateKeyError: If a product with the same product_id exists
        """

    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[ProductRecord]:
        pass

    @abstractmethod
    async def count_products(self) -> int:
        pass

    @abstractmethod
    async def aggregate_group_by(self, field: str) -> List[GroupStats]:
        """Count and averages (rating, discounted price, discount) per value of ``field``"""

    @abstractmethod
    async def overall_averages(self) -> Dict[str, float]:
        """``{"average_rating": ..., "average_price": ...}`` over all products"""

    @abstractmethod
    async def top_rated_product(self, category: str) -> Optional[str]:
        """Name of the highest-rated product in ``category``"""

    @abstractmethod
    async def count_invalid_prices(self) -> int:
        """Products with a non-positive price or discounted_price > actual_price"""

    @abstractmethod
    async def count_invalid_ratings(self) -> int:
        pass

    @abstractmethod
    async def duplicate_product_ids(self) -> List[str]:
        pass

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    @abstractmethod
    async def upsert_category_insight(self, insight: CategoryInsightRecord) -> None:
        pass

    @abstractmethod
    async def list_category_insights(self) -> List[CategoryInsightRecord]:
        pass

    @abstractmethod
    async def add_trend_analysis(self, analysis: TrendAnalysisRecord) -> None:
        pass

    @abstractmethod
    async def delete_trends_before(self, cutoff: datetime) -> int:
        pass

    # ------------------------------------------------------------------
    # Job log
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_job(self, job: JobRecord) -> None:
        pass

    @abstractmethod
    async def update_job(self, job_id: str, changes: Dict[str, Any]) -> None:
        """
        Apply ``changes`` to one job row.

        Raises:
            JobNotFoundError: If no row has ``job_id``
        """

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[JobRecord]:
        pass

    @abstractmethod
    async def recent_jobs(self, limit: int) -> List[JobRecord]:
        """Most recently started jobs first"""

    @abstractmethod
    async def count_jobs_since(self, since: datetime) -> int:
        pass

    @abstractmethod
    async def delete_jobs_before(self, cutoff: datetime) -> int:
        pass

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """True when the store is reachable"""
