"""
Unit tests for data loaders
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError
from core.exceptions import DatabaseError, DuplicateKeyError, JobNotFoundError, LoadError, UpsertError
from ingestion.job_tracker import JobTracker
from ingestion.loaders.memory_repository import InMemoryProductRepository
from ingestion.loaders.product_loader import ProductLoader
from ingestion.loaders.sqlalchemy_repository import SQLAlchemyProductRepository
from models.base import AnalysisType, JobStatus
from schemas.etl import JobRecord, LoadOptions, TrendAnalysisRecord
from schemas.product import ProductRecord


class RecordingRepository(InMemoryProductRepository):
    """Keeps every job update so progress can be checked after the run"""

    def __init__(self):
        super().__init__()
        self.job_updates = []

    async def update_job(self, job_id, changes):
        self.job_updates.append(dict(changes))
        await super().update_job(job_id, changes)


class FailingCommitRepository(InMemoryProductRepository):
    """Fails the n-th commit"""

    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = fail_on
        self.commit_calls = 0

    async def commit(self):
        self.commit_calls += 1
        if self.commit_calls == self.fail_on:
            raise DatabaseError("Commit failed", context={"operation": "COMMIT"})
        await super().commit()


class RejectingRepository(InMemoryProductRepository):
    """Refuses writes for selected product ids"""

    def __init__(self, rejected):
        super().__init__()
        self.rejected = set(rejected)

    async def upsert_by_key(self, key, record):
        if key in self.rejected:
            raise UpsertError(f"Upsert failed for product_id {key}")
        await super().upsert_by_key(key, record)


def products(make_product, count, **overrides):
    return [make_product(f"P{i:04d}", **overrides) for i in range(count)]


class TestProductLoader:
    """Test batch loading"""

    @pytest.mark.asyncio
    async def test_load_in_batches_reports_progress(self, make_product):
        """250 records with batch_size=100 -> 3 batches, progress 100 -> 200 -> 250"""
        repository = RecordingRepository()
        loader = ProductLoader(repository)

        result = await loader.load(
            products(make_product, 250), "products.csv", LoadOptions(batch_size=100)
        )

        assert result.success is True
        assert result.batches_processed == 3
        assert result.records_loaded == 250
        assert result.records_error == 0

        progress = [
            update["records_processed"] for update in repository.job_updates
            if update["status"] == JobStatus.PROCESSING
        ]
        assert progress == [100, 200, 250]

        job = await loader.get_job_status(result.job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.records_processed == 250
        assert job.records_success == 250

    @pytest.mark.asyncio
    async def test_reload_is_idempotent(self, make_product):
        """Loading the same records twice does not duplicate rows"""
        repository = InMemoryProductRepository()
        loader = ProductLoader(repository)
        records = products(make_product, 5)

        await loader.load(records, "products.csv")
        first = {key: value.model_dump() for key, value in repository.products.items()}
        await loader.load(records, "products.csv")

        assert await repository.count_products() == 5
        assert {key: value.model_dump() for key, value in repository.products.items()} == first

    @pytest.mark.asyncio
    async def test_insert_mode_skips_duplicates(self, make_product, memory_repository):
        await memory_repository.insert(make_product("P0000"))
        loader = ProductLoader(memory_repository)

        result = await loader.load(
            products(make_product, 2), "products.csv", LoadOptions(upsert=False, skip_duplicates=True)
        )

        assert result.records_loaded == 1
        assert result.records_skipped == 1
        assert result.records_error == 0
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_insert_mode_counts_duplicates_as_errors(self, make_product, memory_repository):
        await memory_repository.insert(make_product("P0000"))
        loader = ProductLoader(memory_repository)

        result = await loader.load(
            products(make_product, 2), "products.csv", LoadOptions(upsert=False, skip_duplicates=False)
        )

        assert result.records_loaded == 1
        assert result.records_error == 1
        assert "P0000" in result.errors[0]

        job = await loader.get_job_status(result.job_id)
        assert job.status == JobStatus.COMPLETED_WITH_ERRORS

    @pytest.mark.asyncio
    async def test_record_failure_does_not_abort_batch(self, make_product):
        repository = RejectingRepository({"P0001"})
        loader = ProductLoader(repository)

        result = await loader.load(products(make_product, 3), "products.csv")

        assert result.records_loaded == 2
        assert result.records_error == 1
        assert result.success is True
        assert set(repository.products) == {"P0000", "P0002"}

    @pytest.mark.asyncio
    async def test_failed_batch_is_counted_and_run_continues(self, make_product):
        """Commit #1 is the job row, #2 the first batch"""
        repository = FailingCommitRepository(fail_on=2)
        loader = ProductLoader(repository)

        result = await loader.load(
            products(make_product, 6), "products.csv", LoadOptions(batch_size=2)
        )

        assert result.batches_processed == 3
        assert result.records_loaded == 4
        assert result.records_error == 2
        assert result.errors[0].startswith("Batch 1 failed")
        assert repository.rollbacks == 1
        assert result.success is True
        assert set(repository.products) == {"P0002", "P0003", "P0004", "P0005"}

    @pytest.mark.asyncio
    async def test_success_threshold(self, make_product):
        """Default threshold: success while fewer than half the records fail"""
        loader = ProductLoader(RejectingRepository({"P0000", "P0001"}))

        lenient = await loader.load(products(make_product, 4), "a.csv")
        strict = await ProductLoader(RejectingRepository({"P0000"})).load(
            products(make_product, 4), "b.csv", LoadOptions(success_threshold=0.9)
        )

        assert lenient.records_error == 2
        assert lenient.success is False
        assert strict.records_error == 1
        assert strict.success is False

    @pytest.mark.asyncio
    async def test_errors_are_bounded(self, make_product):
        repository = RejectingRepository({f"P{i:04d}" for i in range(5)})
        loader = ProductLoader(repository, JobTracker(repository, max_error_messages=2))

        result = await loader.load(products(make_product, 5), "products.csv")

        assert result.records_error == 5
        assert len(result.errors) == 2

        job = await loader.get_job_status(result.job_id)
        assert len(job.error_messages) == 2

    @pytest.mark.asyncio
    async def test_empty_load_completes_but_is_not_a_success(self, memory_repository):
        loader = ProductLoader(memory_repository)

        result = await loader.load([], "empty.csv")

        assert result.success is False
        assert result.batches_processed == 0
        job = await loader.get_job_status(result.job_id)
        assert job.status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_job_creation_failure_raises(self, make_product, memory_repository):
        memory_repository.create_job = AsyncMock(side_effect=RuntimeError("database is down"))
        loader = ProductLoader(memory_repository)

        with pytest.raises(LoadError):
            await loader.load(products(make_product, 1), "products.csv")

    @pytest.mark.asyncio
    async def test_progress_update_failure_marks_job_failed(self, make_product):
        class BrokenProgressRepository(InMemoryProductRepository):
            async def update_job(self, job_id, changes):
                if changes["status"] == JobStatus.PROCESSING:
                    raise RuntimeError("lost connection")
                await super().update_job(job_id, changes)

        repository = BrokenProgressRepository()
        loader = ProductLoader(repository)

        with pytest.raises(LoadError):
            await loader.load(products(make_product, 3), "products.csv")

        job = (await loader.get_recent_jobs(1))[0]
        assert job.status == JobStatus.FAILED
        assert "lost connection" in job.error_messages[0]

    @pytest.mark.asyncio
    async def test_insight_failure_becomes_warning(self, make_product, memory_repository):
        memory_repository.aggregate_group_by = AsyncMock(side_effect=RuntimeError("aggregate failed"))
        loader = ProductLoader(memory_repository)

        result = await loader.load(products(make_product, 2), "products.csv")

        assert result.success is True
        assert result.records_loaded == 2
        assert result.warnings == ["Insight generation failed: aggregate failed"]

    @pytest.mark.asyncio
    async def test_insights_are_regenerated(self, make_product, memory_repository):
        loader = ProductLoader(memory_repository)
        records = [
            make_product("A", category="Home", rating=4.0, discounted_price=100.0, price_range="Low"),
            make_product("B", category="Home", rating=5.0, discounted_price=300.0, actual_price=400.0,
                         price_range="Low", product_name="Best Lamp"),
            make_product("C", category="Office", rating=3.0, discounted_price=700.0,
                         actual_price=900.0, price_range="Medium"),
        ]

        await loader.load(records, "products.csv")

        insights = {insight.category: insight for insight in await memory_repository.list_category_insights()}
        assert insights["Home"].total_products == 2
        assert insights["Home"].average_rating == pytest.approx(4.5)
        assert insights["Home"].average_price == pytest.approx(200.0)
        assert insights["Home"].top_rated_product == "Best Lamp"
        assert insights["Office"].total_products == 1

        by_type = {trend.analysis_type: trend for trend in memory_repository.trend_analyses}
        price_metrics = by_type[AnalysisType.PRICE_RANGE].metrics
        assert price_metrics["totalProducts"] == 3
        assert {entry["range"]: entry["count"] for entry in price_metrics["priceRanges"]} == {"Low": 2, "Medium": 1}

        category_metrics = by_type[AnalysisType.CATEGORY].metrics
        assert category_metrics["topCategories"][0]["category"] == "Home"
        assert category_metrics["topCategories"][0]["productCount"] == 2
        assert by_type[AnalysisType.CATEGORY].period == datetime.utcnow().date().isoformat()

    @pytest.mark.asyncio
    async def test_insights_can_be_disabled(self, make_product, memory_repository):
        loader = ProductLoader(memory_repository)

        await loader.load(products(make_product, 2), "products.csv", LoadOptions(generate_insights=False))

        assert memory_repository.trend_analyses == []
        assert await memory_repository.list_category_insights() == []


class TestMaintenance:
    """Test integrity sweep, cleanup and stats"""

    @pytest.mark.asyncio
    async def test_integrity_of_clean_data(self, make_product, memory_repository):
        loader = ProductLoader(memory_repository)
        await loader.load(products(make_product, 3), "products.csv")

        report = await loader.validate_data_integrity()

        assert report.is_valid is True
        assert report.issues == []
        assert report.statistics == {
            "total_products": 3,
            "valid_prices": 3,
            "valid_ratings": 3,
            "duplicate_products": 0,
        }

    @pytest.mark.asyncio
    async def test_integrity_reports_invalid_values(self, memory_repository):
        memory_repository.products["BAD"] = ProductRecord.model_construct(
            product_id="BAD", product_name="Broken", category="Home",
            discounted_price=300.0, actual_price=200.0, discount_percentage=0.0, rating=7.0,
        )

        report = await ProductLoader(memory_repository).validate_data_integrity()

        assert report.is_valid is False
        assert "1 products have invalid prices" in report.issues
        assert "1 products have invalid ratings" in report.issues
        assert report.statistics["valid_ratings"] == 0

    @pytest.mark.asyncio
    async def test_integrity_check_failure_is_reported(self, memory_repository):
        memory_repository.count_products = AsyncMock(side_effect=RuntimeError("timeout"))

        report = await ProductLoader(memory_repository).validate_data_integrity()

        assert report.is_valid is False
        assert report.issues == ["Integrity check failed: timeout"]

    @pytest.mark.asyncio
    async def test_cleanup_old_data(self, memory_repository):
        old = datetime.utcnow() - timedelta(days=45)
        await memory_repository.create_job(JobRecord(
            id="job_old", file_name="old.csv", status=JobStatus.COMPLETED, start_time=old
        ))
        await memory_repository.create_job(JobRecord(
            id="job_new", file_name="new.csv", status=JobStatus.COMPLETED, start_time=datetime.utcnow()
        ))
        await memory_repository.add_trend_analysis(TrendAnalysisRecord(
            analysis_type=AnalysisType.CATEGORY, period="2024-01-01", metrics={}, created_at=old
        ))

        result = await ProductLoader(memory_repository).cleanup_old_data(30)

        assert result == {"jobs_deleted": 1, "trends_deleted": 1}
        assert set(memory_repository.jobs) == {"job_new"}

    @pytest.mark.asyncio
    async def test_database_stats(self, make_product, memory_repository):
        loader = ProductLoader(memory_repository)
        await loader.load(
            [
                make_product("A", category="Home", rating=4.0, discounted_price=100.0),
                make_product("B", category="Office", rating=5.0, discounted_price=200.0, actual_price=250.0),
            ],
            "products.csv"
        )

        stats = await loader.get_database_stats()

        assert stats.total_products == 2
        assert stats.total_categories == 2
        assert stats.average_rating == pytest.approx(4.5)
        assert stats.average_price == pytest.approx(150.0)
        assert stats.recent_uploads == 1


class TestInMemoryProductRepository:
    """Test the transaction behaviour of the dict-backed store"""

    @pytest.mark.asyncio
    async def test_rollback_discards_uncommitted_writes(self, make_product, memory_repository):
        await memory_repository.upsert_by_key("A", make_product("A"))
        await memory_repository.commit()

        await memory_repository.upsert_by_key("B", make_product("B"))
        await memory_repository.upsert_by_key("A", make_product("A", rating=1.0))
        await memory_repository.add_trend_analysis(TrendAnalysisRecord(
            analysis_type=AnalysisType.CATEGORY, period="2024-01-01", metrics={}
        ))
        await memory_repository.rollback()

        assert set(memory_repository.products) == {"A"}
        assert memory_repository.products["A"].rating == 4.0
        assert memory_repository.trend_analyses == []
        assert memory_repository.rollbacks == 1

    @pytest.mark.asyncio
    async def test_rollback_before_any_commit_empties_the_store(self, make_product, memory_repository):
        await memory_repository.insert(make_product("A"))

        await memory_repository.rollback()

        assert await memory_repository.count_products() == 0


class TestSQLAlchemyProductRepository:
    """Test statement building against a mocked session"""

    @pytest.mark.asyncio
    async def test_upsert_uses_on_conflict(self, make_product):
        mock_session = MagicMock()
        mock_session.execute = AsyncMock()
        repository = SQLAlchemyProductRepository(mock_session)

        await repository.upsert_by_key("P0001", make_product("P0001"))

        mock_session.execute.assert_called_once()
        mock_session.begin_nested.assert_called_once()
        stmt = mock_session.execute.call_args[0][0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (product_id) DO UPDATE" in sql

    @pytest.mark.asyncio
    async def test_upsert_failure_raises_upsert_error(self, make_product):
        mock_session = MagicMock()
        mock_session.execute = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("gone")))
        repository = SQLAlchemyProductRepository(mock_session)

        with pytest.raises(UpsertError):
            await repository.upsert_by_key("P0001", make_product("P0001"))

    @pytest.mark.asyncio
    async def test_insert_conflict_raises_duplicate_key(self, make_product):
        mock_session = MagicMock()
        mock_session.flush = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate key")))
        repository = SQLAlchemyProductRepository(mock_session)

        with pytest.raises(DuplicateKeyError):
            await repository.insert(make_product("P0001"))

    @pytest.mark.asyncio
    async def test_update_unknown_job_raises(self):
        mock_session = MagicMock()
        mock_session.execute = AsyncMock(return_value=MagicMock(rowcount=0))
        repository = SQLAlchemyProductRepository(mock_session)

        with pytest.raises(JobNotFoundError):
            await repository.update_job("job_missing", {"status": JobStatus.PROCESSING})

    @pytest.mark.asyncio
    async def test_ping(self):
        mock_session = MagicMock()
        mock_session.execute = AsyncMock()
        assert await SQLAlchemyProductRepository(mock_session).ping() is True

        mock_session.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("refused")))
        assert await SQLAlchemyProductRepository(mock_session).ping() is False

    @pytest.mark.asyncio
    async def test_commit_failure_raises_database_error(self):
        mock_session = MagicMock()
        mock_session.commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("gone")))

        with pytest.raises(DatabaseError):
            await SQLAlchemyProductRepository(mock_session).commit()
