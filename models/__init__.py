"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (JobStatus, AnalysisType)
    product: One row per product_id, the cleaned listing plus derived fields
    etl_job: ETL job log with progress counters
    insights: Per-category aggregates and dated trend snapshots

Database Schema:
    All models inherit from the Base declarative class and use
    PostgreSQL-specific features like JSONB for job errors and trend metrics.

Usage:
    from models import Product, ETLJob, CategoryInsight, TrendAnalysis
    from models.base import JobStatus
"""

from models.base import Base, JobStatus, AnalysisType
from models.product import Product
from models.etl_job import ETLJob
from models.insights import CategoryInsight, TrendAnalysis

__all__ = [
    "Base",
    "JobStatus",
    "AnalysisType",
    "Product",
    "ETLJob",
    "CategoryInsight",
    "TrendAnalysis",
]
