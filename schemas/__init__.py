"""
Pydantic schemas for data validation and serialization.

Schemas:
    product: ProductRecord, the cleaned record the loader persists
    etl: Options and results for each pipeline stage
    api: API endpoint response schemas

Usage:
    from schemas.product import ProductRecord
    from schemas.etl import LoadOptions, LoadResult
    from schemas.api import UploadResponse
"""

__all__ = [
    "ProductRecord",
    "TransformOptions",
    "LoadOptions",
    "LoadResult",
    "PipelineResult",
    "UploadResponse",
    "StatsResponse",
]
