"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime
from schemas.etl import (
    CategoryInsightRecord,
    ColumnMapping,
    DatabaseStats,
    DataQualityReport,
    IntegrityReport,
    JobRecord,
    QualityReport,
    RawRecord,
)


# ============================================================================
# Upload Schemas
# ============================================================================

class UploadStatistics(BaseModel):
    """Per-phase counts for one upload"""
    extraction_errors: int = 0
    transformation_errors: int = 0
    loading_errors: int = 0
    original_records: int = 0
    cleaned_records: int = 0
    final_records: int = 0
    processing_steps: List[str] = Field(default_factory=list)


class UploadResponse(BaseModel):
    """Result of POST /upload"""
    request_id: str
    success: bool
    job_id: str
    file_name: str
    records_processed: int
    records_success: int
    records_error: int
    records_skipped: int
    duplicates_removed: int
    duration_seconds: float
    column_mapping: ColumnMapping = Field(default_factory=dict)
    quality_report: QualityReport
    statistics: UploadStatistics
    warnings: List[str] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "example": {
                "request_id": "req_3f9a1c2b7d4e",
                "success": True,
                "job_id": "job_1705312200000_a1b2c3d4e",
                "file_name": "amazon.csv",
                "records_processed": 250,
                "records_success": 248,
                "records_error": 0,
                "records_skipped": 0,
                "duplicates_removed": 2,
                "duration_seconds": 1.42,
                "column_mapping": {"productName": "product_name", "rating": "rating"},
                "quality_report": {
                    "completeness": 99,
                    "accuracy": 100,
                    "consistency": 100,
                    "uniqueness": 100,
                    "summary": "Data quality: 100% overall. 248 records processed from 250 original records."
                },
                "statistics": {
                    "extraction_errors": 0,
                    "transformation_errors": 0,
                    "loading_errors": 0,
                    "original_records": 250,
                    "cleaned_records": 250,
                    "final_records": 248,
                    "processing_steps": ["Column mapping applied", "Data cleaning completed"]
                },
                "warnings": []
            }
        }
    }


class UploadValidationResponse(BaseModel):
    """Result of POST /upload/validate (nothing is persisted)"""
    request_id: str
    is_valid: bool
    record_count: int
    column_count: int
    detected_columns: ColumnMapping = Field(default_factory=dict)
    quality_report: DataQualityReport
    preview: List[RawRecord] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: List[str] = Field(default_factory=list)


# ============================================================================
# Job Schemas
# ============================================================================

class JobListResponse(BaseModel):
    request_id: str
    count: int
    jobs: List[JobRecord] = Field(default_factory=list)


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    integrity: Optional[IntegrityReport] = None

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.integrity is not None and not self.integrity.is_valid:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self


# ============================================================================
# Statistics Schemas
# ============================================================================

class StatsResponse(BaseModel):
    """Database statistics, category insights and recent jobs"""
    request_id: str
    database: DatabaseStats
    category_insights: List[CategoryInsightRecord] = Field(default_factory=list)
    recent_jobs: List[JobRecord] = Field(default_factory=list)
