"""
Pydantic schemas for pipeline options and results.

One options model and one result model per stage:

    Extract:    ExtractOptions, ParseIssue, ExtractResult,
                ColumnStats, DataQualityReport, ColumnInfo
    Transform:  TransformOptions, TransformStatistics, TransformResult,
                DedupResult, QualityReport
    Load:       LoadOptions, LoadResult, GroupStats, IntegrityReport,
                DatabaseStats
    Jobs:       JobRecord, CategoryInsightRecord, TrendAnalysisRecord
    Runner:     PipelineResult
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from core.config import settings
from models.base import JobStatus, AnalysisType
from schemas.product import ProductRecord

RawValue = Union[str, int, float, bool, None]
RawRecord = Dict[str, RawValue]
ColumnMapping = Dict[str, str]


# ============================================================================
# Extract
# ============================================================================

class ExtractOptions(BaseModel):
    """Options for delimited-text extraction"""
    delimiter: Optional[str] = Field(None, description="Fixed delimiter; probed when omitted")
    encoding: str = "utf-8"
    skip_empty_lines: bool = True


class ParseIssue(BaseModel):
    """A row (or the whole document) that could not be parsed"""
    code: str
    message: str
    row: Optional[int] = None


class ExtractResult(BaseModel):
    records: List[RawRecord] = Field(default_factory=list)
    errors: List[ParseIssue] = Field(default_factory=list)
    total_records: int = 0
    headers: List[str] = Field(default_factory=list)
    delimiter: str = ","


class ColumnStats(BaseModel):
    type: str
    unique_count: int
    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None


class DataQualityReport(BaseModel):
    total_records: int = 0
    missing_values: Dict[str, int] = Field(default_factory=dict)
    duplicate_records: int = 0
    empty_records: int = 0
    column_stats: Dict[str, ColumnStats] = Field(default_factory=dict)


class ColumnInfo(BaseModel):
    name: str
    type: str
    sample_values: List[Any] = Field(default_factory=list)
    missing_count: int = 0


# ============================================================================
# Transform
# ============================================================================

class TransformOptions(BaseModel):
    """Switches for the optional transform steps"""
    remove_outliers: bool = True
    fill_missing_values: bool = True
    normalize_text: bool = True
    validate_prices: bool = True
    calculate_features: bool = True


class TransformStatistics(BaseModel):
    original_count: int = 0
    cleaned_count: int = 0
    removed_count: int = 0
    rejected_count: int = 0
    outliers_removed: int = 0
    transformations: List[str] = Field(default_factory=list)


class TransformResult(BaseModel):
    data: List[ProductRecord] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    statistics: TransformStatistics = Field(default_factory=TransformStatistics)


class DedupResult(BaseModel):
    data: List[ProductRecord] = Field(default_factory=list)
    duplicates_count: int = 0


class QualityReport(BaseModel):
    """Scores are integers in [0, 100]"""
    completeness: int = Field(0, ge=0, le=100)
    accuracy: int = Field(0, ge=0, le=100)
    consistency: int = Field(0, ge=0, le=100)
    uniqueness: int = Field(0, ge=0, le=100)
    summary: str = ""


# ============================================================================
# Load
# ============================================================================

class LoadOptions(BaseModel):
    batch_size: int = Field(default_factory=lambda: settings.ETL_BATCH_SIZE, ge=1)
    upsert: bool = True
    skip_duplicates: bool = True
    generate_insights: bool = True
    success_threshold: float = Field(
        default_factory=lambda: settings.ETL_SUCCESS_THRESHOLD, ge=0, le=1,
        description="Minimum share of records that must load for the run to count as a success"
    )


class LoadResult(BaseModel):
    success: bool
    job_id: str
    total_records: int = 0
    records_loaded: int = 0
    records_skipped: int = 0
    records_error: int = 0
    batches_processed: int = 0
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    duration_seconds: float = 0.0


class GroupStats(BaseModel):
    """One row of a group-by aggregate over products"""
    key: Optional[str]
    count: int
    average_rating: float = 0.0
    average_price: float = 0.0
    average_discount: float = 0.0


class IntegrityReport(BaseModel):
    is_valid: bool
    issues: List[str] = Field(default_factory=list)
    statistics: Dict[str, int] = Field(default_factory=dict)


class DatabaseStats(BaseModel):
    total_products: int = 0
    total_categories: int = 0
    average_rating: float = 0.0
    average_price: float = 0.0
    recent_uploads: int = 0


# ============================================================================
# Jobs and insights
# ============================================================================

class JobRecord(BaseModel):
    """Read model of an ETL job log row"""
    model_config = ConfigDict(from_attributes=True)
    
    id: str
    file_name: str
    status: JobStatus
    records_processed: int = 0
    records_success: int = 0
    records_error: int = 0
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    error_messages: Optional[List[str]] = None


class CategoryInsightRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    
    category: str
    total_products: int
    average_rating: float = 0.0
    average_price: float = 0.0
    average_discount: float = 0.0
    top_rated_product: Optional[str] = None


class TrendAnalysisRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    
    analysis_type: AnalysisType
    period: str
    metrics: Dict[str, Any]
    created_at: Optional[datetime] = None


# ============================================================================
# Runner
# ============================================================================

class PipelineResult(BaseModel):
    """Everything the upload handler needs to report on one run"""
    file_name: str
    records_processed: int
    parse_errors: List[ParseIssue] = Field(default_factory=list)
    column_mapping: ColumnMapping = Field(default_factory=dict)
    data_quality: DataQualityReport
    transform_statistics: TransformStatistics
    transform_errors: List[str] = Field(default_factory=list)
    transform_warnings: List[str] = Field(default_factory=list)
    duplicates_removed: int = 0
    load: LoadResult
    quality: QualityReport
