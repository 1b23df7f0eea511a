"""
Upload endpoints: run the ETL pipeline over a spreadsheet export
"""

from pathlib import Path
from typing import List, Optional
import uuid
import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse

from api.dependencies import get_repository
from core.config import settings
from core.exceptions import EmptyInputError, ETLException, ExtractionError
from ingestion.extractors.csv_extractor import CSVExtractor
from ingestion.loaders.repository import ProductRepository
from ingestion.runner import ETLRunner
from schemas.api import ErrorResponse, UploadResponse, UploadStatistics, UploadValidationResponse
from schemas.etl import ColumnMapping, DataQualityReport

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/upload", tags=["Upload"])

ALLOWED_CONTENT_TYPES = {
    "text/csv",
    "text/plain",
    "text/tab-separated-values",
    "application/vnd.ms-excel",
    "application/octet-stream",
}
ALLOWED_EXTENSIONS = {".csv", ".tsv", ".txt"}
IMPORTANT_COLUMNS = ("productName", "category", "discountedPrice", "rating")
MAX_DETAILS = 10


def _error(status_code: int, error: str, details: Optional[List[str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, details=details or []).model_dump()
    )


async def _read_upload(file: UploadFile):
    """Return (content, None) or (None, error response)"""
    extension = Path(file.filename or "").suffix.lower()
    if extension not in ALLOWED_EXTENSIONS or (
        file.content_type and file.content_type not in ALLOWED_CONTENT_TYPES
    ):
        return None, _error(400, "Invalid file type. Please upload a CSV file.")

    content = await file.read(settings.UPLOAD_MAX_BYTES + 1)
    if len(content) > settings.UPLOAD_MAX_BYTES:
        return None, _error(
            400, f"File too large. Maximum size is {settings.UPLOAD_MAX_BYTES // (1024 * 1024)}MB."
        )
    if not content:
        return None, _error(400, "Uploaded file is empty")

    return content, None


@router.post("", response_model=UploadResponse, responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def upload_file(
    request: Request,
    file: UploadFile = File(..., description="CSV export of product listings"),
    repository: ProductRepository = Depends(get_repository)
):
    """
    Run extract → transform → load over the uploaded file.

    Returns 400 for empty, oversized or unsupported files and for files
    without data rows; 500 when too many records fail to load.
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(f"[{request_id}] POST /upload - file={file.filename}")

    content, error_response = await _read_upload(file)
    if error_response is not None:
        return error_response

    runner = ETLRunner(repository)

    try:
        result = await runner.run(content, file.filename)
    except EmptyInputError as e:
        return _error(400, "No data found in the uploaded file", [str(m) for m in e.context.get("parse_errors", [])])
    except ExtractionError as e:
        return _error(400, "Could not parse the uploaded file", [e.message])
    except ETLException as e:
        logger.error(f"[{request_id}] Upload processing failed: {e}")
        return _error(500, "Internal server error during file processing", [e.message])

    load = result.load
    if not load.success:
        logger.error(f"[{request_id}] Database loading failed for job {load.job_id}")
        return _error(500, "Failed to load data into database", load.errors[:MAX_DETAILS])

    return UploadResponse(
        request_id=request_id,
        success=True,
        job_id=load.job_id,
        file_name=result.file_name,
        records_processed=result.records_processed,
        records_success=load.records_loaded,
        records_error=load.records_error,
        records_skipped=load.records_skipped,
        duplicates_removed=result.duplicates_removed,
        duration_seconds=load.duration_seconds,
        column_mapping=result.column_mapping,
        quality_report=result.quality,
        statistics=UploadStatistics(
            extraction_errors=len(result.parse_errors),
            transformation_errors=len(result.transform_errors),
            loading_errors=len(load.errors),
            original_records=result.records_processed,
            cleaned_records=result.transform_statistics.cleaned_count,
            final_records=load.records_loaded,
            processing_steps=result.transform_statistics.transformations,
        ),
        warnings=result.transform_warnings + load.warnings,
    )


@router.post("/validate", response_model=UploadValidationResponse, responses={400: {"model": ErrorResponse}})
async def validate_file(
    request: Request,
    file: UploadFile = File(..., description="CSV export of product listings")
):
    """Parse the file and report its structure without loading anything"""
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(f"[{request_id}] POST /upload/validate - file={file.filename}")

    content, error_response = await _read_upload(file)
    if error_response is not None:
        return error_response

    try:
        extract_result = CSVExtractor(source_name=file.filename).extract(content)
    except ExtractionError as e:
        return _error(400, "Could not parse the uploaded file", [e.message])

    column_mapping = CSVExtractor.detect_column_mapping(extract_result.headers)
    quality_report = CSVExtractor.get_data_quality_report(extract_result.records)

    return UploadValidationResponse(
        request_id=request_id,
        is_valid=not extract_result.errors,
        record_count=extract_result.total_records,
        column_count=len(extract_result.headers),
        detected_columns=column_mapping,
        quality_report=quality_report,
        preview=CSVExtractor.preview_data(extract_result.records, 5),
        recommendations=upload_recommendations(quality_report, column_mapping),
    )


def upload_recommendations(report: DataQualityReport, column_mapping: ColumnMapping) -> List[str]:
    recommendations = []

    missing_columns = [column for column in IMPORTANT_COLUMNS if column not in column_mapping]
    if missing_columns:
        recommendations.append(f"Consider adding these important columns: {', '.join(missing_columns)}")

    if report.duplicate_records:
        recommendations.append(
            f"Found {report.duplicate_records} duplicate records - these will be automatically handled"
        )
    if report.empty_records:
        recommendations.append(f"Found {report.empty_records} empty records - these will be filtered out")

    sparse_columns = [
        column for column, count in report.missing_values.items()
        if count > report.total_records * 0.3
    ]
    if sparse_columns:
        recommendations.append(f"These columns have >30% missing values: {', '.join(sparse_columns)}")

    if report.total_records > 10000:
        recommendations.append("Large dataset detected - processing may take a few minutes")

    return recommendations or ["File looks good! Ready for processing."]
