# ============================================================================
# File: ingestion/runner.py
# Description: Orchestrates one product upload through the ETL pipeline
# ============================================================================
"""
ETL Runner - Orchestrates Extract, Transform, Load for one upload.

Pipeline phases:
1. Extract - parse delimited text into raw records
2. Map - match headers to canonical product fields
3. Transform - clean, fill, drop outliers, derive features
4. Deduplicate - one record per product id
5. Load - batch upsert with job tracking and insight regeneration
6. Report - data quality scores for the cleaned output

Row-level problems are collected into the result; only run-level failures
raise.
"""

from pathlib import Path
from typing import Optional, Union
import logging

from core.exceptions import (
    ETLException,
    ExtractionError,
    EmptyInputError,
    TransformationError,
    LoadError,
)
from ingestion.extractors.csv_extractor import CSVExtractor
from ingestion.loaders.product_loader import ProductLoader
from ingestion.loaders.repository import ProductRepository
from ingestion.transformers.product_transformer import ProductTransformer
from schemas.etl import (
    ExtractOptions,
    ExtractResult,
    LoadOptions,
    PipelineResult,
    TransformOptions,
)

logger = logging.getLogger(__name__)


class ETLRunner:
    """
    ETL Orchestrator

    Responsibilities:
    - Orchestrate Extract → Transform → Load for one file
    - Reject uploads without data rows before a job is created
    - Wrap unexpected failures with phase context
    """

    def __init__(
        self,
        repository: ProductRepository,
        extract_options: Optional[ExtractOptions] = None,
        transform_options: Optional[TransformOptions] = None,
        load_options: Optional[LoadOptions] = None
    ):
        self.repository = repository
        self.extract_options = extract_options or ExtractOptions()
        self.transform_options = transform_options or TransformOptions()
        self.load_options = load_options or LoadOptions()
        self.loader = ProductLoader(repository)

    async def run(self, content: Union[bytes, str], file_name: str) -> PipelineResult:
        """
        Run the full pipeline over an in-memory upload.

        Args:
            content: Raw file bytes (or decoded text)
            file_name: Name recorded on the ETL job

        Returns:
            PipelineResult with per-phase statistics

        Raises:
            EmptyInputError: If the file yields no records
            ExtractionError: If the file cannot be parsed
            TransformationError: If a transform step fails as a whole
            LoadError: If the job log cannot be maintained
        """
        extractor = CSVExtractor(self.extract_options, source_name=file_name)

        logger.info(f"Starting extraction for {file_name}")
        try:
            extract_result = extractor.extract(content)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(
                "Unexpected error during extraction",
                context={"file_name": file_name},
                original_exception=e
            )

        return await self._process(extract_result, file_name)

    async def run_file(self, file_path: Union[str, Path]) -> PipelineResult:
        """Run the pipeline over a local file"""
        path = Path(file_path)
        extractor = CSVExtractor(self.extract_options, source_name=path.name)
        return await self._process(extractor.extract_from_file(path), path.name)

    async def run_url(self, url: str) -> PipelineResult:
        """Run the pipeline over a downloaded file"""
        file_name = url.rstrip("/").rsplit("/", 1)[-1] or url
        extractor = CSVExtractor(self.extract_options, source_name=file_name)
        return await self._process(await extractor.extract_from_url(url), file_name)

    async def _process(self, extract_result: ExtractResult, file_name: str) -> PipelineResult:
        records_extracted = extract_result.total_records

        try:
            if records_extracted == 0:
                raise EmptyInputError(
                    "No valid data found in file",
                    context={
                        "file_name": file_name,
                        "parse_errors": [issue.message for issue in extract_result.errors[:10]],
                    }
                )

            # --------------------------------------------------
            # PHASE 2: COLUMN MAPPING
            # --------------------------------------------------
            column_mapping = CSVExtractor.detect_column_mapping(extract_result.headers)
            data_quality = CSVExtractor.get_data_quality_report(extract_result.records)
            logger.info(f"Mapped {len(column_mapping)} of {len(extract_result.headers)} columns")

            # --------------------------------------------------
            # PHASE 3: TRANSFORMATION
            # --------------------------------------------------
            transformer = ProductTransformer(self.transform_options)
            transform_result = transformer.transform(extract_result.records, column_mapping)

            # --------------------------------------------------
            # PHASE 4: DEDUPLICATION
            # --------------------------------------------------
            deduplicated = ProductTransformer.remove_duplicates(transform_result.data)

            # --------------------------------------------------
            # PHASE 5: LOAD
            # --------------------------------------------------
            logger.info(f"Starting load for {len(deduplicated.data)} records")
            load_result = await self.loader.load(deduplicated.data, file_name, self.load_options)

            # --------------------------------------------------
            # PHASE 6: QUALITY REPORT
            # --------------------------------------------------
            quality = ProductTransformer.get_quality_report(extract_result.records, deduplicated.data)

        except (ExtractionError, TransformationError, LoadError) as e:
            logger.error(
                f"ETL pipeline failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            raise

        except Exception as e:
            logger.exception("Unexpected error in ETL pipeline")
            raise ETLException(
                "Unexpected error in ETL pipeline",
                context={"file_name": file_name, "records_extracted": records_extracted},
                original_exception=e
            )

        logger.info(
            f"ETL run completed for {file_name}: extracted {records_extracted}, "
            f"loaded {load_result.records_loaded}, failed {load_result.records_error}"
        )

        return PipelineResult(
            file_name=file_name,
            records_processed=records_extracted,
            parse_errors=extract_result.errors,
            column_mapping=column_mapping,
            data_quality=data_quality,
            transform_statistics=transform_result.statistics,
            transform_errors=transform_result.errors,
            transform_warnings=transform_result.warnings,
            duplicates_removed=deduplicated.duplicates_count,
            load=load_result,
            quality=quality,
        )
