"""
Transform extracted rows into validated ProductRecords
"""

import math
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import TransformationError
from ingestion.transformers import steps
from schemas.etl import (
    ColumnMapping,
    DedupResult,
    QualityReport,
    RawRecord,
    TransformOptions,
    TransformResult,
    TransformStatistics,
)
from schemas.product import ProductRecord
import logging

logger = logging.getLogger(__name__)

REQUIRED_MAPPINGS = ("productName", "discountedPrice", "actualPrice")


class ProductTransformer:
    """
    Clean, repair and enrich extracted product rows.

    Handles:
    - Column mapping to the canonical schema
    - Per-row cleaning with row-level rejection
    - Mean/mode filling, IQR outlier removal, price buckets
    - Final validation into ProductRecord models

    Row problems end up in ``errors``/``warnings`` of the result; only an
    unexpected failure of a whole step raises TransformationError.
    """

    def __init__(self, options: Optional[TransformOptions] = None):
        self.options = options or TransformOptions()

    def transform(
        self,
        raw_records: List[RawRecord],
        column_mapping: Optional[ColumnMapping] = None
    ) -> TransformResult:
        """
        Run the transform steps in order.

        Args:
            raw_records: Records from the extractor
            column_mapping: Canonical field -> original header

        Returns:
            TransformResult with cleaned data, row errors, warnings and statistics

        Raises:
            TransformationError: If a step fails for reasons other than row data
        """
        mapping = column_mapping or {}
        errors: List[str] = []
        warnings: List[str] = []
        transformations: List[str] = []

        missing_fields = [field for field in REQUIRED_MAPPINGS if field not in mapping]
        if missing_fields:
            warnings.append(f"No column matched: {', '.join(missing_fields)}")

        try:
            mapped = steps.map_columns(raw_records, mapping)
            transformations.append("Column mapping applied")

            outcome = steps.clean_records(mapped, self.options)
            records = outcome.records
            errors.extend(outcome.errors)
            warnings.extend(outcome.warnings)
            transformations.append("Data cleaning completed")

            if self.options.fill_missing_values:
                for field, count in steps.count_missing(records).items():
                    warnings.append(f"Filled {count} missing values in {field}")
                records = steps.fill_missing_values(records)
                transformations.append("Missing values filled")

            outliers_removed = 0
            if self.options.remove_outliers:
                before = len(records)
                records = steps.remove_outliers(records)
                outliers_removed = before - len(records)
                transformations.append(f"Outliers removed: {outliers_removed} records")

            if self.options.calculate_features:
                records = steps.calculate_features(records)
                transformations.append("Feature engineering completed")

            data = self._to_models(steps.validate_records(records), errors)
            transformations.append("Data validation completed")

        except Exception as e:
            logger.exception("Transformation failed")
            raise TransformationError(
                "Transformation failed",
                context={"records": len(raw_records)},
                original_exception=e
            )

        logger.info(
            f"Transform complete: {len(data)} of {len(raw_records)} records kept, "
            f"{len(outcome.errors)} rejected, {outliers_removed} outliers removed"
        )

        return TransformResult(
            data=data,
            errors=errors,
            warnings=warnings,
            statistics=TransformStatistics(
                original_count=len(raw_records),
                cleaned_count=len(data),
                removed_count=len(raw_records) - len(data),
                rejected_count=len(outcome.errors),
                outliers_removed=outliers_removed,
                transformations=transformations,
            ),
        )

    @staticmethod
    def _to_models(records, errors: List[str]) -> List[ProductRecord]:
        models = []
        for record in records:
            fields = {key: value for key, value in record.items() if key != "_row"}
            try:
                models.append(ProductRecord(**fields))
            except PydanticValidationError as e:
                first = e.errors()[0]
                location = ".".join(str(part) for part in first["loc"]) or "record"
                errors.append(f"Row {record['_row']}: {location}: {first['msg']}")
        return models

    @staticmethod
    def remove_duplicates(records: List[ProductRecord]) -> DedupResult:
        """Collapse records sharing a key; see steps.remove_duplicates"""
        result = steps.remove_duplicates(records)
        if result.duplicates_count:
            logger.info(f"Removed {result.duplicates_count} duplicate records")
        return result

    @staticmethod
    def get_quality_report(original: List[RawRecord], cleaned: List[ProductRecord]) -> QualityReport:
        """
        Score the cleaned output against the raw input.

        - completeness: share of original rows that survived
        - accuracy: share of cleaned rows whose rating, price order and
          discount are within range
        - consistency: share with non-blank name and category
        - uniqueness: distinct product ids over cleaned rows
        """
        total = len(cleaned)

        accurate = sum(
            1 for record in cleaned
            if 0 <= record.rating <= 5
            and record.discounted_price <= record.actual_price
            and 0 <= record.discount_percentage <= 100
        )
        consistent = sum(
            1 for record in cleaned
            if record.product_name.strip() and record.category.strip()
        )
        unique_products = len({record.product_id for record in cleaned})

        completeness = _percent(total, len(original))
        accuracy = _percent(accurate, total)
        consistency = _percent(consistent, total)
        uniqueness = _percent(unique_products, total)
        overall = _round_half_up((completeness + accuracy + consistency + uniqueness) / 4)

        return QualityReport(
            completeness=completeness,
            accuracy=accuracy,
            consistency=consistency,
            uniqueness=uniqueness,
            summary=(
                f"Data quality: {overall}% overall. "
                f"{total} records processed from {len(original)} original records."
            ),
        )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return max(0, min(100, _round_half_up(part / whole * 100)))
