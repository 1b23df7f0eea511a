"""
Transform steps as pure functions.

Each step takes the list produced by the previous one and returns a new list;
none of them mutate their input. ProductTransformer composes them in order:

    map_columns -> clean_records -> fill_missing_values -> remove_outliers
    -> calculate_features -> validate_records

Between clean_records and validate_records, records are plain dicts keyed by
ProductRecord field names, plus a ``_row`` entry holding the 1-based source row
used in messages.
"""

from typing import List, Dict, Any, NamedTuple

import pandas as pd

from core.exceptions import ValidationError
from ingestion.extractors.column_aliases import CANONICAL_FIELDS
from ingestion.transformers.normalizer import FieldNormalizer, is_missing
from schemas.etl import ColumnMapping, DedupResult, RawRecord, TransformOptions
from schemas.product import ProductRecord

NUMERIC_FILL_FIELDS = ("discounted_price", "actual_price", "rating", "rating_count", "discount_percentage")
CATEGORICAL_FILL_FIELDS = ("category",)
OUTLIER_FIELDS = ("discounted_price", "actual_price", "rating")
IQR_MULTIPLIER = 1.5
DEFAULT_CATEGORY = "Unknown"

# canonical column -> record field, cleaned as free text
TEXT_FIELDS = {
    "about": "about",
    "userName": "user_name",
    "userReview": "user_review",
    "reviewTitle": "review_title",
}
URL_FIELDS = {
    "imgLink": "img_link",
    "productLink": "product_link",
}


class CleanOutcome(NamedTuple):
    records: List[Dict[str, Any]]
    errors: List[str]
    warnings: List[str]


# ============================================================================
# 1. Column mapping
# ============================================================================

def map_columns(raw_records: List[RawRecord], mapping: ColumnMapping) -> List[Dict[str, Any]]:
    """Rename mapped headers to canonical names; unmapped columns pass through"""
    mapped_headers = set(mapping.values())
    mapped_records = []

    for row in raw_records:
        mapped = {
            field: row[header]
            for field, header in mapping.items()
            if header in row
        }
        for key, value in row.items():
            if key not in mapped_headers:
                mapped.setdefault(key, value)
        mapped_records.append(mapped)

    return mapped_records


# ============================================================================
# 2. Clean & validate
# ============================================================================

def clean_records(mapped_records: List[Dict[str, Any]], options: TransformOptions) -> CleanOutcome:
    """
    Clean every record independently.

    A record without a product name, or with a non-positive price while
    price validation is on, is rejected with a message; the rest continue.
    """
    records = []
    errors = []
    warnings = []

    for index, row in enumerate(mapped_records):
        row_number = index + 1
        try:
            records.append(_clean_record(row, row_number, options, warnings))
        except ValidationError as e:
            errors.append(f"Row {row_number}: {e.message}")

    return CleanOutcome(records, errors, warnings)


def _clean_record(
    row: Dict[str, Any],
    row_number: int,
    options: TransformOptions,
    warnings: List[str]
) -> Dict[str, Any]:
    normalize = options.normalize_text

    product_name = FieldNormalizer.clean_text(row.get("productName"), normalize)
    if not product_name:
        raise ValidationError(
            f"Missing product name at row {row_number}",
            context={"row": row_number, "field_name": "productName"}
        )

    raw_category = row.get("category")
    if is_missing(raw_category) or raw_category == "":
        category = DEFAULT_CATEGORY
    else:
        category = FieldNormalizer.clean_text(raw_category, normalize) or None

    discounted_price = FieldNormalizer.clean_price(row.get("discountedPrice"))
    actual_price = FieldNormalizer.clean_price(row.get("actualPrice"))

    if options.validate_prices and (discounted_price <= 0 or actual_price <= 0):
        raise ValidationError(
            f"Invalid prices at row {row_number}",
            context={"row": row_number, "field_name": "discountedPrice/actualPrice"}
        )
    if discounted_price > actual_price:
        warnings.append(
            f"Row {row_number}: discounted price {discounted_price} exceeded "
            f"actual price {actual_price}; values swapped"
        )
        discounted_price, actual_price = actual_price, discounted_price

    rating = FieldNormalizer.clean_rating(row.get("rating"))
    rating_count = FieldNormalizer.clean_count(row.get("ratingCount"))

    raw_id = row.get("productId")
    if is_missing(raw_id) or raw_id == "" or raw_id == 0:
        product_id = f"product_{row_number}"
    else:
        product_id = str(raw_id).strip() or f"product_{row_number}"

    raw_user_id = row.get("userId")
    user_id = None if is_missing(raw_user_id) else str(raw_user_id).strip() or None

    record = {
        "_row": row_number,
        "product_id": product_id,
        "product_name": product_name,
        "category": category,
        "discounted_price": discounted_price,
        "actual_price": actual_price,
        "discount_percentage": FieldNormalizer.discount_percentage(discounted_price, actual_price),
        "rating": rating,
        "rating_count": rating_count,
        "user_id": user_id,
        "price_range": "",
        "mean_rating": rating,
        "product_count": 1,
        "average_rating_count": rating_count,
        "extra": {key: value for key, value in row.items() if key not in CANONICAL_FIELDS},
    }
    for column, field in TEXT_FIELDS.items():
        record[field] = FieldNormalizer.clean_text(row.get(column), normalize) or None
    for column, field in URL_FIELDS.items():
        record[field] = FieldNormalizer.clean_url(row.get(column))

    return record


# ============================================================================
# 3. Missing values
# ============================================================================

def count_missing(records: List[Dict[str, Any]]) -> Dict[str, int]:
    """Missing values per fillable field"""
    counts = {}
    for field in NUMERIC_FILL_FIELDS + CATEGORICAL_FILL_FIELDS:
        missing = sum(1 for record in records if is_missing(record.get(field)) or record.get(field) == "")
        if missing:
            counts[field] = missing
    return counts


def fill_missing_values(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Replace missing numeric values with the column mean and missing
    categories with the column mode, both computed over ``records``.

    Rows whose prices were filled get the price order and discount
    percentage re-derived.
    """
    if not records:
        return []

    frame = pd.DataFrame(
        [{field: record.get(field) for field in NUMERIC_FILL_FIELDS + CATEGORICAL_FILL_FIELDS} for record in records]
    )

    means = {}
    for field in NUMERIC_FILL_FIELDS:
        mean = pd.to_numeric(frame[field], errors="coerce").mean()
        means[field] = 0.0 if pd.isna(mean) else float(mean)

    modes = {}
    for field in CATEGORICAL_FILL_FIELDS:
        values = frame[field].dropna()
        values = values[values != ""]
        modes[field] = values.mode().iloc[0] if not values.empty else DEFAULT_CATEGORY

    filled_records = []
    for record in records:
        filled = dict(record)
        price_filled = False

        for field in NUMERIC_FILL_FIELDS:
            if is_missing(filled.get(field)):
                filled[field] = means[field]
                price_filled = price_filled or field in ("discounted_price", "actual_price")

        for field in CATEGORICAL_FILL_FIELDS:
            if not filled.get(field):
                filled[field] = modes[field]

        filled["rating_count"] = int(round(filled["rating_count"]))

        if price_filled:
            if filled["discounted_price"] > filled["actual_price"]:
                filled["discounted_price"], filled["actual_price"] = filled["actual_price"], filled["discounted_price"]
            filled["discount_percentage"] = FieldNormalizer.discount_percentage(
                filled["discounted_price"], filled["actual_price"]
            )

        filled_records.append(filled)

    return filled_records


# ============================================================================
# 4. Outliers
# ============================================================================

def remove_outliers(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Drop records outside Tukey's fences on any of price, actual price or rating.

    Quartiles are the values at positions floor(n * 0.25) and floor(n * 0.75)
    of the sorted column. A record flagged by any single field is dropped.
    """
    if not records:
        return []

    frame = pd.DataFrame(records, columns=list(OUTLIER_FIELDS))
    outliers = pd.Series(False, index=frame.index)

    for field in OUTLIER_FIELDS:
        column = pd.to_numeric(frame[field], errors="coerce")
        ordered = column.sort_values(ignore_index=True)
        q1 = ordered.iloc[int(len(ordered) * 0.25)]
        q3 = ordered.iloc[int(len(ordered) * 0.75)]
        iqr = q3 - q1
        lower_bound = q1 - IQR_MULTIPLIER * iqr
        upper_bound = q3 + IQR_MULTIPLIER * iqr
        outliers |= (column < lower_bound) | (column > upper_bound)

    return [record for record, is_outlier in zip(records, outliers) if not is_outlier]


# ============================================================================
# 5. Features
# ============================================================================

def calculate_features(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Price bucket plus per-row placeholders for later aggregation"""
    featured = []
    for record in records:
        enriched = dict(record)
        enriched["price_range"] = FieldNormalizer.price_range(record["discounted_price"])
        enriched["mean_rating"] = record["rating"]
        enriched["product_count"] = 1
        enriched["average_rating_count"] = record["rating_count"]
        featured.append(enriched)
    return featured


# ============================================================================
# 6. Final validation
# ============================================================================

def validate_records(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # NaN fails every comparison below, so unfilled values are dropped too
    return [
        record for record in records
        if record.get("product_name")
        and record.get("category")
        and record["discounted_price"] > 0
        and record["actual_price"] > 0
        and 0 <= record["rating"] <= 5
        and record["rating_count"] >= 0
    ]


# ============================================================================
# Deduplication
# ============================================================================

def remove_duplicates(records: List[ProductRecord]) -> DedupResult:
    """
    Keep one record per product_id (or name + category when the id is empty).

    On collision the higher rating wins, then the higher rating count; the
    first-seen position of the key is preserved.
    """
    seen: Dict[str, ProductRecord] = {}
    duplicates_count = 0

    for record in records:
        key = record.product_id or f"{record.product_name}_{record.category}"
        existing = seen.get(key)
        if existing is None:
            seen[key] = record
            continue
        duplicates_count += 1
        if (record.rating, record.rating_count) > (existing.rating, existing.rating_count):
            seen[key] = record

    return DedupResult(data=list(seen.values()), duplicates_count=duplicates_count)
