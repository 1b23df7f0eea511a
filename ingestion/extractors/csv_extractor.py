"""
Delimited-text extractor for uploaded product spreadsheets.

Turns raw bytes into loosely-typed records keyed by the original headers,
guesses which header feeds each canonical product field, and reports on the
shape and quality of the input before any cleaning happens.

Malformed rows never abort a parse: they are reported as ParseIssue entries
and left out of the records. Only input that cannot be read at all
(undecodable bytes, an unreadable file) raises CSVExtractionError.
"""

import csv
import io
import math
import re
from pathlib import Path
from typing import List, Dict, Any, Optional, Union

import httpx
import pandas as pd

from core.config import settings
from core.exceptions import CSVExtractionError
from ingestion.extractors.column_aliases import COLUMN_ALIASES, ID_COLUMNS, MISSING_MARKERS
from schemas.etl import (
    ColumnInfo,
    ColumnMapping,
    ColumnStats,
    DataQualityReport,
    ExtractOptions,
    ExtractResult,
    ParseIssue,
    RawRecord,
    RawValue,
)
import logging

logger = logging.getLogger(__name__)

NUMERIC_PATTERN = re.compile(r"^\s*-?(\d+\.?|\.\d+|\d+\.\d+)([eE][-+]?\d+)?\s*$")
BOOLEAN_VALUES = {"true": True, "TRUE": True, "True": True, "false": False, "FALSE": False, "False": False}


class CSVExtractor:
    """
    Extract records from delimited text.
    
    Supports:
    - Delimiter probing among comma, semicolon, tab and pipe
    - Per-cell type inference (numbers, booleans, empty -> None)
    - Row-level error reporting for rows with the wrong field count or an
      unterminated quote
    - Column mapping detection and a pre-cleaning quality report
    """
    
    CANDIDATE_DELIMITERS = [",", ";", "\t", "|"]
    PROBE_LINES = 10
    
    def __init__(self, options: Optional[ExtractOptions] = None, source_name: str = "upload"):
        self.options = options or ExtractOptions()
        self.source_name = source_name
    
    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------
    
    def extract(self, content: Union[bytes, str]) -> ExtractResult:
        """
        Parse delimited text into records.
        
        Args:
            content: Raw upload bytes or already-decoded text
        
        Returns:
            ExtractResult with records, row-level issues and the detected delimiter
        
        Raises:
            CSVExtractionError: If the input cannot be decoded or parsed at all
        """
        text = self._decode(content)
        
        if not text.strip():
            logger.warning(f"No data in {self.source_name}")
            return ExtractResult(
                errors=[ParseIssue(code="EmptyInput", message="Input contains no data")]
            )
        
        delimiter = self.options.delimiter or self.detect_delimiter(text)

        try:
            headers, rows, issues = self._scan_rows(text, delimiter)
        except csv.Error as e:
            raise CSVExtractionError(
                "CSV parsing failed",
                context={"file_name": self.source_name, "delimiter": delimiter},
                original_exception=e
            )

        if headers is None:
            return ExtractResult(
                errors=[ParseIssue(code="EmptyInput", message="Input contains no header row")],
                delimiter=delimiter,
            )

        df = pd.DataFrame(rows, columns=headers, dtype=str)
        records: List[RawRecord] = [
            {header: self._coerce_value(value) for header, value in zip(headers, row)}
            for row in df.itertuples(index=False, name=None)
        ]
        
        if issues:
            logger.warning(f"{len(issues)} malformed rows skipped in {self.source_name}")
        
        logger.info(
            f"Extracted {len(records)} records from {self.source_name} "
            f"(delimiter={delimiter!r}, columns={len(headers)})"
        )
        
        return ExtractResult(
            records=records,
            errors=issues,
            total_records=len(records),
            headers=headers,
            delimiter=delimiter,
        )
    
    def extract_from_file(self, file_path: Union[str, Path]) -> ExtractResult:
        """Read and parse a local file"""
        path = Path(file_path)
        
        try:
            content = path.read_bytes()
        except OSError as e:
            raise CSVExtractionError(
                "Failed to read file",
                context={"file_path": str(path)},
                original_exception=e
            )
        
        logger.info(f"Reading CSV from {path}")
        return self.extract(content)
    
    async def extract_from_url(self, url: str, timeout: Optional[float] = None) -> ExtractResult:
        """Download and parse a remote file"""
        timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise CSVExtractionError(
                "CSV download failed",
                context={"url": url},
                original_exception=e
            )
        
        logger.info(f"Downloaded {len(response.content)} bytes from {url}")
        return self.extract(response.content)
    
    def detect_delimiter(self, text: str) -> str:
        """
        Pick the candidate delimiter that splits the first lines most consistently.
        
        A candidate must yield more than one field per line on average. Lower
        variation in field count wins, then more fields, then candidate order.
        """
        lines = [line for line in text.splitlines() if line.strip()][:self.PROBE_LINES]
        best: Optional[str] = None
        best_score = None
        
        for delimiter in self.CANDIDATE_DELIMITERS:
            counts = [len(row) for row in csv.reader(lines, delimiter=delimiter)]
            if not counts:
                continue
            average = sum(counts) / len(counts)
            if average <= 1:
                continue
            delta = sum(abs(current - previous) for previous, current in zip(counts, counts[1:]))
            score = (delta, -average)
            if best_score is None or score < best_score:
                best, best_score = delimiter, score
        
        return best or ","
    
    def _scan_rows(self, text: str, delimiter: str):
        """
        Split text into the header and the rows that match its field count.

        Every data row is numbered from 1, including the ones that are
        reported instead of kept. A quoted field still open at the end of
        the input swallows the rest of the file; that row is reported as
        MissingQuotes.

        Returns:
            (headers, rows, issues); headers is None when there is no header row
        """
        lines = io.StringIO(text).readlines()
        reader = csv.reader(io.StringIO(text), delimiter=delimiter)
        headers: Optional[List[str]] = None
        rows: List[List[str]] = []
        issues: List[ParseIssue] = []
        position = 0
        consumed = 0

        for fields in reader:
            start, consumed = consumed, reader.line_num
            blank = not fields or (len(fields) == 1 and not fields[0].strip())

            if headers is None:
                if not blank:
                    headers = fields
                continue
            if blank and self.options.skip_empty_lines:
                continue

            position += 1
            if consumed == len(lines) and self._has_open_quote(lines[start:consumed], delimiter):
                issues.append(ParseIssue(
                    code="MissingQuotes",
                    message="Quoted field unterminated",
                    row=position
                ))
            elif len(fields) > len(headers):
                issues.append(ParseIssue(
                    code="TooManyFields",
                    message=f"Too many fields: expected {len(headers)} fields but parsed {len(fields)}",
                    row=position
                ))
            elif len(fields) < len(headers):
                issues.append(ParseIssue(
                    code="TooFewFields",
                    message=f"Too few fields: expected {len(headers)} fields but parsed {len(fields)}",
                    row=position
                ))
            else:
                rows.append(fields)

        return headers, rows, issues

    @staticmethod
    def _has_open_quote(segment: List[str], delimiter: str) -> bool:
        """True when the strict dialect rejects the row's physical lines"""
        try:
            for _ in csv.reader(segment, delimiter=delimiter, strict=True):
                pass
        except csv.Error:
            return True
        return False

    def _decode(self, content: Union[bytes, str]) -> str:
        if isinstance(content, bytes):
            try:
                content = content.decode(self.options.encoding)
            except (UnicodeDecodeError, LookupError) as e:
                raise CSVExtractionError(
                    "Input is not valid text",
                    context={"file_name": self.source_name, "encoding": self.options.encoding},
                    original_exception=e
                )
        return content.lstrip("\ufeff")
    
    @staticmethod
    def _is_nan(value: Any) -> bool:
        return value is None or (isinstance(value, float) and math.isnan(value))
    
    @staticmethod
    def _coerce_value(value: Any) -> RawValue:
        """Infer a scalar type for one cell"""
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            return value
        if value in BOOLEAN_VALUES:
            return BOOLEAN_VALUES[value]
        if NUMERIC_PATTERN.match(value):
            number = float(value)
            if number.is_integer() and not re.search(r"[.eE]", value):
                return int(value)
            return number
        return value
    
    # ------------------------------------------------------------------
    # Column mapping and reports
    # ------------------------------------------------------------------
    
    @staticmethod
    def detect_column_mapping(headers: List[str]) -> ColumnMapping:
        """
        Map canonical field names to the best matching original header.
        
        For each canonical field, aliases are tried in order and the first
        header that equals, contains, or is contained in the alias wins
        (case-insensitive, trimmed).
        """
        normalized = [header.lower().strip() for header in headers]
        mapping: ColumnMapping = {}
        
        for field, aliases in COLUMN_ALIASES.items():
            for alias in aliases:
                match = next(
                    (
                        index for index, header in enumerate(normalized)
                        if header == alias or alias in header or header in alias
                    ),
                    None
                )
                if match is not None:
                    mapping[field] = headers[match]
                    break
        
        return mapping
    
    @classmethod
    def get_data_quality_report(cls, records: List[RawRecord]) -> DataQualityReport:
        """
        Profile extracted records before cleaning.
        
        Duplicate rows are only counted when the first record carries a
        product_id/productId value; otherwise the count is 0.
        """
        if not records:
            return DataQualityReport()
        
        total = len(records)
        columns = list(records[0].keys())
        missing_values: Dict[str, int] = {}
        column_stats: Dict[str, ColumnStats] = {}
        
        for column in columns:
            values = [record.get(column) for record in records]
            present = [value for value in values if not cls._is_missing(value)]
            missing_values[column] = total - len(present)
            
            numbers = [number for number in map(cls._to_number, present) if number is not None]
            unique_count = len(set(present))
            
            if present and len(numbers) >= 0.8 * len(present):
                column_stats[column] = ColumnStats(
                    type="numeric",
                    unique_count=unique_count,
                    min=min(numbers),
                    max=max(numbers),
                    mean=sum(numbers) / len(numbers),
                )
            elif unique_count < 0.1 * total:
                column_stats[column] = ColumnStats(type="categorical", unique_count=unique_count)
            else:
                column_stats[column] = ColumnStats(type="text", unique_count=unique_count)
        
        duplicate_records = 0
        id_field = next((field for field in ID_COLUMNS if records[0].get(field)), None)
        if id_field:
            seen = set()
            for record in records:
                record_id = record.get(id_field)
                if not record_id:
                    continue
                if record_id in seen:
                    duplicate_records += 1
                else:
                    seen.add(record_id)
        
        empty_records = sum(
            1 for record in records
            if all(cls._is_nan(value) or value == "" for value in record.values())
        )
        
        return DataQualityReport(
            total_records=total,
            missing_values=missing_values,
            duplicate_records=duplicate_records,
            empty_records=empty_records,
            column_stats=column_stats,
        )
    
    @staticmethod
    def preview_data(records: List[RawRecord], rows: int = 5) -> List[RawRecord]:
        """First few rows of the upload"""
        return records[:rows]
    
    @classmethod
    def get_column_info(cls, records: List[RawRecord]) -> List[ColumnInfo]:
        """Per-column type, sample values and missing count"""
        if not records:
            return []
        
        report = cls.get_data_quality_report(records)
        
        return [
            ColumnInfo(
                name=column,
                type=report.column_stats[column].type if column in report.column_stats else "unknown",
                sample_values=[
                    record.get(column) for record in records[:3]
                    if record.get(column) is not None
                ],
                missing_count=report.missing_values.get(column, 0),
            )
            for column in records[0].keys()
        ]
    
    @classmethod
    def _is_missing(cls, value: Any) -> bool:
        return cls._is_nan(value) or (isinstance(value, str) and value in MISSING_MARKERS)
    
    @classmethod
    def _to_number(cls, value: Any) -> Optional[float]:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return None if cls._is_nan(value) else float(value)
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
        return None if math.isnan(number) else number
