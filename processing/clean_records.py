#!/usr/bin/env python3
"""
clean_records.py - Tabular Cleaner

Turns a raw GBPU population or mortality CSV into a tidy per-record table:

1. Drops placeholder columns (auto-index columns such as ``Unnamed: 0`` or ``X1``).
2. Normalises column names to snake_case.
3. Splits the combined age-class column (``"10-14"``, ``"15+"``) into
   ``minimum_age`` and ``maximum_age`` nullable integers.
4. Detaches the dataset description stored in the first rows of the notes
   column into a single annotation string, and drops that column.

The input frame is never modified; a new ``CleanedTable`` is returned.
"""

import re
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

import pandas as pd
from loguru import logger

from .data_utils import clean_numeric, describe_columns, sanitize_column_names, validate_required_columns
from .models import CleanedTable, Record

ANNOTATION_DELIMITER = "; "
RANGE_SEPARATOR = "-"


def placeholder_column_predicate(patterns: Iterable[str]) -> Callable[[str], bool]:
    """Build a predicate matching column names against any of ``patterns``."""
    compiled = [re.compile(pattern) for pattern in patterns]

    def is_placeholder(name: str) -> bool:
        return any(pattern.search(str(name)) for pattern in compiled)

    return is_placeholder


def load_raw_table(path: Union[str, Path]) -> pd.DataFrame:
    """Load a raw CSV table."""
    path = Path(path)
    logger.info(f"📄 Loading raw table from {path}")

    if not path.exists():
        logger.critical(f"❌ CSV file not found: {path}")
        raise FileNotFoundError(f"CSV file not found: {path}")

    df = pd.read_csv(path)
    logger.success(f"  ✅ Loaded {len(df):,} rows, {len(df.columns)} columns")
    return df


def extract_number(series: pd.Series) -> pd.Series:
    """First run of digits in each value as a nullable integer.

    Leading markers such as an apostrophe are skipped; values without digits
    become <NA>, never zero.
    """
    digits = series.astype("string").str.extract(r"(\d+)", expand=False)
    return pd.to_numeric(digits, errors="coerce").astype("Int64")


def split_range(series: pd.Series) -> pd.DataFrame:
    """
    Split range strings on the first separator into age bounds.

    Args:
        series: Range strings such as "10-14", "15+" or "'0-2"

    Returns:
        DataFrame with nullable integer columns minimum_age and maximum_age,
        indexed like ``series``. Open classes ("15+") and unparseable upper
        bounds leave maximum_age unset.
    """
    text = series.astype("string").str.strip()
    parts = text.str.split(RANGE_SEPARATOR, n=1, expand=True)

    empty = pd.Series(pd.NA, index=text.index, dtype="string")
    lower = parts[0] if 0 in parts.columns else empty
    upper = parts[1] if 1 in parts.columns else empty

    return pd.DataFrame(
        {"minimum_age": extract_number(lower), "maximum_age": extract_number(upper)},
        index=series.index,
    )


def extract_annotation(df: pd.DataFrame, column: str, n_rows: int) -> str:
    """Join the non-empty values in the first ``n_rows`` of ``column``."""
    values = df[column].head(n_rows).dropna().astype(str).str.strip()
    values = values[values != ""]
    return ANNOTATION_DELIMITER.join(values)


def clean(
    raw_rows: pd.DataFrame,
    drop_column_predicate: Callable[[str], bool],
    range_column: Optional[str],
    metadata_rows: int,
    *,
    annotation_column: Optional[str] = None,
    numeric_columns: Iterable[str] = (),
    sanitize: bool = True,
) -> CleanedTable:
    """
    Clean a raw record table.

    Args:
        raw_rows: Raw table as loaded from CSV (left untouched)
        drop_column_predicate: True for column names to discard
        range_column: Combined range column to split, or None to skip
        metadata_rows: Number of leading annotation rows describing the dataset
        annotation_column: Column holding dataset metadata, or None to skip
        numeric_columns: Columns coerced to numbers (unparseable -> NaN)
        sanitize: Normalise column names to snake_case after dropping placeholders

    Returns:
        CleanedTable with the per-record frame and the extracted annotation
    """
    logger.info("🧹 Cleaning record table...")

    df = raw_rows.copy()

    dropped = [col for col in df.columns if drop_column_predicate(col)]
    if dropped:
        df = df.drop(columns=dropped)
        logger.info(f"  🗑️ Dropped placeholder columns: {dropped}")

    if sanitize:
        df = sanitize_column_names(df)

    numeric_columns = list(numeric_columns)
    required: List[str] = list(numeric_columns)
    if range_column:
        required.append(range_column)
    if annotation_column:
        required.append(annotation_column)
    validate_required_columns(df, required, "record")

    for col in numeric_columns:
        before = df[col].notna().sum()
        df[col] = clean_numeric(df[col])
        lost = before - df[col].notna().sum()
        if lost:
            logger.warning(f"  ⚠️ {lost} non-numeric values in '{col}' set to missing")

    if range_column:
        bounds = split_range(df[range_column])
        df["minimum_age"] = bounds["minimum_age"]
        df["maximum_age"] = bounds["maximum_age"]
        open_ended = int((bounds["minimum_age"].notna() & bounds["maximum_age"].isna()).sum())
        unparsed = int(df[range_column].notna().sum() - bounds["minimum_age"].notna().sum())
        logger.info(
            f"  ✂️ Split '{range_column}': {open_ended} open-ended, {unparsed} without a lower bound"
        )

    annotation = ""
    if annotation_column:
        annotation = extract_annotation(df, annotation_column, metadata_rows)
        df = df.drop(columns=[annotation_column])
        logger.info(f"  📝 Extracted annotation from '{annotation_column}' ({len(annotation)} chars)")

    logger.debug(f"  Column types: {describe_columns(df)}")
    logger.success(f"  ✅ Cleaned {len(df):,} records")
    return CleanedTable(records=df, annotation=annotation)


def _as_text(value: Any) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_int(value: Any) -> Optional[int]:
    if value is None or pd.isna(value):
        return None
    return int(value)


def _as_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


_FIELD_CASTS = {
    "unit_id": _as_text,
    "unit_name": _as_text,
    "sub_unit": _as_text,
    "year": _as_int,
    "age_class": _as_text,
    "minimum_age": _as_int,
    "maximum_age": _as_int,
    "estimate": _as_float,
    "total_area": _as_float,
    "annotation": _as_text,
}


def to_records(table: Union[CleanedTable, pd.DataFrame], columns: Mapping[str, str]) -> List[Record]:
    """
    Convert a cleaned frame into Record objects.

    Args:
        table: CleanedTable or its records frame
        columns: Record field name -> frame column; minimum_age and
                 maximum_age are picked up automatically when present

    Returns:
        One Record per row, in frame order
    """
    df = table.records if isinstance(table, CleanedTable) else table

    unknown = set(columns) - set(_FIELD_CASTS)
    if unknown:
        raise ValueError(f"Unknown Record fields: {sorted(unknown)}")

    mapping = {field: col for field, col in columns.items() if col in df.columns}
    for field in ("minimum_age", "maximum_age"):
        if field not in mapping and field in df.columns:
            mapping[field] = field

    records = []
    for row in df[list(mapping.values())].itertuples(index=False, name=None):
        values = dict(zip(mapping.keys(), row))
        records.append(Record(**{field: _FIELD_CASTS[field](v) for field, v in values.items()}))
    return records


def records_frame(records: Iterable[Record]) -> pd.DataFrame:
    """Records back to a DataFrame with one column per Record field."""
    return pd.DataFrame([asdict(record) for record in records], columns=list(_FIELD_CASTS))
