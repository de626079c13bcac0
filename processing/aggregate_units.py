#!/usr/bin/env python3
"""
aggregate_units.py - Aggregator

Sums cleaned records per grouping key (usually the GBPU name) and derives
population density:

    density = count / area * 1000

Missing values contribute zero to a sum. A group whose area sums to zero has
an undefined (NaN) density and is flagged in ``density_undefined``.
"""

from typing import Iterable, List, Mapping, Sequence, Union

import numpy as np
import pandas as pd
from loguru import logger

from .clean_records import records_frame
from .data_utils import validate_required_columns
from .models import AggregateUnit, Record

DENSITY_SCALE = 1000
DERIVED_COLUMNS = ("density", "density_undefined")

RecordsLike = Union[pd.DataFrame, Iterable[Record]]


def _as_frame(records: RecordsLike) -> pd.DataFrame:
    if isinstance(records, pd.DataFrame):
        return records
    return records_frame(records)


def add_density(units: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of ``units`` with density and density_undefined columns."""
    units = units.copy()
    area = units["area"].where(units["area"] != 0)
    units["density"] = units["count"] / area * DENSITY_SCALE
    units["density_undefined"] = units["density"].isna()
    return units


def _derive_density(units: pd.DataFrame, group_key: str) -> pd.DataFrame:
    """Add density columns when both count and area were summed."""
    if "count" not in units.columns or "area" not in units.columns:
        return units
    units = add_density(units)
    _warn_undefined(units, group_key)
    return units


def _warn_undefined(units: pd.DataFrame, group_key: str) -> None:
    undefined = units.loc[units["density_undefined"], group_key].tolist()
    if undefined:
        logger.warning(f"  ⚠️ Density undefined (zero area) for {len(undefined)} units: {undefined}")


def aggregate(
    records: RecordsLike,
    group_key: str,
    value_fields: Mapping[str, str],
) -> pd.DataFrame:
    """
    Sum value fields per distinct group key.

    Args:
        records: Cleaned records frame or Record objects
        group_key: Column to group on (exact string equality)
        value_fields: Output column -> source column

    Returns:
        One row per key, sorted by key, with the summed fields; density and
        density_undefined are added when "count" and "area" are both mapped
    """
    logger.info(f"➕ Aggregating records by '{group_key}'...")

    fields = dict(value_fields)
    if not fields:
        raise ValueError("value_fields must map at least one output column")

    df = _as_frame(records)
    validate_required_columns(df, [group_key, *fields.values()], "aggregation")

    keyed = df[df[group_key].notna()]
    if len(keyed) < len(df):
        logger.warning(f"  ⚠️ Skipping {len(df) - len(keyed)} records with no '{group_key}'")

    summed = pd.DataFrame(
        {out: pd.to_numeric(keyed[src], errors="coerce").fillna(0).astype(float) for out, src in fields.items()},
        index=keyed.index,
    )
    summed.insert(0, group_key, keyed[group_key].astype(str))

    units = summed.groupby(group_key, sort=True)[list(fields)].sum().reset_index()
    units = _derive_density(units, group_key)

    logger.success(f"  ✅ Aggregated {len(df):,} records into {len(units):,} units")
    return units


def combine_units(frames: Sequence[pd.DataFrame], group_key: str) -> pd.DataFrame:
    """
    Re-sum already aggregated frames (e.g. batches, or keys renamed onto the
    same polygon) and recompute density.
    """
    stacked = pd.concat(list(frames), ignore_index=True)
    value_columns = [col for col in stacked.columns if col != group_key and col not in DERIVED_COLUMNS]
    units = stacked.groupby(group_key, sort=True)[value_columns].sum().reset_index()
    return _derive_density(units, group_key)


def to_aggregate_units(units: pd.DataFrame, group_key: str) -> List[AggregateUnit]:
    """Typed view of an aggregate frame; undefined density becomes None."""
    return [
        AggregateUnit(
            key=str(row[group_key]),
            count=float(row["count"]),
            area=float(row["area"]),
            density=None if pd.isna(row["density"]) else float(row["density"]),
        )
        for _, row in units.iterrows()
    ]


def count_records(records: RecordsLike, keys: Sequence[str]) -> pd.DataFrame:
    """Number of records per key combination, sorted by the keys."""
    df = _as_frame(records)
    validate_required_columns(df, keys, "count")
    counts = df.groupby(list(keys), sort=True).size().reset_index(name="records")
    logger.info(f"  🔢 Counted {len(df):,} records across {len(counts):,} {'/'.join(keys)} groups")
    return counts


def density_summary(units: pd.DataFrame) -> dict:
    """Headline numbers for logging and reports."""
    defined = units.loc[~units["density_undefined"], "density"]
    return {
        "units": int(len(units)),
        "total_count": float(units["count"].sum()),
        "total_area": float(units["area"].sum()),
        "mean_density": float(defined.mean()) if len(defined) else float(np.nan),
        "undefined_density": int(units["density_undefined"].sum()),
    }


def units_frame(units: Iterable[AggregateUnit], group_key: str) -> pd.DataFrame:
    """AggregateUnit objects back to an aggregate frame keyed by ``group_key``."""
    rows = [{group_key: unit.key, "count": unit.count, "area": unit.area} for unit in units]
    frame = pd.DataFrame(rows, columns=[group_key, "count", "area"])
    return add_density(frame)
