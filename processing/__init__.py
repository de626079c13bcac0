"""
Processing package for the Grizzly Bear Population Unit Pipeline

This package contains the pipeline stages: tabular cleaning, aggregation,
spatial joining and the supporting download and fortify utilities.
"""

__version__ = "0.1.0"

# Import key utilities for easy access
from .aggregate_units import aggregate, combine_units, count_records, to_aggregate_units
from .clean_records import clean, load_raw_table, placeholder_column_predicate, split_range, to_records
from .errors import AmbiguousVersionError, PipelineError, UnresolvedNamesError
from .fortify import fortify
from .models import AggregateUnit, CleanedTable, QueryPoint, Record
from .spatial_join import (
    classify,
    drop_unclassified,
    latest_version,
    load_polygons,
    load_query_points,
    reconcile_and_join,
)

__all__ = [
    "clean",
    "load_raw_table",
    "placeholder_column_predicate",
    "split_range",
    "to_records",
    "aggregate",
    "combine_units",
    "count_records",
    "to_aggregate_units",
    "load_polygons",
    "latest_version",
    "reconcile_and_join",
    "classify",
    "drop_unclassified",
    "load_query_points",
    "fortify",
    "Record",
    "CleanedTable",
    "AggregateUnit",
    "QueryPoint",
    "PipelineError",
    "UnresolvedNamesError",
    "AmbiguousVersionError",
]
