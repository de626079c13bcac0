"""
Typed rows passed between pipeline stages.

Every value that can be missing in the source data is Optional; missing is
None rather than a sentinel float.
"""

from dataclasses import dataclass
from typing import Optional

import pandas as pd


@dataclass(frozen=True)
class Record:
    """One cleaned observation from a mortality or population table."""

    unit_id: Optional[str] = None
    unit_name: Optional[str] = None
    sub_unit: Optional[str] = None
    year: Optional[int] = None
    age_class: Optional[str] = None
    minimum_age: Optional[int] = None
    maximum_age: Optional[int] = None
    estimate: Optional[float] = None
    total_area: Optional[float] = None
    annotation: Optional[str] = None


@dataclass(frozen=True)
class CleanedTable:
    """Per-record table plus the dataset-wide annotation detached from it."""

    records: pd.DataFrame
    annotation: str


@dataclass(frozen=True)
class AggregateUnit:
    """Summed statistics for one grouping key."""

    key: str
    count: float
    area: float
    density: Optional[float]

    @property
    def density_undefined(self) -> bool:
        return self.density is None


@dataclass(frozen=True)
class QueryPoint:
    """A location to classify; containing_unit_name is None outside all polygons."""

    point_id: str
    x: float
    y: float
    containing_unit_name: Optional[str] = None
