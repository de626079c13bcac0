"""Data-integrity errors raised by the processing stages."""

from typing import List, Optional, Sequence


class PipelineError(Exception):
    """Base class for pipeline failures that must stop the run."""


class UnresolvedNamesError(PipelineError):
    """Aggregate keys and polygon names still differ after applying the naming map."""

    def __init__(self, unmatched_units: Sequence[str], unmatched_polygons: Sequence[str]):
        self.unmatched_units: List[str] = sorted(unmatched_units)
        self.unmatched_polygons: List[str] = sorted(unmatched_polygons)
        parts = []
        if self.unmatched_units:
            parts.append(f"aggregate keys without a polygon: {self.unmatched_units}")
        if self.unmatched_polygons:
            parts.append(f"polygons without an aggregate key: {self.unmatched_polygons}")
        super().__init__("Unresolved name mismatch; " + "; ".join(parts))


class AmbiguousVersionError(PipelineError):
    """No single authoritative polygon version could be selected."""

    def __init__(
        self,
        message: str,
        version: Optional[object] = None,
        names: Optional[Sequence[str]] = None,
    ):
        self.version = version
        self.names: List[str] = sorted(names or [])
        detail = message
        if version is not None:
            detail += f" (version {version})"
        if self.names:
            detail += f": {self.names}"
        super().__init__(detail)
