"""Results writing domain exports."""

from .report_models import RunMetadata, SpecRecord, SpecStatus
from .spec_results_workbook import SpecResultsCollector, write_spec_results_workbook

__all__ = [
    "RunMetadata",
    "SpecRecord",
    "SpecResultsCollector",
    "SpecStatus",
    "write_spec_results_workbook",
]
