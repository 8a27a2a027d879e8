"""
Data Processing Pipeline

Components for scanning, normalizing, querying, and outputting follower exports.
"""

from follower_insights.pipeline.ingest import scan_archive, ScanResult, Fragment
from follower_insights.pipeline.normalize import normalize_fragments, NormalizedExport, ContactMerger
from follower_insights.pipeline.query import QueryService, Page
from follower_insights.pipeline.outputs import generate_outputs, OutputGenerator, contacts_to_csv, export_csv
from follower_insights.pipeline.service import process_archive

__all__ = [
    "scan_archive",
    "ScanResult",
    "Fragment",
    "normalize_fragments",
    "NormalizedExport",
    "ContactMerger",
    "QueryService",
    "Page",
    "generate_outputs",
    "OutputGenerator",
    "contacts_to_csv",
    "export_csv",
    "process_archive",
]
