from report.composer import REPORT_FILENAME, CombinedReport, ReportComposer
from report.handles import DisplayHandle, HandleArena
from report.renderers import (
    PagedDocumentRenderer,
    PymupdfPageRenderer,
    RasterImage,
    ReportView,
    ReportViewRenderer,
    SnapshotRenderer,
)

__all__ = [
    "REPORT_FILENAME",
    "CombinedReport",
    "ReportComposer",
    "DisplayHandle",
    "HandleArena",
    "PagedDocumentRenderer",
    "PymupdfPageRenderer",
    "RasterImage",
    "ReportView",
    "ReportViewRenderer",
    "SnapshotRenderer",
]
