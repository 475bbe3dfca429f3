from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import fitz

from errors import ComposeFailed, NothingToCompose
from report.geometry import (
    A4,
    DOCUMENT_PAGE_MARGIN_MM,
    SNAPSHOT_MARGIN_MM,
    PageSize,
    Placement,
    fit_to_page,
)
from report.renderers import (
    PagedDocumentRenderer,
    RasterImage,
    ReportView,
    SnapshotRenderer,
)

logger = logging.getLogger(__name__)

REPORT_FILENAME = "AI_Analysis_Report.pdf"
PREVIEW_TITLE = "Preview: AI Analysis Report (Page 1) + AI Report(PDF) (Following Pages)"
_JPEG_QUALITY = 92


@dataclass
class CombinedReport:
    data: bytes
    page_count: int
    filename: str = REPORT_FILENAME
    content_type: str = "application/pdf"


class ReportComposer:
    """Builds the downloadable report: view snapshot first, then every PDF page."""

    def __init__(
        self,
        snapshot_renderer: SnapshotRenderer,
        document_renderer: PagedDocumentRenderer,
        page_size: PageSize = A4,
    ):
        self.snapshot_renderer = snapshot_renderer
        self.document_renderer = document_renderer
        self.page_size = page_size

    async def compose(
        self,
        view: ReportView,
        document_bytes: Optional[bytes],
    ) -> CombinedReport:
        if not document_bytes:
            raise NothingToCompose("No AI report document is loaded")

        try:
            snapshot = await self.snapshot_renderer.render(view)
            pages = await self.document_renderer.decode(document_bytes)
            loop = asyncio.get_event_loop()
            data = await loop.run_in_executor(None, self._assemble, snapshot, pages)
        except Exception as exc:
            logger.exception("Combined report generation failed")
            raise ComposeFailed(f"Failed to generate the combined report: {exc}") from exc

        page_count = 1 + len(pages)
        logger.info("Composed combined report: %d pages, %d bytes", page_count, len(data))
        return CombinedReport(data=data, page_count=page_count)

    def _assemble(self, snapshot: RasterImage, pages: list[RasterImage]) -> bytes:
        doc = fitz.open()
        try:
            self._add_image_page(doc, snapshot, SNAPSHOT_MARGIN_MM)
            for page in pages:
                self._add_image_page(doc, page, DOCUMENT_PAGE_MARGIN_MM)
            doc.set_metadata({"title": "AI Analysis Report", "producer": "larynx-report-sidecar"})
            return doc.tobytes(garbage=3, deflate=True)
        finally:
            doc.close()

    def _add_image_page(self, doc, raster: RasterImage, margin_mm: float) -> Placement:
        box = fit_to_page(
            raster.width, raster.height, self.page_size, margin_mm, dpi=raster.dpi,
        )
        page = doc.new_page(width=self.page_size.width_pt, height=self.page_size.height_pt)
        page.insert_image(fitz.Rect(*box.to_points()), stream=raster.to_jpeg(_JPEG_QUALITY))
        return box
