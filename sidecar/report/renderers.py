"""
Rendering capabilities used by the report composer.

SnapshotRenderer turns the current report view into one raster image.
PagedDocumentRenderer turns PDF bytes into one raster image per page.
The composer only depends on these two interfaces.
"""

from __future__ import annotations

import asyncio
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import fitz
from PIL import Image, ImageDraw, ImageFont

from report.geometry import REFERENCE_DPI

logger = logging.getLogger(__name__)

DOCUMENT_PLACEHOLDER_TEXT = "AI Report (PDF) is attached on the following pages (full pages)."


@dataclass
class RasterImage:
    image: Image.Image
    dpi: float = REFERENCE_DPI

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def to_jpeg(self, quality: int = 92) -> bytes:
        buf = io.BytesIO()
        self.image.convert("RGB").save(buf, format="JPEG", quality=quality)
        return buf.getvalue()


@dataclass
class ReportView:
    """What the report page shows for the current submission."""

    model: str
    image_label: str
    patient_name: str = ""
    patient_sex: str = ""
    patient_age: str = ""
    exam_date: str = ""
    run_id: Optional[str] = None
    sha256: Optional[str] = None
    raw_image: Optional[bytes] = None
    summary_image: Optional[bytes] = None

    def info_rows(self) -> list[tuple[str, str]]:
        return [
            ("Name", self.patient_name),
            ("Sex / Age", f"{self.patient_sex} / {self.patient_age}"),
            ("Exam Date", self.exam_date),
            ("Model", self.model),
            ("Image", self.image_label),
            ("Run ID", self.run_id or ""),
            ("SHA-256", self.sha256 or ""),
        ]


class SnapshotRenderer(ABC):
    """Rasterizes a report view."""

    @abstractmethod
    async def render(self, view: ReportView) -> RasterImage:
        ...


class PagedDocumentRenderer(ABC):
    """Decodes a paginated document into page images, in page order."""

    @abstractmethod
    async def decode(self, data: bytes) -> list[RasterImage]:
        ...


def _font(size: int) -> ImageFont.ImageFont:
    return ImageFont.load_default(size=size)


def _open_image(data: Optional[bytes], what: str) -> Optional[Image.Image]:
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.convert("RGB")
    except Exception:
        logger.warning("Could not decode %s for the report page", what, exc_info=True)
        return None


class ReportViewRenderer(SnapshotRenderer):
    """Draws the report view with Pillow.

    Layout mirrors the on-screen report without navigation controls: title,
    patient and run details, input image and AI summary side by side, and a
    note in place of the embedded PDF viewer.
    """

    def __init__(self, css_width: int = 1120, padding: int = 16, scale: int = 2):
        self.scale = scale
        self.width = (css_width + padding * 2) * scale
        self.padding = padding * scale

    async def render(self, view: ReportView) -> RasterImage:
        loop = asyncio.get_event_loop()
        image = await loop.run_in_executor(None, self._draw, view)
        return RasterImage(image=image, dpi=REFERENCE_DPI * self.scale)

    def _draw(self, view: ReportView) -> Image.Image:
        s = self.scale
        pad = self.padding
        title_font = _font(24 * s)
        heading_font = _font(16 * s)
        body_font = _font(13 * s)
        row_h = 22 * s
        gap = 14 * s

        panel_w = (self.width - pad * 2 - gap) // 2
        panel_max_h = 360 * s
        panels = []
        for heading, data in (
            ("Input Image", view.raw_image),
            ("AI Summary (PNG)", view.summary_image),
        ):
            img = _open_image(data, heading)
            if img is not None:
                img.thumbnail((panel_w, panel_max_h))
            panels.append((heading, img))
        images_h = max(
            (img.height if img is not None else row_h * 2) for _, img in panels
        )

        rows = view.info_rows()
        height = (
            pad
            + 34 * s                      # title
            + gap
            + row_h * len(rows)
            + gap
            + 24 * s + images_h           # image panels
            + gap
            + 24 * s + row_h * 3          # document placeholder
            + pad
        )

        canvas = Image.new("RGB", (self.width, height), "#ffffff")
        draw = ImageDraw.Draw(canvas)
        y = pad

        draw.text((pad, y), "AI Analysis Report", fill="#111111", font=title_font)
        y += 34 * s + gap

        label_w = 120 * s
        for label, value in rows:
            draw.text((pad, y), label, fill="#555555", font=body_font)
            draw.text((pad + label_w, y), value, fill="#111111", font=body_font)
            y += row_h
        y += gap

        for i, (heading, img) in enumerate(panels):
            x = pad + i * (panel_w + gap)
            draw.text((x, y), heading, fill="#111111", font=heading_font)
            top = y + 24 * s
            if img is not None:
                canvas.paste(img, (x, top))
            else:
                draw.rectangle([x, top, x + panel_w, top + row_h * 2], outline="#cccccc")
                draw.text((x + 8 * s, top + 8 * s), "No image loaded", fill="#888888", font=body_font)
        y += 24 * s + images_h + gap

        draw.text((pad, y), "AI Report (PDF)", fill="#111111", font=heading_font)
        y += 24 * s
        draw.rectangle([pad, y, self.width - pad, y + row_h * 3], outline="#cccccc", fill="#f8f9fa")
        draw.text((pad + 8 * s, y + row_h), DOCUMENT_PLACEHOLDER_TEXT, fill="#333333", font=body_font)

        return canvas


class PymupdfPageRenderer(PagedDocumentRenderer):
    """Rasterizes PDF pages with PyMuPDF."""

    def __init__(self, zoom: float = 2.0):
        self.zoom = zoom

    async def decode(self, data: bytes) -> list[RasterImage]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._decode, data)

    def _decode(self, data: bytes) -> list[RasterImage]:
        doc = fitz.open(stream=data, filetype="pdf")
        try:
            if doc.needs_pass:
                raise ValueError("Report document is encrypted")
            pages: list[RasterImage] = []
            matrix = fitz.Matrix(self.zoom, self.zoom)
            for page in doc:
                pix = page.get_pixmap(matrix=matrix, alpha=False)
                img = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
                pages.append(RasterImage(image=img, dpi=72 * self.zoom))
            return pages
        finally:
            doc.close()
