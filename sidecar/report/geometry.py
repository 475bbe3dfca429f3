"""Page geometry for the combined report (millimetres unless noted)."""

from __future__ import annotations

from dataclasses import dataclass

MM_PER_INCH = 25.4
POINTS_PER_INCH = 72.0
REFERENCE_DPI = 96.0

SNAPSHOT_MARGIN_MM = 8.0
DOCUMENT_PAGE_MARGIN_MM = 6.0


@dataclass(frozen=True)
class PageSize:
    width_mm: float
    height_mm: float

    @property
    def width_pt(self) -> float:
        return mm_to_pt(self.width_mm)

    @property
    def height_pt(self) -> float:
        return mm_to_pt(self.height_mm)


A4 = PageSize(210.0, 297.0)


@dataclass(frozen=True)
class Placement:
    """Where an image lands on a page: top-left corner and size, in mm."""

    x: float
    y: float
    w: float
    h: float

    def to_points(self) -> tuple[float, float, float, float]:
        """Return (x0, y0, x1, y1) in PDF points."""
        return (
            mm_to_pt(self.x),
            mm_to_pt(self.y),
            mm_to_pt(self.x + self.w),
            mm_to_pt(self.y + self.h),
        )


def px_to_mm(px: float, dpi: float = REFERENCE_DPI) -> float:
    return px * MM_PER_INCH / dpi


def mm_to_pt(mm: float) -> float:
    return mm * POINTS_PER_INCH / MM_PER_INCH


def fit_to_page(
    width_px: float,
    height_px: float,
    page: PageSize = A4,
    margin_mm: float = 10.0,
    dpi: float = REFERENCE_DPI,
) -> Placement:
    """Scale an image uniformly into the page's printable area and center it.

    The printable area is the page minus margin_mm on every side. Aspect
    ratio is preserved; the image may be scaled up or down.
    """
    if width_px <= 0 or height_px <= 0:
        raise ValueError(f"Image has no area: {width_px}x{height_px}")
    max_w = page.width_mm - margin_mm * 2
    max_h = page.height_mm - margin_mm * 2
    if max_w <= 0 or max_h <= 0:
        raise ValueError(f"Margin {margin_mm} mm leaves no printable area")

    w_mm = px_to_mm(width_px, dpi)
    h_mm = px_to_mm(height_px, dpi)
    scale = min(max_w / w_mm, max_h / h_mm)

    w = w_mm * scale
    h = h_mm * scale
    return Placement(
        x=(page.width_mm - w) / 2,
        y=(page.height_mm - h) / 2,
        w=w,
        h=h,
    )
