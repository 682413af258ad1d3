from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from photodesk.domain.errors import GeometryError, PrintFitError
from photodesk.domain.models import EncodedImage, PrintSheetSpec
from photodesk.domain.types import ImageBuffer
from photodesk.features.units.logic import round_px, to_pixel_count
from photodesk.features.units.models import Unit
from photodesk.kernel.image.logic import composite_over, encode_png, new_canvas, parse_color
from photodesk.kernel.image.validation import ensure_image
from photodesk.kernel.system.config import APP_CONFIG
from photodesk.kernel.system.logging import get_logger
from photodesk.kernel.system.performance import time_function

logger = get_logger(__name__)

PAPER_COLOR = (255, 255, 255, 255)


@dataclass(frozen=True)
class SheetLayout:
    """
    Grid of identical stamps centred on a sheet. The last row/column has no
    trailing cutting margin.
    """

    paper_w: int
    paper_h: int
    stamp_w: int
    stamp_h: int
    margin: int
    cols: int
    rows: int

    @property
    def effective_w(self) -> int:
        return self.stamp_w + self.margin

    @property
    def effective_h(self) -> int:
        return self.stamp_h + self.margin

    @property
    def fits(self) -> bool:
        return self.cols > 0 and self.rows > 0

    @property
    def grid_w(self) -> int:
        return self.cols * self.effective_w - self.margin

    @property
    def grid_h(self) -> int:
        return self.rows * self.effective_h - self.margin

    @property
    def offset_x(self) -> float:
        return (self.paper_w - self.grid_w) / 2.0

    @property
    def offset_y(self) -> float:
        return (self.paper_h - self.grid_h) / 2.0

    def positions(self) -> List[Tuple[int, int]]:
        """
        Top-left pixel of every stamp, row by row.
        """
        return [
            (
                round_px(self.offset_x + col * self.effective_w),
                round_px(self.offset_y + row * self.effective_h),
            )
            for row in range(self.rows)
            for col in range(self.cols)
        ]


@dataclass
class PrintResult:
    sheets: List[Tuple[str, EncodedImage]] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)


class PrintService:
    """
    Tiles finished photos onto fixed-size paper sheets for printing.
    """

    @staticmethod
    def sheet_metrics(spec: PrintSheetSpec) -> Tuple[int, int]:
        """
        (border_px, margin_px) for a sheet spec, rounded once.
        """
        border_px = to_pixel_count(spec.border_mm, Unit.MM, spec.dpi)
        margin_px = to_pixel_count(spec.cutting_margin_mm, Unit.MM, spec.dpi)
        return border_px, margin_px

    @staticmethod
    def build_stamp(
        photo: ImageBuffer,
        border_px: int,
        background: str = "#ffffff",
        border_color: Optional[Tuple[int, int, int, float]] = None,
    ) -> ImageBuffer:
        """
        Photo + background fill + outlined border, as tiled on the sheet.
        """
        photo = ensure_image(photo)
        h, w = photo.shape[:2]
        stamp = new_canvas(w + 2 * border_px, h + 2 * border_px, parse_color(background))
        composite_over(stamp, photo, border_px, border_px)

        if border_px > 0:
            r, g, b, a = border_color or APP_CONFIG.border_color
            stroke = (r, g, b, int(round(a * 255)))
            sh, sw = stamp.shape[:2]
            # Four bands of width border_px along the stamp edge
            bands = [
                (0, 0, sw, border_px),
                (0, sh - border_px, sw, border_px),
                (0, border_px, border_px, sh - 2 * border_px),
                (sw - border_px, border_px, border_px, sh - 2 * border_px),
            ]
            for x, y, bw, bh in bands:
                if bw > 0 and bh > 0:
                    composite_over(stamp, new_canvas(bw, bh, stroke), x, y)

        return stamp

    @staticmethod
    def plan_grid(paper_w: int, paper_h: int, stamp_w: int, stamp_h: int, margin: int) -> SheetLayout:
        if stamp_w <= 0 or stamp_h <= 0:
            raise GeometryError(f"Stamp has no size ({stamp_w}x{stamp_h})")
        cols = paper_w // (stamp_w + margin)
        rows = paper_h // (stamp_h + margin)
        return SheetLayout(
            paper_w=paper_w,
            paper_h=paper_h,
            stamp_w=stamp_w,
            stamp_h=stamp_h,
            margin=margin,
            cols=cols,
            rows=rows,
        )

    @staticmethod
    def plan_sheet(stamp: ImageBuffer, spec: PrintSheetSpec) -> SheetLayout:
        paper_w, paper_h = spec.paper_size_px
        _, margin_px = PrintService.sheet_metrics(spec)
        stamp_h, stamp_w = stamp.shape[:2]
        layout = PrintService.plan_grid(paper_w, paper_h, stamp_w, stamp_h, margin_px)
        if not layout.fits:
            raise PrintFitError(
                f"Photo ({stamp_w}x{stamp_h}px with border) is too large for {spec.paper} paper",
                cols=layout.cols,
                rows=layout.rows,
            )
        return layout

    @staticmethod
    @time_function
    def render_sheet(photo: ImageBuffer, spec: PrintSheetSpec) -> ImageBuffer:
        """
        Fills one sheet with as many copies of `photo` as fit.
        """
        border_px, _ = PrintService.sheet_metrics(spec)
        stamp = PrintService.build_stamp(photo, border_px, spec.background)
        layout = PrintService.plan_sheet(stamp, spec)

        paper = new_canvas(layout.paper_w, layout.paper_h, PAPER_COLOR)
        for x, y in layout.positions():
            composite_over(paper, stamp, x, y)

        logger.info(
            f"Sheet {spec.paper}: {layout.cols}x{layout.rows} copies of "
            f"{layout.stamp_w}x{layout.stamp_h}px, offset ({layout.offset_x:g}, {layout.offset_y:g})"
        )
        return paper

    @staticmethod
    def layout_prints(
        photos: Sequence[Tuple[str, ImageBuffer]], spec: PrintSheetSpec
    ) -> PrintResult:
        """
        One sheet per photo. Photos that cannot be laid out are reported in
        `failures` and do not stop the others.
        """
        result = PrintResult()
        for name, photo in photos:
            try:
                sheet = PrintService.render_sheet(photo, spec)
            except GeometryError as e:
                logger.error(f"Cannot lay out {name}: {e}")
                result.failures.append((name, str(e)))
                continue
            result.sheets.append((name, encode_png(sheet)))
        return result
