"""python-pptx adapter that executes drawing primitives on slides."""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.dml import MSO_LINE_DASH_STYLE
from pptx.enum.shapes import MSO_CONNECTOR, MSO_SHAPE
from pptx.enum.text import MSO_ANCHOR, MSO_AUTO_SIZE, PP_ALIGN
from pptx.oxml.ns import qn
from pptx.oxml.xmlchemy import OxmlElement
from pptx.util import Emu, Inches, Pt

from .color_resolver import normalize_color
from .image_generator import read_image_dimensions
from .models import ShadowSpec
from .native_chart_builder import NativeChartBuilder
from .primitives import (
    DoughnutChartPrimitive,
    Fill,
    ImagePrimitive,
    Line,
    LinePrimitive,
    Primitive,
    Region,
    ShapePrimitive,
    TablePrimitive,
    TextPrimitive,
    TextRun,
)

logger = logging.getLogger(__name__)

BLANK_LAYOUT_INDEX = 6

SHAPE_TYPES = {
    "rect": MSO_SHAPE.RECTANGLE,
    "roundRect": MSO_SHAPE.ROUNDED_RECTANGLE,
    "ellipse": MSO_SHAPE.OVAL,
    "chevron": MSO_SHAPE.CHEVRON,
    "triangle": MSO_SHAPE.ISOSCELES_TRIANGLE,
    "trapezoid": MSO_SHAPE.TRAPEZOID,
    "pie": MSO_SHAPE.PIE,
    "rightArrow": MSO_SHAPE.RIGHT_ARROW,
}

DASH_STYLES = {
    "solid": MSO_LINE_DASH_STYLE.SOLID,
    "dash": MSO_LINE_DASH_STYLE.DASH,
    "dashDot": MSO_LINE_DASH_STYLE.DASH_DOT,
    "lgDash": MSO_LINE_DASH_STYLE.LONG_DASH,
    "lgDashDot": MSO_LINE_DASH_STYLE.LONG_DASH_DOT,
    "sysDash": MSO_LINE_DASH_STYLE.SQUARE_DOT,
    "sysDot": MSO_LINE_DASH_STYLE.ROUND_DOT,
}

ALIGNMENTS = {
    "left": PP_ALIGN.LEFT,
    "center": PP_ALIGN.CENTER,
    "right": PP_ALIGN.RIGHT,
    "justify": PP_ALIGN.JUSTIFY,
}

ANCHORS = {
    "top": MSO_ANCHOR.TOP,
    "middle": MSO_ANCHOR.MIDDLE,
    "bottom": MSO_ANCHOR.BOTTOM,
}


def _rgb(color: Optional[str], default: str = "000000") -> RGBColor:
    return RGBColor.from_string(normalize_color(color) or default)


class PptxCanvas:
    """
    Presentation-authoring adapter.

    Exposes add slide, set background, draw primitives, speaker notes and save.
    Each primitive is drawn independently; a failing primitive is logged and
    skipped so the rest of the slide still renders.
    """

    def __init__(
        self,
        page_w: float = 13.33,
        page_h: float = 7.5,
        native_charts: bool = True,
        chart_builder: Optional[NativeChartBuilder] = None,
    ):
        """
        Initialize the canvas with an empty widescreen presentation.

        Args:
            page_w: Page width in inches
            page_h: Page height in inches
            native_charts: Try native doughnut charts before their fallbacks
            chart_builder: Builder used for native doughnut charts
        """
        self.page_w = page_w
        self.page_h = page_h
        self.native_charts = native_charts
        self.chart_builder = chart_builder or NativeChartBuilder()

        self.prs = Presentation()
        self.prs.slide_width = Inches(page_w)
        self.prs.slide_height = Inches(page_h)
        self._blank_layout = self.prs.slide_layouts[BLANK_LAYOUT_INDEX]

    @property
    def slide_count(self) -> int:
        return len(self.prs.slides)

    def add_slide(self):
        return self.prs.slides.add_slide(self._blank_layout)

    def set_background_color(self, slide, color: str) -> None:
        fill = slide.background.fill
        fill.solid()
        fill.fore_color.rgb = _rgb(color, "FFFFFF")

    def set_background_image(self, slide, path: Union[str, Path]) -> bool:
        """Stretch an image over the page behind every other shape."""
        try:
            picture = slide.shapes.add_picture(str(path), 0, 0, Inches(self.page_w), Inches(self.page_h))
        except Exception as e:
            logger.warning(f"Could not set background image {path}: {e}")
            return False
        sp_tree = slide.shapes._spTree
        sp_tree.remove(picture._element)
        sp_tree.insert(2, picture._element)
        return True

    def set_notes(self, slide, notes: Optional[str]) -> None:
        if not notes:
            return
        try:
            slide.notes_slide.notes_text_frame.text = notes
            logger.debug(f"Added speaker notes: {notes[:50]}...")
        except Exception as e:
            logger.error(f"Failed to add speaker notes: {e}")

    def save(self, path: Union[str, Path]) -> None:
        self.prs.save(str(path))

    def draw(self, slide, primitives: Iterable[Primitive]) -> int:
        """
        Draw primitives in order.

        Args:
            slide: Target slide
            primitives: Primitives to draw

        Returns:
            Number of primitives drawn successfully
        """
        drawn = 0
        for primitive in primitives:
            try:
                self.draw_primitive(slide, primitive)
                drawn += 1
            except Exception as e:
                logger.warning(f"Skipping {type(primitive).__name__}: {e}")
        return drawn

    def draw_primitive(self, slide, primitive: Primitive) -> None:
        if isinstance(primitive, ShapePrimitive):
            self._draw_shape(slide, primitive)
        elif isinstance(primitive, LinePrimitive):
            self._draw_line(slide, primitive)
        elif isinstance(primitive, TextPrimitive):
            self._draw_text(slide, primitive)
        elif isinstance(primitive, ImagePrimitive):
            self._draw_image(slide, primitive)
        elif isinstance(primitive, TablePrimitive):
            self._draw_table(slide, primitive)
        elif isinstance(primitive, DoughnutChartPrimitive):
            self._draw_doughnut(slide, primitive)
        else:
            raise TypeError(f"Unsupported primitive: {type(primitive).__name__}")

    # Shapes

    def _draw_shape(self, slide, primitive: ShapePrimitive) -> None:
        region = primitive.region
        shape_type = SHAPE_TYPES.get(primitive.shape)
        if shape_type is None:
            logger.warning(f"Unknown shape type '{primitive.shape}', drawing a rectangle")
            shape_type = MSO_SHAPE.RECTANGLE

        shape = slide.shapes.add_shape(
            shape_type,
            Inches(region.x),
            Inches(region.y),
            Inches(max(region.w, 0.01)),
            Inches(max(region.h, 0.01)),
        )

        if primitive.shape == "roundRect":
            radius_in = (primitive.corner_radius or 0) / 72.0
            shortest = max(min(region.w, region.h), 0.01)
            shape.adjustments[0] = max(0.0, min(0.5, radius_in / shortest))
        elif primitive.shape == "pie":
            start = primitive.start_angle or 0.0
            sweep = primitive.sweep_angle if primitive.sweep_angle is not None else 360.0
            shape.adjustments[0] = (start % 360) * 0.6
            shape.adjustments[1] = ((start + sweep) % 360) * 0.6

        if primitive.rotation:
            shape.rotation = primitive.rotation

        self._apply_fill(shape, primitive.fill)
        self._apply_line(shape.line, primitive.line)
        self._apply_shadow(shape, primitive.shadow)
        if shape.has_text_frame:
            shape.text_frame.text = ""

    def _draw_line(self, slide, primitive: LinePrimitive) -> None:
        connector = slide.shapes.add_connector(
            MSO_CONNECTOR.STRAIGHT,
            Inches(primitive.x1),
            Inches(primitive.y1),
            Inches(primitive.x2),
            Inches(primitive.y2),
        )
        self._apply_line(connector.line, primitive.line)

    def _apply_fill(self, shape, fill: Optional[Fill]) -> None:
        if fill is None:
            shape.fill.background()
            return
        shape.fill.solid()
        shape.fill.fore_color.rgb = _rgb(fill.color, "FFFFFF")
        if fill.transparency:
            srgb = shape._element.spPr.find(qn("a:solidFill")).find(qn("a:srgbClr"))
            alpha = OxmlElement("a:alpha")
            alpha.set("val", str(int(max(0, min(100, 100 - fill.transparency)) * 1000)))
            srgb.append(alpha)

    def _apply_line(self, line_format, line: Optional[Line]) -> None:
        if line is None or line.width <= 0:
            line_format.fill.background()
            return
        line_format.color.rgb = _rgb(line.color)
        line_format.width = Pt(line.width)
        if line.dash and line.dash in DASH_STYLES:
            line_format.dash_style = DASH_STYLES[line.dash]

    def _apply_shadow(self, shape, shadow: Optional[ShadowSpec]) -> None:
        if shadow is None:
            return
        sp_pr = shape._element.spPr
        existing = sp_pr.find(qn("a:effectLst"))
        if existing is not None:
            sp_pr.remove(existing)

        effect_list = OxmlElement("a:effectLst")
        tag = "a:innerShdw" if shadow.type == "inner" else "a:outerShdw"
        shdw = OxmlElement(tag)
        shdw.set("blurRad", str(int(Pt(shadow.blur))))
        shdw.set("dist", str(int(Pt(shadow.offset))))
        shdw.set("dir", str(int((shadow.angle % 360) * 60000)))
        if shadow.type != "inner":
            shdw.set("algn", "ctr")
            shdw.set("rotWithShape", "0")
        color = OxmlElement("a:srgbClr")
        color.set("val", normalize_color(shadow.color) or "000000")
        alpha = OxmlElement("a:alpha")
        alpha.set("val", str(int(max(0.0, min(1.0, shadow.opacity)) * 100000)))
        color.append(alpha)
        shdw.append(color)
        effect_list.append(shdw)
        sp_pr.append(effect_list)

    # Text

    def _draw_text(self, slide, primitive: TextPrimitive) -> None:
        region = primitive.region
        textbox = slide.shapes.add_textbox(
            Inches(region.x),
            Inches(region.y),
            Inches(max(region.w, 0.01)),
            Inches(max(region.h, 0.01)),
        )
        frame = textbox.text_frame
        frame.word_wrap = True
        frame.margin_left = frame.margin_right = Inches(0.05)
        frame.margin_top = frame.margin_bottom = Inches(0.03)
        frame.vertical_anchor = ANCHORS.get(primitive.valign, MSO_ANCHOR.TOP)
        if primitive.auto_fit:
            frame.auto_size = MSO_AUTO_SIZE.TEXT_TO_FIT_SHAPE

        paragraphs = self._paragraph_runs(primitive)
        for index, runs in enumerate(paragraphs):
            paragraph = frame.paragraphs[0] if index == 0 else frame.add_paragraph()
            paragraph.alignment = ALIGNMENTS.get(primitive.align, PP_ALIGN.LEFT)
            if primitive.para_space_after is not None:
                paragraph.space_after = Pt(primitive.para_space_after)
            if primitive.bullet:
                self._set_bullet(paragraph, primitive.font_size)
            for run_spec in runs:
                run = paragraph.add_run()
                run.text = run_spec.text
                font = run.font
                font.size = Pt(primitive.font_size)
                font.name = primitive.font_face
                font.bold = primitive.bold or run_spec.bold
                font.italic = primitive.italic
                if primitive.color:
                    font.color.rgb = _rgb(primitive.color)

        if primitive.fill is not None:
            self._apply_fill(textbox, primitive.fill)
        if primitive.line is not None:
            self._apply_line(textbox.line, primitive.line)
        self._apply_shadow(textbox, primitive.shadow)

    @staticmethod
    def _paragraph_runs(primitive: TextPrimitive) -> List[List[TextRun]]:
        runs = primitive.runs or [TextRun(primitive.text)]
        paragraphs: List[List[TextRun]] = [[]]
        for run in runs:
            pieces = run.text.split("\n")
            for i, piece in enumerate(pieces):
                if i > 0:
                    paragraphs.append([])
                if piece:
                    paragraphs[-1].append(TextRun(piece, run.bold))
        return paragraphs

    @staticmethod
    def _set_bullet(paragraph, font_size: float) -> None:
        p_pr = paragraph._p.get_or_add_pPr()
        indent = int(Pt(font_size))
        p_pr.set("marL", str(indent))
        p_pr.set("indent", str(-indent))
        bullet = OxmlElement("a:buChar")
        bullet.set("char", "•")
        p_pr.append(bullet)

    # Images

    def _draw_image(self, slide, primitive: ImagePrimitive) -> None:
        path = Path(primitive.path)
        if not path.exists():
            raise FileNotFoundError(f"Image file not found: {path}")

        region = primitive.region
        dims = read_image_dimensions(path) if primitive.sizing in ("contain", "cover") else None

        if dims and primitive.sizing == "contain":
            placed = self.contain_region(region, dims)
            picture = slide.shapes.add_picture(
                str(path), Inches(placed.x), Inches(placed.y), Inches(placed.w), Inches(placed.h)
            )
        else:
            picture = slide.shapes.add_picture(
                str(path), Inches(region.x), Inches(region.y), Inches(region.w), Inches(region.h)
            )
            if dims and primitive.sizing == "cover":
                self._crop_to_cover(picture, region, dims)

        self._apply_shadow(picture, primitive.shadow)

    @staticmethod
    def contain_region(region: Region, dims) -> Region:
        """Largest region with the image's aspect ratio centered inside ``region``."""
        img_w, img_h = dims
        if img_w <= 0 or img_h <= 0 or region.w <= 0 or region.h <= 0:
            return region
        scale = min(region.w / img_w, region.h / img_h)
        w, h = img_w * scale, img_h * scale
        return Region(region.x + (region.w - w) / 2, region.y + (region.h - h) / 2, w, h)

    @staticmethod
    def _crop_to_cover(picture, region: Region, dims) -> None:
        img_w, img_h = dims
        if img_w <= 0 or img_h <= 0 or region.w <= 0 or region.h <= 0:
            return
        image_ratio = img_w / img_h
        region_ratio = region.w / region.h
        if image_ratio > region_ratio:
            trim = (1 - region_ratio / image_ratio) / 2
            picture.crop_left = picture.crop_right = trim
        elif image_ratio < region_ratio:
            trim = (1 - image_ratio / region_ratio) / 2
            picture.crop_top = picture.crop_bottom = trim

    # Tables

    def _draw_table(self, slide, primitive: TablePrimitive) -> None:
        rows = [row for row in primitive.rows if row]
        if not rows:
            return
        n_rows = len(rows)
        n_cols = max(len(row) for row in rows)
        region = primitive.region

        graphic_frame = slide.shapes.add_table(
            n_rows, n_cols, Inches(region.x), Inches(region.y), Inches(region.w), Inches(region.h)
        )
        table = graphic_frame.table
        table.first_row = False
        table.horz_banding = False

        if primitive.col_widths:
            for i, width in enumerate(primitive.col_widths[:n_cols]):
                table.columns[i].width = Inches(width)

        row_height = Emu(int(Inches(region.h) / n_rows))
        for r, row in enumerate(rows):
            table.rows[r].height = row_height
            for c in range(n_cols):
                cell = table.cell(r, c)
                spec = row[c] if c < len(row) else None
                if primitive.border_color and primitive.border_width > 0:
                    self._set_cell_border(cell, primitive.border_color, primitive.border_width)
                if spec is None:
                    continue
                if spec.fill:
                    cell.fill.solid()
                    cell.fill.fore_color.rgb = _rgb(spec.fill, "FFFFFF")
                cell.vertical_anchor = ANCHORS.get(spec.valign, MSO_ANCHOR.MIDDLE)
                frame = cell.text_frame
                frame.word_wrap = True
                for index, line in enumerate(spec.text.split("\n")):
                    paragraph = frame.paragraphs[0] if index == 0 else frame.add_paragraph()
                    paragraph.alignment = ALIGNMENTS.get(spec.align, PP_ALIGN.LEFT)
                    run = paragraph.add_run()
                    run.text = line
                    run.font.size = Pt(spec.font_size)
                    run.font.bold = spec.bold
                    run.font.name = spec.font_face
                    if spec.color:
                        run.font.color.rgb = _rgb(spec.color)

    @staticmethod
    def _set_cell_border(cell, color: str, width_pt: float) -> None:
        tc_pr = cell._tc.get_or_add_tcPr()
        for tag in ("a:lnL", "a:lnR", "a:lnT", "a:lnB"):
            existing = tc_pr.find(qn(tag))
            if existing is not None:
                tc_pr.remove(existing)
            ln = OxmlElement(tag)
            ln.set("w", str(int(Pt(width_pt))))
            solid = OxmlElement("a:solidFill")
            srgb = OxmlElement("a:srgbClr")
            srgb.set("val", normalize_color(color) or "E6E6E6")
            solid.append(srgb)
            ln.append(solid)
            tc_pr.append(ln)

    # Charts

    def _draw_doughnut(self, slide, primitive: DoughnutChartPrimitive) -> None:
        if self.native_charts and self.chart_builder.create_doughnut(slide, primitive):
            logger.debug("kpi_donut drawn as native chart")
            return

        if primitive.rasterize is not None:
            image = primitive.rasterize()
            if image is not None:
                try:
                    self._draw_image(slide, image)
                    logger.debug("kpi_donut drawn as raster image")
                    return
                except Exception as e:
                    logger.warning(f"Raster donut could not be placed: {e}")

        logger.debug("kpi_donut drawn with shapes")
        self.draw(slide, primitive.fallback)
