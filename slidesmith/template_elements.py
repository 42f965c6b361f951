"""Renders template-declared layout elements into drawing primitives."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .color_resolver import ColorResolver, normalize_color
from .layout_resolver import LayoutAreaResolver
from .models import CompanyOverview, TemplateElement, get_by_path
from .primitives import (
    ImagePrimitive,
    Line,
    LinePrimitive,
    Primitive,
    Region,
    ShapePrimitive,
    TableCell,
    TablePrimitive,
    TextPrimitive,
)
from .text_fitter import split_bold_runs
from .visual_renderer import VisualRenderer

logger = logging.getLogger(__name__)

ELEMENT_SHAPES = {"rect", "roundRect", "ellipse", "line", "chevron", "triangle", "trapezoid", "pie"}
LINE_DASHES = {"solid", "dash", "dot", "lgDash", "sysDash"}

OVERVIEW_LABELS = (
    ("company_name", "会社名"),
    ("address", "所在地"),
    ("founded", "設立"),
    ("representative", "代表者"),
    ("vision", "ビジョン"),
    ("business", "事業内容"),
    ("homepage", "HomePage"),
    ("contact", "問い合わせ"),
)

COMPARISON_TITLE_RESERVE = 0.6


@dataclass
class RenderContext:
    """Per-slide values the template elements read from and record into."""

    slide_index: int
    layout_key: str
    data: Dict[str, Any] = field(default_factory=dict)
    rendered_flags: Dict[str, bool] = field(default_factory=dict)

    def lookup(self, path: Optional[str]) -> Any:
        if not path:
            return None
        return get_by_path(self.data, path)


def overview_pairs(overview: Any) -> List[Tuple[str, str]]:
    """
    Label/value rows for a company overview record.

    Known fields come first in a fixed order with localized labels; any other
    non-empty string field follows under its own key.
    """
    if isinstance(overview, CompanyOverview):
        overview = overview.model_dump(exclude_none=True)
    if not isinstance(overview, Mapping):
        return []

    pairs: List[Tuple[str, str]] = []
    known = set()
    for key, label in OVERVIEW_LABELS:
        known.add(key)
        value = overview.get(key)
        if not value:
            continue
        if isinstance(value, (list, tuple)):
            pairs.append((label, " / ".join(str(v) for v in value)))
        else:
            pairs.append((label, str(value)))

    for key, value in overview.items():
        if key in known or value is None:
            continue
        if isinstance(value, str) and value.strip():
            pairs.append((key, value))
    return pairs


class TemplateElementRenderer:
    """Draws the ``elements`` list of a template layout."""

    def __init__(self, areas: LayoutAreaResolver, colors: ColorResolver, visuals: VisualRenderer):
        self.areas = areas
        self.colors = colors
        self.visuals = visuals
        self.theme = colors.theme

    def render(
        self,
        layout_key: str,
        elements: Sequence[TemplateElement],
        context: RenderContext,
        area_overrides: Optional[Dict[str, Region]] = None,
    ) -> List[Primitive]:
        """
        Render elements in order.

        Args:
            layout_key: Layout whose areas the elements refer to
            elements: Template elements
            context: Slide data and rendered flags
            area_overrides: Regions replacing named areas of the layout

        Returns:
            Primitives for every element that could be placed
        """
        out: List[Primitive] = []
        for element in elements:
            region = self._element_region(layout_key, element, area_overrides)
            if region is None:
                logger.warning(f"Template element skipped: area '{element.area}' not defined in layout '{layout_key}'")
                continue

            style = self.areas.resolve_style(element.style_refs, element.style)
            kind = element.type
            try:
                if kind == "shape":
                    out.append(self._shape(element, style, region))
                elif kind == "text":
                    out.extend(self._text(layout_key, element, style, region, context))
                elif kind == "image":
                    out.extend(self._image(element, style, region))
                elif kind == "table":
                    out.extend(self._table(element, style, region, context))
                elif kind == "visual":
                    out.extend(self._visual(layout_key, element, style, region, context))
                else:
                    logger.warning(f"Unknown template element type '{kind}' in layout '{layout_key}'")
            except Exception as e:
                logger.warning(f"Failed to render {kind} element in layout '{layout_key}': {e}")
        return out

    def _element_region(
        self, layout_key: str, element: TemplateElement, overrides: Optional[Dict[str, Region]]
    ) -> Optional[Region]:
        if overrides and element.area and element.area in overrides:
            return overrides[element.area]
        return self.areas.element_region(layout_key, element)

    def _line_for(self, style: Dict[str, Any], always: bool = False) -> Optional[Line]:
        width = style.get("lineWidth")
        if not always and not style.get("lineColor") and not isinstance(width, (int, float)):
            return None
        color = normalize_color(style.get("lineColor")) or normalize_color(style.get("fill")) or "FFFFFF"
        dash = style.get("lineDash") if style.get("lineDash") in LINE_DASHES else None
        return Line(color=color, width=float(width or 0), dash=dash)

    def _shape(self, element: TemplateElement, style: Dict[str, Any], region: Region) -> Primitive:
        name = element.shape_type or style.get("shapeType") or "rect"
        if name not in ELEMENT_SHAPES:
            name = "rect"
        line = self._line_for(style, always=True)
        if name == "line":
            return LinePrimitive(region.x, region.y, region.right, region.bottom, line)

        rotate = style.get("rotate")
        angle = style.get("angle")
        return ShapePrimitive(
            shape=name,
            region=region,
            fill=self.colors.fill(style.get("fill")),
            line=line,
            corner_radius=float(style.get("cornerRadius") or self.theme.corner_radius),
            shadow=self.colors.shadow(style.get("shadow")),
            rotation=float(rotate) if isinstance(rotate, (int, float)) else None,
            start_angle=0.0 if name == "pie" and isinstance(angle, (int, float)) else None,
            sweep_angle=float(angle) if name == "pie" and isinstance(angle, (int, float)) else None,
        )

    def _text(
        self,
        layout_key: str,
        element: TemplateElement,
        style: Dict[str, Any],
        region: Region,
        context: RenderContext,
    ) -> List[Primitive]:
        content_ref = element.content_ref or ""
        value = context.lookup(content_ref)
        if isinstance(value, (list, tuple)):
            text = "\n".join(str(v or "") for v in value)
        else:
            text = "" if value is None else str(value)
        if not text:
            text = element.text or ""
        if not text:
            return []

        is_card_bullets = layout_key == "comparison_cards" and content_ref in ("bulletsA", "bulletsB")
        if is_card_bullets:
            region = Region(region.x, region.y + COMPARISON_TITLE_RESERVE, region.w,
                            max(0.2, region.h - COMPARISON_TITLE_RESERVE))
            context.rendered_flags[f"comparison_cards_{content_ref}"] = True
            logger.debug(f"comparison_cards {content_ref} box at {region}")

        wants_bullets = style.get("bullet") is True or isinstance(style.get("bulletType"), str)
        bullet = wants_bullets and not is_card_bullets
        auto_fit = False
        if bullet:
            auto_fit = bool(style.get("autoFit", True))
        elif "autoFit" in style:
            auto_fit = bool(style["autoFit"])
        para_space = style.get("paraSpaceAfter")

        primitive = TextPrimitive(
            text=text,
            region=region,
            font_size=float(style.get("fontSize") or 20),
            font_face=str(style.get("fontFace") or self.theme.head_font),
            bold=bool(style.get("bold")),
            color=self.colors.themed(style.get("color")) or "000000",
            align=style.get("align") or "left",
            valign=style.get("valign") or "top",
            bullet=bullet,
            auto_fit=auto_fit,
            para_space_after=float(para_space) if isinstance(para_space, (int, float)) else None,
            fill=self.colors.fill(style.get("fill")) if style.get("fill") else None,
            line=self._line_for(style),
            shadow=self.colors.shadow(style.get("shadow")),
            runs=None if bullet else split_bold_runs(text),
        )
        logger.debug(f"Template text '{content_ref or 'literal'}' ({len(text)} chars) in layout '{layout_key}'")
        return [primitive]

    def _image(self, element: TemplateElement, style: Dict[str, Any], region: Region) -> List[Primitive]:
        if not element.path:
            return []
        return [ImagePrimitive(
            path=element.path,
            region=region,
            sizing=style.get("sizing") or "contain",
            shadow=self.colors.shadow(style.get("shadow")),
        )]

    def _table(
        self, element: TemplateElement, style: Dict[str, Any], region: Region, context: RenderContext
    ) -> List[Primitive]:
        data = context.lookup(element.content_ref) if element.content_ref else None
        if data is None:
            data = context.data.get("companyOverview")
            if data is None:
                data = context.data.get("body")

        font_size = float(style.get("fontSize") or 14)
        rows: List[List[TableCell]] = []
        if isinstance(data, (Mapping, CompanyOverview)):
            value_fill = self.colors.themed(style.get("valueFill"))
            alt_fill = self.colors.themed(style.get("altRowFill"))
            label_fill = self.colors.themed(style.get("labelFill"))
            value_color = self.colors.themed(style.get("valueColor")) or "333333"
            label_color = self.colors.themed(style.get("labelColor")) or value_color
            label_bold = style.get("labelBold") is not False
            for idx, (label, value) in enumerate(overview_pairs(data)):
                row_fill = alt_fill if alt_fill and idx % 2 == 1 else value_fill
                rows.append([
                    TableCell(label, bold=label_bold, color=label_color, fill=label_fill or row_fill,
                              font_size=font_size, font_face=self.theme.body_font),
                    TableCell(value, color=value_color, fill=row_fill, font_size=font_size,
                              font_face=self.theme.body_font),
                ])
        elif data is not None and str(data):
            rows.append([TableCell(str(data), color=self.colors.themed(style.get("color")) or "333333",
                                   font_size=font_size, font_face=self.theme.body_font, valign="top")])

        if not rows:
            return []
        col_widths = None
        if isinstance(style.get("colW"), list):
            col_widths = [float(w) for w in style["colW"] if isinstance(w, (int, float))] or None
        return [TablePrimitive(
            rows=rows,
            region=region,
            col_widths=col_widths,
            border_color=self.colors.themed(style.get("borderColor")) or "E6E6E6",
            border_width=float(style.get("borderWidth") or 1),
        )]

    def _visual(
        self,
        layout_key: str,
        element: TemplateElement,
        style: Dict[str, Any],
        region: Region,
        context: RenderContext,
    ) -> List[Primitive]:
        if layout_key == "quote":
            logger.info("Quote layout: template visual element ignored")
            return []

        recipe = context.lookup(element.recipe_ref) if element.recipe_ref else context.data.get("visual_recipe")
        region = self.areas.clamp_to_reserved_bottom(region)
        logger.info(f"Template visual element in '{layout_key}' ({getattr(recipe, 'kind', None) or 'no recipe'})")

        if recipe is not None and hasattr(recipe, "kind"):
            return self.visuals.render(recipe, region)
        image_path = context.data.get("imagePath")
        if image_path:
            return [ImagePrimitive(
                path=image_path,
                region=region,
                sizing=style.get("sizing") or "contain",
                shadow=self.colors.shadow(style.get("shadow")),
            )]
        logger.warning(f"Template visual element in '{layout_key}' has no recipe or image; nothing rendered")
        return []
