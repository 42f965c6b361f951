"""Page geometry, template area resolution and visual placement."""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .color_resolver import ColorResolver, is_hex6, lighten, normalize_color
from .models import (
    AreaDef,
    ChecklistRecipe,
    ItemsRecipe,
    LayoutDef,
    StepsRecipe,
    TemplateConfig,
    TemplateElement,
    VisualRecipe,
)
from .primitives import Region

logger = logging.getLogger(__name__)

PAGE_W = 13.33
PAGE_H = 7.5
MARGIN_X = 0.6
CONTENT_W = round(PAGE_W - MARGIN_X * 2, 2)
CONTENT_TOP_Y = 0.95
TWO_COL_TEXT_W = 7.2
DEFAULT_RESERVED_BOTTOM = 0.8

DEFAULT_FORCE_BOTTOM_TYPES = ("process", "roadmap", "gantt", "timeline", "funnel", "waterfall", "heatmap")
DENSE_TIMELINE_STEPS = 4


@dataclass(frozen=True)
class PageGeometry:
    """Derived page measurements; vertical bands scale with the spacing unit."""

    spacing: float = 1.0
    page_w: float = PAGE_W
    page_h: float = PAGE_H
    margin_x: float = MARGIN_X
    content_w: float = CONTENT_W
    content_top_y: float = CONTENT_TOP_Y
    two_col_text_w: float = TWO_COL_TEXT_W

    @property
    def gap(self) -> float:
        return 0.4 * self.spacing

    @property
    def two_col_visual_w(self) -> float:
        return max(3.8, self.content_w - self.two_col_text_w - self.gap)

    @property
    def two_col_visual_x(self) -> float:
        return self.margin_x + self.two_col_text_w + self.gap

    @property
    def two_col_text_h(self) -> float:
        return 3.6 * self.spacing

    @property
    def two_col_visual_h(self) -> float:
        return 3.2 * self.spacing

    @property
    def bottom_band_y(self) -> float:
        return 4.6 * self.spacing

    @property
    def bottom_band_h(self) -> float:
        return 2.3 * self.spacing


def _finite(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class LayoutAreaResolver:
    """Resolves named regions, styles and title-bar colors from a template."""

    def __init__(
        self,
        template: Optional[TemplateConfig],
        colors: ColorResolver,
        geometry: Optional[PageGeometry] = None,
    ):
        self.template = template
        self.colors = colors
        self.geometry = geometry or PageGeometry(spacing=colors.theme.spacing_unit)

    @property
    def reserved_bottom(self) -> float:
        value = None
        if self.template and self.template.branding.reserved_bottom is not None:
            value = _finite(self.template.branding.reserved_bottom)
        return value if value is not None else DEFAULT_RESERVED_BOTTOM

    def layout(self, layout_key: Optional[str]) -> Optional[LayoutDef]:
        return self.template.layout(layout_key) if self.template else None

    def area_def(self, layout_key: str, area_name: str) -> Optional[AreaDef]:
        layout = self.layout(layout_key)
        if layout is None:
            return None
        return layout.areas.get(area_name)

    def resolve_area(self, layout_key: str, area_name: str, default: Region) -> Region:
        """
        Resolve ``template.layouts[layout].areas[area]`` against a default region.

        Width and height come from the area, then from its ``ref`` geometry
        region, then from the default; zero counts as missing. Position falls
        back to the default only when absent.

        Args:
            layout_key: Layout kind
            area_name: Area name such as ``title`` or ``visual``
            default: Region used for anything the template leaves out

        Returns:
            Resolved Region
        """
        area = self.area_def(layout_key, area_name)
        if area is None:
            return default
        return self._region_from_area(area, default)

    def _region_from_area(self, area: AreaDef, default: Region) -> Region:
        ref = self.template.region_def(area.ref) if self.template else None
        w = _finite(area.w) or (_finite(ref.w) if ref else None) or default.w
        h = _finite(area.h) or (_finite(ref.h) if ref else None) or default.h
        x = _finite(area.x)
        y = _finite(area.y)
        return Region(
            x=x if x is not None else default.x,
            y=y if y is not None else default.y,
            w=w,
            h=h,
        )

    def element_region(self, layout_key: str, element: TemplateElement) -> Optional[Region]:
        """Region for a template element; unsized areas default to 1 x 1 at the origin."""
        area = None
        if element.area:
            area = self.area_def(layout_key, element.area)
        if area is None:
            area = element.region
        if area is None:
            return None
        return self._region_from_area(area, Region(0, 0, 1, 1))

    def resolve_style(self, style_refs: Sequence[str], inline: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Merge styles found at dotted paths in the template, then the inline style."""
        merged: Dict[str, Any] = {}
        for ref in style_refs:
            found = self.template.lookup(ref) if self.template else None
            if isinstance(found, dict):
                merged.update(found)
            else:
                logger.warning(f"Style reference '{ref}' not found in template")
        if inline:
            merged.update(inline)
        return merged

    def resolve_title_bar_color(self, layout_key: Optional[str], slide_accent: Optional[str] = None) -> str:
        """
        Title bar fill as hex6 without '#'.

        Priority: layout titleBar.color, areaStyles.titleBar.fill, the primary
        token when ``rules.titleBarColor`` is ``fixed``, a valid slide accent,
        then the theme primary lightened by 70.
        """
        layout = self.layout(layout_key)
        if layout and layout.title_bar and layout.title_bar.color:
            color = self.colors.themed(layout.title_bar.color)
            if color and normalize_color(color):
                return normalize_color(color)

        if self.template:
            area_fill = self.template.area_style("titleBar").get("fill")
            color = self.colors.themed(area_fill) if area_fill else None
            if color and normalize_color(color):
                return normalize_color(color)

            if self.template.rules.title_bar_color == "fixed" and self.template.tokens.primary:
                color = normalize_color(self.template.tokens.primary)
                if color:
                    return color

        if is_hex6(slide_accent):
            return normalize_color(slide_accent)

        return normalize_color(lighten(self.colors.theme.primary, 70))

    def clamp_to_reserved_bottom(self, region: Region) -> Region:
        """Lift a region whose bottom would overlap the reserved footer band."""
        limit = self.geometry.page_h - self.reserved_bottom
        if region.y + region.h <= limit:
            return region
        min_y = self.geometry.content_top_y + 0.7
        return region.moved(y=max(min_y, limit - region.h))

    def force_bottom_types(self) -> List[str]:
        if self.template and self.template.rules.visual_placement.force_bottom_types is not None:
            return list(self.template.rules.visual_placement.force_bottom_types)
        return list(DEFAULT_FORCE_BOTTOM_TYPES)

    def prefers_bottom_band(self, recipe: Optional[VisualRecipe]) -> bool:
        """
        Decide whether a recipe needs the full-width bottom band.

        Horizontal kinds always go to the bottom. KPI and checklist kinds go
        there when they carry more items than the right panel holds, and so do
        timelines with four or more steps.
        """
        if recipe is None:
            return False
        kind = recipe.kind
        if kind in self.force_bottom_types():
            return True

        placement = self.template.rules.visual_placement if self.template else None
        kpi_max = placement.kpi_max_right_panel_items if placement else 3
        checklist_max = placement.checklist_max_right_panel_items if placement else 4

        if kind in ("kpi", "kpi_grid") and isinstance(recipe, ItemsRecipe):
            return len(recipe.items) > kpi_max
        if isinstance(recipe, ChecklistRecipe):
            return len(recipe.items) > checklist_max
        if kind == "timeline" and isinstance(recipe, StepsRecipe):
            return len(recipe.steps) >= DENSE_TIMELINE_STEPS
        return False
