"""Infographic engine: one drawing routine per visual recipe kind."""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .chart_renderer import ChartRenderer
from .color_resolver import (
    ColorResolver,
    hex_to_rgb,
    lighten,
    normalize_color,
    pick_text_color,
    rgb_to_hex,
)
from .image_generator import (
    ImageGenerator,
    build_icon_prompt,
    is_icon_path,
    normalize_icon_background,
)
from .models import (
    ChartRecipe,
    ComparisonRecipe,
    GanttRecipe,
    GanttTask,
    HeatmapRecipe,
    ItemsRecipe,
    MapMarkersRecipe,
    MatrixRecipe,
    RecipeItem,
    RoadmapRecipe,
    ShadowSpec,
    StepsRecipe,
    TableRecipe,
    TemplateConfig,
    Venn2Recipe,
    VisualRecipe,
)
from .primitives import (
    DoughnutChartPrimitive,
    Fill,
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
from .resource_tracker import ResourceTracker
from .text_fitter import TextFitter

logger = logging.getLogger(__name__)

DEFAULT_REGION = Region(0.8, 3.6, 8.4, 2.2)
LABEL_SHADOW = ShadowSpec(type="outer", color="000000", opacity=0.35, blur=1, offset=0, angle=0)

DrawFn = Callable[[Region, Any], List[Primitive]]


def _num(value: Any, default: float) -> float:
    """Finite number or the default."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _num_or(value: Any, default: float) -> float:
    """Non-zero finite number or the default."""
    number = _num(value, 0.0)
    return number if number else default


def _fmt(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return "" if value is None else str(value)


def _hex(color: Optional[str], default: str = "000000") -> str:
    return normalize_color(color) or default


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class VisualRenderer:
    """
    Turns a visual recipe into positioned drawing primitives.

    Each kind has exactly one drawing routine in a registry. Unknown kinds
    draw nothing. A routine that fails is replaced by a small text
    placeholder so the rest of the slide still renders.
    """

    def __init__(
        self,
        colors: ColorResolver,
        fitter: TextFitter,
        template: Optional[TemplateConfig] = None,
        chart_renderer: Optional[ChartRenderer] = None,
        image_generator: Optional[ImageGenerator] = None,
        tracker: Optional[ResourceTracker] = None,
    ):
        self.colors = colors
        self.theme = colors.theme
        self.fitter = fitter
        self.template = template
        self.chart_renderer = chart_renderer
        self.image_generator = image_generator
        self.tracker = tracker
        self.font = self.theme.body_font

        self._registry: Dict[str, DrawFn] = {
            "bar_chart": self._draw_bar_chart,
            "pie_chart": self._draw_pie_chart,
            "line_chart": self._draw_line_chart,
            "kpi_grid": self._draw_kpi_grid,
            "kpi_donut": self._draw_kpi_donut,
            "progress": self._draw_progress,
            "gantt": self._draw_gantt,
            "heatmap": self._draw_heatmap,
            "venn2": self._draw_venn2,
            "pyramid": self._draw_pyramid,
            "waterfall": self._draw_waterfall,
            "bullet": self._draw_bullet,
            "map_markers": self._draw_map_markers,
            "callouts": self._draw_callouts,
            "kpi": self._draw_kpi,
            "checklist": self._draw_checklist,
            "matrix": self._draw_matrix,
            "table": self._draw_table,
            "funnel": self._draw_funnel,
            "process": self._draw_process,
            "roadmap": self._draw_roadmap,
            "comparison": self._draw_comparison,
            "timeline": self._draw_timeline,
        }

    @property
    def kinds(self) -> List[str]:
        return list(self._registry)

    def render(self, recipe: Optional[VisualRecipe], region: Optional[Region] = None) -> List[Primitive]:
        """
        Draw a recipe into a region.

        Args:
            recipe: Visual recipe; None draws nothing
            region: Target region, defaulting to the lower content band

        Returns:
            Primitives in drawing order; empty for unknown kinds
        """
        if recipe is None:
            return []
        region = region or DEFAULT_REGION
        draw = self._registry.get(recipe.kind)
        if draw is None:
            logger.debug(f"No drawing routine for visual kind '{recipe.kind}', nothing drawn")
            return []

        logger.debug(f"Drawing {recipe.kind} visual at {region}")
        try:
            return draw(region, recipe)
        except Exception as e:
            logger.warning(f"Failed to draw {recipe.kind} visual, using placeholder: {e}")
            placeholder = recipe.kind.replace("_", " ").title()
            return [self._label(placeholder, region.x, region.y, region.w, 0.3, 12, bold=True)]

    # Helpers

    def _style(self, kind: str) -> Dict[str, Any]:
        return self.template.visual_style(kind) if self.template else {}

    def _palette(self, index: int) -> str:
        return _hex(self.colors.palette_color(index))

    @property
    def _primary(self) -> str:
        return _hex(self.theme.primary)

    @property
    def _secondary(self) -> str:
        return _hex(self.theme.secondary)

    @property
    def _accent(self) -> str:
        return _hex(self.theme.accent)

    @property
    def _outline(self) -> str:
        return _hex(self.theme.outline_color, "FFFFFF")

    def _label(
        self,
        text: str,
        x: float,
        y: float,
        w: float,
        h: float,
        size: float,
        **options: Any,
    ) -> TextPrimitive:
        return TextPrimitive(text=text, region=Region(x, y, w, h), font_size=size, font_face=self.font, **options)

    def _rect(
        self,
        x: float,
        y: float,
        w: float,
        h: float,
        fill: Optional[str],
        line: Optional[Line] = None,
        shape: str = "rect",
        **options: Any,
    ) -> ShapePrimitive:
        return ShapePrimitive(
            shape=shape,
            region=Region(x, y, w, h),
            fill=Fill(_hex(fill, "FFFFFF")) if fill else None,
            line=line,
            **options,
        )

    def _track(self, path: Optional[str]) -> None:
        if path and self.tracker is not None:
            self.tracker.track(path)

    def _chart_image(self, chart_type: str, labels: Sequence[str], values: Sequence[float], title: Optional[str],
                     region: Region) -> Optional[ImagePrimitive]:
        if self.chart_renderer is None:
            logger.warning(f"No chart renderer configured for {chart_type} chart")
            return None
        try:
            path = self.chart_renderer.render(chart_type, list(labels), list(values), title)
        except Exception as e:
            logger.warning(f"Chart rendering failed for {chart_type}: {e}")
            return None
        if not path:
            return None
        self._track(path)
        return ImagePrimitive(path=path, region=region, sizing="contain", shadow=self.colors.visual_shadow("image"))

    def _resolve_icon(self, item: RecipeItem, icon_cfg: Dict[str, Any], glyph: str, background: str) -> Optional[str]:
        if icon_cfg.get("enabled") is False:
            return None
        raw = item.icon_ref.strip()
        if not raw:
            return None
        if is_icon_path(raw):
            return raw
        if self.image_generator is None:
            logger.debug(f"Icon '{raw}' skipped: no image generator configured")
            return None

        prompt = build_icon_prompt(raw, str(icon_cfg.get("style") or "line"), True, glyph, background)
        try:
            result = self.image_generator.generate(prompt, aspect_ratio="1:1")
        except Exception as e:
            logger.warning(f"Icon generation failed for '{raw}': {e}")
            return None
        if not result.success or not result.path:
            logger.warning(f"Icon generation failed for '{raw}': {result.message}")
            return None
        self._track(result.path)
        return normalize_icon_background(result.path)

    @staticmethod
    def _icon_colors(*configs: Dict[str, Any]) -> Tuple[str, str]:
        glyph, background = "black", "white"
        for cfg in configs:
            fixed = cfg.get("fixed") if isinstance(cfg.get("fixed"), dict) else {}
            if fixed.get("glyph"):
                glyph = "white" if str(fixed["glyph"]).lower() == "white" else "black"
                break
        for cfg in configs:
            fixed = cfg.get("fixed") if isinstance(cfg.get("fixed"), dict) else {}
            if fixed.get("background"):
                background = "white" if str(fixed["background"]).lower() == "white" else "transparent"
                break
        return glyph, background

    # Charts

    def _draw_bar_chart(self, region: Region, recipe: ChartRecipe) -> List[Primitive]:
        if recipe.labels:
            labels = list(recipe.labels)
        elif recipe.items:
            labels = [item.label or "" for item in recipe.items]
        elif recipe.values:
            labels = [f"V{i + 1}" for i in range(len(recipe.values))]
        else:
            labels = ["A", "B", "C"]

        if recipe.series:
            values = [_num(v, 0) for v in recipe.series[0].data]
            if len(recipe.series) > 1:
                logger.warning(f"bar_chart has {len(recipe.series)} series; only the first is drawn")
        elif recipe.values:
            values = [_num(v, 0) for v in recipe.values]
        elif recipe.items:
            values = [_num(item.value, 0) for item in recipe.items]
        else:
            values = [10, 20, 15]

        return self._chart_or_placeholder("bar", labels, values, recipe.title, region, "Bar Chart")

    def _draw_pie_chart(self, region: Region, recipe: ChartRecipe) -> List[Primitive]:
        if recipe.items:
            labels = [item.label or "" for item in recipe.items]
            values = [_num(item.value, 0) for item in recipe.items]
        else:
            labels = list(recipe.labels) if recipe.labels else ["A", "B", "C"]
            values = [_num(v, 0) for v in recipe.values] if recipe.values else [30, 40, 30]
        return self._chart_or_placeholder("pie", labels, values, recipe.title, region, "Pie Chart")

    def _draw_line_chart(self, region: Region, recipe: ChartRecipe) -> List[Primitive]:
        labels = list(recipe.labels) if recipe.labels else ["A", "B", "C", "D"]
        if recipe.series:
            values = [_num(v, 0) for v in recipe.series[0].data]
            if len(recipe.series) > 1:
                logger.warning(f"line_chart has {len(recipe.series)} series; only the first is drawn")
        else:
            values = [10, 20, 15, 25]
        return self._chart_or_placeholder("line", labels, values, recipe.title, region, "Line Chart")

    def _chart_or_placeholder(self, chart_type: str, labels, values, title, region: Region, placeholder: str):
        image = self._chart_image(chart_type, labels, values, title, region)
        if image is not None:
            return [image]
        return [self._label(placeholder, region.x, region.y, region.w, 0.3, 12, bold=True)]

    # KPI family

    def _draw_kpi_grid(self, region: Region, recipe: ItemsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        style = self._style("kpi_grid")
        gap = _num(style.get("gap"), 0.4)
        border_width = _num(style.get("borderWidth"), 0.5)
        border_color = _hex(style.get("borderColor"), "FFFFFF")
        label_color = normalize_color(style.get("labelColor"))
        value_color = normalize_color(style.get("valueColor"))
        value_fs = _num(style.get("valueFontSize"), 18)
        label_fs = _num(style.get("labelFontSize"), 11.5)

        card_w = min((rw - 0.8) / 2, 2.6)
        card_h = min(rh / 2 - 0.2, 1.35)
        out: List[Primitive] = []
        for idx, item in enumerate(recipe.items[:4]):
            row, col = divmod(idx, 2)
            x = rx + 0.2 + col * (card_w + gap)
            y = ry + 0.2 + row * (card_h + gap)
            box = self._palette(idx)
            auto = pick_text_color(box)
            out.append(self._rect(x, y, card_w, card_h, box, Line(border_color, border_width),
                                  shadow=self.colors.visual_shadow("kpi_grid")))
            out.append(self._label(_fmt(item.value), x + 0.2, y + 0.2, card_w - 0.4, card_h * 0.55, value_fs,
                                   bold=True, color=value_color or auto, align="center"))
            out.append(self._label(item.label or "", x + 0.2, y + card_h * 0.65, card_w - 0.4, card_h * 0.3, label_fs,
                                   color=label_color or auto, align="center"))
        return out

    def _draw_kpi_donut(self, region: Region, recipe: ItemsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        style = self._style("kpi_donut")
        labels = [item.label or "" for item in recipe.items]
        values = [max(0.0, min(100.0, _num(item.value, 0))) for item in recipe.items]
        total = sum(values) or 1
        colors = [self._palette(i) for i in range(len(values))]

        chart_h = min(rh * 0.65, 1.6)
        chart_region = Region(rx, ry, rw, chart_h)
        cx = rx + rw / 2
        cy = ry + chart_h / 2
        diameter = min(rw, chart_h)
        hole_scale = _num(style.get("holeScale"), 0)
        if not 0 < hole_scale < 0.95:
            hole_scale = 0.6

        wedges: List[Primitive] = []
        start = -90.0
        for i, v in enumerate(values):
            if v <= 0:
                continue
            span = max(0.1, min(359.9, v / total * 360))
            wedges.append(ShapePrimitive(
                shape="pie",
                region=Region(cx - diameter / 2, cy - diameter / 2, diameter, diameter),
                fill=Fill(colors[i]),
                start_angle=start,
                sweep_angle=span,
            ))
            start += span
        if wedges:
            hole = diameter * hole_scale
            wedges.append(self._rect(cx - hole / 2, cy - hole / 2, hole, hole, "FFFFFF", shape="ellipse"))
        else:
            wedges.append(self._label("CAGR", rx, ry, rw, 0.3, 12, bold=True))

        def rasterize() -> Optional[ImagePrimitive]:
            return self._chart_image("pie", labels, values, recipe.title, chart_region)

        out: List[Primitive] = [DoughnutChartPrimitive(
            region=chart_region,
            labels=labels,
            values=values,
            colors=colors,
            series_name="CAGR",
            hole_size=int(round(hole_scale * 100)),
            fallback=wedges,
            rasterize=rasterize,
        )]

        radius = diameter / 2
        label_r = radius * 0.78
        edge_r = radius * 0.92
        leader_width = max(0.5, _num(style.get("leaderLineWidth"), 1))
        label_fs = _num(style.get("labelFontSize"), 11)
        w = min(1.8, max(1.1, rw * 0.22))
        h = 0.38
        cursor = -90.0
        for i, label in enumerate(labels):
            span = values[i] / total * 360 if total > 0 else 0
            rad = math.radians(cursor + span / 2)
            lx = cx + math.cos(rad) * label_r
            ly = cy + math.sin(rad) * label_r
            ax = cx + math.cos(rad) * edge_r
            ay = cy + math.sin(rad) * edge_r
            out.append(LinePrimitive(ax, ay, lx, ly, Line(colors[i], leader_width)))
            out.append(self._label(f"{label} {_fmt(values[i])}%", lx - w / 2, ly - h / 2, w, h, label_fs,
                                   align="center", valign="middle", color=pick_text_color(colors[i]),
                                   shadow=LABEL_SHADOW))
            cursor += span
        return out

    def _draw_kpi(self, region: Region, recipe: ItemsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        items = recipe.items[:4]
        if not items:
            return []
        count = len(items)
        columns = 1 if count <= 3 else 2
        rows = math.ceil(count / columns)

        style = self._style("kpi")
        layout = style.get("layout") if isinstance(style.get("layout"), dict) else {}
        one_col = columns == 1
        gap = _num_or(layout.get("gap1Col" if one_col else "gap2Col"), 0.24 if one_col else 0.30)
        outer = _num_or(layout.get("outerMargin1Col" if one_col else "outerMargin2Col"), 0.02 if one_col else 0.06)
        pad_x = _num_or(layout.get("innerPadX"), 0.2)
        pad_y = _num_or(layout.get("innerPadY1Col" if one_col else "innerPadY2Col"), 0.12 if one_col else 0.16)
        initial_fs = _num_or(layout.get("initialFs1Col" if one_col else "initialFs2Col"), 20 if one_col else 16)
        min_fs = _num_or(layout.get("minFs1Col" if one_col else "minFs2Col"), 11 if one_col else 9)
        min_gap = _num(layout.get("minGap"), 0.08)

        card_w = max(0.8, (rw - (columns - 1) * gap - outer * 2) / columns)
        card_h = (rh - (rows - 1) * gap - outer * 2) / rows

        label_color = normalize_color(style.get("labelColor"))
        value_color = normalize_color(style.get("valueColor"))
        unify = style.get("unifyLabelAndValueFontSize") is not False
        fixed_label = _num(style.get("labelFontSize"), float("nan"))
        fixed_value = _num(style.get("valueFontSize"), float("nan"))
        has_label_fs = not math.isnan(fixed_label)
        has_value_fs = not math.isnan(fixed_value)
        fixed_common = None
        if unify:
            fixed_common = fixed_label if has_label_fs else (fixed_value if has_value_fs else None)

        callout_style = self._style("callouts")
        icon_cfg = callout_style.get("icon") if isinstance(callout_style.get("icon"), dict) else {}
        kpi_icon_cfg = style.get("icon") if isinstance(style.get("icon"), dict) else {}
        icon_size = _num_or(icon_cfg.get("size"), 0.36)
        icon_pad = _num_or(icon_cfg.get("padding"), 0.08)
        glyph, background = self._icon_colors(kpi_icon_cfg, icon_cfg)

        def base_wrap(width: float, factor: float) -> int:
            return max(16, math.floor(width * factor))

        out: List[Primitive] = []
        for idx, item in enumerate(items):
            row, col = divmod(idx, columns)
            x = rx + outer + col * (card_w + gap)
            y = ry + outer + row * (card_h + gap)
            box = self._palette(idx)
            out.append(self._rect(x, y, card_w, card_h, box, Line(self._outline, 0.5),
                                  shadow=self.colors.visual_shadow("kpi")))

            icon_path = self._resolve_icon(item, icon_cfg, glyph, background)
            if icon_path:
                out.append(ImagePrimitive(icon_path, Region(x - icon_size / 2, y - icon_size / 2, icon_size, icon_size),
                                          shadow=self.colors.visual_shadow("image")))
            inset = icon_size * 0.5 + icon_pad if icon_path else 0
            text_x = x + pad_x + inset
            text_w = max(0.5, card_w - (text_x - x) - pad_x)

            raw_label = item.label or ""
            raw_value = _fmt(item.value)
            label_target = fixed_common if fixed_common is not None else (fixed_label if has_label_fs else None)
            value_target = fixed_common if fixed_common is not None else (fixed_value if has_value_fs else None)

            def fit(text: str, factor: float, target: Optional[float], start: float):
                if target is not None:
                    return self.fitter.fit_to_lines(text, target, target, base_wrap(text_w, factor), 2, 30)
                return self.fitter.fit_to_lines(text, start, min_fs, base_wrap(text_w, factor), 2, 30)

            label_fit = fit(raw_label, 10.5, label_target, initial_fs)
            value_fit = fit(raw_value, 11.5, value_target, initial_fs)
            if fixed_common is not None:
                common = fixed_common
            elif unify:
                common = min(label_fit.font_size, value_fit.font_size)
            else:
                common = label_fit.font_size
            label_fit = fit(raw_label, 10.5, label_target, common)
            value_fit = fit(raw_value, 11.5, value_target, common)

            label_lines = max(1, label_fit.line_count)
            if one_col:
                label_h = min(card_h * 0.34, card_h * 0.20 + 0.08 * (label_lines - 1))
                value_floor = card_h * 0.50
            else:
                label_h = min(card_h * 0.42, card_h * 0.22 + 0.09 * (label_lines - 1))
                value_floor = card_h * 0.42
            value_h = max(value_floor, card_h - label_h - pad_y * 2 - min_gap)
            auto = pick_text_color(box)

            out.append(self._label(label_fit.text, text_x, y + pad_y, text_w, label_h, label_fit.font_size,
                                   bold=True, color=label_color or auto, align="center", valign="top",
                                   para_space_after=0))
            out.append(self._label(value_fit.text, text_x, y + pad_y + label_h + min_gap, text_w,
                                   max(0.0, value_h - min_gap), value_fit.font_size,
                                   color=value_color or auto, align="center", valign="top", para_space_after=0))
        return out

    # Bars and scales

    def _draw_progress(self, region: Region, recipe: ItemsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        style = self._style("progress")
        label_align = "right" if str(style.get("labelAlign") or "right").startswith("r") else "left"
        label_fs = _num_or(style.get("labelFontSize"), 14)
        label_gap = _num(style.get("labelGap"), 0.08)
        bar_cfg = style.get("bar") if isinstance(style.get("bar"), dict) else {}
        bar_height_max = min(0.6, _num_or(bar_cfg.get("heightMax"), 0.4))
        bar_bg = _hex(bar_cfg.get("bg"), "EEEEEE")
        bar_bg_line = _hex(bar_cfg.get("bgLine"), "DDDDDD")
        value_cfg = style.get("value") if isinstance(style.get("value"), dict) else {}
        show_value = value_cfg.get("show") is not False
        suffix = value_cfg["suffix"] if isinstance(value_cfg.get("suffix"), str) else "%"
        value_fs = _num_or(value_cfg.get("fontSize"), 12)
        value_right = str(value_cfg.get("align") or "right").startswith("r")
        value_offset = _num(value_cfg.get("offset"), 0.04)

        bar_x = rx + rw * 0.40
        bar_w = rw * 0.55
        label_w = rw * 0.35
        bar_h = min(bar_height_max, rh / max(1, len(recipe.items)) - 0.1)

        out: List[Primitive] = []
        for i, item in enumerate(recipe.items[:8]):
            y = ry + i * (bar_h + 0.12)
            out.append(self._label(item.label or "", rx, y, label_w - label_gap, bar_h, label_fs,
                                   align=label_align, valign="middle"))
            out.append(self._rect(bar_x, y, bar_w, bar_h, bar_bg, Line(bar_bg_line, 0.5)))
            v = max(0.0, min(100.0, _num(item.value, 0)))
            color = self._palette(i)
            filled = bar_w * (v / 100)
            out.append(self._rect(bar_x, y, filled, bar_h, color))
            if show_value:
                tx = bar_x + filled - value_offset if value_right else bar_x + filled + value_offset
                tw = max(0.5, rw * 0.12)
                out.append(self._label(f"{_fmt(v)}{suffix}", tx - (tw if value_right else 0), y, tw, bar_h, value_fs,
                                       align="right" if value_right else "left", valign="middle", color="111111"))
        return out

    def _draw_bullet(self, region: Region, recipe: ItemsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        style = self._style("bullet")
        row_h = min(0.45, rh / max(1, len(recipe.items)) - 0.08)
        label_fs = _num(style.get("labelFontSize"), 14)
        label_align = "right" if str(style.get("labelAlign") or "right").lower().startswith("r") else "left"
        value_fs = _num(style.get("valueFontSize"), 12)
        target_fs = _num(style.get("targetFontSize"), 11)
        box_w = max(0.4, _num(style.get("valueBoxWidth"), 0.8))
        outside_pad = max(0.0, _num(style.get("valueOutsidePad"), 0.05))
        target_offset = max(0.05, _num(style.get("targetOffsetY"), 0.18))
        value_text_color = normalize_color(style.get("valueTextColor")) if style.get("valueTextColor") else None

        track_w = rw * 0.58
        base_x = rx + rw * 0.30
        out: List[Primitive] = []
        for i, item in enumerate(recipe.items[:5]):
            y = ry + i * (row_h + 0.12)
            out.append(self._label(item.label or "", rx + 0.1, y, rw * 0.25 - 0.1, row_h, label_fs,
                                   align=label_align, valign="middle"))
            out.append(self._rect(base_x, y, track_w, row_h, "EEEEEE", Line("DDDDDD", 0.5)))

            val = _num(item.value, 0)
            tgt = _num(item.target, 0)
            denom = max(1.0, val, tgt, 100.0)
            val_w = max(0.0, min(track_w, track_w * (val / denom)))
            tgt_x = base_x + max(0.0, min(track_w, track_w * (tgt / denom)))
            color = self._palette(i)
            out.append(self._rect(base_x, y, val_w, row_h, color))
            out.append(LinePrimitive(tgt_x, y, tgt_x, y + row_h, Line("333333", 2)))

            if val_w > box_w:
                out.append(self._label(_fmt(val), base_x + max(0.0, val_w - box_w), y, box_w, row_h, value_fs,
                                       color=value_text_color or pick_text_color(color), align="right", valign="middle"))
            else:
                out.append(self._label(_fmt(val), base_x + val_w + outside_pad, y, box_w, row_h, value_fs,
                                       color="333333", align="left", valign="middle"))
            out.append(self._label(_fmt(tgt), tgt_x - box_w / 2, y - target_offset, box_w, 0.2, target_fs,
                                   color="333333", align="center", valign="bottom"))
        return out

    def _draw_waterfall(self, region: Region, recipe: ItemsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        items = recipe.items[:8]
        count = max(1, len(items))
        gap = 0.2
        bar_w = max(0.2, (rw - gap * max(0, count - 1)) / count)
        max_abs = max([1.0] + [abs(_num(item.delta, 0)) for item in items])
        style = self._style("waterfall")
        max_bar_h = rh * 0.85
        scale = max_bar_h / max_abs
        min_bar_h = min(0.15, rh * 0.25)
        baseline_ratio = max(0.05, min(0.95, _num(style.get("baselineRatio"), 0.55)))
        baseline = ry + rh * baseline_ratio

        out: List[Primitive] = []
        if style.get("grid") is True or str(style.get("grid")).lower() == "true":
            grid_color = _hex(style.get("gridColor"), "DDE3EA")
            grid_width = max(0.5, _num(style.get("gridWidth"), 1.0))
            levels = int(max(2, min(6, _num(style.get("gridLevels"), 4))))
            for i in range(levels):
                gy = ry + (i / (levels - 1)) * rh
                out.append(LinePrimitive(rx, gy, rx + rw, gy, Line(grid_color, grid_width)))
            out.append(LinePrimitive(rx, baseline, rx + rw, baseline, Line(grid_color, grid_width + 0.4)))

        x = rx
        for item in items:
            v = _num(item.delta, 0)
            h = min(max(min_bar_h, abs(v) * scale), max_bar_h)
            y = baseline - h if v >= 0 else baseline
            y = max(y, ry)
            if y + h > ry + rh:
                h = ry + rh - y
            out.append(self._rect(x, y, bar_w, h, self._secondary if v >= 0 else self._primary, Line("FFFFFF", 0.5)))

            value_y = y - 0.25 if v >= 0 else y + h + 0.05
            value_y = max(value_y, ry)
            if value_y + 0.3 > ry + rh:
                value_y = ry + rh - 0.3
            sign = "+" if v >= 0 else ""
            out.append(self._label(f"{sign}{_fmt(v)}", x - 0.2, value_y, bar_w + 0.4, 0.3, 10, align="center"))

            label_y = baseline + 0.1
            if label_y + 0.3 > ry + rh:
                label_y = ry + rh - 0.3
            out.append(self._label(item.label or "", x - 0.3, label_y, bar_w + 0.6, 0.3, 10, align="center"))
            x += bar_w + gap
        return out

    # Time and grids

    @staticmethod
    def gantt_tasks(tasks: Sequence[GanttTask]) -> List[Tuple[str, Optional[datetime], Optional[datetime]]]:
        """Parse task dates; a start plus a positive duration stands in for a missing end."""
        parsed = []
        for task in tasks:
            start = _parse_date(task.start)
            end = _parse_date(task.end)
            if end is None and start is not None and task.duration and task.duration > 0:
                end = start + timedelta(days=math.floor(task.duration))
            parsed.append((task.label or "", start, end))
        return parsed

    @staticmethod
    def gantt_grid(min_start: datetime, max_end: datetime) -> Tuple[str, List[datetime]]:
        """Grid unit chosen from the span, and grid dates clamped to the span."""
        span_days = max(1.0, (max_end - min_start).total_seconds()) / 86400
        if span_days >= 60:
            unit = "month"
        elif span_days >= 14:
            unit = "week"
        elif span_days >= 2:
            unit = "day"
        else:
            unit = "hour"

        def clamp(d: datetime) -> datetime:
            return max(min_start, min(max_end, d))

        lines: List[datetime] = []
        if unit == "month":
            year, month = min_start.year, min_start.month
            while True:
                d = datetime(year, month, 1)
                if d > max_end:
                    break
                lines.append(clamp(d))
                month += 1
                if month > 12:
                    month, year = 1, year + 1
        elif unit == "week":
            d = (min_start - timedelta(days=min_start.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
            while d <= max_end:
                lines.append(clamp(d))
                d += timedelta(days=7)
        elif unit == "day":
            d = min_start.replace(hour=0, minute=0, second=0, microsecond=0)
            while d <= max_end:
                lines.append(clamp(d))
                d += timedelta(days=1)
        else:
            d = min_start.replace(minute=0, second=0, microsecond=0)
            while d <= max_end:
                lines.append(clamp(d))
                d += timedelta(hours=1)
        return unit, lines

    def _draw_gantt(self, region: Region, recipe: GanttRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        visible = recipe.tasks[:10]
        bar_h = min(0.35, rh / max(1, len(visible)) - 0.08)
        parsed = self.gantt_tasks(visible)
        valid = [(label, s, e) for label, s, e in parsed if s is not None and e is not None and e >= s]

        out: List[Primitive] = []
        if not valid:
            for i, (label, _, _) in enumerate(parsed):
                y = ry + i * (bar_h + 0.12)
                color = self._palette(i)
                out.append(self._label(label, rx, y, rw * 0.25, bar_h, 10))
                out.append(self._rect(rx + rw * 0.28, y, rw * 0.65, bar_h, color, Line(color, 0.5)))
            return out

        min_start = min(s for _, s, _ in valid)
        max_end = max(e for _, _, e in valid)
        span = max(1.0, (max_end - min_start).total_seconds())
        bar_x0 = rx + rw * 0.28

        def scale(d: datetime) -> float:
            return rw * 0.65 * ((d - min_start).total_seconds() / span)

        style = self._style("gantt")
        grid_color = _hex(style.get("gridColor") if isinstance(style.get("gridColor"), str) and style["gridColor"].strip()
                          else None, "9AA3AF")
        grid_width = max(0.5, _num(style.get("gridWidth"), 1.2))
        _, grid = self.gantt_grid(min_start, max_end)
        for d in grid:
            gx = bar_x0 + scale(d)
            out.append(LinePrimitive(gx, ry, gx, ry + rh, Line(grid_color, grid_width)))

        date_fs = max(6.0, _num(style.get("labelFontSize"), 12))
        for i, (label, start, end) in enumerate(valid):
            y = ry + i * (bar_h + 0.12)
            out.append(self._label(label, rx, y, rw * 0.25, bar_h, 10, align="right", valign="middle"))
            w = max(0.05, scale(end) - scale(start))
            x = bar_x0 + scale(start)
            color = self._palette(i)
            out.append(self._rect(x, y, w, bar_h, color, Line(color, 0.5)))
            out.append(self._label(start.date().isoformat(), x, y - 0.18, 1.6, 0.2, date_fs,
                                   color="666666", align="left", valign="bottom"))
            days = max(1, round((end - start).total_seconds() / 86400))
            out.append(self._label(f"{days}日", x, y, w, bar_h, 10, color=pick_text_color(color),
                                   align="center", valign="middle"))
        return out

    def _draw_heatmap(self, region: Region, recipe: HeatmapRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        cols = max(1, len(recipe.x))
        rows = max(1, len(recipe.y))

        def cell(r: int, c: int) -> float:
            row = recipe.z[r] if r < len(recipe.z) else []
            return _num(row[c] if c < len(row) else 0, float("nan"))

        finite = [cell(r, c) for r in range(rows) for c in range(cols)]
        finite = [v for v in finite if not math.isnan(v)]
        min_z = min(finite) if finite else 0.0
        max_z = max(finite) if finite else 1.0
        if min_z == max_z:
            min_z, max_z = 0.0, 1.0

        pad_left, pad_top = 1.0, 0.5
        grid_x, grid_y = rx + pad_left, ry + pad_top
        cell_w = max(0.1, rw - pad_left) / cols
        cell_h = max(0.1, rh - pad_top) / rows

        out: List[Primitive] = []
        for c in range(cols):
            text = recipe.x[c] if c < len(recipe.x) else ""
            out.append(self._label(str(text), grid_x + c * cell_w, ry + 0.05, cell_w, 0.35, 12, align="center"))
        for r in range(rows):
            text = recipe.y[r] if r < len(recipe.y) else ""
            out.append(self._label(str(text), rx + 0.05, grid_y + r * cell_h + (cell_h - 0.3) / 2, pad_left - 0.1, 0.3,
                                   12, align="right"))

        pr, pg, pb = hex_to_rgb(self._primary)
        for r in range(rows):
            for c in range(cols):
                raw = cell(r, c)
                t = 0.0 if math.isnan(raw) else max(0.0, min(1.0, (raw - min_z) / (max_z - min_z)))
                color = rgb_to_hex(255 + (pr - 255) * t, 255 + (pg - 255) * t, 255 + (pb - 255) * t)
                out.append(self._rect(grid_x + c * cell_w, grid_y + r * cell_h, cell_w, cell_h, color,
                                      Line("EAEAEA", 0.75)))
        return out

    # Shapes and diagrams

    def _draw_venn2(self, region: Region, recipe: Venn2Recipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        overlap = max(0.0, _num(recipe.overlap, 0))
        r = min(rw, rh) / 3
        cx1 = rx + rw / 2 - r * 0.6
        cx2 = rx + rw / 2 + r * 0.6
        cy = ry + rh / 2

        out: List[Primitive] = [
            ShapePrimitive("ellipse", Region(cx1 - r, cy - r, 2 * r, 2 * r),
                           fill=Fill(_hex(lighten(self.theme.primary, 20)), 40), line=Line(self._primary, 1)),
            ShapePrimitive("ellipse", Region(cx2 - r, cy - r, 2 * r, 2 * r),
                           fill=Fill(_hex(lighten(self.theme.secondary, 20)), 40), line=Line(self._secondary, 1)),
        ]
        if overlap > 0:
            out.append(self._label(f"{_fmt(overlap)}%", (cx1 + cx2) / 2 - 0.4, cy - 0.15, 0.8, 0.3, 14,
                                   align="center", color="333333"))
        a_label = recipe.a.label if recipe.a and recipe.a.label is not None else "A"
        b_label = recipe.b.label if recipe.b and recipe.b.label is not None else "B"
        out.append(self._label(a_label, cx1 - r, cy + r + 0.05, 2 * r, 0.25, 10, align="center"))
        out.append(self._label(b_label, cx2 - r, cy + r + 0.05, 2 * r, 0.25, 10, align="center"))
        return out

    def _draw_pyramid(self, region: Region, recipe: StepsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        layers = min(5, len(recipe.steps))
        out: List[Primitive] = []
        for i in range(layers):
            y = ry + i * (rh / layers)
            width = rw * (1 - i * 0.15)
            color = self._secondary if i % 2 else self._primary
            out.append(self._rect(rx + (rw - width) / 2, y, width, rh / layers - 0.05, color,
                                  Line("FFFFFF", 0.5), shape="triangle"))
            out.append(self._label(recipe.steps[i].label or "", rx, y + 0.02, rw, rh / layers - 0.09, 11,
                                   color=pick_text_color(color), align="center", valign="middle"))
        return out

    def _draw_funnel(self, region: Region, recipe: StepsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        layers = min(4, len(recipe.steps))
        out: List[Primitive] = []
        for i in range(layers):
            top_w = rw * (1 - i * 0.15)
            y = ry + i * (rh / layers)
            out.append(self._rect(rx + (rw - top_w) / 2, y, top_w, rh / layers - 0.04, self._palette(i),
                                  Line(self._outline, 0.5), shape="trapezoid", rotation=180,
                                  shadow=self.colors.visual_shadow("funnel")))
            out.append(self._label(recipe.steps[i].label or "", rx + 0.15, y + 0.04, rw - 0.3, rh / layers - 0.12, 12,
                                   color="FFFFFF", align="center", valign="middle"))
        return out

    def _draw_process(self, region: Region, recipe: StepsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        steps = recipe.steps[:4]
        n = len(steps)
        y = ry + rh * 0.20
        gap = 0.5
        step_w = min(1.6, (rw - gap * max(0, n - 1)) / max(1, n))
        step_h = min(rh * 0.6, 0.9)
        group_w = step_w * max(1, n) + gap * max(0, n - 1)
        start_x = rx + max(0.0, (rw - group_w) / 2)

        out: List[Primitive] = []
        for i, step in enumerate(steps):
            x = start_x + i * (step_w + gap)
            out.append(self._rect(x, y, step_w, step_h, self._palette(i), Line(self._outline, 0.5),
                                  shadow=self.colors.visual_shadow("process")))
            out.append(self._label(step.label or f"Step {i + 1}", x + 0.08, y + 0.14, step_w - 0.16, step_h - 0.28, 11,
                                   color="FFFFFF", align="center", valign="middle"))
            if i < n - 1:
                out.append(self._rect(x + step_w + (gap - 0.4) / 2, y + (step_h - 0.4) / 2, 0.4, 0.4,
                                      self._secondary, shape="chevron"))
        return out

    def _draw_roadmap(self, region: Region, recipe: RoadmapRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        pad = min(0.6, rw * 0.08)
        start_x = rx + pad
        start_y = ry + rh / 2
        total_w = max(0.0, rw - pad * 2)
        out: List[Primitive] = [LinePrimitive(start_x, start_y, start_x + total_w, start_y, Line(self._outline, 1.2))]
        step = total_w / max(1, len(recipe.milestones) - 1)
        for i, milestone in enumerate(recipe.milestones[:6]):
            cx = start_x + i * step
            out.append(self._rect(cx - 0.08, start_y - 0.08, 0.16, 0.16, self._palette(i), Line(self._outline, 0.8),
                                  shape="ellipse"))
            label_x = max(rx, min(rx + rw - 1.6, cx - 0.8))
            out.append(self._label(milestone.label or "", label_x, start_y + 0.18, 1.6, 0.36, 11, align="center"))
            if milestone.date:
                date_x = max(rx, min(rx + rw - 1.2, cx - 0.6))
                out.append(self._label(milestone.date, date_x, start_y + 0.56, 1.2, 0.25, 9, align="center",
                                       color="666666"))
        return out

    def _draw_timeline(self, region: Region, recipe: StepsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        start_y = ry + rh * 0.4
        seg_w = rw / max(1, len(recipe.steps))
        out: List[Primitive] = [LinePrimitive(rx, start_y, rx + rw, start_y, Line(self._outline, 1.2))]
        for i, step in enumerate(recipe.steps[:6]):
            cx = rx + i * seg_w + seg_w / 2
            out.append(self._rect(cx - 0.08, start_y - 0.08, 0.16, 0.16, self._palette(i), Line(self._outline, 0.8),
                                  shape="ellipse"))
            out.append(self._label(step.label or f"Step {i + 1}", cx - 0.9, start_y + 0.18, 1.8, 0.32, 11,
                                   align="center"))
        return out

    def _draw_map_markers(self, region: Region, recipe: MapMarkersRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        out: List[Primitive] = [self._rect(rx, ry, rw, rh, "F2F6FA", Line("DDE3EA", 1))]
        for marker in recipe.markers[:8]:
            px = rx + max(0.0, min(1.0, _num(marker.x, 0))) * rw
            py = ry + max(0.0, min(1.0, _num(marker.y, 0))) * rh
            out.append(self._rect(px - 0.06, py - 0.06, 0.12, 0.12, self._accent, Line("FFFFFF", 0.8), shape="ellipse"))
            out.append(self._label(marker.label or "", px + 0.1, py - 0.06, 1.6, 0.24, 10))
        return out

    def _draw_matrix(self, region: Region, recipe: MatrixRecipe) -> List[Primitive]:
        gx, gy, gw, gh = region.x, region.y, region.w, region.h
        axes = recipe.axes
        x_labels = (axes.x_labels if axes and axes.x_labels else None) or ["X1", "X2"]
        y_labels = (axes.y_labels if axes and axes.y_labels else None) or ["Y1", "Y2"]
        x_labels = (list(x_labels) + ["", ""])[:2]
        y_labels = (list(y_labels) + ["", ""])[:2]
        frame = Line(self._primary, 1)

        out: List[Primitive] = [
            self._rect(gx, gy, gw, gh, "FFFFFF", frame),
            LinePrimitive(gx + gw / 2, gy, gx + gw / 2, gy + gh, frame),
            LinePrimitive(gx, gy + gh / 2, gx + gw, gy + gh / 2, frame),
            self._label(x_labels[0], gx + 0.1, gy - 0.3, gw / 2 - 0.2, 0.25, 11, align="left"),
            self._label(x_labels[1], gx + gw / 2 + 0.1, gy - 0.3, gw / 2 - 0.2, 0.25, 11, align="right"),
            self._label(y_labels[0], gx - 0.45, gy + 0.1, 0.45, gh / 2 - 0.1, 11, valign="top"),
            self._label(y_labels[1], gx - 0.45, gy + gh / 2 + 0.1, 0.45, gh / 2 - 0.1, 11, valign="top"),
        ]
        for item in recipe.items[:6]:
            cx = gx + (3 * gw / 4 if item.x == 1 else gw / 4)
            cy = gy + (3 * gh / 4 if item.y == 1 else gh / 4)
            out.append(self._rect(cx - 0.08, cy - 0.08, 0.16, 0.16, self._accent, Line(self._outline, 0.75),
                                  shape="ellipse"))
            out.append(self._label(item.label or "", cx + 0.12, cy - 0.12, min(1.8, gw / 2 - 0.3), 0.3, 10))
        return out

    def _draw_callouts(self, region: Region, recipe: ItemsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        style = self._style("callouts")
        icon_cfg = style.get("icon") if isinstance(style.get("icon"), dict) else {}
        icon_size = _num_or(icon_cfg.get("size"), 0.36)
        icon_pad = _num_or(icon_cfg.get("padding"), 0.08)
        glyph, background = self._icon_colors(icon_cfg)

        out: List[Primitive] = []
        for i, item in enumerate(recipe.items[:4]):
            x = rx + (i % 2) * (rw / 2) + 0.1
            y = ry + (i // 2) * (rh / 2) + 0.1
            box_w = rw / 2 - 0.2
            box_h = rh / 2 - 0.2
            bg = _hex(lighten(self.colors.palette_color(i), 60))
            out.append(self._rect(x, y, box_w, box_h, bg, Line(self._secondary, 0.5),
                                  shadow=self.colors.visual_shadow("callouts")))
            text_color = pick_text_color(bg)

            icon_path = self._resolve_icon(item, icon_cfg, glyph, background)
            if icon_path:
                text_x = x + icon_pad + icon_size + icon_pad
                text_w = box_w - (text_x - x) - 0.1
                out.append(ImagePrimitive(icon_path, Region(x + icon_pad, y + icon_pad, min(icon_size, box_w * 0.3),
                                                            min(icon_size, box_h * 0.5)),
                                          shadow=self.colors.visual_shadow("image")))
            else:
                text_x = x + 0.1
                text_w = box_w - 0.2

            out.append(self._label(item.label or "", text_x, y + 0.1, text_w, 0.4, 12, bold=True, color=text_color))
            if item.value:
                out.append(self._label(_fmt(item.value), text_x, y + 0.55, text_w, 0.4, 14, color=text_color))
        return out

    def _draw_checklist(self, region: Region, recipe: ItemsRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        items = recipe.items[:10]
        if not items:
            return []
        style = self._style("checklist")
        gap_y = _num(style.get("gapY"), 0.18)
        mark = _num(style.get("markSize"), 0.28)
        pad_left = mark + 0.3
        text_w = max(0.5, rw - pad_left)
        initial = _num_or(style.get("fontSizeInitial"), 18)
        minimum = _num_or(style.get("fontSizeMin"), 11)
        max_lines = int(_num_or(style.get("maxLines"), 3))
        base_row = _num(style.get("baseRowHeight"), 0.42)
        extra = _num(style.get("extraPerWrappedLine"), 0.20)
        text_color = normalize_color(style.get("textColor")) if style.get("textColor") else "111111"

        fits = []
        heights = []
        for item in items:
            fit = self.fitter.fit_to_lines(item.label or "", initial, minimum, max(18, math.floor(text_w * 10)),
                                           max_lines, 48)
            fits.append(fit)
            heights.append(min(0.95, base_row + extra * (max(1, fit.line_count) - 1)))

        needed = sum(heights) + gap_y * (len(items) - 1)
        scale = max(0.75, rh / needed) if needed > rh else 1.0

        out: List[Primitive] = []
        cursor = ry
        for fit, est in zip(fits, heights):
            h = est * scale
            box_y = cursor + (h - mark) / 2
            out.append(self._rect(rx, box_y, mark, mark, _hex(lighten(self.theme.primary, 10)), Line(self._primary, 1),
                                  shadow=self.colors.visual_shadow("callouts")))
            out.append(self._rect(rx + 0.04, box_y + 0.06, mark - 0.08, mark - 0.12, "FFFFFF", shape="chevron"))
            out.append(self._label(fit.text, rx + pad_left, cursor, text_w, h, fit.font_size, bold=True,
                                   color=text_color, valign="middle"))
            cursor += h + gap_y
            if cursor > ry + rh - 0.05:
                break
        return out

    def _draw_table(self, region: Region, recipe: TableRecipe) -> List[Primitive]:
        style = self._style("tables")
        header_fill = normalize_color(style.get("headerFill")) or _hex(lighten(self.theme.primary, 40), "CCCCCC")
        header_color = normalize_color(style.get("headerColor")) or "FFFFFF"
        fill_a = normalize_color(style.get("rowFillA")) or _hex(lighten(self.theme.secondary, 120), "FFFFFF")
        fill_b = normalize_color(style.get("rowFillB")) or _hex(lighten(self.theme.primary, 120), "F7F7F7")

        rows: List[List[TableCell]] = []
        if recipe.headers:
            rows.append([TableCell(str(h or ""), bold=True, color=header_color, fill=header_fill, font_size=12,
                                   font_face=self.font, align="center") for h in recipe.headers])
        for i, row in enumerate(recipe.rows):
            cells = row if isinstance(row, list) else [row]
            fill = fill_b if i % 2 == 1 else fill_a
            rows.append([TableCell(_fmt(c) if c is not None else "", fill=fill, font_size=12, font_face=self.font)
                         for c in cells])
        if not rows:
            return []
        return [TablePrimitive(rows=rows, region=region, border_color="E6E6E6", border_width=1.0)]

    # Comparison

    def _draw_comparison(self, region: Region, recipe: ComparisonRecipe) -> List[Primitive]:
        rx, ry, rw, rh = region.x, region.y, region.w, region.h
        a_label = recipe.a.label if recipe.a and recipe.a.label is not None else "A"
        b_label = recipe.b.label if recipe.b and recipe.b.label is not None else "B"
        a_value = _fmt(recipe.a.value) if recipe.a else ""
        b_value = _fmt(recipe.b.value) if recipe.b else ""

        style = self._style("comparison")
        label_color = normalize_color(style.get("labelColor")) or "EEEEEE"
        value_color = normalize_color(style.get("valueColor")) or "FFFFFF"
        label_align = style.get("labelAlign") if style.get("labelAlign") in ("left", "center", "right") else "right"
        policy = style.get("layoutPolicy") if isinstance(style.get("layoutPolicy"), dict) else {}
        prefer_vertical = policy.get("preferVerticalIfCrowded") is not False
        min_box_w = _num_or(policy.get("horizontalMinBoxWidth"), 2.4)
        eff_gap = min(_num_or(policy.get("gapX"), 0.3), 0.12)
        pad_x = _num_or(policy.get("padX"), 0.15)
        label_pad = max(0.06, pad_x * 0.4)
        pad_y = _num_or(policy.get("padY"), 0.12)
        value_offset = _num_or(style.get("valueOffsetY"), 0)

        color_mode = str(style.get("colorMode") or "primarySecondary")
        if color_mode == "palettePair":
            first, second = self._palette(0), self._palette(1)
        elif color_mode == "aiPair":
            first = _hex(self.theme.ai_primary or self.theme.primary)
            second = _hex(self.theme.ai_secondary or self.theme.secondary)
        else:
            first, second = self._primary, self._secondary

        def base_wrap(width: float, factor: float) -> int:
            return max(16, math.floor(width * factor))

        box_w = (rw - eff_gap) / 2
        box_h = max(1.2, rh - 0.2)
        a_label_fit = self.fitter.fit_to_lines(a_label, 16, 16, base_wrap(box_w, 8.5), 2, 30)
        b_label_fit = self.fitter.fit_to_lines(b_label, 16, 16, base_wrap(box_w, 8.5), 2, 30)
        a_value_fit = self.fitter.fit_to_lines(a_value, 16, 16, base_wrap(box_w, 10.5), 5, 44)
        b_value_fit = self.fitter.fit_to_lines(b_value, 16, 16, base_wrap(box_w, 10.5), 5, 44)

        crowded = prefer_vertical and any(
            fit.font_size <= 12 and fit.line_count >= 3 for fit in (a_value_fit, b_value_fit)
        )
        stacked = box_w < min_box_w or crowded
        logger.debug(f"comparison layout: {'stacked' if stacked else 'side by side'} (box width {box_w:.2f})")

        card_shadow = self.colors.visual_shadow("comparison")
        radius = min(self.theme.corner_radius, 6)

        def card(x: float, y: float, w: float, h: float, fill: str, label_fit, value_fit, label_h: float,
                 value_h: float) -> List[Primitive]:
            inner_w = w - label_pad * 2
            return [
                self._rect(x, y, w, h, fill, Line(self._outline, 0.5), corner_radius=radius, shadow=card_shadow),
                ShapePrimitive("rect", Region(x + label_pad, y + pad_y, inner_w, label_h), fill=Fill("FFFFFF", 50)),
                self._label(label_fit.text, x + label_pad, y + pad_y, inner_w, label_h, label_fit.font_size,
                            bold=True, color=label_color, align=label_align, valign="middle"),
                self._label(value_fit.text, x + label_pad, y + pad_y + label_h + value_offset, inner_w, value_h,
                            value_fit.font_size, color=value_color, align="center", valign="top"),
            ]

        if not stacked:
            y = ry + 0.1
            label_h = min(0.7, 0.28 + 0.12 * max(a_label_fit.line_count, b_label_fit.line_count))
            value_h = box_h - label_h - pad_y * 2 - 0.04
            return (card(rx, y, box_w, box_h, first, a_label_fit, a_value_fit, label_h, value_h)
                    + card(rx + box_w + eff_gap, y, box_w, box_h, second, b_label_fit, b_value_fit, label_h, value_h))

        gap_y = 0.2
        v_box_h = (rh - gap_y) / 2
        top_y = ry + 0.05
        bottom_y = top_y + v_box_h + gap_y
        a_label_fit = self.fitter.fit_to_lines(a_label, 16, 16, base_wrap(rw, 7), 2, 30)
        b_label_fit = self.fitter.fit_to_lines(b_label, 16, 16, base_wrap(rw, 7), 2, 30)
        a_value_fit = self.fitter.fit_to_lines(a_value, 16, 16, base_wrap(rw, 10), 6, 52)
        b_value_fit = self.fitter.fit_to_lines(b_value, 16, 16, base_wrap(rw, 10), 6, 52)
        a_label_h = min(0.9, 0.32 + 0.16 * a_label_fit.line_count)
        b_label_h = min(0.9, 0.32 + 0.16 * b_label_fit.line_count)
        return (card(rx, top_y, rw, v_box_h, first, a_label_fit, a_value_fit, a_label_h,
                     v_box_h - a_label_h - pad_y * 2)
                + card(rx, bottom_y, rw, v_box_h, second, b_label_fit, b_value_fit, b_label_h,
                       v_box_h - b_label_h - pad_y * 2))
