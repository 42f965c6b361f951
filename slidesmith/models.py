"""Domain models for the slidesmith rendering engine."""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class LayoutKind(str, Enum):
    """Layout kinds understood by the slide composer."""

    TITLE_SLIDE = "title_slide"
    SECTION_HEADER = "section_header"
    QUOTE = "quote"
    CONTENT_ONLY = "content_only"
    CONTENT_WITH_VISUAL = "content_with_visual"
    CONTENT_WITH_BOTTOM_VISUAL = "content_with_bottom_visual"
    CONTENT_WITH_IMAGE = "content_with_image"
    COMPARISON_CARDS = "comparison_cards"
    CHECKLIST_TOP_BULLETS_BOTTOM = "checklist_top_bullets_bottom"
    VISUAL_ONLY = "visual_only"
    VISUAL_HERO_SPLIT = "visual_hero_split"


class ColorPolicy(str, Enum):
    """How AI-suggested theme colors are reconciled with template tokens."""

    TEMPLATE = "template"
    PREFER_AI = "prefer_ai"
    AI_OVERRIDES = "ai_overrides"
    DISABLED = "disabled"


def get_by_path(tree: Any, path: str) -> Any:
    """
    Resolve a dotted path inside a nested dict/list tree.

    Args:
        tree: Nested structure of dicts and lists
        path: Dotted path such as ``"styles.title"`` or ``"items.0.label"``

    Returns:
        The value at the path, or None when any segment is missing
    """
    if not path:
        return None
    node = tree
    for segment in path.split("."):
        if isinstance(node, dict):
            node = node.get(segment)
        elif isinstance(node, (list, tuple)) and segment.isdigit():
            idx = int(segment)
            node = node[idx] if idx < len(node) else None
        else:
            return None
        if node is None:
            return None
    return node


# ---------------------------------------------------------------------------
# Template configuration tree
# ---------------------------------------------------------------------------


class TemplateNode(BaseModel):
    """Base for template nodes: camelCase keys, unknown keys preserved."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="allow")


class AreaDef(TemplateNode):
    """Named area inside a layout, optionally sized from a geometry region."""

    x: Optional[float] = None
    y: Optional[float] = None
    w: Optional[float] = None
    h: Optional[float] = None
    ref: Optional[str] = Field(None, description="Name of a geometry.regionDefs entry")
    align: Optional[str] = None


class RegionDef(TemplateNode):
    x: Optional[float] = None
    y: Optional[float] = None
    w: Optional[float] = None
    h: Optional[float] = None


class Geometry(TemplateNode):
    region_defs: Dict[str, RegionDef] = Field(default_factory=dict)


class TemplateElement(TemplateNode):
    """One drawable element of a template layout."""

    type: str = Field(..., description="shape | text | image | table | visual")
    area: Optional[str] = None
    region: Optional[AreaDef] = Field(None, description="Inline area used when no named area applies")
    content_ref: Optional[str] = None
    style_ref: Optional[Union[str, List[str]]] = None
    recipe_ref: Optional[str] = None
    style: Dict[str, Any] = Field(default_factory=dict)
    shape_type: Optional[str] = None
    path: Optional[str] = None
    text: Optional[str] = None

    @property
    def style_refs(self) -> List[str]:
        if not self.style_ref:
            return []
        if isinstance(self.style_ref, str):
            return [self.style_ref]
        return [ref for ref in self.style_ref if ref]


class TitleBarDef(TemplateNode):
    color: Optional[str] = None


class BackgroundSource(TemplateNode):
    type: Optional[str] = None
    negative_prompt: Optional[str] = None


class BackgroundDef(TemplateNode):
    source: Optional[BackgroundSource] = None


class LayoutDef(TemplateNode):
    """Areas and elements for one layout kind."""

    areas: Dict[str, AreaDef] = Field(default_factory=dict)
    elements: List[TemplateElement] = Field(default_factory=list)
    title_bar: Optional[TitleBarDef] = None
    background: Optional[BackgroundDef] = None

    def visual_elements(self) -> List[TemplateElement]:
        """Elements that draw the slide's visual recipe."""
        return [el for el in self.elements if el.type == "visual" and el.recipe_ref == "visual_recipe"]


class TemplateTokens(TemplateNode):
    primary: Optional[str] = None
    secondary: Optional[str] = None
    accent: Optional[str] = None
    corner_radius: Optional[float] = None
    outline_color: Optional[str] = None
    spacing_base_unit: Optional[float] = None
    shadow_preset: Optional[str] = None
    shadow_presets: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class FontFamily(TemplateNode):
    head: Optional[str] = None
    body: Optional[str] = None


class Typography(TemplateNode):
    font_family: Optional[FontFamily] = None


class FooterRule(TemplateNode):
    """Copyright or page-number footer configuration."""

    enabled: Optional[bool] = None
    show: Optional[bool] = None
    format: Optional[str] = None
    area: Optional[AreaDef] = None
    style_ref: Optional[Union[str, List[str]]] = None
    style: Dict[str, Any] = Field(default_factory=dict)
    skip_on_title_slide: bool = False

    @property
    def is_enabled(self) -> bool:
        return self.enabled is True or self.show is True

    @property
    def style_refs(self) -> List[str]:
        if not self.style_ref:
            return []
        if isinstance(self.style_ref, str):
            return [self.style_ref]
        return [ref for ref in self.style_ref if ref]


class Branding(TemplateNode):
    copyright: Optional[Union[FooterRule, str]] = None
    page_number: Optional[FooterRule] = None
    reserved_bottom: Optional[float] = None


class PaletteStrategy(TemplateNode):
    use: str = "prefer_ai"
    distribution: str = "cycle"
    max_colors: Optional[int] = None


class VisualPlacement(TemplateNode):
    force_bottom_types: Optional[List[str]] = None
    kpi_max_right_panel_items: int = 3
    checklist_max_right_panel_items: int = 4


class Rules(TemplateNode):
    ai_color_policy: ColorPolicy = ColorPolicy.TEMPLATE
    title_bar_color: Optional[str] = None
    palette_strategy: PaletteStrategy = Field(default_factory=PaletteStrategy)
    visual_placement: VisualPlacement = Field(default_factory=VisualPlacement)

    @field_validator("ai_color_policy", mode="before")
    @classmethod
    def _tolerate_unknown_policy(cls, v):
        if v is None:
            return ColorPolicy.TEMPLATE
        try:
            return ColorPolicy(str(v))
        except ValueError:
            logger.warning(f"Unknown aiColorPolicy '{v}', using 'template'")
            return ColorPolicy.TEMPLATE


class TemplateConfig(TemplateNode):
    """Typed view over a template document."""

    layouts: Dict[str, LayoutDef] = Field(default_factory=dict)
    geometry: Geometry = Field(default_factory=Geometry)
    tokens: TemplateTokens = Field(default_factory=TemplateTokens)
    typography: Typography = Field(default_factory=Typography)
    branding: Branding = Field(default_factory=Branding)
    rules: Rules = Field(default_factory=Rules)
    visual_styles: Dict[str, Any] = Field(default_factory=dict)
    area_styles: Dict[str, Any] = Field(default_factory=dict)
    components: Dict[str, Any] = Field(default_factory=dict)

    _tree: Optional[Dict[str, Any]] = PrivateAttr(default=None)

    def layout(self, key: Optional[str]) -> Optional[LayoutDef]:
        if not key:
            return None
        return self.layouts.get(key)

    def visual_style(self, kind: str) -> Dict[str, Any]:
        style = self.visual_styles.get(kind)
        return style if isinstance(style, dict) else {}

    def area_style(self, name: str) -> Dict[str, Any]:
        style = self.area_styles.get(name)
        return style if isinstance(style, dict) else {}

    def region_def(self, name: Optional[str]) -> Optional[RegionDef]:
        if not name:
            return None
        return self.geometry.region_defs.get(name)

    def lookup(self, path: str) -> Any:
        """Resolve a dotted camelCase path against the template document."""
        if self._tree is None:
            self._tree = self.model_dump(by_alias=True, exclude_none=True)
        return get_by_path(self._tree, path)

    class Config:
        json_schema_extra = {
            "example": {
                "layouts": {
                    "content_with_visual": {
                        "areas": {
                            "title": {"x": 0.6, "y": 0.6, "w": 12.13, "h": 0.6},
                            "visual": {"x": 8.2, "y": 1.5, "ref": "panel"},
                        },
                        "elements": [
                            {"type": "text", "area": "title", "contentRef": "title"},
                            {"type": "visual", "area": "visual", "recipeRef": "visual_recipe"},
                        ],
                    }
                },
                "geometry": {"regionDefs": {"panel": {"w": 4.4, "h": 3.4}}},
                "tokens": {"primary": "#0B5CAB", "cornerRadius": 8},
                "rules": {"aiColorPolicy": "prefer_ai"},
            }
        }


# ---------------------------------------------------------------------------
# Visual recipes
# ---------------------------------------------------------------------------


class RecipeNode(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class RecipeItem(RecipeNode):
    """Generic labelled datum used by most item-based recipes."""

    label: Optional[str] = None
    value: Optional[Union[float, str]] = None
    target: Optional[float] = None
    delta: Optional[float] = None
    x: Optional[float] = None
    y: Optional[float] = None
    icon: Optional[str] = None
    icon_name: Optional[str] = Field(None, alias="iconName")
    icon_path: Optional[str] = Field(None, alias="iconPath")

    @property
    def icon_ref(self) -> str:
        return str(self.icon_path or self.icon or self.icon_name or "").strip()


class Step(RecipeNode):
    label: Optional[str] = None
    date: Optional[str] = None


class ChartSeries(RecipeNode):
    name: Optional[str] = None
    data: List[Optional[float]] = Field(default_factory=list)


class GanttTask(RecipeNode):
    label: str = ""
    start: Optional[str] = None
    end: Optional[str] = None
    duration: Optional[float] = None


class Marker(RecipeNode):
    label: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None


class MatrixAxes(RecipeNode):
    x_labels: Optional[List[str]] = Field(None, alias="xLabels")
    y_labels: Optional[List[str]] = Field(None, alias="yLabels")


class ComparisonSide(RecipeNode):
    label: Optional[str] = None
    value: Optional[Union[str, float]] = None


class VennSet(RecipeNode):
    label: Optional[str] = None


class VisualRecipe(RecipeNode):
    """Base of the recipe union; ``type`` selects the drawing routine."""

    type: str
    title: Optional[str] = None

    @property
    def kind(self) -> str:
        return self.type


class ChartRecipe(VisualRecipe):
    type: Literal["bar_chart", "pie_chart", "line_chart"]
    labels: Optional[List[str]] = None
    values: Optional[List[Optional[float]]] = None
    series: List[ChartSeries] = Field(default_factory=list)
    items: Optional[List[RecipeItem]] = None


class ItemsRecipe(VisualRecipe):
    items: List[RecipeItem] = Field(default_factory=list)


class KpiRecipe(ItemsRecipe):
    type: Literal["kpi"]


class KpiGridRecipe(ItemsRecipe):
    type: Literal["kpi_grid"]


class KpiDonutRecipe(ItemsRecipe):
    type: Literal["kpi_donut"]


class ProgressRecipe(ItemsRecipe):
    type: Literal["progress"]


class BulletGraphRecipe(ItemsRecipe):
    type: Literal["bullet"]


class WaterfallRecipe(ItemsRecipe):
    type: Literal["waterfall"]


class CalloutsRecipe(ItemsRecipe):
    type: Literal["callouts"]


class ChecklistRecipe(ItemsRecipe):
    type: Literal["checklist"]


class MatrixRecipe(ItemsRecipe):
    type: Literal["matrix"]
    axes: Optional[MatrixAxes] = None


class StepsRecipe(VisualRecipe):
    type: Literal["pyramid", "funnel", "process", "timeline"]
    steps: List[Step] = Field(default_factory=list)


class RoadmapRecipe(VisualRecipe):
    type: Literal["roadmap"]
    milestones: List[Step] = Field(default_factory=list)


class GanttRecipe(VisualRecipe):
    type: Literal["gantt"]
    tasks: List[GanttTask] = Field(default_factory=list)


class HeatmapRecipe(VisualRecipe):
    type: Literal["heatmap"]
    x: List[str] = Field(default_factory=list)
    y: List[str] = Field(default_factory=list)
    z: List[List[Optional[float]]] = Field(default_factory=list)


class Venn2Recipe(VisualRecipe):
    type: Literal["venn2"]
    a: Optional[VennSet] = None
    b: Optional[VennSet] = None
    overlap: float = 0


class MapMarkersRecipe(VisualRecipe):
    type: Literal["map_markers"]
    markers: List[Marker] = Field(default_factory=list)


class TableRecipe(VisualRecipe):
    type: Literal["table"]
    headers: Optional[List[str]] = None
    rows: List[Union[List[Any], Any]] = Field(default_factory=list)


class ComparisonRecipe(VisualRecipe):
    type: Literal["comparison"]
    a: Optional[ComparisonSide] = None
    b: Optional[ComparisonSide] = None


class UnknownRecipe(VisualRecipe):
    """Recipe whose kind has no drawing routine; it renders nothing."""


RECIPE_MODELS = {
    "bar_chart": ChartRecipe,
    "pie_chart": ChartRecipe,
    "line_chart": ChartRecipe,
    "kpi": KpiRecipe,
    "kpi_grid": KpiGridRecipe,
    "kpi_donut": KpiDonutRecipe,
    "progress": ProgressRecipe,
    "bullet": BulletGraphRecipe,
    "waterfall": WaterfallRecipe,
    "callouts": CalloutsRecipe,
    "checklist": ChecklistRecipe,
    "matrix": MatrixRecipe,
    "pyramid": StepsRecipe,
    "funnel": StepsRecipe,
    "process": StepsRecipe,
    "timeline": StepsRecipe,
    "roadmap": RoadmapRecipe,
    "gantt": GanttRecipe,
    "heatmap": HeatmapRecipe,
    "venn2": Venn2Recipe,
    "map_markers": MapMarkersRecipe,
    "table": TableRecipe,
    "comparison": ComparisonRecipe,
}


def parse_recipe(data: Any) -> Optional[VisualRecipe]:
    """
    Build the typed recipe variant for a raw recipe payload.

    Args:
        data: A recipe dict, an existing VisualRecipe, or None

    Returns:
        The matching recipe model, an UnknownRecipe for unrecognised kinds
        or malformed payloads, or None when no recipe was given
    """
    if data is None:
        return None
    if isinstance(data, VisualRecipe):
        return data
    if not isinstance(data, dict):
        logger.warning(f"Ignoring visual recipe of unexpected type {type(data).__name__}")
        return None

    kind = str(data.get("type") or "")
    model = RECIPE_MODELS.get(kind)
    if model is None:
        return UnknownRecipe.model_validate({**data, "type": kind})

    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Malformed '{kind}' recipe, it will not be drawn: {e.error_count()} errors")
        return UnknownRecipe.model_validate({**data, "type": f"invalid:{kind}"})


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class StyleTokens(BaseModel):
    """Theme-level visual defaults supplied with the request."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    primary: Optional[str] = None
    secondary: Optional[str] = None
    accent: Optional[str] = None
    corner_radius: Optional[float] = None
    outline_color: Optional[str] = None
    spacing_base_unit: Optional[float] = None
    shadow_preset: Optional[str] = None


class CompanyOverview(BaseModel):
    """Company record rendered on the about slide."""

    model_config = ConfigDict(extra="allow")

    company_name: Optional[str] = None
    address: Optional[str] = None
    founded: Optional[str] = None
    representative: Optional[str] = None
    vision: Optional[str] = None
    business: Optional[Union[str, List[str]]] = None
    homepage: Optional[str] = None
    contact: Optional[str] = None


class SlideSpec(BaseModel):
    """A single slide to render."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "Q1 Results",
                "bullets": ["Revenue: $1.2M", "Growth: 15%"],
                "layout": "content_with_visual",
                "visual_recipe": {"type": "kpi", "items": [{"label": "Revenue", "value": "$1.2M"}]},
            }
        },
    )

    title: str = Field("", description="Slide title")
    bullets: List[str] = Field(default_factory=list, description="Bullet text in display order")
    notes: Optional[str] = Field(None, description="Speaker notes")
    layout: str = Field(LayoutKind.CONTENT_ONLY.value, description="Layout kind or a template-defined layout key")
    image_path: Optional[str] = Field(None, alias="imagePath")
    special_content: Optional[str] = Field(None, description="Quote text for the quote layout")
    visual_recipe: Optional[VisualRecipe] = None
    elements: List[TemplateElement] = Field(default_factory=list, description="Freeform template elements")
    context_for_visual: Optional[str] = Field(None, description="Prompt context for generated images")
    bullets_a: Optional[List[str]] = Field(None, alias="bulletsA")
    bullets_b: Optional[List[str]] = Field(None, alias="bulletsB")
    accent_color: Optional[str] = None
    title_slide_image_prompt: Optional[str] = Field(None, alias="titleSlideImagePrompt")
    title_slide_image_negative_prompt: Optional[str] = Field(None, alias="titleSlideImageNegativePrompt")

    @field_validator("visual_recipe", mode="before")
    @classmethod
    def _parse_recipe(cls, v):
        return parse_recipe(v)

    @field_validator("layout", mode="before")
    @classmethod
    def _default_layout(cls, v):
        if isinstance(v, LayoutKind):
            return v.value
        return str(v).strip() if v else LayoutKind.CONTENT_ONLY.value

    @field_validator("bullets", mode="before")
    @classmethod
    def _coerce_bullets(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(b) for b in v if b is not None]


class PresentationRequest(BaseModel):
    """Everything needed to render one presentation document."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    file_name: str = Field(..., description="Output file name without extension")
    slides: List[SlideSpec] = Field(..., description="Slides in display order")
    theme_color1: Optional[str] = Field(None, alias="themeColor1", description="AI-suggested primary color")
    theme_color2: Optional[str] = Field(None, alias="themeColor2", description="AI-suggested secondary color")
    title_slide_image_path: Optional[str] = None
    style_tokens: StyleTokens = Field(default_factory=StyleTokens)
    template_config: Optional[TemplateConfig] = None
    visual_recipes: List[Optional[VisualRecipe]] = Field(
        default_factory=list, description="Per-slide recipes aligned by slide index"
    )
    company_logo_path: Optional[str] = None
    company_copyright: Optional[str] = None
    company_about: Optional[str] = None
    company_overview: Optional[CompanyOverview] = None
    company_name: Optional[str] = None

    @field_validator("visual_recipes", mode="before")
    @classmethod
    def _parse_recipes(cls, v):
        if not v:
            return []
        return [parse_recipe(item) for item in v]

    def recipe_for(self, index: int) -> Optional[VisualRecipe]:
        """Slide recipe, falling back to the request-level list."""
        slide = self.slides[index]
        if slide.visual_recipe is not None:
            return slide.visual_recipe
        if index < len(self.visual_recipes):
            return self.visual_recipes[index]
        return None


# ---------------------------------------------------------------------------
# Results and resolved values
# ---------------------------------------------------------------------------


class FitResult(BaseModel):
    """Outcome of shrink-to-fit text layout."""

    model_config = ConfigDict(frozen=True)

    text: str
    font_size: float
    wrap_chars: int

    @property
    def line_count(self) -> int:
        return len(self.text.split("\n")) if self.text else 0


class ShadowSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["outer", "inner"] = "outer"
    color: str = "000000"
    opacity: float = 0.45
    blur: float = 12
    offset: float = 4
    angle: float = 45


class ResolvedTheme(BaseModel):
    """Theme values computed once per request."""

    model_config = ConfigDict(frozen=True)

    primary: str
    secondary: str
    accent: str
    ai_primary: Optional[str] = None
    ai_secondary: Optional[str] = None
    corner_radius: float = 12
    outline_color: str = "#FFFFFF"
    spacing_unit: float = 1.0
    shadow_preset: str = "soft"
    palette: Tuple[str, ...] = ()
    palette_distribution: str = "cycle"
    head_font: str = "Noto Sans JP"
    body_font: str = "Noto Sans JP"


class RenderResult(BaseModel):
    """Structured outcome of a render invocation."""

    success: bool
    file_path: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


class RenderSettings(BaseModel):
    """Filesystem and collaborator settings for a render run."""

    output_dir: str = Field("presentations", description="Directory receiving the finished document")
    temp_dir: str = Field("temp", description="Root for generated charts and images")
    public_dir: Optional[str] = Field(None, description="Optional public root whose temp/ folders are also approved")
    default_font: str = Field("Noto Sans JP", description="Font used when the template names none")
    image_model: str = Field("dall-e-3", description="Model used for generated backgrounds and icons")
    openai_api_key: Optional[str] = Field(None, description="API key for image generation")
    native_charts: bool = Field(True, description="Draw donut charts as native chart objects")
    sweep_temp_dirs: bool = Field(False, description="Delete leftover files in approved temp folders after a run")

    @classmethod
    def from_env(cls, **overrides: Any) -> "RenderSettings":
        """Build settings from SLIDESMITH_* environment variables."""
        values: Dict[str, Any] = {}
        env_map = {
            "output_dir": "SLIDESMITH_OUTPUT_DIR",
            "temp_dir": "SLIDESMITH_TEMP_DIR",
            "public_dir": "SLIDESMITH_PUBLIC_DIR",
            "default_font": "SLIDESMITH_FONT",
            "image_model": "SLIDESMITH_IMAGE_MODEL",
            "openai_api_key": "OPENAI_API_KEY",
        }
        for field_name, env_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                values[field_name] = value
        sweep = os.getenv("SLIDESMITH_SWEEP_TEMP")
        if sweep:
            values["sweep_temp_dirs"] = sweep.strip().lower() in ("1", "true", "yes", "on")
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def approved_temp_roots(self) -> List[str]:
        roots = [os.path.join(self.temp_dir, "charts"), os.path.join(self.temp_dir, "images")]
        if self.public_dir:
            roots.append(os.path.join(self.public_dir, "temp", "charts"))
            roots.append(os.path.join(self.public_dir, "temp", "images"))
        return roots
