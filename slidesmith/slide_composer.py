"""Per-slide composition: background, layout body, visual placement and branding."""

import logging
import math
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .color_resolver import ColorResolver, lighten, normalize_color, pick_text_color
from .image_generator import (
    ImageGenerator,
    build_background_prompt,
    build_photo_prompt,
    read_image_dimensions,
)
from .layout_resolver import LayoutAreaResolver
from .models import (
    FooterRule,
    LayoutKind,
    PresentationRequest,
    ShadowSpec,
    SlideSpec,
    TemplateElement,
    VisualRecipe,
)
from .primitives import (
    Fill,
    ImagePrimitive,
    Primitive,
    Region,
    ShapePrimitive,
    TableCell,
    TablePrimitive,
    TextPrimitive,
)
from .resource_tracker import ResourceTracker
from .template_elements import RenderContext, TemplateElementRenderer, overview_pairs
from .text_fitter import TextFitter, clean_bullet, split_bold_runs
from .visual_renderer import VisualRenderer

logger = logging.getLogger(__name__)

# Kinds that never fit the right panel of a two-column layout.
BOTTOM_KINDS = ("process", "roadmap", "gantt", "timeline")

LOGO_MAX_W = 1.2
LOGO_MAX_H = 0.9
LOGO_MIN_H = 0.3
LOGO_SHADOW = ShadowSpec(type="outer", color="000000", opacity=0.3, blur=6, offset=2, angle=45)

ABOUT_TITLE = "会社概要"
FOOTER_H = 0.3
FOOTER_COLOR = "666666"


@dataclass
class ComposedSlide:
    """Everything the canvas needs to draw one slide."""

    background_color: Optional[str] = None
    background_image: Optional[str] = None
    primitives: List[Primitive] = field(default_factory=list)
    notes: Optional[str] = None
    visual_rendered: bool = False


@dataclass
class _SlideState:
    index: int
    slide: SlideSpec
    recipe: Optional[VisualRecipe]
    layout_key: str
    text_color: str = "000000"
    primitives: List[Primitive] = field(default_factory=list)
    visual_rendered: bool = False

    def add(self, items: Sequence[Primitive]) -> None:
        self.primitives.extend(items)


class SlideComposer:
    """
    Composes slides into drawing primitives.

    Each slide moves through the same steps: choose a background, populate
    the layout body (template elements first, code-side defaults otherwise),
    place the visual, then add the logo and footers.
    """

    def __init__(
        self,
        request: PresentationRequest,
        colors: ColorResolver,
        fitter: TextFitter,
        areas: LayoutAreaResolver,
        visuals: VisualRenderer,
        elements: TemplateElementRenderer,
        image_generator: Optional[ImageGenerator] = None,
        tracker: Optional[ResourceTracker] = None,
    ):
        self.request = request
        self.colors = colors
        self.theme = colors.theme
        self.fitter = fitter
        self.areas = areas
        self.geometry = areas.geometry
        self.visuals = visuals
        self.elements = elements
        self.template = areas.template
        self.image_generator = image_generator
        self.tracker = tracker
        self._logo_dims: Optional[Tuple[int, int]] = None
        self._logo_checked = False

        self._layouts = {
            LayoutKind.TITLE_SLIDE.value: self._title_slide,
            LayoutKind.SECTION_HEADER.value: self._section_header,
            LayoutKind.QUOTE.value: self._quote,
            LayoutKind.CONTENT_WITH_VISUAL.value: self._content_with_visual,
            LayoutKind.CONTENT_WITH_BOTTOM_VISUAL.value: self._content_with_bottom_visual,
            LayoutKind.CONTENT_WITH_IMAGE.value: self._content_with_image,
            LayoutKind.VISUAL_ONLY.value: self._visual_only,
            LayoutKind.VISUAL_HERO_SPLIT.value: self._visual_hero_split,
            LayoutKind.COMPARISON_CARDS.value: self._comparison_cards,
            LayoutKind.CHECKLIST_TOP_BULLETS_BOTTOM.value: self._checklist_top_bullets_bottom,
            LayoutKind.CONTENT_ONLY.value: self._content_only,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def compose(self, index: int, slide: SlideSpec, recipe: Optional[VisualRecipe] = None) -> ComposedSlide:
        """
        Compose one slide.

        Args:
            index: Zero-based slide position
            slide: Slide content
            recipe: Visual recipe for the slide, if any

        Returns:
            ComposedSlide with background, primitives and notes
        """
        layout_key = slide.layout
        if layout_key in (LayoutKind.CONTENT_WITH_VISUAL.value, LayoutKind.CONTENT_WITH_BOTTOM_VISUAL.value):
            if recipe is None and not slide.image_path:
                logger.info(f"Slide {index + 1}: '{layout_key}' has no recipe or image, using content_only")
                layout_key = LayoutKind.CONTENT_ONLY.value

        state = _SlideState(index=index, slide=slide, recipe=recipe, layout_key=layout_key)
        composed = ComposedSlide(notes=slide.notes)
        self._background(state, composed)

        draw = self._layouts.get(layout_key)
        if draw is not None:
            draw(state)
        elif self._elements_for(layout_key):
            logger.info(f"Slide {index + 1}: rendering custom layout '{layout_key}' from template elements")
            context = self._render_elements(state, layout_key, self._elements_for(layout_key), self._data(state))
            if any(el.type == "visual" for el in self._elements_for(layout_key)):
                state.visual_rendered = True
            logger.debug(f"Custom layout flags: {context.rendered_flags}")
        else:
            logger.warning(f"Slide {index + 1}: layout '{layout_key}' has no elements, drawing as content_only")
            state.layout_key = LayoutKind.CONTENT_ONLY.value
            self._content_only(state)

        self._fallback_visual(state)

        if slide.elements:
            self._render_elements(state, state.layout_key, slide.elements, self._data(state))

        self._branding(state)
        composed.primitives = state.primitives
        composed.visual_rendered = state.visual_rendered
        return composed

    def compose_about(self, index: int) -> ComposedSlide:
        """Company overview slide appended after the content slides."""
        background = normalize_color(lighten(self.theme.secondary, 85))
        composed = ComposedSlide(background_color=background)
        slide = SlideSpec(title=ABOUT_TITLE, layout="company_about")
        state = _SlideState(index=index, slide=slide, recipe=None, layout_key="company_about",
                            text_color=pick_text_color(background))

        overview = self.request.company_overview
        about_elements = self._elements_for("company_about")
        if about_elements:
            data = {
                "companyOverview": overview.model_dump(exclude_none=True) if overview else None,
                "body": self.request.company_about,
            }
            self._render_elements(state, "company_about", about_elements, data)
        else:
            logger.warning("No company_about layout in template, drawing the built-in overview table")
            self._about_body(state)

        state.add(self._logo_primitives(shadow=None))
        if self.request.company_copyright:
            state.add([self._plain_footer(self.request.company_copyright)])
        composed.primitives = state.primitives
        return composed

    def fallback_primitives(self, title: str) -> List[Primitive]:
        """Title-only content for a slide whose composition failed."""
        g = self.geometry
        fitted = self.fitter.fit_to_lines(title, 32, 20, 40, 1, 24)
        return [TextPrimitive(
            text=fitted.text,
            region=Region(g.margin_x, g.content_top_y - 0.35, g.content_w, 0.8),
            font_size=fitted.font_size,
            font_face=self.theme.head_font,
            bold=True,
            color="000000",
            valign="middle",
        )]

    # ------------------------------------------------------------------
    # Background
    # ------------------------------------------------------------------

    def _background(self, state: _SlideState, composed: ComposedSlide) -> None:
        primary, secondary = self.theme.primary, self.theme.secondary
        is_title = state.index == 0 and state.layout_key == LayoutKind.TITLE_SLIDE.value
        title_layout = self.areas.layout(LayoutKind.TITLE_SLIDE.value)
        source = title_layout.background.source if title_layout and title_layout.background else None

        if is_title and self.request.title_slide_image_path:
            path = self.request.title_slide_image_path
            if os.path.exists(path):
                composed.background_image = path
                state.text_color = "000000"
                return
            logger.warning(f"Title slide image not found: {path}, using a flat background")
            composed.background_color = normalize_color(lighten(primary, 80))
        elif is_title and (state.slide.title_slide_image_prompt or (source and source.type == "ai")):
            composed.background_color = normalize_color(lighten(primary, 80))
            generated = self._generate_background(state.slide, source.negative_prompt if source else None)
            if generated:
                composed.background_image = generated
        elif is_title:
            composed.background_color = normalize_color(lighten(primary, 80))
        else:
            composed.background_color = normalize_color(lighten(secondary, 80))

        state.text_color = pick_text_color(composed.background_color)

    def _generate_background(self, slide: SlideSpec, template_negative: Optional[str]) -> Optional[str]:
        if self.image_generator is None:
            logger.warning("Title slide asks for a generated background but no image generator is configured")
            return None
        prompt = build_background_prompt(self.theme.primary, self.theme.secondary)
        negative = slide.title_slide_image_negative_prompt or template_negative
        result = self.image_generator.generate(prompt, negative_prompt=negative, aspect_ratio="16:9")
        if not result.success or not result.path:
            logger.warning(f"Background generation failed: {result.message}")
            return None
        if self.tracker:
            self.tracker.track(result.path)
        return result.path

    # ------------------------------------------------------------------
    # Shared pieces
    # ------------------------------------------------------------------

    def _elements_for(self, layout_key: str) -> List[TemplateElement]:
        layout = self.areas.layout(layout_key)
        return list(layout.elements) if layout else []

    def _data(self, state: _SlideState, *keys: str) -> Dict[str, Any]:
        slide = state.slide
        data = {
            "title": slide.title,
            "bullets": list(slide.bullets),
            "visual_recipe": state.recipe,
            "imagePath": slide.image_path,
            "special_content": slide.special_content,
            "notes": slide.notes,
        }
        if keys:
            return {k: data.get(k) for k in keys}
        return data

    def _render_elements(
        self,
        state: _SlideState,
        layout_key: str,
        elements: Sequence[TemplateElement],
        data: Dict[str, Any],
    ) -> RenderContext:
        context = RenderContext(slide_index=state.index, layout_key=layout_key, data=data)
        state.add(self.elements.render(layout_key, elements, context))
        return context

    def _optional_shadow(self, value: Any) -> Optional[ShadowSpec]:
        if value is None:
            return None
        return self.colors.shadow(value)

    def _area_style(self, name: str) -> Dict[str, Any]:
        return self.template.area_style(name) if self.template else {}

    def _title_bar(self, state: _SlideState, region: Region, fit: Tuple) -> List[Primitive]:
        color = self.areas.resolve_title_bar_color(state.layout_key, state.slide.accent_color)
        title_shadow = self.template.lookup("components.title.shadow") if self.template else None
        fitted = self.fitter.fit_to_lines(state.slide.title, *fit)
        return [
            ShapePrimitive(
                shape="rect",
                region=region,
                fill=Fill(color),
                shadow=self._optional_shadow(self._area_style("titleBar").get("shadow")),
            ),
            TextPrimitive(
                text=fitted.text,
                region=Region(region.x + 0.2, region.y, max(0.2, region.w - 0.4), region.h),
                font_size=fitted.font_size,
                font_face=self.theme.head_font,
                bold=True,
                color=pick_text_color(color),
                valign="middle",
                shadow=self._optional_shadow(title_shadow),
                runs=split_bold_runs(fitted.text),
            ),
        ]

    def _bullets(
        self,
        state: _SlideState,
        bullets: Sequence[str],
        region: Region,
        font_size: float,
        merge: bool = False,
    ) -> List[Primitive]:
        items = TextFitter.merge_quoted_continuations(bullets) if merge else list(bullets)
        items = [clean_bullet(b).strip() for b in items]
        items = [b for b in items if b]
        if not items:
            return []
        style = self._area_style("bullets")
        return [TextPrimitive(
            text="\n".join(items),
            region=region,
            font_size=font_size,
            font_face=self.theme.body_font,
            color=state.text_color,
            bullet=True,
            auto_fit=True,
            para_space_after=12,
            fill=self.colors.fill(style.get("bg")) if style.get("bg") else None,
            shadow=self._optional_shadow(style.get("shadow")),
        )]

    def _place_visual(self, state: _SlideState, region: Region, image_sizing: str = "contain") -> bool:
        """Draw the recipe, or the slide image when there is none."""
        if state.recipe is not None:
            state.add(self.visuals.render(state.recipe, region))
            state.visual_rendered = True
            return True
        if state.slide.image_path:
            state.add([ImagePrimitive(
                path=state.slide.image_path,
                region=region,
                sizing=image_sizing,
                shadow=self.colors.visual_shadow("image"),
            )])
            state.visual_rendered = True
            return True
        return False

    def _standard_title(self, state: _SlideState, layout_key: str, fit: Tuple = (32, 22, 36, 1, 24)) -> None:
        g = self.geometry
        region = self.areas.resolve_area(
            layout_key, "title", Region(g.margin_x, g.content_top_y - 0.35, g.content_w, 0.6)
        )
        state.add(self._title_bar(state, region, fit))

    def _bottom_band(self) -> Region:
        g = self.geometry
        return Region(g.margin_x, g.bottom_band_y, g.content_w, g.bottom_band_h)

    def _right_panel(self) -> Region:
        g = self.geometry
        return Region(g.two_col_visual_x, g.content_top_y + 0.6, g.two_col_visual_w, 3.4)

    def _below_bullets(self, region: Region) -> Region:
        g = self.geometry
        min_y = g.content_top_y + 0.5 + max(2.5, g.two_col_text_h - 0.5) + 0.2
        if region.y < min_y:
            region = region.moved(y=min_y)
        return self.areas.clamp_to_reserved_bottom(region)

    # ------------------------------------------------------------------
    # Layouts
    # ------------------------------------------------------------------

    def _title_slide(self, state: _SlideState) -> None:
        key = state.layout_key
        elements = self._elements_for(key)
        if elements:
            self._render_elements(state, key, elements, self._data(state, "title", "bullets"))
            return

        g = self.geometry
        title = self.fitter.fit_to_lines(state.slide.title, 36, 22, 28, 1, 28)
        state.add([TextPrimitive(
            text=title.text,
            region=Region(0.8, 1.2, g.page_w - 1.6, 1.2),
            font_size=title.font_size,
            font_face=self.theme.head_font,
            bold=True,
            color=state.text_color,
            align="center",
            valign="middle",
        )])
        if state.slide.bullets:
            subtitle_source = self.fitter.prevent_leading_punctuation(
                self.fitter.format_bullets_for_colon_separation(state.slide.bullets, 24, 4)
            )
            subtitle = self.fitter.fit_to_lines(subtitle_source, 18, 14, 36, 3, 32)
            state.add([TextPrimitive(
                text=subtitle.text,
                region=Region(0.8, 2.6, g.page_w - 1.6, 1.6),
                font_size=subtitle.font_size,
                font_face=self.theme.body_font,
                color=state.text_color,
                align="center",
                valign="top",
            )])

    def _section_header(self, state: _SlideState) -> None:
        key = state.layout_key
        elements = self._elements_for(key)
        if elements:
            self._render_elements(state, key, elements, self._data(state, "title", "bullets"))
            return

        g = self.geometry
        fitted = self.fitter.fit_to_lines(state.slide.title, 36, 20, 28, 1, 24)
        state.add([TextPrimitive(
            text=fitted.text,
            region=Region(0, 0, g.page_w, g.page_h),
            font_size=fitted.font_size,
            font_face=self.theme.head_font,
            bold=True,
            color=state.text_color,
            align="center",
            valign="middle",
        )])

    def _quote(self, state: _SlideState) -> None:
        key = state.layout_key
        elements = self._elements_for(key)
        if elements:
            self._render_elements(state, key, elements, self._data(state, "title", "bullets", "special_content"))
            return

        g = self.geometry
        state.add(self._title_bar(
            state, Region(g.margin_x, g.content_top_y - 0.35, g.content_w, 0.6), (28, 20, 36, 1, 24)
        ))
        quote = self.fitter.format_quote_lines(state.slide.special_content, 18)
        if not quote:
            return
        fitted = self.fitter.fit_to_lines(
            quote, 32, 22, 30, 4, 38, suppress_ellipsis=True, min_font_floor=20
        )
        state.add([TextPrimitive(
            text=fitted.text,
            region=Region(0.8, 1.2, g.page_w * 0.88, 3.2),
            font_size=fitted.font_size,
            font_face=self.theme.head_font,
            italic=True,
            color=state.text_color,
            align="center",
            valign="middle",
        )])

    def _content_with_visual(self, state: _SlideState) -> None:
        key = state.layout_key
        g = self.geometry
        recipe = state.recipe
        prefer_bottom = self.areas.prefers_bottom_band(recipe)
        elements = self._elements_for(key)

        if elements:
            if prefer_bottom:
                elements = [el for el in elements if el.type != "visual"]
            self._render_elements(
                state, key, elements, self._data(state, "title", "bullets", "visual_recipe", "imagePath")
            )
            if any(el.type == "visual" for el in elements):
                state.visual_rendered = True
            elif prefer_bottom:
                logger.info(f"Slide {state.index + 1}: {recipe.kind} moved to the bottom band")
                self._place_visual(state, self._below_bullets(self._bottom_band()))
            else:
                region = self.areas.resolve_area(key, "visual", self._right_panel())
                logger.warning(f"Slide {state.index + 1}: template has no visual element, drawing in the right panel")
                self._place_visual(state, region)
            return

        self._standard_title(state, key)
        bullets_region = self.areas.resolve_area(
            key, "bullets",
            Region(g.margin_x, g.content_top_y + 0.5, g.two_col_text_w, max(2.5, g.two_col_text_h - 0.5)),
        )
        state.add(self._bullets(state, state.slide.bullets, bullets_region, 18))

        is_bottom_kind = recipe is not None and recipe.kind in BOTTOM_KINDS
        if recipe is not None and prefer_bottom:
            region = self.areas.resolve_area(key, "visual", self._bottom_band())
            self._place_visual(state, self._below_bullets(region))
        elif recipe is not None and not is_bottom_kind:
            self._place_visual(state, self.areas.resolve_area(key, "visual", self._right_panel()))
        elif recipe is None and state.slide.image_path:
            self._place_visual(state, self.areas.resolve_area(key, "visual", self._right_panel()))

    def _content_with_bottom_visual(self, state: _SlideState) -> None:
        key = state.layout_key
        g = self.geometry
        elements = self._elements_for(key)

        if elements:
            self._render_elements(
                state, key, elements, self._data(state, "title", "bullets", "visual_recipe", "imagePath")
            )
            if any(el.type == "visual" for el in elements):
                state.visual_rendered = True
            else:
                logger.warning(f"Slide {state.index + 1}: template has no visual element, drawing in the bottom band")
                region = self.areas.resolve_area(key, "visual", self._bottom_band())
                self._place_visual(state, self.areas.clamp_to_reserved_bottom(region))
            return

        self._standard_title(state, key)
        bullets_region = self.areas.resolve_area(
            key, "bullets", Region(g.margin_x, g.content_top_y + 0.5, g.content_w, 2.4)
        )
        state.add(self._bullets(state, state.slide.bullets, bullets_region, 20, merge=True))
        region = self.areas.resolve_area(key, "visual", self._bottom_band())
        self._place_visual(state, self.areas.clamp_to_reserved_bottom(region))

    def _ensure_photo(self, state: _SlideState) -> None:
        slide = state.slide
        if slide.image_path or not slide.context_for_visual:
            return
        if self.image_generator is None:
            logger.warning(f"Slide {state.index + 1}: no image generator for context_for_visual")
            return
        prompt = build_photo_prompt(slide.context_for_visual, self.theme.primary, self.theme.secondary)
        result = self.image_generator.generate(prompt, aspect_ratio="4:3")
        if result.success and result.path:
            if self.tracker:
                self.tracker.track(result.path)
            state.slide = slide.model_copy(update={"image_path": result.path})
        else:
            logger.warning(f"Slide {state.index + 1}: photo generation failed: {result.message}")

    def _content_with_image(self, state: _SlideState) -> None:
        key = state.layout_key
        self._ensure_photo(state)
        elements = self._elements_for(key)
        if elements:
            self._render_elements(state, key, elements, self._data(state, "title", "bullets", "imagePath"))
            return
        self._image_and_bullets(state, key)

    def _image_and_bullets(self, state: _SlideState, key: str) -> None:
        g = self.geometry
        self._standard_title(state, key)
        image_region = self.areas.resolve_area(
            key, "image",
            Region(g.margin_x, g.content_top_y + 0.5, max(5.4, g.content_w * 0.45), max(3.6, g.two_col_text_h)),
        )
        bullets_region = Region(
            image_region.right + g.gap,
            g.content_top_y + 0.5,
            max(4.5, g.content_w - image_region.w - g.gap),
            max(2.5, g.two_col_text_h - 0.2),
        )
        if state.slide.image_path:
            state.add([ImagePrimitive(
                path=state.slide.image_path,
                region=image_region,
                sizing="cover",
                shadow=self.colors.visual_shadow("image"),
            )])
        state.add(self._bullets(state, state.slide.bullets, bullets_region, 18))

    def _visual_only(self, state: _SlideState) -> None:
        key = state.layout_key
        elements = self._elements_for(key)
        if elements:
            self._render_elements(
                state, key, elements, self._data(state, "title", "bullets", "visual_recipe", "imagePath")
            )
            if any(el.type == "visual" for el in elements):
                state.visual_rendered = True
            return

        g = self.geometry
        top = g.content_top_y - 0.1
        self._place_visual(state, Region(g.margin_x, top, g.content_w, g.page_h - top - 0.6), image_sizing="cover")

    def _visual_hero_split(self, state: _SlideState) -> None:
        key = state.layout_key
        elements = self._elements_for(key)
        if elements:
            self._render_elements(
                state, key, elements, self._data(state, "title", "bullets", "visual_recipe", "imagePath")
            )
            if any(el.type == "visual" for el in elements):
                state.visual_rendered = True
            return
        logger.warning(f"Slide {state.index + 1}: visual_hero_split has no template elements, using image and bullets")
        self._ensure_photo(state)
        self._image_and_bullets(state, key)

    def _split_comparison_bullets(self, slide: SlideSpec) -> Tuple[List[str], List[str]]:
        bullets_a = list(slide.bullets_a or [])
        bullets_b = list(slide.bullets_b or [])
        if slide.bullets_a and slide.bullets_b:
            return bullets_a, bullets_b
        mid = math.ceil(len(slide.bullets) / 2)
        left = slide.bullets[:mid]
        right = slide.bullets[mid:] or list(left)
        logger.warning("comparison_cards without bulletsA/bulletsB, splitting bullets into halves")
        return bullets_a or left, bullets_b or right

    def _comparison_cards(self, state: _SlideState) -> None:
        key = state.layout_key
        g = self.geometry
        bullets_a, bullets_b = self._split_comparison_bullets(state.slide)
        elements = self._elements_for(key)

        if elements:
            data = self._data(state, "title", "bullets")
            data.update({"bulletsA": bullets_a, "bulletsB": bullets_b})
            context = self._render_elements(state, key, elements, data)
            for card, ref, items in (("cardA", "bulletsA", bullets_a), ("cardB", "bulletsB", bullets_b)):
                if context.rendered_flags.get(f"comparison_cards_{ref}") or not items:
                    continue
                logger.warning(f"Slide {state.index + 1}: template did not draw {ref}, adding them manually")
                box = self.areas.resolve_area(key, card, Region(0.8, 1.6, 3.8, 2.4))
                state.add(self._card_bullets(items, box))
            return

        logger.warning(f"Slide {state.index + 1}: comparison_cards has no template elements, using default cards")
        self._standard_title(state, key)
        card_w = (g.content_w - g.gap) / 2
        card_a = self.areas.resolve_area(key, "cardA", Region(g.margin_x, 1.6, card_w, 4.2))
        card_b = self.areas.resolve_area(key, "cardB", Region(g.margin_x + card_w + g.gap, 1.6, card_w, 4.2))
        for box, items in ((card_a, bullets_a), (card_b, bullets_b)):
            state.add([ShapePrimitive(
                shape="roundRect",
                region=box,
                fill=Fill("FFFFFF"),
                corner_radius=self.theme.corner_radius,
                shadow=self.colors.visual_shadow("comparison"),
            )])
            state.add(self._card_bullets(items, box))

    def _card_bullets(self, items: Sequence[str], box: Region) -> List[Primitive]:
        text = "\n".join(b for b in (clean_bullet(i).strip() for i in items) if b)
        if not text:
            return []
        return [TextPrimitive(
            text=text,
            region=Region(box.x + 0.2, box.y + 0.6, max(0.2, box.w - 0.4), max(0.2, box.h - 0.6)),
            font_size=16,
            font_face=self.theme.body_font,
            color="333333",
            bullet=True,
            auto_fit=True,
            valign="top",
        )]

    def _checklist_top_bullets_bottom(self, state: _SlideState) -> None:
        key = state.layout_key
        elements = self._elements_for(key)
        if elements:
            self._render_elements(state, key, elements, self._data(state, "title", "bullets", "visual_recipe"))
            if any(el.type == "visual" for el in elements):
                state.visual_rendered = True
            return
        logger.warning(f"Slide {state.index + 1}: checklist_top_bullets_bottom has no template elements")
        state.layout_key = LayoutKind.CONTENT_ONLY.value
        self._content_only(state)

    def _content_only(self, state: _SlideState) -> None:
        key = state.layout_key
        g = self.geometry
        recipe = state.recipe
        prefer_bottom = self.areas.prefers_bottom_band(recipe)
        is_bottom_kind = recipe is not None and recipe.kind in BOTTOM_KINDS
        to_bottom = recipe is not None and (is_bottom_kind or prefer_bottom)

        if recipe is not None:
            target = (LayoutKind.CONTENT_WITH_BOTTOM_VISUAL.value if to_bottom
                      else LayoutKind.CONTENT_WITH_VISUAL.value)
            target_elements = self._elements_for(target)
            if target_elements:
                logger.info(f"Slide {state.index + 1}: content_only with {recipe.kind} uses the {target} template")
                state.layout_key = target
                self._render_elements(
                    state, target, target_elements, self._data(state, "title", "bullets", "visual_recipe")
                )
                if any(el.type == "visual" for el in target_elements):
                    state.visual_rendered = True
                return

        elements = self._elements_for(key)
        has_template = bool(elements)
        has_bullets_element = any(
            el.type == "text" and (el.area == "bullets" or el.content_ref == "bullets") for el in elements
        )
        if has_template:
            self._render_elements(
                state, key, elements, self._data(state, "title", "bullets", "visual_recipe", "imagePath")
            )
            if any(el.type == "visual" for el in elements):
                state.visual_rendered = True
        else:
            state.add(self._title_bar(
                state, Region(g.margin_x, g.content_top_y - 0.35, g.content_w, 0.6), (32, 20, 40, 1, 24)
            ))

        if (has_template and has_bullets_element) or state.visual_rendered:
            return
        if recipe is None:
            width, height = g.content_w, 4.0
        elif to_bottom:
            width, height = g.content_w, 2.6
        else:
            width, height = g.two_col_text_w, g.two_col_text_h
        region = Region(g.margin_x, g.content_top_y + 0.5, width, height)
        state.add(self._bullets(state, state.slide.bullets, region, 20, merge=True))

    # ------------------------------------------------------------------
    # Visual fallback
    # ------------------------------------------------------------------

    def _fallback_visual(self, state: _SlideState) -> None:
        """Place a recipe no layout step has drawn yet."""
        recipe = state.recipe
        layouts = (LayoutKind.CONTENT_WITH_VISUAL.value, LayoutKind.CONTENT_ONLY.value)
        if recipe is None or state.visual_rendered or state.layout_key not in layouts:
            return

        g = self.geometry
        prefer_bottom = self.areas.prefers_bottom_band(recipe)
        is_bottom = (
            prefer_bottom
            or recipe.kind in BOTTOM_KINDS
            or (state.layout_key == LayoutKind.CONTENT_WITH_VISUAL.value and bool(state.slide.image_path))
        )
        if is_bottom:
            region = self._bottom_band()
        else:
            region = Region(g.two_col_visual_x, g.content_top_y + 0.7, g.two_col_visual_w, g.two_col_visual_h)
        region = self.areas.clamp_to_reserved_bottom(region)
        logger.warning(
            f"Slide {state.index + 1}: {recipe.kind} placed by fallback in the "
            f"{'bottom band' if is_bottom else 'right panel'}"
        )
        self._place_visual(state, region)

    # ------------------------------------------------------------------
    # Branding
    # ------------------------------------------------------------------

    def _branding(self, state: _SlideState) -> None:
        state.add(self._logo_primitives(shadow=LOGO_SHADOW))
        state.add(self._copyright_primitives(state))
        state.add(self._page_number_primitives(state))

    def _logo_primitives(self, shadow: Optional[ShadowSpec]) -> List[Primitive]:
        path = self.request.company_logo_path
        if not path:
            return []
        if not self._logo_checked:
            self._logo_checked = True
            self._logo_dims = read_image_dimensions(path)
            if self._logo_dims is None:
                logger.warning(f"Could not read logo dimensions: {path}")
        if not self._logo_dims:
            return []

        width, height = self._logo_dims
        aspect = height / width if width else 1.0
        w = LOGO_MAX_W
        h = w * aspect
        if h > LOGO_MAX_H:
            h = LOGO_MAX_H
            w = h / aspect
        if h < LOGO_MIN_H:
            h = LOGO_MIN_H
            w = h / aspect
        g = self.geometry
        region = Region(g.page_w - g.margin_x - w, g.page_h - h - 0.25, w, h)
        return [ImagePrimitive(path=path, region=region, sizing=None, shadow=shadow)]

    def _company_name(self) -> str:
        if self.request.company_name:
            return self.request.company_name
        overview = self.request.company_overview
        return overview.company_name if overview and overview.company_name else ""

    def _footer_region(self, rule: FooterRule, default: Region) -> Region:
        area = rule.area
        if area is None:
            return default
        ref = self.template.region_def(area.ref) if self.template else None
        w = area.w if area.w is not None else (ref.w if ref and ref.w is not None else default.w)
        h = area.h if area.h is not None else (ref.h if ref and ref.h is not None else default.h)
        x = area.x if area.x is not None else (ref.x if ref and ref.x is not None else default.x)
        y = area.y if area.y is not None else (ref.y if ref and ref.y is not None else default.y)
        return Region(x, y, w, h)

    def _footer_text(self, rule: FooterRule, text: str, region: Region, default_align: str) -> TextPrimitive:
        style = self.areas.resolve_style(rule.style_refs, rule.style)
        align = style.get("align") or (rule.area.align if rule.area else None) or default_align
        return TextPrimitive(
            text=text,
            region=region,
            font_size=float(style.get("fontSize") or 10),
            font_face=str(style.get("fontFace") or self.theme.body_font),
            color=self.colors.themed(style.get("color")) or FOOTER_COLOR,
            align=align,
            valign="middle",
            fill=self.colors.fill(style.get("fill")) if style.get("fill") else None,
        )

    def _plain_footer(self, text: str) -> TextPrimitive:
        g = self.geometry
        return TextPrimitive(
            text=text,
            region=Region(0.4, g.page_h - 0.35, g.page_w - 0.8, FOOTER_H),
            font_size=10,
            font_face=self.theme.body_font,
            color=FOOTER_COLOR,
            align="center",
            valign="middle",
        )

    def _copyright_primitives(self, state: _SlideState) -> List[Primitive]:
        rule = self.template.branding.copyright if self.template else None
        is_first = state.index == 0

        if isinstance(rule, FooterRule):
            if not rule.is_enabled or (rule.skip_on_title_slide and is_first):
                return []
            text = (rule.format or "<companyName>")
            text = text.replace("<companyName>", self._company_name()).replace("<year>", str(datetime.now().year))
            if not text.strip():
                return []
            g = self.geometry
            region = self._footer_region(rule, Region(0.4, g.page_h - 0.35, g.page_w - 0.8, FOOTER_H))
            return [self._footer_text(rule, text, region, "center")]

        text = rule if isinstance(rule, str) and rule.strip() else self.request.company_copyright
        return [self._plain_footer(text)] if text else []

    def _page_number_primitives(self, state: _SlideState) -> List[Primitive]:
        rule = self.template.branding.page_number if self.template else None
        if rule is None or not rule.is_enabled:
            return []
        if rule.skip_on_title_slide and state.index == 0:
            return []
        text = (rule.format or "<pageNo>").replace("<pageNo>", str(state.index + 1))
        g = self.geometry
        region = self._footer_region(rule, Region(g.margin_x, g.page_h - 0.35, 1.5, FOOTER_H))
        return [self._footer_text(rule, text, region, "left")]

    # ------------------------------------------------------------------
    # About slide
    # ------------------------------------------------------------------

    def _about_body(self, state: _SlideState) -> None:
        g = self.geometry
        title_fill = normalize_color(lighten(self.theme.primary, 70))
        fitted = self.fitter.fit_to_lines(ABOUT_TITLE, 28, 20, 16, 1, 22)
        state.add([TextPrimitive(
            text=fitted.text,
            region=Region(g.margin_x, 0.6, g.content_w, 0.6),
            font_size=fitted.font_size,
            font_face=self.theme.head_font,
            bold=True,
            color=pick_text_color(title_fill),
            valign="middle",
            fill=Fill(title_fill),
        )])

        border = normalize_color(lighten(self.theme.primary, 120))
        alt_fill = normalize_color(lighten(self.theme.secondary, 110))
        label_w = min(2.2, g.content_w * 0.22)
        pairs = overview_pairs(self.request.company_overview)
        region = Region(g.margin_x, 1.6, g.content_w, max(0.5, 0.5 * max(1, len(pairs))))

        if pairs:
            rows = []
            for idx, (label, value) in enumerate(pairs):
                row_fill = "FFFFFF" if idx % 2 == 0 else alt_fill
                rows.append([
                    TableCell(label, bold=True, color="333333", fill=row_fill, font_size=14,
                              font_face=self.theme.body_font),
                    TableCell(value, color="333333", fill=row_fill, font_size=14, font_face=self.theme.body_font),
                ])
            state.add([TablePrimitive(rows=rows, region=region, col_widths=[label_w, g.content_w - label_w],
                                      border_color=border)])
        elif self.request.company_about:
            cell = TableCell(self.request.company_about, color="333333", fill="FFFFFF", font_size=14,
                             font_face=self.theme.body_font, valign="top")
            state.add([TablePrimitive(rows=[[cell]], region=Region(g.margin_x, 1.6, g.content_w, 4.2),
                                      border_color=border)])
