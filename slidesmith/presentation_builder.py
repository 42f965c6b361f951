"""Top-level render entry point: validate, resolve the theme, compose, write, clean up."""

import logging
from pathlib import Path
from typing import Optional

from .chart_renderer import ChartRenderer, MatplotlibChartRenderer
from .color_resolver import ColorResolver, resolve_theme
from .exceptions import OutputWriteError, RenderError, TemplateValidationError
from .image_generator import ImageGenerator, OpenAIImageGenerator
from .layout_resolver import LayoutAreaResolver
from .models import PresentationRequest, RenderResult, RenderSettings, SlideSpec
from .pptx_canvas import PptxCanvas
from .resource_tracker import ResourceTracker
from .slide_composer import ComposedSlide, SlideComposer
from .template_elements import TemplateElementRenderer
from .template_validator import TemplateValidator
from .text_fitter import RenderCache, TextFitter
from .visual_renderer import VisualRenderer

logger = logging.getLogger(__name__)


class PresentationBuilder:
    """Renders a PresentationRequest into a .pptx document."""

    def __init__(
        self,
        settings: Optional[RenderSettings] = None,
        chart_renderer: Optional[ChartRenderer] = None,
        image_generator: Optional[ImageGenerator] = None,
    ):
        """
        Initialize the builder.

        Args:
            settings: Output, temp and collaborator settings
            chart_renderer: Chart rasterizer; a matplotlib renderer on the theme palette when omitted
            image_generator: Image generator; an OpenAI generator when an API key is configured
        """
        self.settings = settings or RenderSettings()
        self.chart_renderer = chart_renderer
        self.image_generator = image_generator
        self.validator = TemplateValidator()

        if self.image_generator is None and self.settings.openai_api_key:
            self.image_generator = OpenAIImageGenerator(
                model=self.settings.image_model,
                output_dir=Path(self.settings.temp_dir) / "images",
                api_key=self.settings.openai_api_key,
            )

    def build(self, request: PresentationRequest) -> RenderResult:
        """
        Render the request.

        Never raises: every failure is reported through the returned result.

        Args:
            request: Presentation to render

        Returns:
            RenderResult with the written path, or a failure message
        """
        logger.info(f"Rendering '{request.file_name}' with {len(request.slides)} slides")
        recipes = [request.recipe_for(i) for i in range(len(request.slides))]

        if request.template_config is not None:
            try:
                self.validator.ensure_valid(request.template_config, request.slides, recipes)
            except TemplateValidationError as e:
                return RenderResult(success=False, message=e.errors[0] if e.errors else str(e), error=str(e))

        tracker = ResourceTracker(self.settings.approved_temp_roots())
        try:
            output_path = self._render(request, recipes, tracker)
        except OutputWriteError as e:
            logger.error(f"Could not write presentation: {e}")
            return RenderResult(success=False, message=str(e), error=type(e).__name__)
        except Exception as e:
            logger.error(f"Presentation rendering failed: {e}")
            return RenderResult(success=False, message=str(e), error=type(e).__name__)
        finally:
            for slide in request.slides:
                if slide.image_path:
                    tracker.track(slide.image_path)
            tracker.cleanup()
            if self.settings.sweep_temp_dirs:
                tracker.sweep()

        logger.info(f"Successfully rendered presentation: {output_path}")
        return RenderResult(success=True, file_path=str(output_path))

    def _render(self, request: PresentationRequest, recipes, tracker: ResourceTracker) -> Path:
        output_dir = Path(self.settings.output_dir)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputWriteError(f"Cannot create output directory {output_dir}: {e}", output_dir) from e

        theme = resolve_theme(request, self.settings.default_font)
        template = request.template_config
        colors = ColorResolver(theme, template)
        fitter = TextFitter(RenderCache())
        areas = LayoutAreaResolver(template, colors)

        chart_renderer = self.chart_renderer or MatplotlibChartRenderer(
            output_dir=Path(self.settings.temp_dir) / "charts",
            colors=list(theme.palette),
        )
        visuals = VisualRenderer(
            colors,
            fitter,
            template=template,
            chart_renderer=chart_renderer,
            image_generator=self.image_generator,
            tracker=tracker,
        )
        composer = SlideComposer(
            request,
            colors,
            fitter,
            areas,
            visuals,
            TemplateElementRenderer(areas, colors, visuals),
            image_generator=self.image_generator,
            tracker=tracker,
        )
        canvas = PptxCanvas(
            page_w=areas.geometry.page_w,
            page_h=areas.geometry.page_h,
            native_charts=self.settings.native_charts,
        )

        for index, slide in enumerate(request.slides):
            try:
                composed = self._compose(composer, index, slide, recipes[index])
            except RenderError as e:
                logger.error(f"Failed to compose slide: {e}")
                self._add_fallback_slide(canvas, composer, index, slide)
                continue
            self._draw(canvas, composed)

        if request.company_about or request.company_overview:
            try:
                self._draw(canvas, composer.compose_about(canvas.slide_count))
            except Exception as e:
                logger.warning(f"Failed to add company overview slide: {e}")

        output_path = output_dir / f"{request.file_name}.pptx"
        try:
            canvas.save(output_path)
        except Exception as e:
            raise OutputWriteError(f"Cannot save presentation to {output_path}: {e}", output_path) from e
        return output_path

    @staticmethod
    def _compose(composer: SlideComposer, index: int, slide: SlideSpec, recipe) -> ComposedSlide:
        try:
            return composer.compose(index, slide, recipe)
        except Exception as e:
            raise RenderError(str(e), slide_index=index) from e

    @staticmethod
    def _draw(canvas: PptxCanvas, composed: ComposedSlide) -> None:
        slide = canvas.add_slide()
        if not (composed.background_image and canvas.set_background_image(slide, composed.background_image)):
            canvas.set_background_color(slide, composed.background_color or "FFFFFF")
        drawn = canvas.draw(slide, composed.primitives)
        canvas.set_notes(slide, composed.notes)
        logger.debug(f"Drew {drawn}/{len(composed.primitives)} primitives")

    @staticmethod
    def _add_fallback_slide(canvas: PptxCanvas, composer: SlideComposer, index: int, spec: SlideSpec) -> None:
        """Add a title-only slide when normal composition fails."""
        try:
            slide = canvas.add_slide()
            canvas.set_background_color(slide, "FFFFFF")
            canvas.draw(slide, composer.fallback_primitives(spec.title or f"Slide {index + 1}"))
            canvas.set_notes(slide, spec.notes)
            logger.warning(f"Added fallback slide for slide {index + 1}")
        except Exception as e:
            logger.error(f"Failed to add fallback slide: {e}")
