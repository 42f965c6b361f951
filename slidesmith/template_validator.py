"""Fail-fast consistency check between a template and the slides using it."""

import logging
from typing import List, Optional, Sequence

from .exceptions import TemplateValidationError
from .models import SlideSpec, TemplateConfig, VisualRecipe

logger = logging.getLogger(__name__)


class TemplateValidator:
    """Checks that every slide has a layout, and a visual area when it needs one."""

    def validate(
        self,
        template: TemplateConfig,
        slides: Sequence[SlideSpec],
        recipes: Optional[Sequence[Optional[VisualRecipe]]] = None,
    ) -> List[str]:
        """
        Collect every template/slide mismatch.

        Args:
            template: Template configuration
            slides: Slides in display order
            recipes: Effective recipe per slide; defaults to each slide's own recipe

        Returns:
            List of human-readable findings, empty when the template fits
        """
        errors: List[str] = []
        for i, slide in enumerate(slides):
            layout_key = slide.layout or "content_only"
            layout = template.layout(layout_key)
            if layout is None:
                errors.append(f"[slide {i + 1}] layout '{layout_key}' not found in template.layouts")
                continue

            recipe = recipes[i] if recipes is not None and i < len(recipes) else slide.visual_recipe
            if recipe is None:
                continue

            visual_elements = layout.visual_elements()
            if not visual_elements:
                errors.append(f"[slide {i + 1}] layout '{layout_key}' has no elements visual (recipeRef: visual_recipe)")
                continue

            for element in visual_elements:
                if not element.area or element.area not in layout.areas:
                    area_name = element.area or "(missing)"
                    errors.append(
                        f"[slide {i + 1}] layout '{layout_key}' visual element area '{area_name}' not found in areas"
                    )
                    break

        return errors

    def ensure_valid(
        self,
        template: TemplateConfig,
        slides: Sequence[SlideSpec],
        recipes: Optional[Sequence[Optional[VisualRecipe]]] = None,
    ) -> None:
        """Raise TemplateValidationError carrying all findings if any exist."""
        errors = self.validate(template, slides, recipes)
        if errors:
            logger.error(f"Template validation failed with {len(errors)} finding(s): {errors[0]}")
            raise TemplateValidationError(errors[0], errors)
        logger.debug(f"Template validated against {len(slides)} slides")
