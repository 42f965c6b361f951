"""Tests for per-slide composition."""

from datetime import datetime
from typing import Optional

import pytest

from slidesmith.color_resolver import ColorResolver, lighten, normalize_color, resolve_theme
from slidesmith.layout_resolver import LayoutAreaResolver
from slidesmith.models import PresentationRequest, SlideSpec, TemplateConfig, parse_recipe
from slidesmith.primitives import ImagePrimitive, Region, ShapePrimitive, TablePrimitive, TextPrimitive
from slidesmith.slide_composer import ABOUT_TITLE, SlideComposer
from slidesmith.template_elements import TemplateElementRenderer
from slidesmith.text_fitter import RenderCache, TextFitter
from slidesmith.visual_renderer import VisualRenderer

from conftest import StubImageGenerator, write_png


def make_composer(template: Optional[dict] = None, image_generator=None, **request_fields) -> SlideComposer:
    config = TemplateConfig.model_validate(template) if template is not None else None
    request = PresentationRequest(file_name="deck", slides=[], template_config=config, **request_fields)
    colors = ColorResolver(resolve_theme(request), config)
    fitter = TextFitter(RenderCache())
    areas = LayoutAreaResolver(config, colors)
    visuals = VisualRenderer(colors, fitter, template=config, image_generator=image_generator)
    return SlideComposer(
        request, colors, fitter, areas, visuals, TemplateElementRenderer(areas, colors, visuals),
        image_generator=image_generator,
    )


def texts(composed):
    return [p.text for p in composed.primitives if isinstance(p, TextPrimitive)]


KPI = {"type": "kpi", "items": [{"label": "Revenue", "value": "$1.2M"}]}


class TestBackgrounds:
    """Tests for background selection."""

    def test_title_slide_uses_lightened_primary(self):
        composer = make_composer()
        composed = composer.compose(0, SlideSpec(title="Hello", layout="title_slide"))
        assert composed.background_color == normalize_color(lighten("#0B5CAB", 80))
        assert composed.background_image is None

    def test_title_layout_after_first_slide_is_flat(self):
        composer = make_composer()
        composed = composer.compose(3, SlideSpec(title="Hello", layout="title_slide"))
        assert composed.background_color == normalize_color(lighten("#00B0FF", 80))

    def test_title_image_path(self, tmp_path):
        image = write_png(tmp_path / "cover.png")
        composer = make_composer(title_slide_image_path=image)
        composed = composer.compose(0, SlideSpec(title="Hello", layout="title_slide"))
        assert composed.background_image == image

    def test_missing_title_image_falls_back_to_color(self, tmp_path):
        composer = make_composer(title_slide_image_path=str(tmp_path / "nope.png"))
        composed = composer.compose(0, SlideSpec(title="Hello", layout="title_slide"))
        assert composed.background_image is None
        assert composed.background_color == normalize_color(lighten("#0B5CAB", 80))

    def test_generated_title_background(self, tmp_path):
        generator = StubImageGenerator(path=write_png(tmp_path / "bg.png"))
        composer = make_composer(image_generator=generator)
        slide = SlideSpec(title="Hello", layout="title_slide", title_slide_image_prompt="city",
                          title_slide_image_negative_prompt="text")
        composed = composer.compose(0, slide)
        assert composed.background_image == generator.path
        prompt, negative, aspect = generator.prompts[0]
        assert "No text overlay" in prompt
        assert negative == "text"
        assert aspect == "16:9"


class TestLayouts:
    """Tests for built-in layout drawing without a template."""

    def setup_method(self):
        self.composer = make_composer()

    def test_content_only_title_bar_and_bullets(self):
        composed = self.composer.compose(1, SlideSpec(title="Agenda", bullets=["**One**", "Two"]))
        bar = composed.primitives[0]
        assert isinstance(bar, ShapePrimitive)
        assert "Agenda" in texts(composed)
        assert "One\nTwo" in texts(composed)

    def test_content_with_visual_without_recipe_degrades(self):
        composed = self.composer.compose(1, SlideSpec(title="T", bullets=["a"], layout="content_with_visual"))
        assert not composed.visual_rendered

    def test_right_panel_visual(self):
        recipe = parse_recipe(KPI)
        composed = self.composer.compose(1, SlideSpec(title="T", bullets=["a"], layout="content_with_visual"), recipe)
        assert composed.visual_rendered
        g = self.composer.geometry
        visual_shapes = [p for p in composed.primitives if isinstance(p, TextPrimitive) and p.text == "Revenue"]
        assert visual_shapes and visual_shapes[0].region.x >= g.two_col_visual_x - 1e-6

    def test_bottom_kind_goes_to_bottom_band(self):
        recipe = parse_recipe({"type": "process", "steps": [{"label": "Plan"}, {"label": "Do"}]})
        composed = self.composer.compose(1, SlideSpec(title="T", bullets=["a"], layout="content_with_visual"), recipe)
        labels = [p for p in composed.primitives if isinstance(p, TextPrimitive) and p.text == "Plan"]
        g = self.composer.geometry
        assert labels[0].region.y >= g.content_top_y + 0.5 + 2.5

    def test_content_only_visual_placed_by_fallback(self):
        recipe = parse_recipe(KPI)
        composed = self.composer.compose(1, SlideSpec(title="T", bullets=["a"]), recipe)
        assert composed.visual_rendered

    def test_quote(self):
        slide = SlideSpec(title="Words", layout="quote", special_content="「継続は力なり」")
        composed = self.composer.compose(1, slide, parse_recipe(KPI))
        quote = [p for p in composed.primitives if isinstance(p, TextPrimitive) and p.italic]
        assert quote and "継続は力なり" in quote[0].text
        assert not composed.visual_rendered

    def test_section_header_centered(self):
        composed = self.composer.compose(1, SlideSpec(title="Part 2", layout="section_header"))
        header = composed.primitives[0]
        assert header.text == "Part 2"
        assert header.align == "center" and header.valign == "middle"

    def test_content_with_image_cover(self, tmp_path):
        photo = write_png(tmp_path / "photo.png")
        slide = SlideSpec(title="Team", bullets=["People"], layout="content_with_image", image_path=photo)
        composed = self.composer.compose(1, slide)
        images = [p for p in composed.primitives if isinstance(p, ImagePrimitive)]
        assert images[0].sizing == "cover"

    def test_photo_generated_from_context(self, tmp_path):
        generator = StubImageGenerator(path=write_png(tmp_path / "gen.png"))
        composer = make_composer(image_generator=generator)
        slide = SlideSpec(title="Team", bullets=["People"], layout="content_with_image", context_for_visual="office")
        composed = composer.compose(1, slide)
        images = [p for p in composed.primitives if isinstance(p, ImagePrimitive)]
        assert images[0].path == generator.path
        assert generator.prompts[0][2] == "4:3"

    def test_visual_hero_split_without_elements(self, tmp_path):
        photo = write_png(tmp_path / "photo.png")
        slide = SlideSpec(title="Hero", bullets=["Point"], layout="visual_hero_split", image_path=photo)
        composed = self.composer.compose(1, slide)
        assert any(isinstance(p, ImagePrimitive) for p in composed.primitives)
        assert "Point" in texts(composed)

    def test_comparison_cards_default(self):
        slide = SlideSpec(title="Compare", layout="comparison_cards", bullets_a=["Manual"], bullets_b=["Auto"])
        composed = self.composer.compose(1, slide)
        cards = [p for p in composed.primitives if isinstance(p, ShapePrimitive) and p.shape == "roundRect"]
        assert len(cards) == 2
        assert cards[1].region.x > cards[0].region.x
        assert "Manual" in texts(composed) and "Auto" in texts(composed)

    def test_comparison_cards_split_bullets(self):
        slide = SlideSpec(title="Compare", layout="comparison_cards", bullets=["a", "b", "c"])
        composed = self.composer.compose(1, slide)
        assert "a\nb" in texts(composed)
        assert "c" in texts(composed)

    def test_checklist_without_elements_is_content_only(self):
        recipe = parse_recipe({"type": "checklist", "items": [{"label": "Sign"}]})
        slide = SlideSpec(title="Todo", bullets=["x"], layout="checklist_top_bullets_bottom")
        composed = self.composer.compose(1, slide, recipe)
        assert composed.visual_rendered
        assert "Sign" in texts(composed)

    def test_unknown_layout_draws_content_only(self):
        composed = self.composer.compose(1, SlideSpec(title="Odd", bullets=["x"], layout="custom_x"))
        assert "Odd" in texts(composed)
        assert "x" in texts(composed)

    def test_notes_carried(self):
        assert self.composer.compose(1, SlideSpec(title="N", notes="speak")).notes == "speak"


class TestTemplateLayouts:
    """Tests for template-driven composition."""

    TEMPLATE = {
        "layouts": {
            "content_with_visual": {
                "areas": {
                    "title": {"x": 0.5, "y": 0.3, "w": 12, "h": 0.8},
                    "visual": {"x": 8, "y": 1.5, "w": 4.5, "h": 3.5},
                },
                "elements": [
                    {"type": "text", "area": "title", "contentRef": "title"},
                    {"type": "visual", "area": "visual", "recipeRef": "visual_recipe"},
                ],
            },
            "custom_x": {
                "areas": {"hero": {"x": 1, "y": 1, "w": 6, "h": 3}},
                "elements": [{"type": "text", "area": "hero", "contentRef": "title"}],
            },
            "company_about": {
                "areas": {"table": {"x": 0.6, "y": 1.5, "w": 12, "h": 4}},
                "elements": [{"type": "table", "area": "table"}],
            },
        },
        "branding": {
            "copyright": {"enabled": True, "format": "© <year> <companyName>", "skipOnTitleSlide": True},
            "pageNumber": {"show": True, "format": "<pageNo> / deck", "area": {"x": 12, "y": 7.1, "w": 1, "h": 0.3}},
        },
    }

    def test_template_visual_element(self):
        composer = make_composer(self.TEMPLATE, company_name="Acme")
        composed = composer.compose(1, SlideSpec(title="KPIs", layout="content_with_visual"), parse_recipe(KPI))
        assert composed.visual_rendered
        title = composed.primitives[0]
        assert title.text == "KPIs"
        assert title.region == Region(0.5, 0.3, 12, 0.8)

    def test_content_only_redirects_to_visual_template(self):
        composer = make_composer(self.TEMPLATE)
        composed = composer.compose(1, SlideSpec(title="KPIs", bullets=["a"]), parse_recipe(KPI))
        assert composed.visual_rendered
        assert "Revenue" in texts(composed)

    def test_custom_layout_from_elements(self):
        composer = make_composer(self.TEMPLATE)
        composed = composer.compose(1, SlideSpec(title="Custom", layout="custom_x"))
        assert composed.primitives[0].region == Region(1, 1, 6, 3)

    def test_footers(self):
        composer = make_composer(self.TEMPLATE, company_name="Acme")
        composed = composer.compose(1, SlideSpec(title="Body"))
        found = texts(composed)
        assert f"© {datetime.now().year} Acme" in found
        assert "2 / deck" in found

    def test_copyright_skipped_on_title_slide(self):
        composer = make_composer(self.TEMPLATE, company_name="Acme")
        composed = composer.compose(0, SlideSpec(title="Cover", layout="title_slide"))
        assert not any(t.startswith("©") for t in texts(composed))
        assert "1 / deck" in texts(composed)

    def test_first_slide_skips_footers_whatever_its_layout(self):
        template = dict(self.TEMPLATE, branding={
            "copyright": {"enabled": True, "format": "© <companyName>", "skipOnTitleSlide": True},
            "pageNumber": {"show": True, "skipOnTitleSlide": True},
        })
        composer = make_composer(template, company_name="Acme")

        first = texts(composer.compose(0, SlideSpec(title="Opening", bullets=["a"])))
        assert "© Acme" not in first
        assert "1" not in first

        second = texts(composer.compose(1, SlideSpec(title="Body", bullets=["a"])))
        assert "© Acme" in second
        assert "2" in second

    def test_about_slide_from_template(self):
        composer = make_composer(self.TEMPLATE, company_overview={"company_name": "Acme", "address": "Tokyo"})
        composed = composer.compose_about(4)
        tables = [p for p in composed.primitives if isinstance(p, TablePrimitive)]
        assert [[c.text for c in row] for row in tables[0].rows] == [["会社名", "Acme"], ["所在地", "Tokyo"]]
        assert composed.background_color == normalize_color(lighten("#00B0FF", 85))


class TestBranding:
    """Tests for logo and plain footers."""

    def test_logo_sized_to_aspect(self, tmp_path):
        logo = write_png(tmp_path / "logo.png", size=(400, 100))
        composer = make_composer(company_logo_path=logo, company_copyright="© Acme")
        composed = composer.compose(1, SlideSpec(title="Body"))
        image = [p for p in composed.primitives if isinstance(p, ImagePrimitive)][0]
        assert image.region.w == pytest.approx(1.2)
        assert image.region.h == pytest.approx(0.3)
        assert image.shadow is not None
        assert composed.primitives[-1].text == "© Acme"

    def test_unreadable_logo_skipped(self, tmp_path):
        bad = tmp_path / "logo.png"
        bad.write_text("not an image")
        composer = make_composer(company_logo_path=str(bad))
        composed = composer.compose(1, SlideSpec(title="Body"))
        assert not any(isinstance(p, ImagePrimitive) for p in composed.primitives)

    def test_about_without_template(self):
        composer = make_composer(company_about="We make slides.")
        composed = composer.compose_about(2)
        assert texts(composed)[0] == ABOUT_TITLE
        table = [p for p in composed.primitives if isinstance(p, TablePrimitive)][0]
        assert table.rows[0][0].text == "We make slides."

    def test_fallback_primitives(self):
        primitives = make_composer().fallback_primitives("Broken slide")
        assert len(primitives) == 1
        assert primitives[0].text == "Broken slide"
        assert primitives[0].bold
