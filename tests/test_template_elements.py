"""Tests for drawing template-declared layout elements."""

import pytest

from slidesmith.models import CompanyOverview, TemplateConfig, parse_recipe
from slidesmith.primitives import (
    ImagePrimitive,
    LinePrimitive,
    Region,
    ShapePrimitive,
    TablePrimitive,
    TextPrimitive,
)
from slidesmith.template_elements import (
    COMPARISON_TITLE_RESERVE,
    RenderContext,
    TemplateElementRenderer,
    overview_pairs,
)

from conftest import make_areas, make_visuals

TEMPLATE = {
    "layouts": {
        "content_only": {
            "areas": {
                "title": {"x": 0.6, "y": 0.4, "w": 12.0, "h": 0.8},
                "body": {"x": 0.6, "y": 1.4, "w": 12.0, "h": 5.0},
                "rule": {"x": 0.6, "y": 1.25, "w": 12.0, "h": 0.0},
            },
        },
        "comparison_cards": {
            "areas": {
                "cardA": {"x": 0.6, "y": 1.6, "w": 5.8, "h": 4.2},
                "cardB": {"x": 6.8, "y": 1.6, "w": 5.8, "h": 4.2},
            },
        },
        "quote": {"areas": {"visual": {"x": 1, "y": 1, "w": 4, "h": 3}}},
        "visual_only": {"areas": {"visual": {"x": 0.8, "y": 1.5, "w": 11.0, "h": 6.0}}},
    },
    "styles": {
        "title": {"fontSize": 28, "bold": True, "color": "primary"},
        "bullets": {"bullet": True, "fontSize": 18},
    },
    "branding": {"reservedBottom": 1.0},
}


class TestOverviewPairs:
    """Tests for company overview rows."""

    def test_known_fields_in_fixed_order(self):
        overview = CompanyOverview(contact="info@example.com", company_name="Acme", founded="2001")
        assert overview_pairs(overview) == [
            ("会社名", "Acme"),
            ("設立", "2001"),
            ("問い合わせ", "info@example.com"),
        ]

    def test_list_values_joined(self):
        pairs = overview_pairs({"business": ["Consulting", "Software"]})
        assert pairs == [("事業内容", "Consulting / Software")]

    def test_extra_string_fields_follow(self):
        pairs = overview_pairs({"company_name": "Acme", "employees": "120", "capital": 5, "motto": "  "})
        assert pairs == [("会社名", "Acme"), ("employees", "120")]

    def test_non_mapping(self):
        assert overview_pairs("Acme") == []


class TestTemplateElementRenderer:
    """Tests for TemplateElementRenderer."""

    def setup_method(self):
        self.template = TemplateConfig.model_validate(TEMPLATE)
        self.areas = make_areas(self.template)
        self.renderer = TemplateElementRenderer(self.areas, self.areas.colors, make_visuals(self.template))

    def _elements(self, *raw):
        return TemplateConfig.model_validate({"layouts": {"x": {"elements": list(raw)}}}).layouts["x"].elements

    def _context(self, layout_key="content_only", **data):
        return RenderContext(slide_index=0, layout_key=layout_key, data=data)

    def test_text_with_style_refs(self):
        elements = self._elements({"type": "text", "area": "title", "contentRef": "title", "styleRef": "styles.title"})
        out = self.renderer.render("content_only", elements, self._context(title="Q1 **Results**"))
        assert len(out) == 1
        text = out[0]
        assert isinstance(text, TextPrimitive)
        assert text.font_size == 28
        assert text.bold
        assert text.color == self.areas.colors.themed("primary")
        assert [(r.text, r.bold) for r in text.runs] == [("Q1 ", False), ("Results", True)]

    def test_bullet_list_text(self):
        elements = self._elements({"type": "text", "area": "body", "contentRef": "bullets", "styleRef": "styles.bullets"})
        out = self.renderer.render("content_only", elements, self._context(bullets=["One", "Two"]))
        assert out[0].text == "One\nTwo"
        assert out[0].bullet
        assert out[0].auto_fit
        assert out[0].runs is None

    def test_literal_text_used_when_ref_is_empty(self):
        elements = self._elements({"type": "text", "area": "title", "contentRef": "missing", "text": "Fallback"})
        out = self.renderer.render("content_only", elements, self._context())
        assert out[0].text == "Fallback"

    def test_empty_text_is_skipped(self):
        elements = self._elements({"type": "text", "area": "title", "contentRef": "missing"})
        assert self.renderer.render("content_only", elements, self._context()) == []

    def test_missing_area_is_skipped(self):
        elements = self._elements(
            {"type": "text", "area": "nowhere", "text": "lost"},
            {"type": "text", "area": "title", "text": "kept"},
        )
        out = self.renderer.render("content_only", elements, self._context())
        assert [p.text for p in out] == ["kept"]

    def test_inline_region(self):
        elements = self._elements({"type": "text", "region": {"x": 2, "y": 3, "w": 4, "h": 1}, "text": "inline"})
        out = self.renderer.render("content_only", elements, self._context())
        assert out[0].region == Region(2, 3, 4, 1)

    def test_area_override(self):
        elements = self._elements({"type": "text", "area": "title", "text": "moved"})
        override = Region(1, 1, 2, 2)
        out = self.renderer.render("content_only", elements, self._context(), area_overrides={"title": override})
        assert out[0].region is override

    def test_comparison_bullets_pushed_below_card_title(self):
        elements = self._elements(
            {"type": "text", "area": "cardA", "contentRef": "bulletsA"},
            {"type": "text", "area": "cardB", "contentRef": "bulletsB"},
        )
        context = self._context("comparison_cards", bulletsA=["a1"], bulletsB=["b1"])
        out = self.renderer.render("comparison_cards", elements, context)
        assert out[0].region.y == pytest.approx(1.6 + COMPARISON_TITLE_RESERVE)
        assert out[0].region.h == pytest.approx(4.2 - COMPARISON_TITLE_RESERVE)
        assert context.rendered_flags == {"comparison_cards_bulletsA": True, "comparison_cards_bulletsB": True}

    def test_shape_and_line(self):
        elements = self._elements(
            {"type": "shape", "area": "title", "shapeType": "roundRect", "style": {"fill": "secondary"}},
            {"type": "shape", "area": "rule", "shapeType": "line", "style": {"lineColor": "#CCCCCC", "lineWidth": 1}},
            {"type": "shape", "area": "title", "shapeType": "hexagon"},
        )
        out = self.renderer.render("content_only", elements, self._context())
        assert isinstance(out[0], ShapePrimitive) and out[0].shape == "roundRect"
        assert out[0].fill.color == "00B0FF"
        assert isinstance(out[1], LinePrimitive)
        assert out[1].line.color == "CCCCCC"
        assert out[2].shape == "rect"

    def test_image_element(self):
        elements = self._elements({"type": "image", "area": "title", "path": "/logo.png"}, {"type": "image", "area": "title"})
        out = self.renderer.render("content_only", elements, self._context())
        assert len(out) == 1
        assert isinstance(out[0], ImagePrimitive)
        assert out[0].sizing == "contain"

    def test_overview_table(self):
        elements = self._elements({"type": "table", "area": "body", "style": {"altRowFill": "#F0F0F0"}})
        overview = CompanyOverview(company_name="Acme", address="Tokyo")
        out = self.renderer.render("content_only", elements, self._context(companyOverview=overview))
        table = out[0]
        assert isinstance(table, TablePrimitive)
        assert [[c.text for c in row] for row in table.rows] == [["会社名", "Acme"], ["所在地", "Tokyo"]]
        assert table.rows[1][1].fill == "F0F0F0"
        assert table.border_color == "E6E6E6"

    def test_body_text_table(self):
        elements = self._elements({"type": "table", "area": "body"})
        out = self.renderer.render("content_only", elements, self._context(body="We build things."))
        assert out[0].rows[0][0].text == "We build things."

    def test_visual_draws_recipe_clamped(self):
        elements = self._elements({"type": "visual", "area": "visual", "recipeRef": "visual_recipe"})
        recipe = parse_recipe({"type": "process", "steps": [{"label": "Plan"}]})
        out = self.renderer.render("visual_only", elements, self._context("visual_only", visual_recipe=recipe))
        assert out
        assert all(p.region.bottom <= 7.5 - 1.0 + 1e-6 for p in out if isinstance(p, ShapePrimitive))

    def test_visual_falls_back_to_image(self):
        elements = self._elements({"type": "visual", "area": "visual", "recipeRef": "visual_recipe"})
        out = self.renderer.render("visual_only", elements, self._context("visual_only", imagePath="/photo.png"))
        assert isinstance(out[0], ImagePrimitive)
        assert out[0].path == "/photo.png"

    def test_quote_layout_ignores_visual(self):
        elements = self._elements({"type": "visual", "area": "visual", "recipeRef": "visual_recipe"})
        recipe = parse_recipe({"type": "kpi", "items": [{"label": "A", "value": 1}]})
        assert self.renderer.render("quote", elements, self._context("quote", visual_recipe=recipe)) == []

    def test_unknown_element_type_is_skipped(self):
        elements = self._elements({"type": "video", "area": "title"}, {"type": "text", "area": "title", "text": "ok"})
        out = self.renderer.render("content_only", elements, self._context())
        assert [p.text for p in out] == ["ok"]
