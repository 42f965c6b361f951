"""Tests for domain models."""

import pytest
from pydantic import ValidationError

from slidesmith.models import (
    ChartRecipe,
    ColorPolicy,
    ComparisonRecipe,
    FitResult,
    PresentationRequest,
    RenderSettings,
    SlideSpec,
    StepsRecipe,
    TemplateConfig,
    UnknownRecipe,
    get_by_path,
    parse_recipe,
)


class TestParseRecipe:
    """Tests for the recipe union."""

    def test_known_kinds(self):
        assert isinstance(parse_recipe({"type": "bar_chart", "values": [1, 2]}), ChartRecipe)
        assert isinstance(parse_recipe({"type": "funnel", "steps": [{"label": "Leads"}]}), StepsRecipe)
        recipe = parse_recipe({"type": "comparison", "a": {"label": "Old", "value": 3}})
        assert isinstance(recipe, ComparisonRecipe)
        assert recipe.a.value == 3

    def test_unknown_kind_keeps_payload(self):
        recipe = parse_recipe({"type": "sparkline", "points": [1, 2]})
        assert isinstance(recipe, UnknownRecipe)
        assert recipe.kind == "sparkline"

    def test_malformed_payload(self):
        recipe = parse_recipe({"type": "heatmap", "z": "not a grid"})
        assert isinstance(recipe, UnknownRecipe)
        assert recipe.kind == "invalid:heatmap"

    def test_none_and_non_mapping(self):
        assert parse_recipe(None) is None
        assert parse_recipe(["kpi"]) is None

    def test_item_icon_ref(self):
        recipe = parse_recipe({"type": "callouts", "items": [{"label": "A", "iconName": "rocket"}]})
        assert recipe.items[0].icon_ref == "rocket"


class TestSlideSpec:
    """Tests for SlideSpec."""

    def test_defaults(self):
        slide = SlideSpec()
        assert slide.title == ""
        assert slide.bullets == []
        assert slide.layout == "content_only"
        assert slide.visual_recipe is None

    def test_aliases(self):
        slide = SlideSpec.model_validate({
            "title": "T",
            "imagePath": "/a.png",
            "bulletsA": ["x"],
            "bulletsB": ["y"],
            "titleSlideImagePrompt": "city",
        })
        assert slide.image_path == "/a.png"
        assert slide.bullets_a == ["x"]
        assert slide.bullets_b == ["y"]
        assert slide.title_slide_image_prompt == "city"

    def test_bullet_coercion(self):
        assert SlideSpec(bullets="single").bullets == ["single"]
        assert SlideSpec(bullets=["a", None, 3]).bullets == ["a", "3"]

    def test_empty_layout_defaults(self):
        assert SlideSpec(layout="").layout == "content_only"
        assert SlideSpec(layout="  custom_x ").layout == "custom_x"

    def test_recipe_parsed(self):
        slide = SlideSpec(visual_recipe={"type": "kpi", "items": [{"label": "Revenue", "value": "$1.2M"}]})
        assert slide.visual_recipe.kind == "kpi"
        assert slide.visual_recipe.items[0].value == "$1.2M"


class TestPresentationRequest:
    """Tests for PresentationRequest."""

    def test_required_fields(self):
        with pytest.raises(ValidationError):
            PresentationRequest(slides=[])

    def test_camel_case_input(self):
        request = PresentationRequest.model_validate({
            "fileName": "deck",
            "slides": [],
            "themeColor1": "#112233",
            "companyCopyright": "© Acme",
            "styleTokens": {"cornerRadius": 8},
        })
        assert request.file_name == "deck"
        assert request.theme_color1 == "#112233"
        assert request.company_copyright == "© Acme"
        assert request.style_tokens.corner_radius == 8

    def test_recipe_for_prefers_slide_recipe(self):
        request = PresentationRequest(
            file_name="deck",
            slides=[SlideSpec(visual_recipe={"type": "kpi"}), SlideSpec(), SlideSpec()],
            visual_recipes=[{"type": "table"}, {"type": "process"}],
        )
        assert request.recipe_for(0).kind == "kpi"
        assert request.recipe_for(1).kind == "process"
        assert request.recipe_for(2) is None


class TestTemplateConfig:
    """Tests for TemplateConfig."""

    def test_unknown_policy_tolerated(self):
        template = TemplateConfig.model_validate({"rules": {"aiColorPolicy": "whatever"}})
        assert template.rules.ai_color_policy == ColorPolicy.TEMPLATE

    def test_lookup_dotted_path(self):
        template = TemplateConfig.model_validate({"styles": {"title": {"fontSize": 30}}})
        assert template.lookup("styles.title.fontSize") == 30
        assert template.lookup("styles.missing") is None

    def test_layout_accessors(self):
        template = TemplateConfig.model_validate({
            "layouts": {"visual_only": {"elements": [{"type": "visual", "area": "v", "recipeRef": "visual_recipe"}]}},
            "geometry": {"regionDefs": {"panel": {"w": 4, "h": 3}}},
        })
        assert template.layout("visual_only").visual_elements()[0].area == "v"
        assert template.layout(None) is None
        assert template.region_def("panel").w == 4


class TestHelpers:
    """Tests for small model helpers."""

    def test_get_by_path(self):
        tree = {"a": {"b": [{"c": 1}]}}
        assert get_by_path(tree, "a.b.0.c") == 1
        assert get_by_path(tree, "a.b.5.c") is None
        assert get_by_path(tree, "") is None

    def test_fit_result_line_count(self):
        assert FitResult(text="a\nb", font_size=12, wrap_chars=10).line_count == 2
        assert FitResult(text="", font_size=12, wrap_chars=10).line_count == 0


class TestRenderSettings:
    """Tests for RenderSettings."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SLIDESMITH_OUTPUT_DIR", "/srv/decks")
        monkeypatch.setenv("SLIDESMITH_SWEEP_TEMP", "yes")
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        settings = RenderSettings.from_env()
        assert settings.output_dir == "/srv/decks"
        assert settings.sweep_temp_dirs is True
        assert settings.openai_api_key is None

    def test_overrides_win_unless_none(self, monkeypatch):
        monkeypatch.setenv("SLIDESMITH_OUTPUT_DIR", "/srv/decks")
        assert RenderSettings.from_env(output_dir="/tmp/x").output_dir == "/tmp/x"
        assert RenderSettings.from_env(output_dir=None).output_dir == "/srv/decks"

    def test_approved_temp_roots(self):
        settings = RenderSettings(temp_dir="t", public_dir="p")
        roots = settings.approved_temp_roots()
        assert len(roots) == 4
        assert roots[0].endswith("charts")
