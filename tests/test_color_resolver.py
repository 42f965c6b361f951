"""Tests for color resolution and theme precedence."""

import pytest

from slidesmith.color_resolver import (
    ColorResolver,
    build_fill,
    build_palette,
    darken,
    lighten,
    normalize_color,
    pick_text_color,
    resolve_shadow,
    resolve_theme,
)
from slidesmith.models import PresentationRequest, StyleTokens, TemplateConfig


def _request(template=None, **kwargs):
    return PresentationRequest(file_name="t", slides=[], template_config=template, **kwargs)


class TestColorHelpers:
    """Tests for the color literal helpers."""

    def test_normalize_hex(self):
        assert normalize_color("#1a2b3c") == "1A2B3C"

    def test_normalize_rgb(self):
        assert normalize_color("rgb(26,43,60)") == "1A2B3C"

    def test_normalize_short_hex(self):
        assert normalize_color("#abc") == "AABBCC"

    def test_normalize_invalid(self):
        assert normalize_color("not a color") is None
        assert normalize_color(None) is None
        assert normalize_color("rgb(300,0,0)") is None

    def test_pick_text_color(self):
        assert pick_text_color("#FFFFFF") == "000000"
        assert pick_text_color("#000000") == "FFFFFF"

    def test_lighten_clamps(self):
        assert lighten("#F0F0F0", 80) == "#FFFFFF"
        assert lighten("#000000", 16) == "#101010"

    def test_darken_clamps(self):
        assert darken("#1A2B3C", 32) == "#000B1C"
        assert darken("#808080", 16) == "#707070"

    def test_lighten_invalid_falls_back(self):
        assert lighten("bogus", 10) == "#E6F7FF"

    def test_build_fill_alpha(self):
        fill = build_fill("rgba(255,0,0,0.5)")
        assert fill.color == "FF0000"
        assert fill.transparency == 50

        opaque = build_fill("#00FF00")
        assert opaque.transparency == 0

    def test_build_palette_size_and_format(self):
        palette = build_palette(["#0B5CAB", "#00B0FF"], 8)
        assert len(palette) == 8
        assert all(c.startswith("#") and len(c) == 7 for c in palette)


class TestShadows:
    """Tests for shadow preset resolution."""

    def test_none_disables(self):
        assert resolve_shadow("none") is None

    def test_builtin_preset(self):
        shadow = resolve_shadow("strong")
        assert shadow.opacity == pytest.approx(0.55)
        assert shadow.blur == 16

    def test_template_preset_wins(self):
        presets = {"soft": {"opacity": 0.2, "blur": 3}}
        shadow = resolve_shadow("soft", presets=presets)
        assert shadow.opacity == pytest.approx(0.2)
        assert shadow.blur == 3

    def test_default_preset_only_strong_implies_shadow(self):
        assert resolve_shadow(None, "soft") is None
        assert resolve_shadow(None, "strong") is not None


class TestResolveTheme:
    """Tests for resolving the theme once per request."""

    def test_defaults(self):
        theme = resolve_theme(_request())
        assert theme.primary == "#0B5CAB"
        assert theme.secondary == "#00B0FF"
        assert theme.accent == "#FFC107"
        assert theme.corner_radius == 12
        assert len(theme.palette) == 8

    def test_template_policy_prefers_tokens(self):
        template = TemplateConfig.model_validate({"tokens": {"primary": "#112233"}})
        theme = resolve_theme(_request(template, theme_color1="#AA0000"))
        assert theme.primary == "#112233"

    def test_prefer_ai_uses_ai_colors(self):
        template = TemplateConfig.model_validate({
            "tokens": {"primary": "#112233"},
            "rules": {"aiColorPolicy": "prefer_ai"},
        })
        theme = resolve_theme(_request(template, theme_color1="#AA0000"))
        assert theme.primary == "#AA0000"

    def test_disabled_ignores_ai_colors(self):
        template = TemplateConfig.model_validate({"rules": {"aiColorPolicy": "disabled"}})
        theme = resolve_theme(_request(template, theme_color1="#AA0000"))
        assert theme.primary == "#0B5CAB"
        assert theme.ai_primary is None

    def test_style_tokens_used_without_template_tokens(self):
        theme = resolve_theme(_request(style_tokens=StyleTokens(primary="#334455", corner_radius=40)))
        assert theme.primary == "#334455"
        assert theme.corner_radius == 16

    def test_template_palette_override(self):
        template = TemplateConfig.model_validate({"visualStyles": {"palette": {"colors": ["#111111", "222222"]}}})
        theme = resolve_theme(_request(template))
        assert theme.palette == ("#111111", "#222222")


class TestColorResolver:
    """Tests for themed token lookups."""

    def setup_method(self):
        self.resolver = ColorResolver(resolve_theme(_request()))

    def test_themed_tokens(self):
        assert self.resolver.themed("primary") == "0B5CAB"
        assert self.resolver.themed("white") == "FFFFFF"
        assert self.resolver.themed("primaryLight") == normalize_color(lighten("#0B5CAB", 60))
        assert self.resolver.themed("#abcdef") == "ABCDEF"
        assert self.resolver.themed(None) is None

    def test_unknown_token_is_not_a_color(self):
        assert self.resolver.themed("FOO") is None
        assert self.resolver.themed("tertiaryLight") is None
        assert self.resolver.fill("FOO") is None

    def test_palette_cycle(self):
        palette = self.resolver.theme.palette
        assert self.resolver.palette_color(0) == palette[0]
        assert self.resolver.palette_color(len(palette)) == palette[0]

    def test_palette_shuffle_per_visual(self):
        template = TemplateConfig.model_validate({"rules": {"paletteStrategy": {"distribution": "shufflePerVisual"}}})
        resolver = ColorResolver(resolve_theme(_request(template)), template)
        palette = resolver.theme.palette
        n = len(palette)
        assert resolver.palette_color(1) == palette[(1 + (1 * 3 + 5) % n) % n]

    def test_fill_from_token(self):
        fill = self.resolver.fill("secondary")
        assert fill.color == "00B0FF"
        assert self.resolver.fill("nothing") is None
