"""Color parsing, contrast, palette and shadow resolution."""

import logging
import math
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import ColorPolicy, PresentationRequest, ResolvedTheme, ShadowSpec, TemplateConfig
from .primitives import Fill

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY = "#0B5CAB"
DEFAULT_SECONDARY = "#00B0FF"
DEFAULT_ACCENT = "#FFC107"
DEFAULT_OUTLINE = "#FFFFFF"
DEFAULT_FONT = "Noto Sans JP"
DEFAULT_PALETTE_SIZE = 8

# Golden angle keeps neighbouring palette hues well separated.
GOLDEN_ANGLE = 137.5
BRAND_HUE_DRIFT = 6

SHADOW_PRESETS = {
    "soft": ShadowSpec(type="outer", color="000000", opacity=0.45, blur=12, offset=4, angle=45),
    "strong": ShadowSpec(type="outer", color="000000", opacity=0.55, blur=16, offset=5, angle=45),
}

THEMED_LIGHTEN = {"Light": 60, "Lighter": 100, "UltraLight": 120}

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")
_RGB_RE = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})(?:\s*,\s*(0|1|0?\.\d+))?\s*\)$",
    re.IGNORECASE,
)
_HEX6_RE = re.compile(r"^#?[0-9a-fA-F]{6}$")


def _round(value: float) -> int:
    """Round half up, the way slide coordinates and channels are rounded everywhere."""
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def parse_color_with_alpha(value: Any) -> Optional[Tuple[str, float]]:
    """
    Parse a color literal keeping its alpha channel.

    Args:
        value: ``#RGB``, ``#RRGGBB``, ``#RRGGBBAA``, ``rgb()`` or ``rgba()``

    Returns:
        Tuple of (uppercase hex6 without '#', alpha in [0, 1]) or None
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text or text.lower() == "transparent":
        return None

    match = _HEX_RE.match(text)
    if match:
        digits = match.group(1)
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        alpha = 1.0
        if len(digits) == 8:
            alpha = int(digits[6:8], 16) / 255.0
            digits = digits[:6]
        return digits.upper(), alpha

    match = _RGB_RE.match(text)
    if match:
        channels = [int(match.group(i)) for i in (1, 2, 3)]
        if any(c > 255 for c in channels):
            return None
        alpha = float(match.group(4)) if match.group(4) is not None else 1.0
        return "".join(f"{c:02X}" for c in channels), _clamp(alpha, 0.0, 1.0)

    return None


def normalize_color(value: Any) -> Optional[str]:
    """Return an uppercase hex6 (no '#') for a color literal, dropping any alpha."""
    parsed = parse_color_with_alpha(value)
    return parsed[0] if parsed else None


def ensure_hash(value: str) -> str:
    return value if value.startswith("#") else f"#{value}"


def is_hex6(value: Any) -> bool:
    return isinstance(value, str) and bool(_HEX6_RE.match(value.strip()))


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    digits = hex_color.lstrip("#")
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def rgb_to_hex(r: float, g: float, b: float) -> str:
    return "#" + "".join(f"{int(_clamp(_round(c), 0, 255)):02X}" for c in (r, g, b))


def lighten(hex_color: Optional[str], amount: float) -> str:
    """
    Add ``amount`` to every RGB channel, clamped to 255.

    Args:
        hex_color: Base color; unparseable input falls back to a pale blue
        amount: Value added to each 0-255 channel

    Returns:
        ``#RRGGBB`` uppercase
    """
    normalized = normalize_color(hex_color)
    if normalized is None:
        return "#E6F7FF"
    r, g, b = hex_to_rgb(normalized)
    return rgb_to_hex(min(255, r + amount), min(255, g + amount), min(255, b + amount))


def darken(hex_color: Optional[str], amount: float) -> str:
    """Subtract ``amount`` from every RGB channel, clamped to 0."""
    return lighten(hex_color, -amount)


def relative_luminance(hex_color: str) -> float:
    """WCAG relative luminance of an sRGB color."""

    def linear(channel: int) -> float:
        c = channel / 255.0
        return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4

    r, g, b = hex_to_rgb(normalize_color(hex_color) or "FFFFFF")
    return 0.2126 * linear(r) + 0.7152 * linear(g) + 0.0722 * linear(b)


def pick_text_color(background: str) -> str:
    """Black text on light backgrounds (luminance strictly above 0.6), white otherwise."""
    return "000000" if relative_luminance(background) > 0.6 else "FFFFFF"


def hex_to_hsl(hex_color: str) -> Tuple[float, float, float]:
    r, g, b = (c / 255.0 for c in hex_to_rgb(hex_color))
    high, low = max(r, g, b), min(r, g, b)
    lightness = (high + low) / 2
    if high == low:
        return 0.0, 0.0, lightness

    delta = high - low
    saturation = delta / (2 - high - low) if lightness > 0.5 else delta / (high + low)
    if high == r:
        hue = (g - b) / delta + (6 if g < b else 0)
    elif high == g:
        hue = (b - r) / delta + 2
    else:
        hue = (r - g) / delta + 4
    return hue * 60, saturation, lightness


def hsl_to_hex(hue: float, saturation: float, lightness: float) -> str:
    if saturation == 0:
        return rgb_to_hex(lightness * 255, lightness * 255, lightness * 255)

    def hue_to_rgb(p: float, q: float, t: float) -> float:
        if t < 0:
            t += 1
        if t > 1:
            t -= 1
        if t < 1 / 6:
            return p + (q - p) * 6 * t
        if t < 1 / 2:
            return q
        if t < 2 / 3:
            return p + (q - p) * (2 / 3 - t) * 6
        return p

    h = (hue % 360) / 360.0
    q = lightness * (1 + saturation) if lightness < 0.5 else lightness + saturation - lightness * saturation
    p = 2 * lightness - q
    return rgb_to_hex(
        hue_to_rgb(p, q, h + 1 / 3) * 255,
        hue_to_rgb(p, q, h) * 255,
        hue_to_rgb(p, q, h - 1 / 3) * 255,
    )


def build_palette(seeds: Sequence[str], count: int, brand_locked: bool = False) -> List[str]:
    """
    Generate a categorical palette from seed colors.

    Args:
        seeds: Base colors, cycled per index
        count: Number of colors to produce
        brand_locked: Keep hues within a few degrees of the seeds instead of
            rotating around the wheel

    Returns:
        List of ``#RRGGBB`` colors
    """
    bases = [ensure_hash(c) for c in (normalize_color(s) for s in seeds) if c]
    if not bases:
        bases = [DEFAULT_PRIMARY]

    palette = []
    for i in range(count):
        hue, sat, light = hex_to_hsl(bases[i % len(bases)])
        if brand_locked:
            hue = (hue + (BRAND_HUE_DRIFT if i % 2 == 0 else -BRAND_HUE_DRIFT)) % 360
        else:
            hue = (hue + i * GOLDEN_ANGLE) % 360
        sat = _clamp(sat + (0.08 if i % 2 == 0 else -0.04), 0.35, 0.85)
        light_delta = 0.06 if i % 3 == 0 else (-0.05 if i % 3 == 1 else 0.02)
        light = _clamp(light + light_delta, 0.28, 0.72)
        palette.append(hsl_to_hex(hue, sat, light))
    return palette


def build_fill(value: Any) -> Optional[Fill]:
    """Fill with transparency derived from the color's alpha channel."""
    parsed = parse_color_with_alpha(value)
    if not parsed:
        return None
    color, alpha = parsed
    transparency = _round((1 - alpha) * 100)
    return Fill(color=color, transparency=transparency)


def normalize_shadow(spec: Dict[str, Any]) -> ShadowSpec:
    """Fill in defaults for a literal shadow specification."""

    def number(key: str, default: float, low: float = 0.0, high: Optional[float] = None) -> float:
        try:
            value = float(spec.get(key, default))
        except (TypeError, ValueError):
            value = default
        if math.isnan(value):
            value = default
        value = max(low, value)
        return min(high, value) if high is not None else value

    shadow_type = "inner" if str(spec.get("type", "outer")).lower() == "inner" else "outer"
    color = str(spec.get("color") or "000000").replace("#", "").upper()
    try:
        angle = float(spec.get("angle", 45))
    except (TypeError, ValueError):
        angle = 45.0
    return ShadowSpec(
        type=shadow_type,
        color=color,
        opacity=number("opacity", 0.45, 0.0, 1.0),
        blur=number("blur", 12),
        offset=number("offset", 4),
        angle=angle,
    )


def resolve_shadow(
    value: Any,
    default_preset: str = "soft",
    presets: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Optional[ShadowSpec]:
    """
    Map a preset name or literal spec to a normalized shadow.

    Args:
        value: ``"none"``, a preset name, a dict spec, or None
        default_preset: Preset consulted when ``value`` is None
        presets: Template-defined presets, which win over the built-ins

    Returns:
        ShadowSpec or None when no shadow should be drawn
    """
    presets = presets or {}
    if value == "none":
        return None
    if isinstance(value, str):
        if isinstance(presets.get(value), dict):
            return normalize_shadow(presets[value])
        return SHADOW_PRESETS.get(value)
    if isinstance(value, dict):
        return normalize_shadow(value)
    if isinstance(value, ShadowSpec):
        return value

    if isinstance(presets.get(default_preset), dict):
        return normalize_shadow(presets[default_preset])
    # Without a template preset only "strong" implies a shadow on unstyled text.
    return SHADOW_PRESETS["strong"] if default_preset == "strong" else None


def _first_color(*candidates: Optional[str]) -> Optional[str]:
    for candidate in candidates:
        normalized = normalize_color(candidate)
        if normalized:
            return f"#{normalized}"
    return None


def resolve_theme(request: PresentationRequest, default_font: str = DEFAULT_FONT) -> ResolvedTheme:
    """
    Resolve theme colors, tokens and palette once for a request.

    Precedence for primary/secondary by ``rules.aiColorPolicy``:

    - template: template tokens, request style tokens, AI colors
    - prefer_ai / ai_overrides: AI colors, template tokens, request style tokens
    - disabled: template tokens, request style tokens (AI colors ignored)

    ``ai_overrides`` additionally keeps generated palette hues close to the
    brand colors.

    Args:
        request: The presentation request
        default_font: Font used when the template names none

    Returns:
        Immutable ResolvedTheme
    """
    template = request.template_config or TemplateConfig()
    tokens = template.tokens
    style = request.style_tokens
    policy = template.rules.ai_color_policy

    ai_primary = _first_color(request.theme_color1) if policy != ColorPolicy.DISABLED else None
    ai_secondary = _first_color(request.theme_color2) if policy != ColorPolicy.DISABLED else None

    if policy in (ColorPolicy.PREFER_AI, ColorPolicy.AI_OVERRIDES):
        primary = _first_color(ai_primary, tokens.primary, style.primary)
        secondary = _first_color(ai_secondary, tokens.secondary, style.secondary)
    else:
        primary = _first_color(tokens.primary, style.primary, ai_primary)
        secondary = _first_color(tokens.secondary, style.secondary, ai_secondary)
    primary = primary or DEFAULT_PRIMARY
    secondary = secondary or DEFAULT_SECONDARY
    accent = _first_color(tokens.accent, style.accent) or DEFAULT_ACCENT
    outline = _first_color(tokens.outline_color, style.outline_color) or DEFAULT_OUTLINE

    radius = tokens.corner_radius if tokens.corner_radius is not None else style.corner_radius
    corner_radius = _clamp(float(radius), 0, 16) if radius is not None else 12.0
    spacing = tokens.spacing_base_unit if tokens.spacing_base_unit is not None else style.spacing_base_unit
    spacing_unit = _clamp(float(spacing), 0.1, 1.0) if spacing is not None else 1.0
    shadow_preset = tokens.shadow_preset or style.shadow_preset or "soft"

    strategy = template.rules.palette_strategy
    template_palette = template.visual_style("palette").get("colors")
    if isinstance(template_palette, list) and template_palette:
        palette = [ensure_hash(c) for c in (normalize_color(v) for v in template_palette) if c]
    else:
        count = max(3, int(strategy.max_colors or DEFAULT_PALETTE_SIZE))
        brand_locked = strategy.use == ColorPolicy.AI_OVERRIDES.value or policy == ColorPolicy.AI_OVERRIDES
        seeds = [primary, secondary] if brand_locked else [primary, secondary, accent]
        palette = build_palette(seeds, count, brand_locked=brand_locked)

    family = template.typography.font_family
    head_font = (family.head if family and family.head else None) or default_font
    body_font = (family.body if family and family.body else None) or default_font

    logger.debug(f"Resolved theme under policy '{policy.value}': primary={primary} secondary={secondary}")
    return ResolvedTheme(
        primary=primary,
        secondary=secondary,
        accent=accent,
        ai_primary=ai_primary,
        ai_secondary=ai_secondary,
        corner_radius=corner_radius,
        outline_color=outline,
        spacing_unit=spacing_unit,
        shadow_preset=shadow_preset,
        palette=tuple(palette),
        palette_distribution=strategy.distribution or "cycle",
        head_font=head_font,
        body_font=body_font,
    )


class ColorResolver:
    """Theme-aware color lookups shared by every renderer."""

    def __init__(self, theme: ResolvedTheme, template: Optional[TemplateConfig] = None):
        self.theme = theme
        self.template = template
        self._presets = template.tokens.shadow_presets if template else {}

    def palette_color(self, index: int) -> str:
        """Palette color for a categorical index under the distribution strategy."""
        palette = self.theme.palette
        if not palette:
            return self.theme.secondary
        n = len(palette)
        distribution = self.theme.palette_distribution
        if distribution == "shufflePerVisual":
            offset = (index * 3 + 5) % n
        elif distribution == "shufflePerSlide":
            offset = ((index // 10) * 7 + 3) % n
        else:
            offset = 0
        return palette[(index + offset) % n]

    def themed(self, token: Any) -> Optional[str]:
        """
        Resolve a themed token or literal color to hex6 without '#'.

        Tokens: primary, secondary, white, black and the Light/Lighter/UltraLight
        variants of primary and secondary.
        """
        if not isinstance(token, str) or not token.strip():
            return None
        name = token.strip()
        if name == "white":
            return "FFFFFF"
        if name == "black":
            return "000000"
        for base_name in ("primary", "secondary"):
            base = getattr(self.theme, base_name)
            if name == base_name:
                return normalize_color(base)
            for suffix, amount in THEMED_LIGHTEN.items():
                if name == f"{base_name}{suffix}":
                    return normalize_color(lighten(base, amount))
        return normalize_color(name)

    def fill(self, value: Any) -> Optional[Fill]:
        """Fill for a themed token or color literal, keeping alpha."""
        fill = build_fill(value)
        if fill:
            return fill
        themed = self.themed(value)
        if themed and normalize_color(themed):
            return Fill(color=themed)
        return None

    def shadow(self, value: Any, default: Optional[str] = None) -> Optional[ShadowSpec]:
        return resolve_shadow(value, default or self.theme.shadow_preset, self._presets)

    def visual_shadow(self, kind: str) -> Optional[ShadowSpec]:
        """Shadow for a visual kind: per-kind override, else the theme preset."""
        value = None
        if self.template:
            value = self.template.visual_style(kind).get("shadow")
        return self.shadow(value if value is not None else self.theme.shadow_preset)
