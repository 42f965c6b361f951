"""Image generation collaborator and Pillow helpers for icons and backgrounds."""

import base64
import io
import logging
import re
import uuid
from pathlib import Path
from typing import Optional, Tuple, Union

import requests
from openai import OpenAI
from PIL import Image
from pydantic import BaseModel

logger = logging.getLogger(__name__)

ASPECT_DIMENSIONS = {
    "16:9": (1920, 1080),
    "4:3": (1600, 1200),
    "1:1": (1024, 1024),
}

# Sizes the image endpoint accepts; results are cover-cropped afterwards.
API_SIZES = {
    "16:9": "1792x1024",
    "4:3": "1792x1024",
    "1:1": "1024x1024",
}

ICON_SYNONYMS = {
    "globe alt": "globe",
    "arrow trending up": "upward trending arrow",
    "trending up": "upward trending arrow",
    "chart pie": "pie chart",
    "building office": "office building",
    "building": "office building",
    "dollar sign": "dollar",
    "cpu": "processor",
}

_ICON_PATH_RE = re.compile(r"[\\/]|\.(png|jpe?g)$", re.IGNORECASE)


class ImageResult(BaseModel):
    """Outcome of an image generation request."""

    success: bool
    path: Optional[str] = None
    message: Optional[str] = None


class ImageGenerator:
    """Capability interface for generated backgrounds, photos and icons."""

    def generate(
        self,
        prompt: str,
        negative_prompt: Optional[str] = None,
        aspect_ratio: str = "16:9",
    ) -> ImageResult:
        raise NotImplementedError


class OpenAIImageGenerator(ImageGenerator):
    """Generates images with the OpenAI images endpoint into ``<temp_dir>/images``."""

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: str = "dall-e-3",
        output_dir: Union[str, Path] = "temp/images",
        api_key: Optional[str] = None,
    ):
        """
        Initialize the generator.

        Args:
            client: OpenAI client instance; built from ``api_key`` when omitted
            model: Image model name
            output_dir: Directory receiving generated PNG files
            api_key: API key used when no client is supplied
        """
        if client is None and api_key:
            client = OpenAI(api_key=api_key)
        self.client = client
        self.model = model
        self.output_dir = Path(output_dir)

    def generate(
        self,
        prompt: str,
        negative_prompt: Optional[str] = None,
        aspect_ratio: str = "16:9",
    ) -> ImageResult:
        if self.client is None:
            return ImageResult(success=False, message="OpenAI client is not configured")

        aspect = aspect_ratio if aspect_ratio in ASPECT_DIMENSIONS else "16:9"
        width, height = ASPECT_DIMENSIONS[aspect]
        full_prompt = f"{prompt} (Aspect ratio: {aspect}, Dimensions: {width}x{height})"
        if negative_prompt:
            full_prompt += f" Avoid: {negative_prompt}"

        try:
            response = self.client.images.generate(
                model=self.model,
                prompt=full_prompt,
                size=API_SIZES[aspect],
                n=1,
            )
            data = response.data[0]
            if getattr(data, "b64_json", None):
                raw = base64.b64decode(data.b64_json)
            elif getattr(data, "url", None):
                download = requests.get(data.url, timeout=30)
                download.raise_for_status()
                raw = download.content
            else:
                return ImageResult(success=False, message="No image returned from the image endpoint")

            self.output_dir.mkdir(parents=True, exist_ok=True)
            output_path = self.output_dir / f"pptimg-{uuid.uuid4().hex}.png"
            with Image.open(io.BytesIO(raw)) as img:
                cover_crop(img, (width, height)).save(output_path, "PNG")

            logger.info(f"Generated image: {output_path}")
            return ImageResult(success=True, path=str(output_path))

        except Exception as e:
            logger.error(f"Image generation failed: {e}")
            return ImageResult(success=False, message=str(e))


def cover_crop(img: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Scale an image to fill ``size`` and center-crop the overflow."""
    out_w, out_h = size
    in_w, in_h = max(1, img.width), max(1, img.height)
    scale = max(out_w / in_w, out_h / in_h)
    draw_w, draw_h = round(in_w * scale), round(in_h * scale)
    resized = img.convert("RGB").resize((draw_w, draw_h), Image.Resampling.LANCZOS)
    left = (draw_w - out_w) // 2
    top = (draw_h - out_h) // 2
    return resized.crop((left, top, left + out_w, top + out_h))


def read_image_dimensions(path: Union[str, Path]) -> Optional[Tuple[int, int]]:
    """Pixel size of a PNG or JPEG, or None if the file cannot be read."""
    try:
        with Image.open(path) as img:
            return img.width, img.height
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read image dimensions for {path}: {e}")
        return None


def normalize_icon_background(path: Union[str, Path]) -> str:
    """Flatten an icon's transparency onto white in place; failures keep the original."""
    try:
        with Image.open(path) as img:
            if img.mode not in ("RGBA", "LA", "P"):
                return str(path)
            rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[3])
        background.save(path, "PNG")
    except (OSError, ValueError) as e:
        logger.warning(f"Icon background normalization failed for {path}: {e}")
    return str(path)


def is_icon_path(value: str) -> bool:
    """True when an icon reference looks like a file path rather than a keyword."""
    return bool(_ICON_PATH_RE.search(value))


def sanitize_icon_keyword(raw: Optional[str]) -> str:
    simple = re.sub(r"[_\-]+", " ", (raw or "").strip().lower())
    simple = re.sub(r"\s+", " ", simple).strip()
    return ICON_SYNONYMS.get(simple, simple)


def build_icon_prompt(
    keyword: str,
    style: str = "line",
    monochrome: bool = True,
    glyph_color: Optional[str] = "black",
    background: str = "white",
) -> str:
    """
    Compose a prompt for a minimal single-glyph icon.

    Args:
        keyword: Icon keyword such as ``globe`` or ``shopping-cart``
        style: Icon drawing style
        monochrome: Request a single-color glyph
        glyph_color: ``white`` or ``black``
        background: ``white`` or ``transparent``

    Returns:
        Prompt text
    """
    hints = [f"minimal {style} icon of {sanitize_icon_keyword(keyword)}"]
    if monochrome:
        hints.append("monochrome")
    if glyph_color:
        hints.append(f"{glyph_color} glyph")
    if background == "white":
        hints.append("solid white square background, no gradients")
    else:
        hints.append("transparent background only, alpha transparency")
    hints.append("no border, no text")
    hints.append("flat, vector-like, centered, high-contrast")
    if background != "white":
        hints.append("do not include any background rectangle or filled shape")
    return ", ".join(hints)


def build_background_prompt(primary: Optional[str] = None, secondary: Optional[str] = None) -> str:
    """Abstract, textless title-slide background prompt."""
    palette_hint = f"palette: primary={primary}, secondary={secondary}" if primary and secondary else ""
    parts = [
        "Abstract corporate background. Do not render any words, letters, numbers, symbols, or logos.",
        "Express the slide theme as visual metaphors using shapes, gradients, light, depth, and rhythm, not text.",
        "Design cues: clean geometric patterns, subtle gradient layers, soft light streaks, particle networks, depth-of-field bokeh.",
        palette_hint,
        "Minimal, elegant, high-resolution, professional. No text overlay.",
    ]
    return " ".join(p for p in parts if p)


def build_photo_prompt(context: str, primary: Optional[str] = None, secondary: Optional[str] = None) -> str:
    """Prompt for a textless photo illustrating ``context``."""
    palette_hint = f"palette: primary={primary}, secondary={secondary}" if primary and secondary else ""
    parts = [
        "Photorealistic product or scene image for presentation (no text).",
        f"Context: {context.strip()}",
        "Style: modern, clean, high-resolution, professional.",
        palette_hint,
    ]
    return " ".join(p for p in parts if p)
