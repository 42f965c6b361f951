"""Shared fixtures and deterministic collaborators for slidesmith tests."""

import uuid
from pathlib import Path
from typing import List, Optional

import pytest
from PIL import Image

from slidesmith.chart_renderer import ChartRenderer
from slidesmith.color_resolver import ColorResolver, resolve_theme
from slidesmith.image_generator import ImageGenerator, ImageResult
from slidesmith.layout_resolver import LayoutAreaResolver
from slidesmith.models import PresentationRequest, RenderSettings, SlideSpec, TemplateConfig
from slidesmith.text_fitter import RenderCache, TextFitter
from slidesmith.visual_renderer import VisualRenderer


def write_png(path: Path, size=(40, 20), color=(11, 92, 171)) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path, "PNG")
    return str(path)


class StubChartRenderer(ChartRenderer):
    """Writes a tiny PNG per call, or returns None when ``fail`` is set."""

    def __init__(self, output_dir: Path, fail: bool = False):
        self.output_dir = Path(output_dir)
        self.fail = fail
        self.calls: List[tuple] = []

    def render(self, chart_type, labels, values, title=None) -> Optional[str]:
        self.calls.append((chart_type, list(labels), list(values), title))
        if self.fail:
            return None
        return write_png(self.output_dir / f"pptchart-{uuid.uuid4().hex}.png")


class StubImageGenerator(ImageGenerator):
    """Returns a fixed result and remembers every prompt."""

    def __init__(self, path: Optional[str] = None, success: bool = True):
        self.path = path
        self.success = success
        self.prompts: List[tuple] = []

    def generate(self, prompt, negative_prompt=None, aspect_ratio="16:9") -> ImageResult:
        self.prompts.append((prompt, negative_prompt, aspect_ratio))
        if not self.success:
            return ImageResult(success=False, message="stub failure")
        return ImageResult(success=True, path=self.path)


@pytest.fixture
def settings(tmp_path):
    return RenderSettings(output_dir=str(tmp_path / "out"), temp_dir=str(tmp_path / "temp"))


@pytest.fixture
def chart_renderer(tmp_path):
    return StubChartRenderer(tmp_path / "temp" / "charts")


@pytest.fixture
def basic_request():
    return PresentationRequest(
        file_name="deck",
        slides=[SlideSpec(title="Q1 Results", bullets=["Revenue: $1.2M", "Growth: 15%"], layout="content_only")],
    )


def make_visuals(template: Optional[TemplateConfig] = None, **kwargs) -> VisualRenderer:
    request = PresentationRequest(file_name="x", slides=[], template_config=template)
    colors = ColorResolver(resolve_theme(request), template)
    return VisualRenderer(colors, TextFitter(RenderCache()), template=template, **kwargs)


def make_areas(template: Optional[TemplateConfig] = None) -> LayoutAreaResolver:
    request = PresentationRequest(file_name="x", slides=[], template_config=template)
    colors = ColorResolver(resolve_theme(request), template)
    return LayoutAreaResolver(template, colors)
