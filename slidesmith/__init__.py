"""slidesmith - template-driven slide rendering engine."""

__version__ = "0.1.0"

from .exceptions import (
    OutputWriteError,
    RenderError,
    SlidesmithError,
    TemplateLoadError,
    TemplateValidationError,
)
from .models import PresentationRequest, RenderResult, RenderSettings, SlideSpec, TemplateConfig
from .presentation_builder import PresentationBuilder
from .template_loader import TemplateLoader
