"""Drawing primitives produced by the renderers and executed by a canvas.

All geometry is expressed in inches on the 13.33 x 7.5 page.
"""

from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Union

from .models import ShadowSpec


@dataclass(frozen=True)
class Region:
    """Axis-aligned rectangle in page coordinates."""

    x: float
    y: float
    w: float
    h: float

    @property
    def bottom(self) -> float:
        return self.y + self.h

    @property
    def right(self) -> float:
        return self.x + self.w

    def moved(self, **changes) -> "Region":
        return replace(self, **changes)


@dataclass
class Fill:
    color: str
    transparency: int = 0


@dataclass
class Line:
    color: str
    width: float = 0.0
    dash: Optional[str] = None


@dataclass
class ShapePrimitive:
    """Auto shape: rect, roundRect, ellipse, chevron, triangle, trapezoid or pie."""

    shape: str
    region: Region
    fill: Optional[Fill] = None
    line: Optional[Line] = None
    corner_radius: Optional[float] = None
    shadow: Optional[ShadowSpec] = None
    rotation: Optional[float] = None
    start_angle: Optional[float] = None
    sweep_angle: Optional[float] = None


@dataclass
class LinePrimitive:
    """Straight connector between two points."""

    x1: float
    y1: float
    x2: float
    y2: float
    line: Line


@dataclass
class TextRun:
    text: str
    bold: bool = False


@dataclass
class TextPrimitive:
    text: str
    region: Region
    font_size: float = 18
    font_face: str = "Noto Sans JP"
    bold: bool = False
    italic: bool = False
    color: Optional[str] = None
    align: str = "left"
    valign: str = "top"
    bullet: bool = False
    auto_fit: bool = False
    para_space_after: Optional[float] = None
    fill: Optional[Fill] = None
    line: Optional[Line] = None
    shadow: Optional[ShadowSpec] = None
    runs: Optional[List[TextRun]] = None


@dataclass
class ImagePrimitive:
    path: str
    region: Region
    sizing: Optional[str] = "contain"
    shadow: Optional[ShadowSpec] = None


@dataclass
class TableCell:
    text: str
    bold: bool = False
    color: Optional[str] = None
    fill: Optional[str] = None
    font_size: float = 12
    font_face: str = "Noto Sans JP"
    align: str = "left"
    valign: str = "middle"


@dataclass
class TablePrimitive:
    rows: List[List[TableCell]]
    region: Region
    col_widths: Optional[List[float]] = None
    border_color: Optional[str] = "E6E6E6"
    border_width: float = 1.0


@dataclass
class DoughnutChartPrimitive:
    """
    Native doughnut chart.

    When the native chart cannot be built, ``rasterize`` is tried for an image
    replacement, then the ``fallback`` primitives are drawn.
    """

    region: Region
    labels: List[str]
    values: List[float]
    colors: List[str]
    series_name: str = "Series"
    hole_size: int = 60
    fallback: List["Primitive"] = field(default_factory=list)
    rasterize: Optional[Callable[[], Optional[ImagePrimitive]]] = None


Primitive = Union[
    ShapePrimitive,
    LinePrimitive,
    TextPrimitive,
    ImagePrimitive,
    TablePrimitive,
    DoughnutChartPrimitive,
]
