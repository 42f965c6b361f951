"""Native doughnut charts built from python-pptx chart parts."""

import logging

from pptx.chart.data import CategoryChartData
from pptx.dml.color import RGBColor
from pptx.enum.chart import XL_CHART_TYPE
from pptx.oxml.ns import qn
from pptx.oxml.xmlchemy import OxmlElement
from pptx.util import Inches

from .color_resolver import normalize_color
from .primitives import DoughnutChartPrimitive

logger = logging.getLogger(__name__)


class NativeChartBuilder:
    """Builds editable doughnut chart objects for KPI donut visuals."""

    def create_doughnut(self, slide, chart: DoughnutChartPrimitive) -> bool:
        """
        Add a native doughnut chart to a slide.

        Args:
            slide: python-pptx slide
            chart: Doughnut description with categories, values and colors

        Returns:
            True if the chart was created, False otherwise
        """
        if not chart.values or sum(v for v in chart.values if v > 0) <= 0:
            logger.debug("Doughnut chart skipped: no positive values")
            return False

        try:
            chart_data = CategoryChartData()
            chart_data.categories = chart.labels
            chart_data.add_series(chart.series_name, chart.values)

            region = chart.region
            graphic_frame = slide.shapes.add_chart(
                XL_CHART_TYPE.DOUGHNUT,
                Inches(region.x),
                Inches(region.y),
                Inches(region.w),
                Inches(region.h),
                chart_data,
            )
            native = graphic_frame.chart
            native.has_title = False
            native.has_legend = False

            self._set_hole_size(native, chart.hole_size)
            self._apply_colors(native, chart)

            logger.debug(f"Created native doughnut chart with {len(chart.values)} segments")
            return True

        except Exception as e:
            logger.error(f"Failed to create native doughnut chart: {e}")
            return False

    def _set_hole_size(self, native, hole_size: int) -> None:
        plot_element = native.plots[0]._element
        hole = plot_element.find(qn("c:holeSize"))
        if hole is None:
            hole = OxmlElement("c:holeSize")
            plot_element.append(hole)
        hole.set("val", str(max(10, min(90, int(hole_size)))))

    def _apply_colors(self, native, chart: DoughnutChartPrimitive) -> None:
        series = native.plots[0].series[0]
        for i, color in enumerate(chart.colors[: len(chart.values)]):
            hex6 = normalize_color(color)
            if not hex6:
                continue
            try:
                fill = series.points[i].format.fill
                fill.solid()
                fill.fore_color.rgb = RGBColor.from_string(hex6)
            except Exception as e:
                logger.debug(f"Could not apply color to segment {i}: {e}")

