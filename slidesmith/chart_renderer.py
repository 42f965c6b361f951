"""Chart rasterization collaborator for bar, pie and line recipes."""

import logging
import uuid
from pathlib import Path
from typing import List, Optional, Sequence, Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np

from .color_resolver import ensure_hash, normalize_color

logger = logging.getLogger(__name__)

CHART_TYPES = ("bar", "pie", "line")
DEFAULT_COLORS = ["#0B5CAB", "#00B0FF", "#FFC107", "#4DC9F6", "#F67019", "#537BC4", "#ACC236", "#8549BA"]


class ChartRenderer:
    """Capability interface: turn labels and values into a PNG file."""

    def render(
        self,
        chart_type: str,
        labels: Sequence[str],
        values: Sequence[float],
        title: Optional[str] = None,
    ) -> Optional[str]:
        """
        Rasterize a chart.

        Args:
            chart_type: One of ``bar``, ``pie`` or ``line``
            labels: Category labels
            values: One value per label
            title: Optional chart title

        Returns:
            Path of the written PNG, or None if the chart could not be produced
        """
        raise NotImplementedError


class MatplotlibChartRenderer(ChartRenderer):
    """Renders charts with matplotlib into ``<temp_dir>/charts``."""

    def __init__(
        self,
        output_dir: Union[str, Path] = "temp/charts",
        colors: Optional[List[str]] = None,
        bar_alpha: float = 0.35,
    ):
        """
        Initialize the chart renderer.

        Args:
            output_dir: Directory receiving the PNG files
            colors: Categorical colors; the theme palette in practice
            bar_alpha: Fill opacity for bar and line areas
        """
        self.output_dir = Path(output_dir)
        self.colors = [ensure_hash(c) for c in (normalize_color(c) for c in (colors or [])) if c] or DEFAULT_COLORS
        self.bar_alpha = bar_alpha

        plt.style.use("default")
        plt.rcParams.update({
            "font.size": 12,
            "font.family": "sans-serif",
            "axes.titlesize": 14,
            "xtick.labelsize": 10,
            "ytick.labelsize": 10,
            "axes.spines.top": False,
            "axes.spines.right": False,
            "axes.grid": True,
            "grid.alpha": 0.3,
        })

    def render(
        self,
        chart_type: str,
        labels: Sequence[str],
        values: Sequence[float],
        title: Optional[str] = None,
    ) -> Optional[str]:
        if chart_type not in CHART_TYPES:
            logger.warning(f"Unsupported chart type: {chart_type}")
            return None
        if not values:
            logger.warning(f"No values for {chart_type} chart")
            return None

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            if chart_type == "bar":
                fig = self._bar(labels, values)
            elif chart_type == "pie":
                fig = self._pie(labels, values)
            else:
                fig = self._line(labels, values)

            if title:
                fig.axes[0].set_title(title, fontweight="bold", pad=20)

            output_path = self.output_dir / f"pptchart-{uuid.uuid4().hex}.png"
            fig.tight_layout()
            fig.savefig(output_path, dpi=300, bbox_inches="tight", facecolor="white", edgecolor="none")
            plt.close(fig)
            logger.debug(f"Rendered {chart_type} chart to {output_path}")
            return str(output_path)

        except Exception as e:
            logger.error(f"Chart generation failed: {e}")
            plt.close("all")
            return None

    def _color(self, index: int) -> str:
        return self.colors[index % len(self.colors)]

    def _bar(self, labels: Sequence[str], values: Sequence[float]):
        fig, ax = plt.subplots(figsize=(10, 6))
        positions = np.arange(len(values))
        colors = [self._color(i) for i in range(len(values))]
        bars = ax.bar(positions, values, color=colors, alpha=self.bar_alpha, edgecolor=colors, linewidth=2)
        ax.set_xticks(positions)
        ax.set_xticklabels(list(labels)[: len(values)])

        peak = max(abs(v) for v in values) or 1
        for bar in bars:
            height = bar.get_height()
            ax.text(
                bar.get_x() + bar.get_width() / 2.0,
                height + peak * 0.01,
                f"{height:g}",
                ha="center",
                va="bottom",
            )
        return fig

    def _pie(self, labels: Sequence[str], values: Sequence[float]):
        fig, ax = plt.subplots(figsize=(8, 8))
        safe_values = np.clip(np.asarray(values, dtype=float), 0, None)
        if safe_values.sum() <= 0:
            safe_values = np.ones(len(values))
        _, _, autotexts = ax.pie(
            safe_values,
            labels=list(labels)[: len(values)],
            autopct="%1.1f%%",
            colors=[self._color(i) for i in range(len(values))],
            startangle=90,
            counterclock=False,
        )
        plt.setp(autotexts, size=10, weight="bold")
        ax.axis("equal")
        ax.grid(False)
        return fig

    def _line(self, labels: Sequence[str], values: Sequence[float]):
        fig, ax = plt.subplots(figsize=(10, 6))
        positions = np.arange(len(values))
        ax.plot(positions, values, color=self._color(0), linewidth=3, marker="o", markersize=8)
        ax.fill_between(positions, values, color=self._color(0), alpha=self.bar_alpha * 0.5)
        ax.set_xticks(positions)
        ax.set_xticklabels(list(labels)[: len(values)])
        return fig
