"""
chart_renderer.py — Rasterise ChartSpec objects to PNG with matplotlib.
"""

import io
import math
from typing import List

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for server use
import matplotlib.pyplot as plt
import numpy as np

from core.charts import SECONDARY, ChartSeries, ChartSpec

FIGSIZE = (11, 6)
DEFAULT_DPI = 150


def _finite(values) -> np.ndarray:
    """Non-finite values are drawn as gaps."""
    return np.array([v if math.isfinite(v) else np.nan for v in values], dtype=float)


def _fig_to_png(fig, dpi: int) -> bytes:
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=dpi, bbox_inches="tight")
    return buf.getvalue()


def _annotate(ax, xs, values, labels, color):
    for x, v, text in zip(xs, values, labels):
        y = v if math.isfinite(v) else 0.0
        offset = 6 if y >= 0 else -12
        ax.annotate(
            text, (x, y), textcoords="offset points", xytext=(0, offset),
            ha="center", fontsize=8, fontweight="bold", color=color,
        )


def _draw(fig, ax, spec: ChartSpec) -> None:
    ax2 = ax.twinx() if spec.dual_axis else None

    xs = np.arange(len(spec.labels))
    bars: List[ChartSeries] = [s for s in spec.series if s.kind == "bar"]
    lines: List[ChartSeries] = [s for s in spec.series if s.kind == "line"]
    width = 0.8 / max(len(bars), 1)
    handles = []

    for i, series in enumerate(bars):
        target = ax2 if (series.axis == SECONDARY and ax2 is not None) else ax
        offset = (i - (len(bars) - 1) / 2) * width
        values = _finite(series.values)
        colors = list(series.point_colors) if series.point_colors else series.color
        handle = target.bar(xs + offset, np.nan_to_num(values), width=width,
                            color=colors, label=series.label, zorder=2)
        handles.append(handle)
        if series.point_labels:
            _annotate(target, xs + offset, series.values, series.point_labels, "#000000")

    for series in lines:
        target = ax2 if (series.axis == SECONDARY and ax2 is not None) else ax
        (handle,) = target.plot(
            xs, _finite(series.values), marker="o", linewidth=2, markersize=5,
            color=series.color, linestyle="--" if series.dashed else "-",
            label=series.label, zorder=3,
        )
        handles.append(handle)
        if series.point_labels:
            _annotate(target, xs, series.values, series.point_labels, series.color)

    if any(v < 0 for s in bars for v in s.values if math.isfinite(v)):
        ax.axhline(0, color="#7f8c8d", linewidth=0.8)

    ax.set_title(spec.title, fontsize=14, fontweight="bold", pad=14)
    ax.set_xticks(xs)
    ax.set_xticklabels(spec.labels, fontsize=8,
                       rotation=45 if spec.rotate_labels else 0,
                       ha="right" if spec.rotate_labels else "center")
    ax.set_xlabel(spec.x_label, fontsize=10)
    ax.set_ylabel(spec.y_label, fontsize=10)
    ax.spines["top"].set_visible(False)
    if ax2 is not None:
        ax2.set_ylim(*spec.y2_range)
        ax2.set_ylabel(spec.y2_label, fontsize=10)
        ax2.spines["top"].set_visible(False)
    else:
        ax.spines["right"].set_visible(False)

    if spec.show_legend and handles:
        ax.legend(handles=handles, loc="upper center", bbox_to_anchor=(0.5, -0.3 if spec.rotate_labels else -0.12),
                  ncol=len(handles), fontsize=8, frameon=False)

    fig.tight_layout()


def render_chart(spec: ChartSpec, dpi: int = DEFAULT_DPI) -> bytes:
    """Draw a chart spec and return the PNG bytes."""
    fig, ax = plt.subplots(figsize=FIGSIZE)
    try:
        _draw(fig, ax, spec)
        return _fig_to_png(fig, dpi)
    finally:
        plt.close(fig)
