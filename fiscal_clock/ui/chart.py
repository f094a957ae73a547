"""
Text line chart for the terminal frontend.

Columns are resampled from the yearly points with numpy and drawn as a filled
area using eighth-block characters, so one character cell carries 8 levels.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

BLOCKS = " ▁▂▃▄▅▆▇█"


def resample(values: Sequence[float], width: int) -> np.ndarray:
    """Linearly interpolate `values` onto `width` evenly spaced columns."""
    data = np.asarray(values, dtype=np.float64)
    if width <= 0 or data.size == 0:
        return np.zeros(0)
    if data.size == 1:
        return np.full(width, data[0])
    xs = np.linspace(0, data.size - 1, width)
    return np.interp(xs, np.arange(data.size), data)


def render_area_chart(values: Sequence[float], width: int, height: int) -> list[str]:
    """
    Rows of block characters, top row first.

    The vertical axis starts at the series minimum so growth stays visible.
    """
    if width <= 0 or height <= 0:
        return []
    columns = resample(values, width)
    if columns.size == 0:
        return [" " * width for _ in range(height)]

    low, high = float(columns.min()), float(columns.max())
    span = high - low
    if span <= 0:
        # Flat series: half height
        levels = np.full(width, height * 4, dtype=np.int64)
    else:
        # At least one eighth so the minimum is still drawn
        levels = np.maximum(1, np.round((columns - low) / span * height * 8)).astype(np.int64)

    rows: list[str] = []
    for row in range(height - 1, -1, -1):
        base = row * 8
        cells = np.clip(levels - base, 0, 8)
        rows.append("".join(BLOCKS[int(c)] for c in cells))
    return rows
