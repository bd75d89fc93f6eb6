"""Soundwave - Waveform reduction.

Turns a raw amplitude envelope into a fixed number of points:
- Split the samples into `points` contiguous windows of near-equal size
- Average the absolute amplitude in each window
- Divide by the largest window mean so the peak equals exactly 1.0

If the source yields fewer samples than requested, one point per sample is
returned. An all-silent source yields all zeros.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

# Decimal places kept in the published waveform
WAVEFORM_PRECISION = 4


def reduce_waveform(samples: Sequence[float] | np.ndarray, points: int) -> list[float]:
    """Reduce amplitude samples to `points` normalized values.

    Args:
        samples: Amplitude samples (sign is ignored).
        points: Requested number of output points (>= 1).

    Returns:
        List of floats in [0, 1], length min(points, len(samples)).
    """
    if points < 1:
        raise ValueError(f"points must be >= 1, got {points}")

    data = np.abs(np.asarray(samples, dtype=np.float64)).ravel()
    if data.size == 0:
        return []

    n_points = min(points, data.size)

    # Window boundaries; every window holds at least one sample since
    # n_points <= data.size.
    edges = (np.arange(n_points + 1, dtype=np.int64) * data.size) // n_points
    sums = np.add.reduceat(data, edges[:-1])
    means = sums / np.diff(edges)

    peak = means.max()
    if peak > 0:
        means = means / peak

    return np.round(means, WAVEFORM_PRECISION).tolist()


__all__ = ["reduce_waveform", "WAVEFORM_PRECISION"]
