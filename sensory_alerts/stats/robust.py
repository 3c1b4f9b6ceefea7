"""
Robust location and scale estimates for detector baselines.

Non-finite values are ignored. Empty input yields 0.0.
"""

from typing import Sequence

import numpy as np
from scipy import stats


def _finite(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(list(values), dtype=float)
    return arr[np.isfinite(arr)]


def median(values: Sequence[float]) -> float:
    """Median of the finite values."""
    arr = _finite(values)
    if arr.size == 0:
        return 0.0
    return float(np.median(arr))


def mad(values: Sequence[float], scale: str = "normal") -> float:
    """
    Median absolute deviation.

    Args:
        values: Observations.
        scale: ``"normal"`` multiplies by ~1.4826 so the result estimates the
            standard deviation of normal data; ``"raw"`` leaves it unscaled.

    Returns:
        float: The MAD of the finite values.
    """
    arr = _finite(values)
    if arr.size == 0:
        return 0.0
    scale_arg = "normal" if scale == "normal" else 1.0
    return float(stats.median_abs_deviation(arr, scale=scale_arg))
