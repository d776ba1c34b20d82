"""Input series handling shared by the evaluator and the data layer."""

from typing import Union

import numpy as np
import pandas as pd

ArrayLike = Union[pd.Series, np.ndarray]


def strip_boundary_nans(series: ArrayLike) -> ArrayLike:
    """Drop missing values at the start and end, keep interior ones"""
    values = np.asarray(series, dtype=float)
    valid = np.flatnonzero(~np.isnan(values))
    first, last = (valid[0], valid[-1] + 1) if len(valid) else (0, 0)
    if isinstance(series, pd.Series):
        return series.iloc[first:last]
    return series[first:last]
