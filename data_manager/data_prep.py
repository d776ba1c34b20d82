"""
Prepare price series for order selection: log returns and quality checks.
"""

import logging

import numpy as np
import pandas as pd

from selection.series import strip_boundary_nans

logger = logging.getLogger(__name__)


class ReturnsPrep:
    """Turns prices into fit-ready log returns."""

    def __init__(self, extreme_threshold: float = 15.0, max_identical_run: int = 5):
        """
        Args:
            extreme_threshold: Distance from the mean, in standard deviations,
                beyond which a return counts as extreme
            max_identical_run: Longest tolerated run of identical returns
        """
        self.extreme_threshold = extreme_threshold
        self.max_identical_run = max_identical_run
        self.logger = logging.getLogger('data_manager.data_prep')

    def log_returns(self, prices: pd.Series) -> pd.Series:
        """
        Compute log returns log(p_t / p_{t-1}).

        Args:
            prices: Price series ordered in time

        Returns:
            Log returns without the leading missing value
        """
        prices = pd.Series(prices, dtype=float).dropna()
        if (prices <= 0).any():
            raise ValueError(f"Found {int((prices <= 0).sum())} non-positive prices")
        if len(prices) < 2:
            raise ValueError(f"Need at least 2 prices, got {len(prices)}")

        returns = np.log(prices / prices.shift(1)).dropna()
        returns.name = f"{prices.name}_log_return" if prices.name is not None else 'log_return'

        self.logger.info(
            f"Prepared {len(returns)} log returns:\n"
            f"  Mean: {returns.mean():.6f}\n"
            f"  Std:  {returns.std():.6f}"
        )
        return returns

    def demean(self, series: pd.Series) -> pd.Series:
        return series - series.mean()

    def verify_data_quality(self, returns: pd.Series, min_observations: int = 100) -> bool:
        """
        Verify a return series is usable for fitting.

        Args:
            returns: Series of log returns
            min_observations: Minimum required observations

        Returns:
            bool indicating if data meets quality requirements
        """
        returns = pd.Series(returns, dtype=float)
        trimmed = strip_boundary_nans(returns)

        if len(trimmed) < min_observations:
            self.logger.warning(f"Insufficient observations: {len(trimmed)} < {min_observations}")
            return False

        if trimmed.isna().any():
            self.logger.warning(f"Found {int(trimmed.isna().sum())} interior missing values")
            return False

        # Longest run of consecutive identical values
        run_ids = (trimmed != trimmed.shift()).cumsum()
        max_identical = int(trimmed.groupby(run_ids).size().max())
        if max_identical > self.max_identical_run:
            self.logger.warning(f"Found sequence of {max_identical} identical returns")
            return False

        std = trimmed.std()
        if std == 0:
            self.logger.warning("Return series is constant")
            return False

        extremes = trimmed[(trimmed - trimmed.mean()).abs() > self.extreme_threshold * std]
        if not extremes.empty:
            self.logger.warning(
                f"Found {len(extremes)} returns beyond {self.extreme_threshold} standard deviations"
            )
            return False

        return True
