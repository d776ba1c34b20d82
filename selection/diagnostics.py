"""Statistical checks around a selected model"""

import logging
from typing import Dict, Iterable, Union

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.tsa.stattools import adfuller

logger = logging.getLogger(__name__)


def _clean(series) -> np.ndarray:
    values = np.asarray(series, dtype=float)
    return values[np.isfinite(values)]


def adf_test(series, regression: str = 'c', alpha: float = 0.05) -> Dict[str, object]:
    """Augmented Dickey-Fuller unit-root test.

    Returns:
        Dict with statistic, p_value, used_lag, n_obs, critical_values and
        stationary (unit root rejected at alpha)
    """
    values = _clean(series)
    if len(values) < 10:
        raise ValueError(f"ADF test needs at least 10 observations, got {len(values)}")

    statistic, p_value, used_lag, n_obs, critical_values, _ = adfuller(values, regression=regression)
    result = {
        'statistic': float(statistic),
        'p_value': float(p_value),
        'used_lag': int(used_lag),
        'n_obs': int(n_obs),
        'critical_values': {k: float(v) for k, v in critical_values.items()},
        'stationary': bool(p_value < alpha)
    }
    logger.info(
        f"ADF statistic={result['statistic']:.3f}, p={result['p_value']:.4f}, "
        f"stationary={result['stationary']}"
    )
    return result


def ljung_box(residuals, lags: Union[int, Iterable[int]] = (10, 20)) -> pd.DataFrame:
    """Ljung-Box test for residual autocorrelation, one row per lag"""
    values = _clean(residuals)
    lags = [lags] if isinstance(lags, int) else list(lags)
    if max(lags) >= len(values):
        raise ValueError(f"Lag {max(lags)} too large for {len(values)} residuals")
    return acorr_ljungbox(values, lags=lags)


def likelihood_ratio_test(loglik_restricted: float, loglik_full: float,
                          df: int) -> Dict[str, float]:
    """Wilks test of a nested restriction.

    Args:
        loglik_restricted: Log-likelihood of the smaller model
        loglik_full: Log-likelihood of the larger model
        df: Number of extra parameters in the larger model
    """
    if df < 1:
        raise ValueError(f"df must be at least 1, got {df}")

    statistic = 2.0 * (loglik_full - loglik_restricted)
    if statistic < -1e-6:
        raise ValueError(
            f"Larger model has lower log-likelihood ({loglik_full:.3f} < {loglik_restricted:.3f}); "
            f"models are not nested or the fit did not converge"
        )
    statistic = max(statistic, 0.0)
    p_value = float(stats.chi2.sf(statistic, df))
    return {'statistic': float(statistic), 'df': int(df), 'p_value': p_value}


def residual_summary(residuals) -> Dict[str, float]:
    """Moments and Jarque-Bera normality test of residuals"""
    values = _clean(residuals)
    if len(values) < 3:
        raise ValueError(f"Need at least 3 residuals, got {len(values)}")

    jb = stats.jarque_bera(values)
    return {
        'mean': float(np.mean(values)),
        'std': float(np.std(values, ddof=1)),
        'skewness': float(stats.skew(values)),
        'excess_kurtosis': float(stats.kurtosis(values)),
        'jarque_bera': float(jb.statistic),
        'jarque_bera_p_value': float(jb.pvalue)
    }
