"""ARMA(p, q) fitter on statsmodels ARIMA with d = 0."""

from typing import Any, Dict, Optional, Tuple
import logging
import warnings

import numpy as np
from statsmodels.tsa.arima.model import ARIMA

from selection.exceptions import FitFailure
from selection.models import FitResult

logger = logging.getLogger(__name__)

class ARMAFitter:
    """ARMA(p, q) with a constant, estimated by statsmodels"""

    family = 'arma'

    def __init__(self, trend: str = 'c',
                 require_convergence: bool = True,
                 method_kwargs: Optional[Dict[str, Any]] = None):
        """
        Initialize fitter

        Args:
            trend: statsmodels trend term, 'c' for a constant or 'n' for none
            require_convergence: Treat an optimizer that did not converge as a
                failed fit
            method_kwargs: Passed through to ARIMA.fit, e.g. {'maxiter': 500}
        """
        self.trend = trend
        self.require_convergence = require_convergence
        self.method_kwargs = method_kwargs or {}
        self.logger = logging.getLogger('fitters.arma')

    def fit_model(self, series, order: Tuple[int, int]):
        """Fit and return the raw statsmodels results object"""
        p, q = order
        y = np.asarray(series, dtype=float)

        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            model = ARIMA(y, order=(p, 0, q), trend=self.trend)
            result = model.fit(method_kwargs=self.method_kwargs)

        converged = result.mle_retvals.get('converged', True) if result.mle_retvals else True
        if not converged:
            if self.require_convergence:
                raise FitFailure(order, "optimizer did not converge")
            self.logger.warning(f"ARMA{order} did not converge, keeping last iterate")
        return result

    def __call__(self, series, order: Tuple[int, int]) -> FitResult:
        result = self.fit_model(series, order)
        self.logger.debug(f"ARMA{order}: llf={result.llf:.3f}, aic={result.aic:.3f}")
        return FitResult(
            order=tuple(order),
            criterion=float(result.aic),
            loglik=float(result.llf),
            n_params=int(len(result.params)),
            model=result
        )

    def __repr__(self) -> str:
        return f"ARMAFitter(trend={self.trend!r})"
