"""Two-step ARMA mean plus fixed-order GARCH variance fitter."""

from dataclasses import dataclass
from typing import Any, Optional, Tuple
import logging

import numpy as np

from selection.models import FitResult
from .arma import ARMAFitter
from .garch import GARCHFitter

logger = logging.getLogger(__name__)

@dataclass
class ARMAGARCHModel:
    """Fitted mean and variance stages"""
    arma: Any
    garch: Any

    @property
    def standardized_residuals(self) -> np.ndarray:
        std_resid = np.asarray(self.garch.std_resid)
        return std_resid[np.isfinite(std_resid)]


class ARMAGARCHFitter:
    """ARMA(p, q) mean with a fixed-order GARCH variance, fitted in two steps.

    The ARMA stage is estimated by statsmodels; a zero-mean GARCH is then
    fitted to its residuals. The criterion counts the ARMA mean parameters
    (not its innovation variance) plus the GARCH parameters against the
    GARCH-stage log-likelihood.
    """

    family = 'arma_garch'

    def __init__(self, garch_order: Tuple[int, int] = (1, 1),
                 distribution: str = 'normal',
                 trend: str = 'c',
                 scale: float = 100.0,
                 n_starts: int = 1,
                 random_seed: Optional[int] = None,
                 require_convergence: bool = True):
        self.garch_order = tuple(garch_order)
        self.arma_fitter = ARMAFitter(trend=trend, require_convergence=require_convergence)
        self.garch_fitter = GARCHFitter(
            distribution=distribution,
            mean='Zero',
            scale=scale,
            n_starts=n_starts,
            random_seed=random_seed,
            require_convergence=require_convergence
        )
        self.logger = logging.getLogger('fitters.arma_garch')

    @property
    def distribution(self) -> str:
        return self.garch_fitter.distribution

    def __call__(self, series, order: Tuple[int, int]) -> FitResult:
        arma = self.arma_fitter.fit_model(series, order)
        residuals = np.asarray(arma.resid, dtype=float)

        garch = self.garch_fitter(residuals, self.garch_order)

        # sigma2 is replaced by the GARCH variance equation
        n_mean_params = int(len(arma.params)) - 1
        n_params = n_mean_params + garch.n_params
        criterion = 2 * n_params - 2 * garch.loglik

        self.logger.debug(
            f"ARMA{tuple(order)}+GARCH{self.garch_order}: llf={garch.loglik:.3f}, "
            f"aic={criterion:.3f}"
        )
        return FitResult(
            order=tuple(order),
            criterion=float(criterion),
            loglik=garch.loglik,
            n_params=n_params,
            model=ARMAGARCHModel(arma=arma, garch=garch.model)
        )

    def __repr__(self) -> str:
        return (f"ARMAGARCHFitter(garch_order={self.garch_order}, "
                f"distribution={self.distribution!r})")
