"""
GARCH(p, q) fitter on arch, with distribution aliases and seeded multi-start.
Fits run on scaled returns; the log-likelihood is reported on the original scale.
"""

from typing import Optional, Tuple
import logging
import warnings

import numpy as np
import pandas as pd
from arch import arch_model

from selection.exceptions import FitFailure
from selection.models import FitResult

logger = logging.getLogger(__name__)

# R (rugarch) and arch spellings of the innovation distributions
DISTRIBUTIONS = {
    'normal': 'normal',
    'norm': 'normal',
    'gaussian': 'normal',
    't': 't',
    'std': 't',
    'studentst': 't',
    'skewt': 'skewt',
    'sstd': 'skewt',
    'skewstudent': 'skewt',
    'ged': 'ged',
}


def normalize_distribution(distribution: str) -> str:
    try:
        return DISTRIBUTIONS[distribution.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown distribution {distribution!r}, expected one of {sorted(DISTRIBUTIONS)}"
        )


class GARCHFitter:
    """GARCH(p, q) variance model estimated by arch.

    Orders follow arch: p ARCH (alpha) lags, q GARCH (beta) lags. The series
    is multiplied by `scale` before fitting and the log-likelihood is mapped
    back, so criteria are comparable with fits on the unscaled series.
    """

    family = 'garch'

    def __init__(self, distribution: str = 'normal',
                 mean: str = 'Constant',
                 scale: float = 100.0,
                 n_starts: int = 1,
                 random_seed: Optional[int] = None,
                 max_iter: int = 1000,
                 require_convergence: bool = True):
        """
        Initialize fitter

        Args:
            distribution: 'normal', 't', 'skewt' or 'ged' (R names accepted)
            mean: arch mean model, 'Constant' or 'Zero'
            scale: Multiplier applied to the series before fitting
            n_starts: Number of optimizer starts; starts after the first use
                random starting values
            random_seed: Seed for the random starting values, applied afresh
                on every call
            max_iter: Optimizer iteration limit
            require_convergence: Treat a non-zero convergence flag as failure
        """
        if n_starts < 1:
            raise ValueError(f"n_starts must be at least 1, got {n_starts}")
        if scale <= 0:
            raise ValueError(f"scale must be positive, got {scale}")

        self.distribution = normalize_distribution(distribution)
        self.mean = mean
        self.scale = scale
        self.n_starts = n_starts
        self.random_seed = random_seed
        self.max_iter = max_iter
        self.require_convergence = require_convergence
        self.logger = logging.getLogger('fitters.garch')

    def _random_starting_values(self, params: pd.Series, y: np.ndarray,
                                random_state: np.random.RandomState) -> np.ndarray:
        """Random start that satisfies positivity and stationarity"""
        n_alpha = sum(name.startswith('alpha[') for name in params.index)
        n_beta = sum(name.startswith('beta[') for name in params.index)
        alpha_total = random_state.uniform(0.02, 0.2)
        beta_total = random_state.uniform(0.5, 0.97 - alpha_total) if n_beta else 0.0
        persistence = alpha_total + beta_total

        values = []
        for name in params.index:
            if name == 'omega':
                values.append(np.var(y) * (1 - persistence))
            elif name.startswith('alpha['):
                values.append(alpha_total / n_alpha)
            elif name.startswith('beta['):
                values.append(beta_total / n_beta)
            elif name == 'nu':
                values.append(random_state.uniform(1.2, 2.5) if self.distribution == 'ged'
                              else random_state.uniform(4.5, 15.0))
            elif name == 'lambda':
                values.append(random_state.uniform(-0.2, 0.2))
            else:
                values.append(params[name])
        return np.asarray(values, dtype=float)

    def fit_model(self, series, order: Tuple[int, int]):
        """Fit and return the best arch results object over all starts"""
        p, q = order
        y = np.asarray(series, dtype=float) * self.scale
        random_state = np.random.RandomState(self.random_seed)

        model = arch_model(
            y,
            mean=self.mean,
            vol='GARCH',
            p=p,
            q=q,
            dist=self.distribution,
            rescale=False
        )

        best = None
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            for attempt in range(self.n_starts):
                starting_values = None
                if attempt > 0:
                    starting_values = self._random_starting_values(best.params, y, random_state)
                result = model.fit(
                    starting_values=starting_values,
                    disp='off',
                    show_warning=False,
                    options={'maxiter': self.max_iter},
                    update_freq=0
                )
                if result.convergence_flag != 0:
                    self.logger.debug(f"GARCH{order} start {attempt} flag={result.convergence_flag}")
                if best is None or _better(result, best):
                    best = result

        if best.convergence_flag != 0 and self.require_convergence:
            raise FitFailure(order, f"optimizer exit flag {best.convergence_flag}")
        return best

    def __call__(self, series, order: Tuple[int, int]) -> FitResult:
        result = self.fit_model(series, order)
        n_params = int(len(result.params))
        loglik = float(result.loglikelihood) + result.nobs * np.log(self.scale)
        criterion = 2 * n_params - 2 * loglik

        self.logger.debug(
            f"GARCH{order}-{self.distribution}: llf={loglik:.3f}, aic={criterion:.3f}"
        )
        return FitResult(
            order=tuple(order),
            criterion=float(criterion),
            loglik=loglik,
            n_params=n_params,
            model=result
        )

    def __repr__(self) -> str:
        return (f"GARCHFitter(distribution={self.distribution!r}, mean={self.mean!r}, "
                f"n_starts={self.n_starts})")


def _better(candidate, incumbent) -> bool:
    """Prefer converged fits, then higher likelihood"""
    c_ok = candidate.convergence_flag == 0
    i_ok = incumbent.convergence_flag == 0
    if c_ok != i_ok:
        return c_ok
    return candidate.loglikelihood > incumbent.loglikelihood
