"""
Fitter adapters around statsmodels and arch.
Each fitter is a picklable callable (series, (p, q)) -> FitResult.
"""

from .arma import ARMAFitter
from .garch import GARCHFitter
from .arma_garch import ARMAGARCHFitter, ARMAGARCHModel

FITTERS = {
    'arma': ARMAFitter,
    'garch': GARCHFitter,
    'arma_garch': ARMAGARCHFitter,
}


def build_fitter(family: str, **kwargs):
    """Instantiate the fitter registered for a model family"""
    try:
        fitter_cls = FITTERS[family]
    except KeyError:
        raise ValueError(f"Unknown model family {family!r}, expected one of {sorted(FITTERS)}")
    return fitter_cls(**kwargs)


__all__ = ['ARMAFitter', 'GARCHFitter', 'ARMAGARCHFitter', 'ARMAGARCHModel',
           'FITTERS', 'build_fitter']
