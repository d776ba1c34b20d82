"""
AIC grid search over (p, q) model orders.
Evaluates a pluggable fitter on every cell of an order grid and selects
the minimizing order.
"""

from .exceptions import FitFailure, EmptyResultError, InvalidGridError
from .models import OrderGrid, FitResult, ResultMatrix, Selection
from .series import strip_boundary_nans
from .grid import GridEvaluator, evaluate_grid
from .selector import select_best, rank_orders, aic_inconsistencies

__all__ = [
    'FitFailure', 'EmptyResultError', 'InvalidGridError',
    'OrderGrid', 'FitResult', 'ResultMatrix', 'Selection',
    'strip_boundary_nans', 'GridEvaluator', 'evaluate_grid',
    'select_best', 'rank_orders', 'aic_inconsistencies'
]
