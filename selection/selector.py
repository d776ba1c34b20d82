"""Pick the best order from a criterion matrix"""

import logging
from typing import List, Optional, Tuple

from .exceptions import EmptyResultError
from .models import Order, ResultMatrix, Selection

logger = logging.getLogger(__name__)


def select_best(matrix: ResultMatrix, family: Optional[str] = None) -> Selection:
    """Return the available cell with the smallest criterion.

    Cells are scanned in row-major order and only a strictly smaller value
    replaces the incumbent, so ties resolve to the smallest (p, q).
    """
    best_order = None
    best_value = None
    for p, q in matrix.grid.cells():
        if not matrix.is_available(p, q):
            continue
        value = matrix.value(p, q)
        if best_value is None or value < best_value:
            best_order, best_value = (p, q), value

    if best_order is None:
        raise EmptyResultError(
            f"No available cells in {len(matrix.grid)}-cell grid "
            f"(p in {matrix.grid.p_range}, q in {matrix.grid.q_range})"
        )

    logger.info(f"Selected order {best_order} with {matrix.criterion_name}={best_value:.3f}")
    return Selection(order=best_order, criterion=best_value, family=family)


def rank_orders(matrix: ResultMatrix, n: Optional[int] = None) -> List[Tuple[Order, float]]:
    """Available cells sorted by criterion, ties by (p, q)"""
    ranked = sorted(
        ((cell, matrix.value(*cell)) for cell in matrix.available_cells()),
        key=lambda item: (item[1], item[0])
    )
    return ranked if n is None else ranked[:n]


def aic_inconsistencies(matrix: ResultMatrix,
                        tolerance: float = 2.0) -> List[Tuple[Order, Order, float]]:
    """Find nested neighbours whose AIC rises by more than tolerance.

    Going from (p, q) to (p+1, q) or (p, q+1) adds one parameter, so under
    exact maximum likelihood the AIC can grow by at most 2. Larger increases
    point at an optimizer that stopped short on the bigger model.

    Returns:
        List of (smaller_order, larger_order, increase)
    """
    flagged = []
    for p, q in matrix.available_cells():
        for larger in ((p + 1, q), (p, q + 1)):
            if larger not in matrix.grid or not matrix.is_available(*larger):
                continue
            increase = matrix.value(*larger) - matrix.value(p, q)
            if increase > tolerance:
                flagged.append(((p, q), larger, increase))

    for smaller, larger, increase in flagged:
        logger.warning(
            f"{matrix.criterion_name.upper()} rises by {increase:.2f} from {smaller} to {larger}; "
            f"the larger fit probably did not converge to its maximum"
        )
    return flagged
