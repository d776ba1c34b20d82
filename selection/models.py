"""Data classes shared by the grid evaluator, selector and persistence layer."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import InvalidGridError

Order = Tuple[int, int]


def _is_int(value: Any) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, (bool, np.bool_))


@dataclass(frozen=True)
class OrderGrid:
    """Rectangular grid of (p, q) orders, both ranges inclusive"""
    p_range: Tuple[int, int]
    q_range: Tuple[int, int]

    def __post_init__(self):
        for name, bounds in (('p_range', self.p_range), ('q_range', self.q_range)):
            try:
                low, high = bounds
            except (TypeError, ValueError):
                raise InvalidGridError(f"{name} must be a (min, max) pair, got {bounds!r}")
            if not (_is_int(low) and _is_int(high)):
                raise InvalidGridError(f"{name} bounds must be integers, got {bounds!r}")
            if low < 0 or high < 0:
                raise InvalidGridError(f"{name} bounds must be non-negative, got {bounds!r}")
            if low > high:
                raise InvalidGridError(f"{name} is empty: min {low} > max {high}")
        object.__setattr__(self, 'p_range', (int(self.p_range[0]), int(self.p_range[1])))
        object.__setattr__(self, 'q_range', (int(self.q_range[0]), int(self.q_range[1])))

    @classmethod
    def square(cls, max_order: int, min_order: int = 0) -> 'OrderGrid':
        """Grid with identical p and q ranges"""
        return cls((min_order, max_order), (min_order, max_order))

    @property
    def p_values(self) -> List[int]:
        return list(range(self.p_range[0], self.p_range[1] + 1))

    @property
    def q_values(self) -> List[int]:
        return list(range(self.q_range[0], self.q_range[1] + 1))

    @property
    def shape(self) -> Tuple[int, int]:
        return len(self.p_values), len(self.q_values)

    def cells(self) -> Iterator[Order]:
        """Row-major enumeration: p outer, q inner"""
        for p in self.p_values:
            for q in self.q_values:
                yield (p, q)

    def __len__(self) -> int:
        n_p, n_q = self.shape
        return n_p * n_q

    def __contains__(self, order) -> bool:
        try:
            p, q = order
        except (TypeError, ValueError):
            return False
        if not (_is_int(p) and _is_int(q)):
            return False
        return (self.p_range[0] <= p <= self.p_range[1]
                and self.q_range[0] <= q <= self.q_range[1])


@dataclass(frozen=True)
class FitResult:
    """Outcome of fitting one order pair"""
    order: Order
    criterion: float  # AIC, lower is better
    loglik: float
    n_params: Optional[int] = None
    model: Any = field(default=None, compare=False, repr=False)

    def without_model(self) -> 'FitResult':
        return replace(self, model=None)


@dataclass(frozen=True)
class Selection:
    """Winning order of a grid search"""
    order: Order
    criterion: float
    family: Optional[str] = None

    @property
    def p(self) -> int:
        return self.order[0]

    @property
    def q(self) -> int:
        return self.order[1]


class ResultMatrix:
    """Dense p x q matrix of criterion values; NaN marks an unavailable cell"""

    def __init__(self, grid: OrderGrid, criterion_name: str = 'aic'):
        self.grid = grid
        self.criterion_name = criterion_name
        self._values = pd.DataFrame(
            np.nan,
            index=pd.Index(grid.p_values, name='p'),
            columns=pd.Index(grid.q_values, name='q'),
            dtype=float
        )
        self.fit_results: Dict[Order, FitResult] = {}
        self.errors: Dict[Order, str] = {}

    def record(self, result: FitResult, keep_model: bool = False) -> None:
        """Store a successful fit in its (p, q) cell"""
        p, q = result.order
        if result.order not in self.grid:
            raise KeyError(f"Order {result.order} is outside the grid")
        self._values.loc[p, q] = float(result.criterion)
        self.fit_results[(p, q)] = result if keep_model else result.without_model()
        self.errors.pop((p, q), None)

    def record_failure(self, order: Order, message: str) -> None:
        """Mark a cell unavailable"""
        p, q = order
        if order not in self.grid:
            raise KeyError(f"Order {order} is outside the grid")
        self._values.loc[p, q] = np.nan
        self.fit_results.pop((p, q), None)
        self.errors[(p, q)] = message

    def value(self, p: int, q: int) -> float:
        return float(self._values.loc[p, q])

    def is_available(self, p: int, q: int) -> bool:
        return bool(np.isfinite(self._values.loc[p, q]))

    def available_cells(self) -> List[Order]:
        return [cell for cell in self.grid.cells() if self.is_available(*cell)]

    def unavailable_cells(self) -> List[Order]:
        return [cell for cell in self.grid.cells() if not self.is_available(*cell)]

    @property
    def n_available(self) -> int:
        return int(np.isfinite(self._values.to_numpy()).sum())

    @property
    def shape(self) -> Tuple[int, int]:
        return self._values.shape

    def to_frame(self) -> pd.DataFrame:
        return self._values.copy()

    def to_table(self, row_label: str = 'AR', col_label: str = 'MA',
                 precision: int = 2) -> str:
        """Render the matrix as a text table with NA for unavailable cells"""
        table = self._values.copy()
        table.index = [f"{row_label}{p}" for p in table.index]
        table.columns = [f"{col_label}{q}" for q in table.columns]
        return table.to_string(float_format=lambda v: f"{v:.{precision}f}", na_rep='NA')

    def to_records(self) -> List[Dict[str, Any]]:
        """Long-format rows, one per grid cell"""
        records = []
        for p, q in self.grid.cells():
            result = self.fit_results.get((p, q))
            records.append({
                'p': p,
                'q': q,
                'criterion': self.value(p, q) if self.is_available(p, q) else None,
                'loglik': float(result.loglik) if result is not None else None,
                'error': self.errors.get((p, q))
            })
        return records

    def __eq__(self, other) -> bool:
        if not isinstance(other, ResultMatrix):
            return NotImplemented
        return (self.grid == other.grid
                and self._values.equals(other._values))

    def __repr__(self) -> str:
        return (f"ResultMatrix(grid={self.grid}, available={self.n_available}/"
                f"{len(self.grid)})")
