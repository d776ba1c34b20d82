"""
Grid evaluation: one fit per (p, q) cell, serial or in a worker pool.
Failed, unusable or timed-out cells are recorded unavailable in the
ResultMatrix instead of aborting the grid.
"""

from typing import Any, Callable, Dict, Optional, Tuple, Union
from concurrent.futures import (ProcessPoolExecutor, ThreadPoolExecutor, FIRST_COMPLETED,
                                as_completed, wait)
from collections.abc import Mapping
import logging
import math
import time

import numpy as np
import pandas as pd

from utils.progress import ProgressMonitor
from .exceptions import FitFailure, InvalidGridError
from .models import FitResult, Order, OrderGrid, ResultMatrix
from .series import strip_boundary_nans

logger = logging.getLogger(__name__)

Fitter = Callable[[Any, Order], Any]

_EXECUTORS = {
    'process': ProcessPoolExecutor,
    'thread': ThreadPoolExecutor
}

# How often queued cells are checked for having started
_POLL_INTERVAL = 0.05


def _coerce_result(order: Order, raw: Any) -> FitResult:
    """Turn whatever the fitter returned into a FitResult for this cell"""
    if raw is None:
        raise FitFailure(order, "fitter returned no result")

    if isinstance(raw, FitResult):
        result = raw if tuple(raw.order) == order else FitResult(
            order=order, criterion=raw.criterion, loglik=raw.loglik,
            n_params=raw.n_params, model=raw.model
        )
    elif isinstance(raw, Mapping):
        if 'criterion' not in raw:
            raise FitFailure(order, "fitter result has no 'criterion'")
        result = FitResult(
            order=order,
            criterion=float(raw['criterion']),
            loglik=float(raw.get('loglik', np.nan)),
            n_params=raw.get('n_params'),
            model=raw.get('model')
        )
    else:
        result = FitResult(order=order, criterion=float(raw), loglik=np.nan)

    if not math.isfinite(result.criterion):
        raise FitFailure(order, f"non-finite criterion {result.criterion}")
    return result


def _fit_cell(fitter: Fitter, series, order: Order,
              keep_model: bool) -> Tuple[int, int, Optional[FitResult], Optional[str]]:
    """Fit one cell; runs in the caller or in a pool worker.

    Reports its own (p, q) so results can be placed regardless of
    completion order.
    """
    p, q = order
    try:
        result = _coerce_result(order, fitter(series, order))
    except FitFailure as e:
        return p, q, None, str(e)
    except Exception as e:
        return p, q, None, f"{type(e).__name__}: {e}"

    if not keep_model:
        result = result.without_model()
    return p, q, result, None


class GridEvaluator:
    """Fits every (p, q) cell of an order grid and collects the criterion"""

    def __init__(self, fitter: Fitter,
                 parallel: bool = False,
                 max_workers: Optional[int] = None,
                 executor: str = 'process',
                 cell_timeout: Optional[float] = None,
                 show_progress: bool = False,
                 keep_models: bool = False,
                 criterion_name: str = 'aic'):
        """
        Initialize evaluator

        Args:
            fitter: Callable (series, (p, q)) -> FitResult, mapping with a
                'criterion' key, or a bare number
            parallel: Fit cells concurrently in a worker pool
            max_workers: Pool size, None lets concurrent.futures decide
            executor: 'process' or 'thread'
            cell_timeout: Seconds a cell may run in parallel mode, counted from
                when a worker picks it up, before it is marked unavailable
            show_progress: Display a tqdm progress bar
            keep_models: Retain fitted model handles in the result matrix
            criterion_name: Label of the collected criterion
        """
        if not callable(fitter):
            raise TypeError("fitter must be callable")
        if executor not in _EXECUTORS:
            raise ValueError(f"executor must be one of {sorted(_EXECUTORS)}, got {executor!r}")
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        if cell_timeout is not None and cell_timeout <= 0:
            raise ValueError(f"cell_timeout must be positive, got {cell_timeout}")

        self.fitter = fitter
        self.parallel = parallel
        self.max_workers = max_workers
        self.executor = executor
        self.cell_timeout = cell_timeout
        self.show_progress = show_progress
        self.keep_models = keep_models
        self.criterion_name = criterion_name
        self.logger = logging.getLogger('selection.grid')

        if cell_timeout is not None and not parallel:
            self.logger.warning("cell_timeout is only enforced in parallel mode")

    def _prepare_series(self, series: Union[pd.Series, np.ndarray, list]):
        """Strip boundary NaNs and reject empty or gappy input"""
        if isinstance(series, pd.Series):
            data = series.astype(float)
        else:
            data = np.asarray(series, dtype=float)
            if data.ndim != 1:
                raise ValueError(f"Series must be one-dimensional, got shape {data.shape}")

        data = strip_boundary_nans(data)
        if len(data) == 0:
            raise ValueError("Series is empty after removing missing values")
        if np.isnan(np.asarray(data, dtype=float)).any():
            raise ValueError("Series contains missing values away from its boundaries")
        return data

    def evaluate(self, series, grid: OrderGrid) -> ResultMatrix:
        """Fit every cell of grid on series and return the criterion matrix"""
        if not isinstance(grid, OrderGrid):
            raise InvalidGridError(f"Expected an OrderGrid, got {type(grid).__name__}")

        data = self._prepare_series(series)
        matrix = ResultMatrix(grid, criterion_name=self.criterion_name)

        self.logger.info(
            f"Evaluating {len(grid)} cells: p in {grid.p_range}, q in {grid.q_range}, "
            f"n_obs={len(data)}, parallel={self.parallel}"
        )

        monitor = ProgressMonitor(
            total=len(grid),
            desc=f"{self.criterion_name.upper()} grid",
            logger=self.logger,
            disable=not self.show_progress
        )
        try:
            if self.parallel:
                self._evaluate_parallel(data, grid, matrix, monitor)
            else:
                self._evaluate_serial(data, grid, matrix, monitor)
        finally:
            monitor.close()

        if matrix.n_available == 0:
            self.logger.warning("No grid cell produced a usable criterion")
        else:
            self.logger.info(
                f"Grid complete: {matrix.n_available}/{len(grid)} cells available"
            )
        return matrix

    def _evaluate_serial(self, data, grid: OrderGrid, matrix: ResultMatrix,
                         monitor: ProgressMonitor) -> None:
        for order in grid.cells():
            self._record(matrix, monitor, *_fit_cell(self.fitter, data, order, self.keep_models))

    def _evaluate_parallel(self, data, grid: OrderGrid, matrix: ResultMatrix,
                           monitor: ProgressMonitor) -> None:
        pool = _EXECUTORS[self.executor](max_workers=self.max_workers)
        try:
            futures = {
                pool.submit(_fit_cell, self.fitter, data, order, self.keep_models): order
                for order in grid.cells()
            }

            if self.cell_timeout is None:
                for future in as_completed(futures):
                    self._record(matrix, monitor, *self._outcome(future, futures[future]))
            else:
                self._collect_with_deadlines(futures, matrix, monitor)
        finally:
            # Timed-out workers are left to finish in the background
            pool.shutdown(wait=self.cell_timeout is None, cancel_futures=True)

    def _collect_with_deadlines(self, futures: Dict[Any, Order], matrix: ResultMatrix,
                                monitor: ProgressMonitor) -> None:
        """Gather results, giving each cell cell_timeout seconds from when it starts running.

        Cells still queued behind a busy worker have no deadline yet.
        """
        pending = set(futures)
        started: Dict[Any, float] = {}

        while pending:
            now = time.monotonic()
            for future in pending:
                if future not in started and (future.running() or future.done()):
                    started[future] = now

            deadlines = [started[f] + self.cell_timeout for f in pending if f in started]
            wait_for = _POLL_INTERVAL
            if deadlines:
                wait_for = min(wait_for, max(0.0, min(deadlines) - now))

            done, pending = wait(pending, timeout=wait_for, return_when=FIRST_COMPLETED)
            for future in done:
                self._record(matrix, monitor, *self._outcome(future, futures[future]))

            now = time.monotonic()
            expired = {
                f for f in pending
                if f in started and not f.done() and now - started[f] >= self.cell_timeout
            }
            for future in expired:
                future.cancel()
                p, q = futures[future]
                self._record(matrix, monitor, p, q, None, f"timed out after {self.cell_timeout}s")
            pending -= expired

    def _outcome(self, future, order: Order):
        p, q = order
        try:
            return future.result()
        except Exception as e:
            # Worker crashed or the fitter could not be pickled
            return p, q, None, f"{type(e).__name__}: {e}"

    def _record(self, matrix: ResultMatrix, monitor: ProgressMonitor,
                p: int, q: int, result: Optional[FitResult], error: Optional[str]) -> None:
        if result is None:
            failure = error if error and error.startswith("Fit failed") else str(FitFailure((p, q), error or ""))
            self.logger.warning(failure)
            matrix.record_failure((p, q), error or "unknown error")
            monitor.update(status=f"({p},{q}) unavailable", failed=True)
            return

        matrix.record(result, keep_model=self.keep_models)
        monitor.update(status=f"({p},{q}) {self.criterion_name}={result.criterion:.3f}")


def evaluate_grid(series, grid: OrderGrid, fitter: Fitter, **kwargs) -> ResultMatrix:
    """Shortcut for GridEvaluator(fitter, **kwargs).evaluate(series, grid)"""
    return GridEvaluator(fitter, **kwargs).evaluate(series, grid)
