import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import threading
import time

import pytest
import numpy as np
import pandas as pd

from selection.grid import GridEvaluator, evaluate_grid
from selection.models import FitResult, OrderGrid, ResultMatrix
from selection.selector import select_best
from selection.exceptions import EmptyResultError, InvalidGridError


class RecordingFitter:
    """Criterion p + q, optionally failing or sleeping on chosen cells"""

    def __init__(self, fail=(), sleep=None, values=None):
        self.fail = set(fail)
        self.sleep = sleep or {}
        self.values = values or {}
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, series, order):
        with self._lock:
            self.calls.append(tuple(order))
        if order in self.sleep:
            time.sleep(self.sleep[order])
        if order in self.fail:
            raise np.linalg.LinAlgError(f"singular matrix at {order}")
        criterion = self.values.get(order, float(sum(order)))
        return FitResult(order=order, criterion=criterion, loglik=-criterion / 2, n_params=sum(order) + 1)


@pytest.fixture
def series():
    np.random.seed(42)
    return pd.Series(np.random.normal(0, 0.01, 200))


def test_full_grid_shape_and_cells(series):
    """Every cell gets exactly one entry for an always-successful fitter"""
    fitter = RecordingFitter()
    grid = OrderGrid((0, 3), (0, 2))
    matrix = GridEvaluator(fitter).evaluate(series, grid)

    assert matrix.shape == (4, 3)
    assert matrix.n_available == 12
    assert list(matrix.to_frame().index) == [0, 1, 2, 3]
    assert list(matrix.to_frame().columns) == [0, 1, 2]
    for p, q in grid.cells():
        assert matrix.value(p, q) == p + q


def test_one_based_grid(series):
    matrix = GridEvaluator(RecordingFitter()).evaluate(series, OrderGrid((1, 2), (1, 3)))
    assert matrix.shape == (2, 3)
    assert matrix.unavailable_cells() == []
    assert select_best(matrix).order == (1, 1)


def test_serial_invocation_order(series):
    """Row-major, exactly once per cell"""
    fitter = RecordingFitter()
    GridEvaluator(fitter).evaluate(series, OrderGrid((0, 1), (0, 2)))
    assert fitter.calls == [(0, 0), (0, 1), (0, 2), (1, 0), (1, 1), (1, 2)]


def test_parallel_invokes_each_cell_once(series):
    fitter = RecordingFitter()
    grid = OrderGrid((0, 3), (0, 3))
    matrix = GridEvaluator(fitter, parallel=True, executor='thread', max_workers=4).evaluate(series, grid)

    assert sorted(fitter.calls) == sorted(grid.cells())
    assert matrix.n_available == 16


def test_parallel_placement_ignores_completion_order(series):
    """Slow early cells finish last but still land in their own slots"""
    fitter = RecordingFitter(sleep={(0, 0): 0.2, (0, 1): 0.1})
    grid = OrderGrid((0, 1), (0, 1))
    matrix = GridEvaluator(fitter, parallel=True, executor='thread', max_workers=4).evaluate(series, grid)

    for p, q in grid.cells():
        assert matrix.value(p, q) == p + q


def test_fault_isolation(series):
    fitter = RecordingFitter(fail={(1, 2)})
    grid = OrderGrid((0, 2), (0, 2))
    matrix = GridEvaluator(fitter).evaluate(series, grid)

    assert matrix.unavailable_cells() == [(1, 2)]
    assert matrix.n_available == 8
    assert 'LinAlgError' in matrix.errors[(1, 2)]
    assert len(fitter.calls) == 9  # no retry


def test_determinism(series):
    grid = OrderGrid((0, 2), (0, 3))
    first = GridEvaluator(RecordingFitter(fail={(2, 0)})).evaluate(series, grid)
    second = GridEvaluator(RecordingFitter(fail={(2, 0)})).evaluate(series, grid)
    assert first == second
    pd.testing.assert_frame_equal(first.to_frame(), second.to_frame())


def test_serial_and_parallel_agree(series):
    grid = OrderGrid((0, 2), (0, 2))
    serial = GridEvaluator(RecordingFitter(fail={(0, 1)})).evaluate(series, grid)
    parallel = GridEvaluator(
        RecordingFitter(fail={(0, 1)}), parallel=True, executor='thread'
    ).evaluate(series, grid)
    assert serial == parallel


def test_scenario_p_plus_q_with_failed_center(series):
    fitter = RecordingFitter(fail={(1, 1)})
    matrix = GridEvaluator(fitter).evaluate(series, OrderGrid((0, 2), (0, 2)))

    assert matrix.n_available == 8
    assert not matrix.is_available(1, 1)
    expected = {(0, 0): 0, (0, 1): 1, (0, 2): 2, (1, 0): 1,
                (1, 2): 3, (2, 0): 2, (2, 1): 3, (2, 2): 4}
    for cell, value in expected.items():
        assert matrix.value(*cell) == value

    selection = select_best(matrix)
    assert selection.order == (0, 0)
    assert selection.criterion == 0


def test_scenario_corner_minimum(series):
    values = {(0, 0): 10.0, (0, 1): 5.0, (1, 0): 5.0, (1, 1): 1.0}
    matrix = GridEvaluator(RecordingFitter(values=values)).evaluate(series, OrderGrid((0, 1), (0, 1)))
    selection = select_best(matrix)
    assert selection.order == (1, 1)
    assert selection.criterion == 1.0


def test_scenario_all_cells_fail(series):
    grid = OrderGrid((0, 1), (0, 1))
    matrix = GridEvaluator(RecordingFitter(fail=set(grid.cells()))).evaluate(series, grid)

    assert matrix.shape == (2, 2)
    assert matrix.n_available == 0
    assert matrix.to_frame().isna().all().all()
    with pytest.raises(EmptyResultError):
        select_best(matrix)


def test_cell_timeout_marks_cell_unavailable(series):
    fitter = RecordingFitter(sleep={(0, 0): 1.0})
    grid = OrderGrid((0, 1), (0, 1))
    evaluator = GridEvaluator(fitter, parallel=True, executor='thread',
                              max_workers=4, cell_timeout=0.3)
    matrix = evaluator.evaluate(series, grid)

    assert matrix.unavailable_cells() == [(0, 0)]
    assert 'timed out' in matrix.errors[(0, 0)]
    assert select_best(matrix).order == (0, 1)


def test_cell_timeout_spares_cells_queued_behind_a_slow_one(series):
    """A single worker stuck on one cell must not time out the cells waiting for it"""
    fitter = RecordingFitter(sleep={(0, 0): 1.0})
    grid = OrderGrid((0, 1), (0, 1))
    evaluator = GridEvaluator(fitter, parallel=True, executor='thread',
                              max_workers=1, cell_timeout=0.3)
    matrix = evaluator.evaluate(series, grid)

    assert matrix.unavailable_cells() == [(0, 0)]
    assert matrix.n_available == 3
    assert sorted(fitter.calls) == sorted(grid.cells())


def test_cell_timeout_counts_running_time(series):
    """A cell running past the timeout is dropped even if an earlier wait overlapped it"""
    fitter = RecordingFitter(sleep={(0, 0): 0.3, (0, 1): 0.6})
    grid = OrderGrid((0, 0), (0, 1))
    evaluator = GridEvaluator(fitter, parallel=True, executor='thread',
                              max_workers=4, cell_timeout=0.4)
    matrix = evaluator.evaluate(series, grid)

    assert matrix.is_available(0, 0)
    assert not matrix.is_available(0, 1)
    assert 'timed out' in matrix.errors[(0, 1)]


@pytest.mark.parametrize("raw, expected", [
    ({'criterion': 3.5, 'model': object()}, 3.5),
    (7, 7.0),
])
def test_accepts_mapping_and_number_results(series, raw, expected):
    matrix = evaluate_grid(series, OrderGrid((0, 0), (0, 0)), lambda s, order: raw)
    assert matrix.value(0, 0) == expected


@pytest.mark.parametrize("raw", [None, float('nan'), float('inf'), {'model': 1}])
def test_unusable_results_are_failures(series, raw):
    matrix = evaluate_grid(series, OrderGrid((0, 0), (0, 0)), lambda s, order: raw)
    assert matrix.n_available == 0
    assert (0, 0) in matrix.errors


def test_keep_models(series):
    handle = object()

    def fitter(s, order):
        return FitResult(order=order, criterion=1.0, loglik=0.0, model=handle)

    kept = evaluate_grid(series, OrderGrid((0, 0), (0, 1)), fitter, keep_models=True)
    dropped = evaluate_grid(series, OrderGrid((0, 0), (0, 1)), fitter)
    assert kept.fit_results[(0, 1)].model is handle
    assert dropped.fit_results[(0, 1)].model is None


def test_boundary_nans_are_stripped():
    seen = []

    def fitter(s, order):
        seen.append(len(s))
        return 1.0

    data = pd.Series([np.nan, 0.1, -0.2, 0.3, np.nan])
    evaluate_grid(data, OrderGrid((0, 0), (0, 0)), fitter)
    assert seen == [3]


def test_interior_nans_rejected():
    data = np.array([0.1, np.nan, 0.2])
    with pytest.raises(ValueError, match="missing values"):
        evaluate_grid(data, OrderGrid((0, 0), (0, 0)), RecordingFitter())


def test_empty_series_rejected():
    with pytest.raises(ValueError, match="empty"):
        evaluate_grid([np.nan, np.nan], OrderGrid((0, 0), (0, 0)), RecordingFitter())


def test_invalid_grid_fails_before_fitting(series):
    fitter = RecordingFitter()
    with pytest.raises(InvalidGridError):
        GridEvaluator(fitter).evaluate(series, OrderGrid((0, -1), (0, 1)))
    with pytest.raises(InvalidGridError):
        GridEvaluator(fitter).evaluate(series, ((0, 1), (0, 1)))
    assert fitter.calls == []


def test_constructor_validation():
    with pytest.raises(ValueError):
        GridEvaluator(RecordingFitter(), executor='cluster')
    with pytest.raises(ValueError):
        GridEvaluator(RecordingFitter(), cell_timeout=0)
    with pytest.raises(ValueError):
        GridEvaluator(RecordingFitter(), max_workers=0)
    with pytest.raises(TypeError):
        GridEvaluator("not callable")


if __name__ == '__main__':
    pytest.main([__file__])
