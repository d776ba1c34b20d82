import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import pytest
import numpy as np
import pandas as pd

from data_manager.data_loader import DataLoader
from data_manager.data_prep import ReturnsPrep, strip_boundary_nans


@pytest.fixture
def prep():
    return ReturnsPrep()


@pytest.fixture
def price_csv(tmp_path):
    """CSV with unsorted dates and one missing close"""
    df = pd.DataFrame({
        'Date': ['2020-01-03', '2020-01-02', '2020-01-06', '2020-01-07'],
        'Close': [101.0, 100.0, None, 103.0],
        'Volume': [10, 20, 30, 40]
    })
    path = tmp_path / "prices.csv"
    df.to_csv(path, index=False)
    return path


def test_log_returns(prep):
    prices = pd.Series([100.0, 110.0, 99.0], name='Close')
    returns = prep.log_returns(prices)
    assert len(returns) == 2
    np.testing.assert_allclose(returns.values, [np.log(1.1), np.log(0.9)])
    assert returns.name == 'Close_log_return'


def test_log_returns_rejects_non_positive(prep):
    with pytest.raises(ValueError):
        prep.log_returns(pd.Series([100.0, 0.0, 101.0]))


def test_log_returns_needs_two_prices(prep):
    with pytest.raises(ValueError):
        prep.log_returns(pd.Series([100.0]))


def test_demean(prep):
    out = prep.demean(pd.Series([1.0, 2.0, 3.0]))
    assert np.isclose(out.mean(), 0.0)


@pytest.mark.parametrize("values, expected", [
    ([np.nan, 1.0, 2.0, np.nan], [1.0, 2.0]),
    ([1.0, np.nan, 2.0], [1.0, np.nan, 2.0]),
    ([np.nan, np.nan], []),
    ([1.0, 2.0], [1.0, 2.0]),
])
def test_strip_boundary_nans(values, expected):
    out = strip_boundary_nans(np.array(values))
    np.testing.assert_array_equal(out, np.array(expected))


def test_strip_boundary_nans_keeps_index():
    series = pd.Series([np.nan, 1.0, 2.0], index=pd.date_range('2020-01-01', periods=3))
    out = strip_boundary_nans(series)
    assert out.index[0] == pd.Timestamp('2020-01-02')


def test_strip_boundary_nans_shared_with_evaluator():
    import data_manager
    import selection
    assert data_manager.strip_boundary_nans is selection.strip_boundary_nans


def test_verify_data_quality(prep):
    rs = np.random.RandomState(0)
    good = pd.Series(rs.normal(0, 0.01, 500))
    assert prep.verify_data_quality(good)

    assert not prep.verify_data_quality(good.iloc[:50])

    gappy = good.copy()
    gappy.iloc[100] = np.nan
    assert not prep.verify_data_quality(gappy)

    stuck = good.copy()
    stuck.iloc[200:210] = 0.0
    assert not prep.verify_data_quality(stuck)

    spiky = good.copy()
    spiky.iloc[300] = 1.0
    assert not prep.verify_data_quality(spiky)


def test_load_series(price_csv):
    series = DataLoader().load_series(price_csv, 'Close', 'Date')
    assert list(series.values) == [100.0, 101.0, 103.0]
    assert series.index.is_monotonic_increasing
    assert series.name == 'Close'


def test_load_series_relative_to_data_dir(price_csv):
    loader = DataLoader(data_dir=price_csv.parent)
    assert len(loader.load_series(price_csv.name, 'Close')) == 3


def test_load_series_errors(price_csv, tmp_path):
    loader = DataLoader()
    with pytest.raises(FileNotFoundError):
        loader.load_series(tmp_path / "missing.csv", 'Close')
    with pytest.raises(KeyError):
        loader.load_series(price_csv, 'Adj Close')
    with pytest.raises(KeyError):
        loader.load_series(price_csv, 'Close', date_column='Timestamp')


if __name__ == '__main__':
    pytest.main([__file__])
