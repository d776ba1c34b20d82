"""
CSV loader for price and observation series.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)


class DataLoader:
    def __init__(self, data_dir: Union[str, Path, None] = None):
        """Initialize loader; relative paths are resolved against data_dir."""
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.logger = logging.getLogger('data_manager.data_loader')

    def _resolve(self, file_path: Union[str, Path]) -> Path:
        path = Path(file_path)
        if not path.is_absolute() and self.data_dir is not None:
            path = self.data_dir / path
        return path

    def load_frame(self, file_path: Union[str, Path]) -> pd.DataFrame:
        """Read the raw CSV"""
        path = self._resolve(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")

        self.logger.info(f"Reading data from: {path}")
        df = pd.read_csv(path)
        self.logger.info(f"Total rows in CSV: {len(df)}")
        self.logger.debug(f"Columns found: {df.columns.tolist()}")
        return df

    def load_series(self, file_path: Union[str, Path], value_column: str,
                    date_column: Optional[str] = None) -> pd.Series:
        """
        Load one column of a CSV as a float series.

        Args:
            file_path: CSV file
            value_column: Column holding the observations (e.g. 'Close')
            date_column: Optional column parsed into a sorted DatetimeIndex

        Returns:
            Series named after value_column, rows with missing values dropped
        """
        df = self.load_frame(file_path)

        if value_column not in df.columns:
            raise KeyError(f"Column '{value_column}' not in {df.columns.tolist()}")

        if date_column is not None:
            if date_column not in df.columns:
                raise KeyError(f"Date column '{date_column}' not in {df.columns.tolist()}")
            df.index = pd.to_datetime(df[date_column])
            df.index.name = 'date'
            df = df.sort_index()
            self.logger.info(f"Date range in CSV: {df.index[0]} to {df.index[-1]}")

        series = pd.to_numeric(df[value_column], errors='coerce')
        n_missing = int(series.isna().sum())
        if n_missing:
            self.logger.warning(f"Dropping {n_missing} rows with missing '{value_column}' values")
        series = series.dropna().astype(float)
        series.name = value_column

        if series.empty:
            raise ValueError(f"Column '{value_column}' has no numeric values")

        self.logger.info(f"Loaded {len(series)} observations of '{value_column}'")
        return series
