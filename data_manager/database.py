"""
DuckDB storage for grid runs, per-cell criteria and selected orders.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import duckdb
import numpy as np
import pandas as pd

from selection.models import ResultMatrix, Selection

logger = logging.getLogger(__name__)

class SelectionDatabase:
    def __init__(self, db_path: Union[str, Path]):
        """Initialize database connection"""
        self.logger = logging.getLogger(__name__)
        self.db_path = str(db_path)

        # Create database directory if it doesn't exist
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = duckdb.connect(self.db_path)
        self._initialize_tables()

        self.logger.info(f"Initialized database at {self.db_path}")

    def _initialize_tables(self):
        """Create tables if they don't exist"""
        try:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS grid_runs (
                    run_id INTEGER PRIMARY KEY,
                    family VARCHAR NOT NULL,
                    series_name VARCHAR,
                    criterion_name VARCHAR NOT NULL,
                    p_min INTEGER NOT NULL,
                    p_max INTEGER NOT NULL,
                    q_min INTEGER NOT NULL,
                    q_max INTEGER NOT NULL,
                    n_cells INTEGER NOT NULL,
                    n_available INTEGER NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS grid_cells (
                    run_id INTEGER NOT NULL,
                    p INTEGER NOT NULL,
                    q INTEGER NOT NULL,
                    criterion DOUBLE,
                    loglik DOUBLE,
                    error VARCHAR,
                    PRIMARY KEY (run_id, p, q),
                    FOREIGN KEY (run_id) REFERENCES grid_runs (run_id)
                );

                CREATE TABLE IF NOT EXISTS selections (
                    run_id INTEGER PRIMARY KEY,
                    p INTEGER NOT NULL,
                    q INTEGER NOT NULL,
                    criterion DOUBLE NOT NULL,
                    FOREIGN KEY (run_id) REFERENCES grid_runs (run_id)
                );
            """)
        except Exception as e:
            self.logger.error(f"Error initializing database tables: {str(e)}")
            raise

    def get_next_run_id(self) -> int:
        """Get next available run ID"""
        result = self.conn.execute("""
            SELECT COALESCE(MAX(run_id), 0) + 1
            FROM grid_runs
        """).fetchone()
        return int(result[0])

    def store_run(self, matrix: ResultMatrix, family: str,
                  series_name: Optional[str] = None,
                  selection: Optional[Selection] = None) -> int:
        """Store a result matrix and, optionally, its selection

        Args:
            matrix: Evaluated grid
            family: Model family label, e.g. 'arma' or 'garch-normal'
            series_name: Name of the fitted series
            selection: Winning order, if one was chosen

        Returns:
            The new run ID
        """
        grid = matrix.grid
        self.conn.begin()
        try:
            run_id = self.get_next_run_id()
            self.conn.execute("""
                INSERT INTO grid_runs (
                    run_id, family, series_name, criterion_name,
                    p_min, p_max, q_min, q_max, n_cells, n_available
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                run_id, family, series_name, matrix.criterion_name,
                grid.p_range[0], grid.p_range[1], grid.q_range[0], grid.q_range[1],
                len(grid), matrix.n_available
            ))

            self.conn.executemany("""
                INSERT INTO grid_cells (run_id, p, q, criterion, loglik, error)
                VALUES (?, ?, ?, ?, ?, ?)
            """, [
                (run_id, r['p'], r['q'], r['criterion'],
                 r['loglik'] if r['loglik'] is not None and np.isfinite(r['loglik']) else None,
                 r['error'])
                for r in matrix.to_records()
            ])

            if selection is not None:
                self.conn.execute("""
                    INSERT INTO selections (run_id, p, q, criterion)
                    VALUES (?, ?, ?, ?)
                """, (run_id, selection.p, selection.q, float(selection.criterion)))

            self.conn.commit()
        except Exception as e:
            self.logger.error(f"Error storing grid run: {str(e)}")
            self.conn.rollback()
            raise

        self.logger.info(
            f"Stored {family} run {run_id}: {matrix.n_available}/{len(grid)} cells available"
        )
        return run_id

    def load_matrix(self, run_id: int) -> pd.DataFrame:
        """Criterion matrix of a stored run, NaN for unavailable cells"""
        rows = self.conn.execute("""
            SELECT p, q, criterion
            FROM grid_cells
            WHERE run_id = ?
            ORDER BY p, q
        """, [run_id]).fetchall()

        if not rows:
            raise KeyError(f"No grid run with id {run_id}")

        cells = pd.DataFrame(rows, columns=['p', 'q', 'criterion'])
        cells['criterion'] = cells['criterion'].astype(float)
        return cells.pivot(index='p', columns='q', values='criterion')

    def get_selection(self, run_id: int) -> Optional[Selection]:
        row = self.conn.execute("""
            SELECT s.p, s.q, s.criterion, r.family
            FROM selections s
            JOIN grid_runs r ON s.run_id = r.run_id
            WHERE s.run_id = ?
        """, [run_id]).fetchone()
        if row is None:
            return None
        return Selection(order=(int(row[0]), int(row[1])), criterion=float(row[2]), family=row[3])

    def list_runs(self, family: Optional[str] = None) -> pd.DataFrame:
        query = """
            SELECT run_id, family, series_name, criterion_name,
                   p_min, p_max, q_min, q_max, n_cells, n_available, created_at
            FROM grid_runs
        """
        params = []
        if family:
            query += " WHERE family = ?"
            params.append(family)
        query += " ORDER BY run_id"
        return self.conn.execute(query, params).df()

    def close(self):
        """Close database connection"""
        if hasattr(self, 'conn'):
            self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
