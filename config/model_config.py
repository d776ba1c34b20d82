"""Default grid and pipeline settings."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from selection.models import OrderGrid


@dataclass
class GridConfig:
    """One grid search: a model family, its order ranges and fitter options"""
    name: str
    family: str  # key of fitters.FITTERS
    p_range: Tuple[int, int]
    q_range: Tuple[int, int]
    fitter_kwargs: Dict[str, Any] = field(default_factory=dict)
    row_label: str = 'AR'
    col_label: str = 'MA'

    def grid(self) -> OrderGrid:
        return OrderGrid(self.p_range, self.q_range)


def default_grids() -> List[GridConfig]:
    """ARMA, GARCH under normal and Student-t noise, and ARMA+GARCH(1,1)"""
    return [
        GridConfig(
            name='arma',
            family='arma',
            p_range=(0, 4),
            q_range=(0, 4)
        ),
        GridConfig(
            name='garch-normal',
            family='garch',
            p_range=(1, 3),
            q_range=(1, 3),
            fitter_kwargs={'distribution': 'normal'},
            row_label='ARCH',
            col_label='GARCH'
        ),
        GridConfig(
            name='garch-t',
            family='garch',
            p_range=(1, 3),
            q_range=(1, 3),
            fitter_kwargs={'distribution': 't'},
            row_label='ARCH',
            col_label='GARCH'
        ),
        GridConfig(
            name='arma-garch',
            family='arma_garch',
            p_range=(0, 3),
            q_range=(0, 3),
            fitter_kwargs={'garch_order': (1, 1), 'distribution': 'normal'}
        ),
    ]


@dataclass
class PipelineConfig:
    """Settings for run_selection.py"""
    grids: List[GridConfig] = field(default_factory=default_grids)
    parallel: bool = True
    max_workers: Optional[int] = None
    executor: str = 'process'
    cell_timeout: Optional[float] = None
    show_progress: bool = True
    random_seed: int = 42
    min_observations: int = 100
    demean: bool = False
    ljung_box_lags: Tuple[int, ...] = (10, 20)
    db_name: str = 'selection.duckdb'

    def db_path(self, output_dir: Path) -> Path:
        return Path(output_dir) / self.db_name
