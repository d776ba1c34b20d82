#!/usr/bin/env python
"""
Order selection pipeline for a price or observation series.
Loads a CSV, runs the configured AIC grid searches, checks the selected
models and stores every grid in DuckDB.
"""
import sys
import argparse
from pathlib import Path
import logging
from datetime import datetime
import numpy as np
import pandas as pd
from typing import Dict, Any, List, Optional
import traceback

# Add project root to path
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

from config.model_config import PipelineConfig
from data_manager.data_loader import DataLoader
from data_manager.data_prep import ReturnsPrep
from data_manager.database import SelectionDatabase
from fitters import build_fitter
from selection.exceptions import EmptyResultError, FitFailure
from selection.grid import GridEvaluator
from selection.selector import select_best, rank_orders, aic_inconsistencies
from selection import diagnostics

STOCHASTIC_FAMILIES = ('garch', 'arma_garch')

def setup_logging(output_dir: Path) -> logging.Logger:
    """
    Configure logging with both file and console handlers

    Parameters:
    -----------
    output_dir : Path
        Directory for log file

    Returns:
    --------
    logging.Logger
        Configured logger
    """
    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"order_selection_{timestamp}.log"

    logger = logging.getLogger("order_selection")
    logger.setLevel(logging.INFO)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(
        logging.Formatter('%(message)s')
    )

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger

def load_returns(data_file: Path, value_column: str, date_column: Optional[str],
                 logger: logging.Logger, transform: str = 'log_return',
                 config: Optional[PipelineConfig] = None) -> pd.Series:
    """Load a series and turn it into fit-ready observations"""
    config = config or PipelineConfig()
    logger.info(f"Loading '{value_column}' from {data_file}...")

    try:
        loader = DataLoader()
        prep = ReturnsPrep()
        series = loader.load_series(data_file, value_column, date_column)

        if transform == 'log_return':
            series = prep.log_returns(series)
        elif transform != 'none':
            raise ValueError(f"Unknown transform {transform!r}, expected 'log_return' or 'none'")

        if config.demean:
            series = prep.demean(series)

        if not prep.verify_data_quality(series, min_observations=config.min_observations):
            logger.warning("Data quality checks failed; results may be unreliable")

        logger.info(f"Prepared {len(series)} observations")
        return series

    except Exception as e:
        logger.error(f"Error loading data: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise

def initialize_components(config: Optional[PipelineConfig] = None,
                          logger: logging.Logger = None) -> Dict:
    """Build one fitter and grid evaluator per configured grid search"""
    if logger is None:
        logger = logging.getLogger('order_selection')
    config = config or PipelineConfig()

    searches = {}
    for grid_config in config.grids:
        fitter_kwargs = dict(grid_config.fitter_kwargs)
        if grid_config.family in STOCHASTIC_FAMILIES:
            fitter_kwargs.setdefault('random_seed', config.random_seed)

        logger.info(f"Creating {grid_config.name} fitter ({grid_config.family})...")
        fitter = build_fitter(grid_config.family, **fitter_kwargs)
        evaluator = GridEvaluator(
            fitter,
            parallel=config.parallel,
            max_workers=config.max_workers,
            executor=config.executor,
            cell_timeout=config.cell_timeout,
            show_progress=config.show_progress
        )
        searches[grid_config.name] = {
            'config': grid_config,
            'fitter': fitter,
            'evaluator': evaluator
        }

    return {
        'config': config,
        'searches': searches
    }

def _residuals(family: str, model) -> np.ndarray:
    """Residuals used for diagnostics of a refitted model"""
    if family == 'arma':
        return np.asarray(model.resid)
    if family == 'garch':
        return np.asarray(model.std_resid)
    return model.standardized_residuals

def diagnose_selection(fitter, family: str, series: pd.Series, order,
                       lags, logger: logging.Logger) -> Dict[str, Any]:
    """Refit the selected order once more and test its residuals"""
    result = fitter(series, order)
    residuals = _residuals(family, result.model)
    residuals = residuals[np.isfinite(residuals)]

    usable_lags = [lag for lag in lags if lag < len(residuals)]
    lb = diagnostics.ljung_box(residuals, usable_lags) if usable_lags else pd.DataFrame()
    summary = diagnostics.residual_summary(residuals)

    if not lb.empty:
        for lag, row in lb.iterrows():
            logger.info(f"  Ljung-Box lag {lag}: Q={row['lb_stat']:.2f}, p={row['lb_pvalue']:.4f}")
    logger.info(
        f"  Residuals: skew={summary['skewness']:.3f}, "
        f"excess kurtosis={summary['excess_kurtosis']:.3f}, "
        f"JB p={summary['jarque_bera_p_value']:.4f}"
    )
    return {
        'loglik': result.loglik,
        'n_params': result.n_params,
        'ljung_box': lb,
        'residual_summary': summary
    }

def run_analysis(components: Dict, returns: pd.Series, output_dir: Path,
                 logger: logging.Logger, series_name: Optional[str] = None) -> Dict:
    """Run every grid search, select, diagnose and store the results"""
    logger.info("Starting order selection pipeline...")
    config = components['config']
    series_name = series_name or returns.name or 'series'

    if len(returns) < config.min_observations:
        raise ValueError(
            f"Insufficient data: {len(returns)} < {config.min_observations} observations"
        )

    output_dir.mkdir(parents=True, exist_ok=True)

    try:
        stationarity = diagnostics.adf_test(returns)
        results = {
            'series_name': series_name,
            'n_obs': len(returns),
            'stationarity': stationarity,
            'families': {}
        }

        with SelectionDatabase(config.db_path(output_dir)) as db:
            for name, search in components['searches'].items():
                grid_config = search['config']
                logger.info(f"\n=== {name}: p in {grid_config.p_range}, q in {grid_config.q_range} ===")

                matrix = search['evaluator'].evaluate(returns, grid_config.grid())
                table = matrix.to_table(grid_config.row_label, grid_config.col_label)
                logger.info(f"AIC table ({name}):\n{table}")

                family_result = {
                    'matrix': matrix,
                    'table': table,
                    'n_available': matrix.n_available,
                    'selection': None
                }

                try:
                    selection = select_best(matrix, family=name)
                except EmptyResultError as e:
                    logger.error(f"{name}: {str(e)}")
                    family_result['run_id'] = db.store_run(matrix, name, series_name)
                    results['families'][name] = family_result
                    continue

                family_result['selection'] = selection
                family_result['ranking'] = rank_orders(matrix, n=5)
                family_result['inconsistencies'] = aic_inconsistencies(matrix)
                logger.info(f"{name}: selected order {selection.order}, AIC={selection.criterion:.2f}")

                try:
                    family_result['diagnostics'] = diagnose_selection(
                        search['fitter'], grid_config.family, returns,
                        selection.order, config.ljung_box_lags, logger
                    )
                except FitFailure as e:
                    logger.warning(f"{name}: diagnostic refit failed: {str(e)}")

                family_result['run_id'] = db.store_run(matrix, name, series_name, selection)
                results['families'][name] = family_result

        selected = {
            name: res['selection'] for name, res in results['families'].items()
            if res['selection'] is not None
        }
        if selected:
            best_name = min(selected, key=lambda n: selected[n].criterion)
            results['best_family'] = best_name
            logger.info(
                f"Lowest AIC overall: {best_name} {selected[best_name].order} "
                f"({selected[best_name].criterion:.2f})"
            )
        else:
            results['best_family'] = None
            logger.warning("No grid search produced a usable model")

        logger.info("Pipeline completed successfully")
        return results

    except Exception as e:
        logger.error(f"Error in analysis pipeline: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="AIC grid search for ARMA/GARCH orders")
    parser.add_argument("data_file", type=Path, help="CSV file with the series")
    parser.add_argument("--value-column", default="Close")
    parser.add_argument("--date-column", default="Date")
    parser.add_argument("--output-dir", type=Path, default=Path("results"))
    parser.add_argument("--raw", action="store_true",
                        help="Fit the column as is instead of its log returns")
    parser.add_argument("--serial", action="store_true", help="Fit grid cells one at a time")
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--cell-timeout", type=float, default=None)
    parser.add_argument("--seed", type=int, default=42)
    return parser.parse_args(argv)

def main(argv: Optional[List[str]] = None):
    """Main entry point with configuration and setup"""
    args = parse_args(argv)
    logger = setup_logging(args.output_dir)

    try:
        logger.info("Starting order selection...")
        config = PipelineConfig(
            parallel=not args.serial,
            max_workers=args.workers,
            cell_timeout=args.cell_timeout,
            random_seed=args.seed
        )

        returns = load_returns(
            args.data_file,
            args.value_column,
            args.date_column or None,
            logger,
            transform='none' if args.raw else 'log_return',
            config=config
        )

        components = initialize_components(config, logger)
        return run_analysis(components, returns, args.output_dir, logger)

    except Exception as e:
        logger.error(f"Pipeline failed: {str(e)}")
        raise

if __name__ == '__main__':
    main()
