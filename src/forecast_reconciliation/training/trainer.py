"""
Reconciliation pipeline: key table, base models, reconciliation, evaluation.

The trainer fits one model per series on a training period, reconciles the
base forecasts with the configured strategy and scores base and reconciled
forecasts on the holdout period.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import TimeSeriesSplit

from ..data.keys import aggregate_series, build_key_table
from ..data.loader import train_test_split
from ..data.structure import KeyStructure
from ..data.summing import SummingMatrixBuilder
from ..evaluation.metrics import HierarchicalMetrics
from ..models.distributions import POINT_FORECAST_FUNCTIONS, SeriesForecast
from ..models.model_table import ModelTable, forecasts_to_frame
from ..models.reconciler import make_reconciler
from ..models.series_models import SeriesModel, make_series_model
from ..utils.config import ReconciliationConfig
from ..utils.logging_utils import PerformanceLogger


class ReconciliationTrainer:
    """
    End-to-end forecast reconciliation pipeline.

    Attributes:
        config: Validated configuration dictionary.
        key_table: Key table of the last run.
        structure: Key structure of the last run.
        model_table: Fitted model table of the last run.
        base_forecasts: Base forecasts of the last run.
        reconciled_forecasts: Reconciled forecasts of the last run.
        metrics: Metrics of base and reconciled forecasts, keyed by name.
    """

    def __init__(self, config: Dict[str, Any]) -> None:
        """
        Initialize the reconciliation pipeline.

        Args:
            config: Configuration dictionary, as returned by ``load_config``
                with schema validation.
        """
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.perf_logger = PerformanceLogger(self.logger)

        data_config = config.get('data', {})
        self.index = data_config.get('index', 'date')
        self.value = data_config.get('value', 'sales')
        self.hierarchy = data_config.get('hierarchy', [['region', 'store']])
        self.test_size = data_config.get('test_size', 14)
        self.horizon = config.get('forecast', {}).get('horizon', self.test_size)

        reconciliation = config.get('reconciliation', {})
        self.strategy_name = reconciliation.get('strategy', 'min_trace')
        self.reconciliation_config = ReconciliationConfig.from_dict(reconciliation)
        self.point_forecasts = {
            name: POINT_FORECAST_FUNCTIONS[name]
            for name in reconciliation.get('point_forecasts', ['mean'])
        }
        self.evaluator = HierarchicalMetrics(config.get('evaluation', {}).get('levels'))

        self.key_table: Optional[pd.DataFrame] = None
        self.structure: Optional[KeyStructure] = None
        self.model_table: Optional[ModelTable] = None
        self.base_forecasts: List[SeriesForecast] = []
        self.reconciled_forecasts: List[SeriesForecast] = []
        self.metrics: Dict[str, Dict[str, float]] = {}

    def model_factory(self) -> Callable[[], SeriesModel]:
        """Factory of per-series models for the configured model type."""
        models_config = self.config.get('models', {})
        model_type = models_config.get('type', 'naive')
        if model_type == 'arima':
            arima = models_config.get('arima', {})
            kwargs = {'order': arima.get('order', [1, 0, 0]), 'trend': arima.get('trend')}
        else:
            kwargs = {}
        return lambda: make_series_model(model_type, **kwargs)

    def _prepare_data(self, data: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """Build the key table and the wide frame of every series."""
        self.logger.info("Preparing hierarchical series...")
        key_table = build_key_table(data, self.hierarchy)
        wide = aggregate_series(data, key_table, self.index, self.value)
        self.perf_logger.log_data_stats(wide, "aggregated series")
        return key_table, wide

    def run(self, data: pd.DataFrame) -> Dict[str, Dict[str, float]]:
        """
        Execute the complete pipeline on a long-format panel.

        Args:
            data: Observations with the configured index, value and dimensions.

        Returns:
            Metrics of the ``base`` and ``reconciled`` forecasts.
        """
        self.logger.info("Starting forecast reconciliation pipeline...")

        key_table, wide = self._prepare_data(data)
        train, test = train_test_split(wide, self.test_size)
        horizon = min(self.horizon, len(test))

        self.metrics = self._fit_and_evaluate(key_table, train, test, horizon)
        self.key_table = key_table

        self.perf_logger.log_summary()
        self.logger.info("Reconciliation pipeline completed successfully")
        return self.metrics

    def _fit_and_evaluate(
        self,
        key_table: pd.DataFrame,
        train: pd.DataFrame,
        test: pd.DataFrame,
        horizon: int,
    ) -> Dict[str, Dict[str, float]]:
        strategy = make_reconciler(
            self.strategy_name, self.reconciliation_config, point_forecasts=self.point_forecasts
        )
        with self.perf_logger.timer("base models"):
            model_table = ModelTable(self.model_factory(), label=self.value).fit_wide(train, key_table)
            base = model_table.forecast(horizon)

        with self.perf_logger.timer("reconciliation"):
            reconciled = model_table.reconcile(strategy, horizon, forecasts=base)

        structure = model_table.structure
        with self.perf_logger.timer("evaluation"):
            S = SummingMatrixBuilder(structure).build(sparse_output=True)
            self.perf_logger.log_data_stats(S, "summing matrix")
            metrics = {
                'base': self.evaluator.compute_all_metrics(base, test, structure, S),
                'reconciled': self.evaluator.compute_all_metrics(reconciled, test, structure, S),
            }
            metrics['reconciled'].update(
                self.evaluator.diebold_mariano_test(reconciled, base, test)
            )

        self.structure = structure
        self.model_table = model_table
        self.base_forecasts = base
        self.reconciled_forecasts = reconciled
        self.logger.info(f"Base metrics: {metrics['base']}")
        self.logger.info(f"Reconciled metrics: {metrics['reconciled']}")
        return metrics

    def cross_validate(self, data: pd.DataFrame, n_folds: int = 3) -> Dict[str, float]:
        """
        Rolling-origin evaluation of the reconciled forecasts.

        Args:
            data: Observations with the configured index, value and dimensions.
            n_folds: Number of forecast origins.

        Returns:
            Mean and standard deviation of every reconciled metric.
        """
        self.logger.info(f"Starting {n_folds}-fold cross-validation...")
        key_table, wide = self._prepare_data(data)
        tscv = TimeSeriesSplit(n_splits=n_folds, test_size=self.horizon)

        fold_metrics: Dict[str, List[float]] = {}
        for fold, (train_idx, test_idx) in enumerate(tscv.split(wide)):
            self.logger.info(f"Cross-validation fold {fold + 1}/{n_folds}")
            metrics = self._fit_and_evaluate(
                key_table, wide.iloc[train_idx], wide.iloc[test_idx], len(test_idx)
            )
            for name, value in metrics['reconciled'].items():
                fold_metrics.setdefault(name, []).append(value)

        cv_results = {}
        for name, values in fold_metrics.items():
            cv_results[f"{name}_mean"] = float(np.mean(values))
            cv_results[f"{name}_std"] = float(np.std(values))

        self.logger.info(f"Cross-validation completed: {cv_results}")
        return cv_results

    def forecasts_frame(self) -> pd.DataFrame:
        """Reconciled forecasts of the last run in long format."""
        if not self.reconciled_forecasts:
            raise ValueError("No reconciled forecasts. Run run() first.")
        return forecasts_to_frame(self.reconciled_forecasts, self.structure.dimensions)

    def save_artifacts(self, output_dir: str) -> Dict[str, Path]:
        """
        Save configuration, metrics and reconciled forecasts.

        Args:
            output_dir: Directory to write into; created if missing.

        Returns:
            Paths of the written files.
        """
        frame = self.forecasts_frame()
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = {
            'config': output_dir / "config.json",
            'metrics': output_dir / "metrics.json",
            'forecasts': output_dir / "reconciled_forecasts.csv",
        }
        with open(paths['config'], 'w') as f:
            json.dump(self.config, f, indent=2, default=str)
        with open(paths['metrics'], 'w') as f:
            json.dump(self.metrics, f, indent=2)

        frame = frame.copy()
        for dim in self.structure.dimensions:
            frame[dim] = frame[dim].astype(str)
        frame.to_csv(paths['forecasts'], index=False)

        self.logger.info(f"Artifacts saved to {output_dir}")
        return paths
