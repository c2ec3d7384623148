#!/usr/bin/env python3
"""
Forecast and reconcile a hierarchical sales panel.

Fits one model per series, reconciles the base forecasts with the configured
strategy and reports base and reconciled accuracy on the holdout period.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from forecast_reconciliation.data.keys import ROWS_COLUMN
from forecast_reconciliation.data.loader import PanelDataLoader
from forecast_reconciliation.training.trainer import ReconciliationTrainer
from forecast_reconciliation.utils.config import load_config, setup_logging


def parse_arguments() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Reconcile hierarchical forecasts",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        "--config",
        type=str,
        default="configs/default.yaml",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--data-path",
        type=str,
        help="Path to the panel CSV (overrides config)"
    )
    parser.add_argument(
        "--strategy",
        type=str,
        choices=["min_trace", "bottom_up"],
        help="Reconciliation strategy (overrides config)"
    )
    parser.add_argument(
        "--method",
        type=str,
        choices=["ols", "wls_var", "wls_struct", "mint_cov", "mint_shrink"],
        help="Weight estimation method (overrides config)"
    )
    parser.add_argument(
        "--cross-validate",
        action="store_true",
        help="Perform rolling-origin cross-validation"
    )
    parser.add_argument(
        "--cv-folds",
        type=int,
        default=3,
        help="Number of cross-validation folds"
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default="outputs",
        help="Directory for metrics and reconciled forecasts"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides config)"
    )

    return parser.parse_args()


def override_config_from_args(config: dict, args: argparse.Namespace) -> dict:
    """Override configuration parameters from command line arguments."""
    if args.data_path:
        config['data']['path'] = args.data_path
    if args.strategy:
        config['reconciliation']['strategy'] = args.strategy
    if args.method:
        config['reconciliation']['method'] = args.method
    if args.log_level:
        config['logging']['level'] = args.log_level
    return config


def main() -> None:
    """Main reconciliation function."""
    args = parse_arguments()

    try:
        config = load_config(args.config, validate_schema=True)
        config = override_config_from_args(config, args)

        logging_config = config['logging']
        setup_logging(level=logging_config['level'], log_file=logging_config['file'])
        logger = logging.getLogger(__name__)
        logger.info(f"Configuration: {args.config}")

        data_config = config['data']
        if not data_config['path']:
            raise ValueError("No data path given in config or on the command line")
        dimensions = [
            dim
            for chain in data_config['hierarchy']
            for dim in ([chain] if isinstance(chain, str) else chain)
        ]
        if ROWS_COLUMN in dimensions:
            raise ValueError(f"'{ROWS_COLUMN}' cannot be used as a dimension name")
        data = PanelDataLoader(data_config['path']).load_data(
            data_config['index'], data_config['value'], dimensions
        )

        trainer = ReconciliationTrainer(config)

        if args.cross_validate:
            cv_results = trainer.cross_validate(data, n_folds=args.cv_folds)
            logger.info(f"Cross-validation results: {cv_results}")

        metrics = trainer.run(data)
        print(trainer.evaluator.create_performance_report(metrics))

        paths = trainer.save_artifacts(args.output_dir)
        logger.info(f"Reconciled forecasts saved to: {paths['forecasts']}")

    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Reconciliation interrupted by user")
        sys.exit(1)

    except Exception as e:
        logger = logging.getLogger(__name__)
        logger.error(f"Reconciliation failed: {e}")
        if logging.getLogger().isEnabledFor(logging.DEBUG):
            logger.exception("Full traceback:")
        sys.exit(1)


if __name__ == "__main__":
    main()
