"""Data loading utilities for long-format observation panels."""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd

from ..utils.type_validation import validate_dataframe_structure, validate_numeric_range


class PanelDataLoader:
    """
    Loads a long-format panel: one row per leaf series and timestamp.

    The file holds a timestamp column, one column per key dimension and the
    observed value.
    """

    def __init__(self, data_path: str) -> None:
        """
        Initialize panel data loader.

        Args:
            data_path: Path to a CSV file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file is not a CSV file.
        """
        self.data_path = Path(data_path)
        if not self.data_path.exists():
            raise FileNotFoundError(f"Data file not found: {data_path}")
        if self.data_path.suffix.lower() != '.csv':
            raise ValueError(f"Data file must be CSV format, got: {self.data_path.suffix}")

        self.logger = logging.getLogger(__name__)
        self.data: Optional[pd.DataFrame] = None

    def load_data(self, index: str, value: str, dimensions: List[str]) -> pd.DataFrame:
        """
        Load and validate the panel.

        Args:
            index: Timestamp column, parsed as dates.
            value: Observed value column.
            dimensions: Key dimension columns.

        Returns:
            Observations sorted by dimensions and timestamp.

        Raises:
            pd.errors.EmptyDataError: If the file is empty.
            ValueError: If columns are missing, values are not numeric or a
                series has duplicated timestamps.
        """
        self.logger.info(f"Loading panel data from {self.data_path}...")

        data = pd.read_csv(self.data_path, parse_dates=[index])
        validate_dataframe_structure(
            data, "data", required_columns=[index, value] + list(dimensions), numeric_columns=[value]
        )

        duplicated = data.duplicated(subset=list(dimensions) + [index])
        if duplicated.any():
            raise ValueError(
                f"Found {int(duplicated.sum())} duplicated (series, {index}) observations"
            )

        self.data = data.sort_values(list(dimensions) + [index]).reset_index(drop=True)
        self.logger.info(
            f"Loaded panel data: {self.data.shape}, "
            f"{self.data.groupby(list(dimensions)).ngroups} leaf series"
        )
        return self.data


def train_test_split(wide: pd.DataFrame, test_size: int) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split a wide series frame into leading training and trailing test periods.

    Raises:
        ValueError: If the test period leaves fewer than two training steps.
    """
    validate_numeric_range(test_size, "test_size", min_val=1, max_val=len(wide) - 2)
    return wide.iloc[:-test_size], wide.iloc[-test_size:]
