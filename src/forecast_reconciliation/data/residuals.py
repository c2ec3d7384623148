"""Alignment of per-series residuals onto a common time index."""

import logging
from typing import Sequence, Union

import numpy as np
import pandas as pd

from ..exceptions import HierarchyStructureError

logger = logging.getLogger(__name__)

ResidualLike = Union[pd.Series, np.ndarray, Sequence[float]]


def align_residuals(residuals: Sequence[ResidualLike]) -> pd.DataFrame:
    """
    Stack per-series residuals into a timestamps x series matrix.

    Residuals sharing one index (including plain arrays of equal length)
    are bound column-wise as they are. Otherwise they are joined on their
    index and every timestamp missing from any series is dropped. Rows
    holding a missing residual are dropped in both cases.

    Args:
        residuals: One residual sequence per series, in key table order.
            Differing indexes require ``pd.Series`` indexed by timestamp.

    Returns:
        Aligned residual frame with columns ``0..n_series-1``.

    Raises:
        HierarchyStructureError: If no residuals are given or no timestamp
            is shared by all series.
    """
    if len(residuals) == 0:
        raise HierarchyStructureError("No residuals supplied for weight estimation")

    series = [
        r if isinstance(r, pd.Series) else pd.Series(np.asarray(r, dtype=float))
        for r in residuals
    ]

    if all(s.index.equals(series[0].index) for s in series[1:]):
        frame = pd.DataFrame(
            np.column_stack([s.to_numpy(dtype=float) for s in series]),
            index=series[0].index,
        )
    else:
        frame = pd.concat(
            [s.astype(float) for s in series],
            axis=1,
            join="outer",
            ignore_index=True,
        ).sort_index()

    n_rows = len(frame)
    frame = frame.dropna(how="any")
    if len(frame) < n_rows:
        logger.warning(
            f"Dropped {n_rows - len(frame)} of {n_rows} residual timestamps "
            f"not shared by all series"
        )

    if frame.empty:
        raise HierarchyStructureError(
            "Aligned residual matrix is empty: no timestamp is shared by all series"
        )
    return frame
