"""Logging utilities for the forecast reconciliation framework.

Stage timing for projector computation and reconciliation runs, and a
decorator logging calls of the matrix builders.
"""

import json
import logging
import time
import traceback
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np
import pandas as pd
from scipy import sparse


class PerformanceLogger:
    """
    Times named stages and logs their durations.

    Attributes:
        timers: Duration of the last run of each stage, in seconds.
        history: Every recorded duration per stage.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.timers: Dict[str, float] = {}
        self.history: Dict[str, List[float]] = {}

    @contextmanager
    def timer(self, operation: str, log_level: str = 'INFO'):
        """
        Time the enclosed block as stage ``operation``.

        A failing block is logged with its elapsed time and re-raised; its
        duration is not recorded.
        """
        level = getattr(logging, log_level.upper())
        start_time = time.time()
        self.logger.log(level, f"Starting operation: {operation}")

        try:
            yield
        except Exception as e:
            duration = time.time() - start_time
            self.logger.error(f"Failed operation: {operation} after {duration:.4f} seconds - {e}")
            raise

        duration = time.time() - start_time
        self.timers[operation] = duration
        self.history.setdefault(operation, []).append(duration)
        self.logger.log(level, f"Completed operation: {operation} in {duration:.4f} seconds")

    def log_data_stats(
        self,
        data: Union[pd.DataFrame, np.ndarray, sparse.spmatrix],
        name: str,
    ) -> None:
        """
        Log shape, missing values and density of a series frame or matrix.

        Args:
            data: Wide series frame, dense matrix or sparse matrix.
            name: Name of the data for logging.
        """
        if sparse.issparse(data):
            stats = {
                'shape': list(data.shape),
                'nnz': int(data.nnz),
                'density': float(data.nnz / max(data.shape[0] * data.shape[1], 1)),
            }
        elif isinstance(data, pd.DataFrame):
            stats = {
                'shape': list(data.shape),
                'null_count': int(data.isnull().sum().sum()),
            }
        else:
            arr = np.asarray(data)
            stats = {
                'shape': list(arr.shape),
                'null_count': int(np.isnan(arr).sum()) if arr.dtype.kind == 'f' else 0,
            }

        self.logger.info(f"Data statistics for {name}: {json.dumps(stats)}")

    def summary(self) -> Dict[str, Any]:
        """Total time, slowest stage and per-stage statistics."""
        return {
            'total_time': sum(self.timers.values()),
            'slowest_operation': max(self.timers.items(), key=lambda x: x[1]) if self.timers else None,
            'operations': {
                op: {'count': len(times), 'avg_time': float(np.mean(times))}
                for op, times in self.history.items()
            },
        }

    def log_summary(self) -> None:
        self.logger.info(f"Performance summary:\n{json.dumps(self.summary(), indent=2)}")


def log_function_call(
    logger: Optional[logging.Logger] = None,
    log_args: bool = False,
    level: str = 'DEBUG'
):
    """
    Decorator logging entry, completion time and failures of a function.

    Args:
        logger: Logger instance. If None, uses the function's module logger.
        log_args: Whether to log the call arguments.
        level: Logging level for entry and completion messages.

    Returns:
        Decorated function.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            func_logger = logger or logging.getLogger(func.__module__)
            func_name = f"{func.__module__}.{func.__qualname__}"
            log_level = getattr(logging, level.upper())

            log_msg = f"Calling {func_name}"
            if log_args:
                shown = [repr(arg) for arg in args] + [f"{k}={v!r}" for k, v in kwargs.items()]
                log_msg += f" with args: ({', '.join(shown)})"
            func_logger.log(log_level, log_msg)

            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                func_logger.error(f"Failed {func_name} after {duration:.4f} seconds: {e}")
                func_logger.debug(f"Full traceback for {func_name}:\n{traceback.format_exc()}")
                raise

            func_logger.log(log_level, f"Completed {func_name} in {time.time() - start_time:.4f} seconds")
            return result

        return wrapper
    return decorator
