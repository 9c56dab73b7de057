"""Utility helpers for ssmsim: scalar coercion and run naming."""

from __future__ import annotations

from numbers import Integral, Number
from typing import Any, Iterable, Mapping

import numpy as np


def to_scalar(value: Any) -> Any:
    """Materialise numpy scalars and 0-d arrays into plain Python values.

    Values assigned as DataFrame columns must be literal scalars; a callable
    or an array here would be broadcast (or rejected) by pandas.
    """
    if callable(value):
        raise TypeError(f"Expected a scalar value, got callable {value!r}")
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        if value.ndim != 0:
            raise TypeError(f"Expected a scalar value, got array of shape {value.shape}")
        return value.item()
    return value


def format_value(value: Any) -> str:
    """Render a parameter value the way it appears in run names and titles."""
    value = to_scalar(value)
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, Integral):
        return str(int(value))
    if isinstance(value, Number):
        return f"{float(value):.15g}"
    return str(value)


def build_run_name(params: Mapping[str, Any], keys: Iterable[str]) -> str:
    """Join ``<key><value>`` pairs with underscores, e.g. ``pct10_degree4``."""
    return "_".join(f"{key}{format_value(params[key])}" for key in keys)


__all__ = ["to_scalar", "format_value", "build_run_name"]
