"""Reshaping, sampling and summary metrics for simulation results.

Every function here is a pure transformation of a results table with the
columns ``run``, ``tick``, ``who`` and ``support`` (as produced by
:func:`ssmsim.engine.run_simulations`) or of its polled form with the columns
``run``, ``tick``, ``support_level`` and ``count``.
"""

from __future__ import annotations

import math
import os
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Sequence

import numpy as np
import pandas as pd

from .exceptions import DataShapeError

if TYPE_CHECKING:  # pragma: no cover
    from .config import RunConfig

SUPPORT_LEVELS: List[str] = ["opposed", "neutral", "supportive"]

# Reported as the crossover tick when supportive never exceeds opposed.
NO_CROSSOVER = -1

METRICS_COLUMNS: List[str] = [
    "run",
    "lambda",
    "percent",
    "num_nodes",
    "allies",
    "homophily",
    "degree",
    "variable",
    "value",
]


def _require_columns(df: pd.DataFrame, columns: Iterable[str]) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise DataShapeError(f"Results table lacks required columns: {', '.join(missing)}")


def sample_size(population: int, proportion: float) -> int:
    """Number of sampled nodes: floor(N * p), but at least one node when N > 0."""
    if not 0.0 < proportion <= 1.0:
        raise ValueError(f"sample proportion must lie in (0, 1], got {proportion}")
    if population <= 0:
        return 0
    # The epsilon keeps products like 100 * 0.29 from flooring one short.
    return min(population, max(1, int(math.floor(population * proportion + 1e-9))))


def sample_support(
    results: pd.DataFrame,
    sample_proportion: float,
    rng: np.random.Generator,
) -> pd.DataFrame:
    """Keep a random subset of nodes per run; the same nodes appear at every tick."""
    _require_columns(results, ("run", "tick", "who"))
    frames = []
    for _, group in results.groupby("run", sort=False):
        nodes = np.sort(group["who"].unique())
        picked = rng.choice(nodes, size=sample_size(len(nodes), sample_proportion), replace=False)
        frames.append(group[group["who"].isin(picked)])
    if not frames:
        return results.iloc[0:0].copy()
    return pd.concat(frames).reset_index(drop=True)


def classify_support(support: pd.Series, mid_break: float) -> np.ndarray:
    """Bucket continuous support into opposed / neutral / supportive."""
    values = support.to_numpy(dtype=float)
    return np.where(
        values > mid_break,
        "supportive",
        np.where(values < -mid_break, "opposed", "neutral"),
    )


def poll_support(results: pd.DataFrame, mid_break: float = 0.2) -> pd.DataFrame:
    """Count nodes per support level at each tick of each run.

    Every level appears for every (run, tick), with a count of 0 when no node
    falls in it.
    """
    _require_columns(results, ("tick", "support"))
    if mid_break < 0:
        raise ValueError(f"mid_break must be non-negative, got {mid_break}")
    keys = ["run", "tick"] if "run" in results.columns else ["tick"]
    levelled = results[keys].copy()
    levelled["support_level"] = classify_support(results["support"], mid_break)
    wide = (
        levelled.groupby(keys + ["support_level"]).size()
        .unstack(fill_value=0)
        .reindex(columns=SUPPORT_LEVELS, fill_value=0)
        .reset_index()
    )
    polled = wide.melt(id_vars=keys, value_vars=SUPPORT_LEVELS, var_name="support_level", value_name="count")
    polled["count"] = polled["count"].astype(int)
    polled["support_level"] = pd.Categorical(polled["support_level"], categories=SUPPORT_LEVELS, ordered=True)
    return polled.sort_values(keys + ["support_level"]).reset_index(drop=True)


def filter_ticks(df: pd.DataFrame, ticks: Sequence[int], strict: bool = True) -> pd.DataFrame:
    """Restrict ``df`` to the given ticks.

    With ``strict`` set, a requested tick that never occurs raises
    :class:`DataShapeError` instead of silently producing a gap.
    """
    _require_columns(df, ("tick",))
    wanted = [int(t) for t in ticks]
    if strict:
        present = set(df["tick"].astype(int).unique())
        absent = [t for t in wanted if t not in present]
        if absent:
            raise DataShapeError(f"Ticks missing from results: {absent}")
    return df[df["tick"].isin(wanted)].reset_index(drop=True)


def mean_poll_over_runs(polled: pd.DataFrame) -> pd.DataFrame:
    """Average the per-level counts across runs for each tick."""
    _require_columns(polled, ("tick", "support_level", "count"))
    return (
        polled.groupby(["tick", "support_level"], observed=True)["count"]
        .mean()
        .reset_index()
    )


def report_comparison_metrics(
    run_results: pd.DataFrame,
    num_nodes: int,
    mid_break: float = 0.2,
) -> pd.DataFrame:
    """Summary statistics of a single run.

    - ``max_supportive``: the largest supportive fraction over all ticks.
    - ``crossover_tick``: the first tick at which the supportive fraction
      exceeds the opposed fraction, or ``NO_CROSSOVER``.
    """
    if num_nodes <= 0:
        raise ValueError(f"num_nodes must be positive, got {num_nodes}")
    _require_columns(run_results, ("tick", "support"))
    if run_results.empty:
        raise DataShapeError("Cannot compute metrics for a run without ticks.")
    levels = classify_support(run_results["support"], mid_break)
    counts = (
        pd.crosstab(run_results["tick"].to_numpy(), levels)
        .reindex(columns=SUPPORT_LEVELS, fill_value=0)
        .sort_index()
    )
    fractions = counts / float(num_nodes)
    max_supportive = float(fractions["supportive"].max())
    crossed = fractions.index[fractions["supportive"] > fractions["opposed"]]
    crossover = int(min(crossed)) if len(crossed) else NO_CROSSOVER
    return pd.DataFrame(
        {
            "variable": ["max_supportive", "crossover_tick"],
            "value": [max_supportive, float(crossover)],
        }
    )


def build_metrics_table(
    results: pd.DataFrame,
    config: "RunConfig",
    mid_break: float = 0.2,
) -> pd.DataFrame:
    """Metrics of every run with the configuration attached as columns."""
    _require_columns(results, ("run", "tick", "support"))
    # Plain scalars only: pandas treats callables and arrays as column builders.
    columns = config.as_columns()
    frames = []
    for run, group in results.groupby("run", sort=False):
        metrics = report_comparison_metrics(group, config.num_nodes, mid_break)
        metrics["run"] = str(run)
        for name, value in columns.items():
            metrics[name] = value
        frames.append(metrics)
    if not frames:
        return pd.DataFrame(columns=METRICS_COLUMNS)
    return pd.concat(frames, ignore_index=True)[METRICS_COLUMNS]


def export_metrics(metrics: pd.DataFrame, path: str | os.PathLike[str]) -> Path:
    """Write the metrics table as CSV without an index column."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    metrics.to_csv(target, index=False)
    return target


def read_metrics(path: str | os.PathLike[str]) -> pd.DataFrame:
    """Read a metrics CSV back, keeping run identifiers as strings."""
    return pd.read_csv(path, dtype={"run": str})


__all__ = [
    "SUPPORT_LEVELS",
    "NO_CROSSOVER",
    "METRICS_COLUMNS",
    "sample_size",
    "sample_support",
    "classify_support",
    "poll_support",
    "filter_ticks",
    "mean_poll_over_runs",
    "report_comparison_metrics",
    "build_metrics_table",
    "export_metrics",
    "read_metrics",
]
