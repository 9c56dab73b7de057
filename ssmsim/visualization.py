"""Poll and support plots for ssmsim runs."""

from __future__ import annotations

import os
import pickle
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .analysis import SUPPORT_LEVELS, filter_ticks
from .exceptions import DataShapeError
from .utils import format_value

if TYPE_CHECKING:  # pragma: no cover
    from .config import RunConfig

plt.style.use("seaborn-v0_8-whitegrid")
plt.rcParams.update({
    "font.size": 11,
    "axes.labelsize": 12,
    "axes.titlesize": 12,
    "legend.fontsize": 10,
    "font.family": "sans-serif",
    "font.sans-serif": ["Arial", "DejaVu Sans"],
    "axes.spines.top": False,
    "axes.spines.right": False,
    "grid.alpha": 0.3,
    "lines.linewidth": 2.0,
})

SUPPORT_PALETTE = {
    "opposed": "#e74c3c",
    "neutral": "#95a5a6",
    "supportive": "#3498db",
}


def _parameter_summary(config: "RunConfig") -> str:
    return (
        f"Degree = {int(config.degree)}; % = {config.pct:.0f}; lambda = {config.lambda_:.0f};\n"
        f"homophily = {format_value(config.homophily)}; allies = {format_value(config.allies)}"
    )


def poll_plot_title(config: "RunConfig", sample_proportion: float) -> str:
    return f"{sample_proportion * 100:g}% Sample; {_parameter_summary(config)}"


def support_plot_title(config: "RunConfig") -> str:
    return f"Support; {_parameter_summary(config)}"


def plot_poll(
    poll_mean: pd.DataFrame,
    sample_size: float,
    title: str = "",
    figsize: Tuple[float, float] = (8.0, 5.0),
) -> plt.Figure:
    """Line plot of the share of sampled nodes at each support level over time.

    ``poll_mean`` holds one ``count`` per (tick, support_level), typically the
    mean over replicate runs.
    """
    missing = [col for col in ("tick", "support_level", "count") if col not in poll_mean.columns]
    if missing:
        raise DataShapeError(f"Poll table lacks required columns: {', '.join(missing)}")
    if sample_size <= 0:
        raise ValueError(f"sample_size must be positive, got {sample_size}")
    data = poll_mean.copy()
    data["support_level"] = data["support_level"].astype(str)
    data["share"] = data["count"] / float(sample_size)

    fig, ax = plt.subplots(figsize=figsize)
    sns.lineplot(
        data=data,
        x="tick",
        y="share",
        hue="support_level",
        hue_order=SUPPORT_LEVELS,
        palette=SUPPORT_PALETTE,
        marker="o",
        ax=ax,
    )
    ax.set_ylim(0, 1)
    ax.set_xlabel("Tick")
    ax.set_ylabel("Share of sample")
    ax.legend(title="Support level")
    ax.set_title(title)
    fig.tight_layout()
    return fig


def plot_support(
    run_results: pd.DataFrame,
    ticks: Sequence[int],
    title: str = "",
    figsize: Tuple[float, float] = (8.0, 5.0),
    bins: int = 20,
) -> plt.Figure:
    """Histogram of node support at each of ``ticks`` for a single run."""
    snapshots = filter_ticks(run_results, ticks)
    if "support" not in snapshots.columns:
        raise DataShapeError("Results table lacks required columns: support")
    fig, axes = plt.subplots(1, len(ticks), figsize=figsize, sharey=True, squeeze=False)
    for ax, tick in zip(axes[0], ticks):
        subset = snapshots[snapshots["tick"] == tick]
        sns.histplot(data=subset, x="support", bins=bins, binrange=(-1.0, 1.0), color="#34495e", ax=ax)
        ax.set_title(f"Tick {tick}")
        ax.set_xlim(-1.0, 1.0)
        ax.set_xlabel("Support")
    axes[0][0].set_ylabel("Nodes")
    fig.suptitle(title)
    fig.tight_layout()
    return fig


def save_figure(
    fig: plt.Figure,
    path: str | os.PathLike[str],
    pickle_path: Optional[str | os.PathLike[str]] = None,
    dpi: int = 300,
) -> Path:
    """Save ``fig`` as an image and, optionally, pickle the Figure for later re-composition."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        fig.savefig(target, dpi=dpi, bbox_inches="tight")
        if pickle_path is not None:
            with Path(pickle_path).open("wb") as handle:
                pickle.dump(fig, handle)
    finally:
        plt.close(fig)
    return target


def load_figure(pickle_path: str | os.PathLike[str]) -> plt.Figure:
    """Restore a Figure written by :func:`save_figure`."""
    with Path(pickle_path).open("rb") as handle:
        return pickle.load(handle)


__all__ = [
    "SUPPORT_PALETTE",
    "poll_plot_title",
    "support_plot_title",
    "plot_poll",
    "plot_support",
    "save_figure",
    "load_figure",
]
