"""Batch pipeline: generate networks, run the engine, plot and export per configuration."""

from __future__ import annotations

import gc
import json
import traceback
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from .analysis import (
    build_metrics_table,
    export_metrics,
    filter_ticks,
    mean_poll_over_runs,
    poll_support,
    sample_size,
    sample_support,
)
from .config import BatchConfig, RunConfig, load_run_config, load_run_list
from .engine import EngineSession, NetLogoEngine, SimulationEngine, run_simulations
from .exceptions import DataShapeError
from .networks import generate_network_files, generate_networks, remove_network_files
from .visualization import (
    plot_poll,
    plot_support,
    poll_plot_title,
    save_figure,
    support_plot_title,
)

EngineFactory = Callable[[BatchConfig], SimulationEngine]


def netlogo_engine_factory(batch: BatchConfig) -> SimulationEngine:
    """Build a fresh NetLogo engine for one configuration."""
    return NetLogoEngine(batch.engine_path, jvm_path=batch.JVM_PATH, jvm_args=batch.JVM_ARGS)


class ConfigurationRun:
    """
    Processes one configuration end to end: generate -> simulate -> plot ->
    export -> cleanup. The instance owns its network files, engine session and
    results table; all are released before :meth:`run` returns, whether or not
    it succeeds.
    """

    def __init__(
        self,
        config: RunConfig,
        batch: BatchConfig,
        engine: SimulationEngine,
        rng: np.random.Generator,
    ):
        self.config = config
        self.batch = batch
        self.engine = engine
        self.rng = rng
        self.network_files: List[Path] = []

    @property
    def output_stem(self) -> str:
        return self.config.run_name

    def run(self) -> Dict[str, Any]:
        cfg = self.config
        print(
            f"[Batch] {cfg.name}: {cfg.runs} runs x {cfg.max_ticks} ticks, "
            f"{cfg.num_nodes} nodes ({cfg.num_minority} minority), ally delay {cfg.ally_delay}"
        )
        try:
            graphs = generate_networks(cfg, self.rng)
            self.network_files = generate_network_files(
                graphs,
                cfg.run_path,
                prefix=self.batch.NETWORK_FILE_PREFIX,
                overwrite=self.batch.OVERWRITE_NETWORK_FILES,
            )
            del graphs
            print(f"[Batch] Wrote {len(self.network_files)} network files to {cfg.run_path}")

            results = self._simulate()
            outputs = self._plot(results)
            outputs.update(self._export(results))
            outputs["rows"] = int(len(results))
            del results
        finally:
            removed = remove_network_files(self.network_files)
            self.network_files = []
            print(f"[Batch] Removed {removed} network files")
        return outputs

    def _simulate(self) -> pd.DataFrame:
        cfg = self.config
        with EngineSession(
            self.engine,
            self.batch.model_path,
            headless=True,
            headless_env_var=self.batch.HEADLESS_ENV_VAR,
        ) as session:
            return run_simulations(
                session,
                self.network_files,
                ticks=cfg.max_ticks,
                growth_fn=cfg.growth_fn,
                random_fn=cfg.random_fn,
                response_fn=cfg.response_fn,
                coming_out_delay=cfg.coming_out_delay,
                ally_delay=cfg.ally_delay,
                lambda_=cfg.lambda_,
            )

    def _plot(self, results: pd.DataFrame) -> Dict[str, Any]:
        cfg, batch = self.config, self.batch
        poll_png_path = cfg.run_path / f"poll_plot_{self.output_stem}.png"
        poll_pkl_path = cfg.run_path / f"poll_plot_{self.output_stem}.pkl"

        polled = poll_support(
            sample_support(results, batch.SAMPLE_PROPORTION, self.rng),
            mid_break=batch.POLL_MID_BREAK,
        )
        poll_mean = mean_poll_over_runs(filter_ticks(polled, batch.poll_ticks(cfg.max_ticks)))
        poll_fig = plot_poll(
            poll_mean,
            sample_size=sample_size(cfg.num_nodes, batch.SAMPLE_PROPORTION),
            title=poll_plot_title(cfg, batch.SAMPLE_PROPORTION),
            figsize=batch.PLOT_SIZE,
        )
        poll_png = save_figure(
            poll_fig,
            poll_png_path,
            pickle_path=poll_pkl_path,
            dpi=batch.PLOT_DPI,
        )

        first_run = results[results["run"] == batch.SUPPORT_PLOT_RUN]
        if first_run.empty:
            raise DataShapeError(f"Run '{batch.SUPPORT_PLOT_RUN}' is missing from the results.")
        support_fig = plot_support(
            first_run,
            ticks=batch.support_ticks(cfg.max_ticks),
            title=support_plot_title(cfg),
            figsize=batch.PLOT_SIZE,
        )
        support_png = save_figure(
            support_fig,
            cfg.run_path / f"support_plot_{self.output_stem}.png",
            dpi=batch.PLOT_DPI,
        )
        return {
            "poll_plot": str(poll_png),
            "poll_plot_object": str(poll_pkl_path),
            "support_plot": str(support_png),
        }

    def _export(self, results: pd.DataFrame) -> Dict[str, Any]:
        cfg = self.config
        metrics = build_metrics_table(results, cfg, mid_break=self.batch.POLL_MID_BREAK)
        csv_path = export_metrics(metrics, cfg.run_path / f"{self.output_stem}.csv")
        outputs: Dict[str, Any] = {"metrics_csv": str(csv_path)}
        if self.batch.SAVE_CONFIG_SNAPSHOT:
            outputs["config_snapshot"] = str(self._persist_config_snapshot())
        return outputs

    def _persist_config_snapshot(self) -> Path:
        """Store the resolved run and batch configuration alongside the outputs."""
        payload = {
            "timestamp_utc": datetime.now(timezone.utc).isoformat(),
            "run": self.config.snapshot(),
            "batch": self.batch.snapshot(),
        }
        snapshot_path = self.config.run_path / "config_snapshot.json"
        with snapshot_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=True, default=str)
        return snapshot_path


class BatchRunner:
    """Work queue over the run list; one configuration at a time."""

    def __init__(
        self,
        batch: BatchConfig,
        engine_factory: Optional[EngineFactory] = None,
        runs: Optional[List[str]] = None,
    ):
        self.batch = batch
        self.engine_factory = engine_factory or netlogo_engine_factory
        self.runs = list(runs) if runs else None

    def run(self) -> Dict[str, Any]:
        """
        Process every configuration and return a summary dictionary containing:

        - ``results_directory``: the directory holding the run folders
        - ``run_summaries``: one entry per configuration with its status and
          output paths
        """
        batch = self.batch
        queue = deque(self.runs if self.runs is not None else load_run_list(batch.run_list_path))
        rng = np.random.default_rng(batch.RANDOM_SEED)
        print(f"[Batch] {len(queue)} configuration(s) queued (seed={batch.RANDOM_SEED})")

        summaries: List[Dict[str, Any]] = []
        while queue:
            run = queue.popleft()
            try:
                config = load_run_config(batch.run_path(run), batch.RUN_PARAMS_FILE)
                outputs = ConfigurationRun(config, batch, self.engine_factory(batch), rng).run()
                summaries.append({"run": run, "status": "completed", **outputs})
                print(f"[Batch] ✅ {run} completed")
            except Exception as exc:
                if not batch.CONTINUE_ON_ERROR:
                    print(f"[Batch] ❌ {run} failed: {exc}")
                    raise
                print(f"[Batch] ‼️ ERROR in configuration [{run}] ‼️")
                traceback.print_exc()
                summaries.append({"run": run, "status": f"error: {exc}"})
            gc.collect()
        return {"results_directory": str(batch.runs_root), "run_summaries": summaries}


__all__ = ["ConfigurationRun", "BatchRunner", "EngineFactory", "netlogo_engine_factory"]
