"""Shared fixtures for the ssmsim test suite.

FakeEngine stands in for the external simulation engine. It reads the
network file it is given and drifts every node's support upward by
``0.02 * lambda`` per tick, recording each lifecycle call so tests can check
the session discipline.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
import pytest
import yaml

ROOT = Path(__file__).resolve().parents[1]
PARENT = ROOT.parent
for candidate in (PARENT, ROOT):
    path_str = str(candidate)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from ssmsim.config import BatchConfig
from ssmsim.networks import read_network_file


class FakeEngine:
    """In-process engine with a trivial, deterministic support drift."""

    def __init__(self, fail_on_run: Optional[int] = None, drop_column: Optional[str] = None):
        self.fail_on_run = fail_on_run
        self.drop_column = drop_column
        self.calls: List[str] = []
        self.started = False
        self.stopped = False
        self.headless_env_at_start: Optional[str] = None
        self.model_path: Optional[Path] = None
        self.run_kwargs: List[Dict[str, Any]] = []
        self.network_files: List[Path] = []

    def start(self, headless: bool = True) -> None:
        self.calls.append("start")
        self.started = True
        self.headless_env_at_start = os.environ.get("NOAWT")

    def load_model(self, model_path) -> None:
        self.calls.append("load_model")
        self.model_path = Path(model_path)

    def run(self, network_file, ticks, growth_fn, random_fn, response_fn,
            coming_out_delay, ally_delay, lambda_) -> pd.DataFrame:
        self.calls.append("run")
        self.network_files.append(Path(network_file))
        self.run_kwargs.append({
            "ticks": ticks,
            "growth_fn": growth_fn,
            "random_fn": random_fn,
            "response_fn": response_fn,
            "coming_out_delay": coming_out_delay,
            "ally_delay": ally_delay,
            "lambda_": lambda_,
        })
        if self.fail_on_run is not None and len(self.network_files) == self.fail_on_run:
            raise RuntimeError("engine crashed")
        graph = read_network_file(network_file)
        who = np.array(sorted(graph.nodes), dtype=int)
        initial = np.array([graph.nodes[n]["support"] for n in who], dtype=float)
        frames = []
        for tick in range(int(ticks) + 1):
            support = np.clip(initial + 0.02 * float(lambda_) * tick, -1.0, 1.0)
            frames.append(pd.DataFrame({"tick": tick, "who": who, "support": support}))
        result = pd.concat(frames, ignore_index=True)
        if self.drop_column:
            result = result.drop(columns=[self.drop_column])
        return result

    def stop(self) -> None:
        self.calls.append("stop")
        self.stopped = True


def write_yaml(path: Path, payload: Dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False)
    return path


SCENARIO_PARAMS: Dict[str, Any] = {
    "num_nodes": 100,
    "pct": 10,
    "degree": 4,
    "lambda": 2,
    "homophily": False,
    "allies": True,
    "runs": 2,
    "max_ticks": 100,
    "support_dist": "uniform",
    "network_type": "preferential",
}


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project directory with one configured run, ``scenario``."""
    write_yaml(tmp_path / "run_config.yml", {"run_path": ["scenario"]})
    write_yaml(tmp_path / "model_runs" / "scenario" / "ssmsim_config.yml", dict(SCENARIO_PARAMS))
    model = tmp_path / "NetLogo" / "ssmsim.nlogo"
    model.parent.mkdir(parents=True)
    model.write_text("; model stub\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def batch(project: Path) -> BatchConfig:
    return BatchConfig(PROJECT_PATH=str(project))
