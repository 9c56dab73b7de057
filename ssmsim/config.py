"""
Configuration dataclasses and YAML loaders for ssmsim.

Two layers of configuration drive a batch:

1. **BatchConfig** holds the harness settings shared by every run in a batch:
   where the project lives, where the engine and model are installed, how
   results are sampled and plotted, and the random seed. It behaves like a
   plain mutable dataclass with ``copy_with_overrides`` for CLI overrides.

2. **RunConfig** is the immutable record for one entry of the run list. It is
   read from ``model_runs/<run>/ssmsim_config.yml`` and exposes the derived
   parameters the pipeline needs (minority count, ally onset delay, trait
   policy, run name).

Usage
-----
    >>> batch = BatchConfig(PROJECT_PATH="/path/to/project")
    >>> for run in load_run_list(batch.run_list_path):
    ...     config = load_run_config(batch.run_path(run), batch.RUN_PARAMS_FILE)
    ...     config.num_minority, config.ally_delay

The YAML files are parsed with ``yaml.safe_load``; configuration strings that
name functions are resolved through the registries in :mod:`ssmsim.networks`,
never evaluated.
"""

from __future__ import annotations

import copy
import math
import os
from dataclasses import asdict, dataclass, field
from numbers import Number
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .exceptions import ConfigError
from .networks import (
    normalize_network_type,
    normalize_support_dist,
)
from .utils import build_run_name, to_scalar

# Parameters that make up the run name, in order.
RUN_NAME_KEYS: Tuple[str, ...] = ("num_nodes", "pct", "degree", "lambda", "homophily", "allies")

REQUIRED_RUN_KEYS: Tuple[str, ...] = (
    "num_nodes",
    "pct",
    "degree",
    "lambda",
    "homophily",
    "allies",
    "runs",
    "max_ticks",
    "support_dist",
    "network_type",
)


@dataclass
class BatchConfig:
    """Harness settings shared by every configuration in a batch."""

    # Project layout
    PROJECT_PATH: str = "."
    RUN_CONFIG_FILE: str = "run_config.yml"
    RUNS_DIR: str = "model_runs"
    RUN_PARAMS_FILE: str = "ssmsim_config.yml"

    # External engine
    ENGINE_DIR: str = "NetLogo"
    MODEL_FILE: str = "ssmsim.nlogo"
    # The engine's default JVM heap (512 MB) is too small for per-node results.
    JVM_ARGS: Tuple[str, ...] = ("-Xmx12288m",)
    JVM_PATH: Optional[str] = None
    HEADLESS_ENV_VAR: str = "NOAWT"

    RANDOM_SEED: int = 123

    # Sampling and bucketing
    SAMPLE_PROPORTION: float = 0.01
    POLL_MID_BREAK: float = 0.2
    POLL_TICK_STEP: int = 10
    SUPPORT_TICK_STEP: int = 50
    SUPPORT_PLOT_RUN: str = "1"

    # Output
    PLOT_SIZE: Tuple[float, float] = (8.0, 5.0)
    PLOT_DPI: int = 300
    NETWORK_FILE_PREFIX: str = "network"
    # Network files are this harness's own intermediates; stale copies from an
    # interrupted batch are replaced.
    OVERWRITE_NETWORK_FILES: bool = True
    SAVE_CONFIG_SNAPSHOT: bool = True
    CONTINUE_ON_ERROR: bool = False

    @property
    def project_path(self) -> Path:
        return Path(self.PROJECT_PATH).expanduser().resolve()

    @property
    def run_list_path(self) -> Path:
        return self.project_path / self.RUN_CONFIG_FILE

    @property
    def runs_root(self) -> Path:
        return self.project_path / self.RUNS_DIR

    @property
    def engine_path(self) -> Path:
        return self.project_path / self.ENGINE_DIR

    @property
    def model_path(self) -> Path:
        return self.engine_path / self.MODEL_FILE

    def run_path(self, run: str) -> Path:
        return self.runs_root / run

    def poll_ticks(self, max_ticks: int) -> List[int]:
        """Ticks reported in the poll plot: 0, step, 2*step, ... up to ``max_ticks``."""
        return list(range(0, int(max_ticks) + 1, max(1, int(self.POLL_TICK_STEP))))

    def support_ticks(self, max_ticks: int) -> List[int]:
        """Ticks shown in the support snapshot plot: 1, then every step up to ``max_ticks``."""
        if max_ticks < 1:
            return [0]
        step = max(1, int(self.SUPPORT_TICK_STEP))
        return sorted({1, *range(step, int(max_ticks) + 1, step)})

    def snapshot(self) -> Dict[str, Any]:
        """Return a JSON-safe representation of the configuration."""
        return asdict(self)

    def copy_with_overrides(self, overrides: Optional[Dict[str, Any]] = None) -> "BatchConfig":
        """Return a new config with the provided overrides merged in."""
        new_cfg = copy.deepcopy(self)
        if overrides:
            _apply_overrides(new_cfg, overrides)
        return new_cfg


def _apply_overrides(config: BatchConfig, overrides: Dict[str, Any]) -> None:
    """Merge ``overrides`` into ``config``, rejecting unknown attributes."""
    for key, value in overrides.items():
        if not hasattr(config, key):
            raise KeyError(f"Unknown configuration attribute '{key}' in override.")
        current = getattr(config, key)
        if isinstance(current, tuple):
            setattr(config, key, _coerce_tuple(value, key))
        else:
            setattr(config, key, copy.deepcopy(value))


def _coerce_tuple(value: Any, key: str) -> Tuple[Any, ...]:
    """Keep tuple settings (``JVM_ARGS``, ``PLOT_SIZE``) as tuples.

    A JSON list from ``--set`` becomes a tuple; a lone string is a single JVM
    argument.
    """
    if isinstance(value, (list, tuple)):
        return tuple(value)
    if isinstance(value, str):
        return (value,)
    raise ConfigError(f"Override for '{key}' must be a list, got {value!r}.")


@dataclass(frozen=True)
class RunConfig:
    """Immutable parameters for one configuration of replicate runs."""

    name: str
    run_path: Path
    num_nodes: int
    pct: float
    degree: int
    lambda_: float
    homophily: bool
    allies: bool
    runs: int
    max_ticks: int
    support_dist: str = "uniform"
    support_params: Dict[str, Any] = field(default_factory=dict, hash=False)
    network_type: str = "preferential"
    growth_fn: str = "grow-exp"
    random_fn: str = "random-support"
    response_fn: str = "respond-transition-matrix"
    coming_out_delay: int = 0

    def __post_init__(self) -> None:
        if self.num_nodes <= 0:
            raise ConfigError(f"num_nodes must be positive, got {self.num_nodes}")
        if not 0.0 <= self.pct <= 100.0:
            raise ConfigError(f"pct must lie in [0, 100], got {self.pct}")
        if self.degree < 1:
            raise ConfigError(f"degree must be at least 1, got {self.degree}")
        if self.runs < 1:
            raise ConfigError(f"runs must be at least 1, got {self.runs}")
        if self.max_ticks < 0:
            raise ConfigError(f"max_ticks must be non-negative, got {self.max_ticks}")
        if self.coming_out_delay < 0:
            raise ConfigError(f"coming_out_delay must be non-negative, got {self.coming_out_delay}")

    @property
    def num_minority(self) -> int:
        """floor(pct / 100 * num_nodes), always within [0, num_nodes]."""
        count = int(math.floor(self.pct / 100.0 * self.num_nodes))
        return min(max(count, 0), self.num_nodes)

    @property
    def ally_delay(self) -> int:
        return 0 if self.allies else int(self.max_ticks)

    @property
    def trait_policy(self) -> str:
        return "preferential" if self.homophily else "random"

    @property
    def parameters(self) -> Dict[str, Any]:
        """The user-facing parameters under their file keys."""
        return {
            "num_nodes": self.num_nodes,
            "pct": self.pct,
            "degree": self.degree,
            "lambda": self.lambda_,
            "homophily": self.homophily,
            "allies": self.allies,
            "runs": self.runs,
            "max_ticks": self.max_ticks,
        }

    @property
    def run_name(self) -> str:
        return build_run_name(self.parameters, RUN_NAME_KEYS)

    def as_columns(self) -> Dict[str, Any]:
        """Configuration columns of the metrics table, as plain scalars."""
        return {
            "lambda": float(to_scalar(self.lambda_)),
            "percent": float(to_scalar(self.pct)),
            "num_nodes": int(to_scalar(self.num_nodes)),
            "allies": bool(to_scalar(self.allies)),
            "homophily": bool(to_scalar(self.homophily)),
            "degree": int(to_scalar(self.degree)),
        }

    def snapshot(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["run_path"] = str(self.run_path)
        payload["num_minority"] = self.num_minority
        payload["ally_delay"] = self.ally_delay
        payload["run_name"] = self.run_name
        return payload

    @classmethod
    def from_mapping(cls, name: str, run_path: Path, payload: Mapping[str, Any]) -> "RunConfig":
        """Validate a parsed parameter mapping and build a RunConfig."""
        missing = [key for key in REQUIRED_RUN_KEYS if key not in payload]
        if missing:
            raise ConfigError(f"Run '{name}' is missing required keys: {', '.join(missing)}")
        try:
            support_dist, support_params = normalize_support_dist(payload["support_dist"])
            network_type = normalize_network_type(payload["network_type"])
        except KeyError as exc:
            raise ConfigError(f"Run '{name}': {exc.args[0]}") from exc
        return cls(
            name=name,
            run_path=Path(run_path),
            num_nodes=_as_int(payload, "num_nodes"),
            pct=_as_float(payload, "pct"),
            degree=_as_int(payload, "degree"),
            lambda_=_as_float(payload, "lambda"),
            homophily=_as_bool(payload, "homophily"),
            allies=_as_bool(payload, "allies"),
            runs=_as_int(payload, "runs"),
            max_ticks=_as_int(payload, "max_ticks"),
            support_dist=support_dist,
            support_params=support_params,
            network_type=network_type,
            growth_fn=str(payload.get("growth_fn", "grow-exp")),
            random_fn=str(payload.get("random_fn", "random-support")),
            response_fn=str(payload.get("response_fn", "respond-transition-matrix")),
            coming_out_delay=_as_int(payload, "coming_out_delay", default=0),
        )


def _as_int(payload: Mapping[str, Any], key: str, default: Optional[int] = None) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, Number):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    return int(value)


def _as_float(payload: Mapping[str, Any], key: str) -> float:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, Number):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    return float(value)


def _as_bool(payload: Mapping[str, Any], key: str) -> bool:
    value = payload.get(key)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        try:
            payload = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Could not parse {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level.")
    return payload


def load_run_list(path: str | os.PathLike[str]) -> List[str]:
    """Read the ordered list of run directory names from the top-level file."""
    file_path = Path(path).expanduser()
    payload = _load_yaml(file_path)
    runs = payload.get("run_path")
    if runs is None:
        raise ConfigError(f"{file_path} does not define 'run_path'.")
    if isinstance(runs, str):
        runs = [runs]
    if not isinstance(runs, list) or not all(isinstance(run, (str, int)) for run in runs):
        raise ConfigError(f"'run_path' in {file_path} must be a list of directory names.")
    return [str(run) for run in runs]


def load_run_config(
    run_path: str | os.PathLike[str],
    file_name: str = "ssmsim_config.yml",
) -> RunConfig:
    """Read and validate the parameter file of one run directory."""
    directory = Path(run_path).expanduser()
    payload = _load_yaml(directory / file_name)
    return RunConfig.from_mapping(directory.name, directory, payload)


__all__ = [
    "BatchConfig",
    "RunConfig",
    "RUN_NAME_KEYS",
    "REQUIRED_RUN_KEYS",
    "load_run_list",
    "load_run_config",
]
