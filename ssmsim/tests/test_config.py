"""Tests for the run list and run configuration loaders."""

from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pytest

from conftest import SCENARIO_PARAMS, write_yaml
from ssmsim.config import BatchConfig, RunConfig, load_run_config, load_run_list
from ssmsim.exceptions import ConfigError


def _run_config(tmp_path: Path, **overrides) -> RunConfig:
    params = dict(SCENARIO_PARAMS)
    params.update(overrides)
    return RunConfig.from_mapping("example", tmp_path, params)


def test_load_run_list_preserves_order(tmp_path):
    path = write_yaml(tmp_path / "run_config.yml", {"run_path": ["b", "a", "c"]})
    assert load_run_list(path) == ["b", "a", "c"]


def test_load_run_list_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_run_list(tmp_path / "nope.yml")


def test_load_run_list_missing_key(tmp_path):
    path = write_yaml(tmp_path / "run_config.yml", {"runs": ["a"]})
    with pytest.raises(ConfigError, match="run_path"):
        load_run_list(path)


def test_load_run_config_reads_scenario(project):
    config = load_run_config(project / "model_runs" / "scenario")
    assert config.name == "scenario"
    assert config.num_nodes == 100
    assert config.lambda_ == 2.0
    assert config.allies is True
    assert config.network_type == "preferential"
    assert config.growth_fn == "grow-exp"
    assert config.random_fn == "random-support"
    assert config.response_fn == "respond-transition-matrix"


def test_load_run_config_missing_key(tmp_path):
    params = dict(SCENARIO_PARAMS)
    del params["max_ticks"]
    write_yaml(tmp_path / "run" / "ssmsim_config.yml", params)
    with pytest.raises(ConfigError, match="max_ticks"):
        load_run_config(tmp_path / "run")


def test_load_run_config_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_run_config(tmp_path / "absent")


@pytest.mark.parametrize("num_nodes,pct", [(100, 10), (37, 33.3), (10, 0), (7, 100), (1000, 2.5)])
def test_minority_count_is_floor_of_share(tmp_path, num_nodes, pct):
    config = _run_config(tmp_path, num_nodes=num_nodes, pct=pct)
    assert config.num_minority == math.floor(pct / 100 * num_nodes)
    assert 0 <= config.num_minority <= config.num_nodes


def test_ally_delay_follows_allies_flag(tmp_path):
    assert _run_config(tmp_path, allies=True).ally_delay == 0
    assert _run_config(tmp_path, allies=False, max_ticks=250).ally_delay == 250


def test_trait_policy_follows_homophily(tmp_path):
    assert _run_config(tmp_path, homophily=True).trait_policy == "preferential"
    assert _run_config(tmp_path, homophily=False).trait_policy == "random"


def test_run_name_uses_first_six_parameters(tmp_path):
    config = _run_config(tmp_path)
    assert config.run_name == "num_nodes100_pct10_degree4_lambda2_homophilyFALSE_alliesTRUE"


def test_as_columns_are_plain_scalars(tmp_path):
    config = _run_config(tmp_path, degree=np.int64(4), pct=np.float64(10))
    columns = config.as_columns()
    assert columns == {
        "lambda": 2.0,
        "percent": 10.0,
        "num_nodes": 100,
        "allies": True,
        "homophily": False,
        "degree": 4,
    }
    assert type(columns["degree"]) is int
    assert type(columns["allies"]) is bool


@pytest.mark.parametrize(
    "key,value",
    [("num_nodes", "many"), ("homophily", "yes"), ("runs", 2.5), ("pct", True)],
)
def test_bad_types_raise_config_error(tmp_path, key, value):
    with pytest.raises(ConfigError):
        _run_config(tmp_path, **{key: value})


def test_pct_out_of_range(tmp_path):
    with pytest.raises(ConfigError):
        _run_config(tmp_path, pct=120)


def test_unknown_network_type(tmp_path):
    with pytest.raises(ConfigError, match="network_type"):
        _run_config(tmp_path, network_type="hyperbolic")


def test_support_dist_mapping_form(tmp_path):
    config = _run_config(tmp_path, support_dist={"dist": "beta", "params": {"a": 3, "b": 1}})
    assert config.support_dist == "beta"
    assert config.support_params == {"a": 3, "b": 1}


def test_network_type_aliases(tmp_path):
    assert _run_config(tmp_path, network_type="Barabasi-Albert").network_type == "preferential"
    assert _run_config(tmp_path, network_type="erdos_renyi").network_type == "random"


def test_batch_config_ticks():
    batch = BatchConfig()
    assert batch.poll_ticks(30) == [0, 10, 20, 30]
    assert batch.support_ticks(100) == [1, 50, 100]
    assert batch.support_ticks(0) == [0]


def test_batch_config_overrides():
    batch = BatchConfig().copy_with_overrides({"SAMPLE_PROPORTION": 0.05, "PLOT_SIZE": [6, 4]})
    assert batch.SAMPLE_PROPORTION == 0.05
    assert batch.PLOT_SIZE == (6, 4)
    with pytest.raises(KeyError):
        BatchConfig().copy_with_overrides({"NOT_A_SETTING": 1})


def test_tuple_overrides():
    assert BatchConfig().copy_with_overrides({"JVM_ARGS": "-Xmx2g"}).JVM_ARGS == ("-Xmx2g",)
    assert BatchConfig().copy_with_overrides({"JVM_ARGS": ["-Xmx2g", "-Xss4m"]}).JVM_ARGS == ("-Xmx2g", "-Xss4m")
    with pytest.raises(ConfigError):
        BatchConfig().copy_with_overrides({"PLOT_SIZE": 6})


def test_batch_config_paths(tmp_path):
    batch = BatchConfig(PROJECT_PATH=str(tmp_path))
    assert batch.run_list_path == tmp_path.resolve() / "run_config.yml"
    assert batch.model_path == tmp_path.resolve() / "NetLogo" / "ssmsim.nlogo"
    assert batch.run_path("x") == tmp_path.resolve() / "model_runs" / "x"
