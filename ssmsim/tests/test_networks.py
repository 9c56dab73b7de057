"""Tests for network generation and network file handling."""

from __future__ import annotations

import networkx as nx
import numpy as np
import pytest

from conftest import SCENARIO_PARAMS
from ssmsim.config import RunConfig
from ssmsim.networks import (
    TOPOLOGY_SAMPLERS,
    distribute_trait_preferentially,
    distribute_trait_randomly,
    generate_network,
    generate_network_files,
    generate_networks,
    read_network_file,
    remove_network_files,
    resolve_support_distribution,
)


def _generate(rng, num_nodes=50, num_minority=5, network_type="preferential", trait=distribute_trait_randomly):
    return generate_network(
        num_nodes=num_nodes,
        num_minority=num_minority,
        sample_network=TOPOLOGY_SAMPLERS[network_type],
        distribute_trait=trait,
        distribute_support=resolve_support_distribution("uniform"),
        rng=rng,
        degree=4,
    )


@pytest.mark.parametrize("network_type", sorted(TOPOLOGY_SAMPLERS))
def test_generated_network_is_annotated(network_type):
    graph = _generate(np.random.default_rng(1), network_type=network_type)
    assert graph.number_of_nodes() == 50
    minority = [n for n, flag in graph.nodes(data="minority") if flag]
    assert len(minority) == 5
    supports = np.array([s for _, s in graph.nodes(data="support")])
    assert supports.min() >= -1.0 and supports.max() <= 1.0


def test_random_network_mean_degree():
    graph = TOPOLOGY_SAMPLERS["random"](100, 4, 7)
    assert graph.number_of_edges() == 200


def test_minority_count_bounds_enforced():
    rng = np.random.default_rng(0)
    with pytest.raises(ValueError):
        _generate(rng, num_nodes=10, num_minority=11)
    with pytest.raises(ValueError):
        _generate(rng, num_nodes=0, num_minority=0)


def test_all_nodes_can_be_minority():
    graph = _generate(np.random.default_rng(3), num_nodes=12, num_minority=12,
                      trait=distribute_trait_preferentially)
    assert all(flag for _, flag in graph.nodes(data="minority"))


def test_preferential_trait_clusters_in_topology():
    graph = nx.path_graph(20)
    chosen = distribute_trait_preferentially(graph, 5, np.random.default_rng(4))
    assert len(set(chosen)) == 5
    # Grown breadth-first along a path: the chosen nodes form one contiguous segment.
    assert max(chosen) - min(chosen) == 4


def test_preferential_trait_spans_components():
    graph = nx.empty_graph(6)
    chosen = distribute_trait_preferentially(graph, 4, np.random.default_rng(5))
    assert len(set(chosen)) == 4


def test_same_seed_same_network():
    a = _generate(np.random.default_rng(42))
    b = _generate(np.random.default_rng(42))
    assert sorted(a.edges) == sorted(b.edges)
    assert dict(a.nodes(data="support")) == dict(b.nodes(data="support"))


def test_replicates_are_independent(tmp_path):
    config = RunConfig.from_mapping("example", tmp_path, dict(SCENARIO_PARAMS))
    graphs = generate_networks(config, np.random.default_rng(123))
    assert len(graphs) == 2
    assert sorted(graphs[0].edges) != sorted(graphs[1].edges)
    for graph in graphs:
        assert sum(flag for _, flag in graph.nodes(data="minority")) == 10


def test_one_file_per_graph_and_cleanup(tmp_path):
    rng = np.random.default_rng(9)
    graphs = [_generate(rng) for _ in range(3)]
    paths = generate_network_files(graphs, tmp_path)
    assert [p.name for p in paths] == ["network_1.graphml", "network_2.graphml", "network_3.graphml"]
    assert all(p.exists() for p in paths)

    restored = read_network_file(paths[0])
    assert restored.number_of_nodes() == graphs[0].number_of_nodes()
    assert restored.nodes[0]["support"] == pytest.approx(graphs[0].nodes[0]["support"])
    assert restored.nodes[0]["minority"] == graphs[0].nodes[0]["minority"]

    assert remove_network_files(paths) == 3
    assert list(tmp_path.glob("*.graphml")) == []
    # Already removed files are ignored.
    assert remove_network_files(paths) == 0


def test_existing_files_are_not_overwritten(tmp_path):
    rng = np.random.default_rng(10)
    graphs = [_generate(rng)]
    generate_network_files(graphs, tmp_path)
    with pytest.raises(FileExistsError):
        generate_network_files(graphs, tmp_path)
    paths = generate_network_files(graphs, tmp_path, overwrite=True)
    assert len(paths) == 1


def test_failed_write_removes_partial_files(tmp_path, monkeypatch):
    rng = np.random.default_rng(11)
    graphs = [_generate(rng) for _ in range(3)]
    real_write = nx.write_graphml
    calls = []

    def flaky_write(graph, path):
        calls.append(path)
        if len(calls) == 2:
            raise OSError("No space left on device")
        real_write(graph, path)

    monkeypatch.setattr(nx, "write_graphml", flaky_write)
    with pytest.raises(OSError, match="No space left"):
        generate_network_files(graphs, tmp_path)
    assert list(tmp_path.glob("*.graphml")) == []


def test_support_distribution_params():
    sample = resolve_support_distribution("constant", {"value": 0.5})(4, np.random.default_rng(0))
    assert list(sample) == [0.5, 0.5, 0.5, 0.5]
    beta = resolve_support_distribution("beta", {"a": 2, "b": 5})(500, np.random.default_rng(0))
    assert beta.min() >= -1.0 and beta.max() <= 1.0
    assert beta.mean() < 0
