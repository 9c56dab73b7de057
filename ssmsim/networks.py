"""Random network generation and network file I/O for ssmsim.

A generated network is a ``networkx.Graph`` whose nodes carry two attributes
the engine reads as initial state:

- ``minority``: whether the node belongs to the identity group under study;
- ``support``: the node's initial support level in ``[-1, 1]``.

Configuration files name the topology and the support distribution by
string. The strings are resolved through the registries below, so adding a
new strategy means adding one function and one registry entry.
"""

from __future__ import annotations

import os
from collections import deque
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Sequence, Tuple

import networkx as nx
import numpy as np

if TYPE_CHECKING:  # pragma: no cover
    from .config import RunConfig

TopologySampler = Callable[[int, int, int], nx.Graph]
TraitDistributor = Callable[[nx.Graph, int, np.random.Generator], List[Any]]
SupportDistribution = Callable[[int, np.random.Generator], np.ndarray]

NETWORK_FILE_SUFFIX = ".graphml"


# ---------------------------------------------------------------------------
# Topology samplers: (num_nodes, degree, seed) -> graph
# ---------------------------------------------------------------------------

def sample_random_network(num_nodes: int, degree: int, seed: int) -> nx.Graph:
    """Erdos-Renyi G(n, m) graph whose mean degree matches ``degree``."""
    max_edges = num_nodes * (num_nodes - 1) // 2
    num_edges = min(max_edges, int(round(num_nodes * degree / 2.0)))
    return nx.gnm_random_graph(num_nodes, num_edges, seed=seed)


def sample_preferential_network(num_nodes: int, degree: int, seed: int) -> nx.Graph:
    """Barabasi-Albert preferential attachment graph with mean degree close to ``degree``."""
    if num_nodes < 2:
        return nx.empty_graph(num_nodes)
    attach = min(max(1, degree // 2), num_nodes - 1)
    return nx.barabasi_albert_graph(num_nodes, attach, seed=seed)


def sample_small_world_network(num_nodes: int, degree: int, seed: int) -> nx.Graph:
    """Watts-Strogatz ring lattice with 10% rewiring."""
    if num_nodes < 3:
        return nx.complete_graph(num_nodes)
    k = min(max(2, degree), num_nodes - 1)
    return nx.watts_strogatz_graph(num_nodes, k, 0.1, seed=seed)


TOPOLOGY_SAMPLERS: Dict[str, TopologySampler] = {
    "random": sample_random_network,
    "preferential": sample_preferential_network,
    "small_world": sample_small_world_network,
}

NETWORK_TYPE_ALIASES: Dict[str, str] = {
    "erdos_renyi": "random",
    "gnm": "random",
    "barabasi_albert": "preferential",
    "scale_free": "preferential",
    "pa": "preferential",
    "watts_strogatz": "small_world",
}


# ---------------------------------------------------------------------------
# Trait distributors: pick the minority nodes
# ---------------------------------------------------------------------------

def distribute_trait_randomly(graph: nx.Graph, num_minority: int, rng: np.random.Generator) -> List[Any]:
    """Minority nodes drawn uniformly without replacement."""
    nodes = list(graph.nodes)
    if num_minority <= 0:
        return []
    picked = rng.choice(len(nodes), size=num_minority, replace=False)
    return [nodes[i] for i in picked]


def distribute_trait_preferentially(
    graph: nx.Graph, num_minority: int, rng: np.random.Generator
) -> List[Any]:
    """Minority nodes grown breadth-first from random seeds so the group clusters.

    When a component runs out before ``num_minority`` nodes are collected, a
    new seed is drawn from the nodes not yet chosen.
    """
    nodes = list(graph.nodes)
    chosen: List[Any] = []
    chosen_set = set()
    while len(chosen) < num_minority:
        remaining = [node for node in nodes if node not in chosen_set]
        seed = remaining[int(rng.integers(len(remaining)))]
        frontier = deque([seed])
        chosen_set.add(seed)
        chosen.append(seed)
        while frontier and len(chosen) < num_minority:
            current = frontier.popleft()
            neighbors = [n for n in graph.neighbors(current) if n not in chosen_set]
            rng.shuffle(neighbors)
            for neighbor in neighbors:
                if len(chosen) >= num_minority:
                    break
                chosen_set.add(neighbor)
                chosen.append(neighbor)
                frontier.append(neighbor)
    return chosen


TRAIT_DISTRIBUTORS: Dict[str, TraitDistributor] = {
    "random": distribute_trait_randomly,
    "preferential": distribute_trait_preferentially,
}


# ---------------------------------------------------------------------------
# Support distributions: (size, rng) -> initial support levels in [-1, 1]
# ---------------------------------------------------------------------------

def support_uniform(size: int, rng: np.random.Generator, low: float = -1.0, high: float = 1.0) -> np.ndarray:
    return np.clip(rng.uniform(low, high, size=size), -1.0, 1.0)


def support_normal(size: int, rng: np.random.Generator, mean: float = 0.0, std: float = 0.5) -> np.ndarray:
    return np.clip(rng.normal(loc=mean, scale=std, size=size), -1.0, 1.0)


def support_beta(size: int, rng: np.random.Generator, a: float = 2.0, b: float = 2.0) -> np.ndarray:
    # Beta lives on [0, 1]; stretch to [-1, 1].
    return 2.0 * rng.beta(a, b, size=size) - 1.0


def support_constant(size: int, rng: np.random.Generator, value: float = 0.0) -> np.ndarray:
    return np.full(size, float(np.clip(value, -1.0, 1.0)))


SUPPORT_DISTRIBUTIONS: Dict[str, Callable[..., np.ndarray]] = {
    "uniform": support_uniform,
    "normal": support_normal,
    "beta": support_beta,
    "constant": support_constant,
}

SUPPORT_DIST_ALIASES: Dict[str, str] = {
    "gaussian": "normal",
    "normal_clipped": "normal",
    "fixed": "constant",
}


def _normalize_key(value: Any) -> str:
    return str(value).strip().lower().replace("-", "_").replace(" ", "_")


def normalize_network_type(value: Any) -> str:
    """Map a configured topology name onto a ``TOPOLOGY_SAMPLERS`` key."""
    key = _normalize_key(value)
    key = NETWORK_TYPE_ALIASES.get(key, key)
    if key not in TOPOLOGY_SAMPLERS:
        raise KeyError(
            f"Unknown network_type '{value}'. Available: {', '.join(TOPOLOGY_SAMPLERS)}"
        )
    return key


def normalize_support_dist(value: Any) -> Tuple[str, Dict[str, Any]]:
    """Resolve ``support_dist`` given either as a name or as ``{dist, params}``."""
    params: Dict[str, Any] = {}
    if isinstance(value, Mapping):
        params = dict(value.get("params") or {})
        value = value.get("dist")
    key = _normalize_key(value)
    key = SUPPORT_DIST_ALIASES.get(key, key)
    if key not in SUPPORT_DISTRIBUTIONS:
        raise KeyError(
            f"Unknown support_dist '{value}'. Available: {', '.join(SUPPORT_DISTRIBUTIONS)}"
        )
    return key, params


def resolve_support_distribution(name: str, params: Mapping[str, Any] | None = None) -> SupportDistribution:
    key, _ = normalize_support_dist(name)
    return partial(SUPPORT_DISTRIBUTIONS[key], **dict(params or {}))


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def generate_network(
    num_nodes: int,
    num_minority: int,
    sample_network: TopologySampler,
    distribute_trait: TraitDistributor,
    distribute_support: SupportDistribution,
    rng: np.random.Generator,
    degree: int = 4,
) -> nx.Graph:
    """Build one annotated random network.

    The result depends only on the arguments and the state of ``rng``; call it
    repeatedly with the same generator to obtain independent replicates.
    """
    if num_nodes <= 0:
        raise ValueError(f"num_nodes must be positive, got {num_nodes}")
    if not 0 <= num_minority <= num_nodes:
        raise ValueError(f"num_minority must lie in [0, {num_nodes}], got {num_minority}")

    graph = sample_network(num_nodes, degree, int(rng.integers(0, 2**31 - 1)))
    minority = set(distribute_trait(graph, num_minority, rng))
    support = np.asarray(distribute_support(graph.number_of_nodes(), rng), dtype=float)
    for node, level in zip(graph.nodes, support):
        graph.nodes[node]["minority"] = node in minority
        graph.nodes[node]["support"] = float(level)
    return graph


def generate_networks(config: "RunConfig", rng: np.random.Generator) -> List[nx.Graph]:
    """One independent network per replicate run of ``config``."""
    sample_network = TOPOLOGY_SAMPLERS[config.network_type]
    distribute_trait = TRAIT_DISTRIBUTORS[config.trait_policy]
    distribute_support = resolve_support_distribution(config.support_dist, config.support_params)
    return [
        generate_network(
            num_nodes=config.num_nodes,
            num_minority=config.num_minority,
            sample_network=sample_network,
            distribute_trait=distribute_trait,
            distribute_support=distribute_support,
            rng=rng,
            degree=config.degree,
        )
        for _ in range(config.runs)
    ]


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------

def generate_network_files(
    graphs: Sequence[nx.Graph],
    directory: str | os.PathLike[str],
    prefix: str = "network",
    overwrite: bool = False,
) -> List[Path]:
    """Write each graph to ``<directory>/<prefix>_<i>.graphml`` (1-based).

    All target paths are checked before anything is written, so an existing
    file aborts the whole call unless ``overwrite`` is set. If a write fails,
    the files written by this call are removed before the error propagates.
    """
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    paths = [target_dir / f"{prefix}_{i}{NETWORK_FILE_SUFFIX}" for i in range(1, len(graphs) + 1)]
    if not overwrite:
        existing = [path for path in paths if path.exists()]
        if existing:
            raise FileExistsError(f"Network file already exists: {existing[0]}")
    written: List[Path] = []
    try:
        for graph, path in zip(graphs, paths):
            written.append(path)
            nx.write_graphml(graph, path)
    except BaseException:
        # A failed write may leave a partial file behind; drop everything from this call.
        remove_network_files(written)
        raise
    return paths


def read_network_file(path: str | os.PathLike[str]) -> nx.Graph:
    """Read a network file back, restoring integer node ids."""
    return nx.read_graphml(path, node_type=int)


def remove_network_files(paths: Iterable[str | os.PathLike[str]]) -> int:
    """Delete network files, ignoring ones already gone. Returns the number removed."""
    removed = 0
    for path in paths:
        file_path = Path(path)
        if file_path.exists():
            file_path.unlink()
            removed += 1
    return removed


__all__ = [
    "TOPOLOGY_SAMPLERS",
    "TRAIT_DISTRIBUTORS",
    "SUPPORT_DISTRIBUTIONS",
    "normalize_network_type",
    "normalize_support_dist",
    "resolve_support_distribution",
    "generate_network",
    "generate_networks",
    "generate_network_files",
    "read_network_file",
    "remove_network_files",
]
