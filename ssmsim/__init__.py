"""Public API for the ssmsim package.

Batch harness for agent-based network simulations of opinion change: builds
random networks, feeds them to an external simulation engine, and turns the
per-tick results into plots and summary metrics.
"""

__version__ = "1.0.0"

from .analysis import (
    NO_CROSSOVER,
    SUPPORT_LEVELS,
    build_metrics_table,
    export_metrics,
    filter_ticks,
    poll_support,
    read_metrics,
    report_comparison_metrics,
    sample_support,
)
from .cli import run_cli
from .config import BatchConfig, RunConfig, load_run_config, load_run_list
from .engine import EngineSession, NetLogoEngine, SimulationEngine, run_simulations
from .exceptions import ConfigError, DataShapeError, EngineError, SSMSimError
from .networks import (
    generate_network,
    generate_network_files,
    generate_networks,
    remove_network_files,
)
from .simulation import BatchRunner, ConfigurationRun

__all__ = [
    "__version__",
    "NO_CROSSOVER",
    "SUPPORT_LEVELS",
    "build_metrics_table",
    "export_metrics",
    "filter_ticks",
    "poll_support",
    "read_metrics",
    "report_comparison_metrics",
    "sample_support",
    "run_cli",
    "BatchConfig",
    "RunConfig",
    "load_run_config",
    "load_run_list",
    "EngineSession",
    "NetLogoEngine",
    "SimulationEngine",
    "run_simulations",
    "ConfigError",
    "DataShapeError",
    "EngineError",
    "SSMSimError",
    "generate_network",
    "generate_network_files",
    "generate_networks",
    "remove_network_files",
    "BatchRunner",
    "ConfigurationRun",
]
