"""Command-line entry point for ssmsim batches."""

from __future__ import annotations

import argparse
import json
import os
import warnings
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

# Force Matplotlib into a non-interactive backend for headless execution.
os.environ.setdefault("MPLBACKEND", "Agg")

from .config import BatchConfig
from .exceptions import ConfigError
from .networks import SUPPORT_DISTRIBUTIONS, TOPOLOGY_SAMPLERS, TRAIT_DISTRIBUTORS
from .simulation import BatchRunner, EngineFactory


def suppress_runtime_warnings() -> None:
    """Silence noisy runtime warnings that clutter batch output."""
    warnings.filterwarnings("ignore", message="Mean of empty slice")
    warnings.filterwarnings("ignore", message="invalid value encountered in scalar divide")
    warnings.filterwarnings("ignore", category=RuntimeWarning, module="numpy")


suppress_runtime_warnings()


def _print_strategy_catalog() -> None:
    """Display the names accepted by network_type and support_dist."""
    print("Network types (network_type):")
    for name in TOPOLOGY_SAMPLERS:
        print(f"  - {name}")
    print("Trait policies (selected by homophily):")
    for name in TRAIT_DISTRIBUTORS:
        print(f"  - {name}")
    print("Support distributions (support_dist):")
    for name in SUPPORT_DISTRIBUTIONS:
        print(f"  - {name}")


def _write_config_dump(config: BatchConfig, destination: str) -> Path:
    """Persist the resolved configuration to ``destination``."""
    target = Path(destination).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        json.dump(config.snapshot(), handle, indent=2, sort_keys=True)
    print(f"[CLI] Wrote configuration snapshot to {target}")
    return target


def _coerce_value(value: str) -> Any:
    """Interpret a ``--set`` value as JSON when possible, else keep the string."""
    try:
        return json.loads(value)
    except (ValueError, TypeError):
        return value


def _parse_overrides(set_args: Optional[List[str]]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for item in set_args or []:
        if "=" not in item:
            raise ValueError(f"Override '{item}' must look like KEY=VALUE.")
        key, raw = item.split("=", 1)
        overrides[key.strip()] = _coerce_value(raw.strip())
    return overrides


def _parse_cli_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ssmsim batch launcher")
    parser.add_argument(
        "--project-path",
        default=".",
        help="Project directory holding the run list, model_runs/ and the engine.",
    )
    parser.add_argument(
        "--run-config",
        help="Run list file name relative to the project path (default: run_config.yml).",
    )
    parser.add_argument(
        "--only",
        nargs="+",
        metavar="RUN",
        help="Process only these run directories instead of the full run list.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Override the random seed used for network generation and sampling.",
    )
    parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Report a failing configuration and carry on with the next one.",
    )
    parser.add_argument(
        "--set",
        action="append",
        metavar="KEY=VALUE",
        help="Override a batch setting, e.g. --set SAMPLE_PROPORTION=0.05 (repeatable).",
    )
    parser.add_argument(
        "--dump-config",
        help="Write the resolved batch configuration to this JSON file.",
    )
    parser.add_argument(
        "--list-strategies",
        action="store_true",
        help="List the registered network types and support distributions and exit.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def run_cli(
    argv: Optional[Iterable[str]] = None,
    engine_factory: Optional[EngineFactory] = None,
) -> Optional[Dict[str, Any]]:
    """
    Parse CLI arguments and run the batch.
    Returns the batch summary dictionary (if any), allowing programmatic reuse.
    """
    args = _parse_cli_args(argv)
    if args.list_strategies:
        _print_strategy_catalog()
        return None

    try:
        overrides = _parse_overrides(args.set)
        overrides["PROJECT_PATH"] = args.project_path
        if args.run_config:
            overrides["RUN_CONFIG_FILE"] = args.run_config
        if args.seed is not None:
            overrides["RANDOM_SEED"] = args.seed
        if args.continue_on_error:
            overrides["CONTINUE_ON_ERROR"] = True
        batch = BatchConfig().copy_with_overrides(overrides)
    except (ValueError, KeyError) as exc:
        print(f"[CLI] ❌ Configuration error: {exc}")
        raise ConfigError(str(exc)) from exc

    print("[CLI] ssmsim launcher starting")
    print(f"[CLI] Project path: {batch.project_path}")
    if args.only:
        print(f"[CLI] Runs requested: {args.only}")
    print(f"[CLI] Random seed: {batch.RANDOM_SEED}")

    if args.dump_config:
        _write_config_dump(batch, args.dump_config)

    try:
        result = BatchRunner(batch, engine_factory=engine_factory, runs=args.only).run()
    except ConfigError as exc:
        print(f"[CLI] ❌ Configuration error: {exc}")
        raise
    except Exception as exc:
        print(f"[CLI] ❌ Batch failed: {exc}")
        raise

    failed = [s for s in result["run_summaries"] if s["status"] != "completed"]
    print(f"[CLI] Results directory: {result['results_directory']}")
    if failed:
        print(f"[CLI] ⚠️ {len(failed)} configuration(s) failed: {', '.join(s['run'] for s in failed)}")
    else:
        print("[CLI] ✅ Batch completed.")
    return result


def main(argv: Optional[Iterable[str]] = None) -> None:
    """Console entry point; exits with status 1 on configuration errors or failed runs."""
    try:
        result = run_cli(argv=argv)
    except ConfigError:
        raise SystemExit(1)
    if result and any(s["status"] != "completed" for s in result["run_summaries"]):
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = ["run_cli", "main", "suppress_runtime_warnings"]
