"""External simulation engine interface and the simulation driver.

The agent-based model runs inside an external engine that ssmsim treats as a
black box. Any object providing the four methods of :class:`SimulationEngine`
can drive a batch; :class:`NetLogoEngine` wraps a headless NetLogo workspace
through ``pynetlogo``.

An engine is an exclusive resource. :class:`EngineSession` owns it for one
configuration::

    with EngineSession(engine, model_path) as session:
        results = run_simulations(session, network_files, ticks=100, ...)

The session sets the headless environment flag, starts the engine, loads the
model exactly once and, on every exit path, stops the engine and clears the
flag again.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
import pandas as pd

from .exceptions import DataShapeError, EngineError

RESULT_COLUMNS = ("tick", "who", "support")

# Names of the model's interface globals set before each run.
MODEL_GLOBALS = {
    "growth_fn": "growth-fn",
    "random_fn": "random-fn",
    "response_fn": "response-fn",
    "coming_out_delay": "coming-out-delay",
    "ally_delay": "ally-delay",
    "lambda_": "lambda",
}


@runtime_checkable
class SimulationEngine(Protocol):
    """Protocol for the external agent-based simulation engine.

    ``run`` executes one full simulation from the initial state stored in
    ``network_file`` and returns a DataFrame with one row per node per tick
    and the columns ``tick``, ``who`` and ``support``.
    """

    def start(self, headless: bool = True) -> None:
        ...

    def load_model(self, model_path: str | os.PathLike[str]) -> None:
        ...

    def run(
        self,
        network_file: str | os.PathLike[str],
        ticks: int,
        growth_fn: str,
        random_fn: str,
        response_fn: str,
        coming_out_delay: int,
        ally_delay: int,
        lambda_: float,
    ) -> pd.DataFrame:
        ...

    def stop(self) -> None:
        ...


class NetLogoEngine:
    """Headless NetLogo workspace driven through ``pynetlogo``."""

    def __init__(
        self,
        netlogo_home: str | os.PathLike[str],
        jvm_path: Optional[str] = None,
        jvm_args: Sequence[str] = ("-Xmx12288m",),
    ):
        self.netlogo_home = Path(netlogo_home)
        self.jvm_path = jvm_path
        self.jvm_args = list(jvm_args)
        self._link: Any = None

    def start(self, headless: bool = True) -> None:
        import pynetlogo

        self._link = pynetlogo.NetLogoLink(
            gui=not headless,
            netlogo_home=str(self.netlogo_home),
            jvm_path=self.jvm_path,
            jvmargs=self.jvm_args,
        )

    def load_model(self, model_path: str | os.PathLike[str]) -> None:
        path = Path(model_path)
        if not path.exists():
            raise FileNotFoundError(f"NetLogo model not found: {path}")
        self._require_link().load_model(str(path))

    def run(
        self,
        network_file: str | os.PathLike[str],
        ticks: int,
        growth_fn: str,
        random_fn: str,
        response_fn: str,
        coming_out_delay: int,
        ally_delay: int,
        lambda_: float,
    ) -> pd.DataFrame:
        link = self._require_link()
        settings = {
            "growth_fn": f'"{growth_fn}"',
            "random_fn": f'"{random_fn}"',
            "response_fn": f'"{response_fn}"',
            "coming_out_delay": int(coming_out_delay),
            "ally_delay": int(ally_delay),
            "lambda_": float(lambda_),
        }
        for key, value in settings.items():
            link.command(f"set {MODEL_GLOBALS[key]} {value}")
        network_path = Path(network_file).resolve().as_posix()
        link.command(f'setup-from-file "{network_path}"')

        frames = [self._report_state(link, 0)]
        for tick in range(1, int(ticks) + 1):
            link.command("go")
            frames.append(self._report_state(link, tick))
        return pd.concat(frames, ignore_index=True)

    def stop(self) -> None:
        if self._link is not None:
            self._link.kill_workspace()
            self._link = None

    def _require_link(self) -> Any:
        if self._link is None:
            raise EngineError("NetLogo workspace is not running.")
        return self._link

    @staticmethod
    def _report_state(link: Any, tick: int) -> pd.DataFrame:
        who = np.asarray(link.report("map [t -> [who] of t] sort turtles"), dtype=int)
        support = np.asarray(link.report("map [t -> [support] of t] sort turtles"), dtype=float)
        return pd.DataFrame({"tick": tick, "who": who, "support": support})


class EngineState(Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    MODEL_LOADED = "model_loaded"
    STOPPED = "stopped"


class EngineSession:
    """Scoped start/load/stop lifecycle around one engine instance."""

    def __init__(
        self,
        engine: SimulationEngine,
        model_path: str | os.PathLike[str],
        headless: bool = True,
        headless_env_var: str = "NOAWT",
    ):
        self.engine = engine
        self.model_path = Path(model_path)
        self.headless = headless
        self.headless_env_var = headless_env_var
        self.state = EngineState.NOT_STARTED
        self._previous_env: Optional[str] = None

    def __enter__(self) -> "EngineSession":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        # Never let a failing shutdown mask the error that ended the session.
        self.close(raise_errors=exc_type is None)
        return False

    def open(self) -> None:
        if self.state is not EngineState.NOT_STARTED:
            raise EngineError(f"Engine session cannot be reopened (state: {self.state.value}).")
        if self.headless:
            self._previous_env = os.environ.get(self.headless_env_var)
            os.environ[self.headless_env_var] = "1"
        try:
            self.engine.start(headless=self.headless)
        except Exception as exc:
            self._restore_env()
            self.state = EngineState.STOPPED
            raise EngineError(f"Engine failed to start: {exc}") from exc
        self.state = EngineState.STARTED
        print("[Engine] Started" + (" (headless)" if self.headless else ""))
        try:
            self.engine.load_model(self.model_path)
        except Exception as exc:
            self.close(raise_errors=False)
            raise EngineError(f"Engine failed to load model {self.model_path}: {exc}") from exc
        self.state = EngineState.MODEL_LOADED
        print(f"[Engine] Loaded model {self.model_path.name}")

    def run(self, network_file: str | os.PathLike[str], **kwargs: Any) -> pd.DataFrame:
        if self.state is not EngineState.MODEL_LOADED:
            raise EngineError(f"No model loaded (state: {self.state.value}).")
        try:
            result = self.engine.run(network_file, **kwargs)
        except EngineError:
            raise
        except Exception as exc:
            raise EngineError(f"Simulation of {Path(network_file).name} failed: {exc}") from exc
        return _validate_result(result, network_file)

    def close(self, raise_errors: bool = True) -> None:
        if self.state not in (EngineState.STARTED, EngineState.MODEL_LOADED):
            return
        try:
            self.engine.stop()
        except Exception as exc:
            if raise_errors:
                raise EngineError(f"Engine failed to stop cleanly: {exc}") from exc
            print(f"[Engine] ⚠️ Engine failed to stop cleanly: {exc}")
        finally:
            self.state = EngineState.STOPPED
            self._restore_env()
            print("[Engine] Stopped")

    def _restore_env(self) -> None:
        if not self.headless:
            return
        if self._previous_env is None:
            os.environ.pop(self.headless_env_var, None)
        else:
            os.environ[self.headless_env_var] = self._previous_env


def _validate_result(result: Any, network_file: str | os.PathLike[str]) -> pd.DataFrame:
    if not isinstance(result, pd.DataFrame):
        raise DataShapeError(
            f"Engine returned {type(result).__name__} for {Path(network_file).name}; expected a DataFrame."
        )
    missing = [col for col in RESULT_COLUMNS if col not in result.columns]
    if missing:
        raise DataShapeError(
            f"Engine result for {Path(network_file).name} lacks columns: {', '.join(missing)}"
        )
    return result


def run_simulations(
    session: EngineSession,
    network_files: Iterable[str | os.PathLike[str]],
    ticks: int,
    growth_fn: str = "grow-exp",
    random_fn: str = "random-support",
    response_fn: str = "respond-transition-matrix",
    coming_out_delay: int = 0,
    ally_delay: int = 0,
    lambda_: float = 1.0,
) -> pd.DataFrame:
    """Run one simulation per network file and combine the results.

    Rows are tagged with ``run`` = ``"1"``, ``"2"``, ... in file order. Any
    failing run aborts the whole batch.
    """
    files = list(network_files)
    frames: List[pd.DataFrame] = []
    for index, network_file in enumerate(files, start=1):
        print(f"[Engine] Run {index}/{len(files)}: {Path(network_file).name} ({ticks} ticks)")
        result = session.run(
            network_file,
            ticks=int(ticks),
            growth_fn=growth_fn,
            random_fn=random_fn,
            response_fn=response_fn,
            coming_out_delay=int(coming_out_delay),
            ally_delay=int(ally_delay),
            lambda_=float(lambda_),
        )
        frame = result.loc[:, list(RESULT_COLUMNS)].copy()
        frame.insert(0, "run", str(index))
        frames.append(frame)
    if not frames:
        return pd.DataFrame(columns=["run", *RESULT_COLUMNS])
    return pd.concat(frames, ignore_index=True)


__all__ = [
    "RESULT_COLUMNS",
    "SimulationEngine",
    "NetLogoEngine",
    "EngineState",
    "EngineSession",
    "run_simulations",
]
