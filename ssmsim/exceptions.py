"""Error taxonomy for ssmsim."""

from __future__ import annotations


class SSMSimError(Exception):
    """Base class for all errors raised by the harness."""


class ConfigError(SSMSimError, ValueError):
    """A run list or run configuration file is missing, incomplete or malformed."""


class EngineError(SSMSimError, RuntimeError):
    """The external simulation engine failed to start, load a model or run."""


class DataShapeError(SSMSimError, ValueError):
    """An expected column or tick is missing from a results table."""


__all__ = ["SSMSimError", "ConfigError", "EngineError", "DataShapeError"]
