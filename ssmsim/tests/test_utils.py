"""Tests for scalar materialisation and run naming."""

from __future__ import annotations

import numpy as np
import pytest

from ssmsim.utils import build_run_name, format_value, to_scalar


def test_to_scalar_unwraps_numpy():
    assert type(to_scalar(np.int64(4))) is int
    assert type(to_scalar(np.array(2.5))) is float
    assert to_scalar("x") == "x"


def test_to_scalar_rejects_callables_and_arrays():
    with pytest.raises(TypeError):
        to_scalar(lambda: 4)
    with pytest.raises(TypeError):
        to_scalar(np.arange(3))


def test_format_value():
    assert format_value(True) == "TRUE"
    assert format_value(np.bool_(False)) == "FALSE"
    assert format_value(10.0) == "10"
    assert format_value(2.5) == "2.5"


def test_format_value_keeps_every_digit():
    assert format_value(1234567) == "1234567"
    assert format_value(np.int64(1234568)) == "1234568"
    assert format_value(12.3456789) == "12.3456789"
    assert format_value(0.1) == "0.1"


def test_distinct_node_counts_get_distinct_names():
    keys = ["num_nodes", "pct"]
    first = build_run_name({"num_nodes": 1234567, "pct": 10}, keys)
    second = build_run_name({"num_nodes": 1234568, "pct": 10}, keys)
    assert first == "num_nodes1234567_pct10"
    assert first != second


def test_build_run_name_order():
    params = {"b": 1, "a": False, "c": 0.5}
    assert build_run_name(params, ["a", "b"]) == "aFALSE_b1"
