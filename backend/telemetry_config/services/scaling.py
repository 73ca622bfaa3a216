from __future__ import annotations

import math
from enum import Enum
from typing import TYPE_CHECKING, Callable

from telemetry_config.schemas.catalogs import ScalingFunction

if TYPE_CHECKING:
    from telemetry_config.schemas.datapoints import Processing


class Arity(str, Enum):
    NONE = "none"
    TWO_PARAM = "twoParam"


def _lin(k: float, m: float, x: float) -> float:
    return k * x + m


def _log(k: float, m: float, x: float) -> float:
    return k * math.log(m * x)


def _exp(k: float, m: float, x: float) -> float:
    return k * math.exp(m * x)


_PARAMETRIC: dict[ScalingFunction, Callable[[float, float, float], float]] = {
    ScalingFunction.LIN: _lin,
    ScalingFunction.LOG: _log,
    ScalingFunction.EXP: _exp,
}

_FIXED: dict[ScalingFunction, Callable[[float], float]] = {
    ScalingFunction.RAD: lambda x: x * math.pi / 180,
    ScalingFunction.DEG: lambda x: x * 180 / math.pi,
    ScalingFunction.F_TO_C: lambda x: (x - 32) * 5 / 9,
    ScalingFunction.C_TO_F: lambda x: x * 9 / 5 + 32,
    ScalingFunction.K_TO_C: lambda x: x - 273.15,
    ScalingFunction.C_TO_K: lambda x: x + 273.15,
    ScalingFunction.F_TO_K: lambda x: (x - 32) * 5 / 9 + 273.15,
    ScalingFunction.K_TO_F: lambda x: (x - 273.15) * 9 / 5 + 32,
}

TWO_PARAM_FUNCTIONS: frozenset[ScalingFunction] = frozenset(_PARAMETRIC)


def arity_of(fn: ScalingFunction | str) -> Arity:
    resolved = ScalingFunction(fn)
    if resolved in _PARAMETRIC:
        return Arity.TWO_PARAM
    return Arity.NONE


def apply(fn: ScalingFunction | str, k: float | None, m: float | None, x: float) -> float:
    """Evaluate a scaling function for one sample.

    Parametric functions (lin, log, exp) need both coefficients; the fixed
    conversions ignore them. Domain errors from ``math`` (e.g. ``log`` of a
    non-positive argument) propagate as ``ValueError``.
    """
    resolved = ScalingFunction(fn)
    parametric = _PARAMETRIC.get(resolved)
    if parametric is not None:
        if k is None or m is None:
            raise ValueError(f"scaling function {resolved.value} requires k and m")
        return parametric(float(k), float(m), float(x))
    return _FIXED[resolved](float(x))


def apply_processing(proc: "Processing", x: float) -> float:
    value = apply(proc.scaling, proc.k, proc.m, x)
    if proc.min is not None and value < proc.min:
        return proc.min
    if proc.max is not None and value > proc.max:
        return proc.max
    return value
