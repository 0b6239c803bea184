"""Confidence-vector arithmetic.

All functions are pure and total: they never raise, and any out-of-domain
intermediate (negative, > 1, NaN, inf) is clamped back into [0, 1].
"""

from __future__ import annotations

import math
from typing import Callable

from .models import ConfidenceVector, StatisticalPower

# Beta pseudo-count used to turn a probability into (alpha, beta).
PSEUDO_COUNT = 10.0
MIN_PROPAGATION = 0.1
DEGRADED_DECAY_FLOOR = 0.9

_SCORE_WEIGHTS = (0.3, 0.25, 0.25, 0.2)


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return lo
    if math.isnan(v):
        return lo
    return max(lo, min(hi, v))


def _map(cv: ConfidenceVector, fn: Callable[[float], float]) -> ConfidenceVector:
    return ConfidenceVector(*(clamp(fn(v)) for v in cv.as_tuple()))


def _zip(a: ConfidenceVector, b: ConfidenceVector, fn: Callable[[float, float], float]) -> ConfidenceVector:
    return ConfidenceVector(*(clamp(fn(x, y)) for x, y in zip(a.as_tuple(), b.as_tuple())))


def aggregate(cv: ConfidenceVector) -> float:
    """Unweighted mean of the four dimensions; used for every threshold."""
    return clamp(sum(clamp(v) for v in cv.as_tuple()) / 4.0)


def weighted_score(cv: ConfidenceVector) -> float:
    """Weighted reduction used when ranking or comparing vectors."""
    return clamp(sum(w * clamp(v) for w, v in zip(_SCORE_WEIGHTS, cv.as_tuple())))


def average(a: ConfidenceVector, b: ConfidenceVector) -> ConfidenceVector:
    return _zip(a, b, lambda x, y: (x + y) / 2.0)


def _update_dimension(prior: float, likelihood: float, reliability: float) -> float:
    prior = clamp(prior)
    alpha = prior * PSEUDO_COUNT + 1.0
    beta = (1.0 - prior) * PSEUDO_COUNT + 1.0

    strength = clamp(clamp(likelihood) * clamp(reliability))
    alpha += strength * PSEUDO_COUNT
    beta += (1.0 - strength) * PSEUDO_COUNT

    return clamp(alpha / (alpha + beta))


def power_adjustment(power: StatisticalPower) -> float:
    """Multiplicative factor for empirical support, bounded to roughly [0.28, 1.0]."""
    factor = 1.0
    if power.power is not None:
        factor *= 0.5 + clamp(power.power) * 0.5
    if power.sample_size is not None and power.sample_size > 0:
        size = clamp(math.log(power.sample_size) / math.log(1000))
        factor *= 0.7 + size * 0.3
    if power.effect_size is not None:
        effect = clamp(abs(power.effect_size))
        factor *= 0.8 + effect * 0.2
    return factor


def bayesian_update(
    prior: ConfidenceVector,
    likelihood: ConfidenceVector,
    reliability: float = 0.5,
    power: StatisticalPower | None = None,
) -> ConfidenceVector:
    """Pseudo-Bayesian blend of ``prior`` towards ``likelihood``.

    Each dimension is read as the mean of a Beta distribution with pseudo-count
    10; the evidence adds ``likelihood * reliability`` worth of pseudo-counts.
    When a statistical-power record is given, only empirical support is
    rescaled by :func:`power_adjustment`.
    """
    posterior = ConfidenceVector(
        *(
            _update_dimension(p, lk, reliability)
            for p, lk in zip(prior.as_tuple(), likelihood.as_tuple())
        )
    )
    if power is None:
        return posterior

    adjusted = clamp(posterior.empirical_support * power_adjustment(power))
    return ConfidenceVector(
        adjusted,
        posterior.theoretical_basis,
        posterior.methodological_rigor,
        posterior.consensus_alignment,
    )


def propagate(source: ConfidenceVector, edge_reliability: float) -> ConfidenceVector:
    factor = max(clamp(edge_reliability), MIN_PROPAGATION)
    return _map(source, lambda v: v * factor)


def decay_factor(age_days: float, half_life_days: float = 365.0, *, degraded: bool = False) -> float:
    age = max(0.0, clamp(age_days, 0.0, float("inf")))
    scale = half_life_days if half_life_days and half_life_days > 0 else 365.0
    factor = clamp(math.exp(-age / scale))
    if degraded:
        factor = max(DEGRADED_DECAY_FLOOR, factor)
    return factor


def decay(
    confidence: ConfidenceVector,
    age_days: float,
    half_life_days: float = 365.0,
    *,
    degraded: bool = False,
) -> ConfidenceVector:
    """Exponential decay of empirical support only."""
    factor = decay_factor(age_days, half_life_days, degraded=degraded)
    return ConfidenceVector(
        clamp(confidence.empirical_support * factor),
        clamp(confidence.theoretical_basis),
        clamp(confidence.methodological_rigor),
        clamp(confidence.consensus_alignment),
    )


def confidence_interval(
    confidence: ConfidenceVector, sample_size: int = 100
) -> tuple[ConfidenceVector, ConfidenceVector]:
    margin = 1.96 / math.sqrt(max(1, sample_size))
    return _map(confidence, lambda v: v - margin), _map(confidence, lambda v: v + margin)


def compare(a: ConfidenceVector, b: ConfidenceVector) -> float:
    """Positive when ``a`` is stronger than ``b``."""
    return weighted_score(a) - weighted_score(b)


def has_converged(previous: ConfidenceVector, current: ConfidenceVector, threshold: float = 0.01) -> bool:
    return abs(compare(current, previous)) < threshold
