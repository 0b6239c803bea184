from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

BIAS_UNAVAILABLE = "bias_detection_unavailable"


@dataclass(frozen=True, slots=True)
class CausalClaim:
    cause: str
    effect: str
    mechanism: str | None = None
    strength: float = 0.5
    confounders: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TemporalPattern:
    pattern_type: str  # precedence | delayed | cyclic | sequential
    cue: str
    delay_days: float | None = None
    frequency: float | None = None


class BiasAnnotator(Protocol):
    def analyze(self, text: str, context: str = "") -> list[str]: ...


class CausalAnnotator(Protocol):
    def analyze(self, text: str) -> list[CausalClaim]: ...


class TemporalAnnotator(Protocol):
    def analyze(self, text: str) -> list[TemporalPattern]: ...


def safe_bias_flags(annotator: BiasAnnotator, text: str, context: str = "") -> list[str]:
    """Run a bias annotator; any failure degrades to an "unavailable" marker."""
    try:
        return list(annotator.analyze(text, context))
    except Exception as e:
        logger.warning("Bias detection failed: %s", e)
        return [BIAS_UNAVAILABLE]


def safe_causal_claims(annotator: CausalAnnotator, text: str) -> list[CausalClaim]:
    try:
        return list(annotator.analyze(text))
    except Exception as e:
        logger.warning("Causal annotation failed: %s", e)
        return []


def safe_temporal_patterns(annotator: TemporalAnnotator, text: str) -> list[TemporalPattern]:
    try:
        return list(annotator.analyze(text))
    except Exception as e:
        logger.warning("Temporal annotation failed: %s", e)
        return []
