"""Text heuristics that annotate graph content with bias, causal and temporal signals.

The pipeline only depends on the protocols in ``base``; the regex
implementations are the dependency-free defaults.
"""

from .base import (
    BIAS_UNAVAILABLE,
    BiasAnnotator,
    CausalAnnotator,
    CausalClaim,
    TemporalAnnotator,
    TemporalPattern,
    safe_bias_flags,
    safe_causal_claims,
    safe_temporal_patterns,
)
from .regex import RegexBiasAnnotator, RegexCausalAnnotator, RegexTemporalAnnotator

__all__ = [
    "BIAS_UNAVAILABLE",
    "BiasAnnotator",
    "CausalAnnotator",
    "CausalClaim",
    "RegexBiasAnnotator",
    "RegexCausalAnnotator",
    "RegexTemporalAnnotator",
    "TemporalAnnotator",
    "TemporalPattern",
    "safe_bias_flags",
    "safe_causal_claims",
    "safe_temporal_patterns",
]
