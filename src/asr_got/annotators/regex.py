from __future__ import annotations

import re
from dataclasses import dataclass, field

from ..errors import AnnotatorError
from .base import CausalClaim, TemporalPattern

_BIAS_PATTERNS: list[tuple[str, str]] = [
    (r"\b(obviously|clearly|undoubtedly)\b", "overconfidence_bias"),
    (r"\b(always|never|none|everyone|nobody)\b", "absolutist_thinking"),
    (r"correlation.*causation|cause.*effect", "causal_inference_error"),
    (r"\b(significant|proven|demonstrates)\b", "statistical_misinterpretation"),
    (r"sample.*representative|generaliz", "generalization_bias"),
]

_WESTERN_TERMS = ("western", "american", "european", "developed countries", "first world")
_DEMOGRAPHIC_TERMS = ("men", "women", "male", "female", "elderly", "young")
_INCLUSIVE_TERMS = ("diverse", "inclusive", "representative", "global")


def _require_text(text: object) -> str:
    if not isinstance(text, str):
        raise AnnotatorError(f"expected text, got {type(text).__name__}")
    return text.lower().strip()


@dataclass(slots=True)
class RegexBiasAnnotator:
    """Cheap, deterministic bias-flag heuristics.

    Flags are signals for a reviewer, not findings. Replace with a model-based
    annotator if precision matters.
    """

    patterns: list[tuple[str, str]] = field(default_factory=lambda: list(_BIAS_PATTERNS))

    def analyze(self, text: str, context: str = "") -> list[str]:
        content = _require_text(text)
        if context:
            content = f"{content} {_require_text(context)}"
        flags: list[str] = []

        for pat, flag in self.patterns:
            if re.search(pat, content):
                flags.append(flag)

        if "small sample" in content or "n=" in content:
            flags.append("small_sample_bias")
        if "significant" in content and "not significant" not in content:
            flags.append("publication_bias_risk")
        if re.search(r"\b(recent|current)\b", content):
            flags.append("recency_bias")

        inclusive = any(t in content for t in _INCLUSIVE_TERMS)
        if any(t in content for t in _WESTERN_TERMS) and not inclusive:
            flags.append("geographic_bias")
        if any(re.search(rf"\b{t}\b", content) for t in _DEMOGRAPHIC_TERMS) and not inclusive:
            flags.append("demographic_bias")

        return list(dict.fromkeys(flags))


_CAUSAL_PATTERNS: list[tuple[str, float]] = [
    (r"(?P<x>[\w\s-]+?)\s+(?:directly causes|is the primary cause of)\s+(?P<y>[\w\s-]+)", 0.8),
    (r"(?P<x>[\w\s-]+?)\s+(?:causes|leads to|results in|triggers)\s+(?P<y>[\w\s-]+)", 0.6),
    (r"(?P<x>[\w\s-]+?)\s+(?:affects|influences|drives|impacts)\s+(?P<y>[\w\s-]+)", 0.4),
    (r"effects? of\s+(?P<x>[\w\s-]+?)\s+on\s+(?P<y>[\w\s-]+)", 0.5),
    (r"impact of\s+(?P<x>[\w\s-]+?)\s+on\s+(?P<y>[\w\s-]+)", 0.5),
]

_CONFOUNDER_CUES = {
    "confound": "declared confounder",
    "third variable": "third variable",
    "spurious": "spurious correlation",
    "selection bias": "selection bias",
    "hidden variable": "hidden variable",
}

_MECHANISM_RE = re.compile(r"(?:mechanism is|works by|via|through)\s+([\w\s-]+)")


@dataclass(slots=True)
class RegexCausalAnnotator:
    """Surface-level cause/effect phrasing detector."""

    max_claims: int = 5

    def analyze(self, text: str) -> list[CausalClaim]:
        content = _require_text(text)
        if not content:
            return []

        confounders = tuple(label for cue, label in _CONFOUNDER_CUES.items() if cue in content)
        mech = _MECHANISM_RE.search(content)
        mechanism = mech.group(1).strip() if mech else None

        claims: list[CausalClaim] = []
        seen: set[tuple[str, str]] = set()
        for sentence in (s.strip() for s in re.split(r"[.;\n]+", content) if s.strip()):
            for pat, strength in _CAUSAL_PATTERNS:
                m = re.search(pat, sentence)
                if not m:
                    continue
                cause, effect = m.group("x").strip(), m.group("y").strip()
                if not cause or not effect or (cause, effect) in seen:
                    continue
                seen.add((cause, effect))
                claims.append(
                    CausalClaim(
                        cause=cause,
                        effect=effect,
                        mechanism=mechanism,
                        strength=strength * (0.8 if confounders else 1.0),
                        confounders=confounders,
                    )
                )
                break
            if len(claims) >= self.max_claims:
                break
        return claims


_TEMPORAL_CUES: list[tuple[str, str]] = [
    ("cyclic", r"\b(cycle|cyclical|periodic|recurring|repeating|seasonal)\b"),
    ("delayed", r"\b(delay|delayed|lag|later|eventually|long-term|gradual)\b"),
    ("sequential", r"\b(then|next|subsequently|following|finally)\b"),
    ("precedence", r"\b(before|after|precedes|prior to|over time|trend)\b"),
]

_DELAY_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(day|week|month|year)s?")
_DAYS_PER_UNIT = {"day": 1.0, "week": 7.0, "month": 30.0, "year": 365.0}


@dataclass(slots=True)
class RegexTemporalAnnotator:
    """Keyword cues for ordering, delay and periodicity."""

    def analyze(self, text: str) -> list[TemporalPattern]:
        content = _require_text(text)
        delay = None
        m = _DELAY_RE.search(content)
        if m:
            delay = float(m.group(1)) * _DAYS_PER_UNIT[m.group(2)]

        patterns: list[TemporalPattern] = []
        for kind, pat in _TEMPORAL_CUES:
            hit = re.search(pat, content)
            if hit:
                patterns.append(
                    TemporalPattern(
                        pattern_type=kind,
                        cue=hit.group(0),
                        delay_days=delay if kind == "delayed" else None,
                        frequency=(1.0 / delay) if kind == "cyclic" and delay else None,
                    )
                )
        return patterns
