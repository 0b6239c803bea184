"""ASR-GoT: a typed reasoning graph driven by an eight-phase fail-safe pipeline."""

__version__ = "0.1.0"
