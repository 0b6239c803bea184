"""Reasoning knowledge graph.

This module provides:
- Typed nodes/edges/hyperedges carrying 4-dimensional confidence vectors
- Pure confidence arithmetic (Bayesian blend, propagation, decay)
- An in-memory single-writer graph store with pruning, merging, bridge
  synthesis and subgraph extraction
- A small query engine for common traversals
- Read-only insight reports (gaps, interventions, causality, temporal
  patterns, interdisciplinary bridges)
"""

from .models import (
    ConfidenceVector,
    Edge,
    EdgeMetadata,
    EdgeType,
    GraphSnapshot,
    Hyperedge,
    Node,
    NodeType,
    Subgraph,
    SubgraphCriteria,
)
from .insights import FOCUS_AREAS, research_insights
from .query_engine import GraphQueryEngine
from .store import BridgeOutcome, Evidence, GraphStore, GraphWriter

__all__ = [
    "FOCUS_AREAS",
    "BridgeOutcome",
    "ConfidenceVector",
    "Edge",
    "EdgeMetadata",
    "EdgeType",
    "Evidence",
    "GraphQueryEngine",
    "GraphSnapshot",
    "GraphStore",
    "GraphWriter",
    "Hyperedge",
    "Node",
    "NodeType",
    "Subgraph",
    "SubgraphCriteria",
    "research_insights",
]
