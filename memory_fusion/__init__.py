"""Memory Fusion - ranked, deduplicated context from multiple memory layers.

This package combines the results of several independent memory layers
(session, project, user, vector, graph, governance) into a single ranked,
deduplicated and token-budgeted list for prompt assembly.

Features:
- Relevance scoring of text items against a query
- Cross-layer near-duplicate detection
- Weighted merging with a hard token budget
- Per-engine default options, loadable from JSON or YAML
"""

from .exceptions import FusionError, FusionConfigError
from .models import (
    MemoryLayer,
    QueryType,
    LayerWeights,
    Classification,
    MemoryItem,
    LayerResult,
    RoutingStats,
    RoutingResult,
    ScoredItem,
    FusionOptions,
    FusionStats,
    FusedResult,
    FusionEngineConfig,
)
from .scorer import RelevanceScorer
from .dedup import SemanticDeduplicator, DedupStats
from .merger import (
    ResultMerger,
    sort_by_relevance,
    apply_diversity_penalty,
    truncate_to_token_budget,
)
from .engine import FusionEngine
from .token_budget import TokenBudget, estimate_tokens
from .config_loader import load_options_from_file, save_options_to_file

__version__ = "0.1.0"

__all__ = [
    # Errors
    "FusionError",
    "FusionConfigError",

    # Data model
    "MemoryLayer",
    "QueryType",
    "LayerWeights",
    "Classification",
    "MemoryItem",
    "LayerResult",
    "RoutingStats",
    "RoutingResult",
    "ScoredItem",
    "FusionOptions",
    "FusionStats",
    "FusedResult",
    "FusionEngineConfig",

    # Pipeline
    "RelevanceScorer",
    "SemanticDeduplicator",
    "DedupStats",
    "ResultMerger",
    "FusionEngine",
    "sort_by_relevance",
    "apply_diversity_penalty",
    "truncate_to_token_budget",

    # Token budgeting
    "TokenBudget",
    "estimate_tokens",

    # Configuration files
    "load_options_from_file",
    "save_options_to_file",
]
