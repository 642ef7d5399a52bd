"""Merging of per-layer results into a single ranked, token-budgeted list.

This module provides the scoring, weighting, sorting and truncation steps
shared by ResultMerger and FusionEngine.
"""

import math
import time
import logging
from dataclasses import replace
from collections import defaultdict
from typing import Any, Mapping

from .models import (
    FusedResult,
    FusionOptions,
    FusionStats,
    MemoryItem,
    RoutingResult,
    ScoredItem,
)
from .scorer import RelevanceScorer
from .token_budget import TokenBudget, estimate_tokens

logger = logging.getLogger(__name__)


def sort_by_relevance(items: list[ScoredItem]) -> list[ScoredItem]:
    """Sort items by score, then recency (newest first).

    The sort is stable, so remaining ties keep their order in `items`
    (layer declaration order when items come straight from a routing result).
    """
    return sorted(
        items,
        key=lambda item: (
            -item.score,
            -(item.timestamp if item.timestamp is not None else float("-inf"))
        )
    )


def apply_diversity_penalty(
    items: list[ScoredItem],
    diversity_weight: float
) -> list[ScoredItem]:
    """Penalize items from over-represented layers.

    The n-th item (0-based, in the given order) from a layer loses
    `log(n + 1) * diversity_weight`, so the best item of every layer keeps
    its score. The result is re-sorted.

    Args:
        items: Sorted scored items
        diversity_weight: Penalty strength (0 disables)

    Returns:
        New list of penalized items, sorted by relevance
    """
    if diversity_weight <= 0 or not items:
        return items

    seen: dict[Any, int] = defaultdict(int)
    penalized = []
    for item in items:
        rank = seen[item.layer]
        seen[item.layer] += 1

        penalty = math.log(rank + 1) * diversity_weight
        if penalty > 0:
            item = replace(item, score=max(0.0, item.score - penalty))
        penalized.append(item)

    return sort_by_relevance(penalized)


def truncate_to_token_budget(
    items: list[ScoredItem],
    max_tokens: int
) -> tuple[list[ScoredItem], int]:
    """Greedily keep items while the token estimate stays within budget.

    Stops at the first item that would exceed the budget. If even the first
    item exceeds the budget on its own, it is returned alone rather than
    returning nothing.

    Args:
        items: Items in ranked order
        max_tokens: Token budget

    Returns:
        Tuple of (kept items, estimated tokens of kept items)
    """
    budget = TokenBudget(max_tokens)
    kept: list[ScoredItem] = []

    for item in items:
        tokens = estimate_tokens(item.content)
        if not budget.allocate(tokens):
            if not kept:
                logger.debug(
                    f"Top item needs {tokens} tokens, over budget of {max_tokens}; "
                    "keeping it alone"
                )
                budget.allocate(tokens, force=True)
                kept.append(item)
            break
        kept.append(item)

    return kept, budget.used_tokens


class ResultMerger:
    """
    Merges results from multiple memory layers into one ranked list.

    Pipeline:
    1. Score each usable layer's items and apply the layer weight
    2. Filter by minimum score
    3. Sort by score
    4. Truncate to the token budget

    No cross-layer deduplication is performed (see FusionEngine).
    """

    def __init__(self, scorer: RelevanceScorer | None = None):
        """Initialize result merger.

        Args:
            scorer: Relevance scorer (creates default if None)
        """
        self.scorer = scorer if scorer is not None else RelevanceScorer()

    def merge(
        self,
        routing_result: RoutingResult,
        options: FusionOptions | Mapping[str, Any] | None = None,
        current_time_ms: int | None = None
    ) -> FusedResult:
        """Merge results from multiple layers into a single ranked list.

        Args:
            routing_result: Router output with per-layer results
            options: Complete or partial fusion options (defaults otherwise)
            current_time_ms: Optional clock in ms for recency scoring

        Returns:
            FusedResult with ranked items and stats
        """
        start_time = time.perf_counter()
        fusion_options = FusionOptions().merged(options).normalized()

        scored = self.collect_scored_items(routing_result, current_time_ms)

        filtered = [item for item in scored if item.score >= fusion_options.min_score]
        ranked = sort_by_relevance(filtered)
        ranked = apply_diversity_penalty(ranked, fusion_options.diversity_weight)
        items, tokens = truncate_to_token_budget(ranked, fusion_options.max_tokens)

        fusion_time = int((time.perf_counter() - start_time) * 1000)

        return FusedResult(
            items=items,
            stats=FusionStats(
                total_items=len(scored),
                deduplicated_items=len(scored),
                final_items=len(items),
                estimated_tokens=tokens,
                fusion_time=fusion_time,
            ),
        )

    def collect_scored_items(
        self,
        routing_result: RoutingResult,
        current_time_ms: int | None = None
    ) -> list[ScoredItem]:
        """Score every usable layer's items against the query.

        Layers with an error or without items are skipped. Each score is
        multiplied by the layer weight (1.0 when unset) and stamped with
        its layer.

        Args:
            routing_result: Router output with per-layer results
            current_time_ms: Optional clock in ms for recency scoring

        Returns:
            Flat list of scored items in layer declaration order
        """
        if current_time_ms is None:
            current_time_ms = int(time.time() * 1000)

        all_scored: list[ScoredItem] = []

        for layer_result in routing_result.results:
            if not layer_result.is_usable:
                logger.debug(
                    f"Skipping layer {layer_result.layer.value}: "
                    f"{layer_result.error or 'no items'}"
                )
                continue

            items = self._normalize_items(layer_result.items)

            weight = layer_result.effective_weight

            for scored_item in self.scorer.score(routing_result.query, items, current_time_ms):
                all_scored.append(replace(
                    scored_item,
                    score=scored_item.score * weight,
                    layer=layer_result.layer,
                ))

        return all_scored

    def _normalize_items(self, raw_items: Any) -> list[MemoryItem]:
        """Normalize raw layer output to MemoryItems, dropping unusable values."""
        if isinstance(raw_items, (list, tuple)):
            candidates = raw_items
        else:
            candidates = [raw_items]

        items = []
        for raw in candidates:
            item = MemoryItem.coerce(raw)
            if item is None:
                logger.debug(f"Dropping unrecognized layer item of type {type(raw).__name__}")
                continue
            items.append(item)
        return items
