"""Fusion engine combining multi-layer memory results for LLM context.

FusionEngine is the entry point used by callers. It scores every layer's
items, removes near-duplicates across layers, ranks what is left and fits
it into a token budget.
"""

import time
import logging
from dataclasses import replace
from typing import Any, Mapping

from .models import (
    FusedResult,
    FusionEngineConfig,
    FusionOptions,
    FusionStats,
    RoutingResult,
)
from .scorer import RelevanceScorer
from .dedup import SemanticDeduplicator
from .merger import (
    ResultMerger,
    apply_diversity_penalty,
    sort_by_relevance,
    truncate_to_token_budget,
)

logger = logging.getLogger(__name__)


class FusionEngine:
    """
    Main engine for fusing multi-layer memory results.

    Features:
    - Relevance scoring (similarity + keywords + layer weight + recency)
    - Cross-layer semantic deduplication
    - Token limiting with a single-oversized-item fallback
    - Optional layer diversity penalty
    - Minimum score filtering

    Defaults are owned by each engine instance; per-call options are
    merged on top of them.

    Example:
        engine = FusionEngine()
        fused = await engine.fuse(routing_result, {"max_tokens": 10000, "min_score": 0.3})
    """

    def __init__(
        self,
        config: FusionEngineConfig | None = None,
        scorer: RelevanceScorer | None = None
    ):
        """Initialize fusion engine.

        Args:
            config: Engine configuration (verbose flag and default options)
            scorer: Relevance scorer shared by merging and deduplication
        """
        config = config if config is not None else FusionEngineConfig()

        self.scorer = scorer if scorer is not None else RelevanceScorer()
        self.merger = ResultMerger(scorer=self.scorer)
        self._verbose = config.verbose
        self._defaults = config.defaults.normalized()

    @property
    def verbose(self) -> bool:
        return self._verbose

    async def fuse(
        self,
        routing_result: RoutingResult,
        options: FusionOptions | Mapping[str, Any] | None = None,
        current_time_ms: int | None = None
    ) -> FusedResult:
        """Fuse routing results into ranked, deduplicated context.

        Args:
            routing_result: Results from the memory router
            options: A mapping of option names is merged over the engine
                defaults. A FusionOptions instance replaces the defaults
                entirely, including fields left at their class defaults.
            current_time_ms: Optional clock in ms for recency scoring

        Returns:
            Fused result with ranked items and stats
        """
        return self.fuse_sync(routing_result, options, current_time_ms)

    def fuse_sync(
        self,
        routing_result: RoutingResult,
        options: FusionOptions | Mapping[str, Any] | None = None,
        current_time_ms: int | None = None
    ) -> FusedResult:
        """Synchronous version of fuse."""
        start_time = time.perf_counter()
        fusion_options = self._defaults.merged(options).normalized()

        self._log(f"Fusing results for query: {routing_result.query[:50]!r}")
        self._log(f"Options: {fusion_options.to_dict()}")

        # 1. Score every usable layer
        scored = self.merger.collect_scored_items(routing_result, current_time_ms)

        # 2. Filter by minimum score
        filtered = [item for item in scored if item.score >= fusion_options.min_score]

        # 3. Remove near-duplicates across layers with this call's threshold
        deduplicator = SemanticDeduplicator(
            threshold=fusion_options.dedup_threshold,
            scorer=self.scorer
        )
        deduplicated = deduplicator.deduplicate(filtered)

        # 4. Rank and fit to budget
        ranked = sort_by_relevance(deduplicated)
        ranked = apply_diversity_penalty(ranked, fusion_options.diversity_weight)
        items, tokens = truncate_to_token_budget(ranked, fusion_options.max_tokens)

        fusion_time = int((time.perf_counter() - start_time) * 1000)

        result = FusedResult(
            items=items,
            stats=FusionStats(
                total_items=len(scored),
                deduplicated_items=len(deduplicated),
                final_items=len(items),
                estimated_tokens=tokens,
                fusion_time=fusion_time,
            ),
        )

        self._log(f"Fusion complete: {result.stats.to_dict()}")
        return result

    def get_defaults(self) -> FusionOptions:
        """Get a copy of the current default options."""
        return replace(self._defaults)

    def set_defaults(self, **options: Any) -> None:
        """Update default options.

        Args:
            **options: Option names and values to override

        Raises:
            FusionConfigError: If an unknown option is given
        """
        self._defaults = self._defaults.merged(options).normalized()
        logger.debug(f"Fusion defaults updated: {self._defaults.to_dict()}")

    def set_verbose(self, verbose: bool) -> None:
        """Enable/disable verbose logging."""
        self._verbose = bool(verbose)

    def _log(self, message: str) -> None:
        if self._verbose:
            logger.info(f"[FusionEngine] {message}")
        else:
            logger.debug(f"[FusionEngine] {message}")
