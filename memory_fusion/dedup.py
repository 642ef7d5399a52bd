"""Near-duplicate detection and collapse for scored memory items."""

import logging
from dataclasses import dataclass

import numpy as np

from .models import DEFAULT_DEDUP_THRESHOLD, ScoredItem
from .scorer import RelevanceScorer

logger = logging.getLogger(__name__)


@dataclass
class DedupStats:
    """Statistics comparing items before and after deduplication."""
    original_count: int
    deduplicated_count: int
    removed_count: int
    deduplication_rate: float


class SemanticDeduplicator:
    """
    Collapses near-duplicate items to a single representative.

    Two items are duplicates when the cosine similarity of their contents
    is at least `threshold`. Items join a group only if they are similar to
    every existing member, so all pairs within a group meet the threshold.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_DEDUP_THRESHOLD,
        scorer: RelevanceScorer | None = None
    ):
        """Initialize deduplicator.

        Args:
            threshold: Similarity threshold in (0, 1]
            scorer: Scorer providing text similarity (creates default if None)
        """
        self.scorer = scorer if scorer is not None else RelevanceScorer()
        self.threshold = DEFAULT_DEDUP_THRESHOLD
        self.set_threshold(threshold)

    def set_threshold(self, threshold: float) -> None:
        """Set the similarity threshold, clamped into (0, 1]."""
        if threshold <= 0:
            logger.warning(
                f"Dedup threshold {threshold} not positive, "
                f"using default {DEFAULT_DEDUP_THRESHOLD}"
            )
            threshold = DEFAULT_DEDUP_THRESHOLD
        self.threshold = min(float(threshold), 1.0)

    def get_threshold(self) -> float:
        return self.threshold

    def deduplicate(self, items: list[ScoredItem]) -> list[ScoredItem]:
        """Keep the best member of every duplicate group.

        The best member has the highest score, then the latest timestamp,
        then the earliest position in `items`. Representatives are returned
        in the order they appear in `items`.

        Args:
            items: Scored items, possibly from several layers

        Returns:
            Deduplicated items (never longer than the input)
        """
        if not items:
            return []

        # Visit candidates best-first so each group's first member is its
        # representative.
        order = sorted(
            range(len(items)),
            key=lambda i: (-items[i].score, -_timestamp_key(items[i]), i)
        )
        groups = self._cluster(items, order)

        keep = sorted(group[0] for group in groups)
        deduplicated = [items[i] for i in keep]

        removed = len(items) - len(deduplicated)
        if removed:
            logger.debug(f"Removed {removed} near-duplicate item(s) of {len(items)}")

        return deduplicated

    def find_duplicate_groups(self, items: list[ScoredItem]) -> list[list[ScoredItem]]:
        """Find groups of near-duplicate items.

        Items are grouped in input order. Singleton groups are not reported.

        Args:
            items: Scored items

        Returns:
            List of groups with more than one member
        """
        if not items:
            return []

        groups = self._cluster(items, list(range(len(items))))
        return [[items[i] for i in group] for group in groups if len(group) > 1]

    def _cluster(self, items: list[ScoredItem], order: list[int]) -> list[list[int]]:
        """Greedy complete-linkage grouping of item indices.

        Args:
            items: Items to group
            order: Visiting order of item indices

        Returns:
            Groups of indices, each listed in visiting order
        """
        similarities = self.scorer.similarity_matrix([item.content for item in items])
        similar = similarities >= self.threshold

        groups: list[list[int]] = []
        membership: dict[int, int] = {}

        for i in order:
            # Only groups holding a neighbor of i can accept it
            candidates = sorted({
                membership[j] for j in np.flatnonzero(similar[i]) if j in membership
            })
            for g in candidates:
                if similar[i, groups[g]].all():
                    groups[g].append(i)
                    membership[i] = g
                    break
            else:
                membership[i] = len(groups)
                groups.append([i])

        return groups

    def get_stats(
        self,
        original: list[ScoredItem],
        deduplicated: list[ScoredItem]
    ) -> DedupStats:
        """Compare item counts before and after deduplication."""
        original_count = len(original)
        deduplicated_count = len(deduplicated)
        removed_count = original_count - deduplicated_count
        deduplication_rate = removed_count / original_count if original_count > 0 else 0.0

        return DedupStats(
            original_count=original_count,
            deduplicated_count=deduplicated_count,
            removed_count=removed_count,
            deduplication_rate=deduplication_rate,
        )


def _timestamp_key(item: ScoredItem) -> float:
    return item.timestamp if item.timestamp is not None else float("-inf")
