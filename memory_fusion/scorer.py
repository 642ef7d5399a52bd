"""Relevance scoring of memory items against a query."""

import re
import time
import logging
from collections import Counter

import numpy as np

from .models import MemoryItem, ScoredItem

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"[^\W_]+")

# Cosine values are rounded so that identical texts compare as exactly 1.0
_SIMILARITY_PRECISION = 9


class RelevanceScorer:
    """
    Scores memory items by relevance to a query.

    Scoring signals:
    - Cosine similarity of term-frequency vectors
    - Keyword overlap (share of query terms found in the item)
    - Item layer weight from the producing layer
    - Recency, decaying linearly over a fixed window

    The signals are combined as a normalized weighted sum, so the final
    score is monotonic in each signal and stays within [0, 1].
    """

    def __init__(
        self,
        similarity_weight: float = 0.4,
        keyword_weight: float = 0.3,
        layer_weight: float = 0.2,
        recency_weight: float = 0.1,
        recency_window_days: float = 30.0
    ):
        """
        Initialize relevance scorer.

        Args:
            similarity_weight: Weight for cosine similarity (0-1)
            keyword_weight: Weight for keyword overlap (0-1)
            layer_weight: Weight for the item's layer weight (0-1)
            recency_weight: Weight for recency (0-1)
            recency_window_days: Age at which recency reaches 0

        Raises:
            ValueError: If a weight is negative or layer_weight is not positive
        """
        weights = (similarity_weight, keyword_weight, layer_weight, recency_weight)
        if any(w < 0 for w in weights):
            raise ValueError("Scoring weights must not be negative")
        if layer_weight <= 0:
            raise ValueError("layer_weight must be positive")

        # Normalize weights
        total = sum(weights)
        self.similarity_weight = similarity_weight / total
        self.keyword_weight = keyword_weight / total
        self.layer_weight = layer_weight / total
        self.recency_weight = recency_weight / total
        self.recency_window_ms = recency_window_days * 24 * 3600 * 1000

    def score(
        self,
        query: str,
        items: list[MemoryItem],
        current_time_ms: int | None = None
    ) -> list[ScoredItem]:
        """
        Score items by relevance to a query.

        Items without usable content are dropped, and invalid timestamps or
        layer weights are ignored (see MemoryItem.coerce). The returned items carry
        the source timestamp and a copy of the metadata; `layer` is left
        unset for the caller to fill in.

        Args:
            query: Query text
            items: Items to score
            current_time_ms: Optional clock in ms (uses time.time() if None)

        Returns:
            Scored items, in input order
        """
        if not items:
            return []

        if current_time_ms is None:
            current_time_ms = int(time.time() * 1000)

        normalized = (MemoryItem.coerce(item) for item in items)
        usable = [item for item in normalized if item is not None and not item.is_blank]
        if len(usable) < len(items):
            logger.debug(f"Dropping {len(items) - len(usable)} memory item(s) with empty content")
        if not usable:
            return []

        query_terms = set(self.tokenize(query))
        # Row 0 holds the query's similarity to every item
        similarities = self.similarity_matrix([query] + [item.content for item in usable])[0, 1:]

        return [
            ScoredItem(
                content=item.content,
                score=self._calculate_score(
                    float(similarity), query_terms, item, current_time_ms
                ),
                timestamp=item.timestamp,
                metadata=dict(item.metadata),
            )
            for item, similarity in zip(usable, similarities)
        ]

    def _calculate_score(
        self,
        similarity: float,
        query_terms: set[str],
        item: MemoryItem,
        current_time_ms: int
    ) -> float:
        keywords = self.keyword_overlap(query_terms, item.content)
        layer_weight = 1.0 if item.layer_weight is None else item.layer_weight
        layer_weight = min(max(layer_weight, 0.0), 1.0)
        recency = self.recency_score(item.timestamp, current_time_ms)

        score = (
            similarity * self.similarity_weight +
            keywords * self.keyword_weight +
            layer_weight * self.layer_weight +
            recency * self.recency_weight
        )

        return min(max(score, 0.0), 1.0)

    def keyword_overlap(self, query_terms: set[str], content: str) -> float:
        """Share of distinct query terms that appear in content."""
        if not query_terms:
            return 0.0
        content_terms = set(self.tokenize(content))
        return len(query_terms & content_terms) / len(query_terms)

    def recency_score(self, timestamp: int | None, current_time_ms: int) -> float:
        """
        Compute recency score with linear decay.

        Args:
            timestamp: Item timestamp in ms, or None
            current_time_ms: Current time in ms

        Returns:
            1.0 for brand-new items down to 0.0 at the end of the window,
            0.5 when no timestamp is available
        """
        if timestamp is None:
            return 0.5

        age = max(0, current_time_ms - timestamp)
        normalized_age = min(age, self.recency_window_ms) / self.recency_window_ms
        return 1.0 - normalized_age

    @staticmethod
    def tokenize(text: str) -> list[str]:
        """Lowercase text and split it on non-alphanumeric boundaries."""
        if not text:
            return []
        return _TOKEN_PATTERN.findall(text.lower())

    def cosine_similarity(self, text1: str, text2: str) -> float:
        """
        Cosine similarity of the term-frequency vectors of two texts.

        Returns:
            Similarity between 0 and 1 (0 when either text has no terms)
        """
        return float(self.similarity_matrix([text1, text2])[0, 1])

    def similarity_matrix(self, texts: list[str]) -> np.ndarray:
        """
        Compute pairwise cosine similarities for several texts.

        Args:
            texts: Texts to compare

        Returns:
            Symmetric (n, n) array of similarities in [0, 1]; rows for texts
            without terms are all zero
        """
        counts = [Counter(self.tokenize(text)) for text in texts]
        vocabulary = sorted(set().union(*counts)) if counts else []

        if not vocabulary:
            return np.zeros((len(texts), len(texts)))

        index = {term: i for i, term in enumerate(vocabulary)}
        vectors = np.zeros((len(texts), len(vocabulary)))
        for row, term_counts in enumerate(counts):
            for term, count in term_counts.items():
                vectors[row, index[term]] = count

        norms = np.linalg.norm(vectors, axis=1)
        safe_norms = np.where(norms == 0, 1.0, norms)
        unit = vectors / safe_norms[:, np.newaxis]

        similarities = unit @ unit.T
        similarities = (similarities + similarities.T) / 2
        similarities = np.round(similarities, _SIMILARITY_PRECISION)
        return np.clip(similarities, 0.0, 1.0)
