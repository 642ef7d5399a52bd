"""Data models for multi-layer memory fusion."""

import json
import math
import logging
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Mapping
from enum import Enum

from .exceptions import FusionConfigError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 10000
DEFAULT_MIN_SCORE = 0.0
DEFAULT_DEDUP_THRESHOLD = 0.85
DEFAULT_DIVERSITY_WEIGHT = 0.0

# Fields probed, in order, when a raw layer item has no "content" key
_CONTENT_FIELDS = ("text", "message", "data", "value")
_TIMESTAMP_FIELDS = ("timestamp", "created_at", "createdAt")


class MemoryLayer(Enum):
    """Memory layers that can contribute items to a fused result."""
    SESSION = "session"
    PROJECT = "project"
    USER = "user"
    VECTOR = "vector"
    GRAPH = "graph"
    GOVERNANCE = "governance"


class QueryType(Enum):
    """Query types produced by the upstream classifier."""
    PROCEDURAL = "procedural"
    FACTUAL = "factual"
    ARCHITECTURAL = "architectural"
    USER = "user"
    HISTORICAL = "historical"
    GENERAL = "general"


def parse_layer(value: "MemoryLayer | str") -> MemoryLayer:
    """Resolve a layer from an enum member or its (case-insensitive) name."""
    if isinstance(value, MemoryLayer):
        return value
    try:
        return MemoryLayer(str(value).lower())
    except ValueError:
        raise FusionConfigError(f"Unknown memory layer: {value!r}")


@dataclass
class LayerWeights:
    """Per-layer weights from the classifier, one field per MemoryLayer."""
    session: float = 0.0
    project: float = 0.0
    user: float = 0.0
    vector: float = 0.0
    graph: float = 0.0
    governance: float = 0.0

    def get(self, layer: MemoryLayer) -> float:
        """Get the weight for a layer."""
        return getattr(self, layer.value)

    def to_dict(self) -> dict[str, float]:
        return {layer.value: self.get(layer) for layer in MemoryLayer}

    @classmethod
    def from_dict(cls, data: Mapping[Any, float]) -> "LayerWeights":
        """Create weights from a mapping keyed by layer or layer name.

        Raises:
            FusionConfigError: If a key does not name a known layer
        """
        values = {}
        for key, weight in data.items():
            values[parse_layer(key).value] = float(weight)
        return cls(**values)


@dataclass
class Classification:
    """Read-only output of the query classifier."""
    query: str
    query_type: QueryType = QueryType.GENERAL
    confidence: float = 1.0
    layers: list[MemoryLayer] = field(default_factory=list)
    weights: LayerWeights = field(default_factory=LayerWeights)
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "type": self.query_type.value,
            "confidence": self.confidence,
            "layers": [layer.value for layer in self.layers],
            "weights": self.weights.to_dict(),
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Classification":
        return cls(
            query=data["query"],
            query_type=QueryType(data.get("type", QueryType.GENERAL.value)),
            confidence=data.get("confidence", 1.0),
            layers=[parse_layer(layer) for layer in data.get("layers", [])],
            weights=LayerWeights.from_dict(data.get("weights", {})),
            reasoning=data.get("reasoning", ""),
        )


@dataclass(frozen=True)
class MemoryItem:
    """A candidate item returned by a single memory layer."""
    content: str
    timestamp: int | None = None  # ms since epoch
    layer_weight: float | None = None  # defaults to 1.0 when scored
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_blank(self) -> bool:
        """Whether the item has no usable content."""
        return not isinstance(self.content, str) or not self.content.strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "timestamp": self.timestamp,
            "layer_weight": self.layer_weight,
            "metadata": self.metadata,
        }

    @classmethod
    def coerce(cls, raw: Any) -> "MemoryItem | None":
        """Normalize raw layer output into a MemoryItem.

        Accepts MemoryItem instances, plain strings and mappings. Mappings
        are read from "content" when present, otherwise from the first of
        "text", "message", "data" or "value", falling back to the JSON
        encoding of the whole mapping.

        Timestamps may be numbers in ms or ISO-8601 strings; layer weights
        must be finite numbers. Invalid values are replaced by None rather
        than rejecting the item.

        Args:
            raw: Item as returned by a layer

        Returns:
            MemoryItem, or None if the value cannot be interpreted
        """
        if raw is None:
            return None

        if isinstance(raw, MemoryItem):
            timestamp = _as_timestamp(raw.timestamp)
            layer_weight = _as_finite(raw.layer_weight)
            if timestamp == raw.timestamp and layer_weight == raw.layer_weight:
                return raw
            return replace(raw, timestamp=timestamp, layer_weight=layer_weight)

        if isinstance(raw, str):
            return cls(content=raw)

        if not isinstance(raw, Mapping):
            return None

        timestamp = _as_timestamp(next(
            (raw[key] for key in _TIMESTAMP_FIELDS if raw.get(key) is not None),
            None
        ))
        layer_weight = _as_finite(raw.get("layer_weight", raw.get("layerWeight")))

        if "content" in raw:
            return cls(
                content=_as_text(raw["content"]),
                timestamp=timestamp,
                layer_weight=layer_weight,
                metadata=dict(raw.get("metadata") or {}),
            )

        content = next((raw[key] for key in _CONTENT_FIELDS if raw.get(key)), None)
        if content is None:
            content = json.dumps(dict(raw), default=str, sort_keys=True)

        return cls(
            content=_as_text(content),
            timestamp=timestamp,
            layer_weight=layer_weight,
            metadata=dict(raw),
        )


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, default=str, sort_keys=True)


def _as_finite(value: Any) -> float | None:
    """Return value as a finite float, or None if it is not a real number."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        logger.debug(f"Ignoring non-numeric layer weight {value!r}")
        return None
    return float(value)


def _as_timestamp(value: Any) -> int | None:
    """Convert a timestamp to ms since epoch.

    Accepts numbers (already in ms) and ISO-8601 strings; anything else
    yields None.
    """
    if value is None:
        return None

    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Ignoring unparseable timestamp {value!r}")
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)

    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        logger.debug(f"Ignoring invalid timestamp {value!r}")
        return None

    return int(value)


@dataclass
class LayerResult:
    """Materialized result of querying a single memory layer."""
    layer: MemoryLayer
    items: list[Any] | None = None
    time: int = 0  # ms spent querying the layer
    weight: float | None = None  # layer-level multiplier, 1.0 when unset
    error: str | None = None

    @property
    def is_usable(self) -> bool:
        """Whether this layer contributes items to fusion."""
        return not self.error and self.items is not None

    @property
    def effective_weight(self) -> float:
        """Layer multiplier clamped into [0, 1]; 1.0 when unset or invalid."""
        weight = _as_finite(self.weight)
        return 1.0 if weight is None else min(max(weight, 0.0), 1.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "layer": self.layer.value,
            "items": [
                item.to_dict() if isinstance(item, MemoryItem) else item
                for item in self.items
            ] if self.items is not None else None,
            "time": self.time,
            "weight": self.weight,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LayerResult":
        return cls(
            layer=parse_layer(data["layer"]),
            items=data.get("items"),
            time=data.get("time", 0),
            weight=data.get("weight"),
            error=data.get("error"),
        )


@dataclass
class RoutingStats:
    """Statistics reported by the router."""
    total_time: int = 0
    layers_queried: int = 0
    cache_hit: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_time": self.total_time,
            "layers_queried": self.layers_queried,
            "cache_hit": self.cache_hit,
        }


@dataclass
class RoutingResult:
    """Input to the fusion pipeline: a query and per-layer results."""
    query: str
    classification: Classification
    results: list[LayerResult] = field(default_factory=list)
    stats: RoutingStats = field(default_factory=RoutingStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "classification": self.classification.to_dict(),
            "results": [result.to_dict() for result in self.results],
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoutingResult":
        """Create a routing result from plain (JSON-like) data."""
        stats = data.get("stats", {})
        return cls(
            query=data["query"],
            classification=Classification.from_dict(
                data.get("classification", {"query": data["query"]})
            ),
            results=[LayerResult.from_dict(r) for r in data.get("results", [])],
            stats=RoutingStats(
                total_time=stats.get("total_time", stats.get("totalTime", 0)),
                layers_queried=stats.get("layers_queried", stats.get("layersQueried", 0)),
                cache_hit=stats.get("cache_hit", stats.get("cacheHit", False)),
            ),
        )


@dataclass
class ScoredItem:
    """A memory item with a relevance score, created fresh per fusion call."""
    content: str
    score: float
    timestamp: int | None = None
    layer: MemoryLayer | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "score": self.score,
            "timestamp": self.timestamp,
            "layer": self.layer.value if self.layer else None,
            "metadata": self.metadata,
        }


@dataclass
class FusionOptions:
    """Options controlling a single fusion call."""
    max_tokens: int = DEFAULT_MAX_TOKENS
    min_score: float = DEFAULT_MIN_SCORE
    dedup_threshold: float = DEFAULT_DEDUP_THRESHOLD
    diversity_weight: float = DEFAULT_DIVERSITY_WEIGHT

    def normalized(self) -> "FusionOptions":
        """Return a copy with every option clamped into its valid range.

        Out-of-range values are clamped (or reset to their default when no
        nearest valid value exists) rather than rejected.
        """
        max_tokens = int(_as_number("max_tokens", self.max_tokens, DEFAULT_MAX_TOKENS))
        if max_tokens < 0:
            logger.warning(f"max_tokens={max_tokens} is negative, using 0")
            max_tokens = 0

        min_score = _as_number("min_score", self.min_score, DEFAULT_MIN_SCORE)
        if not 0.0 <= min_score <= 1.0:
            clamped = min(max(min_score, 0.0), 1.0)
            logger.warning(f"min_score={min_score} out of range, using {clamped}")
            min_score = clamped

        dedup_threshold = _as_number(
            "dedup_threshold", self.dedup_threshold, DEFAULT_DEDUP_THRESHOLD
        )
        if dedup_threshold > 1.0:
            logger.warning(f"dedup_threshold={dedup_threshold} above 1, using 1.0")
            dedup_threshold = 1.0
        elif dedup_threshold <= 0.0:
            logger.warning(
                f"dedup_threshold={dedup_threshold} not positive, "
                f"using default {DEFAULT_DEDUP_THRESHOLD}"
            )
            dedup_threshold = DEFAULT_DEDUP_THRESHOLD

        diversity_weight = _as_number(
            "diversity_weight", self.diversity_weight, DEFAULT_DIVERSITY_WEIGHT
        )
        if diversity_weight < 0.0:
            logger.warning(f"diversity_weight={diversity_weight} is negative, using 0.0")
            diversity_weight = 0.0

        return FusionOptions(
            max_tokens=max_tokens,
            min_score=min_score,
            dedup_threshold=dedup_threshold,
            diversity_weight=diversity_weight,
        )

    def merged(
        self,
        overrides: "FusionOptions | Mapping[str, Any] | None" = None
    ) -> "FusionOptions":
        """Merge overrides on top of these options.

        Args:
            overrides: Complete options (used as-is, nothing is taken from
                self), a partial mapping of option names (None values are
                ignored), or None

        Returns:
            New FusionOptions instance

        Raises:
            FusionConfigError: If the mapping names an unknown option
        """
        if overrides is None:
            return replace(self)

        if isinstance(overrides, FusionOptions):
            return replace(overrides)

        unknown = set(overrides) - self.field_names()
        if unknown:
            raise FusionConfigError(
                f"Unknown fusion option(s): {', '.join(sorted(unknown))}"
            )

        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FusionOptions":
        """Create options from a dictionary, ignoring unknown keys."""
        valid_fields = cls.field_names()
        ignored = sorted(set(data) - valid_fields)
        if ignored:
            logger.warning(f"Ignoring unknown fusion option(s): {', '.join(ignored)}")
        return cls(**{k: v for k, v in data.items() if k in valid_fields})

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_tokens": self.max_tokens,
            "min_score": self.min_score,
            "dedup_threshold": self.dedup_threshold,
            "diversity_weight": self.diversity_weight,
        }


def _as_number(name: str, value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = math.nan
    if not math.isfinite(number):
        logger.warning(f"{name}={value!r} is not a finite number, using default {default}")
        return float(default)
    return number


@dataclass
class FusionStats:
    """Statistics from a single fusion call."""
    total_items: int = 0
    deduplicated_items: int = 0
    final_items: int = 0
    estimated_tokens: int = 0
    fusion_time: int = 0  # ms

    def to_dict(self) -> dict[str, int]:
        return {
            "total_items": self.total_items,
            "deduplicated_items": self.deduplicated_items,
            "final_items": self.final_items,
            "estimated_tokens": self.estimated_tokens,
            "fusion_time": self.fusion_time,
        }


@dataclass
class FusedResult:
    """Ranked, deduplicated and token-budgeted fusion output."""
    items: list[ScoredItem] = field(default_factory=list)
    stats: FusionStats = field(default_factory=FusionStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "stats": self.stats.to_dict(),
        }


@dataclass
class FusionEngineConfig:
    """Construction-time configuration for a FusionEngine."""
    verbose: bool = False
    defaults: FusionOptions = field(default_factory=FusionOptions)
