"""Pytest configuration and fixtures for fusion tests."""

import tempfile
import shutil
import time
from pathlib import Path
from typing import Callable, Generator

import pytest

from memory_fusion.models import (
    Classification,
    LayerResult,
    LayerWeights,
    MemoryItem,
    MemoryLayer,
    QueryType,
    RoutingResult,
    RoutingStats,
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    # Cleanup
    if temp_path.exists():
        shutil.rmtree(temp_path)


@pytest.fixture
def now_ms() -> int:
    """Fixed clock in ms for deterministic recency scoring."""
    return int(time.time() * 1000)


@pytest.fixture
def make_routing_result() -> Callable[..., RoutingResult]:
    """Factory building a RoutingResult from layer results."""
    def _make(
        query: str,
        results: list[LayerResult],
        query_type: QueryType = QueryType.GENERAL,
        weights: dict | None = None
    ) -> RoutingResult:
        layers = [r.layer for r in results]
        if weights is None:
            weights = {r.layer: r.weight if r.weight is not None else 1.0 for r in results}

        return RoutingResult(
            query=query,
            classification=Classification(
                query=query,
                query_type=query_type,
                confidence=0.8,
                layers=layers,
                weights=LayerWeights.from_dict(weights),
                reasoning="Test",
            ),
            results=results,
            stats=RoutingStats(
                total_time=sum(r.time for r in results),
                layers_queried=len(results),
                cache_hit=False,
            ),
        )
    return _make


@pytest.fixture
def auth_routing_result(make_routing_result, now_ms) -> RoutingResult:
    """Realistic three-layer routing result about authentication work."""
    return make_routing_result(
        "Continue working on authentication feature",
        [
            LayerResult(
                layer=MemoryLayer.SESSION,
                items=[
                    MemoryItem(
                        content="Implemented JWT authentication with refresh tokens",
                        timestamp=now_ms - 1000,
                    ),
                    MemoryItem(
                        content="Added password hashing with bcrypt",
                        timestamp=now_ms - 2000,
                    ),
                ],
                time=5,
                weight=0.95,
            ),
            LayerResult(
                layer=MemoryLayer.PROJECT,
                items=[
                    MemoryItem(
                        content="Authentication system uses JWT tokens",
                        timestamp=now_ms - 86_400_000,
                    ),
                    MemoryItem(
                        content="Password requirements: 8+ chars, special chars",
                        timestamp=now_ms - 172_800_000,
                    ),
                ],
                time=8,
                weight=0.85,
            ),
            LayerResult(
                layer=MemoryLayer.VECTOR,
                items=[
                    MemoryItem(
                        content="JWT best practices documentation",
                        timestamp=now_ms - 604_800_000,
                    ),
                ],
                time=12,
                weight=0.6,
            ),
        ],
        query_type=QueryType.PROCEDURAL,
    )
