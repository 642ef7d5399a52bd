"""Example demonstrating multi-layer memory fusion.

This example shows how to use the FusionEngine to:
1. Score and rank results from several memory layers
2. Collapse near-duplicates returned by different layers
3. Fit the output into a token budget
4. Spread results across layers with a diversity penalty
"""

import asyncio
import logging
import time

from memory_fusion import (
    Classification,
    FusionEngine,
    FusionEngineConfig,
    FusionOptions,
    LayerResult,
    LayerWeights,
    MemoryItem,
    MemoryLayer,
    QueryType,
    RoutingResult,
    RoutingStats,
)


def create_sample_routing_result():
    """Create a sample routing result for demonstration."""
    now_ms = int(time.time() * 1000)
    query = "Continue working on authentication feature"

    results = [
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
                    content="Implemented JWT authentication with refresh tokens",
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
                "JWT best practices documentation",
                {"text": "OAuth2 is an authorization framework", "created_at": now_ms - 604_800_000},
            ],
            time=12,
            weight=0.6,
        ),
        LayerResult(
            layer=MemoryLayer.GRAPH,
            items=None,
            time=50,
            error="Graph store timed out",
        ),
    ]

    return RoutingResult(
        query=query,
        classification=Classification(
            query=query,
            query_type=QueryType.PROCEDURAL,
            confidence=0.8,
            layers=[r.layer for r in results],
            weights=LayerWeights(session=0.95, project=0.85, vector=0.6, graph=0.4),
            reasoning="Continuation of recent work",
        ),
        results=results,
        stats=RoutingStats(total_time=75, layers_queried=len(results)),
    )


def print_result(fused):
    """Print fused items and stats."""
    for i, item in enumerate(fused.items, 1):
        print(f"  {i}. [{item.layer.value:<8}] {item.score:.3f}  {item.content}")

    stats = fused.stats
    print(f"\nTotal items: {stats.total_items}")
    print(f"After deduplication: {stats.deduplicated_items}")
    print(f"Returned: {stats.final_items}")
    print(f"Estimated tokens: {stats.estimated_tokens}")
    print(f"Fusion time: {stats.fusion_time}ms")


async def example_basic_fusion():
    """Example 1: Basic fusion with default options."""
    print("=" * 80)
    print("Example 1: Basic Fusion")
    print("=" * 80)

    engine = FusionEngine()
    fused = await engine.fuse(create_sample_routing_result())

    print_result(fused)


async def example_filtered_fusion():
    """Example 2: Minimum score and a tight token budget."""
    print("=" * 80)
    print("Example 2: Filtered Fusion")
    print("=" * 80)

    engine = FusionEngine()
    fused = await engine.fuse(
        create_sample_routing_result(),
        {"min_score": 0.3, "max_tokens": 20}
    )

    print_result(fused)


async def example_diverse_fusion():
    """Example 3: Diversity penalty with verbose logging."""
    print("=" * 80)
    print("Example 3: Diverse Fusion")
    print("=" * 80)

    engine = FusionEngine(FusionEngineConfig(
        verbose=True,
        defaults=FusionOptions(diversity_weight=0.3),
    ))
    fused = await engine.fuse(create_sample_routing_result())

    print_result(fused)


async def main():
    """Run all examples."""
    logging.basicConfig(level=logging.INFO, format="%(name)s - %(levelname)s - %(message)s")

    examples = [
        example_basic_fusion,
        example_filtered_fusion,
        example_diverse_fusion,
    ]

    for example in examples:
        await example()
        print("\n")


if __name__ == "__main__":
    asyncio.run(main())
