"""Integration tests for end-to-end fusion."""

import random
import time

import pytest

from memory_fusion import (
    FusionEngine,
    LayerResult,
    MemoryItem,
    MemoryLayer,
    RoutingResult,
)


TOPICS = ["authentication", "database", "caching", "deployment", "logging"]


def build_large_routing_result(make_routing_result, now_ms, items_per_layer=20):
    """Build a routing result with every layer populated."""
    rng = random.Random(42)
    results = []
    for index, layer in enumerate(MemoryLayer):
        items = []
        for i in range(items_per_layer):
            topic = TOPICS[(i + index) % len(TOPICS)]
            items.append(MemoryItem(
                content=f"Note {i} from {layer.value}: {topic} work item {rng.randint(0, 1000)}",
                timestamp=now_ms - rng.randint(0, 86_400_000 * 30),
                metadata={"index": i},
            ))
        results.append(LayerResult(
            layer=layer,
            items=items,
            time=rng.randint(1, 20),
            weight=1.0 - index * 0.1,
        ))
    return make_routing_result("authentication caching work", results)


class TestEndToEndFusion:
    """Test the full pipeline on realistic routing results."""

    @pytest.mark.asyncio
    async def test_authentication_scenario(self, auth_routing_result):
        """Test fusing session, project and vector results."""
        engine = FusionEngine()

        fused = await engine.fuse(auth_routing_result, {"max_tokens": 10000, "min_score": 0.3})

        assert len(fused.items) > 0
        assert fused.stats.total_items == 5
        assert fused.stats.fusion_time < 100
        assert all(item.score >= 0.3 for item in fused.items)
        assert fused.items[0].layer == MemoryLayer.SESSION
        scores = [item.score for item in fused.items]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_routing_result_from_plain_data(self, now_ms):
        """Test fusing a routing result built from JSON-like data."""
        data = {
            "query": "How do we deploy the api?",
            "classification": {
                "query": "How do we deploy the api?",
                "type": "procedural",
                "confidence": 0.7,
                "layers": ["project", "vector", "graph"],
                "weights": {"project": 0.9, "vector": 0.6, "graph": 0.4},
                "reasoning": "Deployment question",
            },
            "results": [
                {
                    "layer": "project",
                    "items": [
                        {"content": "Deploy the api with docker compose", "timestamp": now_ms},
                        {"text": "Staging deploys run nightly", "createdAt": now_ms - 3_600_000},
                    ],
                    "time": 6,
                    "weight": 0.9,
                },
                {
                    "layer": "vector",
                    "items": ["Deploy the api with docker compose"],
                    "time": 14,
                    "weight": 0.6,
                },
                {"layer": "graph", "items": None, "time": 50, "error": "Timeout"},
            ],
            "stats": {"totalTime": 70, "layersQueried": 3, "cacheHit": False},
        }

        routing_result = RoutingResult.from_dict(data)
        fused = await FusionEngine().fuse(routing_result)

        assert fused.stats.total_items == 3
        assert fused.stats.deduplicated_items == 2
        docker_items = [i for i in fused.items if "docker" in i.content]
        assert len(docker_items) == 1
        assert docker_items[0].layer == MemoryLayer.PROJECT

    @pytest.mark.asyncio
    async def test_large_input_ordering_and_budget(self, make_routing_result, now_ms):
        """Test ordering, bounds and budget with every layer populated."""
        routing_result = build_large_routing_result(make_routing_result, now_ms)
        engine = FusionEngine()

        fused = await engine.fuse(
            routing_result,
            {"max_tokens": 300, "diversity_weight": 0.1},
            current_time_ms=now_ms,
        )

        assert fused.stats.total_items == 120
        assert fused.stats.deduplicated_items <= fused.stats.total_items
        assert len(fused.items) <= fused.stats.deduplicated_items
        assert fused.stats.estimated_tokens <= 300
        assert all(0.0 <= item.score <= 1.0 for item in fused.items)
        for i in range(1, len(fused.items)):
            assert fused.items[i - 1].score >= fused.items[i].score

    @pytest.mark.asyncio
    async def test_diversity_spreads_layers(self, make_routing_result, now_ms):
        """Test that a diversity penalty admits more distinct layers."""
        routing_result = build_large_routing_result(make_routing_result, now_ms)
        engine = FusionEngine()

        plain = await engine.fuse(routing_result, {"max_tokens": 200}, now_ms)
        diverse = await engine.fuse(
            routing_result, {"max_tokens": 200, "diversity_weight": 0.5}, now_ms
        )

        assert len({i.layer for i in diverse.items}) >= len({i.layer for i in plain.items})


class TestLatencyRequirements:
    """Test sub-100ms fusion latency."""

    @pytest.mark.asyncio
    async def test_sub_100ms_with_120_items(self, make_routing_result, now_ms):
        """Test fusion latency with six populated layers."""
        routing_result = build_large_routing_result(make_routing_result, now_ms)
        engine = FusionEngine()

        # Warm up
        await engine.fuse(routing_result)

        latencies = []
        for _ in range(10):
            start = time.perf_counter()
            await engine.fuse(routing_result, {"max_tokens": 2000, "min_score": 0.2})
            latencies.append((time.perf_counter() - start) * 1000)

        avg_latency = sum(latencies) / len(latencies)

        print(f"\nFusion latency with 120 items:")
        print(f"  Average: {avg_latency:.2f}ms")
        print(f"  Max: {max(latencies):.2f}ms")

        assert avg_latency < 100.0
