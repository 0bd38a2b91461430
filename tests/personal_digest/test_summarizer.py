import asyncio

import pytest

from conftest import StubGenerator, make_item
from personal_digest.errors import ProviderError
from personal_digest.models import Cluster, ClusterSummary, resolve_type_config
from personal_digest.summarizer import combine_summaries, pick_representatives, summarize_clusters


def test_representatives_weighted_by_type():
    config = resolve_type_config()
    items = [
        make_item(0, source_type="reaction", engagement=10),  # 10 * 0.8 = 8
        make_item(1, source_type="post", engagement=9),       # 9 * 1.0 = 9
        make_item(2, source_type="comment", engagement=3),
    ]
    reps = pick_representatives(items, [0, 1, 2], config)
    assert [r.id for r in reps] == ["i1", "i0"]


def test_representative_ties_keep_member_order():
    items = [make_item(i) for i in range(4)]
    reps = pick_representatives(items, [2, 0, 3], resolve_type_config())
    assert [r.id for r in reps] == ["i2", "i0"]


def test_single_member_cluster_has_one_representative():
    items = [make_item(0)]
    reps = pick_representatives(items, [0], resolve_type_config())
    assert len(reps) == 1
    assert reps[0].url == "https://example.com/0"


@pytest.mark.asyncio
async def test_one_call_per_cluster_with_typed_lines():
    items = [
        make_item(0, text="Climbing the north face this summer"),
        make_item(1, source_type="comment", text="Loved that bouldering session\ntoday"),
        make_item(2, text="Baking sourdough every Sunday morning"),
    ]
    clusters = [Cluster(members=[0, 1], centroid=[0.0]), Cluster(members=[2], centroid=[1.0])]
    gen = StubGenerator({"clusterSummary": "  Enjoys climbing.  "})

    summaries = await summarize_clusters(items, clusters, gen, resolve_type_config())

    assert gen.tasks() == ["clusterSummary", "clusterSummary"]
    first = gen.calls[0]
    assert first["max_tokens"] == 60
    assert first["temperature"] == 0.2
    assert "- [post] Climbing the north face this summer" in first["prompt"]
    assert "- [comment] Loved that bouldering session today" in first["prompt"]
    assert [s.summaryText for s in summaries] == ["Enjoys climbing.", "Enjoys climbing."]


@pytest.mark.asyncio
async def test_empty_clusters_are_skipped():
    items = [make_item(0)]
    clusters = [Cluster(members=[], centroid=[0.0]), Cluster(members=[0], centroid=[0.0])]
    gen = StubGenerator(default="Likes things.")
    summaries = await summarize_clusters(items, clusters, gen, resolve_type_config())
    assert len(summaries) == 1
    assert len(gen.calls) == 1


@pytest.mark.asyncio
async def test_failed_summary_degrades_to_empty_text():
    items = [make_item(0), make_item(1)]
    clusters = [Cluster(members=[0], centroid=[0.0]), Cluster(members=[1], centroid=[1.0])]
    replies = iter([ProviderError("boom"), "Second cluster summary."])

    def reply(prompt):
        value = next(replies)
        if isinstance(value, Exception):
            raise value
        return value

    gen = StubGenerator({"clusterSummary": reply})
    summaries = await summarize_clusters(items, clusters, gen, resolve_type_config())

    assert [s.summaryText for s in summaries] == ["", "Second cluster summary."]
    assert summaries[0].representatives[0].id == "i0"


@pytest.mark.asyncio
async def test_failed_summary_raises_when_configured():
    items = [make_item(0)]
    clusters = [Cluster(members=[0], centroid=[0.0])]
    gen = StubGenerator({"clusterSummary": ProviderError("down")})
    with pytest.raises(ProviderError):
        await summarize_clusters(items, clusters, gen, resolve_type_config(), on_error="raise")


@pytest.mark.asyncio
async def test_concurrent_summaries_keep_cluster_order():
    items = [make_item(i, text=f"Topic {i} described at some length") for i in range(4)]
    clusters = [Cluster(members=[i], centroid=[float(i)]) for i in range(4)]

    class SlowFirst:
        async def generate(self, prompt, *, max_tokens=256, temperature=0.2, task=None):
            # earlier clusters finish later
            for i in range(4):
                if f"Topic {i} " in prompt:
                    await asyncio.sleep(0.01 * (4 - i))
                    return f"summary {i}"
            return ""

    summaries = await summarize_clusters(items, clusters, SlowFirst(), resolve_type_config(), concurrency=4)
    assert [s.summaryText for s in summaries] == [f"summary {i}" for i in range(4)]


def test_combine_summaries_skips_empty():
    summaries = [
        ClusterSummary(summaryText="Hikes a lot.", representatives=[]),
        ClusterSummary(summaryText="", representatives=[]),
        ClusterSummary(summaryText="Takes photos.", representatives=[]),
    ]
    assert combine_summaries(summaries) == "Hikes a lot.\nTakes photos."


@pytest.mark.asyncio
async def test_concurrent_failure_cancels_pending_summaries():
    items = [make_item(i, text=f"Topic {i} described at some length") for i in range(3)]
    clusters = [Cluster(members=[i], centroid=[float(i)]) for i in range(3)]
    finished = []

    class FailFirst:
        async def generate(self, prompt, *, max_tokens=256, temperature=0.2, task=None):
            if "Topic 0 " in prompt:
                raise ProviderError("quota exceeded")
            await asyncio.sleep(0.5)
            finished.append(prompt)
            return "late summary"

    with pytest.raises(ProviderError):
        await summarize_clusters(items, clusters, FailFirst(), resolve_type_config(),
                                 concurrency=3, on_error="raise")
    await asyncio.sleep(0.6)
    assert finished == []
