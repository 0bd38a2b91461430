import asyncio
import logging
from typing import List, Literal, Optional, Sequence

from .errors import ProviderError
from .models import Cluster, ClusterSummary, ContentItem, Representative, TypeConfig, rule_for
from .prompts import cluster_summary_prompt
from .providers import TextGenerator, generate_text

logger = logging.getLogger(__name__)

REPRESENTATIVES_PER_CLUSTER = 2
SUMMARY_MAX_TOKENS = 60
SUMMARY_TEMPERATURE = 0.2


def pick_representatives(
    items: Sequence[ContentItem],
    members: Sequence[int],
    type_config: TypeConfig,
    count: int = REPRESENTATIVES_PER_CLUSTER,
) -> List[Representative]:
    """Top ``count`` members by ``engagement * weight(sourceType)``; ties keep member order."""
    scored = sorted(
        members,
        key=lambda idx: items[idx].engagement * rule_for(type_config, items[idx].sourceType).weight,
        reverse=True,
    )
    return [
        Representative(id=items[i].id, text=items[i].text, url=items[i].url, sourceType=items[i].sourceType)
        for i in scored[:count]
    ]


async def summarize_cluster(
    representatives: Sequence[Representative],
    generator: TextGenerator,
    timeout: Optional[float] = None,
) -> str:
    text = await generate_text(
        generator,
        cluster_summary_prompt(representatives),
        max_tokens=SUMMARY_MAX_TOKENS,
        temperature=SUMMARY_TEMPERATURE,
        task="clusterSummary",
        timeout=timeout,
    )
    return text.strip()


async def summarize_clusters(
    items: Sequence[ContentItem],
    clusters: Sequence[Cluster],
    generator: TextGenerator,
    type_config: TypeConfig,
    *,
    concurrency: int = 1,
    on_error: Literal["degrade", "raise"] = "degrade",
    timeout: Optional[float] = None,
) -> List[ClusterSummary]:
    """
    One generation call per non-empty cluster, at most ``concurrency`` in flight.

    Results keep cluster order. With ``on_error="degrade"`` a failed call
    leaves an empty ``summaryText`` for that cluster instead of aborting.
    """
    non_empty = [c for c in clusters if c.members]
    results: List[Optional[ClusterSummary]] = [None] * len(non_empty)
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _run(slot: int, cluster: Cluster) -> None:
        reps = pick_representatives(items, cluster.members, type_config)
        async with semaphore:
            try:
                text = await summarize_cluster(reps, generator, timeout=timeout)
            except ProviderError as exc:
                if on_error == "raise":
                    raise
                logger.warning("Cluster %d summary failed, continuing with an empty summary: %s", slot, exc)
                text = ""
        results[slot] = ClusterSummary(summaryText=text, representatives=reps)

    if concurrency <= 1:
        for slot, cluster in enumerate(non_empty):
            await _run(slot, cluster)
    else:
        tasks = [asyncio.create_task(_run(slot, cluster)) for slot, cluster in enumerate(non_empty)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # Stop the remaining generation calls before propagating
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    logger.info("Summarized %d clusters", len(non_empty))
    return [r for r in results if r is not None]


def combine_summaries(summaries: Sequence[ClusterSummary]) -> str:
    return "\n".join(s.summaryText for s in summaries if s.summaryText)
