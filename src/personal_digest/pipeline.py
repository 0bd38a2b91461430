import logging
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from .clusterer import Clusterer, RandomSource, choose_k
from .config import Settings, load_settings
from .embedder import Embedder
from .errors import EmptyInputError, ProviderError
from .models import (
    ClusterTrace,
    Evidence,
    PersonalProfileArtifact,
    PipelineOptions,
    PipelineTrace,
    empty_artifact,
    resolve_type_config,
)
from .normalizer import normalize_items
from .providers import EmbeddingProvider, TextGenerator, build_providers
from .seeds import extract_seed_interests
from .selector import drop_near_duplicates, select_items
from .summarizer import combine_summaries, summarize_clusters
from .synthesizer import synthesize_profile

logger = logging.getLogger(__name__)

OptionsInput = Union[None, PipelineOptions, Mapping[str, Any]]


def _coerce_options(options: OptionsInput, settings: Settings) -> PipelineOptions:
    if isinstance(options, PipelineOptions):
        return options
    data = dict(options or {})
    data.setdefault("limit", settings.default_limit)
    return PipelineOptions(**data)


async def _run_pipeline(
    records: list,
    opts: PipelineOptions,
    settings: Settings,
    embedding_provider: Optional[EmbeddingProvider],
    generator: Optional[TextGenerator],
    rng: RandomSource,
    trace: PipelineTrace,
) -> PersonalProfileArtifact:
    count = len(records)
    type_config = resolve_type_config(opts.typeConfig)

    # Step 1: Normalize raw records and drop fragments too short to embed well.
    normalized = normalize_items(records)
    trace.normalizedCount = len(normalized)

    # Step 2: Per-type caps, global cap and exact-prefix dedup.
    selected = select_items(normalized, type_config, opts.limit)
    trace.selectedCount = len(selected)
    if not selected:
        raise EmptyInputError(count)

    if embedding_provider is None or generator is None:
        default_embedder, default_generator = build_providers(settings)
        embedding_provider = embedding_provider or default_embedder
        generator = generator or default_generator

    # Step 3: Embed and drop near-duplicates.
    embedder = Embedder(embedding_provider, batch_size=settings.embed_batch_size,
                        timeout=settings.request_timeout)
    vectors = await embedder.embed_items(selected)
    kept, kept_vectors, _ = drop_near_duplicates(selected, vectors, settings.near_dup_threshold)
    trace.keptCount = len(kept)

    # Step 4: Cluster the surviving items.
    clusterer = Clusterer(random_state=rng if rng is not None else settings.random_seed)
    clusters = clusterer.fit(kept_vectors)
    trace.k = choose_k(len(kept))

    # Step 5: One sentence per cluster.
    summaries = await summarize_clusters(
        kept,
        clusters,
        generator,
        type_config,
        concurrency=settings.summary_concurrency,
        on_error=settings.on_cluster_error,
        timeout=settings.request_timeout,
    )
    for index, (cluster, summary) in enumerate(zip(clusters, summaries)):
        trace.clusters.append(ClusterTrace(
            index=index,
            memberIds=[kept[i].id for i in cluster.members],
            centroid=cluster.centroid,
            summaryText=summary.summaryText,
            representatives=list(summary.representatives),
            members=[Evidence.from_item(kept[i]) for i in cluster.members],
        ))

    # Step 6: Seed interests, independent of the final synthesis.
    seeds = await extract_seed_interests(combine_summaries(summaries), generator,
                                         timeout=settings.request_timeout)
    trace.seedInterests = list(seeds)

    # Step 7: Structured synthesis with repair and fallback.
    return await synthesize_profile(
        summaries,
        seed_interests=seeds,
        items=kept,
        input_count=count,
        generator=generator,
        timeout=settings.request_timeout,
    )


async def synthesize_personal_profile_traced(
    items: Optional[Iterable[Any]],
    options: OptionsInput = None,
    *,
    embedder: Optional[EmbeddingProvider] = None,
    generator: Optional[TextGenerator] = None,
    rng: RandomSource = None,
    settings: Optional[Settings] = None,
) -> Tuple[PersonalProfileArtifact, PipelineTrace]:
    """
    Runs the personal summarization pipeline and returns the artifact together
    with a trace of its intermediate state (clusters, centroids, representatives).

    Args:
        items: Raw content records (dicts or objects) in any of the supported shapes.
        options: ``PipelineOptions`` or a dict with ``limit`` and ``typeConfig``.
        embedder / generator: Capability implementations; built from ``settings``
            when omitted.
        rng: Seed or ``numpy.random.Generator`` pinning k-means initialization.
        settings: Runtime settings; loaded from the environment when omitted.

    Never raises: failures are reported in the artifact's ``error`` field.
    """
    records = list(items or [])
    count = len(records)
    trace = PipelineTrace(itemCount=count)

    try:
        settings = settings or load_settings()
        opts = _coerce_options(options, settings)
        artifact = await _run_pipeline(records, opts, settings, embedder, generator, rng, trace)
    except EmptyInputError:
        logger.info("No eligible items among %d records; returning an empty profile", count)
        artifact = empty_artifact(count)
    except ProviderError as exc:
        logger.error("Personal profile pipeline aborted: %s", exc)
        artifact = empty_artifact(count, error=str(exc))
    except Exception as exc:
        logger.exception("Personal profile pipeline failed")
        artifact = empty_artifact(count, error=str(exc) or type(exc).__name__)

    return artifact, trace


async def synthesize_personal_profile(
    items: Optional[Iterable[Any]],
    options: OptionsInput = None,
    *,
    embedder: Optional[EmbeddingProvider] = None,
    generator: Optional[TextGenerator] = None,
    rng: RandomSource = None,
    settings: Optional[Settings] = None,
) -> PersonalProfileArtifact:
    """Compress a user's posts, comments and other fragments into a personal profile artifact."""
    artifact, _ = await synthesize_personal_profile_traced(
        items, options, embedder=embedder, generator=generator, rng=rng, settings=settings,
    )
    return artifact
