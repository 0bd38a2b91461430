import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .models import ContentItem, TypeConfig, resolve_type_config, rule_for

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 250
DEDUP_KEY_CHARS = 200
NEAR_DUPLICATE_THRESHOLD = 0.92


def _rank_key(item: ContentItem) -> Tuple[float, float]:
    # Highest engagement first, newest first among ties, undated last
    ts = item.createdAt.timestamp() if item.createdAt else float("-inf")
    return (-item.engagement, -ts)


def apply_type_caps(items: Sequence[ContentItem], type_config: TypeConfig) -> List[ContentItem]:
    grouped: Dict[str, List[ContentItem]] = {}
    for item in items:
        grouped.setdefault(item.sourceType, []).append(item)

    selected: List[ContentItem] = []
    for source_type, group in grouped.items():
        cap = rule_for(type_config, source_type).cap
        ranked = sorted(group, key=_rank_key)
        selected.extend(ranked[:cap])
        if len(group) > cap:
            logger.debug("Capped %s items: %d -> %d", source_type, len(group), cap)
    return selected


def dedupe_exact(items: Sequence[ContentItem], key_chars: int = DEDUP_KEY_CHARS) -> List[ContentItem]:
    """Drop items whose first ``key_chars`` characters were already seen; first one wins."""
    seen = set()
    unique: List[ContentItem] = []
    for item in items:
        key = item.text[:key_chars]
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def select_items(
    items: Sequence[ContentItem],
    type_config: Optional[TypeConfig] = None,
    limit: int = DEFAULT_LIMIT,
) -> List[ContentItem]:
    """Per-type caps, global cap, then exact-prefix dedup."""
    config = type_config if type_config is not None else resolve_type_config()
    capped = apply_type_caps(items, config)[:limit]
    unique = dedupe_exact(capped)
    logger.info("Selected %d of %d items (%d after per-type caps and limit)", len(unique), len(items), len(capped))
    return unique


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    return float(va.dot(vb) / denom) if denom else 0.0


def drop_near_duplicates(
    items: Sequence[ContentItem],
    vectors: Sequence[Sequence[float]],
    threshold: float = NEAR_DUPLICATE_THRESHOLD,
) -> Tuple[List[ContentItem], List[List[float]], List[int]]:
    """Keep an item only if its cosine similarity to every kept item is <= ``threshold``.

    Returns the kept items, their vectors and their indices in the input.
    """
    if len(items) != len(vectors):
        raise ValueError(f"Got {len(vectors)} vectors for {len(items)} items")
    if not items:
        return [], [], []

    X = np.asarray(vectors, dtype=float)
    norms = np.linalg.norm(X, axis=1, keepdims=True)
    # Zero vectors stay zero
    unit = X / np.where(norms == 0, 1.0, norms)

    kept: List[int] = []
    for i in range(len(items)):
        if kept and float(np.max(unit[kept] @ unit[i])) > threshold:
            continue
        kept.append(i)

    if len(kept) < len(items):
        logger.info("Dropped %d near-duplicate items (cosine > %.2f)", len(items) - len(kept), threshold)
    return [items[i] for i in kept], [list(map(float, X[i])) for i in kept], kept
