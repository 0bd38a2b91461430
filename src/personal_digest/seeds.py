import logging
import re
from collections import Counter
from typing import Any, Iterable, List, Optional

from .errors import ParseError, ProviderError
from .prompts import seed_interests_prompt
from .providers import TextGenerator, generate_text
from .repair import parse_strict

logger = logging.getLogger(__name__)

MAX_SEED_INTERESTS = 6
SEED_MAX_TOKENS = 120

STOP_WORDS = frozenset({
    "the", "and", "a", "an", "in", "on", "with", "for", "of", "to", "by", "from",
    "my", "we", "i", "is", "are", "this", "that", "be", "as", "at", "about",
})

_TOKEN_SPLIT = re.compile(r"[^A-Za-z\-]+")


def normalize_labels(labels: Iterable[Any], limit: int = MAX_SEED_INTERESTS) -> List[str]:
    """Whitespace-collapsed, case-insensitively unique string labels, at most ``limit``."""
    out: List[str] = []
    seen = set()
    for label in labels:
        if not isinstance(label, str):
            continue
        clean = " ".join(label.split())
        if not clean or clean.lower() in seen:
            continue
        seen.add(clean.lower())
        out.append(clean)
        if len(out) >= limit:
            break
    return out


def _title_case(token: str) -> str:
    return " ".join(part[:1].upper() + part[1:] for part in token.split("-") if part)


def frequency_interests(text: str, limit: int = MAX_SEED_INTERESTS) -> List[str]:
    """Deterministic fallback: the most frequent non-stop-word tokens, title-cased.

    Ties keep first-seen order. Hyphenated tokens become space-joined words
    (``rock-climbing`` -> ``Rock Climbing``).
    """
    # "hiking-" and "hiking" count as the same token
    tokens = [t.strip("-").lower() for t in _TOKEN_SPLIT.split(text or "")]
    tokens = [t for t in tokens if len(t) > 2 and t not in STOP_WORDS]
    counts = Counter(tokens)
    top = [token for token, _ in counts.most_common(limit)]
    return normalize_labels((_title_case(t) for t in top), limit=limit)


async def extract_seed_interests(
    combined: str,
    generator: Optional[TextGenerator],
    timeout: Optional[float] = None,
) -> List[str]:
    """Ask the model for ``{"seedInterests": [...]}``; fall back to token frequency."""
    if not combined.strip():
        return []

    labels: List[str] = []
    if generator is not None:
        try:
            raw = await generate_text(
                generator,
                seed_interests_prompt(combined),
                max_tokens=SEED_MAX_TOKENS,
                temperature=0.0,
                task="seedInterests",
                timeout=timeout,
            )
            parsed = parse_strict(raw)
            value = parsed.get("seedInterests")
            if isinstance(value, list):
                labels = normalize_labels(value)
        except (ProviderError, ParseError) as exc:
            logger.warning("Seed interest extraction fell back to token frequency: %s", exc)

    if not labels:
        labels = frequency_interests(combined)
        logger.debug("Frequency seed interests: %s", labels)
    return labels
