"""Final structured synthesis with repair and deterministic fallback.

States: generate -> strict parse -> sanitized parse -> deterministic
fallback. ``synthesize_profile`` always returns a well-formed
``PersonalProfileArtifact``; generation and parse failures end up in its
``error`` field.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from .errors import ParseError, ProviderError
from .models import ClusterSummary, ContentItem, Evidence, PersonalProfileArtifact
from .prompts import profile_synthesis_prompt
from .providers import TextGenerator, generate_text
from .repair import parse_json_object
from .seeds import frequency_interests
from .summarizer import combine_summaries

logger = logging.getLogger(__name__)

SYNTHESIS_MAX_TOKENS = 220
SYNTHESIS_TEMPERATURE = 0.2
FALLBACK_SUMMARIES = 3
FALLBACK_EVIDENCE = 3


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _coerce_interests(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def _coerce_evidence(value: Any) -> List[Evidence]:
    if not isinstance(value, list):
        return []
    evidence = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        evidence.append(Evidence(
            id=_as_str(entry.get("id")),
            sourceType=_as_str(entry.get("sourceType")),
            excerpt=_as_str(entry.get("excerpt")),
            url=_as_str(entry.get("url")),
        ))
    return evidence


def artifact_from_parsed(
    parsed: Dict[str, Any],
    *,
    seed_interests: Sequence[str],
    input_count: int,
    raw_text: str,
) -> PersonalProfileArtifact:
    provenance = parsed.get("provenance")
    if not isinstance(provenance, dict) or not provenance:
        provenance = {"count": input_count}
    return PersonalProfileArtifact(
        personalSummary=_as_str(parsed.get("personalSummary")).strip(),
        personalInterests=_coerce_interests(parsed.get("personalInterests")),
        seedInterests=list(seed_interests),
        evidence=_coerce_evidence(parsed.get("evidence")),
        provenance=provenance,
        rawFinalText=raw_text,
    )


def fallback_artifact(
    summaries: Sequence[ClusterSummary],
    *,
    seed_interests: Sequence[str],
    items: Sequence[ContentItem],
    input_count: int,
    raw_text: str,
    error: str,
) -> PersonalProfileArtifact:
    """Assemble the artifact from already-computed data, with no further model calls."""
    summary = " ".join([s.summaryText for s in summaries if s.summaryText][:FALLBACK_SUMMARIES])
    interests = list(seed_interests) or frequency_interests(combine_summaries(summaries))
    return PersonalProfileArtifact(
        personalSummary=summary,
        personalInterests=interests,
        seedInterests=list(seed_interests),
        evidence=[Evidence.from_item(item) for item in items[:FALLBACK_EVIDENCE]],
        provenance={"count": input_count, "parsed": False},
        rawFinalText=raw_text,
        error=error,
    )


async def synthesize_profile(
    summaries: Sequence[ClusterSummary],
    *,
    seed_interests: Sequence[str],
    items: Sequence[ContentItem],
    input_count: int,
    generator: Optional[TextGenerator],
    timeout: Optional[float] = None,
) -> PersonalProfileArtifact:
    combined = combine_summaries(summaries)
    raw_text = ""

    try:
        if generator is None:
            raise ProviderError("No text generator configured", provider="generation")
        raw_text = await generate_text(
            generator,
            profile_synthesis_prompt(combined, input_count),
            max_tokens=SYNTHESIS_MAX_TOKENS,
            temperature=SYNTHESIS_TEMPERATURE,
            task="profileSynthesis",
            timeout=timeout,
        )
        parsed, stage = parse_json_object(raw_text)
    except (ProviderError, ParseError) as exc:
        logger.warning("Profile synthesis fell back to deterministic assembly: %s", exc)
        return fallback_artifact(
            summaries,
            seed_interests=seed_interests,
            items=items,
            input_count=input_count,
            raw_text=raw_text,
            error=str(exc) or "Failed to parse JSON from model",
        )

    if stage != "strict":
        logger.info("Profile synthesis output needed textual repair")
    return artifact_from_parsed(parsed, seed_interests=seed_interests, input_count=input_count, raw_text=raw_text)
