import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from .models import MAX_TEXT_CHARS, MIN_TEXT_CHARS, ContentItem, SourceType

logger = logging.getLogger(__name__)

ID_FIELDS = ("id", "urn", "post_id", "postId", "comment_id", "commentId")
TYPE_FIELDS = ("sourceType", "source_type", "type")
TIME_FIELDS = ("createdAt", "created_at", "date", "posted_at", "postedAt", "timestamp")
ENGAGEMENT_FIELDS = ("engagement", "likes", "num_likes", "reactions", "total_reactions", "reaction_count")
URL_FIELDS = ("url", "post_url", "postUrl", "link", "permalink")

# Where each source type usually keeps its body text, best first
TEXT_FIELDS: Dict[str, Sequence[str]] = {
    "post": ("text", "content", "commentary", "body"),
    "comment": ("text", "comment", "content", "body"),
    "reply": ("text", "comment", "content", "body"),
    "recommendation": ("text", "recommendation", "body"),
    "media": ("caption", "text", "title", "description"),
    "reaction": ("text", "title", "content", "commentary"),
}
DEFAULT_TEXT_FIELDS = ("text", "content", "body")


def _as_mapping(record: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(record, Mapping):
        return record
    if isinstance(record, BaseModel):
        return record.model_dump()
    if hasattr(record, "__dict__"):
        return vars(record)
    return None


def _first(record: Mapping[str, Any], fields: Iterable[str]) -> Any:
    for name in fields:
        value = record.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes, ISO strings and epoch seconds/milliseconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = float(value)
        if seconds > 1e11:  # milliseconds
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    if text.lstrip("-").replace(".", "", 1).isdigit():
        return parse_timestamp(float(text))
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_engagement(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def normalize_item(record: Any, default_type: Optional[str] = None) -> Optional[ContentItem]:
    """Build a ``ContentItem`` from one raw record, or ``None`` when it is ineligible."""
    data = _as_mapping(record)
    if data is None:
        logger.debug("Skipping record of type %s", type(record).__name__)
        return None

    source_type = _as_text(_first(data, TYPE_FIELDS) or default_type or SourceType.post.value)
    source_type = source_type.strip().lower() or SourceType.post.value

    text = _as_text(_first(data, TEXT_FIELDS.get(source_type, DEFAULT_TEXT_FIELDS)))
    text = text.strip()[:MAX_TEXT_CHARS]
    if len(text) <= MIN_TEXT_CHARS:
        return None

    return ContentItem(
        id=_as_text(_first(data, ID_FIELDS)),
        sourceType=source_type,
        text=text,
        createdAt=parse_timestamp(_first(data, TIME_FIELDS)),
        engagement=parse_engagement(_first(data, ENGAGEMENT_FIELDS)),
        url=_as_text(_first(data, URL_FIELDS)),
    )


def normalize_items(records: Optional[Iterable[Any]], default_type: Optional[str] = None) -> List[ContentItem]:
    if not records:
        return []
    items: List[ContentItem] = []
    total = 0
    for record in records:
        total += 1
        item = normalize_item(record, default_type=default_type)
        if item is not None:
            items.append(item)
    logger.debug("Normalized %d/%d records", len(items), total)
    return items
