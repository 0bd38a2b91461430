import pytest

from personal_digest.config import Settings
from personal_digest.models import ContentItem


class StubGenerator:
    """Scripted text generator keyed by task name.

    A reply may be a string, a callable taking the prompt, or an exception to raise.
    """

    def __init__(self, responses=None, default=""):
        self.responses = dict(responses or {})
        self.default = default
        self.calls = []

    async def generate(self, prompt, *, max_tokens=256, temperature=0.2, task=None):
        self.calls.append({"task": task, "prompt": prompt, "max_tokens": max_tokens, "temperature": temperature})
        reply = self.responses.get(task, self.default)
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply

    def tasks(self):
        return [c["task"] for c in self.calls]


class TopicEmbedder:
    """Two topic axes (hiking, photography) plus one private axis per text.

    Same-topic texts land at cosine 0.8, so they cluster together without
    being treated as near-duplicates.
    """

    def __init__(self):
        self.calls = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        dim = 2 + len(texts)
        vectors = []
        for i, text in enumerate(texts):
            v = [0.0] * dim
            lowered = text.lower()
            if "hik" in lowered:
                v[0] = 2.0
            if "photo" in lowered:
                v[1] = 2.0
            v[2 + i] = 1.0
            vectors.append(v)
        return vectors


class FailingEmbedder:
    def __init__(self, error):
        self.error = error
        self.calls = 0

    async def embed(self, texts):
        self.calls += 1
        raise self.error


def make_item(i, text=None, source_type="post", engagement=0.0, created_at=None, url=None):
    return ContentItem(
        id=f"i{i}",
        sourceType=source_type,
        text=text or f"Item number {i} with enough characters to be kept",
        createdAt=created_at,
        engagement=engagement,
        url=url if url is not None else f"https://example.com/{i}",
    )


HIKING_POSTS = [
    "Spent the whole weekend hiking the ridge trail above the lake.",
    "Early morning hike to the summit, the fog burned off by nine.",
    "New hiking boots finally broke in after forty miles of trail.",
]
PHOTO_POSTS = [
    "Shot the sunset with a vintage 50mm lens, photography is my calm.",
    "Printed my favourite street photography frames for the hallway.",
]


@pytest.fixture
def settings():
    return Settings(request_timeout=5.0, random_seed=7)


@pytest.fixture
def stub_generator():
    return StubGenerator()


@pytest.fixture
def topic_embedder():
    return TopicEmbedder()


@pytest.fixture
def hiking_photo_records():
    posts = HIKING_POSTS + PHOTO_POSTS
    return [
        {"id": f"p{i}", "type": "post", "text": text, "engagement": 0, "url": f"https://example.com/p{i}"}
        for i, text in enumerate(posts)
    ]
