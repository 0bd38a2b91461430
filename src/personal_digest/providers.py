"""
Embedding and text-generation capabilities.

The pipeline only depends on the two protocols below. Concrete clients:

- ``GatewayClient``: any OpenAI-compatible endpoint (``/v1/chat/completions``
  and ``/v1/embeddings``) reached over httpx.
- ``GeminiClient``: Google GenAI through the ``google-genai`` SDK.
- ``FakeEmbedder`` / ``EchoGenerator``: deterministic offline stand-ins for
  local development (``PERSONAL_DIGEST_PROVIDER=fake``).
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from typing import Any, Awaitable, Dict, List, Optional, Protocol, Tuple, TypeVar, runtime_checkable

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from .config import Settings, get_model_for_task
from .errors import ProviderError
from .usage import record_call

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, texts: List[str]) -> List[List[float]]:
        ...


@runtime_checkable
class TextGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int = 256,
        temperature: float = 0.2,
        task: Optional[str] = None,
    ) -> str:
        ...


async def with_timeout(awaitable: Awaitable[T], timeout: Optional[float], label: str) -> T:
    """Await with an optional deadline; expiry surfaces as ``ProviderError``."""
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ProviderError(f"{label} timed out after {timeout}s", provider=label) from exc


async def generate_text(
    generator: TextGenerator,
    prompt: str,
    *,
    max_tokens: int,
    temperature: float,
    task: str,
    timeout: Optional[float] = None,
) -> str:
    """Single generation call with a deadline; every failure is a ``ProviderError``."""
    try:
        text = await with_timeout(
            generator.generate(prompt, max_tokens=max_tokens, temperature=temperature, task=task),
            timeout,
            task,
        )
    except ProviderError:
        raise
    except Exception as exc:
        raise ProviderError(f"{task} call failed: {exc}", provider="generation") from exc
    return text if isinstance(text, str) else str(text or "")


class GatewayClient:
    """OpenAI-compatible chat + embeddings client with retry on transient failures."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str],
        *,
        chat_model: str = "gpt-3.5-turbo",
        embed_model: str = "text-embedding-3-small",
        timeout: float = 60.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        # Allow the base URL with or without the /v1 suffix
        base_url = base_url.rstrip("/")
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        self.base_url = base_url
        self.token = token
        self.chat_model = chat_model
        self.embed_model = embed_model
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        last_error: Optional[ProviderError] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    resp = await client.post(url, json=payload, headers=self._headers())
                    resp.raise_for_status()
                    return resp.json()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                last_error = ProviderError(
                    f"{path} HTTP {status}: {exc.response.text[:500]}", provider="gateway", status=status
                )
                if status not in RETRYABLE_STATUS:
                    raise last_error from exc
            except httpx.RequestError as exc:
                last_error = ProviderError(f"{path} request failed: {exc}", provider="gateway")
            except ValueError as exc:
                raise ProviderError(f"{path} returned a non-JSON body", provider="gateway") from exc

            logger.warning("Attempt %d/%d for %s failed: %s", attempt, self.max_retries, path, last_error)
            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * attempt)

        assert last_error is not None
        raise last_error

    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int = 256,
        temperature: float = 0.2,
        task: Optional[str] = None,
    ) -> str:
        model = get_model_for_task(task, self.chat_model, "gateway") if task else self.chat_model
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        start = time.perf_counter()
        try:
            data = await self._post("/v1/chat/completions", payload)
        except ProviderError:
            record_call("gateway", model, None, None, time.perf_counter() - start, ok=False)
            raise
        usage = data.get("usage") or {}
        record_call("gateway", model, usage.get("prompt_tokens"), usage.get("completion_tokens"),
                    time.perf_counter() - start)
        content = (data.get("choices") or [{}])[0].get("message", {}).get("content") or ""
        return content if isinstance(content, str) else str(content)

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        start = time.perf_counter()
        try:
            data = await self._post("/v1/embeddings", {"model": self.embed_model, "input": texts})
        except ProviderError:
            record_call("gateway", self.embed_model, None, None, time.perf_counter() - start, ok=False)
            raise
        usage = data.get("usage") or {}
        record_call("gateway", self.embed_model, usage.get("prompt_tokens"), None, time.perf_counter() - start)
        rows = sorted(data.get("data") or [], key=lambda d: d.get("index", 0))
        return [[float(x) for x in (row.get("embedding") or [])] for row in rows]


class GeminiClient:
    """Google GenAI backed generation and embeddings."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        chat_model: str = "gemini-1.5-flash",
        embed_model: str = "text-embedding-004",
        timeout: float = 60.0,
        client: Any = None,
    ):
        if client is None:
            if not api_key:
                raise ProviderError("Missing GOOGLE_API_KEY / GEMINI_API_KEY", provider="gemini")
            client = genai.Client(api_key=api_key)
        self._client = client
        self.chat_model = chat_model
        self.embed_model = embed_model
        self.timeout = timeout

    async def _call(self, awaitable: Awaitable[T], label: str) -> T:
        try:
            return await with_timeout(awaitable, self.timeout, f"gemini {label}")
        except genai_errors.APIError as exc:
            raise ProviderError(f"gemini {label} failed: {exc}", provider="gemini",
                                status=getattr(exc, "code", None)) from exc

    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int = 256,
        temperature: float = 0.2,
        task: Optional[str] = None,
    ) -> str:
        model = get_model_for_task(task, self.chat_model, "gemini") if task else self.chat_model
        start = time.perf_counter()
        config = genai_types.GenerateContentConfig(max_output_tokens=max_tokens, temperature=temperature)
        try:
            resp = await self._call(
                self._client.aio.models.generate_content(model=model, contents=prompt, config=config),
                "generate",
            )
        except ProviderError:
            record_call("gemini", model, None, None, time.perf_counter() - start, ok=False)
            raise
        meta = getattr(resp, "usage_metadata", None)
        record_call("gemini", model, getattr(meta, "prompt_token_count", None),
                    getattr(meta, "candidates_token_count", None), time.perf_counter() - start)
        return getattr(resp, "text", None) or ""

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        start = time.perf_counter()
        try:
            resp = await self._call(
                self._client.aio.models.embed_content(model=self.embed_model, contents=texts),
                "embed",
            )
        except ProviderError:
            record_call("gemini", self.embed_model, None, None, time.perf_counter() - start, ok=False)
            raise
        record_call("gemini", self.embed_model, None, None, time.perf_counter() - start)
        return [[float(x) for x in (e.values or [])] for e in (resp.embeddings or [])]


def fake_embed_texts(texts: List[str], dim: int = 256) -> List[List[float]]:
    """Deterministic, fast local embedding stand-in.

    Uses sha256(text) to fill a pseudo-vector; equal texts map to equal vectors.
    """
    out: List[List[float]] = []
    for t in texts:
        h = hashlib.sha256((t or "").encode("utf-8")).digest()
        vals: List[float] = []
        while len(vals) < dim:
            for b in h:
                vals.append(b / 255.0)
                if len(vals) >= dim:
                    break
            h = hashlib.sha256(h).digest()
        mean = sum(vals) / dim
        out.append([v - mean for v in vals])
    return out


class FakeEmbedder:
    def __init__(self, dim: int = 256):
        self.dim = dim

    async def embed(self, texts: List[str]) -> List[List[float]]:
        return fake_embed_texts(texts, dim=self.dim)


class EchoGenerator:
    """Returns a fixed reply; the pipeline then runs on its deterministic fallbacks."""

    def __init__(self, reply: str = ""):
        self.reply = reply

    async def generate(self, prompt: str, *, max_tokens: int = 256, temperature: float = 0.2,
                       task: Optional[str] = None) -> str:
        return self.reply


def build_providers(settings: Settings) -> Tuple[EmbeddingProvider, TextGenerator]:
    if settings.provider == "fake":
        return FakeEmbedder(), EchoGenerator()
    if settings.provider == "gemini":
        client = GeminiClient(
            settings.gemini_api_key,
            chat_model=settings.gemini_chat_model,
            embed_model=settings.gemini_embed_model,
            timeout=settings.request_timeout,
        )
        return client, client
    gateway = GatewayClient(
        settings.gateway_url,
        settings.gateway_token,
        chat_model=settings.chat_model,
        embed_model=settings.embed_model,
        timeout=settings.request_timeout,
    )
    return gateway, gateway
