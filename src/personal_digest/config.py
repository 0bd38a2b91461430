"""
Runtime settings for the personal summarization pipeline.

Values come from the process environment, after ``.env`` and ``.env.local``
have been loaded with python-dotenv. Every key carries the
``PERSONAL_DIGEST_`` prefix; provider credentials also fall back to the
conventional ``OPENAI_API_KEY`` / ``GOOGLE_API_KEY`` names.
"""
from __future__ import annotations

import os
import re
from typing import Dict, Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ENV_PREFIX = "PERSONAL_DIGEST_"

# Per-task chat model overrides are scoped to one provider, e.g.
# LLM_MODEL_PROFILE_SYNTHESIS=gpt-4o-mini or GEMINI_MODEL_SEED_INTERESTS=gemini-1.5-pro
MODEL_OVERRIDE_PREFIX: Dict[str, str] = {
    "gateway": "LLM_MODEL_",
    "gemini": "GEMINI_MODEL_",
}


class Settings(BaseModel):
    provider: Literal["gateway", "gemini", "fake"] = "gateway"

    # OpenAI-compatible gateway
    gateway_url: str = "https://api.openai.com"
    gateway_token: Optional[str] = None
    chat_model: str = "gpt-3.5-turbo"
    embed_model: str = "text-embedding-3-small"

    # Google GenAI
    gemini_api_key: Optional[str] = None
    gemini_chat_model: str = "gemini-1.5-flash"
    gemini_embed_model: str = "text-embedding-004"

    request_timeout: float = Field(default=60.0, gt=0)
    embed_batch_size: int = Field(default=0, ge=0)  # 0 = one request for all texts
    summary_concurrency: int = Field(default=1, ge=1)
    on_cluster_error: Literal["degrade", "raise"] = "degrade"
    random_seed: Optional[int] = None
    default_limit: int = Field(default=250, gt=0)
    near_dup_threshold: float = Field(default=0.92, gt=0, le=1.0)

    log_level: str = "INFO"
    log_json: bool = False
    debug_trace: bool = False


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _env(environ: Mapping[str, str], key: str, *fallbacks: str) -> Optional[str]:
    for name in (ENV_PREFIX + key, *fallbacks):
        value = environ.get(name)
        if value not in (None, ""):
            return value
    return None


def load_settings(environ: Optional[Mapping[str, str]] = None, *, dotenv: bool = True) -> Settings:
    """Build ``Settings`` from the environment (``os.environ`` by default)."""
    if dotenv and environ is None:
        load_dotenv()
        load_dotenv(dotenv_path=".env.local", override=False)
    env = os.environ if environ is None else environ

    raw = {
        "provider": _env(env, "PROVIDER"),
        "gateway_url": _env(env, "GATEWAY_URL"),
        "gateway_token": _env(env, "GATEWAY_TOKEN", "OPENAI_API_KEY"),
        "chat_model": _env(env, "CHAT_MODEL"),
        "embed_model": _env(env, "EMBED_MODEL"),
        # PERSONAL_DIGEST_GEMINI_API_KEY, then the SDK's own GOOGLE_API_KEY / GEMINI_API_KEY
        "gemini_api_key": _env(env, "GEMINI_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY"),
        "gemini_chat_model": _env(env, "GEMINI_CHAT_MODEL"),
        "gemini_embed_model": _env(env, "GEMINI_EMBED_MODEL"),
        "request_timeout": _env(env, "REQUEST_TIMEOUT"),
        "embed_batch_size": _env(env, "EMBED_BATCH_SIZE"),
        "summary_concurrency": _env(env, "SUMMARY_CONCURRENCY"),
        "on_cluster_error": _env(env, "ON_CLUSTER_ERROR"),
        "random_seed": _env(env, "RANDOM_SEED"),
        "default_limit": _env(env, "DEFAULT_LIMIT"),
        "near_dup_threshold": _env(env, "NEAR_DUP_THRESHOLD"),
        "log_level": _env(env, "LOG_LEVEL"),
        "log_json": _env(env, "LOG_JSON"),
        "debug_trace": _env(env, "DEBUG_TRACE"),
    }
    for flag in ("log_json", "debug_trace"):
        if raw[flag] is not None:
            raw[flag] = _bool(raw[flag])
    return Settings(**{k: v for k, v in raw.items() if v is not None})


def get_model_for_task(task_name: str, default: str, provider: str = "gateway",
                       environ: Optional[Mapping[str, str]] = None) -> str:
    """Chat model for ``task_name`` on ``provider``; ``default`` unless overridden in the environment.

    Both ``<PREFIX>profileSynthesis`` and ``<PREFIX>PROFILE_SYNTHESIS`` are accepted.
    """
    prefix = MODEL_OVERRIDE_PREFIX.get(provider)
    if not prefix:
        return default
    env = os.environ if environ is None else environ
    normalized = re.sub(r"(?<!^)(?=[A-Z])", "_", task_name)
    normalized = re.sub(r"[^A-Za-z0-9]+", "_", normalized).upper()
    return env.get(f"{prefix}{task_name}") or env.get(f"{prefix}{normalized}") or default
