import pytest
from pydantic import ValidationError

from personal_digest.config import Settings, get_model_for_task, load_settings


def test_defaults_without_environment():
    settings = load_settings({}, dotenv=False)
    assert settings == Settings()
    assert settings.provider == "gateway"
    assert settings.default_limit == 250
    assert settings.near_dup_threshold == 0.92
    assert settings.on_cluster_error == "degrade"


def test_prefixed_values_are_read():
    env = {
        "PERSONAL_DIGEST_PROVIDER": "gemini",
        "PERSONAL_DIGEST_GEMINI_API_KEY": "g-key",
        "PERSONAL_DIGEST_REQUEST_TIMEOUT": "12.5",
        "PERSONAL_DIGEST_SUMMARY_CONCURRENCY": "4",
        "PERSONAL_DIGEST_RANDOM_SEED": "42",
        "PERSONAL_DIGEST_LOG_JSON": "true",
        "PERSONAL_DIGEST_DEBUG_TRACE": "0",
    }
    settings = load_settings(env, dotenv=False)
    assert settings.provider == "gemini"
    assert settings.gemini_api_key == "g-key"
    assert settings.request_timeout == 12.5
    assert settings.summary_concurrency == 4
    assert settings.random_seed == 42
    assert settings.log_json is True
    assert settings.debug_trace is False


def test_conventional_key_names_are_fallbacks():
    settings = load_settings({"OPENAI_API_KEY": "sk-1", "GOOGLE_API_KEY": "g-1"}, dotenv=False)
    assert settings.gateway_token == "sk-1"
    assert settings.gemini_api_key == "g-1"

    settings = load_settings(
        {"OPENAI_API_KEY": "sk-1", "PERSONAL_DIGEST_GATEWAY_TOKEN": "tok"}, dotenv=False,
    )
    assert settings.gateway_token == "tok"


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        load_settings({"PERSONAL_DIGEST_PROVIDER": "carrier-pigeon"}, dotenv=False)
    with pytest.raises(ValidationError):
        load_settings({"PERSONAL_DIGEST_ON_CLUSTER_ERROR": "ignore"}, dotenv=False)


def test_get_model_for_task_defaults():
    assert get_model_for_task("seedInterests", "custom", environ={}) == "custom"
    assert get_model_for_task("seedInterests", "custom", "fake", environ={"LLM_MODEL_SEED_INTERESTS": "x"}) == "custom"


@pytest.mark.parametrize("key", ["LLM_MODEL_profileSynthesis", "LLM_MODEL_PROFILE_SYNTHESIS"])
def test_get_model_for_task_env_override(key):
    assert get_model_for_task("profileSynthesis", "custom", environ={key: "gpt-4o-mini"}) == "gpt-4o-mini"


def test_model_overrides_are_scoped_to_provider():
    env = {"LLM_MODEL_PROFILE_SYNTHESIS": "gpt-4o-mini", "GEMINI_MODEL_SEED_INTERESTS": "gemini-1.5-pro"}
    assert get_model_for_task("profileSynthesis", "gemini-1.5-flash", "gemini", environ=env) == "gemini-1.5-flash"
    assert get_model_for_task("seedInterests", "gemini-1.5-flash", "gemini", environ=env) == "gemini-1.5-pro"
    assert get_model_for_task("seedInterests", "gpt-3.5-turbo", "gateway", environ=env) == "gpt-3.5-turbo"


def test_bare_gemini_key_is_a_fallback():
    settings = load_settings({"GEMINI_API_KEY": "bare"}, dotenv=False)
    assert settings.gemini_api_key == "bare"
    settings = load_settings({"GEMINI_API_KEY": "bare", "PERSONAL_DIGEST_GEMINI_API_KEY": "scoped"}, dotenv=False)
    assert settings.gemini_api_key == "scoped"
