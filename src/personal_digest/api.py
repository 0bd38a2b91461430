from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI
from pydantic import BaseModel, Field

from . import usage
from .config import Settings, load_settings
from .logging import setup_logging
from .models import PersonalProfileArtifact, PipelineOptions
from .pipeline import synthesize_personal_profile_traced
from .profile import build_profile, make_profile_prompt, merge_personal_artifact
from .providers import EmbeddingProvider, TextGenerator, build_providers

router = APIRouter(prefix="/api/profile", tags=["profile"])


class PersonalProfileRequest(BaseModel):
    items: List[Dict[str, Any]]
    options: Optional[PipelineOptions] = None


class ProfilePromptRequest(PersonalProfileRequest):
    # Provider profile record (contact, experience, skills, educations, ...)
    profile: Dict[str, Any] = Field(default_factory=dict)


class TracedProfileResponse(BaseModel):
    artifact: PersonalProfileArtifact
    trace: Dict[str, Any]


class Capabilities:
    """Settings and providers shared by the routes of one app."""

    def __init__(self, settings: Settings, embedder: EmbeddingProvider, generator: TextGenerator):
        self.settings = settings
        self.embedder = embedder
        self.generator = generator


def get_capabilities() -> Capabilities:
    # Replaced through app.dependency_overrides by create_app
    settings = load_settings()
    embedder, generator = build_providers(settings)
    return Capabilities(settings, embedder, generator)


async def _run(req: PersonalProfileRequest, caps: Capabilities):
    return await synthesize_personal_profile_traced(
        req.items,
        req.options,
        embedder=caps.embedder,
        generator=caps.generator,
        settings=caps.settings,
    )


@router.post("/personal")
async def personal_profile(req: PersonalProfileRequest, caps: Capabilities = Depends(get_capabilities)) -> Dict[str, Any]:
    artifact, trace = await _run(req, caps)
    data = artifact.to_dict()
    if caps.settings.debug_trace:
        data["trace"] = trace.to_debug_dict()
    return data


@router.post("/personal/trace", response_model=TracedProfileResponse, response_model_exclude_none=True)
async def personal_profile_trace(req: PersonalProfileRequest, caps: Capabilities = Depends(get_capabilities)):
    artifact, trace = await _run(req, caps)
    return TracedProfileResponse(artifact=artifact, trace=trace.to_debug_dict())


@router.post("/prompt")
async def profile_prompt(req: ProfilePromptRequest, caps: Capabilities = Depends(get_capabilities)) -> Dict[str, Any]:
    """Summarize the items, merge the result into the profile facts and render the profile prompt."""
    artifact, _ = await _run(req, caps)
    facts = merge_personal_artifact(build_profile(req.profile), artifact)
    return {
        "prompt": make_profile_prompt(facts),
        "profile": facts.model_dump(),
        "artifact": artifact.to_dict(),
    }


@router.get("/usage")
async def usage_snapshot(reset: bool = False) -> Dict[str, Any]:
    return usage.snapshot(reset=reset)


def create_app(
    settings: Optional[Settings] = None,
    embedder: Optional[EmbeddingProvider] = None,
    generator: Optional[TextGenerator] = None,
) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_level, json_format=settings.log_json)
    if embedder is None or generator is None:
        default_embedder, default_generator = build_providers(settings)
        embedder = embedder or default_embedder
        generator = generator or default_generator
    caps = Capabilities(settings, embedder, generator)

    app = FastAPI(title="personal-digest")
    app.include_router(router)
    app.dependency_overrides[get_capabilities] = lambda: caps
    return app
