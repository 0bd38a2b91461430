"""Personal-content summarization: posts and comments in, a compact interest profile out."""

from .errors import EmptyInputError, ParseError, PipelineError, ProviderError
from .models import ContentItem, Evidence, PersonalProfileArtifact, PipelineOptions, PipelineTrace
from .pipeline import synthesize_personal_profile, synthesize_personal_profile_traced

__all__ = [
    "ContentItem",
    "EmptyInputError",
    "Evidence",
    "ParseError",
    "PersonalProfileArtifact",
    "PipelineError",
    "PipelineOptions",
    "PipelineTrace",
    "ProviderError",
    "synthesize_personal_profile",
    "synthesize_personal_profile_traced",
]
