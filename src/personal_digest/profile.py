"""Profile facts from a provider record, and the downstream profile prompt.

``build_profile`` normalizes the structured part of a profile (name,
affiliation, skills, education); ``merge_personal_artifact`` attaches the
output of the personal summarization pipeline; ``make_profile_prompt``
renders the prompt that turns both into a short public profile.
"""

import re
from collections import Counter
from typing import Any, List, Mapping

from pydantic import BaseModel, Field

from .models import Evidence, PersonalProfileArtifact

TOP_SKILLS = 12

_PARENTHETICAL = re.compile(r"\s*\([^)]*\)")


class ProfileFacts(BaseModel):
    name: str = ""
    affiliation: str = ""
    department: str = ""
    workInterests: List[str] = Field(default_factory=list)
    topSkills: List[str] = Field(default_factory=list)
    personalInterests: List[str] = Field(default_factory=list)
    education: List[str] = Field(default_factory=list)
    bio: str = ""

    # Filled from the personal summarization artifact
    personalSummary: str = ""
    personalSummaryInterests: List[str] = Field(default_factory=list)
    personalSeedInterests: List[str] = Field(default_factory=list)
    personalEvidence: List[Evidence] = Field(default_factory=list)


def _first_str(data: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _contact_name(contact: Mapping[str, Any]) -> str:
    full = _first_str(contact, "fullName", "full_name", "fullname", "name")
    if full:
        return full
    first = _first_str(contact, "firstName", "first_name", "first")
    last = _first_str(contact, "lastName", "last_name", "last")
    return " ".join(part for part in (first, last) if part)


def normalize_skill(skill: str) -> str:
    """Collapse whitespace, drop parentheticals, capitalize each word."""
    clean = _PARENTHETICAL.sub("", " ".join(skill.split())).strip()
    return " ".join(w[:1].upper() + w[1:] for w in clean.split(" ") if w)


def _skills(raw: Mapping[str, Any]) -> List[str]:
    names: List[str] = []
    for s in _list(raw.get("skills")):
        if isinstance(s, Mapping):
            s = s.get("skill") or s.get("name")
        if isinstance(s, str):
            names.append(s)
    for exp in _list(raw.get("experience")):
        if isinstance(exp, Mapping):
            names.extend(s for s in _list(exp.get("skills")) if isinstance(s, str))

    # Repeats are kept so topSkills can rank by frequency
    return [skill for skill in map(normalize_skill, names) if len(skill) > 1]


def _personal_interests(raw: Mapping[str, Any]) -> List[str]:
    found: List[str] = []
    for v in _list(raw.get("volunteers")):
        found.append(_first_str(v, "cause", "organization", "title", "description") if isinstance(v, Mapping) else v)
    for p in _list(raw.get("publications")):
        found.append(_first_str(p, "title", "publication", "description") if isinstance(p, Mapping) else p)
    for e in _list(raw.get("educations")):
        if isinstance(e, Mapping):
            found.append(_first_str(e, "activities"))
    return [s for s in dict.fromkeys(found) if isinstance(s, str) and s]


def _education(raw: Mapping[str, Any]) -> List[str]:
    out = []
    for e in _list(raw.get("educations")):
        if not isinstance(e, Mapping):
            continue
        degree, school = _first_str(e, "degree"), _first_str(e, "school")
        text = f"{degree} at {school}" if degree and school else degree or school
        if text:
            out.append(text)
    return out


def build_profile(raw: Mapping[str, Any]) -> ProfileFacts:
    """Normalize a provider's profile record; missing sections leave fields empty."""
    contact = raw.get("contact")
    name = _contact_name(contact) if isinstance(contact, Mapping) else ""

    experience = [e for e in _list(raw.get("experience")) if isinstance(e, Mapping)]
    educations = [e for e in _list(raw.get("educations")) if isinstance(e, Mapping)]
    affiliation = department = bio = ""
    if experience:
        company = experience[0].get("company")
        affiliation = _first_str(company, "name") if isinstance(company, Mapping) else ""
        department = _first_str(experience[0], "title")
        bio = _first_str(experience[0], "description")
    elif educations:
        bio = _first_str(educations[0], "description")

    mentions = _skills(raw)
    work = list(dict.fromkeys(mentions))
    top = [skill for skill, _ in Counter(mentions).most_common(TOP_SKILLS)]

    return ProfileFacts(
        name=name,
        affiliation=affiliation,
        department=department,
        workInterests=work,
        topSkills=top,
        personalInterests=_personal_interests(raw),
        education=_education(raw),
        bio=bio,
    )


def merge_personal_artifact(profile: ProfileFacts, artifact: PersonalProfileArtifact) -> ProfileFacts:
    return profile.model_copy(update={
        "personalSummary": artifact.personalSummary,
        "personalSummaryInterests": list(artifact.personalInterests),
        "personalSeedInterests": list(artifact.seedInterests),
        "personalEvidence": list(artifact.evidence),
    })


PROFILE_PROMPT = """You are an AI that creates a short personal profile for someone using their professional profile data.

Known name (from contact): {name}
Affiliation: {affiliation}
Department / Title: {department}
Top Skills: {top_skills}
Other Skills: {other_skills}
Personal Interests (raw): {raw_interests}
Education: {education}

Compact personal summary (from user's posts/about): {summary}
Compact personal interests (from summarizer): {summary_interests}
Seed interests (deterministic candidates from content): {seed_interests}
Evidence excerpts: {evidence}

INSTRUCTIONS (IMPORTANT):
- Return ONLY a single JSON object and nothing else.
- Use this exact schema (keys and types):
{{
  "Name": string,
  "Affiliation": string,
  "JobTitle": string,
  "WorkInterests": [string],
  "PersonalInterests": [string],
  "Bio": string,
  "FunFact": string,
  "Provenance": {{ "PersonalInterests": string, "FunFact": string }}
}}

Rules:
- If Known name is provided above, use it exactly for "Name". Otherwise use "[Unknown]".
- Prefer the compact personal summary and evidence excerpts when synthesizing PersonalInterests and FunFact; only use the raw personal interests if no compact summary is available.
- Group Top Skills and Other Skills into up to 6 human-friendly, title-cased WorkInterests. Do NOT list languages, frameworks, libraries, company names or job titles.
- Synthesize up to 6 PersonalInterests. If seed interests are present, PersonalInterests must NOT be empty: include the top 3-6 seeds and mark low-confidence items as inferred.
- Bio: 1-2 short first-person sentences ("I ..."), casual, without the person's name and without restating the job title.
- FunFact: at most 12 words about a hobby or non-work passion; empty string if nothing can be inferred.
- Provenance values: "ai", "seed", "inferred" or "none".

Return ONLY the JSON object. No explanatory text, no backticks, no markdown."""


def _joined(values: List[str], sep: str = ", ", empty: str = "") -> str:
    return sep.join(values) if values else empty


def make_profile_prompt(profile: ProfileFacts, evidence_limit: int = 3) -> str:
    summary = profile.personalSummary.replace('"', '\\"')
    excerpts = [e.excerpt for e in profile.personalEvidence[:evidence_limit] if e.excerpt]
    return PROFILE_PROMPT.format(
        name=profile.name or "[Unknown]",
        affiliation=profile.affiliation,
        department=profile.department,
        top_skills=_joined(profile.topSkills or profile.workInterests),
        other_skills=_joined(profile.workInterests),
        raw_interests=_joined(profile.personalInterests),
        education=_joined(profile.education, sep="; "),
        summary=f'"{summary}"' if summary else "[none]",
        summary_interests=_joined(profile.personalSummaryInterests, empty="[none]"),
        seed_interests=_joined(profile.personalSeedInterests, empty="[none]"),
        evidence=_joined(excerpts, sep=" || "),
    )

