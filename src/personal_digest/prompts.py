# -*- coding: utf-8 -*-
"""Prompt templates for the personal summarization pipeline.

Templates are plain ``str.format`` strings keyed by operation name; literal
braces in the JSON shapes are doubled.
"""

from typing import Sequence

from .models import Representative

STRICT_JSON_FOOTER = "Return ONLY the JSON object. No commentary, no code fences."

PROMPTS = {
    # ---------- 1. One sentence per cluster ----------
    "cluster_summary": (
        "Summarize the following user posts/comments into a single concise sentence that captures "
        "the author's personal interests, activities, or hobbies. Be succinct and conversational.\n\n"
        "{lines}"
    ),

    # ---------- 2. Seed interest labels ----------
    "seed_interests": (
        "From the following short cluster summaries (one per line), extract up to 6 concise "
        "human-friendly interest labels (no programming languages, no frameworks, no tools, only "
        "human activities or interests). Return strict JSON: "
        '{{"seedInterests": ["...", "..."]}}.\n'
        + STRICT_JSON_FOOTER + "\n\n"
        "{combined}"
    ),

    # ---------- 3. Final structured synthesis ----------
    "profile_synthesis": (
        "You are given short cluster summaries of a user's posts/comments (one per line):\n"
        "{combined}\n\n"
        "Return strict JSON: "
        '{{ "personalSummary": "...", "personalInterests": ["..."], '
        '"evidence": [{{"id": "...", "sourceType": "...", "excerpt": "...", "url": "..."}}], '
        '"provenance": {{"count": {count}}} }}. '
        "personalSummary: 1-2 short sentences (<=200 chars). "
        "personalInterests: up to 6 human-friendly interests. "
        "evidence: up to 3 representative excerpts (<=200 chars each).\n"
        + STRICT_JSON_FOOTER
    ),
}


def cluster_summary_prompt(representatives: Sequence[Representative]) -> str:
    lines = "".join(
        "- [{}] {}\n".format(r.sourceType, r.text.replace("\n", " ")) for r in representatives
    )
    return PROMPTS["cluster_summary"].format(lines=lines)


def seed_interests_prompt(combined: str) -> str:
    return PROMPTS["seed_interests"].format(combined=combined)


def profile_synthesis_prompt(combined: str, count: int) -> str:
    return PROMPTS["profile_synthesis"].format(combined=combined, count=count)
