"""Error types raised inside the personal summarization pipeline.

Only ``ProviderError`` is expected to cross module boundaries; the pipeline
and synthesizer turn everything into the artifact's ``error`` field.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base error for the personal summarization pipeline."""


class ProviderError(PipelineError):
    """An embedding or text-generation call failed (status, network or timeout)."""

    def __init__(self, message: str, *, provider: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status


class ParseError(PipelineError):
    """A generation call returned text that could not be read as the requested JSON."""

    def __init__(self, message: str, *, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class EmptyInputError(PipelineError):
    """No eligible items survived normalization or selection."""

    def __init__(self, count: int):
        super().__init__(f"No eligible items among {count} input record(s)")
        self.count = count
