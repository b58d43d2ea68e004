"""Fact extraction module."""

from .types import ExtractedFacts, ExtractionResult, ExtractionRequest
from .prompts import build_extraction_request
from .extractor import FactExtractor, ClaudeExtractor, get_fact_extractor

__all__ = [
    # Types
    "ExtractedFacts",
    "ExtractionResult",
    "ExtractionRequest",
    # Prompting
    "build_extraction_request",
    # Extractor
    "FactExtractor",
    "ClaudeExtractor",
    "get_fact_extractor",
]
