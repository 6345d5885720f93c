"""Extraction package interfaces."""

from .body import PatternScanStrategy, SandboxedEvaluationStrategy, build_strategy
from .extractor import ArticleExtractor, DocumentReadError, MissingIdentifierError, read_document
from .models import ExtractedRecord, LinkedDataMetadata, SourceDocument

__all__ = [
    "ArticleExtractor",
    "DocumentReadError",
    "ExtractedRecord",
    "LinkedDataMetadata",
    "MissingIdentifierError",
    "PatternScanStrategy",
    "SandboxedEvaluationStrategy",
    "SourceDocument",
    "build_strategy",
    "read_document",
]
