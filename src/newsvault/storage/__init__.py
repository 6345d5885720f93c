"""Deduplication and record persistence."""

from .dedupe import ClaimDecision, DedupIndex
from .materializer import MaterializationError, RecordMaterializer

__all__ = ["ClaimDecision", "DedupIndex", "MaterializationError", "RecordMaterializer"]
