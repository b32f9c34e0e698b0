from __future__ import annotations

from .json_extractor import JsonExtractor
from .runner import EvaluatorRunner
from .semantic_deduplicator import SemanticDeduplicator
from .dedup_pipeline import DeduplicationPipeline
from .curator import ImpactCurator
from .curation_pipeline import CurationPipeline
from .context_scorer import ContextScorer
from .engine import EvaluationEngine

__all__ = [
    "JsonExtractor",
    "EvaluatorRunner",
    "SemanticDeduplicator",
    "DeduplicationPipeline",
    "ImpactCurator",
    "CurationPipeline",
    "ContextScorer",
    "EvaluationEngine",
]
