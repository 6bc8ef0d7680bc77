from .extractor import EXTRACTION_RULES, ExtractionRule, InsightExtractor
from .lifecycle import FeedbackDecayManager, feedback_signal
from .manager import MemoryManager
from .ranker import RelevanceRanker, recency_score, relevance_score
from .resolver import MemoryResolver, ResolveAction, ResolveOutcome
from .synthetic import SyntheticMemoryGenerator, determine_emotional_tone

__all__ = [
    "EXTRACTION_RULES",
    "ExtractionRule",
    "InsightExtractor",
    "FeedbackDecayManager",
    "feedback_signal",
    "MemoryManager",
    "RelevanceRanker",
    "recency_score",
    "relevance_score",
    "MemoryResolver",
    "ResolveAction",
    "ResolveOutcome",
    "SyntheticMemoryGenerator",
    "determine_emotional_tone",
]
