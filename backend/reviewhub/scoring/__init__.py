"""Scoring and aggregation engine components."""
from .criteria import CriteriaDefinition, validate_definition, DEFAULT_TEMPLATES
from .normalizer import NormalizedScore, normalize_score
from .aggregator import ScoreLine, ScoredReview, LegacyReview, consensus, rank_applications
from .templates import expand_template
from .workload import Workload, workloads_by_reviewer, plan_auto_assignment
from .batch import BatchResult

__all__ = [
    "CriteriaDefinition",
    "validate_definition",
    "DEFAULT_TEMPLATES",
    "NormalizedScore",
    "normalize_score",
    "ScoreLine",
    "ScoredReview",
    "LegacyReview",
    "consensus",
    "rank_applications",
    "expand_template",
    "Workload",
    "workloads_by_reviewer",
    "plan_auto_assignment",
    "BatchResult",
]
