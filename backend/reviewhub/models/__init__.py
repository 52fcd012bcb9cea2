"""Database models for reviewhub."""
from .program import Profile, Program, Application
from .criterion import Criterion, CriteriaTemplate, ScoringType, TemplateCategory
from .review import ReviewAssignment, AssignmentStatus, Review, ReviewScore
from .reviewer import ReviewSettings, ReviewerExpertise, ScoringMethod, ExpertiseLevel

__all__ = [
    "Profile",
    "Program",
    "Application",
    "Criterion",
    "CriteriaTemplate",
    "ScoringType",
    "TemplateCategory",
    "ReviewAssignment",
    "AssignmentStatus",
    "Review",
    "ReviewScore",
    "ReviewSettings",
    "ReviewerExpertise",
    "ScoringMethod",
    "ExpertiseLevel",
]
