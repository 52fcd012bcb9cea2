"""Per-program review settings and reviewer expertise."""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float, ForeignKey, JSON
from sqlalchemy.orm import relationship

from ..database import Base


class ScoringMethod(str, Enum):
    """How reviewers' review scores combine into a consensus score."""
    AVERAGE = "average"
    WEIGHTED_AVERAGE = "weighted_average"
    MEDIAN = "median"
    CONSENSUS = "consensus"  # mean, with the agreement check always on


class ExpertiseLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class ReviewSettings(Base):
    """Review configuration for a single program."""

    __tablename__ = "review_settings"

    id = Column(Integer, primary_key=True, index=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False, unique=True, index=True)

    # Coverage and capacity
    min_reviews_per_application = Column(Integer, nullable=False, default=1)
    max_reviews_per_application = Column(Integer, nullable=False, default=3)
    max_reviews_per_reviewer = Column(Integer, nullable=True)

    # Aggregation
    scoring_method = Column(String(30), nullable=False, default=ScoringMethod.AVERAGE.value)
    requires_consensus = Column(Boolean, nullable=False, default=False)
    consensus_threshold = Column(Float, nullable=False, default=0.2)

    # Reviewer experience
    blind_review = Column(Boolean, nullable=False, default=False)
    allow_reviewer_comments = Column(Boolean, nullable=False, default=True)

    # Decision thresholds on the normalized consensus score
    acceptance_threshold = Column(Float, nullable=True)
    waitlist_threshold = Column(Float, nullable=True)
    rejection_threshold = Column(Float, nullable=True)

    template_id = Column(Integer, ForeignKey("review_criteria_templates.id"), nullable=True)
    custom_instructions = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ReviewSettings program={self.program_id} method={self.scoring_method}>"


class ReviewerExpertise(Base):
    """Area of expertise declared by (or verified for) a reviewer."""

    __tablename__ = "reviewer_expertise"

    id = Column(Integer, primary_key=True, index=True)
    reviewer_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    expertise_area = Column(String(200), nullable=False)
    proficiency_level = Column(String(20), nullable=False, default=ExpertiseLevel.BEGINNER.value)
    years_of_experience = Column(Integer, nullable=True)
    specialization_tags = Column(JSON, nullable=False, default=list)

    total_reviews_completed = Column(Integer, nullable=False, default=0)
    reliability_score = Column(Float, nullable=False, default=1.0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    reviewer = relationship("Profile", back_populates="expertise")

    def __repr__(self):
        return f"<ReviewerExpertise reviewer={self.reviewer_id} {self.expertise_area} ({self.proficiency_level})>"
