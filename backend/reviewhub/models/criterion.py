"""Scoring criteria and reusable criteria templates."""
from datetime import datetime
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float, ForeignKey, JSON
from sqlalchemy.orm import relationship

from ..database import Base


class ScoringType(str, enum.Enum):
    """How a raw score under a criterion is interpreted."""
    NUMERICAL = "numerical"
    CATEGORICAL = "categorical"
    BINARY = "binary"
    RUBRIC = "rubric"
    WEIGHTED = "weighted"


class TemplateCategory(str, enum.Enum):
    """Kind of program a criteria template is written for."""
    WORKSHOP = "workshop"
    CONFERENCE = "conference"
    HACKATHON = "hackathon"
    BOOTCAMP = "bootcamp"
    SEMINAR = "seminar"
    RETREAT = "retreat"
    CERTIFICATION = "certification"
    COMPETITION = "competition"
    FELLOWSHIP = "fellowship"
    RESIDENCY = "residency"


class Criterion(Base):
    """One scoring dimension defined for a program."""

    __tablename__ = "review_criteria"

    id = Column(Integer, primary_key=True, index=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False, index=True)

    # Cosmetic fields (editable after scores exist)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    scoring_guide = Column(Text, nullable=True)
    sort_order = Column(Integer, nullable=False, default=1, index=True)

    # Scoring definition (frozen once a score references the criterion)
    scoring_type = Column(String(20), nullable=False, default=ScoringType.NUMERICAL.value)
    weight = Column(Float, nullable=False, default=1.0)
    min_score = Column(Float, nullable=False, default=0.0)
    max_score = Column(Float, nullable=False)

    # Ordered mapping of level -> score, e.g. {"poor": 1, "good": 3, "excellent": 5}
    rubric_definition = Column(JSON, nullable=False, default=dict)

    is_required = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    program = relationship("Program", back_populates="criteria")
    scores = relationship("ReviewScore", back_populates="criterion")

    COSMETIC_FIELDS = ("name", "description", "scoring_guide", "sort_order")

    def __repr__(self):
        return f"<Criterion {self.id} {self.name} type={self.scoring_type} weight={self.weight}>"


class CriteriaTemplate(Base):
    """Reusable list of criteria definitions for a category of program."""

    __tablename__ = "review_criteria_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(30), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # List of criteria definitions (see scoring.criteria.CriteriaDefinition)
    criteria_definition = Column(JSON, nullable=False, default=list)
    total_max_score = Column(Float, nullable=False, default=0.0)

    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<CriteriaTemplate {self.id} {self.name} ({self.category})>"
