"""Review assignments, reviews and per-criterion scores."""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, DateTime, Float, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


class AssignmentStatus(str, Enum):
    """Lifecycle state of a review assignment."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ReviewAssignment(Base):
    """Pairing of one reviewer with one application."""

    __tablename__ = "review_assignments"
    __table_args__ = (
        UniqueConstraint("application_id", "reviewer_id", name="uq_assignment_application_reviewer"),
    )

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    reviewer_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("profiles.id"), nullable=False)

    # Status tracking
    status = Column(String(20), default=AssignmentStatus.NOT_STARTED.value, nullable=False, index=True)

    # Timestamps
    deadline = Column(DateTime, nullable=True)
    assigned_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    application = relationship("Application")
    reviewer = relationship("Profile", foreign_keys=[reviewer_id])
    review = relationship(
        "Review",
        back_populates="assignment",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def is_overdue(self, now: datetime) -> bool:
        return (
            self.deadline is not None
            and self.deadline < now
            and self.status != AssignmentStatus.COMPLETED.value
        )

    def __repr__(self):
        return f"<ReviewAssignment id={self.id} application={self.application_id} reviewer={self.reviewer_id} status={self.status}>"


class Review(Base):
    """A reviewer's write-up for one assignment.

    Legacy reviews carry only overall_score and comments; current reviews
    hold their scoring in ReviewScore rows.
    """

    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    assignment_id = Column(Integer, ForeignKey("review_assignments.id"), nullable=False, unique=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    reviewer_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    comments = Column(Text, nullable=True)
    strengths = Column(Text, nullable=True)
    weaknesses = Column(Text, nullable=True)
    recommendation = Column(String(50), nullable=True)

    # Legacy single overall score (on the legacy_score_max scale)
    overall_score = Column(Float, nullable=True)

    submitted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    assignment = relationship("ReviewAssignment", back_populates="review")
    scores = relationship("ReviewScore", back_populates="review", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Review id={self.id} assignment={self.assignment_id}>"


class ReviewScore(Base):
    """Score given under one criterion within one review."""

    __tablename__ = "review_scores"
    __table_args__ = (
        UniqueConstraint("review_id", "criteria_id", name="uq_review_score_review_criteria"),
    )

    id = Column(Integer, primary_key=True, index=True)
    review_id = Column(Integer, ForeignKey("reviews.id"), nullable=False, index=True)
    criteria_id = Column(Integer, ForeignKey("review_criteria.id"), nullable=False, index=True)

    raw_score = Column(Float, nullable=False)
    normalized_score = Column(Float, nullable=False)
    weight_applied = Column(Float, nullable=False)
    weighted_score = Column(Float, nullable=False)
    rubric_level = Column(String(100), nullable=True)
    score_rationale = Column(Text, nullable=True)
    reviewer_confidence = Column(Float, nullable=True)  # 0-1

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    review = relationship("Review", back_populates="scores")
    criterion = relationship("Criterion", back_populates="scores")

    def __repr__(self):
        return f"<ReviewScore review={self.review_id} criteria={self.criteria_id} raw={self.raw_score}>"
