"""Score saving, review submission and the assignment state machine."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import CurrentUser
from ..config import settings
from ..database import upsert
from ..errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    ValidationError,
)
from ..models import (
    Application,
    AssignmentStatus,
    Criterion,
    Review,
    ReviewAssignment,
    ReviewScore,
)
from ..scoring.aggregator import LegacyReview, ReviewVariant, ScoredReview, ScoreLine
from ..scoring.batch import BatchResult
from ..scoring.normalizer import NormalizedScore, normalize_score, score_for_level
from .registry import get_review_settings, is_program_admin
from .scheduler import get_assignment

logger = logging.getLogger(__name__)

SCORE_COLUMNS = (
    "raw_score",
    "normalized_score",
    "weight_applied",
    "weighted_score",
    "rubric_level",
    "score_rationale",
    "reviewer_confidence",
)


@dataclass
class PreparedScore:
    """A validated score entry ready to be written."""
    criterion: Criterion
    score: NormalizedScore
    score_rationale: Optional[str] = None
    reviewer_confidence: Optional[float] = None

    def row(self, review_id: int) -> Dict[str, Any]:
        now = datetime.utcnow()
        return {
            "review_id": review_id,
            "criteria_id": self.criterion.id,
            "raw_score": self.score.raw_score,
            "normalized_score": self.score.normalized_score,
            "weight_applied": self.score.weight_applied,
            "weighted_score": self.score.weighted_score,
            "rubric_level": self.score.rubric_level,
            "score_rationale": self.score_rationale,
            "reviewer_confidence": self.reviewer_confidence,
            "created_at": now,
            "updated_at": now,
        }


@dataclass
class ScoreOutcome:
    """Result of a save or submit: per-row outcomes plus resulting state."""
    assignment: ReviewAssignment
    review: Review
    batch: BatchResult
    review_score: Optional[float]

    @property
    def status(self) -> str:
        return self.assignment.status


# ============================================================================
# Helpers
# ============================================================================

def program_criteria(db: Session, program_id: int) -> List[Criterion]:
    return (
        db.query(Criterion)
        .filter(Criterion.program_id == program_id)
        .order_by(Criterion.sort_order, Criterion.id)
        .all()
    )


def _assigned_reviewer_only(db: Session, user: CurrentUser, assignment_id: int) -> ReviewAssignment:
    assignment = get_assignment(db, assignment_id)
    if assignment.reviewer_id != user.id:
        raise ForbiddenError(
            "You are not the reviewer assigned to this review",
            details={"assignment_id": assignment_id},
        )
    return assignment


def _reject_if_completed(assignment: ReviewAssignment) -> None:
    if assignment.status == AssignmentStatus.COMPLETED.value:
        raise ConflictError(
            "Review is completed and its scores are locked",
            details={"assignment_id": assignment.id},
        )


def prepare_scores(criteria: Sequence[Criterion], entries: Sequence[Dict[str, Any]]) -> List[PreparedScore]:
    """
    Validate and normalize score entries before anything is written.

    The first failing entry's error is raised, carrying every entry's
    problems under details["errors"].
    """
    by_id = {c.id: c for c in criteria}
    prepared: List[PreparedScore] = []
    errors: List[Tuple[Dict[str, Any], ValidationError]] = []
    seen = set()

    for entry in entries:
        criteria_id = entry.get("criteria_id")
        try:
            if criteria_id in seen:
                raise ValidationError("Criterion scored twice in one request", details={"criteria_id": criteria_id})
            seen.add(criteria_id)

            criterion = by_id.get(criteria_id)
            if criterion is None:
                raise ValidationError(
                    "Criterion does not belong to this application's program",
                    details={"criteria_id": criteria_id},
                )

            raw_score = entry.get("raw_score")
            rubric_level = entry.get("rubric_level")
            if raw_score is None:
                if rubric_level is None:
                    raise ValidationError("raw_score is required", details={"criteria_id": criteria_id})
                raw_score = score_for_level(criterion, rubric_level)

            confidence = entry.get("reviewer_confidence")
            if confidence is not None and not (0.0 <= confidence <= 1.0):
                raise ValidationError(
                    "reviewer_confidence must be between 0 and 1",
                    details={"criteria_id": criteria_id},
                )

            prepared.append(PreparedScore(
                criterion=criterion,
                score=normalize_score(raw_score, criterion, rubric_level),
                score_rationale=entry.get("score_rationale"),
                reviewer_confidence=confidence,
            ))
        except ValidationError as e:
            errors.append((entry, e))

    if errors:
        first = errors[0][1]
        first.details = {
            **first.details,
            "errors": [
                {"criteria_id": entry.get("criteria_id"), "kind": e.kind, "message": e.message}
                for entry, e in errors
            ],
        }
        raise first
    return prepared


def _get_or_create_review(db: Session, assignment: ReviewAssignment) -> Review:
    if assignment.review:
        return assignment.review
    review = Review(
        assignment_id=assignment.id,
        application_id=assignment.application_id,
        reviewer_id=assignment.reviewer_id,
    )
    db.add(review)
    db.commit()
    db.refresh(review)
    logger.info(f"Created review {review.id} for assignment {assignment.id}")
    return review


def _write_scores(db: Session, review: Review, prepared: Sequence[PreparedScore]) -> BatchResult:
    """Upsert each score keyed by (review_id, criteria_id); last write wins."""
    result = BatchResult()
    for item in prepared:
        try:
            upsert(
                db,
                ReviewScore,
                item.row(review.id),
                conflict_columns=["review_id", "criteria_id"],
                update_columns=SCORE_COLUMNS + ("updated_at",),
            )
            db.commit()
            result.succeed(item.criterion.id, status="saved")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save score for review {review.id}, criterion {item.criterion.id}: {e}")
            result.fail(item.criterion.id, InternalError("Failed to save score"))
    db.expire(review)
    return result


def saved_scores(db: Session, review_id: int) -> List[ReviewScore]:
    return (
        db.query(ReviewScore)
        .filter(ReviewScore.review_id == review_id)
        .populate_existing()
        .all()
    )


def current_review_score(db: Session, review: Optional[Review]) -> Optional[float]:
    if review is None:
        return None
    return to_variant(review, saved_scores(db, review.id)).score


def missing_required(criteria: Sequence[Criterion], scored_ids) -> List[Criterion]:
    return [c for c in criteria if c.is_required and c.id not in scored_ids]


def to_variant(review: Review, scores: Sequence[ReviewScore]) -> ReviewVariant:
    """Tag a stored review as per-criterion or legacy single-score."""
    if not scores and review.overall_score is not None:
        return LegacyReview(
            reviewer_id=review.reviewer_id,
            overall_score=review.overall_score,
            scale=settings.legacy_score_max,
            comments=review.comments,
        )
    return ScoredReview(
        reviewer_id=review.reviewer_id,
        lines=tuple(
            ScoreLine(criteria_id=s.criteria_id, weighted_score=s.weighted_score, weight_applied=s.weight_applied)
            for s in scores
        ),
    )


# ============================================================================
# Operations
# ============================================================================

def save_scores(
    db: Session,
    user: CurrentUser,
    assignment_id: int,
    entries: Sequence[Dict[str, Any]],
) -> ScoreOutcome:
    """
    Save a partial or full set of scores as a draft.

    The first saved score moves the assignment from not_started to
    in_progress. Completion only happens through submit_review.
    """
    assignment = _assigned_reviewer_only(db, user, assignment_id)
    _reject_if_completed(assignment)
    if not entries:
        raise ValidationError("At least one score is required")

    criteria = program_criteria(db, assignment.application.program_id)
    prepared = prepare_scores(criteria, entries)

    review = _get_or_create_review(db, assignment)
    batch = _write_scores(db, review, prepared)

    if batch.succeeded and assignment.status == AssignmentStatus.NOT_STARTED.value:
        assignment.status = AssignmentStatus.IN_PROGRESS.value
        db.commit()
        logger.info(f"Assignment {assignment.id} moved to in_progress")

    logger.info(f"Saved {len(batch.succeeded)} scores for assignment {assignment.id} ({len(batch.failed)} failed)")
    return ScoreOutcome(assignment, review, batch, current_review_score(db, review))


def submit_review(
    db: Session,
    user: CurrentUser,
    assignment_id: int,
    entries: Sequence[Dict[str, Any]] = (),
    comments: Optional[str] = None,
    strengths: Optional[str] = None,
    weaknesses: Optional[str] = None,
    recommendation: Optional[str] = None,
) -> ScoreOutcome:
    """
    Save final scores and complete the assignment.

    Every required criterion must be covered by the submitted entries plus
    scores saved earlier; otherwise ConflictError is raised and nothing
    changes. If some rows fail to persist the assignment stays in_progress
    and the failures are reported.
    """
    assignment = _assigned_reviewer_only(db, user, assignment_id)
    _reject_if_completed(assignment)

    criteria = program_criteria(db, assignment.application.program_id)
    prepared = prepare_scores(criteria, entries)

    already = {s.criteria_id for s in saved_scores(db, assignment.review.id)} if assignment.review else set()
    missing = missing_required(criteria, already | {p.criterion.id for p in prepared})
    if missing:
        raise ConflictError(
            "All required criteria must be scored before submitting",
            details={"missing": [{"criteria_id": c.id, "name": c.name} for c in missing]},
        )
    _check_comments_allowed(db, assignment, comments, strengths, weaknesses)

    review = _get_or_create_review(db, assignment)
    _apply_comments(review, comments, strengths, weaknesses, recommendation)
    db.commit()

    batch = _write_scores(db, review, prepared)

    scored = {s.criteria_id for s in saved_scores(db, review.id)}
    now = datetime.utcnow()
    if missing_required(criteria, scored):
        assignment.status = AssignmentStatus.IN_PROGRESS.value
        logger.error(f"Assignment {assignment.id} not completed: {len(batch.failed)} scores failed to save")
    else:
        assignment.status = AssignmentStatus.COMPLETED.value
        assignment.completed_at = now
        review.submitted_at = now
        logger.info(f"Assignment {assignment.id} completed")
    db.commit()

    return ScoreOutcome(assignment, review, batch, current_review_score(db, review))


def clear_scores(db: Session, user: CurrentUser, assignment_id: int) -> ReviewAssignment:
    """
    Delete every score of a review and reset the assignment to not_started.

    The assigned reviewer may clear a draft; resetting a completed review
    is reserved for the program owner or a super admin.
    """
    assignment = get_assignment(db, assignment_id)
    admin = is_program_admin(db, user, assignment.application.program_id)
    if not admin:
        if assignment.reviewer_id != user.id:
            raise ForbiddenError("You are not allowed to modify this review", details={"assignment_id": assignment_id})
        if assignment.status == AssignmentStatus.COMPLETED.value:
            raise ForbiddenError(
                "Only the program owner can reset a completed review",
                details={"assignment_id": assignment_id},
            )

    cleared = 0
    if assignment.review:
        cleared = db.query(ReviewScore).filter(ReviewScore.review_id == assignment.review.id).delete(
            synchronize_session=False
        )
        assignment.review.submitted_at = None
    assignment.status = AssignmentStatus.NOT_STARTED.value
    assignment.completed_at = None
    db.commit()
    db.expire_all()

    logger.info(f"Cleared {cleared} scores for assignment {assignment_id}")
    return assignment


def _check_comments_allowed(db: Session, assignment: ReviewAssignment, *texts: Optional[str]) -> None:
    review_settings = get_review_settings(db, assignment.application.program_id)
    if review_settings and not review_settings.allow_reviewer_comments and any(texts):
        raise ValidationError("This program does not accept reviewer comments")


def _apply_comments(
    review: Review,
    comments: Optional[str],
    strengths: Optional[str],
    weaknesses: Optional[str],
    recommendation: Optional[str],
) -> None:
    if comments is not None:
        review.comments = comments
    if strengths is not None:
        review.strengths = strengths
    if weaknesses is not None:
        review.weaknesses = weaknesses
    if recommendation is not None:
        review.recommendation = recommendation


def update_comments(
    db: Session,
    user: CurrentUser,
    assignment_id: int,
    comments: Optional[str] = None,
    strengths: Optional[str] = None,
    weaknesses: Optional[str] = None,
    recommendation: Optional[str] = None,
) -> Review:
    """Edit the review's free-text fields without touching scores."""
    assignment = _assigned_reviewer_only(db, user, assignment_id)
    _reject_if_completed(assignment)
    _check_comments_allowed(db, assignment, comments, strengths, weaknesses)

    review = _get_or_create_review(db, assignment)
    _apply_comments(review, comments, strengths, weaknesses, recommendation)
    db.commit()
    db.refresh(review)
    return review


def get_review(db: Session, user: CurrentUser, assignment_id: int) -> Dict[str, Any]:
    """Assignment, application, criteria and saved scores for one review."""
    assignment = get_assignment(db, assignment_id)
    application: Application = assignment.application
    admin = is_program_admin(db, user, application.program_id)
    if assignment.reviewer_id != user.id and not admin:
        raise ForbiddenError("You are not allowed to view this review", details={"assignment_id": assignment_id})

    review_settings = get_review_settings(db, application.program_id)
    blind = bool(review_settings and review_settings.blind_review and not admin)

    review = assignment.review
    scores = saved_scores(db, review.id) if review else []
    return {
        "assignment": assignment,
        "application": {
            "id": application.id,
            "program_id": application.program_id,
            "applicant_name": None if blind else application.applicant_name,
            "submitted_at": application.submitted_at,
        },
        "review": review,
        "criteria": program_criteria(db, application.program_id),
        "scores": scores,
        "review_score": to_variant(review, scores).score if review else None,
        "is_legacy": bool(review) and isinstance(to_variant(review, scores), LegacyReview),
    }


def list_my_reviews(
    db: Session,
    user: CurrentUser,
    status: Optional[str] = None,
    program_id: Optional[int] = None,
) -> List[ReviewAssignment]:
    """Assignments of the calling reviewer, optionally filtered."""
    query = db.query(ReviewAssignment).filter(ReviewAssignment.reviewer_id == user.id)
    if program_id is not None:
        query = query.join(Application, Application.id == ReviewAssignment.application_id).filter(
            Application.program_id == program_id
        )
    if status == "overdue":
        query = query.filter(
            ReviewAssignment.deadline < datetime.utcnow(),
            ReviewAssignment.status != AssignmentStatus.COMPLETED.value,
        )
    elif status:
        if status not in {s.value for s in AssignmentStatus}:
            raise ValidationError(f"Unknown status '{status}'", details={"status": status})
        query = query.filter(ReviewAssignment.status == status)
    return query.order_by(ReviewAssignment.deadline.is_(None), ReviewAssignment.deadline, ReviewAssignment.id).all()
