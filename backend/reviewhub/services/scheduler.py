"""Review assignment creation, removal and auto-assignment."""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import CurrentUser, REVIEWER
from ..database import upsert
from ..errors import (
    ConflictError,
    InternalError,
    InvalidApplicationError,
    NotFoundError,
    ValidationError,
)
from ..models import Application, AssignmentStatus, Profile, ReviewAssignment
from ..scoring.batch import BatchResult
from ..scoring.workload import plan_auto_assignment
from .registry import (
    applications_of_program,
    effective_settings,
    get_program,
    is_program_admin,
    require_program_owner,
)

logger = logging.getLogger(__name__)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store datetimes as naive UTC, like every other timestamp column."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def get_assignment(db: Session, assignment_id: int) -> ReviewAssignment:
    assignment = db.query(ReviewAssignment).filter(ReviewAssignment.id == assignment_id).first()
    if not assignment:
        raise NotFoundError("Review assignment not found", details={"assignment_id": assignment_id})
    return assignment


def list_assignments(db: Session, user: CurrentUser, program_id: int) -> List[ReviewAssignment]:
    """Program owners see every assignment; anyone else sees only their own."""
    get_program(db, program_id)
    query = (
        db.query(ReviewAssignment)
        .join(Application, Application.id == ReviewAssignment.application_id)
        .filter(Application.program_id == program_id)
    )
    if not is_program_admin(db, user, program_id):
        query = query.filter(ReviewAssignment.reviewer_id == user.id)
    return query.order_by(ReviewAssignment.application_id, ReviewAssignment.reviewer_id).all()


def _require_reviewer(db: Session, reviewer_id: int) -> Profile:
    reviewer = db.query(Profile).filter(Profile.id == reviewer_id).first()
    if not reviewer or not reviewer.has_role(REVIEWER):
        raise NotFoundError("Reviewer not found or lacks the reviewer role", details={"reviewer_id": reviewer_id})
    return reviewer


def _program_assignment_counts(db: Session, program_id: int, column) -> Dict[int, int]:
    rows = (
        db.query(column, func.count(ReviewAssignment.id))
        .join(Application, Application.id == ReviewAssignment.application_id)
        .filter(Application.program_id == program_id)
        .group_by(column)
        .all()
    )
    return {key: count for key, count in rows}


def _existing_pairs(db: Session, program_id: int) -> set:
    rows = (
        db.query(ReviewAssignment.application_id, ReviewAssignment.reviewer_id)
        .join(Application, Application.id == ReviewAssignment.application_id)
        .filter(Application.program_id == program_id)
        .all()
    )
    return {(a, r) for a, r in rows}


def _insert_pairs(
    db: Session,
    pairs: Sequence[Tuple[int, int]],
    assigned_by: int,
    deadline: Optional[datetime],
) -> Tuple[BatchResult, List[ReviewAssignment]]:
    """
    Conflict-safe insert of (application_id, reviewer_id) pairs.

    An existing pair is returned untouched, deadline included.
    """
    result = BatchResult()
    assignments = []
    for application_id, reviewer_id in pairs:
        key = f"{application_id}:{reviewer_id}"
        try:
            created = upsert(
                db,
                ReviewAssignment,
                {
                    "application_id": application_id,
                    "reviewer_id": reviewer_id,
                    "assigned_by": assigned_by,
                    "deadline": deadline,
                    "status": AssignmentStatus.NOT_STARTED.value,
                    "assigned_at": datetime.utcnow(),
                },
                conflict_columns=["application_id", "reviewer_id"],
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create assignment {key}: {e}")
            result.fail(key, InternalError("Failed to create assignment"))
            continue

        assignment = db.query(ReviewAssignment).filter(
            ReviewAssignment.application_id == application_id,
            ReviewAssignment.reviewer_id == reviewer_id,
        ).first()
        assignments.append(assignment)
        result.succeed(key, status="created" if created else "already_exists")
    return result, assignments


def create_assignments(
    db: Session,
    user: CurrentUser,
    program_id: int,
    application_ids: Sequence[int],
    reviewer_id: int,
    deadline: Optional[datetime] = None,
) -> Tuple[BatchResult, List[ReviewAssignment]]:
    """
    Assign one reviewer to several applications of a program.

    All checks run before the first write. Existing pairs are reported as
    already_exists and keep their original deadline.
    """
    require_program_owner(db, user, program_id)

    application_ids = list(dict.fromkeys(application_ids))
    if not application_ids:
        raise ValidationError("At least one application id is required")

    found = set(applications_of_program(db, program_id))
    invalid = [a for a in application_ids if a not in found]
    if invalid:
        raise InvalidApplicationError(
            "Some applications do not belong to this program",
            details={"application_ids": invalid},
        )

    _require_reviewer(db, reviewer_id)

    pairs = _existing_pairs(db, program_id)
    new_ids = [a for a in application_ids if (a, reviewer_id) not in pairs]

    review_settings = effective_settings(db, program_id)
    if new_ids:
        if review_settings.max_reviews_per_reviewer is not None:
            current = _program_assignment_counts(db, program_id, ReviewAssignment.reviewer_id).get(reviewer_id, 0)
            if current + len(new_ids) > review_settings.max_reviews_per_reviewer:
                raise ConflictError(
                    "Reviewer would exceed the program's per-reviewer capacity",
                    details={
                        "reviewer_id": reviewer_id,
                        "current": current,
                        "requested": len(new_ids),
                        "max_reviews_per_reviewer": review_settings.max_reviews_per_reviewer,
                    },
                )
        per_application = _program_assignment_counts(db, program_id, ReviewAssignment.application_id)
        full = [a for a in new_ids if per_application.get(a, 0) >= review_settings.max_reviews_per_application]
        if full:
            raise ConflictError(
                "Some applications already have the maximum number of reviewers",
                details={"application_ids": full,
                         "max_reviews_per_application": review_settings.max_reviews_per_application},
            )

    result, assignments = _insert_pairs(
        db,
        [(a, reviewer_id) for a in application_ids],
        assigned_by=user.id,
        deadline=as_naive_utc(deadline),
    )
    created = sum(1 for item in result.items if item.status == "created")
    logger.info(
        f"Assigned reviewer {reviewer_id} in program {program_id}: "
        f"{created} created, {len(result.items) - created - len(result.failed)} already existed"
    )
    return result, assignments


def delete_assignment(db: Session, user: CurrentUser, assignment_id: int) -> Dict[str, int]:
    """Delete an assignment together with its review and scores."""
    assignment = get_assignment(db, assignment_id)
    program_id = assignment.application.program_id
    require_program_owner(db, user, program_id)

    review = assignment.review
    removed = {
        "assignments": 1,
        "reviews": 1 if review else 0,
        "scores": len(review.scores) if review else 0,
    }
    db.delete(assignment)
    db.commit()
    logger.info(f"Deleted assignment {assignment_id} (program {program_id}): {removed}")
    return removed


def open_workloads(db: Session, reviewer_ids: Sequence[int]) -> Dict[int, int]:
    """Not-started plus in-progress assignments per reviewer, across programs."""
    rows = (
        db.query(ReviewAssignment.reviewer_id, func.count(ReviewAssignment.id))
        .filter(
            ReviewAssignment.reviewer_id.in_(list(reviewer_ids)),
            ReviewAssignment.status.in_([AssignmentStatus.NOT_STARTED.value, AssignmentStatus.IN_PROGRESS.value]),
        )
        .group_by(ReviewAssignment.reviewer_id)
        .all()
    )
    counts = {reviewer_id: 0 for reviewer_id in reviewer_ids}
    counts.update({reviewer_id: count for reviewer_id, count in rows})
    return counts


def reviewer_profiles(db: Session, reviewer_ids: Optional[Sequence[int]] = None) -> List[Profile]:
    """Profiles holding the reviewer role, optionally restricted to given ids."""
    query = db.query(Profile)
    if reviewer_ids is not None:
        query = query.filter(Profile.id.in_(list(reviewer_ids)))
    return [p for p in query.order_by(Profile.id).all() if p.has_role(REVIEWER)]


def list_available_reviewers(db: Session, user: CurrentUser, program_id: int) -> List[Dict]:
    """Reviewers with their expertise summary and current open workload."""
    require_program_owner(db, user, program_id)
    reviewers = reviewer_profiles(db)
    workloads = open_workloads(db, [r.id for r in reviewers])

    result = []
    for reviewer in reviewers:
        expertise = list(reviewer.expertise)
        primary = expertise[0] if expertise else None
        result.append({
            "id": reviewer.id,
            "full_name": reviewer.full_name or "Unknown",
            "email": reviewer.email,
            "expertise": [e.expertise_area for e in expertise],
            "specialization_tags": primary.specialization_tags if primary else [],
            "total_reviews_completed": primary.total_reviews_completed if primary else 0,
            "years_of_experience": (primary.years_of_experience or 0) if primary else 0,
            "proficiency_level": primary.proficiency_level if primary else "beginner",
            "current_workload": workloads.get(reviewer.id, 0),
        })
    return result


def auto_assign_reviewers(
    db: Session,
    user: CurrentUser,
    program_id: int,
    reviewers_per_application: Optional[int] = None,
    reviewer_ids: Optional[Sequence[int]] = None,
    deadline: Optional[datetime] = None,
) -> Tuple[BatchResult, List[ReviewAssignment]]:
    """
    Top up every submitted application to the required number of reviewers.

    Reviewers are picked by ascending open workload, ties by reviewer id,
    within per-reviewer and per-application capacity.
    """
    require_program_owner(db, user, program_id)
    review_settings = effective_settings(db, program_id)

    per_application = reviewers_per_application or review_settings.min_reviews_per_application or 1
    if per_application < 1:
        raise ValidationError("reviewers_per_application must be at least 1")
    if review_settings.max_reviews_per_application:
        per_application = min(per_application, review_settings.max_reviews_per_application)

    reviewers = reviewer_profiles(db, reviewer_ids)
    if reviewer_ids is not None:
        missing = sorted(set(reviewer_ids) - {r.id for r in reviewers})
        if missing:
            raise NotFoundError("Reviewer not found or lacks the reviewer role", details={"reviewer_ids": missing})
    if not reviewers:
        raise ValidationError("No eligible reviewers to assign")

    loads = open_workloads(db, [r.id for r in reviewers])

    capacity = None
    if review_settings.max_reviews_per_reviewer is not None:
        in_program = _program_assignment_counts(db, program_id, ReviewAssignment.reviewer_id)
        capacity = {
            r.id: max(0, review_settings.max_reviews_per_reviewer - in_program.get(r.id, 0))
            for r in reviewers
        }

    application_ids = [
        row[0] for row in db.query(Application.id)
        .filter(Application.program_id == program_id, Application.submitted_at.isnot(None))
        .order_by(Application.submitted_at, Application.id)
        .all()
    ]

    plan = plan_auto_assignment(
        application_ids,
        reviewer_loads=loads,
        per_application=per_application,
        existing_pairs=_existing_pairs(db, program_id),
        existing_counts=_program_assignment_counts(db, program_id, ReviewAssignment.application_id),
        remaining_capacity=capacity,
    )

    result, assignments = _insert_pairs(db, plan, assigned_by=user.id, deadline=as_naive_utc(deadline))
    logger.info(f"Auto-assigned {len(result.succeeded)} reviews in program {program_id} ({per_application} per application)")
    return result, assignments
