"""Reviewer statistics, workload reporting and application ranking."""
import logging
import statistics
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..auth import CurrentUser
from ..models import (
    Application,
    AssignmentStatus,
    ExpertiseLevel,
    Profile,
    Review,
    ReviewAssignment,
    ReviewerExpertise,
    ReviewScore,
    ScoringMethod,
)
from ..scoring.aggregator import Standing, consensus, decide, rank_applications
from ..scoring.workload import Workload, workloads_by_reviewer
from .registry import effective_settings, get_program, require_program_owner
from .reviews import to_variant

logger = logging.getLogger(__name__)

PROFICIENCY_WEIGHTS = {
    ExpertiseLevel.BEGINNER.value: 1.0,
    ExpertiseLevel.INTERMEDIATE.value: 1.25,
    ExpertiseLevel.ADVANCED.value: 1.5,
    ExpertiseLevel.EXPERT.value: 2.0,
}


def workload_dict(workload: Workload) -> Dict[str, int]:
    return {
        "reviewer_id": workload.reviewer_id,
        "assigned": workload.assigned,
        "not_started": workload.not_started,
        "in_progress": workload.in_progress,
        "completed": workload.completed,
        "overdue": workload.overdue,
    }


def _program_assignments(db: Session, program_id: int) -> List[ReviewAssignment]:
    return (
        db.query(ReviewAssignment)
        .join(Application, Application.id == ReviewAssignment.application_id)
        .filter(Application.program_id == program_id)
        .all()
    )


# ============================================================================
# Workload
# ============================================================================

def get_review_stats(db: Session, reviewer_id: int) -> Dict[str, int]:
    """Assignment counts of one reviewer across every program."""
    assignments = db.query(ReviewAssignment).filter(ReviewAssignment.reviewer_id == reviewer_id).all()
    workload = workloads_by_reviewer(assignments).get(reviewer_id, Workload(reviewer_id=reviewer_id))
    return {
        "total": workload.assigned,
        "not_started": workload.not_started,
        "in_progress": workload.in_progress,
        "completed": workload.completed,
        "overdue": workload.overdue,
    }


def reviewer_workload(db: Session, reviewer_id: int, program_id: Optional[int] = None) -> Workload:
    """Counts by status for one reviewer, optionally scoped to one program."""
    query = db.query(ReviewAssignment).filter(ReviewAssignment.reviewer_id == reviewer_id)
    if program_id is not None:
        get_program(db, program_id)
        query = query.join(Application, Application.id == ReviewAssignment.application_id).filter(
            Application.program_id == program_id
        )
    return workloads_by_reviewer(query.all()).get(reviewer_id, Workload(reviewer_id=reviewer_id))


def program_workload(db: Session, program_id: int) -> List[Workload]:
    """One workload per reviewer holding assignments in the program."""
    get_program(db, program_id)
    workloads = workloads_by_reviewer(_program_assignments(db, program_id))
    return [workloads[reviewer_id] for reviewer_id in sorted(workloads)]


# ============================================================================
# Ranking
# ============================================================================

def expertise_weights(db: Session, reviewer_ids) -> Dict[int, float]:
    """
    Weight per reviewer: proficiency of the strongest area times its
    reliability score. Reviewers without expertise weigh 1.0.
    """
    weights = {reviewer_id: 1.0 for reviewer_id in reviewer_ids}
    rows = db.query(ReviewerExpertise).filter(ReviewerExpertise.reviewer_id.in_(list(reviewer_ids))).all()
    best: Dict[int, float] = {}
    for row in rows:
        weight = PROFICIENCY_WEIGHTS.get(row.proficiency_level, 1.0) * (row.reliability_score or 0.0)
        best[row.reviewer_id] = max(best.get(row.reviewer_id, 0.0), weight)
    weights.update(best)
    return weights


def _counted_reviews(db: Session, program_id: int) -> Dict[int, List[Review]]:
    """
    Reviews that take part in consensus, by application: those of completed
    assignments plus legacy reviews carrying an overall score.
    """
    reviews = (
        db.query(Review)
        .join(ReviewAssignment, ReviewAssignment.id == Review.assignment_id)
        .join(Application, Application.id == Review.application_id)
        .filter(Application.program_id == program_id)
        .all()
    )
    scored = {
        review_id for (review_id,) in db.query(ReviewScore.review_id)
        .filter(ReviewScore.review_id.in_([r.id for r in reviews]))
        .distinct()
        .all()
    }

    by_application: Dict[int, List[Review]] = {}
    for review in reviews:
        legacy = review.id not in scored and review.overall_score is not None
        if legacy or review.assignment.status == AssignmentStatus.COMPLETED.value:
            by_application.setdefault(review.application_id, []).append(review)
    return by_application


def get_application_ranking(db: Session, program_id: int) -> List[Standing]:
    """Consensus score per application, ranked as a total order."""
    get_program(db, program_id)
    review_settings = effective_settings(db, program_id)
    method = review_settings.scoring_method or ScoringMethod.AVERAGE.value

    applications = db.query(Application).filter(Application.program_id == program_id).all()
    counted = _counted_reviews(db, program_id)

    reviewer_ids = {review.reviewer_id for reviews in counted.values() for review in reviews}
    weights = expertise_weights(db, reviewer_ids) if method == ScoringMethod.WEIGHTED_AVERAGE.value else {}

    standings = []
    for application in applications:
        scores, score_weights, reviewers = [], [], []
        for review in counted.get(application.id, []):
            score = to_variant(review, review.scores).score
            if score is None:
                continue
            scores.append(score)
            score_weights.append(weights.get(review.reviewer_id, 1.0))
            reviewers.append(review.reviewer_id)

        result = consensus(
            scores,
            method=method,
            weights=score_weights,
            check_agreement=bool(review_settings.requires_consensus),
            threshold=review_settings.consensus_threshold,
        )
        standings.append(Standing(
            application_id=application.id,
            submitted_at=application.submitted_at,
            consensus=result,
            applicant_name=application.applicant_name,
            decision=decide(
                result.consensus_score,
                review_settings.acceptance_threshold,
                review_settings.waitlist_threshold,
                review_settings.rejection_threshold,
            ),
            reviewer_ids=reviewers,
        ))

    ranked = rank_applications(standings)
    flagged = sum(1 for s in ranked if s.consensus.needs_adjudication)
    logger.info(f"Ranked {len(ranked)} applications in program {program_id} ({method}, {flagged} need adjudication)")
    return ranked


def standing_dict(standing: Standing) -> Dict[str, Any]:
    c = standing.consensus
    return {
        "rank": standing.rank,
        "application_id": standing.application_id,
        "applicant_name": standing.applicant_name,
        "submitted_at": standing.submitted_at,
        "review_count": c.review_count,
        "average_score": c.average_score,
        "consensus_score": c.consensus_score,
        "max_pairwise_difference": c.max_pairwise_difference,
        "needs_adjudication": c.needs_adjudication,
        "decision": standing.decision,
        "reviewer_ids": standing.reviewer_ids,
    }


# ============================================================================
# Program overview
# ============================================================================

def get_program_review_stats(db: Session, user: CurrentUser, program_id: int) -> Dict[str, Any]:
    """Overview, ranking and per-reviewer workload for a program owner."""
    require_program_owner(db, user, program_id)

    assignments = _program_assignments(db, program_id)
    ranking = get_application_ranking(db, program_id)
    workloads = program_workload(db, program_id)

    names = {
        p.id: p.full_name or "Unknown"
        for p in db.query(Profile).filter(Profile.id.in_([w.reviewer_id for w in workloads])).all()
    }
    scored = [s.consensus.consensus_score for s in ranking if s.consensus.consensus_score is not None]
    completed = sum(1 for a in assignments if a.status == AssignmentStatus.COMPLETED.value)

    overview = {
        "total_applications": len(ranking),
        "applications_reviewed": len(scored),
        "applications_pending_review": len(ranking) - len(scored),
        "average_score": statistics.fmean(scored) if scored else None,
        "total_reviewers": len(workloads),
        "reviews_completed": completed,
        "reviews_pending": len(assignments) - completed,
        "needs_adjudication": sum(1 for s in ranking if s.consensus.needs_adjudication),
        "generated_at": datetime.utcnow(),
    }
    return {
        "overview": overview,
        "rankings": [standing_dict(s) for s in ranking],
        "reviewer_workload": [
            {**workload_dict(w), "full_name": names.get(w.reviewer_id, "Unknown")}
            for w in workloads
        ],
    }
