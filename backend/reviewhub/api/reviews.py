"""Review scoring API endpoints.

Reviews are addressed by their assignment id.
"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from datetime import datetime

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..services import reviews, stats
from .assignments import AssignmentResponse
from .criteria import CriterionResponse

router = APIRouter()


class ScoreEntry(BaseModel):
    """One criterion score. raw_score may be omitted when rubric_level is given."""
    criteria_id: int
    raw_score: Optional[float] = None
    rubric_level: Optional[str] = None
    score_rationale: Optional[str] = None
    reviewer_confidence: Optional[float] = None


class SaveScoresRequest(BaseModel):
    scores: List[ScoreEntry] = Field(..., min_length=1)


class SubmitReviewRequest(BaseModel):
    scores: List[ScoreEntry] = Field(default_factory=list)
    comments: Optional[str] = None
    strengths: Optional[str] = None
    weaknesses: Optional[str] = None
    recommendation: Optional[str] = None


class CommentsUpdate(BaseModel):
    comments: Optional[str] = None
    strengths: Optional[str] = None
    weaknesses: Optional[str] = None
    recommendation: Optional[str] = None


class ScoreResponse(BaseModel):
    """Saved score response schema."""
    id: int
    review_id: int
    criteria_id: int
    raw_score: float
    normalized_score: float
    weight_applied: float
    weighted_score: float
    rubric_level: Optional[str]
    score_rationale: Optional[str]
    reviewer_confidence: Optional[float]
    updated_at: datetime

    class Config:
        from_attributes = True


class ReviewBody(BaseModel):
    id: int
    assignment_id: int
    comments: Optional[str]
    strengths: Optional[str]
    weaknesses: Optional[str]
    recommendation: Optional[str]
    overall_score: Optional[float]
    submitted_at: Optional[datetime]

    class Config:
        from_attributes = True


class ReviewDetail(BaseModel):
    assignment: AssignmentResponse
    application: Dict[str, Any]
    review: Optional[ReviewBody]
    criteria: List[CriterionResponse]
    scores: List[ScoreResponse]
    review_score: Optional[float]
    is_legacy: bool


class MyReview(AssignmentResponse):
    program_id: int
    is_overdue: bool


def _outcome_response(outcome: reviews.ScoreOutcome) -> Dict[str, Any]:
    return {
        "assignment_id": outcome.assignment.id,
        "status": outcome.status,
        "completed_at": outcome.assignment.completed_at,
        "review_score": outcome.review_score,
        **outcome.batch.to_dict(),
    }


@router.get("/", response_model=List[MyReview])
async def list_my_reviews(
    status: Optional[str] = Query(None, description="not_started, in_progress, completed or overdue"),
    program_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """List the caller's review assignments."""
    now = datetime.utcnow()
    return [
        MyReview(
            **AssignmentResponse.model_validate(a).model_dump(),
            program_id=a.application.program_id,
            is_overdue=a.is_overdue(now),
        )
        for a in reviews.list_my_reviews(db, user, status=status, program_id=program_id)
    ]


@router.get("/stats")
async def get_my_review_stats(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Assignment counts of the caller."""
    return stats.get_review_stats(db, user.id)


@router.get("/{assignment_id}", response_model=ReviewDetail)
async def get_review(
    assignment_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return reviews.get_review(db, user, assignment_id)


@router.get("/{assignment_id}/scores", response_model=List[ScoreResponse])
async def get_scores(
    assignment_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return reviews.get_review(db, user, assignment_id)["scores"]


@router.post("/{assignment_id}/scores")
async def save_scores(
    assignment_id: int,
    body: SaveScoresRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Save draft scores. Existing scores for the same criteria are replaced."""
    outcome = reviews.save_scores(db, user, assignment_id, [s.model_dump() for s in body.scores])
    return _outcome_response(outcome)


@router.delete("/{assignment_id}/scores")
async def clear_scores(
    assignment_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    assignment = reviews.clear_scores(db, user, assignment_id)
    return {"assignment_id": assignment.id, "status": assignment.status}


@router.post("/{assignment_id}/submit")
async def submit_review(
    assignment_id: int,
    body: SubmitReviewRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Submit final scores; every required criterion must end up scored."""
    outcome = reviews.submit_review(
        db,
        user,
        assignment_id,
        [s.model_dump() for s in body.scores],
        comments=body.comments,
        strengths=body.strengths,
        weaknesses=body.weaknesses,
        recommendation=body.recommendation,
    )
    return _outcome_response(outcome)


@router.put("/{assignment_id}/comments", response_model=ReviewBody)
async def update_comments(
    assignment_id: int,
    body: CommentsUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return reviews.update_comments(db, user, assignment_id, **body.model_dump())
