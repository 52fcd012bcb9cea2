"""Per-program review settings API endpoints."""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from datetime import datetime

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..services import reviewers

router = APIRouter()


class ReviewSettingsBody(BaseModel):
    min_reviews_per_application: Optional[int] = None
    max_reviews_per_application: Optional[int] = None
    max_reviews_per_reviewer: Optional[int] = None
    scoring_method: Optional[str] = None
    requires_consensus: Optional[bool] = None
    consensus_threshold: Optional[float] = None
    blind_review: Optional[bool] = None
    allow_reviewer_comments: Optional[bool] = None
    acceptance_threshold: Optional[float] = None
    waitlist_threshold: Optional[float] = None
    rejection_threshold: Optional[float] = None
    template_id: Optional[int] = None
    custom_instructions: Optional[str] = None


class ReviewSettingsResponse(BaseModel):
    """Review settings response schema."""
    id: int
    program_id: int
    min_reviews_per_application: int
    max_reviews_per_application: int
    max_reviews_per_reviewer: Optional[int]
    scoring_method: str
    requires_consensus: bool
    consensus_threshold: float
    blind_review: bool
    allow_reviewer_comments: bool
    acceptance_threshold: Optional[float]
    waitlist_threshold: Optional[float]
    rejection_threshold: Optional[float]
    template_id: Optional[int]
    custom_instructions: Optional[str]
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("/{program_id}/review-settings", response_model=Optional[ReviewSettingsResponse])
async def get_review_settings(
    program_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Stored settings, or null when the program runs on defaults."""
    return reviewers.get_settings(db, program_id)


@router.post("/{program_id}/review-settings", response_model=ReviewSettingsResponse, status_code=201)
async def create_review_settings(
    program_id: int,
    body: ReviewSettingsBody,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return reviewers.create_settings(db, user, program_id, body.model_dump(exclude_unset=True))


@router.put("/{program_id}/review-settings", response_model=ReviewSettingsResponse)
async def update_review_settings(
    program_id: int,
    body: ReviewSettingsBody,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return reviewers.update_settings(db, user, program_id, body.model_dump(exclude_unset=True))


@router.delete("/{program_id}/review-settings")
async def delete_review_settings(
    program_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    reviewers.delete_settings(db, user, program_id)
    return {"message": "Review settings deleted"}
