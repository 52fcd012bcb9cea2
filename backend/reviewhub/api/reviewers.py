"""Reviewer expertise API endpoints."""
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..services import reviewers

router = APIRouter()


class ExpertiseCreate(BaseModel):
    expertise_area: str
    proficiency_level: str = "beginner"
    years_of_experience: Optional[int] = None
    specialization_tags: List[str] = Field(default_factory=list)
    reliability_score: float = 1.0


class ExpertiseUpdate(BaseModel):
    expertise_area: Optional[str] = None
    proficiency_level: Optional[str] = None
    years_of_experience: Optional[int] = None
    specialization_tags: Optional[List[str]] = None
    total_reviews_completed: Optional[int] = None
    reliability_score: Optional[float] = None


class ExpertiseResponse(BaseModel):
    """Reviewer expertise response schema."""
    id: int
    reviewer_id: int
    expertise_area: str
    proficiency_level: str
    years_of_experience: Optional[int]
    specialization_tags: List[str]
    total_reviews_completed: int
    reliability_score: float

    class Config:
        from_attributes = True


@router.get("/reviewers/{reviewer_id}/expertise", response_model=List[ExpertiseResponse])
async def list_expertise(
    reviewer_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return reviewers.list_expertise(db, reviewer_id)


@router.post("/reviewers/{reviewer_id}/expertise", response_model=ExpertiseResponse, status_code=201)
async def add_expertise(
    reviewer_id: int,
    body: ExpertiseCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return reviewers.add_expertise(db, user, reviewer_id, body.model_dump())


@router.put("/expertise/{expertise_id}", response_model=ExpertiseResponse)
async def update_expertise(
    expertise_id: int,
    body: ExpertiseUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return reviewers.update_expertise(db, user, expertise_id, body.model_dump(exclude_unset=True))


@router.delete("/expertise/{expertise_id}")
async def delete_expertise(
    expertise_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    reviewers.delete_expertise(db, user, expertise_id)
    return {"message": "Expertise deleted"}
