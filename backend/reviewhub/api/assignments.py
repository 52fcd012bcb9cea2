"""Review assignment API endpoints."""
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from datetime import datetime

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..services import scheduler

router = APIRouter()


class AssignmentResponse(BaseModel):
    """Assignment response schema."""
    id: int
    application_id: int
    reviewer_id: int
    assigned_by: int
    status: str
    deadline: Optional[datetime]
    assigned_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class AssignmentCreate(BaseModel):
    application_ids: List[int] = Field(..., min_length=1)
    reviewer_id: int
    deadline: Optional[datetime] = None


class AutoAssignRequest(BaseModel):
    reviewers_per_application: Optional[int] = Field(None, ge=1)
    reviewer_ids: Optional[List[int]] = None
    deadline: Optional[datetime] = None


class AvailableReviewer(BaseModel):
    id: int
    full_name: str
    email: str
    expertise: List[str]
    specialization_tags: List[str]
    total_reviews_completed: int
    years_of_experience: int
    proficiency_level: str
    current_workload: int


def _batch_response(result, assignments):
    return {
        **result.to_dict(),
        "assignments": [AssignmentResponse.model_validate(a).model_dump() for a in assignments],
    }


@router.get("/programs/{program_id}/assignments", response_model=List[AssignmentResponse])
async def list_assignments(
    program_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """List assignments of a program visible to the caller."""
    return scheduler.list_assignments(db, user, program_id)


@router.post("/programs/{program_id}/assignments", status_code=201)
async def create_assignments(
    program_id: int,
    body: AssignmentCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Assign one reviewer to several applications. Existing pairs are kept as-is."""
    result, assignments = scheduler.create_assignments(
        db, user, program_id, body.application_ids, body.reviewer_id, body.deadline
    )
    return _batch_response(result, assignments)


@router.post("/programs/{program_id}/assignments/auto", status_code=201)
async def auto_assign(
    program_id: int,
    body: AutoAssignRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Top up every submitted application with least-loaded reviewers."""
    result, assignments = scheduler.auto_assign_reviewers(
        db,
        user,
        program_id,
        reviewers_per_application=body.reviewers_per_application,
        reviewer_ids=body.reviewer_ids,
        deadline=body.deadline,
    )
    return _batch_response(result, assignments)


@router.get("/programs/{program_id}/reviewers/available", response_model=List[AvailableReviewer])
async def list_available_reviewers(
    program_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return scheduler.list_available_reviewers(db, user, program_id)


@router.delete("/assignments/{assignment_id}")
async def delete_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Delete an assignment with its review and scores."""
    removed = scheduler.delete_assignment(db, user, assignment_id)
    return {"message": "Assignment deleted", "removed": removed}
