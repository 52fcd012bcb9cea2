"""Review statistics, workload and ranking API endpoints."""
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from datetime import datetime

from ..auth import CurrentUser, get_current_user, has_role, SUPER_ADMIN
from ..database import get_db
from ..errors import ForbiddenError
from ..services import stats
from ..services.registry import is_program_admin, require_program_owner

router = APIRouter()


class WorkloadResponse(BaseModel):
    reviewer_id: int
    assigned: int
    not_started: int
    in_progress: int
    completed: int
    overdue: int


class RankingRow(BaseModel):
    """One application's place in the program ranking."""
    rank: int
    application_id: int
    applicant_name: str
    submitted_at: Optional[datetime]
    review_count: int
    average_score: Optional[float]
    consensus_score: Optional[float]
    max_pairwise_difference: float
    needs_adjudication: bool
    decision: str
    reviewer_ids: List[int]


@router.get("/programs/{program_id}/review-stats")
async def get_program_review_stats(
    program_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Overview, ranking and reviewer workload of a program."""
    return stats.get_program_review_stats(db, user, program_id)


@router.get("/programs/{program_id}/ranking", response_model=List[RankingRow])
async def get_application_ranking(
    program_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    require_program_owner(db, user, program_id)
    return [stats.standing_dict(s) for s in stats.get_application_ranking(db, program_id)]


@router.get("/programs/{program_id}/workload", response_model=List[WorkloadResponse])
async def get_program_workload(
    program_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    require_program_owner(db, user, program_id)
    return [stats.workload_dict(w) for w in stats.program_workload(db, program_id)]


@router.get("/reviewers/{reviewer_id}/workload", response_model=WorkloadResponse)
async def get_reviewer_workload(
    reviewer_id: int,
    program_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Workload of one reviewer, optionally scoped to one program."""
    allowed = (
        user.id == reviewer_id
        or has_role(user, SUPER_ADMIN)
        or (program_id is not None and is_program_admin(db, user, program_id))
    )
    if not allowed:
        raise ForbiddenError("You cannot view this reviewer's workload", details={"reviewer_id": reviewer_id})
    return stats.workload_dict(stats.reviewer_workload(db, reviewer_id, program_id))
