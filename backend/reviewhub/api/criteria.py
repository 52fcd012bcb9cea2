"""Review criteria API endpoints."""
from typing import Dict, List, Literal, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from datetime import datetime

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..services import catalog

router = APIRouter()


class CriterionCreate(BaseModel):
    """Criterion creation schema."""
    name: str
    description: Optional[str] = None
    scoring_guide: Optional[str] = None
    sort_order: Optional[int] = None
    scoring_type: str = "numerical"
    weight: float = 1.0
    min_score: float = 0.0
    max_score: float = 10.0
    rubric_definition: Dict[str, float] = Field(default_factory=dict)
    is_required: bool = True


class CriterionUpdate(BaseModel):
    """Partial criterion update; only fields sent are changed."""
    name: Optional[str] = None
    description: Optional[str] = None
    scoring_guide: Optional[str] = None
    sort_order: Optional[int] = None
    scoring_type: Optional[str] = None
    weight: Optional[float] = None
    min_score: Optional[float] = None
    max_score: Optional[float] = None
    rubric_definition: Optional[Dict[str, float]] = None
    is_required: Optional[bool] = None


class CriterionResponse(BaseModel):
    """Criterion response schema."""
    id: int
    program_id: int
    name: str
    description: Optional[str]
    scoring_guide: Optional[str]
    sort_order: int
    scoring_type: str
    weight: float
    min_score: float
    max_score: float
    rubric_definition: Dict[str, float]
    is_required: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReorderEntry(BaseModel):
    id: int
    sort_order: int


class ReorderRequest(BaseModel):
    order: List[ReorderEntry]


class ApplyTemplateRequest(BaseModel):
    template_id: int
    duplicate_policy: Literal["reject", "skip"] = "reject"


@router.get("/{program_id}/criteria", response_model=List[CriterionResponse])
async def list_criteria(
    program_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """List a program's criteria in display order."""
    return catalog.list_criteria(db, program_id)


@router.post("/{program_id}/criteria", response_model=CriterionResponse, status_code=201)
async def create_criterion(
    program_id: int,
    body: CriterionCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return catalog.create_criterion(db, user, program_id, body.model_dump())


@router.post("/{program_id}/criteria/reorder")
async def reorder_criteria(
    program_id: int,
    body: ReorderRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Best-effort bulk reorder; returns the per-criterion outcome."""
    result = catalog.reorder_criteria(db, user, program_id, [entry.model_dump() for entry in body.order])
    return result.to_dict()


@router.post("/{program_id}/criteria/apply-template")
async def apply_template(
    program_id: int,
    body: ApplyTemplateRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Create criteria from a template."""
    result = catalog.apply_template(db, user, program_id, body.template_id, body.duplicate_policy)
    created = sum(1 for item in result.items if item.status == "created")
    return {"created": created, **result.to_dict()}


@router.get("/{program_id}/criteria/{criterion_id}", response_model=CriterionResponse)
async def get_criterion(
    program_id: int,
    criterion_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return catalog.get_criterion(db, program_id, criterion_id)


@router.put("/{program_id}/criteria/{criterion_id}", response_model=CriterionResponse)
async def update_criterion(
    program_id: int,
    criterion_id: int,
    body: CriterionUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return catalog.update_criterion(db, user, program_id, criterion_id, body.model_dump(exclude_unset=True))


@router.delete("/{program_id}/criteria/{criterion_id}")
async def delete_criterion(
    program_id: int,
    criterion_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    catalog.delete_criterion(db, user, program_id, criterion_id)
    return {"message": "Criterion deleted"}
