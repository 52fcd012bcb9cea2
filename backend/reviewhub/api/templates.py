"""Criteria template API endpoints."""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from datetime import datetime

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..services import catalog

router = APIRouter()


class TemplateCreate(BaseModel):
    name: str
    description: Optional[str] = None
    category: str
    is_active: bool = True
    criteria_definition: List[Dict[str, Any]]


class TemplateUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    is_active: Optional[bool] = None
    criteria_definition: Optional[List[Dict[str, Any]]] = None


class TemplateResponse(BaseModel):
    """Template response schema."""
    id: int
    name: str
    description: Optional[str]
    category: str
    is_active: bool
    criteria_definition: List[Dict[str, Any]]
    total_max_score: float
    created_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("/", response_model=List[TemplateResponse])
async def list_templates(
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """List templates, optionally filtered by category and active flag."""
    return catalog.list_templates(db, category=category, is_active=is_active)


@router.post("/", response_model=TemplateResponse, status_code=201)
async def create_template(
    body: TemplateCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return catalog.create_template(db, user, body.model_dump())


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return catalog.get_template(db, template_id)


@router.put("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: int,
    body: TemplateUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return catalog.update_template(db, user, template_id, body.model_dump(exclude_unset=True))


@router.delete("/{template_id}", response_model=TemplateResponse)
async def deactivate_template(
    template_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Deactivate a template. It stays readable but can't be applied."""
    return catalog.deactivate_template(db, user, template_id)
