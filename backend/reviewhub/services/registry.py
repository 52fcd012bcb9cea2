"""Lookups against the program/application registry and settings."""
from typing import List, Optional

from sqlalchemy.orm import Session

from ..auth import CurrentUser, has_role, SUPER_ADMIN
from ..config import settings
from ..errors import ForbiddenError, NotFoundError
from ..models import Program, Application, ReviewSettings, ScoringMethod


def get_program(db: Session, program_id: int) -> Program:
    program = db.query(Program).filter(Program.id == program_id).first()
    if not program:
        raise NotFoundError("Program not found", details={"program_id": program_id})
    return program


def program_owner(db: Session, program_id: int) -> int:
    return get_program(db, program_id).created_by


def applications_of_program(db: Session, program_id: int) -> List[int]:
    rows = db.query(Application.id).filter(Application.program_id == program_id).order_by(Application.id).all()
    return [row[0] for row in rows]


def is_program_admin(db: Session, user: CurrentUser, program_id: int) -> bool:
    return program_owner(db, program_id) == user.id or has_role(user, SUPER_ADMIN)


def require_program_owner(db: Session, user: CurrentUser, program_id: int) -> Program:
    """Return the program, or ForbiddenError unless the caller owns it."""
    program = get_program(db, program_id)
    if program.created_by != user.id and not has_role(user, SUPER_ADMIN):
        raise ForbiddenError(
            "Only the program owner can do this",
            details={"program_id": program_id},
        )
    return program


def get_review_settings(db: Session, program_id: int) -> Optional[ReviewSettings]:
    return db.query(ReviewSettings).filter(ReviewSettings.program_id == program_id).first()


def effective_settings(db: Session, program_id: int) -> ReviewSettings:
    """Program settings, or an unsaved instance carrying configured defaults."""
    found = get_review_settings(db, program_id)
    if found:
        return found
    return ReviewSettings(
        program_id=program_id,
        min_reviews_per_application=settings.default_min_reviews_per_application,
        max_reviews_per_application=settings.default_max_reviews_per_application,
        max_reviews_per_reviewer=None,
        scoring_method=settings.default_scoring_method or ScoringMethod.AVERAGE.value,
        requires_consensus=False,
        consensus_threshold=settings.default_consensus_threshold,
    )
