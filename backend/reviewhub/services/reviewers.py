"""Per-program review settings and reviewer expertise."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..auth import CurrentUser, has_role, SUPER_ADMIN
from ..config import settings
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import ExpertiseLevel, Profile, ReviewerExpertise, ReviewSettings, ScoringMethod
from .catalog import get_template
from .registry import get_program, get_review_settings, require_program_owner

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "min_reviews_per_application",
    "max_reviews_per_application",
    "max_reviews_per_reviewer",
    "scoring_method",
    "requires_consensus",
    "consensus_threshold",
    "blind_review",
    "allow_reviewer_comments",
    "acceptance_threshold",
    "waitlist_threshold",
    "rejection_threshold",
    "template_id",
    "custom_instructions",
)

# Columns that cannot be null; a null in a request leaves them unchanged
NOT_NULL_SETTINGS = (
    "min_reviews_per_application",
    "max_reviews_per_application",
    "scoring_method",
    "requires_consensus",
    "consensus_threshold",
    "blind_review",
    "allow_reviewer_comments",
)

EXPERTISE_FIELDS = (
    "expertise_area",
    "proficiency_level",
    "years_of_experience",
    "specialization_tags",
    "total_reviews_completed",
    "reliability_score",
)


# ============================================================================
# Review settings
# ============================================================================

def _unit_interval(name: str, value: Optional[float]) -> None:
    if value is not None and not (0.0 <= value <= 1.0):
        raise ValidationError(f"{name} must be between 0 and 1", details={"field": name, "value": value})


def _validate_settings(db: Session, values: Dict[str, Any]) -> None:
    method = values.get("scoring_method")
    if method not in {m.value for m in ScoringMethod}:
        raise ValidationError(f"Unknown scoring method '{method}'", details={"scoring_method": method})

    for name in ("consensus_threshold", "acceptance_threshold", "waitlist_threshold", "rejection_threshold"):
        _unit_interval(name, values.get(name))

    low, high = values.get("min_reviews_per_application"), values.get("max_reviews_per_application")
    if low is None or high is None or low < 1 or high < low:
        raise ValidationError(
            "Reviews per application must satisfy 1 <= min <= max",
            details={"min_reviews_per_application": low, "max_reviews_per_application": high},
        )
    per_reviewer = values.get("max_reviews_per_reviewer")
    if per_reviewer is not None and per_reviewer < 1:
        raise ValidationError("max_reviews_per_reviewer must be at least 1")

    accept, waitlist = values.get("acceptance_threshold"), values.get("waitlist_threshold")
    if accept is not None and waitlist is not None and waitlist > accept:
        raise ValidationError("waitlist_threshold cannot exceed acceptance_threshold")

    if values.get("template_id") is not None:
        get_template(db, values["template_id"])


def _settings_values(source: Optional[ReviewSettings], changes: Dict[str, Any]) -> Dict[str, Any]:
    defaults = {
        "min_reviews_per_application": settings.default_min_reviews_per_application,
        "max_reviews_per_application": settings.default_max_reviews_per_application,
        "scoring_method": settings.default_scoring_method,
        "requires_consensus": False,
        "consensus_threshold": settings.default_consensus_threshold,
        "blind_review": False,
        "allow_reviewer_comments": True,
    }
    values = {field: defaults.get(field) for field in SETTINGS_FIELDS}
    if source is not None:
        values.update({field: getattr(source, field) for field in SETTINGS_FIELDS})
    values.update({
        k: v for k, v in changes.items()
        if k in SETTINGS_FIELDS and not (v is None and k in NOT_NULL_SETTINGS)
    })
    return values


def get_settings(db: Session, program_id: int) -> Optional[ReviewSettings]:
    """Stored settings for a program, or None when it uses defaults."""
    get_program(db, program_id)
    return get_review_settings(db, program_id)


def create_settings(db: Session, user: CurrentUser, program_id: int, data: Dict[str, Any]) -> ReviewSettings:
    require_program_owner(db, user, program_id)
    if get_review_settings(db, program_id):
        raise ConflictError("Review settings already exist for this program", details={"program_id": program_id})

    values = _settings_values(None, data)
    _validate_settings(db, values)

    review_settings = ReviewSettings(program_id=program_id, **values)
    db.add(review_settings)
    db.commit()
    db.refresh(review_settings)
    logger.info(f"Created review settings for program {program_id} ({review_settings.scoring_method})")
    return review_settings


def update_settings(db: Session, user: CurrentUser, program_id: int, changes: Dict[str, Any]) -> ReviewSettings:
    require_program_owner(db, user, program_id)
    review_settings = get_review_settings(db, program_id)
    if not review_settings:
        raise NotFoundError("Review settings not found", details={"program_id": program_id})

    values = _settings_values(review_settings, changes)
    _validate_settings(db, values)

    for key, value in values.items():
        setattr(review_settings, key, value)
    db.commit()
    db.refresh(review_settings)
    logger.info(f"Updated review settings for program {program_id}")
    return review_settings


def delete_settings(db: Session, user: CurrentUser, program_id: int) -> None:
    require_program_owner(db, user, program_id)
    review_settings = get_review_settings(db, program_id)
    if not review_settings:
        raise NotFoundError("Review settings not found", details={"program_id": program_id})
    db.delete(review_settings)
    db.commit()
    logger.info(f"Deleted review settings for program {program_id}")


# ============================================================================
# Reviewer expertise
# ============================================================================

def _require_self_or_admin(user: CurrentUser, reviewer_id: int) -> None:
    if user.id != reviewer_id and not has_role(user, SUPER_ADMIN):
        raise ForbiddenError("You can only manage your own expertise", details={"reviewer_id": reviewer_id})


def _validate_expertise(values: Dict[str, Any]) -> None:
    if not (values.get("expertise_area") or "").strip():
        raise ValidationError("expertise_area is required")
    level = values.get("proficiency_level")
    if level not in {e.value for e in ExpertiseLevel}:
        raise ValidationError(f"Unknown proficiency level '{level}'", details={"proficiency_level": level})
    years = values.get("years_of_experience")
    if years is not None and years < 0:
        raise ValidationError("years_of_experience cannot be negative")
    reliability = values.get("reliability_score")
    if reliability is None or reliability < 0:
        raise ValidationError("reliability_score must be zero or positive")


def list_expertise(db: Session, reviewer_id: int) -> List[ReviewerExpertise]:
    if not db.query(Profile).filter(Profile.id == reviewer_id).first():
        raise NotFoundError("Reviewer not found", details={"reviewer_id": reviewer_id})
    return (
        db.query(ReviewerExpertise)
        .filter(ReviewerExpertise.reviewer_id == reviewer_id)
        .order_by(ReviewerExpertise.id)
        .all()
    )


def get_expertise(db: Session, expertise_id: int) -> ReviewerExpertise:
    expertise = db.query(ReviewerExpertise).filter(ReviewerExpertise.id == expertise_id).first()
    if not expertise:
        raise NotFoundError("Expertise entry not found", details={"expertise_id": expertise_id})
    return expertise


def add_expertise(db: Session, user: CurrentUser, reviewer_id: int, data: Dict[str, Any]) -> ReviewerExpertise:
    _require_self_or_admin(user, reviewer_id)
    list_expertise(db, reviewer_id)

    values = {
        "proficiency_level": ExpertiseLevel.BEGINNER.value,
        "specialization_tags": [],
        "total_reviews_completed": 0,
        "reliability_score": 1.0,
    }
    values.update({k: v for k, v in data.items() if k in EXPERTISE_FIELDS and v is not None})
    _validate_expertise(values)

    expertise = ReviewerExpertise(reviewer_id=reviewer_id, **values)
    db.add(expertise)
    db.commit()
    db.refresh(expertise)
    logger.info(f"Added expertise '{expertise.expertise_area}' for reviewer {reviewer_id}")
    return expertise


def update_expertise(db: Session, user: CurrentUser, expertise_id: int, changes: Dict[str, Any]) -> ReviewerExpertise:
    expertise = get_expertise(db, expertise_id)
    _require_self_or_admin(user, expertise.reviewer_id)

    values = {field: getattr(expertise, field) for field in EXPERTISE_FIELDS}
    values.update({
        k: v for k, v in changes.items()
        if k in EXPERTISE_FIELDS and (v is not None or k == "years_of_experience")
    })
    _validate_expertise(values)

    for key, value in values.items():
        setattr(expertise, key, value)
    db.commit()
    db.refresh(expertise)
    return expertise


def delete_expertise(db: Session, user: CurrentUser, expertise_id: int) -> None:
    expertise = get_expertise(db, expertise_id)
    _require_self_or_admin(user, expertise.reviewer_id)
    db.delete(expertise)
    db.commit()
    logger.info(f"Deleted expertise {expertise_id} of reviewer {expertise.reviewer_id}")
