"""Criteria catalog and criteria template operations."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import CurrentUser, has_role, SUPER_ADMIN
from ..errors import ConflictError, ForbiddenError, InternalError, NotFoundError, ValidationError
from ..models import Criterion, CriteriaTemplate, ReviewScore, TemplateCategory
from ..scoring.batch import BatchResult
from ..scoring.criteria import (
    CriteriaDefinition,
    DEFAULT_TEMPLATES,
    definition_errors,
    validate_definition,
)
from ..scoring.templates import expand_template
from .registry import get_program, get_review_settings, require_program_owner

logger = logging.getLogger(__name__)

DEFINITION_FIELDS = tuple(CriteriaDefinition.__dataclass_fields__)

# Null min_score and rubric_definition fall back to their defaults instead
NOT_NULL_CRITERION_FIELDS = ("name", "sort_order", "scoring_type", "weight", "max_score", "is_required")


# ============================================================================
# Criteria
# ============================================================================

def list_criteria(db: Session, program_id: int) -> List[Criterion]:
    """Program criteria ordered by sort_order."""
    get_program(db, program_id)
    return (
        db.query(Criterion)
        .filter(Criterion.program_id == program_id)
        .order_by(Criterion.sort_order, Criterion.id)
        .all()
    )


def get_criterion(db: Session, program_id: int, criterion_id: int) -> Criterion:
    criterion = db.query(Criterion).filter(
        Criterion.id == criterion_id,
        Criterion.program_id == program_id,
    ).first()
    if not criterion:
        raise NotFoundError("Review criterion not found", details={"criteria_id": criterion_id})
    return criterion


def next_sort_order(db: Session, program_id: int) -> int:
    current = db.query(func.max(Criterion.sort_order)).filter(Criterion.program_id == program_id).scalar()
    return (current or 0) + 1


def score_count(db: Session, criterion_id: int) -> int:
    return db.query(ReviewScore).filter(ReviewScore.criteria_id == criterion_id).count()


def create_criterion(db: Session, user: CurrentUser, program_id: int, data: Dict[str, Any]) -> Criterion:
    """Validate and add one criterion to a program."""
    require_program_owner(db, user, program_id)
    definition = validate_definition(CriteriaDefinition.from_dict(data))

    sort_order = data.get("sort_order")
    if sort_order is None:
        sort_order = next_sort_order(db, program_id)

    criterion = Criterion(program_id=program_id, sort_order=sort_order, **definition.to_dict())
    db.add(criterion)
    db.commit()
    db.refresh(criterion)
    logger.info(f"Created criterion {criterion.id} '{criterion.name}' for program {program_id}")
    return criterion


def update_criterion(
    db: Session,
    user: CurrentUser,
    program_id: int,
    criterion_id: int,
    changes: Dict[str, Any],
) -> Criterion:
    """
    Update a criterion.

    Once any score references it only cosmetic fields may change.
    """
    require_program_owner(db, user, program_id)
    criterion = get_criterion(db, program_id, criterion_id)

    allowed = set(DEFINITION_FIELDS) | set(Criterion.COSMETIC_FIELDS)
    changes = {k: v for k, v in changes.items() if k in allowed}
    if "min_score" in changes and changes["min_score"] is None:
        changes["min_score"] = 0.0
    if "rubric_definition" in changes and changes["rubric_definition"] is None:
        changes["rubric_definition"] = {}
    nulls = sorted(k for k in NOT_NULL_CRITERION_FIELDS if k in changes and changes[k] is None)
    if nulls:
        raise ValidationError(
            f"{', '.join(nulls)} cannot be null",
            details={"criteria_id": criterion_id, "fields": nulls},
        )

    scoring_changes = [
        k for k, v in changes.items()
        if k not in Criterion.COSMETIC_FIELDS and getattr(criterion, k) != v
    ]
    if scoring_changes and score_count(db, criterion_id) > 0:
        raise ConflictError(
            "Criterion already has scores; only name, description, scoring guide and order can change",
            details={"criteria_id": criterion_id, "fields": scoring_changes},
        )

    merged = {field: getattr(criterion, field) for field in DEFINITION_FIELDS}
    merged.update({k: v for k, v in changes.items() if k in DEFINITION_FIELDS})
    validate_definition(CriteriaDefinition.from_dict(merged))

    for key, value in changes.items():
        setattr(criterion, key, value)
    db.commit()
    db.refresh(criterion)
    logger.info(f"Updated criterion {criterion_id}: {sorted(changes)}")
    return criterion


def delete_criterion(db: Session, user: CurrentUser, program_id: int, criterion_id: int) -> None:
    """Delete a criterion that no score references."""
    require_program_owner(db, user, program_id)
    criterion = get_criterion(db, program_id, criterion_id)

    scores = score_count(db, criterion_id)
    if scores:
        raise ConflictError(
            "Cannot delete a criterion that has scores",
            details={"criteria_id": criterion_id, "scores": scores},
        )

    db.delete(criterion)
    db.commit()
    logger.info(f"Deleted criterion {criterion_id} from program {program_id}")


def reorder_criteria(
    db: Session,
    user: CurrentUser,
    program_id: int,
    order: List[Dict[str, int]],
) -> BatchResult:
    """Best-effort bulk update of sort_order, one commit per criterion."""
    require_program_owner(db, user, program_id)
    result = BatchResult()

    for entry in order:
        criterion_id = entry.get("id")
        try:
            criterion = get_criterion(db, program_id, criterion_id)
            criterion.sort_order = entry["sort_order"]
            db.commit()
            result.succeed(criterion_id, status="updated")
        except NotFoundError as e:
            result.fail(criterion_id, e)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to reorder criterion {criterion_id}: {e}")
            result.fail(criterion_id, InternalError("Failed to update criterion"))

    logger.info(f"Reordered criteria for program {program_id}: {len(result.succeeded)} ok, {len(result.failed)} failed")
    return result


# ============================================================================
# Templates
# ============================================================================

def _check_category(category: str) -> None:
    if category not in {c.value for c in TemplateCategory}:
        raise ValidationError(f"Unknown template category '{category}'", details={"category": category})


def _validated_definitions(definitions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not definitions:
        raise ValidationError("A template needs at least one criteria definition")
    parsed = [CriteriaDefinition.from_dict(d) for d in definitions]
    problems = []
    for index, definition in enumerate(parsed):
        errors = definition_errors(definition)
        if errors:
            problems.append({"index": index, "name": definition.name, "errors": errors})
    if problems:
        raise ValidationError("Template contains invalid criteria definitions", details={"definitions": problems})
    return [d.to_dict() for d in parsed]


def _total_max_score(definitions: List[Dict[str, Any]]) -> float:
    return float(sum(d["max_score"] for d in definitions))


def list_templates(db: Session, category: Optional[str] = None, is_active: Optional[bool] = None) -> List[CriteriaTemplate]:
    query = db.query(CriteriaTemplate)
    if category:
        query = query.filter(CriteriaTemplate.category == category)
    if is_active is not None:
        query = query.filter(CriteriaTemplate.is_active == is_active)
    return query.order_by(CriteriaTemplate.name).all()


def get_template(db: Session, template_id: int) -> CriteriaTemplate:
    template = db.query(CriteriaTemplate).filter(CriteriaTemplate.id == template_id).first()
    if not template:
        raise NotFoundError("Review template not found", details={"template_id": template_id})
    return template


def create_template(db: Session, user: CurrentUser, data: Dict[str, Any]) -> CriteriaTemplate:
    _check_category(data.get("category"))
    definitions = _validated_definitions(data.get("criteria_definition") or [])

    template = CriteriaTemplate(
        name=data["name"],
        description=data.get("description"),
        category=data["category"],
        is_active=data.get("is_active", True),
        criteria_definition=definitions,
        total_max_score=_total_max_score(definitions),
        created_by=user.id,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    logger.info(f"Created template {template.id} '{template.name}' ({template.category})")
    return template


def _require_template_editor(user: CurrentUser, template: CriteriaTemplate) -> None:
    if template.created_by != user.id and not has_role(user, SUPER_ADMIN):
        raise ForbiddenError("Only the template author can change it", details={"template_id": template.id})


def update_template(db: Session, user: CurrentUser, template_id: int, changes: Dict[str, Any]) -> CriteriaTemplate:
    template = get_template(db, template_id)
    _require_template_editor(user, template)

    nulls = sorted(k for k in ("name", "is_active") if k in changes and changes[k] is None)
    if nulls:
        raise ValidationError(f"{', '.join(nulls)} cannot be null", details={"fields": nulls})
    if "category" in changes:
        _check_category(changes["category"])
    if "criteria_definition" in changes:
        definitions = _validated_definitions(changes["criteria_definition"])
        changes = {**changes, "criteria_definition": definitions}
        template.total_max_score = _total_max_score(definitions)

    for key in ("name", "description", "category", "is_active", "criteria_definition"):
        if key in changes:
            setattr(template, key, changes[key])
    db.commit()
    db.refresh(template)
    return template


def deactivate_template(db: Session, user: CurrentUser, template_id: int) -> CriteriaTemplate:
    """Soft delete: templates stay readable but can no longer be applied."""
    template = get_template(db, template_id)
    _require_template_editor(user, template)
    template.is_active = False
    db.commit()
    logger.info(f"Deactivated template {template_id}")
    return template


def apply_template(
    db: Session,
    user: CurrentUser,
    program_id: int,
    template_id: int,
    duplicate_policy: str = "reject",
) -> BatchResult:
    """
    Create one criterion per template definition, preserving order and weight.

    Conflicts under the "reject" policy are raised before anything is
    written. Rows are then inserted independently.
    """
    require_program_owner(db, user, program_id)
    template = get_template(db, template_id)
    if not template.is_active:
        raise NotFoundError("Review template is not active", details={"template_id": template_id})

    existing = [c.name for c in list_criteria(db, program_id)]
    expansion = expand_template(
        template.criteria_definition or [],
        program_id=program_id,
        start_order=next_sort_order(db, program_id),
        existing_names=existing,
        duplicate_policy=duplicate_policy,
    )

    result = BatchResult()
    for name in expansion.skipped:
        result.succeed(name, status="skipped", message="A criterion with this name already exists")
    for name, errors in expansion.invalid:
        result.fail(name, ValidationError(errors[0]["message"], details={"errors": errors}))

    for row in expansion.rows:
        try:
            db.add(Criterion(**row))
            db.commit()
            result.succeed(row["name"], status="created")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create criterion '{row['name']}' from template {template_id}: {e}")
            result.fail(row["name"], InternalError("Failed to create criterion"))

    review_settings = get_review_settings(db, program_id)
    if review_settings and any(item.status == "created" for item in result.items):
        review_settings.template_id = template_id
        db.commit()

    created = sum(1 for item in result.items if item.status == "created")
    logger.info(f"Applied template {template_id} to program {program_id}: {created} criteria created")
    return result


def seed_default_templates(db: Session) -> int:
    """Insert the built-in templates when the template table is empty."""
    if db.query(CriteriaTemplate).count():
        return 0
    for entry in DEFAULT_TEMPLATES:
        definitions = entry["criteria_definition"]
        db.add(CriteriaTemplate(
            name=entry["name"],
            description=entry["description"],
            category=entry["category"],
            is_active=True,
            criteria_definition=definitions,
            total_max_score=_total_max_score(definitions),
        ))
    db.commit()
    return len(DEFAULT_TEMPLATES)
