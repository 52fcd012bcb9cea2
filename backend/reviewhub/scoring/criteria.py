"""Criteria definitions, validation rules and built-in template reference data."""
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from ..errors import ValidationError

SCORING_TYPES = ("numerical", "categorical", "binary", "rubric", "weighted")

# Scoring types whose raw score must match one of the defined levels/options
SELECT_TYPES = ("rubric", "categorical")


@dataclass
class CriteriaDefinition:
    """Scoring definition shared by criteria and template entries."""
    name: str
    scoring_type: str = "numerical"
    weight: float = 1.0
    max_score: float = 10.0
    min_score: float = 0.0
    description: Optional[str] = None
    rubric_definition: Dict[str, float] = field(default_factory=dict)
    scoring_guide: Optional[str] = None
    is_required: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CriteriaDefinition":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if known.get("rubric_definition") is None:
            known["rubric_definition"] = {}
        if known.get("min_score") is None:
            known["min_score"] = 0.0
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def definition_errors(definition: CriteriaDefinition) -> List[Dict[str, str]]:
    """Return every rule a definition breaks, as {field, message} entries."""
    errors = []

    if not definition.name or not definition.name.strip():
        errors.append({"field": "name", "message": "name is required"})

    if definition.scoring_type not in SCORING_TYPES:
        errors.append({
            "field": "scoring_type",
            "message": f"scoring_type must be one of {', '.join(SCORING_TYPES)}",
        })

    if not _is_number(definition.weight) or definition.weight <= 0:
        errors.append({"field": "weight", "message": "weight must be greater than 0"})

    bounds_ok = _is_number(definition.min_score) and _is_number(definition.max_score)
    if not bounds_ok:
        errors.append({"field": "max_score", "message": "min_score and max_score must be numbers"})
    elif definition.max_score <= definition.min_score:
        errors.append({"field": "max_score", "message": "max_score must be greater than min_score"})

    if definition.scoring_type in SELECT_TYPES:
        levels = definition.rubric_definition or {}
        if not levels:
            errors.append({
                "field": "rubric_definition",
                "message": f"{definition.scoring_type} criteria need at least one level",
            })
        for level, score in levels.items():
            if not _is_number(score):
                errors.append({"field": "rubric_definition", "message": f"level '{level}' needs a numeric score"})
            elif bounds_ok and not (definition.min_score <= score <= definition.max_score):
                errors.append({
                    "field": "rubric_definition",
                    "message": f"level '{level}' score {score} is outside [{definition.min_score}, {definition.max_score}]",
                })

    return errors


def validate_definition(definition: CriteriaDefinition) -> CriteriaDefinition:
    """Raise ValidationError when a definition breaks any catalog rule."""
    errors = definition_errors(definition)
    if errors:
        raise ValidationError(
            f"Invalid criterion '{definition.name}': {errors[0]['message']}",
            details={"errors": errors},
        )
    return definition


def _definitions(*entries: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [CriteriaDefinition(**entry).to_dict() for entry in entries]


FIVE_POINT_RUBRIC = {"poor": 1, "fair": 2, "good": 3, "very_good": 4, "excellent": 5}


# Built-in templates seeded on first start
DEFAULT_TEMPLATES: List[Dict[str, Any]] = [
    {
        "name": "Workshop Participant Review",
        "category": "workshop",
        "description": "Fit, motivation and preparedness of workshop applicants.",
        "criteria_definition": _definitions(
            {"name": "Motivation", "weight": 0.3, "max_score": 10,
             "description": "Clarity of goals and reasons for attending."},
            {"name": "Relevant Experience", "weight": 0.3, "max_score": 10},
            {"name": "Expected Contribution", "scoring_type": "rubric", "weight": 0.25, "min_score": 1,
             "max_score": 5, "rubric_definition": FIVE_POINT_RUBRIC},
            {"name": "Meets Prerequisites", "scoring_type": "binary", "weight": 0.15, "max_score": 1},
        ),
    },
    {
        "name": "Conference Talk Review",
        "category": "conference",
        "description": "Technical merit and audience value of proposed talks.",
        "criteria_definition": _definitions(
            {"name": "Technical Merit", "weight": 0.4, "max_score": 10},
            {"name": "Originality", "weight": 0.2, "max_score": 10},
            {"name": "Audience Relevance", "weight": 0.25, "max_score": 10},
            {"name": "Presentation Quality", "scoring_type": "rubric", "weight": 0.15, "min_score": 1,
             "max_score": 5, "rubric_definition": FIVE_POINT_RUBRIC, "is_required": False},
        ),
    },
    {
        "name": "Hackathon Team Review",
        "category": "hackathon",
        "description": "Idea strength and team readiness for hackathon entries.",
        "criteria_definition": _definitions(
            {"name": "Idea Strength", "weight": 0.35, "max_score": 10},
            {"name": "Technical Feasibility", "weight": 0.35, "max_score": 10},
            {"name": "Team Composition", "scoring_type": "categorical", "weight": 0.2, "max_score": 3,
             "rubric_definition": {"solo": 1, "partial_team": 2, "full_team": 3}},
            {"name": "Code of Conduct Accepted", "scoring_type": "binary", "weight": 0.1, "max_score": 1},
        ),
    },
    {
        "name": "Fellowship Candidate Review",
        "category": "fellowship",
        "description": "Track record, potential and alignment of fellowship candidates.",
        "criteria_definition": _definitions(
            {"name": "Track Record", "weight": 0.3, "max_score": 10},
            {"name": "Research Potential", "weight": 0.3, "max_score": 10},
            {"name": "Program Alignment", "scoring_type": "rubric", "weight": 0.25, "min_score": 1,
             "max_score": 5, "rubric_definition": FIVE_POINT_RUBRIC},
            {"name": "Community Impact", "weight": 0.15, "max_score": 10, "is_required": False},
        ),
    },
]
