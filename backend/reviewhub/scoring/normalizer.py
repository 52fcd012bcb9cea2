"""Raw score validation and normalization against one criterion."""
import math
from dataclasses import dataclass
from typing import Optional

from ..errors import OutOfRangeError, InvalidRubricLevelError
from .criteria import SELECT_TYPES


@dataclass(frozen=True)
class NormalizedScore:
    """A raw score mapped onto [0,1] and weighted by its criterion."""
    raw_score: float
    normalized_score: float
    weight_applied: float
    weighted_score: float
    rubric_level: Optional[str] = None


def _scoring_type(criterion) -> str:
    value = criterion.scoring_type
    return getattr(value, "value", value)


def _match_level(criterion, raw_score: float) -> Optional[str]:
    for level, score in (criterion.rubric_definition or {}).items():
        if math.isclose(float(score), raw_score, rel_tol=1e-9, abs_tol=1e-9):
            return level
    return None


def score_for_level(criterion, level: str) -> float:
    """Raw score defined for a rubric level, or InvalidRubricLevelError."""
    levels = criterion.rubric_definition or {}
    if level not in levels:
        raise InvalidRubricLevelError(
            f"'{level}' is not a level of criterion '{criterion.name}'",
            details={"criteria_id": getattr(criterion, "id", None), "levels": list(levels)},
        )
    return float(levels[level])


def normalize_score(raw_score: float, criterion, rubric_level: Optional[str] = None) -> NormalizedScore:
    """
    Validate a raw score against a criterion and normalize it.

    Bounds are inclusive. Binary criteria accept only their min or max.
    Rubric and categorical criteria accept only scores matching a defined
    level; when rubric_level is given it must name that same level.
    A degenerate criterion (max == min) always normalizes to 1.0.
    """
    scoring_type = _scoring_type(criterion)
    min_score = float(criterion.min_score or 0.0)
    max_score = float(criterion.max_score)
    raw = float(raw_score)
    details = {
        "criteria_id": getattr(criterion, "id", None),
        "raw_score": raw,
        "min_score": min_score,
        "max_score": max_score,
    }

    if not math.isfinite(raw):
        raise OutOfRangeError(f"Score for '{criterion.name}' must be a finite number", details=details)

    if scoring_type == "binary":
        if raw not in (min_score, max_score):
            raise OutOfRangeError(
                f"Binary criterion '{criterion.name}' accepts only {min_score:g} or {max_score:g}",
                details=details,
            )
    elif raw < min_score or raw > max_score:
        raise OutOfRangeError(
            f"Score {raw:g} for '{criterion.name}' is outside [{min_score:g}, {max_score:g}]",
            details=details,
        )

    level = None
    if scoring_type in SELECT_TYPES:
        level = _match_level(criterion, raw)
        if level is None or (rubric_level is not None and rubric_level != level):
            raise InvalidRubricLevelError(
                f"Score {raw:g} does not match a defined level of '{criterion.name}'",
                details={**details, "rubric_level": rubric_level,
                         "levels": dict(criterion.rubric_definition or {})},
            )

    if max_score == min_score:
        normalized = 1.0
    else:
        normalized = (raw - min_score) / (max_score - min_score)
    normalized = min(1.0, max(0.0, normalized))

    weight = float(criterion.weight)
    return NormalizedScore(
        raw_score=raw,
        normalized_score=normalized,
        weight_applied=weight,
        weighted_score=normalized * weight,
        rubric_level=level,
    )
