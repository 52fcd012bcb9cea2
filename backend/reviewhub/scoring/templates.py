"""Expansion of criteria templates into concrete program criteria."""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from ..errors import ConflictError, ValidationError
from .criteria import CriteriaDefinition, definition_errors

DUPLICATE_POLICIES = ("reject", "skip")


@dataclass
class TemplateExpansion:
    """Rows to create plus the definitions left out and why."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    invalid: List[Tuple[str, List[Dict[str, str]]]] = field(default_factory=list)


def expand_template(
    definitions: Iterable[Dict[str, Any]],
    program_id: int,
    start_order: int = 1,
    existing_names: Iterable[str] = (),
    duplicate_policy: str = "reject",
) -> TemplateExpansion:
    """
    Turn template definitions into criterion rows for one program.

    Order and weights are preserved and sort_order continues from
    start_order. Names are compared case-insensitively against the
    program's existing criteria: under "reject" any clash raises
    ConflictError, under "skip" clashing definitions are left out.
    Definitions breaking catalog rules are reported, not created.
    """
    if duplicate_policy not in DUPLICATE_POLICIES:
        raise ValidationError(
            f"duplicate_policy must be one of {', '.join(DUPLICATE_POLICIES)}",
            details={"duplicate_policy": duplicate_policy},
        )

    parsed = [CriteriaDefinition.from_dict(d) for d in definitions]
    taken = {name.strip().lower() for name in existing_names}

    clashes = [d.name for d in parsed if d.name and d.name.strip().lower() in taken]
    if clashes and duplicate_policy == "reject":
        raise ConflictError(
            "Program already has criteria named like this template's entries",
            details={"duplicates": clashes},
        )

    expansion = TemplateExpansion()
    order = start_order
    for definition in parsed:
        key = (definition.name or "").strip().lower()
        if key in taken:
            expansion.skipped.append(definition.name)
            continue
        errors = definition_errors(definition)
        if errors:
            expansion.invalid.append((definition.name, errors))
            continue
        row = definition.to_dict()
        row["program_id"] = program_id
        row["sort_order"] = order
        expansion.rows.append(row)
        taken.add(key)
        order += 1
    return expansion
