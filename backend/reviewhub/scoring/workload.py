"""Reviewer workload counting and least-loaded auto-assignment planning."""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple


@dataclass
class Workload:
    """Assignment counts by status for one reviewer."""
    reviewer_id: int
    assigned: int = 0
    not_started: int = 0
    in_progress: int = 0
    completed: int = 0
    overdue: int = 0

    @property
    def open(self) -> int:
        return self.not_started + self.in_progress

    def add(self, status: str, deadline: Optional[datetime], now: datetime) -> None:
        self.assigned += 1
        if status == "completed":
            self.completed += 1
        elif status == "in_progress":
            self.in_progress += 1
        else:
            self.not_started += 1
        if deadline is not None and deadline < now and status != "completed":
            self.overdue += 1


def workloads_by_reviewer(assignments: Iterable, now: Optional[datetime] = None) -> Dict[int, Workload]:
    """Group assignment rows (reviewer_id, status, deadline) into workloads."""
    now = now or datetime.utcnow()
    result: Dict[int, Workload] = {}
    for assignment in assignments:
        workload = result.setdefault(assignment.reviewer_id, Workload(reviewer_id=assignment.reviewer_id))
        workload.add(assignment.status, assignment.deadline, now)
    return result


def plan_auto_assignment(
    application_ids: Iterable[int],
    reviewer_loads: Dict[int, int],
    per_application: int,
    existing_pairs: Optional[Set[Tuple[int, int]]] = None,
    existing_counts: Optional[Dict[int, int]] = None,
    remaining_capacity: Optional[Dict[int, Optional[int]]] = None,
) -> List[Tuple[int, int]]:
    """
    Plan (application_id, reviewer_id) pairs, least-loaded reviewer first.

    Each application is topped up to per_application reviewers. A reviewer
    is never paired twice with the same application and never beyond their
    remaining capacity (None means unlimited). Ties on load go to the lower
    reviewer id, which spreads work round-robin.
    """
    loads = dict(reviewer_loads)
    pairs = set(existing_pairs or ())
    counts = dict(existing_counts or {})
    capacity = dict(remaining_capacity or {})
    plan: List[Tuple[int, int]] = []

    for application_id in application_ids:
        needed = per_application - counts.get(application_id, 0)
        while needed > 0:
            candidates = [
                reviewer_id for reviewer_id in loads
                if (application_id, reviewer_id) not in pairs
                and (capacity.get(reviewer_id) is None or capacity[reviewer_id] > 0)
            ]
            if not candidates:
                break
            chosen = min(candidates, key=lambda r: (loads[r], r))
            plan.append((application_id, chosen))
            pairs.add((application_id, chosen))
            loads[chosen] += 1
            if capacity.get(chosen) is not None:
                capacity[chosen] -= 1
            counts[application_id] = counts.get(application_id, 0) + 1
            needed -= 1

    return plan
