"""Review-level and application-level score aggregation."""
import statistics
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Union

from ..errors import ValidationError

METHODS = ("average", "weighted_average", "median", "consensus")


@dataclass(frozen=True)
class ScoreLine:
    """One saved criterion score as seen by the aggregator."""
    criteria_id: int
    weighted_score: float
    weight_applied: float


def review_score(lines: Iterable[ScoreLine]) -> Optional[float]:
    """
    Weighted average over the criteria actually scored.

    Missing criteria do not pull the score down; an empty review has no score.
    """
    lines = list(lines)
    total_weight = sum(line.weight_applied for line in lines)
    if not lines or total_weight <= 0:
        return None
    return sum(line.weighted_score for line in lines) / total_weight


@dataclass(frozen=True)
class ScoredReview:
    """Review scored per criterion."""
    reviewer_id: int
    lines: Sequence[ScoreLine] = ()

    @property
    def score(self) -> Optional[float]:
        return review_score(self.lines)


@dataclass(frozen=True)
class LegacyReview:
    """Review predating per-criterion scoring: one overall score plus comments."""
    reviewer_id: int
    overall_score: float
    scale: float
    comments: Optional[str] = None

    @property
    def score(self) -> Optional[float]:
        if self.scale <= 0:
            return None
        return min(1.0, max(0.0, self.overall_score / self.scale))


ReviewVariant = Union[ScoredReview, LegacyReview]


def max_pairwise_difference(scores: Sequence[float]) -> float:
    """Largest absolute difference between any two scores."""
    if len(scores) < 2:
        return 0.0
    return max(scores) - min(scores)


@dataclass
class Consensus:
    """Application-level aggregate across reviewers."""
    review_count: int
    average_score: Optional[float]
    consensus_score: Optional[float]
    max_pairwise_difference: float
    needs_adjudication: bool


def consensus(
    scores: Sequence[float],
    method: str = "average",
    weights: Optional[Sequence[float]] = None,
    check_agreement: bool = False,
    threshold: float = 0.2,
) -> Consensus:
    """
    Combine reviewers' review scores into a consensus score.

    When the agreement check is on and reviewers disagree by more than the
    threshold, the application is flagged for adjudication instead of
    trusting the aggregate.
    """
    if method not in METHODS:
        raise ValidationError(f"Unknown scoring method '{method}'", details={"method": method})

    scores = list(scores)
    if not scores:
        return Consensus(0, None, None, 0.0, False)

    average = statistics.fmean(scores)

    if method == "median":
        value = statistics.median(scores)
    elif method == "weighted_average":
        weights = list(weights) if weights is not None else [1.0] * len(scores)
        if len(weights) != len(scores):
            raise ValidationError("One weight per review score is required")
        total = sum(weights)
        value = sum(s * w for s, w in zip(scores, weights)) / total if total > 0 else average
    else:
        value = average

    spread = max_pairwise_difference(scores)
    agreement_on = check_agreement or method == "consensus"
    return Consensus(
        review_count=len(scores),
        average_score=average,
        consensus_score=value,
        max_pairwise_difference=spread,
        needs_adjudication=agreement_on and spread > threshold,
    )


def decide(
    score: Optional[float],
    acceptance_threshold: Optional[float] = None,
    waitlist_threshold: Optional[float] = None,
    rejection_threshold: Optional[float] = None,
) -> str:
    """Map a consensus score onto accept / waitlist / reject / undecided."""
    if score is None:
        return "undecided"
    if acceptance_threshold is not None and score >= acceptance_threshold:
        return "accept"
    if waitlist_threshold is not None and score >= waitlist_threshold:
        return "waitlist"
    if rejection_threshold is not None and score <= rejection_threshold:
        return "reject"
    return "undecided"


@dataclass
class Standing:
    """An application's place in the program ranking."""
    application_id: int
    submitted_at: Optional[datetime]
    consensus: Consensus
    applicant_name: str = ""
    decision: str = "undecided"
    rank: int = 0
    reviewer_ids: List[int] = field(default_factory=list)


def ranking_key(standing: Standing):
    """
    Total order: consensus score descending, then earlier submission first,
    then application id. Unscored and unsubmitted applications sort last.
    """
    score = standing.consensus.consensus_score
    submitted = standing.submitted_at
    return (
        score is None,
        -score if score is not None else 0.0,
        submitted is None,
        submitted or datetime.min,
        standing.application_id,
    )


def rank_applications(standings: Iterable[Standing]) -> List[Standing]:
    """Sort standings and assign 1-based ranks."""
    ordered = sorted(standings, key=ranking_key)
    for position, standing in enumerate(ordered, start=1):
        standing.rank = position
    return ordered
