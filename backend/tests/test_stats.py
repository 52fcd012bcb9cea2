"""Tests for workload reporting, ranking and program statistics."""
from datetime import datetime, timedelta

import pytest

from reviewhub.errors import ForbiddenError, NotFoundError
from reviewhub.models import Review, ReviewAssignment, ReviewerExpertise, ReviewSettings
from reviewhub.auth import CurrentUser
from reviewhub.services import reviews, stats

MERIT, IMPACT = 100, 101


def as_reviewer(reviewer_id):
    return CurrentUser(id=reviewer_id, roles=frozenset({"reviewer"}))


def complete(db, application_id, reviewer_id, merit, impact):
    """Create an assignment and submit a full review for it."""
    assignment = ReviewAssignment(application_id=application_id, reviewer_id=reviewer_id, assigned_by=1)
    db.add(assignment)
    db.commit()
    reviews.submit_review(db, as_reviewer(reviewer_id), assignment.id, [
        {"criteria_id": MERIT, "raw_score": merit},
        {"criteria_id": IMPACT, "raw_score": impact},
    ])
    return assignment


def ranking(db, program_id=1):
    return {s.application_id: s for s in stats.get_application_ranking(db, program_id)}


class TestWorkload:
    def test_review_stats_for_reviewer(self, seeded):
        complete(seeded, 10, 2, 8, 4)
        seeded.add_all([
            ReviewAssignment(application_id=11, reviewer_id=2, assigned_by=1,
                             deadline=datetime.utcnow() - timedelta(days=2)),
            ReviewAssignment(application_id=20, reviewer_id=2, assigned_by=1, status="in_progress"),
        ])
        seeded.commit()

        assert stats.get_review_stats(seeded, 2) == {
            "total": 3,
            "not_started": 1,
            "in_progress": 1,
            "completed": 1,
            "overdue": 1,
        }

    def test_reviewer_without_assignments(self, seeded):
        assert stats.get_review_stats(seeded, 4)["total"] == 0

    def test_workload_scoped_to_program(self, seeded):
        complete(seeded, 10, 2, 8, 4)
        seeded.add(ReviewAssignment(application_id=20, reviewer_id=2, assigned_by=1))
        seeded.commit()

        assert stats.reviewer_workload(seeded, 2).assigned == 2
        scoped = stats.reviewer_workload(seeded, 2, program_id=1)
        assert (scoped.assigned, scoped.completed) == (1, 1)

    def test_workload_of_unknown_program(self, seeded):
        with pytest.raises(NotFoundError):
            stats.reviewer_workload(seeded, 2, program_id=999)

    def test_program_workload_per_reviewer(self, seeded):
        complete(seeded, 10, 2, 8, 4)
        seeded.add(ReviewAssignment(application_id=11, reviewer_id=3, assigned_by=1))
        seeded.commit()
        assert [(w.reviewer_id, w.completed, w.not_started) for w in stats.program_workload(seeded, 1)] == [
            (2, 1, 0),
            (3, 0, 1),
        ]


class TestRanking:
    def test_two_reviewer_mean(self, seeded):
        complete(seeded, 10, 2, 8, 4)   # 0.8
        complete(seeded, 10, 3, 6, 3)   # 0.6
        row = ranking(seeded)[10]

        assert row.consensus.review_count == 2
        assert row.consensus.consensus_score == pytest.approx(0.7)
        assert row.consensus.needs_adjudication is False

    def test_disagreement_flagged_when_consensus_required(self, seeded):
        seeded.add(ReviewSettings(program_id=1, requires_consensus=True, consensus_threshold=0.1))
        seeded.commit()
        complete(seeded, 10, 2, 8, 4)
        complete(seeded, 10, 3, 6, 3)

        row = ranking(seeded)[10]
        assert row.consensus.max_pairwise_difference == pytest.approx(0.2)
        assert row.consensus.needs_adjudication is True

    def test_only_completed_reviews_count(self, seeded):
        complete(seeded, 10, 2, 8, 4)
        draft = ReviewAssignment(application_id=10, reviewer_id=3, assigned_by=1)
        seeded.add(draft)
        seeded.commit()
        reviews.save_scores(seeded, as_reviewer(3), draft.id, [{"criteria_id": MERIT, "raw_score": 0}])

        row = ranking(seeded)[10]
        assert row.consensus.review_count == 1
        assert row.consensus.consensus_score == pytest.approx(0.8)

    def test_legacy_reviews_count(self, seeded):
        complete(seeded, 10, 2, 8, 4)
        legacy = ReviewAssignment(application_id=10, reviewer_id=3, assigned_by=1)
        seeded.add(legacy)
        seeded.flush()
        seeded.add(Review(assignment_id=legacy.id, application_id=10, reviewer_id=3, overall_score=6))
        seeded.commit()

        assert ranking(seeded)[10].consensus.consensus_score == pytest.approx(0.7)

    def test_order_and_tie_break(self, seeded):
        complete(seeded, 12, 2, 8, 4)   # 0.8, submitted last
        complete(seeded, 11, 2, 8, 4)   # 0.8, submitted earlier
        complete(seeded, 10, 2, 2, 1)   # 0.2

        ranked = stats.get_application_ranking(seeded, 1)
        assert [(s.application_id, s.rank) for s in ranked] == [(11, 1), (12, 2), (10, 3)]

    def test_unreviewed_applications_rank_last(self, seeded):
        complete(seeded, 12, 2, 2, 1)
        ranked = stats.get_application_ranking(seeded, 1)
        assert [s.application_id for s in ranked] == [12, 10, 11]
        assert ranked[1].consensus.consensus_score is None
        assert ranked[1].decision == "undecided"

    def test_ranking_is_repeatable(self, seeded):
        complete(seeded, 10, 2, 5, 2)
        complete(seeded, 11, 3, 5, 2)
        complete(seeded, 12, 4, 5, 2)
        first = [s.application_id for s in stats.get_application_ranking(seeded, 1)]
        assert first == [s.application_id for s in stats.get_application_ranking(seeded, 1)]
        assert first == [10, 11, 12]

    def test_expertise_weighted_average(self, seeded):
        seeded.add(ReviewSettings(program_id=1, scoring_method="weighted_average"))
        seeded.add(ReviewerExpertise(reviewer_id=2, expertise_area="Biology", proficiency_level="expert"))
        seeded.add(ReviewerExpertise(reviewer_id=2, expertise_area="Chemistry", proficiency_level="beginner"))
        seeded.commit()
        complete(seeded, 10, 2, 8, 4)   # 0.8, weight 2.0
        complete(seeded, 10, 3, 5, 2)   # 0.4625, weight 1.0

        row = ranking(seeded)[10]
        low = (0.5 * 0.5 + 0.4 * 0.3) / 0.8
        assert row.consensus.consensus_score == pytest.approx((0.8 * 2.0 + low) / 3.0)

    def test_expertise_weights(self, seeded):
        seeded.add(ReviewerExpertise(reviewer_id=3, expertise_area="Physics", proficiency_level="advanced",
                                     reliability_score=0.5))
        seeded.commit()
        assert stats.expertise_weights(seeded, [2, 3]) == {2: 1.0, 3: 0.75}

    def test_decisions_follow_thresholds(self, seeded):
        seeded.add(ReviewSettings(program_id=1, acceptance_threshold=0.75, waitlist_threshold=0.5,
                                  rejection_threshold=0.3))
        seeded.commit()
        complete(seeded, 10, 2, 8, 4)   # 0.8
        complete(seeded, 11, 2, 6, 3)   # 0.6
        complete(seeded, 12, 2, 2, 1)   # 0.2

        decisions = {k: v.decision for k, v in ranking(seeded).items()}
        assert decisions == {10: "accept", 11: "waitlist", 12: "reject"}


class TestProgramStats:
    def test_overview(self, seeded, owner):
        complete(seeded, 10, 2, 8, 4)
        complete(seeded, 10, 3, 6, 3)
        seeded.add(ReviewAssignment(application_id=11, reviewer_id=4, assigned_by=1))
        seeded.commit()

        result = stats.get_program_review_stats(seeded, owner, 1)
        overview = result["overview"]

        assert overview["total_applications"] == 3
        assert overview["applications_reviewed"] == 1
        assert overview["applications_pending_review"] == 2
        assert overview["average_score"] == pytest.approx(0.7)
        assert overview["total_reviewers"] == 3
        assert (overview["reviews_completed"], overview["reviews_pending"]) == (2, 1)
        assert result["rankings"][0]["application_id"] == 10
        assert [w["full_name"] for w in result["reviewer_workload"]] == [
            "Ravi Reviewer", "Rosa Reviewer", "Remy Reviewer",
        ]

    def test_owner_only(self, seeded, reviewer):
        with pytest.raises(ForbiddenError):
            stats.get_program_review_stats(seeded, reviewer, 1)
