"""
Tests for the user-facing matching flows.
"""

import pytest

from jobmatch import repository
from jobmatch.batch import BatchCoordinator
from jobmatch.engine import MatchEngine
from jobmatch.errors import CandidateNotFoundError, JobNotFoundError
from jobmatch.models import MatchRecord
from jobmatch.profiles import ProfileResolver
from jobmatch.service import MatchingService
from jobmatch.store import UpsertStore

from conftest import FixedTransport, make_oracle


@pytest.fixture
def transport():
    return FixedTransport("64")


@pytest.fixture
def service(sessions, cache, transport):
    oracle = make_oracle(transport)
    store = UpsertStore(sessions)
    coordinator = BatchCoordinator(sessions, MatchEngine(oracle, cache), store)
    yield MatchingService(sessions, ProfileResolver(sessions), coordinator, store, cache=cache)
    oracle.close()


class TestMatchForUser:
    """Test on-demand matching for a user."""

    def test_first_run_matches(self, service, seed, candidate, jobs):
        seed(candidates=[candidate], jobs=jobs)

        result = service.match_for_user("user-1")

        assert result.created == 3

    def test_skipped_when_up_to_date(self, service, seed, candidate, jobs, transport):
        seed(candidates=[candidate], jobs=jobs)
        service.match_for_user("user-1")

        assert service.match_for_user("user-1") is None
        assert transport.calls == 3

    def test_force_rematches(self, service, seed, candidate, jobs, transport):
        """A forced run skips cached scores and asks the oracle again."""
        seed(candidates=[candidate], jobs=jobs)
        service.match_for_user("user-1")

        result = service.match_for_user("user-1", force=True)
        assert result.updated == 3
        assert transport.calls == 6

    def test_unknown_user(self, service):
        with pytest.raises(CandidateNotFoundError):
            service.match_for_user("nobody")


class TestOpportunities:
    """Test listing and deciding on pending matches."""

    def test_ranked_with_unscored_last(self, service, seed, sessions, candidate, jobs):
        seed(candidates=[candidate], jobs=jobs)
        service.store.upsert([
            MatchRecord(candidate.id, "job-1", 40),
            MatchRecord(candidate.id, "job-2", None),
            MatchRecord(candidate.id, "job-3", 90),
        ])

        pairs = service.opportunities("user-1")

        assert [(job.id, score) for job, score in pairs] == [("job-3", 90), ("job-1", 40), ("job-2", None)]

    def test_apply_removes_from_pending_and_keeps_score(self, service, seed, candidate, jobs):
        seed(candidates=[candidate], jobs=jobs)
        service.match_for_user("user-1")

        service.apply("user-1", "job-1")

        assert "job-1" not in [job.id for job, _ in service.opportunities("user-1")]
        row = service.store.get(candidate.id, "job-1")
        assert (row.status, row.score) == ("applied", 64)

    def test_decline(self, service, seed, sessions, candidate, jobs):
        seed(candidates=[candidate], jobs=jobs)
        service.decline("user-1", "job-2")

        with sessions() as session:
            assert repository.match_counts(session)["declined"] == 1

    def test_decide_on_unknown_job(self, service, seed, candidate):
        seed(candidates=[candidate])
        with pytest.raises(JobNotFoundError):
            service.apply("user-1", "missing")
