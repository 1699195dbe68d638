"""
Tests for row mapping and lookups.
"""

from datetime import datetime, timedelta

from jobmatch import repository
from jobmatch.database import CandidateRow, JobRow
from jobmatch.models import Candidate, JobPosting, MatchRecord, MatchStatus
from jobmatch.store import UpsertStore

from conftest import V1, V2


class TestCandidates:
    """Test candidate lookups and bookkeeping columns."""

    def test_round_trip(self, sessions, seed, candidate):
        seed(candidates=[candidate])
        with sessions() as session:
            loaded = repository.get_candidate(session, candidate.id)
        assert loaded == candidate

    def test_find_by_email_prefers_latest(self, sessions, seed):
        seed(candidates=[
            Candidate(id="old", skills=("a",), email="x@example.com", content_version=V1),
            Candidate(id="new", skills=("b",), email="x@example.com", content_version=V2),
        ])
        with sessions() as session:
            assert repository.find_candidate_by_email(session, "x@example.com").id == "new"

    def test_find_by_user_id_prefers_latest(self, sessions, seed):
        seed(candidates=[
            Candidate(id="first", skills=("a",), user_id="u-7", content_version=V1),
            Candidate(id="second", skills=("b",), user_id="u-7", content_version=V2),
        ])
        with sessions() as session:
            assert repository.find_candidate_by_user_id(session, "u-7").id == "second"
            assert repository.find_candidate_by_user_id(session, "u-8") is None

    def test_legacy_row_shapes(self, sessions):
        """Rows written by older parsers use 'title', 'school' and a skills object."""
        with sessions() as session, session.begin():
            session.add(CandidateRow(
                id="legacy",
                skills={"skills": ["Go", "Rust"]},
                experience=[{"company": "Acme", "title": "Dev"}, "junk"],
                education=[{"school": "MIT"}],
                updated_at=V1,
            ))
        with sessions() as session:
            c = repository.get_candidate(session, "legacy")
        assert c.skills == ("Go", "Rust")
        assert c.experience[0].role == "Dev"
        assert len(c.experience) == 1
        assert c.education[0].institution == "MIT"

    def test_candidates_with_skills(self, sessions, seed):
        seed(candidates=[
            Candidate(id="a", skills=("Python",), content_version=V1),
            Candidate(id="b", content_version=V1),
        ])
        with sessions() as session:
            assert [c.id for c in repository.list_candidates_with_skills(session)] == ["a"]

    def test_needs_matching(self, sessions, seed, candidate):
        seed(candidates=[candidate])
        with sessions() as session:
            assert repository.needs_matching(session, candidate.id) is True

        with sessions() as session, session.begin():
            repository.mark_matched(session, candidate.id, V1 + timedelta(hours=1))
        with sessions() as session:
            assert repository.needs_matching(session, candidate.id) is False

        seed(candidates=[Candidate(id=candidate.id, skills=("Go",), content_version=V1 + timedelta(hours=2))])
        with sessions() as session:
            assert repository.needs_matching(session, candidate.id) is True

    def test_needs_matching_unknown(self, sessions):
        with sessions() as session:
            assert repository.needs_matching(session, "ghost") is True

    def test_stored_analysis_empty(self, sessions, seed, candidate):
        seed(candidates=[candidate])
        with sessions() as session:
            assert repository.stored_analysis(session, candidate.id) is None


class TestJobsAndMatches:
    """Test job listing and the pending-match view."""

    def test_open_jobs_only(self, sessions, seed, jobs):
        seed(jobs=jobs)
        with sessions() as session, session.begin():
            repository.add_job(session, JobPosting(id="closed", title="Gone"), status="closed")
        with sessions() as session:
            ids = {j.id for j in repository.list_open_jobs(session)}
        assert ids == {"job-1", "job-2", "job-3"}

    def test_open_jobs_limit(self, sessions, seed, jobs):
        seed(jobs=jobs)
        with sessions() as session:
            assert len(repository.list_open_jobs(session, limit=2)) == 2

    def test_job_version_from_row(self, sessions):
        with sessions() as session, session.begin():
            session.add(JobRow(id="j", title="t", required_skills=["Go"], updated_at=V2))
        with sessions() as session:
            assert repository.get_job(session, "j").content_version == V2

    def test_match_counts(self, sessions):
        store = UpsertStore(sessions)
        store.upsert([MatchRecord("c", "j1", 10), MatchRecord("c", "j2", 20)])
        store.set_status("c", "j2", MatchStatus.APPLIED)

        with sessions() as session:
            assert repository.match_counts(session) == {"pending": 1, "applied": 1, "declined": 0}

    def test_add_candidate_defaults_version(self, sessions):
        before = datetime.now()
        with sessions() as session, session.begin():
            repository.add_candidate(session, Candidate(id="fresh"))
        with sessions() as session:
            assert repository.get_candidate(session, "fresh").content_version >= before
