"""
Tests for database.py - SQLite schema and connection setup.
"""

from datetime import datetime

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from jobmatch.database import CandidateRow, JobRow, MatchRow, ProfileRow, get_session, init_database


class TestDatabaseInit:
    """Test database initialization."""

    def test_init_creates_database_file(self, tmp_path):
        """Test that init_database creates the database file."""
        db_path = tmp_path / "test.db"
        assert not db_path.exists()

        init_database(db_path)

        assert db_path.exists()

    def test_init_creates_tables(self, tmp_path):
        """Every table exists and starts empty."""
        db_path = tmp_path / "test.db"
        init_database(db_path)

        session = get_session(db_path)
        for model in (CandidateRow, ProfileRow, JobRow, MatchRow):
            assert session.query(model).count() == 0
        session.close()

    def test_init_creates_parent_directories(self, tmp_path):
        """Test that init_database creates parent directories if missing."""
        db_path = tmp_path / "nested" / "dir" / "test.db"
        assert not db_path.parent.exists()

        init_database(db_path)

        assert db_path.exists()

    def test_init_is_idempotent(self, tmp_path):
        db_path = tmp_path / "test.db"
        init_database(db_path)
        init_database(db_path)

    def test_wal_mode(self, tmp_path):
        db_path = tmp_path / "test.db"
        init_database(db_path)

        session = get_session(db_path)
        mode = session.execute(text("PRAGMA journal_mode")).scalar()
        session.close()
        assert mode.lower() == "wal"


class TestMatchRow:
    """Test constraints on the matches table."""

    @pytest.fixture
    def db_session(self, tmp_path):
        """Create a temporary database and return a session."""
        db_path = tmp_path / "test.db"
        init_database(db_path)
        session = get_session(db_path)
        yield session
        session.close()

    def test_defaults(self, db_session):
        db_session.add(MatchRow(candidate_id="c1", job_id="j1", score=50))
        db_session.commit()

        row = db_session.query(MatchRow).one()
        assert row.status == "pending"
        assert row.revision == 1
        assert isinstance(row.created_at, datetime)

    def test_unique_pair(self, db_session):
        """Test that a (candidate, job) pair can only exist once."""
        db_session.add(MatchRow(candidate_id="c1", job_id="j1", score=50))
        db_session.commit()

        db_session.add(MatchRow(candidate_id="c1", job_id="j1", score=60))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_score_range_enforced(self, db_session):
        db_session.add(MatchRow(candidate_id="c1", job_id="j1", score=101))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_null_score_allowed(self, db_session):
        db_session.add(MatchRow(candidate_id="c1", job_id="j1", score=None))
        db_session.commit()
        assert db_session.query(MatchRow).one().score is None

    def test_status_enforced(self, db_session):
        db_session.add(MatchRow(candidate_id="c1", job_id="j1", score=1, status="archived"))
        with pytest.raises(IntegrityError):
            db_session.commit()


class TestCandidateRow:
    """Test the candidate table's version column."""

    def test_bookkeeping_does_not_bump_version(self, tmp_path):
        """Writing last_matched_at leaves updated_at (the content version) alone."""
        db_path = tmp_path / "test.db"
        init_database(db_path)
        version = datetime(2026, 1, 1, 9, 0, 0)

        session = get_session(db_path)
        session.add(CandidateRow(id="c1", skills=["Python"], updated_at=version))
        session.commit()

        row = session.get(CandidateRow, "c1")
        row.last_matched_at = datetime.now()
        row.analysis_results = {"suggestions": []}
        session.commit()

        assert session.get(CandidateRow, "c1").updated_at == version
        session.close()

    def test_json_columns_round_trip(self, tmp_path):
        db_path = tmp_path / "test.db"
        init_database(db_path)

        session = get_session(db_path)
        session.add(CandidateRow(id="c1", skills=["Python", "SQL"], experience=[{"company": "Acme"}]))
        session.commit()
        session.close()

        session = get_session(db_path)
        row = session.get(CandidateRow, "c1")
        assert row.skills == ["Python", "SQL"]
        assert row.experience[0]["company"] == "Acme"
        session.close()
