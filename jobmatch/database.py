"""
Database schema and connection management.

Uses SQLite with SQLAlchemy. Candidates, profiles and jobs are written by
external collaborators; this package only reads them, apart from the
bookkeeping columns (last_matched_at, analysis_results, last_analyzed_at).
Match rows are written exclusively through UpsertStore.
"""

from datetime import datetime
from pathlib import Path

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class ProfileRow(Base):
    """Account profile; only the email is used, as a secondary lookup key."""

    __tablename__ = "profiles"

    id = Column(String, primary_key=True)  # raw user id
    email = Column(String, nullable=True, index=True)


class CandidateRow(Base):
    """Parsed résumé profile."""

    __tablename__ = "candidates"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=True, index=True)
    email = Column(String, nullable=True, index=True)
    skills = Column(JSON, nullable=True)
    experience = Column(JSON, nullable=True)
    education = Column(JSON, nullable=True)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)  # content version, set by the résumé writer
    last_matched_at = Column(DateTime, nullable=True)
    analysis_results = Column(JSON, nullable=True)
    last_analyzed_at = Column(DateTime, nullable=True)


class JobRow(Base):
    """Job posting."""

    __tablename__ = "jobs"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    required_skills = Column(JSON, nullable=True)  # list, or legacy {"skills": [...]}
    preferred_skills = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default="open")
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class MatchRow(Base):
    """Compatibility score between one candidate and one job."""

    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("candidate_id", "job_id", name="uq_matches_candidate_job"),
        CheckConstraint("score IS NULL OR (score >= 0 AND score <= 100)", name="ck_matches_score"),
        CheckConstraint(
            "status IN ('pending', 'applied', 'declined')", name="ck_matches_status"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    candidate_id = Column(String, nullable=False, index=True)
    job_id = Column(String, nullable=False, index=True)
    score = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default="pending")
    revision = Column(Integer, nullable=False, default=1)  # 1 on insert, +1 per upsert update
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def _on_connect(dbapi_connection, connection_record):
    # Let SQLAlchemy drive transactions; pysqlite's own handling breaks SAVEPOINT
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def _on_begin(conn):
    # IMMEDIATE takes the write lock up front so read-then-write
    # transactions wait on busy_timeout instead of failing
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine(db_path: Path):
    """
    Create an engine for a SQLite file.

    WAL and a busy timeout let batch worker threads write concurrently.
    """
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _on_connect)
    event.listen(engine, "begin", _on_begin)
    return engine


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    engine.dispose()


def session_factory(db_path: Path) -> sessionmaker:
    """
    Build a session factory bound to one engine.

    Args:
        db_path: Path to SQLite database file

    Returns:
        sessionmaker; call it to open a Session
    """
    return sessionmaker(bind=get_engine(db_path), expire_on_commit=False)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    return session_factory(db_path)()
