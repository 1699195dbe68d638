"""
Read/write helpers over the candidates, profiles, jobs and matches tables.

Plain functions taking a Session. No scoring and no domain decisions beyond
mapping rows to model values.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from .database import CandidateRow, JobRow, MatchRow, ProfileRow
from .models import (
    AnalysisResult,
    Candidate,
    EducationEntry,
    ExperienceEntry,
    JobPosting,
    MatchStatus,
    clean_skills,
    entries_from,
)

DEFAULT_JOB_LIMIT = 100


def _skill_list(value) -> tuple:
    if isinstance(value, dict):
        value = value.get("skills", [])
    return clean_skills(value if isinstance(value, list) else [])


def candidate_from_row(row: CandidateRow) -> Candidate:
    return Candidate(
        id=row.id,
        skills=_skill_list(row.skills),
        experience=entries_from(row.experience, ExperienceEntry),
        education=entries_from(row.education, EducationEntry),
        summary=row.summary or "",
        content_version=row.updated_at,
        user_id=row.user_id,
        email=row.email,
    )


def job_from_row(row: JobRow) -> JobPosting:
    return JobPosting(
        id=row.id,
        title=row.title,
        description=row.description or "",
        required_skills=_skill_list(row.required_skills),
        preferred_skills=_skill_list(row.preferred_skills),
        content_version=row.updated_at,
    )


# --- Candidates and profiles ---


def get_candidate(session: Session, candidate_id: str) -> Optional[Candidate]:
    row = session.get(CandidateRow, candidate_id)
    return candidate_from_row(row) if row else None


def find_candidate_by_email(session: Session, email: str) -> Optional[Candidate]:
    row = session.execute(
        select(CandidateRow).where(CandidateRow.email == email).order_by(CandidateRow.updated_at.desc())
    ).scalars().first()
    return candidate_from_row(row) if row else None


def find_candidate_by_user_id(session: Session, user_id: str) -> Optional[Candidate]:
    """Newest content version wins when one user has several candidate rows."""
    row = session.execute(
        select(CandidateRow).where(CandidateRow.user_id == user_id).order_by(CandidateRow.updated_at.desc())
    ).scalars().first()
    return candidate_from_row(row) if row else None


def get_profile_email(session: Session, user_id: str) -> Optional[str]:
    row = session.get(ProfileRow, user_id)
    return row.email if row else None


def list_candidate_ids(session: Session, limit: Optional[int] = None) -> List[str]:
    """Most recently created first."""
    stmt = select(CandidateRow.id).order_by(CandidateRow.created_at.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list(session.execute(stmt).scalars())


def list_candidates_with_skills(session: Session) -> List[Candidate]:
    rows = session.execute(select(CandidateRow).where(CandidateRow.skills.is_not(None))).scalars()
    return [c for c in (candidate_from_row(r) for r in rows) if c.skills]


def add_candidate(session: Session, candidate: Candidate) -> None:
    """Insert or replace a candidate row from a model value."""
    row = session.get(CandidateRow, candidate.id) or CandidateRow(id=candidate.id)
    row.user_id = candidate.user_id
    row.email = candidate.email
    row.skills = list(candidate.skills)
    row.experience = [e.to_dict() for e in candidate.experience]
    row.education = [e.to_dict() for e in candidate.education]
    row.summary = candidate.summary
    row.updated_at = candidate.content_version or datetime.now()
    session.add(row)


def add_profile(session: Session, user_id: str, email: Optional[str]) -> None:
    row = session.get(ProfileRow, user_id) or ProfileRow(id=user_id)
    row.email = email
    session.add(row)


# --- Jobs ---


def get_job(session: Session, job_id: str) -> Optional[JobPosting]:
    row = session.get(JobRow, job_id)
    return job_from_row(row) if row else None


def list_open_jobs(session: Session, limit: int = DEFAULT_JOB_LIMIT) -> List[JobPosting]:
    rows = session.execute(
        select(JobRow).where(JobRow.status == "open").order_by(JobRow.created_at.desc()).limit(limit)
    ).scalars()
    return [job_from_row(r) for r in rows]


def add_job(session: Session, job: JobPosting, status: str = "open") -> None:
    row = session.get(JobRow, job.id) or JobRow(id=job.id)
    row.title = job.title
    row.description = job.description
    row.required_skills = list(job.required_skills)
    row.preferred_skills = list(job.preferred_skills)
    row.status = status
    if job.content_version:
        row.updated_at = job.content_version
    session.add(row)


# --- Bookkeeping ---


def mark_matched(session: Session, candidate_id: str, when: Optional[datetime] = None) -> None:
    row = session.get(CandidateRow, candidate_id)
    if row is not None:
        row.last_matched_at = when or datetime.now()


def needs_matching(session: Session, candidate_id: str) -> bool:
    """True if never matched, or the résumé changed after the last match run."""
    row = session.get(CandidateRow, candidate_id)
    if row is None:
        return True  # can't tell; let the caller try
    if row.last_matched_at is None:
        return True
    return row.updated_at > row.last_matched_at


def save_analysis(session: Session, result: AnalysisResult) -> None:
    row = session.get(CandidateRow, result.owner_id)
    if row is None:
        return
    row.analysis_results = result.to_dict()
    row.last_analyzed_at = result.computed_at


def stored_analysis(session: Session, candidate_id: str) -> Optional[Tuple[dict, datetime, datetime]]:
    """(analysis dict, last_analyzed_at, content version) or None if never analyzed."""
    row = session.get(CandidateRow, candidate_id)
    if row is None or not row.analysis_results or row.last_analyzed_at is None:
        return None
    return row.analysis_results, row.last_analyzed_at, row.updated_at


# --- Matches ---


def get_match(session: Session, candidate_id: str, job_id: str) -> Optional[MatchRow]:
    return session.execute(
        select(MatchRow).where(MatchRow.candidate_id == candidate_id, MatchRow.job_id == job_id)
    ).scalars().first()


def pending_matches(session: Session, candidate_id: str) -> List[Tuple[JobPosting, Optional[int]]]:
    """
    Open jobs with a pending match for a candidate, best score first and
    unscored rows last.
    """
    rows = session.execute(
        select(JobRow, MatchRow.score)
        .join(MatchRow, MatchRow.job_id == JobRow.id)
        .where(
            MatchRow.candidate_id == candidate_id,
            MatchRow.status == MatchStatus.PENDING.value,
            JobRow.status == "open",
        )
    ).all()
    pairs = [(job_from_row(job), score) for job, score in rows]
    pairs.sort(key=lambda p: (p[1] is None, -(p[1] or 0)))
    return pairs


def match_counts(session: Session) -> Dict[str, int]:
    counts = {s.value: 0 for s in MatchStatus}
    for row in session.execute(select(MatchRow.status)).scalars():
        counts[row] = counts.get(row, 0) + 1
    return counts
