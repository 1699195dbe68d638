"""
Typed value objects passed between the scoring components.

Built once at the ingestion boundary (see schema.py) and treated as read-only
everywhere else.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Tuple


def clean_skills(skills: Iterable) -> Tuple[str, ...]:
    """Strip, drop blanks and non-strings, de-duplicate case-insensitively keeping order."""
    seen = set()
    result = []
    for skill in skills or ():
        if not isinstance(skill, str):
            continue
        s = " ".join(skill.split())
        if not s or s.lower() in seen:
            continue
        seen.add(s.lower())
        result.append(s)
    return tuple(result)


@dataclass(frozen=True)
class ExperienceEntry:
    company: str = ""
    role: str = ""
    duration: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ExperienceEntry":
        # Older parsers wrote "title" for the role
        return cls(
            company=str(data.get("company") or ""),
            role=str(data.get("role") or data.get("title") or ""),
            duration=str(data.get("duration") or ""),
            description=str(data.get("description") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "company": self.company,
            "role": self.role,
            "duration": self.duration,
            "description": self.description,
        }


@dataclass(frozen=True)
class EducationEntry:
    institution: str = ""
    degree: str = ""
    year: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "EducationEntry":
        return cls(
            institution=str(data.get("institution") or data.get("school") or ""),
            degree=str(data.get("degree") or ""),
            year=str(data.get("year") or ""),
        )

    def to_dict(self) -> dict:
        return {"institution": self.institution, "degree": self.degree, "year": self.year}


def entries_from(items, entry_type) -> tuple:
    """Build ExperienceEntry or EducationEntry values from a JSON list, skipping non-objects."""
    if not isinstance(items, list):
        return ()
    return tuple(entry_type.from_dict(i) for i in items if isinstance(i, dict))


@dataclass(frozen=True)
class Candidate:
    """Structured résumé profile."""

    id: str
    skills: Tuple[str, ...] = ()
    experience: Tuple[ExperienceEntry, ...] = ()
    education: Tuple[EducationEntry, ...] = ()
    summary: str = ""
    content_version: Optional[datetime] = None  # last-modified of the résumé record
    user_id: Optional[str] = None
    email: Optional[str] = None

    def experience_summary(self, limit: int = 2) -> List[dict]:
        return [e.to_dict() for e in self.experience[:limit]]

    def to_analysis_payload(self) -> dict:
        return {
            "skills": list(self.skills),
            "experience": [e.to_dict() for e in self.experience],
            "education": [e.to_dict() for e in self.education],
            "summary": self.summary,
        }


@dataclass(frozen=True)
class JobPosting:
    """Employer job requirement record."""

    id: str
    title: str
    description: str = ""
    required_skills: Tuple[str, ...] = ()
    preferred_skills: Tuple[str, ...] = ()
    content_version: Optional[datetime] = None


class MatchStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    DECLINED = "declined"


@dataclass(frozen=True)
class MatchRecord:
    """
    One row to persist. status=None means the caller did not decide anything
    about the status, so an existing row keeps whatever it has.
    """

    candidate_id: str
    job_id: str
    score: Optional[int]
    status: Optional[MatchStatus] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.candidate_id, self.job_id)


class OutcomeKind(str, Enum):
    SCORED = "scored"
    FALLBACK = "fallback"
    FAILED = "failed"


@dataclass(frozen=True)
class ScoreOutcome:
    """
    Result of one pairwise scoring attempt.

    scored   - the oracle produced the score
    fallback - the heuristic produced it (short-circuit, timeout, bad response)
    failed   - nothing usable; score is None
    """

    kind: OutcomeKind
    score: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def scored(cls, score: int) -> "ScoreOutcome":
        return cls(OutcomeKind.SCORED, score)

    @classmethod
    def fallback(cls, score: int, reason: str) -> "ScoreOutcome":
        return cls(OutcomeKind.FALLBACK, score, reason)

    @classmethod
    def failed(cls, reason: str) -> "ScoreOutcome":
        return cls(OutcomeKind.FAILED, None, reason)

    @property
    def is_fallback(self) -> bool:
        return self.kind == OutcomeKind.FALLBACK

    @property
    def is_failed(self) -> bool:
        return self.kind == OutcomeKind.FAILED


@dataclass(frozen=True)
class ScoredResult:
    candidate_id: str
    job_id: str
    score: Optional[int]
    outcome: Optional[ScoreOutcome] = None


@dataclass(frozen=True)
class AnalysisResult:
    owner_id: str
    content_version: Optional[datetime]
    suggestions: Tuple[str, ...]
    strengths: Tuple[str, ...]
    weaknesses: Tuple[str, ...]
    computed_at: datetime
    used_fallback: bool = False

    def to_dict(self) -> dict:
        return {
            "suggestions": list(self.suggestions),
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "used_fallback": self.used_fallback,
        }


@dataclass
class UpsertResult:
    """Counts from a store write; failures hold ((candidate_id, job_id), reason)."""

    created: int = 0
    updated: int = 0
    failures: List[Tuple[Tuple[str, str], str]] = field(default_factory=list)

    def merge(self, other: "UpsertResult") -> None:
        self.created += other.created
        self.updated += other.updated
        self.failures.extend(other.failures)
