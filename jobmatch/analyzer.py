"""
Résumé quality analysis.

Produces suggestions, strengths and weaknesses for a candidate's résumé. The
oracle is asked for a JSON object; anything it gets wrong is patched with
fixed default lists, so a caller always gets a complete analysis unless the
candidate does not exist.
"""

import json
import re
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from . import repository
from .cache import AnalysisCache, analysis_key
from .errors import CandidateNotFoundError, OracleError
from .logger import get_logger
from .models import AnalysisResult, Candidate
from .oracle import ANALYSIS_TIMEOUT, ScoringOracleClient
from .retry import RetryError

logger = get_logger()

MAX_SKILL_CHARS = 30
MAX_PAYLOAD_CHARS = 8000

CATEGORY_LABELS = [
    "backend development", "frontend development", "full stack", "other skills",
    "soft skills", "data analysis", "mobile development", "web development",
    "cloud services", "devops", "database", "testing", "ui/ux", "ux/ui",
    "frameworks", "programming languages", "tools", "libraries", "platforms",
    "methodologies", "design", "analytics", "automation", "infrastructure",
]

DESCRIPTIVE_TERMS = [
    "proficient in", "experienced with", "knowledge of", "familiar with",
    "expertise in", "specializing in", "skilled in", "advanced", "intermediate",
    "beginner", "expert in", "years of experience", "certified",
]

DEFAULT_ANALYSIS: Dict[str, List[str]] = {
    "suggestions": [
        "Add more specific details to your experience descriptions",
        "Quantify your achievements with metrics where possible",
        "Tailor your resume to the specific job you're applying for",
        "Use industry-specific keywords to pass applicant tracking systems",
        "Make sure your resume is properly formatted and easy to read",
    ],
    "strengths": [
        "Has technical skills listed",
        "Includes educational background",
        "Structure is organized",
    ],
    "weaknesses": [
        "Lacks quantifiable achievements",
        "Could use more keywords relevant to job targets",
        "Summary could be more concise and impactful",
    ],
}

# Used when the oracle answered but left one field out
FIELD_DEFAULTS: Dict[str, List[str]] = {
    "suggestions": DEFAULT_ANALYSIS["suggestions"][:3],
    "strengths": DEFAULT_ANALYSIS["strengths"],
    "weaknesses": DEFAULT_ANALYSIS["weaknesses"],
}

ANALYSIS_FIELDS = ("suggestions", "strengths", "weaknesses")

def stored_is_fallback(data: dict) -> bool:
    """True if a persisted analysis holds the default lists rather than an oracle answer."""
    if isinstance(data.get("used_fallback"), bool):
        return data["used_fallback"]
    # Rows saved before the flag existed
    return all(data.get(name) == DEFAULT_ANALYSIS[name] for name in ANALYSIS_FIELDS)


_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def _is_category_label(skill: str) -> bool:
    for label in CATEGORY_LABELS:
        if skill == label or skill == label + "s" or (label.endswith("s") and skill == label[:-1]):
            return True
    return False


def filter_skill_labels(skills: Iterable[str]) -> List[str]:
    """
    Drop entries that are headings or descriptions rather than skills.

    Examples:
        filter_skill_labels(["Python", "Tools", "Proficient in"])  # ["Python"]
    """
    kept = []
    for skill in skills or ():
        if not isinstance(skill, str):
            continue
        lowered = skill.strip().lower()
        if not lowered:
            continue
        if _is_category_label(lowered):
            continue
        if lowered in DESCRIPTIVE_TERMS:
            continue
        if len(skill) > MAX_SKILL_CHARS:
            continue
        kept.append(skill)
    return kept


def build_analysis_prompt(candidate: Candidate, skills: List[str]) -> str:
    payload = candidate.to_analysis_payload()
    payload["skills"] = skills
    data = json.dumps(payload, indent=2, default=str)
    if len(data) > MAX_PAYLOAD_CHARS:
        data = data[:MAX_PAYLOAD_CHARS]

    return (
        "Analyze this resume data and provide three lists:\n"
        "1. SUGGESTIONS: Specific, actionable suggestions for improving the resume (5-7 items)\n"
        "2. STRENGTHS: Key strengths of this resume (3-5 items)\n"
        "3. WEAKNESSES: Areas that need improvement (3-5 items)\n\n"
        "Be concrete and specific. Focus on content, skills, experience gaps, and formatting.\n"
        "Keep each point concise (15-25 words per item).\n\n"
        "IMPORTANT: Do not mention any dates that appear to be in the future or make "
        "assumptions about timeline accuracy. Do not flag future dates as errors, as these "
        "may be intended graduation or certification target dates.\n\n"
        f"Resume data:\n{data}\n\n"
        "Respond in JSON:\n"
        '{"suggestions": ["..."], "strengths": ["..."], "weaknesses": ["..."]}'
    )


def _first_balanced_object(text: str) -> Optional[str]:
    """Scan for the first {...} whose braces balance, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def _loads_dict(text: str) -> Optional[dict]:
    for candidate in (text, _TRAILING_COMMA.sub(r"\1", text)):
        try:
            result = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(result, dict):
            return result
    return None


def parse_analysis(text: Optional[str]) -> Optional[Dict[str, List[str]]]:
    """
    Parse an analysis object out of an oracle response.

    Tries the outermost {...} slice, then the same with trailing commas
    removed, then the first balanced object. Fields that are missing or not a
    list get their default list.

    Returns:
        Dict with all three fields, or None if no JSON object could be found
    """
    if not text:
        return None
    text = text.strip()

    parsed = None
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        parsed = _loads_dict(text[start:end + 1])
    if parsed is None:
        balanced = _first_balanced_object(text)
        if balanced:
            parsed = _loads_dict(balanced)
    if parsed is None:
        return None

    result = {}
    for name in ANALYSIS_FIELDS:
        value = parsed.get(name)
        if isinstance(value, list):
            result[name] = [str(item).strip() for item in value if str(item).strip()]
        else:
            result[name] = list(FIELD_DEFAULTS[name])
    return result


class ResumeAnalyzer:
    """Analyzes one candidate's résumé through the oracle, with caching and fallback."""

    def __init__(
        self,
        session_factory: sessionmaker,
        oracle: ScoringOracleClient,
        cache: AnalysisCache,
        timeout: float = ANALYSIS_TIMEOUT,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session_factory = session_factory
        self.oracle = oracle
        self.cache = cache
        self.timeout = timeout
        self._clock = clock

    def _load(self, candidate_id: str) -> Candidate:
        with self.session_factory() as session:
            candidate = repository.get_candidate(session, candidate_id)
        if candidate is None:
            raise CandidateNotFoundError(f"candidate {candidate_id} not found")
        return candidate

    def _result(self, candidate: Candidate, fields: Dict[str, List[str]], used_fallback: bool) -> AnalysisResult:
        return AnalysisResult(
            owner_id=candidate.id,
            content_version=candidate.content_version,
            suggestions=tuple(fields["suggestions"]),
            strengths=tuple(fields["strengths"]),
            weaknesses=tuple(fields["weaknesses"]),
            computed_at=self._clock(),
            used_fallback=used_fallback,
        )

    def _default(self, candidate: Candidate, reason: str) -> AnalysisResult:
        logger.record_fallback()
        logger.info("Using default analysis", candidate_id=candidate.id, reason=reason)
        return self._result(candidate, DEFAULT_ANALYSIS, used_fallback=True)

    def _persist(self, result: AnalysisResult) -> None:
        try:
            with self.session_factory() as session, session.begin():
                repository.save_analysis(session, result)
        except SQLAlchemyError as e:
            logger.error("Failed to save analysis", candidate_id=result.owner_id, error=str(e))
            logger.record_error("PersistenceError")

    def analyze(self, candidate_id: str) -> AnalysisResult:
        """
        Analyze a candidate's résumé.

        Args:
            candidate_id: Candidate to analyze

        Returns:
            AnalysisResult; used_fallback is set when the default lists were used

        Raises:
            CandidateNotFoundError: No such candidate
        """
        candidate = self._load(candidate_id)
        key = analysis_key(candidate.id)

        cached = self.cache.get(key, candidate.content_version)
        logger.record_cache(cached is not None)
        if cached is not None:
            logger.debug("Using cached analysis", candidate_id=candidate.id)
            return cached

        skills = filter_skill_labels(candidate.skills)
        if len(skills) < len(candidate.skills):
            logger.debug(
                "Filtered skill labels",
                candidate_id=candidate.id,
                removed=len(candidate.skills) - len(skills),
            )

        if not skills:
            result = self._default(candidate, "no skills to analyze")
        else:
            result = self._ask_oracle(candidate, skills)

        self._persist(result)
        self.cache.set(key, result, candidate.content_version)
        logger.info(
            "Résumé analyzed",
            candidate_id=candidate.id,
            suggestions=len(result.suggestions),
            strengths=len(result.strengths),
            weaknesses=len(result.weaknesses),
            fallback=result.used_fallback,
        )
        return result

    def _ask_oracle(self, candidate: Candidate, skills: List[str]) -> AnalysisResult:
        prompt = build_analysis_prompt(candidate, skills)
        try:
            text = self.oracle.generate(prompt, self.timeout)
        except RetryError as e:
            logger.warning("Analysis retries exhausted", candidate_id=candidate.id, error=str(e))
            return self._default(candidate, "retries exhausted")
        except OracleError as e:
            logger.warning("Analysis oracle call failed", candidate_id=candidate.id, error=str(e))
            return self._default(candidate, "oracle error")

        fields = parse_analysis(text)
        if fields is None:
            logger.warning(
                "Could not parse analysis response",
                candidate_id=candidate.id,
                response=text[:200],
            )
            return self._default(candidate, "unparsable response")
        return self._result(candidate, fields, used_fallback=False)

    def needs_analysis(self, candidate_id: str) -> bool:
        """
        True if the résumé was never analyzed, changed since the last analysis,
        or only has the default lists from an oracle outage.
        """
        with self.session_factory() as session:
            candidate = repository.get_candidate(session, candidate_id)
            stored = repository.stored_analysis(session, candidate_id)
        if candidate is None:
            return False
        if self.cache.get(analysis_key(candidate_id), candidate.content_version) is not None:
            return False
        if stored is None:
            return True
        data, last_analyzed_at, updated_at = stored
        if stored_is_fallback(data):
            return True
        return updated_at is not None and updated_at > last_analyzed_at

    def get_analysis(self, candidate_id: str, force_refresh: bool = False) -> AnalysisResult:
        """
        Stored analysis if still current, otherwise a fresh one.

        Raises:
            CandidateNotFoundError: No such candidate
        """
        if force_refresh:
            self.cache.invalidate(analysis_key(candidate_id))
            return self.analyze(candidate_id)

        candidate = self._load(candidate_id)
        with self.session_factory() as session:
            stored = repository.stored_analysis(session, candidate_id)

        if stored is not None:
            data, last_analyzed_at, updated_at = stored
            current = updated_at is None or updated_at <= last_analyzed_at
            # A stored fallback is retried; the cache keeps that from repeating within the TTL
            if current and not stored_is_fallback(data):
                fields = {
                    name: data.get(name) if isinstance(data.get(name), list) else FIELD_DEFAULTS[name]
                    for name in ANALYSIS_FIELDS
                }
                result = self._result(candidate, fields, used_fallback=False)
                return replace(result, computed_at=last_analyzed_at)
        return self.analyze(candidate_id)
