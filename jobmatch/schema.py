"""
Validation and construction of typed values at the ingestion boundary.

Raw payloads come from the résumé parser and the job-posting service as loose
JSON. Validators return a list of error messages (empty list means valid);
builders turn a valid payload into the immutable model types.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from .errors import InputDataError
from .models import Candidate, EducationEntry, ExperienceEntry, JobPosting, clean_skills, entries_from

REQUIRED_CANDIDATE_FIELDS = ["id"]
REQUIRED_JOB_FIELDS = ["id", "title"]
OPTIONAL_STR_FIELDS = ["summary", "description", "email", "user_id"]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _is_str_list(v: Any) -> bool:
    return isinstance(v, list) and all(isinstance(i, str) for i in v)


def _parse_timestamp(v: Any) -> Optional[datetime]:
    if v is None:
        return None
    if isinstance(v, str) and v.strip():
        v = datetime.fromisoformat(v.strip().replace("Z", "+00:00"))
    if not isinstance(v, datetime):
        raise ValueError(f"not a timestamp: {v!r}")
    # Stored naive in local time, like every other timestamp column
    if v.tzinfo is not None:
        v = v.astimezone().replace(tzinfo=None)
    return v


def _job_skill_list(v: Any) -> Any:
    # Older job rows stored {"skills": [...]} instead of a bare list
    if isinstance(v, dict):
        return v.get("skills", [])
    return v


def _check_required(data: Dict[str, Any], fields: List[str], errors: List[str]) -> None:
    for f in fields:
        if f not in data:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")


def _check_optional_str(data: Dict[str, Any], errors: List[str]) -> None:
    for f in OPTIONAL_STR_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")


def _check_timestamp(data: Dict[str, Any], field: str, errors: List[str]) -> None:
    if data.get(field) is None:
        return
    try:
        _parse_timestamp(data[field])
    except ValueError:
        errors.append(f"Field '{field}' must be an ISO-8601 timestamp")


def validate_candidate(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    if not isinstance(data, dict):
        return ["Candidate payload must be an object"]
    errors: List[str] = []
    _check_required(data, REQUIRED_CANDIDATE_FIELDS, errors)
    _check_optional_str(data, errors)

    if data.get("skills") is not None and not _is_str_list(data["skills"]):
        errors.append("Field 'skills' must be a list of strings")

    for f in ("experience", "education"):
        v = data.get(f)
        if v is not None and not (isinstance(v, list) and all(isinstance(i, dict) for i in v)):
            errors.append(f"Field '{f}' must be a list of objects")

    _check_timestamp(data, "updated_at", errors)
    return errors


def validate_job(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    if not isinstance(data, dict):
        return ["Job payload must be an object"]
    errors: List[str] = []
    _check_required(data, REQUIRED_JOB_FIELDS, errors)
    _check_optional_str(data, errors)

    for f in ("required_skills", "preferred_skills"):
        v = data.get(f)
        if v is not None and not _is_str_list(_job_skill_list(v)):
            errors.append(f"Field '{f}' must be a list of strings")

    _check_timestamp(data, "updated_at", errors)
    return errors


def build_candidate(data: Dict[str, Any]) -> Candidate:
    """
    Build a Candidate from a raw payload.

    Raises:
        InputDataError: With the validation errors if the payload is invalid
    """
    errors = validate_candidate(data)
    if errors:
        raise InputDataError(f"Invalid candidate payload: {'; '.join(errors)}", errors)
    return Candidate(
        id=data["id"].strip(),
        skills=clean_skills(data.get("skills")),
        experience=entries_from(data.get("experience"), ExperienceEntry),
        education=entries_from(data.get("education"), EducationEntry),
        summary=data.get("summary") or "",
        content_version=_parse_timestamp(data.get("updated_at")),
        user_id=data.get("user_id"),
        email=data.get("email"),
    )


def build_job(data: Dict[str, Any]) -> JobPosting:
    """
    Build a JobPosting from a raw payload.

    Raises:
        InputDataError: With the validation errors if the payload is invalid
    """
    errors = validate_job(data)
    if errors:
        raise InputDataError(f"Invalid job payload: {'; '.join(errors)}", errors)
    return JobPosting(
        id=data["id"].strip(),
        title=data["title"].strip(),
        description=data.get("description") or "",
        required_skills=clean_skills(_job_skill_list(data.get("required_skills"))),
        preferred_skills=clean_skills(_job_skill_list(data.get("preferred_skills"))),
        content_version=_parse_timestamp(data.get("updated_at")),
    )
