"""
Client for the external generative scoring oracle.

One call = one bounded prompt, raced against a hard deadline, retried with
exponential backoff on transient failures, and parsed defensively. Whatever
goes wrong on the oracle side, callers of ScoringOracleClient get a score: the
heuristic fallback is the answer for timeouts, transport errors, unparsable
responses and exhausted retries.

A deadline only stops *waiting* for the call. The worker thread that issued
the HTTP request keeps running until the request itself returns, so sustained
timeout pressure holds oracle slots busy for up to the socket timeout. The
transport receives the same deadline as its socket timeout to bound that.
"""

import json
import re
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, Sequence, Union

import requests

from .errors import InvalidScoringInput, OracleError, TransientOracleError
from .heuristic import HeuristicScorer
from .logger import get_logger
from .models import ExperienceEntry, JobPosting, ScoreOutcome
from .retry import RetryError, exponential_backoff, is_transient_error, should_retry_http_status

logger = get_logger()

DEFAULT_MODEL = "gemini-2.0-flash"
SCORE_TIMEOUT = 15.0
ANALYSIS_TIMEOUT = 45.0

# Prompt bounds, in characters / items
MAX_SKILLS = 50
MAX_EXPERIENCE_ENTRIES = 2
MAX_DESCRIPTION_CHARS = 2000
MAX_EXPERIENCE_DESCRIPTION_CHARS = 300
MAX_PROMPT_CHARS = 6000

_INT_TOKEN = re.compile(r"\b\d+\b")


# --- Transports ---


class OracleTransport(ABC):
    """
    One raw call to a generative model, no retries.

    Implementations raise TransientOracleError for anything worth retrying and
    OracleError for everything else.
    """

    name: str = "oracle"

    @abstractmethod
    def generate(self, prompt: str, timeout: float) -> str:
        pass


class GeminiTransport(OracleTransport):
    """Google Generative Language REST API over requests."""

    ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("GEMINI_API_KEY is not set")
        self.api_key = api_key
        self.model = model
        self.name = f"gemini/{model}"
        self.session = session or requests.Session()

    def generate(self, prompt: str, timeout: float) -> str:
        url = self.ENDPOINT.format(model=self.model)
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            resp = self.session.post(
                url,
                params={"key": self.api_key},
                json=body,
                timeout=timeout,
            )
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            if should_retry_http_status(status):
                raise TransientOracleError(f"{self.name} returned HTTP {status}") from e
            raise OracleError(f"{self.name} request failed (HTTP {status})") from e
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise TransientOracleError(f"{self.name} transport error: {e}") from e
        except requests.exceptions.RequestException as e:
            raise OracleError(f"{self.name} request error: {e}") from e

        try:
            data = resp.json()
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise OracleError(f"{self.name} returned an unexpected payload") from e


# --- Prompt building and response parsing ---


def _truncate(text: str, limit: int) -> str:
    text = text or ""
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _experience_payload(experience: Union[str, Sequence, None]) -> str:
    if not experience:
        return "[]"
    if isinstance(experience, str):
        return _truncate(experience, MAX_EXPERIENCE_DESCRIPTION_CHARS * MAX_EXPERIENCE_ENTRIES)

    entries = []
    for item in list(experience)[:MAX_EXPERIENCE_ENTRIES]:
        if isinstance(item, ExperienceEntry):
            item = item.to_dict()
        if isinstance(item, dict):
            item = dict(item)
            item["description"] = _truncate(str(item.get("description", "")), MAX_EXPERIENCE_DESCRIPTION_CHARS)
        entries.append(item)
    return json.dumps(entries, default=str)


def build_score_prompt(
    candidate_skills: Sequence[str],
    experience_summary: Union[str, Sequence, None],
    job: JobPosting,
) -> str:
    """Build a size-bounded scoring prompt."""
    prompt = (
        "Analyze this job and candidate match. Return ONLY a number from 0-100 "
        "representing how well they match.\n\n"
        "JOB:\n"
        f"Title: {_truncate(job.title, 200)}\n"
        f"Description: {_truncate(job.description, MAX_DESCRIPTION_CHARS)}\n"
        f"Required Skills: {json.dumps(list(job.required_skills)[:MAX_SKILLS])}\n"
    )
    if job.preferred_skills:
        prompt += f"Preferred Skills: {json.dumps(list(job.preferred_skills)[:MAX_SKILLS])}\n"
    prompt += (
        "\nCANDIDATE:\n"
        f"Skills: {json.dumps(list(candidate_skills)[:MAX_SKILLS])}\n"
        f"Experience Summary: {_experience_payload(experience_summary)}\n\n"
        "Calculate match score on skill alignment, relevant experience and how well "
        "the candidate meets requirements.\nReturn ONLY a number from 0-100."
    )
    return _truncate(prompt, MAX_PROMPT_CHARS)


def parse_score(text: Optional[str]) -> Optional[int]:
    """
    Return the first integer token in [0, 100], or None.

    Examples:
        parse_score("Score: 85/100")  # 85
        parse_score("150 then 70")    # 70
    """
    if not text:
        return None
    for match in _INT_TOKEN.finditer(text):
        value = int(match.group())
        if 0 <= value <= 100:
            return value
    return None


def _check_skills(name: str, skills) -> None:
    if skills is None:
        return
    if isinstance(skills, (str, bytes)) or not isinstance(skills, Sequence):
        raise InvalidScoringInput(f"{name} must be a sequence of strings")
    if any(not isinstance(s, str) for s in skills):
        raise InvalidScoringInput(f"{name} must only contain strings")


# --- Client ---


class ScoringOracleClient:
    """
    Deadline, retry, concurrency cap and fallback around an OracleTransport.

    Also used by ResumeAnalyzer through generate(), which shares the same
    retry/deadline machinery but leaves fallback to the caller.
    """

    def __init__(
        self,
        transport: Optional[OracleTransport],
        heuristic: Optional[HeuristicScorer] = None,
        timeout: float = SCORE_TIMEOUT,
        max_retries: int = 2,
        backoff_base: float = 1.0,
        max_in_flight: int = 8,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            transport: Oracle transport; None means the oracle is not configured
                and every request goes straight to the fallback
            heuristic: Fallback scorer
            timeout: Default per-attempt deadline in seconds
            max_retries: Extra attempts after the first on transient errors
            backoff_base: First backoff delay in seconds (doubles per retry)
            max_in_flight: Hard cap on concurrently running oracle calls
            sleep: Wait function between retries; injectable for tests
        """
        self.transport = transport
        self.heuristic = heuristic or HeuristicScorer()
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.sleep = sleep
        self._slots = threading.BoundedSemaphore(max_in_flight)
        self._executor = ThreadPoolExecutor(max_workers=max_in_flight, thread_name_prefix="oracle")

    def close(self) -> None:
        # Don't wait: timed-out calls may still be running
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @property
    def available(self) -> bool:
        return self.transport is not None

    def _call_once(self, prompt: str, timeout: float) -> str:
        """One attempt raced against the deadline. Slot is held until the call really ends."""
        self._slots.acquire()
        logger.record_oracle_call()
        try:
            future = self._executor.submit(self.transport.generate, prompt, timeout)
        except RuntimeError:
            self._slots.release()
            raise OracleError("oracle client is closed")
        future.add_done_callback(lambda _: self._slots.release())

        try:
            text = future.result(timeout=timeout)
        except FutureTimeoutError:
            logger.record_oracle_failure("Timeout")
            raise TransientOracleError(f"oracle call timed out after {timeout:.0f}s")
        except OracleError as e:
            logger.record_oracle_failure(type(e).__name__)
            raise
        except Exception as e:
            logger.record_oracle_failure(type(e).__name__)
            if is_transient_error(e):
                raise TransientOracleError(str(e)) from e
            raise OracleError(str(e)) from e

        logger.record_oracle_success()
        return text

    def _on_retry(self, attempt: int, error: Exception, delay: float):
        logger.warning(
            f"Oracle call failed, retrying in {delay:.1f}s",
            attempt=attempt,
            max_retries=self.max_retries,
            error=str(error),
        )

    def generate(self, prompt: str, timeout: Optional[float] = None) -> str:
        """
        Call the oracle with deadline and retries.

        Raises:
            OracleError: Not configured, or a non-retryable failure
            RetryError: Transient failures on every attempt
        """
        if self.transport is None:
            raise OracleError("oracle transport not configured")

        call = exponential_backoff(
            max_retries=self.max_retries,
            base_delay=self.backoff_base,
            exceptions=(TransientOracleError,),
            on_retry=self._on_retry,
            sleep=self.sleep,
        )(self._call_once)
        return call(prompt, timeout or self.timeout)

    def _fallback(self, candidate_skills, job: JobPosting, reason: str) -> ScoreOutcome:
        logger.record_fallback()
        score = self.heuristic.score(candidate_skills or (), job.required_skills)
        logger.info("Using heuristic score", job_id=job.id, reason=reason, score=score)
        return ScoreOutcome.fallback(score, reason)

    def score_outcome(
        self,
        candidate_skills: Sequence[str],
        experience_summary: Union[str, Sequence, None],
        job: JobPosting,
        timeout: Optional[float] = None,
    ) -> ScoreOutcome:
        """
        Score one candidate/job pair and report which path produced the score.

        Raises:
            InvalidScoringInput: Input of the wrong type (never for empty input)
        """
        if not isinstance(job, JobPosting):
            raise InvalidScoringInput("job must be a JobPosting")
        _check_skills("candidate_skills", candidate_skills)

        if not candidate_skills or not job.required_skills:
            return self._fallback(candidate_skills, job, "empty skills")
        if self.transport is None:
            return self._fallback(candidate_skills, job, "oracle not configured")

        prompt = build_score_prompt(candidate_skills, experience_summary, job)
        try:
            text = self.generate(prompt, timeout)
        except RetryError as e:
            logger.warning("Oracle retries exhausted", job_id=job.id, error=str(e))
            return self._fallback(candidate_skills, job, "retries exhausted")
        except OracleError as e:
            logger.warning("Oracle call failed", job_id=job.id, error=str(e))
            return self._fallback(candidate_skills, job, "oracle error")

        score = parse_score(text)
        if score is None:
            logger.warning("No score in oracle response", job_id=job.id, response=_truncate(text, 200))
            return self._fallback(candidate_skills, job, "unparsable response")

        logger.debug("Oracle score", job_id=job.id, score=score)
        return ScoreOutcome.scored(score)

    def score(
        self,
        candidate_skills: Sequence[str],
        experience_summary: Union[str, Sequence, None],
        job: JobPosting,
    ) -> int:
        """Score in [0, 100]; never raises for oracle-side failures."""
        return self.score_outcome(candidate_skills, experience_summary, job).score
