"""
Pytest configuration and shared fixtures.
"""

import threading
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pytest

from jobmatch import repository
from jobmatch.cache import AnalysisCache
from jobmatch.database import init_database, session_factory
from jobmatch.logger import get_logger
from jobmatch.models import Candidate, ExperienceEntry, JobPosting
from jobmatch.oracle import OracleTransport, ScoringOracleClient

V1 = datetime(2026, 1, 1, 9, 0, 0)
V2 = datetime(2026, 2, 1, 9, 0, 0)


def no_sleep(_seconds: float) -> None:
    pass


class FixedTransport(OracleTransport):
    """Returns the same text for every prompt and counts calls."""

    name = "fixed"

    def __init__(self, text: str):
        self.text = text
        self.calls = 0
        self.prompts: List[str] = []
        self._lock = threading.Lock()

    def generate(self, prompt: str, timeout: float) -> str:
        with self._lock:
            self.calls += 1
            self.prompts.append(prompt)
        return self.text


class SlowTransport(FixedTransport):
    """Sleeps past any reasonable test deadline before answering."""

    name = "slow"

    def __init__(self, delay: float = 0.5, text: str = "90"):
        super().__init__(text)
        self.delay = delay

    def generate(self, prompt: str, timeout: float) -> str:
        with self._lock:
            self.calls += 1
        time.sleep(self.delay)
        return self.text


class RaisingTransport(FixedTransport):
    """Raises the given exception on every call."""

    name = "raising"

    def __init__(self, error: Exception):
        super().__init__("")
        self.error = error

    def generate(self, prompt: str, timeout: float) -> str:
        with self._lock:
            self.calls += 1
        raise self.error


class ScriptedTransport(FixedTransport):
    """Plays back a list of responses; exceptions in the list are raised."""

    name = "scripted"

    def __init__(self, script: list):
        super().__init__("")
        self.script = list(script)

    def generate(self, prompt: str, timeout: float) -> str:
        with self._lock:
            self.calls += 1
            step = self.script.pop(0) if self.script else ""
        if isinstance(step, Exception):
            raise step
        return step


def make_oracle(transport: Optional[OracleTransport], **kwargs) -> ScoringOracleClient:
    kwargs.setdefault("timeout", 2.0)
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("sleep", no_sleep)
    return ScoringOracleClient(transport, **kwargs)


@pytest.fixture
def candidate() -> Candidate:
    """Candidate with two skills and one job of experience."""
    return Candidate(
        id="cand-1",
        skills=("Python", "SQL"),
        experience=(
            ExperienceEntry(
                company="Acme",
                role="Backend Developer",
                duration="2 years",
                description="Built data APIs",
            ),
        ),
        summary="Backend developer.",
        content_version=V1,
        user_id="user-1",
        email="ada@example.com",
    )


@pytest.fixture
def job() -> JobPosting:
    """Job requiring three skills, two of which the sample candidate has."""
    return JobPosting(
        id="job-1",
        title="Backend Engineer",
        description="Build services.",
        required_skills=("Python", "SQL", "Go"),
        content_version=V1,
    )


@pytest.fixture
def jobs() -> List[JobPosting]:
    return [
        JobPosting(id="job-1", title="Backend Engineer", required_skills=("Python", "SQL", "Go"), content_version=V1),
        JobPosting(id="job-2", title="Data Analyst", required_skills=("SQL", "Excel"), content_version=V1),
        JobPosting(id="job-3", title="iOS Developer", required_skills=("Swift",), content_version=V1),
    ]


@pytest.fixture
def cache() -> AnalysisCache:
    return AnalysisCache()


@pytest.fixture
def package_logs(caplog):
    """caplog wired to the package logger, which does not propagate to root."""
    target = get_logger().logger
    target.addHandler(caplog.handler)
    yield caplog
    target.removeHandler(caplog.handler)


@pytest.fixture
def db_path(tmp_path) -> Path:
    path = tmp_path / "jobmatch.db"
    init_database(path)
    return path


@pytest.fixture
def sessions(db_path):
    """Session factory bound to a fresh temporary database."""
    factory = session_factory(db_path)
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def seed(sessions):
    """Write candidates, jobs and profiles into the temporary database."""

    def _seed(candidates=(), jobs=(), profiles=()):
        with sessions() as session, session.begin():
            for c in candidates:
                repository.add_candidate(session, c)
            for j in jobs:
                repository.add_job(session, j)
            for user_id, email in profiles:
                repository.add_profile(session, user_id, email)

    return _seed
