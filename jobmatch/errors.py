"""
Exception taxonomy for the scoring and analysis pipeline.

Oracle errors never leave the oracle client; they are resolved by retry and
then by the heuristic fallback. Input errors short-circuit to cheap defaults and
are only escalated when there is nothing to compute from. Programmer errors
fail the single operation loudly.
"""

from typing import List, Optional


class JobMatchError(Exception):
    """Base class for all jobmatch errors."""
    pass


class OracleError(JobMatchError):
    """The scoring oracle could not produce a usable response."""
    pass


class TransientOracleError(OracleError):
    """Timeout, connection failure or retryable HTTP status from the oracle."""
    pass


class InputDataError(JobMatchError):
    """Profile or job data is missing or malformed."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class CandidateNotFoundError(InputDataError):
    """No candidate record could be resolved for an identifier."""
    pass


class JobNotFoundError(InputDataError):
    """No job posting exists for an identifier."""
    pass


class PersistenceError(JobMatchError):
    """A store write failed for a single item."""
    pass


class ProgrammerError(JobMatchError):
    """Caller passed something that can never be valid."""
    pass


class InvalidMatchRecord(ProgrammerError):
    """Malformed composite key or out-of-range score handed to the store."""
    pass


class InvalidScoringInput(ProgrammerError):
    """Scoring input of the wrong shape (not just empty)."""
    pass
