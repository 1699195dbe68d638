"""
Resolve a raw user identifier to a Candidate.

Strategies are tried in order; a miss in one is logged and the next one is
tried. Only when every strategy misses does resolution fail.
"""

from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from . import repository
from .errors import CandidateNotFoundError
from .logger import get_logger
from .models import Candidate

logger = get_logger()

Strategy = Callable[[Session, str], Optional[Candidate]]


def by_candidate_id(session: Session, user_id: str) -> Optional[Candidate]:
    return repository.get_candidate(session, user_id)


def by_user_id(session: Session, user_id: str) -> Optional[Candidate]:
    return repository.find_candidate_by_user_id(session, user_id)


def by_profile_email(session: Session, user_id: str) -> Optional[Candidate]:
    email = repository.get_profile_email(session, user_id)
    if not email:
        logger.debug("No email on profile", user_id=user_id)
        return None
    return repository.find_candidate_by_email(session, email)


DEFAULT_STRATEGIES: List[Tuple[str, Strategy]] = [
    ("candidate id", by_candidate_id),
    ("user id", by_user_id),
    ("profile email", by_profile_email),
]


class ProfileResolver:
    """Direct id match first, then fall back to secondary keys."""

    def __init__(
        self,
        session_factory: sessionmaker,
        strategies: Optional[List[Tuple[str, Strategy]]] = None,
    ):
        self.session_factory = session_factory
        self.strategies = strategies or DEFAULT_STRATEGIES

    def resolve(self, user_id: str) -> Candidate:
        """
        Find the candidate for a user.

        Raises:
            CandidateNotFoundError: No strategy found a candidate
        """
        if not user_id:
            raise CandidateNotFoundError("empty user id")

        errors = []
        with self.session_factory() as session:
            for name, strategy in self.strategies:
                try:
                    candidate = strategy(session, user_id)
                except SQLAlchemyError as e:
                    # A broken lookup must not stop the next strategy
                    logger.warning(f"Profile lookup by {name} failed", user_id=user_id, error=str(e))
                    errors.append(f"{name}: {e}")
                    session.rollback()
                    continue
                if candidate is not None:
                    logger.debug(f"Resolved profile by {name}", user_id=user_id, candidate_id=candidate.id)
                    return candidate
                logger.debug(f"No profile by {name}, trying next strategy", user_id=user_id)

        logger.warning("All profile lookups failed", user_id=user_id)
        raise CandidateNotFoundError(f"no candidate profile for user {user_id}", errors)
