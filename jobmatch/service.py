"""
User-facing matching flows, and the wiring that builds every component from
Settings.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from . import repository
from .analyzer import ResumeAnalyzer
from .batch import BatchCoordinator
from .cache import AnalysisCache
from .config import Settings
from .database import init_database, session_factory
from .engine import MatchEngine
from .errors import JobNotFoundError
from .heuristic import HeuristicScorer
from .logger import get_logger
from .models import JobPosting, MatchStatus, UpsertResult
from .oracle import GeminiTransport, ScoringOracleClient
from .profiles import ProfileResolver
from .store import UpsertStore

logger = get_logger()


class MatchingService:
    """Match, list and decide on opportunities for a user."""

    def __init__(
        self,
        session_factory: sessionmaker,
        resolver: ProfileResolver,
        coordinator: BatchCoordinator,
        store: UpsertStore,
        cache: Optional[AnalysisCache] = None,
    ):
        self.session_factory = session_factory
        self.resolver = resolver
        self.coordinator = coordinator
        self.store = store
        self.cache = cache

    def match_for_user(self, user_id: str, force: bool = False) -> Optional[UpsertResult]:
        """
        Refresh a user's matches if their résumé changed since the last run.

        force recomputes regardless, dropping everything cached for the candidate first.

        Returns:
            UpsertResult, or None if matching was skipped as up to date

        Raises:
            CandidateNotFoundError: No candidate profile for the user
        """
        candidate = self.resolver.resolve(user_id)
        with self.session_factory() as session:
            needed = repository.needs_matching(session, candidate.id)

        if not needed and not force:
            logger.info("Matches are up to date", user_id=user_id, candidate_id=candidate.id)
            return None

        if force and self.cache is not None:
            self.cache.invalidate_owner(candidate.id)
        result = self.coordinator.reconcile_candidate(candidate.id)
        logger.info(
            "Matched user",
            user_id=user_id,
            candidate_id=candidate.id,
            created=result.created,
            updated=result.updated,
        )
        return result

    def opportunities(self, user_id: str) -> List[Tuple[JobPosting, Optional[int]]]:
        """Pending matches on open jobs, best score first, unscored last."""
        candidate = self.resolver.resolve(user_id)
        with self.session_factory() as session:
            return repository.pending_matches(session, candidate.id)

    def _decide(self, user_id: str, job_id: str, status: MatchStatus) -> None:
        candidate = self.resolver.resolve(user_id)
        with self.session_factory() as session:
            job = repository.get_job(session, job_id)
        if job is None:
            raise JobNotFoundError(f"job {job_id} not found")
        self.store.set_status(candidate.id, job_id, status)

    def apply(self, user_id: str, job_id: str) -> None:
        self._decide(user_id, job_id, MatchStatus.APPLIED)

    def decline(self, user_id: str, job_id: str) -> None:
        self._decide(user_id, job_id, MatchStatus.DECLINED)


@dataclass
class Pipeline:
    session_factory: sessionmaker
    oracle: ScoringOracleClient
    cache: AnalysisCache
    engine: MatchEngine
    store: UpsertStore
    coordinator: BatchCoordinator
    analyzer: ResumeAnalyzer
    resolver: ProfileResolver
    service: MatchingService

    def close(self) -> None:
        self.oracle.close()
        self.session_factory.kw["bind"].dispose()


def build_pipeline(settings: Settings) -> Pipeline:
    """Create every component, sharing one oracle client and one cache."""
    init_database(settings.db_path)
    sessions = session_factory(settings.db_path)

    transport = GeminiTransport(settings.api_key, settings.model) if settings.api_key else None
    if transport is None:
        logger.warning("GEMINI_API_KEY not set, scores will use the skill-overlap heuristic")

    oracle = ScoringOracleClient(
        transport,
        heuristic=HeuristicScorer(),
        timeout=settings.score_timeout,
        max_retries=settings.max_retries,
        backoff_base=settings.backoff_base,
        max_in_flight=settings.max_in_flight,
    )
    cache = AnalysisCache(ttl=settings.cache_ttl)
    engine = MatchEngine(oracle, cache, max_fan_out=settings.max_fan_out)
    store = UpsertStore(sessions, chunk_size=settings.write_chunk_size)
    coordinator = BatchCoordinator(sessions, engine, store, chunk_size=settings.batch_chunk_size)
    analyzer = ResumeAnalyzer(sessions, oracle, cache, timeout=settings.analysis_timeout)
    resolver = ProfileResolver(sessions)
    service = MatchingService(sessions, resolver, coordinator, store, cache=cache)

    return Pipeline(
        session_factory=sessions,
        oracle=oracle,
        cache=cache,
        engine=engine,
        store=store,
        coordinator=coordinator,
        analyzer=analyzer,
        resolver=resolver,
        service=service,
    )
