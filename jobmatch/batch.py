"""
Batch reconciliation of match rows.

Entities (candidates, or jobs for the reverse direction) are processed in
fixed-size chunks. Chunks run one after another; the entities inside a chunk
run concurrently. A failing entity is logged and reported, and never stops
the rest of the run.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from . import repository
from .engine import MatchEngine
from .errors import CandidateNotFoundError, JobNotFoundError, ProgrammerError
from .logger import get_logger
from .models import UpsertResult
from .store import UpsertStore

logger = get_logger()

BATCH_CHUNK_SIZE = 5


@dataclass
class ReconcileSummary:
    """Totals for one batch run; failures hold (entity_id, reason)."""

    created: int = 0
    updated: int = 0
    processed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.processed - len({entity_id for entity_id, _ in self.failures})

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "updated": self.updated,
            "processed": self.processed,
            "failed": len(self.failures),
        }


def _chunks(items: Sequence[str], size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class BatchCoordinator:
    """Drives MatchEngine over many entities and persists through UpsertStore."""

    def __init__(
        self,
        session_factory: sessionmaker,
        engine: MatchEngine,
        store: UpsertStore,
        chunk_size: int = BATCH_CHUNK_SIZE,
        job_limit: int = repository.DEFAULT_JOB_LIMIT,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.session_factory = session_factory
        self.engine = engine
        self.store = store
        self.chunk_size = chunk_size
        self.job_limit = job_limit

    # --- Single entity ---

    def reconcile_candidate(self, candidate_id: str) -> UpsertResult:
        """
        Score one candidate against every open job and persist the results.

        Raises:
            CandidateNotFoundError: No such candidate
        """
        with self.session_factory() as session:
            candidate = repository.get_candidate(session, candidate_id)
            jobs = repository.list_open_jobs(session, self.job_limit) if candidate else []
        if candidate is None:
            raise CandidateNotFoundError(f"candidate {candidate_id} not found")

        if not jobs:
            logger.info("No open jobs to match", candidate_id=candidate_id)
            result = UpsertResult()
        else:
            report = self.engine.match_candidate(candidate, jobs)
            result = self.store.upsert(report.to_records())

        if not result.failures:
            self._stamp_matched(candidate_id)
        return result

    def _stamp_matched(self, candidate_id: str) -> None:
        # Rows are already committed; an unstamped candidate is simply rematched next run
        try:
            with self.session_factory() as session, session.begin():
                repository.mark_matched(session, candidate_id, datetime.now())
        except SQLAlchemyError as e:
            logger.warning("Could not record match time", candidate_id=candidate_id, error=str(e))
            logger.record_error(type(e).__name__)

    def reconcile_job(self, job_id: str) -> UpsertResult:
        """
        Score every candidate that has skills against one job.

        Raises:
            JobNotFoundError: No such job
        """
        with self.session_factory() as session:
            job = repository.get_job(session, job_id)
            candidates = repository.list_candidates_with_skills(session) if job else []
        if job is None:
            raise JobNotFoundError(f"job {job_id} not found")

        if not candidates:
            logger.info("No candidates with skills to match", job_id=job_id)
            return UpsertResult()

        report = self.engine.match_job(job, candidates)
        return self.store.upsert(report.to_records())

    # --- Batches ---

    def _run(
        self,
        entity_ids: Sequence[str],
        work: Callable[[str], UpsertResult],
        kind: str,
        chunk_size: Optional[int],
    ) -> ReconcileSummary:
        size = chunk_size or self.chunk_size
        if size < 1:
            raise ValueError("chunk_size must be >= 1")

        summary = ReconcileSummary()
        ids = list(dict.fromkeys(entity_ids))
        logger.info(f"Reconciling {len(ids)} {kind}s", chunk_size=size)

        for chunk_no, chunk in enumerate(_chunks(ids, size), start=1):
            with ThreadPoolExecutor(max_workers=len(chunk), thread_name_prefix="reconcile") as pool:
                futures = {pool.submit(work, entity_id): entity_id for entity_id in chunk}

                for future in as_completed(futures):
                    entity_id = futures[future]
                    summary.processed += 1
                    try:
                        result = future.result()
                    except ProgrammerError:
                        raise
                    except Exception as e:
                        logger.error(f"Failed to reconcile {kind}", entity_id=entity_id, error=str(e))
                        logger.record_error(type(e).__name__)
                        summary.failures.append((entity_id, str(e) or type(e).__name__))
                        continue

                    summary.created += result.created
                    summary.updated += result.updated
                    if result.failures:
                        summary.failures.append(
                            (entity_id, f"{len(result.failures)} match rows failed to persist")
                        )

            logger.debug(f"Chunk {chunk_no} done", processed=summary.processed)

        logger.info(f"Reconciled {kind}s", **summary.to_dict())
        logger.log_metrics_summary()
        return summary

    def reconcile_all(
        self,
        candidate_ids: Optional[Sequence[str]] = None,
        chunk_size: Optional[int] = None,
    ) -> ReconcileSummary:
        """
        Reconcile many candidates.

        Args:
            candidate_ids: Candidates to process (default: every candidate)
            chunk_size: Entities per chunk (default: the coordinator's)

        Returns:
            ReconcileSummary; failed candidates are listed, never raised
        """
        if candidate_ids is None:
            with self.session_factory() as session:
                candidate_ids = repository.list_candidate_ids(session)
        return self._run(candidate_ids, self.reconcile_candidate, "candidate", chunk_size)

    def reconcile_jobs(self, job_ids: Sequence[str], chunk_size: Optional[int] = None) -> ReconcileSummary:
        """Reverse direction: reconcile newly posted jobs against all candidates."""
        return self._run(job_ids, self.reconcile_job, "job", chunk_size)
