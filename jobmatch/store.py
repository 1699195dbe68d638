"""
Idempotent persistence of match results.

Every write is an INSERT ... ON CONFLICT (candidate_id, job_id) DO UPDATE, so
the database guarantees one live row per pair even when overlapping batch
runs write the same key at once. No application-level locking.

Created vs. updated is read from the row's revision counter, which the same
statement sets to 1 on insert and increments on conflict, returned with
RETURNING. That is an explicit "was inserted" signal; comparing created_at
with updated_at is not used.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .database import MatchRow
from .errors import InvalidMatchRecord, PersistenceError
from .logger import get_logger
from .models import MatchRecord, MatchStatus, UpsertResult

logger = get_logger()

WRITE_CHUNK_SIZE = 10


def validate_record(record: MatchRecord) -> None:
    """
    Raises:
        InvalidMatchRecord: Empty key part, score outside [0, 100], bad status
    """
    if not isinstance(record, MatchRecord):
        raise InvalidMatchRecord(f"expected MatchRecord, got {type(record).__name__}")
    for name, value in (("candidate_id", record.candidate_id), ("job_id", record.job_id)):
        if not isinstance(value, str) or not value.strip():
            raise InvalidMatchRecord(f"malformed composite key: {name}={value!r}")
    if record.score is not None:
        if isinstance(record.score, bool) or not isinstance(record.score, int):
            raise InvalidMatchRecord(f"score must be an int, got {record.score!r}")
        if not 0 <= record.score <= 100:
            raise InvalidMatchRecord(f"score out of range: {record.score}")
    if record.status is not None and not isinstance(record.status, MatchStatus):
        raise InvalidMatchRecord(f"unknown status: {record.status!r}")


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class UpsertStore:
    """Writes MatchRecords keyed by (candidate_id, job_id)."""

    def __init__(self, session_factory: sessionmaker, chunk_size: int = WRITE_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.session_factory = session_factory
        self.chunk_size = chunk_size

    def _statement(self, record: MatchRecord, now: datetime, keep_score: bool = False):
        values = {
            "candidate_id": record.candidate_id,
            "job_id": record.job_id,
            "score": record.score,
            "status": (record.status or MatchStatus.PENDING).value,
            "revision": 1,
            "created_at": now,
            "updated_at": now,
        }
        stmt = sqlite_insert(MatchRow).values(**values)

        on_update = {
            "updated_at": stmt.excluded.updated_at,
            "revision": MatchRow.revision + 1,
        }
        if not keep_score:
            on_update["score"] = stmt.excluded.score
        # Omitted status leaves applied/declined decisions alone
        if record.status is not None:
            on_update["status"] = stmt.excluded.status

        return stmt.on_conflict_do_update(
            index_elements=["candidate_id", "job_id"],
            set_=on_update,
        ).returning(MatchRow.revision)

    def upsert(self, records: Sequence[MatchRecord]) -> UpsertResult:
        """
        Create or update match rows.

        A record that fails to write is reported in result.failures and its
        siblings are still written. Invalid records raise before anything is
        written.

        Args:
            records: Records to persist

        Returns:
            UpsertResult with created/updated counts and per-record failures

        Raises:
            InvalidMatchRecord: Malformed key, score or status
        """
        records = list(records)
        for record in records:
            validate_record(record)

        result = UpsertResult()
        for chunk in _chunks(records, self.chunk_size):
            result.merge(self._write_chunk(chunk))

        logger.record_upserts(result.created, result.updated)
        if result.failures:
            logger.warning(
                f"{len(result.failures)} match rows failed to persist",
                failed=[f"{c}/{j}" for (c, j), _ in result.failures],
            )
        logger.debug("Upsert complete", created=result.created, updated=result.updated)
        return result

    def _write_chunk(self, chunk: Sequence[MatchRecord], keep_score: bool = False) -> UpsertResult:
        result = UpsertResult()
        now = datetime.now()
        try:
            with self.session_factory() as session, session.begin():
                for record in chunk:
                    try:
                        with session.begin_nested():
                            revision = session.execute(self._statement(record, now, keep_score)).scalar_one()
                    except SQLAlchemyError as e:
                        logger.error(
                            "Match upsert failed",
                            candidate_id=record.candidate_id,
                            job_id=record.job_id,
                            error=str(e),
                        )
                        logger.record_error("PersistenceError")
                        result.failures.append((record.key, str(PersistenceError(str(e)))))
                        continue
                    if revision == 1:
                        result.created += 1
                    else:
                        result.updated += 1
        except SQLAlchemyError as e:
            # Commit itself failed: nothing in this chunk is durable
            logger.error("Match chunk commit failed", size=len(chunk), error=str(e))
            logger.record_error("PersistenceError")
            return UpsertResult(
                failures=[(r.key, f"commit failed: {e}") for r in chunk],
            )
        return result

    def set_status(self, candidate_id: str, job_id: str, status: MatchStatus) -> bool:
        """
        Record an applied/declined (or back to pending) decision.

        The existing score is kept; a row that did not exist yet is created
        with no score. Returns True if the row was created.

        Raises:
            InvalidMatchRecord: Malformed key or status
            PersistenceError: The write failed
        """
        record = MatchRecord(candidate_id, job_id, None, status)
        validate_record(record)
        if status is None:
            raise InvalidMatchRecord("status is required")

        result = self._write_chunk([record], keep_score=True)
        if result.failures:
            raise PersistenceError(result.failures[0][1])
        logger.info("Match status set", candidate_id=candidate_id, job_id=job_id, status=status.value)
        return result.created == 1

    def get(self, candidate_id: str, job_id: str) -> Optional[MatchRow]:
        with self.session_factory() as session:
            return session.query(MatchRow).filter_by(candidate_id=candidate_id, job_id=job_id).first()

    def count(self) -> int:
        with self.session_factory() as session:
            return session.query(MatchRow).count()

    def rows_for_candidate(self, candidate_id: str) -> List[MatchRow]:
        with self.session_factory() as session:
            return session.query(MatchRow).filter_by(candidate_id=candidate_id).all()
