"""
Fan-out scoring of one entity against many.

Each (candidate, job) pair is scored on its own worker. All tasks are allowed
to settle; one pair failing never affects the others. Pairs whose task raised
are reported as failed and ranked with FAILED_MATCH_SCORE.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .cache import AnalysisCache, match_key
from .errors import ProgrammerError
from .logger import get_logger
from .models import Candidate, JobPosting, MatchRecord, MatchStatus, ScoredResult, ScoreOutcome
from .oracle import ScoringOracleClient

logger = get_logger()

# Placeholder written for a pair whose scoring task failed outright
FAILED_MATCH_SCORE = 10

DEFAULT_FAN_OUT = 10

Pair = Tuple[Candidate, JobPosting]


def rank_results(results: Sequence[ScoredResult]) -> List[ScoredResult]:
    """Best score first; unscored results last, in their original order."""
    return sorted(results, key=lambda r: (r.score is None, -(r.score or 0)))


@dataclass
class MatchReport:
    """Ranked results plus the per-pair outcome of one fan-out."""

    results: List[ScoredResult] = field(default_factory=list)
    outcomes: Dict[Tuple[str, str], ScoreOutcome] = field(default_factory=dict)

    @property
    def failures(self) -> List[Tuple[Tuple[str, str], str]]:
        return [(key, o.reason) for key, o in self.outcomes.items() if o.is_failed]

    @property
    def fallbacks(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.is_fallback)

    def to_records(self, status: Optional[MatchStatus] = None) -> List[MatchRecord]:
        return [MatchRecord(r.candidate_id, r.job_id, r.score, status) for r in self.results]

    def __len__(self) -> int:
        return len(self.results)


class MatchEngine:
    """Scores candidates against jobs with a shared oracle client and cache."""

    def __init__(
        self,
        oracle: ScoringOracleClient,
        cache: AnalysisCache,
        max_fan_out: int = DEFAULT_FAN_OUT,
    ):
        if max_fan_out < 1:
            raise ValueError("max_fan_out must be >= 1")
        self.oracle = oracle
        self.cache = cache
        self.max_fan_out = max_fan_out

    def score_pair(self, candidate: Candidate, job: JobPosting) -> ScoreOutcome:
        """Cached score for one pair; computes and caches on a miss."""
        key = match_key(candidate.id, job.id)
        version = (candidate.content_version, job.content_version)

        cached = self.cache.get(key, version)
        logger.record_cache(cached is not None)
        if cached is not None:
            return cached

        outcome = self.oracle.score_outcome(
            candidate.skills,
            candidate.experience_summary(),
            job,
        )
        if not outcome.is_failed:
            self.cache.set(key, outcome, version)
        return outcome

    def match_one_to_many(self, pairs: Sequence[Pair]) -> MatchReport:
        """
        Score every pair concurrently and settle all of them.

        Raises:
            ProgrammerError: A pair was built from invalid input
        """
        report = MatchReport()
        if not pairs:
            return report

        programmer_errors = []
        with ThreadPoolExecutor(max_workers=min(self.max_fan_out, len(pairs)), thread_name_prefix="match") as pool:
            futures = {pool.submit(self.score_pair, c, j): (c, j) for c, j in pairs}

            for future in as_completed(futures):
                candidate, job = futures[future]
                key = (candidate.id, job.id)
                try:
                    outcome = future.result()
                except ProgrammerError as e:
                    programmer_errors.append(e)
                    continue
                except Exception as e:
                    logger.error("Match scoring failed", candidate_id=candidate.id, job_id=job.id, error=str(e))
                    logger.record_error(type(e).__name__)
                    outcome = ScoreOutcome.failed(str(e) or type(e).__name__)

                report.outcomes[key] = outcome
                score = FAILED_MATCH_SCORE if outcome.is_failed else outcome.score
                report.results.append(ScoredResult(candidate.id, job.id, score, outcome))

        if programmer_errors:
            raise programmer_errors[0]

        report.results = rank_results(report.results)
        logger.debug(
            "Fan-out complete",
            pairs=len(pairs),
            failed=len(report.failures),
            fallbacks=report.fallbacks,
        )
        return report

    def match_candidate(self, candidate: Candidate, jobs: Sequence[JobPosting]) -> MatchReport:
        return self.match_one_to_many([(candidate, job) for job in jobs])

    def match_job(self, job: JobPosting, candidates: Sequence[Candidate]) -> MatchReport:
        return self.match_one_to_many([(candidate, job) for candidate in candidates])
