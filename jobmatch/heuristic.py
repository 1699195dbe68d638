"""
Deterministic skill-overlap scorer.

Used whenever the oracle is unavailable, too slow, or one side has no skills
at all. No I/O.
"""

import math
from typing import List, Sequence

from .logger import get_logger

logger = get_logger()


def _lowered(skills: Sequence) -> List[str]:
    return [s.strip().lower() for s in skills or () if isinstance(s, str) and s.strip()]


def _round_half_up(value: float) -> int:
    # round() is banker's rounding; 0.5 must go up here
    return int(math.floor(value + 0.5))


class HeuristicScorer:
    """Score = share of job skills covered by at least one candidate skill."""

    def score(self, candidate_skills: Sequence[str], job_skills: Sequence[str]) -> int:
        """
        Compute a 0-100 overlap score.

        A job skill counts as matched when any candidate skill is a
        case-insensitive substring of it, or it is a substring of a candidate
        skill. Either list empty gives 0.

        Args:
            candidate_skills: Skills from the résumé
            job_skills: Required skills of the posting

        Returns:
            Integer score in [0, 100]
        """
        cand = _lowered(candidate_skills)
        job = _lowered(job_skills)
        if not cand or not job:
            return 0

        matched = sum(1 for js in job if any(cs in js or js in cs for cs in cand))
        score = _round_half_up(matched / len(job) * 100)
        logger.debug(f"Heuristic matched {matched}/{len(job)} job skills", score=score)
        return min(100, max(0, score))


_default_scorer = HeuristicScorer()


def heuristic_score(candidate_skills: Sequence[str], job_skills: Sequence[str]) -> int:
    """Module-level shortcut for HeuristicScorer().score."""
    return _default_scorer.score(candidate_skills, job_skills)
