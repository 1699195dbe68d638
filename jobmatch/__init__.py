"""
jobmatch - candidate/job compatibility scoring and resume analysis.

Scores résumé profiles against job postings through an external generative
oracle, falling back to a deterministic skill-overlap heuristic whenever the
oracle is slow, unavailable or the input is too sparse to bother.
"""

__version__ = "0.1.0"
