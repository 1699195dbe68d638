import argparse
import json
from dataclasses import replace
from pathlib import Path

from . import __version__, repository
from .config import Settings
from .database import init_database, session_factory
from .env import load_env
from .errors import InputDataError, JobMatchError
from .logger import get_logger
from .schema import build_candidate, build_job
from .service import build_pipeline

logger = get_logger()


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if getattr(args, "db", None):
        settings = replace(settings, db_path=Path(args.db))
    return settings


def _read_json(path_str: str):
    input_path = Path(path_str)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def load_records(data: dict, db_path: Path) -> dict:
    """
    Validate and store profiles, candidates and jobs from one JSON document.

    Invalid records are reported and skipped; valid ones are written.
    """
    counts = {"profiles": 0, "candidates": 0, "jobs": 0, "invalid": 0}
    errors = []
    sessions = session_factory(db_path)

    with sessions() as session, session.begin():
        for profile in data.get("profiles", []):
            if not isinstance(profile, dict) or not profile.get("id"):
                counts["invalid"] += 1
                errors.append(f"profile: missing id in {profile!r}")
                continue
            repository.add_profile(session, profile["id"], profile.get("email"))
            counts["profiles"] += 1

        for raw in data.get("candidates", []):
            try:
                candidate = build_candidate(raw)
            except InputDataError as e:
                counts["invalid"] += 1
                errors.append(f"candidate {raw.get('id') if isinstance(raw, dict) else raw!r}: {e}")
                continue
            repository.add_candidate(session, candidate)
            counts["candidates"] += 1

        for raw in data.get("jobs", []):
            try:
                job = build_job(raw)
            except InputDataError as e:
                counts["invalid"] += 1
                errors.append(f"job {raw.get('id') if isinstance(raw, dict) else raw!r}: {e}")
                continue
            repository.add_job(session, job, status=raw.get("status", "open"))
            counts["jobs"] += 1

    sessions.kw["bind"].dispose()
    for e in errors:
        logger.warning("Skipped invalid record", error=e)
    return {**counts, "errors": errors}


def cmd_init_db(args: argparse.Namespace) -> None:
    settings = _settings(args)
    init_database(settings.db_path)
    print(f"Database ready: {settings.db_path}")


def cmd_load(args: argparse.Namespace) -> None:
    settings = _settings(args)
    data = _read_json(args.input)
    if not isinstance(data, dict):
        raise SystemExit("Input must be a JSON object with profiles/candidates/jobs lists")
    init_database(settings.db_path)
    outcome = load_records(data, settings.db_path)
    for e in outcome["errors"]:
        print(f"[invalid] {e}")
    print(
        f"Done. profiles={outcome['profiles']} candidates={outcome['candidates']} "
        f"jobs={outcome['jobs']} invalid={outcome['invalid']}"
    )


def cmd_match(args: argparse.Namespace) -> None:
    if not args.candidate and not args.user:
        raise SystemExit("Pass --candidate ID or --user ID")
    pipeline = build_pipeline(_settings(args))
    try:
        if args.user:
            result = pipeline.service.match_for_user(args.user, force=args.force)
            if result is None:
                print("Matches are up to date (use --force to recompute)")
                return
        else:
            result = pipeline.coordinator.reconcile_candidate(args.candidate)
        print(f"Done. created={result.created} updated={result.updated} failed={len(result.failures)}")
    finally:
        pipeline.close()


def cmd_match_job(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(_settings(args))
    try:
        result = pipeline.coordinator.reconcile_job(args.job)
        print(f"Done. created={result.created} updated={result.updated} failed={len(result.failures)}")
    finally:
        pipeline.close()


def cmd_reconcile(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(_settings(args))
    try:
        summary = pipeline.coordinator.reconcile_all(chunk_size=args.chunk_size)
    finally:
        pipeline.close()
    for entity_id, reason in summary.failures:
        print(f"[failed] {entity_id} - {reason}")
    print(
        f"Done. processed={summary.processed} created={summary.created} "
        f"updated={summary.updated} failed={len(summary.failures)}"
    )


def cmd_analyze(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(_settings(args))
    try:
        result = pipeline.analyzer.get_analysis(args.candidate, force_refresh=args.force)
    finally:
        pipeline.close()
    for title, items in (
        ("Strengths", result.strengths),
        ("Weaknesses", result.weaknesses),
        ("Suggestions", result.suggestions),
    ):
        print(f"{title}:")
        for item in items:
            print(f" - {item}")
    if result.used_fallback:
        print("(generic suggestions: analysis service unavailable)")


def cmd_opportunities(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(_settings(args))
    try:
        pairs = pipeline.service.opportunities(args.user)
    finally:
        pipeline.close()
    if not pairs:
        print("No pending opportunities.")
        return
    print(f"Found {len(pairs)} opportunities:\n")
    for job, score in pairs:
        print(f"ID: {job.id}")
        print(f"  Title: {job.title}")
        print(f"  Score: {score if score is not None else 'n/a'}")
        print()


def _cmd_decide(args: argparse.Namespace, apply: bool) -> None:
    pipeline = build_pipeline(_settings(args))
    try:
        if apply:
            pipeline.service.apply(args.user, args.job)
        else:
            pipeline.service.decline(args.user, args.job)
    finally:
        pipeline.close()
    print(f"{'Applied to' if apply else 'Declined'} {args.job}")


def cmd_apply(args: argparse.Namespace) -> None:
    _cmd_decide(args, apply=True)


def cmd_decline(args: argparse.Namespace) -> None:
    _cmd_decide(args, apply=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobmatch", description="Candidate/job match scoring and résumé analysis")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="SQLite database path (or set JOBMATCH_DB)")

    subparsers = parser.add_subparsers(dest="command")

    init = subparsers.add_parser("init-db", help="Create the database tables")
    init.set_defaults(func=cmd_init_db)

    load = subparsers.add_parser("load", help="Load profiles, candidates and jobs from a JSON file")
    load.add_argument("--input", required=True, help="JSON object with 'profiles', 'candidates' and 'jobs' lists")
    load.set_defaults(func=cmd_load)

    mat = subparsers.add_parser("match", help="Score one candidate against all open jobs")
    mat.add_argument("--candidate", help="Candidate id")
    mat.add_argument("--user", help="User id (resolved to a candidate profile)")
    mat.add_argument("--force", action="store_true", help="Recompute even if the résumé did not change")
    mat.set_defaults(func=cmd_match)

    mjob = subparsers.add_parser("match-job", help="Score every candidate against one job")
    mjob.add_argument("--job", required=True, help="Job id")
    mjob.set_defaults(func=cmd_match_job)

    rec = subparsers.add_parser("reconcile", help="Score all candidates against all open jobs")
    rec.add_argument("--chunk-size", type=int, help="Candidates processed concurrently per chunk")
    rec.set_defaults(func=cmd_reconcile)

    ana = subparsers.add_parser("analyze", help="Analyze a candidate's résumé")
    ana.add_argument("--candidate", required=True, help="Candidate id")
    ana.add_argument("--force", action="store_true", help="Ignore stored and cached analysis")
    ana.set_defaults(func=cmd_analyze)

    opp = subparsers.add_parser("opportunities", help="List pending matches for a user")
    opp.add_argument("--user", required=True, help="User id")
    opp.set_defaults(func=cmd_opportunities)

    for name, func, help_text in (
        ("apply", cmd_apply, "Mark a job as applied to"),
        ("decline", cmd_decline, "Decline a job"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--user", required=True, help="User id")
        sub.add_argument("--job", required=True, help="Job id")
        sub.set_defaults(func=func)

    return parser


def main(argv=None):
    # Load .env if present (GEMINI_API_KEY, JOBMATCH_DB, etc.)
    load_env()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    try:
        logger.set_level(Settings.from_env().log_level)
    except (ValueError, AttributeError) as e:
        raise SystemExit(f"Invalid configuration: {e}")

    if hasattr(args, "func"):
        try:
            args.func(args)
        except JobMatchError as e:
            raise SystemExit(f"Error: {e}")
        return

    parser.print_help()


if __name__ == "__main__":
    main()
