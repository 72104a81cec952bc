"""CLI entry point for the assessment evaluation and ranking pipeline."""

import argparse
import asyncio
import json
import logging
import sys

from src.core.config import Settings
from src.core.db import init_db
from src.core.errors import ClientError
from src.core.schemas import Job, LeaderboardEntry
from src.pipeline.lifecycle import ApplicationLifecycle


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Assessment pipeline - grade attempts, rank candidates, review results",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- load-job ---
    load_parser = subparsers.add_parser("load-job", help="Create or update a job from YAML")
    load_parser.add_argument("--job", required=True, help="Path to job YAML file")
    _add_common(load_parser)

    # --- leaderboard ---
    board_parser = subparsers.add_parser("leaderboard", help="Show a job's ranked candidates")
    board_parser.add_argument("--job-id", required=True, help="Job identifier")
    board_parser.add_argument("--limit", type=int, default=None, help="Show only the top N")
    board_parser.add_argument("--export", choices=["json"], help="Export leaderboard to format (json)")
    _add_common(board_parser)

    # --- report ---
    report_parser = subparsers.add_parser("report", help="Show one application's full breakdown")
    report_parser.add_argument("--application-id", required=True, help="Application identifier")
    _add_common(report_parser)

    # --- override ---
    override_parser = subparsers.add_parser("override", help="Manually shortlist or reject")
    override_parser.add_argument("--application-id", required=True, help="Application identifier")
    override_parser.add_argument("--status", required=True, choices=["shortlisted", "rejected"])
    _add_common(override_parser)

    # --- sweep-expired ---
    sweep_parser = subparsers.add_parser(
        "sweep-expired",
        help="Finalize in-progress attempts whose time limit has passed",
    )
    _add_common(sweep_parser)

    # --- parse-resume ---
    resume_parser = subparsers.add_parser(
        "parse-resume",
        help="Extract claimed skills from a resume PDF using an LLM",
    )
    resume_parser.add_argument("--resume", required=True, help="Path to resume PDF file")
    resume_parser.add_argument(
        "--output",
        default=None,
        help="Write the parsed profile to this YAML path",
    )
    resume_parser.add_argument(
        "--provider",
        default="anthropic",
        choices=["anthropic", "openai", "gemini", "ollama"],
        help="LLM provider for resume analysis (default: anthropic)",
    )
    resume_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def export_leaderboard_json(entries: list[LeaderboardEntry]) -> str:
    """Export leaderboard entries as a JSON string."""
    return json.dumps([e.model_dump(mode="json") for e in entries], indent=2)


def _print_leaderboard(entries: list[LeaderboardEntry]) -> None:
    if not entries:
        print("No completed attempts yet.")
        return
    print(f"{'Rank':>4}  {'Score':>6}  {'Pctl':>4}  {'Status':<11}  {'Review':<6}  Candidate")
    for e in entries:
        score = f"{e.score:.2f}" if e.score is not None else "-"
        review = "yes" if e.needs_review else ""
        print(
            f"{e.rank:>4}  {score:>6}  {e.percentile:>4}  {e.status:<11}  {review:<6}  {e.candidate_email}"
        )


def cmd_load_job(args: argparse.Namespace, lifecycle: ApplicationLifecycle) -> None:
    job = lifecycle.load_job(Job.from_yaml(args.job))
    print(f"Job '{job.title}' saved as {job.id}")
    if job.assessment is not None:
        print(f"  Questions: {len(job.assessment.questions)}")
        print(f"  Duration: {job.assessment.duration_minutes} min")
        print(f"  Link token: {job.assessment.link_token}")


def cmd_leaderboard(args: argparse.Namespace, lifecycle: ApplicationLifecycle) -> None:
    entries = lifecycle.leaderboard(args.job_id, args.limit)
    if args.export == "json":
        print(export_leaderboard_json(entries))
    else:
        _print_leaderboard(entries)


def cmd_report(args: argparse.Namespace, lifecycle: ApplicationLifecycle) -> None:
    report = lifecycle.report(args.application_id)
    print(report.model_dump_json(indent=2))


def cmd_override(args: argparse.Namespace, lifecycle: ApplicationLifecycle) -> None:
    app = asyncio.run(lifecycle.override_status(args.application_id, args.status))
    print(f"Application {app.id} is now {app.status}")


def cmd_sweep_expired(args: argparse.Namespace, lifecycle: ApplicationLifecycle) -> None:
    summaries = asyncio.run(lifecycle.finalize_expired())
    print(f"Finalized {len(summaries)} expired attempts.")
    for s in summaries:
        print(f"  {s.application_id}: {s.status} ({s.total_score})")


def cmd_parse_resume(args: argparse.Namespace) -> None:
    """Handle parse-resume subcommand."""
    from src.resume.extractor import extract_text_from_pdf
    from src.resume.parser import parse_resume

    print(f"Extracting text from {args.resume}...")
    text = extract_text_from_pdf(args.resume)
    print(f"Extracted {len(text)} characters from PDF.")

    print(f"Analyzing resume with {args.provider} provider...")
    profile = parse_resume(text, provider=args.provider)
    print(f"  Name: {profile.name}")
    print(f"  Experience: {profile.years_of_experience} years")
    print(f"  Skills: {', '.join(profile.skills)}")
    if args.output:
        profile.to_yaml(args.output)
        print(f"Profile written to {args.output}")


_COMMANDS = {
    "load-job": cmd_load_job,
    "leaderboard": cmd_leaderboard,
    "report": cmd_report,
    "override": cmd_override,
    "sweep-expired": cmd_sweep_expired,
}


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    if args.command == "parse-resume":
        try:
            cmd_parse_resume(args)
        except (FileNotFoundError, ImportError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        return

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    conn = init_db(settings.database.path)
    try:
        lifecycle = ApplicationLifecycle.from_settings(conn, settings)
        _COMMANDS[args.command](args, lifecycle)
    except (ClientError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
