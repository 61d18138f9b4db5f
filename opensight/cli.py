"""
OpenSight command line

Usage:
    # Analyze a domain and email the summary:
    python -m opensight.cli analyze example.com me@example.com

    # Score one page:
    python -m opensight.cli score https://example.com/blog/post

    # Finish every run interrupted by a restart:
    python -m opensight.cli resume

    # Re-analyze every tracked brand (run daily from cron or a systemd timer):
    python -m opensight.cli schedule --email ops@example.com
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .errors import OpenSightError, ValidationError
from .services.factory import Services, build_services
from .utils.config import get_settings
from .utils.logging_setup import setup_logging
from .workflow.checkpoints import RunCheckpoint

logger = logging.getLogger(__name__)


def _print_run(checkpoint: Optional[RunCheckpoint]):
    if checkpoint is None:
        print("Run not found")
        return

    print(f"\n{'=' * 70}")
    print(f"Run:          {checkpoint.run_id}")
    print(f"Domain:       {checkpoint.request.domain}")
    print(f"State:        {checkpoint.state.value}")
    if checkpoint.failed_step:
        print(f"Failed step:  {checkpoint.failed_step} ({checkpoint.error_message})")
    print(f"Pairs:        {len(checkpoint.results)}/{checkpoint.expected_pairs} (coverage {checkpoint.coverage:.0%})")
    for missing in checkpoint.missing:
        print(f"  missing {missing.prompt_id}/{missing.engine}: {missing.error}")
    print(f"Notification: {checkpoint.notification.value}")
    if checkpoint.summary:
        print(f"Score:        {checkpoint.summary.get('overall_score')}")
    print(f"{'=' * 70}\n")


async def run_analyze(services: Services, domain: str, email: str) -> int:
    accepted = await services.intake.submit({"domain": domain, "email": email})
    checkpoint = await services.runner.wait(accepted["run_id"])
    _print_run(checkpoint)
    return 0 if checkpoint and checkpoint.state.value == "completed" else 1


async def run_score(services: Services, url: str) -> int:
    if services.content is None:
        print("ERROR: FIRECRAWL_API_KEY is required for content scoring")
        return 2
    record = await services.content.score_url(url)
    print(json.dumps(record.to_dict(), indent=2))
    return 0


async def run_resume(services: Services) -> int:
    run_ids = services.runner.resume_incomplete()
    if not run_ids:
        print("No unfinished runs")
        return 0
    for run_id in run_ids:
        _print_run(await services.runner.wait(run_id))
    return 0


async def run_schedule(services: Services, email: Optional[str]) -> int:
    run_ids = services.runner.schedule_tracked_brands(default_email=email)
    if not run_ids:
        print("No tracked brands to analyze")
        return 0
    failed = 0
    for run_id in run_ids:
        checkpoint = await services.runner.wait(run_id)
        _print_run(checkpoint)
        if checkpoint is None or checkpoint.state.value != "completed":
            failed += 1
    return 1 if failed else 0


async def _main(args: argparse.Namespace) -> int:
    services = build_services(get_settings())
    try:
        if args.command == "analyze":
            return await run_analyze(services, args.domain, args.email)
        if args.command == "score":
            return await run_score(services, args.url)
        if args.command == "schedule":
            return await run_schedule(services, args.email)
        return await run_resume(services)
    finally:
        await services.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="opensight", description="AI visibility analysis")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="Analyze a domain across AI engines")
    analyze.add_argument("domain", help="Domain to analyze (e.g., example.com)")
    analyze.add_argument("email", help="Email to send the summary to")

    score = commands.add_parser("score", help="Score the content at a URL")
    score.add_argument("url", help="Absolute http(s) URL")

    commands.add_parser("resume", help="Resume unfinished runs from their checkpoints")

    schedule = commands.add_parser("schedule", help="Queue a run for every tracked brand")
    schedule.add_argument("--email", default=None, help="Recipient for brands without a previous run")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or get_settings().LOG_LEVEL)

    try:
        return asyncio.run(_main(args))
    except ValidationError as e:
        print(f"ERROR: {e}")
        for detail in e.errors:
            print(f"  - {detail.get('field')}: {detail.get('message')}")
        return 2
    except (OpenSightError, ValueError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
