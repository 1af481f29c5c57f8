#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from connectors.exceptions import ConnectorException, RateLimitCritical
from processors.batch import DEFAULT_POLL_INTERVAL
from processors.projects import DEFAULT_MANIFEST_PATTERN
from providers.exceptions import ConfigurationError
from storage import PersistenceGateway, TransactionFailure
from utils import DEFAULT_BASE_BRANCH, _normalize_datetime, _parse_since

REPO_ROOT = Path(__file__).resolve().parent

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_RATE_LIMIT = 2


def _load_dotenv(path: Path) -> int:
    """
    Load a .env file into process environment (without overriding existing vars).

    Keeps dependencies minimal (avoids python-dotenv).
    """
    if not path.exists():
        return 0
    loaded = 0
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key or key in os.environ:
            continue
        if (len(value) >= 2) and ((value[0] == value[-1]) and value[0] in {"'", '"'}):
            value = value[1:-1]
        os.environ[key] = value
        loaded += 1
    return loaded


def _parse_datetime_arg(value: str) -> datetime:
    try:
        return _parse_since(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"Invalid date '{value}', expected YYYY-MM-DD or an ISO timestamp"
        ) from exc


def _cmd_analyze(ns: argparse.Namespace) -> int:
    token = ns.auth or os.getenv("GITHUB_TOKEN") or ""
    if not token:
        raise SystemExit("Missing GitHub token (pass --auth or set GITHUB_TOKEN).")

    # Import lazily to keep CLI startup fast.
    from metrics.job_daily import run_analysis_job

    result = asyncio.run(
        run_analysis_job(
            owner=ns.owner,
            repo=ns.repo,
            repo_path=ns.repo_path,
            token=token,
            project_groups_path=ns.project_groups,
            teams_path=ns.teams,
            db_url=ns.db,
            start=ns.start_date,
            end=ns.end_date,
            base_branch=ns.base_branch,
            manifest_pattern=ns.manifest_pattern,
            base_url=ns.github_url,
            poll_interval=ns.poll_interval,
        )
    )
    if result.run_id is not None:
        logging.info(
            f"Analysis run {result.run_id} saved with {len(result.pull_requests)} PRs"
        )
    else:
        logging.info(f"Analysed {len(result.pull_requests)} PRs (not saved, no --db)")
    return EXIT_OK


def _cmd_last_run(ns: argparse.Namespace) -> int:
    if not ns.db:
        raise SystemExit("Missing database (pass --db or set DB_CONN_STRING).")

    async def _handler():
        async with PersistenceGateway(ns.db) as gateway:
            return await gateway.latest_run(ns.owner, ns.repo)

    run = asyncio.run(_handler())
    if run is None:
        print(f"No analysis runs recorded for {ns.owner}/{ns.repo}")
        return EXIT_OK
    print(
        f"Run {run.id}: {run.github_owner}/{run.github_repo} "
        f"{_normalize_datetime(run.start_date):%Y-%m-%d} -> "
        f"{_normalize_datetime(run.end_date):%Y-%m-%d} "
        f"base={run.base_branch} prs={run.pr_count} "
        f"ran_at={_normalize_datetime(run.run_date).isoformat()}"
    )
    return EXIT_OK


def _add_repo_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--owner", required=True, help="GitHub repository owner.")
    parser.add_argument("--repo", required=True, help="GitHub repository name.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pr-insights",
        description="Attribute merged pull requests to project groups and teams.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING). Defaults to env LOG_LEVEL or INFO.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # ---- analyze ----
    analyze = sub.add_parser(
        "analyze", help="Fetch, attribute and aggregate merged PRs for a date range."
    )
    _add_repo_args(analyze)
    analyze.add_argument(
        "--repo-path", default=".", help="Path to a local clone of the repository."
    )
    analyze.add_argument(
        "--auth",
        default=os.getenv("GITHUB_TOKEN"),
        help="GitHub token (defaults to env GITHUB_TOKEN).",
    )
    analyze.add_argument(
        "--db",
        default=os.getenv("DB_CONN_STRING"),
        help="Database connection string. Without it results are only logged.",
    )
    analyze.add_argument(
        "--project-groups",
        required=True,
        help="JSON file listing project-group name prefixes.",
    )
    analyze.add_argument(
        "--teams", required=True, help="JSON file listing teams and their authors."
    )
    analyze.add_argument(
        "--start-date",
        type=_parse_datetime_arg,
        help="Inclusive UTC start. Defaults to the previous run's end date.",
    )
    analyze.add_argument(
        "--end-date",
        type=_parse_datetime_arg,
        help="Exclusive UTC end. Defaults to one day after the start.",
    )
    analyze.add_argument(
        "--base-branch",
        default=DEFAULT_BASE_BRANCH,
        help=f"Target branch of the PRs (default: {DEFAULT_BASE_BRANCH}).",
    )
    analyze.add_argument(
        "--manifest-pattern",
        default=DEFAULT_MANIFEST_PATTERN,
        help=f"File name pattern marking a project directory (default: {DEFAULT_MANIFEST_PATTERN}).",
    )
    analyze.add_argument(
        "--github-url", help="GitHub Enterprise API base URL (e.g. https://ghe.example.com/api/v3)."
    )
    analyze.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help="Seconds to wait between rate-limit checks while quota is low.",
    )
    analyze.set_defaults(func=_cmd_analyze)

    # ---- last-run ----
    last = sub.add_parser("last-run", help="Show the latest analysis run for a repo.")
    _add_repo_args(last)
    last.add_argument(
        "--db",
        default=os.getenv("DB_CONN_STRING"),
        help="Database connection string.",
    )
    last.set_defaults(func=_cmd_last_run)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    if os.getenv("DISABLE_DOTENV", "").strip().lower() not in {
        "1",
        "true",
        "yes",
        "on",
    }:
        _load_dotenv(REPO_ROOT / ".env")

    parser = build_parser()
    ns = parser.parse_args(argv)

    level_name = str(getattr(ns, "log_level", "") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    func = getattr(ns, "func", None)
    if func is None:
        parser.print_help()
        return EXIT_FAILURE

    try:
        return int(func(ns))
    except RateLimitCritical as e:
        logging.error(f"Aborting: {e}")
        return EXIT_RATE_LIMIT
    except (ConfigurationError, TransactionFailure, ConnectorException, ValueError) as e:
        logging.error(f"Aborting: {e}")
        return EXIT_FAILURE
    except Exception:
        logging.exception("Unhandled error")
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
